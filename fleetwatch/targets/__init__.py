"""Target registry — monitored entities and their sample history."""

from fleetwatch.targets.exceptions import TargetNotFoundError
from fleetwatch.targets.registry import MonitoredTarget, TargetRegistry

__all__ = [
    "MonitoredTarget",
    "TargetNotFoundError",
    "TargetRegistry",
]
