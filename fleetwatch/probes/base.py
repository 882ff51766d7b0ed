"""Abstract probe — one health check for one kind of target."""

from __future__ import annotations

import abc

from fleetwatch.core.types import HealthSample
from fleetwatch.targets.registry import MonitoredTarget


class Probe(abc.ABC):
    """Checks a target and returns a HealthSample.

    Implementations may raise ``ProbeTimeout``/``ProbeUnreachable`` (or
    anything else); ``ProbeEngine`` enforces the timeout and maps every
    failure to a sample, so callers never see an exception.
    """

    @abc.abstractmethod
    async def check(self, target: MonitoredTarget) -> HealthSample:
        """Run the check once."""

    async def close(self) -> None:
        """Release resources (HTTP clients, etc.)."""
