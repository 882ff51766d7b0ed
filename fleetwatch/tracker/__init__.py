"""Sustained-condition tracking — turns per-tick booleans into duration-gated facts."""

from fleetwatch.tracker.conditions import SustainedConditionTracker, condition_key

__all__ = [
    "SustainedConditionTracker",
    "condition_key",
]
