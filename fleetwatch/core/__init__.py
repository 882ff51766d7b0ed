"""Core module — config, types, logging, exceptions."""

from fleetwatch.core.config import Settings, get_settings, load_settings, reset_settings
from fleetwatch.core.exceptions import ConfigurationError, FleetwatchError
from fleetwatch.core.logging import setup_logging
from fleetwatch.core.types import (
    ClusterSeverity,
    ConditionSustained,
    CycleReport,
    CycleState,
    HealthSample,
    HealthStatus,
    ProbeFailure,
    RemediationAction,
    RemediationOutcome,
    RemediationResult,
    RemediationStrategy,
    SendResult,
    TargetKind,
)

__all__ = [
    "ClusterSeverity",
    "ConditionSustained",
    "ConfigurationError",
    "CycleReport",
    "CycleState",
    "FleetwatchError",
    "HealthSample",
    "HealthStatus",
    "ProbeFailure",
    "RemediationAction",
    "RemediationOutcome",
    "RemediationResult",
    "RemediationStrategy",
    "SendResult",
    "Settings",
    "TargetKind",
    "get_settings",
    "load_settings",
    "reset_settings",
    "setup_logging",
]
