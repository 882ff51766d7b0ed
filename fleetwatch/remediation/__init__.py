"""Remediation — restart/kill strategies with verification."""

from fleetwatch.remediation.exceptions import (
    RemediationAborted,
    RemediationError,
    RemediationFailed,
    RemediationTimedOut,
)
from fleetwatch.remediation.orchestrator import Confirmer, RemediationOrchestrator

__all__ = [
    "Confirmer",
    "RemediationAborted",
    "RemediationError",
    "RemediationFailed",
    "RemediationOrchestrator",
    "RemediationTimedOut",
]
