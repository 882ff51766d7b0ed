"""Remediation-layer exceptions."""

from __future__ import annotations


class RemediationError(Exception):
    """Base exception for remediation errors."""


class RemediationFailed(RemediationError):
    """A restart/kill command failed or the process vanished."""


class RemediationTimedOut(RemediationError):
    """The target did not become healthy within the allowed wait."""


class RemediationAborted(RemediationFailed):
    """The target answered after the restart, but in a state another restart is not allowed to fix."""
