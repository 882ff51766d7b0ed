"""Exception hierarchy for runtime collaborators."""

from __future__ import annotations


class RuntimeCommandError(Exception):
    """A runtime call (list/inspect/restart/kill) failed."""


class ProcessNotFoundError(RuntimeCommandError):
    """The referenced process/container no longer exists."""


class ServiceRestartError(RuntimeCommandError):
    """A scoped dependent-service restart failed."""
