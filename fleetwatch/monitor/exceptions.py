"""Alerting-layer exceptions."""

from __future__ import annotations


class MonitorError(Exception):
    """Base exception for alerting errors."""


class NotifierFailed(MonitorError):
    """A notification channel could not deliver a message.  Never fatal."""


class StateFileError(MonitorError):
    """The cooldown state file could not be written."""
