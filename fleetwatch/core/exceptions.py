"""Core exceptions."""

from __future__ import annotations


class FleetwatchError(Exception):
    """Base exception for all engine errors."""


class ConfigurationError(FleetwatchError):
    """Configuration is malformed — fatal, raised before any cycle runs."""
