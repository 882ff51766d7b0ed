"""Target registry exceptions."""

from __future__ import annotations


class TargetNotFoundError(KeyError):
    """No target is registered under the requested id."""
