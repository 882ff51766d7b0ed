"""Probe exceptions — raised inside probes, always mapped to samples by the engine."""

from __future__ import annotations


class ProbeError(Exception):
    """Base exception for probe failures."""


class ProbeTimeout(ProbeError):
    """The check did not complete within its timeout."""


class ProbeUnreachable(ProbeError):
    """The target could not be reached (connection refused, DNS, socket...)."""
