"""Fleetwatch — health monitoring and remediation engine for a container fleet."""

__version__ = "0.1.0"
