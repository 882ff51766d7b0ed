"""Narrow interfaces to the container runtime and dependent-service controller."""

from __future__ import annotations

import abc
import asyncio

from fleetwatch.core.types import ProcessRef, RawHealthStatus
from fleetwatch.runtime.exceptions import RuntimeCommandError


class ContainerRuntime(abc.ABC):
    """Opaque container/process runtime.

    The engine never assumes a concrete runtime; implementations raise
    ``RuntimeCommandError`` (or a subclass) on failure.
    """

    @abc.abstractmethod
    async def list_processes(self, name_filter: str | None = None, exact: bool = False) -> list[ProcessRef]:
        """Return processes whose name matches *name_filter* (all when None)."""

    @abc.abstractmethod
    async def inspect_health(self, ref: ProcessRef) -> RawHealthStatus:
        """Return the runtime's health view of *ref*."""

    @abc.abstractmethod
    async def restart(self, ref: ProcessRef) -> None:
        """Gracefully restart *ref*."""

    @abc.abstractmethod
    async def kill(self, ref: ProcessRef) -> None:
        """Force-terminate *ref* (no graceful stop)."""

    async def restart_all(self, refs: list[ProcessRef]) -> None:
        """Restart every ref concurrently; raises if any restart failed."""
        results = await asyncio.gather(
            *(self.restart(ref) for ref in refs),
            return_exceptions=True,
        )
        errors = [r for r in results if isinstance(r, BaseException)]
        if errors:
            raise RuntimeCommandError(
                f"{len(errors)}/{len(refs)} restarts failed: {errors[0]}"
            ) from errors[0]

    async def usage(self, ref: ProcessRef) -> dict[str, str]:
        """Resource usage for status reports (cpu, memory).  Optional."""
        return {}

    async def close(self) -> None:
        """Release resources."""


class ServiceController(abc.ABC):
    """Restarts a single named dependent service (not a fleet)."""

    @abc.abstractmethod
    async def restart_service(self, name: str) -> None:
        """Issue a scoped restart of *name*; raises ServiceRestartError."""
