"""Shared test doubles: a controllable clock and an in-memory container runtime."""

from __future__ import annotations

import asyncio

import pytest

from fleetwatch.core.config import reset_settings
from fleetwatch.core.types import ProcessRef, RawHealthStatus
from fleetwatch.runtime.base import ContainerRuntime
from fleetwatch.runtime.exceptions import RuntimeCommandError


class FakeClock:
    """Wall clock that only moves when told to; ``sleep`` advances it."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, secs: float) -> None:
        self.now += secs

    async def sleep(self, secs: float) -> None:
        self.sleeps.append(secs)
        self.now += secs
        await asyncio.sleep(0)


class FakeRuntime(ContainerRuntime):
    """In-memory runtime recording every mutating call.

    Health for a container is a script: each ``inspect_health`` consumes one
    entry and the last entry repeats forever.
    """

    def __init__(self) -> None:
        self.containers: dict[str, ProcessRef] = {}
        self.health: dict[str, list[RawHealthStatus]] = {}
        self.restarted: list[str] = []
        self.killed: list[str] = []
        self.batches: list[list[str]] = []
        self.fail: set[str] = set()
        self.vanish_on_restart: set[str] = set()
        self.hang = False

    def add(
        self,
        name: str,
        *health: RawHealthStatus,
        state: str = "running",
        started_at: float | None = None,
    ) -> ProcessRef:
        ref = ProcessRef(id=f"id-{name}", name=name, state=state, started_at=started_at)
        self.containers[name] = ref
        self.health[name] = list(health) or [RawHealthStatus.HEALTHY]
        return ref

    async def list_processes(self, name_filter: str | None = None, exact: bool = False) -> list[ProcessRef]:
        if self.hang:
            await asyncio.Event().wait()
        refs = list(self.containers.values())
        if name_filter is None:
            return refs
        if exact:
            return [r for r in refs if r.name == name_filter]
        return [r for r in refs if name_filter in r.name]

    async def inspect_health(self, ref: ProcessRef) -> RawHealthStatus:
        if ref.name not in self.containers:
            return RawHealthStatus.MISSING
        script = self.health[ref.name]
        return script.pop(0) if len(script) > 1 else script[0]

    async def restart(self, ref: ProcessRef) -> None:
        self.restarted.append(ref.name)
        if ref.name in self.fail:
            raise RuntimeCommandError(f"restart {ref.name} failed")
        if ref.name in self.vanish_on_restart:
            self.containers.pop(ref.name, None)

    async def restart_all(self, refs: list[ProcessRef]) -> None:
        self.batches.append([r.name for r in refs])
        await super().restart_all(refs)

    async def kill(self, ref: ProcessRef) -> None:
        self.killed.append(ref.name)
        if ref.name in self.fail:
            raise RuntimeCommandError(f"kill {ref.name} failed")


@pytest.fixture(autouse=True)
def _clean_settings() -> None:
    """Reset the global settings cache before each test."""
    reset_settings()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def runtime() -> FakeRuntime:
    return FakeRuntime()
