"""Tests for ProbeEngine — timeouts, retries, cycle deadline, failure mapping."""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

from fleetwatch.core.config import ContainerProbeConfig, HttpProbeConfig, TargetConfig
from fleetwatch.core.types import HealthSample, HealthStatus, ProbeFailure, TargetKind
from fleetwatch.probes.base import Probe
from fleetwatch.probes.container import ContainerProbe
from fleetwatch.probes.engine import ProbeEngine
from fleetwatch.probes.exceptions import ProbeUnreachable
from fleetwatch.targets.registry import MonitoredTarget, TargetRegistry

if TYPE_CHECKING:
    from conftest import FakeClock, FakeRuntime


# ── Helpers ─────────────────────────────────────────────────────


class HangingProbe(Probe):
    """Never answers."""

    async def check(self, target: MonitoredTarget) -> HealthSample:
        await asyncio.Event().wait()
        raise AssertionError("unreachable")


class ScriptedProbe(Probe):
    """Returns statuses (or raises exceptions) from a script, one per call."""

    def __init__(self, *script: HealthStatus | Exception) -> None:
        self.script = list(script)
        self.calls = 0

    async def check(self, target: MonitoredTarget) -> HealthSample:
        self.calls += 1
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, Exception):
            raise item
        return HealthSample(target_id=target.id, status=item, detail=item.value)


def _http(tid: str = "api", **probe: object) -> TargetConfig:
    return TargetConfig(id=tid, kind=TargetKind.HTTP, probe=HttpProbeConfig(url="http://x", **probe))  # type: ignore[arg-type]


# ── Timeouts ────────────────────────────────────────────────────


class TestTimeouts:
    async def test_hanging_probe_returns_within_timeout(self) -> None:
        reg = TargetRegistry([_http(timeout_secs=0.05)])
        engine = ProbeEngine({TargetKind.HTTP: HangingProbe()}, registry=reg)

        start = time.monotonic()
        sample = await engine.probe(reg.get("api"))
        elapsed = time.monotonic() - start

        assert elapsed < 0.05 + 0.5
        assert sample.status == HealthStatus.UNREACHABLE
        assert sample.failure == ProbeFailure.TIMEOUT
        assert reg.get("api").last_sample == sample

    async def test_hanging_runtime_dependency(self, runtime: FakeRuntime) -> None:
        runtime.hang = True
        cfg = TargetConfig(
            id="worker-1",
            kind=TargetKind.CONTAINER,
            probe=ContainerProbeConfig(name="worker-1", timeout_secs=0.05),
        )
        reg = TargetRegistry([cfg])
        engine = ProbeEngine({TargetKind.CONTAINER: ContainerProbe(runtime)}, registry=reg)

        start = time.monotonic()
        sample = await engine.probe(reg.get("worker-1"))
        assert time.monotonic() - start < 0.05 + 0.5
        assert sample.failure == ProbeFailure.TIMEOUT

    async def test_cycle_deadline_cancels_pending(self) -> None:
        class SlowOnly(Probe):
            async def check(self, target: MonitoredTarget) -> HealthSample:
                if target.id == "slow":
                    await asyncio.Event().wait()
                return HealthSample(target_id=target.id, status=HealthStatus.HEALTHY)

        reg = TargetRegistry([_http("slow", timeout_secs=30), _http("fast")])
        engine = ProbeEngine({TargetKind.HTTP: SlowOnly()}, registry=reg)

        samples = await engine.probe_all(reg.list(), deadline=0.05)

        assert [s.target_id for s in samples] == ["slow", "fast"]
        assert samples[0].failure == ProbeFailure.TIMEOUT
        assert "cycle deadline" in samples[0].detail
        assert samples[1].status == HealthStatus.HEALTHY
        assert reg.get("slow").last_sample == samples[0]

    def test_default_deadline_is_twice_slowest_budget(self) -> None:
        reg = TargetRegistry([_http("a", timeout_secs=5), _http("b", timeout_secs=10, retries=1, retry_delay_secs=5)])
        engine = ProbeEngine({})
        assert engine.cycle_deadline(reg.list()) == 2 * (10 * 2 + 5)


# ── Failure mapping ─────────────────────────────────────────────


class TestFailureMapping:
    async def test_unreachable(self) -> None:
        reg = TargetRegistry([_http()])
        engine = ProbeEngine({TargetKind.HTTP: ScriptedProbe(ProbeUnreachable("refused"))})
        sample = await engine.probe(reg.get("api"))
        assert sample.status == HealthStatus.UNREACHABLE
        assert sample.failure == ProbeFailure.UNREACHABLE
        assert sample.detail == "refused"

    async def test_unexpected_exception_is_unknown(self) -> None:
        reg = TargetRegistry([_http()])
        engine = ProbeEngine({TargetKind.HTTP: ScriptedProbe(KeyError("status"))})
        sample = await engine.probe(reg.get("api"))
        assert sample.status == HealthStatus.UNKNOWN
        assert sample.failure == ProbeFailure.ERROR
        assert "KeyError" in sample.detail

    async def test_missing_probe_kind(self) -> None:
        reg = TargetRegistry([_http()])
        sample = await ProbeEngine({}).probe(reg.get("api"))
        assert sample.status == HealthStatus.UNKNOWN

    async def test_timestamp_from_clock(self, clock: FakeClock) -> None:
        reg = TargetRegistry([_http()])
        engine = ProbeEngine({TargetKind.HTTP: ScriptedProbe(HealthStatus.HEALTHY)}, clock=clock)
        sample = await engine.probe(reg.get("api"))
        assert sample.timestamp == clock.now


# ── Retries ─────────────────────────────────────────────────────


class TestRetries:
    async def test_retries_unreachable_until_healthy(self, clock: FakeClock) -> None:
        reg = TargetRegistry([_http(retries=2, retry_delay_secs=5)])
        probe = ScriptedProbe(ProbeUnreachable("down"), ProbeUnreachable("down"), HealthStatus.HEALTHY)
        engine = ProbeEngine({TargetKind.HTTP: probe}, sleep=clock.sleep)

        sample = await engine.probe(reg.get("api"))

        assert sample.status == HealthStatus.HEALTHY
        assert probe.calls == 3
        assert clock.sleeps == [5, 5]

    async def test_gives_up_after_retries(self, clock: FakeClock) -> None:
        reg = TargetRegistry([_http(retries=2, retry_delay_secs=5)])
        probe = ScriptedProbe(ProbeUnreachable("down"))
        engine = ProbeEngine({TargetKind.HTTP: probe}, sleep=clock.sleep)
        sample = await engine.probe(reg.get("api"))
        assert sample.status == HealthStatus.UNREACHABLE
        assert probe.calls == 3

    async def test_definite_unhealthy_not_retried(self, clock: FakeClock) -> None:
        reg = TargetRegistry([_http(retries=2)])
        probe = ScriptedProbe(HealthStatus.UNHEALTHY)
        engine = ProbeEngine({TargetKind.HTTP: probe}, sleep=clock.sleep)
        sample = await engine.probe(reg.get("api"))
        assert sample.status == HealthStatus.UNHEALTHY
        assert probe.calls == 1
        assert clock.sleeps == []
