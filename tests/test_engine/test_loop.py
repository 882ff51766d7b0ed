"""End-to-end tests for ReconciliationLoop with fake runtime, clock and channels."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from fleetwatch.core.config import LoopConfig, PolicyConfig, TargetConfig
from fleetwatch.core.types import (
    CycleState,
    HealthStatus,
    RawHealthStatus,
    RemediationPreview,
    RemediationStrategy,
    TargetKind,
)
from fleetwatch.engine.loop import ReconciliationLoop
from fleetwatch.monitor.channels import NotificationChannel
from fleetwatch.monitor.cooldown import CooldownStore
from fleetwatch.monitor.dispatcher import AlertDispatcher
from fleetwatch.monitor.types import AlertMessage
from fleetwatch.probes.base import Probe
from fleetwatch.probes.container import ContainerProbe
from fleetwatch.probes.engine import ProbeEngine
from fleetwatch.probes.http import ClusterProbe
from fleetwatch.probes.metric import MetricProbe
from fleetwatch.remediation.exceptions import RemediationError
from fleetwatch.remediation.orchestrator import RemediationOrchestrator
from fleetwatch.runtime.base import ServiceController
from fleetwatch.runtime.host import CpuCounters
from fleetwatch.targets.exceptions import TargetNotFoundError
from fleetwatch.targets.registry import TargetRegistry
from fleetwatch.tracker.conditions import SustainedConditionTracker

if TYPE_CHECKING:
    from conftest import FakeClock, FakeRuntime


# ── Helpers ─────────────────────────────────────────────────────


class RecordingChannel(NotificationChannel):
    def __init__(self) -> None:
        self.sent: list[AlertMessage] = []

    async def send(self, msg: AlertMessage) -> bool:
        self.sent.append(msg)
        return True

    async def close(self) -> None:
        pass

    @property
    def titles(self) -> list[str]:
        return [m.title for m in self.sent]


class SteadyCpu:
    """Host source whose CPU sits at a fixed utilisation."""

    def __init__(self, busy_pct: int = 60) -> None:
        self.busy_pct = busy_pct
        self.total = 0
        self.active = 0

    def read_cpu_counters(self) -> CpuCounters:
        self.total += 100
        self.active += self.busy_pct
        return CpuCounters(total=self.total, active=self.active)

    def zombie_count(self) -> int:
        return 0

    def load_average(self) -> str:
        return "0.50"


class FakeController(ServiceController):
    def __init__(self, on_restart: Any = None) -> None:
        self.restarts: list[str] = []
        self._on_restart = on_restart

    async def restart_service(self, name: str) -> None:
        self.restarts.append(name)
        if self._on_restart is not None:
            self._on_restart()


class Harness:
    """Wires a loop from target dicts with every collaborator faked."""

    def __init__(
        self,
        targets: list[dict[str, Any]],
        clock: FakeClock,
        runtime: FakeRuntime,
        probes: dict[TargetKind, Probe] | None = None,
        controller: ServiceController | None = None,
        policy: PolicyConfig | None = None,
        state_file: Path | None = None,
        persist_timers: bool = False,
    ) -> None:
        self.registry = TargetRegistry([TargetConfig(**t) for t in targets])
        self.channel = RecordingChannel()
        self.probe_engine = ProbeEngine(
            probes or {TargetKind.CONTAINER: ContainerProbe(runtime)},
            registry=self.registry,
            clock=clock,
            sleep=clock.sleep,
        )
        self.tracker = SustainedConditionTracker(clock=clock)
        self.orchestrator = RemediationOrchestrator(
            self.registry,
            runtime,
            self.probe_engine,
            service_controller=controller,
            clock=clock,
            sleep=clock.sleep,
            policy=policy,
        )
        self.dispatcher = AlertDispatcher(
            channels=[self.channel],
            cooldown_store=CooldownStore(state_file),
            cooldown_secs=1800,
            clock=clock,
        )
        self.loop = ReconciliationLoop(
            self.registry,
            self.probe_engine,
            self.tracker,
            self.orchestrator,
            self.dispatcher,
            policy=policy,
            loop_config=LoopConfig(interval_secs=60),
            clock=clock,
            persist_timers=persist_timers,
        )


def _container(name: str, strategy: str | None = None, **kw: Any) -> dict[str, Any]:
    data: dict[str, Any] = {"id": name, "kind": "container", "probe": {"type": "container", "name": name}}
    if strategy is not None:
        data["remediation"] = {"strategy": strategy, "poll_interval_secs": 2, "max_wait_secs": 10}
    data.update(kw)
    return data


def _cpu(sustained: float = 300) -> dict[str, Any]:
    return {
        "id": "cpu",
        "kind": "metric",
        "probe": {"type": "metric", "metric": "cpu", "threshold": 50},
        "sustained_secs": sustained,
    }


def _es(remediation: bool = True) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": "es",
        "kind": "cluster",
        "probe": {"type": "cluster", "url": "http://es.local:9200"},
    }
    if remediation:
        data["remediation"] = {
            "strategy": "external_service_restart",
            "service": "elasticsearch",
            "settle_secs": 30,
        }
    return data


def _cluster_probe(state: dict[str, Any]) -> ClusterProbe:
    """Cluster answering per ``state``: up/down and its status colour."""

    def handler(request: httpx.Request) -> httpx.Response:
        if not state["up"]:
            raise httpx.ConnectError("connection refused", request=request)
        if request.url.path == "/":
            return httpx.Response(200, json={"cluster_name": "prod"})
        return httpx.Response(200, json={"status": state["status"], "number_of_nodes": 3})

    return ClusterProbe(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


# ── Sustained conditions and cooldowns ──────────────────────────


class TestSustainedCpu:
    async def test_alert_once_at_sixth_tick_then_suppressed(
        self, clock: FakeClock, runtime: FakeRuntime
    ) -> None:
        h = Harness(
            [_cpu()],
            clock,
            runtime,
            probes={TargetKind.METRIC: MetricProbe(SteadyCpu(60), sleep=clock.sleep)},
        )

        sent_at: list[int] = []
        suppressed_at: list[int] = []
        for tick in range(1, 9):
            report = await h.loop.run_cycle()
            if report.alerts_sent:
                sent_at.append(tick)
            if report.alerts_suppressed:
                suppressed_at.append(tick)
            clock.advance(60)

        assert sent_at == [6]
        assert suppressed_at == [7, 8]
        assert h.channel.titles == ["[ALERT] Server CPU High: 60% for 5 minutes"]

    async def test_dip_resets_the_streak(self, clock: FakeClock, runtime: FakeRuntime) -> None:
        source = SteadyCpu(60)
        h = Harness([_cpu()], clock, runtime, probes={TargetKind.METRIC: MetricProbe(source, sleep=clock.sleep)})

        for tick in range(1, 9):
            source.busy_pct = 10 if tick == 4 else 60
            report = await h.loop.run_cycle()
            assert report.alerts_sent == []
            clock.advance(60)

    async def test_timers_survive_a_restart(self, clock: FakeClock, runtime: FakeRuntime, tmp_path: Path) -> None:
        state_file = tmp_path / "state.json"

        def harness() -> Harness:
            return Harness(
                [_cpu()],
                clock,
                runtime,
                probes={TargetKind.METRIC: MetricProbe(SteadyCpu(60), sleep=clock.sleep)},
                state_file=state_file,
                persist_timers=True,
            )

        first = await harness().loop.run_cycle()
        assert first.sustained == []

        clock.advance(300)
        second_harness = harness()
        second = await second_harness.loop.run_cycle()

        assert second.alerts_sent == ["cpu:high"]
        assert second.sustained[0].first


# ── Cluster policy ──────────────────────────────────────────────


class TestCluster:
    async def test_red_alerts_without_remediation(self, clock: FakeClock, runtime: FakeRuntime) -> None:
        h = Harness(
            [_es()],
            clock,
            runtime,
            probes={TargetKind.CLUSTER: _cluster_probe({"up": True, "status": "red"})},
        )

        with patch.object(h.orchestrator, "execute", new=AsyncMock()) as execute:
            report = await h.loop.run_cycle()

        execute.assert_not_called()
        assert report.alerts_sent == ["es:red"]
        assert report.remediations == []
        assert report.exit_code == 1
        assert h.channel.titles == ["[ALERT] Cluster es status RED"]

    async def test_cycle_reports_fleet_status(self, clock: FakeClock, runtime: FakeRuntime) -> None:
        runtime.add("w1")
        h = Harness(
            [_es(remediation=False), _container("w1")],
            clock,
            runtime,
            probes={
                TargetKind.CLUSTER: _cluster_probe({"up": True, "status": "red"}),
                TargetKind.CONTAINER: ContainerProbe(runtime),
            },
        )

        with patch("fleetwatch.engine.loop.logger") as log:
            report = await h.loop.run_cycle()

        assert [(r["target_id"], r["status"], r["health"]) for r in report.status] == [
            ("es", "red", "critical"),
            ("w1", "healthy", "healthy"),
        ]
        status_logs = [c for c in log.info.call_args_list if c.args == ("fleet_status",)]
        assert len(status_logs) == 1
        assert status_logs[0].kwargs["rows"] == report.status
        assert "Total targets: 2" in status_logs[0].kwargs["summary"]

    async def test_unreachable_restarts_dependent_service(self, clock: FakeClock, runtime: FakeRuntime) -> None:
        state = {"up": False, "status": "green"}
        controller = FakeController(on_restart=lambda: state.update(up=True))
        h = Harness(
            [_es()],
            clock,
            runtime,
            probes={TargetKind.CLUSTER: _cluster_probe(state)},
            controller=controller,
        )

        report = await h.loop.run_cycle()

        assert controller.restarts == ["elasticsearch"]
        assert report.remediations[0].succeeded
        assert report.exit_code == 0
        assert h.tracker.timers == {}
        assert h.channel.titles == [
            "[ALERT] es unreachable",
            "[REMEDIATION] external_service_restart succeeded: es",
        ]

    async def test_failed_service_restart_exits_nonzero(self, clock: FakeClock, runtime: FakeRuntime) -> None:
        controller = FakeController()
        h = Harness(
            [_es()],
            clock,
            runtime,
            probes={TargetKind.CLUSTER: _cluster_probe({"up": False, "status": "green"})},
            controller=controller,
        )

        report = await h.loop.run_cycle()

        assert not report.remediations[0].succeeded
        assert report.exit_code == 1
        assert "FAILED" in h.channel.titles[-1]


# ── Containers, exit codes, in-flight guard ─────────────────────


class TestContainers:
    async def test_healthy_fleet_exits_zero(self, clock: FakeClock, runtime: FakeRuntime) -> None:
        runtime.add("w1")
        h = Harness([_container("w1", "sequential_with_health_wait")], clock, runtime)

        report = await h.loop.run_cycle()

        assert report.exit_code == 0
        assert report.remediations == []
        assert h.channel.sent == []
        assert h.loop.state == CycleState.IDLE
        assert h.loop.cycles == 1

    async def test_unhealthy_container_restarted_and_verified(
        self, clock: FakeClock, runtime: FakeRuntime
    ) -> None:
        runtime.add("w1", RawHealthStatus.UNHEALTHY, RawHealthStatus.HEALTHY)
        h = Harness([_container("w1", "sequential_with_health_wait")], clock, runtime)

        report = await h.loop.run_cycle()

        assert runtime.restarted == ["w1"]
        assert report.remediations[0].succeeded
        assert report.exit_code == 0
        assert h.registry.get("w1").last_sample.status == HealthStatus.HEALTHY  # type: ignore[union-attr]

    async def test_restart_that_never_recovers(self, clock: FakeClock, runtime: FakeRuntime) -> None:
        runtime.add("w1", RawHealthStatus.UNHEALTHY)
        h = Harness([_container("w1", "sequential_with_health_wait")], clock, runtime)

        report = await h.loop.run_cycle()

        assert report.exit_code == 1
        assert "FAILED" in h.channel.titles[-1]

    async def test_policy_can_disable_container_remediation(self, clock: FakeClock, runtime: FakeRuntime) -> None:
        runtime.add("w1", RawHealthStatus.UNHEALTHY)
        h = Harness(
            [_container("w1", "kill_unhealthy_only")],
            clock,
            runtime,
            policy=PolicyConfig(remediate_unhealthy_containers=False),
        )

        report = await h.loop.run_cycle()

        assert runtime.killed == []
        assert report.alerts_sent == ["w1:unhealthy"]
        assert report.exit_code == 1

    async def test_in_flight_target_is_skipped(self, clock: FakeClock, runtime: FakeRuntime) -> None:
        runtime.add("w1", RawHealthStatus.UNHEALTHY)
        h = Harness([_container("w1", "kill_unhealthy_only")], clock, runtime)
        h.loop._in_flight.add("w1")

        report = await h.loop.run_cycle()

        assert report.skipped_in_flight == ["w1"]
        assert runtime.killed == []

    async def test_crashing_cycle_returns_to_idle(self, clock: FakeClock, runtime: FakeRuntime) -> None:
        h = Harness([_container("w1")], clock, runtime)

        with patch.object(h.probe_engine, "probe_all", new=AsyncMock(side_effect=RuntimeError("boom"))):
            with pytest.raises(RuntimeError):
                await h.loop.run_cycle()

        assert h.loop.state == CycleState.IDLE
        assert h.loop.cycles == 1


# ── Operator remediation ────────────────────────────────────────


class TestOperatorRemediation:
    async def test_remediate_kills_unhealthy(self, clock: FakeClock, runtime: FakeRuntime) -> None:
        runtime.add("w1", RawHealthStatus.UNHEALTHY)
        h = Harness([_container("w1", "kill_unhealthy_only")], clock, runtime)

        result = await h.loop.remediate(["w1"])

        assert result.succeeded
        assert runtime.killed == ["w1"]
        assert h.channel.titles == ["[REMEDIATION] kill_unhealthy_only succeeded: w1"]
        assert h.loop.in_flight == set()

    async def test_declined_confirmation(self, clock: FakeClock, runtime: FakeRuntime) -> None:
        runtime.add("w1", RawHealthStatus.UNHEALTHY)
        h = Harness([_container("w1", "kill_unhealthy_only")], clock, runtime)
        previews: list[RemediationPreview] = []

        def decline(preview: RemediationPreview) -> bool:
            previews.append(preview)
            return False

        result = await h.loop.remediate(["w1"], confirm=decline)

        assert result.cancelled
        assert runtime.killed == []
        assert h.channel.sent == []
        assert previews[0].description.endswith(": w1")

    async def test_strategy_override(self, clock: FakeClock, runtime: FakeRuntime) -> None:
        runtime.add("w1")
        runtime.add("w2")
        h = Harness([_container("w1"), _container("w2")], clock, runtime)

        result = await h.loop.remediate(["w1", "w2"], strategy=RemediationStrategy.PARALLEL_FORCE)

        assert result.succeeded
        assert runtime.batches == [["w1", "w2"]]

    async def test_no_strategy_available(self, clock: FakeClock, runtime: FakeRuntime) -> None:
        h = Harness([_container("w1")], clock, runtime)
        with pytest.raises(RemediationError, match="pass a strategy"):
            await h.loop.remediate(["w1"])

    async def test_unknown_target(self, clock: FakeClock, runtime: FakeRuntime) -> None:
        h = Harness([_container("w1")], clock, runtime)
        with pytest.raises(TargetNotFoundError):
            await h.loop.remediate(["ghost"])

    async def test_rejects_target_in_flight(self, clock: FakeClock, runtime: FakeRuntime) -> None:
        h = Harness([_container("w1", "kill_unhealthy_only")], clock, runtime)
        h.loop._in_flight.add("w1")
        with pytest.raises(RemediationError, match="in flight"):
            await h.loop.remediate(["w1"])


# ── Periodic driver ─────────────────────────────────────────────


class TestRunForever:
    async def test_survives_a_crashing_cycle(self, clock: FakeClock, runtime: FakeRuntime) -> None:
        h = Harness([_container("w1")], clock, runtime)
        h.loop._config = LoopConfig(interval_secs=0.01)
        stop = asyncio.Event()
        calls = 0

        async def cycle() -> None:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("boom")
            stop.set()

        with patch.object(h.loop, "run_cycle", new=cycle):
            await asyncio.wait_for(h.loop.run_forever(stop), timeout=5)

        assert calls == 2
