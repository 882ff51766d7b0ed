"""Wires every component of the engine from validated Settings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TextIO

import structlog

from fleetwatch.core.config import Settings
from fleetwatch.core.types import TargetKind
from fleetwatch.engine.loop import ReconciliationLoop
from fleetwatch.monitor.dispatcher import AlertDispatcher
from fleetwatch.monitor.factory import create_monitor_stack
from fleetwatch.probes.container import ContainerProbe
from fleetwatch.probes.engine import ProbeEngine
from fleetwatch.probes.http import ClusterProbe, HttpProbe
from fleetwatch.probes.metric import MetricProbe
from fleetwatch.remediation.orchestrator import RemediationOrchestrator
from fleetwatch.runtime.base import ContainerRuntime, ServiceController
from fleetwatch.runtime.compose import ComposeServiceController
from fleetwatch.runtime.docker import DockerRuntime
from fleetwatch.runtime.host import HostMetricsSource
from fleetwatch.targets.registry import TargetRegistry
from fleetwatch.tracker.conditions import SustainedConditionTracker

logger = structlog.stdlib.get_logger()


@dataclass
class Engine:
    """Every long-lived component of one process, for the entry points."""

    settings: Settings
    registry: TargetRegistry
    runtime: ContainerRuntime
    service_controller: ServiceController
    probe_engine: ProbeEngine
    tracker: SustainedConditionTracker
    orchestrator: RemediationOrchestrator
    dispatcher: AlertDispatcher
    loop: ReconciliationLoop

    async def close(self) -> None:
        await self.probe_engine.close()
        await self.dispatcher.close()
        await self.runtime.close()


def build_engine(
    settings: Settings,
    persist_timers: bool = False,
    stream: TextIO | None = None,
) -> Engine:
    """Build the registry, probes, tracker, orchestrator, dispatcher and loop.

    Raises:
        ConfigurationError: from the registry, before anything runs.
    """
    registry = TargetRegistry.from_settings(settings)
    runtime = DockerRuntime(settings.runtime)
    service_controller = ComposeServiceController(settings.runtime)

    probe_engine = ProbeEngine(
        probes={
            TargetKind.HTTP: HttpProbe(),
            TargetKind.CLUSTER: ClusterProbe(),
            TargetKind.CONTAINER: ContainerProbe(runtime),
            TargetKind.METRIC: MetricProbe(HostMetricsSource(settings.runtime.proc_root)),
        },
        registry=registry,
    )
    tracker = SustainedConditionTracker()
    orchestrator = RemediationOrchestrator(
        registry,
        runtime,
        probe_engine,
        service_controller=service_controller,
        command_timeout_secs=settings.runtime.command_timeout_secs,
        policy=settings.policy,
    )
    dispatcher = create_monitor_stack(settings.alerts, stream=stream)
    loop = ReconciliationLoop(
        registry,
        probe_engine,
        tracker,
        orchestrator,
        dispatcher,
        policy=settings.policy,
        loop_config=settings.loop,
        persist_timers=persist_timers,
    )
    logger.info(
        "engine_built",
        targets=len(registry),
        channels=[type(c).__name__ for c in dispatcher.channels],
        state_file=settings.alerts.state_file,
    )
    return Engine(
        settings=settings,
        registry=registry,
        runtime=runtime,
        service_controller=service_controller,
        probe_engine=probe_engine,
        tracker=tracker,
        orchestrator=orchestrator,
        dispatcher=dispatcher,
        loop=loop,
    )
