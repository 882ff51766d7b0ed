"""ReconciliationLoop — probe → evaluate → (remediate) → report, once per tick."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable

import structlog

from fleetwatch.core.config import LoopConfig, PolicyConfig
from fleetwatch.core.types import (
    CycleReport,
    CycleState,
    HealthSample,
    RemediationAction,
    RemediationOutcome,
    RemediationResult,
    RemediationStrategy,
    SendResult,
)
from fleetwatch.engine.policy import evaluate_sample, is_problem
from fleetwatch.monitor.dispatcher import AlertDispatcher
from fleetwatch.monitor.exceptions import StateFileError
from fleetwatch.monitor.formatters import format_condition_alert, format_remediation_result
from fleetwatch.monitor.report import StatusReport
from fleetwatch.monitor.types import AlertMessage
from fleetwatch.probes.engine import ProbeEngine
from fleetwatch.remediation.exceptions import RemediationError
from fleetwatch.remediation.orchestrator import Confirmer, RemediationOrchestrator
from fleetwatch.targets.registry import MonitoredTarget, TargetRegistry
from fleetwatch.tracker.conditions import SustainedConditionTracker, condition_key

logger = structlog.stdlib.get_logger()

Clock = Callable[[], float]


class ReconciliationLoop:
    """Top-level tick driver.

    States: ``idle → probing → evaluating → (remediating)? → reporting → idle``.
    Reporting always runs and the loop always returns to idle, whatever the
    remediation outcome.  A target with a remediation already in flight is
    never remediated again until that attempt finishes.

    Usage::

        loop = ReconciliationLoop(registry, probe_engine, tracker, orchestrator, dispatcher)
        report = await loop.run_cycle()          # cron / one-shot
        await loop.run_forever(stop_event)       # daemon
    """

    def __init__(
        self,
        registry: TargetRegistry,
        probe_engine: ProbeEngine,
        tracker: SustainedConditionTracker,
        orchestrator: RemediationOrchestrator,
        dispatcher: AlertDispatcher,
        policy: PolicyConfig | None = None,
        loop_config: LoopConfig | None = None,
        clock: Clock = time.time,
        persist_timers: bool = False,
    ) -> None:
        self._registry = registry
        self._probe_engine = probe_engine
        self._tracker = tracker
        self._orchestrator = orchestrator
        self._dispatcher = dispatcher
        self._policy = policy or PolicyConfig()
        self._config = loop_config or LoopConfig()
        self._clock = clock
        self._persist_timers = persist_timers
        self._state = CycleState.IDLE
        self._in_flight: set[str] = set()
        self._cycles = 0

        if persist_timers:
            self._tracker.restore(self._dispatcher.cooldown_store.timers)

    @property
    def state(self) -> CycleState:
        return self._state

    @property
    def in_flight(self) -> set[str]:
        return set(self._in_flight)

    @property
    def cycles(self) -> int:
        return self._cycles

    def _transition(self, state: CycleState) -> None:
        logger.debug("cycle_state", previous=self._state.value, state=state.value)
        self._state = state

    # ── One cycle ───────────────────────────────────────────────

    async def run_cycle(self) -> CycleReport:
        """Run one full reconciliation cycle and return what it saw and did."""
        report = CycleReport(started_at=self._clock())
        alerts: list[AlertMessage] = []
        try:
            self._transition(CycleState.PROBING)
            targets = self._registry.list()
            samples = await self._probe_engine.probe_all(targets, deadline=self._config.cycle_deadline_secs)
            report.samples = samples

            self._transition(CycleState.EVALUATING)
            actions = self._evaluate(targets, samples, report, alerts)

            if actions:
                self._transition(CycleState.REMEDIATING)
                for action in actions:
                    report.remediations.append(await self._run_action(action))

            self._transition(CycleState.REPORTING)
            await self._report(targets, report, alerts)
        finally:
            self._cycles += 1
            self._transition(CycleState.IDLE)

        report.finished_at = self._clock()
        report.exit_code = self._exit_code(report)
        logger.info(
            "cycle_finished",
            cycle=self._cycles,
            targets=len(report.samples),
            sustained=len(report.sustained),
            remediations=len(report.remediations),
            alerts_sent=len(report.alerts_sent),
            alerts_suppressed=len(report.alerts_suppressed),
            exit_code=report.exit_code,
        )
        return report

    def _evaluate(
        self,
        targets: list[MonitoredTarget],
        samples: list[HealthSample],
        report: CycleReport,
        alerts: list[AlertMessage],
    ) -> list[RemediationAction]:
        now = self._clock()
        actions: list[RemediationAction] = []
        for target, sample in zip(targets, samples):
            remediate = False
            for check in evaluate_sample(target, sample, self._policy):
                key = condition_key(target.id, check.name)
                fact = self._tracker.observe(
                    key,
                    check.active,
                    target.sustained_secs,
                    now=now,
                    target_id=target.id,
                    condition_name=check.name,
                )
                if fact is None:
                    continue
                report.sustained.append(fact)
                alerts.append(format_condition_alert(fact, target, sample))
                if check.remediable:
                    remediate = True

            if not remediate:
                continue
            rem = target.remediation
            if rem is None or not rem.auto:
                logger.info("remediation_not_configured", target=target.id)
                continue
            if target.id in self._in_flight:
                logger.warning("remediation_in_flight", target=target.id)
                report.skipped_in_flight.append(target.id)
                continue
            action = self._orchestrator.action_for(target, reason=sample.detail)
            if action is not None:
                actions.append(action)
        return actions

    async def _run_action(self, action: RemediationAction, confirm: Confirmer | None = None) -> RemediationResult:
        ids = set(action.target_ids)
        self._in_flight |= ids
        try:
            result = await self._orchestrator.execute(action, interactive=confirm is not None, confirm=confirm)
        finally:
            self._in_flight -= ids
        if result.succeeded and not result.noop:
            for o in result.outcomes:
                self._clear_conditions(o.target_id)
        return result

    def _clear_conditions(self, target_id: str) -> None:
        prefix = condition_key(target_id, "")
        for key in self._tracker.timers:
            if key.startswith(prefix):
                self._tracker.clear(key)

    async def _report(
        self,
        targets: list[MonitoredTarget],
        report: CycleReport,
        alerts: list[AlertMessage],
    ) -> None:
        status = StatusReport.build(targets, report.samples)
        report.status = status.to_dicts()
        logger.info("fleet_status", summary=status.summary(), rows=report.status)
        for msg in alerts:
            result = await self._dispatcher.try_send_message(msg)
            if result == SendResult.SENT:
                report.alerts_sent.append(msg.alert_key)
            else:
                report.alerts_suppressed.append(msg.alert_key)
        for rem in report.remediations:
            await self._dispatcher.send(format_remediation_result(rem))
        self._save_timers()

    def _save_timers(self) -> None:
        if not self._persist_timers:
            return
        try:
            self._dispatcher.cooldown_store.set_timers(self._tracker.snapshot())
        except StateFileError as exc:
            logger.error("timer_persist_failed", error=str(exc))

    @staticmethod
    def _exit_code(report: CycleReport) -> int:
        """0 when every problem target was remediated successfully this cycle."""
        fixed = {
            o.target_id
            for rem in report.remediations
            if not (rem.noop or rem.cancelled)
            for o in rem.outcomes
            if o.outcome == RemediationOutcome.SUCCESS
        }
        if any(is_problem(s) and s.target_id not in fixed for s in report.samples):
            return 1
        return 0 if all(rem.succeeded for rem in report.remediations) else 1

    # ── Periodic driver ─────────────────────────────────────────

    async def run_forever(self, stop_event: asyncio.Event) -> None:
        """Run cycles every ``interval_secs`` until *stop_event* is set.

        A crashing cycle is logged and the next one starts from idle.
        """
        interval = self._config.interval_secs
        logger.info("loop_started", interval_secs=interval, targets=len(self._registry))
        while not stop_event.is_set():
            started = time.monotonic()
            try:
                await self.run_cycle()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("cycle_crashed")
            wait = max(0.0, interval - (time.monotonic() - started))
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=wait)
            except TimeoutError:
                pass
        logger.info("loop_stopped", cycles=self._cycles)

    # ── On-demand operator cycle ────────────────────────────────

    async def remediate(
        self,
        target_ids: list[str],
        strategy: RemediationStrategy | None = None,
        confirm: Confirmer | None = None,
    ) -> RemediationResult:
        """Probe *target_ids*, then run one remediation across them.

        With *confirm* the action is previewed and must be acknowledged.
        Parameters come from the first target's remediation config.

        Raises:
            TargetNotFoundError: an unknown target id.
            RemediationError: no strategy could be determined, or a target
                already has a remediation in flight.
        """
        targets = [self._registry.get(tid) for tid in target_ids]
        busy = [t.id for t in targets if t.id in self._in_flight]
        if busy:
            raise RemediationError(f"remediation already in flight for {', '.join(busy)}")

        await self._probe_engine.probe_all(targets)
        action = self._operator_action(targets, strategy)
        result = await self._run_action(action, confirm=confirm)
        if not result.cancelled:
            await self._dispatcher.send(format_remediation_result(result))
        return result

    def _operator_action(
        self,
        targets: list[MonitoredTarget],
        strategy: RemediationStrategy | None,
    ) -> RemediationAction:
        ids = [t.id for t in targets]
        config = next((t.remediation for t in targets if t.remediation is not None), None)
        if config is not None:
            return self._orchestrator.action_from_config(config, ids, reason="operator request", strategy=strategy)
        if strategy is None:
            raise RemediationError(f"no remediation configured for {', '.join(ids)}; pass a strategy")
        return RemediationAction(strategy=strategy, target_ids=ids, reason="operator request")
