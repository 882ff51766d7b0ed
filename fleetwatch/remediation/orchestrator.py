"""RemediationOrchestrator — restart/kill strategies with post-action verification."""

from __future__ import annotations

import asyncio
import inspect
import math
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog

from fleetwatch.core.config import ContainerProbeConfig, PolicyConfig, RemediationConfig
from fleetwatch.core.types import (
    ClusterSeverity,
    HealthSample,
    HealthStatus,
    ProbeFailure,
    ProcessRef,
    RemediationAction,
    RemediationOutcome,
    RemediationPreview,
    RemediationResult,
    RemediationStrategy,
    TargetOutcome,
)
from fleetwatch.probes.engine import ProbeEngine
from fleetwatch.remediation.exceptions import (
    RemediationAborted,
    RemediationError,
    RemediationFailed,
    RemediationTimedOut,
)
from fleetwatch.runtime.base import ContainerRuntime, ServiceController
from fleetwatch.runtime.exceptions import RuntimeCommandError
from fleetwatch.targets.exceptions import TargetNotFoundError
from fleetwatch.targets.registry import MonitoredTarget, TargetRegistry

logger = structlog.stdlib.get_logger()

T = TypeVar("T")

Clock = Callable[[], float]
Sleeper = Callable[[float], Awaitable[None]]
Confirmer = Callable[[RemediationPreview], Awaitable[bool] | bool]

# A dependent service is restarted at most twice per action.
_MAX_SERVICE_ATTEMPTS = 2

_DESCRIPTIONS: dict[RemediationStrategy, str] = {
    RemediationStrategy.SEQUENTIAL_WITH_HEALTH_WAIT: "restart one at a time, waiting for each to become healthy",
    RemediationStrategy.PARALLEL_FORCE: "restart all at once, no health wait",
    RemediationStrategy.KILL_UNHEALTHY_ONLY: "force-kill the targets currently reported unhealthy",
    RemediationStrategy.EXTERNAL_SERVICE_RESTART: "restart the dependent service, settle, then re-probe",
}


class RemediationOrchestrator:
    """Runs one RemediationAction and verifies the outcome.

    - Every runtime and service-controller call is bounded by
      ``command_timeout_secs``.
    - Failures never propagate; they become per-target ``TargetOutcome``s.
    - Interactive execution asks *confirm* to acknowledge a preview first;
      a declined preview returns a ``cancelled`` result with no runtime calls.
    - A dependent service is restarted again only when the re-probe shows a
      failure *policy* lets a restart fix; a reachable red cluster ends the
      action unless ``remediate_cluster_red`` is set.

    Usage::

        orchestrator = RemediationOrchestrator(registry, runtime, probe_engine)
        action = orchestrator.action_for(registry.get("worker-1"))
        result = await orchestrator.execute(action)
    """

    def __init__(
        self,
        registry: TargetRegistry,
        runtime: ContainerRuntime,
        probe_engine: ProbeEngine,
        service_controller: ServiceController | None = None,
        clock: Clock = time.time,
        sleep: Sleeper = asyncio.sleep,
        command_timeout_secs: float = 30.0,
        policy: PolicyConfig | None = None,
    ) -> None:
        self._registry = registry
        self._runtime = runtime
        self._probe_engine = probe_engine
        self._service_controller = service_controller
        self._clock = clock
        self._sleep = sleep
        self._command_timeout = command_timeout_secs
        self._policy = policy or PolicyConfig()

    # ── Action construction ─────────────────────────────────────

    @staticmethod
    def action_from_config(
        config: RemediationConfig,
        target_ids: list[str],
        reason: str = "",
        strategy: RemediationStrategy | None = None,
    ) -> RemediationAction:
        return RemediationAction(
            strategy=strategy or config.strategy,
            target_ids=list(target_ids),
            poll_interval_secs=config.poll_interval_secs,
            max_wait_secs=config.max_wait_secs,
            settle_secs=config.settle_secs,
            max_attempts=config.max_attempts,
            service=config.service,
            reason=reason,
        )

    def action_for(self, target: MonitoredTarget, reason: str = "") -> RemediationAction | None:
        """Build the configured action for *target*; None when it has no remediation."""
        if target.remediation is None:
            return None
        return self.action_from_config(target.remediation, [target.id], reason=reason)

    def preview(self, action: RemediationAction) -> RemediationPreview:
        """Describe what *action* would touch, for operator acknowledgement."""
        desc = _DESCRIPTIONS[action.strategy]
        if action.strategy == RemediationStrategy.EXTERNAL_SERVICE_RESTART:
            desc = f"{desc} (service {action.service!r})"
        elif action.strategy == RemediationStrategy.KILL_UNHEALTHY_ONLY:
            unhealthy = self._unhealthy(action.target_ids)
            desc = f"{desc}: {', '.join(unhealthy) if unhealthy else 'none currently unhealthy'}"
        return RemediationPreview(
            strategy=action.strategy,
            target_ids=list(action.target_ids),
            service=action.service,
            description=desc,
        )

    # ── Execution ───────────────────────────────────────────────

    async def execute(
        self,
        action: RemediationAction,
        interactive: bool = False,
        confirm: Confirmer | None = None,
    ) -> RemediationResult:
        """Run *action* and return its result.  Never raises for runtime failures.

        Raises:
            RemediationError: interactive execution without a *confirm* callback.
        """
        started = self._clock()
        if interactive:
            if confirm is None:
                raise RemediationError("interactive remediation requires a confirmation callback")
            preview = self.preview(action)
            approved = confirm(preview)
            if inspect.isawaitable(approved):
                approved = await approved
            if not approved:
                logger.info("remediation_cancelled", strategy=action.strategy, targets=action.target_ids)
                result = RemediationResult(
                    strategy=action.strategy,
                    target_ids=list(action.target_ids),
                    cancelled=True,
                    detail="declined by operator",
                    started_at=started,
                    finished_at=self._clock(),
                )
                return result

        logger.info(
            "remediation_started",
            strategy=action.strategy,
            targets=action.target_ids,
            reason=action.reason,
        )
        if action.strategy == RemediationStrategy.SEQUENTIAL_WITH_HEALTH_WAIT:
            result = await self._sequential_with_health_wait(action)
        elif action.strategy == RemediationStrategy.PARALLEL_FORCE:
            result = await self._parallel_force(action)
        elif action.strategy == RemediationStrategy.KILL_UNHEALTHY_ONLY:
            result = await self._kill_unhealthy_only(action)
        else:
            result = await self._external_service_restart(action)

        result = result.model_copy(update={"started_at": started, "finished_at": self._clock()})
        log = logger.info if result.succeeded else logger.warning
        log(
            "remediation_finished",
            strategy=action.strategy,
            succeeded=result.succeeded,
            noop=result.noop,
            outcomes={o.target_id: o.outcome.value for o in result.outcomes},
        )
        return result

    # ── Strategies ──────────────────────────────────────────────

    async def _sequential_with_health_wait(self, action: RemediationAction) -> RemediationResult:
        outcomes: list[TargetOutcome] = []
        for target_id in action.target_ids:
            start = self._clock()
            try:
                detail = await self._restart_and_wait(target_id, action)
            except RemediationTimedOut as exc:
                logger.warning("remediation_target_timed_out", target=target_id, detail=str(exc))
                outcomes.append(self._outcome(target_id, RemediationOutcome.TIMED_OUT, start, str(exc)))
                continue
            except RemediationFailed as exc:
                logger.warning("remediation_target_failed", target=target_id, detail=str(exc))
                outcomes.append(self._outcome(target_id, RemediationOutcome.FAILED, start, str(exc)))
                continue
            outcomes.append(self._outcome(target_id, RemediationOutcome.SUCCESS, start, detail))
        return RemediationResult(strategy=action.strategy, target_ids=list(action.target_ids), outcomes=outcomes)

    async def _restart_and_wait(self, target_id: str, action: RemediationAction) -> str:
        target = self._target(target_id)
        ref = await self._resolve(target)
        await self._call(self._runtime.restart(ref), f"restart {ref.name}")
        logger.info("remediation_restart_issued", target=target_id, container=ref.name)

        polls = max(1, math.ceil(action.max_wait_secs / action.poll_interval_secs))
        sample: HealthSample | None = None
        for _ in range(polls):
            await self._sleep(action.poll_interval_secs)
            sample = await self._probe_engine.probe(target)
            if sample.status == HealthStatus.HEALTHY:
                return sample.detail or "healthy"
            if _vanished(sample):
                raise RemediationFailed(f"{ref.name} vanished after restart: {sample.detail}")
        last = sample.status.value if sample is not None else "unknown"
        raise RemediationTimedOut(f"still {last} after {action.max_wait_secs:g}s")

    async def _parallel_force(self, action: RemediationAction) -> RemediationResult:
        start = self._clock()
        try:
            refs = [await self._resolve(self._target(tid)) for tid in action.target_ids]
            await self._call(self._runtime.restart_all(refs), f"restart {len(refs)} containers")
        except RemediationFailed as exc:
            logger.warning("remediation_batch_failed", targets=action.target_ids, detail=str(exc))
            outcomes = [
                self._outcome(tid, RemediationOutcome.FAILED, start, str(exc)) for tid in action.target_ids
            ]
        else:
            outcomes = [
                self._outcome(tid, RemediationOutcome.SUCCESS, start, "restart issued")
                for tid in action.target_ids
            ]
        return RemediationResult(strategy=action.strategy, target_ids=list(action.target_ids), outcomes=outcomes)

    async def _kill_unhealthy_only(self, action: RemediationAction) -> RemediationResult:
        unhealthy = self._unhealthy(action.target_ids)
        if not unhealthy:
            logger.info("remediation_noop", strategy=action.strategy, targets=action.target_ids)
            return RemediationResult(
                strategy=action.strategy,
                target_ids=list(action.target_ids),
                noop=True,
                detail="nothing to do: no target is unhealthy",
            )

        outcomes: list[TargetOutcome] = []
        for target_id in unhealthy:
            start = self._clock()
            try:
                ref = await self._resolve(self._target(target_id))
                await self._call(self._runtime.kill(ref), f"kill {ref.name}")
            except RemediationFailed as exc:
                logger.warning("remediation_kill_failed", target=target_id, detail=str(exc))
                outcomes.append(self._outcome(target_id, RemediationOutcome.FAILED, start, str(exc)))
                continue
            logger.info("remediation_killed", target=target_id, container=ref.name)
            outcomes.append(self._outcome(target_id, RemediationOutcome.SUCCESS, start, "killed"))
        return RemediationResult(strategy=action.strategy, target_ids=unhealthy, outcomes=outcomes)

    async def _external_service_restart(self, action: RemediationAction) -> RemediationResult:
        start = self._clock()
        attempts = min(action.max_attempts, _MAX_SERVICE_ATTEMPTS)
        service = action.service or ""
        detail = ""
        made = 0
        for attempt in range(1, attempts + 1):
            made = attempt
            try:
                detail = await self._restart_service_and_verify(service, action)
            except RemediationAborted as exc:
                detail = str(exc)
                logger.warning("remediation_service_retry_refused", service=service, attempt=attempt, detail=detail)
                break
            except RemediationFailed as exc:
                detail = str(exc)
                logger.warning(
                    "remediation_service_attempt_failed",
                    service=service,
                    attempt=attempt,
                    attempts=attempts,
                    detail=detail,
                )
                continue
            outcomes = [
                self._outcome(tid, RemediationOutcome.SUCCESS, start, detail) for tid in action.target_ids
            ]
            return RemediationResult(
                strategy=action.strategy,
                target_ids=list(action.target_ids),
                outcomes=outcomes,
                detail=f"service {service!r} restarted (attempt {attempt}/{attempts})",
            )

        outcomes = [self._outcome(tid, RemediationOutcome.FAILED, start, detail) for tid in action.target_ids]
        return RemediationResult(
            strategy=action.strategy,
            target_ids=list(action.target_ids),
            outcomes=outcomes,
            detail=f"service {service!r} still unhealthy after {made} attempt(s)",
        )

    async def _restart_service_and_verify(self, service: str, action: RemediationAction) -> str:
        if self._service_controller is None:
            raise RemediationFailed("no service controller configured")
        await self._call(self._service_controller.restart_service(service), f"restart service {service}")
        logger.info("remediation_service_restarted", service=service, settle_secs=action.settle_secs)
        await self._sleep(action.settle_secs)

        details: list[str] = []
        for target_id in action.target_ids:
            sample = await self._probe_engine.probe(self._target(target_id))
            if sample.status == HealthStatus.HEALTHY:
                details.append(sample.detail)
                continue
            msg = f"{target_id} {sample.status.value} after restart: {sample.detail}"
            if not self._restart_may_help(sample):
                raise RemediationAborted(msg)
            raise RemediationFailed(msg)
        return "; ".join(d for d in details if d) or "healthy"

    def _restart_may_help(self, sample: HealthSample) -> bool:
        """Whether a non-healthy re-probe warrants restarting the service again.

        No answer always does.  A reachable red cluster only does with
        ``remediate_cluster_red``; a reachable unhealthy one only with
        ``remediate_unhealthy_containers``.  Anything still starting is left alone.
        """
        if sample.status in (HealthStatus.UNREACHABLE, HealthStatus.UNKNOWN):
            return True
        if sample.severity == ClusterSeverity.RED:
            return self._policy.remediate_cluster_red
        if sample.status == HealthStatus.UNHEALTHY:
            return self._policy.remediate_unhealthy_containers
        return False

    # ── Helpers ─────────────────────────────────────────────────

    def _target(self, target_id: str) -> MonitoredTarget:
        try:
            return self._registry.get(target_id)
        except TargetNotFoundError as exc:
            raise RemediationFailed(f"unknown target {target_id!r}") from exc

    def _unhealthy(self, target_ids: list[str]) -> list[str]:
        ids: list[str] = []
        for tid in target_ids:
            if tid not in self._registry:
                continue
            sample = self._registry.get(tid).last_sample
            if sample is not None and sample.status == HealthStatus.UNHEALTHY:
                ids.append(tid)
        return ids

    async def _resolve(self, target: MonitoredTarget) -> ProcessRef:
        name = target.config.container_name
        if not name:
            raise RemediationFailed(f"target {target.id!r} has no container to act on")
        exact = target.probe.exact if isinstance(target.probe, ContainerProbeConfig) else True
        refs = await self._call(self._runtime.list_processes(name, exact=exact), f"list {name}")
        if not refs:
            raise RemediationFailed(f"no container matching {name!r}")
        return refs[0]

    async def _call(self, aw: Awaitable[T], what: str) -> T:
        """Await a runtime call under the command timeout, mapping errors to RemediationFailed."""
        try:
            return await asyncio.wait_for(aw, timeout=self._command_timeout)
        except TimeoutError as exc:
            raise RemediationFailed(f"{what} timed out after {self._command_timeout:g}s") from exc
        except RuntimeCommandError as exc:
            raise RemediationFailed(f"{what} failed: {exc}") from exc

    def _outcome(self, target_id: str, outcome: RemediationOutcome, start: float, detail: str) -> TargetOutcome:
        return TargetOutcome(
            target_id=target_id,
            outcome=outcome,
            elapsed_secs=max(0.0, self._clock() - start),
            detail=detail,
        )


def _vanished(sample: HealthSample) -> bool:
    return sample.status == HealthStatus.UNREACHABLE and sample.failure == ProbeFailure.MISSING
