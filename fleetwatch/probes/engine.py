"""ProbeEngine — timeouts, retries and failure mapping around individual probes."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable

import structlog

from fleetwatch.core.types import HealthSample, HealthStatus, ProbeFailure, TargetKind
from fleetwatch.probes.base import Probe
from fleetwatch.probes.exceptions import ProbeTimeout, ProbeUnreachable
from fleetwatch.targets.registry import MonitoredTarget, TargetRegistry

logger = structlog.stdlib.get_logger()

Clock = Callable[[], float]
Sleeper = Callable[[float], Awaitable[None]]

# Only indefinite answers are retried; a definite red/unhealthy is final.
_RETRYABLE = frozenset({HealthStatus.UNREACHABLE, HealthStatus.UNKNOWN})


class ProbeEngine:
    """Runs one probe per target; never raises.

    - Each probe runs under ``asyncio.wait_for`` with its own ``timeout_secs``.
    - Timeouts, connection errors and unexpected exceptions all become
      HealthSamples with a failure status.
    - ``probe_all`` runs every target concurrently under a global deadline.
    - When a registry is attached, every produced sample is recorded on it.

    Usage::

        engine = ProbeEngine(
            probes={TargetKind.HTTP: HttpProbe(), TargetKind.CONTAINER: ContainerProbe(rt)},
            registry=registry,
        )
        samples = await engine.probe_all(registry.list())
    """

    def __init__(
        self,
        probes: dict[TargetKind, Probe],
        registry: TargetRegistry | None = None,
        clock: Clock = time.time,
        sleep: Sleeper = asyncio.sleep,
        deadline_factor: float = 2.0,
    ) -> None:
        self._probes = probes
        self._registry = registry
        self._clock = clock
        self._sleep = sleep
        self._deadline_factor = deadline_factor

    def cycle_deadline(self, targets: list[MonitoredTarget]) -> float:
        """Global deadline for one probing phase: factor × the slowest probe budget."""
        if not targets:
            return 0.0
        return self._deadline_factor * max(t.probe.budget_secs for t in targets)

    async def probe(self, target: MonitoredTarget) -> HealthSample:
        """Probe *target*, retrying unreachable/unknown results per its config."""
        cfg = target.probe
        attempts = cfg.retries + 1
        sample = await self._probe_once(target)
        for attempt in range(2, attempts + 1):
            if sample.status not in _RETRYABLE:
                break
            logger.info(
                "probe_retry",
                target=target.id,
                attempt=attempt,
                attempts=attempts,
                status=sample.status,
                detail=sample.detail,
            )
            await self._sleep(cfg.retry_delay_secs)
            sample = await self._probe_once(target)
        self._record(sample)
        return sample

    async def probe_all(
        self,
        targets: list[MonitoredTarget],
        deadline: float | None = None,
    ) -> list[HealthSample]:
        """Probe every target concurrently; results in *targets* order.

        Probes still pending when the deadline passes are cancelled and
        reported as unreachable/timeout.
        """
        if not targets:
            return []
        limit = deadline if deadline is not None else self.cycle_deadline(targets)
        tasks = {
            asyncio.create_task(self.probe(t), name=f"probe:{t.id}"): t
            for t in targets
        }
        done, pending = await asyncio.wait(list(tasks), timeout=limit)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning(
                "probe_cycle_deadline_exceeded",
                deadline_secs=limit,
                pending=[tasks[t].id for t in pending],
            )

        samples: list[HealthSample] = []
        for task, target in tasks.items():
            if task in done and not task.cancelled() and task.exception() is None:
                samples.append(task.result())
                continue
            sample = self._failure(
                target,
                HealthStatus.UNREACHABLE,
                ProbeFailure.TIMEOUT,
                f"cycle deadline of {limit:.1f}s exceeded",
            )
            self._record(sample)
            samples.append(sample)
        return samples

    async def close(self) -> None:
        for probe in set(self._probes.values()):
            try:
                await probe.close()
            except Exception:
                logger.exception("probe_close_error", probe=type(probe).__name__)

    # ── Internal ────────────────────────────────────────────────

    async def _probe_once(self, target: MonitoredTarget) -> HealthSample:
        probe = self._probes.get(target.kind)
        if probe is None:
            return self._failure(
                target, HealthStatus.UNKNOWN, ProbeFailure.ERROR, f"no probe for kind {target.kind.value}"
            )

        timeout = target.probe.timeout_secs
        start = time.monotonic()
        try:
            sample = await asyncio.wait_for(probe.check(target), timeout=timeout)
        except (TimeoutError, ProbeTimeout) as exc:
            logger.warning("probe_timeout", target=target.id, timeout_secs=timeout)
            return self._failure(
                target,
                HealthStatus.UNREACHABLE,
                ProbeFailure.TIMEOUT,
                str(exc) or f"no answer within {timeout}s",
                start,
            )
        except ProbeUnreachable as exc:
            logger.warning("probe_unreachable", target=target.id, error=str(exc))
            return self._failure(target, HealthStatus.UNREACHABLE, ProbeFailure.UNREACHABLE, str(exc), start)
        except Exception as exc:
            logger.exception("probe_error", target=target.id)
            return self._failure(
                target, HealthStatus.UNKNOWN, ProbeFailure.ERROR, f"{type(exc).__name__}: {exc}", start
            )

        update: dict[str, object] = {"timestamp": self._clock()}
        if not sample.latency_ms:
            update["latency_ms"] = (time.monotonic() - start) * 1000.0
        return sample.model_copy(update=update)

    def _failure(
        self,
        target: MonitoredTarget,
        status: HealthStatus,
        failure: ProbeFailure,
        detail: str,
        start: float | None = None,
    ) -> HealthSample:
        latency_ms = (time.monotonic() - start) * 1000.0 if start is not None else 0.0
        return HealthSample(
            target_id=target.id,
            timestamp=self._clock(),
            status=status,
            failure=failure,
            detail=detail,
            latency_ms=latency_ms,
        )

    def _record(self, sample: HealthSample) -> None:
        if self._registry is not None and sample.target_id in self._registry:
            self._registry.record_sample(sample)
