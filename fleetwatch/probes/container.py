"""Container probe — runtime status query for one named container."""

from __future__ import annotations

import time

from fleetwatch.core.config import ContainerProbeConfig
from fleetwatch.core.types import HealthSample, HealthStatus, ProbeFailure, ProcessRef, RawHealthStatus
from fleetwatch.probes.base import Probe
from fleetwatch.probes.exceptions import ProbeUnreachable
from fleetwatch.runtime.base import ContainerRuntime
from fleetwatch.runtime.exceptions import RuntimeCommandError
from fleetwatch.targets.registry import MonitoredTarget

_RAW_STATUS: dict[RawHealthStatus, tuple[HealthStatus, str]] = {
    RawHealthStatus.HEALTHY: (HealthStatus.HEALTHY, "healthy"),
    RawHealthStatus.NONE: (HealthStatus.HEALTHY, "running (no healthcheck)"),
    RawHealthStatus.STARTING: (HealthStatus.STARTING, "starting"),
    RawHealthStatus.UNHEALTHY: (HealthStatus.UNHEALTHY, "unhealthy"),
}


def format_uptime(seconds: float) -> str:
    """Compact uptime: 42s, 7m, 3h 12m, 2d 5h."""
    s = max(0, int(seconds))
    if s < 60:
        return f"{s}s"
    if s < 3600:
        return f"{s // 60}m"
    if s < 86400:
        return f"{s // 3600}h {s % 3600 // 60}m"
    return f"{s // 86400}d {s % 86400 // 3600}h"


def missing_sample(target_id: str, name: str) -> HealthSample:
    return HealthSample(
        target_id=target_id,
        status=HealthStatus.UNREACHABLE,
        failure=ProbeFailure.MISSING,
        detail=f"no container matching {name!r}",
    )


class ContainerProbe(Probe):
    """Maps runtime state/health onto HealthStatus."""

    def __init__(self, runtime: ContainerRuntime) -> None:
        self._runtime = runtime

    async def check(self, target: MonitoredTarget) -> HealthSample:
        cfg = target.probe
        assert isinstance(cfg, ContainerProbeConfig)
        start = time.monotonic()
        try:
            refs = await self._runtime.list_processes(cfg.name, exact=cfg.exact)
            if not refs:
                return missing_sample(target.id, cfg.name)
            ref = refs[0]
            raw = await self._runtime.inspect_health(ref)
        except RuntimeCommandError as exc:
            raise ProbeUnreachable(f"runtime query failed: {exc}") from exc

        latency_ms = (time.monotonic() - start) * 1000.0
        if raw == RawHealthStatus.MISSING:
            return missing_sample(target.id, cfg.name)

        metadata = self._metadata(ref)
        if not ref.running and raw != RawHealthStatus.STARTING:
            status, detail = HealthStatus.UNHEALTHY, f"container {ref.state}"
        else:
            status, detail = _RAW_STATUS[raw]
            if cfg.collect_usage:
                metadata.update(await self._runtime.usage(ref))

        return HealthSample(
            target_id=target.id,
            status=status,
            detail=detail,
            latency_ms=latency_ms,
            metadata=metadata,
        )

    @staticmethod
    def _metadata(ref: ProcessRef) -> dict[str, str]:
        meta = {"container": ref.name, "state": ref.state}
        if ref.started_at is not None:
            meta["uptime"] = format_uptime(time.time() - ref.started_at)
        elif ref.raw.get("Status"):
            meta["uptime"] = str(ref.raw["Status"])
        return meta
