"""Host metric probe — CPU utilisation by counter delta and zombie count."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from fleetwatch.core.config import MetricProbeConfig
from fleetwatch.core.types import HealthSample, HealthStatus
from fleetwatch.probes.base import Probe
from fleetwatch.runtime.host import CpuCounters, HostMetricsSource, cpu_percent
from fleetwatch.targets.registry import MonitoredTarget

Sleeper = Callable[[float], Awaitable[None]]


class MetricProbe(Probe):
    """Samples host metrics; ``value > threshold`` is unhealthy.

    CPU utilisation needs two counter readings.  The previous tick's reading
    is reused when available, otherwise the probe reads twice
    ``sample_window_secs`` apart.
    """

    def __init__(self, source: HostMetricsSource | None = None, sleep: Sleeper = asyncio.sleep) -> None:
        self._source = source or HostMetricsSource()
        self._sleep = sleep
        self._prev_cpu: dict[str, CpuCounters] = {}

    async def check(self, target: MonitoredTarget) -> HealthSample:
        cfg = target.probe
        assert isinstance(cfg, MetricProbeConfig)
        if cfg.metric == "cpu":
            value, detail, metadata = await self._cpu(target.id, cfg)
        else:
            value = float(await asyncio.to_thread(self._source.zombie_count))
            detail = f"{int(value)} zombie processes (threshold {cfg.threshold:g})"
            metadata = {}

        status = HealthStatus.UNHEALTHY if value > cfg.threshold else HealthStatus.HEALTHY
        return HealthSample(
            target_id=target.id,
            status=status,
            value=value,
            detail=detail,
            metadata=metadata,
        )

    async def _cpu(self, target_id: str, cfg: MetricProbeConfig) -> tuple[float, str, dict[str, str]]:
        cur = await asyncio.to_thread(self._source.read_cpu_counters)
        prev = self._prev_cpu.get(target_id)
        if prev is None:
            await self._sleep(cfg.sample_window_secs)
            prev, cur = cur, await asyncio.to_thread(self._source.read_cpu_counters)
        self._prev_cpu[target_id] = cur

        pct = cpu_percent(prev, cur)
        load = await asyncio.to_thread(self._source.load_average)
        detail = f"CPU {pct:.0f}% (threshold {cfg.threshold:g}%), load {load}"
        return pct, detail, {"cpu": f"{pct:.1f}%", "load": load}
