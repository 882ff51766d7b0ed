"""StatusReport — one row per target for terminal output and structured logs."""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field

from fleetwatch.core.types import ClusterSeverity, HealthSample, HealthStatus
from fleetwatch.targets.registry import MonitoredTarget

_HEADER = ("TARGET", "KIND", "STATUS", "CPU %", "MEMORY USAGE", "UPTIME", "HEALTH")
_WIDTHS = (30, 10, 12, 10, 20, 15, 10)


def classify(sample: HealthSample | None) -> str:
    """Collapse a sample into healthy / degraded / critical / unknown."""
    if sample is None:
        return "unknown"
    if sample.status == HealthStatus.HEALTHY:
        return "degraded" if sample.severity == ClusterSeverity.YELLOW else "healthy"
    if sample.status == HealthStatus.STARTING:
        return "degraded"
    if sample.status == HealthStatus.UNKNOWN:
        return "unknown"
    return "critical"


@dataclass
class StatusRow:
    """Status of a single target at report time."""

    target_id: str
    kind: str
    status: str
    cpu: str = "-"
    memory: str = "-"
    uptime: str = "-"
    health: str = "unknown"
    detail: str = ""
    latency_ms: float = 0.0

    @classmethod
    def from_sample(cls, target: MonitoredTarget, sample: HealthSample | None) -> StatusRow:
        if sample is None:
            return cls(target_id=target.id, kind=target.kind.value, status="no data")
        meta = sample.metadata
        cpu = meta.get("cpu", "-")
        return cls(
            target_id=target.id,
            kind=target.kind.value,
            status=sample.severity.value if sample.severity is not None else sample.status.value,
            cpu=cpu,
            memory=meta.get("memory", "-"),
            uptime=meta.get("uptime", "-"),
            health=classify(sample),
            detail=sample.detail,
            latency_ms=round(sample.latency_ms, 1),
        )


@dataclass
class StatusReport:
    """Snapshot of the whole fleet.

    Usage::

        report = StatusReport.build(registry.list())
        print(report.render_text())
    """

    rows: list[StatusRow] = field(default_factory=list)
    generated_at: float = field(default_factory=time.time)

    @classmethod
    def build(
        cls,
        targets: list[MonitoredTarget],
        samples: list[HealthSample] | None = None,
    ) -> StatusReport:
        """Rows in *targets* order; uses *samples* when given, else each target's last sample."""
        by_id = {s.target_id: s for s in samples or []}
        rows = [StatusRow.from_sample(t, by_id.get(t.id, t.last_sample)) for t in targets]
        return cls(rows=rows)

    def counts(self) -> dict[str, int]:
        out = {"total": len(self.rows), "healthy": 0, "degraded": 0, "critical": 0, "unknown": 0}
        for row in self.rows:
            out[row.health] = out.get(row.health, 0) + 1
        return out

    @property
    def all_healthy(self) -> bool:
        return all(r.health in ("healthy", "degraded") for r in self.rows)

    def to_dicts(self) -> list[dict[str, object]]:
        return [asdict(r) for r in self.rows]

    def render_text(self, with_detail: bool = True) -> str:
        lines = [_format_row(_HEADER), "─" * (sum(_WIDTHS) + len(_WIDTHS) - 1)]
        for r in self.rows:
            lines.append(_format_row((r.target_id, r.kind, r.status, r.cpu, r.memory, r.uptime, r.health)))
            if with_detail and r.detail and r.health != "healthy":
                lines.append(f"    {r.detail}")
        lines.append("")
        lines.append(self.summary())
        return "\n".join(lines)

    def summary(self) -> str:
        c = self.counts()
        parts = [f"Total targets: {c['total']}", f"Healthy: {c['healthy']}"]
        for key in ("degraded", "critical", "unknown"):
            if c[key]:
                parts.append(f"{key.capitalize()}: {c[key]}")
        return "  ".join(parts)


def _format_row(cells: tuple[str, ...]) -> str:
    return " ".join(f"{str(c)[:w]:<{w}}" for c, w in zip(cells, _WIDTHS)).rstrip()
