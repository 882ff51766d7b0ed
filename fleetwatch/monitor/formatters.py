"""Pure functions that convert engine facts into AlertMessage objects."""

from __future__ import annotations

import socket
from datetime import datetime, timezone

from fleetwatch.core.types import (
    ConditionSustained,
    HealthSample,
    RemediationOutcome,
    RemediationResult,
    TargetKind,
)
from fleetwatch.monitor.types import AlertMessage, Severity
from fleetwatch.targets.registry import MonitoredTarget

# ── Severity mappings ───────────────────────────────────────────

_CONDITION_SEVERITY: dict[str, Severity] = {
    "red": Severity.CRITICAL,
    "unreachable": Severity.CRITICAL,
    "down": Severity.CRITICAL,
    "unhealthy": Severity.WARNING,
    "high": Severity.WARNING,
}


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def _duration(secs: float) -> str:
    minutes = int(secs // 60)
    if minutes >= 1:
        return f"{minutes} minute{'s' if minutes != 1 else ''}"
    return f"{int(secs)}s"


# ── Formatters ──────────────────────────────────────────────────


def condition_subject(fact: ConditionSustained, target: MonitoredTarget, sample: HealthSample | None) -> str:
    """Operator-facing subject line for a sustained condition."""
    value = sample.value if sample is not None else None
    if target.kind == TargetKind.METRIC and value is not None:
        metric = getattr(target.probe, "metric", "")
        if metric == "cpu":
            return f"[ALERT] Server CPU High: {value:.0f}% for {_duration(fact.elapsed)}"
        if metric == "zombies":
            return f"[ALERT] {int(value)} Zombie Processes Detected!"
    if fact.condition == "red":
        return f"[ALERT] Cluster {target.id} status RED"
    if fact.condition == "unreachable":
        return f"[ALERT] {target.id} unreachable"
    if fact.condition == "unhealthy":
        return f"[ALERT] Container {target.id} unhealthy"
    if fact.condition == "down":
        return f"[ALERT] {target.id} down"
    return f"[ALERT] {target.id}: {fact.condition}"


def format_condition_alert(
    fact: ConditionSustained,
    target: MonitoredTarget,
    sample: HealthSample | None = None,
) -> AlertMessage:
    """Convert a ConditionSustained fact into an AlertMessage keyed by the condition."""
    lines = [
        f"Target: {target.id} ({target.kind.value})",
        f"Condition: {fact.condition} for {_duration(fact.elapsed)} (since {_iso(fact.first_observed_at)})",
    ]
    if target.config.description:
        lines.insert(1, f"Description: {target.config.description}")
    if sample is not None and sample.detail:
        lines.append(f"Detail: {sample.detail}")

    fields: dict[str, str] = {"host": socket.gethostname()}
    if sample is not None:
        fields["status"] = sample.status.value
        if sample.severity is not None:
            fields["severity"] = sample.severity.value
        fields.update(sample.metadata)

    return AlertMessage(
        severity=_CONDITION_SEVERITY.get(fact.condition, Severity.WARNING),
        title=condition_subject(fact, target, sample),
        body="\n".join(lines),
        fields=fields,
        alert_key=fact.key,
        raw=fact.model_dump(mode="json"),
    )


def format_remediation_result(result: RemediationResult) -> AlertMessage:
    """Convert a RemediationResult into an AlertMessage (sent without cooldown)."""
    targets = ", ".join(result.target_ids) or "-"
    if result.cancelled:
        verdict, severity = "cancelled", Severity.INFO
    elif result.noop:
        verdict, severity = "nothing to do", Severity.INFO
    elif result.succeeded:
        verdict, severity = "succeeded", Severity.INFO
    else:
        verdict, severity = "FAILED", Severity.CRITICAL

    lines = [f"Strategy: {result.strategy.value}"]
    if result.detail:
        lines.append(result.detail)
    for o in result.outcomes:
        marker = "ok" if o.outcome == RemediationOutcome.SUCCESS else o.outcome.value.upper()
        lines.append(f"  {o.target_id}: {marker} after {o.elapsed_secs:.0f}s {o.detail}".rstrip())

    return AlertMessage(
        severity=severity,
        title=f"[REMEDIATION] {result.strategy.value} {verdict}: {targets}",
        body="\n".join(lines),
        fields={"host": socket.gethostname()},
        alert_key=f"remediation:{result.strategy.value}",
        raw=result.model_dump(mode="json"),
    )
