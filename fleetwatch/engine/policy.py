"""Per-kind condition evaluation and remediation eligibility."""

from __future__ import annotations

from typing import NamedTuple

from fleetwatch.core.config import PolicyConfig
from fleetwatch.core.types import ClusterSeverity, HealthSample, HealthStatus, TargetKind
from fleetwatch.targets.registry import MonitoredTarget

_NO_ANSWER = frozenset({HealthStatus.UNREACHABLE, HealthStatus.UNKNOWN})
_DOWN = frozenset({HealthStatus.UNHEALTHY, HealthStatus.UNREACHABLE, HealthStatus.UNKNOWN})


class ConditionCheck(NamedTuple):
    """One boolean condition derived from a sample."""

    name: str
    active: bool
    remediable: bool


def evaluate_sample(target: MonitoredTarget, sample: HealthSample, policy: PolicyConfig) -> list[ConditionCheck]:
    """Every condition tracked for *target*'s kind, active or not.

    Inactive conditions are returned too so their timers get cleared.

    - cluster: ``red`` (reachable but degraded; remediable only with
      ``remediate_cluster_red``) and ``unreachable``
    - container: ``unhealthy`` and ``unreachable`` (vanished or runtime down;
      alert only, there is nothing to restart)
    - http: ``down``
    - metric: ``high``
    """
    status = sample.status
    if target.kind == TargetKind.CLUSTER:
        return [
            ConditionCheck("red", sample.severity == ClusterSeverity.RED, policy.remediate_cluster_red),
            ConditionCheck("unreachable", status in _NO_ANSWER, policy.remediate_unreachable),
        ]
    if target.kind == TargetKind.CONTAINER:
        return [
            ConditionCheck("unhealthy", status == HealthStatus.UNHEALTHY, policy.remediate_unhealthy_containers),
            ConditionCheck("unreachable", status in _NO_ANSWER, False),
        ]
    if target.kind == TargetKind.HTTP:
        return [ConditionCheck("down", status in _DOWN, policy.remediate_unreachable)]
    return [ConditionCheck("high", status == HealthStatus.UNHEALTHY, True)]


def is_problem(sample: HealthSample) -> bool:
    """Counts against the cycle's exit code."""
    return sample.status in _DOWN
