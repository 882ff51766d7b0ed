"""Domain types shared across the engine — samples, conditions, remediation results."""

from __future__ import annotations

import time
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class TargetKind(StrEnum):
    """Kind of monitored entity."""

    CONTAINER = "container"
    HTTP = "http"
    CLUSTER = "cluster"
    METRIC = "metric"


class HealthStatus(StrEnum):
    """Normalised health of a target at one point in time."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    STARTING = "starting"
    UNKNOWN = "unknown"
    UNREACHABLE = "unreachable"


class ProbeFailure(StrEnum):
    """Why a probe could not produce a definite answer."""

    TIMEOUT = "timeout"
    UNREACHABLE = "unreachable"
    MISSING = "missing"  # process/container vanished from the runtime
    ERROR = "error"


class ClusterSeverity(StrEnum):
    """Tri-state cluster health as reported by the service itself."""

    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"


class HealthSample(BaseModel):
    """Result of a single probe.  Immutable once produced."""

    model_config = ConfigDict(frozen=True)

    target_id: str
    timestamp: float = Field(default_factory=time.time)
    status: HealthStatus
    detail: str = ""
    latency_ms: float = 0.0
    failure: ProbeFailure | None = None
    severity: ClusterSeverity | None = None
    value: float | None = None
    metadata: dict[str, str] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == HealthStatus.HEALTHY


# ── Sustained conditions ─────────────────────────────────────────


class SustainedConditionTimer(BaseModel):
    """Tracks how long a boolean condition has held continuously."""

    key: str
    first_observed_at: float
    required_duration: float = 0.0
    fired_at: float | None = None

    def elapsed(self, now: float) -> float:
        return now - self.first_observed_at


class ConditionSustained(BaseModel):
    """Fact: *key* has been true for at least its required duration."""

    key: str
    target_id: str = ""
    condition: str = ""
    elapsed: float
    first_observed_at: float
    first: bool = True


# ── Remediation ──────────────────────────────────────────────────


class RemediationStrategy(StrEnum):
    """Corrective action flavours."""

    SEQUENTIAL_WITH_HEALTH_WAIT = "sequential_with_health_wait"
    PARALLEL_FORCE = "parallel_force"
    KILL_UNHEALTHY_ONLY = "kill_unhealthy_only"
    EXTERNAL_SERVICE_RESTART = "external_service_restart"


class RemediationOutcome(StrEnum):
    """Per-target result of a remediation attempt."""

    SUCCESS = "success"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


class TargetOutcome(BaseModel):
    """Outcome of remediating one target."""

    target_id: str
    outcome: RemediationOutcome
    elapsed_secs: float = 0.0
    detail: str = ""


class RemediationAction(BaseModel):
    """A remediation request — built on demand, discarded after reporting."""

    strategy: RemediationStrategy
    target_ids: list[str]
    poll_interval_secs: float = 2.0
    max_wait_secs: float = 60.0
    settle_secs: float = 30.0
    max_attempts: int = 1
    service: str | None = None
    reason: str = ""


class RemediationPreview(BaseModel):
    """What an interactive operator is asked to acknowledge."""

    strategy: RemediationStrategy
    target_ids: list[str]
    service: str | None = None
    description: str = ""


class RemediationResult(BaseModel):
    """Recorded outcome of one RemediationAction."""

    strategy: RemediationStrategy
    target_ids: list[str] = Field(default_factory=list)
    outcomes: list[TargetOutcome] = Field(default_factory=list)
    noop: bool = False
    cancelled: bool = False
    detail: str = ""
    started_at: float = 0.0
    finished_at: float = 0.0

    @property
    def succeeded(self) -> bool:
        """True when nothing failed (a no-op counts as success)."""
        if self.cancelled:
            return False
        return all(o.outcome == RemediationOutcome.SUCCESS for o in self.outcomes)

    def outcome_for(self, target_id: str) -> TargetOutcome | None:
        for o in self.outcomes:
            if o.target_id == target_id:
                return o
        return None


# ── Runtime collaborator types ───────────────────────────────────


class RawHealthStatus(StrEnum):
    """Health as reported by the container runtime."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    STARTING = "starting"
    NONE = "none"  # no healthcheck defined
    MISSING = "missing"  # process no longer exists


class ProcessRef(BaseModel):
    """Opaque handle to a runtime-managed process/container."""

    id: str
    name: str
    state: str = "unknown"
    started_at: float | None = None
    raw: dict[str, Any] = Field(default_factory=dict)

    @property
    def running(self) -> bool:
        return self.state == "running"


# ── Alerting / loop ──────────────────────────────────────────────


class SendResult(StrEnum):
    """Outcome of AlertDispatcher.try_send."""

    SENT = "sent"
    SUPPRESSED = "suppressed"


class CycleState(StrEnum):
    """Reconciliation loop states."""

    IDLE = "idle"
    PROBING = "probing"
    EVALUATING = "evaluating"
    REMEDIATING = "remediating"
    REPORTING = "reporting"


class CycleReport(BaseModel):
    """Everything one reconciliation cycle observed and did."""

    started_at: float
    finished_at: float = 0.0
    samples: list[HealthSample] = Field(default_factory=list)
    sustained: list[ConditionSustained] = Field(default_factory=list)
    remediations: list[RemediationResult] = Field(default_factory=list)
    alerts_sent: list[str] = Field(default_factory=list)
    alerts_suppressed: list[str] = Field(default_factory=list)
    skipped_in_flight: list[str] = Field(default_factory=list)
    status: list[dict[str, Any]] = Field(default_factory=list)
    exit_code: int = 0
