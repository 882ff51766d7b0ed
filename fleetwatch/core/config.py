"""Pydantic settings loaded from YAML configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any, Literal

import yaml
from pydantic import BaseModel, Field, SecretStr, ValidationError, model_validator

from fleetwatch.core.exceptions import ConfigurationError
from fleetwatch.core.types import RemediationStrategy, TargetKind

_settings: Settings | None = None

_DEFAULT_CONFIG_PATH = Path("config/settings.yaml")


# ── Probe descriptors ───────────────────────────────────────────


class _ProbeBase(BaseModel):
    """Options shared by every probe kind."""

    timeout_secs: float = Field(default=5.0, gt=0)
    retries: int = Field(default=0, ge=0)
    retry_delay_secs: float = Field(default=5.0, ge=0)

    @property
    def budget_secs(self) -> float:
        """Worst-case wall time of one probe including retries."""
        return self.timeout_secs * (self.retries + 1) + self.retry_delay_secs * self.retries


class HttpProbeConfig(_ProbeBase):
    """GET an endpoint; healthy on the expected status (any 2xx when unset)."""

    type: Literal["http"] = "http"
    url: str
    expected_status: int | None = None
    headers: dict[str, str] = {}
    verify_tls: bool = True


class ContainerProbeConfig(_ProbeBase):
    """Query the container runtime for a named container."""

    type: Literal["container"] = "container"
    name: str
    exact: bool = True
    collect_usage: bool = False


class ClusterProbeConfig(_ProbeBase):
    """Elasticsearch-style cluster health endpoint (green/yellow/red)."""

    type: Literal["cluster"] = "cluster"
    url: str
    health_path: str = "/_cluster/health"
    username: str = ""
    password: SecretStr = SecretStr("")
    timeout_secs: float = Field(default=10.0, gt=0)


class MetricProbeConfig(_ProbeBase):
    """Host metric sampled from the process table / CPU counters."""

    type: Literal["metric"] = "metric"
    metric: Literal["cpu", "zombies"]
    threshold: float
    sample_window_secs: float = Field(default=1.0, ge=0)


ProbeConfig = Annotated[
    HttpProbeConfig | ContainerProbeConfig | ClusterProbeConfig | MetricProbeConfig,
    Field(discriminator="type"),
]


# ── Remediation / targets ───────────────────────────────────────


class RemediationConfig(BaseModel):
    """How to fix a target once its condition is sustained."""

    strategy: RemediationStrategy
    container: str | None = None
    service: str | None = None
    poll_interval_secs: float = Field(default=2.0, gt=0)
    max_wait_secs: float = Field(default=60.0, gt=0)
    settle_secs: float = Field(default=30.0, ge=0)
    max_attempts: int = Field(default=1, ge=1, le=2)
    auto: bool = True

    @model_validator(mode="after")
    def _service_required(self) -> RemediationConfig:
        if self.strategy == RemediationStrategy.EXTERNAL_SERVICE_RESTART and not self.service:
            raise ValueError("external_service_restart requires 'service'")
        return self


class TargetConfig(BaseModel):
    """One monitored entity as declared in configuration."""

    id: str = Field(min_length=1)
    kind: TargetKind
    probe: ProbeConfig
    remediation: RemediationConfig | None = None
    sustained_secs: float = Field(default=0.0, ge=0)
    description: str = ""

    @model_validator(mode="after")
    def _probe_matches_kind(self) -> TargetConfig:
        if self.probe.type != self.kind.value:
            raise ValueError(
                f"target {self.id!r}: probe type {self.probe.type!r} does not match kind {self.kind.value!r}"
            )
        rem = self.remediation
        if (
            rem is not None
            and rem.strategy != RemediationStrategy.EXTERNAL_SERVICE_RESTART
            and self.kind != TargetKind.CONTAINER
            and not rem.container
        ):
            raise ValueError(
                f"target {self.id!r}: {rem.strategy.value} needs a 'container' for non-container targets"
            )
        return self

    @property
    def container_name(self) -> str | None:
        """Runtime name used by restart/kill strategies."""
        if self.remediation is not None and self.remediation.container:
            return self.remediation.container
        if isinstance(self.probe, ContainerProbeConfig):
            return self.probe.name
        return None


# ── Ambient sections ────────────────────────────────────────────


class LoopConfig(BaseModel):
    """Reconciliation loop timing."""

    interval_secs: float = Field(default=60.0, gt=0)
    cycle_deadline_secs: float | None = None
    history_size: int = Field(default=30, ge=1)


class RuntimeConfig(BaseModel):
    """Container runtime and dependent-service controller."""

    docker_socket: str = "/var/run/docker.sock"
    command_timeout_secs: float = Field(default=30.0, gt=0)
    compose_command: list[str] = ["docker", "compose"]
    compose_file: str | None = None
    compose_project_dir: str | None = None
    proc_root: str = "/proc"


class PolicyConfig(BaseModel):
    """Which sustained conditions may trigger automatic remediation."""

    remediate_unhealthy_containers: bool = True
    remediate_cluster_red: bool = False
    remediate_unreachable: bool = True


class TelegramConfig(BaseModel):
    """Telegram Bot API channel."""

    enabled: bool = False
    bot_token: SecretStr = SecretStr("")
    chat_id: str = ""


class DiscordConfig(BaseModel):
    """Discord webhook channel."""

    enabled: bool = False
    webhook_url: SecretStr = SecretStr("")


class EmailConfig(BaseModel):
    """SendGrid e-mail channel (plain text)."""

    enabled: bool = False
    api_key: SecretStr = SecretStr("")
    from_email: str = ""
    to_email: str = ""
    api_url: str = "https://api.sendgrid.com/v3/mail/send"


class AlertsConfig(BaseModel):
    """Alert dispatch, cooldown and channel configuration."""

    cooldown_secs: float = Field(default=1800.0, ge=0)
    state_file: str = "state/fleetwatch-state.json"
    echo_to_terminal: bool = True
    telegram: TelegramConfig = TelegramConfig()
    discord: DiscordConfig = DiscordConfig()
    email: EmailConfig = EmailConfig()


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"
    file: str | None = None


class Settings(BaseModel):
    """Root settings container."""

    targets: list[TargetConfig] = []
    loop: LoopConfig = LoopConfig()
    runtime: RuntimeConfig = RuntimeConfig()
    policy: PolicyConfig = PolicyConfig()
    alerts: AlertsConfig = AlertsConfig()
    logging: LoggingConfig = LoggingConfig()

    @model_validator(mode="after")
    def _unique_target_ids(self) -> Settings:
        seen: set[str] = set()
        for t in self.targets:
            if t.id in seen:
                raise ValueError(f"duplicate target id {t.id!r}")
            seen.add(t.id)
        return self


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file and cache globally.

    Args:
        path: Path to YAML config. Defaults to config/settings.yaml, which may
            be absent (empty fleet). An explicit path must exist.

    Returns:
        Parsed Settings instance.

    Raises:
        ConfigurationError: unreadable file, invalid YAML or failed validation.
            Nothing is cached in that case.
    """
    global _settings  # noqa: PLW0603

    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH

    data: dict[str, Any] = {}
    if config_path.exists():
        try:
            with open(config_path) as f:
                raw = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigurationError(f"cannot read {config_path}: {exc}") from exc
        if isinstance(raw, dict):
            data = raw
        elif raw is not None:
            raise ConfigurationError(f"{config_path}: top level must be a mapping")
    elif path:
        raise ConfigurationError(f"config file not found: {config_path}")

    try:
        settings = Settings(**data)
    except ValidationError as exc:
        raise ConfigurationError(f"invalid configuration in {config_path}:\n{exc}") from exc

    _settings = settings
    return _settings


def get_settings() -> Settings:
    """Return the cached settings, loading defaults if not yet loaded."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Reset the cached settings (useful for testing)."""
    global _settings  # noqa: PLW0603
    _settings = None
