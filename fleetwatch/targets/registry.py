"""TargetRegistry — the fleet of monitored entities, loaded once at start."""

from __future__ import annotations

from collections import deque

from fleetwatch.core.config import (
    ProbeConfig,
    RemediationConfig,
    Settings,
    TargetConfig,
)
from fleetwatch.core.exceptions import ConfigurationError
from fleetwatch.core.types import HealthSample, TargetKind
from fleetwatch.targets.exceptions import TargetNotFoundError


class MonitoredTarget:
    """A monitored entity plus its most recent samples.

    Configuration is fixed for the lifetime of the process; only
    ``last_sample`` and ``history`` change, and only through
    ``TargetRegistry.record_sample``.
    """

    def __init__(self, config: TargetConfig, history_size: int = 30) -> None:
        self._config = config
        self._history: deque[HealthSample] = deque(maxlen=history_size)

    @property
    def config(self) -> TargetConfig:
        return self._config

    @property
    def id(self) -> str:
        return self._config.id

    @property
    def kind(self) -> TargetKind:
        return self._config.kind

    @property
    def probe(self) -> ProbeConfig:
        return self._config.probe

    @property
    def remediation(self) -> RemediationConfig | None:
        return self._config.remediation

    @property
    def sustained_secs(self) -> float:
        return self._config.sustained_secs

    @property
    def last_sample(self) -> HealthSample | None:
        return self._history[-1] if self._history else None

    @property
    def history(self) -> list[HealthSample]:
        """Oldest-first copy of the bounded sample ring."""
        return list(self._history)

    def _append(self, sample: HealthSample) -> None:
        self._history.append(sample)

    def __repr__(self) -> str:
        return f"MonitoredTarget(id={self.id!r}, kind={self.kind.value})"


class TargetRegistry:
    """Holds every MonitoredTarget, keyed by id, in configuration order.

    Usage::

        registry = TargetRegistry.from_settings(settings)
        for target in registry.list():
            ...
        registry.get("elasticsearch")
    """

    def __init__(self, targets: list[TargetConfig], history_size: int = 30) -> None:
        self._targets: dict[str, MonitoredTarget] = {}
        for cfg in targets:
            if cfg.id in self._targets:
                raise ConfigurationError(f"duplicate target id {cfg.id!r}")
            self._targets[cfg.id] = MonitoredTarget(cfg, history_size=history_size)

    @classmethod
    def from_settings(cls, settings: Settings) -> TargetRegistry:
        return cls(settings.targets, history_size=settings.loop.history_size)

    def list(self) -> list[MonitoredTarget]:
        return list(self._targets.values())

    def get(self, target_id: str) -> MonitoredTarget:
        try:
            return self._targets[target_id]
        except KeyError:
            raise TargetNotFoundError(target_id) from None

    def __contains__(self, target_id: object) -> bool:
        return target_id in self._targets

    def __len__(self) -> int:
        return len(self._targets)

    def record_sample(self, sample: HealthSample) -> None:
        """Store *sample* as the target's latest and append it to its history."""
        self.get(sample.target_id)._append(sample)
