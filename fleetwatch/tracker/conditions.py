"""SustainedConditionTracker — "has this condition held for N seconds" facts."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

import structlog

from fleetwatch.core.types import ConditionSustained, SustainedConditionTimer

logger = structlog.stdlib.get_logger()

Clock = Callable[[], float]


def condition_key(target_id: str, condition: str) -> str:
    """Timer/alert key, e.g. ``cpu:high`` or ``worker-1:unhealthy``."""
    return f"{target_id}:{condition}"


class SustainedConditionTracker:
    """Owns every SustainedConditionTimer.

    On each ``observe``:

    1. condition true, no timer   → start one at ``now``
    2. condition true, timer      → emit ConditionSustained once
       ``now - first_observed_at >= required``; ``first`` is True only for
       the first fact of the streak
    3. condition false            → delete the timer unconditionally

    Firing never resets ``first_observed_at``; repeat notifications are the
    alert dispatcher's business (cooldowns), not this tracker's.

    A required duration of 0 makes any true observation immediately
    sustained.
    """

    def __init__(self, clock: Clock = time.time) -> None:
        self._clock = clock
        self._timers: dict[str, SustainedConditionTimer] = {}

    @property
    def timers(self) -> dict[str, SustainedConditionTimer]:
        """Copy of the active timers, keyed by condition key."""
        return {k: t.model_copy() for k, t in self._timers.items()}

    def observe(
        self,
        key: str,
        condition: bool,
        required_secs: float,
        now: float | None = None,
        target_id: str = "",
        condition_name: str = "",
    ) -> ConditionSustained | None:
        """Feed one evaluation of *key*; return a fact when it is sustained."""
        ts = self._clock() if now is None else now

        if not condition:
            if self._timers.pop(key, None) is not None:
                logger.info("condition_cleared", key=key)
            return None

        timer = self._timers.get(key)
        if timer is None:
            timer = SustainedConditionTimer(
                key=key,
                first_observed_at=ts,
                required_duration=required_secs,
            )
            self._timers[key] = timer
            logger.info("condition_started", key=key, required_secs=required_secs)
        else:
            timer.required_duration = required_secs

        elapsed = timer.elapsed(ts)
        if elapsed < required_secs:
            logger.debug("condition_pending", key=key, elapsed=elapsed, required_secs=required_secs)
            return None

        first = timer.fired_at is None
        if first:
            timer.fired_at = ts
            logger.warning("condition_sustained", key=key, elapsed=elapsed)
        return ConditionSustained(
            key=key,
            target_id=target_id,
            condition=condition_name,
            elapsed=elapsed,
            first_observed_at=timer.first_observed_at,
            first=first,
        )

    def clear(self, key: str) -> None:
        self._timers.pop(key, None)

    # ── Persistence (one-shot/cron mode) ────────────────────────

    def snapshot(self) -> dict[str, dict[str, Any]]:
        """JSON-serialisable copy of all timers."""
        return {k: t.model_dump(mode="json") for k, t in self._timers.items()}

    def restore(self, data: dict[str, Any]) -> None:
        """Replace timers from a ``snapshot()``; malformed entries are dropped."""
        self._timers.clear()
        for key, raw in data.items():
            try:
                self._timers[key] = SustainedConditionTimer.model_validate(raw)
            except ValueError:
                logger.warning("condition_timer_restore_skipped", key=key)
