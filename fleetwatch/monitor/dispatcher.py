"""Central alert dispatcher — routes alerts to channels with per-key cooldowns."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable

import structlog

from fleetwatch.core.types import SendResult
from fleetwatch.monitor.channels import NotificationChannel
from fleetwatch.monitor.cooldown import CooldownStore
from fleetwatch.monitor.exceptions import StateFileError
from fleetwatch.monitor.types import AlertMessage, Severity

# Dedicated structured logger for decision records.
decision_logger = structlog.get_logger("decision_log")

logger = structlog.get_logger(__name__)

Clock = Callable[[], float]


class AlertDispatcher:
    """Routes alerts to notification channels.

    - Every alert decision (sent or suppressed) is logged via *decision_logger*.
    - ``try_send`` enforces a per-key cooldown window.  The check-then-set is
      guarded by a per-key lock, and ``last_sent_at`` is persisted *before*
      any channel is called: a failing notifier still consumes the cooldown.
    - ``send`` bypasses cooldowns (remediation reports).
    - Channel failures are logged as ``notifier_failed`` and never propagate.
    """

    def __init__(
        self,
        channels: list[NotificationChannel] | None = None,
        cooldown_store: CooldownStore | None = None,
        cooldown_secs: float = 1800.0,
        clock: Clock = time.time,
    ) -> None:
        self._channels: list[NotificationChannel] = channels or []
        self._store = cooldown_store or CooldownStore()
        self._cooldown_secs = cooldown_secs
        self._clock = clock
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def cooldown_store(self) -> CooldownStore:
        return self._store

    @property
    def channels(self) -> list[NotificationChannel]:
        return list(self._channels)

    def cooldown_remaining(self, alert_key: str) -> float:
        """Seconds until *alert_key* may be sent again (0 when permitted now)."""
        last = self._store.last_sent(alert_key)
        if last is None:
            return 0.0
        return max(0.0, self._cooldown_secs - (self._clock() - last))

    # ── Cooldown-gated entry point ──────────────────────────────

    async def try_send(
        self,
        alert_key: str,
        subject: str,
        body: str = "",
        severity: Severity = Severity.WARNING,
        fields: dict[str, str] | None = None,
    ) -> SendResult:
        """Send unless *alert_key* is inside its cooldown window."""
        msg = AlertMessage(
            severity=severity,
            title=subject,
            body=body,
            fields=fields or {},
            alert_key=alert_key,
            timestamp=self._clock(),
        )
        return await self.try_send_message(msg)

    async def try_send_message(self, msg: AlertMessage) -> SendResult:
        key = msg.alert_key
        async with self._lock_for(key):
            now = self._clock()
            last = self._store.last_sent(key)
            if last is not None and now - last < self._cooldown_secs:
                self._log_decision(msg, SendResult.SUPPRESSED)
                logger.info(
                    "alert_suppressed",
                    alert_key=key,
                    remaining_secs=round(self._cooldown_secs - (now - last), 1),
                )
                return SendResult.SUPPRESSED
            try:
                self._store.mark(key, now)
            except StateFileError as exc:
                logger.error("cooldown_persist_failed", alert_key=key, error=str(exc))

        self._log_decision(msg, SendResult.SENT)
        await self._dispatch_to_channels(msg)
        return SendResult.SENT

    # ── Direct send (remediation reports, etc.) ─────────────────

    async def send(self, msg: AlertMessage) -> None:
        """Dispatch an AlertMessage directly (bypasses cooldowns)."""
        self._log_decision(msg, SendResult.SENT)
        await self._dispatch_to_channels(msg)

    # ── Internal routing ────────────────────────────────────────

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def _log_decision(self, msg: AlertMessage, result: SendResult) -> None:
        decision_logger.info(
            "decision",
            result=result.value,
            severity=msg.severity.name,
            alert_key=msg.alert_key,
            title=msg.title,
            body=msg.body,
            fields=msg.fields,
        )

    async def _dispatch_to_channels(self, msg: AlertMessage) -> None:
        if msg.severity == Severity.DEBUG:
            return
        if not self._channels:
            logger.warning("alert_no_channels", title=msg.title, alert_key=msg.alert_key)
            return
        for ch in self._channels:
            try:
                ok = await ch.send(msg)
            except Exception:
                logger.exception(
                    "channel_dispatch_error",
                    channel=type(ch).__name__,
                    title=msg.title,
                )
                continue
            if not ok:
                logger.warning("notifier_failed", channel=type(ch).__name__, title=msg.title)

    # ── Lifecycle ───────────────────────────────────────────────

    async def close(self) -> None:
        for ch in self._channels:
            try:
                await ch.close()
            except Exception:
                logger.exception("channel_close_error", channel=type(ch).__name__)
