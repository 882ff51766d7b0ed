"""CooldownStore — per-key last-sent timestamps persisted across invocations."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

import structlog

from fleetwatch.monitor.exceptions import StateFileError

logger = structlog.get_logger(__name__)

_STATE_VERSION = 1


class CooldownStore:
    """Small key→timestamp map on disk, plus the tracker's timer snapshot.

    File layout::

        {"version": 1, "cooldowns": {"cpu:high": 1700000000.0}, "timers": {...}}

    Writes go to a temp file in the same directory followed by ``os.replace``,
    so concurrent readers never see a torn file.  Before each write the
    on-disk cooldowns are merged in (latest timestamp wins) so two overlapping
    invocations do not erase each other's sends.

    With ``path=None`` the store is memory-only.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self._path = Path(path) if path else None
        self._cooldowns: dict[str, float] = {}
        self._timers: dict[str, Any] = {}
        self.load()

    @property
    def path(self) -> Path | None:
        return self._path

    def load(self) -> None:
        """(Re)load state from disk; a missing or corrupt file yields empty state."""
        data = self._read()
        self._cooldowns = data["cooldowns"]
        self._timers = data["timers"]
        if self._cooldowns or self._timers:
            logger.info(
                "cooldown_state_loaded",
                path=str(self._path),
                cooldowns=len(self._cooldowns),
                timers=len(self._timers),
            )

    def last_sent(self, key: str) -> float | None:
        return self._cooldowns.get(key)

    @property
    def cooldowns(self) -> dict[str, float]:
        return dict(self._cooldowns)

    def mark(self, key: str, sent_at: float) -> None:
        """Record *key* as sent at *sent_at* and persist immediately."""
        self._cooldowns[key] = sent_at
        self.save()

    @property
    def timers(self) -> dict[str, Any]:
        return dict(self._timers)

    def set_timers(self, timers: dict[str, Any]) -> None:
        """Replace the persisted timer snapshot and persist."""
        self._timers = dict(timers)
        self.save()

    def save(self) -> None:
        if self._path is None:
            return
        on_disk = self._read()
        merged = dict(on_disk["cooldowns"])
        for key, ts in self._cooldowns.items():
            if ts >= merged.get(key, float("-inf")):
                merged[key] = ts
        self._cooldowns = merged

        payload = {
            "version": _STATE_VERSION,
            "cooldowns": self._cooldowns,
            "timers": self._timers,
        }
        self._write_atomic(payload)

    # ── Internal ────────────────────────────────────────────────

    def _read(self) -> dict[str, Any]:
        empty: dict[str, Any] = {"cooldowns": {}, "timers": {}}
        if self._path is None or not self._path.exists():
            return empty
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("cooldown_state_unreadable", path=str(self._path), error=str(exc))
            return empty
        if not isinstance(raw, dict):
            logger.warning("cooldown_state_unreadable", path=str(self._path), error="not a mapping")
            return empty

        entries = raw.get("cooldowns") or {}
        if not isinstance(entries, dict):
            logger.warning("cooldown_state_unreadable", path=str(self._path), error="cooldowns not a mapping")
            entries = {}
        cooldowns: dict[str, float] = {}
        for key, ts in entries.items():
            try:
                cooldowns[str(key)] = float(ts)
            except (TypeError, ValueError):
                logger.warning("cooldown_entry_skipped", key=key)
        timers = raw.get("timers") or {}
        return {"cooldowns": cooldowns, "timers": timers if isinstance(timers, dict) else {}}

    def _write_atomic(self, payload: dict[str, Any]) -> None:
        assert self._path is not None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(payload, f, indent=2, sort_keys=True)
                    f.write("\n")
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise StateFileError(f"cannot write {self._path}: {exc}") from exc
