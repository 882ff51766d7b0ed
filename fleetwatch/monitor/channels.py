"""Notification channels — terminal, Telegram, Discord and SendGrid e-mail delivery."""

from __future__ import annotations

import abc
import sys
from html import escape as html_escape
from typing import Any, TextIO

import aiohttp
import structlog

from fleetwatch.core.config import DiscordConfig, EmailConfig, TelegramConfig
from fleetwatch.monitor.exceptions import NotifierFailed
from fleetwatch.monitor.types import AlertMessage, Severity

logger = structlog.get_logger(__name__)

# Discord embed colours keyed by severity.
_DISCORD_COLORS: dict[Severity, int] = {
    Severity.DEBUG: 0x95A5A6,    # grey
    Severity.INFO: 0x2ECC71,     # green
    Severity.WARNING: 0xF39C12,  # orange
    Severity.CRITICAL: 0xE74C3C, # red
}


def render_plain(msg: AlertMessage) -> str:
    """Plain-text body: message body followed by ``key: value`` field lines."""
    parts: list[str] = []
    if msg.body:
        parts.append(msg.body)
    if msg.fields:
        parts.append("\n".join(f"  {k}: {v}" for k, v in msg.fields.items()))
    return "\n\n".join(parts)


class NotificationChannel(abc.ABC):
    """Base class for alert delivery channels."""

    @abc.abstractmethod
    async def send(self, msg: AlertMessage) -> bool:
        """Send an alert message. Returns True on success."""

    @abc.abstractmethod
    async def close(self) -> None:
        """Release resources (HTTP sessions, etc.)."""


class TerminalChannel(NotificationChannel):
    """Echoes alerts to the invoking terminal; the fallback when nothing else is configured."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream

    async def send(self, msg: AlertMessage) -> bool:
        stream = self._stream or sys.stdout
        text = render_plain(msg)
        print(f"[{msg.severity.name}] {msg.title}", file=stream)
        if text:
            print(text, file=stream)
        stream.flush()
        return True

    async def close(self) -> None:
        pass


class _HttpChannel(NotificationChannel):
    """Shared aiohttp session handling for webhook-style channels."""

    _name = "http"

    def __init__(self) -> None:
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=15))
        return self._session

    async def _post(
        self,
        url: str,
        payload: dict[str, Any],
        ok_statuses: tuple[int, ...],
        headers: dict[str, str] | None = None,
    ) -> None:
        session = self._get_session()
        try:
            async with session.post(url, json=payload, headers=headers) as resp:
                if resp.status in ok_statuses:
                    return
                body = await resp.text()
                raise NotifierFailed(f"{self._name} returned HTTP {resp.status}: {body[:200]}")
        except aiohttp.ClientError as exc:
            raise NotifierFailed(f"{self._name} request failed: {exc}") from exc

    async def send(self, msg: AlertMessage) -> bool:
        try:
            await self._deliver(msg)
        except NotifierFailed as exc:
            logger.warning(f"{self._name}_send_failed", error=str(exc), title=msg.title)
            return False
        except Exception:
            logger.exception(f"{self._name}_send_error", title=msg.title)
            return False
        return True

    @abc.abstractmethod
    async def _deliver(self, msg: AlertMessage) -> None:
        """Deliver *msg*; raise NotifierFailed on a rejected request."""

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None


class TelegramChannel(_HttpChannel):
    """Delivers alerts via the Telegram Bot API (HTML parse mode)."""

    _name = "telegram"

    def __init__(self, config: TelegramConfig) -> None:
        super().__init__()
        self._token = config.bot_token.get_secret_value()
        self._chat_id = config.chat_id

    async def _deliver(self, msg: AlertMessage) -> None:
        text_parts = [f"<b>{html_escape(msg.title)}</b>"]
        if msg.body:
            text_parts.append(html_escape(msg.body))
        if msg.fields:
            lines = [
                f"  <code>{html_escape(k)}</code>: {html_escape(v)}"
                for k, v in msg.fields.items()
            ]
            text_parts.append("\n".join(lines))

        payload = {
            "chat_id": self._chat_id,
            "text": "\n".join(text_parts),
            "parse_mode": "HTML",
        }
        url = f"https://api.telegram.org/bot{self._token}/sendMessage"
        await self._post(url, payload, ok_statuses=(200,))


class DiscordChannel(_HttpChannel):
    """Delivers alerts via a Discord webhook with colour-coded embeds."""

    _name = "discord"

    def __init__(self, config: DiscordConfig) -> None:
        super().__init__()
        self._webhook_url = config.webhook_url.get_secret_value()

    async def _deliver(self, msg: AlertMessage) -> None:
        embed: dict[str, Any] = {
            "title": msg.title[:256],
            "color": _DISCORD_COLORS.get(msg.severity, 0x95A5A6),
        }
        if msg.body:
            embed["description"] = msg.body[:4000]
        if msg.fields:
            embed["fields"] = [
                {"name": k, "value": v, "inline": True}
                for k, v in msg.fields.items()
            ]
        await self._post(self._webhook_url, {"embeds": [embed]}, ok_statuses=(200, 204))


class EmailChannel(_HttpChannel):
    """Plain-text e-mail through the SendGrid v3 API (202 Accepted on success)."""

    _name = "email"

    def __init__(self, config: EmailConfig, sender_name: str = "Fleetwatch") -> None:
        super().__init__()
        self._api_key = config.api_key.get_secret_value()
        self._from = config.from_email
        self._to = config.to_email
        self._url = config.api_url
        self._sender_name = sender_name

    async def _deliver(self, msg: AlertMessage) -> None:
        if not (self._api_key and self._from and self._to):
            raise NotifierFailed("email channel is missing api_key, from_email or to_email")
        payload = {
            "personalizations": [{"to": [{"email": self._to}], "subject": msg.title}],
            "from": {"email": self._from, "name": self._sender_name},
            "content": [{"type": "text/plain", "value": render_plain(msg) or msg.title}],
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}
        await self._post(self._url, payload, ok_statuses=(202,), headers=headers)
