"""Tests for the monitor factory — wiring logic with various config combinations."""

from __future__ import annotations

import io
from pathlib import Path

from pydantic import SecretStr

from fleetwatch.core.config import AlertsConfig, DiscordConfig, EmailConfig, TelegramConfig
from fleetwatch.monitor.channels import DiscordChannel, EmailChannel, TelegramChannel, TerminalChannel
from fleetwatch.monitor.dispatcher import AlertDispatcher
from fleetwatch.monitor.factory import create_monitor_stack


def _alerts(tmp_path: Path, **kw: object) -> AlertsConfig:
    defaults: dict[str, object] = {"state_file": str(tmp_path / "state.json")}
    defaults.update(kw)
    return AlertsConfig(**defaults)  # type: ignore[arg-type]


class TestFactoryWiring:
    def test_terminal_fallback_when_nothing_enabled(self, tmp_path: Path) -> None:
        disp = create_monitor_stack(_alerts(tmp_path, echo_to_terminal=False))
        assert isinstance(disp, AlertDispatcher)
        assert [type(c) for c in disp.channels] == [TerminalChannel]

    def test_all_channels(self, tmp_path: Path) -> None:
        config = _alerts(
            tmp_path,
            telegram=TelegramConfig(enabled=True, bot_token=SecretStr("tok"), chat_id="1"),
            discord=DiscordConfig(enabled=True, webhook_url=SecretStr("https://discord.com/webhook")),
            email=EmailConfig(enabled=True, api_key=SecretStr("k"), from_email="a@x", to_email="b@x"),
        )
        disp = create_monitor_stack(config)
        assert [type(c) for c in disp.channels] == [TerminalChannel, TelegramChannel, DiscordChannel, EmailChannel]

    def test_no_terminal_echo_with_other_channel(self, tmp_path: Path) -> None:
        config = _alerts(
            tmp_path,
            echo_to_terminal=False,
            discord=DiscordConfig(enabled=True, webhook_url=SecretStr("https://discord.com/webhook")),
        )
        assert [type(c) for c in create_monitor_stack(config).channels] == [DiscordChannel]

    def test_state_file_and_cooldown(self, tmp_path: Path) -> None:
        disp = create_monitor_stack(_alerts(tmp_path, cooldown_secs=60))
        assert disp.cooldown_store.path == tmp_path / "state.json"

    async def test_terminal_stream(self, tmp_path: Path) -> None:
        out = io.StringIO()
        disp = create_monitor_stack(_alerts(tmp_path), stream=out)
        await disp.try_send("k", "[ALERT] hello")
        assert "[ALERT] hello" in out.getvalue()
