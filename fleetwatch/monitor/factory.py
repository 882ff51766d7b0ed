"""Convenience factory for wiring the alerting stack."""

from __future__ import annotations

from typing import TextIO

from fleetwatch.core.config import AlertsConfig
from fleetwatch.monitor.channels import (
    DiscordChannel,
    EmailChannel,
    NotificationChannel,
    TelegramChannel,
    TerminalChannel,
)
from fleetwatch.monitor.cooldown import CooldownStore
from fleetwatch.monitor.dispatcher import AlertDispatcher


def create_monitor_stack(
    config: AlertsConfig,
    stream: TextIO | None = None,
) -> AlertDispatcher:
    """Build a dispatcher with its cooldown store and enabled channels from config.

    The terminal channel is added when ``echo_to_terminal`` is set, and always
    when no other channel is enabled, so alerts are never dropped silently.
    """
    channels: list[NotificationChannel] = []

    if config.telegram.enabled:
        channels.append(TelegramChannel(config.telegram))

    if config.discord.enabled:
        channels.append(DiscordChannel(config.discord))

    if config.email.enabled:
        channels.append(EmailChannel(config.email))

    if config.echo_to_terminal or not channels:
        channels.insert(0, TerminalChannel(stream))

    return AlertDispatcher(
        channels=channels,
        cooldown_store=CooldownStore(config.state_file or None),
        cooldown_secs=config.cooldown_secs,
    )
