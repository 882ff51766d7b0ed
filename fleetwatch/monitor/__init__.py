"""Alerting, cooldowns, decision logging and status reporting."""

from fleetwatch.monitor.channels import (
    DiscordChannel,
    EmailChannel,
    NotificationChannel,
    TelegramChannel,
    TerminalChannel,
)
from fleetwatch.monitor.cooldown import CooldownStore
from fleetwatch.monitor.dispatcher import AlertDispatcher
from fleetwatch.monitor.exceptions import MonitorError, NotifierFailed, StateFileError
from fleetwatch.monitor.factory import create_monitor_stack
from fleetwatch.monitor.formatters import format_condition_alert, format_remediation_result
from fleetwatch.monitor.report import StatusReport, StatusRow
from fleetwatch.monitor.types import AlertMessage, Severity

__all__ = [
    "AlertDispatcher",
    "AlertMessage",
    "CooldownStore",
    "DiscordChannel",
    "EmailChannel",
    "MonitorError",
    "NotificationChannel",
    "NotifierFailed",
    "Severity",
    "StateFileError",
    "StatusReport",
    "StatusRow",
    "TelegramChannel",
    "TerminalChannel",
    "create_monitor_stack",
    "format_condition_alert",
    "format_remediation_result",
]
