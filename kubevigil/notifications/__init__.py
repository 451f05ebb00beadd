"""Notification system for kubevigil.

Holds rule alerts per Notifier custom resource and delivers them to the
channels configured on that resource (Slack, generic webhook).

Exports:
    NotificationChannel        -- Abstract base for all channel implementations.
    Notifier                   -- Alert state machine for one Notifier resource.
    NotifierCache              -- Registry of notifiers by name.
    SlackNotificationChannel   -- Slack incoming-webhook channel.
    WebhookNotificationChannel -- Generic JSON POST webhook channel.
    build_channels             -- Channel factory from a Notifier spec.
    build_notifier             -- Notifier factory from a Notifier object.
"""

from __future__ import annotations

from typing import Any

import structlog

from kubevigil.models.alerts import Severity, parse_severity
from kubevigil.models.resources import KubeObject, object_name
from kubevigil.notifications.manager import NotificationChannel, Notifier, NotifierCache
from kubevigil.notifications.slack import SlackNotificationChannel
from kubevigil.notifications.webhook import WebhookNotificationChannel

_log = structlog.get_logger(component="notifications")

__all__ = [
    "NotificationChannel",
    "Notifier",
    "NotifierCache",
    "SlackNotificationChannel",
    "WebhookNotificationChannel",
    "apply_spec",
    "build_channels",
    "build_notifier",
]


def build_channels(spec: dict[str, Any], timeout: float = 10.0) -> list[NotificationChannel]:
    """Build the channels a Notifier spec configures.

    Slack is enabled when ``spec.slack.channel`` is set; the generic webhook
    when ``spec.webhook.url`` is set. A channel whose construction fails is
    logged and left out.
    """
    channels: list[NotificationChannel] = []

    # --- Slack ---
    slack = spec.get("slack") or {}
    if slack.get("channel"):
        try:
            channels.append(
                SlackNotificationChannel(
                    webhook_url=slack.get("webhookURL") or "",
                    channel=slack["channel"],
                    severity=parse_severity(slack.get("severity")),
                    timeout=timeout,
                )
            )
        except ValueError as exc:
            _log.warning("slack_channel_disabled", reason=str(exc))

    # --- Generic webhook ---
    webhook = spec.get("webhook") or {}
    if webhook.get("url"):
        try:
            channels.append(
                WebhookNotificationChannel(
                    url=webhook["url"],
                    severity=parse_severity(webhook.get("severity")),
                    timeout=timeout,
                )
            )
        except ValueError as exc:
            _log.warning("webhook_channel_disabled", reason=str(exc))

    return channels


def default_severity(spec: dict[str, Any]) -> Severity:
    for section in ("slack", "webhook"):
        severity = parse_severity((spec.get(section) or {}).get("severity"))
        if severity != Severity.DEFAULT:
            return severity
    return Severity.DEFAULT


def apply_spec(notifier: Notifier, obj: KubeObject, default_interval: int, timeout: float) -> None:
    """Refresh channels, interval and default severity from a Notifier object."""
    spec = obj.get("spec") or {}
    notifier.channels = build_channels(spec, timeout=timeout)
    notifier.notify_interval = int(spec.get("notifyInterval") or default_interval)
    notifier.default_severity = default_severity(spec)


def build_notifier(obj: KubeObject, default_interval: int = 60, timeout: float = 10.0) -> Notifier:
    """Create a Notifier from its custom resource, restoring persisted alerts."""
    notifier = Notifier(name=object_name(obj))
    apply_spec(notifier, obj, default_interval, timeout)
    notifier.load_status(obj.get("status"))
    if not notifier.channels:
        _log.info("notifier_has_no_channels", notifier=notifier.name)
    return notifier
