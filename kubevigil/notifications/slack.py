"""Slack incoming-webhook notification channel.

Posts one attachment per alert, coloured by severity (green once recovered),
with a single mrkdwn section block. Slack answers a successful webhook post
with the literal body ``ok``; anything else is a delivery failure.
"""

from __future__ import annotations

import httpx
import structlog

from kubevigil.errors import DeliveryError
from kubevigil.models.alerts import COLOR_GREEN, Alert, AlertStatus, Severity
from kubevigil.notifications.manager import NotificationChannel

_log = structlog.get_logger(component="notifications.slack")

_ICON_EMOJI = ":kubevigil:"
_USERNAME = "KubeVigil"
_PREFIX_ALERTING = "*[Alerting]* "
_PREFIX_RECOVERED = "*[Recovered]* "


class SlackNotificationChannel(NotificationChannel):
    """Delivers alerts to a Slack channel through an incoming webhook.

    Args:
        webhook_url: Slack incoming webhook URL.
        channel:     Channel name, e.g. ``#alerts``.
        severity:    Severity applied to alerts that carry none.
        timeout:     HTTP request timeout in seconds. Defaults to 10.
    """

    def __init__(
        self,
        webhook_url: str,
        channel: str,
        severity: Severity = Severity.DEFAULT,
        timeout: float = 10.0,
    ) -> None:
        if not webhook_url:
            raise ValueError("Slack webhook_url must not be empty")
        self._webhook_url = webhook_url
        self._channel = channel
        self._severity = severity
        self._timeout = timeout

    @property
    def channel_name(self) -> str:
        return "slack"

    async def send(self, alert: Alert) -> None:
        payload = self.build_payload(alert)
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(self._webhook_url, json=payload)
        except httpx.TimeoutException as exc:
            _log.warning("slack_request_timeout", channel=self._channel)
            raise DeliveryError(f"slack request timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise DeliveryError(f"slack request failed: {exc}") from exc

        if response.text != "ok":
            raise DeliveryError(f"non-ok response returned from slack: {response.text[:200]}")

    def build_payload(self, alert: Alert) -> dict[str, object]:
        """Render *alert* into the webhook request body.

        Raises:
            DeliveryError: the alert is missing kind, name or message, or its
                message template cannot be rendered.
        """
        if not alert.resource_kind or not alert.resource_name or not alert.message:
            raise DeliveryError("alert's resource kind, resource name, and message are required")

        severity = alert.severity if alert.severity != Severity.DEFAULT else self._severity
        alert = alert.copy(severity=severity)
        prefix, color = _PREFIX_ALERTING, severity.color
        if alert.status == AlertStatus.RECOVERING:
            prefix, color = _PREFIX_RECOVERED, COLOR_GREEN

        try:
            message = alert.render()
        except ValueError as exc:
            raise DeliveryError(str(exc)) from exc

        return {
            "channel": self._channel,
            "icon_emoji": _ICON_EMOJI,
            "username": _USERNAME,
            "attachments": [
                {
                    "color": color,
                    "blocks": [
                        {
                            "type": "section",
                            "text": {"type": "mrkdwn", "text": prefix + message},
                        }
                    ],
                }
            ],
        }
