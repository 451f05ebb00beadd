"""Generic JSON webhook notification channel.

Posts the alert as a JSON body to any configured HTTP endpoint. The payload
uses the same camelCase keys as the persisted notifier status, plus the
rendered message, so consumers need no kubevigil-specific parsing.
"""

from __future__ import annotations

import httpx
import structlog

from kubevigil.errors import DeliveryError
from kubevigil.models.alerts import Alert, Severity
from kubevigil.notifications.manager import NotificationChannel

_log = structlog.get_logger(component="notifications.webhook")


class WebhookNotificationChannel(NotificationChannel):
    """Delivers alerts by POSTing a JSON payload to a configurable URL.

    Args:
        url:      Full endpoint URL (must be HTTPS in production).
        headers:  Optional extra headers (e.g. Authorization).
        severity: Severity applied to alerts that carry none.
        timeout:  HTTP request timeout in seconds. Defaults to 10.
    """

    def __init__(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        severity: Severity = Severity.DEFAULT,
        timeout: float = 10.0,
    ) -> None:
        if not url:
            raise ValueError("Webhook url must not be empty")
        self._url = url
        self._headers = headers or {}
        self._severity = severity
        self._timeout = timeout

    @property
    def channel_name(self) -> str:
        return "webhook"

    async def send(self, alert: Alert) -> None:
        """POST *alert* as JSON; any non-2xx response raises DeliveryError."""
        payload = self.build_payload(alert)
        request_headers = {
            "Content-Type": "application/json",
            **self._headers,
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(self._url, json=payload, headers=request_headers)
        except httpx.TimeoutException as exc:
            _log.warning("webhook_request_timeout", url=self._url)
            raise DeliveryError(f"webhook request timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            _log.warning("webhook_http_error", error=str(exc))
            raise DeliveryError(f"webhook request failed: {exc}") from exc

        if not response.is_success:
            _log.warning(
                "webhook_non_2xx_response",
                status_code=response.status_code,
                body=response.text[:200],
            )
            raise DeliveryError(f"webhook returned {response.status_code}")

    def build_payload(self, alert: Alert) -> dict[str, object]:
        if alert.severity == Severity.DEFAULT:
            alert = alert.copy(severity=self._severity)
        try:
            rendered = alert.render()
        except ValueError as exc:
            raise DeliveryError(str(exc)) from exc
        return {**alert.to_dict(), "renderedMessage": rendered}
