"""Tests for the Slack and generic webhook notification channels."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from kubevigil.errors import DeliveryError
from kubevigil.models.alerts import COLOR_GREEN, COLOR_ORANGE, COLOR_YELLOW, Alert, AlertStatus, Severity
from kubevigil.notifications.slack import SlackNotificationChannel
from kubevigil.notifications.webhook import WebhookNotificationChannel


def _alert(**kwargs: object) -> Alert:
    defaults: dict[str, object] = {
        "resource_kind": "Secret",
        "resource_name": "default/db",
        "message": "Secret is not being used",
        "status": AlertStatus.PENDING,
    }
    defaults.update(kwargs)
    return Alert(**defaults)  # type: ignore[arg-type]


def _response(status_code: int, text: str) -> httpx.Response:
    return httpx.Response(status_code, text=text, request=httpx.Request("POST", "https://example.invalid"))


# ---------------------------------------------------------------------------
# Slack
# ---------------------------------------------------------------------------


class TestSlackPayload:
    def test_alerting_payload(self) -> None:
        channel = SlackNotificationChannel("https://hooks.example/x", "#alerts", severity=Severity.WARNING)
        payload = channel.build_payload(_alert())

        assert payload["channel"] == "#alerts"
        assert payload["icon_emoji"] == ":kubevigil:"
        assert payload["username"] == "KubeVigil"
        attachment = payload["attachments"][0]  # type: ignore[index]
        assert attachment["color"] == COLOR_YELLOW
        text = attachment["blocks"][0]["text"]
        assert text["type"] == "mrkdwn"
        assert text["text"] == "*[Alerting]* [warning] Secret `default/db` Secret is not being used"

    def test_alert_severity_wins_over_channel_default(self) -> None:
        channel = SlackNotificationChannel("https://hooks.example/x", "#alerts", severity=Severity.WARNING)
        payload = channel.build_payload(_alert(severity=Severity.CRITICAL))
        assert payload["attachments"][0]["color"] == COLOR_ORANGE  # type: ignore[index]

    def test_recovered_payload_is_green(self) -> None:
        channel = SlackNotificationChannel("https://hooks.example/x", "#alerts")
        payload = channel.build_payload(_alert(status=AlertStatus.RECOVERING, severity=Severity.FATAL))
        attachment = payload["attachments"][0]  # type: ignore[index]
        assert attachment["color"] == COLOR_GREEN
        assert attachment["blocks"][0]["text"]["text"].startswith("*[Recovered]* ")

    @pytest.mark.parametrize("missing", ["resource_kind", "resource_name", "message"])
    def test_incomplete_alert_is_rejected(self, missing: str) -> None:
        channel = SlackNotificationChannel("https://hooks.example/x", "#alerts")
        with pytest.raises(DeliveryError, match="required"):
            channel.build_payload(_alert(**{missing: ""}))

    def test_empty_url_rejected(self) -> None:
        with pytest.raises(ValueError):
            SlackNotificationChannel("", "#alerts")


class TestSlackSend:
    async def test_ok_body(self) -> None:
        channel = SlackNotificationChannel("https://hooks.example/x", "#alerts")
        with patch.object(httpx.AsyncClient, "post", new=AsyncMock(return_value=_response(200, "ok"))) as post:
            await channel.send(_alert())
        assert post.await_args.kwargs["json"]["channel"] == "#alerts"

    async def test_non_ok_body_is_failure(self) -> None:
        channel = SlackNotificationChannel("https://hooks.example/x", "#alerts")
        with patch.object(httpx.AsyncClient, "post", new=AsyncMock(return_value=_response(200, "invalid_token"))):
            with pytest.raises(DeliveryError, match="invalid_token"):
                await channel.send(_alert())

    async def test_transport_error_is_failure(self) -> None:
        channel = SlackNotificationChannel("https://hooks.example/x", "#alerts")
        with patch.object(httpx.AsyncClient, "post", new=AsyncMock(side_effect=httpx.ConnectError("refused"))):
            with pytest.raises(DeliveryError):
                await channel.send(_alert())


# ---------------------------------------------------------------------------
# Generic webhook
# ---------------------------------------------------------------------------


class TestWebhook:
    async def test_posts_alert_json(self) -> None:
        channel = WebhookNotificationChannel("https://example.com/hook", headers={"Authorization": "Bearer t"})
        with patch.object(httpx.AsyncClient, "post", new=AsyncMock(return_value=_response(204, ""))) as post:
            await channel.send(_alert())

        kwargs = post.await_args.kwargs
        assert kwargs["json"]["resourceName"] == "default/db"
        assert kwargs["json"]["renderedMessage"].endswith("Secret is not being used")
        assert kwargs["headers"]["Authorization"] == "Bearer t"

    async def test_non_2xx_is_failure(self) -> None:
        channel = WebhookNotificationChannel("https://example.com/hook")
        with patch.object(httpx.AsyncClient, "post", new=AsyncMock(return_value=_response(500, "oops"))):
            with pytest.raises(DeliveryError, match="500"):
                await channel.send(_alert())

    async def test_timeout_is_failure(self) -> None:
        channel = WebhookNotificationChannel("https://example.com/hook")
        with patch.object(httpx.AsyncClient, "post", new=AsyncMock(side_effect=httpx.ReadTimeout("slow"))):
            with pytest.raises(DeliveryError, match="timed out"):
                await channel.send(_alert())
