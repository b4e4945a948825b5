"""Slack webhook clients: channel notifications and operator alerts."""

from __future__ import annotations

from typing import Any
from urllib.parse import urlencode

import httpx
import structlog

from .config import SlackConfig
from .interface import AlertSink, NotificationTransport
from .models import ParsedMessage

logger = structlog.get_logger()


def mrkdwn_section(text: str) -> dict[str, Any]:
    """A Slack section block with a single mrkdwn field."""
    return {"type": "section", "fields": [{"type": "mrkdwn", "text": text}]}


class SlackWebhookTransport(NotificationTransport):
    """Posts block payloads to Slack incoming-webhook URLs."""

    def __init__(self, config: SlackConfig) -> None:
        self._config = config
        self._client: httpx.AsyncClient | None = None

    async def start(self) -> None:
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._config.timeout_seconds))
        logger.info("slack_transport_started")

    async def stop(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            logger.info("slack_transport_stopped")

    async def deliver(self, endpoint: str, payload: dict[str, Any]) -> None:
        """POST *payload* as JSON.

        Raises :class:`httpx.HTTPStatusError` on non-2xx responses.
        """
        if self._client is None:
            raise AssertionError("Transport not started")
        response = await self._client.post(endpoint, json=payload)
        response.raise_for_status()


class SlackAlertSink(AlertSink):
    """Operator side-channel on two optional webhooks.

    An unset webhook URL disables that alert.  Alert failures are logged
    and never propagate into the pipeline.
    """

    def __init__(
        self,
        config: SlackConfig,
        transport: NotificationTransport,
        read_link_base: str,
    ) -> None:
        self._config = config
        self._transport = transport
        self._read_link_base = read_link_base

    def _read_link(self, content_key: str) -> str:
        return f"{self._read_link_base}?{urlencode({'mail': content_key})}"

    async def message_received(self, parsed: ParsedMessage, content_key: str) -> None:
        text = (
            f"email : {parsed.sender_email}\n"
            f"id : {parsed.sender_display_name}\n"
            f"*<{self._read_link(content_key)}|{parsed.subject or ''}>*"
        )
        await self._post(self._config.logging_webhook_url, text, alert="message_received")

    async def unknown_sender(self, parsed: ParsedMessage, content_key: str) -> None:
        text = (
            f"{parsed.sender_email}\n"
            "is unknown email address\n"
            f"뉴스레터: {parsed.sender_display_name}\n"
            f"제목: {parsed.subject or ''}\n"
            f"링크: {self._read_link(content_key)}\n"
            f"S3 OBJ KEY: {content_key}"
        )
        await self._post(self._config.unknown_sender_webhook_url, text, alert="unknown_sender")

    async def _post(self, webhook_url: str | None, text: str, *, alert: str) -> None:
        if not webhook_url:
            return
        try:
            await self._transport.deliver(webhook_url, {"blocks": [mrkdwn_section(text)]})
        except Exception as exc:
            logger.warning("alert_delivery_failed", alert=alert, error=str(exc))
