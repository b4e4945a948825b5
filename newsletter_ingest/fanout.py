"""Notification fan-out — one notification per distinct destination.

Several subscriptions can point at the same destination (e.g. two
users who connected the same Slack channel).  Channels are walked in
listing order; the first channel seen for an external id is used and
later ones with that id are skipped, so a destination never receives
the same message twice.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import structlog

from .interface import NotificationTransport
from .models import DeliveryChannel, FanoutReport, MessageRecord, NewsletterSource
from .slack import mrkdwn_section

logger = structlog.get_logger()


def build_notification_payload(
    record: MessageRecord,
    newsletter: NewsletterSource,
    channel: DeliveryChannel,
    read_link_base: str,
) -> dict[str, Any]:
    """Slack blocks: a header with the read link, then one block per summary entry."""
    read_link = record.read_link(
        read_link_base,
        utm_source="slack",
        utm_medium="bot",
        utm_campaign=channel.tenant_label,
    )
    blocks: list[dict[str, Any]] = [
        mrkdwn_section(
            f"{newsletter.canonical_name}의 새로운 소식이 도착했어요.\n"
            f"*<{read_link}|{record.subject or newsletter.canonical_name}>*"
        )
    ]
    for subject, content in record.summary.items():
        blocks.append({
            "type": "section",
            "text": {"type": "mrkdwn", "text": f"*{subject}*\n{content}"},
        })
    return {"blocks": blocks}


class NotificationFanout:
    """Deliver a persisted message to every distinct subscribed channel."""

    def __init__(self, transport: NotificationTransport, read_link_base: str) -> None:
        self._transport = transport
        self._read_link_base = read_link_base

    async def notify(
        self,
        record: MessageRecord,
        newsletter: NewsletterSource,
        channels: Sequence[DeliveryChannel],
    ) -> FanoutReport:
        report = FanoutReport()
        seen: set[str] = set()

        for channel in channels:
            external_id = channel.channel_external_id
            if external_id in seen:
                report.skipped_duplicates.append(external_id)
                continue
            seen.add(external_id)

            payload = build_notification_payload(record, newsletter, channel, self._read_link_base)
            try:
                await self._transport.deliver(channel.endpoint, payload)
            except Exception as exc:
                # No redelivery: one failed destination must not block the rest.
                logger.warning(
                    "notification_delivery_failed",
                    channel_external_id=external_id,
                    newsletter_id=newsletter.id,
                    error=str(exc),
                )
                report.failed.append(external_id)
                continue
            report.delivered.append(external_id)

        logger.info(
            "notification_fanout_complete",
            newsletter_id=newsletter.id,
            delivered=len(report.delivered),
            skipped_duplicates=len(report.skipped_duplicates),
            failed=len(report.failed),
        )
        return report
