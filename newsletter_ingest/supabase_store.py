"""Supabase-backed registry, record store and subscription index.

The supabase client is synchronous; every query runs in
``asyncio.to_thread()`` to keep the event loop free.

Tables used: ``newsletter``, ``newsletter_email_addresses``, ``mail``,
``subscribe`` and ``channel``.
"""

from __future__ import annotations

import asyncio
import json
from collections import defaultdict
from datetime import datetime
from typing import Any

import structlog
from postgrest.exceptions import APIError
from supabase import Client, create_client

from .config import SupabaseConfig
from .errors import DuplicateRecordError, SourceNotFoundError
from .interface import RecordStore, SourceRegistry, SubscriptionIndex
from .models import DeliveryChannel, MessageRecord, NewsletterSource, SummaryResult

logger = structlog.get_logger()

_UNIQUE_VIOLATION = "23505"


def create_supabase_client(config: SupabaseConfig) -> Client:
    return create_client(config.url, config.service_role_key.get_secret_value())


def _encode_summary(summary: SummaryResult) -> str:
    # jsonb reorders object keys, so the summary is kept as JSON text.
    return json.dumps(summary, ensure_ascii=False)


def _decode_summary(value: Any) -> SummaryResult:
    if isinstance(value, str):
        return json.loads(value)
    return dict(value or {})


class SupabaseSourceRegistry(SourceRegistry):
    """Newsletter sources with their registered sender addresses."""

    def __init__(self, client: Client) -> None:
        self._client = client

    async def list_newsletter_sources(self) -> list[NewsletterSource]:
        return await asyncio.to_thread(self._list_sync)

    def _list_sync(self) -> list[NewsletterSource]:
        newsletters = self._client.table("newsletter").select("*").order("id").execute().data
        address_rows = (
            self._client.table("newsletter_email_addresses")
            .select("newsletter_id, email_address")
            .execute()
            .data
        )
        addresses: dict[int, set[str]] = defaultdict(set)
        for row in address_rows:
            addresses[row["newsletter_id"]].add(row["email_address"])

        sources = [_to_source(row, addresses[row["id"]]) for row in newsletters]
        logger.debug("newsletter_sources_loaded", count=len(sources))
        return sources

    async def load_by_id(self, newsletter_id: int) -> NewsletterSource:
        return await asyncio.to_thread(self._load_sync, newsletter_id)

    def _load_sync(self, newsletter_id: int) -> NewsletterSource:
        rows = (
            self._client.table("newsletter").select("*").eq("id", newsletter_id).limit(1).execute().data
        )
        if not rows:
            raise SourceNotFoundError(newsletter_id)
        address_rows = (
            self._client.table("newsletter_email_addresses")
            .select("email_address")
            .eq("newsletter_id", newsletter_id)
            .execute()
            .data
        )
        return _to_source(rows[0], {r["email_address"] for r in address_rows})

    async def touch_last_received(self, newsletter_id: int, timestamp: datetime) -> None:
        await asyncio.to_thread(
            lambda: self._client.table("newsletter")
            .update({"last_recv_at": timestamp.isoformat()})
            .eq("id", newsletter_id)
            .execute()
        )


def _to_source(row: dict[str, Any], addresses: set[str]) -> NewsletterSource:
    return NewsletterSource(
        id=row["id"],
        canonical_name=row["name"],
        language=row.get("language") or "ko",
        known_email_addresses=frozenset(addresses),
        operating_status=bool(row.get("operating_status", True)),
    )


class SupabaseRecordStore(RecordStore):
    """Message records in the ``mail`` table, unique on ``s3_object_key``."""

    def __init__(self, client: Client) -> None:
        self._client = client

    async def insert(self, record: MessageRecord) -> int:
        row = {
            "s3_object_key": record.content_key,
            "subject": record.subject,
            "summary_list": _encode_summary(record.summary),
            "translated_body": record.translated_body,
            "newsletter_id": record.newsletter_id,
            "recv_at": record.received_at.isoformat() if record.received_at else None,
        }
        try:
            response = await asyncio.to_thread(
                lambda: self._client.table("mail").insert(row).execute()
            )
        except APIError as exc:
            if exc.code == _UNIQUE_VIOLATION:
                raise DuplicateRecordError(record.content_key) from exc
            raise
        return response.data[0]["id"]

    async def find_by_content_key(self, content_key: str) -> MessageRecord | None:
        response = await asyncio.to_thread(
            lambda: self._client.table("mail")
            .select("*")
            .eq("s3_object_key", content_key)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        row = response.data[0]
        return MessageRecord(
            id=row["id"],
            content_key=row["s3_object_key"],
            subject=row.get("subject"),
            newsletter_id=row["newsletter_id"],
            summary=_decode_summary(row.get("summary_list")),
            translated_body=row.get("translated_body"),
            received_at=row.get("recv_at"),
        )

    async def update_summary(self, record_id: int, summary: SummaryResult) -> None:
        await asyncio.to_thread(
            lambda: self._client.table("mail")
            .update({"summary_list": _encode_summary(summary)})
            .eq("id", record_id)
            .execute()
        )


class SupabaseSubscriptionIndex(SubscriptionIndex):
    """Channels owned by the users subscribed to a newsletter."""

    def __init__(self, client: Client) -> None:
        self._client = client

    async def channels_for_newsletter(self, newsletter_id: int) -> list[DeliveryChannel]:
        return await asyncio.to_thread(self._channels_sync, newsletter_id)

    def _channels_sync(self, newsletter_id: int) -> list[DeliveryChannel]:
        subscriptions = (
            self._client.table("subscribe")
            .select("user_id")
            .eq("newsletter_id", newsletter_id)
            .execute()
            .data
        )
        user_ids = sorted({row["user_id"] for row in subscriptions})
        if not user_ids:
            return []

        rows = (
            self._client.table("channel")
            .select("*")
            .in_("user_id", user_ids)
            .order("id")
            .execute()
            .data
        )
        return [
            DeliveryChannel(
                channel_external_id=row["slack_channel_id"],
                endpoint=row["webhook_url"],
                tenant_label=row.get("team_name") or "",
            )
            for row in rows
        ]
