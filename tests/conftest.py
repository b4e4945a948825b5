"""Shared test fixtures and in-memory collaborators for the pipeline test suite."""

from __future__ import annotations

import email.policy
from collections.abc import Callable
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

import pytest

from newsletter_ingest.config import (
    OracleConfig,
    PipelineConfig,
    RetryConfig,
    S3Config,
    SlackConfig,
    SupabaseConfig,
)
from newsletter_ingest.errors import ContentFetchError, DuplicateRecordError, SourceNotFoundError
from newsletter_ingest.fanout import NotificationFanout
from newsletter_ingest.interface import (
    AlertSink,
    CompletionOracle,
    ContentStore,
    NotificationTransport,
    RecordStore,
    SourceRegistry,
    SubscriptionIndex,
)
from newsletter_ingest.models import (
    DeliveryChannel,
    MessageRecord,
    NewsletterSource,
    ParsedMessage,
    SummaryResult,
)
from newsletter_ingest.pipeline import IngestionPipeline
from newsletter_ingest.summarizer import Summarizer, Translator

READ_LINK_BASE = "https://reader.test/read"


# ------------------------------------------------------------------
# Configs
# ------------------------------------------------------------------


@pytest.fixture
def retry_config() -> RetryConfig:
    return RetryConfig(
        max_attempts=3,
        initial_wait_seconds=0.0,
        max_wait_seconds=0.0,
        multiplier=0.0,
    )


@pytest.fixture
def s3_config() -> S3Config:
    return S3Config(bucket="test-bucket", prefix="inbox", region="us-east-1")


@pytest.fixture
def slack_config() -> SlackConfig:
    return SlackConfig(
        logging_webhook_url="https://hooks.slack.test/logging",
        unknown_sender_webhook_url="https://hooks.slack.test/unknown",
        timeout_seconds=5.0,
    )


@pytest.fixture
def pipeline_config(
    s3_config: S3Config,
    slack_config: SlackConfig,
    retry_config: RetryConfig,
) -> PipelineConfig:
    return PipelineConfig(
        read_link_base=READ_LINK_BASE,
        s3=s3_config,
        supabase=SupabaseConfig(url="https://project.supabase.test", service_role_key="service-key"),
        oracle=OracleConfig(api_key="sk-test"),
        retry=retry_config,
        slack=slack_config,
    )


# ------------------------------------------------------------------
# Sample EML builders
# ------------------------------------------------------------------


def _build_html_email(
    *,
    from_header: str = '"뉴닉" <newsletter@newneek.co>',
    subject: str = "오늘의 뉴스",
    body_html: str = "<html><body><p>안녕하세요</p></body></html>",
    date: str | None = "Mon, 01 Jun 2025 12:00:00 +0000",
) -> bytes:
    msg = MIMEText(body_html, "html", "utf-8", policy=email.policy.default)
    msg["Subject"] = subject
    msg["From"] = from_header
    msg["To"] = "reader@mailpocket.test"
    if date:
        msg["Date"] = date
    return msg.as_bytes()


def _build_alternative_email(
    *,
    from_header: str = "Morning Brew <crew@morningbrew.com>",
    body_text: str = "Plain body",
    body_html: str = "<p>HTML body</p>",
) -> bytes:
    """Build a multipart/alternative email with text and HTML parts."""
    msg = MIMEMultipart("alternative", policy=email.policy.default)
    msg["Subject"] = "Multipart"
    msg["From"] = from_header
    msg["To"] = "reader@mailpocket.test"
    msg["Date"] = "Mon, 01 Jun 2025 12:00:00 +0000"
    msg.attach(MIMEText(body_text, "plain", "utf-8", policy=email.policy.default))
    msg.attach(MIMEText(body_html, "html", "utf-8", policy=email.policy.default))
    return msg.as_bytes()


# ------------------------------------------------------------------
# In-memory collaborators
# ------------------------------------------------------------------


class FakeContentStore(ContentStore):
    def __init__(self, blobs: dict[str, bytes] | None = None) -> None:
        self.blobs = dict(blobs or {})

    async def fetch(self, content_key: str) -> bytes:
        if content_key not in self.blobs:
            raise ContentFetchError(content_key, "NoSuchKey")
        return self.blobs[content_key]

    async def list(self) -> list[str]:
        return list(self.blobs)


class FakeRegistry(SourceRegistry):
    def __init__(self, sources: list[NewsletterSource] | None = None) -> None:
        self.sources = list(sources or [])
        self.touched: list[tuple[int, datetime]] = []
        self.list_calls = 0
        self.fail_touch = False

    async def list_newsletter_sources(self) -> list[NewsletterSource]:
        self.list_calls += 1
        return list(self.sources)

    async def load_by_id(self, newsletter_id: int) -> NewsletterSource:
        for source in self.sources:
            if source.id == newsletter_id:
                return source
        raise SourceNotFoundError(newsletter_id)

    async def touch_last_received(self, newsletter_id: int, timestamp: datetime) -> None:
        if self.fail_touch:
            raise RuntimeError("registry unavailable")
        self.touched.append((newsletter_id, timestamp))


class FakeRecordStore(RecordStore):
    def __init__(self) -> None:
        self.records: dict[str, MessageRecord] = {}
        self.insert_error: Exception | None = None
        self._next_id = 1

    async def insert(self, record: MessageRecord) -> int:
        if self.insert_error is not None:
            raise self.insert_error
        if record.content_key in self.records:
            raise DuplicateRecordError(record.content_key)
        record_id = self._next_id
        self._next_id += 1
        self.records[record.content_key] = record.model_copy(update={"id": record_id})
        return record_id

    async def find_by_content_key(self, content_key: str) -> MessageRecord | None:
        return self.records.get(content_key)

    async def update_summary(self, record_id: int, summary: SummaryResult) -> None:
        for key, record in self.records.items():
            if record.id == record_id:
                self.records[key] = record.model_copy(update={"summary": summary})
                return
        raise KeyError(record_id)


class FakeSubscriptions(SubscriptionIndex):
    def __init__(self, channels: dict[int, list[DeliveryChannel]] | None = None) -> None:
        self.channels = dict(channels or {})

    async def channels_for_newsletter(self, newsletter_id: int) -> list[DeliveryChannel]:
        return list(self.channels.get(newsletter_id, []))


class FakeOracle(CompletionOracle):
    """Scripted oracle.

    Summary calls (``json_output=True``) and translation calls consume
    their own reply lists; the last reply repeats once a list runs out.
    A reply that is an exception instance is raised instead of returned.
    """

    def __init__(
        self,
        summary: list[Any] | None = None,
        translation: list[Any] | None = None,
    ) -> None:
        self._summary = summary or ['{"제목": "내용"}']
        self._translation = translation or ["번역된 본문"]
        self.calls: list[dict[str, Any]] = []

    @property
    def summary_calls(self) -> list[dict[str, Any]]:
        return [c for c in self.calls if c["json_output"]]

    @property
    def translation_calls(self) -> list[dict[str, Any]]:
        return [c for c in self.calls if not c["json_output"]]

    async def complete(
        self,
        system_prompt: str,
        user_text: str,
        *,
        json_output: bool = False,
    ) -> str:
        replies = self._summary if json_output else self._translation
        seen = len(self.summary_calls if json_output else self.translation_calls)
        self.calls.append({
            "system_prompt": system_prompt,
            "user_text": user_text,
            "json_output": json_output,
        })
        reply = replies[min(seen, len(replies) - 1)]
        if isinstance(reply, Exception):
            raise reply
        return reply


class RecordingTransport(NotificationTransport):
    def __init__(self, failing_endpoints: set[str] | None = None) -> None:
        self.deliveries: list[tuple[str, dict[str, Any]]] = []
        self.failing_endpoints = set(failing_endpoints or ())

    async def deliver(self, endpoint: str, payload: dict[str, Any]) -> None:
        if endpoint in self.failing_endpoints:
            raise RuntimeError(f"delivery to {endpoint} failed")
        self.deliveries.append((endpoint, payload))

    @property
    def endpoints(self) -> list[str]:
        return [endpoint for endpoint, _ in self.deliveries]


class RecordingAlerts(AlertSink):
    def __init__(self) -> None:
        self.received: list[tuple[ParsedMessage, str]] = []
        self.unknown: list[tuple[ParsedMessage, str]] = []

    async def message_received(self, parsed: ParsedMessage, content_key: str) -> None:
        self.received.append((parsed, content_key))

    async def unknown_sender(self, parsed: ParsedMessage, content_key: str) -> None:
        self.unknown.append((parsed, content_key))


# ------------------------------------------------------------------
# Registry fixtures
# ------------------------------------------------------------------


@pytest.fixture
def newneek() -> NewsletterSource:
    return NewsletterSource(
        id=1,
        canonical_name="뉴닉",
        language="ko",
        known_email_addresses=frozenset({"newsletter@newneek.co"}),
    )


@pytest.fixture
def uppity() -> NewsletterSource:
    return NewsletterSource(
        id=2,
        canonical_name="UPPITY",
        language="ko",
        known_email_addresses=frozenset({"hello@uppity.co.kr"}),
    )


@pytest.fixture
def morning_brew() -> NewsletterSource:
    return NewsletterSource(
        id=3,
        canonical_name="Morning Brew",
        language="en",
        known_email_addresses=frozenset({"crew@morningbrew.com"}),
    )


@pytest.fixture
def sources(
    newneek: NewsletterSource,
    uppity: NewsletterSource,
    morning_brew: NewsletterSource,
) -> list[NewsletterSource]:
    return [newneek, uppity, morning_brew]


# ------------------------------------------------------------------
# Pipeline fixtures
# ------------------------------------------------------------------


@pytest.fixture
def content_store() -> FakeContentStore:
    return FakeContentStore()


@pytest.fixture
def registry(sources: list[NewsletterSource]) -> FakeRegistry:
    return FakeRegistry(sources)


@pytest.fixture
def records() -> FakeRecordStore:
    return FakeRecordStore()


@pytest.fixture
def subscriptions() -> FakeSubscriptions:
    return FakeSubscriptions()


@pytest.fixture
def oracle() -> FakeOracle:
    return FakeOracle()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def alerts() -> RecordingAlerts:
    return RecordingAlerts()


@pytest.fixture
def build_pipeline(
    content_store: FakeContentStore,
    registry: FakeRegistry,
    records: FakeRecordStore,
    subscriptions: FakeSubscriptions,
    transport: RecordingTransport,
    alerts: RecordingAlerts,
    retry_config: RetryConfig,
) -> Callable[[FakeOracle], IngestionPipeline]:
    """Factory for a pipeline over the shared fakes with a given oracle."""

    def _build(oracle: FakeOracle) -> IngestionPipeline:
        return IngestionPipeline(
            content_store=content_store,
            registry=registry,
            records=records,
            subscriptions=subscriptions,
            summarizer=Summarizer(oracle, retry_config),
            translator=Translator(oracle, retry_config),
            fanout=NotificationFanout(transport, READ_LINK_BASE),
            alerts=alerts,
        )

    return _build


@pytest.fixture
def pipeline(
    build_pipeline: Callable[[FakeOracle], IngestionPipeline],
    oracle: FakeOracle,
) -> IngestionPipeline:
    return build_pipeline(oracle)
