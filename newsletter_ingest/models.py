"""Data models for the newsletter ingestion pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from urllib.parse import urlencode

from pydantic import BaseModel, Field

# Short subject -> prose.  Insertion order is display order.
SummaryResult = dict[str, str]


@dataclass(frozen=True)
class RawMessage:
    """Raw EML bytes plus the content key they were fetched under."""

    content_key: str
    raw_bytes: bytes


@dataclass(frozen=True)
class ParsedMessage:
    """Fields extracted from a raw message.  Any field may be ``None``
    when the message was malformed.
    """

    sender_display_name: str | None = None
    sender_email: str | None = None
    subject: str | None = None
    html_body: str | None = None
    received_at: datetime | None = None


class NewsletterSource(BaseModel):
    """Registry snapshot of a newsletter the pipeline can route mail to."""

    model_config = {"frozen": True}

    id: int = Field(description="Newsletter id")
    canonical_name: str = Field(description="Publisher name as registered")
    language: str = Field(default="ko", description="Language the newsletter is written in")
    known_email_addresses: frozenset[str] = Field(
        default_factory=frozenset,
        description="Sender addresses registered for this newsletter",
    )
    operating_status: bool = Field(default=True, description="Whether the newsletter is active")


class MatchedBy(str, Enum):
    """Which resolution strategy attached a message to a newsletter."""

    FROM_NAME = "from_name"
    HTML_BODY = "html_body"
    EMAIL = "email"
    DOMAIN = "domain"
    NONE = "none"


@dataclass(frozen=True)
class MatchResult:
    newsletter_id: int | None
    matched_by: MatchedBy

    @property
    def matched(self) -> bool:
        return self.newsletter_id is not None


NO_MATCH = MatchResult(newsletter_id=None, matched_by=MatchedBy.NONE)


class DeliveryChannel(BaseModel):
    """A notification destination subscribed to a newsletter."""

    channel_external_id: str = Field(description="Destination id; deduplication key")
    endpoint: str = Field(description="Webhook URL the notification is posted to")
    tenant_label: str = Field(default="", description="Workspace/team name of the destination")


class MessageRecord(BaseModel):
    """Durable record of an ingested message."""

    id: int | None = Field(default=None, description="Storage id, set on insert")
    content_key: str = Field(description="Content store key of the raw message (unique)")
    subject: str | None = Field(default=None, description="Message subject")
    sender_email: str | None = Field(default=None, description="Sender address as received")
    newsletter_id: int = Field(description="Resolved newsletter id")
    summary: SummaryResult = Field(description="Ordered summary entries")
    translated_body: str | None = Field(
        default=None,
        description="Translation of the body; null when the newsletter needs none",
    )
    received_at: datetime | None = Field(default=None, description="Date header of the message")

    def read_link(self, base_url: str, **tracking: str) -> str:
        """Reader URL for this message, with optional tracking parameters."""
        params = {"mail": self.content_key, **tracking}
        return f"{base_url}?{urlencode(params)}"


class PipelineState(str, Enum):
    """Where an ingestion run ended up."""

    FETCHED = "fetched"
    PARSED = "parsed"
    RESOLVED = "resolved"
    SUMMARIZED = "summarized"
    PERSISTED = "persisted"
    NOTIFIED = "notified"
    REJECTED_UNKNOWN_SOURCE = "rejected_unknown_source"
    FAILED_PERSIST = "failed_persist"
    FAILED_FETCH = "failed_fetch"


class IngestResult(BaseModel):
    """Outcome of ``IngestionPipeline.ingest``."""

    state: PipelineState
    content_key: str
    newsletter_id: int | None = None
    message_id: int | None = None
    matched_by: MatchedBy = MatchedBy.NONE
    duplicate: bool = Field(
        default=False,
        description="True when the record already existed and nothing was re-sent",
    )
    error: str | None = None

    @property
    def ok(self) -> bool:
        if self.duplicate:
            return self.state == PipelineState.PERSISTED
        return self.state == PipelineState.NOTIFIED


@dataclass
class FanoutReport:
    """Channel external ids by delivery outcome."""

    delivered: list[str] = field(default_factory=list)
    skipped_duplicates: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
