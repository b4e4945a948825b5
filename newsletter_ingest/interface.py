"""Abstract interfaces for the collaborators the pipeline consumes.

The orchestrator receives instances of these at construction, so the
storage, oracle and messaging backends can be swapped (and faked in
tests) without touching pipeline code.
"""

from __future__ import annotations

import abc
from datetime import datetime
from typing import Any

from .models import DeliveryChannel, MessageRecord, NewsletterSource, ParsedMessage, SummaryResult


class ContentStore(abc.ABC):
    """Where raw message blobs live, addressed by content key."""

    @abc.abstractmethod
    async def fetch(self, content_key: str) -> bytes:
        """Return the raw bytes; raise :class:`ContentFetchError` if unavailable."""

    @abc.abstractmethod
    async def list(self) -> list[str]:
        """Return every content key in the store."""


class SourceRegistry(abc.ABC):
    """Registry of newsletter sources.  Read fresh on every call."""

    @abc.abstractmethod
    async def list_newsletter_sources(self) -> list[NewsletterSource]:
        ...

    @abc.abstractmethod
    async def load_by_id(self, newsletter_id: int) -> NewsletterSource:
        """Raise :class:`SourceNotFoundError` when the id is unknown."""

    @abc.abstractmethod
    async def touch_last_received(self, newsletter_id: int, timestamp: datetime) -> None:
        ...


class RecordStore(abc.ABC):
    """Durable message records, unique by content key."""

    @abc.abstractmethod
    async def insert(self, record: MessageRecord) -> int:
        """Persist *record* and return its id.

        Raise :class:`DuplicateRecordError` when the content key exists.
        """

    @abc.abstractmethod
    async def find_by_content_key(self, content_key: str) -> MessageRecord | None:
        ...

    @abc.abstractmethod
    async def update_summary(self, record_id: int, summary: SummaryResult) -> None:
        ...


class SubscriptionIndex(abc.ABC):
    @abc.abstractmethod
    async def channels_for_newsletter(self, newsletter_id: int) -> list[DeliveryChannel]:
        """Channels subscribed to the newsletter, in listing order.

        Several entries may share a ``channel_external_id``.
        """


class CompletionOracle(abc.ABC):
    """Single-turn language model completion.  May fail transiently."""

    @abc.abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_text: str,
        *,
        json_output: bool = False,
    ) -> str:
        ...


class NotificationTransport(abc.ABC):
    @abc.abstractmethod
    async def deliver(self, endpoint: str, payload: dict[str, Any]) -> None:
        """Post *payload* to *endpoint*; raise on delivery failure."""


class AlertSink(abc.ABC):
    """Operator-visible side channel."""

    @abc.abstractmethod
    async def message_received(self, parsed: ParsedMessage, content_key: str) -> None:
        ...

    @abc.abstractmethod
    async def unknown_sender(self, parsed: ParsedMessage, content_key: str) -> None:
        """Report a message no newsletter source matched.

        Must carry enough detail (address, display name, subject, content
        key) for an operator to register the missing source.
        """

