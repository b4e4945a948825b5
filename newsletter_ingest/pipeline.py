"""IngestionPipeline — fetch, parse, resolve, summarize, persist, notify.

A run walks one raw message through::

    FETCHED → PARSED → RESOLVED → SUMMARIZED → PERSISTED → NOTIFIED

and stops early in ``REJECTED_UNKNOWN_SOURCE`` (no newsletter matched;
nothing is written), ``FAILED_FETCH`` or ``FAILED_PERSIST``.  The record
is written once, fully formed, after the summary and any translation
exist.  Runs share no state, so distinct messages may be ingested
concurrently; re-ingesting a content key is a benign duplicate.
"""

from __future__ import annotations

import functools
from datetime import UTC, datetime

import structlog

from .errors import ContentFetchError, DuplicateRecordError, RecordNotFoundError
from .fanout import NotificationFanout
from .interface import AlertSink, ContentStore, RecordStore, SourceRegistry, SubscriptionIndex
from .models import (
    IngestResult,
    MatchResult,
    MessageRecord,
    NewsletterSource,
    ParsedMessage,
    PipelineState,
    RawMessage,
    SummaryResult,
)
from .normalizer import COMPARABLE_BODY_MAX_LENGTH, HANGUL
from .parser import MessageParser
from .resolver import match_domain, match_email, match_from_name, match_html_body, resolve
from .summarizer import Summarizer, Translator

logger = structlog.get_logger()


class IngestionPipeline:
    """Compose the ingestion steps over injected collaborators."""

    def __init__(
        self,
        *,
        content_store: ContentStore,
        registry: SourceRegistry,
        records: RecordStore,
        subscriptions: SubscriptionIndex,
        summarizer: Summarizer,
        translator: Translator,
        fanout: NotificationFanout,
        alerts: AlertSink,
        comparable_body_max_length: int = COMPARABLE_BODY_MAX_LENGTH,
        script: str = HANGUL,
    ) -> None:
        self._content_store = content_store
        self._registry = registry
        self._records = records
        self._subscriptions = subscriptions
        self._summarizer = summarizer
        self._translator = translator
        self._fanout = fanout
        self._alerts = alerts
        self._parser = MessageParser()
        self._strategies = (
            functools.partial(match_from_name, script=script),
            functools.partial(
                match_html_body,
                script=script,
                max_length=comparable_body_max_length,
            ),
            match_email,
            match_domain,
        )

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    async def ingest(self, content_key: str) -> IngestResult:
        """Run the full pipeline for one content key."""
        structlog.contextvars.bind_contextvars(content_key=content_key)
        try:
            return await self._ingest(content_key)
        finally:
            structlog.contextvars.unbind_contextvars("content_key")

    async def _ingest(self, content_key: str) -> IngestResult:
        try:
            raw = RawMessage(content_key, await self._content_store.fetch(content_key))
        except ContentFetchError as exc:
            logger.error("raw_message_fetch_failed", error=str(exc))
            return IngestResult(
                state=PipelineState.FAILED_FETCH,
                content_key=content_key,
                error=str(exc),
            )
        self._log_state(PipelineState.FETCHED, size=len(raw.raw_bytes))

        parsed = self._parser.parse(raw.raw_bytes)
        self._log_state(PipelineState.PARSED, sender_email=parsed.sender_email)
        await self._alerts.message_received(parsed, content_key)

        # Registry state can change between runs; never cached.
        sources = await self._registry.list_newsletter_sources()
        match = resolve(parsed, sources, self._strategies)
        if not match.matched:
            await self._alerts.unknown_sender(parsed, content_key)
            logger.warning(
                "message_rejected_unknown_source",
                sender_email=parsed.sender_email,
                sender_display_name=parsed.sender_display_name,
                subject=parsed.subject,
            )
            return IngestResult(
                state=PipelineState.REJECTED_UNKNOWN_SOURCE,
                content_key=content_key,
                error=f"unknown sender: {parsed.sender_email}",
            )
        newsletter = _source_by_id(sources, match.newsletter_id)
        self._log_state(PipelineState.RESOLVED, newsletter_id=newsletter.id)

        existing = await self._records.find_by_content_key(content_key)
        if existing is not None:
            return self._duplicate_result(content_key, match, existing)

        record = await self._build_record(content_key, parsed, newsletter)
        self._log_state(PipelineState.SUMMARIZED, translated=record.translated_body is not None)

        try:
            record.id = await self._records.insert(record)
        except DuplicateRecordError:
            # Another run stored the key after the lookup above
            existing = await self._records.find_by_content_key(content_key)
            return self._duplicate_result(content_key, match, existing)
        except Exception as exc:
            logger.exception("message_persist_failed", newsletter_id=newsletter.id)
            return IngestResult(
                state=PipelineState.FAILED_PERSIST,
                content_key=content_key,
                newsletter_id=newsletter.id,
                matched_by=match.matched_by,
                error=str(exc),
            )
        self._log_state(PipelineState.PERSISTED, message_id=record.id)

        await self._touch_newsletter(newsletter)
        await self._notify(record, newsletter)
        self._log_state(PipelineState.NOTIFIED, message_id=record.id)

        return IngestResult(
            state=PipelineState.NOTIFIED,
            content_key=content_key,
            newsletter_id=newsletter.id,
            message_id=record.id,
            matched_by=match.matched_by,
        )

    async def _build_record(
        self,
        content_key: str,
        parsed: ParsedMessage,
        newsletter: NewsletterSource,
    ) -> MessageRecord:
        summary = await self._summarizer.summarize(parsed.html_body, newsletter.language)

        translated_body: str | None = None
        if self._translator.requires_translation(newsletter.language):
            translated_body = await self._translator.translate(parsed.html_body)

        return MessageRecord(
            content_key=content_key,
            subject=parsed.subject,
            sender_email=parsed.sender_email,
            newsletter_id=newsletter.id,
            summary=summary,
            translated_body=translated_body,
            received_at=parsed.received_at,
        )

    def _duplicate_result(
        self,
        content_key: str,
        match: MatchResult,
        existing: MessageRecord | None,
    ) -> IngestResult:
        logger.info(
            "message_already_ingested",
            message_id=existing.id if existing else None,
        )
        return IngestResult(
            state=PipelineState.PERSISTED,
            content_key=content_key,
            newsletter_id=match.newsletter_id,
            message_id=existing.id if existing else None,
            matched_by=match.matched_by,
            duplicate=True,
        )

    async def _touch_newsletter(self, newsletter: NewsletterSource) -> None:
        try:
            await self._registry.touch_last_received(newsletter.id, datetime.now(UTC))
        except Exception as exc:
            logger.warning("touch_last_received_failed", newsletter_id=newsletter.id, error=str(exc))

    async def _notify(self, record: MessageRecord, newsletter: NewsletterSource) -> None:
        try:
            channels = await self._subscriptions.channels_for_newsletter(newsletter.id)
        except Exception as exc:
            logger.warning("channel_lookup_failed", newsletter_id=newsletter.id, error=str(exc))
            return
        await self._fanout.notify(record, newsletter, channels)

    # ------------------------------------------------------------------
    # Re-summarize
    # ------------------------------------------------------------------

    async def resummarize(self, content_key: str) -> SummaryResult:
        """Replace the summary of an already persisted message.

        Raises :class:`RecordNotFoundError` if the message was never
        ingested.  Nothing else on the record changes.
        """
        record = await self._records.find_by_content_key(content_key)
        if record is None or record.id is None:
            raise RecordNotFoundError(content_key)

        raw_bytes = await self._content_store.fetch(content_key)
        parsed = self._parser.parse(raw_bytes)
        newsletter = await self._registry.load_by_id(record.newsletter_id)

        summary = await self._summarizer.summarize(parsed.html_body, newsletter.language)
        await self._records.update_summary(record.id, summary)
        logger.info("message_resummarized", content_key=content_key, message_id=record.id)
        return summary

    @staticmethod
    def _log_state(state: PipelineState, **details: object) -> None:
        logger.debug("pipeline_state", state=state.value, **details)


def _source_by_id(sources: list[NewsletterSource], newsletter_id: int | None) -> NewsletterSource:
    return next(source for source in sources if source.id == newsletter_id)
