"""IngestionService — wire the production adapters around the pipeline."""

from __future__ import annotations

import asyncio

import structlog

from .config import PipelineConfig
from .fanout import NotificationFanout
from .models import IngestResult, PipelineState, SummaryResult
from .oracle import OpenAIOracle
from .pipeline import IngestionPipeline
from .s3 import S3ContentStore
from .slack import SlackAlertSink, SlackWebhookTransport
from .summarizer import Summarizer, Translator
from .supabase_store import (
    SupabaseRecordStore,
    SupabaseSourceRegistry,
    SupabaseSubscriptionIndex,
    create_supabase_client,
)

logger = structlog.get_logger()


class IngestionService:
    """Own the S3, Supabase, OpenAI and Slack clients for one process."""

    def __init__(self, config: PipelineConfig) -> None:
        self._config = config
        self._content_store = S3ContentStore(config.s3)
        self._transport = SlackWebhookTransport(config.slack)
        self._oracle: OpenAIOracle | None = None
        self._pipeline: IngestionPipeline | None = None

        self._messages_ingested: int = 0
        self._messages_duplicate: int = 0
        self._messages_rejected: int = 0
        self._messages_failed: int = 0

    # ------------------------------------------------------------------
    # Public properties (used by health checks)
    # ------------------------------------------------------------------

    @property
    def messages_ingested(self) -> int:
        return self._messages_ingested

    @property
    def messages_duplicate(self) -> int:
        return self._messages_duplicate

    @property
    def messages_rejected(self) -> int:
        return self._messages_rejected

    @property
    def messages_failed(self) -> int:
        return self._messages_failed

    @property
    def is_ready(self) -> bool:
        return self._pipeline is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        config = self._config
        await self._content_store.start()
        await self._transport.start()
        client = await asyncio.to_thread(create_supabase_client, config.supabase)
        self._oracle = OpenAIOracle(config.oracle)

        self._pipeline = IngestionPipeline(
            content_store=self._content_store,
            registry=SupabaseSourceRegistry(client),
            records=SupabaseRecordStore(client),
            subscriptions=SupabaseSubscriptionIndex(client),
            summarizer=Summarizer(
                self._oracle,
                config.retry,
                native_language=config.native_language,
            ),
            translator=Translator(
                self._oracle,
                config.retry,
                native_language=config.native_language,
                max_length=config.translate_max_length,
            ),
            fanout=NotificationFanout(self._transport, config.read_link_base),
            alerts=SlackAlertSink(config.slack, self._transport, config.read_link_base),
            comparable_body_max_length=config.comparable_body_max_length,
        )
        logger.info("ingestion_service_started")

    async def stop(self) -> None:
        self._pipeline = None
        if self._oracle is not None:
            await self._oracle.close()
            self._oracle = None
        await self._transport.stop()
        await self._content_store.stop()
        logger.info("ingestion_service_stopped")

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def ingest(self, content_key: str) -> IngestResult:
        assert self._pipeline is not None, "Service not started"
        try:
            result = await self._pipeline.ingest(content_key)
        except Exception:
            logger.exception("ingestion_failed", content_key=content_key)
            self._messages_failed += 1
            raise

        if result.duplicate:
            self._messages_duplicate += 1
        elif result.ok:
            self._messages_ingested += 1
        elif result.state == PipelineState.REJECTED_UNKNOWN_SOURCE:
            self._messages_rejected += 1
        else:
            self._messages_failed += 1
        return result

    async def resummarize(self, content_key: str) -> SummaryResult:
        assert self._pipeline is not None, "Service not started"
        return await self._pipeline.resummarize(content_key)

    async def backfill(self) -> list[IngestResult]:
        """Ingest every message in the content store, one at a time.

        Already ingested messages come back as duplicates.
        """
        keys = await self._content_store.list()
        logger.info("backfill_started", count=len(keys))
        results = []
        for key in keys:
            try:
                results.append(await self.ingest(key))
            except Exception:
                # Already logged and counted by ingest().
                continue
        logger.info(
            "backfill_complete",
            count=len(keys),
            ok=sum(1 for r in results if r.ok),
        )
        return results
