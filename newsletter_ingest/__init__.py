"""Newsletter ingestion — resolve incoming mail to a newsletter, summarize, notify.

Public API re-exported here for convenience::

    from newsletter_ingest import IngestionPipeline, PipelineConfig, resolve
"""

from .config import (
    OracleConfig,
    PipelineConfig,
    RetryConfig,
    S3Config,
    SlackConfig,
    SupabaseConfig,
)
from .errors import (
    ContentFetchError,
    DuplicateRecordError,
    PipelineError,
    RecordNotFoundError,
    SourceNotFoundError,
    SummaryFormatError,
)
from .fanout import NotificationFanout, build_notification_payload
from .logging import setup_logging
from .models import (
    DeliveryChannel,
    FanoutReport,
    IngestResult,
    MatchedBy,
    MatchResult,
    MessageRecord,
    NewsletterSource,
    ParsedMessage,
    PipelineState,
    RawMessage,
    SummaryResult,
)
from .parser import MessageParser
from .pipeline import IngestionPipeline
from .resolver import STRATEGIES, resolve
from .summarizer import FALLBACK_SUMMARY, Summarizer, Translator

__all__ = [
    "ContentFetchError",
    "DeliveryChannel",
    "DuplicateRecordError",
    "FALLBACK_SUMMARY",
    "FanoutReport",
    "IngestResult",
    "IngestionPipeline",
    "MatchResult",
    "MatchedBy",
    "MessageParser",
    "MessageRecord",
    "NewsletterSource",
    "NotificationFanout",
    "OracleConfig",
    "ParsedMessage",
    "PipelineConfig",
    "PipelineError",
    "PipelineState",
    "RawMessage",
    "RecordNotFoundError",
    "RetryConfig",
    "S3Config",
    "STRATEGIES",
    "SlackConfig",
    "SourceNotFoundError",
    "Summarizer",
    "SummaryFormatError",
    "SummaryResult",
    "SupabaseConfig",
    "Translator",
    "build_notification_payload",
    "resolve",
    "setup_logging",
]
