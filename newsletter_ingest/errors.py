"""Exceptions raised across the ingestion pipeline."""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for pipeline errors."""


class ContentFetchError(PipelineError):
    """The content store could not produce the raw bytes for a content key."""

    def __init__(self, content_key: str, reason: str) -> None:
        super().__init__(f"could not fetch {content_key!r}: {reason}")
        self.content_key = content_key


class DuplicateRecordError(PipelineError):
    """A message record with this content key already exists.

    Raised by record stores on a uniqueness violation.  The orchestrator
    treats it as a benign duplicate, not a failure.
    """

    def __init__(self, content_key: str) -> None:
        super().__init__(f"message record for {content_key!r} already exists")
        self.content_key = content_key


class RecordNotFoundError(PipelineError):
    """No persisted message record exists for the content key."""

    def __init__(self, content_key: str) -> None:
        super().__init__(f"no message record for {content_key!r}")
        self.content_key = content_key


class SourceNotFoundError(PipelineError):
    """The registry has no newsletter source with the given id."""

    def __init__(self, newsletter_id: int) -> None:
        super().__init__(f"no newsletter source with id {newsletter_id}")
        self.newsletter_id = newsletter_id


class SummaryFormatError(PipelineError):
    """The oracle reply is not a flat, non-empty JSON object of strings."""
