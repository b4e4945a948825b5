"""Summarization and translation of newsletter bodies.

Both steps degrade instead of failing: after the retry budget is spent
the summarizer returns :data:`FALLBACK_SUMMARY` and the translator
returns ``None``, so ingestion never aborts because the oracle is down.
"""

from __future__ import annotations

import json
import re

import structlog

from .config import RetryConfig
from .errors import SummaryFormatError
from .interface import CompletionOracle
from .models import SummaryResult
from .normalizer import TRANSLATE_MAX_LENGTH, extract_summary_text, extract_translatable_text
from .prompts import FOREIGN_SUMMARY_PROMPT, SUMMARY_PROMPT, TRANSLATE_PROMPT, summary_user_text
from .retry import call_with_retry

logger = structlog.get_logger()

FALLBACK_SUMMARY: SummaryResult = {"요약을 실패했습니다.": "본문을 확인해주세요."}

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)


def strip_code_fence(content: str) -> str:
    """Unwrap a reply wrapped in a fenced code block, if it is one."""
    match = _FENCE_RE.search(content)
    if match is None:
        return content.strip()
    return match.group(1)


def parse_summary(content: str) -> SummaryResult:
    """Parse an oracle reply into an ordered ``{subject: prose}`` mapping.

    Raises :class:`SummaryFormatError` for anything other than a
    non-empty flat JSON object of strings.
    """
    try:
        data = json.loads(strip_code_fence(content))
    except json.JSONDecodeError as exc:
        raise SummaryFormatError(f"reply is not JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise SummaryFormatError(f"expected a JSON object, got {type(data).__name__}")
    if not data:
        raise SummaryFormatError("empty summary")
    for key, value in data.items():
        if not isinstance(value, str):
            raise SummaryFormatError(f"value for {key!r} is {type(value).__name__}, not str")
    return data


class Summarizer:
    """Summarize an HTML body with the oracle, retrying bad replies."""

    def __init__(
        self,
        oracle: CompletionOracle,
        retry_config: RetryConfig,
        *,
        native_language: str = "ko",
    ) -> None:
        self._oracle = oracle
        self._retry = retry_config
        self._native_language = native_language

    async def summarize(self, body_html: str | None, language: str) -> SummaryResult:
        foreign = language != self._native_language
        system_prompt = FOREIGN_SUMMARY_PROMPT if foreign else SUMMARY_PROMPT
        user_text = summary_user_text(extract_summary_text(body_html), foreign=foreign)

        async def _attempt() -> SummaryResult:
            reply = await self._oracle.complete(system_prompt, user_text, json_output=True)
            return parse_summary(reply)

        outcome = await call_with_retry(self._retry, _attempt, operation="summarize")
        if outcome.ok:
            logger.info("summary_created", entries=len(outcome.value), attempts=outcome.attempts)
            return outcome.value

        logger.error(
            "summary_failed",
            attempts=outcome.attempts,
            error=str(outcome.error),
        )
        return dict(FALLBACK_SUMMARY)


class Translator:
    """Translate a foreign-language body into the audience's language."""

    def __init__(
        self,
        oracle: CompletionOracle,
        retry_config: RetryConfig,
        *,
        native_language: str = "ko",
        max_length: int = TRANSLATE_MAX_LENGTH,
    ) -> None:
        self._oracle = oracle
        self._retry = retry_config
        self._native_language = native_language
        self._max_length = max_length

    def requires_translation(self, language: str) -> bool:
        return language != self._native_language

    async def translate(self, body_html: str | None) -> str | None:
        text = extract_translatable_text(body_html, self._max_length)
        if not text:
            return None

        async def _attempt() -> str:
            return await self._oracle.complete(TRANSLATE_PROMPT, text)

        outcome = await call_with_retry(self._retry, _attempt, operation="translate")
        if not outcome.ok:
            logger.warning("translation_failed", attempts=outcome.attempts, error=str(outcome.error))
            return None

        translated = (outcome.value or "").strip()
        return translated or None
