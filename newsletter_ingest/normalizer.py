"""Text normalization and HTML text extraction.

``normalize`` builds comparison keys for newsletter-name matching; the
keys are never shown to users.  The ``extract_*`` helpers turn an HTML
body into text for matching, summarization and translation.
"""

from __future__ import annotations

import re
from functools import lru_cache

from bs4 import BeautifulSoup

# Regex character-class ranges for the audience's script.
HANGUL = "가-힣ㄱ-ㅎㅏ-ㅣ"
LATIN_ONLY = ""

COMPARABLE_BODY_MAX_LENGTH = 10_000
TRANSLATE_MAX_LENGTH = 5_500


@lru_cache(maxsize=8)
def _disallowed(script: str) -> re.Pattern[str]:
    return re.compile(f"[^0-9a-z{script}]")


def normalize(text: str | None, script: str = HANGUL) -> str:
    """Lower-case, drop whitespace and every character that is neither
    ASCII alphanumeric nor inside *script*.
    """
    if not text:
        return ""
    return _disallowed(script).sub("", text.lower())


def html_to_text(html: str | None) -> str:
    """Visible text of an HTML document (script, style and head removed)."""
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "head"]):
        tag.decompose()
    return soup.get_text(separator="\n")


def extract_comparable_body(
    html: str | None,
    max_length: int = COMPARABLE_BODY_MAX_LENGTH,
    script: str = HANGUL,
) -> str:
    """Normalized body text, truncated to *max_length* after normalizing."""
    return normalize(html_to_text(html), script)[:max_length]


def extract_summary_text(html: str | None) -> str:
    """Body text for the summarizer: whitespace collapsed, nothing else."""
    return " ".join(html_to_text(html).split())


def extract_translatable_text(html: str | None, max_length: int = TRANSLATE_MAX_LENGTH) -> str:
    """Body text for the translator with paragraph breaks kept."""
    text = html_to_text(html).replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"[ \t]{2,}", " ", text)
    text = re.sub(r"[ \t]*\n[ \t]*", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()[:max_length]
