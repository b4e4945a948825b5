"""Message parser — raw RFC 822 bytes to the fields resolution needs.

Parsing never raises: a malformed message degrades to a
:class:`ParsedMessage` with ``None`` fields so the pipeline can still
run (and reject it at resolution).
"""

from __future__ import annotations

import email
import email.errors
import email.header
import email.message
import email.parser
import email.policy
import email.utils
import html
import re
from datetime import UTC, datetime

import structlog

from .models import ParsedMessage

logger = structlog.get_logger()

# "Display Name" <address>
_SENDER_RE = re.compile(r"^(.+?)\s*<(.+?)>$")


def split_sender(from_header: str) -> tuple[str, str]:
    """Split a From header into ``(display_name, email)``.

    When the header is not of the ``name <addr>`` form, both values are
    the raw header text.
    """
    match = _SENDER_RE.match(from_header.strip())
    if match is None:
        return from_header, from_header
    return match.group(1).replace('"', ""), match.group(2)


class MessageParser:
    """Stateless parser: raw RFC 822 bytes → ParsedMessage."""

    def parse(self, raw_bytes: bytes) -> ParsedMessage:
        if not raw_bytes:
            return ParsedMessage()

        fields: dict = {}
        try:
            msg = email.message_from_bytes(raw_bytes, policy=email.policy.default)

            from_header = _raw_from_header(raw_bytes)
            fields["sender_display_name"], fields["sender_email"] = split_sender(from_header)
            fields["subject"] = str(msg.get("Subject", "") or "")
            fields["received_at"] = self._parse_date(msg.get("Date"))
            fields["html_body"] = self._extract_html(msg)
        except Exception:
            logger.warning("message_parse_degraded", salvaged=sorted(fields), exc_info=True)

        return ParsedMessage(**fields)

    def _extract_html(self, msg: email.message.Message) -> str:
        """Return the first HTML part, else the first plain-text part as HTML."""
        body_html: str | None = None
        body_text: str | None = None

        for part in msg.walk():
            # Multipart containers have no content of their own
            if part.get_content_maintype() == "multipart":
                continue
            if "attachment" in str(part.get("Content-Disposition", "")):
                continue

            content_type = part.get_content_type()
            if content_type not in ("text/html", "text/plain"):
                continue
            payload = part.get_content()
            if not isinstance(payload, str):
                continue
            if content_type == "text/html" and body_html is None:
                body_html = payload
            elif content_type == "text/plain" and body_text is None:
                body_text = payload

        if body_html is not None:
            return body_html
        if body_text is not None:
            return _text_as_html(body_text)
        return ""

    @staticmethod
    def _parse_date(date_header: object) -> datetime | None:
        """Parse an RFC 2822 date to UTC; ``None`` when missing or invalid."""
        if not date_header:
            return None
        try:
            dt = email.utils.parsedate_to_datetime(str(date_header))
        except (TypeError, ValueError):
            return None
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=UTC)
        return dt.astimezone(UTC)


def _text_as_html(text: str) -> str:
    paragraphs = [p for p in re.split(r"\n{2,}", text.strip()) if p]
    return "".join(
        "<p>" + html.escape(p).replace("\n", "<br/>") + "</p>" for p in paragraphs
    )


def _raw_from_header(raw_bytes: bytes) -> str:
    """The From header as written, with only its encoded words decoded.

    The structured header policies rebuild From from the parsed address,
    which drops comment display names and rewrites malformed values.
    """
    headers = email.parser.HeaderParser(policy=email.policy.compat32).parsestr(
        raw_bytes.decode("utf-8", errors="replace"), headersonly=True
    )
    raw = str(headers.get("From", "") or "")
    raw = re.sub(r"\r?\n(?=[ \t])", "", raw).strip()
    try:
        return str(email.header.make_header(email.header.decode_header(raw)))
    except (email.errors.HeaderParseError, LookupError, UnicodeDecodeError):
        return raw
