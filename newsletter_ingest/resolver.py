"""Newsletter resolution — decide which newsletter a message belongs to.

Four strategies run in a fixed priority order and the first match wins:

1. ``from_name``  — the sender display name contains the newsletter name
2. ``html_body``  — the body text contains the newsletter name
3. ``email``      — the sender address is a registered address
4. ``domain``     — exactly one newsletter has addresses on the sender's
   domain, and the domain is not a shared mail provider

The order decides which newsletter wins when several heuristics apply,
so it must not change.  Every strategy is a pure function of the parsed
message and the registry snapshot.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence

import structlog

from .models import NO_MATCH, MatchedBy, MatchResult, NewsletterSource, ParsedMessage
from .normalizer import COMPARABLE_BODY_MAX_LENGTH, HANGUL, extract_comparable_body, normalize

logger = structlog.get_logger()

Strategy = Callable[[ParsedMessage, Sequence[NewsletterSource]], MatchResult]

# Public mailbox providers and bulk-mail platforms: many unrelated
# senders share these domains, so a domain hit identifies nobody.
DOMAIN_BLACKLIST: frozenset[str] = frozenset({
    "gmail.com",
    "naver.com",
    "daum.net",
    "hanmail.net",
    "kakao.com",
    "outlook.com",
    "hotmail.com",
    "yahoo.com",
    "stibee.com",
    "send.stibee.com",
    "mailchimp.com",
    "sendgrid.net",
    "substack.com",
})


def _first_name_contained_in(
    haystack: str,
    sources: Sequence[NewsletterSource],
    matched_by: MatchedBy,
    script: str,
) -> MatchResult:
    if not haystack:
        return NO_MATCH
    for source in sources:
        needle = normalize(source.canonical_name, script)
        # An empty key is a substring of everything.
        if needle and needle in haystack:
            return MatchResult(newsletter_id=source.id, matched_by=matched_by)
    return NO_MATCH


def match_from_name(
    parsed: ParsedMessage,
    sources: Sequence[NewsletterSource],
    *,
    script: str = HANGUL,
) -> MatchResult:
    """Match when a newsletter name is contained in the sender display name."""
    return _first_name_contained_in(
        normalize(parsed.sender_display_name, script),
        sources,
        MatchedBy.FROM_NAME,
        script,
    )


def match_html_body(
    parsed: ParsedMessage,
    sources: Sequence[NewsletterSource],
    *,
    script: str = HANGUL,
    max_length: int = COMPARABLE_BODY_MAX_LENGTH,
) -> MatchResult:
    """Match when a newsletter name is contained in the (truncated) body text."""
    return _first_name_contained_in(
        extract_comparable_body(parsed.html_body, max_length, script),
        sources,
        MatchedBy.HTML_BODY,
        script,
    )


def match_email(parsed: ParsedMessage, sources: Sequence[NewsletterSource]) -> MatchResult:
    """Match the sender address verbatim (case-sensitive) against known addresses."""
    if not parsed.sender_email:
        return NO_MATCH
    for source in sources:
        if parsed.sender_email in source.known_email_addresses:
            return MatchResult(newsletter_id=source.id, matched_by=MatchedBy.EMAIL)
    return NO_MATCH


def extract_domain(address: str | None) -> str | None:
    """Lower-cased text after the last ``@``; ``None`` when there is none."""
    if not address or "@" not in address:
        return None
    domain = address.rpartition("@")[2].strip().lower()
    return domain or None


def match_domain(parsed: ParsedMessage, sources: Sequence[NewsletterSource]) -> MatchResult:
    """Match when exactly one newsletter has addresses on the sender's domain."""
    domain = extract_domain(parsed.sender_email)
    if domain is None or domain in DOMAIN_BLACKLIST:
        return NO_MATCH

    candidates = {
        source.id
        for source in sources
        if any(extract_domain(addr) == domain for addr in source.known_email_addresses)
    }
    if len(candidates) != 1:
        if candidates:
            logger.info("domain_match_ambiguous", domain=domain, candidates=sorted(candidates))
        return NO_MATCH
    return MatchResult(newsletter_id=candidates.pop(), matched_by=MatchedBy.DOMAIN)


STRATEGIES: tuple[Strategy, ...] = (
    match_from_name,
    match_html_body,
    match_email,
    match_domain,
)


def resolve(
    parsed: ParsedMessage,
    sources: Sequence[NewsletterSource],
    strategies: Sequence[Strategy] = STRATEGIES,
) -> MatchResult:
    """Run *strategies* in order and return the first match, else ``NO_MATCH``."""
    for strategy in strategies:
        result = strategy(parsed, sources)
        if result.matched:
            logger.info(
                "newsletter_resolved",
                newsletter_id=result.newsletter_id,
                matched_by=result.matched_by.value,
            )
            return result

    logger.info(
        "newsletter_unresolved",
        sender_email=parsed.sender_email,
        sender_display_name=parsed.sender_display_name,
    )
    return NO_MATCH
