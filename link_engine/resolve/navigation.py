"""Navigation-link scoring: match footer/menu labels to evergreen site URLs.

Operates purely on an in-memory list of already-discovered URLs; no network
access happens here except in ``resolve_navigation_link``, which verifies the
winning candidate.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Optional

from link_engine import metrics
from link_engine.config import settings
from link_engine.resolve.urls import (
    canonicalize_url,
    hostname_of,
    is_homepage,
    normalize_domain,
    path_of,
    trusted_hosts_for,
)

if TYPE_CHECKING:
    from link_engine.resolve.health import HealthVerifier

logger = logging.getLogger(__name__)

FILLER_WORDS = ("up", "to", "off", "save", "now", "here", "click", "learn", "more")

# Labels containing any of these are too specific for the bare homepage
HOMEPAGE_REJECT_KEYWORDS = (
    "deal",
    "sale",
    "weekly",
    "collection",
    "shop",
    "product",
    "fit",
    "testimonial",
    "about",
    "contact",
)

SLUG_MATCH_SCORE = 12
COMPACT_MATCH_SCORE = 8
TOKEN_MATCH_SCORE = 1
UTILITY_PAGE_BONUS = 5
COLLECTION_BONUS = 3

_MARKETING_SUFFIX = re.compile(r"\s+[-–—]\s+.*$")
_DIGITS = re.compile(r"[0-9]+%?")
_FILLER = re.compile(r"\b(" + "|".join(FILLER_WORDS) + r")\b")
_NON_ALNUM = re.compile(r"[^a-z0-9\s]+")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class NormalizedLabel:
    text: str
    slug: str
    compact: str
    tokens: tuple[str, ...]


def normalize_label(label: str) -> NormalizedLabel:
    """Reduce a link label to its searchable core.

    "SALE - up to 50% OFF" -> text "sale", slug "sale", compact "sale".
    """
    text = _MARKETING_SUFFIX.sub("", (label or "").strip())
    text = _DIGITS.sub(" ", text)
    text = _FILLER.sub(" ", text.lower())
    text = _NON_ALNUM.sub(" ", text)
    text = _WHITESPACE.sub(" ", text).strip()

    words = text.split()
    slug = "-".join(words)
    return NormalizedLabel(
        text=text,
        slug=slug,
        compact="".join(words),
        tokens=tuple(w for w in words if len(w) >= 2),
    )


def should_reject_homepage(label: str) -> bool:
    lowered = (label or "").lower()
    return any(keyword in lowered for keyword in HOMEPAGE_REJECT_KEYWORDS)


def score_path(path: str, label: NormalizedLabel) -> Optional[int]:
    """Score a lowercased URL path against a normalized label.

    Returns None for product pages, which are never navigation targets.
    """
    score = 0
    if label.slug and label.slug in path:
        score += SLUG_MATCH_SCORE
    if label.compact and label.compact in path.replace("/", ""):
        score += COMPACT_MATCH_SCORE
    score += sum(TOKEN_MATCH_SCORE for token in label.tokens if token in path)

    if path.startswith("/pages/") or path.startswith("/policies/"):
        score += UTILITY_PAGE_BONUS
    elif path.startswith("/collections/"):
        score += COLLECTION_BONUS
    elif path.startswith("/products/"):
        return None
    return score


def score_navigation_candidate(
    label: str,
    discovered_urls: Iterable[str],
    brand_domain: str,
    min_score: Optional[int] = None,
) -> Optional[str]:
    """
    Pick the best evergreen URL on the brand's own host for a navigation label.

    Args:
        label: Link text as it appears in the design (e.g. "SALE - up to 50% OFF")
        discovered_urls: URLs known to exist on the brand's site
        brand_domain: The brand's domain; other hosts are ignored
        min_score: Acceptance threshold (defaults to settings.navigation_min_score)

    Returns:
        The highest-scoring URL, or None when nothing reaches the threshold
    """
    min_score = settings.navigation_min_score if min_score is None else min_score
    normalized = normalize_label(label)
    if not normalized.text:
        return None

    host = normalize_domain(brand_domain)
    reject_homepage = should_reject_homepage(label)

    best_url: Optional[str] = None
    best_score: Optional[int] = None

    for url in discovered_urls:
        if hostname_of(url) != host:
            continue
        if is_homepage(url) and reject_homepage:
            continue

        score = score_path(path_of(url), normalized)
        if score is None:
            continue

        if best_score is None or score > best_score:
            best_url, best_score = url, score

    if best_url is None or best_score < min_score:
        logger.debug(f"No navigation candidate for {label!r} (best score: {best_score})")
        return None

    logger.debug(f"Navigation candidate for {label!r}: {best_url} (score {best_score})")
    return canonicalize_url(best_url)


async def resolve_navigation_link(
    label: str,
    discovered_urls: Iterable[str],
    brand_domain: str,
    verifier: "HealthVerifier",
) -> Optional[str]:
    """Score a navigation label and return the winner only if it verifies."""
    candidate = score_navigation_candidate(label, discovered_urls, brand_domain)
    if candidate is None:
        metrics.record_navigation_match(False)
        return None

    ok = await verifier.verify(candidate, trusted_hosts_for(brand_domain))
    metrics.record_navigation_match(ok)
    if not ok:
        logger.info(f"Navigation candidate failed verification: {candidate}")
        return None
    return candidate
