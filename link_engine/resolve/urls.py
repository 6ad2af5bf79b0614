"""URL canonicalization and classification helpers."""

from __future__ import annotations

import re
from typing import Iterable, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from link_engine.config import settings
from link_engine.db.models import LinkType

_SLUG_SPLIT = re.compile(r"[-_]+")


def _is_tracking_param(name: str, tracking_params: Iterable[str]) -> bool:
    lowered = name.lower()
    if lowered.startswith("utm_"):
        return True
    return lowered in tracking_params


def canonicalize_url(url: str, tracking_params: Optional[Iterable[str]] = None) -> str:
    """
    Strip tracking query parameters and the fragment from a URL.

    Unparseable or non-http values (merge tags, mailto:) are returned trimmed
    but otherwise untouched.
    """
    url = (url or "").strip()
    if not url or is_placeholder(url):
        return url

    tracking = {p.lower() for p in (tracking_params or settings.tracking_params)}
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if parts.scheme not in ("http", "https"):
        return url

    query = [
        (k, v)
        for k, v in parse_qsl(parts.query, keep_blank_values=True)
        if not _is_tracking_param(k, tracking)
    ]
    return urlunsplit(
        (parts.scheme, parts.netloc.lower(), parts.path or "/", urlencode(query), "")
    )


def hostname_of(url: str) -> str:
    """Lowercased hostname without a leading www., or empty string."""
    try:
        host = urlsplit(url).hostname or ""
    except ValueError:
        return ""
    return host.lower().removeprefix("www.")


def normalize_domain(domain: str) -> str:
    """Reduce a configured brand domain (possibly a full URL) to a bare host."""
    domain = (domain or "").strip().lower()
    if "://" in domain:
        return hostname_of(domain)
    return domain.split("/")[0].removeprefix("www.")


def path_of(url: str) -> str:
    try:
        return urlsplit(url).path.lower()
    except ValueError:
        return ""


def is_homepage(url: str) -> bool:
    try:
        return urlsplit(url).path in ("", "/")
    except ValueError:
        return False


def is_placeholder(url: str) -> bool:
    """Email-system merge tags ({{ unsubscribe_url }}) and mailto: links."""
    url = (url or "").strip()
    return url.startswith("{{") or url.lower().startswith("mailto:")


def is_social_host(host: str, social_domains: Optional[Iterable[str]] = None) -> bool:
    domains = social_domains or settings.social_domains
    return any(host == d or host.endswith("." + d) for d in domains)


def trusted_hosts_for(domain: Optional[str]) -> list[str]:
    """The brand's own host plus the known social platforms."""
    hosts = list(settings.social_domains)
    if domain:
        hosts.insert(0, normalize_domain(domain))
    return hosts


def categorize_url(url: str) -> LinkType:
    if is_social_host(hostname_of(url)):
        return LinkType.SOCIAL
    path = path_of(url)
    if "/products/" in path:
        return LinkType.PRODUCT
    if "/collections/" in path:
        return LinkType.COLLECTION
    if "/pages/" in path or "/policies/" in path or is_homepage(url):
        return LinkType.PAGE
    return LinkType.OTHER


def absolutize(url: str, domain: str) -> str:
    """Resolve a relative link against the brand's domain."""
    url = url.strip()
    if url.startswith(("http://", "https://")):
        return url
    host = normalize_domain(domain)
    if url.startswith("/"):
        return f"https://{host}{url}"
    return f"https://{host}/{url}"


def title_from_url(url: str) -> str:
    """Derive a display title from the last path segment ('cruz-snow-jacket' -> 'Cruz Snow Jacket')."""
    segments = [s for s in path_of(url).split("/") if s]
    if not segments:
        return hostname_of(url) or url
    words = [w for w in _SLUG_SPLIT.split(segments[-1]) if w]
    return " ".join(w.capitalize() for w in words)
