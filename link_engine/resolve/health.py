"""Liveness verification for candidate URLs with trust-based leniency."""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Optional

import httpx

from link_engine import metrics
from link_engine.config import settings
from link_engine.resolve.urls import canonicalize_url, hostname_of, is_placeholder, normalize_domain

logger = logging.getLogger(__name__)

# Statuses consistent with bot-blocking rather than a dead link
BOT_BLOCK_STATUSES = frozenset({401, 403, 405})

# Transport failures, redirect loops, undecodable bodies and timeouts
NETWORK_EXC = (httpx.HTTPError, asyncio.TimeoutError)


def _is_ok(status_code: int) -> bool:
    return 200 <= status_code < 400


class HealthVerifier:
    """
    Confirms that a URL is reachable before it is trusted.

    - Placeholders (merge tags, mailto:) pass without a network call
    - HEAD first, then a ranged GET
    - Trusted hosts (brand domain, social platforms) are soft-accepted on
      bot-blocking statuses and on network failures; untrusted hosts never are

    Stateless: the verdict is returned, never persisted.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self._client = client
        self._owns_client = client is None
        self.timeout_seconds = timeout_seconds or settings.health_check_timeout_seconds

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={"User-Agent": settings.health_check_user_agent},
                follow_redirects=True,
                timeout=httpx.Timeout(self.timeout_seconds),
            )
        return self._client

    async def verify(self, url: str, trusted_hosts: Iterable[str]) -> bool:
        """
        Check whether a URL is live.

        Args:
            url: Candidate URL
            trusted_hosts: Hosts granted soft-accept leniency

        Returns:
            True if the URL is healthy or soft-accepted
        """
        if is_placeholder(url):
            metrics.record_health_check("placeholder")
            return True

        clean = canonicalize_url(url)
        host = hostname_of(clean)
        if not host:
            metrics.record_health_check("rejected")
            return False

        allow_soft = host in {normalize_domain(h) for h in trusted_hosts}

        try:
            outcome = await asyncio.wait_for(
                self._check(clean, allow_soft), timeout=self.timeout_seconds
            )
        except httpx.InvalidURL as e:
            logger.info(f"URL verification rejected invalid URL {clean}: {e}")
            outcome = "rejected"
        except NETWORK_EXC as e:
            if allow_soft:
                logger.info(f"Soft-accepting (network error: {type(e).__name__}) for trusted host: {clean}")
                outcome = "soft_accept"
            else:
                logger.info(f"URL verification failed for {clean}: {type(e).__name__}")
                outcome = "rejected"

        metrics.record_health_check(outcome)
        return outcome != "rejected"

    async def _check(self, url: str, allow_soft: bool) -> str:
        client = self._get_client()

        head = await client.head(url)
        if _is_ok(head.status_code):
            return "healthy"
        if allow_soft and head.status_code in BOT_BLOCK_STATUSES:
            logger.info(f"Soft-accepting (HEAD {head.status_code}) for trusted host: {url}")
            return "soft_accept"

        # Many sites refuse HEAD; fall back to a small ranged GET
        headers = {"Range": f"bytes=0-{settings.health_check_range_bytes}"}
        async with client.stream("GET", url, headers=headers) as get:
            status_code = get.status_code

        if _is_ok(status_code):
            return "healthy"
        if allow_soft and status_code in BOT_BLOCK_STATUSES:
            logger.info(f"Soft-accepting (GET {status_code}) for trusted host: {url}")
            return "soft_accept"

        logger.debug(f"URL verification rejected {url}: HEAD {head.status_code}, GET {status_code}")
        return "rejected"

    async def close(self):
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None


# Global verifier instance
health_verifier = HealthVerifier()
