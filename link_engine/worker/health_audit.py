"""Periodic re-verification of catalogued links."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from link_engine.config import settings
from link_engine.db.brands import BrandNotFoundError, BrandStore
from link_engine.db.link_index import LinkIndexStore
from link_engine.resolve.health import HealthVerifier
from link_engine.resolve.urls import trusted_hosts_for

logger = logging.getLogger(__name__)


@dataclass
class AuditSummary:
    brand_id: str
    checked: int = 0
    healthy: int = 0
    failed: int = 0
    errors: int = 0


class HealthAuditor:
    """
    Re-checks every entry of a brand and persists the verdicts.

    An entry only becomes unhealthy after ``max_failures`` consecutive
    failed checks; one success resets the streak.
    """

    def __init__(
        self,
        brands: BrandStore,
        links: LinkIndexStore,
        verifier: HealthVerifier,
        concurrency: Optional[int] = None,
        max_failures: Optional[int] = None,
    ):
        self.brands = brands
        self.links = links
        self.verifier = verifier
        self.concurrency = concurrency or settings.health_audit_concurrency
        self.max_failures = max_failures or settings.health_audit_max_failures

    async def audit_brand(self, brand_id: str) -> AuditSummary:
        brand = await self.brands.get_brand(brand_id)
        if brand is None:
            raise BrandNotFoundError(brand_id)

        entries = await self.links.get(brand_id, healthy_only=False)
        trusted = trusted_hosts_for(brand.domain)
        semaphore = asyncio.Semaphore(self.concurrency)
        summary = AuditSummary(brand_id=brand_id)

        async def check(entry_id: str, url: str):
            async with semaphore:
                try:
                    healthy = await self.verifier.verify(url, trusted)
                except Exception as e:
                    logger.warning(f"Verification of {url} errored, verdict not recorded: {e}")
                    summary.errors += 1
                    return
            await self.links.record_verification(entry_id, healthy, self.max_failures)
            summary.checked += 1
            if healthy:
                summary.healthy += 1
            else:
                summary.failed += 1

        await asyncio.gather(*(check(e.id, e.url) for e in entries))
        logger.info(
            f"Health audit for brand {brand_id}: {summary.checked} checked, "
            f"{summary.failed} failed"
        )
        return summary

    async def audit_all(self) -> list[AuditSummary]:
        """Audit every brand that has been ingested at least once."""
        summaries = []
        for brand in await self.brands.list_ingested_brands():
            try:
                summaries.append(await self.audit_brand(brand.id))
            except Exception as e:
                logger.error(f"Health audit failed for brand {brand.id}: {e}", exc_info=True)
        return summaries
