"""Catalog ingestion: turn crawler-discovered links into index entries."""

import asyncio
import logging
from collections import Counter
from datetime import datetime
from typing import Awaitable, Callable, Optional, Sequence

from pydantic import BaseModel

from link_engine import metrics
from link_engine.config import settings
from link_engine.db.brands import BrandNotFoundError, BrandStore, ImportJobNotFoundError
from link_engine.db.link_index import LinkIndexStore, LinkRecord
from link_engine.db.models import (
    ACTIVE_IMPORT_STATUSES,
    ImportStatus,
    LinkSource,
    LinkType,
    SitemapImportJob,
)
from link_engine.resolve.urls import (
    absolutize,
    canonicalize_url,
    categorize_url,
    hostname_of,
    is_placeholder,
    is_social_host,
    normalize_domain,
    title_from_url,
)

logger = logging.getLogger(__name__)

EmbedBatchFn = Callable[[list[str]], Awaitable[list[list[float]]]]

_LINK_TYPES = {t.value for t in LinkType}


class ImportJobClosedError(RuntimeError):
    """Raised when links are reported for a job that already finished."""


class DiscoveredLink(BaseModel):
    """A URL reported by the site crawler."""

    url: str
    title: Optional[str] = None
    link_type: Optional[str] = None


class CatalogIngestor:
    """
    Completes an import job with the crawler's discovered links.

    Job status moves parsing -> generating_embeddings -> complete, or to
    failed on any error. Embedding failures are not fatal: the affected
    batch is stored without embeddings and can be backfilled later.
    """

    def __init__(
        self,
        brands: BrandStore,
        links: LinkIndexStore,
        embed_batch: EmbedBatchFn,
        batch_size: Optional[int] = None,
    ):
        self.brands = brands
        self.links = links
        self._embed_batch = embed_batch
        self.batch_size = batch_size or settings.ingestion_embedding_batch_size

    async def ingest(
        self, job_id: str, discovered: Sequence[DiscoveredLink]
    ) -> SitemapImportJob:
        job = await self.brands.get_import_job(job_id)
        if job is None:
            raise ImportJobNotFoundError(job_id)
        if job.status not in ACTIVE_IMPORT_STATUSES:
            raise ImportJobClosedError(f"Import job {job_id} is already {job.status}")

        brand = await self.brands.get_brand(job.brand_id)
        if brand is None:
            raise BrandNotFoundError(job.brand_id)

        try:
            await self.brands.update_import_job(
                job_id, status=ImportStatus.PARSING.value, urls_found=len(discovered)
            )
            records = self._prepare(discovered, brand.domain)
            logger.info(
                f"Import job {job_id}: {len(records)} usable links of {len(discovered)} discovered"
            )

            await self.brands.update_import_job(
                job_id, status=ImportStatus.GENERATING_EMBEDDINGS.value
            )
            processed = 0
            for start in range(0, len(records), self.batch_size):
                batch = records[start:start + self.batch_size]
                await self._embed_records(batch)
                processed += await self.links.upsert_batch(brand.id, batch)
                await self.brands.update_import_job(job_id, urls_processed=processed)

            type_counts = Counter(r.link_type for r in records)
            job = await self.brands.update_import_job(
                job_id,
                status=ImportStatus.COMPLETE.value,
                urls_processed=processed,
                urls_failed=len(discovered) - len(records),
                product_urls_count=type_counts.get(LinkType.PRODUCT.value, 0),
                collection_urls_count=type_counts.get(LinkType.COLLECTION.value, 0),
                completed_at=datetime.utcnow(),
            )
            await self.brands.mark_ingested(brand.id)
        except Exception as e:
            logger.error(f"Import job {job_id} failed: {e}", exc_info=True)
            await self.brands.update_import_job(
                job_id,
                status=ImportStatus.FAILED.value,
                error_message=str(e)[:500],
                completed_at=datetime.utcnow(),
            )
            raise

        metrics.record_ingested_links(dict(type_counts))
        logger.info(
            f"Import job {job_id} complete: {processed} links "
            f"({job.product_urls_count} products, {job.collection_urls_count} collections)"
        )
        return job

    def _prepare(
        self, discovered: Sequence[DiscoveredLink], domain: Optional[str]
    ) -> list[LinkRecord]:
        """Canonicalize, keep brand/social hosts, de-duplicate and categorize."""
        brand_host = normalize_domain(domain) if domain else ""
        records: dict[str, LinkRecord] = {}

        for link in discovered:
            raw = (link.url or "").strip()
            if not raw or is_placeholder(raw):
                continue
            if brand_host:
                raw = absolutize(raw, brand_host)
            if not raw.startswith(("http://", "https://")):
                continue

            url = canonicalize_url(raw)
            host = hostname_of(url)
            if brand_host and host != brand_host and not is_social_host(host):
                continue
            if url in records:
                continue

            if link.link_type in _LINK_TYPES:
                link_type = link.link_type
            else:
                link_type = categorize_url(url).value

            records[url] = LinkRecord(
                url=url,
                link_type=link_type,
                title=(link.title or "").strip() or title_from_url(url),
                source=LinkSource.SITEMAP.value,
            )

        return list(records.values())

    async def _embed_records(self, batch: list[LinkRecord]) -> None:
        texts = [r.title or r.url for r in batch]
        try:
            vectors = await asyncio.wait_for(
                self._embed_batch(texts), timeout=settings.ingestion_embedding_timeout_seconds
            )
        except Exception as e:
            metrics.record_collaborator_error("embedder", e)
            logger.warning(f"Embedding batch of {len(batch)} failed, storing without embeddings: {e}")
            return

        for record, vector in zip(batch, vectors):
            record.embedding = list(vector)
