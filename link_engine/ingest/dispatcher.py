"""Hand-off of sitemap import jobs to the external site crawler."""

import logging
from datetime import datetime
from typing import Optional

import httpx

from link_engine import metrics
from link_engine.config import settings
from link_engine.db.brands import BrandNotFoundError, BrandStore
from link_engine.db.models import Brand, ImportStatus, SitemapImportJob
from link_engine.resolve.urls import normalize_domain

logger = logging.getLogger(__name__)


class DispatchError(RuntimeError):
    """Raised when the crawler could not be handed a job."""


class MissingDomainError(ValueError):
    """Raised when a brand has no domain to crawl."""


class IngestionDispatcher:
    """
    Creates import jobs and POSTs them to the crawler.

    The crawler later reports discovered links back through the ingestion
    callback; this class never parses sites itself.
    """

    def __init__(
        self,
        brands: BrandStore,
        client: Optional[httpx.AsyncClient] = None,
        dispatch_url: Optional[str] = None,
        token: Optional[str] = None,
    ):
        self.brands = brands
        self._client = client
        self._owns_client = client is None
        self.dispatch_url = settings.ingestion_dispatch_url if dispatch_url is None else dispatch_url
        self.token = settings.ingestion_dispatch_token if token is None else token

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            headers = {}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.AsyncClient(
                timeout=settings.ingestion_dispatch_timeout_seconds, headers=headers
            )
        return self._client

    async def close(self):
        """Close HTTP client."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def dispatch(self, brand_id: str, domain: str, job_id: str) -> None:
        """
        Notify the crawler of a pending job.

        Raises:
            DispatchError: If no crawler URL is configured or the request fails
        """
        if not self.dispatch_url:
            raise DispatchError("Ingestion dispatch URL is not configured")

        payload = {"brand_id": brand_id, "domain": domain, "job_id": job_id}
        try:
            response = await self._get_client().post(self.dispatch_url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise DispatchError(f"Crawler returned {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise DispatchError(f"Crawler request failed: {type(e).__name__}: {e}") from e

        logger.info(f"Dispatched import job {job_id} for brand {brand_id} ({domain})")

    async def start_import(
        self, brand_id: str, sitemap_url: Optional[str] = None
    ) -> SitemapImportJob:
        """
        Create a pending import job for a brand and hand it to the crawler.

        A dispatch failure is recorded on the job (status ``failed``) and the
        failed job is returned rather than raised.

        Raises:
            BrandNotFoundError: Unknown brand
            MissingDomainError: Brand has no domain configured
            ImportInProgressError: An import is already active for the brand
        """
        brand = await self.brands.get_brand(brand_id)
        if brand is None:
            raise BrandNotFoundError(brand_id)
        return await self.start_import_for(brand, sitemap_url)

    async def start_import_for(
        self, brand: Brand, sitemap_url: Optional[str] = None
    ) -> SitemapImportJob:
        if not brand.domain:
            raise MissingDomainError("No domain configured")

        domain = normalize_domain(brand.domain)
        job = await self.brands.create_import_job(brand.id, sitemap_url or f"https://{domain}")

        try:
            await self.dispatch(brand.id, domain, job.id)
        except DispatchError as e:
            logger.error(f"Failed to dispatch import job {job.id} for brand {brand.id}: {e}")
            metrics.record_refresh_dispatch("failed")
            return await self.brands.update_import_job(
                job.id,
                status=ImportStatus.FAILED.value,
                error_message=str(e)[:500],
                completed_at=datetime.utcnow(),
            )

        metrics.record_refresh_dispatch("triggered")
        return job
