"""Brand records, link preferences and sitemap import jobs."""

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from link_engine.config import settings
from link_engine.db.models import ACTIVE_IMPORT_STATUSES, Brand, ImportStatus, SitemapImportJob

logger = logging.getLogger(__name__)


class BrandNotFoundError(LookupError):
    """Raised when a brand does not exist."""


class ImportJobNotFoundError(LookupError):
    """Raised when a sitemap import job does not exist."""


class ImportInProgressError(RuntimeError):
    """Raised when a brand already has an active import."""


class BrandStore:
    """Brand and import-job persistence."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        job_timeout: Optional[timedelta] = None,
    ):
        self._session_factory = session_factory
        self.job_timeout = job_timeout or timedelta(hours=settings.import_job_timeout_hours)

    async def get_brand(self, brand_id: str) -> Optional[Brand]:
        async with self._session_factory() as db:
            return await db.get(Brand, brand_id)

    async def update_link_preferences(self, brand_id: str, changes: dict[str, Any]) -> dict:
        """Shallow-merge ``changes`` into the brand's link preferences."""
        async with self._session_factory() as db:
            brand = await db.get(Brand, brand_id)
            if brand is None:
                raise BrandNotFoundError(brand_id)
            # Reassign so the JSON column is flagged dirty
            brand.link_preferences = {**(brand.link_preferences or {}), **changes}
            await db.commit()
            return dict(brand.link_preferences)

    async def list_stale_brands(self, stale_after: timedelta) -> list[Brand]:
        """Brands never ingested or last ingested before ``now - stale_after``."""
        cutoff = datetime.utcnow() - stale_after
        async with self._session_factory() as db:
            result = await db.execute(
                select(Brand)
                .where(or_(Brand.last_ingested_at.is_(None), Brand.last_ingested_at < cutoff))
                .order_by(Brand.created_at.asc())
            )
            return list(result.scalars().all())

    async def list_ingested_brands(self) -> list[Brand]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(Brand)
                .where(Brand.last_ingested_at.is_not(None))
                .order_by(Brand.created_at.asc())
            )
            return list(result.scalars().all())

    async def mark_ingested(self, brand_id: str, when: Optional[datetime] = None) -> None:
        async with self._session_factory() as db:
            brand = await db.get(Brand, brand_id)
            if brand is None:
                raise BrandNotFoundError(brand_id)
            brand.last_ingested_at = when or datetime.utcnow()
            await db.commit()

    async def get_active_job(self, brand_id: str) -> Optional[SitemapImportJob]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(SitemapImportJob)
                .where(
                    SitemapImportJob.brand_id == brand_id,
                    SitemapImportJob.status.in_(ACTIVE_IMPORT_STATUSES),
                )
                .order_by(SitemapImportJob.created_at.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def expire_abandoned_jobs(self, brand_id: str) -> int:
        """Fail active jobs with no progress for ``job_timeout``; returns how many."""
        cutoff = datetime.utcnow() - self.job_timeout
        async with self._session_factory() as db:
            result = await db.execute(
                select(SitemapImportJob).where(
                    SitemapImportJob.brand_id == brand_id,
                    SitemapImportJob.status.in_(ACTIVE_IMPORT_STATUSES),
                    SitemapImportJob.updated_at < cutoff,
                )
            )
            jobs = list(result.scalars().all())
            now = datetime.utcnow()
            for job in jobs:
                job.status = ImportStatus.FAILED.value
                job.error_message = f"Abandoned: no progress since {job.updated_at.isoformat()}"
                job.completed_at = now
            await db.commit()

        for job in jobs:
            logger.warning(f"Marked abandoned import job {job.id} for brand {brand_id} as failed")
        return len(jobs)

    async def create_import_job(self, brand_id: str, sitemap_url: str) -> SitemapImportJob:
        """Create a pending import job, refusing if a live one is already running.

        Active jobs idle for longer than ``job_timeout`` are failed first, so a
        crawler that never reports back does not block the brand forever.
        """
        await self.expire_abandoned_jobs(brand_id)
        if await self.get_active_job(brand_id) is not None:
            raise ImportInProgressError(f"An import is already in progress for brand {brand_id}")

        job = SitemapImportJob(
            brand_id=brand_id,
            sitemap_url=sitemap_url,
            status=ImportStatus.PENDING.value,
            started_at=datetime.utcnow(),
        )
        async with self._session_factory() as db:
            db.add(job)
            await db.commit()
            await db.refresh(job)
        logger.info(f"Created import job {job.id} for brand {brand_id}")
        return job

    async def get_import_job(self, job_id: str) -> Optional[SitemapImportJob]:
        async with self._session_factory() as db:
            return await db.get(SitemapImportJob, job_id)

    async def update_import_job(self, job_id: str, **fields: Any) -> SitemapImportJob:
        async with self._session_factory() as db:
            job = await db.get(SitemapImportJob, job_id)
            if job is None:
                raise ImportJobNotFoundError(job_id)
            for name, value in fields.items():
                setattr(job, name, value)
            await db.commit()
            await db.refresh(job)
            return job
