"""Staleness-driven re-ingestion of brand link catalogs."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Awaitable, Callable, Optional

from link_engine import metrics
from link_engine.config import settings
from link_engine.db.brands import BrandStore, ImportInProgressError
from link_engine.db.models import ImportStatus
from link_engine.ingest.dispatcher import IngestionDispatcher

logger = logging.getLogger(__name__)


@dataclass
class RefreshReport:
    """Outcome of one refresh tick."""

    triggered: list[str] = field(default_factory=list)
    skipped: list[tuple[str, str]] = field(default_factory=list)  # (brand_id, reason)
    failed: list[tuple[str, str]] = field(default_factory=list)  # (brand_id, error)

    def to_dict(self) -> dict:
        return {
            "triggered": list(self.triggered),
            "skipped": [{"brand_id": b, "reason": r} for b, r in self.skipped],
            "failed": [{"brand_id": b, "error": e} for b, e in self.failed],
        }


class RefreshScheduler:
    """
    Finds brands whose catalog is stale and dispatches re-ingestion.

    The stale set is recomputed from ``Brand.last_ingested_at`` on every
    tick. Dispatches are serialized with a fixed gap between brands so the
    crawler and third-party sites are not hit in a burst.
    """

    def __init__(
        self,
        brands: BrandStore,
        dispatcher: IngestionDispatcher,
        stale_after: Optional[timedelta] = None,
        stagger_seconds: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.brands = brands
        self.dispatcher = dispatcher
        self.stale_after = stale_after or timedelta(days=settings.refresh_stale_after_days)
        self.stagger_seconds = (
            settings.refresh_stagger_seconds if stagger_seconds is None else stagger_seconds
        )
        self._sleep = sleep

    async def trigger_stale_refresh(self) -> list[str]:
        """Dispatch re-ingestion for stale brands; returns the triggered brand ids."""
        report = await self.run()
        return report.triggered

    async def run(self) -> RefreshReport:
        report = RefreshReport()
        stale = await self.brands.list_stale_brands(self.stale_after)
        logger.info(f"Refresh tick: {len(stale)} brands with stale link catalogs")

        dispatched_any = False
        for brand in stale:
            if not brand.domain:
                report.skipped.append((brand.id, "No domain configured"))
                metrics.record_refresh_dispatch("skipped")
                logger.info(f"Skipping brand {brand.id}: no domain configured")
                continue

            if dispatched_any and self.stagger_seconds > 0:
                await self._sleep(self.stagger_seconds)

            try:
                job = await self.dispatcher.start_import_for(brand)
            except ImportInProgressError:
                report.skipped.append((brand.id, "Import already in progress"))
                metrics.record_refresh_dispatch("skipped")
                continue
            except Exception as e:
                logger.error(f"Failed to start refresh for brand {brand.id}: {e}", exc_info=True)
                report.failed.append((brand.id, str(e)))
                continue

            dispatched_any = True
            if job.status == ImportStatus.FAILED.value:
                report.failed.append((brand.id, job.error_message or "dispatch failed"))
            else:
                report.triggered.append(brand.id)

        logger.info(
            f"Refresh tick complete: {len(report.triggered)} triggered, "
            f"{len(report.skipped)} skipped, {len(report.failed)} failed"
        )
        return report
