"""Scheduled background jobs."""

import logging
from typing import Optional

from link_engine import metrics
from link_engine.service import LinkEngine, create_link_engine

logger = logging.getLogger(__name__)


class TaskRunner:
    """Runs the refresh and health-audit jobs against a shared engine."""

    def __init__(self, engine: Optional[LinkEngine] = None):
        self._engine = engine

    @property
    def engine(self) -> LinkEngine:
        if self._engine is None:
            self._engine = create_link_engine()
        return self._engine

    def bind(self, engine: LinkEngine):
        self._engine = engine

    async def refresh_stale_catalogs(self):
        """Dispatch re-ingestion for brands whose catalog is stale."""
        try:
            report = await self.engine.refresher.run()
        except Exception as e:
            logger.error(f"Stale catalog refresh failed: {e}", exc_info=True)
            metrics.record_scheduler_run("refresh", success=False)
            return
        metrics.record_scheduler_run("refresh", success=True)
        logger.info(f"Stale catalog refresh: {report.to_dict()}")

    async def audit_link_health(self):
        """Re-verify every catalogued link of every ingested brand."""
        try:
            summaries = await self.engine.auditor.audit_all()
        except Exception as e:
            logger.error(f"Link health audit failed: {e}", exc_info=True)
            metrics.record_scheduler_run("health_audit", success=False)
            return
        metrics.record_scheduler_run("health_audit", success=True)
        failed = sum(s.failed for s in summaries)
        logger.info(f"Link health audit: {len(summaries)} brands, {failed} failed checks")


task_runner = TaskRunner()
