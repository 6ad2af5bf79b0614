"""Re-verify catalogued links and persist health verdicts."""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from link_engine.db.brands import BrandStore
from link_engine.db.link_index import LinkIndexStore
from link_engine.db.session import AsyncSessionLocal
from link_engine.logging_config import get_logger, setup_logging
from link_engine.resolve.health import HealthVerifier
from link_engine.worker.health_audit import HealthAuditor


async def audit(brand_ids: list[str], concurrency: int):
    logger = get_logger(__name__, job="link_health_audit")
    verifier = HealthVerifier()
    auditor = HealthAuditor(
        BrandStore(AsyncSessionLocal),
        LinkIndexStore(AsyncSessionLocal),
        verifier,
        concurrency=concurrency,
    )
    try:
        if brand_ids:
            summaries = [await auditor.audit_brand(brand_id) for brand_id in brand_ids]
        else:
            summaries = await auditor.audit_all()
    finally:
        await verifier.close()

    for summary in summaries:
        logger.info(
            f"{summary.brand_id}: {summary.checked} checked, "
            f"{summary.healthy} healthy, {summary.failed} failed",
            extra={"brand_id": summary.brand_id},
        )


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Re-verify brand link catalogs")
    parser.add_argument("brand_ids", nargs="*", help="Brands to audit (default: all ingested)")
    parser.add_argument("--concurrency", type=int, default=5, help="Parallel checks (default: 5)")
    args = parser.parse_args()

    setup_logging()
    asyncio.run(audit(args.brand_ids, args.concurrency))
