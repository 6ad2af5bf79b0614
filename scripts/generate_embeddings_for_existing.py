"""Backfill embeddings for link index entries that have none."""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from link_engine.ai.embedding_service import embedding_service
from link_engine.db.link_index import LinkIndexStore
from link_engine.db.session import AsyncSessionLocal

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def generate_embeddings_for_existing(
    batch_size: int = 100,
    limit: Optional[int] = None,
    brand_id: Optional[str] = None,
):
    """
    Generate and store embeddings for entries missing one.

    Args:
        batch_size: Number of entries to embed per batch
        limit: Optional limit on total number of entries to process
        brand_id: Optional brand to restrict the backfill to
    """
    store = LinkIndexStore(AsyncSessionLocal)
    entries = await store.entries_missing_embeddings(brand_id=brand_id, limit=limit)

    total = len(entries)
    logger.info(f"Found {total} links without embeddings")
    if total == 0:
        return

    processed = 0
    failed = 0
    for i in range(0, total, batch_size):
        batch = entries[i:i + batch_size]
        batch_num = (i // batch_size) + 1
        total_batches = (total + batch_size - 1) // batch_size

        logger.info(f"Processing batch {batch_num}/{total_batches} ({len(batch)} links)")
        try:
            vectors = await embedding_service.embed_batch([e.title or e.url for e in batch])
            await store.set_embeddings({e.id: v for e, v in zip(batch, vectors)})
            processed += len(batch)
        except Exception as e:
            logger.error(f"Failed to process batch {batch_num}: {e}")
            failed += len(batch)

    logger.info(
        f"Embedding backfill complete: {processed} processed, {failed} failed "
        f"out of {total} total links"
    )


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Generate embeddings for existing links")
    parser.add_argument(
        "--batch-size",
        type=int,
        default=100,
        help="Number of links to process per batch (default: 100)",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Limit number of links to process (default: all)",
    )
    parser.add_argument("--brand-id", default=None, help="Only backfill this brand")

    args = parser.parse_args()

    asyncio.run(generate_embeddings_for_existing(
        batch_size=args.batch_size,
        limit=args.limit,
        brand_id=args.brand_id,
    ))
