"""Link Index Store: the persisted catalog of known brand URLs."""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from link_engine.db.models import LinkIndexEntry, LinkSource, LinkType
from link_engine.db.vector_store import rank_by_similarity
from link_engine.resolve.types import ScoredEntry
from link_engine.resolve.urls import canonicalize_url

logger = logging.getLogger(__name__)

LINK_FILTERS = ("all", "products", "collections", "unhealthy")


class LinkNotFoundError(LookupError):
    """Raised when a link index entry does not exist."""


class DuplicateLinkError(ValueError):
    """Raised when a URL is already catalogued for the brand."""


@dataclass
class LinkRecord:
    """A link to write into the index during ingestion."""

    url: str
    link_type: str = LinkType.OTHER.value
    title: Optional[str] = None
    description: Optional[str] = None
    embedding: Optional[list[float]] = None
    source: str = LinkSource.SITEMAP.value


class LinkIndexStore:
    """
    Catalog access for the resolver, ingestion and administration.

    Every method opens its own short-lived session. Mutations are single
    UPDATE statements so concurrent callers never race on read-modify-write.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, brand_id: str, healthy_only: bool = True) -> list[LinkIndexEntry]:
        """Entries for a brand (only healthy ones by default)."""
        query = select(LinkIndexEntry).where(LinkIndexEntry.brand_id == brand_id)
        if healthy_only:
            query = query.where(LinkIndexEntry.is_healthy.is_(True))
        query = query.order_by(LinkIndexEntry.created_at.asc(), LinkIndexEntry.url.asc())

        async with self._session_factory() as db:
            result = await db.execute(query)
            return list(result.scalars().all())

    async def upsert_batch(self, brand_id: str, records: Sequence[LinkRecord]) -> int:
        """
        Insert or replace entries keyed by (brand_id, canonical url).

        Usage counters and health state of existing rows are preserved; an
        existing embedding is kept when the incoming record has none.

        Returns:
            Number of rows written
        """
        by_url: dict[str, LinkRecord] = {}
        for record in records:
            url = canonicalize_url(record.url)
            if url:
                by_url[url] = record
        if not by_url:
            return 0

        async with self._session_factory() as db:
            result = await db.execute(
                select(LinkIndexEntry).where(
                    LinkIndexEntry.brand_id == brand_id,
                    LinkIndexEntry.url.in_(list(by_url)),
                )
            )
            existing = {entry.url: entry for entry in result.scalars().all()}

            for url, record in by_url.items():
                entry = existing.get(url)
                if entry is None:
                    db.add(
                        LinkIndexEntry(
                            brand_id=brand_id,
                            url=url,
                            link_type=record.link_type,
                            title=record.title,
                            description=record.description,
                            embedding=record.embedding,
                            source=record.source,
                        )
                    )
                    continue

                entry.link_type = record.link_type
                entry.title = record.title or entry.title
                entry.description = record.description or entry.description
                if record.embedding is not None:
                    entry.embedding = record.embedding

            await db.commit()

        logger.debug(f"Upserted {len(by_url)} links for brand {brand_id}")
        return len(by_url)

    async def record_usage(self, entry_id: str) -> None:
        """Atomically bump use_count and stamp last_used_at."""
        async with self._session_factory() as db:
            await db.execute(
                update(LinkIndexEntry)
                .where(LinkIndexEntry.id == entry_id)
                .values(
                    use_count=LinkIndexEntry.use_count + 1,
                    last_used_at=datetime.utcnow(),
                )
            )
            await db.commit()

    async def set_health(self, entry_id: str, healthy: bool) -> None:
        async with self._session_factory() as db:
            result = await db.execute(
                update(LinkIndexEntry)
                .where(LinkIndexEntry.id == entry_id)
                .values(is_healthy=healthy, last_verified_at=datetime.utcnow())
            )
            await db.commit()
        if result.rowcount == 0:
            raise LinkNotFoundError(entry_id)

    async def record_verification(self, entry_id: str, healthy: bool, max_failures: int) -> None:
        """
        Persist a health-check verdict.

        Success resets the failure streak and marks the entry healthy; a
        failure increments the streak and marks the entry unhealthy once it
        reaches ``max_failures``.
        """
        now = datetime.utcnow()
        if healthy:
            values = {"is_healthy": True, "verification_failures": 0, "last_verified_at": now}
        else:
            failures = LinkIndexEntry.verification_failures + 1
            values = {
                "verification_failures": failures,
                "is_healthy": and_(LinkIndexEntry.is_healthy, failures < max_failures),
                "last_verified_at": now,
            }

        async with self._session_factory() as db:
            await db.execute(
                update(LinkIndexEntry).where(LinkIndexEntry.id == entry_id).values(**values)
            )
            await db.commit()

    async def vector_search(
        self, brand_id: str, query_embedding: Sequence[float], k: int
    ) -> list[ScoredEntry]:
        """
        Top-k healthy, embedded entries by cosine similarity.

        Ordered by descending similarity; ties prefer higher use_count.
        """
        query = select(
            LinkIndexEntry.id,
            LinkIndexEntry.url,
            LinkIndexEntry.title,
            LinkIndexEntry.link_type,
            LinkIndexEntry.use_count,
            LinkIndexEntry.embedding,
        ).where(
            LinkIndexEntry.brand_id == brand_id,
            LinkIndexEntry.is_healthy.is_(True),
            LinkIndexEntry.embedding.is_not(None),
        )

        async with self._session_factory() as db:
            rows = (await db.execute(query)).all()

        candidates, embeddings = [], []
        for row in rows:
            if not row.embedding:
                continue
            candidates.append(
                ScoredEntry(
                    id=row.id,
                    url=row.url,
                    title=row.title,
                    link_type=row.link_type,
                    similarity=0.0,
                    use_count=row.use_count,
                )
            )
            embeddings.append(row.embedding)

        return rank_by_similarity(query_embedding, candidates, embeddings, k)

    async def list_page(
        self,
        brand_id: str,
        page: int = 1,
        limit: int = 50,
        link_filter: str = "all",
        search: str = "",
    ) -> tuple[list[LinkIndexEntry], int, int]:
        """
        Paginated listing for administration.

        Returns:
            (entries, total, total_pages)
        """
        if link_filter not in LINK_FILTERS:
            raise ValueError(f"Unknown link filter: {link_filter}")
        page = max(page, 1)
        limit = max(limit, 1)

        conditions = [LinkIndexEntry.brand_id == brand_id]
        if link_filter == "products":
            conditions.append(LinkIndexEntry.link_type == LinkType.PRODUCT.value)
        elif link_filter == "collections":
            conditions.append(LinkIndexEntry.link_type == LinkType.COLLECTION.value)
        elif link_filter == "unhealthy":
            conditions.append(LinkIndexEntry.is_healthy.is_(False))
        if search:
            pattern = f"%{search.lower()}%"
            conditions.append(
                or_(
                    func.lower(LinkIndexEntry.title).like(pattern),
                    func.lower(LinkIndexEntry.url).like(pattern),
                )
            )

        async with self._session_factory() as db:
            total = (
                await db.execute(select(func.count(LinkIndexEntry.id)).where(*conditions))
            ).scalar_one()
            result = await db.execute(
                select(LinkIndexEntry)
                .where(*conditions)
                .order_by(LinkIndexEntry.use_count.desc(), LinkIndexEntry.created_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            entries = list(result.scalars().all())

        return entries, total, math.ceil(total / limit)

    async def add_link(
        self,
        brand_id: str,
        url: str,
        title: str,
        link_type: str,
        embedding: Optional[list[float]] = None,
    ) -> LinkIndexEntry:
        """Add a single operator-confirmed link."""
        entry = LinkIndexEntry(
            brand_id=brand_id,
            url=canonicalize_url(url),
            title=title,
            link_type=link_type,
            embedding=embedding,
            source=LinkSource.USER_ADDED.value,
            user_confirmed=True,
            is_healthy=True,
            last_verified_at=datetime.utcnow(),
        )
        async with self._session_factory() as db:
            db.add(entry)
            try:
                await db.commit()
            except IntegrityError as e:
                await db.rollback()
                raise DuplicateLinkError(f"{entry.url} already exists for this brand") from e
            await db.refresh(entry)
        return entry

    async def remove(self, brand_id: str, entry_id: str) -> None:
        """Administrative removal of a single entry."""
        async with self._session_factory() as db:
            result = await db.execute(
                delete(LinkIndexEntry).where(
                    LinkIndexEntry.id == entry_id, LinkIndexEntry.brand_id == brand_id
                )
            )
            await db.commit()
        if result.rowcount == 0:
            raise LinkNotFoundError(entry_id)

    async def entries_missing_embeddings(
        self, brand_id: Optional[str] = None, limit: Optional[int] = None
    ) -> list[LinkIndexEntry]:
        query = select(LinkIndexEntry).where(LinkIndexEntry.embedding.is_(None))
        if brand_id:
            query = query.where(LinkIndexEntry.brand_id == brand_id)
        if limit:
            query = query.limit(limit)
        async with self._session_factory() as db:
            result = await db.execute(query)
            return list(result.scalars().all())

    async def set_embeddings(self, embeddings: dict[str, list[float]]) -> None:
        async with self._session_factory() as db:
            for entry_id, vector in embeddings.items():
                await db.execute(
                    update(LinkIndexEntry)
                    .where(LinkIndexEntry.id == entry_id)
                    .values(embedding=vector)
                )
            await db.commit()
