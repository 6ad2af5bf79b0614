"""Wiring of stores, collaborators and components into one engine facade."""

import logging
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from link_engine.ai.embedding_service import embedding_service
from link_engine.ai.llm_service import llm_service
from link_engine.db.brands import BrandStore
from link_engine.db.link_index import LinkIndexStore
from link_engine.ingest.catalog import CatalogIngestor, EmbedBatchFn
from link_engine.ingest.dispatcher import IngestionDispatcher
from link_engine.resolve.health import HealthVerifier, health_verifier
from link_engine.resolve.navigation import resolve_navigation_link, score_navigation_candidate
from link_engine.resolve.resolver import ClassifyFn, EmbedFn, TieredResolver
from link_engine.resolve.types import MatchResult, ResolutionRequest
from link_engine.resolve.usage import UsageRecorder
from link_engine.worker.health_audit import HealthAuditor
from link_engine.worker.refresh import RefreshScheduler

logger = logging.getLogger(__name__)


class LinkEngine:
    """
    Public surface of the link resolution engine.

    Collaborators default to the process-wide LLM, embedding and health
    services; tests pass fakes instead.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        classify: Optional[ClassifyFn] = None,
        embed: Optional[EmbedFn] = None,
        embed_batch: Optional[EmbedBatchFn] = None,
        verifier: Optional[HealthVerifier] = None,
        dispatcher: Optional[IngestionDispatcher] = None,
    ):
        self.brands = BrandStore(session_factory)
        self.links = LinkIndexStore(session_factory)
        self.verifier = verifier or health_verifier
        self.usage = UsageRecorder(self.links.record_usage)

        self.resolver = TieredResolver(
            self.brands,
            self.links,
            classify=classify or llm_service.classify,
            embed=embed or embedding_service.embed,
            verifier=self.verifier,
            usage=self.usage,
        )
        self.dispatcher = dispatcher or IngestionDispatcher(self.brands)
        self.ingestor = CatalogIngestor(
            self.brands, self.links, embed_batch or embedding_service.embed_batch
        )
        self.refresher = RefreshScheduler(self.brands, self.dispatcher)
        self.auditor = HealthAuditor(self.brands, self.links, self.verifier)
        self._embed = embed or embedding_service.embed

    async def resolve(self, request: ResolutionRequest) -> MatchResult:
        return await self.resolver.resolve(request)

    def score_navigation_candidate(
        self, label: str, discovered_urls: Iterable[str], brand_domain: str
    ) -> Optional[str]:
        return score_navigation_candidate(label, discovered_urls, brand_domain)

    async def resolve_navigation(
        self, label: str, discovered_urls: Iterable[str], brand_domain: str
    ) -> Optional[str]:
        return await resolve_navigation_link(label, discovered_urls, brand_domain, self.verifier)

    async def trigger_stale_refresh(self) -> list[str]:
        return await self.refresher.trigger_stale_refresh()

    async def embed_text(self, text: str) -> list[float]:
        return list(await self._embed(text))

    async def close(self):
        """Wait for usage writes, then release HTTP clients."""
        await self.usage.drain()
        await self.dispatcher.close()
        await self.verifier.close()
        await llm_service.close()
        logger.info("Link engine closed")


def create_link_engine(**overrides) -> LinkEngine:
    from link_engine.db.session import AsyncSessionLocal

    return LinkEngine(AsyncSessionLocal, **overrides)
