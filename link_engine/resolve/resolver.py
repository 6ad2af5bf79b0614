"""Tiered link resolution: brand rules, list matching and vector search."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Iterable, Optional, Protocol, Sequence

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from link_engine import metrics
from link_engine.ai.prompts import (
    AnswerParseError,
    CandidateConfirmPrompt,
    CandidateOption,
    ListMatchOption,
    ListMatchPrompt,
    parse_index_answer,
)
from link_engine.config import settings
from link_engine.db.brands import BrandStore
from link_engine.db.link_index import LinkIndexStore
from link_engine.resolve.types import (
    CatalogLink,
    LinkPreferences,
    MatchResult,
    MatchSource,
    ResolutionRequest,
    ScoredEntry,
)
from link_engine.resolve.urls import is_placeholder, trusted_hosts_for
from link_engine.resolve.usage import UsageRecorder

logger = logging.getLogger(__name__)

ClassifyFn = Callable[[str], Awaitable[str]]
EmbedFn = Callable[[str], Awaitable[Sequence[float]]]


class Verifier(Protocol):
    async def verify(self, url: str, trusted_hosts: Iterable[str]) -> bool: ...


class _CollaboratorFailed(Exception):
    """Internal signal that a collaborator call failed and was already logged."""


class TieredResolver:
    """
    Resolve the destination URL for one email slice.

    Tiers, first hit wins:
    1. Generic CTA: brand rule (substring on campaign context), then brand default
    2. No healthy catalog entries -> no_index
    3. Small catalog -> classifier picks from the full list
    4. Large catalog -> vector search, auto-accept / confirm / reject by similarity

    Every returned URL that is not a placeholder is verified first. Collaborator
    failures degrade the result; they never escape ``resolve``.
    """

    def __init__(
        self,
        brands: BrandStore,
        links: LinkIndexStore,
        classify: ClassifyFn,
        embed: EmbedFn,
        verifier: Verifier,
        usage: Optional[UsageRecorder] = None,
    ):
        self.brands = brands
        self.links = links
        self._classify = classify
        self._embed = embed
        self.verifier = verifier
        self.usage = usage or UsageRecorder(links.record_usage)

        self.small_catalog_max = settings.small_catalog_max_entries
        self.top_k = settings.vector_top_k
        self.high_threshold = settings.vector_high_confidence_threshold
        self.confirm_threshold = settings.vector_confirm_threshold
        self.list_confidence = settings.list_match_confidence

    async def resolve(self, request: ResolutionRequest) -> MatchResult:
        start = time.monotonic()
        result, strategy = await self._resolve(request)
        duration = time.monotonic() - start

        metrics.record_resolution(result.source.value, strategy, duration)
        logger.info(
            f"Resolved slice for brand {request.brand_id} via {strategy}: "
            f"{result.source.value} ({result.confidence:.2f}) -> {result.url}"
        )
        return result

    async def _resolve(self, request: ResolutionRequest) -> tuple[MatchResult, str]:
        try:
            brand = await self.brands.get_brand(request.brand_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to load brand {request.brand_id}: {e}")
            metrics.record_collaborator_error("store", e)
            return MatchResult.miss(MatchSource.NO_INDEX), "store_error"

        if brand is None:
            logger.warning(f"Brand {request.brand_id} not found")
            return MatchResult.miss(MatchSource.NO_INDEX), "no_brand"

        trusted = trusted_hosts_for(brand.domain)
        description = request.slice_description

        if request.is_generic_cta:
            preferences = self._load_preferences(brand.id, brand.link_preferences)
            context = request.campaign_context

            rule = preferences.match_rule(context.rule_text())
            if rule is not None:
                logger.debug(f"Generic CTA matched brand rule '{rule.name}'")
                result = MatchResult(
                    url=rule.destination_url, source=MatchSource.BRAND_RULE, confidence=1.0
                )
                return await self._verified(result, trusted), "brand_rule"

            if preferences.default_destination_url:
                result = MatchResult(
                    url=preferences.default_destination_url,
                    source=MatchSource.BRAND_DEFAULT,
                    confidence=1.0,
                )
                return await self._verified(result, trusted), "brand_default"

            # No override: search the catalog for the campaign focus instead
            description = context.primary_focus or request.slice_description

        try:
            entries = await self.links.get(brand.id, healthy_only=True)
        except SQLAlchemyError as e:
            logger.error(f"Failed to load link index for brand {brand.id}: {e}")
            metrics.record_collaborator_error("store", e)
            return MatchResult.miss(MatchSource.NO_INDEX), "store_error"

        catalog = [
            CatalogLink(id=e.id, url=e.url, title=e.title, link_type=e.link_type)
            for e in entries
            if e.url
        ]
        if not catalog:
            return MatchResult.miss(MatchSource.NO_INDEX), "no_index"

        if not (description or "").strip():
            return MatchResult.miss(MatchSource.NO_MATCH), "empty_description"

        if len(catalog) < self.small_catalog_max:
            result, strategy = await self._match_list(description, catalog), "list"
        else:
            result, strategy = await self._match_vector(brand.id, description), "vector"

        result = await self._verified(result, trusted)
        if result.url and result.matched_entry_id:
            self.usage.record(result.matched_entry_id)
        return result, strategy

    def _load_preferences(self, brand_id: str, raw: Optional[dict]) -> LinkPreferences:
        try:
            return LinkPreferences.model_validate(raw or {})
        except ValidationError as e:
            logger.warning(f"Ignoring malformed link preferences for brand {brand_id}: {e}")
            return LinkPreferences()

    async def _verified(self, result: MatchResult, trusted_hosts: list[str]) -> MatchResult:
        if result.url is None or is_placeholder(result.url):
            return result

        try:
            healthy = await self.verifier.verify(result.url, trusted_hosts)
        except Exception as e:
            metrics.record_collaborator_error("verifier", e)
            logger.warning(f"verifier call failed for {result.url}: {type(e).__name__}: {e}")
            healthy = False

        if healthy:
            return result

        logger.info(f"Discarding {result.source.value} match, URL failed verification: {result.url}")
        return MatchResult.miss(MatchSource.VERIFICATION_FAILED, top_similarity=result.top_similarity)

    async def _call(self, collaborator: str, awaitable: Awaitable[Any], timeout: float) -> Any:
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except Exception as e:
            metrics.record_collaborator_error(collaborator, e)
            logger.warning(f"{collaborator} call failed: {type(e).__name__}: {e}")
            raise _CollaboratorFailed(collaborator) from e

    async def _ask_for_index(self, prompt: str, count: int) -> Optional[int]:
        answer = await self._call(
            "classifier", self._classify(prompt), settings.classifier_timeout_seconds
        )
        try:
            return parse_index_answer(answer, count)
        except AnswerParseError as e:
            metrics.record_collaborator_error("classifier", e)
            logger.warning(f"Rejected classifier answer: {e}")
            raise _CollaboratorFailed("classifier") from e

    async def _match_list(self, description: str, catalog: list[CatalogLink]) -> MatchResult:
        prompt = ListMatchPrompt(
            slice_description=description,
            options=[
                ListMatchOption(link_type=link.link_type, title=link.title, url=link.url)
                for link in catalog
            ],
        ).to_prompt()

        try:
            index = await self._ask_for_index(prompt, len(catalog))
        except _CollaboratorFailed:
            return MatchResult.miss(MatchSource.NO_MATCH)

        if index is None:
            return MatchResult.miss(MatchSource.NO_MATCH)

        chosen = catalog[index]
        return MatchResult(
            url=chosen.url,
            source=MatchSource.INDEX_LIST_MATCH,
            confidence=self.list_confidence,
            matched_entry_id=chosen.id,
        )

    async def _match_vector(self, brand_id: str, description: str) -> MatchResult:
        try:
            embedding = await self._call(
                "embedder", self._embed(description), settings.embedding_timeout_seconds
            )
        except _CollaboratorFailed:
            return MatchResult.miss(MatchSource.NO_MATCH)

        try:
            candidates = await self.links.vector_search(brand_id, embedding, self.top_k)
        except SQLAlchemyError as e:
            metrics.record_collaborator_error("store", e)
            logger.error(f"Vector search failed for brand {brand_id}: {e}")
            return MatchResult.miss(MatchSource.NO_MATCH)

        if not candidates:
            return MatchResult.miss(MatchSource.NO_MATCH)

        top = candidates[0]
        if top.similarity > self.high_threshold:
            return self._accept(top, MatchSource.VECTOR_HIGH_CONFIDENCE, top.similarity)

        if top.similarity <= self.confirm_threshold:
            return MatchResult.miss(MatchSource.NO_MATCH, top_similarity=top.similarity)

        prompt = CandidateConfirmPrompt(
            slice_description=description,
            candidates=[
                CandidateOption(title=c.title, url=c.url, similarity=c.similarity)
                for c in candidates
            ],
        ).to_prompt()

        try:
            index = await self._ask_for_index(prompt, len(candidates))
        except _CollaboratorFailed:
            return MatchResult.miss(MatchSource.LOW_CONFIDENCE, top_similarity=top.similarity)

        if index is None:
            return MatchResult.miss(MatchSource.LOW_CONFIDENCE, top_similarity=top.similarity)

        return self._accept(candidates[index], MatchSource.VECTOR_CLAUDE_CONFIRMED, top.similarity)

    @staticmethod
    def _accept(entry: ScoredEntry, source: MatchSource, top_similarity: float) -> MatchResult:
        return MatchResult(
            url=entry.url,
            source=source,
            confidence=min(max(entry.similarity, 0.0), 1.0),
            matched_entry_id=entry.id,
            top_similarity=top_similarity,
        )
