"""LLM service used as the text-reasoning collaborator."""

import hashlib
import logging
from typing import Optional

import redis.asyncio as redis
from openai import AsyncOpenAI

from link_engine.config import settings

logger = logging.getLogger(__name__)


class LLMService:
    """
    Text classification through the OpenAI chat API.

    Features:
    - Deterministic, short completions for index/none answers
    - Redis-backed response cache (optional, best effort)
    - Per-call timeout
    """

    def __init__(self):
        self._client: Optional[AsyncOpenAI] = None
        self._redis: Optional[redis.Redis] = None

    async def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not settings.openai_api_key:
                raise ValueError("OpenAI API key not configured")
            self._client = AsyncOpenAI(api_key=settings.openai_api_key)
        return self._client

    async def _get_redis(self) -> Optional[redis.Redis]:
        if not settings.llm_cache_enabled:
            return None

        if self._redis is None:
            try:
                self._redis = redis.from_url(
                    settings.redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                )
            except Exception as e:
                logger.warning(f"Failed to connect to Redis for LLM cache: {e}")
                return None
        return self._redis

    def _get_cache_key(self, prompt: str, model: str) -> str:
        key_hash = hashlib.sha256(f"{model}:{prompt}".encode('utf-8')).hexdigest()
        return f"link_llm_cache:{key_hash}"

    async def _cache_get(self, key: str) -> Optional[str]:
        redis_client = await self._get_redis()
        if not redis_client:
            return None
        try:
            return await redis_client.get(key)
        except redis.RedisError as e:
            logger.warning(f"LLM cache read failed: {e}")
            return None

    async def _cache_set(self, key: str, value: str) -> None:
        redis_client = await self._get_redis()
        if not redis_client:
            return
        try:
            await redis_client.setex(key, settings.llm_cache_ttl_seconds, value)
        except redis.RedisError as e:
            logger.warning(f"LLM cache write failed: {e}")

    async def classify(self, prompt: str, model: Optional[str] = None) -> str:
        """
        Send a classification prompt and return the raw text answer.

        Raises whatever the client raises (auth, timeout, API errors);
        callers decide how to degrade.
        """
        model = model or settings.llm_model
        cache_key = self._get_cache_key(prompt, model)

        cached = await self._cache_get(cache_key)
        if cached is not None:
            logger.debug(f"LLM cache hit for prompt: {prompt[:50]}...")
            return cached

        client = await self._get_client()
        response = await client.chat.completions.create(
            model=model,
            messages=[{"role": "user", "content": prompt}],
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
            timeout=settings.classifier_timeout_seconds,
        )

        result = response.choices[0].message.content or ""
        await self._cache_set(cache_key, result)
        return result

    async def close(self):
        """Close connections."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None
        if self._client:
            await self._client.close()
            self._client = None


# Global LLM service instance
llm_service = LLMService()
