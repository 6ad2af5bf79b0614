"""Embedding generation for slice descriptions and link titles."""

import asyncio
import hashlib
import logging
from typing import List, Optional

import numpy as np
from sentence_transformers import SentenceTransformer

from link_engine.config import settings

logger = logging.getLogger(__name__)


class EmbeddingService:
    """
    Text embeddings using sentence transformers.

    Features:
    - Lazy model loading
    - Batch embedding generation
    - In-memory cache keyed by model + text hash
    - Async wrappers that keep model work off the event loop
    """

    def __init__(self, model_name: Optional[str] = None):
        self.model_name = model_name or settings.embedding_model
        self._model: Optional[SentenceTransformer] = None
        self._cache: dict[str, np.ndarray] = {}

    def _get_model(self) -> SentenceTransformer:
        if self._model is None:
            logger.info(f"Loading embedding model: {self.model_name}")
            self._model = SentenceTransformer(self.model_name)
            logger.info(f"Successfully loaded model: {self.model_name}")
        return self._model

    def _get_cache_key(self, text: str) -> str:
        text_hash = hashlib.sha256(text.encode('utf-8')).hexdigest()
        return f"{self.model_name}:{text_hash}"

    def generate_embedding(self, text: str, use_cache: bool = True) -> np.ndarray:
        """
        Generate a normalized embedding for a single text.

        Raises:
            ValueError: If the text is empty
        """
        if not text or not text.strip():
            raise ValueError("Text cannot be empty")

        use_cache = use_cache and settings.embedding_cache_enabled
        cache_key = self._get_cache_key(text)
        if use_cache and cache_key in self._cache:
            return self._cache[cache_key]

        embedding = self._get_model().encode(
            text, normalize_embeddings=True, show_progress_bar=False
        )
        if use_cache:
            self._cache[cache_key] = embedding
        return embedding

    def generate_embeddings_batch(self, texts: List[str]) -> List[np.ndarray]:
        """Generate embeddings for non-empty texts, preserving order."""
        if not texts:
            return []
        if any(not t or not t.strip() for t in texts):
            raise ValueError("Texts cannot be empty")

        logger.debug(f"Generating embeddings for {len(texts)} texts")
        return list(
            self._get_model().encode(
                texts,
                normalize_embeddings=True,
                show_progress_bar=False,
                batch_size=settings.embedding_batch_size,
            )
        )

    async def embed(self, text: str) -> list[float]:
        """Embedding collaborator: text -> fixed-length float vector."""
        embedding = await asyncio.to_thread(self.generate_embedding, text)
        return embedding.tolist()

    async def embed_batch(self, texts: List[str]) -> list[list[float]]:
        embeddings = await asyncio.to_thread(self.generate_embeddings_batch, texts)
        return [e.tolist() for e in embeddings]

    def clear_cache(self):
        self._cache.clear()
        logger.info("Embedding cache cleared")


# Global embedding service instance
embedding_service = EmbeddingService()
