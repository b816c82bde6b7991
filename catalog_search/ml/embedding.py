"""
Embedding Adapter
Turns text into vectors for the semantic similarity clause.

Failures never propagate: an unavailable model, an encoder exception or a
vector of the wrong dimension all yield ``None`` so search can continue with
keyword scoring only.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

import numpy as np

from .config import get_ml_config, EmbeddingConfig
from .model_loader import ModelNotAvailableError, ModelRegistry, get_model_registry

logger = logging.getLogger(__name__)


class EmbeddingAdapter:
    """
    Query and document embedding with graceful degradation.

    Queries are framed with the retrieval prefix expected by the BGE model
    family; documents are encoded as-is.
    """

    def __init__(
        self,
        registry: Optional[ModelRegistry] = None,
        config: Optional[EmbeddingConfig] = None,
    ):
        self.registry = registry or get_model_registry()
        self.config = config or get_ml_config().embedding

    @property
    def dimension(self) -> int:
        return self.config.embedding_dim

    def is_available(self) -> bool:
        """Whether the encoder can be used without triggering a failed load."""
        return self.registry.is_available()

    def prepare_text(self, text: str) -> str:
        """Truncate to the approximate token budget and strip."""
        return (text or "")[: self.config.max_chars].strip()

    def embed(self, text: str) -> Optional[List[float]]:
        """
        Embed a search query.

        Args:
            text: Raw query text

        Returns:
            Vector of ``dimension`` floats, or None when unavailable
        """
        prepared = self.prepare_text(text)
        if not prepared:
            return None

        return self._encode(f"{self.config.query_prefix}{prepared}")

    def embed_documents(self, texts: List[str]) -> List[Optional[List[float]]]:
        """
        Embed product texts for indexing.

        Texts are processed in fixed-size batches; items inside a batch are
        independent and run on a thread pool.

        Args:
            texts: Document texts

        Returns:
            One vector (or None on failure) per input, in input order
        """
        if not texts:
            return []

        batch_size = self.config.embedding_batch_size
        results: List[Optional[List[float]]] = []

        with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
            for start in range(0, len(texts), batch_size):
                batch = [self.prepare_text(text) for text in texts[start : start + batch_size]]
                results.extend(
                    executor.map(lambda text: self._encode(text) if text else None, batch)
                )
                logger.debug(
                    f"Embedded batch {start // batch_size + 1} "
                    f"({min(start + batch_size, len(texts))}/{len(texts)})"
                )

        return results

    def _encode(self, text: str) -> Optional[List[float]]:
        try:
            model = self.registry.get_embedding_model()
        except ModelNotAvailableError as e:
            logger.warning(f"Embedding model unavailable: {e}")
            return None

        try:
            vector = model.encode(text, normalize_embeddings=self.config.normalize_embeddings)
        except Exception as e:
            logger.error(f"Failed to generate embedding: {e}")
            return None

        vector = np.asarray(vector, dtype=np.float32).reshape(-1)
        if vector.shape[0] != self.dimension:
            logger.error(
                f"Embedding dimension mismatch: expected {self.dimension}, got {vector.shape[0]}"
            )
            return None

        return vector.tolist()


# Global adapter instance
_embedding_adapter: Optional[EmbeddingAdapter] = None


def get_embedding_adapter() -> EmbeddingAdapter:
    """Get global embedding adapter (singleton)."""
    global _embedding_adapter
    if _embedding_adapter is None:
        _embedding_adapter = EmbeddingAdapter()
    return _embedding_adapter


def reset_embedding_adapter() -> None:
    """Reset embedding adapter (useful for testing)."""
    global _embedding_adapter
    _embedding_adapter = None
