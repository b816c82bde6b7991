"""
Model Loader
Singleton registry for loading and caching the sentence embedding model.
Handles lazy loading and remembers load failures so callers can degrade.
"""

import logging
import threading
import time
from typing import Any, Dict, Optional

from .config import get_ml_config, MLConfig

logger = logging.getLogger(__name__)


class ModelNotAvailableError(Exception):
    """Raised when the embedding model could not be loaded."""

    pass


class ModelRegistry:
    """
    Singleton registry for ML models.

    Provides:
    - Lazy loading of the SentenceTransformer model
    - In-memory caching (model loaded once per process)
    - Availability tracking (a failed load is logged once, then reported)

    Usage:
        registry = ModelRegistry()
        model = registry.get_embedding_model()
        vector = model.encode("query: nitrile gloves", normalize_embeddings=True)
    """

    _instance: Optional["ModelRegistry"] = None

    def __new__(cls, *args, **kwargs):
        """Singleton pattern - only one instance per process."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self, config: Optional[MLConfig] = None):
        """Initialize registry (only runs once due to singleton)."""
        if self._initialized:
            return

        self._config = config or get_ml_config()
        self._device = self._config.embedding.device
        self._model = None
        self._load_error: Optional[str] = None
        self._lock = threading.Lock()
        self._initialized = True

        logger.info(f"ModelRegistry initialized (device: {self._device})")

    @classmethod
    def reset(cls) -> None:
        """Drop the singleton (useful for testing)."""
        cls._instance = None

    def get_embedding_model(self):
        """
        Load the SentenceTransformer model (cached).

        Returns:
            Loaded model

        Raises:
            ModelNotAvailableError: If loading failed now or on an earlier attempt
        """
        if self._model is not None:
            return self._model

        with self._lock:
            if self._model is not None:
                return self._model
            if self._load_error is not None:
                raise ModelNotAvailableError(self._load_error)

            cfg = self._config.embedding
            logger.info(f"Loading embedding model: {cfg.model_name}")
            start_time = time.time()

            try:
                from sentence_transformers import SentenceTransformer

                self._model = SentenceTransformer(
                    cfg.model_name,
                    device=self._device,
                    cache_folder=cfg.model_cache_dir,
                )
            except Exception as e:
                self._load_error = f"Failed to load embedding model {cfg.model_name}: {e}"
                logger.error(self._load_error)
                raise ModelNotAvailableError(self._load_error) from e

            load_time = time.time() - start_time
            logger.info(f"Embedding model loaded successfully in {load_time:.2f}s")

        return self._model

    def set_embedding_model(self, model) -> None:
        """Install an already constructed encoder (tests, warm workers)."""
        with self._lock:
            self._model = model
            self._load_error = None

    def is_loaded(self) -> bool:
        """Check if the embedding model is currently loaded in memory."""
        return self._model is not None

    def is_available(self) -> bool:
        """False once a load attempt has failed."""
        return self._load_error is None

    def get_embedding_dim(self) -> int:
        return self._config.embedding.embedding_dim

    def get_device(self) -> str:
        return self._device

    def unload_models(self) -> None:
        """Unload the model from memory. It will be reloaded on next use."""
        with self._lock:
            if self._model is not None:
                logger.info("Unloading embedding model from memory")
            self._model = None
            self._load_error = None

    def get_model_info(self) -> Dict[str, Any]:
        """
        Get information about the model.

        Returns:
            Dict with model configuration and status
        """
        return {
            "model_name": self._config.embedding.model_name,
            "device": self._device,
            "embedding_dim": self.get_embedding_dim(),
            "is_loaded": self.is_loaded(),
            "load_error": self._load_error,
        }


def get_model_registry() -> ModelRegistry:
    """Get global model registry."""
    return ModelRegistry()
