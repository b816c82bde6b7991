"""
ML Configuration
Centralized configuration for query embeddings and offline user profiling.
"""

import os
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class EmbeddingConfig:
    """Embedding model selection and text preparation configuration."""

    # BGE small produces 384-dim vectors; must match the index mapping
    model_name: str = "BAAI/bge-small-en-v1.5"
    embedding_dim: int = 384

    # Approximate token budget; text is cut at max_length * chars_per_token characters
    max_length: int = 512
    chars_per_token: int = 4

    # BGE retrieval models expect queries framed differently from documents
    query_prefix: str = "query: "

    normalize_embeddings: bool = True

    # Batch processing
    embedding_batch_size: int = 32
    max_workers: int = 4

    device: str = "cpu"
    model_cache_dir: Optional[str] = None

    @property
    def max_chars(self) -> int:
        return self.max_length * self.chars_per_token


@dataclass
class ProfileConfig:
    """Thresholds used to classify users from their order history."""

    top_categories: int = 3
    top_vendors: int = 5
    user_type_top_vendors: int = 3

    # Delivery mode is only kept when it dominates the user's orders
    delivery_mode_share: float = 0.6

    # Price segments by average order value
    budget_below: float = 200.0
    premium_above: float = 1000.0

    quality_rating: float = 4.0
    in_stock_share: float = 0.7
    bulk_quantity_above: float = 30.0

    # Order count thresholds
    vip_orders: int = 10
    frequent_orders: int = 5
    regular_orders: int = 2

    category_separator: str = ">"


@dataclass
class MLConfig:
    """Top-level ML configuration combining all sub-configs."""

    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    profiles: ProfileConfig = field(default_factory=ProfileConfig)

    @classmethod
    def from_env(cls) -> "MLConfig":
        """Load configuration from environment variables."""
        config = cls()

        if model_name := os.getenv("EMBEDDING_MODEL"):
            config.embedding.model_name = model_name

        if dim := os.getenv("EMBEDDING_DIM"):
            config.embedding.embedding_dim = int(dim)

        if device := os.getenv("ML_DEVICE"):
            config.embedding.device = device

        if batch_size := os.getenv("EMBEDDING_BATCH_SIZE"):
            config.embedding.embedding_batch_size = int(batch_size)

        if cache_dir := os.getenv("EMBEDDING_CACHE_DIR"):
            config.embedding.model_cache_dir = cache_dir

        return config

    def validate(self) -> None:
        """Validate configuration consistency."""
        assert self.embedding.embedding_dim > 0, "Embedding dimension must be positive"
        assert self.embedding.embedding_batch_size > 0, "Batch size must be positive"
        assert (
            self.profiles.budget_below <= self.profiles.premium_above
        ), "Budget threshold must not exceed premium threshold"
        assert (
            self.profiles.regular_orders <= self.profiles.frequent_orders <= self.profiles.vip_orders
        ), "Order frequency thresholds must be increasing"


# Global configuration instance
_global_config: Optional[MLConfig] = None


def get_ml_config() -> MLConfig:
    """Get global ML configuration (singleton pattern)."""
    global _global_config
    if _global_config is None:
        _global_config = MLConfig.from_env()
        _global_config.validate()
    return _global_config


def reset_config() -> None:
    """Reset global configuration (useful for testing)."""
    global _global_config
    _global_config = None
