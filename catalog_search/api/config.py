"""
API Configuration
Settings and configuration for FastAPI application.
"""

import json
from pathlib import Path
from typing import List, Optional, Any
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator

_TRUTHY = {"true", "1", "yes", "on"}


class APISettings(BaseSettings):
    """
    API configuration settings.

    Load from environment variables (see aliases).
    """

    # API Info
    app_name: str = "Catalog Search API"
    version: str = "0.1.0"
    description: str = "Hybrid ranking and personalized product search for the B2B catalog"

    # Server settings
    host: str = Field(default="0.0.0.0", alias="API_HOST")
    port: int = Field(default=8000, alias="API_PORT")
    reload: bool = Field(default=False, alias="API_RELOAD")
    workers: int = Field(default=4, alias="API_WORKERS")

    # CORS settings
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        alias="API_CORS_ORIGINS"
    )
    cors_allow_credentials: bool = True
    cors_allow_methods: List[str] = ["*"]
    cors_allow_headers: List[str] = ["*"]

    # Elasticsearch
    elasticsearch_node: str = Field(default="http://localhost:9200", alias="ELASTICSEARCH_NODE")
    elasticsearch_index: str = Field(default="products", alias="ELASTICSEARCH_INDEX")
    elasticsearch_request_timeout: float = Field(default=60.0, alias="ELASTICSEARCH_REQUEST_TIMEOUT")

    # Order/catalog data used by the profile builder
    data_dir: Path = Field(default=Path("data"), alias="DATA_DIR")
    orders_file: str = Field(default="orders.json", alias="ORDERS_FILE")
    products_file: str = Field(default="products.json", alias="PRODUCTS_FILE")
    profile_snapshot_path: Optional[Path] = Field(default=None, alias="PROFILE_SNAPSHOT_PATH")

    # Celery
    celery_broker_url: str = Field(default="redis://redis:6379/0", alias="CELERY_BROKER_URL")

    # Logging
    log_level: str = Field(default="INFO", alias="API_LOG_LEVEL")

    # Performance targets
    target_p95_latency_ms: int = 150

    # Embeddings load in a background thread at startup
    preload_embeddings: bool = Field(default=True, alias="PRELOAD_EMBEDDINGS")

    # Feature flags (process-wide defaults; requests may override all but search_enabled)
    search_enabled: bool = Field(default=True, alias="SEARCH_ENABLED")
    search_strategy: str = Field(default="hybrid", alias="SEARCH_STRATEGY")
    hybrid_search_enabled: bool = Field(default=True, alias="HYBRID_SEARCH_ENABLED")
    personalization_enabled: bool = Field(default=True, alias="PERSONALIZATION_ENABLED")
    fuzzy_matching_enabled: bool = Field(default=True, alias="FUZZY_MATCHING_ENABLED")
    synonym_expansion_enabled: bool = Field(default=True, alias="SYNONYM_EXPANSION_ENABLED")

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Any) -> List[str]:
        """Parse CORS origins from JSON string or list."""
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                # Fall back to comma-separated list
                return [origin.strip() for origin in v.split(",")]
        return v

    @field_validator(
        "search_enabled",
        "hybrid_search_enabled",
        "personalization_enabled",
        "fuzzy_matching_enabled",
        "synonym_expansion_enabled",
        mode="before",
    )
    @classmethod
    def parse_flag(cls, v: Any) -> Any:
        """Anything other than true/1/yes/on turns a flag off; blank keeps the default."""
        if isinstance(v, str):
            if not v.strip():
                return True
            return v.strip().lower() in _TRUTHY
        return v

    @property
    def orders_path(self) -> Path:
        return Path(self.data_dir) / self.orders_file

    @property
    def products_path(self) -> Path:
        return Path(self.data_dir) / self.products_file

    @property
    def snapshot_path(self) -> Path:
        if self.profile_snapshot_path is not None:
            return Path(self.profile_snapshot_path)
        return Path(self.data_dir) / "profile_snapshot.json"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",  # Ignore extra fields in .env file
        env_prefix="",  # No prefix for environment variables
        validate_default=True,
        populate_by_name=True  # Allow using both field name and alias for env vars
    )


# Global settings instance
_settings: Optional[APISettings] = None


def get_settings() -> APISettings:
    """Get global API settings (singleton)."""
    global _settings
    if _settings is None:
        _settings = APISettings()
    return _settings


def reset_settings() -> None:
    """Reset settings (useful for testing)."""
    global _settings
    _settings = None
