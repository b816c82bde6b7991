"""
Feature Flags
Process-wide flag defaults and per-request override resolution.

Precedence, per field: a request override wins when it is present (not None),
otherwise the process default is inherited. ``search_enabled`` is never taken
from a request.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class SearchStrategy(str, Enum):
    """Retrieval mode gating which scored clauses are compiled."""

    KEYWORD_ONLY = "keyword_only"
    HYBRID = "hybrid"
    SEMANTIC_ONLY = "semantic_only"

    @classmethod
    def parse(cls, value: Optional[str]) -> "SearchStrategy":
        """Parse a strategy name; unknown values fall back to hybrid."""
        lower = (value or "").strip().lower()
        if lower in ("keyword_only", "keyword"):
            return cls.KEYWORD_ONLY
        if lower in ("semantic_only", "semantic"):
            return cls.SEMANTIC_ONLY
        return cls.HYBRID


@dataclass(frozen=True)
class FlagSet:
    """Immutable, fully resolved feature flags for one request."""

    search_enabled: bool = True
    strategy: SearchStrategy = SearchStrategy.HYBRID
    hybrid_enabled: bool = True
    personalization_enabled: bool = True
    fuzzy_enabled: bool = True
    synonym_enabled: bool = True

    @property
    def wants_embedding(self) -> bool:
        """Whether the strategy compiles a semantic similarity clause."""
        return self.hybrid_enabled or self.strategy == SearchStrategy.SEMANTIC_ONLY

    def to_dict(self) -> dict:
        return {
            "search_enabled": self.search_enabled,
            "search_strategy": self.strategy.value,
            "hybrid_search_enabled": self.hybrid_enabled,
            "personalization_enabled": self.personalization_enabled,
            "fuzzy_matching_enabled": self.fuzzy_enabled,
            "synonym_expansion_enabled": self.synonym_enabled,
        }


@dataclass(frozen=True)
class FlagOverrides:
    """Per-request overrides. None means inherit the process default."""

    strategy: Optional[SearchStrategy] = None
    hybrid_enabled: Optional[bool] = None
    personalization_enabled: Optional[bool] = None
    fuzzy_enabled: Optional[bool] = None
    synonym_enabled: Optional[bool] = None


def _pick(override: Optional[bool], default: bool) -> bool:
    return default if override is None else override


def resolve(defaults: FlagSet, overrides: Optional[FlagOverrides] = None) -> FlagSet:
    """
    Layer request overrides on top of the process defaults.

    Args:
        defaults: Process-wide flag set
        overrides: Optional request overrides

    Returns:
        New FlagSet; ``defaults`` is never modified
    """
    overrides = overrides or FlagOverrides()

    strategy = overrides.strategy if overrides.strategy is not None else defaults.strategy
    hybrid = _pick(overrides.hybrid_enabled, defaults.hybrid_enabled)
    personalization = _pick(overrides.personalization_enabled, defaults.personalization_enabled)
    fuzzy = _pick(overrides.fuzzy_enabled, defaults.fuzzy_enabled)
    synonym = _pick(overrides.synonym_enabled, defaults.synonym_enabled)

    return replace(
        defaults,
        strategy=strategy,
        hybrid_enabled=hybrid and strategy == SearchStrategy.HYBRID,
        personalization_enabled=personalization and defaults.search_enabled,
        fuzzy_enabled=fuzzy and defaults.search_enabled,
        synonym_enabled=synonym and defaults.search_enabled,
    )


def flags_from_settings(settings) -> FlagSet:
    """
    Build process-wide defaults from API settings.

    Args:
        settings: APISettings instance

    Returns:
        Raw default FlagSet. Cross-field rules are applied by resolve(), so a
        request switching the strategy to hybrid still sees the configured
        hybrid flag.
    """
    return FlagSet(
        search_enabled=settings.search_enabled,
        strategy=SearchStrategy.parse(settings.search_strategy),
        hybrid_enabled=settings.hybrid_search_enabled,
        personalization_enabled=settings.personalization_enabled,
        fuzzy_enabled=settings.fuzzy_matching_enabled,
        synonym_enabled=settings.synonym_expansion_enabled,
    )


def log_flags(flags: FlagSet) -> None:
    """Log the effective flag defaults at startup."""
    flags = resolve(flags)
    logger.info("Feature flags initialized:")
    logger.info(f"  Search enabled: {flags.search_enabled}")
    logger.info(f"  Search strategy: {flags.strategy.value}")
    logger.info(f"  Hybrid search: {flags.hybrid_enabled}")
    logger.info(f"  Personalization: {flags.personalization_enabled}")
    logger.info(f"  Fuzzy matching: {flags.fuzzy_enabled}")
    logger.info(f"  Synonym expansion: {flags.synonym_enabled}")

    if not flags.search_enabled:
        logger.warning("Search functionality is DISABLED via feature flag")
