"""
Query Compiler
Assembles a scored Elasticsearch bool query from query text, filters, caller
identity, the published profile snapshot and resolved feature flags.

Clause order is fixed so that compiling the same inputs twice produces the
same request body. Boost weights:

    exact title phrase      5.0     repurchase (order history)   3.0
    fuzzy title match       2.0     preferred category           2.5 each
    semantic similarity     1.5     preferred vendor             1.8 each
    region preference       1.5     quality focus                1.3
    prefers in-stock        1.2     premium segment              1.1
    global quality          1.2     global availability          1.1
"""

import copy
import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..user_modeling.profile_builder import UserProfile, UserTypeProfile
from ..user_modeling.profile_store import ProfileSnapshot
from .flags import FlagSet
from .pagination import SORT_SPEC

logger = logging.getLogger(__name__)

# Base multi-match fields
SEARCH_FIELDS = (
    "title^3",
    "description^1.5",
    "vendor^1",
    "searchable_text^1",
    "category^2",
)

EXACT_PHRASE_BOOST = 5.0
FUZZY_TITLE_BOOST = 2.0
FUZZY_TITLE_EDITS = 2
SEMANTIC_BOOST = 1.5
CATEGORY_BOOST = 2.5
VENDOR_BOOST = 1.8
REGION_BOOST = 1.5
QUALITY_FOCUS_BOOST = 1.3
IN_STOCK_PREFERENCE_BOOST = 1.2
PREMIUM_SEGMENT_BOOST = 1.1
REPURCHASE_BOOST = 3.0
GLOBAL_QUALITY_BOOST = 1.2
GLOBAL_AVAILABILITY_BOOST = 1.1

QUALITY_RATING = 4.0
PREMIUM_RATING = 4.2
IN_STOCK = "in_stock"

SEMANTIC_SCRIPT = "cosineSimilarity(params.query_vector, 'embedding') + 1.0"

MATCH_ALL = {"match_all": {}}


@dataclass(frozen=True)
class SearchFilters:
    """Non-scoring request filters."""

    category: Optional[str] = None
    vendor: Optional[str] = None
    region: Optional[str] = None
    min_rating: Optional[float] = None
    inventory_status: Optional[str] = None


@dataclass(frozen=True)
class UserIdentity:
    """Who is searching. Both fields are optional."""

    user_id: Optional[str] = None
    user_type: Optional[str] = None


@dataclass(frozen=True)
class ScoredClause:
    """Optional clause with a fixed boost and its position in the should list."""

    signal: str
    boost: float
    clause: Dict[str, Any]
    position: int


@dataclass(frozen=True)
class CompiledQuery:
    """Fully assembled request; rendered with to_body()."""

    required: Tuple[Dict[str, Any], ...] = ()
    optional: Tuple[ScoredClause, ...] = ()
    filters: Tuple[Dict[str, Any], ...] = ()
    minimum_should_match: int = 0
    sort: Tuple[Dict[str, Any], ...] = SORT_SPEC

    def to_body(self) -> Dict[str, Any]:
        """Elasticsearch request body (a fresh copy on every call)."""
        bool_query: Dict[str, Any] = {}

        if self.required:
            bool_query["must"] = list(self.required)

        if self.optional:
            bool_query["should"] = [scored.clause for scored in self.optional]
            bool_query["minimum_should_match"] = self.minimum_should_match

        if self.filters:
            bool_query["filter"] = list(self.filters)

        if not bool_query:
            bool_query["must"] = [MATCH_ALL]

        return copy.deepcopy({"query": {"bool": bool_query}, "sort": list(self.sort)})

    def to_json(self) -> str:
        """Canonical JSON rendering."""
        return json.dumps(self.to_body(), sort_keys=True, separators=(",", ":"))

    def fingerprint(self) -> str:
        """Stable hash of the canonical JSON rendering."""
        return hashlib.sha256(self.to_json().encode("utf-8")).hexdigest()

    def boosts_by_signal(self) -> List[Tuple[str, float]]:
        """(signal, boost) pairs in clause order."""
        return [(scored.signal, scored.boost) for scored in self.optional]

    def count_signal(self, signal: str) -> int:
        return sum(1 for scored in self.optional if scored.signal == signal)


def _constant_score(filter_clause: Dict[str, Any], boost: float) -> Dict[str, Any]:
    return {"constant_score": {"filter": filter_clause, "boost": boost}}


class _ClauseList:
    """Accumulates ScoredClauses, numbering them as they are added."""

    def __init__(self):
        self.items: List[ScoredClause] = []

    def add(self, signal: str, boost: float, clause: Dict[str, Any]) -> None:
        self.items.append(ScoredClause(signal, boost, clause, len(self.items)))

    def add_filter(self, signal: str, boost: float, filter_clause: Dict[str, Any]) -> None:
        self.add(signal, boost, _constant_score(filter_clause, boost))


def _text_clauses(text: str, flags: FlagSet, should: _ClauseList) -> Dict[str, Any]:
    multi_match: Dict[str, Any] = {
        "query": text,
        "fields": list(SEARCH_FIELDS),
        "type": "best_fields",
        "operator": "or",
    }
    if flags.fuzzy_enabled:
        multi_match["fuzziness"] = "AUTO"

    should.add(
        "exact_title_phrase",
        EXACT_PHRASE_BOOST,
        {"match_phrase": {"title": {"query": text, "boost": EXACT_PHRASE_BOOST}}},
    )

    if flags.fuzzy_enabled:
        should.add(
            "fuzzy_title",
            FUZZY_TITLE_BOOST,
            {
                "match": {
                    "title": {
                        "query": text,
                        "fuzziness": FUZZY_TITLE_EDITS,
                        "boost": FUZZY_TITLE_BOOST,
                    }
                }
            },
        )

    return {"multi_match": multi_match}


def _semantic_clause(query_vector: Sequence[float], should: _ClauseList) -> None:
    should.add(
        "semantic_similarity",
        SEMANTIC_BOOST,
        {
            "script_score": {
                "query": {"match_all": {}},
                "script": {
                    "source": SEMANTIC_SCRIPT,
                    "params": {"query_vector": [float(v) for v in query_vector]},
                },
                "boost": SEMANTIC_BOOST,
            }
        },
    )


def _affinity_clauses(
    categories: Sequence[str], vendors: Sequence[str], prefix: str, should: _ClauseList
) -> None:
    for category in categories:
        should.add_filter(f"{prefix}category", CATEGORY_BOOST, {"match": {"category": category}})

    for vendor in vendors:
        should.add_filter(f"{prefix}vendor", VENDOR_BOOST, {"term": {"vendor.keyword": vendor}})


def _profile_clauses(profile: UserProfile, should: _ClauseList) -> None:
    _affinity_clauses(profile.preferred_categories, profile.preferred_vendors, "preferred_", should)

    for region in sorted(profile.region_preferences):
        should.add_filter(
            "region_preference", REGION_BOOST, {"term": {"region_availability": region}}
        )

    if profile.quality_focused:
        should.add_filter(
            "quality_focus", QUALITY_FOCUS_BOOST, {"range": {"supplier_rating": {"gte": QUALITY_RATING}}}
        )

    if profile.prefers_in_stock:
        should.add_filter(
            "prefers_in_stock", IN_STOCK_PREFERENCE_BOOST, {"term": {"inventory_status": IN_STOCK}}
        )

    if profile.price_segment == "premium":
        should.add_filter(
            "premium_segment",
            PREMIUM_SEGMENT_BOOST,
            {"range": {"supplier_rating": {"gte": PREMIUM_RATING}}},
        )


def _user_type_clauses(type_profile: UserTypeProfile, should: _ClauseList) -> None:
    _affinity_clauses(
        type_profile.preferred_categories, type_profile.preferred_vendors, "user_type_", should
    )


def _filter_clauses(filters: SearchFilters) -> List[Dict[str, Any]]:
    clauses: List[Dict[str, Any]] = []

    if filters.category:
        clauses.append({"match": {"category": filters.category}})

    if filters.vendor:
        clauses.append({"term": {"vendor.keyword": filters.vendor}})

    if filters.region:
        clauses.append({"term": {"region_availability": filters.region}})

    if filters.min_rating is not None:
        clauses.append({"range": {"supplier_rating": {"gte": filters.min_rating}}})

    if filters.inventory_status:
        clauses.append({"term": {"inventory_status": filters.inventory_status}})

    return clauses


def compile_query(
    query_text: Optional[str],
    filters: Optional[SearchFilters],
    identity: Optional[UserIdentity],
    snapshot: ProfileSnapshot,
    flags: FlagSet,
    query_vector: Optional[Sequence[float]] = None,
) -> CompiledQuery:
    """
    Compile one search request.

    Args:
        query_text: Raw query text (may be empty for filter-only browse)
        filters: Request filters
        identity: Caller identity (user id and/or explicit user type)
        snapshot: Published profile snapshot
        flags: Resolved feature flags for this request
        query_vector: Query embedding, if one was produced

    Returns:
        CompiledQuery
    """
    filters = filters or SearchFilters()
    identity = identity or UserIdentity()
    text = (query_text or "").strip()

    required: List[Dict[str, Any]] = []
    should = _ClauseList()

    if text:
        required.append(_text_clauses(text, flags, should))

    if query_vector is not None and flags.wants_embedding:
        _semantic_clause(query_vector, should)

    profile = snapshot.get_profile(identity.user_id)
    if flags.personalization_enabled:
        if profile is not None:
            _profile_clauses(profile, should)
            logger.debug(
                f"Personalizing for user {identity.user_id}: {profile.user_type}, "
                f"{profile.order_frequency}, quality={profile.quality_focused}"
            )
        else:
            type_profile = snapshot.get_user_type(identity.user_type)
            if type_profile is not None:
                _user_type_clauses(type_profile, should)
            elif identity.user_type:
                logger.debug(f"Unknown user type '{identity.user_type}', no type boosts")

    history = snapshot.get_order_history(identity.user_id)
    if history:
        should.add_filter("repurchase", REPURCHASE_BOOST, {"terms": {"_id": sorted(history)}})

    should.add_filter(
        "global_quality", GLOBAL_QUALITY_BOOST, {"range": {"supplier_rating": {"gte": QUALITY_RATING}}}
    )
    should.add_filter(
        "global_availability", GLOBAL_AVAILABILITY_BOOST, {"term": {"inventory_status": IN_STOCK}}
    )

    filter_clauses = _filter_clauses(filters)

    if not required and not should.items and not filter_clauses:
        required.append(MATCH_ALL)

    return CompiledQuery(
        required=tuple(required),
        optional=tuple(should.items),
        filters=tuple(filter_clauses),
        minimum_should_match=1 if should.items and text else 0,
    )
