"""
User Profile Builder
Offline batch pass over historical orders producing behavioral profiles.

For every known user the builder derives category/vendor affinities, a buyer
type, delivery/region preferences, price segment, quality and stock
preferences, order frequency and bulk-buying behavior. It also records the raw
set of purchased product ids per user (used for the repurchase boost) and an
aggregate profile per buyer type (used when a caller supplies only a type).
"""

import json
import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple, Union

import numpy as np

from ..config import get_ml_config, ProfileConfig

logger = logging.getLogger(__name__)

GENERAL_BUYER = "General Buyer"

# Evaluated in order against the dominant category; first match wins
USER_TYPE_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("Safety Equipment Buyer", ("safety", "glove", "mask")),
    ("Industrial Equipment Buyer", ("industrial", "pump", "compressor")),
    ("Tools Buyer", ("tool",)),
    ("Chemicals Buyer", ("chemical", "lubricant")),
    ("Electrical Buyer", ("electrical", "cable")),
    ("Food & Beverage Buyer", ("food",)),
)

PRICE_SEGMENTS = ("budget", "mid", "premium")
ORDER_FREQUENCIES = ("occasional", "regular", "frequent", "vip")


@dataclass(frozen=True)
class UserProfile:
    """Behavioral summary of one user. Immutable once built."""

    user_id: str
    user_type: str
    preferred_categories: Tuple[str, ...]
    preferred_vendors: Tuple[str, ...]

    # Behavioral patterns
    delivery_mode_preference: Optional[str]
    region_preferences: FrozenSet[str]
    price_segment: str
    quality_focused: bool
    prefers_in_stock: bool
    order_frequency: str
    bulk_buyer: bool

    # Stats
    avg_order_value: float
    order_count: int
    avg_quantity: float
    avg_rating: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "user_type": self.user_type,
            "preferred_categories": list(self.preferred_categories),
            "preferred_vendors": list(self.preferred_vendors),
            "delivery_mode_preference": self.delivery_mode_preference,
            "region_preferences": sorted(self.region_preferences),
            "price_segment": self.price_segment,
            "quality_focused": self.quality_focused,
            "prefers_in_stock": self.prefers_in_stock,
            "order_frequency": self.order_frequency,
            "bulk_buyer": self.bulk_buyer,
            "avg_order_value": self.avg_order_value,
            "order_count": self.order_count,
            "avg_quantity": self.avg_quantity,
            "avg_rating": self.avg_rating,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "UserProfile":
        return cls(
            user_id=data["user_id"],
            user_type=data["user_type"],
            preferred_categories=tuple(data.get("preferred_categories", ())),
            preferred_vendors=tuple(data.get("preferred_vendors", ())),
            delivery_mode_preference=data.get("delivery_mode_preference"),
            region_preferences=frozenset(data.get("region_preferences", ())),
            price_segment=data["price_segment"],
            quality_focused=bool(data["quality_focused"]),
            prefers_in_stock=bool(data["prefers_in_stock"]),
            order_frequency=data["order_frequency"],
            bulk_buyer=bool(data["bulk_buyer"]),
            avg_order_value=float(data["avg_order_value"]),
            order_count=int(data["order_count"]),
            avg_quantity=float(data["avg_quantity"]),
            avg_rating=float(data["avg_rating"]),
        )


@dataclass(frozen=True)
class UserTypeProfile:
    """Aggregate preferences of every user classified into one buyer type."""

    user_type: str
    preferred_categories: Tuple[str, ...]
    preferred_vendors: Tuple[str, ...]
    avg_order_value: float
    user_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_type": self.user_type,
            "preferred_categories": list(self.preferred_categories),
            "preferred_vendors": list(self.preferred_vendors),
            "avg_order_value": self.avg_order_value,
            "user_count": self.user_count,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "UserTypeProfile":
        return cls(
            user_type=data["user_type"],
            preferred_categories=tuple(data.get("preferred_categories", ())),
            preferred_vendors=tuple(data.get("preferred_vendors", ())),
            avg_order_value=float(data.get("avg_order_value", 0.0)),
            user_count=int(data.get("user_count", 0)),
        )


@dataclass
class ProfileBuildResult:
    """Output of one batch run."""

    profiles: Dict[str, UserProfile] = field(default_factory=dict)
    order_history: Dict[str, FrozenSet[str]] = field(default_factory=dict)
    user_types: Dict[str, UserTypeProfile] = field(default_factory=dict)
    skipped_orders: int = 0


@dataclass
class _UserStats:
    """Mutable accumulator, local to one build."""

    categories: Counter = field(default_factory=Counter)
    vendors: Counter = field(default_factory=Counter)
    delivery_modes: Counter = field(default_factory=Counter)
    inventory_statuses: Counter = field(default_factory=Counter)
    regions: set = field(default_factory=set)
    order_values: List[float] = field(default_factory=list)
    quantities: List[float] = field(default_factory=list)
    ratings: List[float] = field(default_factory=list)
    product_ids: set = field(default_factory=set)
    order_count: int = 0


def top_level_category(category: Optional[str], separator: str = ">") -> str:
    """Truncate a hierarchical category at its first separator."""
    category = category or "Uncategorized"
    return category.split(separator)[0].strip()


def classify_user_type(dominant_category: Optional[str]) -> str:
    """
    Map the user's highest-quantity category to a buyer type.

    Args:
        dominant_category: Top-level category with the largest purchased quantity

    Returns:
        Buyer type label
    """
    if not dominant_category:
        return GENERAL_BUYER

    lowered = dominant_category.lower()
    for user_type, keywords in USER_TYPE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return user_type

    return GENERAL_BUYER


class MalformedOrderError(ValueError):
    """Order record or line with the wrong shape or value types."""


@dataclass(frozen=True)
class _OrderLine:
    product_id: Optional[str]
    quantity: float
    price: float


def _number(value: Any, field_name: str) -> Optional[float]:
    if value is None:
        return None
    # bool is an int subclass but never a quantity or price
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedOrderError(f"{field_name} must be a number, got {value!r}")
    if not math.isfinite(value):
        raise MalformedOrderError(f"{field_name} must be finite, got {value!r}")
    return value


def _optional_str(value: Any, field_name: str) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    raise MalformedOrderError(f"{field_name} must be a string, got {value!r}")


def _parse_order(order: Any) -> Tuple[Optional[str], Optional[str], List[_OrderLine]]:
    """
    Check one order record before anything is accumulated from it.

    Returns:
        (user_id, delivery_mode, lines). Missing quantity counts as 1 and
        missing price as 0.

    Raises:
        MalformedOrderError: If the record or any of its lines has the wrong shape
    """
    if not isinstance(order, Mapping):
        raise MalformedOrderError(f"order must be an object, got {type(order).__name__}")

    user_id = _optional_str(order.get("user_id"), "user_id")
    delivery_mode = _optional_str(order.get("delivery_mode"), "delivery_mode")

    cart = order.get("cart") or {}
    if not isinstance(cart, Mapping):
        raise MalformedOrderError(f"cart must be an object, got {type(cart).__name__}")

    items = cart.get("items") or []
    if not isinstance(items, list):
        raise MalformedOrderError(f"cart.items must be a list, got {type(items).__name__}")

    lines = []
    for item in items:
        if not isinstance(item, Mapping):
            raise MalformedOrderError(f"order line must be an object, got {item!r}")
        lines.append(
            _OrderLine(
                product_id=_optional_str(item.get("product_id"), "product_id"),
                quantity=_number(item.get("quantity"), "quantity") or 1,
                price=_number(item.get("price"), "price") or 0,
            )
        )

    return user_id, delivery_mode, lines


class UserProfileBuilder:
    """
    Builds user profiles from order history and the product catalog.

    The builder is stateless between runs: every call to build() starts from
    scratch and returns new immutable profiles.
    """

    def __init__(self, config: Optional[ProfileConfig] = None):
        self.config = config or get_ml_config().profiles

    def build(
        self, orders: Iterable[Mapping[str, Any]], catalog: Mapping[str, Mapping[str, Any]]
    ) -> ProfileBuildResult:
        """
        Run one batch pass.

        Args:
            orders: Order records ``{user_id, delivery_mode?, cart: {items: [...]}}``
            catalog: Mapping product_id -> product document

        Returns:
            ProfileBuildResult with profiles, order history and user type aggregates
        """
        user_stats: Dict[str, _UserStats] = {}
        skipped = 0

        for index, order in enumerate(orders):
            try:
                user_id, delivery_mode, lines = _parse_order(order)
            except MalformedOrderError as e:
                skipped += 1
                logger.warning(f"Skipping malformed order #{index}: {e}")
                continue

            if not user_id:
                logger.debug("Skipping order without user_id")
                continue

            stats = user_stats.setdefault(user_id, _UserStats())
            self._accumulate(stats, delivery_mode, lines, catalog)

        result = ProfileBuildResult(skipped_orders=skipped)
        for user_id, stats in user_stats.items():
            result.profiles[user_id] = self._build_profile(user_id, stats)
            result.order_history[user_id] = frozenset(stats.product_ids)

        result.user_types = self._build_user_types(user_stats, result.profiles)

        logger.info(
            f"Analyzed {len(result.profiles)} user profiles into "
            f"{len(result.user_types)} user types ({summarize(result)})"
        )
        if skipped:
            logger.warning(f"Skipped {skipped} malformed orders")

        return result

    def _accumulate(
        self,
        stats: _UserStats,
        delivery_mode: Optional[str],
        lines: List[_OrderLine],
        catalog: Mapping[str, Mapping[str, Any]],
    ) -> None:
        stats.order_count += 1

        if delivery_mode:
            stats.delivery_modes[delivery_mode] += 1

        stats.order_values.append(sum(line.price * line.quantity for line in lines))

        for line in lines:
            if line.product_id:
                stats.product_ids.add(line.product_id)

            product = catalog.get(line.product_id) if line.product_id else None
            if isinstance(product, Mapping):
                self._accumulate_product(stats, product, line.quantity)

            stats.quantities.append(line.quantity)

    def _accumulate_product(
        self, stats: _UserStats, product: Mapping[str, Any], quantity: float
    ) -> None:
        # Catalog fields of the wrong type are ignored rather than failing the run
        category = product.get("category")
        category = top_level_category(
            category if isinstance(category, str) else None, self.config.category_separator
        )
        stats.categories[category] += quantity

        vendor = product.get("vendor")
        if vendor and isinstance(vendor, str):
            stats.vendors[vendor] += 1

        regions = product.get("region_availability")
        if isinstance(regions, (list, tuple)):
            stats.regions.update(region for region in regions if isinstance(region, str))

        rating = product.get("supplier_rating")
        if rating and isinstance(rating, (int, float)) and not isinstance(rating, bool):
            stats.ratings.append(float(rating))

        status = product.get("inventory_status")
        if status and isinstance(status, str):
            stats.inventory_statuses[status] += 1

    def _build_profile(self, user_id: str, stats: _UserStats) -> UserProfile:
        cfg = self.config

        top_categories = [cat for cat, _ in stats.categories.most_common(cfg.top_categories)]
        top_vendors = [vendor for vendor, _ in stats.vendors.most_common(cfg.top_vendors)]
        user_type = classify_user_type(top_categories[0] if top_categories else None)

        # Delivery mode preference (only if it dominates)
        delivery_mode = None
        if stats.delivery_modes:
            mode, count = stats.delivery_modes.most_common(1)[0]
            if count / stats.order_count > cfg.delivery_mode_share:
                delivery_mode = mode

        avg_order_value = float(np.mean(stats.order_values)) if stats.order_values else 0.0
        if avg_order_value < cfg.budget_below:
            price_segment = "budget"
        elif avg_order_value > cfg.premium_above:
            price_segment = "premium"
        else:
            price_segment = "mid"

        avg_rating = float(np.mean(stats.ratings)) if stats.ratings else 0.0

        known_statuses = sum(stats.inventory_statuses.values())
        prefers_in_stock = (
            known_statuses > 0
            and stats.inventory_statuses.get("in_stock", 0) / known_statuses > cfg.in_stock_share
        )

        if stats.order_count >= cfg.vip_orders:
            order_frequency = "vip"
        elif stats.order_count >= cfg.frequent_orders:
            order_frequency = "frequent"
        elif stats.order_count >= cfg.regular_orders:
            order_frequency = "regular"
        else:
            order_frequency = "occasional"

        avg_quantity = float(np.mean(stats.quantities)) if stats.quantities else 0.0

        return UserProfile(
            user_id=user_id,
            user_type=user_type,
            preferred_categories=tuple(top_categories),
            preferred_vendors=tuple(top_vendors),
            delivery_mode_preference=delivery_mode,
            region_preferences=frozenset(stats.regions),
            price_segment=price_segment,
            quality_focused=avg_rating >= cfg.quality_rating,
            prefers_in_stock=prefers_in_stock,
            order_frequency=order_frequency,
            bulk_buyer=avg_quantity > cfg.bulk_quantity_above,
            avg_order_value=avg_order_value,
            order_count=stats.order_count,
            avg_quantity=avg_quantity,
            avg_rating=avg_rating,
        )

    def _build_user_types(
        self, user_stats: Dict[str, _UserStats], profiles: Dict[str, UserProfile]
    ) -> Dict[str, UserTypeProfile]:
        categories: Dict[str, List[str]] = {}
        vendors: Dict[str, List[str]] = {}
        order_values: Dict[str, List[float]] = {}

        for user_id, profile in profiles.items():
            user_type = profile.user_type
            type_categories = categories.setdefault(user_type, [])
            type_vendors = vendors.setdefault(user_type, [])

            for category in profile.preferred_categories:
                if category not in type_categories:
                    type_categories.append(category)

            top_vendors = user_stats[user_id].vendors.most_common(self.config.user_type_top_vendors)
            for vendor, _ in top_vendors:
                if vendor not in type_vendors:
                    type_vendors.append(vendor)

            order_values.setdefault(user_type, []).append(profile.avg_order_value)

        return {
            user_type: UserTypeProfile(
                user_type=user_type,
                preferred_categories=tuple(categories[user_type]),
                preferred_vendors=tuple(vendors[user_type]),
                avg_order_value=float(np.mean(order_values[user_type])),
                user_count=len(order_values[user_type]),
            )
            for user_type in categories
        }


def build_profiles(
    orders: Iterable[Mapping[str, Any]],
    catalog: Mapping[str, Mapping[str, Any]],
    config: Optional[ProfileConfig] = None,
) -> ProfileBuildResult:
    """Convenience function to run one batch pass."""
    return UserProfileBuilder(config=config).build(orders, catalog)


def summarize(result: ProfileBuildResult) -> str:
    """One-line summary of notable segments, for logs."""
    profiles = result.profiles.values()
    quality_focused = sum(1 for p in profiles if p.quality_focused)
    bulk_buyers = sum(1 for p in profiles if p.bulk_buyer)
    vip = sum(1 for p in profiles if p.order_frequency == "vip")
    return f"{quality_focused} quality-focused, {bulk_buyers} bulk buyers, {vip} VIPs"


def load_orders(path: Union[str, Path]) -> List[Dict[str, Any]]:
    """Read the order export (a JSON list of orders)."""
    with open(path, "r", encoding="utf-8") as f:
        orders = json.load(f)

    if not isinstance(orders, list):
        raise ValueError(f"Expected a list of orders in {path}")

    return orders


def load_catalog(path: Union[str, Path]) -> Dict[str, Dict[str, Any]]:
    """Read the product export and key it by ``_id`` (or ``id``)."""
    with open(path, "r", encoding="utf-8") as f:
        products = json.load(f)

    if not isinstance(products, list):
        raise ValueError(f"Expected a list of products in {path}")

    catalog = {}
    for product in products:
        if not isinstance(product, dict):
            logger.warning(f"Skipping malformed product record in {path}")
            continue
        product_id = product.get("_id") or product.get("id")
        if product_id:
            catalog[product_id] = product

    return catalog
