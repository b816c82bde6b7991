"""
Profile Tasks
Offline user profile rebuild.
"""

import logging
import time
from typing import Any, Dict, Optional

from .celery_app import app

logger = logging.getLogger(__name__)


@app.task(bind=True, name="tasks.rebuild_user_profiles", max_retries=1, default_retry_delay=300)
def rebuild_user_profiles(
    self,
    orders_path: Optional[str] = None,
    products_path: Optional[str] = None,
    snapshot_path: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Rebuild user profiles and write the snapshot artifact.

    This periodic task:
    1. Loads the order and product exports
    2. Builds user profiles, order history and user type aggregates
    3. Writes the snapshot atomically for the API to load

    Args:
        orders_path: Order export (defaults to settings)
        products_path: Product export (defaults to settings)
        snapshot_path: Output artifact (defaults to settings)

    Returns:
        Dictionary with rebuild results
    """
    # Import here to avoid circular dependencies
    from ..api.config import get_settings
    from ..ml.user_modeling.profile_builder import (
        build_profiles,
        load_catalog,
        load_orders,
        summarize,
    )
    from ..ml.user_modeling.profile_store import ProfileSnapshot, save_snapshot

    settings = get_settings()
    orders_path = orders_path or str(settings.orders_path)
    products_path = products_path or str(settings.products_path)
    snapshot_path = snapshot_path or str(settings.snapshot_path)

    start_time = time.time()
    logger.info(f"Starting user profile rebuild from {orders_path}")

    try:
        orders = load_orders(orders_path)
        catalog = load_catalog(products_path)
    except (OSError, ValueError) as e:
        logger.error(f"Profile data unavailable: {e}")
        return {"status": "error", "error": str(e)}

    result = build_profiles(orders, catalog)
    snapshot = ProfileSnapshot.from_build(result)
    save_snapshot(snapshot, snapshot_path)

    elapsed = time.time() - start_time
    logger.info(f"User profile rebuild complete in {elapsed:.2f}s: {summarize(result)}")

    return {
        "status": "success",
        "orders": len(orders),
        "skipped_orders": result.skipped_orders,
        "profiles": len(result.profiles),
        "user_types": len(result.user_types),
        "snapshot_path": snapshot_path,
        "duration_seconds": round(elapsed, 2),
    }
