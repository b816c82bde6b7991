"""
Profile Store
Immutable profile snapshots published by reference swap.

Request handlers read ``ProfileStore.current`` without locking. A rebuild runs
the profile builder to completion off to the side and then publishes the new
snapshot with a single assignment, so a concurrent reader sees either the old
snapshot or the new one, never a partial map.
"""

import json
import logging
import os
import tempfile
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Mapping, Optional, Union

from .profile_builder import (
    ProfileBuildResult,
    UserProfile,
    UserTypeProfile,
    build_profiles,
    load_catalog,
    load_orders,
)

logger = logging.getLogger(__name__)

SNAPSHOT_FORMAT_VERSION = 1

_EMPTY_HISTORY: FrozenSet[str] = frozenset()


@dataclass(frozen=True)
class ProfileSnapshot:
    """Read-only view over one profile build."""

    profiles: Mapping[str, UserProfile] = field(default_factory=lambda: MappingProxyType({}))
    order_history: Mapping[str, FrozenSet[str]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    user_types: Mapping[str, UserTypeProfile] = field(default_factory=lambda: MappingProxyType({}))
    built_at: Optional[datetime] = None

    @classmethod
    def empty(cls) -> "ProfileSnapshot":
        """Snapshot with no data; personalization becomes a no-op."""
        return cls()

    @classmethod
    def from_build(
        cls, result: ProfileBuildResult, built_at: Optional[datetime] = None
    ) -> "ProfileSnapshot":
        return cls(
            profiles=MappingProxyType(dict(result.profiles)),
            order_history=MappingProxyType(
                {user_id: frozenset(ids) for user_id, ids in result.order_history.items()}
            ),
            user_types=MappingProxyType(dict(result.user_types)),
            built_at=built_at or datetime.now(timezone.utc),
        )

    def get_profile(self, user_id: Optional[str]) -> Optional[UserProfile]:
        if not user_id:
            return None
        return self.profiles.get(user_id)

    def get_order_history(self, user_id: Optional[str]) -> FrozenSet[str]:
        if not user_id:
            return _EMPTY_HISTORY
        return self.order_history.get(user_id, _EMPTY_HISTORY)

    def get_user_type(self, user_type: Optional[str]) -> Optional[UserTypeProfile]:
        if not user_type:
            return None
        return self.user_types.get(user_type)

    @property
    def is_empty(self) -> bool:
        return not self.profiles and not self.order_history

    def stats(self) -> Dict[str, Any]:
        return {
            "profiles": len(self.profiles),
            "users_with_history": len(self.order_history),
            "user_types": len(self.user_types),
            "built_at": self.built_at.isoformat() if self.built_at else None,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": SNAPSHOT_FORMAT_VERSION,
            "built_at": self.built_at.isoformat() if self.built_at else None,
            "profiles": [profile.to_dict() for profile in self.profiles.values()],
            "order_history": {
                user_id: sorted(ids) for user_id, ids in self.order_history.items()
            },
            "user_types": [profile.to_dict() for profile in self.user_types.values()],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProfileSnapshot":
        version = data.get("version")
        if version != SNAPSHOT_FORMAT_VERSION:
            raise ValueError(f"Unsupported profile snapshot version: {version}")

        built_at = data.get("built_at")
        result = ProfileBuildResult(
            profiles={
                item["user_id"]: UserProfile.from_dict(item) for item in data.get("profiles", [])
            },
            order_history={
                user_id: frozenset(ids) for user_id, ids in data.get("order_history", {}).items()
            },
            user_types={
                item["user_type"]: UserTypeProfile.from_dict(item)
                for item in data.get("user_types", [])
            },
        )
        return cls.from_build(
            result, built_at=datetime.fromisoformat(built_at) if built_at else None
        )


def save_snapshot(snapshot: ProfileSnapshot, path: Union[str, Path]) -> Path:
    """
    Persist a snapshot as JSON.

    The file is written next to the target and renamed into place, so readers
    of ``path`` never see a partially written artifact.

    Args:
        snapshot: Snapshot to persist
        path: Destination file

    Returns:
        Path written
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(snapshot.to_dict(), f)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise

    logger.info(f"Saved profile snapshot to {path} ({len(snapshot.profiles)} profiles)")
    return path


def load_snapshot(path: Union[str, Path]) -> ProfileSnapshot:
    """Load a snapshot artifact written by save_snapshot()."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    snapshot = ProfileSnapshot.from_dict(data)
    logger.info(f"Loaded profile snapshot from {path} ({len(snapshot.profiles)} profiles)")
    return snapshot


class ProfileStore:
    """
    Holder of the currently published ProfileSnapshot.

    Usage:
        store = get_profile_store()
        store.rebuild_from_files(orders_path, products_path)
        profile = store.current.get_profile("user-1")
    """

    def __init__(self, snapshot: Optional[ProfileSnapshot] = None):
        self._snapshot = snapshot or ProfileSnapshot.empty()
        self._loaded = snapshot is not None
        self._write_lock = threading.Lock()

    @property
    def current(self) -> ProfileSnapshot:
        return self._snapshot

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    def publish(self, snapshot: ProfileSnapshot) -> None:
        """Swap in a fully built snapshot."""
        with self._write_lock:
            self._snapshot = snapshot
            self._loaded = True
        logger.info(f"Published profile snapshot: {snapshot.stats()}")

    def rebuild_from_files(
        self, orders_path: Union[str, Path], catalog_path: Union[str, Path]
    ) -> ProfileSnapshot:
        """
        Rebuild profiles from the order and product exports, then publish.

        Missing or unreadable data, or a build that fails outright, keeps the
        current snapshot when one has been published already and publishes an
        empty one otherwise. Individual malformed orders are skipped by the
        builder.

        Returns:
            The snapshot current after the call
        """
        start_time = time.time()
        try:
            orders = load_orders(orders_path)
            catalog = load_catalog(catalog_path)
        except (OSError, ValueError) as e:
            logger.warning(f"Profile data unavailable, personalization disabled: {e}")
            if not self._loaded:
                self.publish(ProfileSnapshot.empty())
            return self.current

        logger.info(f"Loaded {len(orders)} orders and {len(catalog)} products")

        try:
            result = build_profiles(orders, catalog)
        except (TypeError, ValueError) as e:
            logger.error(f"Profile build failed, keeping current snapshot: {e}")
            if not self._loaded:
                self.publish(ProfileSnapshot.empty())
            return self.current

        snapshot = ProfileSnapshot.from_build(result)
        self.publish(snapshot)

        logger.info(f"Profile rebuild completed in {time.time() - start_time:.2f}s")
        return snapshot

    def load_artifact(self, path: Union[str, Path]) -> ProfileSnapshot:
        """Publish a snapshot artifact produced by the background worker."""
        snapshot = load_snapshot(path)
        self.publish(snapshot)
        return snapshot


# Global store instance
_profile_store: Optional[ProfileStore] = None


def get_profile_store() -> ProfileStore:
    """Get global profile store (singleton)."""
    global _profile_store
    if _profile_store is None:
        _profile_store = ProfileStore()
    return _profile_store


def reset_profile_store() -> None:
    """Reset profile store (useful for testing)."""
    global _profile_store
    _profile_store = None
