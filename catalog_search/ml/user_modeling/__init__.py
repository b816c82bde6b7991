"""
User Modeling Package
Offline user profile building and the published profile snapshot.
"""

from .profile_builder import (
    UserProfile,
    UserTypeProfile,
    ProfileBuildResult,
    UserProfileBuilder,
    build_profiles,
    classify_user_type,
    load_catalog,
    load_orders,
    summarize,
)

from .profile_store import (
    ProfileSnapshot,
    ProfileStore,
    get_profile_store,
    reset_profile_store,
    save_snapshot,
    load_snapshot,
)

__all__ = [
    # Builder
    "UserProfile",
    "UserTypeProfile",
    "ProfileBuildResult",
    "UserProfileBuilder",
    "build_profiles",
    "classify_user_type",
    "load_catalog",
    "load_orders",
    "summarize",
    # Store
    "ProfileSnapshot",
    "ProfileStore",
    "get_profile_store",
    "reset_profile_store",
    "save_snapshot",
    "load_snapshot",
]
