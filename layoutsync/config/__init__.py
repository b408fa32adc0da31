"""Configuration loaders shared by the session, relay server and Qt client."""

from __future__ import annotations

from .feature_flags import FEATURE_DEFAULTS, is_enabled, load_feature_flags
from .sync_settings import SyncSettings, load_sync_settings

__all__ = [
    "FEATURE_DEFAULTS",
    "SyncSettings",
    "is_enabled",
    "load_feature_flags",
    "load_sync_settings",
]
