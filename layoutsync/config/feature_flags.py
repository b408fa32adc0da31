from __future__ import annotations

"""
Feature toggles for the editor and the relay.

Flags come from the ``features`` section of ``layoutsync.json`` and
``config/layoutsync.json`` (the latter wins).  Parsed files are cached until
either file's mtime changes.  ``LAYOUTSYNC_FEATURE_<NAME>`` environment
variables override both and are read on every lookup.
"""

import json
import logging
import os
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

LOGGER = logging.getLogger(__name__)

FEATURE_DEFAULTS: Dict[str, bool] = {
    "enable_drag_ghost": True,
    "enable_document_relay": True,
}

ENV_PREFIX = "LAYOUTSYNC_FEATURE_"
_TRUTHY = frozenset({"1", "true", "yes", "on"})
_FALSY = frozenset({"0", "false", "no", "off"})

_cache: Optional[Dict[str, bool]] = None
_cache_key: Optional[Tuple[float, ...]] = None


def _config_files() -> Tuple[Path, ...]:
    return (Path("layoutsync.json"), Path("config") / "layoutsync.json")


def _mtimes(paths: Tuple[Path, ...]) -> Tuple[float, ...]:
    stamps = []
    for path in paths:
        try:
            stamps.append(path.stat().st_mtime)
        except OSError:
            stamps.append(0.0)
    return tuple(stamps)


def _file_flags(path: Path) -> Dict[str, bool]:
    if not path.is_file():
        return {}
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        LOGGER.warning("Ignoring unreadable feature file", extra={"path": str(path)})
        return {}
    section = payload.get("features") if isinstance(payload, dict) else None
    if not isinstance(section, dict):
        return {}

    flags: Dict[str, bool] = {}
    for name, value in section.items():
        if name not in FEATURE_DEFAULTS:
            LOGGER.debug("Unknown feature flag", extra={"flag": name, "path": str(path)})
            continue
        if isinstance(value, bool):
            flags[name] = value
    return flags


def _env_flags(environ: Mapping[str, str]) -> Dict[str, bool]:
    flags: Dict[str, bool] = {}
    for name in FEATURE_DEFAULTS:
        raw = environ.get(ENV_PREFIX + name.upper())
        if raw is None:
            continue
        value = raw.strip().lower()
        if value in _TRUTHY:
            flags[name] = True
        elif value in _FALSY:
            flags[name] = False
        else:
            LOGGER.warning(
                "Ignoring invalid feature override", extra={"flag": name, "value": raw}
            )
    return flags


def load_feature_flags(
    *, refresh: bool = False, environ: Optional[Mapping[str, str]] = None
) -> Dict[str, bool]:
    """Defaults, then config files, then environment overrides."""
    global _cache, _cache_key
    paths = _config_files()
    key = _mtimes(paths)
    if refresh or _cache is None or key != _cache_key:
        merged = dict(FEATURE_DEFAULTS)
        for path in paths:
            merged.update(_file_flags(path))
        _cache, _cache_key = merged, key

    flags = dict(_cache)
    flags.update(_env_flags(os.environ if environ is None else environ))
    return flags


def is_enabled(
    name: str, *, default: Optional[bool] = None, refresh: bool = False
) -> bool:
    flags = load_feature_flags(refresh=refresh)
    if name in flags:
        return flags[name]
    return bool(default)


def refresh_cache() -> Dict[str, bool]:
    return load_feature_flags(refresh=True)


__all__ = [
    "ENV_PREFIX",
    "FEATURE_DEFAULTS",
    "is_enabled",
    "load_feature_flags",
    "refresh_cache",
]
