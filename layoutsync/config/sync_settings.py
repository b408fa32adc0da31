from __future__ import annotations

"""
Outbound sync throttle settings.

Read once when a session starts: the ``sync`` section of the first config file
found, then ``LAYOUTSYNC_*`` environment overrides.  A window of ``0`` turns
throttling off and publishes every batch immediately.
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence

LOGGER = logging.getLogger(__name__)

CONFIG_CANDIDATES: Sequence[Path] = (
    Path("config/layoutsync.json"),
    Path("layoutsync.json"),
)
ENV_THROTTLE = "LAYOUTSYNC_THROTTLE_MS"
ENV_ACTIVE_THROTTLE = "LAYOUTSYNC_ACTIVE_THROTTLE_MS"

DEFAULT_THROTTLE_MS = 200
DEFAULT_ACTIVE_THROTTLE_MS = 16


@dataclass(frozen=True)
class SyncSettings:
    throttle_ms: int = DEFAULT_THROTTLE_MS
    active_throttle_ms: int = DEFAULT_ACTIVE_THROTTLE_MS

    def window(self, active: bool) -> float:
        """Throttle window in seconds."""
        return (self.active_throttle_ms if active else self.throttle_ms) / 1000.0

    @property
    def throttled(self) -> bool:
        return self.throttle_ms > 0 or self.active_throttle_ms > 0

    def as_dict(self) -> Dict[str, int]:
        return {
            "throttle_ms": self.throttle_ms,
            "active_throttle_ms": self.active_throttle_ms,
        }


def _read_json(path: Path) -> Dict[str, Any]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except json.JSONDecodeError:
        LOGGER.warning("Ignoring malformed config file", extra={"path": str(path)})
        return {}
    return payload if isinstance(payload, dict) else {}


def _coerce_ms(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        number = int(float(value))
    except (TypeError, ValueError):
        return None
    return number if number >= 0 else None


def load_sync_settings(
    *,
    paths: Optional[Sequence[Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> SyncSettings:
    throttle = DEFAULT_THROTTLE_MS
    active = DEFAULT_ACTIVE_THROTTLE_MS
    for path in paths if paths is not None else CONFIG_CANDIDATES:
        sync_section = _read_json(Path(path)).get("sync")
        if not isinstance(sync_section, dict):
            continue
        value = _coerce_ms(sync_section.get("throttle_ms"))
        if value is not None:
            throttle = value
        value = _coerce_ms(sync_section.get("active_throttle_ms"))
        if value is not None:
            active = value
        break

    env = os.environ if environ is None else environ
    for name in (ENV_THROTTLE, ENV_ACTIVE_THROTTLE):
        raw = env.get(name)
        if raw is None or raw == "":
            continue
        value = _coerce_ms(raw)
        if value is None:
            LOGGER.warning("Ignoring invalid throttle override", extra={"env": name})
            continue
        if name == ENV_THROTTLE:
            throttle = value
        else:
            active = value
    return SyncSettings(throttle_ms=throttle, active_throttle_ms=active)


__all__ = [
    "DEFAULT_ACTIVE_THROTTLE_MS",
    "DEFAULT_THROTTLE_MS",
    "SyncSettings",
    "load_sync_settings",
]
