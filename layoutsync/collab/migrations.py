from __future__ import annotations

"""
Schema upgrades for wire records loaded from storage or received remotely.

``migrate`` is pure and idempotent and never changes a record's id.  Records
whose type it does not recognise are logged and returned unchanged so a newer
client's data survives a round trip through an older one.
"""

import copy
import logging
from typing import Any, Dict, Mapping, MutableMapping, Optional

from layoutsync.layout.errors import UnmigratableRecord
from layoutsync.layout.records import (
    EDGE,
    ITEM,
    KINDS,
    LAYOUT,
    ROOT_ID,
    SECTION,
    STACK,
    SECTION_TEXT_STYLES,
)

LOGGER = logging.getLogger(__name__)

LEGACY_TYPES: Dict[str, str] = {
    "container": "page",
    "builder": ITEM,
    "custom-frame": STACK,
}
LEGACY_BINDING_TYPES = frozenset({"layout", "frame-layout"})
LEGACY_POSITION = (500.0, 100.0)

_FLAT_GEOMETRY = ("x", "y", "w", "h", "width", "height")
_SHAPE_NOISE = ("typeName", "rotation", "isLocked", "opacity", "index")


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None


def _first_number(*values: Any) -> Optional[float]:
    for value in values:
        number = _number(value)
        if number is not None:
            return number
    return None


def _resolve_type(data: Mapping[str, Any]) -> str:
    record_type = str(data.get("type") or "")
    if data.get("typeName") == "binding" or record_type in LEGACY_BINDING_TYPES:
        return EDGE
    return LEGACY_TYPES.get(record_type, record_type)


def _upgrade_edge(data: MutableMapping[str, Any], props: Dict[str, Any]) -> None:
    for key in ("fromId", "toId"):
        if key not in props and key in data:
            props[key] = data.pop(key)
    index = props.pop("index", None)
    if "orderKey" not in data and isinstance(index, str) and index:
        data["orderKey"] = index
    props["relation"] = props.get("relation") or LAYOUT
    props["placeholder"] = bool(props.get("placeholder", False))
    props.pop("position", None)
    props.pop("size", None)


def _upgrade_geometry(
    data: MutableMapping[str, Any],
    props: Dict[str, Any],
    record_type: str,
) -> None:
    default_w, default_h = KINDS[record_type].default_size
    position = props.get("position") if isinstance(props.get("position"), Mapping) else {}
    size = props.get("size") if isinstance(props.get("size"), Mapping) else {}
    outer_size = data.get("size") if isinstance(data.get("size"), Mapping) else {}

    x = _first_number(position.get("x"), data.get("x"), props.get("x"))
    y = _first_number(position.get("y"), data.get("y"), props.get("y"))
    if x is None and y is None and not position:
        x, y = LEGACY_POSITION
    w = _first_number(
        size.get("w"),
        outer_size.get("w"),
        data.get("w"),
        props.get("w"),
        data.get("width"),
        props.get("width"),
    )
    h = _first_number(
        size.get("h"),
        outer_size.get("h"),
        data.get("h"),
        props.get("h"),
        data.get("height"),
        props.get("height"),
    )
    props["position"] = {"x": x or 0.0, "y": y or 0.0}
    props["size"] = {
        "w": default_w if w is None else w,
        "h": default_h if h is None else h,
    }
    for key in _FLAT_GEOMETRY:
        data.pop(key, None)
        props.pop(key, None)
    data.pop("size", None)


def _upgrade_props(props: Dict[str, Any], record_type: str) -> None:
    for key, value in KINDS[record_type].default_props.items():
        if key == "text":
            continue
        props.setdefault(key, copy.deepcopy(value))
    if "text" in KINDS[record_type].default_props:
        text = props.get("text") or props.get("content")
        props["text"] = str(text) if text else KINDS[record_type].default_props["text"]
        props.pop("content", None)
    if record_type == SECTION and props.get("textStyle") not in SECTION_TEXT_STYLES:
        props["textStyle"] = "heading"
    if record_type == STACK:
        gap = _number(props.get("gap"))
        props["gap"] = KINDS[STACK].default_props["gap"] if gap is None else gap
    if record_type == ITEM:
        props["isComplete"] = bool(props.get("isComplete", False))


def _upgrade(data: Mapping[str, Any]) -> Dict[str, Any]:
    record = copy.deepcopy(dict(data))
    record_id = str(record.get("id") or "")
    record_type = _resolve_type(record)
    if record_type not in KINDS:
        raise UnmigratableRecord(record_id, str(record.get("type") or ""))

    props = record.get("props")
    props = dict(props) if isinstance(props, Mapping) else {}

    if "orderKey" not in record and isinstance(record.get("index"), str):
        record["orderKey"] = record["index"]
    if record_type == EDGE:
        _upgrade_edge(record, props)
    else:
        _upgrade_geometry(record, props, record_type)
        _upgrade_props(props, record_type)

    for key in _SHAPE_NOISE:
        record.pop(key, None)
    meta = record.get("meta")
    meta = dict(meta) if isinstance(meta, Mapping) else {}
    meta.setdefault("source", "")
    meta.setdefault("version", 0)

    return {
        **record,
        "id": record_id,
        "type": record_type,
        "parentId": record.get("parentId") or ROOT_ID,
        "orderKey": record.get("orderKey") or "a0",
        "props": props,
        "meta": meta,
    }


def migrate(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Upgrade one wire record to the current schema."""
    try:
        return _upgrade(data)
    except UnmigratableRecord as exc:
        LOGGER.warning(
            "Passing through unmigratable record",
            extra={"record": exc.record_id, "type": exc.record_type},
        )
        return copy.deepcopy(dict(data))


def migrate_state(state: Mapping[str, Any]) -> Dict[str, Any]:
    """Migrate every record of a wire state; ``None`` entries are dropped."""
    migrated: Dict[str, Any] = {}
    for key, value in state.items():
        if not isinstance(value, Mapping):
            continue
        migrated[key] = migrate(value)
    return migrated


__all__ = [
    "LEGACY_BINDING_TYPES",
    "LEGACY_TYPES",
    "migrate",
    "migrate_state",
]
