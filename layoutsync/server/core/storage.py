from __future__ import annotations

import json
import logging
import os
import re
import threading
from pathlib import Path
from typing import Any, Dict

LOGGER = logging.getLogger(__name__)

_ROOT = Path(os.getenv("LAYOUTSYNC_DATA_DIR", "./data/documents"))
_LOCKS: dict[str, threading.Lock] = {}
_GUARD = threading.Lock()
_SAFE_ID = re.compile(r"^[A-Za-z0-9_.:-]{1,128}$")


def validate_document_id(document_id: str) -> str:
    value = str(document_id or "").strip()
    if not _SAFE_ID.match(value) or value.startswith("."):
        raise ValueError(f"invalid document id: {document_id!r}")
    return value


def _path(document_id: str) -> Path:
    return _ROOT / f"{document_id.replace(':', '_')}.json"


def _lock(document_id: str) -> threading.Lock:
    with _GUARD:
        _LOCKS.setdefault(document_id, threading.Lock())
        return _LOCKS[document_id]


def document_load(document_id: str) -> Dict[str, Dict[str, Any]]:
    """Stored records of ``document_id`` keyed by id; tombstones included."""
    document_id = validate_document_id(document_id)
    p = _path(document_id)
    if not p.exists():
        return {}
    try:
        obj = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        LOGGER.warning("Unreadable document file", extra={"path": str(p)})
        return {}
    records = obj.get("records") if isinstance(obj, dict) else None
    if not isinstance(records, dict):
        return {}
    return {
        str(key): value for key, value in records.items() if isinstance(value, dict)
    }


def document_save(document_id: str, records: Dict[str, Dict[str, Any]]) -> Path:
    document_id = validate_document_id(document_id)
    with _lock(document_id):
        p = _path(document_id)
        p.parent.mkdir(parents=True, exist_ok=True)
        payload = {"document_id": document_id, "records": records}
        tmp = p.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        tmp.replace(p)
    return p


__all__ = ["document_load", "document_save", "validate_document_id"]
