from __future__ import annotations

"""
REST and WebSocket surface of the document relay.

REST calls serve headless clients and tests: fetch the stored state or push
one patch.  Interactive editors keep a socket open on ``/ws``: they receive
the full state on join and every other writer's patches afterwards.
"""

import json
import logging
import secrets
import time
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from layoutsync.collab.transport import encode_message
from layoutsync.config import feature_flags
from layoutsync.logging_config import writer_context
from layoutsync.server.core.errors import RelayError
from layoutsync.server.core.relay import HUB, DocumentRoom, RelaySubscriber, get_room
from layoutsync.server.core.storage import validate_document_id

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/api/documents", tags=["Documents"])

RELAY_FLAG = "enable_document_relay"
WS_CLOSE_DISABLED = 4403


def _relay_enabled() -> bool:
    return feature_flags.is_enabled(RELAY_FLAG, default=True)


def _ensure_relay_enabled() -> None:
    if not _relay_enabled():
        raise RelayError(403, "relay_disabled", "Document relay is disabled")


def _document_id(raw: str) -> str:
    try:
        return validate_document_id(raw)
    except ValueError as exc:
        raise RelayError(400, "invalid_document_id", str(exc)) from exc


class WireMeta(BaseModel):
    source: str = ""
    version: int = Field(default=0, ge=0)
    deleted: bool = False

    model_config = ConfigDict(extra="allow")


class WireRecord(BaseModel):
    id: str = Field(..., min_length=1, max_length=256)
    type: str = ""
    parentId: Optional[str] = None
    orderKey: Optional[str] = None
    props: Dict[str, Any] = Field(default_factory=dict)
    meta: WireMeta = Field(default_factory=WireMeta)

    model_config = ConfigDict(extra="allow")


class PublishRequest(BaseModel):
    patch: Dict[str, WireRecord] = Field(default_factory=dict)
    writer_id: Optional[str] = Field(default=None, max_length=256)

    model_config = ConfigDict(extra="forbid")


def _validated_patch(patch: Dict[str, WireRecord]) -> Dict[str, Dict[str, Any]]:
    mismatched = [key for key, record in patch.items() if key != record.id]
    if mismatched:
        raise RelayError(
            400,
            "record_id_mismatch",
            "Patch keys must equal record ids",
            details={"keys": sorted(mismatched)},
        )
    return {
        key: record.model_dump(exclude_none=True) for key, record in patch.items()
    }


async def _publish(
    room: DocumentRoom,
    patch: Dict[str, Dict[str, Any]],
    *,
    sender: Optional[str] = None,
) -> List[str]:
    keys = room.apply(patch)
    if not keys:
        return keys
    await room.broadcast(
        {"type": "doc.patch", "document_id": room.document_id, "patch": patch},
        exclude=[sender] if sender else None,
    )
    await room.flush()
    LOGGER.info(
        "Relayed patch",
        extra={"document": room.document_id, "records": len(keys), "sender": sender},
    )
    return keys


@router.get("/health")
async def relay_health() -> Dict[str, Any]:
    return {"ok": True, "enabled": _relay_enabled(), "stats": HUB.stats()}


@router.get("/{document_id}/state")
async def document_state(document_id: str) -> Dict[str, Any]:
    _ensure_relay_enabled()
    room = await get_room(_document_id(document_id))
    return {
        "ok": True,
        "document_id": room.document_id,
        "revision": room.revision,
        "state": room.state(),
    }


@router.post("/{document_id}/publish")
async def document_publish(document_id: str, payload: PublishRequest) -> Dict[str, Any]:
    _ensure_relay_enabled()
    room = await get_room(_document_id(document_id))
    patch = _validated_patch(payload.patch)
    with writer_context(payload.writer_id):
        keys = await _publish(room, patch, sender=payload.writer_id)
    return {
        "ok": True,
        "document_id": room.document_id,
        "revision": room.revision,
        "applied": keys,
    }


async def _send(websocket: WebSocket, payload: Dict[str, Any]) -> None:
    await websocket.send_text(encode_message(payload))


@router.websocket("/ws")
async def document_ws(websocket: WebSocket) -> None:
    await websocket.accept()
    if not _relay_enabled():
        await _send(websocket, {"type": "error", "error": "relay_disabled"})
        await websocket.close(code=WS_CLOSE_DISABLED)
        return

    try:
        document_id = validate_document_id(
            websocket.query_params.get("document_id") or "default"
        )
    except ValueError:
        await _send(websocket, {"type": "error", "error": "invalid_document_id"})
        await websocket.close(code=1008)
        return

    client_id = (
        websocket.query_params.get("writer_id")
        or websocket.headers.get("x-writer-id")
        or f"anon:{secrets.token_hex(4)}"
    )
    room = await get_room(document_id)
    room.join(RelaySubscriber(client_id=client_id, websocket=websocket))
    LOGGER.info("Relay client joined", extra={"document": document_id, "client": client_id})

    try:
        await _send(
            websocket,
            {
                "type": "doc.state",
                "document_id": document_id,
                "revision": room.revision,
                "state": room.state(),
            },
        )
        while True:
            raw = await websocket.receive_text()
            try:
                body = json.loads(raw)
            except ValueError:
                body = {"type": "ping"}
            if not isinstance(body, dict):
                body = {"type": "ping"}
            msg_type = str(body.get("type") or "").lower()
            room.touch(client_id)

            if msg_type == "ping":
                await _send(websocket, {"type": "pong", "ts": time.time()})
                continue

            if msg_type == "doc.pull":
                await _send(
                    websocket,
                    {
                        "type": "doc.state",
                        "document_id": document_id,
                        "revision": room.revision,
                        "state": room.state(),
                    },
                )
                continue

            if msg_type == "doc.publish":
                try:
                    request = PublishRequest(patch=body.get("patch") or {})
                    patch = _validated_patch(request.patch)
                except (ValidationError, RelayError):
                    await _send(
                        websocket,
                        {
                            "type": "error",
                            "document_id": document_id,
                            "error": "invalid_patch",
                        },
                    )
                    continue
                with writer_context(client_id):
                    keys = await _publish(room, patch, sender=client_id)
                await _send(
                    websocket,
                    {
                        "type": "doc.ack",
                        "document_id": document_id,
                        "revision": room.revision,
                        "applied": keys,
                    },
                )
                continue

            await _send(
                websocket,
                {
                    "type": "error",
                    "document_id": document_id,
                    "error": "unknown_message_type",
                    "received": msg_type,
                },
            )
    except WebSocketDisconnect:
        pass
    finally:
        room.leave(client_id)
        LOGGER.info(
            "Relay client left", extra={"document": document_id, "client": client_id}
        )


__all__ = ["router"]
