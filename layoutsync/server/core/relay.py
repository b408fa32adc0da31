from __future__ import annotations

"""
Document relay rooms.

A room keeps the last arrival for every record key of one document and the
websockets subscribed to it.  It never merges: conflict resolution happens in
each client's reconciler, the relay only stores and fans out.
"""

import asyncio
import copy
import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from layoutsync.collab.transport import encode_message
from layoutsync.server.core.storage import document_load, document_save

LOGGER = logging.getLogger(__name__)


def _now() -> float:
    return time.time()


@dataclass
class RelaySubscriber:
    client_id: str
    websocket: Any
    joined_at: float = field(default_factory=_now)
    last_seen: float = field(default_factory=_now)


class DocumentRoom:
    def __init__(
        self,
        document_id: str,
        records: Optional[Dict[str, Dict[str, Any]]] = None,
        *,
        persist_callback: Optional[Callable[[str, Dict[str, Any]], Any]] = None,
    ) -> None:
        self.document_id = document_id
        self.records: Dict[str, Dict[str, Any]] = dict(records or {})
        self.clients: Dict[str, RelaySubscriber] = {}
        self.revision = 0
        self._persisted_revision = 0
        self._persist_callback = persist_callback
        self._persist_lock = asyncio.Lock()

    def state(self) -> Dict[str, Dict[str, Any]]:
        return copy.deepcopy(self.records)

    def apply(self, patch: Mapping[str, Mapping[str, Any]]) -> List[str]:
        """Overwrite each key with its new value; returns the keys written."""
        keys: List[str] = []
        for key, value in patch.items():
            self.records[str(key)] = copy.deepcopy(dict(value))
            keys.append(str(key))
        if keys:
            self.revision += 1
        return keys

    def join(self, client: RelaySubscriber) -> None:
        self.clients[client.client_id] = client

    def leave(self, client_id: str) -> None:
        self.clients.pop(client_id, None)

    def touch(self, client_id: str) -> None:
        client = self.clients.get(client_id)
        if client:
            client.last_seen = _now()

    @property
    def dirty(self) -> bool:
        return self.revision != self._persisted_revision

    async def flush(self) -> bool:
        if not self.dirty:
            return False
        async with self._persist_lock:
            revision = self.revision
            if self._persist_callback is not None:
                result = self._persist_callback(self.document_id, self.state())
                if inspect.isawaitable(result):
                    await result
            self._persisted_revision = revision
        return True

    async def broadcast(
        self, payload: Dict[str, Any], *, exclude: Iterable[str] | None = None
    ) -> int:
        message = encode_message(payload)
        exclude_set = set(exclude or ())
        failures: List[str] = []
        sent = 0
        for client_id, client in list(self.clients.items()):
            if client_id in exclude_set:
                continue
            try:
                await client.websocket.send_text(message)
                sent += 1
            except Exception as exc:  # pragma: no cover - network path
                LOGGER.warning(
                    "Relay broadcast failed",
                    extra={"client": client_id, "error": str(exc)},
                )
                failures.append(client_id)
        for client_id in failures:
            self.leave(client_id)
        return sent


class RelayHub:
    """Lazily loaded rooms keyed by document id."""

    def __init__(
        self,
        *,
        loader: Callable[[str], Any],
        saver: Callable[[str, Dict[str, Any]], Any],
    ) -> None:
        self._rooms: Dict[str, DocumentRoom] = {}
        self._lock = asyncio.Lock()
        self._loader = loader
        self._saver = saver

    async def room(self, document_id: str) -> DocumentRoom:
        async with self._lock:
            room = self._rooms.get(document_id)
            if room:
                return room
            initial = self._loader(document_id)
            if inspect.isawaitable(initial):
                initial = await initial
            room = DocumentRoom(document_id, initial, persist_callback=self._saver)
            self._rooms[document_id] = room
            return room

    async def flush_all(self) -> None:
        async with self._lock:
            flushes = [room.flush() for room in self._rooms.values()]
        if flushes:
            await asyncio.gather(*flushes, return_exceptions=True)

    def discard_empty(self) -> None:
        empty = [doc for doc, room in self._rooms.items() if not room.clients]
        for document_id in empty:
            self._rooms.pop(document_id, None)

    def stats(self) -> Dict[str, Any]:
        rooms = list(self._rooms.values())
        return {
            "documents": len(rooms),
            "clients": sum(len(room.clients) for room in rooms),
            "dirty": sum(1 for room in rooms if room.dirty),
        }


def _loader(document_id: str):
    return asyncio.to_thread(document_load, document_id)


def _saver(document_id: str, records: Dict[str, Any]):
    return asyncio.to_thread(document_save, document_id, records)


HUB = RelayHub(loader=_loader, saver=_saver)


async def get_room(document_id: str) -> DocumentRoom:
    return await HUB.room(document_id)


__all__ = ["DocumentRoom", "HUB", "RelaySubscriber", "RelayHub", "get_room"]
