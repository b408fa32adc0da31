from __future__ import annotations

"""
Transport boundary between a reconciler and the shared document state.

A transport accepts patches (``{record_id: wire record}``, tombstones
included) and calls subscribers with record mappings: the full state on
subscription, then every published patch.  Subscribers see their own
publishes too; filtering self-sourced records is the reconciler's job.
"""

import copy
import json
import logging
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Mapping, Protocol, Tuple

LOGGER = logging.getLogger(__name__)

Patch = Dict[str, Dict[str, Any]]
StateCallback = Callable[[Mapping[str, Any]], None]


def encode_message(payload: Mapping[str, Any]) -> str:
    """Compact JSON text frame used on the relay socket."""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


class Transport(Protocol):
    def publish(self, document_id: str, patch: Mapping[str, Any]) -> None: ...

    def on_remote_state(
        self, document_id: str, callback: StateCallback
    ) -> Callable[[], None]: ...


class InMemoryTransport:
    """
    Single-process transport keeping per-key last arrivals.

    With ``auto_deliver=False`` published patches are queued until
    :meth:`deliver` is called, which lets tests interleave local edits with
    delayed remote traffic.
    """

    def __init__(self, *, auto_deliver: bool = True) -> None:
        self.auto_deliver = auto_deliver
        self._states: Dict[str, Patch] = {}
        self._subscribers: Dict[str, List[StateCallback]] = {}
        self._queue: Deque[Tuple[str, Patch]] = deque()
        self.published: List[Tuple[str, Patch]] = []

    def state(self, document_id: str) -> Patch:
        return copy.deepcopy(self._states.get(document_id, {}))

    def publish(self, document_id: str, patch: Mapping[str, Any]) -> None:
        payload: Patch = {
            str(key): copy.deepcopy(dict(value))
            for key, value in patch.items()
            if isinstance(value, Mapping)
        }
        if not payload:
            return
        self._states.setdefault(document_id, {}).update(copy.deepcopy(payload))
        self.published.append((document_id, payload))
        self._queue.append((document_id, payload))
        if self.auto_deliver:
            self.deliver()

    def on_remote_state(
        self, document_id: str, callback: StateCallback
    ) -> Callable[[], None]:
        subscribers = self._subscribers.setdefault(document_id, [])
        subscribers.append(callback)
        callback(self.state(document_id))

        def _unsubscribe() -> None:
            if callback in subscribers:
                subscribers.remove(callback)

        return _unsubscribe

    @property
    def queued(self) -> int:
        return len(self._queue)

    def deliver(self, limit: int | None = None) -> int:
        """Fan queued patches out to subscribers; returns how many were sent."""
        delivered = 0
        while self._queue and (limit is None or delivered < limit):
            document_id, patch = self._queue.popleft()
            for callback in list(self._subscribers.get(document_id, [])):
                callback(copy.deepcopy(patch))
            delivered += 1
        return delivered


__all__ = ["InMemoryTransport", "Patch", "StateCallback", "Transport", "encode_message"]
