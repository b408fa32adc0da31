from __future__ import annotations

"""Qt transport for the document relay's /api/documents/ws socket."""

import json
import logging
import os
import time
import uuid
from typing import Any, Callable, Dict, List, Mapping, Optional
from urllib.parse import quote

from PySide6.QtCore import QObject, QTimer, QUrl, Signal
from PySide6.QtNetwork import QAbstractSocket, QNetworkRequest
from PySide6.QtWebSockets import QWebSocket

from layoutsync.collab.transport import encode_message

LOGGER = logging.getLogger(__name__)

DEFAULT_BASE = "http://127.0.0.1:8000"
RETRY_MIN_MS = 500
RETRY_MAX_MS = 30_000


def _default_base() -> str:
    return (os.getenv("LAYOUTSYNC_SERVER_BASE") or DEFAULT_BASE).rstrip("/")


def _build_ws_url(base: str, path: str) -> str:
    if base.startswith("https://"):
        scheme = "wss://"
        rest = base[len("https://") :]
    elif base.startswith("http://"):
        scheme = "ws://"
        rest = base[len("http://") :]
    else:
        scheme = "ws://"
        rest = base
    if not path.startswith("/"):
        path = f"/{path}"
    return f"{scheme}{rest}{path}"


class _TimerHandle:
    def __init__(self, timer: QTimer) -> None:
        self._timer = timer
        self._released = False

    @property
    def active(self) -> bool:
        return not self._released and self._timer.isActive()

    def cancel(self) -> None:
        if self._released:
            return
        self._timer.stop()
        self._release()

    def _release(self) -> None:
        if not self._released:
            self._released = True
            self._timer.deleteLater()


class QtScheduler:
    """Scheduler for :class:`FlushThrottle` driven by the Qt event loop."""

    def __init__(self, parent: Optional[QObject] = None) -> None:
        self.parent = parent

    def call_later(self, delay: float, callback: Callable[[], None]) -> _TimerHandle:
        timer = QTimer(self.parent)
        timer.setSingleShot(True)
        handle = _TimerHandle(timer)
        timer.timeout.connect(callback)
        timer.timeout.connect(handle._release)
        timer.start(max(0, int(round(delay * 1000))))
        return handle

    def now(self) -> float:
        return time.monotonic()


class RelayClient(QObject):
    """
    QWebSocket transport speaking the relay protocol.

    Publishes made before the socket is connected are queued and sent in
    order once it opens.  Remote states and patches are handed to the
    callbacks registered with :meth:`on_remote_state`.
    """

    state_changed = Signal(str)
    state_received = Signal(dict)
    error_occurred = Signal(dict)

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        writer_id: Optional[str] = None,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)
        self.base_url = (base_url or _default_base()).rstrip("/")
        self.writer_id = writer_id or f"writer:{uuid.uuid4().hex}"
        self._document_id = ""
        self._callbacks: List[Callable[[Mapping[str, Any]], None]] = []
        self._outbox: List[Dict[str, Any]] = []
        self._explicit_close = False
        self._revision = 0

        self.socket = QWebSocket()
        self.socket.textMessageReceived.connect(self._on_message)
        self.socket.connected.connect(self._on_connected)
        self.socket.disconnected.connect(self._on_disconnected)
        self.socket.errorOccurred.connect(self._on_error)

        self._retry_ms = RETRY_MIN_MS
        self._retry_timer = QTimer(self)
        self._retry_timer.setSingleShot(True)
        self._retry_timer.timeout.connect(self._open)

    # ------------------------------------------------------------------ Transport
    def publish(self, document_id: str, patch: Mapping[str, Any]) -> None:
        if self._document_id and document_id != self._document_id:
            LOGGER.warning(
                "Dropping patch for a document this client is not attached to",
                extra={"document": document_id, "attached": self._document_id},
            )
            return
        self._document_id = document_id
        self._outbox.append({"type": "doc.publish", "patch": dict(patch)})
        self._drain()

    def on_remote_state(
        self, document_id: str, callback: Callable[[Mapping[str, Any]], None]
    ) -> Callable[[], None]:
        self._callbacks.append(callback)
        if document_id != self._document_id or not self.connected:
            self.connect_to_document(document_id)

        def _unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return _unsubscribe

    # ------------------------------------------------------------------ API
    def connect_to_document(self, document_id: str) -> None:
        self._document_id = document_id or "default"
        self._explicit_close = False
        self._open()

    def disconnect(self) -> None:
        self._explicit_close = True
        self._retry_timer.stop()
        if self.socket.state() != QAbstractSocket.SocketState.UnconnectedState:
            self.socket.close()

    def pull_state(self) -> None:
        self._send({"type": "doc.pull"})

    @property
    def connected(self) -> bool:
        return self.socket.state() == QAbstractSocket.SocketState.ConnectedState

    @property
    def document_id(self) -> str:
        return self._document_id

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def queued(self) -> int:
        return len(self._outbox)

    # ------------------------------------------------------------------ Internal
    def _send(self, payload: Dict[str, Any]) -> bool:
        if not self.connected:
            return False
        self.socket.sendTextMessage(encode_message(payload))
        return True

    def _drain(self) -> None:
        while self._outbox and self._send(self._outbox[0]):
            self._outbox.pop(0)

    def _open(self) -> None:
        self._retry_timer.stop()
        query = f"document_id={quote(self._document_id)}&writer_id={quote(self.writer_id)}"
        url = _build_ws_url(self.base_url, f"/api/documents/ws?{query}")
        request = QNetworkRequest(QUrl(url))
        request.setRawHeader(b"x-writer-id", self.writer_id.encode("utf-8"))
        LOGGER.debug("Relay socket opening", extra={"url": url})
        self.state_changed.emit("connecting")
        self.socket.open(request)

    def _schedule_retry(self) -> None:
        if self._explicit_close or self._retry_timer.isActive():
            return
        LOGGER.debug("Relay reconnect scheduled", extra={"delay_ms": self._retry_ms})
        self._retry_timer.start(self._retry_ms)
        self._retry_ms = min(self._retry_ms * 2, RETRY_MAX_MS)

    def _dispatch(self, state: Mapping[str, Any]) -> None:
        self.state_received.emit(dict(state))
        for callback in list(self._callbacks):
            callback(state)

    # Qt slots ---------------------------------------------------------
    def _on_connected(self) -> None:
        LOGGER.info("Relay socket connected", extra={"document": self._document_id})
        self._retry_ms = RETRY_MIN_MS
        self.state_changed.emit("connected")
        self._drain()

    def _on_disconnected(self) -> None:
        self.state_changed.emit("disconnected")
        LOGGER.info("Relay socket disconnected", extra={"document": self._document_id})
        self._schedule_retry()

    def _on_error(self, error) -> None:  # pragma: no cover - Qt path
        LOGGER.warning("Relay socket error", extra={"error": str(error)})
        self.state_changed.emit(f"error:{error}")
        self._schedule_retry()

    def _on_message(self, message: str) -> None:
        try:
            payload = json.loads(message)
        except ValueError:
            LOGGER.debug("Relay client received non-JSON payload")
            return
        if not isinstance(payload, dict):
            return
        msg_type = str(payload.get("type") or "")
        if msg_type == "doc.state":
            self._revision = int(payload.get("revision") or 0)
            state = payload.get("state")
            if isinstance(state, dict):
                self._dispatch(state)
        elif msg_type == "doc.patch":
            patch = payload.get("patch")
            if isinstance(patch, dict):
                self._dispatch(patch)
        elif msg_type == "doc.ack":
            self._revision = max(self._revision, int(payload.get("revision") or 0))
        elif msg_type == "error":
            self.error_occurred.emit(payload)
        elif msg_type == "pong":
            return
        else:
            LOGGER.debug("Relay client ignored message", extra={"type": msg_type})


__all__ = ["QtScheduler", "RelayClient"]
