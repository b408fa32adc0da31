"""
Synchronisation reconciler between a document store and a transport.

Outbound, every committed local batch is read from the store's change log and
folded into one pending patch keyed by record id, which is published through a
:class:`FlushThrottle`.  The throttle window shrinks while a record in the
patch is being dragged or transformed so remote viewers see smooth motion.

Inbound, each received record is migrated and then merged only when it is
strictly newer than what this client holds.  Versions are compared as
``(version, source)`` pairs so two writers that reach the same counter still
converge on one winner.  Records the local writer is actively dragging or
resizing are never overwritten mid-gesture; the gesture's final write
supersedes the remote edit anyway.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from layoutsync.config.sync_settings import SyncSettings
from layoutsync.layout.records import Record
from layoutsync.layout.store import LOCAL, DocumentStore, RecordsChanged
from layoutsync.logging_config import writer_context

from .migrations import migrate
from .throttle import FlushThrottle, Scheduler, running_loop_scheduler
from .transport import Patch, Transport

LOGGER = logging.getLogger(__name__)

Stamp = Tuple[int, str]


def _stamp(record: Record) -> Stamp:
    return (record.meta.version, record.meta.source)


class SyncReconciler:
    def __init__(
        self,
        document_id: str,
        store: DocumentStore,
        transport: Transport,
        *,
        settings: Optional[SyncSettings] = None,
        scheduler: Optional[Scheduler] = None,
        migrate_fn: Callable[[Mapping[str, Any]], Dict[str, Any]] = migrate,
    ) -> None:
        self.document_id = document_id
        self.store = store
        self.transport = transport
        self.settings = settings or SyncSettings()
        self.migrate_fn = migrate_fn
        if scheduler is None and self.settings.throttled:
            scheduler = running_loop_scheduler()
            if scheduler is None:
                raise ValueError(
                    "A scheduler is required when the sync throttle is enabled"
                )
        self._throttle: Optional[FlushThrottle] = None
        if scheduler is not None:
            self._throttle = FlushThrottle(
                self._send, scheduler, window=self.settings.window(False)
            )

        self._pending: Patch = {}
        self._tombstones: Dict[str, Stamp] = {}
        self._cursor = store.last_sequence
        self._initialised = False
        self._unlisten: Optional[Callable[[], None]] = store.listen(self._on_change)
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def writer_id(self) -> str:
        return self.store.writer_id

    @property
    def connected(self) -> bool:
        return self._unsubscribe is not None

    @property
    def pending(self) -> Patch:
        return dict(self._pending)

    def connect(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.transport.on_remote_state(
                self.document_id, self.receive
            )

    def close(self) -> None:
        self.flush()
        if self._throttle is not None:
            self._throttle.cancel()
        if self._unlisten is not None:
            self._unlisten()
            self._unlisten = None
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------
    def _on_change(self, event: RecordsChanged) -> None:
        if event.source != LOCAL:
            return
        self.collect()

    def collect(self) -> None:
        """Fold unread local change-log entries into the pending patch."""
        for entry in self.store.changes_since(self._cursor):
            self._cursor = entry.sequence
            for record in entry.changes.touched():
                if record.meta.deleted:
                    self._tombstones[record.id] = _stamp(record)
                self._pending[record.id] = record.as_dict()
        if self._pending:
            self._schedule()

    def _gesture_active(self) -> bool:
        for data in self._pending.values():
            meta = data.get("meta") or {}
            if meta.get("isDragging") or meta.get("isTransforming"):
                return True
        return False

    def _schedule(self) -> None:
        window = self.settings.window(self._gesture_active())
        if window <= 0 or self._throttle is None:
            self.flush()
            return
        self._throttle(window)

    def flush(self) -> None:
        """Publish the pending patch now."""
        if self._throttle is not None:
            self._throttle.cancel()
        self._send()

    def _send(self) -> None:
        if not self._pending:
            return
        patch, self._pending = self._pending, {}
        with writer_context(self.writer_id):
            LOGGER.debug(
                "Publishing patch",
                extra={"document": self.document_id, "records": len(patch)},
            )
            self.transport.publish(self.document_id, patch)

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------
    def _newer(self, record: Record, *, initial: bool = False) -> bool:
        local = self.store.get(record.id)
        # a first delivery may hand back this writer's own records after a restart
        if record.meta.source == self.writer_id and not (initial and local is None):
            return False
        incoming = _stamp(record)
        if local is not None and incoming <= _stamp(local):
            return False
        tombstone = self._tombstones.get(record.id)
        if tombstone is not None and incoming <= tombstone:
            return False
        if self.store.in_gesture(record.id):
            LOGGER.debug(
                "Skipping remote write to record under local gesture",
                extra={"record": record.id, "source": record.meta.source},
            )
            return False
        return True

    def receive(self, state: Mapping[str, Any]) -> int:
        """Merge a remote state or patch; returns the number of records applied."""
        initial = not self._initialised
        self._initialised = True
        upserts: List[Record] = []
        removals: List[Record] = []

        with writer_context(self.writer_id):
            for value in state.values():
                if not isinstance(value, Mapping):
                    continue
                record = Record.from_dict(self.migrate_fn(value))
                self.store.clock.observe(record.meta.version)
                if not self._newer(record, initial=initial):
                    continue
                if record.meta.deleted:
                    self._tombstones[record.id] = _stamp(record)
                    if record.id in self.store:
                        removals.append(record)
                else:
                    upserts.append(record)

            if not upserts and not removals:
                return 0
            with self.store.merge_remote():
                if upserts:
                    self.store.put(upserts)
                self.store.delete_records(r.id for r in removals)
            LOGGER.debug(
                "Merged remote changes",
                extra={
                    "document": self.document_id,
                    "initial": initial,
                    "upserts": len(upserts),
                    "removals": len(removals),
                },
            )
        return len(upserts) + len(removals)


__all__ = ["SyncReconciler"]
