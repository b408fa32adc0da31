"""
Document state store.

A single owned table of records keyed by id.  All mutation goes through
``put``/``update_record``/``delete_records`` inside a *batch*: one synchronous
critical section whose change notification is deferred until the outermost
batch closes.  Local batches stamp every touched record with the writer id and
a fresh version from the :class:`WriterClock` and are appended to the change
log; ``merge_remote`` batches store records exactly as received.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import (
    Callable,
    Deque,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Set,
    Tuple,
)

from .errors import LayoutError, UnknownRecord
from .records import Record

LOGGER = logging.getLogger(__name__)

LOCAL = "local"
REMOTE = "remote"


class WriterClock:
    """
    Per-writer version counter.

    Versions are Lamport-style: observing a foreign version moves the counter
    past it, so a later local write always carries a larger number than any
    version this writer has seen.
    """

    def __init__(self, writer_id: Optional[str] = None, *, start: int = 0) -> None:
        self.writer_id = writer_id or f"writer:{uuid.uuid4().hex}"
        self._value = int(start)

    @property
    def value(self) -> int:
        return self._value

    def next_version(self) -> int:
        self._value += 1
        return self._value

    def observe(self, version: int) -> None:
        self._value = max(self._value, int(version))


@dataclass(slots=True)
class RecordsChanged:
    added: Dict[str, Record] = field(default_factory=dict)
    updated: Dict[str, Tuple[Record, Record]] = field(default_factory=dict)
    removed: Dict[str, Record] = field(default_factory=dict)
    source: str = LOCAL

    @property
    def empty(self) -> bool:
        return not (self.added or self.updated or self.removed)

    def touched(self) -> List[Record]:
        """Latest state of every record in the change, removals included."""
        records = list(self.added.values())
        records.extend(after for _, after in self.updated.values())
        records.extend(self.removed.values())
        return records


@dataclass(slots=True)
class ChangeEntry:
    sequence: int
    changes: RecordsChanged
    timestamp: float = field(default_factory=time.time)


class _PendingChanges:
    __slots__ = ("added", "updated", "removed")

    def __init__(self) -> None:
        self.added: Dict[str, Record] = {}
        self.updated: Dict[str, Tuple[Record, Record]] = {}
        self.removed: Dict[str, Record] = {}

    def put(self, before: Optional[Record], after: Record) -> None:
        rid = after.id
        if rid in self.added:
            self.added[rid] = after
        elif rid in self.updated:
            self.updated[rid] = (self.updated[rid][0], after)
        elif rid in self.removed:
            self.updated[rid] = (self.removed.pop(rid), after)
        elif before is None:
            self.added[rid] = after
        else:
            self.updated[rid] = (before, after)

    def remove(self, record: Record) -> None:
        rid = record.id
        if rid in self.added:
            del self.added[rid]
            return
        self.updated.pop(rid, None)
        self.removed[rid] = record

    def to_event(self, source: str) -> RecordsChanged:
        return RecordsChanged(
            added=dict(self.added),
            updated=dict(self.updated),
            removed=dict(self.removed),
            source=source,
        )


Observer = Callable[[Optional[Record], Optional[Record]], None]
Listener = Callable[[RecordsChanged], None]


class DocumentStore:
    """The single mutable in-memory document."""

    def __init__(
        self,
        *,
        clock: Optional[WriterClock] = None,
        max_log: int = 4096,
    ) -> None:
        self.clock = clock or WriterClock()
        self._records: Dict[str, Record] = {}
        self._listeners: List[Listener] = []
        self._observers: List[Observer] = []
        self._commit_hooks: List[Callable[[], None]] = []

        self._depth = 0
        self._source = LOCAL
        self._pending = _PendingChanges()
        self._batch_versions: Dict[str, int] = {}
        self._gestures: Set[str] = set()

        self._log: Deque[ChangeEntry] = deque(maxlen=max_log)
        self._sequence = 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    @property
    def writer_id(self) -> str:
        return self.clock.writer_id

    def get(self, record_id: str) -> Optional[Record]:
        return self._records.get(record_id)

    def require(self, record_id: str) -> Record:
        record = self._records.get(record_id)
        if record is None:
            raise UnknownRecord(record_id)
        return record

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records

    def __len__(self) -> int:
        return len(self._records)

    def records(self, record_type: Optional[str] = None) -> List[Record]:
        if record_type is None:
            return list(self._records.values())
        return [r for r in self._records.values() if r.type == record_type]

    def children_of(self, parent_id: str) -> List[Record]:
        children = [r for r in self._records.values() if r.parent_id == parent_id]
        children.sort(key=lambda r: (r.order_key, r.id))
        return children

    def snapshot(self) -> Dict[str, Dict]:
        """Wire-format copy of every live record."""
        return {rid: record.as_dict() for rid, record in self._records.items()}

    @property
    def in_batch(self) -> bool:
        return self._depth > 0

    @property
    def source(self) -> str:
        return self._source

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------
    def listen(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for one event per committed batch."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def observe(self, observer: Observer) -> Callable[[], None]:
        """Register ``observer(before, after)`` for every individual write."""
        self._observers.append(observer)

        def _unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return _unsubscribe

    def on_before_commit(self, hook: Callable[[], None]) -> None:
        """Run ``hook`` inside the outermost batch just before it commits."""
        self._commit_hooks.append(hook)

    def changes_since(self, sequence: int) -> List[ChangeEntry]:
        return [entry for entry in self._log if entry.sequence > sequence]

    @property
    def last_sequence(self) -> int:
        return self._sequence

    # ------------------------------------------------------------------
    # Local gestures
    # ------------------------------------------------------------------
    def begin_gesture(self, record_id: str) -> None:
        """Mark ``record_id`` as held by a drag or resize of this writer."""
        self._gestures.add(record_id)

    def end_gesture(self, record_id: str) -> None:
        self._gestures.discard(record_id)

    def in_gesture(self, record_id: str) -> bool:
        return record_id in self._gestures

    # ------------------------------------------------------------------
    # Batching
    # ------------------------------------------------------------------
    @contextmanager
    def batch(self) -> Iterator["DocumentStore"]:
        self._depth += 1
        try:
            yield self
        finally:
            self._depth -= 1
            if self._depth == 0:
                self._commit()

    @contextmanager
    def merge_remote(self) -> Iterator["DocumentStore"]:
        """Batch whose writes are stored verbatim and reported as remote."""
        if self._depth and self._source != REMOTE:
            raise LayoutError("cannot merge remote changes inside a local batch")
        self._source = REMOTE
        try:
            with self.batch():
                yield self
        finally:
            if self._depth == 0:
                self._source = LOCAL

    def _commit(self) -> None:
        self._depth += 1
        try:
            for hook in list(self._commit_hooks):
                hook()
        finally:
            self._depth -= 1

        source = self._source
        event = self._pending.to_event(source)
        self._pending = _PendingChanges()
        self._batch_versions.clear()
        if event.empty:
            return
        if source == LOCAL:
            self._sequence += 1
            self._log.append(ChangeEntry(sequence=self._sequence, changes=event))
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                LOGGER.exception("Store listener failed", extra={"source": source})

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def _stamp(self, record: Record, *, deleted: bool = False) -> None:
        if self._source != LOCAL:
            self.clock.observe(record.meta.version)
            record.meta.deleted = deleted
            return
        version = self._batch_versions.get(record.id)
        if version is None:
            version = self.clock.next_version()
            self._batch_versions[record.id] = version
        record.meta.source = self.clock.writer_id
        record.meta.version = version
        record.meta.deleted = deleted

    def _notify(self, before: Optional[Record], after: Optional[Record]) -> None:
        for observer in list(self._observers):
            observer(before, after)

    def put(self, records: Iterable[Record] | Record) -> List[Record]:
        """Insert or replace whole records."""
        if isinstance(records, Record):
            records = [records]
        stored: List[Record] = []
        with self.batch():
            for incoming in records:
                record = incoming.evolve()
                self._stamp(record)
                before = self._records.get(record.id)
                self._records[record.id] = record
                self._pending.put(before, record)
                self._notify(before, record)
                stored.append(record)
        return stored

    def create_record(self, record: Record) -> Record:
        if record.id in self._records:
            raise LayoutError(f"record already exists: {record.id}")
        return self.put(record)[0]

    def update_record(
        self,
        record_id: str,
        *,
        props: Optional[Mapping] = None,
        parent_id: Optional[str] = None,
        order_key: Optional[str] = None,
        meta: Optional[Mapping] = None,
    ) -> Record:
        """Patch one record; ``props`` merges shallowly, ``meta`` sets attributes."""
        current = self.require(record_id)
        record = current.evolve()
        if props:
            record.props.update(props)
        if parent_id is not None:
            record.parent_id = parent_id
        if order_key is not None:
            record.order_key = order_key
        for key, value in (meta or {}).items():
            setattr(record.meta, key, value)
        return self.put(record)[0]

    def delete_records(self, record_ids: Iterable[str]) -> List[Record]:
        removed: List[Record] = []
        with self.batch():
            for record_id in list(dict.fromkeys(record_ids)):
                current = self._records.pop(record_id, None)
                if current is None:
                    continue
                tombstone = current.evolve()
                self._stamp(tombstone, deleted=True)
                self._pending.remove(tombstone)
                self._notify(current, None)
                removed.append(tombstone)
        return removed


__all__ = [
    "LOCAL",
    "REMOTE",
    "ChangeEntry",
    "DocumentStore",
    "RecordsChanged",
    "WriterClock",
]
