"""
Pointer gestures over layout records.

:class:`DragSession` turns a pointer-down/move/up sequence over one record into
edge and position writes: the record follows the pointer, the deepest eligible
container under its centre becomes the drop target and the insertion slot is
found from the vertical midpoints of the target's other children.  While the
gesture runs the record's layout edges are placeholders and the record is
frozen in the reflow engine.  ``end`` finalises a single settled edge;
``cancel`` restores the snapshot taken at ``start``.

:class:`ResizeSession` is the narrower resize protocol: only the record kind's
resizable axes change and the owning container reflows on every sample.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from .bindings import ContainmentGraph
from .errors import DragStateError
from .geometry import (
    Point,
    deepest_at,
    is_descendant,
    page_bounds,
    page_origin,
    to_parent_space,
)
from .records import GHOST, MIN_STACK_GAP, ROOT_ID, STACK, Record, kind_of, make_record
from .reflow import ReflowEngine
from .store import DocumentStore

LOGGER = logging.getLogger(__name__)

BIND = "bind"
HOST = "host"


class GestureState(str, Enum):
    IDLE = "idle"
    TRANSLATING = "translating"
    RESIZING = "resizing"
    SETTLED = "settled"
    REVERTED = "reverted"


@dataclass(frozen=True, slots=True)
class DropTarget:
    container_id: str
    mode: str = BIND


def ghost_id(writer_id: str) -> str:
    return f"{GHOST}:{writer_id}"


class _Gesture:
    """Shared snapshot and finalisation logic for drag and resize."""

    active_state = GestureState.TRANSLATING

    def __init__(
        self,
        store: DocumentStore,
        graph: ContainmentGraph,
        reflow: ReflowEngine,
        record_id: str,
    ) -> None:
        self.store = store
        self.graph = graph
        self.reflow = reflow
        self.record_id = record_id
        self.state = GestureState.IDLE
        self._snapshot: Optional[Record] = None
        self._snapshot_edges: Dict[str, Record] = {}

    @property
    def active(self) -> bool:
        return self.state == self.active_state

    def _require_state(self, *states: GestureState) -> None:
        if self.state not in states:
            raise DragStateError(
                f"{type(self).__name__} is {self.state.value}, "
                f"expected one of {[s.value for s in states]}"
            )

    def _take_snapshot(self) -> None:
        record = self.store.require(self.record_id)
        self._snapshot = record.evolve()
        self._snapshot_edges = {
            edge.id: edge.evolve() for edge in self.graph.edges_to(self.record_id)
        }

    def _restore(self) -> None:
        """Put the record and its edges back exactly as they were at ``start``."""
        if self._snapshot is None:
            return
        stale = [
            edge.id
            for edge in self.graph.edges_to(self.record_id)
            if edge.id not in self._snapshot_edges
        ]
        self.graph.delete_edges(stale)
        self.store.put(list(self._snapshot_edges.values()))
        self.store.put(self._snapshot)

    def _finalize(self, container_id: Optional[str]) -> None:
        """Keep one settled edge to ``container_id`` and drop every other one."""
        edges = self.graph.edges_to(self.record_id)
        if container_id is None or self.store.get(container_id) is None:
            if container_id is not None:
                LOGGER.debug(
                    "Drop container vanished during gesture",
                    extra={"record": self.record_id, "container": container_id},
                )
            return

        winner = self.graph.edge_between(container_id, self.record_id)
        if winner is None:
            winner = self.graph.create_edge(container_id, self.record_id)
        elif winner.placeholder:
            winner = self.graph.update_edge(winner.id, placeholder=False)
        self.graph.delete_edges(e.id for e in edges if e.id != winner.id)

        record = self.store.require(self.record_id)
        if record.parent_id != container_id:
            self.graph.reparent(self.record_id, container_id)
        self.reflow.reflow(container_id)


class DragSession(_Gesture):
    """One drag gesture over one record."""

    def __init__(
        self,
        store: DocumentStore,
        graph: ContainmentGraph,
        reflow: ReflowEngine,
        record_id: str,
        *,
        ghosts: bool = True,
    ) -> None:
        super().__init__(store, graph, reflow, record_id)
        record = store.require(record_id)
        if not kind_of(record).draggable:
            raise DragStateError(f"{record.type} records cannot be dragged")
        self.ghosts = ghosts
        self.ghost_id = ghost_id(store.writer_id)
        self.target: Optional[DropTarget] = None
        self._container_id: Optional[str] = None
        self._hovered: Optional[str] = None
        self._start_point = Point()
        self._start_origin = Point()

    # ------------------------------------------------------------------
    # Gesture API
    # ------------------------------------------------------------------
    def start(self, point: Point) -> None:
        self._require_state(GestureState.IDLE)
        self._take_snapshot()
        record = self.store.require(self.record_id)
        self._start_point = point
        self._start_origin = page_origin(self.store, record)
        self._container_id = self.graph.container_of(self.record_id)

        with self.store.batch():
            self.store.begin_gesture(self.record_id)
            self.reflow.freeze(self.record_id)
            for edge in self.graph.edges_to(self.record_id):
                if not edge.placeholder:
                    self.graph.update_edge(edge.id, placeholder=True)
            self.store.update_record(self.record_id, meta={"is_dragging": True})
        self.state = GestureState.TRANSLATING
        LOGGER.debug(
            "Drag started",
            extra={"record": self.record_id, "container": self._container_id},
        )

    def move(self, point: Point) -> Optional[DropTarget]:
        self._require_state(GestureState.TRANSLATING)
        with self.store.batch():
            self._remove_ghost()
            self._translate(point)
            record = self.store.require(self.record_id)
            target = self.resolve_target(page_bounds(self.store, record).center)
            self._set_hover(target.container_id if target else None)
            if target is None:
                self._no_target(record)
            elif target.mode == HOST:
                self._host(target)
            else:
                self._bind(target.container_id, point)
            self.target = target
        return target

    def end(self) -> None:
        self._require_state(GestureState.TRANSLATING)
        self._finish(commit=True)

    def cancel(self) -> None:
        self._require_state(GestureState.TRANSLATING)
        self._finish(commit=False)

    # ------------------------------------------------------------------
    # Target resolution
    # ------------------------------------------------------------------
    def _eligibility(self, record: Record, candidate: Record) -> Optional[str]:
        if candidate.id == record.id or candidate.meta.deleted:
            return None
        kind = kind_of(record)
        candidate_kind = kind_of(candidate)
        if kind.can_bind_into(candidate.type) and candidate_kind.accepts(record.type):
            return BIND
        if candidate_kind.can_host(record.type):
            return HOST
        return None

    def resolve_target(self, anchor: Point) -> Optional[DropTarget]:
        """Deepest container under ``anchor`` that may take the dragged record."""
        record = self.store.require(self.record_id)

        def eligible(candidate: Record) -> bool:
            if self._eligibility(record, candidate) is None:
                return False
            return not is_descendant(self.store, candidate.id, record.id)

        best = deepest_at(self.store, anchor, eligible)
        if best is None:
            return None
        return DropTarget(best.id, self._eligibility(record, best) or BIND)

    def insertion_slot(
        self, container_id: str, point: Point
    ) -> tuple[Optional[Record], Optional[Record], float]:
        """``(below, above, slot_y)`` for the pointer over ``container_id``."""
        container = self.store.require(container_id)
        kind = kind_of(container)
        local = to_parent_space(self.store, container_id, point)
        gap = kind.gap(container)
        offset = kind.top_inset(container)
        below: Optional[Record] = None
        above: Optional[Record] = None
        for edge in self.graph.edges_of(container_id):
            if edge.to_id == self.record_id:
                continue
            sibling = self.store.get(edge.to_id)
            if sibling is None:
                continue
            if local.y < offset + sibling.h / 2:
                above = edge
                break
            below = edge
            offset += sibling.h + gap
        return below, above, offset

    # ------------------------------------------------------------------
    # Move steps
    # ------------------------------------------------------------------
    def _translate(self, point: Point) -> None:
        record = self.store.require(self.record_id)
        origin = self._start_origin + (point - self._start_point)
        local = to_parent_space(self.store, record.parent_id, origin)
        self.store.update_record(
            self.record_id, props={"position": {"x": local.x, "y": local.y}}
        )

    def _no_target(self, record: Record) -> None:
        if self._container_id and self.store.get(self._container_id) is not None:
            container = self.store.require(self._container_id)
            local = to_parent_space(
                self.store, record.parent_id, page_origin(self.store, container)
            )
            self.store.update_record(
                self.record_id, props={"position": {"x": local.x, "y": local.y}}
            )
            return
        if record.parent_id != ROOT_ID:
            self.graph.reparent(self.record_id, ROOT_ID)

    def _host(self, target: DropTarget) -> None:
        record = self.store.require(self.record_id)
        if record.parent_id != target.container_id:
            self.graph.reparent(self.record_id, target.container_id)

    def _bind(self, container_id: str, point: Point) -> None:
        below, above, slot_y = self.insertion_slot(container_id, point)
        existing = self.graph.edge_between(container_id, self.record_id)
        if existing is not None and _fits(existing.order_key, below, above):
            if not existing.placeholder:
                self.graph.update_edge(existing.id, placeholder=True)
        else:
            key = self.graph.allocate_key(container_id, below, above)
            if existing is not None:
                self.graph.update_edge(existing.id, order_key=key, placeholder=True)
            else:
                self.graph.create_edge(
                    container_id, self.record_id, key, placeholder=True
                )
        record = self.store.require(self.record_id)
        if record.parent_id != container_id:
            self.graph.reparent(self.record_id, container_id)
        self._container_id = container_id
        if self.ghosts:
            self._create_ghost(container_id, slot_y)

    # ------------------------------------------------------------------
    # Ghost and hover bookkeeping
    # ------------------------------------------------------------------
    def _create_ghost(self, container_id: str, slot_y: float) -> None:
        container = self.store.require(container_id)
        record = self.store.require(self.record_id)
        kind = kind_of(container)
        self.store.put(
            make_record(
                GHOST,
                record_id=self.ghost_id,
                parent_id=container_id,
                x=kind.inset_x(container),
                y=slot_y,
                w=kind.content_width(container),
                h=record.h,
                ownerId=self.record_id,
            )
        )

    def _remove_ghost(self) -> None:
        if self.ghost_id in self.store:
            self.store.delete_records([self.ghost_id])

    def _set_hover(self, container_id: Optional[str]) -> None:
        if container_id == self._hovered:
            return
        self._clear_hover()
        if container_id is not None:
            self.store.update_record(container_id, meta={"is_dragging_over": True})
            self._hovered = container_id

    def _clear_hover(self) -> None:
        hovered, self._hovered = self._hovered, None
        if hovered is not None and hovered in self.store:
            self.store.update_record(hovered, meta={"is_dragging_over": False})

    # ------------------------------------------------------------------
    # Finish
    # ------------------------------------------------------------------
    def _finish(self, commit: bool) -> None:
        with self.store.batch():
            self._remove_ghost()
            self._clear_hover()
            self.reflow.thaw(self.record_id)
            self.store.end_gesture(self.record_id)
            if commit:
                self._settle()
            else:
                self._restore()
        self.state = GestureState.SETTLED if commit else GestureState.REVERTED
        LOGGER.debug(
            "Drag finished",
            extra={
                "record": self.record_id,
                "state": self.state.value,
                "container": self._container_id,
            },
        )

    def _settle(self) -> None:
        self.store.update_record(self.record_id, meta={"is_dragging": False})
        target = self.target
        if target is not None and target.mode == HOST:
            self.graph.delete_edges(e.id for e in self.graph.edges_to(self.record_id))
            return
        self._finalize(self._container_id)


class ResizeSession(_Gesture):
    """One resize gesture; scales are relative to the size at ``start``."""

    active_state = GestureState.RESIZING

    def __init__(
        self,
        store: DocumentStore,
        graph: ContainmentGraph,
        reflow: ReflowEngine,
        record_id: str,
    ) -> None:
        super().__init__(store, graph, reflow, record_id)
        record = store.require(record_id)
        self.kind = kind_of(record)
        if not self.kind.resizable:
            raise DragStateError(f"{record.type} records cannot be resized")

    def start(self) -> None:
        self._require_state(GestureState.IDLE)
        self._take_snapshot()
        self.store.begin_gesture(self.record_id)
        self.store.update_record(self.record_id, meta={"is_transforming": True})
        self.state = GestureState.RESIZING

    def resize(self, scale_x: float = 1.0, scale_y: float = 1.0) -> Record:
        self._require_state(GestureState.RESIZING)
        initial = self._snapshot
        current = self.store.require(self.record_id)
        min_w, min_h = self.kind.min_size
        w, h = current.w, current.h
        if "w" in self.kind.resize_axes:
            w = max(min_w, initial.w * scale_x)
        if "h" in self.kind.resize_axes:
            h = max(min_h, initial.h * scale_y)
        props: Dict[str, object] = {"size": {"w": w, "h": h}}
        if current.type == STACK:
            props["gap"] = max(MIN_STACK_GAP, self.kind.gap(initial) * scale_y)
        return self.store.update_record(self.record_id, props=props)

    def end(self) -> None:
        self._require_state(GestureState.RESIZING)
        self._finish(commit=True)

    def cancel(self) -> None:
        self._require_state(GestureState.RESIZING)
        self._finish(commit=False)

    def _finish(self, commit: bool) -> None:
        with self.store.batch():
            self.store.end_gesture(self.record_id)
            if commit:
                self.store.update_record(
                    self.record_id, meta={"is_transforming": False}
                )
                self._finalize(self.graph.container_of(self.record_id))
            else:
                self._restore()
        self.state = GestureState.SETTLED if commit else GestureState.REVERTED


def _fits(key: str, below: Optional[Record], above: Optional[Record]) -> bool:
    if below is not None and key <= below.order_key:
        return False
    if above is not None and key >= above.order_key:
        return False
    return True


__all__: List[str] = [
    "BIND",
    "HOST",
    "DragSession",
    "DropTarget",
    "GestureState",
    "ResizeSession",
    "ghost_id",
]
