"""
Reflow engine: vertical stacking of a container's directly bound children.

A container's children are positioned top to bottom in edge order, each
stretched to the container's content width, and the container's height is set
to the space they consume.  Children under an active gesture keep their
position but still reserve their slot, so a remote-triggered reflow never
yanks an item out from under the local pointer.

Reflows are scheduled by store write observers and run at the end of the
outermost batch, before listeners are notified, so observers only ever see
settled layouts.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Set

from .bindings import ContainmentGraph
from .errors import DanglingEdge
from .geometry import Point, page_origin, to_parent_space
from .records import EDGE, LAYOUT, Record, kind_of
from .store import DocumentStore

LOGGER = logging.getLogger(__name__)

_EPSILON = 1e-6


def _differs(a: float, b: float) -> bool:
    return abs(a - b) > _EPSILON


class ReflowEngine:
    def __init__(
        self,
        store: DocumentStore,
        graph: ContainmentGraph,
        *,
        max_passes: int = 64,
    ) -> None:
        self.store = store
        self.graph = graph
        self.max_passes = max_passes
        self._pending: Dict[str, None] = {}
        self._frozen: Set[str] = set()
        self._running = False
        store.observe(self._on_write)
        store.on_before_commit(self.flush)

    # ------------------------------------------------------------------
    # Gesture freezing
    # ------------------------------------------------------------------
    def freeze(self, child_id: str) -> None:
        self._frozen.add(child_id)

    def thaw(self, child_id: str) -> None:
        self._frozen.discard(child_id)

    @property
    def frozen(self) -> Set[str]:
        return set(self._frozen)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------
    @property
    def pending(self) -> List[str]:
        return list(self._pending)

    def schedule(self, container_id: str) -> None:
        if not container_id:
            return
        self._pending[container_id] = None
        if not self.store.in_batch:
            with self.store.batch():
                pass

    def reflow_all(self) -> None:
        with self.store.batch():
            for container in self.graph.containers():
                self._pending[container.id] = None

    def _on_write(self, before: Optional[Record], after: Optional[Record]) -> None:
        record = after or before
        if record is None:
            return
        if record.type == EDGE:
            for edge in (before, after):
                if edge is not None and edge.relation == LAYOUT:
                    self._pending[edge.from_id] = None
            return

        if after is None:
            for edge in self.graph.edges_to(record.id):
                self._pending[edge.from_id] = None
            if kind_of(record).reflowable:
                self._pending[record.id] = None
            return
        if before is None:
            return

        resized = _differs(before.w, after.w) or _differs(before.h, after.h)
        gesture_changed = before.meta.busy != after.meta.busy
        if resized or gesture_changed:
            for edge in self.graph.edges_to(after.id):
                self._pending[edge.from_id] = None
        if kind_of(after).reflowable and (
            _differs(before.w, after.w)
            or before.props.get("gap") != after.props.get("gap")
        ):
            self._pending[after.id] = None

    def flush(self) -> None:
        """Run scheduled reflows until the layout settles."""
        if self._running:
            return
        self._running = True
        try:
            passes = 0
            while self._pending:
                passes += 1
                if passes > self.max_passes:
                    LOGGER.warning(
                        "Reflow did not settle",
                        extra={"pending": list(self._pending), "passes": passes},
                    )
                    self._pending.clear()
                    break
                containers = list(self._pending)
                self._pending.clear()
                for container_id in containers:
                    self.reflow(container_id)
        finally:
            self._running = False

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------
    def _skips(self, edge: Record, child: Record) -> bool:
        if child.meta.is_dragging or child.meta.is_dragging_over:
            return True
        return edge.placeholder and child.id in self._frozen

    def _drop_dangling(self, edges: List[Record], missing: Dict[str, str]) -> None:
        for edge in edges:
            err = DanglingEdge(edge.id, missing[edge.id])
            LOGGER.warning(
                "Removing dangling edge",
                extra={"edge": err.edge_id, "missing": err.missing_id},
            )
        self.graph.delete_edges(edge.id for edge in edges)

    def reflow(self, container_id: str) -> bool:
        """Lay out the direct children of ``container_id``; True if anything moved."""
        changed = False
        with self.store.batch():
            edges = self.graph.edges_of(container_id)
            container = self.store.get(container_id)
            if container is None:
                if edges:
                    self._drop_dangling(edges, {e.id: container_id for e in edges})
                return bool(edges)
            kind = kind_of(container)
            if not kind.reflowable or not edges:
                return False

            gap = kind.gap(container)
            inset_x = kind.inset_x(container)
            width = kind.content_width(container)
            origin = page_origin(self.store, container)
            y = kind.top_inset(container)

            dangling: List[Record] = []
            seen: Set[str] = set()
            for edge in edges:
                child = self.store.get(edge.to_id)
                if child is None:
                    dangling.append(edge)
                    continue
                if child.id in seen:
                    continue
                seen.add(child.id)
                if self._skips(edge, child):
                    y += child.h + gap
                    continue

                if child.parent_id == container.id:
                    target = Point(inset_x, y)
                else:
                    target = to_parent_space(
                        self.store, child.parent_id, origin + Point(inset_x, y)
                    )
                if (
                    _differs(child.x, target.x)
                    or _differs(child.y, target.y)
                    or _differs(child.w, width)
                ):
                    self.store.update_record(
                        child.id,
                        props={
                            "position": {"x": target.x, "y": target.y},
                            "size": {"w": width, "h": child.h},
                        },
                    )
                    changed = True
                y += child.h + gap

            consumed = max(y, 0.0)
            if seen and _differs(container.h, consumed):
                self.store.update_record(
                    container.id,
                    props={"size": {"w": container.w, "h": consumed}},
                )
                changed = True
            if dangling:
                self._drop_dangling(dangling, {e.id: e.to_id for e in dangling})
                changed = True
        return changed


__all__ = ["ReflowEngine"]
