from __future__ import annotations

"""Record-creating gestures: the page, section, stack and item tools."""

import logging
from typing import Any, Iterable, List, Optional

from .bindings import ContainmentGraph
from .geometry import Point, deepest_at, to_parent_space
from .records import (
    ITEM,
    PAGE,
    ROOT_ID,
    SECTION,
    STACK,
    Record,
    kind_of,
    make_record,
)
from .reflow import ReflowEngine
from .store import DocumentStore

LOGGER = logging.getLogger(__name__)

MIN_PAGE_SIZE = (800.0, 600.0)
COPY_SUFFIX = " (copy)"
DUPLICATE_OFFSET = 16.0


class LayoutTools:
    def __init__(
        self,
        store: DocumentStore,
        graph: ContainmentGraph,
        reflow: ReflowEngine,
    ) -> None:
        self.store = store
        self.graph = graph
        self.reflow = reflow

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def container_at(self, point: Point, child_type: str) -> Optional[Record]:
        """Deepest container under ``point`` that lays out ``child_type`` records."""
        kind = kind_of(child_type)
        return deepest_at(
            self.store,
            point,
            lambda r: kind.can_bind_into(r.type) and kind_of(r).accepts(child_type),
        )

    def host_at(self, point: Point, child_type: str) -> Optional[Record]:
        return deepest_at(self.store, point, lambda r: kind_of(r).can_host(child_type))

    def _slot_neighbours(self, container: Record, point: Point):
        kind = kind_of(container)
        local = to_parent_space(self.store, container.id, point)
        gap = kind.gap(container)
        offset = kind.top_inset(container)
        below = above = None
        for edge in self.graph.edges_of(container.id):
            child = self.store.get(edge.to_id)
            if child is None:
                continue
            if local.y < offset + child.h / 2:
                above = edge
                break
            below = edge
            offset += child.h + gap
        return below, above

    def _insert(self, record: Record, container: Record, point: Point) -> Record:
        below, above = self._slot_neighbours(container, point)
        with self.store.batch():
            key = self.graph.allocate_key(container.id, below, above)
            created = self.store.create_record(record.evolve(parent_id=container.id))
            self.graph.create_edge(container.id, created.id, key)
        return self.store.require(created.id)

    def _place_free(self, record: Record, parent: Optional[Record], point: Point) -> Record:
        parent_id = parent.id if parent is not None else ROOT_ID
        local = to_parent_space(self.store, parent_id, point)
        placed = record.evolve(parent_id=parent_id)
        placed.props["position"] = {"x": local.x, "y": local.y}
        return self.store.create_record(placed)

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------
    def create_page(
        self,
        point: Point,
        corner: Optional[Point] = None,
        *,
        w: float = 1200.0,
        h: float = 600.0,
    ) -> Record:
        """Create a page at ``point``; with ``corner`` the page spans the drag box."""
        if corner is not None:
            origin = Point(min(point.x, corner.x), min(point.y, corner.y))
            w = max(MIN_PAGE_SIZE[0], abs(corner.x - point.x))
            h = max(MIN_PAGE_SIZE[1], abs(corner.y - point.y))
            point = origin
        page = make_record(PAGE, x=point.x, y=point.y, w=w, h=h)
        created = self.store.create_record(page)
        LOGGER.debug("Page created", extra={"record": created.id})
        return created

    def create_section(self, point: Point, *, text: str = "Section") -> Optional[Record]:
        """Insert a section into the page under ``point``; None off-page."""
        page = self.container_at(point, SECTION)
        if page is None:
            LOGGER.debug(
                "Section tool used outside a page",
                extra={"x": point.x, "y": point.y},
            )
            return None
        section = make_record(SECTION, w=page.w, text=text)
        return self._insert(section, page, point)

    def create_stack(
        self,
        point: Point,
        *,
        w: float = 300.0,
        h: float = 400.0,
        gap: float = 8.0,
    ) -> Record:
        stack = make_record(STACK, w=w, h=h, gap=float(gap))
        page = self.container_at(point, STACK)
        if page is not None:
            return self._insert(stack, page, point)
        return self._place_free(stack, None, point)

    def create_item(self, point: Point, *, text: str = "New todo") -> Record:
        item = make_record(ITEM, text=text)
        stack = self.container_at(point, ITEM)
        if stack is not None:
            return self._insert(item, stack, point)
        return self._place_free(item, self.host_at(point, ITEM), point)

    def duplicate(self, record_id: str) -> Record:
        """
        Copy a record next to the original.

        Bound records are appended to the end of their container; free records
        land slightly offset from the original.  Either way ``text`` gets a
        copy suffix.
        """
        original = self.store.require(record_id)
        clone = make_record(original.type)
        clone.props = original.evolve().props
        if "text" in clone.props:
            clone.props["text"] = f"{clone.props['text']}{COPY_SUFFIX}"

        clone.parent_id = original.parent_id
        container_id = self.graph.container_of(record_id)
        with self.store.batch():
            if container_id is None:
                clone.props["position"] = {
                    "x": original.x + DUPLICATE_OFFSET,
                    "y": original.y + DUPLICATE_OFFSET,
                }
            created = self.store.create_record(clone)
            if container_id is not None:
                self.graph.create_edge(container_id, created.id)
        return self.store.require(created.id)

    def update_props(self, record_id: str, **props: Any) -> Record:
        return self.store.update_record(record_id, props=props)

    def delete(self, record_ids: Iterable[str]) -> List[Record]:
        return self.graph.delete_subtree(record_ids)


__all__ = ["LayoutTools", "MIN_PAGE_SIZE"]
