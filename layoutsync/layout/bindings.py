"""
Containment graph: layout edges between containers and their ordered children.

Edges are ordinary ``edge`` records in the document store, so they travel
through the same batching and synchronisation path as every other record.
The current container of a child is always derived from live edges; moving a
child between containers deletes the old edge and creates a new one rather
than rewriting ``fromId`` in place.

Every edge write reaches the reflow engine through the store's write
observers, which is the only coupling between the two components.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Set

from .errors import DanglingEdge, InvalidOrderKey, LayoutError, OrderingExhausted
from .geometry import is_descendant, page_origin, to_parent_space
from .ordering import key_between, keys_between
from .records import EDGE, LAYOUT, ROOT_ID, Record, kind_of, make_edge
from .store import DocumentStore

LOGGER = logging.getLogger(__name__)


def _edge_sort_key(edge: Record) -> tuple:
    return (edge.order_key, edge.id)


class ContainmentGraph:
    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def edge(self, edge_id: str) -> Optional[Record]:
        record = self.store.get(edge_id)
        if record is None or record.type != EDGE:
            return None
        return record

    def all_edges(self) -> List[Record]:
        return [r for r in self.store.records(EDGE) if r.relation == LAYOUT]

    def edges_of(self, container_id: str) -> List[Record]:
        """Edges owned by ``container_id`` in sibling order."""
        edges = [e for e in self.all_edges() if e.from_id == container_id]
        edges.sort(key=_edge_sort_key)
        return edges

    def edges_to(self, child_id: str) -> List[Record]:
        edges = [e for e in self.all_edges() if e.to_id == child_id]
        edges.sort(key=lambda e: (e.placeholder, e.id))
        return edges

    def edge_between(self, container_id: str, child_id: str) -> Optional[Record]:
        for edge in self.edges_to(child_id):
            if edge.from_id == container_id:
                return edge
        return None

    def container_of(self, child_id: str) -> Optional[str]:
        """Container the child is laid out in; settled edges win over placeholders."""
        edges = self.edges_to(child_id)
        return edges[0].from_id if edges else None

    def containers(self) -> List[Record]:
        return [r for r in self.store.records() if kind_of(r).reflowable]

    # ------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------
    def append_key(self, container_id: str) -> str:
        edges = self.edges_of(container_id)
        return self.allocate_key(container_id, edges[-1] if edges else None, None)

    def allocate_key(
        self,
        container_id: str,
        below: Optional[Record],
        above: Optional[Record],
    ) -> str:
        """
        Key between two sibling edges of ``container_id`` (``None`` = open end).

        When the allocator gives up (exhausted or colliding keys written by
        different writers) the sibling run is renumbered and the allocation
        retried against the renumbered neighbours.
        """
        try:
            return key_between(
                below.order_key if below else None,
                above.order_key if above else None,
            )
        except (OrderingExhausted, InvalidOrderKey) as exc:
            LOGGER.warning(
                "Renumbering sibling run after allocation failure",
                extra={"container": container_id, "error": str(exc)},
            )
        self.renumber(container_id)
        below = self.edge(below.id) if below else None
        above = self.edge(above.id) if above else None
        return key_between(
            below.order_key if below else None,
            above.order_key if above else None,
        )

    def renumber(self, container_id: str) -> List[Record]:
        edges = self.edges_of(container_id)
        keys = keys_between(None, None, len(edges))
        with self.store.batch():
            return [
                self.store.update_record(edge.id, order_key=key)
                for edge, key in zip(edges, keys)
            ]

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def create_edge(
        self,
        container_id: str,
        child_id: str,
        key: Optional[str] = None,
        *,
        placeholder: bool = False,
    ) -> Record:
        container = self.store.get(container_id)
        if container is None:
            raise DanglingEdge("<new>", container_id)
        child = self.store.get(child_id)
        if child is None:
            raise DanglingEdge("<new>", child_id)
        if not kind_of(container).accepts(child.type):
            raise LayoutError(f"{container.type} cannot lay out {child.type} records")

        if key is None:
            key = self.append_key(container_id)
        if not placeholder:
            existing = [
                e
                for e in self.edges_to(child_id)
                if e.from_id == container_id and not e.placeholder
            ]
            if existing:
                return self.update_edge(existing[0].id, order_key=key)
        edge = make_edge(container_id, child_id, key, placeholder=placeholder)
        return self.store.create_record(edge)

    def update_edge(
        self,
        edge_id: str,
        *,
        order_key: Optional[str] = None,
        placeholder: Optional[bool] = None,
    ) -> Record:
        edge = self.edge(edge_id)
        if edge is None:
            raise DanglingEdge(edge_id, edge_id)
        props = {}
        if placeholder is not None:
            props["placeholder"] = bool(placeholder)
        return self.store.update_record(edge_id, props=props, order_key=order_key)

    def touch_edge(self, edge_id: str) -> Record:
        """Rewrite an edge unchanged so its container reflows."""
        return self.store.put(self.store.require(edge_id))[0]

    def delete_edge(self, edge_id: str) -> Optional[Record]:
        removed = self.store.delete_records([edge_id])
        return removed[0] if removed else None

    def delete_edges(self, edge_ids: Iterable[str]) -> List[Record]:
        return self.store.delete_records(edge_ids)

    def reparent(self, record_id: str, parent_id: str) -> Record:
        """Move ``record_id`` under ``parent_id`` keeping its page position."""
        record = self.store.require(record_id)
        if record.parent_id == parent_id:
            return record
        if parent_id == record_id or (
            parent_id != ROOT_ID and is_descendant(self.store, parent_id, record_id)
        ):
            raise LayoutError(f"cannot reparent {record_id} into its own subtree")
        origin = page_origin(self.store, record)
        local = to_parent_space(self.store, parent_id, origin)
        return self.store.update_record(
            record_id,
            parent_id=parent_id,
            props={"position": {"x": local.x, "y": local.y}},
        )

    def delete_subtree(self, record_ids: Iterable[str]) -> List[Record]:
        """Delete records, their descendants and every edge touching them."""
        doomed: Set[str] = set()
        pending = list(record_ids)
        while pending:
            rid = pending.pop()
            if rid in doomed or rid not in self.store:
                continue
            doomed.add(rid)
            pending.extend(child.id for child in self.store.children_of(rid))
        edge_ids = [
            e.id for e in self.all_edges() if e.from_id in doomed or e.to_id in doomed
        ]
        with self.store.batch():
            removed = self.store.delete_records(edge_ids)
            removed.extend(self.store.delete_records(sorted(doomed)))
        return removed


__all__ = ["ContainmentGraph"]
