from __future__ import annotations

"""Page-space geometry helpers.  Positions are stored relative to the parent."""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, List, Optional

from .records import ROOT_ID, Record

if TYPE_CHECKING:
    from .store import DocumentStore


@dataclass(frozen=True, slots=True)
class Point:
    x: float = 0.0
    y: float = 0.0

    def __add__(self, other: "Point") -> "Point":
        return Point(self.x + other.x, self.y + other.y)

    def __sub__(self, other: "Point") -> "Point":
        return Point(self.x - other.x, self.y - other.y)


@dataclass(frozen=True, slots=True)
class Box:
    x: float
    y: float
    w: float
    h: float

    @property
    def center(self) -> Point:
        return Point(self.x + self.w / 2, self.y + self.h / 2)

    def contains(self, point: Point) -> bool:
        return (
            self.x <= point.x <= self.x + self.w
            and self.y <= point.y <= self.y + self.h
        )


def ancestors(store: "DocumentStore", record: Record) -> List[Record]:
    """Parents of ``record`` from the nearest outwards; stops on cycles."""
    chain: List[Record] = []
    seen = {record.id}
    parent_id = record.parent_id
    while parent_id and parent_id != ROOT_ID and parent_id not in seen:
        parent = store.get(parent_id)
        if parent is None:
            break
        chain.append(parent)
        seen.add(parent_id)
        parent_id = parent.parent_id
    return chain


def depth(store: "DocumentStore", record: Record) -> int:
    return len(ancestors(store, record))


def is_descendant(store: "DocumentStore", record_id: str, ancestor_id: str) -> bool:
    record = store.get(record_id)
    if record is None:
        return False
    return any(parent.id == ancestor_id for parent in ancestors(store, record))


def page_origin(store: "DocumentStore", record: Optional[Record]) -> Point:
    """Page-space position of ``record``'s top-left corner."""
    if record is None:
        return Point()
    origin = Point(record.x, record.y)
    for parent in ancestors(store, record):
        origin = origin + Point(parent.x, parent.y)
    return origin


def page_bounds(store: "DocumentStore", record: Record) -> Box:
    origin = page_origin(store, record)
    return Box(origin.x, origin.y, record.w, record.h)


def to_parent_space(store: "DocumentStore", parent_id: str, point: Point) -> Point:
    """Convert a page-space point into the coordinate space of ``parent_id``."""
    if not parent_id or parent_id == ROOT_ID:
        return point
    return point - page_origin(store, store.get(parent_id))


def deepest_at(
    store: "DocumentStore",
    point: Point,
    predicate: Callable[[Record], bool],
) -> Optional[Record]:
    """
    Deepest record accepted by ``predicate`` whose page bounds contain ``point``.

    Ties at the same depth go to the record drawn last (highest order key).
    """
    best: Optional[Record] = None
    best_rank: tuple = ()
    for record in store.records():
        if record.meta.deleted or not predicate(record):
            continue
        if not page_bounds(store, record).contains(point):
            continue
        rank = (depth(store, record), record.order_key, record.id)
        if best is None or rank > best_rank:
            best, best_rank = record, rank
    return best


__all__ = [
    "Box",
    "Point",
    "ancestors",
    "deepest_at",
    "depth",
    "is_descendant",
    "page_bounds",
    "page_origin",
    "to_parent_space",
]
