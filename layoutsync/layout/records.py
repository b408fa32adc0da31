from __future__ import annotations

"""
Record model and the closed table of record kinds.

Every addressable entity in a layout document is a :class:`Record`.  The
``type`` tag selects a :class:`RecordKind` whose fixed capability fields say
whether the record lays out children (``binds``), keeps free-floating
children (``hosts``), can be bound into a container (``bind_into``) and which
axes it may be resized along.  Dispatch is always a table lookup on the tag.

Records are treated as immutable values: the store replaces them wholesale and
``evolve`` returns a modified copy.
"""

import copy
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

from .ordering import FIRST_KEY

ROOT_ID = "document:root"
LAYOUT = "layout"

PAGE = "page"
SECTION = "section"
STACK = "stack"
ITEM = "item"
EDGE = "edge"
GHOST = "ghost"


@dataclass(slots=True)
class RecordMeta:
    """Out-of-band bookkeeping carried next to a record's props."""

    source: str = ""
    version: int = 0
    deleted: bool = False
    is_dragging: bool = False
    is_dragging_over: bool = False
    is_transforming: bool = False
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def busy(self) -> bool:
        """True while the record is under an active gesture."""
        return self.is_dragging or self.is_dragging_over or self.is_transforming

    def as_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = dict(self.extra)
        data["source"] = self.source
        data["version"] = self.version
        if self.deleted:
            data["deleted"] = True
        if self.is_dragging:
            data["isDragging"] = True
        if self.is_dragging_over:
            data["isDraggingOver"] = True
        if self.is_transforming:
            data["isTransforming"] = True
        return data

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "RecordMeta":
        data = dict(data or {})
        try:
            version = int(data.pop("version", 0) or 0)
        except (TypeError, ValueError):
            version = 0
        return cls(
            source=str(data.pop("source", "") or ""),
            version=version,
            deleted=bool(data.pop("deleted", False)),
            is_dragging=bool(data.pop("isDragging", False)),
            is_dragging_over=bool(data.pop("isDraggingOver", False)),
            is_transforming=bool(data.pop("isTransforming", False)),
            extra=data,
        )


@dataclass(slots=True)
class Record:
    id: str
    type: str
    parent_id: str = ROOT_ID
    order_key: str = FIRST_KEY
    props: Dict[str, Any] = field(default_factory=dict)
    meta: RecordMeta = field(default_factory=RecordMeta)

    # Geometry ---------------------------------------------------------------
    @property
    def x(self) -> float:
        return float((self.props.get("position") or {}).get("x", 0.0))

    @property
    def y(self) -> float:
        return float((self.props.get("position") or {}).get("y", 0.0))

    @property
    def w(self) -> float:
        return float((self.props.get("size") or {}).get("w", 0.0))

    @property
    def h(self) -> float:
        return float((self.props.get("size") or {}).get("h", 0.0))

    # Edge accessors -----------------------------------------------------------
    @property
    def is_edge(self) -> bool:
        return self.type == EDGE

    @property
    def from_id(self) -> str:
        return str(self.props.get("fromId") or "")

    @property
    def to_id(self) -> str:
        return str(self.props.get("toId") or "")

    @property
    def placeholder(self) -> bool:
        return bool(self.props.get("placeholder", False))

    @property
    def relation(self) -> str:
        return str(self.props.get("relation") or LAYOUT)

    # Copies -------------------------------------------------------------------
    def evolve(self, **changes: Any) -> "Record":
        """Return a deep copy with ``changes`` applied to the top-level fields."""
        clone = replace(
            self,
            props=copy.deepcopy(self.props),
            meta=copy.deepcopy(self.meta),
        )
        for key, value in changes.items():
            setattr(clone, key, value)
        return clone

    def with_props(self, **props: Any) -> "Record":
        clone = self.evolve()
        clone.props.update(copy.deepcopy(props))
        return clone

    def with_position(self, x: float, y: float) -> "Record":
        return self.with_props(position={"x": float(x), "y": float(y)})

    def with_size(self, w: float, h: float) -> "Record":
        return self.with_props(size={"w": float(w), "h": float(h)})

    # Wire format --------------------------------------------------------------
    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "parentId": self.parent_id,
            "orderKey": self.order_key,
            "props": copy.deepcopy(self.props),
            "meta": self.meta.as_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Record":
        props = data.get("props")
        return cls(
            id=str(data["id"]),
            type=str(data.get("type") or ""),
            parent_id=str(data.get("parentId") or ROOT_ID),
            order_key=str(data.get("orderKey") or FIRST_KEY),
            props=copy.deepcopy(dict(props)) if isinstance(props, Mapping) else {},
            meta=RecordMeta.from_dict(data.get("meta")),
        )


@dataclass(frozen=True, slots=True)
class RecordKind:
    """Fixed capability set for one record tag."""

    tag: str
    default_size: Tuple[float, float] = (0.0, 0.0)
    default_props: Mapping[str, Any] = field(default_factory=dict)
    binds: FrozenSet[str] = frozenset()
    hosts: FrozenSet[str] = frozenset()
    bind_into: FrozenSet[str] = frozenset()
    resize_axes: FrozenSet[str] = frozenset()
    min_size: Tuple[float, float] = (1.0, 1.0)
    padded: bool = False
    draggable: bool = True

    @property
    def reflowable(self) -> bool:
        return bool(self.binds)

    @property
    def bindable(self) -> bool:
        return bool(self.bind_into)

    @property
    def resizable(self) -> bool:
        return bool(self.resize_axes)

    def accepts(self, child_type: str) -> bool:
        return child_type in self.binds

    def can_bind_into(self, container_type: str) -> bool:
        return container_type in self.bind_into

    def can_host(self, child_type: str) -> bool:
        return child_type in self.hosts

    def gap(self, record: Record) -> float:
        if not self.padded:
            return 0.0
        try:
            return max(0.0, float(record.props.get("gap", 0.0)))
        except (TypeError, ValueError):
            return 0.0

    def inset_x(self, record: Record) -> float:
        return self.gap(record)

    def top_inset(self, record: Record) -> float:
        return 0.0

    def content_width(self, record: Record) -> float:
        return max(0.0, record.w - 2 * self.inset_x(record))


KINDS: Dict[str, RecordKind] = {
    PAGE: RecordKind(
        tag=PAGE,
        default_size=(1200.0, 600.0),
        binds=frozenset({SECTION, STACK}),
        hosts=frozenset({ITEM}),
    ),
    SECTION: RecordKind(
        tag=SECTION,
        default_size=(1200.0, 500.0),
        default_props={
            "text": "Section",
            "bg": "rgba(255,255,255,0.5)",
            "textStyle": "heading",
        },
        hosts=frozenset({ITEM}),
        bind_into=frozenset({PAGE}),
        resize_axes=frozenset({"h"}),
        min_size=(1.0, 50.0),
    ),
    STACK: RecordKind(
        tag=STACK,
        default_size=(300.0, 400.0),
        default_props={"gap": 8.0},
        binds=frozenset({ITEM}),
        bind_into=frozenset({PAGE}),
        resize_axes=frozenset({"w", "h"}),
        min_size=(1.0, 1.0),
        padded=True,
    ),
    ITEM: RecordKind(
        tag=ITEM,
        default_size=(200.0, 50.0),
        default_props={"text": "New todo", "isComplete": False},
        bind_into=frozenset({STACK}),
        resize_axes=frozenset({"w", "h"}),
    ),
    EDGE: RecordKind(
        tag=EDGE,
        default_props={"relation": LAYOUT, "placeholder": False},
        draggable=False,
    ),
    GHOST: RecordKind(tag=GHOST, draggable=False),
}

SECTION_TEXT_STYLES = ("heading", "subheading", "body")
MIN_STACK_GAP = 2.0


def kind_of(record_or_type: Record | str) -> RecordKind:
    tag = record_or_type if isinstance(record_or_type, str) else record_or_type.type
    kind = KINDS.get(tag)
    if kind is None:
        return RecordKind(tag=tag, draggable=False)
    return kind


def new_id(prefix: str) -> str:
    return f"{prefix}:{uuid.uuid4().hex}"


def make_record(
    record_type: str,
    *,
    record_id: Optional[str] = None,
    parent_id: str = ROOT_ID,
    x: float = 0.0,
    y: float = 0.0,
    w: Optional[float] = None,
    h: Optional[float] = None,
    order_key: str = FIRST_KEY,
    **props: Any,
) -> Record:
    """Build a record of ``record_type`` filled with its kind's defaults."""
    kind = kind_of(record_type)
    default_w, default_h = kind.default_size
    payload: Dict[str, Any] = copy.deepcopy(dict(kind.default_props))
    payload.update(props)
    payload["position"] = {"x": float(x), "y": float(y)}
    payload["size"] = {
        "w": float(default_w if w is None else w),
        "h": float(default_h if h is None else h),
    }
    return Record(
        id=record_id or new_id(record_type),
        type=record_type,
        parent_id=parent_id,
        order_key=order_key,
        props=payload,
    )


def make_edge(
    container_id: str,
    child_id: str,
    order_key: str,
    *,
    placeholder: bool = False,
    edge_id: Optional[str] = None,
) -> Record:
    return Record(
        id=edge_id or new_id(EDGE),
        type=EDGE,
        parent_id=ROOT_ID,
        order_key=order_key,
        props={
            "fromId": container_id,
            "toId": child_id,
            "relation": LAYOUT,
            "placeholder": bool(placeholder),
        },
    )


__all__ = [
    "EDGE",
    "GHOST",
    "ITEM",
    "KINDS",
    "LAYOUT",
    "PAGE",
    "ROOT_ID",
    "SECTION",
    "STACK",
    "Record",
    "RecordKind",
    "RecordMeta",
    "kind_of",
    "make_edge",
    "make_record",
    "new_id",
]
