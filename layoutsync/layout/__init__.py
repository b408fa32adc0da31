"""
Layout core: records, the document store and the containment/reflow model.

Everything here is synchronous and transport-agnostic so the relay server,
the Qt client and tests can share one implementation.
"""

from __future__ import annotations

from .bindings import ContainmentGraph
from .drag import DragSession, DropTarget, GestureState, ResizeSession
from .errors import (
    DanglingEdge,
    DragStateError,
    InvalidOrderKey,
    LayoutError,
    OrderingExhausted,
    UnknownRecord,
    UnmigratableRecord,
)
from .geometry import Point
from .ordering import key_between, keys_between
from .records import ROOT_ID, Record, RecordMeta, kind_of, make_record
from .reflow import ReflowEngine
from .store import DocumentStore, RecordsChanged, WriterClock
from .tools import LayoutTools

__all__ = [
    "ContainmentGraph",
    "DanglingEdge",
    "DocumentStore",
    "DragSession",
    "DragStateError",
    "DropTarget",
    "GestureState",
    "InvalidOrderKey",
    "LayoutError",
    "LayoutTools",
    "OrderingExhausted",
    "Point",
    "ROOT_ID",
    "Record",
    "RecordMeta",
    "RecordsChanged",
    "ReflowEngine",
    "ResizeSession",
    "UnknownRecord",
    "UnmigratableRecord",
    "WriterClock",
    "key_between",
    "keys_between",
    "kind_of",
    "make_record",
]
