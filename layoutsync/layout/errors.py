from __future__ import annotations

"""
Error taxonomy for the layout core.

None of these reach the user: ordering and edge problems are healed locally,
unmigratable records pass through unchanged.
"""


class LayoutError(RuntimeError):
    """Base class for layout core failures."""


class OrderingExhausted(LayoutError):
    """The allocator cannot produce a distinct key between two neighbours."""


class InvalidOrderKey(LayoutError, ValueError):
    """An ordering key is malformed or the bounds are not strictly ordered."""


class DanglingEdge(LayoutError):
    """An edge references a container or child that is not live."""

    def __init__(self, edge_id: str, missing_id: str) -> None:
        super().__init__(f"edge {edge_id} references missing record {missing_id}")
        self.edge_id = edge_id
        self.missing_id = missing_id


class UnmigratableRecord(LayoutError):
    """The migration pass does not recognise a record's type."""

    def __init__(self, record_id: str, record_type: str) -> None:
        super().__init__(f"record {record_id} has unknown type {record_type!r}")
        self.record_id = record_id
        self.record_type = record_type


class UnknownRecord(LayoutError, KeyError):
    """A mutation addressed a record id that is not in the store."""

    def __str__(self) -> str:
        return f"unknown record: {self.args[0]}" if self.args else "unknown record"


class DragStateError(LayoutError):
    """A gesture operation was called in a state that does not allow it."""


__all__ = [
    "DanglingEdge",
    "DragStateError",
    "InvalidOrderKey",
    "LayoutError",
    "OrderingExhausted",
    "UnknownRecord",
    "UnmigratableRecord",
]
