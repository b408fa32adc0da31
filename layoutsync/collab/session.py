from __future__ import annotations

"""Per-document composition root wiring the layout core to a transport."""

import logging
from typing import Any, Dict, Mapping, Optional

from layoutsync.config.feature_flags import load_feature_flags
from layoutsync.config.sync_settings import SyncSettings, load_sync_settings
from layoutsync.layout.bindings import ContainmentGraph
from layoutsync.layout.drag import DragSession, ResizeSession
from layoutsync.layout.geometry import Point
from layoutsync.layout.reflow import ReflowEngine
from layoutsync.layout.store import DocumentStore, WriterClock
from layoutsync.layout.tools import LayoutTools

from .reconciler import SyncReconciler
from .throttle import Scheduler
from .transport import Transport

LOGGER = logging.getLogger(__name__)


class LayoutSession:
    def __init__(
        self,
        document_id: str,
        transport: Transport,
        *,
        writer_id: Optional[str] = None,
        settings: Optional[SyncSettings] = None,
        feature_flags: Optional[Mapping[str, bool]] = None,
        scheduler: Optional[Scheduler] = None,
    ) -> None:
        self.document_id = document_id
        self.settings = settings or load_sync_settings()
        flags = dict(feature_flags) if feature_flags is not None else load_feature_flags()
        self.ghosts_enabled = bool(flags.get("enable_drag_ghost", True))

        self.store = DocumentStore(clock=WriterClock(writer_id))
        self.graph = ContainmentGraph(self.store)
        self.reflow = ReflowEngine(self.store, self.graph)
        self.tools = LayoutTools(self.store, self.graph, self.reflow)
        self.reconciler = SyncReconciler(
            document_id,
            self.store,
            transport,
            settings=self.settings,
            scheduler=scheduler,
        )

    @property
    def writer_id(self) -> str:
        return self.store.writer_id

    def connect(self) -> "LayoutSession":
        self.reconciler.connect()
        LOGGER.info(
            "Layout session connected",
            extra={
                "document": self.document_id,
                "writer": self.writer_id,
                "settings": self.settings.as_dict(),
            },
        )
        return self

    def close(self) -> None:
        self.reconciler.close()

    def __enter__(self) -> "LayoutSession":
        return self.connect()

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def begin_drag(self, record_id: str, point: Point) -> DragSession:
        session = DragSession(
            self.store,
            self.graph,
            self.reflow,
            record_id,
            ghosts=self.ghosts_enabled,
        )
        session.start(point)
        return session

    def begin_resize(self, record_id: str) -> ResizeSession:
        session = ResizeSession(self.store, self.graph, self.reflow, record_id)
        session.start()
        return session

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        return self.store.snapshot()

    def flush(self) -> None:
        self.reconciler.flush()


__all__ = ["LayoutSession"]
