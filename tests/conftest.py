from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("LAYOUTSYNC_CONFIGURE_LOGGING", "0")
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from layoutsync.layout.bindings import ContainmentGraph  # noqa: E402
from layoutsync.layout.reflow import ReflowEngine  # noqa: E402
from layoutsync.layout.store import DocumentStore, WriterClock  # noqa: E402
from layoutsync.layout.tools import LayoutTools  # noqa: E402


class FakeTimer:
    def __init__(self, when: float, callback: Callable[[], None]) -> None:
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Deterministic clock for throttle tests; time only moves on ``advance``."""

    def __init__(self) -> None:
        self.time = 0.0
        self.timers: List[FakeTimer] = []

    def now(self) -> float:
        return self.time

    def call_later(self, delay: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(self.time + max(0.0, delay), callback)
        self.timers.append(timer)
        return timer

    @property
    def active(self) -> List[FakeTimer]:
        return [timer for timer in self.timers if not timer.cancelled]

    def advance(self, seconds: float) -> None:
        target = self.time + seconds
        while True:
            due = [t for t in self.active if t.when <= target + 1e-9]
            if not due:
                break
            timer = min(due, key=lambda t: t.when)
            self.timers.remove(timer)
            self.time = max(self.time, timer.when)
            timer.callback()
        self.time = target


@dataclass
class Core:
    store: DocumentStore
    graph: ContainmentGraph
    reflow: ReflowEngine
    tools: LayoutTools


def build_core(writer_id: str = "writer:local") -> Core:
    store = DocumentStore(clock=WriterClock(writer_id))
    graph = ContainmentGraph(store)
    reflow = ReflowEngine(store, graph)
    return Core(store, graph, reflow, LayoutTools(store, graph, reflow))


@pytest.fixture
def core() -> Core:
    return build_core()


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def qt_app():
    from PySide6.QtCore import QCoreApplication

    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


@pytest.fixture
def make_core() -> Callable[..., Core]:
    return build_core
