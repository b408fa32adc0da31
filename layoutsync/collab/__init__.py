"""
Synchronisation layer: migration, throttled publishing and remote merging.

Both the relay server and GUI clients share these contracts so every writer
converges on the same document.
"""

from __future__ import annotations

from .migrations import migrate, migrate_state
from .reconciler import SyncReconciler
from .session import LayoutSession
from .throttle import AsyncioScheduler, FlushThrottle, Scheduler
from .transport import InMemoryTransport, Transport

__all__ = [
    "AsyncioScheduler",
    "FlushThrottle",
    "InMemoryTransport",
    "LayoutSession",
    "Scheduler",
    "SyncReconciler",
    "Transport",
    "migrate",
    "migrate_state",
]
