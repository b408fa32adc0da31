from __future__ import annotations

from .relay_client import QtScheduler, RelayClient

__all__ = ["QtScheduler", "RelayClient"]
