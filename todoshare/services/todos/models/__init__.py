"""Public exports for ToDos service data models."""

from __future__ import annotations

from .dto import Scope, Share, ToDo, Zone, ZoneChanges

__all__ = [
    "Scope",
    "Share",
    "ToDo",
    "Zone",
    "ZoneChanges",
]
