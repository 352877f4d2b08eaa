"""AI Dungeon Master turn orchestration."""

from __future__ import annotations

from taleforge.dm.session import DungeonMasterSession, TurnOutcome


__all__ = [
    "DungeonMasterSession",
    "TurnOutcome",
]
