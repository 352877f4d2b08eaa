"""Game state ownership: the store, its reducer and event application."""

from __future__ import annotations

from taleforge.state.apply import apply_events
from taleforge.state.store import GameStore, enemy_condition, reduce


__all__ = [
    "GameStore",
    "reduce",
    "enemy_condition",
    "apply_events",
]
