"""Pydantic V2 models for characters, model events and game state.

Submodules:
    character: Player character sheet and ability scores
    events: The GameEvents envelope parsed from model replies
    state: Game state records and state actions
"""

from __future__ import annotations

from taleforge.models.character import (
    ABILITY_NAMES,
    Ability,
    AbilityScores,
    Character,
    normalize_skill_name,
)
from taleforge.models.events import (
    CombatEnemy,
    CombatStart,
    GameEvents,
    PlayerDeath,
    QuestUpdate,
    RollRequest,
    RollType,
    WorldFact,
    WorldFactCategory,
)
from taleforge.models.state import (
    ActionType,
    ChatMessage,
    CombatState,
    Companion,
    Dispatch,
    Enemy,
    GameAction,
    GameState,
    InventoryItem,
    MessageRole,
    NpcRecord,
    Quest,
    TurnEntry,
)


__all__ = [
    # Character
    "Ability",
    "ABILITY_NAMES",
    "AbilityScores",
    "Character",
    "normalize_skill_name",
    # Events
    "RollType",
    "RollRequest",
    "WorldFactCategory",
    "WorldFact",
    "QuestUpdate",
    "CombatEnemy",
    "CombatStart",
    "PlayerDeath",
    "GameEvents",
    # State
    "ActionType",
    "GameAction",
    "Dispatch",
    "MessageRole",
    "ChatMessage",
    "InventoryItem",
    "Quest",
    "NpcRecord",
    "Companion",
    "Enemy",
    "TurnEntry",
    "CombatState",
    "GameState",
]
