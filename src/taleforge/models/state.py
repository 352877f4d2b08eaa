"""Game state document and the actions that mutate it.

Game state is a single document changed only through discrete
``GameAction`` deltas handed to ``dispatch``. The parser and the roll
resolver never read-modify-write compound state; merging is the
reducer's job (see ``taleforge.state.store``).
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from taleforge.models.character import Character
from taleforge.models.events import WorldFact


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid4().hex[:10]}"


def _now() -> datetime:
    return datetime.now(UTC)


# =============================================================================
# Actions
# =============================================================================


class ActionType(StrEnum):
    """Every state action the core emits."""

    SET_CHARACTER = "SET_CHARACTER"
    UPDATE_CHARACTER = "UPDATE_CHARACTER"
    TAKE_DAMAGE = "TAKE_DAMAGE"
    HEAL = "HEAL"
    TAKE_REST = "TAKE_REST"
    ADD_EXP = "ADD_EXP"
    ADD_CONDITION = "ADD_CONDITION"
    REMOVE_CONDITION = "REMOVE_CONDITION"
    ADD_GOLD = "ADD_GOLD"
    REMOVE_GOLD = "REMOVE_GOLD"
    ADD_SILVER = "ADD_SILVER"
    REMOVE_SILVER = "REMOVE_SILVER"
    ADD_COPPER = "ADD_COPPER"
    REMOVE_COPPER = "REMOVE_COPPER"
    ADD_ITEM = "ADD_ITEM"
    REMOVE_ITEM = "REMOVE_ITEM"
    ADD_MESSAGE = "ADD_MESSAGE"
    ADD_ROLL = "ADD_ROLL"
    ADD_QUEST = "ADD_QUEST"
    COMPLETE_QUEST = "COMPLETE_QUEST"
    SET_LOCATION = "SET_LOCATION"
    START_COMBAT = "START_COMBAT"
    END_COMBAT = "END_COMBAT"
    UPDATE_ENEMY = "UPDATE_ENEMY"
    ADD_COMPANION = "ADD_COMPANION"
    UPDATE_COMPANION = "UPDATE_COMPANION"
    REMOVE_COMPANION = "REMOVE_COMPANION"
    ADD_WORLD_FACTS = "ADD_WORLD_FACTS"
    UPDATE_NPC = "UPDATE_NPC"


class GameAction(BaseModel):
    """One state delta: an action type and its payload."""

    model_config = ConfigDict(frozen=True)

    type: ActionType
    payload: Any = None


Dispatch = Callable[[GameAction], None]
"""Append-style command sink owned by the state collaborator."""


# =============================================================================
# State Records
# =============================================================================


class MessageRole(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ChatMessage(BaseModel):
    """A transcript entry.

    Hidden messages (roll summaries) are sent to the model but never
    rendered to the player.
    """

    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=lambda: _new_id("msg"))
    timestamp: datetime = Field(default_factory=_now)
    role: MessageRole
    content: str = ""
    hidden: bool = False
    is_death_event: bool = False
    summarized: bool = False
    events: dict[str, Any] | None = None


class InventoryItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str = Field(default_factory=lambda: _new_id("item"))
    name: str
    type: str = "gear"
    weight: float = 1
    quantity: int = Field(default=1, ge=0)
    equipped: bool = False


class Quest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=lambda: _new_id("quest"))
    name: str = ""
    description: str = ""
    status: Literal["active", "completed"] = "active"
    added_at: datetime = Field(default_factory=_now)


class NpcRecord(BaseModel):
    """A remembered NPC, keyed by name for upserts."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(default_factory=lambda: _new_id("npc"))
    name: str
    description: str = ""
    disposition: str = ""
    location: str = ""
    first_met: datetime = Field(default_factory=_now)


class Companion(BaseModel):
    """A party member travelling with the player, keyed by name."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(default_factory=lambda: _new_id("companion"))
    name: str


EnemyCondition = Literal["healthy", "bloodied", "critical", "dead"]


class Enemy(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    hp: int
    max_hp: int = Field(ge=1)
    ac: int
    initiative: int
    condition: EnemyCondition = "healthy"


class TurnEntry(BaseModel):
    type: Literal["player", "enemy"]
    name: str
    initiative: int
    id: str | None = None


class CombatState(BaseModel):
    active: bool = False
    enemies: list[Enemy] = Field(default_factory=list)
    turn_order: list[TurnEntry] = Field(default_factory=list)
    current_turn: int = 0
    round: int = 1


class GameState(BaseModel):
    """The whole game document.

    Attributes:
        character: The player character, None before creation.
        inventory: Carried and equipped items.
        messages: The conversation transcript.
        roll_history: Every dispatched roll record, oldest first.
        quests: Known quests.
        npcs: Remembered NPCs.
        companions: Current party roster.
        world_facts: Canonical facts, append only.
        current_location: Where the player is.
        combat: Combat tracker.
    """

    model_config = ConfigDict(extra="ignore")

    character: Character | None = None
    inventory: list[InventoryItem] = Field(default_factory=list)
    messages: list[ChatMessage] = Field(default_factory=list)
    roll_history: list[dict[str, Any]] = Field(default_factory=list)
    quests: list[Quest] = Field(default_factory=list)
    npcs: list[NpcRecord] = Field(default_factory=list)
    companions: list[Companion] = Field(default_factory=list)
    world_facts: list[WorldFact] = Field(default_factory=list)
    current_location: str | None = None
    combat: CombatState = Field(default_factory=CombatState)


__all__ = [
    "ActionType",
    "GameAction",
    "Dispatch",
    "MessageRole",
    "ChatMessage",
    "InventoryItem",
    "Quest",
    "NpcRecord",
    "Companion",
    "EnemyCondition",
    "Enemy",
    "TurnEntry",
    "CombatState",
    "GameState",
]
