"""Normalized event envelope parsed from one model response.

``GameEvents`` is always fully populated: every field carries a typed
default, and field names equal the snake_case keys of the JSON block
the model emits (``requested_rolls``, ``damage_taken``, ``world_facts``).
Instances are built by ``taleforge.llm.parser.normalize_events`` and
consumed by event application and the roll resolver; they are never
persisted as-is.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from taleforge.core.constants import DEFAULT_DC


class RollType(StrEnum):
    """Kinds of dice request the model may make."""

    SKILL_CHECK = "skill_check"
    SAVING_THROW = "saving_throw"
    ATTACK_ROLL = "attack_roll"
    NPC_ATTACK = "npc_attack"
    NPC_SAVE = "npc_save"
    DAMAGE_ROLL = "damage_roll"

    @property
    def is_npc(self) -> bool:
        return self in (RollType.NPC_ATTACK, RollType.NPC_SAVE)

    @property
    def is_attack(self) -> bool:
        """Attacks report HIT/MISS against an armor class."""
        return self in (RollType.ATTACK_ROLL, RollType.NPC_ATTACK)


class WorldFactCategory(StrEnum):
    """Categories of canonical world facts."""

    LORE = "lore"
    CHARACTER = "character"
    LOCATION = "location"
    EVENT = "event"
    RELATIONSHIP = "relationship"
    GENERAL = "general"


class RollRequest(BaseModel):
    """One dice request from the model or the text detector.

    Attributes:
        type: What kind of roll this is.
        skill: Skill, ability or ``attack`` for player rolls.
        ability: Optional ability name.
        dc: Difficulty class (ignored for NPC attacks, which target live AC).
        description: Free-text label for narration.
        attacker: NPC name for NPC rolls.
        modifier: Explicit NPC modifier override.
        notation: Dice notation for damage rolls.
        advantage: Roll two d20s and keep the higher.
        disadvantage: Roll two d20s and keep the lower.
    """

    model_config = ConfigDict(extra="ignore")

    type: RollType = RollType.SKILL_CHECK
    skill: str | None = None
    ability: str | None = None
    dc: int = DEFAULT_DC
    description: str = ""
    attacker: str | None = None
    modifier: int | None = None
    notation: str | None = None
    advantage: bool = False
    disadvantage: bool = False

    @property
    def check_name(self) -> str | None:
        """The skill or ability this roll is made with."""
        return self.skill or self.ability


class WorldFact(BaseModel):
    """An append-only canonical statement about the game world."""

    model_config = ConfigDict(extra="ignore")

    fact: str
    category: WorldFactCategory = WorldFactCategory.GENERAL


class QuestUpdate(BaseModel):
    """A quest delta: a new quest, or completion of a known quest id."""

    model_config = ConfigDict(extra="ignore")

    status: Literal["new", "completed"]
    name: str = ""
    description: str = ""
    id: str | None = None


class CombatEnemy(BaseModel):
    """An enemy listed in ``combat_start``; missing stats get reducer defaults."""

    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    hp: int | None = None
    ac: int | None = None
    initiative: int | None = None


class CombatStart(BaseModel):
    """Combat beginning this turn."""

    model_config = ConfigDict(extra="ignore")

    enemies: list[CombatEnemy] = Field(default_factory=list)
    player_initiative: int | None = None


class PlayerDeath(BaseModel):
    """Narrative marker that the character has fallen."""

    model_config = ConfigDict(extra="ignore")

    description: str = "Your character has fallen."


class GameEvents(BaseModel):
    """The fully populated event envelope of one response."""

    model_config = ConfigDict(extra="ignore")

    requested_rolls: list[RollRequest] = Field(default_factory=list)

    damage_dealt: int = 0
    damage_taken: int = 0
    healing: int = 0
    gold_found: int = 0
    gold_lost: int = 0
    silver_found: int = 0
    silver_lost: int = 0
    copper_found: int = 0
    copper_lost: int = 0
    exp_awarded: int = 0

    items_found: list[str | dict[str, Any]] = Field(default_factory=list)
    items_lost: list[str | dict[str, Any]] = Field(default_factory=list)
    rest_taken: Literal["short", "long"] | None = None
    conditions_gained: list[str] = Field(default_factory=list)
    conditions_removed: list[str] = Field(default_factory=list)
    quest_updates: list[QuestUpdate] = Field(default_factory=list)
    location: str | None = None

    combat_start: CombatStart | None = None
    combat_end: bool = False
    enemy_updates: list[dict[str, Any]] = Field(default_factory=list)

    add_companions: list[dict[str, Any]] = Field(default_factory=list)
    update_companions: list[dict[str, Any]] = Field(default_factory=list)
    remove_companions: list[str] = Field(default_factory=list)

    world_facts: list[WorldFact] = Field(default_factory=list)
    npc_updates: list[dict[str, Any]] = Field(default_factory=list)
    player_death: PlayerDeath | None = None

    text_roll_detected: bool = False
    """Rolls were inferred from prose rather than the JSON block."""

    @property
    def has_rolls(self) -> bool:
        return bool(self.requested_rolls)


__all__ = [
    "RollType",
    "WorldFactCategory",
    "RollRequest",
    "WorldFact",
    "QuestUpdate",
    "CombatEnemy",
    "CombatStart",
    "PlayerDeath",
    "GameEvents",
]
