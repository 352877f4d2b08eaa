"""Player character model.

Holds only what the roll resolver, the reducer and the prompt builder
read: ability scores, level, hit points, armor class, coin, conditions
and proficiencies. Class and race data tables live outside this package.
"""

from __future__ import annotations

import re
from enum import StrEnum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


AbilityScore = Annotated[int, Field(ge=1, le=30, description="Ability score (1-30)")]
Level = Annotated[int, Field(ge=1, le=20, description="Character level (1-20)")]


class Ability(StrEnum):
    """The six ability scores."""

    STR = "strength"
    DEX = "dexterity"
    CON = "constitution"
    INT = "intelligence"
    WIS = "wisdom"
    CHA = "charisma"


ABILITY_NAMES: tuple[str, ...] = tuple(a.value for a in Ability)


def normalize_skill_name(name: str) -> str:
    """Normalize a skill or ability name to its snake_case key.

    ``"Sleight of Hand"`` becomes ``sleight_of_hand`` and
    ``"Thieves' Tools"`` becomes ``thieves_tools``.
    """
    cleaned = str(name).strip().lower().replace("'", "").replace("’", "")
    return re.sub(r"[\s\-]+", "_", cleaned)


class AbilityScores(BaseModel):
    """Raw ability scores keyed by ability name."""

    model_config = ConfigDict(validate_assignment=True, extra="ignore")

    strength: AbilityScore = 10
    dexterity: AbilityScore = 10
    constitution: AbilityScore = 10
    intelligence: AbilityScore = 10
    wisdom: AbilityScore = 10
    charisma: AbilityScore = 10

    def score(self, ability: str) -> int:
        """Return the score for an ability name, 10 when unknown."""
        key = str(ability).strip().lower()
        return getattr(self, key) if key in ABILITY_NAMES else 10


class Character(BaseModel):
    """The single player character.

    Attributes:
        name: Character name.
        race: Race name (display only).
        class_name: Class name (display only).
        level: Character level.
        exp: Experience toward the next level.
        ability_scores: The six ability scores.
        max_hp: Maximum hit points.
        current_hp: Current hit points.
        armor_class: Live armor class; NPC attacks always target this.
        skill_proficiencies: Proficient skills as snake_case keys.
        saving_throw_proficiencies: Abilities with saving throw proficiency.
        conditions: Active condition names.
        is_dead: Set by a player death event; not a game over.
    """

    model_config = ConfigDict(validate_assignment=True, extra="ignore")

    name: str = Field(default="Adventurer", min_length=1)
    race: str = "Human"
    class_name: str = "Fighter"
    level: Level = 1
    exp: int = Field(default=0, ge=0)
    ability_scores: AbilityScores = Field(default_factory=AbilityScores)
    max_hp: int = Field(default=10, ge=1)
    current_hp: int = Field(default=10, ge=0)
    temp_hp: int = Field(default=0, ge=0)
    armor_class: int = Field(default=10, ge=0)
    speed: int = Field(default=30, ge=0)
    skill_proficiencies: list[str] = Field(default_factory=list)
    saving_throw_proficiencies: list[str] = Field(default_factory=list)
    conditions: list[str] = Field(default_factory=list)
    gold: int = Field(default=0, ge=0)
    silver: int = Field(default=0, ge=0)
    copper: int = Field(default=0, ge=0)
    traits: list[str] = Field(default_factory=list)
    features: list[str] = Field(default_factory=list)
    is_dead: bool = False

    @field_validator("skill_proficiencies", mode="before")
    @classmethod
    def normalize_skills(cls, value: Any) -> Any:
        """Store proficiencies as snake_case keys whatever the source casing."""
        if isinstance(value, list):
            return [normalize_skill_name(v) for v in value if isinstance(v, str)]
        return value

    @field_validator("saving_throw_proficiencies", mode="before")
    @classmethod
    def normalize_saves(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [str(v).strip().lower() for v in value if isinstance(v, str)]
        return value

    @property
    def hp_percent(self) -> float:
        """Current HP as a percentage of max HP."""
        return (self.current_hp / self.max_hp) * 100


__all__ = [
    "Ability",
    "ABILITY_NAMES",
    "AbilityScore",
    "Level",
    "AbilityScores",
    "Character",
    "normalize_skill_name",
]
