"""Simplified 5e rules lookup.

Pure functions for modifiers, proficiency, armor class and checks,
consumed by the roll resolver and the prompt builder. No side effects
and no randomness.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from taleforge.models.character import ABILITY_NAMES, normalize_skill_name


if TYPE_CHECKING:
    from taleforge.models.character import Character


SKILL_ABILITIES: dict[str, str] = {
    "acrobatics": "dexterity",
    "animal_handling": "wisdom",
    "arcana": "intelligence",
    "athletics": "strength",
    "deception": "charisma",
    "history": "intelligence",
    "insight": "wisdom",
    "intimidation": "charisma",
    "investigation": "intelligence",
    "medicine": "wisdom",
    "nature": "intelligence",
    "perception": "wisdom",
    "performance": "charisma",
    "persuasion": "charisma",
    "religion": "intelligence",
    "sleight_of_hand": "dexterity",
    "stealth": "dexterity",
    "survival": "wisdom",
}
"""Skill key to governing ability."""

DC_TABLE: dict[int, str] = {
    5: "Very Easy",
    10: "Easy",
    15: "Medium",
    20: "Hard",
    25: "Very Hard",
    30: "Nearly Impossible",
}

ARMOR_TYPES = ("light", "medium", "heavy")


@dataclass(frozen=True)
class CheckResult:
    """Outcome of a d20 check against a DC."""

    success: bool
    critical: bool
    crit_fail: bool


def get_modifier(score: int) -> int:
    """Ability modifier for a score: ``floor((score - 10) / 2)``."""
    return (score - 10) // 2


def get_proficiency_bonus(level: int) -> int:
    """Proficiency bonus by character level."""
    if level <= 4:
        return 2
    if level <= 8:
        return 3
    if level <= 12:
        return 4
    if level <= 16:
        return 5
    return 6


def get_ability_modifier(character: Character, ability: str) -> int:
    """Modifier for one of the character's ability scores."""
    return get_modifier(character.ability_scores.score(ability))


def get_skill_modifier(character: Character, skill: str) -> int:
    """Total modifier for a skill check.

    Args:
        character: The rolling character.
        skill: Skill name in any casing (``"Sleight of Hand"`` works).

    Returns:
        Ability modifier plus proficiency when proficient, 0 for an
        unknown skill.
    """
    key = normalize_skill_name(skill)
    ability = SKILL_ABILITIES.get(key)
    if ability is None:
        return 0

    modifier = get_ability_modifier(character, ability)
    if key in character.skill_proficiencies:
        modifier += get_proficiency_bonus(character.level)
    return modifier


def get_saving_throw_modifier(character: Character, ability: str) -> int:
    """Ability modifier plus proficiency for proficient saves."""
    key = ability.strip().lower()
    modifier = get_ability_modifier(character, key)
    if key in character.saving_throw_proficiencies:
        modifier += get_proficiency_bonus(character.level)
    return modifier


def get_attack_modifier(character: Character, ability: str | None = None) -> int:
    """Attack modifier: the ability (or the better of STR/DEX) plus proficiency."""
    if ability is None:
        base = max(
            get_ability_modifier(character, "strength"),
            get_ability_modifier(character, "dexterity"),
        )
    else:
        base = get_ability_modifier(character, ability)
    return base + get_proficiency_bonus(character.level)


def get_armor_class(
    dex_mod: int,
    armor: dict[str, Any] | None = None,
    has_shield: bool = False,
) -> int:
    """Armor class from dexterity, worn armor and shield.

    Args:
        dex_mod: Dexterity modifier.
        armor: ``{"armor_type": "light|medium|heavy", "base_ac": int}`` or None.
        has_shield: Adds 2 when True.

    Returns:
        The armor class.
    """
    ac = 10 + dex_mod

    if armor:
        armor_type = armor.get("armor_type")
        base_ac = int(armor.get("base_ac", 10))
        if armor_type == "light":
            ac = base_ac + dex_mod
        elif armor_type == "medium":
            ac = base_ac + min(dex_mod, 2)
        elif armor_type == "heavy":
            ac = base_ac

    if has_shield:
        ac += 2
    return ac


def resolve_check(roll: int, total: int, dc: int) -> CheckResult:
    """Resolve a check; criticals follow the natural face, success the total."""
    return CheckResult(success=total >= dc, critical=roll == 20, crit_fail=roll == 1)


def describe_dc(dc: int) -> str:
    """Nearest difficulty label at or below ``dc``."""
    label = DC_TABLE[5]
    for threshold, name in sorted(DC_TABLE.items()):
        if dc >= threshold:
            label = name
    return label


def format_modifier(mod: int) -> str:
    """Format a modifier for display: ``+3``, ``-1``, ``+0``."""
    return f"+{mod}" if mod >= 0 else str(mod)


def is_ability_name(name: str) -> bool:
    return name.strip().lower() in ABILITY_NAMES


__all__ = [
    "SKILL_ABILITIES",
    "DC_TABLE",
    "ARMOR_TYPES",
    "CheckResult",
    "get_modifier",
    "get_proficiency_bonus",
    "get_ability_modifier",
    "get_skill_modifier",
    "get_saving_throw_modifier",
    "get_attack_modifier",
    "get_armor_class",
    "resolve_check",
    "describe_dc",
    "format_modifier",
    "is_ability_name",
    "normalize_skill_name",
]
