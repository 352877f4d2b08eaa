"""Game engine: dice, rules lookup and roll resolution.

Submodules:
    dice: CSPRNG dice rolling and notation parsing
    rules: Pure 5E rules lookups (modifiers, proficiency, skills, AC)
    roll_resolver: Resolves model roll requests and drives follow-up narration

Example:
    >>> from taleforge.engine import DiceRoller, parse_notation
    >>> parse_notation("2d6+3")
    DiceNotation(count=2, sides=6, modifier=3)
    >>> DiceRoller().roll_notation("1d20+5", "Perception").total  # doctest: +SKIP
    17
"""

from __future__ import annotations

from taleforge.engine.dice import (
    DiceNotation,
    DiceRoll,
    DiceRoller,
    RollMode,
    get_default_roller,
    parse_notation,
    roll_dice,
    roll_die,
    roll_notation,
    roll_with_modifier,
)
from taleforge.engine.rules import (
    DC_TABLE,
    SKILL_ABILITIES,
    format_modifier,
    get_armor_class,
    get_modifier,
    get_proficiency_bonus,
    get_skill_modifier,
    resolve_check,
)
from taleforge.engine.roll_resolver import (
    ChainState,
    RollChainReport,
    RollContext,
    RollResult,
    build_follow_up_prompt,
    format_roll_summary,
    handle_requested_rolls,
    resolve_rolls,
)


__all__ = [
    # Dice
    "DiceNotation",
    "DiceRoll",
    "DiceRoller",
    "RollMode",
    "get_default_roller",
    "parse_notation",
    "roll_die",
    "roll_dice",
    "roll_with_modifier",
    "roll_notation",
    # Rules
    "SKILL_ABILITIES",
    "DC_TABLE",
    "get_modifier",
    "get_proficiency_bonus",
    "get_skill_modifier",
    "get_armor_class",
    "resolve_check",
    "format_modifier",
    # Roll resolution
    "ChainState",
    "RollResult",
    "RollChainReport",
    "RollContext",
    "resolve_rolls",
    "format_roll_summary",
    "build_follow_up_prompt",
    "handle_requested_rolls",
]
