"""Application-wide constants for Taleforge.

Rules constants, roll-chain limits and dice guard rails shared by the
parser, the dice engine and the roll resolver.
"""

from __future__ import annotations

# =============================================================================
# Roll Chain
# =============================================================================

MAX_ROLL_DEPTH = 3
"""Maximum chained automatic model turns per user action."""

DEFAULT_DC = 15
"""Difficulty class used when the model omits one."""

NPC_MODIFIER_RANGE = (2, 4)
"""Inclusive range for the hidden NPC modifier when the model gives none."""

DEFAULT_NPC_DC = 12
"""Target for NPC rolls when neither the character AC nor a DC is known."""

DEFAULT_DAMAGE_NOTATION = "1d4"
"""Damage dice used when a damage roll request carries no notation."""

# =============================================================================
# Dice
# =============================================================================

MAX_DICE_PER_ROLL = 100
"""Largest dice count a single notation may request."""

DIE_TYPES = (4, 6, 8, 10, 12, 20, 100)
"""Standard die sizes."""

# =============================================================================
# Character Progression
# =============================================================================

EXP_PER_LEVEL = 1000
"""Experience needed per current level before an automatic level up."""

LEVEL_UP_HP_GAIN = 6
"""Max HP gained on an automatic level up."""

SHORT_REST_HEAL_FRACTION = 0.25
"""Fraction of max HP restored by a short rest."""

LONG_REST_CLEARED_CONDITIONS = frozenset({"exhausted", "poisoned", "blinded", "deafened"})
"""Conditions a long rest removes."""

DEFAULT_PLAYER_INITIATIVE = 10
"""Player initiative when combat starts without one."""

DEFAULT_ENEMY_HP = 20
"""Enemy hit points when the model omits them."""

DEFAULT_ENEMY_AC = 12
"""Enemy armor class when the model omits it."""


__all__ = [
    # Roll chain
    "MAX_ROLL_DEPTH",
    "DEFAULT_DC",
    "NPC_MODIFIER_RANGE",
    "DEFAULT_NPC_DC",
    "DEFAULT_DAMAGE_NOTATION",
    # Dice
    "MAX_DICE_PER_ROLL",
    "DIE_TYPES",
    # Progression
    "EXP_PER_LEVEL",
    "LEVEL_UP_HP_GAIN",
    "SHORT_REST_HEAL_FRACTION",
    "LONG_REST_CLEARED_CONDITIONS",
    "DEFAULT_PLAYER_INITIATIVE",
    "DEFAULT_ENEMY_HP",
    "DEFAULT_ENEMY_AC",
]
