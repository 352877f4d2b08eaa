"""Cryptographically random dice engine.

Every die face comes from the operating system CSPRNG via ``secrets``,
so neither the model nor a seeded generator can predict or steer a
result. ``secrets.randbelow`` draws uniformly without modulo bias.

Tests inject a deterministic source through ``DiceRoller(source=...)``;
the source is called with the number of sides and must return a value
in ``[0, sides)``.

Example:
    >>> roller = DiceRoller()
    >>> result = roller.roll_notation("2d6+3", description="Longsword")
    >>> 5 <= result.total <= 15
    True
"""

from __future__ import annotations

import re
import secrets
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any
from uuid import uuid4

from taleforge.core.constants import MAX_DICE_PER_ROLL
from taleforge.core.exceptions import DiceRollError
from taleforge.core.logging import get_logger


logger = get_logger(__name__)

RandomSource = Callable[[int], int]
"""Callable taking a die size and returning an index in ``[0, sides)``."""

NOTATION_PATTERN = re.compile(r"^(\d+)d(\d+)([+-]\d+)?$")


class RollMode(StrEnum):
    """How a single d20 was rolled."""

    NORMAL = "normal"
    ADVANTAGE = "advantage"
    DISADVANTAGE = "disadvantage"


@dataclass(frozen=True)
class DiceNotation:
    """A parsed ``<count>d<sides>[+|-<modifier>]`` expression."""

    count: int
    sides: int
    modifier: int = 0

    def __str__(self) -> str:
        return format_notation(self.count, self.sides, self.modifier)


@dataclass(frozen=True)
class DiceRoll:
    """The outcome of one roll, as dispatched to roll history.

    Attributes:
        notation: Dice notation including the modifier (``1d20+3``).
        count: Number of dice rolled.
        sides: Sides per die.
        rolls: Kept die faces.
        subtotal: Sum of the kept faces.
        modifier: Flat modifier added to the subtotal.
        total: ``subtotal + modifier``.
        description: What the roll was for.
        is_critical: Natural 20 on a single d20.
        is_crit_fail: Natural 1 on a single d20.
        roll_mode: Normal, advantage or disadvantage.
        advantage_rolls: Both raw faces when duplication applied.
        id: Unique roll identifier.
        timestamp: When the roll was made (UTC).
    """

    notation: str
    count: int
    sides: int
    rolls: tuple[int, ...]
    subtotal: int
    modifier: int
    total: int
    description: str = ""
    is_critical: bool = False
    is_crit_fail: bool = False
    roll_mode: RollMode = RollMode.NORMAL
    advantage_rolls: tuple[int, ...] = ()
    id: str = field(default_factory=lambda: f"roll-{uuid4().hex[:12]}")
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def natural(self) -> int | None:
        """The kept d20 face, or None for anything but a single d20."""
        if self.count == 1 and self.sides == 20 and self.rolls:
            return self.rolls[0]
        return None

    def to_record(self) -> dict[str, Any]:
        """Serialize for the ADD_ROLL state action."""
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "notation": self.notation,
            "dice": {"count": self.count, "sides": self.sides},
            "rolls": list(self.rolls),
            "subtotal": self.subtotal,
            "modifier": self.modifier,
            "total": self.total,
            "description": self.description,
            "is_critical": self.is_critical,
            "is_crit_fail": self.is_crit_fail,
            "roll_mode": self.roll_mode.value,
            "advantage_rolls": list(self.advantage_rolls),
        }


def format_notation(count: int, sides: int, modifier: int = 0) -> str:
    """Render dice as notation with an explicit signed modifier."""
    return f"{count}d{sides}{modifier:+d}"


def parse_notation(notation: str) -> DiceNotation:
    """Parse dice notation such as ``2d6+3``, ``1d20`` or ``3d8-1``.

    Whitespace is ignored and the ``d`` is case-insensitive. Nothing
    else is accepted: no implicit count, no keep/drop, no arithmetic.

    Args:
        notation: The notation string.

    Returns:
        DiceNotation with count, sides and modifier.

    Raises:
        DiceRollError: If the string does not match the grammar.
    """
    cleaned = re.sub(r"\s+", "", str(notation)).lower()
    match = NOTATION_PATTERN.match(cleaned)
    if not match:
        raise DiceRollError(f"Invalid dice notation: {notation!r}", expression=str(notation))

    count, sides, modifier = match.groups()
    return DiceNotation(
        count=int(count),
        sides=int(sides),
        modifier=int(modifier) if modifier else 0,
    )


class DiceRoller:
    """Dice roller backed by a cryptographically secure source.

    Example:
        >>> roller = DiceRoller()
        >>> check = roller.roll_with_modifier(1, 20, 5, "Perception", advantage=True)
        >>> check.roll_mode
        <RollMode.ADVANTAGE: 'advantage'>
    """

    def __init__(self, *, source: RandomSource | None = None) -> None:
        """Initialize the dice roller.

        Args:
            source: Face source for tests. Defaults to ``secrets.randbelow``.
        """
        self._source: RandomSource = source or secrets.randbelow

    def roll_die(self, sides: int) -> int:
        """Roll one die.

        Args:
            sides: Number of sides (20 for a d20).

        Returns:
            A face in ``[1, sides]``.

        Raises:
            DiceRollError: If ``sides`` is below 1.
        """
        if sides < 1:
            raise DiceRollError(f"A die needs at least one side, got {sides}", expression=f"d{sides}")
        return self._source(sides) + 1

    def roll_dice(self, count: int, sides: int) -> list[int]:
        """Roll ``count`` dice of ``sides`` sides.

        Raises:
            DiceRollError: If the count is negative or above the per-roll limit.
        """
        if count < 0 or count > MAX_DICE_PER_ROLL:
            raise DiceRollError(
                f"Dice count must be between 0 and {MAX_DICE_PER_ROLL}, got {count}",
                expression=f"{count}d{sides}",
            )
        return [self.roll_die(sides) for _ in range(count)]

    def roll_with_modifier(
        self,
        count: int,
        sides: int,
        modifier: int = 0,
        description: str = "",
        *,
        advantage: bool = False,
        disadvantage: bool = False,
    ) -> DiceRoll:
        """Roll dice, add a flat modifier and build the roll record.

        Advantage and disadvantage only apply to exactly one d20: two
        faces are rolled and the higher (advantage) or lower
        (disadvantage) is kept. Advantage is checked first, so it wins
        when both flags are set.

        Args:
            count: Number of dice.
            sides: Sides per die.
            modifier: Flat modifier added to the subtotal.
            description: What the roll is for.
            advantage: Roll twice and keep the higher d20.
            disadvantage: Roll twice and keep the lower d20.

        Returns:
            The frozen DiceRoll record.

        Raises:
            DiceRollError: If the dice are impossible to roll.
        """
        single_d20 = count == 1 and sides == 20
        roll_mode = RollMode.NORMAL
        advantage_rolls: tuple[int, ...] = ()

        if single_d20 and advantage:
            advantage_rolls = (self.roll_die(20), self.roll_die(20))
            rolls = [max(advantage_rolls)]
            roll_mode = RollMode.ADVANTAGE
        elif single_d20 and disadvantage:
            advantage_rolls = (self.roll_die(20), self.roll_die(20))
            rolls = [min(advantage_rolls)]
            roll_mode = RollMode.DISADVANTAGE
        else:
            rolls = self.roll_dice(count, sides)

        subtotal = sum(rolls)
        total = subtotal + modifier

        result = DiceRoll(
            notation=format_notation(count, sides, modifier),
            count=count,
            sides=sides,
            rolls=tuple(rolls),
            subtotal=subtotal,
            modifier=modifier,
            total=total,
            description=description,
            is_critical=single_d20 and rolls[0] == 20,
            is_crit_fail=single_d20 and rolls[0] == 1,
            roll_mode=roll_mode,
            advantage_rolls=advantage_rolls,
        )

        logger.debug(
            "Dice rolled",
            notation=result.notation,
            rolls=rolls,
            total=total,
            roll_mode=roll_mode.value,
        )
        return result

    def roll_notation(
        self,
        notation: str,
        description: str = "",
        *,
        advantage: bool = False,
        disadvantage: bool = False,
    ) -> DiceRoll:
        """Parse a notation string and roll it.

        Raises:
            DiceRollError: If the notation is malformed or impossible.
        """
        parsed = parse_notation(notation)
        return self.roll_with_modifier(
            parsed.count,
            parsed.sides,
            parsed.modifier,
            description,
            advantage=advantage,
            disadvantage=disadvantage,
        )


# Module-level convenience roller
_default_roller: DiceRoller | None = None


def get_default_roller() -> DiceRoller:
    """Return the shared CSPRNG-backed roller, creating it on first use."""
    global _default_roller
    if _default_roller is None:
        _default_roller = DiceRoller()
    return _default_roller


def roll_die(sides: int) -> int:
    """Roll one die with the default roller.

    Example:
        >>> 1 <= roll_die(20) <= 20
        True
    """
    return get_default_roller().roll_die(sides)


def roll_dice(count: int, sides: int) -> list[int]:
    """Roll several dice with the default roller."""
    return get_default_roller().roll_dice(count, sides)


def roll_with_modifier(
    count: int,
    sides: int,
    modifier: int = 0,
    description: str = "",
    *,
    advantage: bool = False,
    disadvantage: bool = False,
) -> DiceRoll:
    """Roll dice plus a modifier with the default roller."""
    return get_default_roller().roll_with_modifier(
        count,
        sides,
        modifier,
        description,
        advantage=advantage,
        disadvantage=disadvantage,
    )


def roll_notation(notation: str, description: str = "") -> DiceRoll:
    """Roll a notation string with the default roller.

    Example:
        >>> roll_notation("1d20+5", "Initiative").modifier
        5
    """
    return get_default_roller().roll_notation(notation, description)


__all__ = [
    "RandomSource",
    "RollMode",
    "DiceNotation",
    "DiceRoll",
    "DiceRoller",
    "format_notation",
    "parse_notation",
    "get_default_roller",
    "roll_die",
    "roll_dice",
    "roll_with_modifier",
    "roll_notation",
]
