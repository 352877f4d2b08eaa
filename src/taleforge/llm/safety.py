"""Pre-narrated outcome detection.

The model must never describe a result before the dice are rolled. When
it does, the conversation loop prepends a correction clause to the next
follow-up instead of trusting the fabricated result.
"""

from __future__ import annotations


OUTCOME_KEYWORDS: tuple[str, ...] = (
    "you succeed",
    "you fail",
    "you hit",
    "you miss",
    "misses you",
    "strikes true",
    "you manage to",
    "you land",
    "you slay",
    "you kill",
    "falls dead",
    "you spot",
    "you notice",
    "you find the",
    "critical hit",
    "you successfully",
    "your attack lands",
    "your blow",
    "you strike",
)
"""Outcome phrases that should not appear before a roll result is known."""


def detect_pre_narrated_outcome(text: str | None) -> bool:
    """Return True when ``text`` narrates an outcome that needs dice.

    Case-insensitive substring scan over OUTCOME_KEYWORDS. Pure predicate.

    Example:
        >>> detect_pre_narrated_outcome("You successfully pick the lock.")
        True
        >>> detect_pre_narrated_outcome("You approach the lock carefully.")
        False
    """
    if not text:
        return False
    lower = text.lower()
    return any(keyword in lower for keyword in OUTCOME_KEYWORDS)


__all__ = [
    "OUTCOME_KEYWORDS",
    "detect_pre_narrated_outcome",
]
