"""Taleforge - an AI dungeon master with client-owned dice.

The model narrates; Python owns the truth:
- Every die is rolled client-side from a CSPRNG, for players and NPCs alike
- The model asks for rolls in a JSON block and never sees a result before
  it is rolled
- Game state changes only through dispatched actions

Example:
    >>> from taleforge import Character, DungeonMasterSession, GameState, GameStore
    >>>
    >>> store = GameStore(GameState(character=Character(name="Thorin", max_hp=12, current_hp=12)))
    >>> session = DungeonMasterSession(store)
    >>> outcome = await session.take_turn("I search the room for traps")
    >>> print(outcome.narrative)

Modules:
    core: Configuration, logging, and base exceptions.
    models: Character, event and state schemas.
    engine: Dice, rules lookup and roll resolution.
    llm: Model transport, prompts, reply parsing and safety checks.
    state: In-memory store, reducer and event application.
    dm: Turn orchestration.
"""

from __future__ import annotations

# Core
from taleforge.core.config import Settings, get_settings
from taleforge.core.exceptions import TaleforgeError
from taleforge.core.logging import configure_logging, get_logger

# Models
from taleforge.models import Character, GameEvents, GameState, RollRequest, RollType

# Engine
from taleforge.engine import DiceRoller, handle_requested_rolls, parse_notation

# LLM
from taleforge.llm import LLMClient, detect_pre_narrated_outcome, parse_response

# State
from taleforge.state import GameStore, apply_events

# DM
from taleforge.dm import DungeonMasterSession, TurnOutcome


__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Core
    "Settings",
    "get_settings",
    "TaleforgeError",
    "configure_logging",
    "get_logger",
    # Models
    "Character",
    "GameEvents",
    "GameState",
    "RollRequest",
    "RollType",
    # Engine
    "DiceRoller",
    "parse_notation",
    "handle_requested_rolls",
    # LLM
    "LLMClient",
    "parse_response",
    "detect_pre_narrated_outcome",
    # State
    "GameStore",
    "apply_events",
    # DM
    "DungeonMasterSession",
    "TurnOutcome",
]
