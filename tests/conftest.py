"""Pytest configuration and shared fixtures.

This module provides common fixtures and configuration for all tests
in the Taleforge test suite.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any

import pytest


if TYPE_CHECKING:
    from collections.abc import Generator


# =============================================================================
# Test Doubles
# =============================================================================


class ScriptedSource:
    """Dice face source that replays a fixed sequence.

    ``DiceRoller`` sources return a zero-based index, so each face is
    shifted down by one. Running out of faces fails the test loudly.
    """

    def __init__(self, faces: Iterable[int]) -> None:
        self.faces = list(faces)
        self.calls: list[int] = []

    def __call__(self, sides: int) -> int:
        if not self.faces:
            raise AssertionError(f"ScriptedSource exhausted (asked for a d{sides})")
        face = self.faces.pop(0)
        assert 1 <= face <= sides, f"face {face} impossible on a d{sides}"
        self.calls.append(sides)
        return face - 1


class FakeLLMClient:
    """Stand-in for LLMClient that replays scripted raw replies."""

    def __init__(self, replies: Iterable[str | BaseException]) -> None:
        self.replies = list(replies)
        self.calls: list[dict[str, Any]] = []

    async def stream_message(
        self,
        system_prompt: str,
        history: list[dict[str, str]],
        user_message: str,
        on_chunk: Callable[[str], None] | None = None,
        cancel_event: Any = None,
    ) -> str:
        self.calls.append(
            {"system_prompt": system_prompt, "history": list(history), "user_message": user_message}
        )
        if not self.replies:
            raise AssertionError("FakeLLMClient has no scripted reply left")
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        if on_chunk is not None:
            on_chunk(reply)
        return reply


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Reset the settings cache before and after each test."""
    from taleforge.core.config import clear_settings_cache

    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture(autouse=True)
def reset_log_context() -> Generator[None, None, None]:
    """Drop any structlog context bound by a test."""
    yield
    from taleforge.core.logging import clear_context

    clear_context()


@pytest.fixture
def mock_env_vars(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set up mock environment variables for testing.

    Returns:
        Dictionary of environment variables that were set.
    """
    env_vars = {
        "TALEFORGE_OPENAI_API_KEY": "test-openai-key",
        "TALEFORGE_GEMINI_API_KEY": "test-gemini-key",
        "TALEFORGE_DEBUG": "true",
        "TALEFORGE_LOG_LEVEL": "DEBUG",
    }
    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)
    return env_vars


# =============================================================================
# Model Fixtures
# =============================================================================


@pytest.fixture
def sample_ability_scores() -> dict[str, int]:
    """Provide sample character ability scores.

    Returns:
        Dictionary of ability scores.
    """
    return {
        "strength": 16,
        "dexterity": 14,
        "constitution": 15,
        "intelligence": 10,
        "wisdom": 12,
        "charisma": 8,
    }


@pytest.fixture
def sample_character(sample_ability_scores: dict[str, int]) -> Any:
    """Create a level 5 fighter proficient in Athletics and Perception.

    STR +3, DEX +2, WIS +1, proficiency +3, AC 18.
    """
    from taleforge.models.character import Character

    return Character(
        name="Thorin",
        race="Dwarf",
        class_name="Fighter",
        level=5,
        ability_scores=sample_ability_scores,
        max_hp=44,
        current_hp=44,
        armor_class=18,
        skill_proficiencies=["Athletics", "Perception"],
        saving_throw_proficiencies=["strength", "constitution"],
        gold=10,
    )


@pytest.fixture
def game_state(sample_character: Any) -> Any:
    """Game state holding the sample character."""
    from taleforge.models.state import GameState

    return GameState(character=sample_character)


@pytest.fixture
def store(game_state: Any) -> Any:
    """GameStore seeded with the sample character."""
    from taleforge.state.store import GameStore

    return GameStore(game_state)


# =============================================================================
# Engine Fixtures
# =============================================================================


@pytest.fixture
def make_roller() -> Callable[..., Any]:
    """Factory for DiceRollers that replay the given faces in order.

    Example:
        >>> roller = make_roller(5, 17)
        >>> roller.roll_with_modifier(1, 20, advantage=True).rolls
        (17,)
    """
    from taleforge.engine.dice import DiceRoller

    def _make(*faces: int) -> DiceRoller:
        return DiceRoller(source=ScriptedSource(faces))

    return _make


# =============================================================================
# LLM Fixtures
# =============================================================================


@pytest.fixture
def fake_llm() -> Callable[..., FakeLLMClient]:
    """Factory for a scripted model transport."""

    def _make(*replies: str | BaseException) -> FakeLLMClient:
        return FakeLLMClient(replies)

    return _make


@pytest.fixture
def scripted_send() -> Callable[..., Any]:
    """Factory for a ``send_to_llm`` coroutine replaying parsed replies.

    The returned callable records every prompt in ``.prompts``.
    """
    from taleforge.llm.parser import parse_response

    def _make(*replies: str | BaseException) -> Any:
        queue = list(replies)

        async def send_to_llm(prompt: str) -> Any:
            send_to_llm.prompts.append(prompt)
            reply = queue.pop(0) if queue else ""
            if isinstance(reply, BaseException):
                raise reply
            return parse_response(reply)

        send_to_llm.prompts = []
        return send_to_llm

    return _make
