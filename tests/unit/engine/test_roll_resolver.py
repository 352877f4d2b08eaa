"""Tests for roll resolution and the follow-up roll chain."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import Any

import pytest

from taleforge.core.exceptions import AIConnectionError, TurnCancelledError
from taleforge.engine.roll_resolver import (
    ChainState,
    RollContext,
    RollResult,
    build_follow_up_prompt,
    format_roll_summary,
    handle_requested_rolls,
    resolve_rolls,
)
from taleforge.llm.prompts import (
    CORRECTION_CLAUSE,
    FOLLOW_UP_INSTRUCTIONS,
    ROLL_CHAIN_LIMIT_NOTICE,
    ROLL_RESULT_TAG,
)
from taleforge.models.events import RollRequest, RollType
from taleforge.models.state import ActionType, GameAction


def reply_with_rolls(*rolls: dict[str, Any], narrative: str = "The DM waits for the dice.") -> str:
    """Build a raw model reply carrying a fenced JSON roll request block."""
    body = json.dumps({"requested_rolls": list(rolls)})
    return f"{narrative}\n```json\n{body}\n```"


class Recorder:
    """Collects dispatched actions."""

    def __init__(self) -> None:
        self.actions: list[GameAction] = []

    def __call__(self, action: GameAction) -> None:
        self.actions.append(action)

    @property
    def types(self) -> list[ActionType]:
        return [action.type for action in self.actions]


# =============================================================================
# Player Rolls
# =============================================================================


class TestPlayerRolls:
    """Tests for skill checks, saves and attacks made by the player."""

    def test_skill_check(self, sample_character: Any, make_roller: Callable[..., Any]) -> None:
        """Test a proficient skill check records the roll then the message."""
        dispatch = Recorder()
        request = RollRequest(type=RollType.SKILL_CHECK, skill="athletics", dc=15)

        results = resolve_rolls([request], sample_character, dispatch, make_roller(12))

        assert len(results) == 1
        result = results[0]
        assert result.total == 18
        assert result.success is True
        assert result.dc == 15
        assert result.skill == "athletics"

        assert dispatch.types == [ActionType.ADD_ROLL, ActionType.ADD_MESSAGE]
        record = dispatch.actions[0].payload
        assert record["type"] == "skill_check"
        assert record["rolls"] == [12]
        assert record["modifier"] == 6
        assert dispatch.actions[1].payload["content"] == (
            "🎲 **athletics check** (DC 15): Rolled **18** (d20: 12, modifier: +6) — ✅ **Success!**"
        )

    def test_description_becomes_label(self, sample_character: Any, make_roller: Callable[..., Any]) -> None:
        """Test the request description labels the roll."""
        request = RollRequest(skill="stealth", dc=16, description="Sneak past the guard")

        result = resolve_rolls([request], sample_character, Recorder(), make_roller(13))[0]

        assert result.description == "Sneak past the guard"
        assert result.total == 15
        assert result.success is False

    def test_unknown_skill_rolls_flat(self, sample_character: Any, make_roller: Callable[..., Any]) -> None:
        """Test an unrecognized name rolls with no modifier."""
        request = RollRequest(skill="juggling", dc=10)

        result = resolve_rolls([request], sample_character, Recorder(), make_roller(9))[0]

        assert result.total == 9
        assert result.success is False

    def test_saving_throw_uses_save_proficiency(
        self, sample_character: Any, make_roller: Callable[..., Any]
    ) -> None:
        """Test an ability saving throw adds save proficiency."""
        request = RollRequest(type=RollType.SAVING_THROW, ability="constitution", dc=13)

        result = resolve_rolls([request], sample_character, Recorder(), make_roller(8))[0]

        assert result.total == 13
        assert result.success is True

    def test_attack_without_skill(self, sample_character: Any, make_roller: Callable[..., Any]) -> None:
        """Test an attack roll with no skill uses the attack modifier against AC."""
        dispatch = Recorder()
        request = RollRequest(type=RollType.ATTACK_ROLL, dc=13)

        result = resolve_rolls([request], sample_character, dispatch, make_roller(7))[0]

        assert result.description == "Attack roll"
        assert result.total == 13
        assert result.success is True
        assert "(vs AC 13)" in dispatch.actions[1].payload["content"]
        assert "💥 **Hit!**" in dispatch.actions[1].payload["content"]

    def test_advantage_natural_20(self, sample_character: Any, make_roller: Callable[..., Any]) -> None:
        """Test advantage faces and the critical marker in the message."""
        dispatch = Recorder()
        request = RollRequest(skill="perception", dc=30, advantage=True)

        result = resolve_rolls([request], sample_character, dispatch, make_roller(3, 20))[0]

        assert result.is_critical is True
        assert result.success is False
        content = dispatch.actions[1].payload["content"]
        assert "d20: 20 [advantage: 3, 20], modifier: +4" in content
        assert content.endswith("🌟 Natural 20!")

    def test_no_character_dropped(self, make_roller: Callable[..., Any]) -> None:
        """Test player rolls need a character."""
        dispatch = Recorder()

        assert resolve_rolls([RollRequest(skill="stealth")], None, dispatch, make_roller()) == []
        assert dispatch.actions == []

    def test_no_skill_dropped(self, sample_character: Any, make_roller: Callable[..., Any]) -> None:
        """Test a check with neither skill nor ability is dropped."""
        assert resolve_rolls([RollRequest()], sample_character, Recorder(), make_roller()) == []


# =============================================================================
# NPC Rolls
# =============================================================================


class TestNpcRolls:
    """Tests for NPC attacks and saves."""

    def test_attack_targets_live_armor_class(
        self, sample_character: Any, make_roller: Callable[..., Any]
    ) -> None:
        """Test an NPC attack ignores the requested DC and uses the character's AC."""
        dispatch = Recorder()
        request = RollRequest(type=RollType.NPC_ATTACK, attacker="Goblin", dc=5, modifier=3)

        result = resolve_rolls([request], sample_character, dispatch, make_roller(10))[0]

        assert result.dc == 18
        assert result.total == 13
        assert result.success is False
        assert result.description == "Goblin's attack"
        assert result.attacker == "Goblin"
        assert "(vs AC 18)" in dispatch.actions[1].payload["content"]
        assert "🛡️ **Miss!**" in dispatch.actions[1].payload["content"]
        assert format_roll_summary([result]) == "[ROLL RESULT: Goblin's attack, vs AC 18, rolled 13 — MISS]"

    def test_random_modifier_from_range(self, sample_character: Any, make_roller: Callable[..., Any]) -> None:
        """Test a missing modifier is drawn from the configured range before the d20."""
        request = RollRequest(type=RollType.NPC_ATTACK, attacker="Orc")

        result = resolve_rolls(
            [request],
            sample_character,
            Recorder(),
            make_roller(3, 14),
            npc_modifier_range=(2, 4),
        )[0]

        assert result.roll is not None
        assert result.roll.modifier == 4
        assert result.total == 18
        assert result.success is True

    def test_save_uses_request_dc(self, sample_character: Any, make_roller: Callable[..., Any]) -> None:
        """Test an NPC save is judged against the requested DC."""
        request = RollRequest(type=RollType.NPC_SAVE, attacker="Cultist", dc=14, modifier=1)

        result = resolve_rolls([request], sample_character, Recorder(), make_roller(13))[0]

        assert result.dc == 14
        assert result.success is True
        assert result.description == "Cultist saving throw"
        assert format_roll_summary([result]) == "[ROLL RESULT: Cultist saving throw, DC 14, rolled 14 — SUCCESS]"

    def test_attack_without_character(self, make_roller: Callable[..., Any]) -> None:
        """Test the requested DC is the fallback when no character exists."""
        request = RollRequest(type=RollType.NPC_ATTACK, dc=11, modifier=0)

        result = resolve_rolls([request], None, Recorder(), make_roller(11))[0]

        assert result.dc == 11
        assert result.success is True
        assert result.description == "NPC attack"
        assert result.attacker == "Enemy"


# =============================================================================
# Damage Rolls
# =============================================================================


class TestDamageRolls:
    """Tests for damage dice."""

    def test_damage_notation(self, make_roller: Callable[..., Any]) -> None:
        """Test damage notation is rolled and summarized."""
        dispatch = Recorder()
        request = RollRequest(type=RollType.DAMAGE_ROLL, notation="2d6+3", description="Greataxe")

        result = resolve_rolls([request], None, dispatch, make_roller(4, 5))[0]

        assert result.total == 12
        assert result.success is True
        assert dispatch.actions[1].payload["content"] == (
            "🎲 **Greataxe** (2d6+3): Rolled **12** (dice: 4, 5, modifier: +3)"
        )
        assert format_roll_summary([result]) == "[ROLL RESULT: Greataxe, 2d6+3, total damage: 12]"

    def test_default_notation(self, make_roller: Callable[..., Any]) -> None:
        """Test a damage request without notation rolls 1d4."""
        result = resolve_rolls([RollRequest(type=RollType.DAMAGE_ROLL)], None, Recorder(), make_roller(3))[0]

        assert result.notation == "1d4"
        assert result.description == "Damage Roll"
        assert result.total == 3

    def test_malformed_notation_drops_only_that_roll(self, make_roller: Callable[..., Any]) -> None:
        """Test the rest of the batch still resolves after a bad notation."""
        dispatch = Recorder()
        requests = [
            RollRequest(type=RollType.DAMAGE_ROLL, notation="2d6+1d4"),
            RollRequest(type=RollType.DAMAGE_ROLL, notation="1d8"),
        ]

        results = resolve_rolls(requests, None, dispatch, make_roller(5))

        assert [r.total for r in results] == [5]
        assert len(dispatch.actions) == 2


# =============================================================================
# Summaries
# =============================================================================


class TestSummary:
    """Tests for the authoritative roll summary."""

    def test_lines_in_order(self) -> None:
        """Test one line per result with natural-face markers."""
        results = [
            RollResult(type=RollType.SKILL_CHECK, description="Pick the lock", total=17, success=True, dc=15),
            RollResult(type=RollType.ATTACK_ROLL, description="Longsword", total=9, success=False, dc=14),
        ]

        assert format_roll_summary(results) == (
            "[ROLL RESULT: Pick the lock, DC 15, rolled 17 — SUCCESS]\n"
            "[ROLL RESULT: Longsword, vs AC 14, rolled 9 — MISS]"
        )

    def test_crit_marker(self, sample_character: Any, make_roller: Callable[..., Any]) -> None:
        """Test natural 1 is called out."""
        results = resolve_rolls([RollRequest(skill="stealth", dc=5)], sample_character, Recorder(), make_roller(1))

        assert format_roll_summary(results).endswith("— FAILURE (natural 1)]")

    def test_follow_up_prompt(self) -> None:
        """Test the follow-up wraps the summary in the instructions."""
        prompt = build_follow_up_prompt("[ROLL RESULT: x, DC 10, rolled 12 — SUCCESS]")

        assert prompt.startswith(FOLLOW_UP_INSTRUCTIONS)
        assert prompt.endswith("[ROLL RESULT: x, DC 10, rolled 12 — SUCCESS]")
        assert CORRECTION_CLAUSE not in prompt

    def test_follow_up_prompt_with_correction(self) -> None:
        """Test pre-narrated turns get the correction clause first."""
        prompt = build_follow_up_prompt("summary", pre_narrated=True)

        assert prompt.split("\n\n")[0] == CORRECTION_CLAUSE


# =============================================================================
# Roll Chain
# =============================================================================


def make_context(store: Any, send: Any, roller: Any, **kwargs: Any) -> RollContext:
    return RollContext(
        get_state=store.get_state,
        dispatch=store.dispatch,
        send_to_llm=send,
        roller=roller,
        **kwargs,
    )


class TestRollChain:
    """Tests for handle_requested_rolls."""

    def test_single_round(
        self, store: Any, make_roller: Callable[..., Any], scripted_send: Callable[..., Any]
    ) -> None:
        """Test one round: roll, hidden summary, follow-up, stop."""
        send = scripted_send("The lock clicks open.")
        ctx = make_context(store, send, make_roller(14))

        report = asyncio.run(handle_requested_rolls([RollRequest(skill="athletics", dc=15)], ctx))

        assert report.rounds == 1
        assert report.final_state is ChainState.IDLE
        assert report.terminated_by_depth is False
        assert len(send.prompts) == 1
        assert send.prompts[0].startswith(FOLLOW_UP_INSTRUCTIONS)
        assert ROLL_RESULT_TAG in send.prompts[0]

        state = store.get_state()
        assert len(state.roll_history) == 1
        hidden = [m for m in state.messages if m.hidden]
        assert len(hidden) == 1
        assert hidden[0].content == "[ROLL RESULT: athletics check, DC 15, rolled 20 — SUCCESS]"

    def test_depth_bound(
        self, store: Any, make_roller: Callable[..., Any], scripted_send: Callable[..., Any]
    ) -> None:
        """Test a model that always asks for more rolls is cut off after three rounds."""
        reply = reply_with_rolls({"type": "skill_check", "skill": "perception", "dc": 10})
        send = scripted_send(reply, reply, reply, reply)
        ctx = make_context(store, send, make_roller(10, 11, 12), max_depth=3)

        report = asyncio.run(handle_requested_rolls([RollRequest(skill="perception", dc=10)], ctx))

        assert report.rounds == 3
        assert len(send.prompts) == 3
        assert len(report.results) == 3
        assert report.terminated_by_depth is True
        assert report.final_state is ChainState.TERMINATED

        messages = store.get_state().messages
        assert messages[-1].content == ROLL_CHAIN_LIMIT_NOTICE.format(depth=3)
        assert messages[-1].hidden is False
        assert len([m for m in messages if m.hidden]) == 3

    def test_follow_up_rolls_chain(
        self, store: Any, make_roller: Callable[..., Any], scripted_send: Callable[..., Any]
    ) -> None:
        """Test rolls requested by a follow-up become the next round."""
        hit = reply_with_rolls({"type": "damage_roll", "notation": "1d8+3", "description": "Warhammer"})
        send = scripted_send(hit, "The goblin crumples.")
        ctx = make_context(store, send, make_roller(15, 6))

        report = asyncio.run(handle_requested_rolls([RollRequest(type=RollType.ATTACK_ROLL, dc=12)], ctx))

        assert report.rounds == 2
        assert [r.type for r in report.results] == [RollType.ATTACK_ROLL, RollType.DAMAGE_ROLL]
        assert "[ROLL RESULT: Warhammer, 1d8+3, total damage: 9]" in send.prompts[1]

    def test_pre_narrated_first_prompt(
        self, store: Any, make_roller: Callable[..., Any], scripted_send: Callable[..., Any]
    ) -> None:
        """Test the correction clause leads the first follow-up when requested."""
        send = scripted_send("Fine.")
        ctx = make_context(store, send, make_roller(9))

        asyncio.run(handle_requested_rolls([RollRequest(skill="stealth")], ctx, pre_narrated=True))

        assert send.prompts[0].startswith(CORRECTION_CLAUSE)

    def test_pre_narrated_follow_up(
        self, store: Any, make_roller: Callable[..., Any], scripted_send: Callable[..., Any]
    ) -> None:
        """Test a follow-up that narrates ahead of its own rolls gets corrected."""
        ahead = reply_with_rolls(
            {"type": "damage_roll", "notation": "1d8"},
            narrative="You strike the goblin hard.",
        )
        send = scripted_send(ahead, "Done.")
        ctx = make_context(store, send, make_roller(15, 6))

        asyncio.run(handle_requested_rolls([RollRequest(type=RollType.ATTACK_ROLL, dc=12)], ctx))

        assert not send.prompts[0].startswith(CORRECTION_CLAUSE)
        assert send.prompts[1].startswith(CORRECTION_CLAUSE)

    def test_npc_attack_reads_live_state(
        self, store: Any, make_roller: Callable[..., Any], scripted_send: Callable[..., Any]
    ) -> None:
        """Test the chain reads the character's current AC from the store."""
        store.dispatch(GameAction(type=ActionType.UPDATE_CHARACTER, payload={"armor_class": 12}))
        send = scripted_send()
        ctx = make_context(store, send, make_roller(9))
        request = RollRequest(type=RollType.NPC_ATTACK, attacker="Wolf", dc=5, modifier=3)

        report = asyncio.run(handle_requested_rolls([request], ctx))

        assert report.results[0].dc == 12
        assert report.results[0].success is True

    def test_nothing_resolved_stops(
        self, store: Any, make_roller: Callable[..., Any], scripted_send: Callable[..., Any]
    ) -> None:
        """Test a batch with no resolvable rolls sends no follow-up."""
        send = scripted_send()
        ctx = make_context(store, send, make_roller())

        report = asyncio.run(handle_requested_rolls([RollRequest()], ctx))

        assert report.rounds == 1
        assert report.results == []
        assert send.prompts == []
        assert report.final_state is ChainState.IDLE

    def test_cancelled_before_resolving(
        self, store: Any, make_roller: Callable[..., Any], scripted_send: Callable[..., Any]
    ) -> None:
        """Test a set cancel event stops the chain before any dice."""
        send = scripted_send()
        event = asyncio.Event()
        event.set()
        ctx = make_context(store, send, make_roller(), cancel_event=event)

        report = asyncio.run(handle_requested_rolls([RollRequest(skill="stealth")], ctx))

        assert report.cancelled is True
        assert report.rounds == 0
        assert report.final_state is ChainState.TERMINATED
        assert store.get_state().roll_history == []

    def test_cancelled_during_follow_up(
        self, store: Any, make_roller: Callable[..., Any], scripted_send: Callable[..., Any]
    ) -> None:
        """Test cancellation mid-narration keeps the rolled dice."""
        send = scripted_send(TurnCancelledError("Turn cancelled"))
        ctx = make_context(store, send, make_roller(11))

        report = asyncio.run(handle_requested_rolls([RollRequest(skill="stealth")], ctx))

        assert report.cancelled is True
        assert report.rounds == 1
        assert report.final_state is ChainState.TERMINATED
        assert len(store.get_state().roll_history) == 1

    def test_transport_error_propagates(
        self, store: Any, make_roller: Callable[..., Any], scripted_send: Callable[..., Any]
    ) -> None:
        """Test transport failures reach the caller with the dice still recorded."""
        send = scripted_send(AIConnectionError("Provider unreachable"))
        ctx = make_context(store, send, make_roller(11))

        with pytest.raises(AIConnectionError):
            asyncio.run(handle_requested_rolls([RollRequest(skill="stealth")], ctx))

        assert len(store.get_state().roll_history) == 1
