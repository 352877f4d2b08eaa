"""Roll resolution and the bounded follow-up conversation loop.

The model asks for dice; the client rolls them. ``resolve_rolls`` turns a
batch of RollRequest objects into dispatched roll records, transcript
messages and RollResult summaries. ``handle_requested_rolls`` then sends
the authoritative summary back to the model and keeps resolving whatever
the follow-up requests, up to ``max_depth`` rounds per user action.

Three resolution strategies exist:
- NPC rolls (``npc_attack``/``npc_save``): explicit or random modifier.
  Attacks always target the live character's armor class.
- Damage rolls: dice notation; malformed notation drops only that roll.
- Player rolls: skill, ability or ``attack`` modifiers from the rules
  lookup; unknown names roll a flat d20.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from taleforge.core.constants import (
    DEFAULT_DAMAGE_NOTATION,
    DEFAULT_DC,
    DEFAULT_NPC_DC,
    MAX_ROLL_DEPTH,
    NPC_MODIFIER_RANGE,
)
from taleforge.core.exceptions import DiceRollError, TurnCancelledError
from taleforge.core.logging import get_logger
from taleforge.engine.dice import DiceRoll, DiceRoller, get_default_roller
from taleforge.engine.rules import (
    SKILL_ABILITIES,
    format_modifier,
    get_ability_modifier,
    get_attack_modifier,
    get_saving_throw_modifier,
    get_skill_modifier,
    is_ability_name,
    normalize_skill_name,
)
from taleforge.llm.prompts import (
    CORRECTION_CLAUSE,
    FOLLOW_UP_INSTRUCTIONS,
    ROLL_CHAIN_LIMIT_NOTICE,
    ROLL_RESULT_TAG,
)
from taleforge.llm.safety import detect_pre_narrated_outcome
from taleforge.models.events import RollRequest, RollType
from taleforge.models.state import ActionType, Dispatch, GameAction, GameState, MessageRole


if TYPE_CHECKING:
    import asyncio

    from taleforge.llm.parser import ParsedResponse
    from taleforge.models.character import Character

logger = get_logger(__name__)

SendToLLM = Callable[[str], Awaitable["ParsedResponse | None"]]
"""Sends a follow-up prompt and returns the parsed model reply."""


# =============================================================================
# Chain State
# =============================================================================


class ChainState(StrEnum):
    """Where the roll chain is for the current user action."""

    IDLE = "idle"
    """No rolls pending."""

    RESOLVING = "resolving"
    """Rolling the current batch of requests."""

    AWAITING_FOLLOW_UP = "awaiting_follow_up"
    """Roll summary sent, waiting for the model to narrate it."""

    TERMINATED = "terminated"
    """Chain ended by the depth limit or cancellation."""


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class RollResult:
    """Outcome of one resolved roll request.

    Attributes:
        type: Roll type from the request.
        description: Label used in the summary line.
        total: Dice plus modifier.
        success: Met the DC or AC. Always True for damage.
        dc: Target number, None for damage.
        notation: Dice notation for damage rolls.
        attacker: NPC name for NPC rolls.
        skill: Skill or ability for player rolls.
        roll: The underlying dice record.
    """

    type: RollType
    description: str
    total: int
    success: bool
    dc: int | None = None
    notation: str | None = None
    attacker: str | None = None
    skill: str | None = None
    roll: DiceRoll | None = None

    @property
    def is_critical(self) -> bool:
        return self.roll is not None and self.roll.is_critical

    @property
    def is_crit_fail(self) -> bool:
        return self.roll is not None and self.roll.is_crit_fail


@dataclass
class RollChainReport:
    """What happened during one roll chain.

    Attributes:
        rounds: Resolution rounds run.
        results: Every resolved roll, oldest first.
        terminated_by_depth: The depth limit cut the chain off.
        cancelled: The caller cancelled a follow-up call.
        final_state: State the chain ended in.
    """

    rounds: int = 0
    results: list[RollResult] = field(default_factory=list)
    terminated_by_depth: bool = False
    cancelled: bool = False
    final_state: ChainState = ChainState.IDLE


@dataclass
class RollContext:
    """Collaborators the roll chain needs.

    Attributes:
        get_state: Snapshot accessor for the live game state.
        dispatch: State command sink.
        send_to_llm: Sends a follow-up prompt and returns the parsed reply.
        roller: Dice roller; the CSPRNG-backed default when omitted.
        cancel_event: Set by the caller to stop further narration.
        max_depth: Maximum resolution rounds per user action.
        npc_modifier_range: Inclusive range for unspecified NPC modifiers.
    """

    get_state: Callable[[], GameState]
    dispatch: Dispatch
    send_to_llm: SendToLLM
    roller: DiceRoller = field(default_factory=get_default_roller)
    cancel_event: asyncio.Event | None = None
    max_depth: int = MAX_ROLL_DEPTH
    npc_modifier_range: tuple[int, int] = NPC_MODIFIER_RANGE

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()


# =============================================================================
# Resolution
# =============================================================================


def resolve_rolls(
    requests: Sequence[RollRequest],
    character: Character | None,
    dispatch: Dispatch,
    roller: DiceRoller | None = None,
    *,
    npc_modifier_range: tuple[int, int] = NPC_MODIFIER_RANGE,
) -> list[RollResult]:
    """Resolve a batch of roll requests in order.

    Each resolved roll is dispatched as an ``ADD_ROLL`` record followed by
    a visible system message, and collected into the returned list.
    Requests that cannot be resolved are logged and dropped; the rest of
    the batch still resolves.

    Args:
        requests: Roll requests in model order.
        character: The player character, read from live state.
        dispatch: State command sink.
        roller: Dice roller; the default CSPRNG roller when omitted.
        npc_modifier_range: Range for NPC rolls with no explicit modifier.

    Returns:
        One RollResult per resolved request.
    """
    roller = roller or get_default_roller()
    results: list[RollResult] = []

    for request in requests:
        if request.type.is_npc:
            result = _resolve_npc_roll(request, character, dispatch, roller, npc_modifier_range)
        elif request.type is RollType.DAMAGE_ROLL:
            result = _resolve_damage_roll(request, dispatch, roller)
        else:
            result = _resolve_player_roll(request, character, dispatch, roller)
        if result is not None:
            results.append(result)

    return results


def _record_roll(dispatch: Dispatch, request: RollRequest, roll: DiceRoll, message: str) -> None:
    record = roll.to_record()
    record["type"] = request.type.value
    dispatch(GameAction(type=ActionType.ADD_ROLL, payload=record))
    dispatch(GameAction(type=ActionType.ADD_MESSAGE, payload={"role": MessageRole.SYSTEM, "content": message}))


def _d20_text(roll: DiceRoll) -> str:
    text = f"d20: {roll.natural}"
    if roll.advantage_rolls:
        faces = ", ".join(str(face) for face in roll.advantage_rolls)
        text += f" [{roll.roll_mode.value}: {faces}]"
    if roll.modifier:
        text += f", modifier: {format_modifier(roll.modifier)}"
    return text


def _crit_text(roll: DiceRoll) -> str:
    if roll.is_critical:
        return " 🌟 Natural 20!"
    if roll.is_crit_fail:
        return " 💀 Natural 1!"
    return ""


def _resolve_npc_roll(
    request: RollRequest,
    character: Character | None,
    dispatch: Dispatch,
    roller: DiceRoller,
    modifier_range: tuple[int, int],
) -> RollResult:
    low, high = modifier_range
    modifier = request.modifier
    if modifier is None:
        modifier = low + roller.roll_die(high - low + 1) - 1

    attacker = request.attacker or "Enemy"
    is_attack = request.type is RollType.NPC_ATTACK
    if is_attack:
        label = request.description or (f"{request.attacker}'s attack" if request.attacker else "NPC attack")
        dc = character.armor_class if character is not None else (request.dc or DEFAULT_NPC_DC)
        if character is not None and request.dc != dc:
            logger.debug("NPC attack retargeted to live AC", requested_dc=request.dc, armor_class=dc)
    else:
        label = request.description or f"{attacker} saving throw"
        dc = request.dc or DEFAULT_NPC_DC

    roll = roller.roll_with_modifier(
        1,
        20,
        modifier,
        label,
        advantage=request.advantage,
        disadvantage=request.disadvantage,
    )
    success = roll.total >= dc

    if is_attack:
        outcome = "💥 **Hit!**" if success else "🛡️ **Miss!**"
        target = f"vs AC {dc}"
    else:
        outcome = "✅ **Success!**" if success else "❌ **Failure!**"
        target = f"DC {dc}"
    message = f"🎲 **{label}** ({target}): Rolled **{roll.total}** ({_d20_text(roll)}) — {outcome}{_crit_text(roll)}"
    _record_roll(dispatch, request, roll, message)

    return RollResult(
        type=request.type,
        description=label,
        total=roll.total,
        success=success,
        dc=dc,
        attacker=attacker,
        roll=roll,
    )


def _resolve_damage_roll(request: RollRequest, dispatch: Dispatch, roller: DiceRoller) -> RollResult | None:
    notation = request.notation or DEFAULT_DAMAGE_NOTATION
    description = request.description or "Damage Roll"
    try:
        roll = roller.roll_notation(notation, description)
    except DiceRollError as exc:
        logger.warning("Damage roll dropped", notation=notation, error=str(exc))
        return None

    dice = ", ".join(str(face) for face in roll.rolls)
    if roll.modifier:
        dice += f", modifier: {format_modifier(roll.modifier)}"
    message = f"🎲 **{description}** ({notation}): Rolled **{roll.total}** (dice: {dice})"
    _record_roll(dispatch, request, roll, message)

    return RollResult(
        type=RollType.DAMAGE_ROLL,
        description=description,
        total=roll.total,
        success=True,
        notation=notation,
        roll=roll,
    )


def _player_modifier(request: RollRequest, character: Character, name: str) -> tuple[int, str]:
    """Modifier and default label for a player roll."""
    key = normalize_skill_name(name)
    is_attack = request.type is RollType.ATTACK_ROLL

    if key in SKILL_ABILITIES:
        return get_skill_modifier(character, key), f"{name} check"
    if is_ability_name(key):
        if is_attack:
            return get_attack_modifier(character, key), f"{key} attack"
        if request.type is RollType.SAVING_THROW:
            return get_saving_throw_modifier(character, key), f"{key} saving throw"
        return get_ability_modifier(character, key), f"{key} check"
    if key == "attack":
        return get_attack_modifier(character), "Attack roll"

    logger.warning("Unknown skill or ability, rolling plain d20", skill=name)
    return 0, f"{name} check"


def _resolve_player_roll(
    request: RollRequest,
    character: Character | None,
    dispatch: Dispatch,
    roller: DiceRoller,
) -> RollResult | None:
    name = request.check_name or ("attack" if request.type is RollType.ATTACK_ROLL else None)
    if name is None:
        logger.warning("Player roll without skill or ability dropped", type=request.type.value)
        return None
    if character is None:
        logger.warning("Player roll without a character dropped", skill=name)
        return None

    modifier, default_label = _player_modifier(request, character, name)
    label = request.description or default_label
    dc = request.dc or DEFAULT_DC

    roll = roller.roll_with_modifier(
        1,
        20,
        modifier,
        label,
        advantage=request.advantage,
        disadvantage=request.disadvantage,
    )
    success = roll.total >= dc

    if request.type.is_attack:
        outcome = "💥 **Hit!**" if success else "🛡️ **Miss!**"
        target = f"vs AC {dc}"
    else:
        outcome = "✅ **Success!**" if success else "❌ **Failure!**"
        target = f"DC {dc}"
    message = f"🎲 **{label}** ({target}): Rolled **{roll.total}** ({_d20_text(roll)}) — {outcome}{_crit_text(roll)}"
    _record_roll(dispatch, request, roll, message)

    return RollResult(
        type=request.type,
        description=request.description or default_label,
        total=roll.total,
        success=success,
        dc=dc,
        skill=name,
        roll=roll,
    )


# =============================================================================
# Summary
# =============================================================================


def format_roll_summary(results: Sequence[RollResult]) -> str:
    """Render one ``[ROLL RESULT: ...]`` line per result.

    Example:
        ``[ROLL RESULT: Pick the lock, DC 15, rolled 17 — SUCCESS]``
    """
    lines = []
    for result in results:
        if result.type is RollType.DAMAGE_ROLL:
            lines.append(
                f"{ROLL_RESULT_TAG} {result.description or 'Damage roll'}, {result.notation}, "
                f"total damage: {result.total}]"
            )
            continue

        if result.type.is_attack:
            outcome = "HIT" if result.success else "MISS"
            body = f"{result.description}, vs AC {result.dc}, rolled {result.total} — {outcome}"
        else:
            outcome = "SUCCESS" if result.success else "FAILURE"
            body = f"{result.description}, DC {result.dc}, rolled {result.total} — {outcome}"

        if result.is_critical:
            body += " (natural 20)"
        elif result.is_crit_fail:
            body += " (natural 1)"
        lines.append(f"{ROLL_RESULT_TAG} {body}]")
    return "\n".join(lines)


def build_follow_up_prompt(summary: str, *, pre_narrated: bool = False) -> str:
    """Wrap a roll summary in the normative follow-up instructions.

    Args:
        summary: Output of format_roll_summary.
        pre_narrated: The previous model turn narrated an outcome before
            its roll; prepend the correction clause.
    """
    parts = [CORRECTION_CLAUSE] if pre_narrated else []
    parts.extend([FOLLOW_UP_INSTRUCTIONS, summary])
    return "\n\n".join(parts)


# =============================================================================
# Roll Chain
# =============================================================================


async def handle_requested_rolls(
    requests: Sequence[RollRequest],
    ctx: RollContext,
    depth: int = 0,
    *,
    pre_narrated: bool = False,
) -> RollChainReport:
    """Resolve rolls and drive follow-up narration until the chain ends.

    Each round resolves the pending requests, appends the hidden summary
    message, then asks the model to narrate. Rolls requested by the
    follow-up become the next round. The chain stops when a follow-up
    requests nothing, the depth limit is hit (a visible notice is
    dispatched), or the cancel event is set. Transport errors other than
    cancellation propagate; rolls already dispatched stay in history.

    Args:
        requests: Rolls requested by the last model response.
        ctx: Collaborators and limits.
        depth: Rounds already run for this user action.
        pre_narrated: The response that requested these rolls narrated
            an outcome ahead of the dice.

    Returns:
        A report of the rounds run and every resolved roll.
    """
    report = RollChainReport()
    pending = list(requests)
    state = ChainState.IDLE

    while pending:
        if depth >= ctx.max_depth:
            logger.warning("Roll chain limit reached", depth=depth, max_depth=ctx.max_depth)
            ctx.dispatch(
                GameAction(
                    type=ActionType.ADD_MESSAGE,
                    payload={
                        "role": MessageRole.SYSTEM,
                        "content": ROLL_CHAIN_LIMIT_NOTICE.format(depth=ctx.max_depth),
                    },
                )
            )
            report.terminated_by_depth = True
            state = ChainState.TERMINATED
            break

        if ctx.cancelled:
            logger.info("Roll chain cancelled before resolving", depth=depth)
            report.cancelled = True
            state = ChainState.TERMINATED
            break

        state = ChainState.RESOLVING
        character = ctx.get_state().character
        results = resolve_rolls(
            pending,
            character,
            ctx.dispatch,
            ctx.roller,
            npc_modifier_range=ctx.npc_modifier_range,
        )
        report.rounds += 1
        report.results.extend(results)
        logger.info("Rolls resolved", requested=len(pending), resolved=len(results), depth=depth)

        if not results:
            state = ChainState.IDLE
            break

        summary = format_roll_summary(results)
        ctx.dispatch(
            GameAction(
                type=ActionType.ADD_MESSAGE,
                payload={"role": MessageRole.SYSTEM, "content": summary, "hidden": True},
            )
        )

        state = ChainState.AWAITING_FOLLOW_UP
        try:
            follow_up = await ctx.send_to_llm(build_follow_up_prompt(summary, pre_narrated=pre_narrated))
        except TurnCancelledError:
            logger.info("Follow-up narration cancelled", depth=depth)
            report.cancelled = True
            state = ChainState.TERMINATED
            break

        pending = list(follow_up.requested_rolls) if follow_up is not None else []
        pre_narrated = bool(pending) and detect_pre_narrated_outcome(follow_up.narrative)
        if pre_narrated:
            logger.warning("Follow-up narrated an outcome before its rolls", depth=depth + 1)
        depth += 1
        state = ChainState.IDLE

    report.final_state = state
    return report


__all__ = [
    "ChainState",
    "RollResult",
    "RollChainReport",
    "RollContext",
    "SendToLLM",
    "resolve_rolls",
    "format_roll_summary",
    "build_follow_up_prompt",
    "handle_requested_rolls",
]
