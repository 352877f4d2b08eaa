"""Dungeon master session: one user action end to end.

A turn runs in this order:
1. The player's message is appended to the transcript.
2. The model reply is streamed and parsed.
3. The assistant message is dispatched and its events applied.
4. A notice is posted when rolls were inferred from prose.
5. The outcome guard checks the narrative, then the roll chain runs.

Python owns the dice and the state. The model only narrates and asks.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

from taleforge.core.config import Settings, get_settings
from taleforge.core.exceptions import TurnCancelledError
from taleforge.core.logging import bind_context, clear_context, configure_from_settings, get_logger
from taleforge.engine.dice import DiceRoller, get_default_roller
from taleforge.engine.roll_resolver import RollChainReport, RollContext, handle_requested_rolls
from taleforge.llm.client import ChunkCallback, HistoryMessage, LLMClient
from taleforge.llm.parser import ParsedResponse, parse_response
from taleforge.llm.prompts import TEXT_ROLL_NOTICE, build_system_prompt
from taleforge.llm.safety import detect_pre_narrated_outcome
from taleforge.models.events import GameEvents
from taleforge.models.state import ActionType, GameAction, MessageRole
from taleforge.state.apply import apply_events
from taleforge.state.store import GameStore


logger = get_logger(__name__)


@dataclass
class TurnOutcome:
    """Result of one player turn.

    Attributes:
        narrative: Narrative of the first model reply.
        events: Events parsed from the first reply.
        roll_report: Roll chain report, None when no rolls were requested.
        pre_narrated: The first reply narrated an outcome before its rolls.
        cancelled: The player cancelled the turn.
    """

    narrative: str = ""
    events: GameEvents | None = None
    roll_report: RollChainReport | None = None
    pre_narrated: bool = False
    cancelled: bool = False


class DungeonMasterSession:
    """Drives the conversation between the player, the model and the state."""

    def __init__(
        self,
        store: GameStore | None = None,
        client: LLMClient | None = None,
        *,
        settings: Settings | None = None,
        roller: DiceRoller | None = None,
        on_chunk: ChunkCallback | None = None,
    ) -> None:
        """Initialize the session.

        Args:
            store: Game state store; a fresh store when omitted.
            client: Model transport; built from settings when omitted.
            settings: Application settings; the global settings when omitted.
            roller: Dice roller for every roll in the session.
            on_chunk: Receives streamed reply fragments.
        """
        self.settings = settings or get_settings()
        self.store = store or GameStore()
        self.client = client or LLMClient(self.settings.ai)
        self.roller = roller or get_default_roller()
        self.on_chunk = on_chunk
        self._cancel_event = asyncio.Event()

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        **kwargs: Any,
    ) -> DungeonMasterSession:
        """Application entry point: configure logging, then build a session.

        Args:
            settings: Application settings; the global settings when omitted.
            **kwargs: Passed through to the constructor.

        Returns:
            A ready session.

        Example:
            >>> session = DungeonMasterSession.create()
            >>> outcome = asyncio.run(session.take_turn("I open the door"))
        """
        settings = settings or get_settings()
        configure_from_settings(settings)
        return cls(settings=settings, **kwargs)

    def cancel(self) -> None:
        """Abort the in-flight model call; already rolled dice stay recorded."""
        logger.info("Turn cancel requested")
        self._cancel_event.set()

    def build_message_history(self) -> list[HistoryMessage]:
        """Sliding window of recent transcript messages for the model.

        Summarized messages are skipped and system messages are sent with
        the ``user`` role.
        """
        messages = [m for m in self.store.get_state().messages if not m.summarized]
        window = messages[-self.settings.game.message_window :]
        return [
            {
                "role": MessageRole.USER.value if m.role is MessageRole.SYSTEM else m.role.value,
                "content": m.content,
            }
            for m in window
        ]

    async def send_to_llm(self, prompt: str) -> ParsedResponse:
        """Send one prompt, then record and apply the parsed reply.

        Raises:
            TurnCancelledError: The turn was cancelled mid-stream.
            AIControlError: Any other transport failure.
        """
        state = self.store.get_state()
        history = self.build_message_history()
        # The prompt already carries the player's text or the roll summary
        if history and history[-1]["role"] == MessageRole.USER.value and history[-1]["content"] in prompt:
            history = history[:-1]

        raw = await self.client.stream_message(
            build_system_prompt(state),
            history,
            prompt,
            on_chunk=self.on_chunk,
            cancel_event=self._cancel_event,
        )
        parsed = parse_response(raw, default_dc=self.settings.game.default_dc)

        self.store.dispatch(
            GameAction(
                type=ActionType.ADD_MESSAGE,
                payload={
                    "role": MessageRole.ASSISTANT,
                    "content": parsed.narrative,
                    "events": parsed.events.model_dump(mode="json") if parsed.events else None,
                },
            )
        )
        apply_events(parsed.events, self.store.dispatch)

        if parsed.events is not None and parsed.events.text_roll_detected:
            logger.info("Rolls inferred from narrative text", count=len(parsed.requested_rolls))
            self.store.dispatch(
                GameAction(
                    type=ActionType.ADD_MESSAGE,
                    payload={"role": MessageRole.SYSTEM, "content": TEXT_ROLL_NOTICE},
                )
            )
        return parsed

    async def take_turn(self, user_input: str) -> TurnOutcome:
        """Run one player action through the model and the roll chain.

        Args:
            user_input: What the player typed.

        Returns:
            The turn outcome. Blank input returns an empty outcome.

        Raises:
            AIControlError: Transport failures other than cancellation.
        """
        text = user_input.strip()
        if not text:
            return TurnOutcome()

        self._cancel_event = asyncio.Event()
        bind_context(turn_id=uuid4().hex[:8])
        try:
            self.store.dispatch(
                GameAction(type=ActionType.ADD_MESSAGE, payload={"role": MessageRole.USER, "content": text})
            )
            logger.info("Turn started", chars=len(text))

            try:
                parsed = await self.send_to_llm(text)
            except TurnCancelledError:
                logger.info("Turn cancelled")
                return TurnOutcome(cancelled=True)

            outcome = TurnOutcome(narrative=parsed.narrative, events=parsed.events)
            if not parsed.requested_rolls:
                return outcome

            outcome.pre_narrated = detect_pre_narrated_outcome(parsed.narrative)
            if outcome.pre_narrated:
                logger.warning("Reply narrated an outcome before its rolls")

            game = self.settings.game
            ctx = RollContext(
                get_state=self.store.get_state,
                dispatch=self.store.dispatch,
                send_to_llm=self.send_to_llm,
                roller=self.roller,
                cancel_event=self._cancel_event,
                max_depth=game.max_roll_depth,
                npc_modifier_range=(game.npc_modifier_min, game.npc_modifier_max),
            )
            outcome.roll_report = await handle_requested_rolls(
                parsed.requested_rolls,
                ctx,
                pre_narrated=outcome.pre_narrated,
            )
            outcome.cancelled = outcome.roll_report.cancelled
            return outcome
        finally:
            clear_context()


__all__ = [
    "DungeonMasterSession",
    "TurnOutcome",
]
