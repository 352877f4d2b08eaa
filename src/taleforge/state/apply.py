"""Event application: map a GameEvents envelope onto state actions.

Roll requests and ``damage_dealt`` are never dispatched here. Rolls only
change state through the roll resolver, and damage to enemies arrives as
``enemy_updates``.
"""

from __future__ import annotations

from taleforge.core.logging import get_logger
from taleforge.models.events import GameEvents
from taleforge.models.state import ActionType, Dispatch, GameAction, MessageRole


logger = get_logger(__name__)

DEATH_MESSAGE_SUFFIX = (
    "Your story is not over. Describe what happens next: does your spirit linger, "
    "possess a body nearby, or does fate have other plans?"
)

_COIN_FIELDS = (
    ("gold_found", ActionType.ADD_GOLD),
    ("gold_lost", ActionType.REMOVE_GOLD),
    ("silver_found", ActionType.ADD_SILVER),
    ("silver_lost", ActionType.REMOVE_SILVER),
    ("copper_found", ActionType.ADD_COPPER),
    ("copper_lost", ActionType.REMOVE_COPPER),
)


def apply_events(events: GameEvents | None, dispatch: Dispatch) -> None:
    """Dispatch the state actions described by one response.

    Args:
        events: Normalized events; None is a no-op.
        dispatch: State command sink.
    """
    if events is None:
        return

    def emit(action_type: ActionType, payload: object = None) -> None:
        dispatch(GameAction(type=action_type, payload=payload))

    if events.damage_taken > 0:
        emit(ActionType.TAKE_DAMAGE, events.damage_taken)
    if events.healing > 0:
        emit(ActionType.HEAL, events.healing)

    for item in events.items_found:
        emit(ActionType.ADD_ITEM, {"name": item, "type": "gear", "weight": 1} if isinstance(item, str) else item)
    for item in events.items_lost:
        name = item if isinstance(item, str) else item.get("name")
        if name:
            emit(ActionType.REMOVE_ITEM, name)

    for field_name, action_type in _COIN_FIELDS:
        amount = getattr(events, field_name)
        if amount > 0:
            emit(action_type, amount)

    if events.exp_awarded > 0:
        emit(ActionType.ADD_EXP, events.exp_awarded)
    if events.rest_taken is not None:
        emit(ActionType.TAKE_REST, events.rest_taken)

    for condition in events.conditions_gained:
        emit(ActionType.ADD_CONDITION, condition)
    for condition in events.conditions_removed:
        emit(ActionType.REMOVE_CONDITION, condition)

    for quest in events.quest_updates:
        if quest.status == "new":
            emit(ActionType.ADD_QUEST, {"name": quest.name, "description": quest.description})
        elif quest.status == "completed" and quest.id:
            emit(ActionType.COMPLETE_QUEST, quest.id)

    if events.location:
        emit(ActionType.SET_LOCATION, events.location)

    if events.combat_start is not None:
        emit(ActionType.START_COMBAT, events.combat_start.model_dump())
    if events.combat_end:
        emit(ActionType.END_COMBAT)
    for update in events.enemy_updates:
        emit(ActionType.UPDATE_ENEMY, update)

    for companion in events.add_companions:
        emit(ActionType.ADD_COMPANION, companion)
    for companion in events.update_companions:
        emit(ActionType.UPDATE_COMPANION, companion)
    for name in events.remove_companions:
        emit(ActionType.REMOVE_COMPANION, {"name": name})

    if events.world_facts:
        emit(ActionType.ADD_WORLD_FACTS, [fact.model_dump() for fact in events.world_facts])
    for npc in events.npc_updates:
        emit(ActionType.UPDATE_NPC, npc)

    if events.player_death is not None:
        logger.info("Player death event", description=events.player_death.description)
        emit(
            ActionType.ADD_MESSAGE,
            {
                "role": MessageRole.SYSTEM,
                "content": f"💀 **{events.player_death.description}**\n\n{DEATH_MESSAGE_SUFFIX}",
                "is_death_event": True,
            },
        )
        emit(ActionType.UPDATE_CHARACTER, {"current_hp": 0, "is_dead": True})


__all__ = [
    "apply_events",
    "DEATH_MESSAGE_SUFFIX",
]
