"""In-memory game state store and reducer.

``reduce`` turns ``(state, action)`` into a new ``GameState`` without
touching its input. ``GameStore`` holds the current snapshot and is the
``dispatch``/``get_state`` pair handed to event application and the
roll resolver.

Example:
    >>> store = GameStore(GameState(character=Character(max_hp=12, current_hp=12)))
    >>> store.dispatch(GameAction(type=ActionType.TAKE_DAMAGE, payload=5))
    >>> store.get_state().character.current_hp
    7
"""

from __future__ import annotations

import math
from typing import Any
from uuid import uuid4

from pydantic import ValidationError

from taleforge.core.constants import (
    DEFAULT_ENEMY_AC,
    DEFAULT_ENEMY_HP,
    DEFAULT_PLAYER_INITIATIVE,
    EXP_PER_LEVEL,
    LEVEL_UP_HP_GAIN,
    LONG_REST_CLEARED_CONDITIONS,
    SHORT_REST_HEAL_FRACTION,
)
from taleforge.core.logging import get_logger
from taleforge.engine.dice import DiceRoller, get_default_roller
from taleforge.models.character import Character
from taleforge.models.events import WorldFact
from taleforge.models.state import (
    ActionType,
    ChatMessage,
    CombatState,
    Companion,
    Enemy,
    EnemyCondition,
    GameAction,
    GameState,
    InventoryItem,
    NpcRecord,
    Quest,
    TurnEntry,
)


logger = get_logger(__name__)

_COIN_ACTIONS = {
    ActionType.ADD_GOLD: ("gold", 1),
    ActionType.REMOVE_GOLD: ("gold", -1),
    ActionType.ADD_SILVER: ("silver", 1),
    ActionType.REMOVE_SILVER: ("silver", -1),
    ActionType.ADD_COPPER: ("copper", 1),
    ActionType.REMOVE_COPPER: ("copper", -1),
}

_CHARACTER_ACTIONS = frozenset(
    {
        ActionType.UPDATE_CHARACTER,
        ActionType.TAKE_DAMAGE,
        ActionType.HEAL,
        ActionType.TAKE_REST,
        ActionType.ADD_EXP,
        ActionType.ADD_CONDITION,
        ActionType.REMOVE_CONDITION,
        *_COIN_ACTIONS,
    }
)


def enemy_condition(hp: int, max_hp: int) -> EnemyCondition:
    """Condition label from remaining hit points."""
    if hp <= 0:
        return "dead"
    ratio = hp / max_hp
    if ratio <= 0.25:
        return "critical"
    if ratio <= 0.5:
        return "bloodied"
    return "healthy"


# =============================================================================
# Reducer
# =============================================================================


def reduce(state: GameState, action: GameAction, *, roller: DiceRoller | None = None) -> GameState:
    """Apply one action and return the next state.

    Args:
        state: Current state; never mutated.
        action: The delta to apply.
        roller: Rolls initiative for enemies that start combat without one.

    Returns:
        The next GameState.
    """
    new_state = state.model_copy(deep=True)
    payload = action.payload

    if action.type in _CHARACTER_ACTIONS:
        if new_state.character is None:
            logger.warning("Character action ignored, no character", action=action.type.value)
            return state
        new_state.character = _reduce_character(new_state.character, action)
        return new_state

    if action.type is ActionType.SET_CHARACTER:
        new_state.character = Character.model_validate(payload)
    elif action.type is ActionType.ADD_ITEM:
        try:
            new_state.inventory.append(InventoryItem.model_validate(payload))
        except ValidationError as exc:
            logger.warning("Item rejected", item=payload, error=str(exc))
            return state
    elif action.type is ActionType.REMOVE_ITEM:
        new_state.inventory = _remove_item(new_state.inventory, str(payload))
    elif action.type is ActionType.ADD_MESSAGE:
        new_state.messages.append(ChatMessage.model_validate(payload))
    elif action.type is ActionType.ADD_ROLL:
        new_state.roll_history.append(dict(payload))
    elif action.type is ActionType.ADD_QUEST:
        new_state.quests.append(Quest.model_validate({**payload, "status": "active"}))
    elif action.type is ActionType.COMPLETE_QUEST:
        for quest in new_state.quests:
            if quest.id == payload:
                quest.status = "completed"
    elif action.type is ActionType.SET_LOCATION:
        new_state.current_location = payload
    elif action.type is ActionType.START_COMBAT:
        new_state.combat = _start_combat(new_state, payload or {}, roller or get_default_roller())
    elif action.type is ActionType.END_COMBAT:
        new_state.combat = CombatState()
    elif action.type is ActionType.UPDATE_ENEMY:
        new_state.combat.enemies = [
            _update_enemy(enemy, payload) if enemy.id == payload.get("id") else enemy
            for enemy in new_state.combat.enemies
        ]
    elif action.type in (ActionType.ADD_COMPANION, ActionType.UPDATE_COMPANION):
        new_state.companions = _upsert_companion(new_state.companions, payload, action.type)
    elif action.type is ActionType.REMOVE_COMPANION:
        name = str(payload.get("name", "")).lower()
        new_state.companions = [c for c in new_state.companions if c.name.lower() != name]
    elif action.type is ActionType.ADD_WORLD_FACTS:
        new_state.world_facts.extend(WorldFact.model_validate(f) for f in payload)
    elif action.type is ActionType.UPDATE_NPC:
        new_state.npcs = _upsert_npc(new_state.npcs, payload)
    else:
        logger.warning("Unknown action type", action=str(action.type))
        return state

    return new_state


def _reduce_character(character: Character, action: GameAction) -> Character:
    payload = action.payload
    data = character.model_dump()

    if action.type in _COIN_ACTIONS:
        coin, sign = _COIN_ACTIONS[action.type]
        data[coin] = max(0, data[coin] + sign * int(payload))

    elif action.type is ActionType.UPDATE_CHARACTER:
        data.update(payload)
        data["current_hp"] = max(0, min(int(data["current_hp"]), int(data["max_hp"])))

    elif action.type is ActionType.TAKE_DAMAGE:
        data["current_hp"] = max(0, character.current_hp - int(payload))

    elif action.type is ActionType.HEAL:
        data["current_hp"] = min(character.max_hp, character.current_hp + int(payload))

    elif action.type is ActionType.TAKE_REST:
        is_long = payload == "long"
        amount = character.max_hp if is_long else math.ceil(character.max_hp * SHORT_REST_HEAL_FRACTION)
        data["current_hp"] = min(character.max_hp, character.current_hp + amount)
        if is_long:
            data["conditions"] = [
                c for c in character.conditions if c.lower() not in LONG_REST_CLEARED_CONDITIONS
            ]

    elif action.type is ActionType.ADD_EXP:
        exp = character.exp + int(payload)
        threshold = character.level * EXP_PER_LEVEL
        if exp >= threshold and character.level < 20:
            logger.info("Level up", level=character.level + 1)
            data["level"] = character.level + 1
            data["exp"] = exp - threshold
            data["max_hp"] = character.max_hp + LEVEL_UP_HP_GAIN
            data["current_hp"] = character.max_hp + LEVEL_UP_HP_GAIN
        else:
            data["exp"] = exp

    elif action.type is ActionType.ADD_CONDITION:
        if payload not in character.conditions:
            data["conditions"] = [*character.conditions, payload]

    elif action.type is ActionType.REMOVE_CONDITION:
        data["conditions"] = [c for c in character.conditions if c != payload]

    return Character.model_validate(data)


def _remove_item(inventory: list[InventoryItem], name: str) -> list[InventoryItem]:
    """Drop one unit of the first item whose name matches, case-insensitively."""
    target = name.strip().lower()
    for index, item in enumerate(inventory):
        if item.name.lower() != target:
            continue
        if item.quantity > 1:
            item.quantity -= 1
            return inventory
        return inventory[:index] + inventory[index + 1 :]
    logger.debug("Lost item not in inventory", name=name)
    return inventory


def _positive_or(value: Any, default: int) -> int:
    if isinstance(value, int) and not isinstance(value, bool) and value > 0:
        return value
    return default


def _start_combat(state: GameState, payload: dict[str, Any], roller: DiceRoller) -> CombatState:
    enemies = []
    for index, raw in enumerate(payload.get("enemies") or []):
        hp = _positive_or(raw.get("hp"), DEFAULT_ENEMY_HP)
        try:
            enemy = Enemy(
                id=f"enemy-{uuid4().hex[:8]}-{index}",
                name=raw.get("name") or f"Enemy {index + 1}",
                hp=hp,
                max_hp=hp,
                ac=_positive_or(raw.get("ac"), DEFAULT_ENEMY_AC),
                initiative=raw.get("initiative") or roller.roll_die(20),
            )
        except ValidationError as exc:
            logger.warning("Enemy rejected", enemy=raw, error=str(exc))
            continue
        enemies.append(enemy)

    player_name = state.character.name if state.character else "Player"
    turn_order = [
        TurnEntry(
            type="player",
            name=player_name,
            initiative=payload.get("player_initiative") or DEFAULT_PLAYER_INITIATIVE,
        ),
        *(TurnEntry(type="enemy", id=e.id, name=e.name, initiative=e.initiative) for e in enemies),
    ]
    turn_order.sort(key=lambda entry: entry.initiative, reverse=True)

    logger.info("Combat started", enemies=[e.name for e in enemies])
    return CombatState(active=True, enemies=enemies, turn_order=turn_order)


def _update_enemy(enemy: Enemy, payload: dict[str, Any]) -> Enemy:
    try:
        updated = Enemy.model_validate({**enemy.model_dump(), **payload})
    except ValidationError as exc:
        logger.warning("Enemy update rejected", enemy_id=enemy.id, error=str(exc))
        return enemy
    updated.condition = enemy_condition(updated.hp, updated.max_hp)
    return updated


def _upsert_companion(
    companions: list[Companion],
    payload: dict[str, Any],
    action_type: ActionType,
) -> list[Companion]:
    fields = {k: v for k, v in payload.items() if k != "id"}
    name = str(fields.get("name", "")).lower()
    try:
        for index, companion in enumerate(companions):
            if companion.name.lower() == name:
                merged = Companion.model_validate({**companion.model_dump(), **fields})
                return [*companions[:index], merged, *companions[index + 1 :]]
        if action_type is ActionType.UPDATE_COMPANION:
            logger.debug("Companion update for unknown companion", name=fields.get("name"))
            return companions
        return [*companions, Companion.model_validate(fields)]
    except ValidationError as exc:
        logger.warning("Companion update rejected", name=fields.get("name"), error=str(exc))
        return companions


def _upsert_npc(npcs: list[NpcRecord], payload: dict[str, Any]) -> list[NpcRecord]:
    fields = {k: v for k, v in payload.items() if k not in ("id", "first_met")}
    name = str(fields.get("name", "")).lower()
    try:
        for index, npc in enumerate(npcs):
            if npc.name.lower() == name:
                merged = NpcRecord.model_validate({**npc.model_dump(), **fields})
                return [*npcs[:index], merged, *npcs[index + 1 :]]
        return [*npcs, NpcRecord.model_validate(fields)]
    except ValidationError as exc:
        logger.warning("NPC update rejected", name=fields.get("name"), error=str(exc))
        return npcs


# =============================================================================
# Store
# =============================================================================


class GameStore:
    """Holds the current game state and applies dispatched actions in order.

    Attributes:
        actions: Every action dispatched so far, oldest first.
    """

    def __init__(self, state: GameState | None = None, *, roller: DiceRoller | None = None) -> None:
        """Initialize the store.

        Args:
            state: Starting state; a fresh GameState when omitted.
            roller: Roller for enemy initiative.
        """
        self._state = state or GameState()
        self._roller = roller
        self.actions: list[GameAction] = []

    def get_state(self) -> GameState:
        """Return the current snapshot."""
        return self._state

    def dispatch(self, action: GameAction) -> None:
        """Apply one action."""
        logger.debug("Dispatch", action=action.type.value)
        self.actions.append(action)
        self._state = reduce(self._state, action, roller=self._roller)


__all__ = [
    "GameStore",
    "reduce",
    "enemy_condition",
]
