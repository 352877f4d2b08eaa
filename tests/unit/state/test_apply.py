"""Tests for mapping parsed events onto state actions."""

from __future__ import annotations

from typing import Any

from taleforge.llm.parser import normalize_events
from taleforge.models.state import ActionType, GameAction
from taleforge.state.apply import DEATH_MESSAGE_SUFFIX, apply_events
from taleforge.state.store import GameStore


def collect(raw: dict[str, Any]) -> list[GameAction]:
    actions: list[GameAction] = []
    apply_events(normalize_events(raw), actions.append)
    return actions


class TestApplyEvents:
    """Tests for apply_events."""

    def test_none_is_noop(self) -> None:
        """Test missing events dispatch nothing."""
        actions: list[GameAction] = []

        apply_events(None, actions.append)

        assert actions == []

    def test_rolls_and_damage_dealt_not_dispatched(self) -> None:
        """Test roll requests and enemy damage never reach state here."""
        actions = collect(
            {"requested_rolls": [{"type": "skill_check", "skill": "stealth"}], "damage_dealt": 8}
        )

        assert actions == []

    def test_zero_amounts_skipped(self) -> None:
        """Test only positive amounts produce actions."""
        actions = collect({"damage_taken": 5, "healing": 0, "gold_found": 3, "gold_lost": 0})

        assert actions == [
            GameAction(type=ActionType.TAKE_DAMAGE, payload=5),
            GameAction(type=ActionType.ADD_GOLD, payload=3),
        ]

    def test_items(self) -> None:
        """Test string items get gear defaults and lost items go by name."""
        actions = collect(
            {
                "items_found": ["Rope", {"name": "Potion", "type": "consumable"}],
                "items_lost": ["Torch", {"name": "Key"}, {"weight": 2}],
            }
        )

        assert [(a.type, a.payload) for a in actions] == [
            (ActionType.ADD_ITEM, {"name": "Rope", "type": "gear", "weight": 1}),
            (ActionType.ADD_ITEM, {"name": "Potion", "type": "consumable"}),
            (ActionType.REMOVE_ITEM, "Torch"),
            (ActionType.REMOVE_ITEM, "Key"),
        ]

    def test_quests(self) -> None:
        """Test new quests are added and completed quests need an id."""
        actions = collect(
            {
                "quest_updates": [
                    {"status": "new", "name": "Escort", "description": "Guard the caravan"},
                    {"status": "completed", "id": "quest-1"},
                    {"status": "completed", "name": "No id"},
                ]
            }
        )

        assert [(a.type, a.payload) for a in actions] == [
            (ActionType.ADD_QUEST, {"name": "Escort", "description": "Guard the caravan"}),
            (ActionType.COMPLETE_QUEST, "quest-1"),
        ]

    def test_combat_and_world(self) -> None:
        """Test combat, companions, facts and NPCs in dispatch order."""
        actions = collect(
            {
                "location": "Crypt",
                "combat_start": {"enemies": [{"name": "Ghoul"}]},
                "enemy_updates": [{"id": "enemy-1", "hp": 2}],
                "remove_companions": ["Bram"],
                "world_facts": ["Ghouls hate light"],
                "npc_updates": [{"name": "Mira"}],
            }
        )

        assert [a.type for a in actions] == [
            ActionType.SET_LOCATION,
            ActionType.START_COMBAT,
            ActionType.UPDATE_ENEMY,
            ActionType.REMOVE_COMPANION,
            ActionType.ADD_WORLD_FACTS,
            ActionType.UPDATE_NPC,
        ]
        assert actions[1].payload["enemies"][0]["name"] == "Ghoul"
        assert actions[3].payload == {"name": "Bram"}
        assert actions[4].payload == [{"fact": "Ghouls hate light", "category": "general"}]

    def test_player_death(self, store: GameStore) -> None:
        """Test death posts a message and marks the character dead."""
        apply_events(normalize_events({"player_death": {"description": "The dragon's fire"}}), store.dispatch)

        state = store.get_state()
        assert state.character.current_hp == 0
        assert state.character.is_dead is True
        message = state.messages[-1]
        assert message.is_death_event is True
        assert message.content == f"💀 **The dragon's fire**\n\n{DEATH_MESSAGE_SUFFIX}"

    def test_applied_to_store(self, store: GameStore) -> None:
        """Test a full envelope updates the live state."""
        apply_events(
            normalize_events(
                {
                    "damage_taken": 10,
                    "gold_found": 5,
                    "exp_awarded": 100,
                    "conditions_gained": ["frightened"],
                    "items_found": ["Lantern"],
                    "rest_taken": "short",
                }
            ),
            store.dispatch,
        )

        state = store.get_state()
        assert state.character.current_hp == 44
        assert state.character.gold == 15
        assert state.character.exp == 100
        assert state.character.conditions == ["frightened"]
        assert [i.name for i in state.inventory] == ["Lantern"]
