"""Tests for system prompt assembly."""

from __future__ import annotations

from typing import Any

import pytest

from taleforge.llm.prompts import (
    CORE_INSTRUCTIONS,
    RESPONSE_FORMAT,
    ROLL_REQUEST_RULES,
    build_system_prompt,
)
from taleforge.models.events import WorldFact
from taleforge.models.state import (
    CombatState,
    Companion,
    Enemy,
    GameState,
    InventoryItem,
    NpcRecord,
    Quest,
    TurnEntry,
)


@pytest.fixture
def full_state(sample_character: Any) -> GameState:
    """A state with every optional prompt section populated."""
    return GameState(
        character=sample_character,
        inventory=[
            InventoryItem(name="Warhammer", equipped=True),
            InventoryItem(name="Torch", quantity=3),
            InventoryItem(name="Rope"),
        ],
        quests=[
            Quest(name="Find the relic", description="Recover it from the crypt"),
            Quest(name="Old job", status="completed"),
        ],
        roll_history=[{"description": f"Roll {i}", "total": i} for i in range(7)],
        current_location="Sunken Crypt",
        world_facts=[WorldFact(fact="The mayor is a vampire", category="character")],
        npcs=[NpcRecord(name="Mira", disposition="friendly", description="A smith")],
        companions=[Companion(name="Bram")],
        combat=CombatState(
            active=True,
            round=2,
            enemies=[Enemy(id="enemy-1", name="Goblin", hp=7, max_hp=7, ac=13, initiative=12)],
            turn_order=[
                TurnEntry(type="player", name="Thorin", initiative=15),
                TurnEntry(type="enemy", id="enemy-1", name="Goblin", initiative=12),
            ],
        ),
    )


class TestBuildSystemPrompt:
    """Tests for build_system_prompt."""

    def test_empty_state(self) -> None:
        """Test a fresh state gets only the fixed sections."""
        prompt = build_system_prompt(GameState())

        assert prompt == "\n\n".join([CORE_INSTRUCTIONS, RESPONSE_FORMAT, ROLL_REQUEST_RULES])

    def test_character_block(self, full_state: GameState) -> None:
        """Test the character block shows live stats and AC."""
        prompt = build_system_prompt(full_state)

        assert "- **Name:** Thorin" in prompt
        assert "- **Class:** Fighter (Level 5)" in prompt
        assert "- **HP:** 44/44" in prompt
        assert "- **AC:** 18" in prompt
        assert "- **Proficiency Bonus:** +3" in prompt
        assert "STR: 16 (+3)" in prompt
        assert "CHA: 8 (-1)" in prompt
        assert "- **Conditions:** None" in prompt

    def test_inventory_and_quests(self, full_state: GameState) -> None:
        """Test equipped and carried items and only active quests."""
        prompt = build_system_prompt(full_state)

        assert "**Equipped:** Warhammer" in prompt
        assert "**Carried:** Torch (x3), Rope" in prompt
        assert "- **Find the relic:** Recover it from the crypt" in prompt
        assert "Old job" not in prompt

    def test_recent_rolls_limited(self, full_state: GameState) -> None:
        """Test only the last five rolls are listed."""
        prompt = build_system_prompt(full_state)

        assert "- Roll 6: 6" in prompt
        assert "- Roll 2: 2" in prompt
        assert "- Roll 1: 1" not in prompt

    def test_world_sections(self, full_state: GameState) -> None:
        """Test location, facts, NPCs, companions and combat."""
        prompt = build_system_prompt(full_state)

        assert "## CURRENT LOCATION\nSunken Crypt" in prompt
        assert "- [character] The mayor is a vampire" in prompt
        assert "- **Mira** (friendly): A smith" in prompt
        assert "## COMPANIONS\n- Bram" in prompt
        assert "## COMBAT (round 2)" in prompt
        assert "- Goblin (id: enemy-1) HP 7/7, AC 13, healthy" in prompt
        assert "**Turn order:** Thorin (15) → Goblin (12)" in prompt

    def test_section_order(self, full_state: GameState) -> None:
        """Test sections appear in a fixed order ending with the format rules."""
        prompt = build_system_prompt(full_state)

        headings = [
            "# YOU ARE THE DUNGEON MASTER",
            "## PLAYER CHARACTER",
            "## INVENTORY",
            "## ACTIVE QUESTS",
            "## RECENT ROLLS",
            "## CURRENT LOCATION",
            "## ESTABLISHED WORLD FACTS",
            "## KNOWN NPCS",
            "## COMPANIONS",
            "## COMBAT",
            "## RESPONSE FORMAT",
            "## ROLL REQUEST RULES",
        ]
        positions = [prompt.index(heading) for heading in headings]
        assert positions == sorted(positions)
        assert prompt.endswith(ROLL_REQUEST_RULES)
