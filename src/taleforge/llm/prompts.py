"""Prompt contract between the client and the narrating model.

The system prompt tells the model it never rolls dice, and describes the
JSON block the parser expects. The follow-up block and the correction
clause wrap roll summaries sent back by the roll resolver; their wording
is normative, since the model must treat the results as ground truth.
"""

from __future__ import annotations

from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from taleforge.models.character import Character
    from taleforge.models.state import CombatState, GameState


ROLL_RESULT_TAG = "[ROLL RESULT:"
"""Prefix of every roll summary line sent back to the model."""

CORE_INSTRUCTIONS = """# YOU ARE THE DUNGEON MASTER

You run a tabletop RPG adventure for a single player.

## CRITICAL RULES

1. **THE CLIENT ROLLS ALL DICE, FOR EVERYONE.** You never roll, simulate or invent a roll. \
When any roll is needed (player check, enemy attack, saving throw, damage), request it in the JSON block.
2. **RESPECT DICE RESULTS.** Results arrive as [ROLL RESULT: ...] lines. Narrate exactly what they say.
3. **REQUEST NPC AND ENEMY ROLLS TOO.** Enemy attacks and saves go through requested_rolls.
4. **NEVER NARRATE AN OUTCOME BEFORE ITS ROLL.** A response that requests rolls ends with the setup. \
The outcome comes in your next response, after the results arrive.
5. **BE THE WORLD, NOT THE PLAYER.** Describe the world and its people, then ask what the player does."""

RESPONSE_FORMAT = """## RESPONSE FORMAT

Write the narrative first. When game state changes or rolls are needed, end with one JSON block:

```json
{
  "requested_rolls": [
    { "type": "skill_check", "skill": "perception", "dc": 15, "description": "Spot the hidden trap" },
    { "type": "npc_attack", "dc": 12, "description": "Goblin slashes with a rusty sword", "attacker": "Goblin" },
    { "type": "damage_roll", "notation": "1d8+3", "description": "Longsword damage" }
  ],
  "damage_taken": 0,
  "healing": 0,
  "items_found": [],
  "items_lost": [],
  "gold_found": 0,
  "gold_lost": 0,
  "silver_found": 0,
  "silver_lost": 0,
  "copper_found": 0,
  "copper_lost": 0,
  "exp_awarded": 0,
  "rest_taken": null,
  "conditions_gained": [],
  "conditions_removed": [],
  "quest_updates": [{ "status": "new", "name": "Quest Name", "description": "Quest description" }],
  "location": "",
  "combat_start": { "enemies": [{ "name": "Goblin", "hp": 15, "ac": 13, "initiative": 14 }], "player_initiative": 12 },
  "combat_end": false,
  "enemy_updates": [{ "id": "enemy-id", "hp": 8 }],
  "world_facts": [{ "fact": "The mayor is a vampire", "category": "character" }],
  "npc_updates": [{ "name": "Mira", "disposition": "friendly" }],
  "player_death": null
}
```

Include only relevant fields. Leave the block out entirely when nothing changed."""

ROLL_REQUEST_RULES = """## ROLL REQUEST RULES
- Player checks: type "skill_check", "saving_throw" or "attack_roll"; dc is the target.
- Player damage: type "damage_roll" with exact dice in "notation" (e.g. "1d8+3"). On a critical hit, double the dice.
- NPC attacks: type "npc_attack" with the attacker name. The client always targets the player's real AC.
- NPC saves: type "npc_save"; dc is the spell or ability DC.
- Multiple rolls in one response are fine (two enemies attacking at once).
- Each world fact category is one of: lore, character, location, event, relationship, general."""

FOLLOW_UP_INSTRUCTIONS = """[SYSTEM: The client just rolled the dice below. These results are authoritative ground truth.
- Treat every number as final. Do not reinterpret, reroll or override it.
- Narrate what happens as a result. Do NOT request the same rolls again.
- If an attack HIT, request a damage_roll before narrating any damage.
- If an NPC or enemy acts, request an npc_attack or npc_save roll. Never assert its outcome yourself.]"""

CORRECTION_CLAUSE = """[CORRECTION: Your previous response narrated an outcome before the dice were rolled. \
Discard that narration entirely and defer to the roll results below, even where they contradict it.]"""

TEXT_ROLL_NOTICE = (
    "🎲 The DM asked for a roll in the story text instead of the game data. "
    "The client rolled it for you."
)

ROLL_CHAIN_LIMIT_NOTICE = (
    "⚠️ Roll chain limit reached ({depth} levels). "
    "The DM will continue from here on your next message."
)


def build_system_prompt(state: GameState) -> str:
    """Assemble the system prompt from the current game state."""
    parts = [CORE_INSTRUCTIONS]

    if state.character is not None:
        parts.append(_character_block(state.character))

    if state.inventory:
        equipped = [i.name for i in state.inventory if i.equipped]
        carried = [
            f"{i.name} (x{i.quantity})" if i.quantity > 1 else i.name
            for i in state.inventory
            if not i.equipped
        ]
        lines = ["## INVENTORY"]
        if equipped:
            lines.append(f"**Equipped:** {', '.join(equipped)}")
        if carried:
            lines.append(f"**Carried:** {', '.join(carried)}")
        parts.append("\n".join(lines))

    active_quests = [q for q in state.quests if q.status == "active"]
    if active_quests:
        parts.append(
            "## ACTIVE QUESTS\n"
            + "\n".join(f"- **{q.name}:** {q.description or 'No details'}" for q in active_quests)
        )

    if state.roll_history:
        recent = state.roll_history[-5:]
        parts.append(
            "## RECENT ROLLS\n"
            + "\n".join(f"- {r.get('description') or r.get('notation')}: {r.get('total')}" for r in recent)
        )

    if state.current_location:
        parts.append(f"## CURRENT LOCATION\n{state.current_location}")

    if state.world_facts:
        parts.append(
            "## ESTABLISHED WORLD FACTS (never contradict these)\n"
            + "\n".join(f"- [{f.category.value}] {f.fact}" for f in state.world_facts)
        )

    if state.npcs:
        parts.append(
            "## KNOWN NPCS\n"
            + "\n".join(
                f"- **{n.name}**" + (f" ({n.disposition})" if n.disposition else "")
                + (f": {n.description}" if n.description else "")
                for n in state.npcs
            )
        )

    if state.companions:
        parts.append("## COMPANIONS\n" + "\n".join(f"- {c.name}" for c in state.companions))

    if state.combat.active:
        parts.append(_combat_block(state.combat))

    parts.extend([RESPONSE_FORMAT, ROLL_REQUEST_RULES])
    return "\n\n".join(parts)


def _character_block(character: Character) -> str:
    from taleforge.engine.rules import format_modifier, get_modifier, get_proficiency_bonus

    scores = character.ability_scores.model_dump()
    stats = ", ".join(
        f"{ability[:3].upper()}: {score} ({format_modifier(get_modifier(score))})"
        for ability, score in scores.items()
    )
    conditions = ", ".join(character.conditions) if character.conditions else "None"
    return (
        "## PLAYER CHARACTER\n"
        f"- **Name:** {character.name}\n"
        f"- **Race:** {character.race}\n"
        f"- **Class:** {character.class_name} (Level {character.level})\n"
        f"- **HP:** {character.current_hp}/{character.max_hp}\n"
        f"- **EXP:** {character.exp}\n"
        f"- **AC:** {character.armor_class}\n"
        f"- **Wealth:** {character.gold} gp | {character.silver} sp | {character.copper} cp\n"
        f"- **Proficiency Bonus:** {format_modifier(get_proficiency_bonus(character.level))}\n"
        f"- **Stats:** {stats}\n"
        f"- **Conditions:** {conditions}"
    )


def _combat_block(combat: CombatState) -> str:
    enemies = "\n".join(
        f"- {e.name} (id: {e.id}) HP {e.hp}/{e.max_hp}, AC {e.ac}, {e.condition}"
        for e in combat.enemies
    )
    order = " → ".join(f"{t.name} ({t.initiative})" for t in combat.turn_order)
    return f"## COMBAT (round {combat.round})\n{enemies}\n**Turn order:** {order}"


__all__ = [
    "ROLL_RESULT_TAG",
    "CORE_INSTRUCTIONS",
    "RESPONSE_FORMAT",
    "ROLL_REQUEST_RULES",
    "FOLLOW_UP_INSTRUCTIONS",
    "CORRECTION_CLAUSE",
    "TEXT_ROLL_NOTICE",
    "ROLL_CHAIN_LIMIT_NOTICE",
    "build_system_prompt",
]
