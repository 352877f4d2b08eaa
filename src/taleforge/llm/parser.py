"""Response parser: narrative text plus a normalized event envelope.

One raw model response goes in; a ``ParsedResponse`` comes out. The
parser never raises. Extraction runs in priority order:

1. A fenced ```` ```json ```` block. Narrative is the text before it. A
   body that fails to parse gets exactly one repair pass; if that fails
   too the whole response becomes narrative with no events.
2. An unfenced object containing ``"requested_rolls"``, sliced from the
   first ``{`` to the last ``}``. No repair.
3. The text roll detector, for roll requests written in prose.
4. Pure narrative.

Example:
    >>> parsed = parse_response("The door creaks.\\n```json\\n{\\"gold_found\\": 5}\\n```")
    >>> parsed.narrative, parsed.events.gold_found
    ('The door creaks.', 5)
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from taleforge.core.constants import DEFAULT_DC
from taleforge.core.logging import get_logger
from taleforge.models.events import (
    CombatEnemy,
    CombatStart,
    GameEvents,
    PlayerDeath,
    QuestUpdate,
    RollRequest,
    RollType,
    WorldFact,
    WorldFactCategory,
)


logger = get_logger(__name__)


KNOWN_SKILLS: tuple[str, ...] = (
    "perception",
    "stealth",
    "athletics",
    "acrobatics",
    "investigation",
    "insight",
    "persuasion",
    "deception",
    "intimidation",
    "sleight of hand",
    "arcana",
    "history",
    "nature",
    "religion",
    "medicine",
    "survival",
    "animal handling",
    "performance",
    "thieves tools",
    "thieves' tools",
    "strength",
    "dexterity",
    "constitution",
    "intelligence",
    "wisdom",
    "charisma",
    "attack",
    "initiative",
)
"""Skill, ability and action names the text detector recognizes, in scan order."""

FENCED_JSON_PATTERN = re.compile(r"```json\s*\n?([\s\S]*?)\n?\s*```")
TRAILING_COMMA_PATTERN = re.compile(r",\s*([}\]])")
DC_PATTERNS = (
    re.compile(r"\bdc\s*(\d+)\b"),
    re.compile(r"difficulty class\s*(\d+)"),
)
ROLL_PHRASE_PATTERN = re.compile(
    r"(?:roll|make|attempt)\s+(?:a|an)\s+([\w\s']+?)\s+(?:check|save|saving throw)",
    re.IGNORECASE,
)
UNFENCED_ROLLS_KEY = '"requested_rolls"'

_UNPARSEABLE = object()
_ROLL_TYPES = tuple(t.value for t in RollType)
_FACT_CATEGORIES = tuple(c.value for c in WorldFactCategory)


@dataclass(frozen=True)
class ParsedResponse:
    """Narrative and events extracted from one model response.

    Attributes:
        narrative: Text shown to the player.
        events: The normalized envelope, or None for pure narrative.
    """

    narrative: str
    events: GameEvents | None = None

    @property
    def requested_rolls(self) -> list[RollRequest]:
        return self.events.requested_rolls if self.events is not None else []


# =============================================================================
# Parsing
# =============================================================================


def parse_response(raw: str | None, *, default_dc: int = DEFAULT_DC) -> ParsedResponse:
    """Extract narrative text and game events from a model response.

    Args:
        raw: The full response text.
        default_dc: DC for roll requests that omit one.

    Returns:
        ParsedResponse; ``events`` is None when nothing structured was found.
    """
    if not raw:
        return ParsedResponse(narrative="", events=None)

    match = FENCED_JSON_PATTERN.search(raw)
    if match is None:
        return _parse_without_fence(raw, default_dc)

    narrative = raw[: match.start()].strip()
    body = match.group(1)

    data = _load_json(body)
    if data is _UNPARSEABLE:
        logger.warning("JSON block failed to parse, attempting repair", length=len(body))
        data = _load_json(repair_json(body))
        if data is _UNPARSEABLE:
            logger.warning("JSON repair failed, treating response as narrative", body=body[:200])
            return ParsedResponse(narrative=raw.strip(), events=None)
        logger.info("JSON block repaired")

    events = normalize_events(data, default_dc=default_dc)
    if events.requested_rolls:
        logger.info(
            "Rolls requested",
            count=len(events.requested_rolls),
            rolls=[f"{r.type.value}: {r.description} (DC {r.dc})" for r in events.requested_rolls],
        )
    return ParsedResponse(narrative=narrative, events=events)


def _parse_without_fence(raw: str, default_dc: int) -> ParsedResponse:
    key_index = raw.rfind(UNFENCED_ROLLS_KEY)
    start = raw.find("{")
    end = raw.rfind("}")
    if key_index != -1 and -1 < start < key_index < end:
        data = _load_json(raw[start : end + 1])
        if data is not _UNPARSEABLE:
            logger.warning("Parsed unfenced JSON with requested_rolls")
            events = normalize_events(data, default_dc=default_dc)
            return ParsedResponse(narrative=raw[:start].strip(), events=events)
        logger.warning("Unfenced JSON with requested_rolls failed to parse")

    detected = detect_text_roll_requests(raw, default_dc=default_dc)
    if detected:
        logger.warning("Roll requests detected in prose", count=len(detected))
        events = normalize_events({"requested_rolls": detected, "_textRollDetected": True})
        return ParsedResponse(narrative=raw.strip(), events=events)

    return ParsedResponse(narrative=raw.strip(), events=None)


def _load_json(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError:
        return _UNPARSEABLE


def repair_json(text: str) -> str:
    """Best-effort fix for common model JSON mistakes.

    Strips trailing commas before ``}`` or ``]``, then closes unbalanced
    brackets and braces with independent counters: missing ``]`` are
    appended first, then missing ``}``. The result may still be invalid.
    """
    repaired = TRAILING_COMMA_PATTERN.sub(r"\1", text)

    missing_brackets = repaired.count("[") - repaired.count("]")
    missing_braces = repaired.count("{") - repaired.count("}")
    if missing_brackets > 0:
        repaired += "]" * missing_brackets
    if missing_braces > 0:
        repaired += "}" * missing_braces
    return repaired


# =============================================================================
# Text Roll Detection
# =============================================================================


def detect_text_roll_requests(text: str, *, default_dc: int = DEFAULT_DC) -> list[dict[str, Any]]:
    """Find roll requests the model wrote in prose instead of JSON.

    The primary pattern ("roll/make/attempt a/an <skill> check/save") is
    matched globally. Only when it finds nothing does the fallback scan
    KNOWN_SKILLS for "<skill> check|save|saving throw", stopping at the
    first hit.

    Args:
        text: Response text.
        default_dc: DC when the text names none.

    Returns:
        Raw roll request mappings, possibly empty.
    """
    rolls: list[dict[str, Any]] = []
    dc = _detect_dc(text.lower(), default_dc)

    for match in ROLL_PHRASE_PATTERN.finditer(text):
        phrase = match.group(1).strip().lower()
        skill = next((s for s in KNOWN_SKILLS if s in phrase or phrase in s), None)
        if skill is None:
            continue
        rolls.append(
            {
                "type": _roll_type_for(match.group(0)),
                "skill": skill,
                "dc": dc,
                "description": match.group(0).strip(),
            }
        )

    if rolls:
        return rolls

    for skill in KNOWN_SKILLS:
        escaped = re.escape(skill).replace("'", ".")
        pattern = re.compile(rf"\b{escaped}\s+(?:check|save|saving throw)", re.IGNORECASE)
        match = pattern.search(text)
        if match:
            rolls.append(
                {
                    "type": _roll_type_for(match.group(0)),
                    "skill": skill,
                    "dc": dc,
                    "description": f"{skill} check (DC {dc})",
                }
            )
            break

    return rolls


def _detect_dc(lower: str, default_dc: int) -> int:
    for pattern in DC_PATTERNS:
        match = pattern.search(lower)
        if match:
            return int(match.group(1))
    return default_dc


def _roll_type_for(phrase: str) -> str:
    lower = phrase.lower()
    if "save" in lower or "saving throw" in lower:
        return RollType.SAVING_THROW.value
    return RollType.SKILL_CHECK.value


# =============================================================================
# Normalization
# =============================================================================


def normalize_events(raw: Any, *, default_dc: int = DEFAULT_DC) -> GameEvents:
    """Project arbitrary parsed JSON onto a fully populated GameEvents.

    Total and idempotent: values of the wrong type become the field's
    default, list entries of the wrong shape are dropped, and
    ``normalize_events(normalize_events(x)) == normalize_events(x)``.

    Args:
        raw: A mapping from the model, an existing GameEvents, or anything.
        default_dc: DC for roll requests that omit one or give a non-number.

    Returns:
        GameEvents with every field set.
    """
    if isinstance(raw, GameEvents):
        raw = raw.model_dump(mode="json")
    if not isinstance(raw, Mapping):
        raw = {}

    return GameEvents(
        requested_rolls=[
            roll
            for roll in (
                _normalize_roll(entry, default_dc) for entry in _as_list(raw.get("requested_rolls"))
            )
            if roll is not None
        ],
        damage_dealt=_as_amount(raw.get("damage_dealt")),
        damage_taken=_as_amount(raw.get("damage_taken")),
        healing=_as_amount(raw.get("healing")),
        gold_found=_as_amount(raw.get("gold_found")),
        gold_lost=_as_amount(raw.get("gold_lost")),
        silver_found=_as_amount(raw.get("silver_found")),
        silver_lost=_as_amount(raw.get("silver_lost")),
        copper_found=_as_amount(raw.get("copper_found")),
        copper_lost=_as_amount(raw.get("copper_lost")),
        exp_awarded=_as_amount(raw.get("exp_awarded")),
        items_found=_items(raw.get("items_found")),
        items_lost=_items(raw.get("items_lost")),
        rest_taken=raw.get("rest_taken") if raw.get("rest_taken") in ("short", "long") else None,
        conditions_gained=_strings(raw.get("conditions_gained")),
        conditions_removed=_strings(raw.get("conditions_removed")),
        quest_updates=[
            quest
            for quest in (_normalize_quest(entry) for entry in _as_list(raw.get("quest_updates")))
            if quest is not None
        ],
        location=_as_text(raw.get("location")),
        combat_start=_normalize_combat_start(raw.get("combat_start")),
        combat_end=raw.get("combat_end") is True,
        enemy_updates=_records(raw.get("enemy_updates"), key="id"),
        add_companions=_records(raw.get("add_companions"), key="name"),
        update_companions=_records(raw.get("update_companions"), key="name"),
        remove_companions=_companion_names(raw.get("remove_companions")),
        world_facts=[
            fact
            for fact in (_normalize_world_fact(entry) for entry in _as_list(raw.get("world_facts")))
            if fact is not None
        ],
        npc_updates=_records(raw.get("npc_updates"), key="name"),
        player_death=_normalize_player_death(raw.get("player_death")),
        text_roll_detected=bool(raw.get("_textRollDetected") or raw.get("text_roll_detected")),
    )


def _as_list(value: Any) -> list[Any]:
    return list(value) if isinstance(value, list) else []


def _as_int(value: Any) -> int | None:
    """Integer view of a JSON number; None for bools, non-numbers and fractions."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return int(value)
    return None


def _as_amount(value: Any) -> int:
    number = _as_int(value)
    return number if number is not None and number > 0 else 0


def _as_text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _as_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return False


def _strings(value: Any) -> list[str]:
    return [text for text in (_as_text(v) for v in _as_list(value)) if text is not None]


def _items(value: Any) -> list[str | dict[str, Any]]:
    items: list[str | dict[str, Any]] = []
    for entry in _as_list(value):
        if isinstance(entry, Mapping):
            items.append(dict(entry))
        elif (text := _as_text(entry)) is not None:
            items.append(text)
    return items


def _records(value: Any, *, key: str) -> list[dict[str, Any]]:
    """Mapping entries that carry a usable ``key`` (an id or a name)."""
    records = []
    for entry in _as_list(value):
        if not isinstance(entry, Mapping):
            continue
        identity = entry.get(key)
        if isinstance(identity, int) and not isinstance(identity, bool):
            identity = str(identity)
        if _as_text(identity) is None:
            continue
        records.append({**entry, key: identity.strip()})
    return records


def _companion_names(value: Any) -> list[str]:
    names = []
    for entry in _as_list(value):
        if isinstance(entry, Mapping):
            entry = entry.get("name")
        if (name := _as_text(entry)) is not None:
            names.append(name)
    return names


def _normalize_roll(entry: Any, default_dc: int) -> RollRequest | None:
    if not isinstance(entry, Mapping):
        return None

    raw_type = entry.get("type")
    roll_type = RollType(raw_type) if raw_type in _ROLL_TYPES else RollType.SKILL_CHECK
    dc = _as_int(entry.get("dc"))

    return RollRequest(
        type=roll_type,
        skill=_as_text(entry.get("skill")),
        ability=_as_text(entry.get("ability")),
        dc=dc if dc is not None else default_dc,
        description=entry.get("description") if isinstance(entry.get("description"), str) else "",
        attacker=_as_text(entry.get("attacker")),
        modifier=_as_int(entry.get("modifier")),
        notation=_as_text(entry.get("notation")),
        advantage=_as_flag(entry.get("advantage")),
        disadvantage=_as_flag(entry.get("disadvantage")),
    )


def _normalize_quest(entry: Any) -> QuestUpdate | None:
    if not isinstance(entry, Mapping) or entry.get("status") not in ("new", "completed"):
        return None
    quest_id = entry.get("id")
    if isinstance(quest_id, int) and not isinstance(quest_id, bool):
        quest_id = str(quest_id)
    return QuestUpdate(
        status=entry["status"],
        name=entry.get("name") if isinstance(entry.get("name"), str) else "",
        description=entry.get("description") if isinstance(entry.get("description"), str) else "",
        id=_as_text(quest_id),
    )


def _normalize_combat_start(value: Any) -> CombatStart | None:
    if not isinstance(value, Mapping):
        return None
    enemies = [
        CombatEnemy(
            name=_as_text(enemy.get("name")),
            hp=_as_int(enemy.get("hp")),
            ac=_as_int(enemy.get("ac")),
            initiative=_as_int(enemy.get("initiative")),
        )
        for enemy in _as_list(value.get("enemies"))
        if isinstance(enemy, Mapping)
    ]
    return CombatStart(enemies=enemies, player_initiative=_as_int(value.get("player_initiative")))


def _normalize_world_fact(entry: Any) -> WorldFact | None:
    if isinstance(entry, str):
        text = entry.strip()
        return WorldFact(fact=text) if text else None
    if not isinstance(entry, Mapping) or (fact := _as_text(entry.get("fact"))) is None:
        return None
    category = entry.get("category")
    if category not in _FACT_CATEGORIES:
        category = WorldFactCategory.GENERAL
    return WorldFact(fact=fact, category=WorldFactCategory(category))


def _normalize_player_death(value: Any) -> PlayerDeath | None:
    if not value:
        return None
    description = _as_text(value.get("description")) if isinstance(value, Mapping) else None
    return PlayerDeath(description=description) if description else PlayerDeath()


__all__ = [
    "KNOWN_SKILLS",
    "ParsedResponse",
    "parse_response",
    "repair_json",
    "detect_text_roll_requests",
    "normalize_events",
]
