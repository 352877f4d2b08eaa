"""Model-facing layer: transport, prompts, reply parsing and safety checks.

Submodules:
    client: OpenAI-compatible chat client (OpenAI, OpenRouter, Gemini)
    prompts: System prompt and follow-up instruction blocks
    parser: Narrative/event extraction from raw model replies
    safety: Pre-narrated outcome detection
"""

from __future__ import annotations

from taleforge.llm.client import LLMClient, format_messages
from taleforge.llm.parser import (
    KNOWN_SKILLS,
    ParsedResponse,
    detect_text_roll_requests,
    normalize_events,
    parse_response,
    repair_json,
)
from taleforge.llm.prompts import (
    CORRECTION_CLAUSE,
    FOLLOW_UP_INSTRUCTIONS,
    RESPONSE_FORMAT,
    build_system_prompt,
)
from taleforge.llm.safety import OUTCOME_KEYWORDS, detect_pre_narrated_outcome


__all__ = [
    # Transport
    "LLMClient",
    "format_messages",
    # Parsing
    "KNOWN_SKILLS",
    "ParsedResponse",
    "parse_response",
    "repair_json",
    "detect_text_roll_requests",
    "normalize_events",
    # Prompts
    "RESPONSE_FORMAT",
    "FOLLOW_UP_INSTRUCTIONS",
    "CORRECTION_CLAUSE",
    "build_system_prompt",
    # Safety
    "OUTCOME_KEYWORDS",
    "detect_pre_narrated_outcome",
]
