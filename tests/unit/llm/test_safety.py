"""Tests for pre-narrated outcome detection."""

from __future__ import annotations

import pytest

from taleforge.llm.safety import OUTCOME_KEYWORDS, detect_pre_narrated_outcome


class TestDetectPreNarratedOutcome:
    """Tests for detect_pre_narrated_outcome."""

    @pytest.mark.parametrize(
        "text",
        [
            "You successfully pick the lock.",
            "Your blade strikes true and the goblin FALLS DEAD.",
            "The orc's axe misses you by inches.",
            "You notice a glint behind the altar.",
            "CRITICAL HIT!",
        ],
    )
    def test_outcomes_detected(self, text: str) -> None:
        """Test outcome phrases are found regardless of case."""
        assert detect_pre_narrated_outcome(text) is True

    @pytest.mark.parametrize(
        "text",
        [
            "You approach the lock carefully.",
            "The goblin raises its blade. Roll to see what happens.",
            "",
            None,
        ],
    )
    def test_setup_not_flagged(self, text: str | None) -> None:
        """Test setup narration and empty input pass."""
        assert detect_pre_narrated_outcome(text) is False

    def test_every_keyword_triggers(self) -> None:
        """Test each listed keyword is enough on its own."""
        for keyword in OUTCOME_KEYWORDS:
            assert detect_pre_narrated_outcome(f"... {keyword.upper()} ...") is True
