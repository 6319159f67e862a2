"""Tests for satisfaction scoring"""

import pytest

from fiscal_ai.routing.scoring import (
    confidence_only_scorer, default_satisfaction_scorer, specificity,
)

from tests.helpers import DETAILED_REPLY, make_answer


class TestSpecificity:
    """Test the specificity heuristic"""

    def test_detailed_answer_scores_high(self):
        """Test amounts, rates, years and examples raise specificity"""
        assert specificity(DETAILED_REPLY) == pytest.approx(1.0)

    def test_short_answer_penalized(self):
        """Test a terse answer without markers"""
        assert specificity("Oui, c'est possible.") == pytest.approx(0.2)

    def test_evasive_answer_penalized(self):
        """Test evasive phrasing drives specificity to zero"""
        assert specificity("Je ne sais pas.") == pytest.approx(0.0)

    def test_marker_bonus_is_capped(self):
        """Test markers add at most 0.4"""
        text = (
            "Article 50-0 du CGI : abattement de 34 % en 2025, soit 6 800 € pour 20 000 € "
            "de recettes. Par exemple, l'URSSAF applique ce taux."
        )

        assert specificity(text) == pytest.approx(1.0)

    def test_value_stays_in_unit_interval(self):
        """Test clamping on both ends"""
        for text in ("", "erreur", DETAILED_REPLY * 3):
            assert 0.0 <= specificity(text) <= 1.0


class TestScorers:
    """Test the scorer callables"""

    def test_default_scorer_combines_confidence_and_specificity(self):
        """Test 0.7 * confidence + 0.3 * specificity"""
        answer = make_answer(text=DETAILED_REPLY, confidence=0.8)

        assert default_satisfaction_scorer(answer) == pytest.approx(0.86)

    def test_default_scorer_vague_answer(self):
        """Test a vague low-confidence answer stays below the default threshold"""
        answer = make_answer(text="Oui, c'est possible.", confidence=0.5)

        assert default_satisfaction_scorer(answer) == pytest.approx(0.41)
        assert default_satisfaction_scorer(answer) < 0.75

    def test_confidence_only_scorer(self):
        """Test the confidence passthrough scorer"""
        assert confidence_only_scorer(make_answer(confidence=0.42)) == pytest.approx(0.42)
