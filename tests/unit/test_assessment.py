"""
Correlation & Confidence Tests
================================

Cross-stamp independence and agreement, and the aggregation of
per-stamp results into one confidence value.
"""

from __future__ import annotations

import pytest

from geocert.config import VerifyConfig
from geocert.schemas.verification import CorrelationAssessment, StampResult
from geocert.verify.assessment import build_credibility_assessment, compute_confidence
from geocert.verify.correlation import (
    analyze_correlation,
    calculate_agreement,
    calculate_independence,
    calculate_temporal_agreement,
)
from tests.conftest import NOW, make_stamp


def _result(
    score: float = 1.0,
    valid: bool = True,
    supports: bool = True,
    signals: bool = True,
    index: int = 0,
    plugin: str = "proofmode",
) -> StampResult:
    return StampResult(
        stamp_index=index,
        plugin=plugin,
        signatures_valid=valid,
        structure_valid=valid,
        signals_consistent=signals,
        supports_claim=supports,
        claim_support_score=score,
    )


# ────────────────────────────────────────────────────────────────
# Correlation
# ────────────────────────────────────────────────────────────────

class TestIndependence:

    def test_same_plugin(self):
        notes: list[str] = []
        assert calculate_independence([make_stamp(), make_stamp()], notes) == 0.5
        assert "same plugin" in notes[0]

    def test_distinct_plugins(self):
        notes: list[str] = []
        stamps = [make_stamp(), make_stamp(plugin="witnesschain")]
        assert calculate_independence(stamps, notes) == 1.0
        assert "different plugins" in notes[0]

    def test_mixed(self):
        stamps = [make_stamp(), make_stamp(), make_stamp(plugin="witnesschain")]
        assert calculate_independence(stamps, []) == pytest.approx(2 / 3)


class TestTemporalAgreement:

    def test_identical_footprints(self):
        assert calculate_temporal_agreement([make_stamp(), make_stamp()]) == 1.0

    def test_intersection_over_union(self):
        stamps = [make_stamp(start=NOW - 120, end=NOW + 60), make_stamp(start=NOW - 90, end=NOW + 30)]
        assert calculate_temporal_agreement(stamps) == pytest.approx(120 / 180)

    def test_disjoint(self):
        stamps = [make_stamp(start=NOW - 100, end=NOW - 50), make_stamp(start=NOW, end=NOW + 50)]
        assert calculate_temporal_agreement(stamps) == 0.0

    def test_missing_footprints_ignored(self):
        stamps = [make_stamp(), make_stamp().model_copy(update={"temporal_footprint": None})]
        assert calculate_temporal_agreement(stamps) == 0.0


class TestAgreement:

    def test_perfect_agreement(self):
        stamps = [make_stamp(), make_stamp()]
        assert calculate_agreement(stamps, [_result(0.9), _result(0.9)], []) == pytest.approx(1.0)

    def test_opposite_scores(self):
        """Variance 0.25 zeroes the score component; only timing agrees."""
        stamps = [make_stamp(), make_stamp()]
        agreement = calculate_agreement(stamps, [_result(0.0), _result(1.0)], [])
        assert agreement == pytest.approx(0.4)

    def test_too_few_valid_is_neutral(self):
        notes: list[str] = []
        stamps = [make_stamp(), make_stamp()]
        agreement = calculate_agreement(stamps, [_result(), _result(valid=False)], notes)
        assert agreement == 0.5
        assert "Insufficient" in notes[0]

    def test_single_stamp_has_no_correlation(self):
        assert analyze_correlation([make_stamp()], [_result()]) is None

    def test_analyze(self):
        correlation = analyze_correlation([make_stamp(), make_stamp()], [_result(), _result()])
        assert correlation.independence == 0.5
        assert correlation.agreement == pytest.approx(1.0)
        assert len(correlation.notes) == 2


# ────────────────────────────────────────────────────────────────
# Confidence
# ────────────────────────────────────────────────────────────────

class TestSingleStampConfidence:

    def test_no_stamps(self):
        assert compute_confidence([]) == 0.0

    def test_capped(self):
        """One stamp, however good, never exceeds 0.85."""
        assert compute_confidence([_result(1.0)]) == 0.85

    def test_below_cap_passes_through(self):
        assert compute_confidence([_result(0.6)]) == pytest.approx(0.6)

    def test_invalid_floor(self):
        assert compute_confidence([_result(1.0, valid=False)]) == 0.1

    def test_inconsistent_signals_discounted(self):
        assert compute_confidence([_result(0.5, signals=False)]) == pytest.approx(0.4)

    def test_not_supporting_still_scored(self):
        assert compute_confidence([_result(0.4, supports=False)]) == pytest.approx(0.4)


class TestMultiStampConfidence:

    def test_all_invalid_floor(self):
        results = [_result(valid=False), _result(valid=False, index=1)]
        assert compute_confidence(results, CorrelationAssessment(independence=1, agreement=1)) == 0.1

    def test_bonuses(self):
        results = [_result(0.6), _result(0.6, index=1)]
        correlation = CorrelationAssessment(independence=1.0, agreement=0.9)
        # 0.6 + (1.0 - 0.5) * 0.2 + (0.9 - 0.7) * 0.15
        assert compute_confidence(results, correlation) == pytest.approx(0.73)

    def test_no_bonus_at_thresholds(self):
        results = [_result(0.6), _result(0.6, index=1)]
        correlation = CorrelationAssessment(independence=0.5, agreement=0.7)
        assert compute_confidence(results, correlation) == pytest.approx(0.6)

    def test_invalid_stamp_penalty(self):
        results = [_result(0.8), _result(valid=False, index=1)]
        correlation = CorrelationAssessment(independence=0.5, agreement=0.5)
        assert compute_confidence(results, correlation) == pytest.approx(0.75)

    def test_unsupporting_stamp_penalized(self):
        """Valid multi-stamp members must also support the claim."""
        results = [_result(0.8), _result(0.2, supports=False, index=1)]
        assert compute_confidence(results, None) == pytest.approx(0.75)

    def test_clamped(self):
        results = [_result(1.0), _result(1.0, index=1)]
        correlation = CorrelationAssessment(independence=1.0, agreement=1.0)
        assert compute_confidence(results, correlation) == 1.0

    def test_config_constants_respected(self):
        config = VerifyConfig(invalid_stamp_penalty=0.2)
        results = [_result(0.8), _result(valid=False, index=1)]
        assert compute_confidence(results, None, config) == pytest.approx(0.6)

    def test_build_assessment(self):
        results = [_result(0.6), _result(0.6, index=1)]
        correlation = CorrelationAssessment(independence=0.5, agreement=0.5)
        assessment = build_credibility_assessment(results, correlation)
        assert assessment.confidence == pytest.approx(0.6)
        assert assessment.correlation == correlation
        assert len(assessment.stamp_results) == 2
