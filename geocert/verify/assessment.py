"""
Confidence Aggregation
=======================

Combines per-stamp results and correlation into one confidence value.

Single stamp:
    invalid (signatures or structure)  → invalid_floor (0.1)
    otherwise                          → min(score × 0.8 if signals are
                                         inconsistent, single_stamp_cap)

Multiple stamps (valid = signatures ∧ structure ∧ supports claim):
    mean(valid scores)
      + (independence − 0.5) × 0.2   when independence > 0.5
      + (agreement − 0.7) × 0.15     when agreement > 0.7
      − 0.05 × invalid count
    clamped to [0, 1]; no valid stamps → invalid_floor

A failed-but-attempted verification therefore never scores 0; only a
proof with no stamps at all does. This is a heuristic, NOT a calibrated
probability.
"""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from geocert.config import VerifyConfig
from geocert.schemas.verification import CorrelationAssessment, CredibilityAssessment, StampResult


def compute_confidence(
    results: Sequence[StampResult],
    correlation: Optional[CorrelationAssessment] = None,
    config: Optional[VerifyConfig] = None,
) -> float:
    config = config or VerifyConfig()
    if not results:
        return 0.0
    if len(results) == 1:
        return single_stamp_confidence(results[0], config)
    return multi_stamp_confidence(results, correlation, config)


def single_stamp_confidence(result: StampResult, config: VerifyConfig) -> float:
    if not result.is_internally_valid:
        return config.invalid_floor

    confidence = result.claim_support_score
    if not result.signals_consistent:
        confidence *= config.inconsistent_signal_factor
    return min(confidence, config.single_stamp_cap)


def multi_stamp_confidence(
    results: Sequence[StampResult],
    correlation: Optional[CorrelationAssessment],
    config: VerifyConfig,
) -> float:
    valid = [r for r in results if r.is_valid]
    invalid_count = len(results) - len(valid)
    if not valid:
        return config.invalid_floor

    confidence = float(np.mean([r.claim_support_score for r in valid]))

    if correlation is not None:
        if correlation.independence > config.independence_threshold:
            confidence += (
                (correlation.independence - config.independence_threshold)
                * config.independence_bonus_scale
            )
        if correlation.agreement > config.agreement_threshold:
            confidence += (
                (correlation.agreement - config.agreement_threshold)
                * config.agreement_bonus_scale
            )

    confidence -= invalid_count * config.invalid_stamp_penalty
    return max(0.0, min(1.0, confidence))


def build_credibility_assessment(
    results: Sequence[StampResult],
    correlation: Optional[CorrelationAssessment] = None,
    config: Optional[VerifyConfig] = None,
) -> CredibilityAssessment:
    return CredibilityAssessment(
        confidence=compute_confidence(results, correlation, config),
        stamp_results=list(results),
        correlation=correlation,
    )
