"""
Cross-Stamp Correlation
========================

Relationships between the stamps of one proof:

    independence = distinct plugins / stamp count
    agreement    = 0.6 × score agreement + 0.4 × temporal agreement

    score agreement    = max(0, 1 − 4 × variance of support scores)
                         (variance 0 → 1.0, variance 0.25 → 0.0)
    temporal agreement = |∩ footprints| / |∪ footprints|

Only internally valid stamps (signatures and structure) contribute
support scores. Fewer than two of them gives a neutral agreement.
Stamps from the same plugin are redundant, not corroborating.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np

from geocert.config import VerifyConfig
from geocert.schemas.location import LocationStamp
from geocert.schemas.verification import CorrelationAssessment, StampResult

logger = logging.getLogger("geocert.verify.correlation")

SCORE_AGREEMENT_WEIGHT = 0.6
TEMPORAL_AGREEMENT_WEIGHT = 0.4


def analyze_correlation(
    stamps: Sequence[LocationStamp],
    results: Sequence[StampResult],
    config: Optional[VerifyConfig] = None,
) -> Optional[CorrelationAssessment]:
    """Correlation of a multi-stamp proof; None for fewer than two stamps."""
    if len(stamps) < 2:
        return None

    config = config or VerifyConfig()
    notes: list[str] = []
    independence = calculate_independence(stamps, notes)
    agreement = calculate_agreement(stamps, results, notes, config.neutral_agreement)
    return CorrelationAssessment(independence=independence, agreement=agreement, notes=notes)


def calculate_independence(stamps: Sequence[LocationStamp], notes: list[str]) -> float:
    plugins = {s.plugin for s in stamps}
    total = len(stamps)

    if len(plugins) == total:
        notes.append(f"All {total} stamps from different plugins (high independence)")
    elif len(plugins) == 1:
        notes.append(f"All stamps from same plugin '{next(iter(plugins))}' (low independence)")
    else:
        notes.append(f"{len(plugins)} unique plugins across {total} stamps")

    return len(plugins) / total


def calculate_agreement(
    stamps: Sequence[LocationStamp],
    results: Sequence[StampResult],
    notes: list[str],
    neutral: float = 0.5,
) -> float:
    valid = [r for r in results if r.is_internally_valid]
    if len(valid) < 2:
        notes.append("Insufficient valid stamps for agreement analysis")
        return neutral

    scores = np.asarray([r.claim_support_score for r in valid], dtype=float)
    score_agreement = max(0.0, 1.0 - float(np.var(scores)) * 4)
    temporal_agreement = calculate_temporal_agreement(stamps)

    agreement = (
        score_agreement * SCORE_AGREEMENT_WEIGHT
        + temporal_agreement * TEMPORAL_AGREEMENT_WEIGHT
    )

    if agreement > 0.8:
        notes.append("Strong agreement between stamps")
    elif agreement > 0.5:
        notes.append("Moderate agreement between stamps")
    else:
        notes.append("Low agreement between stamps")
    return agreement


def calculate_temporal_agreement(stamps: Sequence[LocationStamp]) -> float:
    """Intersection over union of the stamps' temporal footprints."""
    footprints = [s.temporal_footprint for s in stamps if s.temporal_footprint is not None]
    if len(footprints) < 2:
        return 0.0

    starts = np.asarray([f.start for f in footprints])
    ends = np.asarray([f.end for f in footprints])

    intersect_start, intersect_end = starts.max(), ends.min()
    if intersect_start >= intersect_end:
        return 0.0

    union = ends.max() - starts.min()
    return float((intersect_end - intersect_start) / union) if union > 0 else 0.0
