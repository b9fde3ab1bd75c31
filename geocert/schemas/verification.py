"""
Verification Result Schemas
============================

Outputs of the verify path, from a single plugin check up to the
aggregate credibility assessment:

    StampVerificationResult: internal validity of one stamp
    ClaimAssessment: how well one stamp supports a claim
    StampResult: both of the above, indexed into the proof
    CorrelationAssessment: cross-stamp independence and agreement
    CredibilityAssessment: aggregate confidence

Confidence is a heuristic score in [0, 1], NOT a calibrated
probability. Consumers should treat it as an ordering, not a frequency.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import Field

from geocert.schemas.base import WireModel


class StampVerificationResult(WireModel):
    """Internal validity of a stamp, independent of any claim."""
    valid: bool = Field(description="All three checks passed")
    signatures_valid: bool
    structure_valid: bool
    signals_consistent: bool
    details: dict[str, Any] = Field(default_factory=dict)


class ClaimAssessment(WireModel):
    """Support a stamp lends to a claim."""
    supports_claim: bool
    score: float = Field(ge=0.0, le=1.0)
    details: dict[str, Any] = Field(default_factory=dict)


class StampResult(WireModel):
    """Per-stamp outcome within a proof."""
    stamp_index: int = Field(ge=0)
    plugin: str
    signatures_valid: bool
    structure_valid: bool
    signals_consistent: bool
    supports_claim: bool
    claim_support_score: float = Field(ge=0.0, le=1.0)
    details: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_internally_valid(self) -> bool:
        return self.signatures_valid and self.structure_valid

    @property
    def is_valid(self) -> bool:
        """Counts toward the multi-stamp base score."""
        return self.is_internally_valid and self.supports_claim


class CorrelationAssessment(WireModel):
    """How independent the evidence sources are and how well they agree."""
    independence: float = Field(ge=0.0, le=1.0, description="Distinct plugins / stamp count")
    agreement: float = Field(ge=0.0, le=1.0, description="Score and temporal agreement")
    notes: list[str] = Field(default_factory=list)


class CredibilityAssessment(WireModel):
    """
    Aggregate confidence in a location claim.

    ``confidence`` is a heuristic in [0, 1], not a calibrated probability.
    ``correlation`` is present only for proofs with two or more stamps.
    """
    confidence: float = Field(ge=0.0, le=1.0)
    stamp_results: list[StampResult] = Field(default_factory=list)
    correlation: Optional[CorrelationAssessment] = None


class PluginMetadata(WireModel):
    name: str
    version: str
    environments: list[str] = Field(default_factory=list)
    description: str = ""
