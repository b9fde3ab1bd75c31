"""
Proof Verifier
===============

Orchestrates the verify path:

    1. verify each stamp with its plugin        ┐ concurrently,
    2. assess each stamp against the claim      ┘ one task per stamp
    3. analyze cross-stamp correlation          ┐ after all stamps
    4. aggregate into a credibility assessment  ┘ are done

A stamp that cannot be checked (unknown plugin, plugin failure) becomes
an invalid StampResult rather than failing the proof: a failed stamp is
evidence of low credibility, not a malformed request.

Data Flow:
    LocationProof → [StampResult] → CorrelationAssessment → CredibilityAssessment
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from geocert.config import VerifyConfig
from geocert.errors import GeoCertError
from geocert.schemas.location import LocationClaim, LocationProof, LocationStamp
from geocert.schemas.verification import CredibilityAssessment, StampResult, StampVerificationResult
from geocert.verify.assessment import build_credibility_assessment
from geocert.verify.correlation import analyze_correlation
from geocert.verify.plugins.registry import PluginRegistry

logger = logging.getLogger("geocert.verify.verifier")


class ProofVerifier:
    """
    Verifies stamps and proofs against a plugin registry.

    Args:
        plugins: Registry used to look up each stamp's plugin.
        config: Aggregation constants.
    """

    def __init__(self, plugins: PluginRegistry, config: Optional[VerifyConfig] = None):
        self.plugins = plugins
        self.config = config or VerifyConfig()

    async def verify_stamp(self, stamp: LocationStamp) -> StampVerificationResult:
        """Internal validity of one stamp. Raises PluginNotFoundError for unknown plugins."""
        return await self.plugins.get(stamp.plugin).verify(stamp)

    async def verify_proof(self, proof: LocationProof) -> CredibilityAssessment:
        results = await asyncio.gather(*(
            self._verify_and_assess(stamp, proof.claim, i)
            for i, stamp in enumerate(proof.stamps)
        ))

        correlation = (
            analyze_correlation(proof.stamps, results, self.config) if proof.is_multi_stamp else None
        )
        assessment = build_credibility_assessment(results, correlation, self.config)

        logger.info(
            f"Proof verified: {len(results)} stamp(s), "
            f"{sum(1 for r in results if r.is_valid)} valid, "
            f"confidence={assessment.confidence:.3f}"
        )
        return assessment

    async def _verify_and_assess(
        self, stamp: LocationStamp, claim: LocationClaim, index: int
    ) -> StampResult:
        try:
            plugin = self.plugins.get(stamp.plugin)
            verification = await plugin.verify(stamp)
            # Assessed even when invalid, for context.
            assessment = await plugin.assess(stamp, claim)
        except GeoCertError as e:
            logger.warning(f"Stamp {index} ({stamp.plugin}) could not be checked: {e.detail}")
            return self._unchecked(stamp, index, e.detail)
        except Exception as e:
            logger.exception(f"Plugin '{stamp.plugin}' failed on stamp {index}")
            return self._unchecked(stamp, index, f"{type(e).__name__}: {e}")

        return StampResult(
            stamp_index=index,
            plugin=stamp.plugin,
            signatures_valid=verification.signatures_valid,
            structure_valid=verification.structure_valid,
            signals_consistent=verification.signals_consistent,
            supports_claim=assessment.supports_claim,
            claim_support_score=assessment.score,
            details={
                "verification": verification.details,
                "assessment": assessment.details,
            },
        )

    @staticmethod
    def _unchecked(stamp: LocationStamp, index: int, reason: str) -> StampResult:
        return StampResult(
            stamp_index=index,
            plugin=stamp.plugin,
            signatures_valid=False,
            structure_valid=False,
            signals_consistent=False,
            supports_claim=False,
            claim_support_score=0.0,
            details={"error": reason},
        )
