"""
ProofMode Plugin
=================

Device-based location evidence (hardware-backed keys, sensor fusion).

verify:
    - structure: lpVersion "0.2", locationType, location, srs,
      temporalFootprint, plugin, pluginVersion and at least one signature
    - signatures: each has a signer (scheme + value), an algorithm and a
      0x-hex value
    - signals: consistent when a signals bag is present

    SIGNATURES ARE CHECKED FOR WELL-FORMEDNESS ONLY BY DEFAULT. Nothing
    proves the signature was produced by the named signer over this
    stamp; every result says so via ``cryptographicallyVerified``.
    With ``verify_signatures`` enabled, ``eth-address`` signers using
    ``secp256k1`` are EIP-191-recovered over the canonical JSON of the
    stamp without its signatures, and must match the signer address.

assess:
    score = temporal_weight × temporal + spatial_weight × spatial
    supports_claim = score > support_threshold

    temporal: 1.0 if the footprint covers the claim window, else
              overlap / claim duration, 0 when disjoint
    spatial:  point vs point, great-circle distance d against radius r:
              1.0 if d <= r, linear decay to 0 at decay_factor × r;
              any other geometry pair gets a neutral score
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional

import numpy as np
from eth_account import Account
from eth_account.messages import encode_defunct

from geocert.config import VerifyConfig
from geocert.resolve.canonical import canonical_json
from geocert.schemas.geometry import Point
from geocert.schemas.location import LP_VERSION, LocationClaim, LocationStamp, StampSignature
from geocert.schemas.verification import ClaimAssessment, StampVerificationResult
from geocert.spatial.engine import haversine
from geocert.verify.plugins.base import LocationProofPlugin

logger = logging.getLogger("geocert.verify.plugins.proofmode")

HEX_VALUE = re.compile(r"^0x[0-9a-fA-F]+$")
RECOVERABLE_SCHEME = "eth-address"
RECOVERABLE_ALGORITHM = "secp256k1"


class ProofModePlugin(LocationProofPlugin):
    """
    Verifier for ProofMode device stamps.

    Args:
        config: Scoring weights and thresholds; defaults if omitted.
    """

    name = "proofmode"
    version = "0.1.0"
    environments = ["mobile", "server"]
    description = "Device-based location attestation with hardware attestation"

    def __init__(self, config: Optional[VerifyConfig] = None):
        self.config = config or VerifyConfig()

    # ── verify ─────────────────────────────────────────────────────

    async def verify(self, stamp: LocationStamp) -> StampVerificationResult:
        structure_valid = self._check_structure(stamp)
        signatures_valid, crypto_details = self._check_signatures(stamp)
        signals_consistent = stamp.signals is not None

        details: dict[str, Any] = {
            "structureChecks": {
                "hasLocation": stamp.location is not None,
                "hasTemporalFootprint": stamp.temporal_footprint is not None,
                "hasSignals": stamp.signals is not None,
            },
            "signatureCount": len(stamp.signatures),
            **crypto_details,
        }

        return StampVerificationResult(
            valid=structure_valid and signatures_valid and signals_consistent,
            signatures_valid=signatures_valid,
            structure_valid=structure_valid,
            signals_consistent=signals_consistent,
            details=details,
        )

    @staticmethod
    def _check_structure(stamp: LocationStamp) -> bool:
        return all([
            stamp.lp_version == LP_VERSION,
            bool(stamp.location_type),
            stamp.location is not None and stamp.location != "",
            bool(stamp.srs),
            stamp.temporal_footprint is not None,
            bool(stamp.plugin),
            bool(stamp.plugin_version),
            len(stamp.signatures) > 0,
        ])

    @staticmethod
    def _well_formed(sig: StampSignature) -> bool:
        return (
            bool(HEX_VALUE.match(sig.value))
            and sig.signer is not None
            and bool(sig.algorithm)
        )

    def _check_signatures(self, stamp: LocationStamp) -> tuple[bool, dict[str, Any]]:
        if not stamp.signatures:
            return False, {"cryptographicallyVerified": False}

        if not all(self._well_formed(sig) for sig in stamp.signatures):
            return False, {"cryptographicallyVerified": False}

        if not self.config.verify_signatures:
            return True, {"cryptographicallyVerified": False}

        message = encode_defunct(text=canonical_json(stamp.unsigned_body()))
        recovered_all = True
        mismatched: list[int] = []
        for i, sig in enumerate(stamp.signatures):
            if sig.signer.scheme != RECOVERABLE_SCHEME or sig.algorithm != RECOVERABLE_ALGORITHM:
                recovered_all = False
                continue
            try:
                recovered = Account.recover_message(message, signature=sig.value)
            except Exception as e:
                logger.debug(f"Stamp signature {i} could not be recovered: {e}")
                mismatched.append(i)
                continue
            if recovered.lower() != sig.signer.value.lower():
                mismatched.append(i)

        details = {
            "cryptographicallyVerified": recovered_all and not mismatched,
            "mismatchedSignatures": mismatched,
        }
        return not mismatched, details

    # ── assess ─────────────────────────────────────────────────────

    async def assess(self, stamp: LocationStamp, claim: LocationClaim) -> ClaimAssessment:
        temporal_score, temporal_note = self._temporal_overlap(stamp, claim)
        spatial_score, spatial_note = self._spatial_overlap(stamp, claim)

        score = (
            temporal_score * self.config.temporal_weight
            + spatial_score * self.config.spatial_weight
        )
        score = max(0.0, min(1.0, score))

        return ClaimAssessment(
            supports_claim=score > self.config.support_threshold,
            score=score,
            details={
                "temporalOverlap": {"score": temporal_score, "details": temporal_note},
                "spatialOverlap": {"score": spatial_score, "details": spatial_note},
            },
        )

    @staticmethod
    def _temporal_overlap(stamp: LocationStamp, claim: LocationClaim) -> tuple[float, str]:
        footprint = stamp.temporal_footprint
        if footprint is None:
            return 0.0, "Stamp has no temporal footprint"

        if footprint.start <= claim.time.start and footprint.end >= claim.time.end:
            return 1.0, "Stamp fully covers claim timeframe"

        overlap_start = max(footprint.start, claim.time.start)
        overlap_end = min(footprint.end, claim.time.end)
        if overlap_start <= overlap_end:
            duration = claim.time.duration
            score = (overlap_end - overlap_start) / duration if duration > 0 else 0.0
            return score, f"Partial temporal overlap: {round(score * 100)}%"

        return 0.0, "No temporal overlap"

    def _spatial_overlap(self, stamp: LocationStamp, claim: LocationClaim) -> tuple[float, str]:
        if stamp.location is None:
            return 0.0, "Stamp has no location"

        if not (isinstance(stamp.location, Point) and isinstance(claim.location, Point)):
            return (
                self.config.non_point_spatial_score,
                "Non-point geometry comparison uses a neutral score",
            )

        distance = float(haversine(
            np.asarray(claim.location.coordinates[:2]),
            np.asarray(stamp.location.coordinates[:2]),
        ))
        radius = claim.radius
        if distance <= radius:
            return 1.0, f"Stamp within claim radius ({round(distance)}m <= {radius}m)"

        max_distance = radius * self.config.radius_decay_factor
        if distance <= max_distance:
            score = 1 - (distance - radius) / (max_distance - radius)
            return score, f"Stamp outside radius but close ({round(distance)}m)"

        return 0.0, f"Stamp too far from claim ({round(distance)}m > {radius}m)"
