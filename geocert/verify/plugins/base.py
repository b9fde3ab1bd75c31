"""
Location Proof Plugin Interface
================================

Abstract base class for evidence-source plugins. Each plugin knows how
to check one kind of stamp and how to score it against a claim.

The interface ensures:
- The verification orchestrator never needs to know which evidence
  systems exist
- New evidence sources are added by registering a plugin, not by
  editing the orchestrator

Data Flow:
    LocationStamp           → plugin.verify → StampVerificationResult
    (LocationStamp, Claim)  → plugin.assess → ClaimAssessment
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from geocert.schemas.location import LocationClaim, LocationStamp
from geocert.schemas.verification import (
    ClaimAssessment,
    PluginMetadata,
    StampVerificationResult,
)


class LocationProofPlugin(ABC):
    """
    Abstract base class for location proof plugins.

    Subclasses set the class attributes and implement both checks.
    ``assess`` is called even for stamps that failed ``verify`` so the
    result carries context for every stamp.
    """

    name: str = "base"
    version: str = "0.0.0"
    environments: list[str] = []
    description: str = ""

    @abstractmethod
    async def verify(self, stamp: LocationStamp) -> StampVerificationResult:
        """Check the stamp's internal validity (signatures, structure, signals)."""
        ...

    @abstractmethod
    async def assess(self, stamp: LocationStamp, claim: LocationClaim) -> ClaimAssessment:
        """Score how well the stamp supports the claim, in [0, 1]."""
        ...

    def metadata(self) -> PluginMetadata:
        return PluginMetadata(
            name=self.name,
            version=self.version,
            environments=list(self.environments),
            description=self.description,
        )
