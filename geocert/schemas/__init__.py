"""
GeoCert Data Schemas
=====================

Pydantic v2 models for the data contracts of both issuance paths:

1. Geometry / Input: GeoJSON geometry and the tagged input union
2. Location evidence: claims, stamps and proofs (Location Protocol v0.2)
3. Verification results: per-stamp results and the credibility assessment
4. Attestations: signed payloads, the delegated message and responses

All schemas support:
- Runtime validation with Pydantic
- JSON Schema export for interoperability
- camelCase wire names alongside snake_case attributes
"""

from geocert.schemas.geometry import (
    Geometry,
    GeometryCollection,
    InlineGeometryInput,
    Input,
    LineString,
    MultiLineString,
    MultiPoint,
    MultiPolygon,
    OffChainInput,
    OnChainInput,
    Point,
    Polygon,
    ResolvedInput,
    parse_geometry,
    parse_input,
)
from geocert.schemas.location import (
    LocationClaim,
    LocationProof,
    LocationStamp,
    StampSignature,
    SubjectIdentifier,
    TimeBounds,
)
from geocert.schemas.verification import (
    ClaimAssessment,
    CorrelationAssessment,
    CredibilityAssessment,
    PluginMetadata,
    StampResult,
    StampVerificationResult,
)
from geocert.schemas.attestation import (
    ZERO_ADDRESS,
    AttestationView,
    BooleanComputeResult,
    BooleanPolicyAttestationData,
    CredibilityAttestationData,
    DelegatedAttestationMessage,
    DelegationView,
    NumericComputeResult,
    NumericPolicyAttestationData,
    ProofVerificationResult,
    SignatureParts,
    SigningResult,
)

__all__ = [
    # Geometry / Input
    "Geometry",
    "GeometryCollection",
    "InlineGeometryInput",
    "Input",
    "LineString",
    "MultiLineString",
    "MultiPoint",
    "MultiPolygon",
    "OffChainInput",
    "OnChainInput",
    "Point",
    "Polygon",
    "ResolvedInput",
    "parse_geometry",
    "parse_input",
    # Location evidence
    "LocationClaim",
    "LocationProof",
    "LocationStamp",
    "StampSignature",
    "SubjectIdentifier",
    "TimeBounds",
    # Verification
    "ClaimAssessment",
    "CorrelationAssessment",
    "CredibilityAssessment",
    "PluginMetadata",
    "StampResult",
    "StampVerificationResult",
    # Attestation
    "ZERO_ADDRESS",
    "AttestationView",
    "BooleanComputeResult",
    "BooleanPolicyAttestationData",
    "CredibilityAttestationData",
    "DelegatedAttestationMessage",
    "DelegationView",
    "NumericComputeResult",
    "NumericPolicyAttestationData",
    "ProofVerificationResult",
    "SignatureParts",
    "SigningResult",
]
