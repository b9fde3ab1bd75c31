"""
Attestation Schemas
====================

Payloads that get ABI-encoded and signed, the delegated attestation
message itself, and the response shapes of the two issuance paths.

Payload kinds (field order is the ABI layout):

    numeric      (result, units, input_refs, timestamp, operation)
    boolean      (result, input_refs, timestamp, operation)
    credibility  (claim_hash, proof_hash, confidence, credibility_uri)

Payloads and the signed message are frozen: any mutation after signing
would invalidate the signature, so the models refuse it outright.
"""

from __future__ import annotations

from typing import Annotated, Optional

from pydantic import Field, StringConstraints

from geocert.schemas.base import FrozenWireModel, WireModel
from geocert.schemas.location import LocationProof
from geocert.schemas.verification import CredibilityAssessment

ZERO_ADDRESS = "0x" + "00" * 20

Bytes32Hex = Annotated[str, StringConstraints(pattern=r"^0x[a-fA-F0-9]{64}$")]
AddressHex = Annotated[str, StringConstraints(pattern=r"^0x[a-fA-F0-9]{40}$")]
HexData = Annotated[str, StringConstraints(pattern=r"^0x([a-fA-F0-9]{2})*$")]


# ── Encoded payloads ───────────────────────────────────────────────

class NumericPolicyAttestationData(FrozenWireModel):
    """Scaled integer result of a measurement (distance, area, length)."""
    result: int = Field(ge=0, description="Scaled result (centimeters or square centimeters)")
    units: str = Field(description="Units of the scaled result")
    input_refs: tuple[Bytes32Hex, ...] = Field(description="Ordered input references")
    timestamp: int = Field(ge=0, description="Unix seconds at computation time")
    operation: str = Field(description="Operation label, may embed parameters")


class BooleanPolicyAttestationData(FrozenWireModel):
    """Result of a spatial predicate (contains, within, intersects)."""
    result: bool
    input_refs: tuple[Bytes32Hex, ...] = Field(description="Ordered input references")
    timestamp: int = Field(ge=0)
    operation: str


class CredibilityAttestationData(FrozenWireModel):
    """Credibility of a location proof, anchored by claim and proof hashes."""
    claim_hash: Bytes32Hex
    proof_hash: Bytes32Hex
    confidence: int = Field(ge=0, le=100, description="Confidence scaled to 0..100")
    credibility_uri: str = Field(default="", description="Where the full assessment can be fetched")


# ── Signed message ─────────────────────────────────────────────────

class DelegatedAttestationMessage(FrozenWireModel):
    """
    The EIP-712 ``Attest`` message.

    ``value`` is always 0 and ``revocable`` always True for attestations
    issued here; they are fields so that the typed-data hash covers them.
    """
    schema_uid: Bytes32Hex = Field(alias="schema")
    recipient: AddressHex = ZERO_ADDRESS
    expiration_time: int = Field(default=0, ge=0)
    revocable: bool = True
    ref_uid: Bytes32Hex = Field(default="0x" + "00" * 32, alias="refUID")
    data: HexData
    value: int = Field(default=0, ge=0)
    nonce: int = Field(ge=0)
    deadline: int = Field(ge=0)


class SignatureParts(WireModel):
    """Split ECDSA signature, for contracts that take (v, r, s)."""
    v: int
    r: Bytes32Hex
    s: Bytes32Hex


class AttestationView(WireModel):
    """Full attestation view, usable for local or off-chain verification."""
    schema_uid: Bytes32Hex = Field(alias="schema")
    attester: AddressHex
    recipient: AddressHex
    data: HexData
    signature: HexData


class DelegationView(WireModel):
    """What a third-party relayer needs to submit the attestation on-chain."""
    signature: HexData
    attester: AddressHex
    deadline: int
    nonce: int


class SigningResult(WireModel):
    """Two views of one signature, plus the exact message that was signed."""
    attestation: AttestationView
    delegation: DelegationView
    message: DelegatedAttestationMessage
    signature_parts: SignatureParts


# ── Responses ──────────────────────────────────────────────────────

class NumericComputeResult(WireModel):
    """
    Response of a measurement.

    ``result`` is in meters (or square meters); the signed payload holds
    the same value scaled to centimeters (or square centimeters).
    """
    result: float
    units: str
    operation: str
    timestamp: int
    input_refs: list[str]
    attestation: AttestationView
    delegation: DelegationView


class BooleanComputeResult(WireModel):
    """Response of a spatial predicate."""
    result: bool
    operation: str
    timestamp: int
    input_refs: list[str]
    attestation: AttestationView
    delegation: DelegationView


class ProofVerificationResult(WireModel):
    """Response of a proof check: the assessment and its signed attestation."""
    uid: Bytes32Hex = Field(description="keccak256 of '<proof_hash>:<timestamp>'")
    credibility: CredibilityAssessment
    proof: LocationProof
    claim_hash: Bytes32Hex
    proof_hash: Bytes32Hex
    attestation: AttestationView
    delegation: DelegationView
    attester: AddressHex
    timestamp: int
    credibility_uri: Optional[str] = None
