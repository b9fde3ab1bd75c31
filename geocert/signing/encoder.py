"""
Schema Encoder
===============

ABI encoding of attestation payloads. The field order of each schema is
part of the contract with verifiers and MUST NOT change; the schema
strings below are the ones registered with EAS.

Scaling:
    distance / length  meters        × 100    → centimeters
    area               square meters × 10000  → square centimeters

Values are rounded half away from zero before encoding, so the signed
integer is exactly reproducible from the reported float.
"""

from __future__ import annotations

import math
from typing import Union

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode

from geocert.errors import InvalidInputError
from geocert.schemas.attestation import (
    BooleanPolicyAttestationData,
    CredibilityAttestationData,
    NumericPolicyAttestationData,
)

NUMERIC_POLICY_SCHEMA = (
    "uint256 result, string units, bytes32[] inputRefs, uint256 timestamp, string operation"
)
BOOLEAN_POLICY_SCHEMA = "bool result, bytes32[] inputRefs, uint256 timestamp, string operation"
VERIFY_SCHEMA = "bytes32 claim_hash, bytes32 proof_hash, uint8 confidence, string credibility_uri"

# ── Units ──────────────────────────────────────────────────────────
CENTIMETERS = "centimeters"
SQUARE_CENTIMETERS = "square_centimeters"
METERS = "meters"
SQUARE_METERS = "square_meters"

# ── Scale factors ──────────────────────────────────────────────────
DISTANCE_SCALE = 100
LENGTH_SCALE = 100
AREA_SCALE = 10_000


def _schema_types(schema: str) -> list[str]:
    return [field.strip().split(" ")[0] for field in schema.split(",")]


NUMERIC_TYPES = _schema_types(NUMERIC_POLICY_SCHEMA)
BOOLEAN_TYPES = _schema_types(BOOLEAN_POLICY_SCHEMA)
VERIFY_TYPES = _schema_types(VERIFY_SCHEMA)


def _to_bytes32(ref: str) -> bytes:
    return bytes.fromhex(ref[2:])


def _from_bytes32(raw: bytes) -> str:
    return "0x" + bytes(raw).hex()


def _from_hex(data: Union[str, bytes]) -> bytes:
    if isinstance(data, bytes):
        return data
    return bytes.fromhex(data[2:] if data.startswith("0x") else data)


# ── Scaling ────────────────────────────────────────────────────────

def scale_to_uint(value: float, factor: int) -> int:
    """
    Scale a non-negative measurement to an unsigned integer.

    Raises:
        InvalidInputError: for negative or non-finite values.
    """
    if not math.isfinite(value) or value < 0:
        raise InvalidInputError(f"Cannot scale {value!r} to an unsigned integer")
    return int(math.floor(value * factor + 0.5))


def scale_confidence(confidence: float) -> int:
    """Clamp a [0, 1] confidence and scale it to an integer 0..100."""
    clamped = max(0.0, min(1.0, confidence))
    return int(math.floor(clamped * 100 + 0.5))


def within_operation(radius_m: float) -> str:
    """Operation label for ``within``; the radius is embedded in centimeters."""
    return f"within:{scale_to_uint(radius_m, DISTANCE_SCALE)}"


# ── Encode / decode ────────────────────────────────────────────────

def encode_numeric(data: NumericPolicyAttestationData) -> str:
    encoded = abi_encode(
        NUMERIC_TYPES,
        [
            data.result,
            data.units,
            [_to_bytes32(r) for r in data.input_refs],
            data.timestamp,
            data.operation,
        ],
    )
    return "0x" + encoded.hex()


def decode_numeric(data: Union[str, bytes]) -> NumericPolicyAttestationData:
    result, units, refs, timestamp, operation = abi_decode(NUMERIC_TYPES, _from_hex(data))
    return NumericPolicyAttestationData(
        result=result,
        units=units,
        input_refs=tuple(_from_bytes32(r) for r in refs),
        timestamp=timestamp,
        operation=operation,
    )


def encode_boolean(data: BooleanPolicyAttestationData) -> str:
    encoded = abi_encode(
        BOOLEAN_TYPES,
        [
            data.result,
            [_to_bytes32(r) for r in data.input_refs],
            data.timestamp,
            data.operation,
        ],
    )
    return "0x" + encoded.hex()


def decode_boolean(data: Union[str, bytes]) -> BooleanPolicyAttestationData:
    result, refs, timestamp, operation = abi_decode(BOOLEAN_TYPES, _from_hex(data))
    return BooleanPolicyAttestationData(
        result=result,
        input_refs=tuple(_from_bytes32(r) for r in refs),
        timestamp=timestamp,
        operation=operation,
    )


def encode_credibility(data: CredibilityAttestationData) -> str:
    encoded = abi_encode(
        VERIFY_TYPES,
        [
            _to_bytes32(data.claim_hash),
            _to_bytes32(data.proof_hash),
            data.confidence,
            data.credibility_uri,
        ],
    )
    return "0x" + encoded.hex()


def decode_credibility(data: Union[str, bytes]) -> CredibilityAttestationData:
    claim_hash, proof_hash, confidence, uri = abi_decode(VERIFY_TYPES, _from_hex(data))
    return CredibilityAttestationData(
        claim_hash=_from_bytes32(claim_hash),
        proof_hash=_from_bytes32(proof_hash),
        confidence=confidence,
        credibility_uri=uri,
    )
