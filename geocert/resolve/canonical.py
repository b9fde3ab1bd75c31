"""
Canonical Hashing
==================

Deterministic serialization + keccak256 hashing for geometry inputs,
claims and proofs. The resulting 32-byte reference is what downstream
verifiers recompute to prove "this exact geometry was used".

Rules:
    - Object keys are sorted recursively, so key order never matters.
    - Array order is preserved, so coordinate order always matters.
    - Numbers are spelled the way ECMAScript Number-to-String spells
      them, so hashes match JSON.stringify-based consumers: ``1.0``
      renders as ``1``, ``0.00005`` as ``0.00005``, ``1e-7`` as
      ``1e-7`` and ``1e21`` as ``1e+21``.
    - NaN and Infinity are rejected.
"""

from __future__ import annotations

import json
import math
from decimal import Decimal
from typing import Any

from eth_utils import keccak
from pydantic import BaseModel

from geocert.errors import InvalidInputError

ZERO_BYTES32 = "0x" + "00" * 32

# ECMAScript switches to exponent notation at 1e21.
_EXPONENT_FROM = 10 ** 21


def _normalize(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return _normalize(value.model_dump(mode="json", by_alias=True, exclude_none=True))
    if isinstance(value, dict):
        return {str(k): _normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    if isinstance(value, bool) or value is None or isinstance(value, (str, int)):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise InvalidInputError(f"Non-finite number cannot be canonicalized: {value!r}")
        if value.is_integer() and abs(value) < _EXPONENT_FROM:
            return int(value)
        return value
    raise InvalidInputError(
        f"Value of type {type(value).__name__} cannot be canonicalized: {value!r}"
    )


def format_number(value: float) -> str:
    """
    Spell a finite float the way ECMAScript's Number::toString does.

    ``repr`` already yields the shortest digit string that round-trips,
    which is the digit string ECMAScript picks; only the placement of
    the decimal point and the exponent differ.
    """
    if value == 0:
        return "0"
    if value < 0:
        return "-" + format_number(-value)

    _, digits, exponent = Decimal(repr(value)).as_tuple()
    s = "".join(map(str, digits)).rstrip("0")
    exponent += len(digits) - len(s)
    k = len(s)
    n = exponent + k  # value == 0.s × 10^n

    if k <= n <= 21:
        return s + "0" * (n - k)
    if 0 < n <= 21:
        return f"{s[:n]}.{s[n:]}"
    if -6 < n <= 0:
        return "0." + "0" * -n + s

    e = n - 1
    mantissa = s if k == 1 else f"{s[0]}.{s[1:]}"
    return f"{mantissa}e{'+' if e > 0 else '-'}{abs(e)}"


def _encode(value: Any) -> str:
    if isinstance(value, dict):
        items = sorted(value.items())
        return "{" + ",".join(f"{_encode(k)}:{_encode(v)}" for k, v in items) + "}"
    if isinstance(value, list):
        return "[" + ",".join(_encode(v) for v in value) + "]"
    if isinstance(value, float):
        return format_number(value)
    return json.dumps(value, ensure_ascii=False)


def canonical_json(obj: Any) -> str:
    """Serialize ``obj`` to its canonical JSON string."""
    return _encode(_normalize(obj))


def keccak_hex(data: bytes) -> str:
    """keccak256 of raw bytes as a 0x-prefixed lowercase hex string."""
    return "0x" + keccak(data).hex()


def canonical_hash(obj: Any) -> str:
    """keccak256 of the canonical JSON serialization of ``obj``."""
    return keccak_hex(canonical_json(obj).encode("utf-8"))
