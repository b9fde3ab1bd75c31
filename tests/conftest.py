"""
GeoCert Test Configuration
============================

Shared fixtures, factories, and helpers for the entire test suite.
"""

from __future__ import annotations

import copy
import json
from typing import Any, Optional

import pytest
from eth_account import Account

from geocert.config import BASE_SEPOLIA, GeoCertConfig, SchemaConfig
from geocert.resolve.registry import AttestationRecord, InMemoryRegistry, encode_location_payload
from geocert.schemas.location import WGS84_SRS, LocationClaim, LocationStamp
from geocert.service import AttestationService
from geocert.signing.signer import DelegatedAttestationSigner, SigningContext

# ── Keys & chain ────────────────────────────────────────────────
# Well-known local development key (hardhat / anvil account #0).
TEST_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
TEST_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
OTHER_PRIVATE_KEY = "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"

TEST_CHAIN_ID = BASE_SEPOLIA
TEST_SCHEMA_UID = "0x" + "00" * 31 + "01"
TEST_RECIPIENT = "0x" + "00" * 19 + "01"

NOW = 1_700_000_000

# ── Geometries ──────────────────────────────────────────────────
SF_POINT = {"type": "Point", "coordinates": [-122.4194, 37.7749]}
NYC_POINT = {"type": "Point", "coordinates": [-73.9857, 40.7484]}
POINT_IN_PARK = {"type": "Point", "coordinates": [-122.48, 37.772]}
POINT_NEAR_PARK = {"type": "Point", "coordinates": [-122.42, 37.77]}

GOLDEN_GATE_PARK = {
    "type": "Polygon",
    "coordinates": [[
        [-122.5108, 37.7694],
        [-122.4534, 37.7694],
        [-122.4534, 37.7749],
        [-122.5108, 37.7749],
        [-122.5108, 37.7694],
    ]],
}

OVERLAPPING_POLYGON = {
    "type": "Polygon",
    "coordinates": [[
        [-122.49, 37.77], [-122.46, 37.77], [-122.46, 37.78], [-122.49, 37.78], [-122.49, 37.77],
    ]],
}

DISJOINT_POLYGON = {
    "type": "Polygon",
    "coordinates": [[
        [-122.40, 37.80], [-122.38, 37.80], [-122.38, 37.82], [-122.40, 37.82], [-122.40, 37.80],
    ]],
}

TWO_PARKS_MULTIPOLYGON = {
    "type": "MultiPolygon",
    "coordinates": [
        [[[-122.52, 37.76], [-122.51, 37.76], [-122.51, 37.77], [-122.52, 37.77], [-122.52, 37.76]]],
        [[[-122.50, 37.76], [-122.49, 37.76], [-122.49, 37.77], [-122.50, 37.77], [-122.50, 37.76]]],
    ],
}

SIMPLE_LINE = {
    "type": "LineString",
    "coordinates": [[-122.4194, 37.7749], [-122.4294, 37.7849], [-122.4394, 37.7749]],
}


# ── Markers ─────────────────────────────────────────────────────

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: fast unit tests")
    config.addinivalue_line("markers", "integration: multi-component tests")


# ── Fixtures ────────────────────────────────────────────────────

@pytest.fixture
def clock():
    """Fixed clock at NOW."""
    return lambda: NOW


@pytest.fixture
def config() -> GeoCertConfig:
    """Test config with a signing key and default schemas."""
    return GeoCertConfig(
        _env_file=None,
        signer_private_key=TEST_PRIVATE_KEY,
        schemas=SchemaConfig(
            numeric=TEST_SCHEMA_UID,
            boolean=TEST_SCHEMA_UID,
            verify=TEST_SCHEMA_UID,
        ),
    )


@pytest.fixture
def registry() -> InMemoryRegistry:
    return InMemoryRegistry()


@pytest.fixture
def account():
    return Account.from_key(TEST_PRIVATE_KEY)


@pytest.fixture
def signing_context(config, registry, clock) -> SigningContext:
    return SigningContext.from_config(config, registry, clock=clock)


@pytest.fixture
def signer(signing_context) -> DelegatedAttestationSigner:
    return DelegatedAttestationSigner(signing_context)


@pytest.fixture
def service(config, registry, clock) -> AttestationService:
    """Fully wired service over an in-memory registry and a fixed clock."""
    return AttestationService.from_config(config, registry=registry, clock=clock)


@pytest.fixture
def valid_claim() -> LocationClaim:
    return make_claim()


@pytest.fixture
def valid_stamp() -> LocationStamp:
    return make_stamp()


@pytest.fixture
def valid_proof() -> dict[str, Any]:
    """Single-stamp proof in wire form."""
    return {"claim": make_claim_data(), "stamps": [make_stamp_data()]}


# ── Factories ───────────────────────────────────────────────────

def make_claim_data(
    location: Optional[dict[str, Any]] = None,
    radius: float = 100,
    start: int = NOW - 60,
    end: int = NOW,
) -> dict[str, Any]:
    """Wire-form claim for San Francisco over the last minute."""
    return {
        "lpVersion": "0.2",
        "locationType": "geojson-point",
        "location": copy.deepcopy(location or SF_POINT),
        "srs": WGS84_SRS,
        "subject": {"scheme": "eth-address", "value": "0x1234567890123456789012345678901234567890"},
        "radius": radius,
        "time": {"start": start, "end": end},
        "eventType": "presence",
    }


def make_stamp_data(
    location: Optional[dict[str, Any]] = None,
    start: int = NOW - 120,
    end: int = NOW + 60,
    plugin: str = "proofmode",
    signature_value: Optional[str] = None,
    **overrides: Any,
) -> dict[str, Any]:
    """Wire-form ProofMode stamp matching the default claim."""
    data = {
        "lpVersion": "0.2",
        "locationType": "geojson-point",
        "location": copy.deepcopy(location or SF_POINT),
        "srs": WGS84_SRS,
        "temporalFootprint": {"start": start, "end": end},
        "plugin": plugin,
        "pluginVersion": "0.1.0",
        "signals": {"deviceType": "mobile", "accuracy": 10},
        "signatures": [
            {
                "signer": {"scheme": "device-pubkey", "value": "0xabcdef1234567890"},
                "algorithm": "secp256k1",
                "value": signature_value or "0x" + "1234567890abcdef" * 8 + "00",
                "timestamp": NOW - 30,
            },
        ],
    }
    data.update(overrides)
    return data


def make_claim(**kwargs: Any) -> LocationClaim:
    """Factory for test claims."""
    return LocationClaim.model_validate(make_claim_data(**kwargs))


def make_stamp(**kwargs: Any) -> LocationStamp:
    """Factory for test stamps."""
    return LocationStamp.model_validate(make_stamp_data(**kwargs))


def make_location_record(
    uid: str,
    geometry: dict[str, Any],
    revocation_time: int = 0,
    expiration_time: int = 0,
) -> AttestationRecord:
    """Registry record carrying a Location Protocol payload."""
    return AttestationRecord(
        uid=uid,
        time=NOW - 3600,
        revocation_time=revocation_time,
        expiration_time=expiration_time,
        attester=TEST_ADDRESS,
        data=encode_location_payload(json.dumps(geometry)),
    )


def uid_of(n: int) -> str:
    """Deterministic bytes32 UID."""
    return "0x" + f"{n:064x}"
