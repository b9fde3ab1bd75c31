"""
Attestation Registry Clients
==============================

Read access to the attestation ledger: fetch a record by UID and read
an attester's replay-protection nonce.

Implementations:
    - EASRegistry:      EAS contract over JSON-RPC (web3 AsyncWeb3)
    - InMemoryRegistry: dictionary-backed, for tests and offline runs

Both satisfy the ``AttestationRegistry`` protocol. Records carrying
geometry use the Location Protocol v0.2 payload layout:

    (string lp_version, string srs, string location_type, string location)

Threading:
    EASRegistry caches one provider/contract handle per chain ID. The
    cache is filled lazily and never invalidated, so concurrent readers
    at worst build a duplicate handle.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol, runtime_checkable

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from pydantic import BaseModel, Field

from geocert.errors import (
    GeoCertError,
    InvalidInputError,
    NotFoundError,
    UnsupportedChainError,
    UpstreamUnavailableError,
)
from geocert.resolve.canonical import ZERO_BYTES32
from geocert.schemas.geometry import UID_PATTERN

logger = logging.getLogger("geocert.resolve.registry")

LOCATION_PAYLOAD_TYPES = ["string", "string", "string", "string"]

# Minimal EAS ABI: only the two view functions read here.
EAS_ABI = [
    {
        "inputs": [{"internalType": "bytes32", "name": "uid", "type": "bytes32"}],
        "name": "getAttestation",
        "outputs": [
            {
                "components": [
                    {"internalType": "bytes32", "name": "uid", "type": "bytes32"},
                    {"internalType": "bytes32", "name": "schema", "type": "bytes32"},
                    {"internalType": "uint64", "name": "time", "type": "uint64"},
                    {"internalType": "uint64", "name": "expirationTime", "type": "uint64"},
                    {"internalType": "uint64", "name": "revocationTime", "type": "uint64"},
                    {"internalType": "bytes32", "name": "refUID", "type": "bytes32"},
                    {"internalType": "address", "name": "recipient", "type": "address"},
                    {"internalType": "address", "name": "attester", "type": "address"},
                    {"internalType": "bool", "name": "revocable", "type": "bool"},
                    {"internalType": "bytes", "name": "data", "type": "bytes"},
                ],
                "internalType": "struct Attestation",
                "name": "",
                "type": "tuple",
            }
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "address", "name": "account", "type": "address"}],
        "name": "getNonce",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]


# ── Records ────────────────────────────────────────────────────────

class AttestationRecord(BaseModel):
    """An attestation as stored on the ledger."""
    uid: str
    schema_uid: str = Field(default=ZERO_BYTES32)
    time: int = 0
    expiration_time: int = Field(default=0, description="0 means never expires")
    revocation_time: int = Field(default=0, description="0 means not revoked")
    ref_uid: str = Field(default=ZERO_BYTES32)
    recipient: str = "0x" + "00" * 20
    attester: str = "0x" + "00" * 20
    revocable: bool = True
    data: bytes = b""

    @property
    def is_revoked(self) -> bool:
        return self.revocation_time > 0

    def is_expired(self, now: int) -> bool:
        return 0 < self.expiration_time < now


class LocationPayload(BaseModel):
    """Decoded Location Protocol v0.2 attestation payload."""
    lp_version: str
    srs: str
    location_type: str
    location: str = Field(description="Location data; GeoJSON serialized as a string")


def encode_location_payload(
    location: str,
    location_type: str = "geojson",
    srs: str = "EPSG:4326",
    lp_version: str = "0.2",
) -> bytes:
    """ABI-encode a Location Protocol payload."""
    return abi_encode(LOCATION_PAYLOAD_TYPES, [lp_version, srs, location_type, location])


def decode_location_payload(data: bytes) -> LocationPayload:
    """
    ABI-decode a Location Protocol payload.

    Raises:
        InvalidInputError: if the bytes are not a valid payload.
    """
    try:
        lp_version, srs, location_type, location = abi_decode(LOCATION_PAYLOAD_TYPES, data)
    except Exception as e:
        raise InvalidInputError(
            f"Attestation data is not a Location Protocol payload (0x{data.hex()}): {e}"
        ) from e
    return LocationPayload(
        lp_version=lp_version, srs=srs, location_type=location_type, location=location
    )


def validate_uid(uid: str) -> str:
    if not UID_PATTERN.match(uid):
        raise InvalidInputError(
            f"Invalid attestation UID format: {uid}. "
            "Expected bytes32 hex string (0x followed by 64 hex chars)"
        )
    return uid.lower()


# ── Protocol ───────────────────────────────────────────────────────

@runtime_checkable
class AttestationRegistry(Protocol):
    """Read interface to an attestation ledger."""

    async def get_record(self, uid: str, chain_id: int) -> AttestationRecord:
        """Fetch a record; NotFoundError if the ledger returns a zeroed UID."""
        ...

    async def get_nonce(self, address: str, chain_id: int) -> int:
        """Current delegated-attestation nonce of ``address``."""
        ...


# ── EAS over JSON-RPC ──────────────────────────────────────────────

class EASRegistry:
    """
    EAS contract client backed by web3's AsyncWeb3.

    Usage:
        registry = EASRegistry.from_config(config)
        record = await registry.get_record(uid, chain_id=84532)
        nonce = await registry.get_nonce(address, chain_id=84532)

    Args:
        rpc_urls: JSON-RPC endpoint per chain ID.
        contract_addresses: EAS contract address per chain ID.
        timeout_s: Bound on every RPC call.
    """

    def __init__(
        self,
        rpc_urls: dict[int, str],
        contract_addresses: dict[int, str],
        timeout_s: float = 10.0,
    ):
        self.rpc_urls = dict(rpc_urls)
        self.contract_addresses = dict(contract_addresses)
        self.timeout_s = timeout_s
        self._contracts: dict[int, object] = {}

    @classmethod
    def from_config(cls, config) -> "EASRegistry":
        return cls(
            rpc_urls=config.registry.rpc_urls,
            contract_addresses=config.signing.eas_addresses,
            timeout_s=config.registry.timeout_s,
        )

    @property
    def supported_chains(self) -> list[int]:
        return sorted(set(self.rpc_urls) & set(self.contract_addresses))

    def _contract(self, chain_id: int):
        contract = self._contracts.get(chain_id)
        if contract is not None:
            return contract

        if chain_id not in self.rpc_urls or chain_id not in self.contract_addresses:
            raise UnsupportedChainError(chain_id, self.supported_chains)

        from web3 import AsyncWeb3

        w3 = AsyncWeb3(
            AsyncWeb3.AsyncHTTPProvider(
                self.rpc_urls[chain_id],
                request_kwargs={"timeout": self.timeout_s},
            )
        )
        contract = w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(self.contract_addresses[chain_id]),
            abi=EAS_ABI,
        )
        self._contracts[chain_id] = contract
        logger.debug(f"Created EAS contract handle for chain {chain_id}")
        return contract

    async def _call(self, call, description: str):
        try:
            return await asyncio.wait_for(call, timeout=self.timeout_s)
        except asyncio.TimeoutError as e:
            raise UpstreamUnavailableError(
                f"Registry call {description} timed out after {self.timeout_s}s"
            ) from e
        except GeoCertError:
            raise
        except Exception as e:
            raise UpstreamUnavailableError(f"Registry call {description} failed: {e}") from e

    async def get_record(self, uid: str, chain_id: int) -> AttestationRecord:
        uid = validate_uid(uid)
        contract = self._contract(chain_id)
        raw = await self._call(
            contract.functions.getAttestation(bytes.fromhex(uid[2:])).call(),
            f"getAttestation({uid}) on chain {chain_id}",
        )
        (rec_uid, schema, time_, expiration, revocation, ref_uid,
         recipient, attester, revocable, data) = raw

        if "0x" + bytes(rec_uid).hex() == ZERO_BYTES32:
            raise NotFoundError(f"Attestation not found: {uid} on chain {chain_id}")

        return AttestationRecord(
            uid="0x" + bytes(rec_uid).hex(),
            schema_uid="0x" + bytes(schema).hex(),
            time=time_,
            expiration_time=expiration,
            revocation_time=revocation,
            ref_uid="0x" + bytes(ref_uid).hex(),
            recipient=recipient,
            attester=attester,
            revocable=revocable,
            data=bytes(data),
        )

    async def get_nonce(self, address: str, chain_id: int) -> int:
        from web3 import AsyncWeb3

        contract = self._contract(chain_id)
        nonce = await self._call(
            contract.functions.getNonce(AsyncWeb3.to_checksum_address(address)).call(),
            f"getNonce({address}) on chain {chain_id}",
        )
        return int(nonce)


# ── In-memory ──────────────────────────────────────────────────────

class InMemoryRegistry:
    """
    Dictionary-backed registry.

    ``bump_nonce`` stands in for an out-of-band on-chain submission,
    which is what advances a real attester's nonce.
    """

    def __init__(self, supported_chains: Optional[list[int]] = None):
        self.supported = set(supported_chains) if supported_chains else None
        self._records: dict[tuple[int, str], AttestationRecord] = {}
        self._nonces: dict[tuple[int, str], int] = {}
        self.nonce_reads = 0

    def _check_chain(self, chain_id: int) -> None:
        if self.supported is not None and chain_id not in self.supported:
            raise UnsupportedChainError(chain_id, list(self.supported))

    def put_record(self, record: AttestationRecord, chain_id: int) -> AttestationRecord:
        self._records[(chain_id, record.uid.lower())] = record
        return record

    def set_nonce(self, address: str, nonce: int, chain_id: int) -> None:
        self._nonces[(chain_id, address.lower())] = nonce

    def bump_nonce(self, address: str, chain_id: int) -> int:
        key = (chain_id, address.lower())
        self._nonces[key] = self._nonces.get(key, 0) + 1
        return self._nonces[key]

    async def get_record(self, uid: str, chain_id: int) -> AttestationRecord:
        uid = validate_uid(uid)
        self._check_chain(chain_id)
        record = self._records.get((chain_id, uid))
        if record is None or record.uid.lower() == ZERO_BYTES32:
            raise NotFoundError(f"Attestation not found: {uid} on chain {chain_id}")
        return record

    async def get_nonce(self, address: str, chain_id: int) -> int:
        self._check_chain(chain_id)
        self.nonce_reads += 1
        return self._nonces.get((chain_id, address.lower()), 0)
