"""
Reference Resolver
===================

Turns every ``Input`` variant into a concrete geometry plus a stable
32-byte reference.

    InlineGeometryInput → ref = canonical_hash(geometry)
    OnChainInput        → registry record → LP payload → geometry, ref = uid
    OffChainInput       → fetched document → checks → LP payload, ref = uid

A resolved attestation's reference is always its original UID, never a
hash recomputed from the decoded geometry: verifiers compare refs
against UIDs they can look up themselves.

Off-chain documents are JSON:

    {
      "uid": "0x…",                 keccak256 of canonical_json(message)
      "signer": "0x…",              attester address
      "signature": "0x…",           EIP-191 signature over the uid bytes
      "message": {
        "schema": "0x…", "recipient": "0x…", "time": 1700000000,
        "expirationTime": 0, "revocationTime": 0, "revocable": true,
        "refUID": "0x…", "data": "0x…"  (Location Protocol payload)
      }
    }

Failures:
    - unreachable registry / URI, timeouts → UpstreamUnavailableError
    - unknown UID                          → NotFoundError
    - revoked / expired record             → RevokedError / ExpiredError
    - content or signature mismatch        → UnverifiedError
    - undecodable payload or geometry      → InvalidInputError
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Optional, Sequence, Union

import httpx
from eth_account import Account
from eth_account.messages import encode_defunct
from pydantic import BaseModel, Field, ValidationError

from geocert.config import OffchainConfig
from geocert.errors import (
    ExpiredError,
    InvalidInputError,
    NotFoundError,
    RevokedError,
    UnverifiedError,
    UpstreamUnavailableError,
)
from geocert.resolve.canonical import canonical_hash
from geocert.resolve.registry import (
    AttestationRecord,
    AttestationRegistry,
    decode_location_payload,
)
from geocert.schemas.geometry import (
    Geometry,
    InlineGeometryInput,
    OffChainInput,
    OnChainInput,
    ResolvedInput,
    parse_geometry,
    parse_input,
)
from geocert.utils import unix_now

logger = logging.getLogger("geocert.resolve.resolver")

AnyInput = Union[InlineGeometryInput, OnChainInput, OffChainInput]


class OffchainDocument(BaseModel):
    """Signed off-chain attestation as served from a URI."""
    uid: str
    signer: str
    signature: str
    message: dict[str, Any] = Field(description="Attestation body the uid commits to")


def seal_offchain_document(message: dict[str, Any], account) -> dict[str, Any]:
    """
    Produce a signed off-chain document for ``message``.

    Args:
        message: Attestation body (see module docstring for fields).
        account: eth-account LocalAccount that attests.

    Returns:
        JSON-ready document with uid, signer and signature filled in.
    """
    uid = canonical_hash(message)
    signed = account.sign_message(encode_defunct(primitive=bytes.fromhex(uid[2:])))
    return {
        "uid": uid,
        "signer": account.address,
        "signature": "0x" + bytes(signed.signature).hex(),
        "message": message,
    }


def geometry_from_payload(data: bytes, uid: str) -> Geometry:
    """Decode a Location Protocol payload into a validated geometry."""
    payload = decode_location_payload(data)
    try:
        location = json.loads(payload.location)
    except json.JSONDecodeError as e:
        raise InvalidInputError(
            f"Attestation {uid} location is not JSON: {payload.location!r}"
        ) from e
    return parse_geometry(location)


class InputResolver:
    """
    Resolves inputs against a registry and off-chain URIs.

    Usage:
        resolver = InputResolver(registry)
        resolved = await resolver.resolve_all(
            [{"type": "Point", "coordinates": [0, 0]}, {"uid": "0x…"}],
            chain_id=84532,
        )

    Args:
        registry: Ledger used for on-chain references.
        http_client: Client used for off-chain references. Created on
            first use (and owned) if not supplied.
        config: Off-chain fetch limits.
        clock: Returns current Unix seconds; used for expiry checks.
    """

    def __init__(
        self,
        registry: AttestationRegistry,
        http_client: Optional[httpx.AsyncClient] = None,
        config: Optional[OffchainConfig] = None,
        clock: Callable[[], int] = unix_now,
    ):
        self.registry = registry
        self.config = config or OffchainConfig()
        self.clock = clock
        self._client = http_client
        self._owns_client = http_client is None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.config.timeout_s,
                follow_redirects=True,
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
            )
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client if this resolver created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # ── Public API ─────────────────────────────────────────────────

    async def resolve(self, raw: Any, chain_id: Optional[int] = None) -> ResolvedInput:
        """Resolve one input (any accepted wire form or Input variant)."""
        item = parse_input(raw)

        if isinstance(item, InlineGeometryInput):
            return ResolvedInput(geometry=item.geometry, ref=canonical_hash(item.geometry))

        if isinstance(item, OnChainInput):
            if chain_id is None:
                raise InvalidInputError(
                    f"chain_id is required to resolve on-chain reference {item.uid}"
                )
            record = await self.registry.get_record(item.uid, chain_id)
            self._check_lifecycle(record)
            geometry = geometry_from_payload(record.data, item.uid)
            logger.debug(f"Resolved on-chain {item.uid} ({geometry.type})")
            return ResolvedInput(geometry=geometry, ref=item.uid)

        return await self._resolve_offchain(item)

    async def resolve_all(
        self, inputs: Sequence[Any], chain_id: Optional[int] = None
    ) -> list[ResolvedInput]:
        """Resolve inputs concurrently; output order equals input order."""
        return list(await asyncio.gather(*(self.resolve(i, chain_id) for i in inputs)))

    # ── Internals ──────────────────────────────────────────────────

    def _check_lifecycle(self, record: AttestationRecord) -> None:
        if record.is_revoked:
            raise RevokedError(f"Attestation {record.uid} was revoked at {record.revocation_time}")
        now = self.clock()
        if record.is_expired(now):
            raise ExpiredError(
                f"Attestation {record.uid} expired at {record.expiration_time} (now {now})"
            )

    async def _fetch(self, uri: str) -> bytes:
        try:
            response = await self._http().get(uri)
        except httpx.TimeoutException as e:
            raise UpstreamUnavailableError(
                f"Timed out after {self.config.timeout_s}s fetching {uri}"
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamUnavailableError(f"Failed to fetch {uri}: {e}") from e

        if response.status_code == 404:
            raise NotFoundError(f"Off-chain attestation not found at {uri}")
        if response.is_error:
            raise UpstreamUnavailableError(
                f"Fetching {uri} returned HTTP {response.status_code}"
            )
        if len(response.content) > self.config.max_bytes:
            raise InvalidInputError(
                f"Off-chain document at {uri} is {len(response.content)} bytes, "
                f"limit is {self.config.max_bytes}"
            )
        return response.content

    async def _resolve_offchain(self, item: OffChainInput) -> ResolvedInput:
        body = await self._fetch(item.uri)
        try:
            document = OffchainDocument.model_validate_json(body)
        except ValidationError as e:
            raise InvalidInputError(f"Malformed off-chain document at {item.uri}: {e}") from e

        if document.uid.lower() != item.uid:
            raise UnverifiedError(
                f"Document at {item.uri} declares uid {document.uid}, expected {item.uid}"
            )

        content_uid = canonical_hash(document.message)
        if content_uid != item.uid:
            raise UnverifiedError(
                f"Document at {item.uri} content hashes to {content_uid}, expected {item.uid}"
            )

        try:
            recovered = Account.recover_message(
                encode_defunct(primitive=bytes.fromhex(item.uid[2:])),
                signature=document.signature,
            )
        except Exception as e:
            raise UnverifiedError(
                f"Signature on {item.uid} is malformed: {document.signature}"
            ) from e
        if recovered.lower() != document.signer.lower():
            raise UnverifiedError(
                f"Signature on {item.uid} recovers to {recovered}, document names {document.signer}"
            )

        record = self._record_from_message(item.uid, document)
        self._check_lifecycle(record)
        geometry = geometry_from_payload(record.data, item.uid)
        logger.debug(f"Resolved off-chain {item.uid} from {item.uri} ({geometry.type})")
        return ResolvedInput(geometry=geometry, ref=item.uid)

    @staticmethod
    def _record_from_message(uid: str, document: OffchainDocument) -> AttestationRecord:
        message = document.message
        data = message.get("data", "")
        if not isinstance(data, str) or not data.startswith("0x"):
            raise InvalidInputError(f"Off-chain attestation {uid} data is not 0x-hex: {data!r}")
        try:
            return AttestationRecord(
                uid=uid,
                time=int(message.get("time", 0)),
                expiration_time=int(message.get("expirationTime", 0)),
                revocation_time=int(message.get("revocationTime", 0)),
                attester=document.signer,
                data=bytes.fromhex(data[2:]),
            )
        except (TypeError, ValueError) as e:
            raise InvalidInputError(f"Off-chain attestation {uid} has invalid fields: {e}") from e
