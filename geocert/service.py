"""
GeoCert Attestation Service
=============================

The exposed operation surface, independent of transport:

    Compute path:
        inputs → InputResolver → SpatialEngine → Schema Encoder → Signer

    Verify path:
        proof → ProofVerifier (plugins, correlation, aggregation)
              → Schema Encoder → Signer

Every compute operation returns its result together with the ordered
input references and a delegated attestation over them; every proof
check returns the credibility assessment with its attestation.

Usage:
    from geocert.service import AttestationService

    service = AttestationService.from_config(config)
    result = await service.distance(point_a, {"uid": "0x…"})
    print(result.result, result.attestation.signature)
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx
from pydantic import ValidationError

from geocert.config import GeoCertConfig, get_config
from geocert.errors import (
    ComputationError,
    GeoCertError,
    InvalidInputError,
    UpstreamUnavailableError,
)
from geocert.resolve.canonical import canonical_hash, keccak_hex
from geocert.resolve.registry import AttestationRegistry, EASRegistry
from geocert.resolve.resolver import InputResolver
from geocert.schemas.attestation import (
    ZERO_ADDRESS,
    BooleanComputeResult,
    BooleanPolicyAttestationData,
    CredibilityAttestationData,
    NumericComputeResult,
    NumericPolicyAttestationData,
    ProofVerificationResult,
    SigningResult,
)
from geocert.schemas.geometry import ResolvedInput
from geocert.schemas.location import LocationProof, LocationStamp
from geocert.schemas.verification import PluginMetadata, StampVerificationResult
from geocert.signing.encoder import (
    AREA_SCALE,
    CENTIMETERS,
    DISTANCE_SCALE,
    LENGTH_SCALE,
    METERS,
    SQUARE_CENTIMETERS,
    SQUARE_METERS,
    scale_confidence,
    scale_to_uint,
    within_operation,
)
from geocert.signing.signer import DelegatedAttestationSigner, SigningContext
from geocert.spatial.engine import GeodesicEngine, SpatialEngine
from geocert.utils import unix_now
from geocert.verify.plugins.registry import PluginRegistry
from geocert.verify.verifier import ProofVerifier

logger = logging.getLogger("geocert.service")

T = TypeVar("T")

AREA_TYPES = ("Polygon", "MultiPolygon")
LENGTH_TYPES = ("LineString", "MultiLineString")


class AttestationService:
    """
    Issues signed attestations for spatial computations and location proofs.

    Args:
        config: GeoCert configuration.
        registry: Ledger for on-chain references and nonces.
        spatial_engine: Geometry computations.
        plugins: Evidence plugins for the verify path.
        signer: Delegated attestation signer.
        resolver: Input resolver.
        clock: Returns current Unix seconds.
    """

    def __init__(
        self,
        config: GeoCertConfig,
        registry: AttestationRegistry,
        spatial_engine: SpatialEngine,
        plugins: PluginRegistry,
        signer: DelegatedAttestationSigner,
        resolver: InputResolver,
        clock: Callable[[], int] = unix_now,
    ):
        self.config = config
        self.registry = registry
        self.spatial = spatial_engine
        self.plugins = plugins
        self.signer = signer
        self.resolver = resolver
        self.verifier = ProofVerifier(plugins, config.verify)
        self.clock = clock

    @classmethod
    def from_config(
        cls,
        config: Optional[GeoCertConfig] = None,
        registry: Optional[AttestationRegistry] = None,
        spatial_engine: Optional[SpatialEngine] = None,
        plugins: Optional[PluginRegistry] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], int] = unix_now,
    ) -> "AttestationService":
        """Wire up a service; anything not supplied is built from config."""
        config = config or get_config()
        registry = registry or EASRegistry.from_config(config)
        context = SigningContext.from_config(config, registry, clock=clock)

        return cls(
            config=config,
            registry=registry,
            spatial_engine=spatial_engine or GeodesicEngine(),
            plugins=plugins or PluginRegistry.with_defaults(config.verify),
            signer=DelegatedAttestationSigner(context),
            resolver=InputResolver(registry, http_client, config.offchain, clock=clock),
            clock=clock,
        )

    async def aclose(self) -> None:
        await self.resolver.aclose()

    # ── Helpers ────────────────────────────────────────────────────

    @property
    def chain_id(self) -> int:
        return self.signer.context.chain_id

    def _schema_uid(self, kind: str, explicit: Optional[str]) -> str:
        schema_uid = explicit or getattr(self.config.schemas, kind)
        if not schema_uid:
            raise InvalidInputError(
                f"No schema UID given and no default {kind} schema configured "
                f"(set GEOCERT_SCHEMAS__{kind.upper()})"
            )
        return schema_uid

    async def _spatial(self, operation: str, call: Awaitable[T]) -> T:
        timeout = self.config.spatial.timeout_s
        try:
            return await asyncio.wait_for(call, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise UpstreamUnavailableError(
                f"Spatial engine timed out after {timeout}s computing {operation}"
            ) from e
        except GeoCertError:
            raise
        except Exception as e:
            raise ComputationError(f"Spatial engine failed computing {operation}: {e}") from e

    async def _resolve(self, inputs: list[Any], chain_id: Optional[int]) -> list[ResolvedInput]:
        return await self.resolver.resolve_all(inputs, chain_id or self.chain_id)

    async def _numeric(
        self,
        operation: str,
        meters: float,
        scale: int,
        scaled_units: str,
        units: str,
        resolved: list[ResolvedInput],
        schema_uid: Optional[str],
        recipient: str,
    ) -> NumericComputeResult:
        schema = self._schema_uid("numeric", schema_uid)
        timestamp = self.clock()
        refs = [r.ref for r in resolved]
        data = NumericPolicyAttestationData(
            result=scale_to_uint(meters, scale),
            units=scaled_units,
            input_refs=tuple(refs),
            timestamp=timestamp,
            operation=operation,
        )
        signed = await self.signer.sign_numeric(data, schema, recipient)
        logger.info(f"{operation}: {meters} {units} over {len(refs)} input(s)")
        return NumericComputeResult(
            result=meters,
            units=units,
            operation=operation,
            timestamp=timestamp,
            input_refs=refs,
            attestation=signed.attestation,
            delegation=signed.delegation,
        )

    async def _boolean(
        self,
        operation: str,
        result: bool,
        resolved: list[ResolvedInput],
        schema_uid: Optional[str],
        recipient: str,
    ) -> BooleanComputeResult:
        schema = self._schema_uid("boolean", schema_uid)
        timestamp = self.clock()
        refs = [r.ref for r in resolved]
        data = BooleanPolicyAttestationData(
            result=result,
            input_refs=tuple(refs),
            timestamp=timestamp,
            operation=operation,
        )
        signed = await self.signer.sign_boolean(data, schema, recipient)
        logger.info(f"{operation}: {result} over {len(refs)} input(s)")
        return BooleanComputeResult(
            result=result,
            operation=operation,
            timestamp=timestamp,
            input_refs=refs,
            attestation=signed.attestation,
            delegation=signed.delegation,
        )

    # ── Compute path ───────────────────────────────────────────────

    async def distance(
        self,
        a: Any,
        b: Any,
        schema_uid: Optional[str] = None,
        recipient: str = ZERO_ADDRESS,
        chain_id: Optional[int] = None,
    ) -> NumericComputeResult:
        """Minimum distance in meters between two geometries."""
        resolved = await self._resolve([a, b], chain_id)
        meters = await self._spatial(
            "distance", self.spatial.distance(resolved[0].geometry, resolved[1].geometry)
        )
        return await self._numeric(
            "distance", meters, DISTANCE_SCALE, CENTIMETERS, METERS, resolved, schema_uid, recipient
        )

    async def area(
        self,
        geometry: Any,
        schema_uid: Optional[str] = None,
        recipient: str = ZERO_ADDRESS,
        chain_id: Optional[int] = None,
    ) -> NumericComputeResult:
        """Area in square meters of a Polygon or MultiPolygon."""
        resolved = await self._resolve([geometry], chain_id)
        geom = resolved[0].geometry
        if geom.type not in AREA_TYPES:
            raise InvalidInputError(f"Area requires a Polygon or MultiPolygon, got {geom.type}")
        square_meters = await self._spatial("area", self.spatial.area(geom))
        return await self._numeric(
            "area", square_meters, AREA_SCALE, SQUARE_CENTIMETERS, SQUARE_METERS,
            resolved, schema_uid, recipient,
        )

    async def length(
        self,
        geometry: Any,
        schema_uid: Optional[str] = None,
        recipient: str = ZERO_ADDRESS,
        chain_id: Optional[int] = None,
    ) -> NumericComputeResult:
        """Length in meters of a LineString or MultiLineString."""
        resolved = await self._resolve([geometry], chain_id)
        geom = resolved[0].geometry
        if geom.type not in LENGTH_TYPES:
            raise InvalidInputError(f"Length requires a LineString or MultiLineString, got {geom.type}")
        meters = await self._spatial("length", self.spatial.length(geom))
        return await self._numeric(
            "length", meters, LENGTH_SCALE, CENTIMETERS, METERS, resolved, schema_uid, recipient
        )

    async def contains(
        self,
        container: Any,
        containee: Any,
        schema_uid: Optional[str] = None,
        recipient: str = ZERO_ADDRESS,
        chain_id: Optional[int] = None,
    ) -> BooleanComputeResult:
        """Whether ``container`` contains ``containee``."""
        resolved = await self._resolve([container, containee], chain_id)
        result = await self._spatial(
            "contains", self.spatial.contains(resolved[0].geometry, resolved[1].geometry)
        )
        return await self._boolean("contains", result, resolved, schema_uid, recipient)

    async def within(
        self,
        point: Any,
        target: Any,
        radius: float,
        schema_uid: Optional[str] = None,
        recipient: str = ZERO_ADDRESS,
        chain_id: Optional[int] = None,
    ) -> BooleanComputeResult:
        """Whether ``point`` lies within ``radius`` meters of ``target``."""
        if (
            isinstance(radius, bool)
            or not isinstance(radius, (int, float))
            or not math.isfinite(radius)
            or radius <= 0
        ):
            raise InvalidInputError(f"Radius must be a positive number of meters, got {radius!r}")
        operation = within_operation(radius)
        resolved = await self._resolve([point, target], chain_id)
        result = await self._spatial(
            operation, self.spatial.within(resolved[0].geometry, resolved[1].geometry, radius)
        )
        return await self._boolean(operation, result, resolved, schema_uid, recipient)

    async def intersects(
        self,
        a: Any,
        b: Any,
        schema_uid: Optional[str] = None,
        recipient: str = ZERO_ADDRESS,
        chain_id: Optional[int] = None,
    ) -> BooleanComputeResult:
        """Whether two geometries share at least one point."""
        resolved = await self._resolve([a, b], chain_id)
        result = await self._spatial(
            "intersects", self.spatial.intersects(resolved[0].geometry, resolved[1].geometry)
        )
        return await self._boolean("intersects", result, resolved, schema_uid, recipient)

    # ── Verify path ────────────────────────────────────────────────

    async def stamp_check(self, stamp: Any) -> StampVerificationResult:
        """Internal validity of one stamp; no claim, no attestation."""
        stamp = _validate(LocationStamp, stamp, "stamp")
        return await self.verifier.verify_stamp(stamp)

    async def proof_check(
        self,
        proof: Any,
        schema_uid: Optional[str] = None,
        recipient: str = ZERO_ADDRESS,
        credibility_uri: str = "",
    ) -> ProofVerificationResult:
        """Assess a claim against its stamps and attest to the resulting credibility."""
        proof = _validate(LocationProof, proof, "proof")
        schema = self._schema_uid("verify", schema_uid)

        credibility = await self.verifier.verify_proof(proof)

        claim_hash = canonical_hash(proof.claim)
        proof_hash = canonical_hash(proof)
        data = CredibilityAttestationData(
            claim_hash=claim_hash,
            proof_hash=proof_hash,
            confidence=scale_confidence(credibility.confidence),
            credibility_uri=credibility_uri,
        )
        signed: SigningResult = await self.signer.sign_credibility(data, schema, recipient)

        timestamp = self.clock()
        return ProofVerificationResult(
            uid=keccak_hex(f"{proof_hash}:{timestamp}".encode("utf-8")),
            credibility=credibility,
            proof=proof,
            claim_hash=claim_hash,
            proof_hash=proof_hash,
            attestation=signed.attestation,
            delegation=signed.delegation,
            attester=signed.attestation.attester,
            timestamp=timestamp,
            credibility_uri=credibility_uri or None,
        )

    def list_plugins(self) -> list[PluginMetadata]:
        return self.plugins.list()

    # ── Health ─────────────────────────────────────────────────────

    def health(self) -> dict[str, Any]:
        """Readiness report; a service without key material is unhealthy."""
        context = self.signer.context
        ready = context.is_ready
        return {
            "status": "healthy" if ready else "unhealthy",
            "signerReady": ready,
            "signer": context.address if ready else None,
            "chainId": context.chain_id,
            "plugins": len(self.plugins),
            "configHash": self.config.config_hash(),
        }


def _validate(model: type, value: Any, what: str):
    if isinstance(value, model):
        return value
    try:
        return model.model_validate(value)
    except ValidationError as e:
        raise InvalidInputError(f"Invalid {what}: {e}") from e
