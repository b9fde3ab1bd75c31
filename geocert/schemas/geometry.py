"""
Geometry & Input Schemas
=========================

GeoJSON geometry models plus the tagged union of ways a caller can
name a geometry:

    InlineGeometryInput: the geometry itself
    OnChainInput: a registry attestation UID
    OffChainInput: a UID plus the URI its document lives at

Wire payloads are loosely shaped (bare GeoJSON, Features, ``{"uid"}``
objects, bare UID strings). ``parse_input`` is the single place that
inspects their shape; everything downstream dispatches on the variant
type.

Coordinate rules:
    - position = [lon, lat] or [lon, lat, alt]
    - lon in [-180, 180], lat in [-90, 90], altitude unbounded
    - LineString >= 2 positions, linear ring >= 4 positions and closed

Foreign members such as ``bbox`` survive parsing. An inline geometry
hashes exactly as the object the caller sent, so two geometries that
differ only in ``bbox`` get different references.
"""

from __future__ import annotations

import re
from typing import Annotated, Any, Literal, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from geocert.errors import InvalidInputError

UID_PATTERN = re.compile(r"^0x[a-fA-F0-9]{64}$")
ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")


def _check_position(position: list[float]) -> list[float]:
    if len(position) not in (2, 3):
        raise ValueError(f"position must have 2 or 3 elements, got {position}")
    lon, lat = position[0], position[1]
    if not -180.0 <= lon <= 180.0:
        raise ValueError(f"longitude {lon} out of range [-180, 180] in position {position}")
    if not -90.0 <= lat <= 90.0:
        raise ValueError(f"latitude {lat} out of range [-90, 90] in position {position}")
    return position


def _check_line(positions: list[list[float]]) -> list[list[float]]:
    if len(positions) < 2:
        raise ValueError(f"line requires at least 2 positions, got {len(positions)}")
    return positions


def _check_ring(positions: list[list[float]]) -> list[list[float]]:
    if len(positions) < 4:
        raise ValueError(f"linear ring requires at least 4 positions, got {len(positions)}")
    if positions[0][:2] != positions[-1][:2]:
        raise ValueError(f"linear ring is not closed: {positions[0]} != {positions[-1]}")
    return positions


def _check_polygon(rings: list[list[list[float]]]) -> list[list[list[float]]]:
    if not rings:
        raise ValueError("polygon requires at least one ring")
    return rings


Position = Annotated[list[float], AfterValidator(_check_position)]
LinePositions = Annotated[list[Position], AfterValidator(_check_line)]
RingPositions = Annotated[list[Position], AfterValidator(_check_ring)]
PolygonRings = Annotated[list[RingPositions], AfterValidator(_check_polygon)]


class _GeometryBase(BaseModel):
    # Foreign members (bbox, crs, ...) are kept so they are part of the hash.
    model_config = ConfigDict(frozen=True, extra="allow")


class Point(_GeometryBase):
    type: Literal["Point"] = "Point"
    coordinates: Position


class MultiPoint(_GeometryBase):
    type: Literal["MultiPoint"] = "MultiPoint"
    coordinates: list[Position]


class LineString(_GeometryBase):
    type: Literal["LineString"] = "LineString"
    coordinates: LinePositions


class MultiLineString(_GeometryBase):
    type: Literal["MultiLineString"] = "MultiLineString"
    coordinates: list[LinePositions]


class Polygon(_GeometryBase):
    type: Literal["Polygon"] = "Polygon"
    coordinates: PolygonRings


class MultiPolygon(_GeometryBase):
    type: Literal["MultiPolygon"] = "MultiPolygon"
    coordinates: list[PolygonRings]


class GeometryCollection(_GeometryBase):
    type: Literal["GeometryCollection"] = "GeometryCollection"
    geometries: list["Geometry"]


Geometry = Annotated[
    Union[Point, MultiPoint, LineString, MultiLineString, Polygon, MultiPolygon, GeometryCollection],
    Field(discriminator="type"),
]

GeometryCollection.model_rebuild()

_geometry_adapter: TypeAdapter = TypeAdapter(Geometry)


def unwrap_feature(data: Any) -> Any:
    """Return the inner geometry of a GeoJSON Feature; pass anything else through."""
    if isinstance(data, dict) and data.get("type") == "Feature":
        if "geometry" not in data or data["geometry"] is None:
            raise InvalidInputError(f"GeoJSON Feature has no geometry: {data}")
        return data["geometry"]
    return data


def parse_geometry(data: Any) -> Geometry:
    """
    Validate a raw GeoJSON geometry (or Feature).

    Raises:
        InvalidInputError: with the validation message and the offending value.
    """
    data = unwrap_feature(data)
    if isinstance(data, _GeometryBase):
        return data
    try:
        return _geometry_adapter.validate_python(data)
    except ValidationError as e:
        raise InvalidInputError(f"Invalid geometry {data!r}: {e}") from e


# ── Inputs (tagged union) ──────────────────────────────────────────

def _check_uid(value: str) -> str:
    if not UID_PATTERN.match(value):
        raise ValueError(
            f"Invalid attestation UID format: {value}. "
            "Expected bytes32 hex string (0x followed by 64 hex chars)"
        )
    return value.lower()


class InlineGeometryInput(BaseModel):
    """Raw geometry supplied directly by the caller."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["geometry"] = "geometry"
    geometry: Geometry


class OnChainInput(BaseModel):
    """A registry attestation UID whose payload is a Location Protocol record."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["onchain"] = "onchain"
    uid: str

    @field_validator("uid")
    @classmethod
    def validate_uid(cls, v: str) -> str:
        return _check_uid(v)


class OffChainInput(BaseModel):
    """An off-chain attestation UID and the URI its signed document is served from."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["offchain"] = "offchain"
    uid: str
    uri: str

    @field_validator("uid")
    @classmethod
    def validate_uid(cls, v: str) -> str:
        return _check_uid(v)

    @field_validator("uri")
    @classmethod
    def validate_uri(cls, v: str) -> str:
        if not (v.startswith("https://") or v.startswith("http://")):
            raise ValueError(f"uri must be an http(s) URL, got {v!r}")
        return v


Input = Annotated[
    Union[InlineGeometryInput, OnChainInput, OffChainInput],
    Field(discriminator="kind"),
]


def parse_input(raw: Any) -> Union[InlineGeometryInput, OnChainInput, OffChainInput]:
    """
    Convert any accepted wire form into exactly one Input variant.

    Accepted forms:
        - an Input model (returned unchanged)
        - a GeoJSON geometry or Feature
        - {"uid": ...}            -> OnChainInput
        - {"uid": ..., "uri": ...} -> OffChainInput
        - "0x<64 hex>"            -> OnChainInput
    """
    if isinstance(raw, (InlineGeometryInput, OnChainInput, OffChainInput)):
        return raw
    if isinstance(raw, _GeometryBase):
        return InlineGeometryInput(geometry=raw)

    try:
        if isinstance(raw, str):
            return OnChainInput(uid=raw)

        if isinstance(raw, dict):
            has_type = "type" in raw
            has_uid = "uid" in raw
            if has_type and has_uid:
                raise InvalidInputError(f"Ambiguous input carries both 'type' and 'uid': {raw!r}")
            if has_type:
                return InlineGeometryInput(geometry=parse_geometry(raw))
            if has_uid:
                if "uri" in raw:
                    return OffChainInput(uid=raw["uid"], uri=raw["uri"])
                return OnChainInput(uid=raw["uid"])
    except ValidationError as e:
        raise InvalidInputError(f"Invalid input {raw!r}: {e}") from e

    raise InvalidInputError(
        f"Invalid input format {raw!r}: expected GeoJSON geometry, {{'uid'}} or {{'uid', 'uri'}}"
    )


class ResolvedInput(BaseModel):
    """
    A geometry ready for computation, plus its reference.

    ``ref`` is the canonical hash of the geometry for inline inputs, or
    the original attestation UID for resolved references. It is never
    recomputed once set.
    """
    model_config = ConfigDict(frozen=True)

    geometry: Geometry
    ref: str = Field(description="32-byte reference (0x + 64 hex)")
