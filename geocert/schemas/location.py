"""
Location Evidence Schemas
==========================

Data contracts for the verify path, following Location Protocol v0.2:

1. LocationClaim: the assertion under test (who, where, when, how precise)
2. LocationStamp: one piece of evidence from one named evidence source
3. LocationProof: a claim bundled with one or more stamps

Stamps never reference a claim; how well a stamp supports a claim is
computed at verification time by the stamp's plugin.

Design Decisions:
    - Wire names are camelCase (``temporalFootprint``), Python names are
      snake_case; both are accepted on input.
    - LocationClaim is validated strictly: it is the request itself.
    - LocationStamp is validated for types but tolerates missing fields,
      so that a structurally broken stamp is scored by its plugin
      (``structure_valid=False``) instead of failing the whole proof.

Data Flow:
    LocationProof → ProofVerifier → CredibilityAssessment
"""

from __future__ import annotations

from typing import Any, Optional, Union

from pydantic import Field, model_validator

from geocert.schemas.base import WireModel
from geocert.schemas.geometry import Geometry

LP_VERSION = "0.2"
WGS84_SRS = "http://www.opengis.net/def/crs/OGC/1.3/CRS84"

LocationData = Union[Geometry, str]


class SubjectIdentifier(WireModel):
    """
    DID-style identifier ``scheme:value``.

    Examples:
        {"scheme": "eth-address", "value": "0x1234..."}
        {"scheme": "device-pubkey", "value": "0xabcd..."}
    """
    scheme: str = Field(min_length=1)
    value: str = Field(min_length=1)


class TimeBounds(WireModel):
    """Closed time interval in Unix seconds."""
    start: int = Field(gt=0, description="Start (Unix seconds)")
    end: int = Field(gt=0, description="End (Unix seconds)")

    @model_validator(mode="after")
    def validate_order(self) -> "TimeBounds":
        if self.end < self.start:
            raise ValueError(f"End time must be >= start time (start={self.start}, end={self.end})")
        return self

    @property
    def duration(self) -> int:
        return self.end - self.start


class LocationClaim(WireModel):
    """
    An assertion about where and when an event happened.

    Schema:
        {
          "lpVersion": "0.2",
          "locationType": "geojson-point",
          "location": {"type": "Point", "coordinates": [-122.4194, 37.7749]},
          "srs": "http://www.opengis.net/def/crs/OGC/1.3/CRS84",
          "subject": {"scheme": "eth-address", "value": "0x..."},
          "radius": 100,
          "time": {"start": 1700000000, "end": 1700000060},
          "eventType": "presence"
        }
    """
    lp_version: str = Field(default=LP_VERSION, description="Location Protocol version")
    location_type: str = Field(min_length=1, description="e.g. 'geojson-point', 'h3-index'")
    location: LocationData = Field(description="Claimed location (GeoJSON or opaque string)")
    srs: str = Field(default=WGS84_SRS, description="Spatial reference system URI")
    subject: SubjectIdentifier = Field(description="Who or what was at the location")
    radius: float = Field(gt=0, description="Spatial uncertainty in meters")
    time: TimeBounds = Field(description="Temporal bounds of the claim")
    event_type: Optional[str] = Field(default=None, description="'presence', 'delivery', ...")

    @model_validator(mode="after")
    def validate_version(self) -> "LocationClaim":
        if self.lp_version != LP_VERSION:
            raise ValueError(f'lpVersion must be "{LP_VERSION}", got "{self.lp_version}"')
        return self


class StampSignature(WireModel):
    """Signature binding a stamp to a signer. Format is checked by the plugin."""
    signer: Optional[SubjectIdentifier] = None
    algorithm: str = Field(default="", description="'secp256k1', 'ed25519', ...")
    value: str = Field(default="", description="Hex-encoded signature")
    timestamp: Optional[int] = Field(default=None, description="When the signature was created")


class LocationStamp(WireModel):
    """
    Evidence from a proof-of-location system.

    Every field except ``plugin`` may be absent; the plugin decides
    whether the stamp is structurally valid.
    """
    lp_version: Optional[str] = None
    location_type: Optional[str] = None
    location: Optional[LocationData] = None
    srs: Optional[str] = None
    temporal_footprint: Optional[TimeBounds] = None
    plugin: str = Field(min_length=1, description="Evidence source, e.g. 'proofmode'")
    plugin_version: Optional[str] = None
    signals: Optional[dict[str, Any]] = Field(default=None, description="Plugin-specific evidence")
    signatures: list[StampSignature] = Field(default_factory=list)

    def unsigned_body(self) -> dict[str, Any]:
        """Wire form without signatures: the content a stamp signature covers."""
        body = self.to_wire()
        body.pop("signatures", None)
        return body


class LocationProof(WireModel):
    """A claim bundled with the evidence submitted to support it."""
    claim: LocationClaim
    stamps: list[LocationStamp] = Field(min_length=1, description="At least one stamp")

    @property
    def is_multi_stamp(self) -> bool:
        return len(self.stamps) > 1
