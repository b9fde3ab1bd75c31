"""
Spatial Engine
===============

The computation boundary of the compute path. Any object with the six
async operations of ``SpatialEngine`` can be plugged into the service
(a PostGIS-backed engine, a remote engine, a test double).

GeodesicEngine is the bundled reference implementation, built on numpy.
It follows the split PostGIS makes between the two type systems:

    metrics (geography)   distance, area, length, within
        great-circle math on the WGS84 mean sphere (R = 6 371 008.8 m)
    predicates (geometry) contains, intersects
        planar topology on raw lon/lat coordinates

Rounding:
    distance / length  → centimeters        (2 decimals, in meters)
    area               → square centimeters (4 decimals, in m²)

Limitations:
    - Sphere, not spheroid: metrics differ from PostGIS's spheroidal
      defaults by up to ~0.5%.
    - ``contains`` checks vertices, segment midpoints, boundary crossings
      and holes; it is not a full DE-9IM relate.
"""

from __future__ import annotations

import asyncio
import math
from typing import Protocol, runtime_checkable

import numpy as np

from geocert.errors import InvalidInputError
from geocert.schemas.geometry import (
    Geometry,
    GeometryCollection,
    LineString,
    MultiLineString,
    MultiPoint,
    MultiPolygon,
    Point,
    Polygon,
)

EARTH_RADIUS_M = 6_371_008.8
_EPS = 1e-12


@runtime_checkable
class SpatialEngine(Protocol):
    """Geospatial operations over validated geometries."""

    async def distance(self, a: Geometry, b: Geometry) -> float: ...

    async def area(self, geometry: Geometry) -> float: ...

    async def length(self, geometry: Geometry) -> float: ...

    async def contains(self, container: Geometry, containee: Geometry) -> bool: ...

    async def within(self, point: Geometry, target: Geometry, radius_m: float) -> bool: ...

    async def intersects(self, a: Geometry, b: Geometry) -> bool: ...


def round_to(value: float, decimals: int) -> float:
    """Round half away from zero (values here are non-negative)."""
    factor = 10 ** decimals
    return math.floor(value * factor + 0.5) / factor


# ── Decomposition ──────────────────────────────────────────────────

class _Parts:
    """A geometry flattened into points, lines and polygons (lon/lat arrays)."""

    def __init__(self) -> None:
        self.points: list[np.ndarray] = []
        self.lines: list[np.ndarray] = []
        self.polygons: list[list[np.ndarray]] = []

    @classmethod
    def of(cls, geometry: Geometry) -> "_Parts":
        parts = cls()
        parts._add(geometry)
        return parts

    def _add(self, g: Geometry) -> None:
        if isinstance(g, Point):
            self.points.append(np.asarray(g.coordinates[:2], dtype=float))
        elif isinstance(g, MultiPoint):
            self.points.extend(np.asarray(p[:2], dtype=float) for p in g.coordinates)
        elif isinstance(g, LineString):
            self.lines.append(_xy(g.coordinates))
        elif isinstance(g, MultiLineString):
            self.lines.extend(_xy(line) for line in g.coordinates)
        elif isinstance(g, Polygon):
            self.polygons.append([_xy(ring) for ring in g.coordinates])
        elif isinstance(g, MultiPolygon):
            self.polygons.extend([_xy(ring) for ring in poly] for poly in g.coordinates)
        elif isinstance(g, GeometryCollection):
            for child in g.geometries:
                self._add(child)

    def vertices(self) -> np.ndarray:
        arrays = [p.reshape(1, 2) for p in self.points]
        arrays += self.lines
        arrays += [ring for poly in self.polygons for ring in poly]
        if not arrays:
            return np.empty((0, 2))
        return np.vstack(arrays)

    def segments(self) -> np.ndarray:
        """All line and ring segments as an (n, 2, 2) array."""
        chains = list(self.lines) + [ring for poly in self.polygons for ring in poly]
        segs = [np.stack([c[:-1], c[1:]], axis=1) for c in chains if len(c) >= 2]
        if not segs:
            return np.empty((0, 2, 2))
        return np.concatenate(segs)

    def ring_segments(self) -> np.ndarray:
        rings = [ring for poly in self.polygons for ring in poly]
        segs = [np.stack([r[:-1], r[1:]], axis=1) for r in rings]
        if not segs:
            return np.empty((0, 2, 2))
        return np.concatenate(segs)

    def line_endpoints(self) -> np.ndarray:
        ends = [np.stack([line[0], line[-1]]) for line in self.lines if not np.allclose(line[0], line[-1])]
        if not ends:
            return np.empty((0, 2))
        return np.vstack(ends)


def _xy(positions: list[list[float]]) -> np.ndarray:
    return np.asarray([p[:2] for p in positions], dtype=float)


# ── Spherical metrics ──────────────────────────────────────────────

def _unit_vectors(lonlat: np.ndarray) -> np.ndarray:
    lon = np.radians(lonlat[..., 0])
    lat = np.radians(lonlat[..., 1])
    return np.stack(
        [np.cos(lat) * np.cos(lon), np.cos(lat) * np.sin(lon), np.sin(lat)], axis=-1
    )


def _angle(u: np.ndarray, v: np.ndarray) -> np.ndarray:
    """Central angle between unit vectors, stable for tiny and antipodal angles."""
    cross = np.linalg.norm(np.cross(u, v), axis=-1)
    dot = np.sum(u * v, axis=-1)
    return np.arctan2(cross, dot)


def haversine(p: np.ndarray, q: np.ndarray) -> np.ndarray:
    """Great-circle distance (meters) between broadcastable lon/lat arrays."""
    lon1, lat1 = np.radians(p[..., 0]), np.radians(p[..., 1])
    lon2, lat2 = np.radians(q[..., 0]), np.radians(q[..., 1])
    h = (
        np.sin((lat2 - lat1) / 2) ** 2
        + np.cos(lat1) * np.cos(lat2) * np.sin((lon2 - lon1) / 2) ** 2
    )
    return 2 * EARTH_RADIUS_M * np.arcsin(np.sqrt(np.clip(h, 0.0, 1.0)))


def haversine_matrix(p: np.ndarray, q: np.ndarray) -> np.ndarray:
    """Pairwise distances (meters) between (k, 2) and (m, 2) lon/lat arrays."""
    return haversine(p[:, None, :], q[None, :, :])


def point_segment_distance(points: np.ndarray, segs: np.ndarray) -> np.ndarray:
    """Great-circle distance (meters) from each point (k, 2) to each arc (n, 2, 2)."""
    P = _unit_vectors(points)[:, None, :]
    A = _unit_vectors(segs[:, 0])[None, :, :]
    B = _unit_vectors(segs[:, 1])[None, :, :]

    normal = np.cross(A, B)
    norm = np.linalg.norm(normal, axis=-1, keepdims=True)
    degenerate = norm[..., 0] < _EPS
    n_hat = np.where(norm < _EPS, 0.0, normal / np.where(norm < _EPS, 1.0, norm))

    sin_xt = np.sum(P * n_hat, axis=-1)
    projected = P - sin_xt[..., None] * n_hat
    between = (
        (np.sum(np.cross(A, projected) * n_hat, axis=-1) >= 0)
        & (np.sum(np.cross(projected, B) * n_hat, axis=-1) >= 0)
    )
    cross_track = np.arcsin(np.clip(np.abs(sin_xt), 0.0, 1.0))
    to_ends = np.minimum(_angle(P, A), _angle(P, B))

    angle = np.where(between & ~degenerate, cross_track, to_ends)
    return angle * EARTH_RADIUS_M


def ring_area(ring: np.ndarray) -> float:
    """Area (m²) enclosed by a closed lon/lat ring on the sphere."""
    lon = np.radians(ring[:, 0])
    lat = np.radians(ring[:, 1])
    total = np.sum((lon[1:] - lon[:-1]) * (2 + np.sin(lat[:-1]) + np.sin(lat[1:])))
    return float(abs(total) * EARTH_RADIUS_M ** 2 / 2)


def line_length(line: np.ndarray) -> float:
    if len(line) < 2:
        return 0.0
    return float(np.sum(haversine(line[:-1], line[1:])))


# ── Planar topology ────────────────────────────────────────────────

def _orient(p: np.ndarray, q: np.ndarray, r: np.ndarray) -> np.ndarray:
    return (q[..., 0] - p[..., 0]) * (r[..., 1] - p[..., 1]) - (q[..., 1] - p[..., 1]) * (r[..., 0] - p[..., 0])


def _in_box(p: np.ndarray, a: np.ndarray, b: np.ndarray) -> np.ndarray:
    return (
        (np.minimum(a[..., 0], b[..., 0]) - _EPS <= p[..., 0])
        & (p[..., 0] <= np.maximum(a[..., 0], b[..., 0]) + _EPS)
        & (np.minimum(a[..., 1], b[..., 1]) - _EPS <= p[..., 1])
        & (p[..., 1] <= np.maximum(a[..., 1], b[..., 1]) + _EPS)
    )


def points_on_segments(points: np.ndarray, segs: np.ndarray) -> np.ndarray:
    """(k, n) mask: point k lies on segment n."""
    if len(points) == 0 or len(segs) == 0:
        return np.zeros((len(points), len(segs)), dtype=bool)
    p = points[:, None, :]
    a = segs[None, :, 0]
    b = segs[None, :, 1]
    return (np.abs(_orient(a, b, p)) <= _EPS) & _in_box(p, a, b)


def segments_intersect(s1: np.ndarray, s2: np.ndarray, proper_only: bool = False) -> np.ndarray:
    """(n, m) mask of segment pairs that share at least one point."""
    if len(s1) == 0 or len(s2) == 0:
        return np.zeros((len(s1), len(s2)), dtype=bool)
    a1, a2 = s1[:, None, 0], s1[:, None, 1]
    b1, b2 = s2[None, :, 0], s2[None, :, 1]

    d1 = _orient(b1, b2, a1)
    d2 = _orient(b1, b2, a2)
    d3 = _orient(a1, a2, b1)
    d4 = _orient(a1, a2, b2)

    nonzero = (np.abs(d1) > _EPS) & (np.abs(d2) > _EPS) & (np.abs(d3) > _EPS) & (np.abs(d4) > _EPS)
    proper = nonzero & (d1 * d2 < 0) & (d3 * d4 < 0)
    if proper_only:
        return proper

    touching = (
        ((np.abs(d1) <= _EPS) & _in_box(a1, b1, b2))
        | ((np.abs(d2) <= _EPS) & _in_box(a2, b1, b2))
        | ((np.abs(d3) <= _EPS) & _in_box(b1, a1, a2))
        | ((np.abs(d4) <= _EPS) & _in_box(b2, a1, a2))
    )
    return proper | touching


def points_in_ring(points: np.ndarray, ring: np.ndarray) -> np.ndarray:
    """Even-odd ray casting; boundary points are not classified reliably."""
    if len(points) == 0:
        return np.zeros(0, dtype=bool)
    px, py = points[:, 0][:, None], points[:, 1][:, None]
    xi, yi = ring[:-1, 0][None, :], ring[:-1, 1][None, :]
    xj, yj = ring[1:, 0][None, :], ring[1:, 1][None, :]
    with np.errstate(divide="ignore", invalid="ignore"):
        crosses = ((yi > py) != (yj > py)) & (px < (xj - xi) * (py - yi) / (yj - yi) + xi)
    return np.sum(crosses, axis=1) % 2 == 1


def locate_in_polygon(points: np.ndarray, rings: list[np.ndarray]) -> np.ndarray:
    """Per point: 1 interior, 0 boundary, -1 exterior."""
    segs = np.concatenate([np.stack([r[:-1], r[1:]], axis=1) for r in rings])
    on_boundary = points_on_segments(points, segs).any(axis=1)
    inside = points_in_ring(points, rings[0])
    for hole in rings[1:]:
        inside &= ~points_in_ring(points, hole)
    return np.where(on_boundary, 0, np.where(inside, 1, -1))


def _points_equal(p: np.ndarray, q: np.ndarray) -> np.ndarray:
    if len(p) == 0 or len(q) == 0:
        return np.zeros((len(p), len(q)), dtype=bool)
    return np.all(np.abs(p[:, None, :] - q[None, :, :]) <= _EPS, axis=-1)


def _covered_and_interior(points: np.ndarray, parts: _Parts) -> tuple[np.ndarray, np.ndarray]:
    """Whether each point is covered by ``parts``, and whether it lies in its interior."""
    covered = np.zeros(len(points), dtype=bool)
    interior = np.zeros(len(points), dtype=bool)
    if len(points) == 0:
        return covered, interior

    if parts.points:
        hits = _points_equal(points, np.vstack(parts.points)).any(axis=1)
        covered |= hits
        interior |= hits

    if parts.lines:
        line_segs = np.concatenate([np.stack([ln[:-1], ln[1:]], axis=1) for ln in parts.lines])
        on_line = points_on_segments(points, line_segs).any(axis=1)
        at_end = _points_equal(points, parts.line_endpoints()).any(axis=1)
        covered |= on_line
        interior |= on_line & ~at_end

    for rings in parts.polygons:
        loc = locate_in_polygon(points, rings)
        covered |= loc >= 0
        interior |= loc == 1

    return covered, interior


def planar_intersects(a: _Parts, b: _Parts) -> bool:
    if segments_intersect(a.segments(), b.segments()).any():
        return True
    for first, second in ((a, b), (b, a)):
        covered, _ = _covered_and_interior(first.vertices(), second)
        if covered.any():
            return True
    return False


def planar_contains(a: _Parts, b: _Parts) -> bool:
    b_vertices = b.vertices()
    if len(b_vertices) == 0:
        return False

    b_segs = b.segments()
    samples = b_vertices
    if len(b_segs):
        samples = np.vstack([b_vertices, b_segs.mean(axis=1)])

    covered, interior = _covered_and_interior(samples, a)
    if not covered.all() or not interior.any():
        return False

    # An edge of b may leave a between two covered samples.
    if segments_intersect(b_segs, a.ring_segments(), proper_only=True).any():
        return False

    # A hole of a lying inside a polygon of b.
    for rings in a.polygons:
        for hole in rings[1:]:
            for b_rings in b.polygons:
                if (locate_in_polygon(hole, b_rings) == 1).any():
                    return False
    return True


# ── Engine ─────────────────────────────────────────────────────────

class GeodesicEngine:
    """
    Local reference implementation of ``SpatialEngine``.

    Operations run in a worker thread so the event loop stays free
    while numpy works through large geometries.
    """

    name = "geodesic"

    async def distance(self, a: Geometry, b: Geometry) -> float:
        return await asyncio.to_thread(self.distance_sync, a, b)

    async def area(self, geometry: Geometry) -> float:
        return await asyncio.to_thread(self.area_sync, geometry)

    async def length(self, geometry: Geometry) -> float:
        return await asyncio.to_thread(self.length_sync, geometry)

    async def contains(self, container: Geometry, containee: Geometry) -> bool:
        return await asyncio.to_thread(self.contains_sync, container, containee)

    async def within(self, point: Geometry, target: Geometry, radius_m: float) -> bool:
        return await asyncio.to_thread(self.within_sync, point, target, radius_m)

    async def intersects(self, a: Geometry, b: Geometry) -> bool:
        return await asyncio.to_thread(self.intersects_sync, a, b)

    # ── Synchronous core ───────────────────────────────────────────

    def distance_sync(self, a: Geometry, b: Geometry) -> float:
        return round_to(self._raw_distance(_Parts.of(a), _Parts.of(b)), 2)

    def area_sync(self, geometry: Geometry) -> float:
        total = 0.0
        for rings in _Parts.of(geometry).polygons:
            outer = ring_area(rings[0])
            holes = sum(ring_area(h) for h in rings[1:])
            total += max(0.0, outer - holes)
        return round_to(total, 4)

    def length_sync(self, geometry: Geometry) -> float:
        return round_to(sum(line_length(line) for line in _Parts.of(geometry).lines), 2)

    def contains_sync(self, container: Geometry, containee: Geometry) -> bool:
        return bool(planar_contains(_Parts.of(container), _Parts.of(containee)))

    def within_sync(self, point: Geometry, target: Geometry, radius_m: float) -> bool:
        return self._raw_distance(_Parts.of(point), _Parts.of(target)) <= radius_m

    def intersects_sync(self, a: Geometry, b: Geometry) -> bool:
        return bool(planar_intersects(_Parts.of(a), _Parts.of(b)))

    @staticmethod
    def _raw_distance(a: _Parts, b: _Parts) -> float:
        if planar_intersects(a, b):
            return 0.0

        a_vertices, b_vertices = a.vertices(), b.vertices()
        if len(a_vertices) == 0 or len(b_vertices) == 0:
            raise InvalidInputError("Cannot measure distance to an empty geometry")
        candidates = [float(haversine_matrix(a_vertices, b_vertices).min())]

        b_segs, a_segs = b.segments(), a.segments()
        if len(b_segs):
            candidates.append(float(point_segment_distance(a_vertices, b_segs).min()))
        if len(a_segs):
            candidates.append(float(point_segment_distance(b_vertices, a_segs).min()))
        return min(candidates)
