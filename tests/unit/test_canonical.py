"""
Canonical Hashing Tests
=========================

The canonical hash is what downstream verifiers recompute to prove an
exact geometry was used, so it must ignore key order and float
spelling but never coordinate order.
"""

from __future__ import annotations

import math

import pytest

from geocert.errors import InvalidInputError
from geocert.resolve.canonical import ZERO_BYTES32, canonical_hash, canonical_json, keccak_hex
from geocert.schemas.geometry import parse_geometry
from tests.conftest import GOLDEN_GATE_PARK, SF_POINT


class TestCanonicalJson:

    def test_keys_sorted_recursively(self):
        assert canonical_json({"b": 1, "a": {"d": 2, "c": 3}}) == '{"a":{"c":3,"d":2},"b":1}'

    def test_array_order_preserved(self):
        assert canonical_json([3, 1, 2]) == "[3,1,2]"

    def test_integral_float_renders_as_int(self):
        assert canonical_json({"x": 1.0}) == canonical_json({"x": 1})

    def test_non_finite_rejected(self):
        """NaN and Infinity have no canonical form."""
        with pytest.raises(InvalidInputError):
            canonical_json({"x": math.nan})
        with pytest.raises(InvalidInputError):
            canonical_json([math.inf])

    def test_unsupported_type_rejected(self):
        with pytest.raises(InvalidInputError):
            canonical_json({"x": object()})


class TestCanonicalHash:

    def test_keccak_of_empty_input(self):
        assert keccak_hex(b"") == "0xc5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"

    def test_hash_format(self):
        digest = canonical_hash(SF_POINT)
        assert digest.startswith("0x") and len(digest) == 66
        assert digest != ZERO_BYTES32

    def test_key_order_does_not_matter(self):
        reordered = {"coordinates": [-122.4194, 37.7749], "type": "Point"}
        assert canonical_hash(reordered) == canonical_hash(SF_POINT)

    def test_coordinate_order_matters(self):
        swapped = {"type": "Point", "coordinates": [37.7749, -122.4194]}
        assert canonical_hash(swapped) != canonical_hash(SF_POINT)

    def test_model_hashes_like_its_wire_form(self):
        """A parsed geometry hashes the same as the raw GeoJSON it came from."""
        assert canonical_hash(parse_geometry(GOLDEN_GATE_PARK)) == canonical_hash(GOLDEN_GATE_PARK)

    def test_deterministic(self):
        assert canonical_hash(GOLDEN_GATE_PARK) == canonical_hash(GOLDEN_GATE_PARK)


class TestNumberSpelling:
    """Numbers are spelled as JSON.stringify spells them."""

    def test_small_coordinates(self):
        point = {"type": "Point", "coordinates": [0.00005, 1e-7]}
        assert canonical_json(point) == '{"coordinates":[0.00005,1e-7],"type":"Point"}'

    @pytest.mark.parametrize("value, expected", [
        (0.1, "0.1"),
        (-122.4194, "-122.4194"),
        (0.000001, "0.000001"),
        (1.5e-7, "1.5e-7"),
        (-2.5e-9, "-2.5e-9"),
        (123456789.125, "123456789.125"),
        (1e20, "100000000000000000000"),
        (1e21, "1e+21"),
        (1.25e22, "1.25e+22"),
        (-0.0, "0"),
    ])
    def test_number_forms(self, value, expected):
        assert canonical_json([value]) == f"[{expected}]"

    def test_strings_escaped(self):
        assert canonical_json({"s": 'a"b\n'}) == '{"s":"a\\"b\\n"}'


class TestForeignMembers:

    def test_bbox_is_hashed(self):
        with_bbox = {**SF_POINT, "bbox": [-122.5, 37.7, -122.4, 37.8]}
        assert canonical_hash(with_bbox) != canonical_hash(SF_POINT)

    def test_parsed_geometry_keeps_bbox(self):
        with_bbox = {**SF_POINT, "bbox": [-122.5, 37.7, -122.4, 37.8]}
        assert canonical_hash(parse_geometry(with_bbox)) == canonical_hash(with_bbox)
