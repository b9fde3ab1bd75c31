"""
CLI Tests
==========

Runs ``geocert.cli.main`` in-process with an offline registry and
configuration taken from GEOCERT_ environment variables.
"""

from __future__ import annotations

import json

import pytest

from geocert.cli import load_input, main
from geocert.resolve.canonical import canonical_hash
from tests.conftest import (
    GOLDEN_GATE_PARK,
    NYC_POINT,
    SF_POINT,
    TEST_ADDRESS,
    TEST_PRIVATE_KEY,
    TEST_SCHEMA_UID,
    make_stamp_data,
)


@pytest.fixture
def signer_env(monkeypatch):
    monkeypatch.setenv("GEOCERT_SIGNER_PRIVATE_KEY", TEST_PRIVATE_KEY)
    monkeypatch.setenv("GEOCERT_SCHEMAS__NUMERIC", TEST_SCHEMA_UID)
    monkeypatch.setenv("GEOCERT_SCHEMAS__BOOLEAN", TEST_SCHEMA_UID)


@pytest.fixture
def no_signer_env(monkeypatch):
    monkeypatch.delenv("GEOCERT_SIGNER_PRIVATE_KEY", raising=False)
    monkeypatch.delenv("GEOCERT_SIGNER_MNEMONIC", raising=False)


def _stdout_json(capsys) -> dict:
    return json.loads(capsys.readouterr().out)


class TestLoadInput:

    def test_inline_json(self):
        assert load_input(json.dumps(SF_POINT)) == SF_POINT

    def test_file(self, tmp_path):
        path = tmp_path / "park.json"
        path.write_text(json.dumps(GOLDEN_GATE_PARK))
        assert load_input(str(path)) == GOLDEN_GATE_PARK
        assert load_input("@" + str(path)) == GOLDEN_GATE_PARK

    def test_bare_uid(self):
        uid = "0x" + "ab" * 32
        assert load_input(uid) == uid


class TestCompute:

    def test_distance(self, signer_env, capsys):
        code = main([
            "--offline", "compute", "distance",
            "-i", json.dumps(SF_POINT), "-i", json.dumps(NYC_POINT),
        ])
        assert code == 0
        output = _stdout_json(capsys)
        assert output["units"] == "meters"
        assert output["inputRefs"] == [canonical_hash(SF_POINT), canonical_hash(NYC_POINT)]
        assert output["attestation"]["attester"] == TEST_ADDRESS
        assert output["delegation"]["nonce"] == 0

    def test_within_writes_output(self, signer_env, tmp_path, capsys):
        out = tmp_path / "within.json"
        code = main([
            "--offline", "compute", "within",
            "-i", json.dumps(SF_POINT), "-i", json.dumps(GOLDEN_GATE_PARK),
            "--radius", "5000", "--output", str(out),
        ])
        assert code == 0
        saved = json.loads(out.read_text())
        assert saved["operation"] == "within:500000"
        assert saved["result"] is True

    def test_within_requires_radius(self, signer_env, capsys):
        code = main([
            "--offline", "compute", "within",
            "-i", json.dumps(SF_POINT), "-i", json.dumps(GOLDEN_GATE_PARK),
        ])
        assert code == 1
        assert "radius" in _stdout_json(capsys)["detail"]

    def test_wrong_input_count(self, signer_env, capsys):
        code = main(["--offline", "compute", "distance", "-i", json.dumps(SF_POINT)])
        assert code == 1
        assert _stdout_json(capsys)["status"] == 400

    def test_area_of_point_is_problem(self, signer_env, capsys):
        code = main(["--offline", "compute", "area", "-i", json.dumps(SF_POINT)])
        assert code == 1
        problem = _stdout_json(capsys)
        assert problem["status"] == 400
        assert problem["type"].endswith("/invalid-input")
        assert problem["instance"] == "compute"

    def test_no_key_is_problem(self, no_signer_env, monkeypatch, capsys):
        monkeypatch.setenv("GEOCERT_SCHEMAS__NUMERIC", TEST_SCHEMA_UID)
        code = main(["--offline", "compute", "area", "-i", json.dumps(GOLDEN_GATE_PARK)])
        assert code == 1
        assert _stdout_json(capsys)["type"].endswith("/signer-not-ready")


class TestVerifyStamp:

    def test_valid_stamp(self, signer_env, tmp_path, capsys):
        path = tmp_path / "stamp.json"
        path.write_text(json.dumps(make_stamp_data()))
        assert main(["--offline", "verify-stamp", str(path)]) == 0
        assert _stdout_json(capsys)["valid"] is True

    def test_invalid_stamp_exit_code(self, signer_env, tmp_path, capsys):
        path = tmp_path / "stamp.json"
        path.write_text(json.dumps(make_stamp_data(signature_value="not-a-hex-signature")))
        assert main(["--offline", "verify-stamp", str(path)]) == 2


class TestInfoCommands:

    def test_plugins(self, capsys):
        assert main(["--offline", "plugins"]) == 0
        output = _stdout_json(capsys)
        assert [p["name"] for p in output["plugins"]] == ["proofmode"]

    def test_health_with_key(self, signer_env, capsys):
        assert main(["--offline", "health"]) == 0
        assert _stdout_json(capsys)["signer"] == TEST_ADDRESS

    def test_health_without_key(self, no_signer_env, capsys):
        assert main(["--offline", "health"]) == 1
        assert _stdout_json(capsys)["status"] == "unhealthy"

    def test_export_schemas(self, tmp_path, capsys):
        out = tmp_path / "schemas"
        assert main(["export-schemas", "--output-dir", str(out)]) == 0
        exported = sorted(p.name for p in out.glob("*.json"))
        assert "location_proof.json" in exported
        assert "numeric_compute_result.json" in exported
        assert len(exported) == 9

    def test_no_command(self, capsys):
        assert main([]) == 1
