"""
GeoCert CLI
============

Command-line interface for issuing attestations and checking evidence.

Usage:
    python -m geocert compute distance --input a.geojson --input '{"uid": "0x…"}'
    python -m geocert compute within --input point.json --input park.json --radius 500
    python -m geocert verify-stamp stamp.json
    python -m geocert verify-proof proof.json --credibility-uri https://…
    python -m geocert plugins
    python -m geocert health
    python -m geocert export-schemas --output-dir schemas

Inputs are inline JSON, a path to a JSON file, or a bare attestation UID.
``--offline`` swaps the EAS registry for an empty in-memory one (nonce 0,
inline geometry only). Failures print a problem document and exit 1.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from geocert.config import get_config
from geocert.errors import to_problem
from geocert.utils import generate_run_id, save_json, setup_logging

COMPUTE_OPERATIONS = {
    "distance": 2,
    "area": 1,
    "length": 1,
    "contains": 2,
    "within": 2,
    "intersects": 2,
}


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="geocert",
        description="GeoCert: signed attestations for geospatial computations and location proofs",
    )
    parser.add_argument("--config", type=str, default=None, help="Path to config YAML")
    parser.add_argument("--offline", action="store_true", help="Use an in-memory registry")
    parser.add_argument("--verbose", "-v", action="store_true")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # ── compute ─────────────────────────────────────────────────
    compute_parser = subparsers.add_parser("compute", help="Compute and attest a spatial operation")
    compute_parser.add_argument("operation", choices=sorted(COMPUTE_OPERATIONS))
    compute_parser.add_argument(
        "--input", "-i", action="append", required=True, dest="inputs",
        help="Geometry JSON, JSON file path, or attestation UID (repeat per input)",
    )
    compute_parser.add_argument("--radius", type=float, default=None, help="Radius in meters (within)")
    compute_parser.add_argument("--schema", type=str, default=None, help="EAS schema UID")
    compute_parser.add_argument("--recipient", type=str, default=None, help="Recipient address")
    compute_parser.add_argument("--chain-id", type=int, default=None, help="Chain for on-chain inputs")
    compute_parser.add_argument("--output", type=str, default=None, help="Output JSON path")

    # ── verify-stamp ────────────────────────────────────────────
    stamp_parser = subparsers.add_parser("verify-stamp", help="Check one stamp's internal validity")
    stamp_parser.add_argument("file", help="Stamp JSON file")

    # ── verify-proof ────────────────────────────────────────────
    proof_parser = subparsers.add_parser("verify-proof", help="Assess and attest a location proof")
    proof_parser.add_argument("file", help="Proof JSON file (claim + stamps)")
    proof_parser.add_argument("--schema", type=str, default=None, help="EAS schema UID")
    proof_parser.add_argument("--recipient", type=str, default=None, help="Recipient address")
    proof_parser.add_argument("--credibility-uri", type=str, default="")
    proof_parser.add_argument("--output", type=str, default=None, help="Output JSON path")

    # ── plugins / health ────────────────────────────────────────
    subparsers.add_parser("plugins", help="List verification plugins")
    subparsers.add_parser("health", help="Report signer readiness")

    # ── export-schemas ──────────────────────────────────────────
    schema_parser = subparsers.add_parser("export-schemas", help="Export JSON schemas")
    schema_parser.add_argument("--output-dir", default="schemas")

    args = parser.parse_args(argv)

    config = get_config(args.config)
    setup_logging(
        level="DEBUG" if args.verbose else config.log_level,
        format_style=config.log_format,
        run_id=generate_run_id(),
    )

    commands = {
        "compute": cmd_compute,
        "verify-stamp": cmd_verify_stamp,
        "verify-proof": cmd_verify_proof,
        "plugins": cmd_plugins,
        "health": cmd_health,
        "export-schemas": cmd_export_schemas,
    }
    command = commands.get(args.command)
    if command is None:
        parser.print_help()
        return 1

    try:
        return command(args, config)
    except Exception as e:
        problem = to_problem(e, instance=args.command)
        print(json.dumps(problem.model_dump(exclude_none=True), indent=2))
        return 1


def load_input(value: str) -> Any:
    """Inline JSON, a JSON file path (optionally prefixed with @), or a bare string."""
    path = Path(value[1:] if value.startswith("@") else value)
    if value.startswith("@") or (len(value) < 4096 and path.suffix and path.is_file()):
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value


def _build_service(args, config):
    from geocert.resolve.registry import InMemoryRegistry
    from geocert.service import AttestationService

    registry = InMemoryRegistry() if args.offline else None
    return AttestationService.from_config(config, registry=registry)


def _emit(model, output: str | None = None) -> None:
    data = model.to_wire() if hasattr(model, "to_wire") else model
    print(json.dumps(data, indent=2, ensure_ascii=False))
    if output:
        save_json(data, output)


def cmd_compute(args, config) -> int:
    """Compute a spatial operation and print the signed result."""
    from geocert.errors import InvalidInputError
    from geocert.schemas.attestation import ZERO_ADDRESS

    expected = COMPUTE_OPERATIONS[args.operation]
    if len(args.inputs) != expected:
        raise InvalidInputError(
            f"{args.operation} takes {expected} input(s), got {len(args.inputs)}"
        )
    if args.operation == "within" and args.radius is None:
        raise InvalidInputError("within requires --radius")

    inputs = [load_input(v) for v in args.inputs]
    options = {
        "schema_uid": args.schema,
        "recipient": args.recipient or ZERO_ADDRESS,
        "chain_id": args.chain_id,
    }

    async def run():
        service = _build_service(args, config)
        try:
            operation = getattr(service, args.operation)
            if args.operation == "within":
                return await operation(inputs[0], inputs[1], args.radius, **options)
            return await operation(*inputs, **options)
        finally:
            await service.aclose()

    _emit(asyncio.run(run()), args.output)
    return 0


def cmd_verify_stamp(args, config) -> int:
    """Check one stamp and print its validity result."""
    stamp = load_input("@" + args.file)

    async def run():
        service = _build_service(args, config)
        try:
            return await service.stamp_check(stamp)
        finally:
            await service.aclose()

    result = asyncio.run(run())
    _emit(result)
    return 0 if result.valid else 2


def cmd_verify_proof(args, config) -> int:
    """Assess a proof and print the signed credibility attestation."""
    from geocert.schemas.attestation import ZERO_ADDRESS

    proof = load_input("@" + args.file)

    async def run():
        service = _build_service(args, config)
        try:
            return await service.proof_check(
                proof,
                schema_uid=args.schema,
                recipient=args.recipient or ZERO_ADDRESS,
                credibility_uri=args.credibility_uri,
            )
        finally:
            await service.aclose()

    _emit(asyncio.run(run()), args.output)
    return 0


def cmd_plugins(args, config) -> int:
    """List registered verification plugins."""
    from geocert.verify.plugins.registry import PluginRegistry

    plugins = PluginRegistry.with_defaults(config.verify)
    _emit({"plugins": [p.to_wire() for p in plugins.list()]})
    return 0


def cmd_health(args, config) -> int:
    """Print the readiness report; exit 1 when unhealthy."""
    service = _build_service(args, config)
    report = service.health()
    _emit(report)
    return 0 if report["signerReady"] else 1


def cmd_export_schemas(args, config) -> int:
    """Export JSON schemas for all wire contracts."""
    from geocert import schemas

    models = {
        "location_claim": schemas.LocationClaim,
        "location_stamp": schemas.LocationStamp,
        "location_proof": schemas.LocationProof,
        "stamp_verification_result": schemas.StampVerificationResult,
        "credibility_assessment": schemas.CredibilityAssessment,
        "numeric_compute_result": schemas.NumericComputeResult,
        "boolean_compute_result": schemas.BooleanComputeResult,
        "proof_verification_result": schemas.ProofVerificationResult,
        "delegated_attestation_message": schemas.DelegatedAttestationMessage,
    }

    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    for name, model in models.items():
        path = save_json(model.model_json_schema(by_alias=True), output_dir / f"{name}.json")
        print(f"Exported: {path}")

    print(f"\n{len(models)} schemas exported to {output_dir}/")
    return 0


if __name__ == "__main__":
    sys.exit(main())
