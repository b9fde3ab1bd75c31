"""
GeoCert: Signed Attestations for Geospatial Computation and Location Proofs
==============================================================================

GeoCert issues EAS-compatible delegated attestations. Consumers trust
the signature instead of re-running the computation or re-evaluating
the evidence.

Architecture Overview:
    Compute: Inputs → Resolve → Spatial Engine → Encode → Sign
    Verify:  Proof  → Plugins → Correlation → Aggregate → Encode → Sign

Modules:
    - resolve:  Canonical hashing, registry clients, input resolution
    - spatial:  Spatial engine boundary + geodesic reference engine
    - signing:  ABI payload encoding + EIP-712 delegated signing
    - verify:   Evidence plugins, correlation and confidence aggregation
    - service:  Transport-agnostic operation surface
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
