"""
GeoCert Input Resolution
=========================

Canonical hashing, registry access and reference resolution.

Components:
    - canonical.py: Deterministic JSON + keccak256 references
    - registry.py:  EAS registry client and in-memory registry
    - resolver.py:  Inline / on-chain / off-chain input resolution
"""
