"""
GeoCert Signing
================

Deterministic payload encoding and delegated (EIP-712) attestation signing.

Components:
    - encoder.py: ABI layouts for numeric, boolean and credibility payloads
    - signer.py:  SigningContext (key, domain, nonce lock) and the signer
"""
