"""
GeoCert Verification System
=============================

Evidence plugins, cross-stamp correlation and confidence aggregation.

Components:
    - plugins/:       Plugin interface, registry and the ProofMode plugin
    - correlation.py: Independence and agreement across stamps
    - assessment.py:  Confidence aggregation
    - verifier.py:    Proof verification orchestrator
"""
