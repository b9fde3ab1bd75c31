"""
Location Proof Plugins
=======================

Components:
    - base.py:      LocationProofPlugin interface
    - registry.py:  PluginRegistry (instance-owned name → plugin map)
    - proofmode.py: Device-evidence plugin shipped by default
"""

from geocert.verify.plugins.base import LocationProofPlugin
from geocert.verify.plugins.proofmode import ProofModePlugin
from geocert.verify.plugins.registry import PluginRegistry

__all__ = ["LocationProofPlugin", "ProofModePlugin", "PluginRegistry"]
