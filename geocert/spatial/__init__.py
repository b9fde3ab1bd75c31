"""
GeoCert Spatial Engine
=======================

Components:
    - engine.py: SpatialEngine protocol and the numpy GeodesicEngine
"""
