"""
AQ Exposure Engine
==================

Geospatial exposure analysis for air-quality simulations.

Given a user-drawn polygon and a simulation instant, the engine finds
the census tracts intersecting the polygon, totals their population and
buckets that population into a pollutant exposure band using the
concentration samples rendered for that instant.

Components:
    - geometry: Spatial predicates and tract resolution
    - census: Population sources and the TTL population cache
    - tileset: Instant -> concentration dataset lookup, playback timeline
    - exposure: Concentration sampling and band distribution
    - analysis: LangGraph pipeline and the recompute controller
    - renderer: Renderer protocol, headless renderer, highlight overlay

Example:
    from aq_exposure.analysis import RecomputeController
    from aq_exposure.models import Polygon, SimulationInstant
    
    # The HTTP service wires the components from config.yaml
    # See main.py for entry point
"""

__version__ = "0.1.0"
__author__ = "AQ Exposure Project"

__all__ = [
    "__version__",
]
