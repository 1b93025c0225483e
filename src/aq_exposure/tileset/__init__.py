"""
Tileset Module
==============

Simulation time handling.

Components:
    - TilesetSelector: instant -> concentration tileset window
    - SimulationTimeline: slider offset -> instant (with data gap)
"""

from aq_exposure.tileset.selector import TilesetSelector
from aq_exposure.tileset.timeline import SimulationTimeline

__all__ = [
    "TilesetSelector",
    "SimulationTimeline",
]
