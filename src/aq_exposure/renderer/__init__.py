"""
Renderer Module
===============

Interface to the map display surface.

Components:
    - MapRenderer: Protocol the engine consumes
    - Feature: Rendered feature (geometry + properties)
    - InMemoryRenderer: Headless GeoJSON-backed implementation
    - build_highlight: Selected-tract overlay for the presentation layer

Design Philosophy:
    The renderer is an injected collaborator. The engine asks it
    questions and never mutates or tracks its lifecycle.
"""

from aq_exposure.renderer.protocol import (
    Feature,
    MapRenderer,
    ScreenBox,
    ScreenPoint,
    project_bounding_box,
)
from aq_exposure.renderer.memory import InMemoryRenderer
from aq_exposure.renderer.highlight import build_highlight

__all__ = [
    "Feature",
    "MapRenderer",
    "ScreenBox",
    "ScreenPoint",
    "project_bounding_box",
    "InMemoryRenderer",
    "build_highlight",
]
