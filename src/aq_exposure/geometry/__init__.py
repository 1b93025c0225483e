"""
Geometry Module
===============

Spatial predicates and boundary-unit resolution.

This module provides:
    - point_in_polygon / bounding_box: pure predicates over lng/lat
    - BoundaryUnitResolver: finds tracts intersecting a user polygon
"""

from aq_exposure.geometry.predicates import bounding_box, point_in_polygon
from aq_exposure.geometry.resolver import BoundaryUnitResolver

__all__ = [
    "point_in_polygon",
    "bounding_box",
    "BoundaryUnitResolver",
]
