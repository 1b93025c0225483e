"""
Spatial Predicates
==================

Pure geometric functions over (lng, lat) coordinates. No state.

Functions:
    - point_in_polygon: ray-casting containment test against one ring
    - bounding_box: min/max fold over a point set

Ray Casting:
    A horizontal ray is cast from the test point towards +x. Each ring
    edge (i, i-1 wrapped) the ray crosses flips the inside flag; an odd
    number of crossings means the point is inside. Edges are treated as
    half-open in y, so a point exactly on a boundary gets whichever side
    this tie-break produces, deterministically.
"""

import numbers
from functools import reduce
from typing import Any, Iterable, Sequence

from aq_exposure.models.geometry import BoundingBox


def _is_coordinate(point: Any) -> bool:
    if not isinstance(point, (list, tuple)) or len(point) < 2:
        return False
    return all(
        isinstance(c, numbers.Real) and not isinstance(c, bool)
        for c in point[:2]
    )


def point_in_polygon(point: Any, ring: Sequence[Sequence[float]]) -> bool:
    """
    Test whether a point lies inside a polygon ring.
    
    The ring may be open or closed; a repeated closing vertex adds a
    zero-length edge that never counts as a crossing.
    
    Args:
        point: (lng, lat) pair; extra elements (e.g. altitude) are ignored
        ring: Sequence of (lng, lat) vertices
        
    Returns:
        True if the point is inside. Malformed points return False.
    """
    if not _is_coordinate(point):
        return False
    
    x, y = float(point[0]), float(point[1])
    n = len(ring)
    if n < 3:
        return False
    
    inside = False
    j = n - 1
    for i in range(n):
        xi, yi = ring[i][0], ring[i][1]
        xj, yj = ring[j][0], ring[j][1]
        
        if ((yi > y) != (yj > y)) and (x < (xj - xi) * (y - yi) / (yj - yi) + xi):
            inside = not inside
        
        j = i
    
    return inside


def _extend(box: BoundingBox, point: Sequence[float]) -> BoundingBox:
    lng, lat = point[0], point[1]
    return BoundingBox(
        min_lng=min(box.min_lng, lng),
        max_lng=max(box.max_lng, lng),
        min_lat=min(box.min_lat, lat),
        max_lat=max(box.max_lat, lat),
    )


def bounding_box(points: Iterable[Sequence[float]]) -> BoundingBox:
    """
    Compute the bounding box of a point set.
    
    Args:
        points: Iterable of (lng, lat) pairs
        
    Returns:
        BoundingBox; the inverted (empty) box for an empty input
    """
    return reduce(_extend, points, BoundingBox.empty())
