"""
Geometry Models
===============

This module defines the area-of-interest polygon and the bounding box
derived from it.

Coordinate Convention:
    All coordinates are (longitude, latitude) pairs in degrees.
    Planar lon/lat arithmetic is used throughout; nothing here is
    geodesic.

Polygon Lifecycle:
    - Draft: open sequence of >= 0 vertices, as the user clicks
    - Finalized: closed ring (first vertex repeated at the end) with at
      least 3 distinct vertices, so at least 4 points

Example:
    from aq_exposure.models.geometry import Polygon

    polygon = Polygon.finalize([(-120.0, 38.0), (-119.0, 38.0), (-119.0, 39.0)])
    assert polygon.vertices[0] == polygon.vertices[-1]
"""

import math
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from aq_exposure.errors import InvalidPolygon


LngLat = Tuple[float, float]


def _distinct_vertex_count(vertices: Sequence[LngLat]) -> int:
    return len({(float(lng), float(lat)) for lng, lat in vertices})


class Polygon(BaseModel):
    """
    Finalized area-of-interest polygon.
    
    The ring is explicitly closed: the first vertex is repeated as the
    last one. Requests are identified by the polygon *reference*, so a
    polygon is immutable once built.
    
    Attributes:
        vertices: Closed ring of (lng, lat) pairs (minimum 4 points)
    """
    
    model_config = ConfigDict(frozen=True)
    
    vertices: List[Tuple[float, float]] = Field(
        ...,
        min_length=4,
        description="Closed ring of (lng, lat) vertices (first == last)",
    )
    
    @field_validator("vertices")
    @classmethod
    def validate_ring(cls, v: List[Tuple[float, float]]) -> List[Tuple[float, float]]:
        """Ensure the ring is closed and has at least 3 distinct vertices."""
        if v[0] != v[-1]:
            raise ValueError("Polygon ring must be closed (first vertex == last)")
        if _distinct_vertex_count(v[:-1]) < 3:
            raise ValueError("Polygon must have at least 3 distinct vertices")
        return v
    
    @classmethod
    def finalize(cls, draft: Sequence[Sequence[float]]) -> "Polygon":
        """
        Close a draft vertex sequence into a polygon.
        
        A draft that is already closed is accepted as-is.
        
        Args:
            draft: Open (or closed) sequence of [lng, lat] pairs
            
        Returns:
            Finalized Polygon
            
        Raises:
            InvalidPolygon: If fewer than 3 distinct vertices are given
        """
        try:
            points = [(float(p[0]), float(p[1])) for p in draft]
        except (TypeError, ValueError, IndexError) as e:
            raise InvalidPolygon(f"Malformed polygon vertex: {e}") from e
        
        if len(points) >= 4 and points[0] == points[-1]:
            open_ring = points[:-1]
        else:
            open_ring = points
        
        if _distinct_vertex_count(open_ring) < 3:
            raise InvalidPolygon(
                f"Polygon needs at least 3 distinct vertices, got "
                f"{_distinct_vertex_count(open_ring)}"
            )
        
        return cls(vertices=open_ring + [open_ring[0]])
    
    @property
    def ring(self) -> List[LngLat]:
        """The closed vertex ring."""
        return list(self.vertices)
    
    def __repr__(self) -> str:
        return f"Polygon(points={len(self.vertices)}, first={self.vertices[0]})"


@dataclass(frozen=True, slots=True)
class BoundingBox:
    """
    Axis-aligned lon/lat bounding box.
    
    Built by folding min/max over a point set. An empty point set yields
    the inverted box (min = +inf, max = -inf), which means "no data".
    
    Attributes:
        min_lng: Western edge
        max_lng: Eastern edge
        min_lat: Southern edge
        max_lat: Northern edge
    """
    
    min_lng: float
    max_lng: float
    min_lat: float
    max_lat: float
    
    @classmethod
    def empty(cls) -> "BoundingBox":
        """The inverted box that every fold starts from."""
        return cls(
            min_lng=math.inf,
            max_lng=-math.inf,
            min_lat=math.inf,
            max_lat=-math.inf,
        )
    
    @property
    def is_empty(self) -> bool:
        """True for the inverted box produced by an empty input."""
        return self.min_lng > self.max_lng or self.min_lat > self.max_lat
    
    @property
    def width(self) -> float:
        return 0.0 if self.is_empty else self.max_lng - self.min_lng
    
    @property
    def height(self) -> float:
        return 0.0 if self.is_empty else self.max_lat - self.min_lat
    
    def padded(self, ratio: float) -> "BoundingBox":
        """
        Grow the box by ``ratio`` of its width/height on each side.
        
        Args:
            ratio: Fraction of width (height) added west and east
                (south and north)
                
        Returns:
            New padded box; an empty box stays empty
        """
        if self.is_empty:
            return self
        lng_pad = self.width * ratio
        lat_pad = self.height * ratio
        return BoundingBox(
            min_lng=self.min_lng - lng_pad,
            max_lng=self.max_lng + lng_pad,
            min_lat=self.min_lat - lat_pad,
            max_lat=self.max_lat + lat_pad,
        )
