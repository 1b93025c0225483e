"""
Renderer Protocol
=================

Narrow interface the engine consumes from the map display surface.

The engine never holds renderer lifecycle state. It asks three things:
    - is_ready / has_layer: lifecycle signals (style and tiles loaded)
    - project_to_screen: lng/lat -> pixel coordinates
    - query_visible_features: features rendered inside a pixel rectangle

A renderer that is not ready answers queries with an empty list; the
engine treats that as "no result yet", never as an error.
"""

from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Protocol, Tuple

from aq_exposure.models.geometry import BoundingBox, LngLat


ScreenPoint = Tuple[float, float]
ScreenBox = Tuple[ScreenPoint, ScreenPoint]


@dataclass(frozen=True, eq=False)
class Feature:
    """
    Rendered feature returned by a renderer query.
    
    Attributes:
        geometry: GeoJSON geometry mapping
        properties: Feature properties
    """
    
    geometry: Mapping[str, Any] = field(default_factory=dict)
    properties: Mapping[str, Any] = field(default_factory=dict)


class MapRenderer(Protocol):
    """
    Protocol for map renderers.
    
    Implemented by:
        - InMemoryRenderer (headless, GeoJSON-backed)
        - any adapter around a live map surface
    """
    
    def is_ready(self) -> bool:
        """True once style and tiles are loaded."""
        ...
    
    def has_layer(self, layer_id: str) -> bool:
        """True if the layer is present in the current style."""
        ...
    
    def project_to_screen(self, lng_lat: LngLat) -> ScreenPoint:
        """Project a lng/lat pair to pixel coordinates."""
        ...
    
    async def query_visible_features(
        self,
        box: ScreenBox,
        layer_id: str,
        filter: Optional[Mapping[str, Any]] = None,
    ) -> List[Feature]:
        """
        Query features rendered inside a pixel rectangle.
        
        Args:
            box: Two opposite corners of the rectangle (any order)
            layer_id: Layer to query
            filter: Property equality filter (all entries must match)
            
        Returns:
            Matching features; empty when nothing is loaded
        """
        ...


def project_bounding_box(renderer: MapRenderer, bbox: BoundingBox) -> ScreenBox:
    """
    Turn a lon/lat bounding box into the renderer's query rectangle.
    
    Args:
        renderer: Renderer doing the projection
        bbox: Non-empty bounding box
        
    Returns:
        (south-west, north-east) corners in screen space
    """
    sw = renderer.project_to_screen((bbox.min_lng, bbox.min_lat))
    ne = renderer.project_to_screen((bbox.max_lng, bbox.max_lat))
    return sw, ne
