"""
Boundary Unit Resolver
======================

Finds the boundary units (census tracts) intersecting a user polygon.

Algorithm:
    1. Bounding box of the polygon
    2. Ask the renderer for tract features inside the matching pixel
       rectangle
    3. Keep a tract if ANY vertex of its outer ring lies inside the
       polygon (ray casting)

Approximation:
    This is vertex sampling, not polygon clipping. A tract whose own
    vertices are all outside the polygon, but whose interior overlaps it
    (e.g. a small polygon drawn inside one large tract), is missed.
    Kept as-is for behavioral parity with the map application.

Failure Policy:
    - Renderer not ready / nothing loaded -> empty set (retry later)
    - Renderer query raises -> logged, re-raised as RendererUnavailable
"""

import logging
from typing import FrozenSet

from aq_exposure.errors import RendererUnavailable
from aq_exposure.geometry.predicates import bounding_box, point_in_polygon
from aq_exposure.models.boundary import BoundaryUnit
from aq_exposure.models.geometry import Polygon
from aq_exposure.renderer.protocol import MapRenderer, project_bounding_box


logger = logging.getLogger(__name__)


class BoundaryUnitResolver:
    """
    Resolves tracts intersecting a polygon against a renderer.
    
    Attributes:
        layer_id: Renderer layer holding tract polygons
        geoid_property: Feature property holding the tract GEOID
    """
    
    def __init__(
        self,
        layer_id: str = "census-tracts-layer",
        geoid_property: str = "GEOID",
    ) -> None:
        """
        Initialize resolver.
        
        Args:
            layer_id: Renderer layer holding tract polygons
            geoid_property: Feature property holding the tract GEOID
        """
        self.layer_id = layer_id
        self.geoid_property = geoid_property
        self._resolve_count: int = 0
        self._failure_count: int = 0
        
        logger.info(f"BoundaryUnitResolver initialized: layer={layer_id}")
    
    async def resolve_intersecting(
        self,
        renderer: MapRenderer,
        polygon: Polygon,
    ) -> FrozenSet[BoundaryUnit]:
        """
        Find the tracts intersecting a polygon.
        
        Args:
            renderer: Renderer to query
            polygon: Finalized user polygon
            
        Returns:
            Intersecting units; empty when none intersect or the renderer
            has nothing loaded yet
            
        Raises:
            RendererUnavailable: If the renderer query fails
        """
        self._resolve_count += 1
        bbox = bounding_box(polygon.vertices)
        
        if bbox.is_empty or not renderer.is_ready():
            logger.debug("Renderer not ready, no tracts resolved")
            return frozenset()
        
        try:
            box = project_bounding_box(renderer, bbox)
            features = await renderer.query_visible_features(box, self.layer_id)
        except Exception as e:
            self._failure_count += 1
            logger.error(f"Tract query failed on layer {self.layer_id}: {e}")
            raise RendererUnavailable(f"Tract query failed: {e}") from e
        
        if not features:
            return frozenset()
        
        ring = polygon.vertices
        intersecting = set()
        for feature in features:
            unit = BoundaryUnit.from_feature(
                feature.geometry,
                feature.properties,
                self.geoid_property,
            )
            if unit is None:
                continue
            if any(
                point_in_polygon(vertex, ring)
                for outer in unit.outer_rings
                for vertex in outer
            ):
                intersecting.add(unit)
        
        logger.debug(
            f"Resolved {len(intersecting)} of {len(features)} candidate tracts"
        )
        return frozenset(intersecting)
    
    def get_metrics(self) -> dict:
        """Get resolver metrics for observability."""
        return {
            "resolve_count": self._resolve_count,
            "failure_count": self._failure_count,
            "layer_id": self.layer_id,
        }
