"""
In-Memory Renderer
==================

Headless renderer backed by GeoJSON layers.

Used by the HTTP service and the tests in place of a live map surface.
It behaves like a rendered map at a fixed zoom:
    - Web Mercator projection to pixel space
    - A feature is "visible" in a rectangle if its screen-space
      bounding box overlaps the rectangle
    - Property filters are exact equality on every entry

Example:
    renderer = InMemoryRenderer(zoom=6)
    renderer.load_geojson("census-tracts-layer", "./data/tracts.geojson")
    
    features = await renderer.query_visible_features(
        ((100, 400), (300, 200)), "census-tracts-layer"
    )
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from pyproj import Transformer

from aq_exposure.models.geometry import LngLat
from aq_exposure.renderer.protocol import Feature, ScreenBox, ScreenPoint


logger = logging.getLogger(__name__)


MAX_MERCATOR_LAT = 85.051129

# Half the EPSG:3857 world width in meters
MERCATOR_HALF_WORLD = 20037508.342789244

_TO_MERCATOR = Transformer.from_crs("EPSG:4326", "EPSG:3857", always_xy=True)


def _positions(coordinates: Any) -> Iterator[Tuple[float, float]]:
    """Yield every (lng, lat) position of a nested coordinate array."""
    if not isinstance(coordinates, (list, tuple)) or not coordinates:
        return
    if isinstance(coordinates[0], (int, float)):
        if len(coordinates) >= 2:
            yield float(coordinates[0]), float(coordinates[1])
        return
    for child in coordinates:
        yield from _positions(child)


class InMemoryRenderer:
    """
    GeoJSON-backed renderer for headless analysis.
    
    Attributes:
        zoom: Fixed zoom level used for projection
        tile_size: Pixel size of one tile at zoom 0
    """
    
    def __init__(
        self,
        zoom: float = 6.0,
        tile_size: int = 512,
        ready: bool = True,
    ) -> None:
        """
        Initialize an empty renderer.
        
        Args:
            zoom: Zoom level for projection (larger = more pixels)
            tile_size: World size in pixels at zoom 0
            ready: Initial readiness
        """
        if tile_size <= 0:
            raise ValueError("tile_size must be positive")
        
        self.zoom = zoom
        self.tile_size = tile_size
        self._ready = ready
        self._layers: Dict[str, List[Feature]] = {}
        self._query_count: int = 0
    
    @property
    def query_count(self) -> int:
        """Number of feature queries answered."""
        return self._query_count
    
    @property
    def layer_ids(self) -> List[str]:
        return list(self._layers)
    
    def set_ready(self, ready: bool) -> None:
        self._ready = ready
    
    def is_ready(self) -> bool:
        return self._ready
    
    def has_layer(self, layer_id: str) -> bool:
        return layer_id in self._layers
    
    def add_layer(self, layer_id: str, features: Iterable[Feature]) -> None:
        """Add or replace a layer."""
        self._layers[layer_id] = list(features)
        logger.info(
            f"Layer loaded: {layer_id} ({len(self._layers[layer_id])} features)"
        )
    
    def remove_layer(self, layer_id: str) -> None:
        self._layers.pop(layer_id, None)
    
    def add_geojson(self, layer_id: str, collection: Mapping[str, Any]) -> None:
        """
        Add a layer from a GeoJSON FeatureCollection mapping.
        
        Raises:
            ValueError: If the mapping is not a FeatureCollection
        """
        if collection.get("type") != "FeatureCollection":
            raise ValueError(
                f"Expected a GeoJSON FeatureCollection, got {collection.get('type')!r}"
            )
        features = [
            Feature(
                geometry=f.get("geometry") or {},
                properties=f.get("properties") or {},
            )
            for f in collection.get("features", [])
        ]
        self.add_layer(layer_id, features)
    
    def load_geojson(self, layer_id: str, path: str) -> None:
        """
        Add a layer from a GeoJSON file.
        
        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the file is not a FeatureCollection
        """
        file_path = Path(path)
        if not file_path.exists():
            raise FileNotFoundError(f"GeoJSON file not found: {path}")
        
        logger.info(f"Loading layer {layer_id} from: {path}")
        with open(file_path, "r") as f:
            data = json.load(f)
        self.add_geojson(layer_id, data)
    
    def project_to_screen(self, lng_lat: LngLat) -> ScreenPoint:
        """Web Mercator projection to world pixel coordinates."""
        lng, lat = lng_lat[0], lng_lat[1]
        lat = max(-MAX_MERCATOR_LAT, min(MAX_MERCATOR_LAT, lat))
        world = self.tile_size * (2 ** self.zoom)
        
        mx, my = _TO_MERCATOR.transform(lng, lat)
        x = (mx + MERCATOR_HALF_WORLD) / (2 * MERCATOR_HALF_WORLD) * world
        y = (MERCATOR_HALF_WORLD - my) / (2 * MERCATOR_HALF_WORLD) * world
        return float(x), float(y)
    
    async def query_visible_features(
        self,
        box: ScreenBox,
        layer_id: str,
        filter: Optional[Mapping[str, Any]] = None,
    ) -> List[Feature]:
        """
        Features of a layer whose screen bounds overlap the rectangle.
        
        Returns an empty list when the renderer is not ready or the
        layer is not loaded.
        """
        if not self._ready:
            return []
        
        features = self._layers.get(layer_id)
        if features is None:
            logger.debug(f"Query on unknown layer: {layer_id}")
            return []
        
        self._query_count += 1
        (x1, y1), (x2, y2) = box
        min_x, max_x = min(x1, x2), max(x1, x2)
        min_y, max_y = min(y1, y2), max(y1, y2)
        
        matched: List[Feature] = []
        for feature in features:
            if filter and any(
                feature.properties.get(k) != v for k, v in filter.items()
            ):
                continue
            
            screen = [
                self.project_to_screen(p)
                for p in _positions(feature.geometry.get("coordinates"))
            ]
            if not screen:
                continue
            
            fx = [p[0] for p in screen]
            fy = [p[1] for p in screen]
            if min(fx) <= max_x and max(fx) >= min_x and min(fy) <= max_y and max(fy) >= min_y:
                matched.append(feature)
        
        return matched
