"""
Boundary Unit Models
====================

Data models for administrative boundary units (census tracts) and the
demographic records joined onto them.

Ownership:
    BoundaryUnit instances are built from the renderer's currently
    displayed features. They are read-only snapshots, borrowed per query
    and never mutated.

GEOID Format:
    Census tract GEOIDs are 11-digit numeric strings:
    state (2) + county (3) + tract (6), e.g. "06037101110".
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

from pydantic import BaseModel, Field

from aq_exposure.models.geometry import LngLat


Ring = Tuple[LngLat, ...]
PolygonPart = Tuple[Ring, ...]


def _as_ring(coords: Any) -> Ring:
    return tuple((float(c[0]), float(c[1])) for c in coords)


def _as_part(rings: Any) -> PolygonPart:
    return tuple(_as_ring(r) for r in rings)


def _text(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


@dataclass(frozen=True, slots=True)
class BoundaryUnit:
    """
    Administrative boundary unit read from the renderer.
    
    Equality and hashing cover the identifier and geometry only, so the
    same tract returned twice (e.g. from two adjacent tiles) collapses
    to one unit in a set.
    
    Attributes:
        geoid: Identifier (None when the feature carries none)
        parts: Polygon parts, each a tuple of rings (outer ring first)
        land_area: Land area in square meters (ALAND), 0 when unknown
        state: State FIPS code from the feature, if any
        county: County FIPS code from the feature, if any
        tract: Tract code from the feature, if any
        properties: Raw feature properties (not compared)
    """
    
    geoid: Optional[str]
    parts: Tuple[PolygonPart, ...]
    land_area: float = 0.0
    state: Optional[str] = None
    county: Optional[str] = None
    tract: Optional[str] = None
    properties: Mapping[str, Any] = field(
        default_factory=dict, compare=False, hash=False, repr=False
    )
    
    @classmethod
    def from_feature(
        cls,
        geometry: Optional[Mapping[str, Any]],
        properties: Optional[Mapping[str, Any]],
        geoid_property: str = "GEOID",
    ) -> Optional["BoundaryUnit"]:
        """
        Build a unit from a GeoJSON-like geometry and its properties.
        
        Args:
            geometry: GeoJSON Polygon or MultiPolygon geometry
            properties: Feature properties
            geoid_property: Property holding the identifier
            
        Returns:
            BoundaryUnit, or None when geometry or properties are missing
            or the geometry type is not polygonal
        """
        if not geometry or properties is None:
            return None
        
        geom_type = geometry.get("type")
        coordinates = geometry.get("coordinates") or []
        
        try:
            if geom_type == "Polygon":
                parts = (_as_part(coordinates),)
            elif geom_type == "MultiPolygon":
                parts = tuple(_as_part(p) for p in coordinates)
            else:
                return None
        except (TypeError, ValueError, IndexError):
            return None
        
        try:
            land_area = max(0.0, float(properties.get("ALAND") or 0))
        except (TypeError, ValueError):
            land_area = 0.0
        
        return cls(
            geoid=_text(properties.get(geoid_property)),
            parts=parts,
            land_area=land_area,
            state=_text(properties.get("STATEFP")),
            county=_text(properties.get("COUNTYFP")),
            tract=_text(properties.get("TRACTCE")),
            properties=dict(properties),
        )
    
    @property
    def outer_rings(self) -> Tuple[Ring, ...]:
        """Outer ring of every polygon part."""
        return tuple(part[0] for part in self.parts if part)
    
    def to_geojson_geometry(self) -> Dict[str, Any]:
        """Rebuild the GeoJSON geometry of this unit."""
        if len(self.parts) == 1:
            return {
                "type": "Polygon",
                "coordinates": [[list(pt) for pt in ring] for ring in self.parts[0]],
            }
        return {
            "type": "MultiPolygon",
            "coordinates": [
                [[list(pt) for pt in ring] for ring in part] for part in self.parts
            ],
        }


@dataclass(frozen=True, slots=True)
class PopulationRecord:
    """
    Population count for one boundary unit.
    
    Produced by the population source, held by the population cache.
    
    Attributes:
        geoid: Boundary unit identifier
        population: Resident count (non-negative)
        state: State FIPS code
        county: County FIPS code
        tract: Tract code
    """
    
    geoid: str
    population: int
    state: Optional[str] = None
    county: Optional[str] = None
    tract: Optional[str] = None
    
    def __post_init__(self) -> None:
        """Validate invariants."""
        if self.population < 0:
            raise ValueError("population must be non-negative")


class TractSummary(BaseModel):
    """
    Per-tract breakdown reported with a completed analysis.
    
    Region codes prefer the population record and fall back to the
    renderer feature's own properties.
    """
    
    geoid: str = Field(..., description="Tract GEOID")
    population: int = Field(..., ge=0, description="Resident count")
    land_area: float = Field(default=0.0, ge=0.0, description="Land area (m²)")
    state: Optional[str] = Field(default=None, description="State FIPS code")
    county: Optional[str] = Field(default=None, description="County FIPS code")
    tract: Optional[str] = Field(default=None, description="Tract code")
