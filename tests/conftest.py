"""
Test Configuration
==================

Pytest fixtures and test doubles for the exposure engine.
"""

import asyncio
import datetime as dt
from typing import Any, Dict, List, Optional

import pytest

from aq_exposure.census import PopulationCache, StaticPopulationSource
from aq_exposure.errors import DataFetchFailure
from aq_exposure.exposure import ExposureCalculator
from aq_exposure.geometry import BoundaryUnitResolver
from aq_exposure.models import Polygon, SimulationInstant, TilesetWindow
from aq_exposure.renderer import InMemoryRenderer
from aq_exposure.tileset import TilesetSelector


TRACT_LAYER = "census-tracts-layer"
TRACT_GEOID = "06037101110"
SAMPLE_DATE = dt.date(2024, 9, 16)


# =============================================================================
# Test Doubles
# =============================================================================

class FakeClock:
    """Manually advanced monotonic clock."""
    
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
    
    def __call__(self) -> float:
        return self.now
    
    def advance(self, seconds: float) -> None:
        self.now += seconds


class GatedPopulationSource(StaticPopulationSource):
    """
    Static source whose fetches can be held open and made to fail.
    
    Attributes:
        gate: Fetches wait on this event when set to one
        failures: Number of upcoming fetches that raise
    """
    
    def __init__(self, records: Dict[str, Any]) -> None:
        super().__init__(records)
        self.gate: Optional[asyncio.Event] = None
        self.failures = 0
    
    async def fetch_all_population(self):
        if self.gate is not None:
            await self.gate.wait()
        if self.failures > 0:
            self.failures -= 1
            self._fetch_count += 1
            raise DataFetchFailure("census API unreachable")
        return await super().fetch_all_population()


class FailingRenderer(InMemoryRenderer):
    """Renderer whose queries raise for the listed layers."""
    
    def __init__(self, failing_layers: List[str], **kwargs) -> None:
        super().__init__(**kwargs)
        self.failing_layers = set(failing_layers)
    
    async def query_visible_features(self, box, layer_id, filter=None):
        if layer_id in self.failing_layers:
            raise RuntimeError(f"style not loaded: {layer_id}")
        return await super().query_visible_features(box, layer_id, filter)


# =============================================================================
# GeoJSON Helpers
# =============================================================================

def square_ring(west: float, south: float, east: float, north: float) -> List[List[float]]:
    return [[west, south], [east, south], [east, north], [west, north], [west, south]]


def tract_feature(geoid: Optional[str], west: float, south: float, east: float, north: float, **props) -> dict:
    properties = dict(props)
    if geoid is not None:
        properties["GEOID"] = geoid
        properties.setdefault("STATEFP", geoid[:2])
        properties.setdefault("COUNTYFP", geoid[2:5])
        properties.setdefault("TRACTCE", geoid[5:])
    return {
        "type": "Feature",
        "properties": properties,
        "geometry": {"type": "Polygon", "coordinates": [square_ring(west, south, east, north)]},
    }


def sample_feature(lng: float, lat: float, value: Any, timestamp: str) -> dict:
    return {
        "type": "Feature",
        "properties": {"PM25": value, "time": timestamp},
        "geometry": {"type": "Point", "coordinates": [lng, lat]},
    }


def collection(features: List[dict]) -> dict:
    return {"type": "FeatureCollection", "features": features}


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def fake_clock():
    """Provide a manually advanced clock."""
    return FakeClock()


@pytest.fixture
def instant():
    """Simulation instant covered by the morning window."""
    return SimulationInstant(date=SAMPLE_DATE, hour=6)


@pytest.fixture
def gap_instant():
    """Simulation instant between the two windows."""
    return SimulationInstant(date=SAMPLE_DATE, hour=14)


@pytest.fixture
def windows():
    """Morning and evening windows with a gap in between."""
    return [
        TilesetWindow(id="2024-09-16-morning", date=SAMPLE_DATE, start_hour=0, end_hour=11),
        TilesetWindow(id="2024-09-16-evening", date=SAMPLE_DATE, start_hour=18, end_hour=23),
    ]


@pytest.fixture
def selector(windows):
    return TilesetSelector(windows)


@pytest.fixture
def square_polygon():
    """Closed square enclosing the single tract of ``renderer``."""
    return Polygon.finalize(square_ring(-118.31, 33.99, -118.19, 34.11))


@pytest.fixture
def far_polygon():
    """Polygon far away from every tract."""
    return Polygon.finalize(square_ring(-100.0, 40.0, -99.9, 40.1))


@pytest.fixture
def renderer(instant):
    """
    Renderer with one tract (population 1000 in ``population_source``)
    and five samples at 12 inside it for ``instant``.
    """
    r = InMemoryRenderer(zoom=8)
    r.add_geojson(TRACT_LAYER, collection([
        tract_feature(TRACT_GEOID, -118.30, 34.00, -118.20, 34.10, ALAND=1142530),
        tract_feature("06037999999", -117.00, 33.00, -116.90, 33.10),
    ]))
    timestamp = instant.timestamp
    other_hour = SimulationInstant(date=SAMPLE_DATE, hour=7).timestamp
    r.add_geojson("layer-2024-09-16-morning", collection([
        sample_feature(-118.28, 34.02, 12, timestamp),
        sample_feature(-118.25, 34.05, 12, timestamp),
        sample_feature(-118.22, 34.08, 12.0, timestamp),
        sample_feature(-118.27, 34.09, "12", timestamp),
        sample_feature(-118.21, 34.01, 12, timestamp),
        # Padded bounding box, outside the polygon
        sample_feature(-118.32, 34.05, 400, timestamp),
        # Other hour
        sample_feature(-118.25, 34.05, 300, other_hour),
    ]))
    return r


@pytest.fixture
def population_source():
    return GatedPopulationSource({
        TRACT_GEOID: {"population": 1000, "state": "06", "county": "037", "tract": "101110"},
        "06037999999": 50,
    })


@pytest.fixture
def population_cache(population_source, fake_clock):
    return PopulationCache(population_source, ttl_seconds=86400, clock=fake_clock)


@pytest.fixture
def resolver():
    return BoundaryUnitResolver(layer_id=TRACT_LAYER)


@pytest.fixture
def calculator():
    return ExposureCalculator()
