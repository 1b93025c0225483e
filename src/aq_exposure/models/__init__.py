"""
Data Models
===========

Pydantic models and frozen dataclasses for the exposure engine.

Models:
    Geometry:
        - Polygon: Finalized area-of-interest ring
        - BoundingBox: Lon/lat bounding box
    
    Boundary units:
        - BoundaryUnit: Tract geometry + region codes
        - PopulationRecord: Population per GEOID
        - TractSummary: Per-tract breakdown in results
    
    Time:
        - SimulationInstant: (date, hour) of the simulation clock
        - TilesetWindow: Dataset partition valid for a date/hour range
    
    Exposure:
        - ExposureBin, ExposureScale: Concentration bands
        - ConcentrationSummary: Samples retained inside the polygon
        - ExposureResult: Population-weighted exposure
    
    Output:
        - AnalysisStatus, ExposureStatus: Lifecycle enums
        - AnalysisUpdate: One staged emission
        - UnavailableReason: Machine-readable reason codes
"""

from aq_exposure.models.geometry import BoundingBox, LngLat, Polygon
from aq_exposure.models.boundary import BoundaryUnit, PopulationRecord, TractSummary
from aq_exposure.models.tileset import SimulationInstant, TilesetWindow
from aq_exposure.models.exposure import (
    ConcentrationSummary,
    ExposureBin,
    ExposureResult,
    ExposureScale,
)
from aq_exposure.models.output import (
    AnalysisStatus,
    AnalysisUpdate,
    ExposureStatus,
    HighlightOverlay,
)
from aq_exposure.models.reason_codes import UnavailableReason

__all__ = [
    # Geometry
    "LngLat",
    "Polygon",
    "BoundingBox",
    # Boundary units
    "BoundaryUnit",
    "PopulationRecord",
    "TractSummary",
    # Time
    "SimulationInstant",
    "TilesetWindow",
    # Exposure
    "ExposureBin",
    "ExposureScale",
    "ConcentrationSummary",
    "ExposureResult",
    # Output
    "AnalysisStatus",
    "ExposureStatus",
    "HighlightOverlay",
    "AnalysisUpdate",
    "UnavailableReason",
]
