"""
Analysis Output Models
======================

This module defines the staged output contract of an analysis request.

A request emits at most two updates:
    1. Partial: tract count known, population pending
    2. Complete: population, exposure distribution and tract breakdown

or a single terminal update (``noTracts`` or ``error``).

Output Contract (complete):
    {
        "generation": 7,
        "status": "complete",
        "tract_count": 3,
        "total_population": 11873,
        "average_concentration": 12.4,
        "distribution": {"Good": 0, "Moderate": 11873, ...},
        "exposure_status": "complete",
        "reason": null,
        "timestamp": "2024-09-15T18:00:00",
        "tileset_id": "2024-09-15_evening",
        "tracts": [{"geoid": "06037101110", "population": 4021, ...}],
        "highlight": null,
        "cached": false
    }

Design Rules:
    - total_population is None whenever it was not computed; an error
      never reports zero population as if it were measured
    - A gap in the tileset table makes only the exposure stage
      unavailable; the census stage still completes
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from aq_exposure.models.boundary import TractSummary
from aq_exposure.models.reason_codes import UnavailableReason


class AnalysisStatus(str, Enum):
    """
    Lifecycle status of an analysis request.
    
    Attributes:
        CALCULATING: Tracts found, population/exposure pending
        COMPLETE: All stages finished
        NO_TRACTS: No tract intersects the polygon (terminal)
        ERROR: A stage failed (terminal for this request)
    """
    
    CALCULATING = "calculating"
    COMPLETE = "complete"
    NO_TRACTS = "noTracts"
    ERROR = "error"


class ExposureStatus(str, Enum):
    """Status of the exposure stage inside a complete update."""
    
    COMPLETE = "complete"
    UNAVAILABLE = "unavailable"
    ERROR = "error"


class HighlightOverlay(BaseModel):
    """
    Selected-tract overlay for the presentation layer.
    
    Attributes:
        geojson: FeatureCollection of the selected tracts
        fill_color: Fill color
        fill_opacity: Fill opacity
        fill_outline_color: Fill outline color
        line_color: Outline layer color
        line_width: Outline layer width (px)
        line_opacity: Outline layer opacity
    """
    
    geojson: Dict[str, Any] = Field(..., description="Selected tracts FeatureCollection")
    fill_color: str
    fill_opacity: float = Field(..., ge=0.0, le=1.0)
    fill_outline_color: str
    line_color: str
    line_width: float = Field(default=1.5, gt=0)
    line_opacity: float = Field(..., ge=0.0, le=1.0)


class AnalysisUpdate(BaseModel):
    """
    One emission of an analysis request.
    
    Attributes:
        generation: Request generation that produced this update
        status: Lifecycle status
        tract_count: Selected tract count (0 when none/unknown)
        total_population: Population, None until computed
        average_concentration: Mean concentration, None until computed
            or when exposure is unavailable
        distribution: Band label -> population, None until computed
        exposure_status: Exposure stage status on complete updates
        reason: Why a stage is unavailable or failed
        timestamp: Sample timestamp of the simulation instant
        tileset_id: Resolved tileset window, if any
        tracts: Per-tract breakdown on complete updates
        highlight: Selected-tract overlay on the partial update
        cached: True when served from the last-request memo
    """
    
    generation: int = Field(..., ge=0)
    status: AnalysisStatus
    tract_count: int = Field(default=0, ge=0)
    total_population: Optional[int] = Field(default=None, ge=0)
    average_concentration: Optional[float] = None
    distribution: Optional[Dict[str, int]] = None
    exposure_status: Optional[ExposureStatus] = None
    reason: Optional[UnavailableReason] = None
    timestamp: Optional[str] = None
    tileset_id: Optional[str] = None
    tracts: List[TractSummary] = Field(default_factory=list)
    highlight: Optional[HighlightOverlay] = None
    cached: bool = False
    
    @property
    def is_terminal(self) -> bool:
        """True for the last update a request will emit."""
        return self.status != AnalysisStatus.CALCULATING
