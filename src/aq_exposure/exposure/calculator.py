"""
Exposure Calculator
===================

Population exposure to the concentration field inside a polygon.

Steps:
    1. Bounding box of the polygon, padded by 20% of its width/height
       on each side to catch samples straddling the edge
    2. Query the window's sample layer, filtered renderer-side to the
       exact sample timestamp
    3. Keep samples whose point lies inside the EXACT (unpadded) polygon
    4. Mean of the numeric concentrations (non-numeric values are
       skipped in both sum and count)
    5. Assign the WHOLE population to the band containing the mean

Zero retained samples is not an error: the result carries an average of
0 and an all-zero distribution.

Failure Policy:
    - No window for the instant -> UNAVAILABLE / NO_TILESET
    - Layer not loaded or renderer not ready -> UNAVAILABLE / LAYER_NOT_LOADED
    - Renderer query raises -> ERROR / RENDERER_UNAVAILABLE
    Nothing raises past compute_exposure / sample.
"""

import logging
import math
from dataclasses import dataclass, replace
from typing import Any, List, Optional

import numpy as np

from aq_exposure.errors import RendererUnavailable
from aq_exposure.geometry.predicates import bounding_box, point_in_polygon
from aq_exposure.models.exposure import (
    ConcentrationSummary,
    ExposureResult,
    ExposureScale,
)
from aq_exposure.models.geometry import Polygon
from aq_exposure.models.output import ExposureStatus
from aq_exposure.models.reason_codes import UnavailableReason
from aq_exposure.models.tileset import SimulationInstant, TilesetWindow
from aq_exposure.renderer.protocol import MapRenderer, project_bounding_box


logger = logging.getLogger(__name__)


def _as_concentration(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


@dataclass(frozen=True, slots=True)
class ExposureOutcome:
    """
    Outcome of the exposure stage.
    
    Attributes:
        status: COMPLETE, UNAVAILABLE or ERROR
        summary: Retained samples (COMPLETE only)
        result: Population exposure (COMPLETE, once distributed)
        reason: Why the stage is unavailable or failed
    """
    
    status: ExposureStatus
    summary: Optional[ConcentrationSummary] = None
    result: Optional[ExposureResult] = None
    reason: Optional[UnavailableReason] = None
    
    @property
    def ok(self) -> bool:
        return self.status == ExposureStatus.COMPLETE


class ExposureCalculator:
    """
    Computes population exposure from rendered concentration samples.
    
    Attributes:
        scale: Exposure bands
        concentration_property: Sample property holding the concentration
        time_property: Sample property holding the timestamp
        padding_ratio: Bounding-box padding per side (fraction)
    """
    
    def __init__(
        self,
        scale: Optional[ExposureScale] = None,
        concentration_property: str = "PM25",
        time_property: str = "time",
        padding_ratio: float = 0.2,
    ) -> None:
        """
        Initialize exposure calculator.
        
        Args:
            scale: Exposure bands (PM2.5 defaults if None)
            concentration_property: Sample concentration property
            time_property: Sample timestamp property
            padding_ratio: Bounding-box padding per side
        """
        if padding_ratio < 0:
            raise ValueError("padding_ratio must be non-negative")
        
        self.scale = scale or ExposureScale.default()
        self.concentration_property = concentration_property
        self.time_property = time_property
        self.padding_ratio = padding_ratio
        
        logger.info(
            f"ExposureCalculator initialized: bins={len(self.scale.bins)}, "
            f"property={concentration_property}, padding={padding_ratio}"
        )
    
    async def measure_concentration(
        self,
        renderer: MapRenderer,
        polygon: Polygon,
        window: TilesetWindow,
        instant: SimulationInstant,
    ) -> ConcentrationSummary:
        """
        Mean concentration of the samples inside the polygon.
        
        Raises:
            RendererUnavailable: If the sample query fails
        """
        timestamp = instant.timestamp
        search_box = bounding_box(polygon.vertices).padded(self.padding_ratio)
        
        try:
            screen_box = project_bounding_box(renderer, search_box)
            features = await renderer.query_visible_features(
                screen_box,
                window.source_layer_id,
                filter={self.time_property: timestamp},
            )
        except Exception as e:
            logger.error(f"Sample query failed on {window.source_layer_id}: {e}")
            raise RendererUnavailable(f"Sample query failed: {e}") from e
        
        ring = polygon.vertices
        values: List[float] = []
        for feature in features:
            if not feature.geometry:
                continue
            if not point_in_polygon(feature.geometry.get("coordinates"), ring):
                continue
            value = _as_concentration(
                feature.properties.get(self.concentration_property)
            )
            if value is not None:
                values.append(value)
        
        mean = float(np.mean(np.asarray(values, dtype=float))) if values else 0.0
        
        logger.debug(
            f"Samples at {timestamp}: {len(features)} candidates, "
            f"{len(values)} inside, mean={mean:.3f}"
        )
        return ConcentrationSummary(
            sample_count=len(values),
            mean=mean,
            timestamp=timestamp,
        )
    
    async def sample(
        self,
        renderer: MapRenderer,
        polygon: Polygon,
        window: Optional[TilesetWindow],
        instant: SimulationInstant,
    ) -> ExposureOutcome:
        """
        Run the sample query with the stage's failure policy applied.
        
        Needs only the polygon, so it can run concurrently with the
        population fetch.
        
        Returns:
            ExposureOutcome with a summary but no result yet
        """
        if window is None:
            return ExposureOutcome(
                status=ExposureStatus.UNAVAILABLE,
                reason=UnavailableReason.NO_TILESET,
            )
        
        if not renderer.is_ready() or not renderer.has_layer(window.source_layer_id):
            logger.info(f"Sample layer not loaded yet: {window.source_layer_id}")
            return ExposureOutcome(
                status=ExposureStatus.UNAVAILABLE,
                reason=UnavailableReason.LAYER_NOT_LOADED,
            )
        
        try:
            summary = await self.measure_concentration(renderer, polygon, window, instant)
        except RendererUnavailable:
            return ExposureOutcome(
                status=ExposureStatus.ERROR,
                reason=UnavailableReason.RENDERER_UNAVAILABLE,
            )
        
        return ExposureOutcome(status=ExposureStatus.COMPLETE, summary=summary)
    
    def distribute(
        self,
        summary: ConcentrationSummary,
        total_population: int,
        tract_count: int,
    ) -> ExposureResult:
        """
        Bucket the population into the band of the mean concentration.
        
        Args:
            summary: Retained samples
            total_population: Population of the selected tracts
            tract_count: Number of selected tracts
            
        Returns:
            ExposureResult; all-zero distribution when no samples
        """
        distribution = self.scale.empty_distribution()
        
        if summary.sample_count > 0:
            level = self.scale.classify(summary.mean)
            distribution[level.label] = total_population
        
        return ExposureResult(
            total_population=total_population,
            tract_count=tract_count,
            average_concentration=summary.mean if summary.sample_count > 0 else 0.0,
            distribution=distribution,
            sample_count=summary.sample_count,
        )
    
    async def compute_exposure(
        self,
        renderer: MapRenderer,
        polygon: Polygon,
        window: Optional[TilesetWindow],
        instant: SimulationInstant,
        total_population: int,
        tract_count: int = 0,
    ) -> ExposureOutcome:
        """
        Full exposure computation for a known population.
        
        Args:
            renderer: Renderer holding the sample layers
            polygon: Finalized user polygon
            window: Tileset window for the instant (None for a gap)
            instant: Simulation instant
            total_population: Population of the selected tracts
            tract_count: Number of selected tracts
            
        Returns:
            ExposureOutcome carrying the ExposureResult when COMPLETE
        """
        outcome = await self.sample(renderer, polygon, window, instant)
        if not outcome.ok:
            return outcome
        return replace(
            outcome,
            result=self.distribute(outcome.summary, total_population, tract_count),
        )
