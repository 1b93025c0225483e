"""
Exposure Models
===============

Exposure bands and the population-exposure result.

Band Semantics:
    Bands partition [0, inf) by ascending lower bound. A concentration
    belongs to the LAST band whose lower bound it meets or exceeds.

Distribution Semantics:
    The whole population of the selected tracts is assigned to the
    single band containing the MEAN sampled concentration. This models
    "area exposure level", not per-resident exposure.

Invariant:
    sum(distribution.values()) == total_population whenever at least
    one sample intersected the polygon; otherwise the distribution is
    all-zero.
"""

from dataclasses import dataclass
from typing import Dict, List

from pydantic import BaseModel, Field, field_validator


class ExposureBin(BaseModel):
    """
    One concentration band.
    
    Attributes:
        label: Display label (also the distribution key)
        lower_bound: Inclusive lower threshold (µg/m³)
        color: Legend color
    """
    
    label: str = Field(..., min_length=1, description="Band label")
    lower_bound: float = Field(..., ge=0.0, description="Inclusive lower threshold")
    color: str = Field(default="#999999", description="Legend color")


DEFAULT_PM25_LEVELS: List[dict] = [
    {"label": "Good", "lower_bound": 0.0, "color": "#00E400"},
    {"label": "Moderate", "lower_bound": 10.0, "color": "#FFFF00"},
    {"label": "Unhealthy for Sensitive Groups", "lower_bound": 35.0, "color": "#FF7E00"},
    {"label": "Unhealthy", "lower_bound": 55.0, "color": "#FF0000"},
    {"label": "Very Unhealthy", "lower_bound": 150.0, "color": "#8F3F97"},
    {"label": "Hazardous", "lower_bound": 250.0, "color": "#7E0023"},
]


class ExposureScale(BaseModel):
    """
    Ordered list of exposure bands.
    
    Thresholds must be strictly increasing and labels unique.
    """
    
    bins: List[ExposureBin] = Field(..., min_length=1)
    
    @field_validator("bins")
    @classmethod
    def validate_bins(cls, v: List[ExposureBin]) -> List[ExposureBin]:
        """Ensure strictly increasing thresholds and unique labels."""
        for prev, nxt in zip(v, v[1:]):
            if nxt.lower_bound <= prev.lower_bound:
                raise ValueError(
                    f"Exposure thresholds must be strictly increasing: "
                    f"{prev.label}={prev.lower_bound} >= {nxt.label}={nxt.lower_bound}"
                )
        labels = [b.label for b in v]
        if len(set(labels)) != len(labels):
            raise ValueError("Exposure bin labels must be unique")
        return v
    
    @classmethod
    def default(cls) -> "ExposureScale":
        """PM2.5 bands used by the map legend."""
        return cls.model_validate({"bins": DEFAULT_PM25_LEVELS})
    
    @property
    def labels(self) -> List[str]:
        return [b.label for b in self.bins]
    
    def classify(self, value: float) -> ExposureBin:
        """
        Find the band containing ``value``.
        
        Values below the first threshold fall into the first band.
        """
        selected = self.bins[0]
        for level in self.bins:
            if value >= level.lower_bound:
                selected = level
            else:
                break
        return selected
    
    def empty_distribution(self) -> Dict[str, int]:
        """All-zero distribution keyed by band label, in band order."""
        return {label: 0 for label in self.labels}


@dataclass(frozen=True, slots=True)
class ConcentrationSummary:
    """
    Concentration samples retained inside the polygon.
    
    Attributes:
        sample_count: Samples with a numeric concentration
        mean: Arithmetic mean concentration (0.0 when no samples)
        timestamp: Sample timestamp that was queried
    """
    
    sample_count: int
    mean: float
    timestamp: str
    

class ExposureResult(BaseModel):
    """
    Population exposure for one polygon at one simulation instant.
    
    Attributes:
        total_population: Population of the selected tracts
        tract_count: Number of selected tracts
        average_concentration: Mean sampled concentration (0 if none)
        distribution: Band label -> population
        sample_count: Samples that fell inside the polygon
    """
    
    total_population: int = Field(..., ge=0)
    tract_count: int = Field(..., ge=0)
    average_concentration: float = Field(default=0.0)
    distribution: Dict[str, int] = Field(default_factory=dict)
    sample_count: int = Field(default=0, ge=0)
