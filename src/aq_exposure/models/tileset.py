"""
Tileset Models
==============

Simulation clock and tileset window models.

Concepts:
    - SimulationInstant: the (date, hour) driven by the time scrubber
    - TilesetWindow: a pre-partitioned concentration dataset valid for
      one date and an inclusive hour range

Sample Timestamp:
    Point samples carry a ``time`` property formatted as
    ``YYYY-MM-DDTHH:00:00`` (UTC hour). Samples are filtered by exact
    string equality against SimulationInstant.timestamp.
"""

import datetime as dt
from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, Field, model_validator


@dataclass(frozen=True, slots=True)
class SimulationInstant:
    """
    One hour of simulation time.
    
    Attributes:
        date: Calendar date (UTC)
        hour: Hour of day in [0, 23] (UTC)
    """
    
    date: dt.date
    hour: int
    
    def __post_init__(self) -> None:
        """Validate invariants."""
        if not 0 <= self.hour <= 23:
            raise ValueError(f"hour must be in [0, 23], got {self.hour}")
    
    @classmethod
    def from_datetime(cls, value: dt.datetime) -> "SimulationInstant":
        """Truncate a datetime to its UTC hour."""
        if value.tzinfo is not None:
            value = value.astimezone(dt.timezone.utc)
        return cls(date=value.date(), hour=value.hour)
    
    @property
    def timestamp(self) -> str:
        """Sample filter timestamp, e.g. ``2024-09-15T18:00:00``."""
        return f"{self.date.isoformat()}T{self.hour:02d}:00:00"
    
    @property
    def key(self) -> str:
        """Compact memo key, e.g. ``2024-09-15-18``."""
        return f"{self.date.isoformat()}-{self.hour}"
    
    def __repr__(self) -> str:
        return f"SimulationInstant({self.timestamp})"


class TilesetWindow(BaseModel):
    """
    Concentration dataset partition valid for a date/hour range.
    
    Hour bounds are inclusive on both ends.
    
    Attributes:
        id: Tileset identifier
        date: Calendar date the window covers
        start_hour: First hour covered (inclusive)
        end_hour: Last hour covered (inclusive)
        source_layer_id: Renderer layer holding the samples
            (defaults to ``layer-<id>``)
    """
    
    id: str = Field(..., description="Tileset identifier")
    date: dt.date = Field(..., description="Calendar date covered")
    start_hour: int = Field(..., ge=0, le=23, description="First hour (inclusive)")
    end_hour: int = Field(..., ge=0, le=23, description="Last hour (inclusive)")
    source_layer_id: Optional[str] = Field(
        default=None,
        description="Renderer layer id holding this window's samples",
    )
    
    @model_validator(mode="after")
    def validate_window(self) -> "TilesetWindow":
        """Ensure the hour range is ordered and a layer id is set."""
        if self.start_hour > self.end_hour:
            raise ValueError(
                f"start_hour ({self.start_hour}) must be <= end_hour ({self.end_hour})"
            )
        if not self.source_layer_id:
            self.source_layer_id = f"layer-{self.id}"
        return self
    
    def covers(self, instant: SimulationInstant) -> bool:
        """True if this window is valid for the instant."""
        return (
            self.date == instant.date
            and self.start_hour <= instant.hour <= self.end_hour
        )
