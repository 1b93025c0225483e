"""
Simulation Timeline
===================

Maps the playback slider position to a simulation instant.

The slider counts whole hours from ``start``. The published data has a
fixed gap (e.g. overnight hours that were never simulated), so offsets
at or beyond ``skip_after`` are shifted forward by ``skipped_hours``.

Example:
    timeline = SimulationTimeline(
        start=datetime(2024, 9, 15, 6, tzinfo=timezone.utc),
        skipped_hours=12,
        skip_after=12,
    )
    timeline.instant_at(0)    # 2024-09-15T06
    timeline.instant_at(12)   # 2024-09-16T06 (12 skipped hours)
"""

import datetime as dt
from typing import Iterator

from aq_exposure.models.tileset import SimulationInstant


class SimulationTimeline:
    """
    Slider offset -> SimulationInstant mapping.
    
    Attributes:
        start: First simulated hour (UTC)
        skipped_hours: Hours jumped over once ``skip_after`` is reached
        skip_after: First slider offset that lands after the gap
        total_steps: Number of slider positions
    """
    
    def __init__(
        self,
        start: dt.datetime,
        skipped_hours: int = 0,
        skip_after: int = 12,
        total_steps: int = 24,
    ) -> None:
        if skipped_hours < 0:
            raise ValueError("skipped_hours must be non-negative")
        if skip_after < 0:
            raise ValueError("skip_after must be non-negative")
        if total_steps < 1:
            raise ValueError("total_steps must be >= 1")
        
        if start.tzinfo is None:
            start = start.replace(tzinfo=dt.timezone.utc)
        
        self.start = start
        self.skipped_hours = skipped_hours
        self.skip_after = skip_after
        self.total_steps = total_steps
    
    def instant_at(self, offset: int) -> SimulationInstant:
        """
        Resolve a slider offset.
        
        Args:
            offset: Hours from start, in [0, total_steps)
            
        Raises:
            ValueError: If the offset is out of range
        """
        if not 0 <= offset < self.total_steps:
            raise ValueError(
                f"offset must be in [0, {self.total_steps}), got {offset}"
            )
        
        adjusted = offset
        if adjusted >= self.skip_after:
            adjusted += self.skipped_hours
        
        return SimulationInstant.from_datetime(
            self.start + dt.timedelta(hours=adjusted)
        )
    
    def __iter__(self) -> Iterator[SimulationInstant]:
        for offset in range(self.total_steps):
            yield self.instant_at(offset)
