"""
Tileset Selector
================

Maps a simulation instant to the concentration dataset valid for it.

The window table is static reference data loaded from config. Hour
ranges are inclusive and may leave gaps (hours with no published
dataset). A gap resolves to None: "exposure data unavailable for this
instant", a normal display condition rather than an error.
"""

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from aq_exposure.models.tileset import SimulationInstant, TilesetWindow


logger = logging.getLogger(__name__)


class TilesetSelector:
    """
    Lookup over the static tileset window table.
    
    Windows are indexed by date; within a date they must not overlap,
    so an instant resolves to exactly one window or none.
    
    Example:
        selector = TilesetSelector(windows)
        window = selector.resolve_window(SimulationInstant(date, 18))
        if window is None:
            ...  # exposure unavailable for this hour
    """
    
    def __init__(self, windows: Iterable[TilesetWindow]) -> None:
        """
        Initialize selector.
        
        Args:
            windows: Tileset window table
            
        Raises:
            ValueError: If two windows overlap on the same date
        """
        self._by_date: Dict[object, List[TilesetWindow]] = defaultdict(list)
        count = 0
        for window in windows:
            self._by_date[window.date].append(window)
            count += 1
        
        for date, day_windows in self._by_date.items():
            day_windows.sort(key=lambda w: w.start_hour)
            for prev, nxt in zip(day_windows, day_windows[1:]):
                if nxt.start_hour <= prev.end_hour:
                    raise ValueError(
                        f"Tileset windows overlap on {date}: "
                        f"{prev.id} ({prev.start_hour}-{prev.end_hour}) and "
                        f"{nxt.id} ({nxt.start_hour}-{nxt.end_hour})"
                    )
        
        logger.info(
            f"TilesetSelector initialized: {count} windows over "
            f"{len(self._by_date)} dates"
        )
    
    @property
    def windows(self) -> List[TilesetWindow]:
        return [w for date in sorted(self._by_date) for w in self._by_date[date]]
    
    def resolve_window(self, instant: SimulationInstant) -> Optional[TilesetWindow]:
        """
        Find the window valid for an instant.
        
        Args:
            instant: Simulation instant
            
        Returns:
            The matching window, or None for a gap
        """
        for window in self._by_date.get(instant.date, ()):
            if window.covers(instant):
                return window
        
        logger.debug(f"No tileset window for {instant.timestamp}")
        return None
    
    @staticmethod
    def sample_timestamp(instant: SimulationInstant) -> str:
        """Timestamp string used to filter point samples."""
        return instant.timestamp
