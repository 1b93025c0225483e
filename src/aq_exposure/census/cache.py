"""
Population Cache
================

TTL cache over the bulk population table.

Behavior:
    - First use triggers one bulk fetch; callers wait for it
    - The table is valid for ``ttl_seconds`` from the last successful fetch
    - After expiry the next read starts a background refresh and is
      served the stale table immediately (never blocks on a re-fetch)
    - Concurrent misses collapse onto one in-flight fetch (single flight)
    - A failed fetch never poisons the cache: previous data stays
    - clear() drops the table and detaches any in-flight fetch, whose
      result is then discarded

The clock is injected so expiry can be tested deterministically.
"""

import asyncio
import logging
import time
from typing import Callable, Dict, Mapping, Optional

from aq_exposure.census.source import PopulationSource
from aq_exposure.errors import DataFetchFailure
from aq_exposure.models.boundary import PopulationRecord


logger = logging.getLogger(__name__)


DEFAULT_TTL_SECONDS = 24 * 60 * 60


class PopulationCache:
    """
    Single-flight TTL cache for the population table.
    
    Example:
        cache = PopulationCache(source, ttl_seconds=86400)
        record = await cache.get_population("06037101110")
    """
    
    def __init__(
        self,
        source: PopulationSource,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize population cache.
        
        Args:
            source: Bulk population source
            ttl_seconds: Table lifetime after a successful fetch
            clock: Monotonic clock returning seconds
        """
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        
        self.source = source
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        
        self._table: Optional[Dict[str, PopulationRecord]] = None
        self._fetched_at: Optional[float] = None
        self._inflight: Optional[asyncio.Task] = None
        self._epoch: int = 0
        
        self._fetch_count: int = 0
        self._failure_count: int = 0
        self._stale_reads: int = 0
        
        logger.info(f"PopulationCache initialized: ttl={ttl_seconds:.0f}s")
    
    @property
    def is_loaded(self) -> bool:
        """True once a table has been fetched successfully."""
        return self._table is not None
    
    @property
    def is_expired(self) -> bool:
        """True when a table is held but its TTL has elapsed."""
        if self._table is None or self._fetched_at is None:
            return False
        return self._clock() - self._fetched_at >= self.ttl_seconds
    
    @property
    def fetch_in_flight(self) -> bool:
        return self._inflight is not None and not self._inflight.done()
    
    async def get_table(self) -> Mapping[str, PopulationRecord]:
        """
        Get the population table.
        
        Returns:
            GEOID -> PopulationRecord (possibly stale while refreshing)
            
        Raises:
            DataFetchFailure: If no table is held and the fetch fails
        """
        if self._table is None:
            task = self._start_fetch()
            return await asyncio.shield(task)
        
        if self.is_expired:
            self._stale_reads += 1
            if not self.fetch_in_flight:
                logger.info("Population table expired, refreshing in background")
            self._start_fetch()
        
        return self._table
    
    async def get_population(self, geoid: str) -> Optional[PopulationRecord]:
        """
        Look up one tract.
        
        Args:
            geoid: Tract GEOID
            
        Returns:
            PopulationRecord, or None for an invalid or unknown GEOID
            
        Raises:
            DataFetchFailure: If no table is held and the fetch fails
        """
        if not self.source.is_valid_geoid(geoid):
            return None
        table = await self.get_table()
        return table.get(geoid)
    
    def clear(self) -> None:
        """Drop the table and discard any in-flight fetch."""
        self._table = None
        self._fetched_at = None
        self._inflight = None
        self._epoch += 1
        logger.info("PopulationCache cleared")
    
    def _start_fetch(self) -> asyncio.Task:
        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.create_task(
                self._fetch(self._epoch),
                name="population_fetch",
            )
            self._inflight.add_done_callback(self._on_fetch_done)
        return self._inflight
    
    async def _fetch(self, epoch: int) -> Dict[str, PopulationRecord]:
        self._fetch_count += 1
        started = self._clock()
        
        try:
            raw = await self.source.fetch_all_population()
        except DataFetchFailure:
            self._failure_count += 1
            raise
        except Exception as e:
            self._failure_count += 1
            raise DataFetchFailure(f"Population fetch failed: {e}") from e
        
        table = {
            geoid: record
            for geoid, record in raw.items()
            if self.source.is_valid_geoid(geoid)
        }
        
        if epoch == self._epoch:
            self._table = table
            self._fetched_at = self._clock()
            logger.info(
                f"Population table loaded: {len(table)} tracts "
                f"({len(raw) - len(table)} invalid GEOIDs dropped) "
                f"in {self._fetched_at - started:.2f}s"
            )
        else:
            logger.info("Discarding population fetch started before clear()")
        
        return table
    
    def _on_fetch_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            if self._table is not None:
                logger.warning(f"Background population refresh failed, serving stale data: {error}")
            else:
                logger.error(f"Population fetch failed: {error}")
    
    def get_metrics(self) -> dict:
        """Get cache metrics for observability."""
        age = None
        if self._fetched_at is not None:
            age = round(self._clock() - self._fetched_at, 1)
        return {
            "loaded": self.is_loaded,
            "expired": self.is_expired,
            "tracts": len(self._table) if self._table is not None else 0,
            "age_seconds": age,
            "fetch_count": self._fetch_count,
            "failure_count": self._failure_count,
            "stale_reads": self._stale_reads,
            "fetch_in_flight": self.fetch_in_flight,
        }
