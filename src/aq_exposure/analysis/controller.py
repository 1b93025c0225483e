"""
Recompute Controller
====================

Keeps the analysis responsive under rapid, repeated user input.

Responsibilities:
    - Staged results: partial (tract count) before complete
    - Last-request memo: an identical request (same polygon REFERENCE,
      same instant, same theme) is served from the previous settled
      result without touching the renderer or the population source;
      results whose sample layer was missing or failed are not kept
    - Debounce: bursts of triggers within ``debounce_seconds`` collapse
      to one run with the latest inputs (trailing edge)
    - Last-request-wins: every request gets a generation id; an update
      is published only while its generation is still the current one

Cancellation Is Cooperative:
    A superseded run is not aborted. It finishes in the background and
    its updates are dropped (and never memoized).

Example:
    controller = RecomputeController(resolver, cache, selector, calculator)
    
    # Direct, staged
    async for update in controller.analyze(renderer, polygon, instant):
        show(update)
    
    # Debounced, from UI triggers
    controller.submit(renderer, polygon, instant, dark_mode, publish=show_async)
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Optional, Set

from aq_exposure.analysis.graph import AnalysisGraph, AnalysisRequest
from aq_exposure.census.cache import PopulationCache
from aq_exposure.errors import InvalidPolygon
from aq_exposure.exposure.calculator import ExposureCalculator
from aq_exposure.geometry.resolver import BoundaryUnitResolver
from aq_exposure.models.geometry import Polygon
from aq_exposure.models.output import AnalysisStatus, AnalysisUpdate, ExposureStatus
from aq_exposure.models.reason_codes import UnavailableReason
from aq_exposure.models.tileset import SimulationInstant
from aq_exposure.renderer.protocol import MapRenderer
from aq_exposure.tileset.selector import TilesetSelector


logger = logging.getLogger(__name__)


Publisher = Callable[[AnalysisUpdate], Awaitable[None]]


@dataclass(frozen=True, eq=False)
class _LastCalculation:
    """Memo of the last completed request."""
    
    polygon: Polygon
    instant: SimulationInstant
    dark_mode: bool
    update: AnalysisUpdate
    
    def matches(self, polygon: Polygon, instant: SimulationInstant, dark_mode: bool) -> bool:
        return (
            self.polygon is polygon
            and self.instant == instant
            and self.dark_mode == dark_mode
        )


class RecomputeController:
    """
    Orchestrates staged analyses under changing inputs.
    
    Attributes:
        graph: Staged analysis pipeline
        population_cache: Population table cache (cleared by reset)
        debounce_seconds: Trailing-edge debounce window for submit()
    """
    
    def __init__(
        self,
        resolver: BoundaryUnitResolver,
        population_cache: PopulationCache,
        selector: TilesetSelector,
        calculator: ExposureCalculator,
        debounce_seconds: float = 0.5,
    ) -> None:
        """
        Initialize recompute controller.
        
        Args:
            resolver: Tract resolver
            population_cache: Population table cache
            selector: Tileset window lookup
            calculator: Exposure calculator
            debounce_seconds: Debounce window for submit()
        """
        if debounce_seconds < 0:
            raise ValueError("debounce_seconds must be non-negative")
        
        self.population_cache = population_cache
        self.debounce_seconds = debounce_seconds
        self.graph = AnalysisGraph(resolver, population_cache, selector, calculator)
        
        self._generation: int = 0
        self._last: Optional[_LastCalculation] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()
        
        # Metrics
        self._runs: int = 0
        self._memo_hits: int = 0
        self._discarded: int = 0
        self._debounced: int = 0
        
        logger.info(f"RecomputeController initialized: debounce={debounce_seconds}s")
    
    @property
    def generation(self) -> int:
        """Generation id of the most recent request."""
        return self._generation
    
    @property
    def is_idle(self) -> bool:
        """True when no debounce is pending and no run is in flight."""
        return self._timer is None and not self._tasks
    
    @staticmethod
    def _check_polygon(polygon: Polygon) -> None:
        if not isinstance(polygon, Polygon):
            raise InvalidPolygon(
                f"Expected a finalized Polygon, got {type(polygon).__name__}"
            )
    
    @staticmethod
    def _is_settled(update: AnalysisUpdate) -> bool:
        """
        True for a complete update worth memoizing.
        
        A missing or failing sample layer is retried on the next
        identical trigger.
        """
        if update.status != AnalysisStatus.COMPLETE:
            return False
        if update.exposure_status == ExposureStatus.COMPLETE:
            return True
        return (
            update.exposure_status == ExposureStatus.UNAVAILABLE
            and update.reason == UnavailableReason.NO_TILESET
        )
    
    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation
    
    async def analyze(
        self,
        renderer: MapRenderer,
        polygon: Polygon,
        instant: SimulationInstant,
        dark_mode: bool = False,
    ) -> AsyncIterator[AnalysisUpdate]:
        """
        Run one analysis request and yield its staged updates.
        
        Starting a request supersedes every earlier one.
        
        Args:
            renderer: Renderer to query
            polygon: Finalized user polygon
            instant: Simulation instant
            dark_mode: Theme flag
            
        Yields:
            At most two updates: partial then complete, or a single
            terminal update (noTracts, error, or a memoized result)
            
        Raises:
            InvalidPolygon: If ``polygon`` is not a finalized Polygon
        """
        self._check_polygon(polygon)
        generation = self._next_generation()
        async for update in self._run(generation, renderer, polygon, instant, dark_mode):
            yield update
    
    async def _run(
        self,
        generation: int,
        renderer: MapRenderer,
        polygon: Polygon,
        instant: SimulationInstant,
        dark_mode: bool,
    ) -> AsyncIterator[AnalysisUpdate]:
        last = self._last
        if last is not None and last.matches(polygon, instant, dark_mode):
            self._memo_hits += 1
            logger.debug(f"Analysis [gen {generation}] served from memo")
            yield last.update.model_copy(
                update={"generation": generation, "cached": True}
            )
            return
        
        self._runs += 1
        request = AnalysisRequest(
            generation=generation,
            renderer=renderer,
            polygon=polygon,
            instant=instant,
            dark_mode=dark_mode,
        )
        
        async for update in self.graph.stream(request):
            if generation != self._generation:
                self._discarded += 1
                logger.info(
                    f"Discarding {update.status.value} update of superseded "
                    f"generation {generation} (current {self._generation})"
                )
                continue
            
            if self._is_settled(update):
                self._last = _LastCalculation(
                    polygon=polygon,
                    instant=instant,
                    dark_mode=dark_mode,
                    update=update,
                )
            yield update
    
    def submit(
        self,
        renderer: MapRenderer,
        polygon: Polygon,
        instant: SimulationInstant,
        dark_mode: bool,
        publish: Publisher,
    ) -> int:
        """
        Trigger a debounced recompute.
        
        Must be called from a running event loop. A trigger arriving
        within ``debounce_seconds`` of the previous one replaces it;
        only the latest inputs run. Updates of a run are passed to
        ``publish`` unless a newer trigger arrived in the meantime.
        
        Args:
            renderer: Renderer to query
            polygon: Finalized user polygon
            instant: Simulation instant
            dark_mode: Theme flag
            publish: Async callback receiving each update
            
        Returns:
            Generation id assigned to this trigger
            
        Raises:
            InvalidPolygon: If ``polygon`` is not a finalized Polygon
        """
        self._check_polygon(polygon)
        generation = self._next_generation()
        
        if self._timer is not None:
            self._timer.cancel()
            self._debounced += 1
        
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(
            self.debounce_seconds,
            self._fire,
            generation,
            renderer,
            polygon,
            instant,
            dark_mode,
            publish,
        )
        return generation
    
    def _fire(
        self,
        generation: int,
        renderer: MapRenderer,
        polygon: Polygon,
        instant: SimulationInstant,
        dark_mode: bool,
        publish: Publisher,
    ) -> None:
        self._timer = None
        if generation != self._generation:
            return
        
        task = asyncio.create_task(
            self._publish_run(generation, renderer, polygon, instant, dark_mode, publish),
            name=f"analysis_gen_{generation}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
    
    async def _publish_run(
        self,
        generation: int,
        renderer: MapRenderer,
        polygon: Polygon,
        instant: SimulationInstant,
        dark_mode: bool,
        publish: Publisher,
    ) -> None:
        async for update in self._run(generation, renderer, polygon, instant, dark_mode):
            try:
                await publish(update)
            except Exception as e:
                logger.error(f"Publishing update of generation {generation} failed: {e}")
    
    async def wait_idle(self, poll_seconds: float = 0.01) -> None:
        """Wait until no debounce is pending and every run has finished."""
        while not self.is_idle:
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
            else:
                await asyncio.sleep(poll_seconds)
    
    def cancel(self) -> None:
        """
        Drop pending and in-flight work without clearing any cache.
        
        Used when the consumer goes away; the shared population cache
        is left intact.
        """
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._next_generation()
        logger.debug(f"RecomputeController cancelled (generation {self._generation})")
    
    def reset(self) -> None:
        """
        Clear caches and in-flight state.
        
        Pending debounces are cancelled, in-flight runs are superseded
        (their output is dropped), the memo and the population cache
        are cleared.
        """
        self.cancel()
        self._last = None
        self.population_cache.clear()
        logger.info(f"RecomputeController reset (generation {self._generation})")
    
    def get_metrics(self) -> dict:
        """Get controller metrics for observability."""
        return {
            "generation": self._generation,
            "runs": self._runs,
            "memo_hits": self._memo_hits,
            "discarded_updates": self._discarded,
            "debounced_triggers": self._debounced,
            "in_flight": len(self._tasks),
            "pending_debounce": self._timer is not None,
        }
