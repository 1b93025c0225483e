"""
Analysis Graph
==============

LangGraph pipeline for one analysis request.

LangGraph is used for CONTROL FLOW only: each node is one stage of the
request and streaming the graph yields one update per finished stage.

Graph Structure:
    START → highlight ─┬─ (tracts found) → calculate → END
                       └─ (noTracts | error) ─────────→ END

    highlight:
        Resolves the intersecting tracts and emits the partial update
        (tract count, population pending) with the highlight overlay.
    
    calculate:
        Runs the population aggregation and the concentration sample
        query concurrently, then buckets the population into a band.

Failure Policy:
    RendererUnavailable and DataFetchFailure are caught at the node
    boundary and become a terminal ``error`` update. A tileset gap or an
    unloaded sample layer only makes the exposure stage unavailable.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, FrozenSet, Optional, TypedDict

from langgraph.graph import StateGraph, END

from aq_exposure.census.aggregate import PopulationAggregate, aggregate_population
from aq_exposure.census.cache import PopulationCache
from aq_exposure.errors import DataFetchFailure, RendererUnavailable
from aq_exposure.exposure.calculator import ExposureCalculator, ExposureOutcome
from aq_exposure.geometry.resolver import BoundaryUnitResolver
from aq_exposure.models.boundary import BoundaryUnit
from aq_exposure.models.geometry import Polygon
from aq_exposure.models.output import AnalysisStatus, AnalysisUpdate, ExposureStatus
from aq_exposure.models.reason_codes import UnavailableReason
from aq_exposure.models.tileset import SimulationInstant
from aq_exposure.renderer.highlight import build_highlight
from aq_exposure.renderer.protocol import MapRenderer
from aq_exposure.tileset.selector import TilesetSelector


logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class AnalysisRequest:
    """
    Inputs of one analysis request.
    
    Attributes:
        generation: Request generation id
        renderer: Renderer to query
        polygon: Finalized user polygon
        instant: Simulation instant
        dark_mode: Theme flag (selects the highlight palette)
    """
    
    generation: int
    renderer: MapRenderer
    polygon: Polygon
    instant: SimulationInstant
    dark_mode: bool = False


class AnalysisGraphState(TypedDict, total=False):
    """
    State passed through the analysis graph.
    
    Attributes:
        request: Request inputs
        units: Tracts resolved by the highlight stage
        update: Update emitted by the last stage
    """
    request: AnalysisRequest
    units: FrozenSet[BoundaryUnit]
    update: Optional[AnalysisUpdate]


class AnalysisGraph:
    """
    Staged analysis pipeline built on LangGraph.
    
    Example:
        graph = AnalysisGraph(resolver, cache, selector, calculator)
        async for update in graph.stream(request):
            render(update)
    """
    
    def __init__(
        self,
        resolver: BoundaryUnitResolver,
        population_cache: PopulationCache,
        selector: TilesetSelector,
        calculator: ExposureCalculator,
    ) -> None:
        """
        Initialize the analysis graph.
        
        Args:
            resolver: Tract resolver
            population_cache: Population table cache
            selector: Tileset window lookup
            calculator: Exposure calculator
        """
        self.resolver = resolver
        self.population_cache = population_cache
        self.selector = selector
        self.calculator = calculator
        
        self._graph = self._build_graph()
        
        logger.info("AnalysisGraph initialized")
    
    def _build_graph(self):
        """Build the LangGraph workflow."""
        workflow = StateGraph(AnalysisGraphState)
        
        workflow.add_node("highlight", self._highlight_node)
        workflow.add_node("calculate", self._calculate_node)
        
        workflow.set_entry_point("highlight")
        workflow.add_conditional_edges(
            "highlight",
            self._route_after_highlight,
            {"calculate": "calculate", "done": END},
        )
        workflow.add_edge("calculate", END)
        
        return workflow.compile()
    
    @staticmethod
    def _route_after_highlight(state: AnalysisGraphState) -> str:
        update = state.get("update")
        if update is not None and update.status == AnalysisStatus.CALCULATING:
            return "calculate"
        return "done"
    
    async def _highlight_node(self, state: AnalysisGraphState) -> Dict[str, Any]:
        """
        Resolve tracts and emit the partial update.
        
        Writes:
            - units: Intersecting tracts
            - update: calculating | noTracts | error
        """
        request = state["request"]
        
        try:
            units = await self.resolver.resolve_intersecting(
                request.renderer, request.polygon
            )
        except RendererUnavailable:
            return {
                "units": frozenset(),
                "update": AnalysisUpdate(
                    generation=request.generation,
                    status=AnalysisStatus.ERROR,
                    reason=UnavailableReason.RENDERER_UNAVAILABLE,
                    timestamp=request.instant.timestamp,
                ),
            }
        
        if not units:
            return {
                "units": units,
                "update": AnalysisUpdate(
                    generation=request.generation,
                    status=AnalysisStatus.NO_TRACTS,
                    tract_count=0,
                    total_population=0,
                    timestamp=request.instant.timestamp,
                ),
            }
        
        return {
            "units": units,
            "update": AnalysisUpdate(
                generation=request.generation,
                status=AnalysisStatus.CALCULATING,
                tract_count=len(units),
                total_population=None,
                timestamp=request.instant.timestamp,
                highlight=build_highlight(units, request.dark_mode),
            ),
        }
    
    async def _aggregate(self, units: FrozenSet[BoundaryUnit]) -> PopulationAggregate:
        table = await self.population_cache.get_table()
        return aggregate_population(units, table, self.population_cache.source.is_valid_geoid)
    
    async def _calculate_node(self, state: AnalysisGraphState) -> Dict[str, Any]:
        """
        Aggregate population and exposure, emit the complete update.
        
        Writes:
            - update: complete | error
        """
        request = state["request"]
        units = state["units"]
        tract_count = len(units)
        window = self.selector.resolve_window(request.instant)
        
        population, exposure = await asyncio.gather(
            self._aggregate(units),
            self.calculator.sample(
                request.renderer, request.polygon, window, request.instant
            ),
            return_exceptions=True,
        )
        
        if isinstance(population, BaseException):
            if not isinstance(population, DataFetchFailure):
                logger.error(f"Population aggregation failed: {population!r}")
            return {
                "update": AnalysisUpdate(
                    generation=request.generation,
                    status=AnalysisStatus.ERROR,
                    tract_count=tract_count,
                    total_population=None,
                    reason=UnavailableReason.DATA_FETCH_FAILED,
                    timestamp=request.instant.timestamp,
                    tileset_id=window.id if window else None,
                ),
            }
        
        if isinstance(exposure, BaseException):
            logger.error(f"Exposure sampling failed: {exposure!r}")
            exposure = ExposureOutcome(
                status=ExposureStatus.ERROR,
                reason=UnavailableReason.RENDERER_UNAVAILABLE,
            )
        
        average_concentration = None
        distribution = None
        if exposure.ok:
            result = self.calculator.distribute(
                exposure.summary, population.total_population, tract_count
            )
            average_concentration = result.average_concentration
            distribution = result.distribution
        
        update = AnalysisUpdate(
            generation=request.generation,
            status=AnalysisStatus.COMPLETE,
            tract_count=tract_count,
            total_population=population.total_population,
            average_concentration=average_concentration,
            distribution=distribution,
            exposure_status=exposure.status,
            reason=exposure.reason,
            timestamp=request.instant.timestamp,
            tileset_id=window.id if window else None,
            tracts=list(population.tracts),
        )
        
        logger.info(
            f"Analysis [gen {request.generation}] complete: tracts={tract_count}, "
            f"population={population.total_population}, "
            f"exposure={exposure.status.value}"
        )
        return {"update": update}
    
    async def stream(self, request: AnalysisRequest) -> AsyncIterator[AnalysisUpdate]:
        """
        Run the graph and yield the update of every finished stage.
        
        Args:
            request: Request inputs
            
        Yields:
            Partial then complete update, or a single terminal update
        """
        initial: AnalysisGraphState = {"request": request, "update": None}
        async for chunk in self._graph.astream(initial, stream_mode="updates"):
            for node_output in chunk.values():
                update = (node_output or {}).get("update")
                if update is not None:
                    yield update
