"""
Exposure Engine Main Application
================================

FastAPI entry point for the geospatial exposure analysis engine.

A headless InMemoryRenderer, loaded from GeoJSON files, stands in for
the interactive map so the engine can be driven over HTTP.

Endpoints:
    GET  /             - Service information
    GET  /health       - Liveness probe (is process alive?)
    GET  /ready        - Readiness probe (tract layer loaded?)
    GET  /metrics      - Component metrics
    GET  /tilesets     - Configured tileset windows
    POST /analyze      - Run one analysis, return staged updates
    POST /reset        - Clear caches and in-flight state
    WS   /ws/analyze   - Debounced analysis triggers, updates pushed back
"""

import datetime as dt
import logging
import os
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, List, Optional, Set

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError, model_validator

from aq_exposure.config import Settings, settings
from aq_exposure.analysis import RecomputeController
from aq_exposure.census import (
    CensusApiSource,
    PopulationCache,
    PopulationSource,
    StaticPopulationSource,
)
from aq_exposure.errors import InvalidPolygon
from aq_exposure.exposure import ExposureCalculator
from aq_exposure.geometry import BoundaryUnitResolver
from aq_exposure.models import (
    AnalysisUpdate,
    ExposureScale,
    Polygon,
    SimulationInstant,
)
from aq_exposure.renderer import InMemoryRenderer
from aq_exposure.tileset import SimulationTimeline, TilesetSelector


logger = logging.getLogger(__name__)


SERVICE_NAME = "aq-exposure-engine"
SERVICE_VERSION = "0.1.0"


# =============================================================================
# Global State
# =============================================================================

_renderer: Optional[InMemoryRenderer] = None
_population_cache: Optional[PopulationCache] = None
_resolver: Optional[BoundaryUnitResolver] = None
_selector: Optional[TilesetSelector] = None
_calculator: Optional[ExposureCalculator] = None
_timeline: Optional[SimulationTimeline] = None
_controller: Optional[RecomputeController] = None
_interner: Optional["PolygonInterner"] = None

# One controller per open /ws/analyze connection
_stream_controllers: Set[RecomputeController] = set()
_startup_time: float = 0.0


# =============================================================================
# Getters
# =============================================================================

def get_renderer() -> Optional[InMemoryRenderer]:
    return _renderer

def get_controller() -> Optional[RecomputeController]:
    return _controller

# =============================================================================
# Request Models
# =============================================================================

class AnalyzeRequest(BaseModel):
    """
    Body of an analysis trigger.
    
    The instant is given either as ``date`` + ``hour`` or as a playback
    ``offset`` on the configured timeline.
    """
    
    polygon: List[List[float]] = Field(..., description="Vertices [[lng, lat], ...]")
    date: Optional[dt.date] = Field(default=None, description="Simulation date (UTC)")
    hour: Optional[int] = Field(default=None, ge=0, le=23, description="Simulation hour")
    offset: Optional[int] = Field(default=None, ge=0, description="Timeline offset")
    dark_mode: bool = Field(default=False, description="Theme flag")
    
    @model_validator(mode="after")
    def validate_instant(self) -> "AnalyzeRequest":
        """Require exactly one way of naming the instant."""
        by_date = self.date is not None and self.hour is not None
        if by_date == (self.offset is not None):
            raise ValueError("Provide either date and hour, or offset")
        return self


# =============================================================================
# Component Factories
# =============================================================================

def create_population_source(config: Settings) -> PopulationSource:
    """Static table if configured, Census API otherwise."""
    if config.data.population_path:
        return StaticPopulationSource.from_json_file(config.data.population_path)
    
    logger.info(f"Using Census API population source: states={config.census.states}")
    return CensusApiSource(
        states=config.census.states,
        base_url=config.census.base_url,
        dataset=config.census.dataset,
        variable=config.census.variable,
        api_key=config.census.api_key,
        timeout_seconds=config.census.timeout_seconds,
    )


def create_renderer(config: Settings) -> InMemoryRenderer:
    """
    Build the headless renderer from the configured data files.
    
    Missing files leave their layer unloaded: a missing tract file
    yields noTracts, a missing sample file yields an unavailable
    exposure stage for that window.
    """
    renderer = InMemoryRenderer(zoom=config.data.zoom)
    
    tracts_path = Path(config.data.tracts_path)
    if tracts_path.exists():
        renderer.load_geojson(config.engine.boundary_layer_id, str(tracts_path))
    else:
        logger.warning(f"Tract file not found: {tracts_path}")
    
    samples_dir = Path(config.data.samples_dir)
    for window in config.tilesets:
        sample_path = samples_dir / f"{window.id}.geojson"
        if sample_path.exists():
            renderer.load_geojson(window.source_layer_id, str(sample_path))
        else:
            logger.debug(f"No samples for tileset {window.id}: {sample_path}")
    
    return renderer


def resolve_instant(request: AnalyzeRequest) -> SimulationInstant:
    """
    Raises:
        ValueError: If the offset is outside the timeline
    """
    if request.offset is not None:
        return _timeline.instant_at(request.offset)
    return SimulationInstant(date=request.date, hour=request.hour)


class PolygonInterner:
    """
    Finalizes polygons, reusing the previous object for identical input.
    
    A resent polygon is the same drawn shape, so it keeps the same
    reference and hits the controller's last-request memo. Each
    consumer context (the HTTP endpoint, every WebSocket connection)
    owns one interner.
    """
    
    def __init__(self) -> None:
        self._last: Optional[Polygon] = None
    
    def intern(self, vertices: List[List[float]]) -> Polygon:
        """
        Raises:
            InvalidPolygon: If the vertices do not form a valid polygon
        """
        polygon = Polygon.finalize(vertices)
        if self._last is not None and self._last.vertices == polygon.vertices:
            return self._last
        self._last = polygon
        return polygon
    
    def clear(self) -> None:
        self._last = None


def create_controller() -> RecomputeController:
    """Controller over the shared resolver, cache, selector and calculator."""
    return RecomputeController(
        _resolver,
        _population_cache,
        _selector,
        _calculator,
        debounce_seconds=settings.engine.debounce_seconds,
    )


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager."""
    global _renderer, _population_cache, _resolver, _selector
    global _calculator, _timeline, _controller, _interner, _startup_time
    
    _startup_time = time.time()
    logger.info(f"Starting {SERVICE_NAME} {SERVICE_VERSION}")
    
    _renderer = create_renderer(settings)
    _population_cache = PopulationCache(
        create_population_source(settings),
        ttl_seconds=settings.census.ttl_hours * 3600,
    )
    _resolver = BoundaryUnitResolver(
        layer_id=settings.engine.boundary_layer_id,
        geoid_property=settings.samples.geoid_property,
    )
    _selector = TilesetSelector(settings.tilesets)
    _calculator = ExposureCalculator(
        scale=ExposureScale(bins=settings.exposure_bins),
        concentration_property=settings.samples.concentration_property,
        time_property=settings.samples.time_property,
        padding_ratio=settings.engine.padding_ratio,
    )
    _timeline = SimulationTimeline(
        start=settings.timeline.start,
        skipped_hours=settings.timeline.skipped_hours,
        skip_after=settings.timeline.skip_after,
        total_steps=settings.timeline.total_steps,
    )
    _controller = create_controller()
    _interner = PolygonInterner()
    _stream_controllers.clear()
    
    logger.info("All components started")
    
    yield
    
    logger.info("Shutting down gracefully...")
    for stream_controller in list(_stream_controllers):
        stream_controller.cancel()
    _controller.reset()
    await _controller.wait_idle()
    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="AQ Exposure Engine",
    description="Population exposure to air-quality concentration fields",
    version=SERVICE_VERSION,
    lifespan=lifespan,
)


# =============================================================================
# HTTP Endpoints
# =============================================================================

@app.get("/")
async def root() -> JSONResponse:
    """Service information endpoint."""
    return JSONResponse({
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "status": "running",
        "boundary_layer": settings.engine.boundary_layer_id,
        "tilesets": len(settings.tilesets),
    })


@app.get("/health")
async def health() -> JSONResponse:
    """
    Liveness probe - is the process alive?
    
    Always returns 200 if the service is running.
    """
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": round(time.time() - _startup_time, 1),
    })


@app.get("/ready")
async def ready() -> JSONResponse:
    """
    Readiness probe - can analyses find tracts?
    
    Returns 200 once the renderer is ready and the tract layer is
    loaded, 503 otherwise.
    """
    renderer = get_renderer()
    renderer_ready = renderer is not None and renderer.is_ready()
    tracts_loaded = renderer_ready and renderer.has_layer(settings.engine.boundary_layer_id)
    
    body = {
        "renderer_ready": renderer_ready,
        "tracts_loaded": tracts_loaded,
        "population_loaded": _population_cache.is_loaded if _population_cache else False,
    }
    if tracts_loaded:
        return JSONResponse({"status": "ready", **body})
    return JSONResponse({"status": "not_ready", **body}, status_code=503)


@app.get("/metrics")
async def metrics() -> JSONResponse:
    """Detailed metrics for observability."""
    renderer = get_renderer()
    controller = get_controller()
    
    return JSONResponse({
        "uptime_seconds": round(time.time() - _startup_time, 1),
        "renderer": {
            "layers": renderer.layer_ids if renderer else [],
            "queries": renderer.query_count if renderer else 0,
        },
        "resolver": _resolver.get_metrics() if _resolver else {},
        "population_cache": _population_cache.get_metrics() if _population_cache else {},
        "controller": controller.get_metrics() if controller else {},
        "streams": len(_stream_controllers),
    })


@app.get("/tilesets")
async def tilesets() -> JSONResponse:
    """Configured tileset windows and whether their samples are loaded."""
    renderer = get_renderer()
    return JSONResponse([
        {
            **window.model_dump(mode="json"),
            "loaded": bool(renderer and renderer.has_layer(window.source_layer_id)),
        }
        for window in (_selector.windows if _selector else [])
    ])


@app.post("/analyze")
async def analyze(request: AnalyzeRequest) -> JSONResponse:
    """
    Run one analysis and return its staged updates.
    
    Returns 422 for an invalid polygon or an out-of-range offset.
    """
    controller = get_controller()
    if controller is None:
        return _error("Engine not initialized", 503)
    
    try:
        polygon = _interner.intern(request.polygon)
        instant = resolve_instant(request)
    except InvalidPolygon as e:
        return _error(f"Invalid polygon: {e}", 422)
    except ValueError as e:
        return _error(str(e), 422)
    
    updates = [
        update
        async for update in controller.analyze(
            get_renderer(), polygon, instant, request.dark_mode
        )
    ]
    return JSONResponse([u.model_dump(mode="json") for u in updates])


@app.post("/reset")
async def reset() -> JSONResponse:
    """Clear the memo, the population cache and in-flight work of every client."""
    controller = get_controller()
    if controller is None:
        return _error("Engine not initialized", 503)
    
    controller.reset()
    _interner.clear()
    for stream_controller in _stream_controllers:
        stream_controller.cancel()
    return JSONResponse({"status": "reset", "generation": controller.generation})


# =============================================================================
# WebSocket Endpoints
# =============================================================================

@app.websocket("/ws/analyze")
async def analyze_stream(websocket: WebSocket) -> None:
    """
    WebSocket endpoint for interactive analysis.
    
    Every inbound message is a trigger (same body as POST /analyze).
    Triggers are debounced; updates of the latest trigger are pushed
    back as JSON. Invalid triggers get an ``{"error": ...}`` reply.
    
    Each connection has its own controller and polygon interner, so
    clients never supersede each other. Pending work of a connection
    is cancelled when it closes.
    """
    controller = create_controller()
    interner = PolygonInterner()
    _stream_controllers.add(controller)
    
    async def publish(update: AnalysisUpdate) -> None:
        await websocket.send_json(update.model_dump(mode="json"))
    
    try:
        await websocket.accept()
        logger.info(f"Client connected to /ws/analyze ({len(_stream_controllers)} open)")
        
        while True:
            message = await websocket.receive_json()
            try:
                request = AnalyzeRequest.model_validate(message)
                polygon = interner.intern(request.polygon)
                instant = resolve_instant(request)
            except (ValidationError, ValueError) as e:
                await websocket.send_json({"error": str(e)})
                continue
            
            controller.submit(
                _renderer, polygon, instant, request.dark_mode, publish
            )
    except WebSocketDisconnect:
        logger.info("Client disconnected from /ws/analyze")
    except Exception as e:
        logger.warning(f"WebSocket error: {e}")
    finally:
        controller.cancel()
        _stream_controllers.discard(controller)


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    
    # Cloud Run uses PORT env var
    port = int(os.environ.get("PORT", settings.server.port))
    
    uvicorn.run(
        "aq_exposure.main:app",
        host=settings.server.host,
        port=port,
        reload=False,
    )
