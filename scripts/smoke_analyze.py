#!/usr/bin/env python3
"""
Offline Smoke Test Script
=========================

Standalone script that runs the exposure engine end to end on the
bundled data files, without the HTTP service.

This script:
    1. Loads config.yaml and the GeoJSON/population files it names
    2. Walks the playback timeline for one polygon
    3. Logs the staged updates of every step
    4. Reports a final summary

Usage:
    python scripts/smoke_analyze.py
    python scripts/smoke_analyze.py --config ./config.yaml --steps 6
    python scripts/smoke_analyze.py --polygon "-118.31,33.99 -118.09,33.99 -118.09,34.09"
"""

import argparse
import asyncio
import logging
import os
import sys
import time

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from aq_exposure.analysis import RecomputeController
from aq_exposure.census import PopulationCache
from aq_exposure.config import load_config
from aq_exposure.exposure import ExposureCalculator
from aq_exposure.geometry import BoundaryUnitResolver
from aq_exposure.main import create_population_source, create_renderer
from aq_exposure.models import AnalysisStatus, ExposureScale, Polygon
from aq_exposure.tileset import SimulationTimeline, TilesetSelector


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


DEFAULT_POLYGON = "-118.31,33.99 -118.09,33.99 -118.09,34.09 -118.31,34.09"


def parse_polygon(text: str) -> Polygon:
    """Parse ``"lng,lat lng,lat ..."`` into a finalized polygon."""
    vertices = [
        [float(part) for part in pair.split(",")]
        for pair in text.split()
    ]
    return Polygon.finalize(vertices)


async def run_smoke(config_path: str, polygon: Polygon, steps: int) -> dict:
    """
    Run the timeline walk.
    
    Args:
        config_path: Path to config.yaml
        polygon: Area of interest
        steps: Maximum number of timeline steps
        
    Returns:
        Summary dict
    """
    config = load_config(config_path)
    
    logger.info("=" * 60)
    logger.info("Exposure Engine Smoke Test")
    logger.info("=" * 60)
    logger.info(f"Config: {config_path}")
    logger.info(f"Polygon: {polygon.ring}")
    logger.info(f"Tilesets: {[w.id for w in config.tilesets]}")
    logger.info("=" * 60)
    
    renderer = create_renderer(config)
    cache = PopulationCache(
        create_population_source(config),
        ttl_seconds=config.census.ttl_hours * 3600,
    )
    controller = RecomputeController(
        BoundaryUnitResolver(
            layer_id=config.engine.boundary_layer_id,
            geoid_property=config.samples.geoid_property,
        ),
        cache,
        TilesetSelector(config.tilesets),
        ExposureCalculator(
            scale=ExposureScale(bins=config.exposure_bins),
            concentration_property=config.samples.concentration_property,
            time_property=config.samples.time_property,
            padding_ratio=config.engine.padding_ratio,
        ),
        debounce_seconds=config.engine.debounce_seconds,
    )
    timeline = SimulationTimeline(
        start=config.timeline.start,
        skipped_hours=config.timeline.skipped_hours,
        skip_after=config.timeline.skip_after,
        total_steps=config.timeline.total_steps,
    )
    
    start_time = time.time()
    completed = 0
    unavailable = 0
    failed = 0
    
    for offset, instant in enumerate(timeline):
        if offset >= steps:
            break
        
        logger.info("-" * 40)
        logger.info(f"Step {offset}: {instant.timestamp}")
        async for update in controller.analyze(renderer, polygon, instant):
            if update.status == AnalysisStatus.CALCULATING:
                logger.info(f"  Tracts: {update.tract_count} (population pending)")
            elif update.status == AnalysisStatus.COMPLETE:
                completed += 1
                logger.info(f"  Population: {update.total_population}")
                if update.distribution is None:
                    unavailable += 1
                    logger.info(f"  Exposure: unavailable ({update.reason.value})")
                else:
                    logger.info(f"  Average PM2.5: {update.average_concentration:.2f}")
                    nonzero = {k: v for k, v in update.distribution.items() if v}
                    logger.info(f"  Distribution: {nonzero}")
            else:
                failed += 1
                reason = update.reason.value if update.reason else "-"
                logger.info(f"  Terminal: {update.status.value} ({reason})")
    
    total_time = time.time() - start_time
    
    logger.info("=" * 60)
    logger.info("FINAL SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Total runtime: {total_time:.2f} seconds")
    logger.info(f"Completed: {completed}")
    logger.info(f"Exposure unavailable: {unavailable}")
    logger.info(f"No tracts / errors: {failed}")
    logger.info(f"Controller: {controller.get_metrics()}")
    logger.info(f"Population cache: {cache.get_metrics()}")
    logger.info("=" * 60)
    
    return {
        "duration": total_time,
        "completed": completed,
        "unavailable": unavailable,
        "failed": failed,
    }


def main():
    parser = argparse.ArgumentParser(
        description="Offline smoke test for the exposure engine"
    )
    parser.add_argument(
        "--config",
        type=str,
        default=os.environ.get("AQX_CONFIG", "config.yaml"),
        help="Path to config.yaml",
    )
    parser.add_argument(
        "--polygon",
        type=str,
        default=DEFAULT_POLYGON,
        help='Vertices as "lng,lat lng,lat ..."',
    )
    parser.add_argument(
        "--steps",
        type=int,
        default=24,
        help="Maximum timeline steps (default: 24)",
    )
    
    args = parser.parse_args()
    
    result = asyncio.run(run_smoke(
        config_path=args.config,
        polygon=parse_polygon(args.polygon),
        steps=args.steps,
    ))
    
    sys.exit(0 if result["completed"] > 0 and result["failed"] == 0 else 1)


if __name__ == "__main__":
    main()
