#!/usr/bin/env python3
"""
Timeline Scrub Script
=====================

Standalone script that drives a running service over /ws/analyze the
way a user dragging the time slider would.

This script:
    1. Connects to the service WebSocket
    2. Sends a burst of triggers for consecutive timeline offsets
    3. Logs every update pushed back
    4. Reports which generations actually produced results

With a debounce window longer than the burst interval only the last
trigger is expected to run.

Prerequisites:
    - The service must be running: python -m aq_exposure.main

Usage:
    python scripts/ws_scrub.py
    python scripts/ws_scrub.py --url ws://localhost:8002/ws/analyze --steps 8 --interval 0.05
"""

import argparse
import asyncio
import json
import logging
import os
import sys
import time

import websockets
from websockets.exceptions import ConnectionClosed


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


DEFAULT_POLYGON = [
    [-118.31, 33.99], [-118.09, 33.99], [-118.09, 34.09], [-118.31, 34.09],
]


async def run_scrub(url: str, steps: int, interval: float, settle: float) -> dict:
    """
    Send a burst of triggers and collect the pushed updates.
    
    Args:
        url: WebSocket URL of the service
        steps: Number of consecutive offsets to send
        interval: Seconds between triggers
        settle: Seconds to keep listening after the last trigger
        
    Returns:
        Summary dict
    """
    logger.info("=" * 60)
    logger.info("Timeline Scrub")
    logger.info("=" * 60)
    logger.info(f"URL: {url}")
    logger.info(f"Triggers: {steps} every {interval}s")
    logger.info("=" * 60)
    
    updates = []
    start_time = time.time()
    
    async with websockets.connect(url, close_timeout=5) as ws:
        for offset in range(steps):
            await ws.send(json.dumps({"polygon": DEFAULT_POLYGON, "offset": offset}))
            await asyncio.sleep(interval)
        
        deadline = time.time() + settle
        try:
            while time.time() < deadline:
                remaining = deadline - time.time()
                try:
                    raw = await asyncio.wait_for(ws.recv(), timeout=remaining)
                except asyncio.TimeoutError:
                    break
                
                update = json.loads(raw)
                updates.append(update)
                if "error" in update:
                    logger.warning(f"  Error: {update['error']}")
                    continue
                logger.info(
                    f"  gen={update['generation']} status={update['status']} "
                    f"tracts={update['tract_count']} "
                    f"population={update['total_population']} "
                    f"time={update['timestamp']}"
                )
        except ConnectionClosed as e:
            logger.warning(f"Connection closed: {e}")
    
    generations = sorted({u["generation"] for u in updates if "generation" in u})
    
    logger.info("=" * 60)
    logger.info("FINAL SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Total runtime: {time.time() - start_time:.1f} seconds")
    logger.info(f"Updates received: {len(updates)}")
    logger.info(f"Generations with results: {generations}")
    logger.info("=" * 60)
    
    return {
        "updates": len(updates),
        "generations": generations,
    }


def main():
    parser = argparse.ArgumentParser(
        description="Drive /ws/analyze with a burst of timeline triggers"
    )
    parser.add_argument(
        "--url",
        type=str,
        default=os.environ.get("AQX_WS_URL", "ws://localhost:8002/ws/analyze"),
        help="WebSocket URL of the service",
    )
    parser.add_argument(
        "--steps",
        type=int,
        default=6,
        help="Number of triggers (default: 6)",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=0.05,
        help="Seconds between triggers (default: 0.05)",
    )
    parser.add_argument(
        "--settle",
        type=float,
        default=3.0,
        help="Seconds to listen after the burst (default: 3)",
    )
    
    args = parser.parse_args()
    
    result = asyncio.run(run_scrub(
        url=args.url,
        steps=args.steps,
        interval=args.interval,
        settle=args.settle,
    ))
    
    sys.exit(0 if result["updates"] > 0 else 1)


if __name__ == "__main__":
    main()
