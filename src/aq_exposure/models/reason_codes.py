"""
Reason Codes
============

Fixed set of machine-readable codes explaining why a stage of an
analysis is unavailable or failed.

Rules:
    - No free-text explanations in results
    - One clear cause per code
    - NO_TILESET is a steady-state display condition, not a fault
"""

from enum import Enum


class UnavailableReason(str, Enum):
    """
    Machine-readable explanation for an unavailable or failed stage.
    
    Attributes:
        NO_TILESET: Simulation instant falls in a gap of the window table
        LAYER_NOT_LOADED: Window resolved but its layer is not loaded yet
        RENDERER_UNAVAILABLE: Renderer query failed
        DATA_FETCH_FAILED: Population source could not be fetched
    """
    
    NO_TILESET = "NO_TILESET"
    LAYER_NOT_LOADED = "LAYER_NOT_LOADED"
    RENDERER_UNAVAILABLE = "RENDERER_UNAVAILABLE"
    DATA_FETCH_FAILED = "DATA_FETCH_FAILED"
