"""
Analysis Module
===============

Orchestration of analysis requests.

Components:
    - AnalysisGraph: LangGraph pipeline (highlight → calculate)
    - AnalysisRequest: Inputs of one request
    - RecomputeController: memo, debounce, last-request-wins, reset

Key Design Decisions:
    - LangGraph is used for STRUCTURE, not LLM reasoning
    - Generation ids replace timer-cancellation semantics
    - Superseded work finishes; its output is discarded
"""

from aq_exposure.analysis.graph import AnalysisGraph, AnalysisRequest
from aq_exposure.analysis.controller import RecomputeController

__all__ = [
    "AnalysisGraph",
    "AnalysisRequest",
    "RecomputeController",
]
