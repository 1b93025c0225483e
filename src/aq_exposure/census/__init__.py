"""
Census Module
=============

Population data for boundary units.

Components:
    - PopulationSource: Protocol for bulk population providers
    - CensusApiSource: US Census Bureau API
    - StaticPopulationSource: Fixed in-memory table
    - PopulationCache: Single-flight TTL cache over the table
    - aggregate_population: Joins selected tracts onto the table
"""

from aq_exposure.census.source import (
    CensusApiSource,
    PopulationSource,
    StaticPopulationSource,
    is_valid_geoid,
)
from aq_exposure.census.cache import PopulationCache
from aq_exposure.census.aggregate import PopulationAggregate, aggregate_population

__all__ = [
    "PopulationSource",
    "CensusApiSource",
    "StaticPopulationSource",
    "is_valid_geoid",
    "PopulationCache",
    "PopulationAggregate",
    "aggregate_population",
]
