"""
Population Aggregation
======================

Joins the selected tracts onto the population table.

Rules:
    - A tract with a missing or invalid GEOID is excluded; it counts
      toward the tract count but contributes 0 population
    - A valid GEOID absent from the table contributes 0
    - Region codes prefer the population record and fall back to the
      tract feature's own STATEFP / COUNTYFP / TRACTCE properties
"""

from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping, Tuple

from aq_exposure.census.source import is_valid_geoid
from aq_exposure.models.boundary import BoundaryUnit, PopulationRecord, TractSummary


@dataclass(frozen=True, slots=True)
class PopulationAggregate:
    """
    Population of a tract selection.
    
    Attributes:
        total_population: Sum over valid tracts
        tracts: Per-tract breakdown, ordered by GEOID
    """
    
    total_population: int
    tracts: Tuple[TractSummary, ...]


def aggregate_population(
    units: Iterable[BoundaryUnit],
    table: Mapping[str, PopulationRecord],
    validate: Callable[[Any], bool] = is_valid_geoid,
) -> PopulationAggregate:
    """
    Sum the population of the selected tracts.
    
    Args:
        units: Selected boundary units
        table: GEOID -> PopulationRecord
        validate: GEOID validity check
        
    Returns:
        PopulationAggregate
    """
    summaries = {}
    for unit in units:
        geoid = unit.geoid
        if not geoid or not validate(geoid) or geoid in summaries:
            continue
        
        record = table.get(geoid)
        summaries[geoid] = TractSummary(
            geoid=geoid,
            population=record.population if record else 0,
            land_area=unit.land_area,
            state=(record.state if record else None) or unit.state,
            county=(record.county if record else None) or unit.county,
            tract=(record.tract if record else None) or unit.tract,
        )
    
    ordered = tuple(summaries[g] for g in sorted(summaries))
    return PopulationAggregate(
        total_population=sum(t.population for t in ordered),
        tracts=ordered,
    )
