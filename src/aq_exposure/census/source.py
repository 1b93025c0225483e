"""
Population Sources
==================

Bulk providers of the tract population table.

This module provides:
    - PopulationSource: Protocol consumed by the population cache
    - CensusApiSource: US Census Bureau data API (production)
    - StaticPopulationSource: In-memory/JSON table (testing, demo)

Census API:
    One request per configured state:
        GET {base_url}/{dataset}?get=P1_001N&for=tract:*&in=state:06
    The response is a JSON array of rows; the first row is the header:
        [["P1_001N", "state", "county", "tract"],
         ["4021", "06", "037", "101110"], ...]
    GEOID = state + county + tract.
"""

import asyncio
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Union

import requests

from aq_exposure.errors import DataFetchFailure
from aq_exposure.models.boundary import PopulationRecord


logger = logging.getLogger(__name__)


GEOID_PATTERN = re.compile(r"\d{11}")


def is_valid_geoid(geoid: Any) -> bool:
    """True for an 11-digit numeric tract GEOID string."""
    return isinstance(geoid, str) and GEOID_PATTERN.fullmatch(geoid) is not None


class PopulationSource(Protocol):
    """
    Protocol for population data sources.
    
    ``fetch_all_population`` is an on-demand, potentially slow bulk
    call. Implementations raise DataFetchFailure when unreachable.
    """
    
    async def fetch_all_population(self) -> Dict[str, PopulationRecord]:
        """Fetch the full GEOID -> PopulationRecord table."""
        ...
    
    def is_valid_geoid(self, geoid: Any) -> bool:
        """Validate GEOID format."""
        ...


class StaticPopulationSource:
    """
    Population source over a fixed table.
    
    Example:
        source = StaticPopulationSource({"06037101110": 4021})
        table = await source.fetch_all_population()
    """
    
    def __init__(
        self,
        records: Mapping[str, Union[int, PopulationRecord, Mapping[str, Any]]],
    ) -> None:
        """
        Initialize from a table.
        
        Args:
            records: GEOID -> population count, PopulationRecord, or a
                mapping with ``population`` and optional region codes
        """
        self._records: Dict[str, PopulationRecord] = {}
        for geoid, value in records.items():
            self._records[geoid] = self._to_record(geoid, value)
        self._fetch_count: int = 0
    
    @staticmethod
    def _to_record(geoid: str, value: Any) -> PopulationRecord:
        if isinstance(value, PopulationRecord):
            return value
        if isinstance(value, Mapping):
            return PopulationRecord(
                geoid=geoid,
                population=int(value.get("population", 0)),
                state=value.get("state"),
                county=value.get("county"),
                tract=value.get("tract"),
            )
        return PopulationRecord(geoid=geoid, population=int(value))
    
    @classmethod
    def from_json_file(cls, path: str) -> "StaticPopulationSource":
        """
        Load a table from a JSON object file keyed by GEOID.
        
        Raises:
            FileNotFoundError: If the file does not exist
        """
        file_path = Path(path)
        if not file_path.exists():
            raise FileNotFoundError(f"Population file not found: {path}")
        
        logger.info(f"Loading population table from: {path}")
        with open(file_path, "r") as f:
            data = json.load(f)
        return cls(data)
    
    @property
    def fetch_count(self) -> int:
        """Number of bulk fetches served."""
        return self._fetch_count
    
    async def fetch_all_population(self) -> Dict[str, PopulationRecord]:
        self._fetch_count += 1
        return dict(self._records)
    
    def is_valid_geoid(self, geoid: Any) -> bool:
        return is_valid_geoid(geoid)


class CensusApiSource:
    """
    US Census Bureau API population source.
    
    Requests run in a worker thread so the event loop never blocks.
    
    Attributes:
        base_url: API root, e.g. ``https://api.census.gov/data``
        dataset: Dataset path, e.g. ``2020/dec/pl``
        variable: Total population variable, e.g. ``P1_001N``
        states: State FIPS codes to fetch
    """
    
    def __init__(
        self,
        states: Sequence[str],
        base_url: str = "https://api.census.gov/data",
        dataset: str = "2020/dec/pl",
        variable: str = "P1_001N",
        api_key: Optional[str] = None,
        timeout_seconds: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        """
        Initialize Census API source.
        
        Args:
            states: Two-digit state FIPS codes
            base_url: API root URL
            dataset: Dataset path under the root
            variable: Population variable name
            api_key: Optional Census API key
            timeout_seconds: Per-request timeout
            session: Optional requests session (for connection reuse)
        """
        if not states:
            raise ValueError("At least one state FIPS code is required")
        
        self.states = list(states)
        self.base_url = base_url.rstrip("/")
        self.dataset = dataset.strip("/")
        self.variable = variable
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self._session = session or requests.Session()
        
        logger.info(
            f"CensusApiSource initialized: dataset={self.dataset}, "
            f"variable={variable}, states={len(self.states)}"
        )
    
    async def fetch_all_population(self) -> Dict[str, PopulationRecord]:
        """
        Fetch tract populations for every configured state.
        
        Raises:
            DataFetchFailure: On network, HTTP or payload errors
        """
        return await asyncio.to_thread(self._fetch_all_sync)
    
    def is_valid_geoid(self, geoid: Any) -> bool:
        return is_valid_geoid(geoid)
    
    def _fetch_all_sync(self) -> Dict[str, PopulationRecord]:
        table: Dict[str, PopulationRecord] = {}
        for state in self.states:
            rows = self._fetch_state(state)
            table.update(self._parse_rows(rows))
        logger.info(f"Fetched population for {len(table)} tracts")
        return table
    
    def _fetch_state(self, state: str) -> List[List[Any]]:
        url = f"{self.base_url}/{self.dataset}"
        params = {
            "get": self.variable,
            "for": "tract:*",
            "in": f"state:{state}",
        }
        if self.api_key:
            params["key"] = self.api_key
        
        try:
            response = self._session.get(url, params=params, timeout=self.timeout_seconds)
            response.raise_for_status()
            rows = response.json()
        except requests.RequestException as e:
            raise DataFetchFailure(f"Census API request failed for state {state}: {e}") from e
        except ValueError as e:
            raise DataFetchFailure(f"Census API returned invalid JSON for state {state}: {e}") from e
        
        if not isinstance(rows, list) or not rows:
            raise DataFetchFailure(f"Census API returned no rows for state {state}")
        return rows
    
    def _parse_rows(self, rows: List[List[Any]]) -> Dict[str, PopulationRecord]:
        header = rows[0]
        try:
            i_pop = header.index(self.variable)
            i_state = header.index("state")
            i_county = header.index("county")
            i_tract = header.index("tract")
        except ValueError as e:
            raise DataFetchFailure(f"Unexpected Census API header {header}: {e}") from e
        
        records: Dict[str, PopulationRecord] = {}
        for row in rows[1:]:
            try:
                state, county, tract = row[i_state], row[i_county], row[i_tract]
                geoid = f"{state}{county}{tract}"
                # Census uses large negative sentinels for suppressed values
                population = max(0, int(row[i_pop]))
            except (IndexError, TypeError, ValueError):
                logger.warning(f"Skipping malformed Census row: {row}")
                continue
            
            if not is_valid_geoid(geoid):
                continue
            
            records[geoid] = PopulationRecord(
                geoid=geoid,
                population=population,
                state=state,
                county=county,
                tract=tract,
            )
        return records
