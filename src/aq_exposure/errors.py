"""
Engine Errors
=============

Exception taxonomy for the exposure analysis engine.

Every recoverable failure is caught at the boundary of the component
that can fail and converted into a terminal ``error`` update for the
request that hit it. A later, independent request always proceeds.

Taxonomy:
    - RendererUnavailable: renderer query failed (retry on next trigger)
    - DataFetchFailure: population source unreachable (stale cache may serve)
    - InvalidPolygon: fewer than 3 distinct vertices (rejected up front)

A simulation instant that falls in a tileset gap is NOT an error. It is
reported as ``UnavailableReason.NO_TILESET`` on the result.
"""


class ExposureEngineError(Exception):
    """Base class for all engine errors."""


class RendererUnavailable(ExposureEngineError):
    """The renderer could not answer a feature query."""


class DataFetchFailure(ExposureEngineError):
    """The population data source could not be fetched."""


class InvalidPolygon(ExposureEngineError, ValueError):
    """The polygon cannot be analyzed (too few distinct vertices)."""
