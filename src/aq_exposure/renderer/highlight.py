"""
Selected-Tract Highlight
========================

Builds the overlay the presentation layer paints over the tracts that
intersect the user's polygon. The theme flag picks the palette.
"""

from typing import Dict, Iterable

from aq_exposure.models.boundary import BoundaryUnit
from aq_exposure.models.output import HighlightOverlay


DARK_PALETTE: Dict[str, object] = {
    "fill_color": "#7C3AED",
    "fill_opacity": 0.4,
    "fill_outline_color": "#9F7AEA",
    "line_color": "#A78BFA",
    "line_opacity": 0.8,
}

LIGHT_PALETTE: Dict[str, object] = {
    "fill_color": "#8B5CF6",
    "fill_opacity": 0.3,
    "fill_outline_color": "#7C3AED",
    "line_color": "#7C3AED",
    "line_opacity": 0.6,
}


def build_highlight(units: Iterable[BoundaryUnit], dark_mode: bool) -> HighlightOverlay:
    """
    Build the highlight overlay for a set of tracts.
    
    Args:
        units: Selected boundary units
        dark_mode: Use the dark theme palette
        
    Returns:
        HighlightOverlay with a FeatureCollection ordered by GEOID
    """
    ordered = sorted(units, key=lambda u: u.geoid or "")
    geojson = {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "geometry": unit.to_geojson_geometry(),
                "properties": {"id": unit.geoid},
            }
            for unit in ordered
        ],
    }
    palette = DARK_PALETTE if dark_mode else LIGHT_PALETTE
    return HighlightOverlay(geojson=geojson, line_width=1.5, **palette)
