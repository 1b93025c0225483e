"""
Spatial Predicate Tests
=======================

Ray-casting containment against a winding-number reference, and the
bounding-box fold.
"""

import math

import numpy as np
import pytest

from aq_exposure.geometry import bounding_box, point_in_polygon
from aq_exposure.models import BoundingBox, Polygon
from aq_exposure.errors import InvalidPolygon


def winding_number(point, ring) -> int:
    """Reference containment: non-zero winding number means inside."""
    x, y = point
    wn = 0
    n = len(ring)
    for i in range(n):
        x0, y0 = ring[i]
        x1, y1 = ring[(i + 1) % n]
        cross = (x1 - x0) * (y - y0) - (x - x0) * (y1 - y0)
        if y0 <= y < y1 and cross > 0:
            wn += 1
        elif y1 <= y < y0 and cross < 0:
            wn -= 1
    return wn


def star_polygon(rng, n_vertices: int):
    """Simple (possibly non-convex) polygon: sorted angles, random radii."""
    angles = np.sort(rng.uniform(0, 2 * math.pi, n_vertices))
    radii = rng.uniform(0.2, 1.0, n_vertices)
    return [(float(r * math.cos(a)), float(r * math.sin(a))) for a, r in zip(angles, radii)]


def convex_polygon(n_vertices: int, radius: float = 1.0):
    return [
        (radius * math.cos(2 * math.pi * k / n_vertices),
         radius * math.sin(2 * math.pi * k / n_vertices))
        for k in range(n_vertices)
    ]


class TestPointInPolygon:
    """Tests for point_in_polygon."""
    
    def test_unit_square(self):
        square = [(0, 0), (1, 0), (1, 1), (0, 1), (0, 0)]
        assert point_in_polygon((0.5, 0.5), square)
        assert not point_in_polygon((1.5, 0.5), square)
        assert not point_in_polygon((0.5, -0.1), square)
    
    def test_open_and_closed_rings_agree(self):
        open_ring = [(0, 0), (4, 0), (4, 3), (0, 3)]
        closed = open_ring + [open_ring[0]]
        for p in [(1, 1), (3.9, 2.9), (5, 1), (-1, -1), (2, 3.5)]:
            assert point_in_polygon(p, open_ring) == point_in_polygon(p, closed)
    
    def test_concave_notch(self):
        # U shape: the notch between the arms is outside
        u_shape = [(0, 0), (3, 0), (3, 3), (2, 3), (2, 1), (1, 1), (1, 3), (0, 3)]
        assert point_in_polygon((0.5, 2.5), u_shape)
        assert point_in_polygon((2.5, 2.5), u_shape)
        assert not point_in_polygon((1.5, 2.5), u_shape)
        assert point_in_polygon((1.5, 0.5), u_shape)
    
    @pytest.mark.parametrize("point", [
        None,
        (),
        (1.0,),
        ("a", "b"),
        (True, False),
        {"lng": 0.5, "lat": 0.5},
        "0.5,0.5",
    ])
    def test_malformed_point_is_outside(self, point):
        square = [(0, 0), (1, 0), (1, 1), (0, 1)]
        assert point_in_polygon(point, square) is False
    
    def test_extra_coordinate_ignored(self):
        square = [(0, 0), (1, 0), (1, 1), (0, 1)]
        assert point_in_polygon([0.5, 0.5, 120.0], square)
    
    def test_degenerate_ring(self):
        assert not point_in_polygon((0, 0), [])
        assert not point_in_polygon((0, 0), [(0, 0), (1, 1)])
    
    def test_boundary_point_is_deterministic(self):
        square = [(0, 0), (1, 0), (1, 1), (0, 1)]
        first = point_in_polygon((1.0, 0.5), square)
        assert all(point_in_polygon((1.0, 0.5), square) == first for _ in range(10))
    
    def test_agrees_with_winding_number_on_convex_polygons(self):
        rng = np.random.default_rng(7)
        for n in (3, 4, 5, 8, 16):
            ring = convex_polygon(n)
            for x, y in rng.uniform(-1.2, 1.2, size=(200, 2)):
                p = (float(x), float(y))
                assert point_in_polygon(p, ring) == (winding_number(p, ring) != 0)
    
    def test_agrees_with_winding_number_on_star_polygons(self):
        rng = np.random.default_rng(2024)
        for _ in range(25):
            ring = star_polygon(rng, int(rng.integers(3, 20)))
            for x, y in rng.uniform(-1.1, 1.1, size=(200, 2)):
                p = (float(x), float(y))
                assert point_in_polygon(p, ring) == (winding_number(p, ring) != 0)


class TestBoundingBox:
    """Tests for bounding_box."""
    
    def test_simple(self):
        bbox = bounding_box([(-118.3, 34.0), (-118.1, 34.2), (-118.2, 33.9)])
        assert bbox == BoundingBox(min_lng=-118.3, max_lng=-118.1, min_lat=33.9, max_lat=34.2)
    
    def test_empty_input_is_inverted(self):
        bbox = bounding_box([])
        assert bbox.is_empty
        assert bbox.min_lng > bbox.max_lng
    
    def test_order_independent(self):
        rng = np.random.default_rng(11)
        points = [tuple(p) for p in rng.uniform(-180, 180, size=(50, 2))]
        expected = bounding_box(points)
        for _ in range(5):
            order = rng.permutation(len(points))
            shuffled = [points[i] for i in order]
            bbox = bounding_box(shuffled)
            assert bbox == expected
            assert bbox.min_lng <= bbox.max_lng
            assert bbox.min_lat <= bbox.max_lat
    
    def test_single_point(self):
        bbox = bounding_box([(5.0, 6.0)])
        assert not bbox.is_empty
        assert bbox.width == 0
        assert bbox.height == 0
    
    def test_padded(self):
        bbox = BoundingBox(min_lng=0.0, max_lng=10.0, min_lat=0.0, max_lat=5.0)
        padded = bbox.padded(0.2)
        assert padded.min_lng == pytest.approx(-2.0)
        assert padded.max_lng == pytest.approx(12.0)
        assert padded.min_lat == pytest.approx(-1.0)
        assert padded.max_lat == pytest.approx(6.0)


class TestPolygon:
    """Tests for polygon finalization."""
    
    def test_finalize_closes_draft(self):
        polygon = Polygon.finalize([[0, 0], [1, 0], [1, 1]])
        assert len(polygon.vertices) == 4
        assert polygon.vertices[0] == polygon.vertices[-1]
    
    def test_finalize_accepts_closed_ring(self):
        polygon = Polygon.finalize([[0, 0], [1, 0], [1, 1], [0, 0]])
        assert len(polygon.vertices) == 4
    
    @pytest.mark.parametrize("draft", [
        [],
        [[0, 0]],
        [[0, 0], [1, 1]],
        [[0, 0], [1, 1], [0, 0]],
        [[0, 0], [1, 1], [1, 1], [0, 0]],
        [["x", 0], [1, 0], [1, 1]],
        [[0], [1, 0], [1, 1]],
    ])
    def test_finalize_rejects_invalid(self, draft):
        with pytest.raises(InvalidPolygon):
            Polygon.finalize(draft)
    
    def test_invalid_polygon_is_value_error(self):
        with pytest.raises(ValueError):
            Polygon.finalize([[0, 0]])
