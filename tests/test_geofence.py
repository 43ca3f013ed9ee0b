import math
from types import SimpleNamespace

import pytest

from staffhub.services.geofence import (
    close_ring,
    haversine_distance,
    is_within_circle,
    is_usable_ring,
    is_within_location_boundaries,
    is_within_polygon,
    polygon_center_and_radius,
)


SQUARE = [[74.0, 31.0], [74.01, 31.0], [74.01, 31.01], [74.0, 31.01], [74.0, 31.0]]


@pytest.mark.parametrize("a,b", [
    ((31.5204, 74.3587), (24.8607, 67.0011)),
    ((0.0, 0.0), (0.0, 1.0)),
    ((-33.8688, 151.2093), (51.5074, -0.1278)),
])
def test_haversine_is_symmetric(a, b):
    assert haversine_distance(*a, *b) == pytest.approx(haversine_distance(*b, *a))
    assert haversine_distance(*a, *b) > 0


def test_haversine_zero_for_same_point():
    assert haversine_distance(31.5, 74.3, 31.5, 74.3) == 0


def test_haversine_one_degree_of_longitude_at_equator():
    # 2 * pi * R / 360
    assert haversine_distance(0, 0, 0, 1) == pytest.approx(2 * math.pi * 6371000 / 360, rel=1e-9)


def test_circle_boundary_is_inclusive():
    d = haversine_distance(31.0, 74.0, 31.001, 74.0)
    assert is_within_circle(31.001, 74.0, 31.0, 74.0, d + 1e-6)
    assert not is_within_circle(31.001, 74.0, 31.0, 74.0, d - 0.5)


def test_polygon_contains_its_centroid_and_not_far_points():
    assert is_within_polygon(31.005, 74.005, SQUARE)
    assert not is_within_polygon(31.5, 74.5, SQUARE)
    assert not is_within_polygon(31.005, 73.9, SQUARE)


def test_polygon_with_too_few_points_contains_nothing():
    assert not is_within_polygon(31.0, 74.0, [[74.0, 31.0], [74.01, 31.0]])
    assert not is_within_polygon(31.0, 74.0, None)


def test_center_is_vertex_mean_and_radius_is_ceiled():
    points = [(74.0, 31.0), (74.02, 31.0), (74.02, 31.02), (74.0, 31.02)]
    shape = polygon_center_and_radius(points)
    assert shape["center_lng"] == pytest.approx(74.01)
    assert shape["center_lat"] == pytest.approx(31.01)
    farthest = max(haversine_distance(31.01, 74.01, lat, lng) for lng, lat in points)
    assert shape["radius_meters"] == math.ceil(farthest)
    assert isinstance(shape["radius_meters"], int)


def test_center_of_empty_input_is_none():
    assert polygon_center_and_radius([]) is None


def test_close_ring_appends_first_vertex_once():
    ring = close_ring([[1, 2], [3, 4], [5, 6]])
    assert ring[0] == ring[-1]
    assert len(ring) == 4
    assert close_ring(ring) == ring


def test_location_uses_polygon_when_it_has_one():
    # Circle would contain the point; the polygon does not
    loc = SimpleNamespace(boundaries=SQUARE, center_lat=31.005, center_lng=74.005, radius_meters=50000)
    assert not is_within_location_boundaries(31.2, 74.005, loc)
    assert is_within_location_boundaries(31.005, 74.005, loc)


def test_location_falls_back_to_circle():
    loc = SimpleNamespace(boundaries=None, center_lat=31.0, center_lng=74.0, radius_meters=100)
    assert is_within_location_boundaries(31.0005, 74.0, loc)
    assert not is_within_location_boundaries(31.01, 74.0, loc)


def test_ring_needs_three_distinct_vertices():
    # Closed ring with only two distinct corners
    degenerate = [[74.0, 31.0], [74.01, 31.0], [74.0, 31.0]]
    assert not is_usable_ring(degenerate)
    assert is_usable_ring(SQUARE)
    assert not is_within_polygon(31.0, 74.005, degenerate)


def test_location_with_degenerate_ring_uses_circle():
    loc = SimpleNamespace(
        boundaries=[[74.0, 31.0], [74.01, 31.0], [74.0, 31.0]],
        center_lat=31.0, center_lng=74.0, radius_meters=5000,
    )
    assert is_within_location_boundaries(31.0, 74.0, loc)
