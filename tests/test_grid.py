import math

import pytest
from shapely.geometry import MultiPolygon, Polygon

from geotap.geo import grid


def test_span_shrinks_with_zoom():
    spans = [grid.span_degrees(z) for z in range(10, 17)]
    assert all(a > b for a, b in zip(spans, spans[1:]))
    assert grid.span_degrees(10) == pytest.approx(360.0 / 1024 * 60 / 256)


def test_grid_covers_box_with_centers_inside():
    sectors = grid.generate_grid(40.0, -4.0, 40.5, -3.5, 12)

    assert sectors
    span = grid.span_degrees(12)
    for s in sectors:
        assert 40.0 < s.lat < 40.5
        assert -4.0 < s.lng < -3.5
        assert s.span == span
    assert sectors[0].row == 0 and sectors[0].col == 0
    assert sectors[0].lat == pytest.approx(40.0 + span / 2)


def test_grid_orders_rows_then_columns():
    sectors = grid.generate_grid(0.0, 0.0, 0.3, 0.3, 11)
    keys = [(s.row, s.col) for s in sectors]
    assert keys == sorted(keys)
    assert len(set(keys)) == len(keys)


def test_longitude_step_widens_away_from_equator():
    equator = grid.generate_grid(0.0, 0.0, 0.1, 1.0, 12)
    north = grid.generate_grid(60.0, 0.0, 60.1, 1.0, 12)
    assert len(north) < len(equator)
    row0 = [s for s in north if s.row == 0]
    step = row0[1].lng - row0[0].lng
    assert step == pytest.approx(grid.span_degrees(12) / math.cos(math.radians(row0[0].lat)))


def test_degenerate_box_has_no_sectors():
    assert grid.generate_grid(10.0, 10.0, 10.0, 10.0, 12) == []
    assert grid.generate_grid(10.0, 10.0, 9.0, 11.0, 12) == []


def test_radius_grid_respects_radius():
    sectors = grid.generate_radius_grid(40.4168, -3.7038, 5.0, 13)

    assert sectors
    for s in sectors:
        assert grid.haversine_km(40.4168, -3.7038, s.lat, s.lng) <= 5.0


def test_haversine_known_distance():
    # One degree of latitude is ~111.2 km on a 6371 km sphere.
    assert grid.haversine_km(0.0, 0.0, 1.0, 0.0) == pytest.approx(111.19, abs=0.01)
    assert grid.haversine_km(12.0, 34.0, 12.0, 34.0) == 0.0


def test_filter_to_land_keeps_only_contained_centers():
    sectors = grid.generate_grid(0.0, 0.0, 1.0, 2.0, 10)
    left_half = MultiPolygon([Polygon([(0, 0), (1, 0), (1, 1), (0, 1)])])

    kept = grid.filter_to_land(sectors, left_half)

    assert kept
    assert len(kept) < len(sectors)
    assert all(s.lng < 1.0 for s in kept)
