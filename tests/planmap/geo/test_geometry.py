"""Unit tests for geodesic geometry helpers."""
from __future__ import annotations

import math

import pytest

from planmap.errors import InvalidGeometryError
from planmap.geo.geometry import (
    GeoPoint,
    area,
    circle_ring,
    close_ring,
    distinct_points,
    envelope,
    open_ring,
    path_length,
    perimeter,
    rectangle_ring,
    view_bounds,
)

# 10 m in degrees at the equator
_DLAT = 10 / 110574.0
_DLNG = 10 / 111319.5


def _square():
    return [
        GeoPoint(0.0, 0.0),
        GeoPoint(0.0, _DLNG),
        GeoPoint(_DLAT, _DLNG),
        GeoPoint(_DLAT, 0.0),
    ]


def _plot():
    """An irregular building-sized pentagon in London."""
    return [
        GeoPoint(51.5072, -0.1276),
        GeoPoint(51.5075, -0.1270),
        GeoPoint(51.5079, -0.1272),
        GeoPoint(51.5078, -0.1280),
        GeoPoint(51.5074, -0.1281),
    ]


@pytest.mark.unit
class TestArea:
    """Geodesic area of rings."""

    def test_ten_metre_square_at_equator(self):
        assert area(_square()) == pytest.approx(100.0, rel=0.01)

    def test_positive(self):
        assert area(_plot()) > 0

    def test_invariant_under_reversal(self):
        ring = _plot()
        assert area(list(reversed(ring))) == pytest.approx(area(ring), abs=1e-6)

    def test_invariant_under_rotation(self):
        ring = _plot()
        expected = area(ring)
        for i in range(1, len(ring)):
            assert area(ring[i:] + ring[:i]) == pytest.approx(expected, abs=1e-6)

    def test_explicitly_closed_ring_same_area(self):
        ring = _square()
        assert area(ring + [ring[0]]) == pytest.approx(area(ring))

    def test_two_points_rejected(self):
        with pytest.raises(InvalidGeometryError):
            area([GeoPoint(0, 0), GeoPoint(0, 1)])

    def test_repeated_points_count_once(self):
        with pytest.raises(InvalidGeometryError):
            area([GeoPoint(0, 0), GeoPoint(0, 1), GeoPoint(0, 0), GeoPoint(0, 1)])

    def test_empty_rejected(self):
        with pytest.raises(InvalidGeometryError):
            area([])


@pytest.mark.unit
class TestRingHelpers:

    def test_close_ring_appends_first(self):
        ring = _square()
        closed = close_ring(ring)
        assert closed[-1] == ring[0]
        assert len(closed) == 5

    def test_close_ring_already_closed(self):
        ring = close_ring(_square())
        assert close_ring(ring) == ring

    def test_open_ring_drops_closing_point(self):
        assert open_ring(close_ring(_square())) == _square()

    def test_distinct_points_keeps_order(self):
        a, b = GeoPoint(1, 1), GeoPoint(2, 2)
        assert distinct_points([a, b, a, b]) == [a, b]

    def test_perimeter_of_square(self):
        assert perimeter(_square()) == pytest.approx(40.0, rel=0.01)

    def test_path_length(self):
        a = GeoPoint(0.0, 0.0)
        b = GeoPoint(_DLAT, 0.0)
        assert path_length([a, b]) == pytest.approx(10.0, rel=0.01)

    def test_envelope(self):
        sw, ne = envelope(_plot())
        assert sw == GeoPoint(51.5072, -0.1281)
        assert ne == GeoPoint(51.5079, -0.1270)


@pytest.mark.unit
class TestShapesOfRings:

    def test_circle_area_close_to_pi_r_squared(self):
        ring = circle_ring(GeoPoint(51.5, -0.1), 20.0)
        assert len(ring) == 64
        assert area(ring) == pytest.approx(math.pi * 400, rel=0.01)

    def test_circle_needs_positive_radius(self):
        with pytest.raises(InvalidGeometryError):
            circle_ring(GeoPoint(0, 0), 0)

    def test_rectangle_from_any_two_corners(self):
        a, b = GeoPoint(1.0, 2.0), GeoPoint(0.0, 3.0)
        ring = rectangle_ring(a, b)
        assert ring[0] == GeoPoint(0.0, 2.0)
        assert ring[2] == GeoPoint(1.0, 3.0)
        assert rectangle_ring(b, a) == ring


@pytest.mark.unit
class TestViewBounds:
    """Overlay placement box for the current view."""

    def test_centered_at_reference_zoom(self):
        center = GeoPoint(51.5072, -0.1276)
        sw, ne = view_bounds(center, 15)
        assert sw.latitude == pytest.approx(51.5022)
        assert sw.longitude == pytest.approx(-0.1326)
        assert ne.latitude == pytest.approx(51.5122)
        assert ne.longitude == pytest.approx(-0.1226)

    def test_span_depends_on_zoom(self):
        center = GeoPoint(51.5072, -0.1276)
        sw15, ne15 = view_bounds(center, 15)
        sw16, ne16 = view_bounds(center, 16)
        sw14, ne14 = view_bounds(center, 14)
        span15 = ne15.latitude - sw15.latitude
        assert ne16.latitude - sw16.latitude == pytest.approx(span15 * 2)
        assert ne14.latitude - sw14.latitude == pytest.approx(span15 / 2)

    def test_custom_base_span(self):
        sw, ne = view_bounds(GeoPoint(0, 0), 15, base_span=0.01)
        assert ne.latitude == pytest.approx(0.01)
        assert sw.longitude == pytest.approx(-0.01)


@pytest.mark.unit
class TestGeoPoint:

    def test_lnglat_order(self):
        p = GeoPoint(51.5, -0.1)
        assert p.to_lnglat() == [-0.1, 51.5]
        assert GeoPoint.from_lnglat([-0.1, 51.5]) == p

    def test_frozen(self):
        p = GeoPoint(1, 2)
        with pytest.raises(AttributeError):
            p.latitude = 3
