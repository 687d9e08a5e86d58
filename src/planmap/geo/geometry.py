"""Geometry service - geodesic measurements on the WGS84 ellipsoid.

All functions are pure. Rings are sequences of GeoPoint; they may be open
or closed (last point repeating the first), both are accepted.

Areas are computed with GeographicLib (Karney's algorithm) rather than a
planar shoelace over degrees, so a 10 m room comes out at 100 m² wherever
it sits on the globe.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from geographiclib.geodesic import Geodesic

from planmap.errors import InvalidGeometryError

_GEOD = Geodesic.WGS84


@dataclass(frozen=True)
class GeoPoint:
    """A latitude/longitude pair in decimal degrees."""

    latitude: float
    longitude: float

    def to_lnglat(self) -> list[float]:
        """GeoJSON position ([lng, lat])."""
        return [self.longitude, self.latitude]

    @classmethod
    def from_lnglat(cls, position: Sequence[float]) -> GeoPoint:
        return cls(latitude=float(position[1]), longitude=float(position[0]))


def distinct_points(ring: Sequence[GeoPoint]) -> list[GeoPoint]:
    """Unique points of a ring in first-seen order."""
    seen: set[GeoPoint] = set()
    result: list[GeoPoint] = []
    for point in ring:
        if point not in seen:
            seen.add(point)
            result.append(point)
    return result


def close_ring(ring: Sequence[GeoPoint]) -> list[GeoPoint]:
    """Return the ring with the first point repeated at the end if needed."""
    points = list(ring)
    if points and points[0] != points[-1]:
        points.append(points[0])
    return points


def open_ring(ring: Sequence[GeoPoint]) -> list[GeoPoint]:
    """Return the ring without a trailing closing point."""
    points = list(ring)
    if len(points) > 1 and points[0] == points[-1]:
        points.pop()
    return points


def _require_polygon(ring: Sequence[GeoPoint]) -> list[GeoPoint]:
    if len(distinct_points(ring)) < 3:
        raise InvalidGeometryError(
            f"A ring needs at least 3 distinct points (got {len(distinct_points(ring))})"
        )
    return open_ring(ring)


def area(ring: Sequence[GeoPoint]) -> float:
    """Geodesic area of a ring in square metres.

    Raises:
        InvalidGeometryError: fewer than 3 distinct points.
    """
    points = _require_polygon(ring)
    polygon = _GEOD.Polygon()
    for point in points:
        polygon.AddPoint(point.latitude, point.longitude)
    _, _, signed_area = polygon.Compute(False, True)
    return abs(signed_area)


def perimeter(ring: Sequence[GeoPoint]) -> float:
    """Geodesic perimeter of a closed ring in metres."""
    points = _require_polygon(ring)
    polygon = _GEOD.Polygon()
    for point in points:
        polygon.AddPoint(point.latitude, point.longitude)
    _, length, _ = polygon.Compute(False, True)
    return length


def path_length(points: Sequence[GeoPoint]) -> float:
    """Geodesic length of an open path in metres."""
    total = 0.0
    for a, b in zip(points, points[1:]):
        total += _GEOD.Inverse(a.latitude, a.longitude, b.latitude, b.longitude)["s12"]
    return total


def circle_ring(center: GeoPoint, radius_m: float, segments: int = 64) -> list[GeoPoint]:
    """Approximate a circle by a ring of points at geodesic distance radius_m."""
    if radius_m <= 0:
        raise InvalidGeometryError(f"Circle radius must be positive (got {radius_m})")
    ring = []
    for i in range(segments):
        azimuth = 360.0 * i / segments
        result = _GEOD.Direct(center.latitude, center.longitude, azimuth, radius_m)
        ring.append(GeoPoint(result["lat2"], result["lon2"]))
    return ring


def rectangle_ring(corner_a: GeoPoint, corner_b: GeoPoint) -> list[GeoPoint]:
    """Axis-aligned rectangle from two opposite corners, counter-clockwise from SW."""
    south = min(corner_a.latitude, corner_b.latitude)
    north = max(corner_a.latitude, corner_b.latitude)
    west = min(corner_a.longitude, corner_b.longitude)
    east = max(corner_a.longitude, corner_b.longitude)
    return [
        GeoPoint(south, west),
        GeoPoint(south, east),
        GeoPoint(north, east),
        GeoPoint(north, west),
    ]


def view_bounds(
    center: GeoPoint,
    zoom: float,
    base_span: float = 0.005,
    reference_zoom: int = 15,
) -> tuple[GeoPoint, GeoPoint]:
    """Box centered on the view, sized so an image reads well at this zoom.

    The half-span is base_span at reference_zoom and doubles with each
    zoom level above it.

    Returns:
        (south_west, north_east)
    """
    offset = base_span / (2 ** (reference_zoom - zoom))
    return (
        GeoPoint(center.latitude - offset, center.longitude - offset),
        GeoPoint(center.latitude + offset, center.longitude + offset),
    )


def envelope(points: Sequence[GeoPoint]) -> tuple[GeoPoint, GeoPoint]:
    """(south_west, north_east) of a set of points."""
    lats = [p.latitude for p in points]
    lngs = [p.longitude for p in points]
    return GeoPoint(min(lats), min(lngs)), GeoPoint(max(lats), max(lngs))


def centroid(points: Sequence[GeoPoint]) -> GeoPoint:
    """Arithmetic mean of the points (adequate at building scale)."""
    n = len(points)
    return GeoPoint(
        sum(p.latitude for p in points) / n,
        sum(p.longitude for p in points) / n,
    )
