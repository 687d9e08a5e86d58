"""Geodesic geometry and postcode lookup."""

from planmap.geo.geometry import (
    GeoPoint,
    area,
    circle_ring,
    close_ring,
    distinct_points,
    perimeter,
    rectangle_ring,
    view_bounds,
)

__all__ = [
    "GeoPoint",
    "area",
    "circle_ring",
    "close_ring",
    "distinct_points",
    "perimeter",
    "rectangle_ring",
    "view_bounds",
]
