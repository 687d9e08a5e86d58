"""Export shapes to a GeoJSON FeatureCollection dict (RFC 7946).

Coordinates are [lng, lat]. Areal shapes become Polygons with a closed
ring, polylines LineStrings, markers Points. Feature properties carry the
attributes in camelCase plus the computed area rounded to centimetres².
"""

from __future__ import annotations

from typing import Iterable

from planmap.geo.geometry import close_ring
from planmap.shapes.shape import Shape


def export_geojson(shapes: Iterable[Shape]) -> dict:
    """Export shapes to a GeoJSON FeatureCollection dict."""
    return {
        "type": "FeatureCollection",
        "features": [shape_to_feature(shape) for shape in shapes],
    }


def _geometry(shape: Shape) -> dict:
    if shape.geometry_type == "Polygon":
        coordinates: list = [[p.to_lnglat() for p in close_ring(shape.ring)]]
    elif shape.geometry_type == "LineString":
        coordinates = [p.to_lnglat() for p in shape.ring]
    else:
        coordinates = shape.ring[0].to_lnglat()
    return {"type": shape.geometry_type, "coordinates": coordinates}


def shape_to_feature(shape: Shape) -> dict:
    """Convert a Shape to a GeoJSON Feature dict."""
    attrs = shape.attributes
    properties: dict = {
        "name": attrs.name,
        "typeTag": attrs.type_tag,
        "subTypeTag": attrs.sub_type_tag,
        "computedArea": (
            round(shape.computed_area, 2) if shape.computed_area is not None else None
        ),
        "createdAt": shape.created_at.isoformat(),
        "kind": shape.kind,
    }
    if shape.last_edited_at is not None:
        properties["lastEditedAt"] = shape.last_edited_at.isoformat()
    if attrs.area_override is not None:
        properties["areaOverride"] = attrs.area_override
    if shape.radius is not None:
        properties["radius"] = shape.radius

    return {
        "type": "Feature",
        "id": shape.shape_id,
        "geometry": _geometry(shape),
        "properties": properties,
    }
