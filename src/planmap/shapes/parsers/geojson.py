"""Parse a GeoJSON document (as written by the exporter) back into shapes.

Handles FeatureCollection and single Feature documents with Point,
LineString and Polygon geometries. Areas are re-derived from the geometry
rather than trusted from ``computedArea``. Features that cannot be turned
into a valid shape are skipped with a warning.
"""

from __future__ import annotations

import json
from dataclasses import replace
from datetime import datetime
from typing import Any

from loguru import logger

from planmap.errors import InvalidGeometryError
from planmap.geo.geometry import GeoPoint
from planmap.shapes.shape import (
    AREAL_KINDS,
    SHAPE_KINDS,
    Shape,
    ShapeAttributes,
    new_shape_id,
    resolve_geometry,
    utcnow,
)

_DEFAULT_KIND = {"Polygon": "polygon", "LineString": "polyline", "Point": "marker"}


def parse_geojson(document: str | dict) -> list[Shape]:
    """Parse a GeoJSON string or dict into a list of Shapes.

    Returns an empty list on parse errors.
    """
    if isinstance(document, str):
        try:
            data = json.loads(document)
        except (json.JSONDecodeError, TypeError):
            logger.warning("GeoJSON import: document is not valid JSON")
            return []
    else:
        data = document

    if not isinstance(data, dict):
        return []

    if data.get("type") == "FeatureCollection":
        raw_features = data.get("features") or []
    elif data.get("type") == "Feature":
        raw_features = [data]
    else:
        return []

    shapes: list[Shape] = []
    for idx, raw in enumerate(raw_features):
        shape = _parse_feature(raw, idx)
        if shape is not None:
            shapes.append(shape)
    return shapes


def _parse_time(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _points(geom_type: str, coordinates: Any) -> list[GeoPoint]:
    if geom_type == "Point":
        return [GeoPoint.from_lnglat(coordinates)]
    if geom_type == "LineString":
        return [GeoPoint.from_lnglat(c) for c in coordinates]
    # Polygon: outer ring only
    return [GeoPoint.from_lnglat(c) for c in coordinates[0]]


def _optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _parse_feature(raw: Any, idx: int) -> Shape | None:
    """Parse a single GeoJSON Feature dict into a Shape."""
    if not isinstance(raw, dict):
        return None

    geometry = raw.get("geometry")
    if not isinstance(geometry, dict):
        return None

    geom_type = geometry.get("type", "")
    coordinates = geometry.get("coordinates")
    if geom_type not in _DEFAULT_KIND or coordinates is None:
        return None

    properties = raw.get("properties") or {}
    if not isinstance(properties, dict):
        properties = {}

    kind = properties.get("kind") or _DEFAULT_KIND[geom_type]
    if kind not in SHAPE_KINDS or (kind in AREAL_KINDS) != (geom_type == "Polygon"):
        kind = _DEFAULT_KIND[geom_type]

    try:
        points = _points(geom_type, coordinates)
        # Circles arrive already polygonised; keep the ring as drawn
        ring, computed = resolve_geometry(
            "polygon" if kind in AREAL_KINDS else kind, points
        )
    except (InvalidGeometryError, IndexError, TypeError, ValueError) as e:
        logger.warning(f"GeoJSON import: skipping feature {idx}: {e}")
        return None

    override = properties.get("areaOverride")
    try:
        override = float(override) if override is not None else None
    except (TypeError, ValueError):
        override = None

    attributes = ShapeAttributes(
        name=str(properties.get("name") or ""),
        type_tag=_optional_str(properties.get("typeTag")),
        sub_type_tag=_optional_str(properties.get("subTypeTag")),
        area_override=override,
    )

    feature_id = raw.get("id")
    shape = Shape(
        shape_id=str(feature_id) if feature_id is not None else new_shape_id(),
        kind=kind,
        ring=ring,
        attributes=attributes,
        computed_area=computed,
        created_at=_parse_time(properties.get("createdAt")) or utcnow(),
        last_edited_at=_parse_time(properties.get("lastEditedAt")),
    )
    if kind == "circle":
        radius = properties.get("radius")
        if isinstance(radius, (int, float)) and radius > 0:
            shape = replace(shape, radius=float(radius))
    return shape
