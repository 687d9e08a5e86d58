"""Shape and ShapeAttributes dataclasses for drawn annotations.

Shapes are immutable values; the ShapeStore replaces them wholesale when
attributes or vertices change, so a reference handed out by the store can
never be used to mutate it behind its back.

Rings are stored open (no repeated closing point) as GeoPoint tuples. The
GeoJSON exporter closes them.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from typing import ClassVar, Mapping, Sequence

from planmap.errors import InvalidGeometryError
from planmap.geo.geometry import (
    GeoPoint,
    area,
    circle_ring,
    distinct_points,
    open_ring,
    rectangle_ring,
)

SHAPE_KINDS = ("polygon", "rectangle", "circle", "polyline", "marker")
AREAL_KINDS = ("polygon", "rectangle", "circle")

GEOMETRY_TYPES = {
    "polygon": "Polygon",
    "rectangle": "Polygon",
    "circle": "Polygon",
    "polyline": "LineString",
    "marker": "Point",
}


def new_shape_id() -> str:
    return f"shape-{uuid.uuid4().hex[:8]}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ShapeAttributes:
    """User-entered attributes of a shape.

    Attributes:
        name: Display name ("Kitchen"). Empty until the user names it.
        type_tag: Category from the vocabulary ("room"), or None.
        sub_type_tag: Sub-category valid for type_tag, or None.
        area_override: User-supplied display area in m², or None.
    """

    name: str = ""
    type_tag: str | None = None
    sub_type_tag: str | None = None
    area_override: float | None = None

    FIELDS: ClassVar[tuple[str, ...]] = ("name", "type_tag", "sub_type_tag", "area_override")

    def merged(self, updates: Mapping[str, object]) -> ShapeAttributes:
        """Return a copy with the given fields replaced.

        Raises:
            ValueError: on an unknown field name.
        """
        unknown = set(updates) - set(self.FIELDS)
        if unknown:
            raise ValueError(f"Unknown attribute fields: {sorted(unknown)}")
        return replace(self, **dict(updates))

    def changed_fields(self, other: ShapeAttributes) -> list[str]:
        return [f.name for f in fields(self) if getattr(self, f.name) != getattr(other, f.name)]

    @property
    def annotated(self) -> bool:
        return bool(self.name.strip()) or bool(self.type_tag)


@dataclass(frozen=True)
class Shape:
    """A drawn annotation: geometry + attributes + audit metadata.

    Attributes:
        shape_id: Stable identifier, unique within a store.
        kind: One of SHAPE_KINDS.
        ring: Boundary (open) for areal kinds, path for polyline,
            single point for marker.
        attributes: User-entered attributes.
        computed_area: Geodesic area in m² (None for polyline/marker).
        radius: Circle radius in metres (circle only).
        created_at: Creation time (UTC).
        last_edited_at: Time of the last attribute change, or None.
    """

    shape_id: str
    kind: str
    ring: tuple[GeoPoint, ...]
    attributes: ShapeAttributes = field(default_factory=ShapeAttributes)
    computed_area: float | None = None
    radius: float | None = None
    created_at: datetime = field(default_factory=utcnow)
    last_edited_at: datetime | None = None

    @property
    def geometry_type(self) -> str:
        return GEOMETRY_TYPES[self.kind]

    @property
    def areal(self) -> bool:
        return self.kind in AREAL_KINDS

    @property
    def display_area(self) -> float | None:
        """Area shown to the user: the override if set, else the computed one."""
        if self.attributes.area_override is not None:
            return self.attributes.area_override
        return self.computed_area


def resolve_geometry(
    kind: str,
    points: Sequence[GeoPoint],
    radius: float | None = None,
) -> tuple[tuple[GeoPoint, ...], float | None]:
    """Turn raw draw input into (ring, computed_area) for a shape kind.

    Raises:
        ValueError: unknown kind.
        InvalidGeometryError: not enough points for the kind.
    """
    if kind not in SHAPE_KINDS:
        raise ValueError(f"Unknown shape kind: {kind}")
    points = list(points)

    if kind == "circle":
        if not points:
            raise InvalidGeometryError("A circle needs a center point")
        if radius is None or radius <= 0:
            raise InvalidGeometryError(f"A circle needs a positive radius (got {radius})")
        ring = circle_ring(points[0], radius)
        return tuple(ring), area(ring)

    if kind == "rectangle" and len(points) == 2:
        points = rectangle_ring(points[0], points[1])

    if kind in ("polygon", "rectangle"):
        ring = open_ring(points)
        return tuple(ring), area(ring)

    if kind == "polyline":
        if len(distinct_points(points)) < 2:
            raise InvalidGeometryError("A line needs at least 2 distinct points")
        return tuple(points), None

    # marker
    if not points:
        raise InvalidGeometryError("A marker needs a point")
    return (points[0],), None


def build_shape(
    kind: str,
    points: Sequence[GeoPoint],
    radius: float | None = None,
    shape_id: str | None = None,
    created_at: datetime | None = None,
    attributes: ShapeAttributes | None = None,
) -> Shape:
    """Create a Shape from draw input, computing its ring and area."""
    ring, computed = resolve_geometry(kind, points, radius)
    return Shape(
        shape_id=shape_id or new_shape_id(),
        kind=kind,
        ring=ring,
        attributes=attributes or ShapeAttributes(),
        computed_area=computed,
        radius=radius if kind == "circle" else None,
        created_at=created_at or utcnow(),
    )
