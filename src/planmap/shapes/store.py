"""ShapeStore - the collection of drawn shapes.

Insertion-ordered, keyed by shape id. The store is the only writer of its
collection: other components get immutable Shape values and go through
add / update_attributes / update_ring / remove to change anything.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Callable, Iterator, Mapping, Sequence

from loguru import logger

from planmap.geo.geometry import GeoPoint
from planmap.shapes.exporters.geojson import export_geojson
from planmap.shapes.parsers.geojson import parse_geojson
from planmap.shapes.shape import (
    AREAL_KINDS,
    Shape,
    ShapeAttributes,
    build_shape,
    new_shape_id,
    resolve_geometry,
    utcnow,
)


class ShapeStore:
    """Registry of drawn shapes."""

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._shapes: dict[str, Shape] = {}
        self._clock = clock or utcnow

    def __len__(self) -> int:
        return len(self._shapes)

    def __contains__(self, shape_id: object) -> bool:
        return shape_id in self._shapes

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(self, shape: Shape) -> str:
        """Add a shape.

        Returns:
            The shape_id of the added shape.

        Raises:
            ValueError: If a shape with the same id already exists.
        """
        if shape.shape_id in self._shapes:
            raise ValueError(f"Shape already exists: {shape.shape_id}")
        self._shapes[shape.shape_id] = shape
        logger.debug(f"Shape added: {shape.shape_id} ({shape.kind})")
        return shape.shape_id

    def create(
        self,
        kind: str,
        points: Sequence[GeoPoint],
        radius: float | None = None,
    ) -> Shape:
        """Build a shape from draw input and add it.

        Raises:
            InvalidGeometryError: not enough points for the kind.
        """
        shape = build_shape(kind, points, radius=radius, created_at=self._clock())
        self.add(shape)
        return shape

    def update_attributes(
        self,
        shape_id: str,
        attrs: Mapping[str, object] | ShapeAttributes,
    ) -> bool:
        """Merge attribute fields into a shape.

        ``last_edited_at`` is stamped only when at least one field actually
        changes, so re-saving an untouched form leaves it alone.

        Returns:
            True if anything changed.

        Raises:
            KeyError: If the shape_id is not found.
            ValueError: On unknown attribute fields.
        """
        shape = self._get_or_raise(shape_id)
        if isinstance(attrs, ShapeAttributes):
            merged = attrs
        else:
            merged = shape.attributes.merged(attrs)

        changed = shape.attributes.changed_fields(merged)
        if not changed:
            logger.debug(f"Shape {shape_id}: attributes unchanged")
            return False

        self._shapes[shape_id] = replace(
            shape, attributes=merged, last_edited_at=self._clock()
        )
        logger.info(f"Shape {shape_id}: updated {', '.join(changed)}")
        return True

    def update_ring(self, shape_id: str, ring: Sequence[GeoPoint]) -> Shape:
        """Replace a shape's vertices (vertex edit) and recompute its area.

        Any area override is dropped: it described the old geometry. A
        rectangle or circle whose vertices are moved freely becomes a polygon
        and loses its radius.

        Raises:
            KeyError: If the shape_id is not found.
            InvalidGeometryError: If the new ring is degenerate.
        """
        shape = self._get_or_raise(shape_id)
        kind = "polygon" if shape.kind in AREAL_KINDS else shape.kind
        new_ring, computed = resolve_geometry(kind, ring)

        attributes = shape.attributes
        if attributes.area_override is not None:
            logger.info(f"Shape {shape_id}: geometry changed, area override cleared")
            attributes = replace(attributes, area_override=None)

        updated = replace(
            shape,
            kind=kind,
            ring=new_ring,
            computed_area=computed,
            radius=shape.radius if kind == shape.kind else None,
            attributes=attributes,
        )
        self._shapes[shape_id] = updated
        return updated

    def remove(self, shape_id: str) -> bool:
        """Remove a shape. Returns False if it didn't exist."""
        if shape_id in self._shapes:
            del self._shapes[shape_id]
            logger.debug(f"Shape removed: {shape_id}")
            return True
        return False

    def clear(self) -> list[str]:
        """Remove every shape. Returns the removed ids."""
        removed = list(self._shapes)
        self._shapes.clear()
        return removed

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, shape_id: str) -> Shape | None:
        return self._shapes.get(shape_id)

    def _get_or_raise(self, shape_id: str) -> Shape:
        shape = self._shapes.get(shape_id)
        if shape is None:
            raise KeyError(f"Shape not found: {shape_id}")
        return shape

    def iterate(self) -> Iterator[Shape]:
        """Yield shapes in insertion order over a snapshot of the collection."""
        for shape in tuple(self._shapes.values()):
            yield shape

    def has_annotated(self) -> bool:
        """True if any shape has a name or a type tag."""
        return any(shape.attributes.annotated for shape in self.iterate())

    # ------------------------------------------------------------------
    # Interchange
    # ------------------------------------------------------------------

    def export_all(self) -> dict:
        """All shapes as a GeoJSON FeatureCollection dict."""
        return export_geojson(self.iterate())

    def import_document(self, document: str | dict) -> list[Shape]:
        """Add every shape from an exported GeoJSON document.

        Ids already present in the store are replaced with fresh ones.

        Returns:
            The shapes added.
        """
        added = []
        for shape in parse_geojson(document):
            if shape.shape_id in self._shapes:
                shape = replace(shape, shape_id=new_shape_id())
            self.add(shape)
            added.append(shape)
        logger.info(f"Imported {len(added)} shapes")
        return added
