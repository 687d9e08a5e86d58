"""Unit tests for Shape construction and the ShapeStore."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from planmap.errors import InvalidGeometryError
from planmap.geo.geometry import GeoPoint, area
from planmap.shapes import ShapeAttributes, ShapeStore, build_shape

SQUARE = [
    GeoPoint(51.5072, -0.1276),
    GeoPoint(51.5072, -0.1274),
    GeoPoint(51.5074, -0.1274),
    GeoPoint(51.5074, -0.1276),
]


class _Clock:
    """Deterministic clock advancing one minute per call."""

    def __init__(self):
        self.now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        self.now += timedelta(minutes=1)
        return self.now


@pytest.fixture
def store():
    return ShapeStore(clock=_Clock())


@pytest.mark.unit
class TestBuildShape:

    def test_polygon_area_computed(self):
        shape = build_shape("polygon", SQUARE)
        assert shape.computed_area == pytest.approx(area(SQUARE))
        assert shape.geometry_type == "Polygon"
        assert shape.attributes == ShapeAttributes()
        assert shape.last_edited_at is None

    def test_polygon_ring_stored_open(self):
        shape = build_shape("polygon", SQUARE + [SQUARE[0]])
        assert len(shape.ring) == 4

    def test_rectangle_from_two_corners(self):
        shape = build_shape("rectangle", [SQUARE[0], SQUARE[2]])
        assert len(shape.ring) == 4
        assert shape.computed_area == pytest.approx(area(SQUARE))

    def test_circle(self):
        shape = build_shape("circle", [SQUARE[0]], radius=5.0)
        assert shape.radius == 5.0
        assert shape.computed_area == pytest.approx(78.5, rel=0.01)

    def test_circle_without_radius(self):
        with pytest.raises(InvalidGeometryError):
            build_shape("circle", [SQUARE[0]])

    def test_polyline_has_no_area(self):
        shape = build_shape("polyline", SQUARE[:2])
        assert shape.computed_area is None
        assert shape.geometry_type == "LineString"

    def test_marker(self):
        shape = build_shape("marker", [SQUARE[0]])
        assert shape.ring == (SQUARE[0],)
        assert shape.geometry_type == "Point"

    def test_degenerate_polygon(self):
        with pytest.raises(InvalidGeometryError):
            build_shape("polygon", SQUARE[:2])

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            build_shape("hexagon", SQUARE)

    def test_display_area_prefers_override(self):
        shape = build_shape(
            "polygon", SQUARE, attributes=ShapeAttributes(name="Hall", area_override=50.0)
        )
        assert shape.display_area == 50.0
        assert shape.computed_area != 50.0


@pytest.mark.unit
class TestShapeStore:

    def test_create_and_get(self, store):
        shape = store.create("polygon", SQUARE)
        assert store.get(shape.shape_id) == shape
        assert shape.shape_id in store
        assert len(store) == 1

    def test_duplicate_id_rejected(self, store):
        shape = store.create("polygon", SQUARE)
        with pytest.raises(ValueError):
            store.add(shape)

    def test_iterate_insertion_order(self, store):
        ids = [store.create("marker", [p]).shape_id for p in SQUARE]
        assert [s.shape_id for s in store.iterate()] == ids

    def test_iterate_is_snapshot(self, store):
        store.create("marker", [SQUARE[0]])
        store.create("marker", [SQUARE[1]])
        seen = []
        for shape in store.iterate():
            seen.append(shape.shape_id)
            store.remove(shape.shape_id)
        assert len(seen) == 2
        assert len(store) == 0

    def test_remove(self, store):
        shape = store.create("polygon", SQUARE)
        assert store.remove(shape.shape_id)
        assert not store.remove(shape.shape_id)

    def test_clear(self, store):
        a = store.create("polygon", SQUARE)
        b = store.create("marker", [SQUARE[0]])
        assert store.clear() == [a.shape_id, b.shape_id]
        assert len(store) == 0


@pytest.mark.unit
class TestUpdateAttributes:

    def test_change_stamps_last_edited(self, store):
        shape = store.create("polygon", SQUARE)
        assert store.update_attributes(shape.shape_id, {"name": "Kitchen"})
        updated = store.get(shape.shape_id)
        assert updated.attributes.name == "Kitchen"
        assert updated.last_edited_at is not None
        assert updated.created_at == shape.created_at

    def test_identical_values_do_not_stamp(self, store):
        shape = store.create("polygon", SQUARE)
        for _ in range(3):
            assert not store.update_attributes(
                shape.shape_id, {"name": "", "type_tag": None, "sub_type_tag": None}
            )
        assert store.get(shape.shape_id).last_edited_at is None

    def test_identical_values_keep_previous_stamp(self, store):
        shape = store.create("polygon", SQUARE)
        store.update_attributes(shape.shape_id, {"name": "Kitchen"})
        stamp = store.get(shape.shape_id).last_edited_at
        store.update_attributes(shape.shape_id, {"name": "Kitchen"})
        assert store.get(shape.shape_id).last_edited_at == stamp

    def test_merge_is_field_wise(self, store):
        shape = store.create("polygon", SQUARE)
        store.update_attributes(shape.shape_id, {"name": "Kitchen", "type_tag": "room"})
        store.update_attributes(shape.shape_id, {"sub_type_tag": "utility"})
        attrs = store.get(shape.shape_id).attributes
        assert (attrs.name, attrs.type_tag, attrs.sub_type_tag) == ("Kitchen", "room", "utility")

    def test_unknown_field(self, store):
        shape = store.create("polygon", SQUARE)
        with pytest.raises(ValueError):
            store.update_attributes(shape.shape_id, {"colour": "red"})

    def test_unknown_shape(self, store):
        with pytest.raises(KeyError):
            store.update_attributes("shape-missing", {"name": "x"})

    def test_computed_area_untouched_by_override(self, store):
        shape = store.create("polygon", SQUARE)
        store.update_attributes(shape.shape_id, {"area_override": 10.0})
        assert store.get(shape.shape_id).computed_area == shape.computed_area

    def test_has_annotated(self, store):
        shape = store.create("polygon", SQUARE)
        assert not store.has_annotated()
        store.update_attributes(shape.shape_id, {"type_tag": "room"})
        assert store.has_annotated()

    def test_whitespace_name_is_not_annotated(self, store):
        shape = store.create("polygon", SQUARE)
        store.update_attributes(shape.shape_id, {"name": "   "})
        assert not store.has_annotated()


@pytest.mark.unit
class TestUpdateRing:

    def test_recomputes_area(self, store):
        shape = store.create("polygon", SQUARE)
        bigger = [SQUARE[0], SQUARE[1], GeoPoint(51.5076, -0.1274), GeoPoint(51.5076, -0.1276)]
        updated = store.update_ring(shape.shape_id, bigger)
        assert updated.computed_area == pytest.approx(2 * shape.computed_area, rel=0.01)

    def test_clears_area_override(self, store):
        shape = store.create("polygon", SQUARE)
        store.update_attributes(shape.shape_id, {"name": "Hall", "area_override": 99.0})
        updated = store.update_ring(shape.shape_id, SQUARE[::-1])
        assert updated.attributes.area_override is None
        assert updated.attributes.name == "Hall"

    def test_circle_edit_becomes_polygon_without_radius(self, store):
        circle = store.create("circle", [SQUARE[0]], radius=5.0)
        updated = store.update_ring(circle.shape_id, SQUARE)
        assert updated.kind == "polygon"
        assert updated.radius is None
        props = store.export_all()["features"][0]["properties"]
        assert props["kind"] == "polygon"
        assert "radius" not in props

    def test_polyline_edit_stays_polyline(self, store):
        line = store.create("polyline", SQUARE[:2])
        updated = store.update_ring(line.shape_id, SQUARE[:3])
        assert updated.kind == "polyline"
        assert updated.computed_area is None

    def test_degenerate_ring_rejected(self, store):
        shape = store.create("polygon", SQUARE)
        with pytest.raises(InvalidGeometryError):
            store.update_ring(shape.shape_id, SQUARE[:2])
        assert store.get(shape.shape_id) == shape

    def test_unknown_shape(self, store):
        with pytest.raises(KeyError):
            store.update_ring("shape-missing", SQUARE)
