"""End-to-end tests for EditorSession: the page-level editing flows."""
from __future__ import annotations

import asyncio
import json

import pytest

from planmap.attributes import FormFlow
from planmap.config import settings
from planmap.geo.geometry import GeoPoint
from planmap.modes import EditorMode
from planmap.overlay import TransformState
from planmap.plugins.manager import CapabilityManager
from planmap.session import EditorSession

# 10 m x 10 m at the equator
EQUATOR_SQUARE = [
    GeoPoint(0.0, 0.0),
    GeoPoint(0.0, 0.0000898315),
    GeoPoint(0.0000904372, 0.0000898315),
    GeoPoint(0.0000904372, 0.0),
]

LONDON_SQUARE = [
    GeoPoint(51.5072, -0.1276),
    GeoPoint(51.5072, -0.1274),
    GeoPoint(51.5074, -0.1274),
    GeoPoint(51.5074, -0.1276),
]


def _run(coro):
    return asyncio.run(coro)


def _drain(queue):
    out = []
    while not queue.empty():
        out.append(queue.get_nowait())
    return out


def _annotated(session, points=LONDON_SQUARE, name="Kitchen"):
    session.mode = "annotate"
    shape = session.draw_shape("polygon", points)
    session.attributes.set_field("name", name)
    session.attributes.set_field("type_tag", "room")
    return session.attributes.save()


@pytest.mark.unit
class TestPlaceImage:

    def test_image_centered_on_postcode_view(self, session):
        overlay = _run(session.set_image("plan.png"))
        sw, ne = overlay.bounding_box
        assert (sw.latitude + ne.latitude) / 2 == pytest.approx(51.5072)
        assert (sw.longitude + ne.longitude) / 2 == pytest.approx(-0.1276)
        assert ne.latitude - sw.latitude == pytest.approx(0.01)
        assert overlay.transform_state == TransformState.SELECTED_EDITABLE

    def test_image_before_ready_is_queued(self, geocoder_factory):
        s = EditorSession(geocoder=geocoder_factory(None))
        assert _run(s.set_image("early.png")) is None
        assert s.overlay is None
        assert _run(s.mount("map"))
        assert s.overlay is not None
        assert s.overlay.image_url == "early.png"
        s.unmount()

    def test_missing_toolbar_degrades_to_static(self, monkeypatch, geocoder_factory):
        monkeypatch.setattr(settings, "capabilities", [
            "planmap.plugins.builtin.distortable:DistortableImageCapability",
            "planmap.plugins.builtin.draw:DrawToolsCapability",
        ])
        s = EditorSession(geocoder=geocoder_factory(None), capabilities=CapabilityManager())
        _run(s.mount("map"))
        overlay = _run(s.set_image("plan.png"))
        assert overlay.static
        assert overlay.transform_state == TransformState.UNSELECTED
        assert not s.transform_overlay("move", d_lat=0.001, d_lng=0.0)
        # drawing still works
        s.mode = "annotate"
        assert s.draw_shape("polygon", LONDON_SQUARE) is not None
        s.unmount()

    def test_transform_through_session(self, session):
        overlay = _run(session.set_image("plan.png"))
        before = overlay.corners
        assert session.transform_overlay("scale", factor=2.0)
        assert overlay.corners != before


@pytest.mark.unit
class TestDrawAndAnnotate:

    def test_equator_square_area(self, session):
        session.mode = "annotate"
        shape = session.draw_shape("polygon", EQUATOR_SQUARE)
        assert shape.computed_area == pytest.approx(100.0, rel=1e-3)
        assert session.attributes.pending.target_shape_id == shape.shape_id
        assert session.attributes.pending.flow == FormFlow.CREATE
        assert session.host.surface.has_layer(shape.shape_id)

    def test_drawing_rejected_in_transform_mode(self, session):
        assert session.mode == EditorMode.TRANSFORM
        assert not session.begin_drawing("polygon")
        assert session.draw_shape("polygon", LONDON_SQUARE) is None
        assert len(session.store) == 0

    def test_click_by_click_polygon(self, session):
        session.mode = "annotate"
        assert session.begin_drawing("polygon")
        for point in LONDON_SQUARE:
            assert session.add_vertex(point) is True
        shape = session.finish_drawing()
        assert shape.kind == "polygon"
        assert len(session.store) == 1

    def test_degenerate_polygon_keeps_drawing(self, session):
        session.mode = "annotate"
        session.begin_drawing("polygon")
        session.add_vertex(LONDON_SQUARE[0])
        session.add_vertex(LONDON_SQUARE[0])
        assert session.finish_drawing() is None
        assert session.draw_control.drawing
        assert session.host.surface.notices[-1].level == "warning"
        assert len(session.store) == 0

    def test_blank_name_save_rejected(self, session):
        session.mode = "annotate"
        shape = session.draw_shape("polygon", LONDON_SQUARE)
        session.attributes.set_field("name", "")
        assert session.attributes.save() is None
        assert "name" in session.attributes.pending.errors
        assert not session.store.get(shape.shape_id).attributes.annotated

    def test_has_annotated_shapes_gate(self, session):
        session.mode = "annotate"
        session.draw_shape("polygon", LONDON_SQUARE)
        assert not session.has_annotated_shapes()
        session.attributes.set_field("name", "Kitchen")
        session.attributes.save()
        assert session.has_annotated_shapes()

    def test_saved_shape_restyled(self, session):
        saved = _annotated(session)
        layer = session.host.surface.get_layer(saved.shape_id)
        assert layer.shape.attributes.name == "Kitchen"
        assert layer.style["color"] != "#ff4444"

    def test_request_edit_opens_form(self, session):
        saved = _annotated(session)
        session.request_edit(saved.shape_id)
        assert session.attributes.pending.flow == FormFlow.EDIT
        assert session.attributes.pending.form_values["name"] == "Kitchen"

    def test_request_edit_unknown(self, session):
        with pytest.raises(KeyError):
            session.request_edit("shape-missing")

    def test_vertex_edit_recomputes_area_and_drops_override(self, session):
        session.mode = "annotate"
        shape = session.draw_shape("polygon", LONDON_SQUARE)
        session.attributes.set_field("name", "Hall")
        session.attributes.set_field("area", "999")
        session.attributes.save()
        bigger = LONDON_SQUARE[:2] + [GeoPoint(51.5076, -0.1274), GeoPoint(51.5076, -0.1276)]
        edited = session.edit_vertices(shape.shape_id, bigger)
        assert edited.computed_area > shape.computed_area
        assert edited.attributes.area_override is None

    def test_vertex_edit_requires_annotate_mode(self, session):
        session.mode = "annotate"
        shape = session.draw_shape("polygon", LONDON_SQUARE)
        session.mode = "transform"
        assert session.edit_vertices(shape.shape_id, LONDON_SQUARE[::-1]) is None

    def test_delete_shape(self, session):
        session.mode = "annotate"
        shape = session.draw_shape("polygon", LONDON_SQUARE)
        assert session.delete_shape(shape.shape_id)
        assert len(session.store) == 0
        assert not session.host.surface.has_layer(shape.shape_id)
        assert session.attributes.pending is None
        with pytest.raises(KeyError):
            session.delete_shape(shape.shape_id)

    def test_delete_rejected_in_transform_mode(self, session):
        session.mode = "annotate"
        shape = session.draw_shape("polygon", LONDON_SQUARE)
        session.mode = "transform"
        assert not session.delete_shape(shape.shape_id)
        assert shape.shape_id in session.store

    def test_clear_shapes(self, session):
        session.mode = "annotate"
        session.draw_shape("polygon", LONDON_SQUARE)
        session.draw_shape("marker", [LONDON_SQUARE[0]])
        events = session.event_bus.subscribe()
        removed = session.clear_shapes()
        assert len(removed) == 2
        assert len(session.store) == 0
        assert [m["type"] for m in _drain(events)] == ["shape.deleted", "shape.deleted"]

    def test_overlay_survives_annotating(self, session):
        overlay = _run(session.set_image("plan.png"))
        corners = overlay.corners
        session.mode = "annotate"
        assert not session.overlays.accepts_input
        session.draw_shape("polygon", LONDON_SQUARE)
        session.mode = "transform"
        assert session.overlay is overlay
        assert overlay.corners == corners
        assert overlay.transform_state == TransformState.SELECTED_EDITABLE


@pytest.mark.unit
class TestExport:

    def test_export_publishes_document(self, session):
        _annotated(session)
        events = session.event_bus.subscribe()
        session.export_annotations()
        msg = [m for m in _drain(events) if m["type"] == "annotations.exported"][0]
        assert msg["data"]["count"] == 1
        assert msg["data"]["path"] is None
        assert msg["data"]["document"] == session.last_export
        props = session.last_export["features"][0]["properties"]
        assert props["name"] == "Kitchen"

    def test_export_writes_file(self, session, monkeypatch, tmp_path):
        monkeypatch.setattr(settings, "export_dir", tmp_path)
        _annotated(session)
        events = session.event_bus.subscribe()
        session.export_annotations()
        msg = [m for m in _drain(events) if m["type"] == "annotations.exported"][0]
        files = list(tmp_path.glob("*.geojson"))
        assert len(files) == 1
        assert msg["data"]["path"] == str(files[0])
        assert json.loads(files[0].read_text())["type"] == "FeatureCollection"

    def test_import_renders_shapes(self, session):
        _annotated(session)
        session.export_annotations()
        document = session.last_export
        session.clear_shapes()
        added = session.import_annotations(document)
        assert len(added) == 1
        assert session.host.surface.has_layer(added[0].shape_id)
        assert session.has_annotated_shapes()


@pytest.mark.unit
class TestPlacements:

    def test_save_requires_image(self, session):
        assert session.save_placement("Ground") is None
        assert session.host.surface.notices[-1].level == "warning"

    def test_unknown_floor(self, session):
        _run(session.set_image("plan.png"))
        with pytest.raises(ValueError):
            session.save_placement("Ground", floor_level="attic")

    def test_save_and_load_restores_corners_and_shapes(self, session):
        overlay = _run(session.set_image("plan.png"))
        session.transform_overlay("move", d_lat=0.001, d_lng=0.002)
        corners = overlay.corners
        saved = _annotated(session)
        snapshot = session.save_placement("Ground", floor_level="ground-floor")
        assert snapshot.to_dict()["shape_count"] == 1

        session.mode = "transform"
        _run(session.set_image("other.png"))
        session.clear_shapes()

        assert _run(session.load_placement(snapshot.placement_id))
        assert session.overlay.image_url == "plan.png"
        assert session.overlay.corners == corners
        assert [s.shape_id for s in session.store.iterate()] == [saved.shape_id]

    def test_list_newest_first(self, session):
        _run(session.set_image("plan.png"))
        first = session.save_placement("One")
        second = session.save_placement("Two", floor_level="first-floor")
        ids = [p.placement_id for p in session.list_placements()]
        assert set(ids) == {first.placement_id, second.placement_id}
        assert session.list_placements()[0].saved_at >= session.list_placements()[1].saved_at

    def test_load_unknown(self, session):
        with pytest.raises(KeyError):
            _run(session.load_placement("placement-missing"))


@pytest.mark.unit
class TestLifecycle:

    def test_state_snapshot(self, session):
        state = session.state()
        assert state["ready"] is True
        assert state["mode"] == "transform"
        assert state["zoom"] == 15
        assert state["base_layer"] == "road"
        assert state["draw"]["attached"] is False

    def test_mode_reflected_in_cursor(self, session):
        session.mode = "annotate"
        assert session.state()["cursor"] == "crosshair"
        session.set_mode("transform")
        assert session.state()["cursor"] == ""

    def test_unmount(self, geocoder_factory):
        s = EditorSession(geocoder=geocoder_factory(None))
        _run(s.mount("map"))
        _run(s.set_image("plan.png"))
        surface = s.host.surface
        s.unmount()
        assert surface.destroyed
        assert s.overlay is None
        assert s.state()["ready"] is False

    def test_remount_keeps_distortable_overlay(self, geocoder_factory):
        s = EditorSession(geocoder=geocoder_factory(None))
        _run(s.mount("map"))
        s.unmount()
        assert _run(s.mount("map"))
        overlay = _run(s.set_image("plan.png"))
        assert overlay is not None
        assert not overlay.static
