"""EditorSession - one map editor: host, overlay, shapes, form and mode.

The session wires the components together over a private EventBus and is
what the host page (or the HTTP API) talks to:

    export_annotations()     publish / write the GeoJSON document
    has_annotated_shapes()   gate for the export button
    mode                     controlled by the page

Events published on ``session.event_bus``:
    map.ready, shape.created, shape.edited, shape.deleted, shape.imported,
    shape.edit_requested, shape.attributes_saved, annotations.exported,
    placement.saved, placement.loaded
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Sequence

from loguru import logger

from planmap.attributes import AttributeWorkflow, Vocabulary, style_for
from planmap.comms.event_bus import EventBus
from planmap.config import settings
from planmap.geo.geometry import GeoPoint
from planmap.host import MapHost
from planmap.modes import EditorMode, ModeController
from planmap.overlay import ImageLoader, Overlay, OverlayManager
from planmap.plugins.manager import CapabilityManager
from planmap.popups import EDIT_REQUESTED
from planmap.shapes.shape import Shape, utcnow
from planmap.shapes.store import ShapeStore
from planmap.surface import MapSurface

FLOOR_LEVELS = ("ground-floor", "first-floor", "second-floor", "basement")


@dataclass
class ShapeLayer:
    """A drawn shape as rendered on the surface."""

    shape: Shape
    style: dict = field(default_factory=dict)


@dataclass
class PlacementSnapshot:
    """A saved image placement plus the shapes drawn over it."""

    placement_id: str
    name: str
    image_url: str
    corners: list[GeoPoint]
    floor_level: str
    saved_at: datetime
    annotations: dict

    def to_dict(self) -> dict:
        return {
            "id": self.placement_id,
            "name": self.name,
            "image_url": self.image_url,
            "corners": [p.to_lnglat() for p in self.corners],
            "floor_level": self.floor_level,
            "saved_at": self.saved_at.isoformat(),
            "shape_count": len(self.annotations.get("features", [])),
        }


class EditorSession:
    """Composition root for one map editor."""

    def __init__(
        self,
        session_id: str | None = None,
        vocabulary: Vocabulary | None = None,
        geocoder=None,
        image_loader: ImageLoader | None = None,
        capabilities: CapabilityManager | None = None,
        window=None,
        surface_factory=MapSurface,
        clock=None,
    ) -> None:
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self.event_bus = EventBus()
        self.capabilities = capabilities if capabilities is not None else CapabilityManager()
        self.host = MapHost(
            capabilities=self.capabilities,
            geocoder=geocoder,
            window=window,
            event_bus=self.event_bus,
            surface_factory=surface_factory,
        )
        self.store = ShapeStore(clock=clock)
        self.overlays = OverlayManager(self.host, self.capabilities, image_loader)
        self.attributes = AttributeWorkflow(
            self.store, self.event_bus, vocabulary, lambda: self.host.surface
        )
        self.modes = ModeController(self.overlays, None, lambda: self.host.surface)
        self.draw_control = None
        self.placements: dict[str, PlacementSnapshot] = {}
        self.last_export: dict | None = None
        self._queued_image: str | None = None

        self.event_bus.on("shape.attributes_saved", self._on_attributes_saved)
        self.host.on_ready(self._on_ready)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def mount(self, container: Any = None, postcode: str | None = None) -> bool:
        surface = await self.host.mount(container or self.session_id, postcode)
        if surface is None:
            return False
        if self._queued_image is not None:
            url, self._queued_image = self._queued_image, None
            logger.info(f"Applying queued image {url}")
            await self.set_image(url)
        return True

    def _on_ready(self) -> None:
        provider = self.capabilities.provider("draw")
        if provider is not None and self.draw_control is None:
            self.draw_control = provider.create_control(
                self._on_draw_created,
                on_edited=self._on_draw_edited,
                on_deleted=self._on_draw_deleted,
            )
        if self.draw_control is not None:
            self.modes.bind_draw_control(self.draw_control)
        else:
            logger.warning("Draw capability unavailable; annotate mode will be read-only")
            self.modes.sync()
        for shape in self.store.iterate():
            self._render(shape)

    def unmount(self) -> None:
        self._queued_image = None
        self.overlays.teardown()
        if self.draw_control is not None:
            self.draw_control.detach()
        self.attributes.cancel()
        self.host.unmount()

    @property
    def ready(self) -> bool:
        return self.host.ready

    # ------------------------------------------------------------------
    # Mode
    # ------------------------------------------------------------------

    @property
    def mode(self) -> EditorMode:
        return self.modes.mode

    @mode.setter
    def mode(self, value: EditorMode | str) -> None:
        self.modes.set_mode(value)

    def set_mode(self, value: EditorMode | str) -> bool:
        return self.modes.set_mode(value)

    def set_base_layer(self, name: str) -> bool:
        return self.host.set_base_layer(name)

    # ------------------------------------------------------------------
    # Overlay
    # ------------------------------------------------------------------

    async def set_image(
        self, url: str, corners: Sequence[GeoPoint] | None = None
    ) -> Overlay | None:
        """Place an image. Before the map is ready the URL is queued."""
        if not self.host.ready:
            logger.info(f"Map not ready; queueing image {url}")
            self._queued_image = url
            return None
        return await self.overlays.set_image(url, corners)

    @property
    def overlay(self) -> Overlay | None:
        return self.overlays.overlay

    def transform_overlay(self, operation: str, **params: Any) -> bool:
        return self.overlays.transform(operation, **params)

    # ------------------------------------------------------------------
    # Drawing
    # ------------------------------------------------------------------

    def begin_drawing(self, kind: str) -> bool:
        if self.draw_control is None:
            return False
        return self.draw_control.select_tool(kind)

    def add_vertex(self, point: GeoPoint) -> Any:
        if self.draw_control is None:
            return False
        return self.draw_control.click(point)

    def finish_drawing(self) -> Shape | None:
        if self.draw_control is None:
            return None
        return self.draw_control.finish()

    def cancel_drawing(self) -> None:
        if self.draw_control is not None:
            self.draw_control.cancel()

    def draw_shape(
        self, kind: str, points: Sequence[GeoPoint], radius: float | None = None
    ) -> Shape | None:
        if self.draw_control is None:
            return None
        return self.draw_control.draw(kind, points, radius)

    def edit_vertices(self, shape_id: str, ring: Sequence[GeoPoint]) -> Shape | None:
        """Replace a shape's vertices. Only while annotating.

        Raises:
            KeyError: unknown shape.
        """
        if shape_id not in self.store:
            raise KeyError(f"Shape not found: {shape_id}")
        if self.draw_control is None:
            return None
        result = self.draw_control.edit_vertices(shape_id, ring)
        return result or None

    def delete_shape(self, shape_id: str) -> bool:
        """Delete one shape through the draw tools. Only while annotating.

        Raises:
            KeyError: unknown shape.
        """
        if shape_id not in self.store:
            raise KeyError(f"Shape not found: {shape_id}")
        if self.draw_control is None:
            return False
        return bool(self.draw_control.delete(shape_id))

    def clear_shapes(self) -> list[str]:
        """Remove every shape (the explicit "clear" action)."""
        removed = self.store.clear()
        for shape_id in removed:
            self._unrender(shape_id)
            self.event_bus.publish("shape.deleted", {"shape_id": shape_id})
        if removed:
            logger.info(f"Cleared {len(removed)} shapes")
        return removed

    def request_edit(self, shape_id: str) -> None:
        """Same as the info popup's Edit button.

        Raises:
            KeyError: unknown shape.
        """
        if shape_id not in self.store:
            raise KeyError(f"Shape not found: {shape_id}")
        self.event_bus.publish(EDIT_REQUESTED, {"shape_id": shape_id})

    # -- draw control callbacks ---------------------------------------------

    def _on_draw_created(self, kind: str, points: list[GeoPoint], radius: float | None) -> Shape:
        shape = self.store.create(kind, points, radius)
        self._render(shape)
        logger.info(f"Shape created: {shape.shape_id} ({kind})")
        self.event_bus.publish("shape.created", {"shape_id": shape.shape_id, "kind": kind})
        return shape

    def _on_draw_edited(self, shape_id: str, ring: list[GeoPoint]) -> Shape:
        shape = self.store.update_ring(shape_id, ring)
        self._render(shape)
        self.event_bus.publish("shape.edited", {"shape_id": shape_id})
        return shape

    def _on_draw_deleted(self, shape_id: str) -> bool:
        removed = self.store.remove(shape_id)
        if removed:
            self._unrender(shape_id)
            self.event_bus.publish("shape.deleted", {"shape_id": shape_id})
        return removed

    def _on_attributes_saved(self, msg: dict) -> None:
        shape = self.store.get(msg["data"]["shape_id"])
        if shape is not None:
            self._render(shape)

    # -- rendering ----------------------------------------------------------

    def _live_surface(self) -> MapSurface | None:
        surface = self.host.surface
        if surface is None or surface.destroyed:
            return None
        return surface

    def _render(self, shape: Shape) -> None:
        surface = self._live_surface()
        if surface is None:
            return
        style = self.attributes.styles.get(shape.shape_id) or style_for(shape.attributes.type_tag)
        surface.add_layer(shape.shape_id, ShapeLayer(shape, style))

    def _unrender(self, shape_id: str) -> None:
        surface = self._live_surface()
        if surface is not None:
            surface.remove_layer(shape_id)

    # ------------------------------------------------------------------
    # Host page contract
    # ------------------------------------------------------------------

    def export_annotations(self) -> None:
        """Export all shapes as GeoJSON.

        The document is published as ``annotations.exported`` and, when
        ``settings.export_dir`` is set, written there as a .geojson file.
        """
        document = self.store.export_all()
        self.last_export = document
        path = None
        if settings.export_dir is not None:
            path = self._write_export(document, Path(settings.export_dir))
        self.event_bus.publish("annotations.exported", {
            "document": document,
            "path": str(path) if path else None,
            "count": len(document["features"]),
        })
        logger.info(f"Exported {len(document['features'])} shapes")

    def _write_export(self, document: dict, export_dir: Path) -> Path | None:
        stamp = utcnow().strftime("%Y%m%dT%H%M%SZ")
        path = export_dir.expanduser() / f"annotations-{self.session_id}-{stamp}.geojson"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(document, indent=2))
        except OSError as e:
            logger.warning(f"Could not write export to {path}: {e}")
            surface = self._live_surface()
            if surface is not None:
                surface.notify("The annotations could not be saved to disk.", level="warning")
            return None
        return path

    def has_annotated_shapes(self) -> bool:
        return self.store.has_annotated()

    def import_annotations(self, document: str | dict) -> list[Shape]:
        added = self.store.import_document(document)
        for shape in added:
            self._render(shape)
        if added:
            self.event_bus.publish(
                "shape.imported", {"shape_ids": [s.shape_id for s in added]}
            )
        return added

    # ------------------------------------------------------------------
    # Placement snapshots
    # ------------------------------------------------------------------

    def save_placement(self, name: str, floor_level: str = "ground-floor") -> PlacementSnapshot | None:
        """Snapshot the current image placement and shapes.

        Returns None when no image is placed.

        Raises:
            ValueError: unknown floor level.
        """
        if floor_level not in FLOOR_LEVELS:
            raise ValueError(f"Unknown floor level: {floor_level}")
        overlay = self.overlays.overlay
        if overlay is None:
            surface = self._live_surface()
            if surface is not None:
                surface.notify("Place an image before saving.", level="warning")
            return None

        snapshot = PlacementSnapshot(
            placement_id=f"placement-{uuid.uuid4().hex[:8]}",
            name=name.strip() or overlay.image_url.rsplit("/", 1)[-1],
            image_url=overlay.image_url,
            corners=overlay.corners,
            floor_level=floor_level,
            saved_at=utcnow(),
            annotations=self.store.export_all(),
        )
        self.placements[snapshot.placement_id] = snapshot
        self.event_bus.publish("placement.saved", {"placement_id": snapshot.placement_id})
        logger.info(f"Placement saved: {snapshot.placement_id} ({snapshot.name}, {floor_level})")
        return snapshot

    def list_placements(self) -> list[PlacementSnapshot]:
        return sorted(self.placements.values(), key=lambda p: p.saved_at, reverse=True)

    async def load_placement(self, placement_id: str) -> bool:
        """Restore a snapshot: image at its saved corners, shapes re-imported.

        Raises:
            KeyError: unknown placement.
        """
        snapshot = self.placements.get(placement_id)
        if snapshot is None:
            raise KeyError(f"Placement not found: {placement_id}")
        if not self.host.ready:
            logger.warning("Cannot load a placement before the map is ready")
            return False

        self.attributes.cancel()
        self.clear_shapes()
        overlay = await self.overlays.set_image(snapshot.image_url, snapshot.corners)
        self.import_annotations(snapshot.annotations)
        self.event_bus.publish("placement.loaded", {"placement_id": placement_id})
        return overlay is not None

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def state(self) -> dict:
        surface = self.host.surface
        return {
            "id": self.session_id,
            "ready": self.host.ready,
            "mode": self.mode.value,
            "interactive": bool(surface and surface.interactive),
            "cursor": surface.cursor if surface else None,
            "base_layer": self.host.base_layer_name,
            "center": surface.get_center().to_lnglat() if surface else None,
            "zoom": surface.get_zoom() if surface else None,
            "overlay": self.overlay.to_dict() if self.overlay else None,
            "overlay_accepts_input": self.overlays.accepts_input,
            "draw": self.draw_control.state() if self.draw_control else None,
            "form": self.attributes.pending.to_dict() if self.attributes.pending else None,
            "popup": surface.popup.to_dict() if surface and surface.popup else None,
            "notices": [n.__dict__ for n in surface.notices] if surface else [],
            "shape_count": len(self.store),
            "has_annotated_shapes": self.has_annotated_shapes(),
            "failure": str(self.host.failure) if self.host.failure else None,
        }
