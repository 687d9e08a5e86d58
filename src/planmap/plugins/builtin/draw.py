"""Draw tools capability - the palette for drawing, editing and deleting shapes.

A DrawControl is created once per map and then attached to or detached
from the surface by the mode controller. Detaching keeps its state (the
selected tool, any half-drawn points), so returning to annotate mode
restores the same palette.

Pointer input:
    polygon, polyline  click to add vertices, finish() to complete
    rectangle          two clicks (opposite corners)
    circle             two clicks (center, then a point on the edge)
    marker             one click

The control hands finished geometry to ``on_created``. When that callback
rejects the geometry with InvalidGeometryError the control shows a notice
and keeps drawing so the user can add more points.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Sequence

from geographiclib.geodesic import Geodesic
from loguru import logger

from planmap.errors import InvalidGeometryError
from planmap.geo.geometry import GeoPoint
from planmap.plugins.base import CapabilityInterface
from planmap.shapes.shape import SHAPE_KINDS

_AUTO_FINISH = {"rectangle": 2, "circle": 2, "marker": 1}

CreatedCallback = Callable[[str, list[GeoPoint], Optional[float]], Any]
EditedCallback = Callable[[str, list[GeoPoint]], Any]
DeletedCallback = Callable[[str], Any]


class DrawControl:
    """Shape drawing palette bound to one map surface at a time."""

    control_name = "draw"

    def __init__(
        self,
        on_created: CreatedCallback,
        on_edited: EditedCallback | None = None,
        on_deleted: DeletedCallback | None = None,
        kinds: Sequence[str] = SHAPE_KINDS,
    ) -> None:
        self.kinds = tuple(k for k in kinds if k in SHAPE_KINDS)
        self._on_created = on_created
        self._on_edited = on_edited
        self._on_deleted = on_deleted
        self.surface = None
        self.active_kind: str | None = None
        self.points: list[GeoPoint] = []

    # -- attachment -----------------------------------------------------------

    @property
    def attached(self) -> bool:
        return self.surface is not None and not self.surface.destroyed

    @property
    def accepts_input(self) -> bool:
        return self.attached

    def attach(self, surface) -> None:
        if self.surface is surface and self.attached:
            return
        surface.add_control(self.control_name, self)
        self.surface = surface

    def detach(self) -> None:
        if self.surface is None:
            return
        if not self.surface.destroyed:
            self.surface.remove_control(self.control_name)
        self.surface = None

    @property
    def drawing(self) -> bool:
        return self.active_kind is not None

    # -- drawing --------------------------------------------------------------

    def select_tool(self, kind: str) -> bool:
        if not self.accepts_input:
            return False
        if kind not in self.kinds:
            raise ValueError(f"Unknown shape kind: {kind}")
        self.active_kind = kind
        self.points = []
        return True

    def cancel(self) -> None:
        self.active_kind = None
        self.points = []

    def click(self, point: GeoPoint) -> Any:
        """Add a point for the active tool.

        Returns the created shape when the click completes one, True when the
        point was taken, False when the control is not accepting input.
        """
        if not self.accepts_input or self.active_kind is None:
            return False
        self.points.append(point)
        needed = _AUTO_FINISH.get(self.active_kind)
        if needed is not None and len(self.points) >= needed:
            return self.finish()
        return True

    def finish(self) -> Any:
        """Complete the in-progress shape. Returns the created shape or None."""
        if not self.accepts_input or self.active_kind is None:
            return None
        kind = self.active_kind
        points = list(self.points)
        radius = None
        if kind == "circle" and len(points) >= 2:
            center, edge = points[0], points[1]
            radius = Geodesic.WGS84.Inverse(
                center.latitude, center.longitude, edge.latitude, edge.longitude
            )["s12"]
            points = [center]

        try:
            created = self._on_created(kind, points, radius)
        except InvalidGeometryError as e:
            logger.info(f"Draw {kind} rejected: {e}")
            self.surface.notify(self._rejection_message(kind), level="warning")
            if kind in _AUTO_FINISH:
                # Drop the completing click; the tool stays armed
                self.points = self.points[:-1]
            return None

        self.active_kind = None
        self.points = []
        return created

    def draw(self, kind: str, points: Sequence[GeoPoint], radius: float | None = None) -> Any:
        """Draw a whole shape in one call (used by the HTTP API)."""
        if not self.select_tool(kind):
            return None
        if kind == "circle":
            if radius is None or not points:
                self.points = list(points)
                return self.finish()
            try:
                created = self._on_created(kind, [points[0]], radius)
            except InvalidGeometryError as e:
                logger.info(f"Draw circle rejected: {e}")
                self.surface.notify(self._rejection_message(kind), level="warning")
                return None
            self.cancel()
            return created
        self.points = list(points)
        return self.finish()

    @staticmethod
    def _rejection_message(kind: str) -> str:
        if kind in ("polygon", "rectangle"):
            return "A shape needs at least 3 distinct points. Keep clicking to add more points."
        if kind == "polyline":
            return "A line needs at least 2 distinct points."
        return f"Could not create {kind}."

    # -- editing --------------------------------------------------------------

    def edit_vertices(self, shape_id: str, ring: Sequence[GeoPoint]) -> Any:
        if not self.accepts_input or self._on_edited is None:
            return False
        try:
            return self._on_edited(shape_id, list(ring))
        except InvalidGeometryError as e:
            logger.info(f"Vertex edit of {shape_id} rejected: {e}")
            self.surface.notify("Edited shape needs at least 3 distinct points.", level="warning")
            return False

    def delete(self, shape_id: str) -> Any:
        if not self.accepts_input or self._on_deleted is None:
            return False
        return self._on_deleted(shape_id)

    def state(self) -> dict:
        return {
            "attached": self.attached,
            "kinds": list(self.kinds),
            "active_kind": self.active_kind,
            "points": [p.to_lnglat() for p in self.points],
        }


class DrawToolsCapability(CapabilityInterface):
    plugin_id = "planmap.draw"
    name = "Draw Tools"
    version = "1.0.0"

    def __init__(self) -> None:
        self._running = False

    @property
    def capabilities(self) -> set[str]:
        return {"draw"}

    def start(self) -> None:
        self._running = True

    def stop(self) -> None:
        self._running = False

    @property
    def healthy(self) -> bool:
        return self._running

    def create_control(
        self,
        on_created: CreatedCallback,
        on_edited: EditedCallback | None = None,
        on_deleted: DeletedCallback | None = None,
        kinds: Sequence[str] = SHAPE_KINDS,
    ) -> DrawControl:
        return DrawControl(on_created, on_edited=on_edited, on_deleted=on_deleted, kinds=kinds)
