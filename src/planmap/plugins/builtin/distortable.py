"""Distortable image capability - an image overlay with draggable corner handles.

The layer keeps the image as four geographic corners (NW, NE, SE, SW) so it
can be moved, scaled, rotated and freely distorted. Rotation and scaling
work in a local metric frame around the centroid (longitude scaled by
cos(latitude)), which is accurate at the building scales this is used for.

Transforms are only accepted while the layer is selected and editable; a
rejected transform returns False and leaves the corners untouched.
"""

from __future__ import annotations

import math
from typing import Sequence

from planmap.geo.geometry import GeoPoint, centroid
from planmap.plugins.base import CapabilityInterface


class DistortableImageLayer:
    """An editable raster overlay."""

    def __init__(
        self,
        url: str,
        corners: Sequence[GeoPoint],
        actions: Sequence[str] = (),
        mode: str = "distort",
    ) -> None:
        if len(corners) != 4:
            raise ValueError(f"An image overlay needs 4 corners, got {len(corners)}")
        self.url = url
        self.corners: list[GeoPoint] = list(corners)
        self._placed_corners: tuple[GeoPoint, ...] = tuple(corners)
        self.actions: tuple[str, ...] = tuple(actions)
        self.mode = mode
        self.selected = False
        self.user_locked = False
        self.editing_enabled = True
        self.opacity = 1.0
        self.outlined = False

    @property
    def editable(self) -> bool:
        return self.editing_enabled and not self.user_locked

    def _can_transform(self, action: str | None = None) -> bool:
        if not (self.selected and self.editable):
            return False
        return action is None or action in self.actions

    # -- selection ------------------------------------------------------------

    def select(self) -> None:
        self.selected = True

    def deselect(self) -> None:
        self.selected = False

    def set_lock(self, locked: bool) -> bool:
        """The toolbar's lock action."""
        if not self.selected or "lock" not in self.actions:
            return False
        self.user_locked = locked
        return True

    # -- transforms -----------------------------------------------------------

    def move(self, d_lat: float, d_lng: float) -> bool:
        if not self._can_transform():
            return False
        self.corners = [
            GeoPoint(p.latitude + d_lat, p.longitude + d_lng) for p in self.corners
        ]
        return True

    def scale(self, factor: float) -> bool:
        if factor <= 0 or not self._can_transform():
            return False
        c = centroid(self.corners)
        self.corners = [
            GeoPoint(
                c.latitude + (p.latitude - c.latitude) * factor,
                c.longitude + (p.longitude - c.longitude) * factor,
            )
            for p in self.corners
        ]
        return True

    def rotate(self, degrees: float) -> bool:
        """Rotate clockwise by ``degrees`` around the centroid."""
        if not self._can_transform("free-rotate"):
            return False
        c = centroid(self.corners)
        k = math.cos(math.radians(c.latitude))
        theta = -math.radians(degrees)
        cos_t, sin_t = math.cos(theta), math.sin(theta)
        rotated = []
        for p in self.corners:
            x = (p.longitude - c.longitude) * k
            y = p.latitude - c.latitude
            rx = x * cos_t - y * sin_t
            ry = x * sin_t + y * cos_t
            rotated.append(GeoPoint(c.latitude + ry, c.longitude + rx / k))
        self.corners = rotated
        return True

    def distort(self, corner_index: int, point: GeoPoint) -> bool:
        if not 0 <= corner_index < 4 or not self._can_transform("distort"):
            return False
        self.corners[corner_index] = point
        return True

    def set_opacity(self, value: float) -> bool:
        if not self._can_transform("opacity"):
            return False
        self.opacity = max(0.0, min(1.0, value))
        return True

    def toggle_border(self) -> bool:
        if not self._can_transform("border"):
            return False
        self.outlined = not self.outlined
        return True

    def restore(self) -> bool:
        """Put the image back where it was first placed."""
        if not self._can_transform("restore"):
            return False
        self.corners = list(self._placed_corners)
        return True

    @property
    def handles(self) -> list[GeoPoint]:
        """Corner handles, shown only while the image can be edited."""
        if self.selected and self.editable:
            return list(self.corners)
        return []


class DistortableImageCapability(CapabilityInterface):
    plugin_id = "planmap.distortable-image"
    name = "Distortable Image"
    version = "1.0.0"

    def __init__(self) -> None:
        self._running = False

    @property
    def capabilities(self) -> set[str]:
        return {"distortable-image"}

    @property
    def dependencies(self) -> list[str]:
        return ["planmap.toolbar"]

    def start(self) -> None:
        self._running = True

    def stop(self) -> None:
        self._running = False

    @property
    def healthy(self) -> bool:
        return self._running

    def create_layer(
        self,
        url: str,
        corners: Sequence[GeoPoint],
        actions: Sequence[str] = (),
    ) -> DistortableImageLayer:
        return DistortableImageLayer(url, corners, actions=actions)
