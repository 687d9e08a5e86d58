"""Overlay manager - owns the single image overlay placed on the map.

Lifecycle of the overlay slot:

    set_image(url)  -> old overlay torn down, new one placed UNSELECTED,
                       asset awaited, then SELECTED_EDITABLE (or left
                       UNSELECTED when editing is disabled)
    set_mode(bool)  -> locked/editable variant flipped in place
    teardown()      -> overlay removed, slot emptied

When the distortable-image capability is not running the image is placed
as a static layer at the same bounds: visible, never editable.
"""

from __future__ import annotations

import itertools
from enum import Enum
from typing import Any, Sequence

import httpx
from loguru import logger

from planmap.config import settings
from planmap.errors import OverlayLoadFailure
from planmap.geo.geometry import GeoPoint, envelope, view_bounds


class TransformState(str, Enum):
    UNSELECTED = "unselected"
    SELECTED_EDITABLE = "selected-editable"
    SELECTED_LOCKED = "selected-locked"


# Transform operations a caller may request, mapped to layer methods.
TRANSFORM_OPERATIONS = (
    "move",
    "scale",
    "rotate",
    "distort",
    "set_opacity",
    "toggle_border",
    "restore",
)


class StaticImageLayer:
    """Plain image placement used when the distortable capability is missing."""

    def __init__(self, url: str, corners: Sequence[GeoPoint]) -> None:
        self.url = url
        self.corners: list[GeoPoint] = list(corners)
        self.opacity = 1.0
        self.selected = False
        self.editable = False
        self.handles: list[GeoPoint] = []


class ImageLoader:
    """Waits for an image asset to become available.

    The default loader trusts the URL (the upload collaborator has already
    validated it); HttpImageLoader actually fetches it.
    """

    async def load(self, url: str) -> None:
        if not url:
            raise OverlayLoadFailure("Image URL is empty")


class HttpImageLoader(ImageLoader):
    """Fetch the image over HTTP and check that it really is an image."""

    def __init__(self, timeout: float = 15.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.timeout = timeout
        self._transport = transport

    async def load(self, url: str) -> None:
        await super().load(url)
        async with httpx.AsyncClient(transport=self._transport) as client:
            try:
                resp = await client.get(url, timeout=self.timeout)
                resp.raise_for_status()
            except httpx.HTTPError as e:
                raise OverlayLoadFailure(f"Image fetch failed: {e}") from e
        content_type = resp.headers.get("content-type", "")
        if not content_type.startswith("image/"):
            raise OverlayLoadFailure(f"Not an image ({content_type or 'no content type'})")


_overlay_ids = itertools.count(1)


class Overlay:
    """The active image overlay.

    Attributes:
        overlay_id: Layer id on the surface.
        image_url: Source image.
        layer: DistortableImageLayer, or StaticImageLayer when degraded.
        static: True when placed without the distortable capability.
        loaded: True once the asset finished loading.
    """

    def __init__(self, image_url: str, layer: Any, static: bool) -> None:
        self.overlay_id = f"overlay-{next(_overlay_ids)}"
        self.image_url = image_url
        self.layer = layer
        self.static = static
        self.loaded = False

    @property
    def corners(self) -> list[GeoPoint]:
        """NW, NE, SE, SW."""
        return list(self.layer.corners)

    @property
    def bounding_box(self) -> tuple[GeoPoint, GeoPoint]:
        """(south_west, north_east) envelope of the corners."""
        return envelope(self.layer.corners)

    @property
    def transform_state(self) -> TransformState:
        if self.static or not self.layer.selected:
            return TransformState.UNSELECTED
        if self.layer.editable:
            return TransformState.SELECTED_EDITABLE
        return TransformState.SELECTED_LOCKED

    @property
    def distortion_handles(self) -> list[GeoPoint]:
        return list(self.layer.handles)

    def to_dict(self) -> dict:
        sw, ne = self.bounding_box
        return {
            "id": self.overlay_id,
            "url": self.image_url,
            "static": self.static,
            "loaded": self.loaded,
            "transform_state": self.transform_state.value,
            "corners": [p.to_lnglat() for p in self.corners],
            "bounds": [sw.to_lnglat(), ne.to_lnglat()],
            "handles": [p.to_lnglat() for p in self.distortion_handles],
            "opacity": self.layer.opacity,
            "actions": list(getattr(self.layer, "actions", ())),
        }


def corners_from_bounds(south_west: GeoPoint, north_east: GeoPoint) -> list[GeoPoint]:
    """NW, NE, SE, SW corners of a bounding box."""
    return [
        GeoPoint(north_east.latitude, south_west.longitude),
        GeoPoint(north_east.latitude, north_east.longitude),
        GeoPoint(south_west.latitude, north_east.longitude),
        GeoPoint(south_west.latitude, south_west.longitude),
    ]


class OverlayManager:
    """Owns the nullable overlay slot on one map host."""

    def __init__(self, host, capabilities=None, image_loader: ImageLoader | None = None) -> None:
        self._host = host
        self._capabilities = capabilities
        self._loader = image_loader or ImageLoader()
        self._generation = 0
        self.overlay: Overlay | None = None
        self.editing_enabled = True

    # ------------------------------------------------------------------
    # Placement
    # ------------------------------------------------------------------

    async def set_image(
        self,
        url: str,
        corners: Sequence[GeoPoint] | None = None,
    ) -> Overlay | None:
        """Place (or replace) the overlay image.

        Returns the overlay once its asset has loaded, or None when the map
        is not ready, the load failed, or a newer image superseded this one
        while it was loading.
        """
        surface = self._host.surface
        if surface is None or not self._host.ready:
            logger.warning("Overlay requested before the map is ready; ignored")
            return None

        self._remove_current()
        self._generation += 1
        generation = self._generation

        if corners is None:
            sw, ne = view_bounds(
                surface.get_center(),
                surface.get_zoom(),
                base_span=settings.overlay_base_span,
                reference_zoom=settings.overlay_reference_zoom,
            )
            corners = corners_from_bounds(sw, ne)

        overlay = self._create_overlay(url, corners)
        surface.add_layer(overlay.overlay_id, overlay)
        self.overlay = overlay
        center = surface.get_center()
        logger.info(
            f"Adding {'static ' if overlay.static else ''}image at center: "
            f"{center.latitude:.4f}, {center.longitude:.4f}"
        )

        try:
            await self._loader.load(url)
        except Exception as e:
            if self._is_current(overlay, generation, surface):
                surface.notify(f"Failed to load image: {e}", level="warning")
                surface.remove_layer(overlay.overlay_id)
                self.overlay = None
            logger.warning(f"Overlay load failed for {url}: {e}")
            return None

        if not self._is_current(overlay, generation, surface):
            logger.debug(f"Overlay {overlay.overlay_id} superseded while loading")
            return None

        overlay.loaded = True
        if not overlay.static and self.editing_enabled:
            overlay.layer.select()
        logger.info(f"Image loaded: {overlay.overlay_id} ({overlay.transform_state.value})")
        return overlay

    def _create_overlay(self, url: str, corners: Sequence[GeoPoint]) -> Overlay:
        provider = None
        if self._capabilities is not None:
            provider = self._capabilities.provider("distortable-image")
        if provider is None:
            logger.warning("Distortable image capability unavailable; placing static image")
            return Overlay(url, StaticImageLayer(url, corners), static=True)

        toolbar = self._capabilities.provider("toolbar")
        actions = toolbar.actions(("stack",)) if toolbar is not None else ()
        layer = provider.create_layer(url, corners, actions=actions)
        layer.editing_enabled = self.editing_enabled
        return Overlay(url, layer, static=False)

    def _is_current(self, overlay: Overlay, generation: int, surface) -> bool:
        return (
            self.overlay is overlay
            and self._generation == generation
            and self._host.surface is surface
            and not surface.destroyed
        )

    def _remove_current(self) -> None:
        overlay, self.overlay = self.overlay, None
        if overlay is None:
            return
        surface = self._host.surface
        try:
            if surface is not None:
                surface.remove_layer(overlay.overlay_id)
        except Exception as e:
            logger.debug(f"Ignoring overlay teardown error: {e}")

    def teardown(self) -> None:
        """Remove the overlay and release the slot."""
        self._generation += 1
        self._remove_current()

    # ------------------------------------------------------------------
    # Editing state
    # ------------------------------------------------------------------

    def set_mode(self, editable: bool) -> None:
        """Enable or disable transform editing without recreating the overlay."""
        self.editing_enabled = editable
        overlay = self.overlay
        if overlay is not None and not overlay.static:
            overlay.layer.editing_enabled = editable

    @property
    def accepts_input(self) -> bool:
        overlay = self.overlay
        surface = self._host.surface
        return (
            overlay is not None
            and not overlay.static
            and self.editing_enabled
            and surface is not None
            and surface.interactive
            and not surface.destroyed
        )

    def select(self) -> bool:
        if not self.accepts_input:
            return False
        self.overlay.layer.select()
        return True

    def deselect(self) -> bool:
        if not self.accepts_input:
            return False
        self.overlay.layer.deselect()
        return True

    def set_lock(self, locked: bool) -> bool:
        if not self.accepts_input:
            return False
        return self.overlay.layer.set_lock(locked)

    def transform(self, operation: str, **params: Any) -> bool:
        """Apply a transform operation to the overlay.

        Returns False when the overlay is missing, static, not selected,
        locked, or when editing is disabled by the current mode.

        Raises:
            ValueError: unknown operation.
        """
        if operation not in TRANSFORM_OPERATIONS:
            raise ValueError(f"Unknown transform operation: {operation}")
        if not self.accepts_input:
            return False
        return bool(getattr(self.overlay.layer, operation)(**params))
