"""Map host - creates, sizes and tears down the map surface.

Mount sequence (each await is followed by a cancellation check, so an
unmount that lands mid-mount never leads to writes on a removed surface):

    1. load capabilities          (await)
    2. resolve postcode -> view   (await, optional)
    3. create surface, base tiles, resize listener
    4. ready = True, ready callbacks fire

A failed capability leaves the editor in a reduced mode. A failed surface
records an InitializationFailure and falls back to a read-only surface;
mount() itself never raises.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable

from loguru import logger

from planmap.config import settings
from planmap.errors import CapabilityDependencyError, InitializationFailure
from planmap.geo.geometry import GeoPoint
from planmap.plugins.base import CapabilityContext
from planmap.surface import MapSurface, TileLayer, Window

BASE_LAYERS = ("road", "aerial")


class MapHost:
    """Owns the map surface for one editor session."""

    def __init__(
        self,
        capabilities=None,
        geocoder=None,
        window: Window | None = None,
        event_bus=None,
        surface_factory: Callable[..., MapSurface] = MapSurface,
    ) -> None:
        self.capabilities = capabilities
        self.geocoder = geocoder
        self.window = window or Window()
        self.event_bus = event_bus
        self._surface_factory = surface_factory
        self.surface: MapSurface | None = None
        self.ready = False
        self.cancelled = False
        self.failure: InitializationFailure | None = None
        self.base_layer_name: str | None = None
        self._capabilities_loaded = False
        self._ready_callbacks: list[Callable[[], Any]] = []
        self._waiters: list[asyncio.Future] = []

    # ------------------------------------------------------------------
    # Mount / unmount
    # ------------------------------------------------------------------

    async def mount(self, container: Any, postcode: str | None = None) -> MapSurface | None:
        """Create the surface. Returns None if unmounted before completion."""
        if self.surface is not None:
            logger.warning("Map already mounted")
            return self.surface
        self.cancelled = False

        await self._load_capabilities()
        if self.cancelled:
            logger.info("Mount cancelled after capability load")
            return None

        center = GeoPoint(settings.fallback_center_lat, settings.fallback_center_lng)
        zoom = settings.fallback_zoom
        if postcode and self.geocoder is not None:
            point = await self.geocoder.lookup(postcode)
            if self.cancelled:
                logger.info("Mount cancelled after postcode lookup")
                return None
            if point is not None:
                center, zoom = point, settings.postcode_zoom
            else:
                logger.warning(f"Postcode {postcode!r} not resolved; using fallback view")

        self.surface = self._create_surface(container, center, zoom)
        if self.surface is None:
            return None
        self.set_base_layer(settings.default_base_layer)
        self.window.add_event_listener("resize", self._on_resize)

        self.ready = True
        logger.info(
            f"Map ready at {center.latitude:.4f}, {center.longitude:.4f} zoom {zoom}"
        )
        if self.event_bus is not None:
            self.event_bus.publish("map.ready", {
                "center": center.to_lnglat(),
                "zoom": zoom,
                "interactive": self.surface.interactive,
            })
        for callback in list(self._ready_callbacks):
            try:
                callback()
            except Exception as e:
                logger.error(f"Ready callback failed: {e}")
        self._resolve_waiters()
        return self.surface

    async def _load_capabilities(self) -> None:
        """Import capabilities on the first mount, then start them.

        An unmount that lands while specs are importing leaves them all
        stopped; the next mount starts them without importing again.
        """
        if self.capabilities is None:
            return
        if not self._capabilities_loaded:
            self._capabilities_loaded = True
            await self.capabilities.load(settings.capabilities)
            if self.cancelled:
                logger.info("Unmounted while loading capabilities; none started")
                return
        try:
            self.capabilities.activate(
                lambda pid: CapabilityContext(
                    event_bus=self.event_bus,
                    settings=settings.model_dump(),
                    manager=self.capabilities,
                )
            )
        except CapabilityDependencyError as e:
            self.failure = InitializationFailure(f"Capability initialisation failed: {e}")
            logger.warning(f"{self.failure}; continuing with a reduced editor")
            return
        if self.capabilities.failed_specs:
            logger.warning(
                f"Capabilities not loaded: {', '.join(self.capabilities.failed_specs)}"
            )
        if self.capabilities.unavailable:
            logger.warning(
                f"Capabilities not running: {', '.join(self.capabilities.unavailable)}"
            )

    def _create_surface(self, container: Any, center: GeoPoint, zoom: float) -> MapSurface | None:
        try:
            return self._surface_factory(container, center, zoom, max_zoom=settings.max_zoom)
        except Exception as e:
            self.failure = InitializationFailure(f"Map surface creation failed: {e}")
            logger.error(str(self.failure))

        try:
            surface = MapSurface(container, center, zoom, interactive=False, max_zoom=settings.max_zoom)
        except Exception as e:
            logger.error(f"Read-only map could not be created either: {e}")
            return None
        surface.notify("The map could not be fully loaded; editing is unavailable.", level="error")
        return surface

    def unmount(self) -> None:
        """Tear down the surface and stop capabilities. Safe mid-mount."""
        self.cancelled = True
        self.ready = False
        self.window.remove_event_listener("resize", self._on_resize)
        if self.surface is not None:
            self.surface.destroy()
            self.surface = None
        if self.capabilities is not None:
            self.capabilities.deactivate()
        for fut in self._waiters:
            if not fut.done():
                fut.set_result(False)
        self._waiters.clear()
        logger.info("Map unmounted")

    # ------------------------------------------------------------------
    # Ready signal
    # ------------------------------------------------------------------

    def on_ready(self, callback: Callable[[], Any]) -> None:
        """Run callback when the map becomes ready (now, if it already is)."""
        self._ready_callbacks.append(callback)
        if self.ready:
            callback()

    async def wait_ready(self, timeout: float | None = None) -> bool:
        if self.ready:
            return True
        fut = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        try:
            await asyncio.wait_for(fut, timeout)
        except asyncio.TimeoutError:
            return False
        finally:
            if fut in self._waiters:
                self._waiters.remove(fut)
        return self.ready

    def _resolve_waiters(self) -> None:
        for fut in self._waiters:
            if not fut.done():
                fut.set_result(True)

    # ------------------------------------------------------------------
    # Surface chrome
    # ------------------------------------------------------------------

    def _on_resize(self) -> None:
        if self.surface is not None and not self.surface.destroyed:
            self.surface.invalidate_size()

    def set_base_layer(self, name: str) -> bool:
        """Switch the base tiles between the road map and aerial imagery.

        Raises:
            ValueError: unknown layer name.
        """
        if name not in BASE_LAYERS:
            raise ValueError(f"Unknown base layer: {name}")
        if self.surface is None or self.surface.destroyed:
            return False
        if name == "aerial":
            tiles = TileLayer("aerial", settings.aerial_tile_url, settings.aerial_attribution, settings.max_zoom)
        else:
            tiles = TileLayer("road", settings.road_tile_url, settings.road_attribution, settings.max_zoom)
        self.surface.set_base_layer(tiles)
        self.base_layer_name = name
        return True
