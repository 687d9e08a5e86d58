"""Map surface model - the rendering target every editor component attaches to.

The surface is a headless model of the browser map: it holds the view
(center/zoom), layers, controls, the cursor, the open popup, and a list of
user-visible notices. The front end mirrors it; tests inspect it directly.

Projection and tile rendering are the front end's business and are not
modelled here.

Once ``destroy()`` has been called every mutating method raises
SurfaceDestroyedError, so a component that writes after teardown fails
loudly instead of silently drawing on a removed map.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from loguru import logger

from planmap.errors import SurfaceDestroyedError
from planmap.geo.geometry import GeoPoint


@dataclass
class TileLayer:
    """A base map tile source."""

    name: str
    url: str
    attribution: str = ""
    max_zoom: int = 20


@dataclass
class Notice:
    """A non-blocking message shown to the user."""

    message: str
    level: str = "info"
    created_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )


class MapSurface:
    """In-memory map surface bound to a container element."""

    def __init__(
        self,
        container: Any,
        center: GeoPoint,
        zoom: float,
        interactive: bool = True,
        max_zoom: int = 20,
    ) -> None:
        self.container = container
        self._center = center
        self._zoom = zoom
        self.interactive = interactive
        self.max_zoom = max_zoom
        self.cursor = ""
        self.base_layer: TileLayer | None = None
        self.layers: dict[str, Any] = {}
        self.controls: dict[str, Any] = {}
        self.notices: list[Notice] = []
        self.popup: Any = None
        self.size_invalidations = 0
        self.destroyed = False

    def _check(self) -> None:
        if self.destroyed:
            raise SurfaceDestroyedError("Map surface has been destroyed")

    # -- view ---------------------------------------------------------------

    def get_center(self) -> GeoPoint:
        return self._center

    def get_zoom(self) -> float:
        return self._zoom

    def set_view(self, center: GeoPoint, zoom: float | None = None) -> None:
        self._check()
        self._center = center
        if zoom is not None:
            self._zoom = max(0, min(zoom, self.max_zoom))

    def invalidate_size(self) -> None:
        self._check()
        self.size_invalidations += 1

    # -- layers -------------------------------------------------------------

    def set_base_layer(self, tiles: TileLayer) -> None:
        self._check()
        self.base_layer = tiles

    def add_layer(self, layer_id: str, layer: Any) -> None:
        self._check()
        self.layers[layer_id] = layer

    def remove_layer(self, layer_id: str) -> bool:
        self._check()
        return self.layers.pop(layer_id, None) is not None

    def has_layer(self, layer_id: str) -> bool:
        return layer_id in self.layers

    def get_layer(self, layer_id: str) -> Any:
        return self.layers.get(layer_id)

    # -- controls -----------------------------------------------------------

    def add_control(self, name: str, control: Any) -> None:
        self._check()
        self.controls[name] = control

    def remove_control(self, name: str) -> bool:
        self._check()
        return self.controls.pop(name, None) is not None

    def has_control(self, name: str) -> bool:
        return name in self.controls

    # -- chrome ---------------------------------------------------------------

    def set_cursor(self, cursor: str) -> None:
        self._check()
        self.cursor = cursor

    def open_popup(self, popup: Any) -> None:
        self._check()
        self.popup = popup

    def close_popup(self) -> None:
        self._check()
        self.popup = None

    def notify(self, message: str, level: str = "info") -> None:
        self._check()
        self.notices.append(Notice(message=message, level=level))
        logger.log(level.upper(), f"Notice: {message}")

    def destroy(self) -> None:
        if self.destroyed:
            return
        self.layers.clear()
        self.controls.clear()
        self.popup = None
        self.destroyed = True


class Window:
    """Minimal window event target (resize listeners)."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[Callable[[], None]]] = defaultdict(list)

    def add_event_listener(self, event: str, handler: Callable[[], None]) -> None:
        self._listeners[event].append(handler)

    def remove_event_listener(self, event: str, handler: Callable[[], None]) -> None:
        try:
            self._listeners[event].remove(handler)
        except ValueError:
            pass

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def dispatch(self, event: str) -> None:
        for handler in list(self._listeners.get(event, ())):
            handler()
