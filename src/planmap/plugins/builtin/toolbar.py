"""Overlay toolbar capability - the action palette shown on a selected image."""

from __future__ import annotations

from planmap.plugins.base import CapabilityInterface

# Actions offered on a selected overlay, in palette order.
DEFAULT_ACTIONS = (
    "free-rotate",
    "distort",
    "lock",
    "border",
    "opacity",
    "restore",
)
OPTIONAL_ACTIONS = ("stack",)


class ToolbarCapability(CapabilityInterface):
    plugin_id = "planmap.toolbar"
    name = "Overlay Toolbar"
    version = "1.0.0"

    def __init__(self) -> None:
        self._running = False

    @property
    def capabilities(self) -> set[str]:
        return {"toolbar"}

    def start(self) -> None:
        self._running = True

    def stop(self) -> None:
        self._running = False

    @property
    def healthy(self) -> bool:
        return self._running

    def actions(self, extras: tuple[str, ...] = ()) -> tuple[str, ...]:
        """Palette for a new overlay; unknown extras are ignored."""
        return DEFAULT_ACTIONS + tuple(a for a in extras if a in OPTIONAL_ACTIONS)
