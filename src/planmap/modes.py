"""Mode controller - decides which editing tool owns pointer input.

    TRANSFORM (initial)   overlay editing on, draw control detached,
                          default cursor
    ANNOTATE              draw control attached, overlay editing off
                          (image stays visible and in place), crosshair

At most one of ``overlays.accepts_input`` and ``draw_control.accepts_input``
is True at any time. Each transition releases the outgoing tool before
arming the incoming one.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable

from loguru import logger

from planmap.overlay import OverlayManager


class EditorMode(str, Enum):
    TRANSFORM = "transform"
    ANNOTATE = "annotate"


CURSORS = {EditorMode.TRANSFORM: "", EditorMode.ANNOTATE: "crosshair"}


class ModeController:
    """Two-state machine arbitrating the overlay and the draw control."""

    def __init__(
        self,
        overlays: OverlayManager,
        draw_control=None,
        surface_provider: Callable[[], object] | None = None,
    ) -> None:
        self._overlays = overlays
        self._draw = draw_control
        self._surface_provider = surface_provider or (lambda: None)
        self.mode = EditorMode.TRANSFORM

    def bind_draw_control(self, draw_control) -> None:
        """Attach the draw control once its capability has loaded."""
        self._draw = draw_control
        self.sync()

    @property
    def draw_control(self):
        return self._draw

    def set_mode(self, mode: EditorMode | str) -> bool:
        """Switch mode. Returns False when already in ``mode``.

        Raises:
            ValueError: unknown mode name.
        """
        mode = EditorMode(mode)
        if mode == self.mode:
            return False
        logger.info(f"Mode: {self.mode.value} -> {mode.value}")
        self.mode = mode
        self._apply()
        return True

    def enter_transform(self) -> bool:
        return self.set_mode(EditorMode.TRANSFORM)

    def enter_annotate(self) -> bool:
        return self.set_mode(EditorMode.ANNOTATE)

    def toggle(self) -> EditorMode:
        if self.mode == EditorMode.TRANSFORM:
            self.enter_annotate()
        else:
            self.enter_transform()
        return self.mode

    def sync(self) -> None:
        """Re-apply the current mode (after the surface becomes ready)."""
        self._apply()

    def _apply(self) -> None:
        surface = self._surface_provider()
        live = surface is not None and not surface.destroyed

        if self.mode == EditorMode.TRANSFORM:
            if self._draw is not None:
                self._draw.detach()
            self._overlays.set_mode(True)
        else:
            self._overlays.set_mode(False)
            if self._draw is not None and live and surface.interactive:
                self._draw.attach(surface)
            elif live and self._draw is None:
                surface.notify("Drawing tools are unavailable on this map.", level="warning")

        if live:
            surface.set_cursor(CURSORS[self.mode])
