"""Error taxonomy for the map-editing engine.

Every component catches these at its own boundary and reports them as a
notice on the map surface; they should not escape into the host page.
"""

from __future__ import annotations


class PlanmapError(Exception):
    """Base class for all editor failures."""


class InitializationFailure(PlanmapError):
    """The map surface or a required capability failed to load."""


class InvalidGeometryError(PlanmapError):
    """A ring has fewer than three distinct points."""


class OverlayLoadFailure(PlanmapError):
    """The image asset behind an overlay could not be loaded."""


class ValidationError(PlanmapError):
    """An attribute form value is missing or not acceptable.

    Attributes:
        field: Name of the offending form field.
    """

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field
        self.message = message


class SurfaceDestroyedError(PlanmapError):
    """Write attempted on a map surface after it was destroyed."""


class CapabilityDependencyError(PlanmapError):
    """Capability dependencies cannot be resolved (cycle)."""
