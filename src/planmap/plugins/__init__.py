"""PLANMAP capability system.

Optional map affordances (toolbar, distortable image, draw tools) are
loaded lazily as capabilities with lifecycle management and dependency
resolution, so a missing one degrades the editor instead of breaking it.
"""

from planmap.plugins.base import CapabilityContext, CapabilityInterface
from planmap.plugins.manager import CapabilityManager

__all__ = [
    "CapabilityContext",
    "CapabilityInterface",
    "CapabilityManager",
]
