"""Capability interface and context for PLANMAP map extensions.

A capability is an optional interactive affordance loaded when a map is
mounted: the overlay toolbar, the distortable image handles, the shape
drawing tools. Every capability must extend CapabilityInterface and
implement at minimum:
- plugin_id, name, version (class attributes or properties)
- start() and stop() methods

The editor asks the CapabilityManager for a provider of a named capability
(``"toolbar"``, ``"distortable-image"``, ``"draw"``) and degrades when none
is running.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class CapabilityContext:
    """Context object passed to capabilities during configuration."""

    event_bus: Any               # EventBus
    settings: dict = field(default_factory=dict)
    manager: Any = None          # CapabilityManager instance


class CapabilityInterface(ABC):
    """Base class all PLANMAP capabilities must extend.

    Subclasses must define:
    - plugin_id: str  - unique identifier
    - name: str       - human-readable name
    - version: str    - semantic version

    And implement:
    - start()  - make the affordance available
    - stop()   - release it
    """

    @property
    @abstractmethod
    def plugin_id(self) -> str:
        """Unique identifier (e.g. 'planmap.toolbar')."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name."""

    @property
    @abstractmethod
    def version(self) -> str:
        """Semantic version (e.g., '1.2.3')."""

    @property
    def capabilities(self) -> set[str]:
        """Capability names this plugin provides.

        Standard capabilities:
        - 'toolbar'           - overlay action palette
        - 'distortable-image' - editable image overlay with handles
        - 'draw'              - shape drawing / editing / deletion tools
        """
        return set()

    @property
    def dependencies(self) -> list[str]:
        """Plugin IDs this plugin depends on."""
        return []

    def configure(self, ctx: CapabilityContext) -> None:
        """Called once with the context. Default is a no-op."""

    @abstractmethod
    def start(self) -> None:
        """Start the capability. Called after configure()."""

    @abstractmethod
    def stop(self) -> None:
        """Stop the capability. Called on map teardown."""

    @property
    def healthy(self) -> bool:
        return True
