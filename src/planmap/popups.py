"""Info popups shown after a shape's attributes are saved.

A popup carries the shape's name, category and area, plus an Edit action.
The Edit action does not reach into the attribute workflow directly: it
publishes ``shape.edit_requested`` on the session EventBus and whoever owns
the form picks it up.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from planmap.shapes.shape import Shape

EDIT_REQUESTED = "shape.edit_requested"


def format_area(value: float | None) -> str:
    if value is None:
        return "n/a"
    return f"{value:,.2f} m²"


@dataclass
class InfoPopup:
    """Popup content for one shape."""

    shape_id: str
    title: str
    lines: list[str] = field(default_factory=list)
    event_bus: object = None

    @classmethod
    def for_shape(cls, shape: Shape, event_bus=None) -> InfoPopup:
        attrs = shape.attributes
        lines = []
        if attrs.type_tag:
            category = attrs.type_tag
            if attrs.sub_type_tag:
                category = f"{category} / {attrs.sub_type_tag}"
            lines.append(f"Type: {category}")
        if shape.areal:
            area_line = f"Area: {format_area(shape.display_area)}"
            if attrs.area_override is not None:
                area_line += f" (measured {format_area(shape.computed_area)})"
            lines.append(area_line)
        return cls(
            shape_id=shape.shape_id,
            title=attrs.name or "Unnamed shape",
            lines=lines,
            event_bus=event_bus,
        )

    def request_edit(self) -> bool:
        """The popup's Edit button."""
        if self.event_bus is None:
            return False
        self.event_bus.publish(EDIT_REQUESTED, {"shape_id": self.shape_id})
        return True

    def to_dict(self) -> dict:
        return {"shape_id": self.shape_id, "title": self.title, "lines": list(self.lines)}
