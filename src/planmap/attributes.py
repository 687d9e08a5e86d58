"""Attribute workflow - the single modal form bound to one shape.

Two entry points converge on one open form:

    open_create(shape_id)  right after a shape is drawn; area prefilled
    open_edit(shape_id)    from the info popup's Edit action

    set_field(...)*  ->  save()   commits through ShapeStore.update_attributes
                     ->  cancel() discards, store untouched

Only one form exists at a time; opening another replaces it.

Area override policy: when the saved area differs from the computed one it
is stored as ``area_override``. The override survives later attribute
edits and is dropped by ShapeStore.update_ring when the vertices change.
"""

from __future__ import annotations

import math
import zlib
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Mapping

from loguru import logger

from planmap.errors import SurfaceDestroyedError, ValidationError
from planmap.popups import EDIT_REQUESTED, InfoPopup
from planmap.shapes.shape import Shape
from planmap.shapes.store import ShapeStore

FORM_FIELDS = ("name", "type_tag", "sub_type_tag", "area")

DEFAULT_STYLE = {"color": "#ff4444", "weight": 3, "opacity": 0.8, "fillOpacity": 0.3}

CATEGORY_PALETTE = (
    "#1f77b4",
    "#2ca02c",
    "#9467bd",
    "#ff7f0e",
    "#17becf",
    "#8c564b",
    "#e377c2",
    "#bcbd22",
)


def style_for(type_tag: str | None) -> dict:
    """Leaflet-style path options for a category. Stable across runs."""
    if not type_tag:
        return dict(DEFAULT_STYLE)
    index = zlib.crc32(type_tag.encode("utf-8")) % len(CATEGORY_PALETTE)
    return {**DEFAULT_STYLE, "color": CATEGORY_PALETTE[index]}


class Vocabulary:
    """Type tags and the sub-type tags valid for each.

    An empty vocabulary means tags are free text.
    """

    def __init__(self, entries: Mapping[str, Iterable[str]] | None = None) -> None:
        self._entries: dict[str, tuple[str, ...]] = {
            str(k): tuple(str(s) for s in v) for k, v in (entries or {}).items()
        }

    @property
    def free_text(self) -> bool:
        return not self._entries

    def types(self) -> list[str]:
        return list(self._entries)

    def sub_types(self, type_tag: str | None) -> list[str]:
        if not type_tag:
            return []
        return list(self._entries.get(type_tag, ()))

    def valid_type(self, type_tag: str) -> bool:
        return self.free_text or type_tag in self._entries

    def valid_sub_type(self, type_tag: str, sub_type_tag: str) -> bool:
        return self.free_text or sub_type_tag in self._entries.get(type_tag, ())

    def to_dict(self) -> dict[str, list[str]]:
        return {k: list(v) for k, v in self._entries.items()}


class FormFlow(str, Enum):
    CREATE = "create"
    EDIT = "edit"


@dataclass
class PendingAttributeEdit:
    """The open form: target shape, entered values and per-field errors."""

    target_shape_id: str
    flow: FormFlow
    form_values: dict = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def sub_type_enabled(self) -> bool:
        return bool(self.form_values.get("type_tag"))

    def to_dict(self) -> dict:
        return {
            "shape_id": self.target_shape_id,
            "flow": self.flow.value,
            "values": dict(self.form_values),
            "errors": dict(self.errors),
            "sub_type_enabled": self.sub_type_enabled,
        }


def _area_text(value: float | None) -> str:
    return "" if value is None else f"{value:.2f}"


class AttributeWorkflow:
    """Drives the attribute form for the shapes in one store."""

    def __init__(
        self,
        store: ShapeStore,
        event_bus,
        vocabulary: Vocabulary | None = None,
        surface_provider: Callable[[], object] | None = None,
    ) -> None:
        self._store = store
        self._bus = event_bus
        self.vocabulary = vocabulary or Vocabulary()
        self._surface_provider = surface_provider or (lambda: None)
        self.pending: PendingAttributeEdit | None = None
        self.styles: dict[str, dict] = {}

        event_bus.on("shape.created", self._on_created)
        event_bus.on(EDIT_REQUESTED, self._on_edit_requested)
        event_bus.on("shape.deleted", self._on_deleted)

    # -- event handlers ---------------------------------------------------------

    def _on_created(self, msg: dict) -> None:
        self.open_create(msg["data"]["shape_id"])

    def _on_edit_requested(self, msg: dict) -> None:
        shape_id = msg.get("data", {}).get("shape_id")
        if shape_id not in self._store:
            logger.warning(f"Edit requested for unknown shape: {shape_id}")
            return
        self.open_edit(shape_id)

    def _on_deleted(self, msg: dict) -> None:
        shape_id = msg["data"]["shape_id"]
        self.styles.pop(shape_id, None)
        if self.pending is not None and self.pending.target_shape_id == shape_id:
            logger.info(f"Shape {shape_id} deleted while its form was open")
            self.pending = None

    # -- opening ----------------------------------------------------------------

    def _replace_pending(self, pending: PendingAttributeEdit) -> PendingAttributeEdit:
        if self.pending is not None:
            logger.debug(f"Replacing open form for {self.pending.target_shape_id}")
        self.pending = pending
        return pending

    def open_create(self, shape_id: str) -> PendingAttributeEdit:
        """Open the form for a freshly drawn shape.

        Raises:
            KeyError: unknown shape.
        """
        shape = self._get(shape_id)
        values = {
            "name": "",
            "type_tag": None,
            "sub_type_tag": None,
            "area": _area_text(shape.computed_area),
        }
        return self._replace_pending(PendingAttributeEdit(shape_id, FormFlow.CREATE, values))

    def open_edit(self, shape_id: str) -> PendingAttributeEdit:
        """Open the form prefilled with the shape's current attributes.

        Raises:
            KeyError: unknown shape.
        """
        shape = self._get(shape_id)
        attrs = shape.attributes
        values = {
            "name": attrs.name,
            "type_tag": attrs.type_tag,
            "sub_type_tag": attrs.sub_type_tag,
            "area": _area_text(shape.display_area),
        }
        return self._replace_pending(PendingAttributeEdit(shape_id, FormFlow.EDIT, values))

    def _get(self, shape_id: str) -> Shape:
        shape = self._store.get(shape_id)
        if shape is None:
            raise KeyError(f"Shape not found: {shape_id}")
        return shape

    # -- editing ----------------------------------------------------------------

    def set_field(self, name: str, value) -> bool:
        """Set one form field.

        Returns False (and records the error on the form) when the value is
        rejected, or when no form is open.

        Raises:
            ValueError: unknown field name.
        """
        if name not in FORM_FIELDS:
            raise ValueError(f"Unknown form field: {name}")
        pending = self.pending
        if pending is None:
            return False

        values = pending.form_values
        try:
            if name == "type_tag":
                self._set_type(values, value or None)
            elif name == "sub_type_tag":
                self._set_sub_type(values, value or None)
            else:
                values[name] = "" if value is None else str(value)
        except ValidationError as e:
            pending.errors[e.field] = e.message
            return False

        pending.errors.pop(name, None)
        return True

    def _set_type(self, values: dict, type_tag: str | None) -> None:
        if type_tag is not None and not self.vocabulary.valid_type(type_tag):
            raise ValidationError("type_tag", f"Unknown type: {type_tag}")
        values["type_tag"] = type_tag
        sub = values.get("sub_type_tag")
        if sub and (type_tag is None or not self.vocabulary.valid_sub_type(type_tag, sub)):
            values["sub_type_tag"] = None

    def _set_sub_type(self, values: dict, sub_type_tag: str | None) -> None:
        type_tag = values.get("type_tag")
        if sub_type_tag is None:
            values["sub_type_tag"] = None
            return
        if not type_tag:
            raise ValidationError("sub_type_tag", "Choose a type first")
        if not self.vocabulary.valid_sub_type(type_tag, sub_type_tag):
            raise ValidationError("sub_type_tag", f"Unknown sub-type for {type_tag}: {sub_type_tag}")
        values["sub_type_tag"] = sub_type_tag

    # -- closing ----------------------------------------------------------------

    def _validate(self, values: dict) -> tuple[dict[str, str], str, float | None]:
        errors: dict[str, str] = {}
        name = (values.get("name") or "").strip()
        if not name:
            errors["name"] = "Name is required"

        area_value = None
        raw_area = (values.get("area") or "").strip()
        if raw_area:
            try:
                area_value = float(raw_area.replace(",", ""))
                if not math.isfinite(area_value) or area_value < 0:
                    raise ValueError(raw_area)
            except ValueError:
                errors["area"] = "Area must be a number of square metres"
                area_value = None
        return errors, name, area_value

    def save(self) -> Shape | None:
        """Validate and commit the open form.

        Returns the updated shape, or None when validation failed (the form
        stays open with ``errors`` set) or no form is open.
        """
        pending = self.pending
        if pending is None:
            return None

        errors, name, area_value = self._validate(pending.form_values)
        if errors:
            pending.errors = errors
            logger.info(f"Form for {pending.target_shape_id} rejected: {', '.join(errors)}")
            return None

        shape = self._store.get(pending.target_shape_id)
        if shape is None:
            logger.warning(f"Shape {pending.target_shape_id} vanished before save")
            self.pending = None
            return None

        override = None
        if shape.areal and area_value is not None and shape.computed_area is not None:
            current = shape.attributes.area_override
            if current is not None and round(current, 2) == round(area_value, 2):
                # The form shows 2 decimals; an unchanged field keeps the stored value
                override = current
            elif round(area_value, 2) != round(shape.computed_area, 2):
                override = area_value

        values = pending.form_values
        self._store.update_attributes(
            shape.shape_id,
            {
                "name": name,
                "type_tag": values.get("type_tag") or None,
                "sub_type_tag": values.get("sub_type_tag") or None,
                "area_override": override,
            },
        )
        self.pending = None

        saved = self._store.get(shape.shape_id)
        self.styles[saved.shape_id] = style_for(saved.attributes.type_tag)
        self._show(saved)
        self._bus.publish(
            "shape.attributes_saved",
            {"shape_id": saved.shape_id, "flow": pending.flow.value},
        )
        return saved

    def cancel(self) -> bool:
        """Discard the open form. The shape keeps the attributes it had."""
        if self.pending is None:
            return False
        logger.debug(f"Form for {self.pending.target_shape_id} cancelled")
        self.pending = None
        return True

    def _show(self, shape: Shape) -> None:
        """Restyle the shape's layer and open its info popup."""
        surface = self._surface_provider()
        if surface is None or surface.destroyed:
            return
        try:
            layer = surface.get_layer(shape.shape_id)
            if layer is not None:
                layer.style = self.styles[shape.shape_id]
            surface.open_popup(InfoPopup.for_shape(shape, self._bus))
        except SurfaceDestroyedError as e:
            logger.debug(f"Skipping popup for {shape.shape_id}: {e}")
