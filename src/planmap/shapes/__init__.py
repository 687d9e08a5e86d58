"""Drawn shapes - model, store, and GeoJSON interchange."""

from planmap.shapes.shape import (
    AREAL_KINDS,
    SHAPE_KINDS,
    Shape,
    ShapeAttributes,
    build_shape,
)
from planmap.shapes.store import ShapeStore

__all__ = [
    "AREAL_KINDS",
    "SHAPE_KINDS",
    "Shape",
    "ShapeAttributes",
    "ShapeStore",
    "build_shape",
]
