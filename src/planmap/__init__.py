"""PLANMAP engine - image-overlay alignment and shape annotation on a map."""

__version__ = "0.1.0"
