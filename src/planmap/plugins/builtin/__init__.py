"""Capabilities shipped with PLANMAP."""
