"""
layout package

Coordinate mapping and the layered fallback layout.
"""

from layout.coords import normalize
from layout.layered import apply_layout, grid_layout, layered_layout, needs_layout

__all__ = ["normalize", "apply_layout", "grid_layout", "layered_layout", "needs_layout"]
