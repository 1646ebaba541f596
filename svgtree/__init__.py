"""
svgtree package

Flattening of rendered SVG trees into typed visual primitives.
"""

from svgtree.extractor import extract

__all__ = ["extract"]
