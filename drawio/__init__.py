"""
drawio package

draw.io (mxGraphModel) document building and serialization.
"""

from drawio.builder import Cell, GraphDocument, build, load_document, serialize

__all__ = ["Cell", "GraphDocument", "build", "load_document", "serialize"]
