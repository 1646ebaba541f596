"""
classify/hierarchy.py

Tree-shaped diagrams: mindmaps and org charts.

Mermaid draws mindmap branches centre to centre without arrowheads, so
edges are recovered by endpoint contact alone.  Trees have no self-loops.
"""

from __future__ import annotations

from typing import Sequence

from classify.base import classify_graph
from models import SemanticGraph, VisualPrimitive
from settings import ConversionConfig


def classify_mindmap(primitives: Sequence[VisualPrimitive], diagram_type: str,
                     config: ConversionConfig) -> SemanticGraph:
    return classify_graph(primitives, diagram_type, config, allow_self_loops=False)


def classify_orgchart(primitives: Sequence[VisualPrimitive], diagram_type: str,
                      config: ConversionConfig) -> SemanticGraph:
    # Geometry is replaced by the layered layout; only the hierarchy matters
    return classify_graph(primitives, diagram_type, config, allow_self_loops=False)
