"""
classify/swot.py

SWOT / quadrant chart classification: the quadrant rectangles are
containers (Strengths, Weaknesses, Opportunities, Threats for a SWOT
board) and the plotted points are nodes parented to the quadrant that
contains them.  Axis labels and the title are annotations.
"""

from __future__ import annotations

from typing import List, Sequence

from classify.base import GraphBuilder
from models import NodeRole, PrimitiveKind, SemanticGraph, SemanticNode, VisualPrimitive
from settings import ConversionConfig


def _is_quadrant(p: VisualPrimitive) -> bool:
    return p.kind == PrimitiveKind.GROUP and p.own_class("quadrant")


def _is_point(p: VisualPrimitive) -> bool:
    return p.kind == PrimitiveKind.GROUP and p.own_class("data-point")


def classify_swot(primitives: Sequence[VisualPrimitive], diagram_type: str,
                  config: ConversionConfig) -> SemanticGraph:
    b = GraphBuilder(primitives, diagram_type, config)

    quadrants: List[SemanticNode] = b.nodes_from_groups(_is_quadrant, NodeRole.CONTAINER)
    points: List[SemanticNode] = b.nodes_from_groups(_is_point)

    # Quadrant labels may be drawn outside the quadrant groups
    for quadrant in quadrants:
        if not quadrant.label and quadrant.geometry is not None:
            quadrant.label = b.take_label_inside(quadrant.geometry)

    for point in points:
        if point.geometry is None:
            continue
        centre = point.geometry.center
        hits = [q for q in quadrants if q.geometry is not None and q.geometry.contains_point(centre)]
        if hits:
            point.parent_id = min(hits, key=lambda q: q.geometry.area).id  # type: ignore[union-attr]

    for title in b.available(PrimitiveKind.TEXT, lambda t: t.has_class("title")):
        b.graph.title = title.raw_text or ""
        b.node_from_shape(title, role=NodeRole.ANNOTATION, label=b.graph.title, shape_kind="text")

    b.annotate_leftovers()
    return b.finish()
