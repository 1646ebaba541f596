"""
classify/timeline.py

Timeline classification.

Period blocks and event blocks are nodes.  Each event is linked from the
period whose column it sits under, and consecutive periods are chained
left to right.  Section headers stay unlinked nodes; the title and any
other text are annotations.
"""

from __future__ import annotations

from dataclasses import replace
from typing import List, Optional, Sequence, Tuple

from classify.base import GraphBuilder, is_node_group
from models import SemanticGraph, SemanticNode, VisualPrimitive
from settings import ConversionConfig


def _period_above(event: SemanticNode, periods: Sequence[SemanticNode], tolerance: float) -> Optional[SemanticNode]:
    eg = event.geometry
    if eg is None:
        return None
    cx = eg.center.x
    best: Optional[Tuple[float, float]] = None
    found: Optional[SemanticNode] = None
    for p in periods:
        pg = p.geometry
        if pg is None or pg.y >= eg.y:
            continue
        if not (pg.x - tolerance <= cx <= pg.right + tolerance):
            continue
        key = (eg.y - pg.bottom, abs(pg.center.x - cx))
        if best is None or key < best:
            best, found = key, p
    return found


def classify_timeline(primitives: Sequence[VisualPrimitive], diagram_type: str,
                      config: ConversionConfig) -> SemanticGraph:
    b = GraphBuilder(primitives, diagram_type, config)

    pairs = b.group_nodes(is_node_group)
    nodes = [node for _, node in pairs]
    wrapped = any(g.has_class("taskWrapper", "eventWrapper") for g, _ in pairs)

    periods: List[SemanticNode] = []
    events: List[SemanticNode] = []
    if wrapped:
        for group, node in pairs:
            if group.has_class("eventWrapper"):
                events.append(node)
            elif group.has_class("taskWrapper"):
                periods.append(node)
    elif nodes:
        # No wrapper hints: the top row holds the periods
        top = min(n.geometry.y for n in nodes if n.geometry is not None)
        row_tol = config.classification.label_distance
        for node in nodes:
            if node.geometry is None:
                continue
            (periods if node.geometry.y - top <= row_tol else events).append(node)

    periods.sort(key=lambda n: (n.geometry.x, n.geometry.y) if n.geometry else (0.0, 0.0))
    for left, right in zip(periods, periods[1:]):
        b.add_edge(left, right)

    tol = config.classification.containment_tolerance
    for event in events:
        period = _period_above(event, periods, tol)
        if period is None:
            b.graph.warn(f"Event {event.label or event.id!r} has no period above it")
            continue
        edge = b.add_edge(period, event, arrow_end=False)
        edge.raw_style = replace(edge.raw_style, dashed_class=True)

    b.annotate_leftovers()
    return b.finish()
