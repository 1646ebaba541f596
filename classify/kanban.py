"""
classify/kanban.py

Kanban board classification: columns are containers, cards are nodes
parented to the column whose box contains the card's centre.
"""

from __future__ import annotations

from typing import List, Sequence

from classify.base import GraphBuilder, is_cluster, is_node_group
from models import NodeRole, PrimitiveKind, SemanticGraph, SemanticNode, VisualPrimitive
from settings import ConversionConfig


def classify_kanban(primitives: Sequence[VisualPrimitive], diagram_type: str,
                    config: ConversionConfig) -> SemanticGraph:
    b = GraphBuilder(primitives, diagram_type, config)

    columns: List[SemanticNode] = b.nodes_from_groups(is_cluster, NodeRole.CONTAINER)
    cards: List[SemanticNode] = b.nodes_from_groups(is_node_group)

    # Boards rendered without item groups: outlines inside a column are cards
    for shape in b.available(PrimitiveKind.SHAPE):
        if not b.is_sized(shape):
            continue
        centre = shape.bbox.center
        if any(c.geometry is not None and c.geometry.contains_point(centre) for c in columns):
            label = b.take_label_inside(shape.bbox)
            cards.append(b.node_from_shape(shape, label=label))

    tol = config.classification.containment_tolerance
    for card in cards:
        if card.geometry is None:
            continue
        centre = card.geometry.center
        hits = [c for c in columns
                if c.geometry is not None and c.geometry.contains_point(centre, tol)]
        if hits:
            card.parent_id = min(hits, key=lambda c: c.geometry.area).id  # type: ignore[union-attr]
        else:
            b.graph.warn(f"Card {card.label or card.id!r} lies outside every column")

    b.annotate_leftovers()
    return b.finish()
