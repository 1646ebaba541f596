"""
classify/flowchart.py

Flowchart classification.  Also used for the other node/edge/cluster
grammars Mermaid renders the same way: state, class, ER, requirement and
block diagrams.
"""

from __future__ import annotations

from typing import Sequence

from classify.base import classify_graph, is_cluster, is_node_group
from models import SemanticGraph, VisualPrimitive
from settings import ConversionConfig


def classify_flowchart(primitives: Sequence[VisualPrimitive], diagram_type: str,
                       config: ConversionConfig) -> SemanticGraph:
    """Nodes from ``g.node`` groups, containers from ``g.cluster``, edges from paths."""
    return classify_graph(primitives, diagram_type, config,
                          node_predicate=is_node_group, cluster_predicate=is_cluster,
                          allow_self_loops=True)
