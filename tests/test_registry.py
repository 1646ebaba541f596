"""
tests/test_registry.py

Diagram strategy registry and dispatch.
"""

from __future__ import annotations

import pytest

from classify import STRATEGIES, classify, get_strategy
from classify.registry import DiagramStrategy, register_strategy, supported_types
from errors import GraphIntegrityError, UnsupportedDiagramTypeError
from models import SemanticEdge, SemanticGraph, SemanticNode
from settings import ConversionConfig
from styles import DEFAULT_STYLESHEETS


def _broken_classifier(primitives, diagram_type, config):
    g = SemanticGraph(diagram_type=diagram_type)
    g.add_node(SemanticNode(id="n1"))
    g.add_edge(SemanticEdge(id="e1", source_id="n1", target_id="missing"))
    return g


@pytest.fixture
def scratch_type():
    name = "scratch-test"
    yield name
    STRATEGIES.pop(name, None)
    DEFAULT_STYLESHEETS.pop(name, None)


class TestLookup:
    @pytest.mark.parametrize("alias,expected", [
        ("flowchart", "flowchart"),
        ("graph", "flowchart"),
        ("flowchart-v2", "flowchart"),
        ("sequenceDiagram", "sequence"),
        ("journey", "userjourney"),
        ("quadrantChart", "swot"),
        ("stateDiagram-v2", "state"),
        ("  Gantt ", "gantt"),
    ])
    def test_aliases(self, alias, expected):
        assert get_strategy(alias).diagram_type == expected

    @pytest.mark.parametrize("name", ["", None, "gitGraph", "sankey-beta"])
    def test_unsupported(self, name):
        with pytest.raises(UnsupportedDiagramTypeError):
            get_strategy(name)

    def test_builtin_types(self):
        types = supported_types()
        for name in ("flowchart", "sequence", "gantt", "pie", "mindmap", "orgchart",
                     "kanban", "timeline", "userjourney", "swot"):
            assert name in types

    def test_layout_policies(self):
        assert get_strategy("sequence").layout_policy == "never"
        assert get_strategy("flowchart").layout_policy == "auto"
        assert get_strategy("orgchart").layout_policy == "always"

    def test_self_loop_policy(self):
        assert get_strategy("flowchart").allows_self_loops
        assert not get_strategy("gantt").allows_self_loops


class TestRegistration:
    def test_register_and_dispatch(self, scratch_type):
        register_strategy(DiagramStrategy(diagram_type=scratch_type,
                                          classifier=lambda p, t, c: SemanticGraph(diagram_type=t),
                                          style_defaults={("node", None): {"fill": "#000000"}}))
        assert get_strategy(scratch_type).diagram_type == scratch_type
        assert DEFAULT_STYLESHEETS[scratch_type] == {("node", None): {"fill": "#000000"}}

    def test_duplicate_rejected(self, scratch_type):
        strategy = DiagramStrategy(diagram_type=scratch_type, classifier=_broken_classifier)
        register_strategy(strategy)
        with pytest.raises(ValueError):
            register_strategy(strategy)
        register_strategy(strategy, replace=True)

    def test_unknown_policy_rejected(self, scratch_type):
        with pytest.raises(ValueError):
            register_strategy(DiagramStrategy(diagram_type=scratch_type,
                                              classifier=_broken_classifier, layout_policy="sometimes"))

    def test_classify_checks_integrity(self, scratch_type):
        register_strategy(DiagramStrategy(diagram_type=scratch_type, classifier=_broken_classifier))
        with pytest.raises(GraphIntegrityError):
            classify([], scratch_type, ConversionConfig())
