"""
tests/test_models.py

Diagram type detection, geometry helpers and semantic graph invariants.
"""

from __future__ import annotations

import pytest

from errors import GraphIntegrityError
from models import (
    DiagramSource,
    NodeRole,
    Point,
    Rect,
    SemanticEdge,
    SemanticGraph,
    SemanticNode,
    detect_diagram_type,
    make_id_gen,
    resolve_diagram_type,
    union_rects,
)


# ═══════════════════════════════════════════════════════════
# Diagram types
# ═══════════════════════════════════════════════════════════


class TestDiagramTypes:
    def test_resolve(self):
        assert resolve_diagram_type("sequenceDiagram") == "sequence"
        assert resolve_diagram_type("nope") is None
        assert resolve_diagram_type("nope", "nope") == "nope"

    @pytest.mark.parametrize("text,expected", [
        ("flowchart TD\n  A-->B", "flowchart"),
        ("graph LR; A-->B", "flowchart"),
        ("%% a comment\n\nsequenceDiagram\n  A->>B: hi", "sequence"),
        ("%%{init: {'theme': 'dark'}}%%\npie title Pets", "pie"),
        ("---\ntitle: Plan\n---\ngantt\n  title Plan", "gantt"),
        ("stateDiagram-v2\n  [*] --> A", "state"),
        ("gitGraph\n  commit", "gitgraph"),
        ("", None),
        ("\n  %% only comments\n", None),
    ])
    def test_detect(self, text, expected):
        assert detect_diagram_type(text) == expected

    def test_source_sniffs_type(self):
        assert DiagramSource.from_text("journey\n  title Day").diagram_type == "userjourney"

    def test_source_declared_type(self):
        src = DiagramSource.from_text("anything", "Kanban", name="board")
        assert (src.diagram_type, src.name) == ("kanban", "board")


# ═══════════════════════════════════════════════════════════
# Geometry
# ═══════════════════════════════════════════════════════════


class TestRect:
    def test_edges_and_centre(self):
        r = Rect(10, 20, 30, 40)
        assert (r.right, r.bottom) == (40, 60)
        assert r.center == Point(25, 40)
        assert r.area == 1200

    def test_union_and_from_points(self):
        assert Rect(0, 0, 10, 10).union(Rect(5, 5, 10, 10)) == Rect(0, 0, 15, 15)
        assert Rect.from_points([Point(3, 4), Point(-1, 8)]) == Rect(-1, 4, 4, 4)
        assert union_rects([]) is None

    def test_containment(self):
        outer = Rect(0, 0, 100, 100)
        assert outer.contains_rect(Rect(10, 10, 20, 20))
        assert not outer.contains_rect(Rect(90, 90, 20, 20))
        assert outer.contains_rect(Rect(-0.5, 0, 10, 10), tolerance=1)
        assert outer.contains_point(Point(100, 100))

    def test_overlap(self):
        a = Rect(0, 0, 10, 10)
        assert a.intersection_area(Rect(5, 5, 10, 10)) == 25
        assert a.intersection_area(Rect(10, 0, 5, 5)) == 0
        assert not a.intersects(Rect(10, 0, 5, 5))

    def test_distance_to_point(self):
        r = Rect(0, 0, 10, 10)
        assert r.distance_to_point(Point(5, 5)) == 0
        assert r.distance_to_point(Point(13, 14)) == 5

    def test_inflate(self):
        assert Rect(10, 10, 10, 10).inflate(5) == Rect(5, 5, 20, 20)

    def test_ids(self):
        next_id = make_id_gen("n")
        assert [next_id(), next_id(), next_id()] == ["n1", "n2", "n3"]


# ═══════════════════════════════════════════════════════════
# Semantic graph
# ═══════════════════════════════════════════════════════════


def _graph() -> SemanticGraph:
    g = SemanticGraph(diagram_type="flowchart")
    g.add_node(SemanticNode(id="outer", role=NodeRole.CONTAINER))
    g.add_node(SemanticNode(id="a", parent_id="inner"))
    g.add_node(SemanticNode(id="inner", role=NodeRole.CONTAINER, parent_id="outer"))
    g.add_node(SemanticNode(id="b"))
    g.add_edge(SemanticEdge(id="e1", source_id="a", target_id="b"))
    return g


class TestSemanticGraph:
    def test_valid(self):
        _graph().validate()

    def test_containment_order(self):
        assert [n.id for n in _graph().containment_order()] == ["outer", "inner", "a", "b"]

    def test_descendants_and_depth(self):
        g = _graph()
        assert [n.id for n in g.descendants_of("outer")] == ["inner", "a"]
        assert g.depth_of("a") == 2

    def test_duplicate_ids(self):
        g = _graph()
        with pytest.raises(GraphIntegrityError):
            g.add_node(SemanticNode(id="a"))
        with pytest.raises(GraphIntegrityError):
            g.add_edge(SemanticEdge(id="e1", source_id="a", target_id="b"))

    def test_missing_parent(self):
        g = _graph()
        g.nodes["b"].parent_id = "ghost"
        with pytest.raises(GraphIntegrityError, match="missing parent"):
            g.validate()

    def test_parent_must_be_container(self):
        g = _graph()
        g.nodes["a"].parent_id = "b"
        with pytest.raises(GraphIntegrityError, match="non-container"):
            g.validate()

    def test_containment_cycle(self):
        g = _graph()
        g.nodes["outer"].parent_id = "inner"
        with pytest.raises(GraphIntegrityError, match="cycle"):
            g.validate()

    def test_dangling_edge(self):
        g = _graph()
        g.add_edge(SemanticEdge(id="e2", source_id="a", target_id="ghost"))
        with pytest.raises(GraphIntegrityError, match="missing target"):
            g.validate()

    def test_self_loop_policy(self):
        g = _graph()
        g.add_edge(SemanticEdge(id="e2", source_id="b", target_id="b"))
        with pytest.raises(GraphIntegrityError, match="Self-loop"):
            g.validate()
        g.validate(allow_self_loops=True)

    def test_bounds_include_waypoints(self):
        g = SemanticGraph()
        g.add_node(SemanticNode(id="a", geometry=Rect(0, 0, 10, 10)))
        g.add_node(SemanticNode(id="b", geometry=Rect(20, 0, 10, 10)))
        g.add_edge(SemanticEdge(id="e1", source_id="a", target_id="b", waypoints=[Point(15, 50)]))
        assert g.bounds() == Rect(0, 0, 30, 50)
