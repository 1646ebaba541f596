"""
tests/test_classify.py

Primitive -> semantic graph classification, one class per grammar.
"""

from __future__ import annotations

import pytest

from classify import classify
from errors import UnsupportedDiagramTypeError
from models import NodeRole
from pipeline import convert_tree
from settings import ConversionConfig
from svgtree import extract

from samples import (
    CLUSTER_SVG,
    FLOWCHART_SVG,
    GANTT_SVG,
    JOURNEY_SVG,
    KANBAN_SVG,
    MINDMAP_SVG,
    ORGCHART_SVG,
    PIE_SVG,
    SEQUENCE_SVG,
    SWOT_SVG,
    TIMELINE_PLAIN_SVG,
    TIMELINE_SVG,
    svg,
    tree,
)


def run(svg_text: str, diagram_type: str):
    return classify(extract(tree(svg_text)), diagram_type, ConversionConfig())


def by_label(graph, label):
    return next(n for n in graph.nodes.values() if n.label == label)


def roles(graph, role):
    return [n for n in graph.nodes.values() if n.role == role]


# ═══════════════════════════════════════════════════════════
# Flowchart
# ═══════════════════════════════════════════════════════════


class TestFlowchart:
    def test_two_nodes_one_labelled_edge(self):
        g = run(FLOWCHART_SVG, "flowchart")
        assert len(roles(g, NodeRole.NODE)) == 2
        assert len(g.edges) == 1
        edge = g.edge_list()[0]
        assert edge.source_id == by_label(g, "Start").id
        assert edge.target_id == by_label(g, "OK?").id
        assert edge.label == "yes"
        assert edge.arrow_end and not edge.arrow_start

    def test_shape_kinds(self):
        g = run(FLOWCHART_SVG, "flowchart")
        assert by_label(g, "Start").shape_kind == "rectangle"
        assert by_label(g, "OK?").shape_kind == "diamond"

    def test_geometry_in_source_units(self):
        g = run(FLOWCHART_SVG, "flowchart")
        r = by_label(g, "OK?").geometry
        assert (r.x, r.y, r.w, r.h) == (150, 0, 80, 40)

    def test_alias_resolves(self):
        g = run(FLOWCHART_SVG, "graph")
        assert g.diagram_type == "flowchart"

    def test_no_warnings(self):
        assert run(FLOWCHART_SVG, "flowchart").warnings == []

    def test_cluster_becomes_container(self):
        g = run(CLUSTER_SVG, "flowchart")
        group = by_label(g, "Group")
        assert group.role == NodeRole.CONTAINER
        assert by_label(g, "A").parent_id == group.id
        assert by_label(g, "B").parent_id == group.id
        assert group.parent_id is None

    def test_edge_prefers_node_over_enclosing_container(self):
        g = run(CLUSTER_SVG, "flowchart")
        edge = g.edge_list()[0]
        assert edge.source_id == by_label(g, "A").id
        assert edge.target_id == by_label(g, "B").id

    def test_rounded_rect(self):
        g = run(CLUSTER_SVG, "flowchart")
        assert by_label(g, "B").shape_kind == "rounded"

    def test_group_without_outline_is_recovered_as_rectangle(self):
        body = '<g class="node" id="lonely"><text x="0" y="20">Lonely</text></g>'
        g = run(svg(body), "flowchart")
        node = by_label(g, "Lonely")
        assert node.shape_kind == "rectangle"
        assert node.role == NodeRole.NODE
        assert any("kept as rectangle" in w for w in g.warnings)

    def test_stray_text_becomes_annotation(self):
        g = run(svg('<text x="500" y="500">note to self</text>'), "flowchart")
        assert by_label(g, "note to self").role == NodeRole.ANNOTATION

    def test_unlabelled_unconnected_outline_is_annotation(self):
        g = run(svg('<rect x="0" y="0" width="50" height="50" fill="#EEEEEE"/>'), "flowchart")
        assert [n.role for n in g.nodes.values()] == [NodeRole.ANNOTATION]

    def test_labelled_outline_is_node(self):
        body = ('<rect x="0" y="0" width="80" height="40" fill="#EEEEEE" stroke="#000"/>'
                '<text x="20" y="25">Box</text>')
        g = run(svg(body), "flowchart")
        assert by_label(g, "Box").role == NodeRole.NODE
        assert len(g.nodes) == 1

    def test_self_loop_kept(self):
        body = ('<g class="node" id="a"><rect x="0" y="0" width="60" height="40"/>'
                '<text x="10" y="25">A</text></g>'
                '<path d="M60,10 C90,0 90,40 60,30" fill="none" marker-end="url(#arrowhead)"/>')
        g = run(svg(body), "flowchart")
        edge = g.edge_list()[0]
        assert edge.source_id == edge.target_id
        assert edge.curved

    def test_unconnected_line_becomes_annotation(self):
        body = ('<g class="node" id="a"><rect x="0" y="0" width="60" height="40"/>'
                '<text x="10" y="25">A</text></g>'
                '<path d="M200,200 L300,250" style="fill:none;stroke:#f00;stroke-width:3"/>')
        g = run(svg(body), "flowchart")
        line = next(n for n in g.nodes.values() if n.shape_kind == "line")
        assert line.role == NodeRole.ANNOTATION
        r = line.geometry
        assert (r.x, r.y, r.w, r.h) == (200, 200, 100, 50)
        assert line.extra_style == {}
        assert g.edges == {}

    def test_vertical_line_points_south(self):
        g = run(svg('<path d="M50,10 L50,90" stroke="#333333"/>'), "flowchart")
        line = next(iter(g.nodes.values()))
        assert line.shape_kind == "line"
        assert line.extra_style == {"direction": "south"}

    def test_invisible_and_sliver_lines_dropped(self):
        body = ('<path d="M0,0 L100,0" style="fill:none;stroke:none"/>'
                '<path d="M10,10 L11,10" stroke="#333333"/>')
        assert run(svg(body), "flowchart").nodes == {}


# ═══════════════════════════════════════════════════════════
# Sequence
# ═══════════════════════════════════════════════════════════


class TestSequence:
    def setup_method(self):
        self.g = run(SEQUENCE_SVG, "sequence")

    def test_participants_are_containers(self):
        names = sorted(n.label for n in roles(self.g, NodeRole.CONTAINER))
        assert names == ["Alice", "Bob"]

    def test_participant_spans_lifeline(self):
        alice = by_label(self.g, "Alice").geometry
        assert alice.y == 0 and alice.bottom == 200

    def test_message_edge(self):
        alice, bob = by_label(self.g, "Alice"), by_label(self.g, "Bob")
        hello = next(e for e in self.g.edges.values() if e.label == "Hello")
        assert (hello.source_id, hello.target_id) == (alice.id, bob.id)
        assert hello.source_point.x == 76 and hello.target_point.x == 271

    def test_self_message(self):
        bob = by_label(self.g, "Bob")
        loops = [e for e in self.g.edges.values() if e.source_id == e.target_id]
        assert len(loops) == 1
        assert loops[0].source_id == bob.id
        assert loops[0].curved

    def test_nothing_left_over(self):
        assert roles(self.g, NodeRole.ANNOTATION) == []


# ═══════════════════════════════════════════════════════════
# Charts and boards
# ═══════════════════════════════════════════════════════════


class TestGantt:
    def test_task_bars(self):
        g = run(GANTT_SVG, "gantt")
        tasks = roles(g, NodeRole.NODE)
        assert sorted(t.label for t in tasks) == ["Build", "Design"]
        assert all(t.shape_kind == "rounded" for t in tasks)
        assert by_label(g, "Design").geometry.x == 100

    def test_title(self):
        g = run(GANTT_SVG, "gantt")
        assert g.title == "Plan"
        assert by_label(g, "Plan").role == NodeRole.ANNOTATION

    def test_no_edges(self):
        assert run(GANTT_SVG, "gantt").edges == {}


class TestPie:
    def setup_method(self):
        self.g = run(PIE_SVG, "pie")

    def test_wedges_named_from_legend(self):
        wedges = [n for n in self.g.nodes.values() if n.shape_kind == "wedge"]
        assert sorted(w.label for w in wedges) == ["Cats (75%)", "Dogs (25%)"]

    def test_wedge_angles(self):
        dogs = by_label(self.g, "Dogs (25%)")
        cats = by_label(self.g, "Cats (75%)")
        assert dogs.extra_style == {"startAngle": "0.0000", "endAngle": "0.2500"}
        assert cats.extra_style == {"startAngle": "0.2500", "endAngle": "1.0000"}

    def test_wedge_geometry_is_full_circle(self):
        r = by_label(self.g, "Dogs (25%)").geometry
        assert (r.x, r.y, r.w, r.h) == pytest.approx((50, 50, 300, 300))

    def test_title_and_legend_annotations(self):
        assert self.g.title == "Pets"
        labels = sorted(n.label for n in roles(self.g, NodeRole.ANNOTATION))
        assert labels == ["Cats", "Dogs", "Pets"]


class TestKanban:
    def test_cards_in_columns(self):
        g = run(KANBAN_SVG, "kanban")
        todo, done = by_label(g, "Todo"), by_label(g, "Done")
        assert todo.role == done.role == NodeRole.CONTAINER
        assert by_label(g, "Write docs").parent_id == todo.id
        assert by_label(g, "Ship").parent_id == done.id
        assert g.warnings == []


# ═══════════════════════════════════════════════════════════
# Timelines, journeys and quadrants
# ═══════════════════════════════════════════════════════════


def edge_pairs(graph):
    names = {n.id: n.label for n in graph.nodes.values()}
    return sorted((names[e.source_id], names[e.target_id]) for e in graph.edges.values())


class TestTimeline:
    def setup_method(self):
        self.g = run(TIMELINE_SVG, "timeline")

    def test_periods_chained_and_linked_to_events(self):
        assert edge_pairs(self.g) == [("2021", "2022"), ("2021", "Launch"), ("2022", "Growth")]

    def test_event_links_are_dashed_without_arrow(self):
        launch = by_label(self.g, "Launch")
        edge = next(e for e in self.g.edges.values() if e.target_id == launch.id)
        assert not edge.arrow_end
        assert edge.raw_style.dashed_class

    def test_period_chain_keeps_arrow(self):
        later = by_label(self.g, "2022")
        edge = next(e for e in self.g.edges.values() if e.target_id == later.id)
        assert edge.arrow_end

    def test_event_without_period_warns(self):
        assert by_label(self.g, "Orphan").role == NodeRole.NODE
        assert any("Orphan" in w and "no period" in w for w in self.g.warnings)

    def test_title_is_annotation(self):
        assert by_label(self.g, "History").role == NodeRole.ANNOTATION

    def test_top_row_is_periods_without_wrappers(self):
        g = run(TIMELINE_PLAIN_SVG, "timeline")
        assert edge_pairs(g) == [("2021", "2022"), ("2022", "Growth")]


class TestJourney:
    def setup_method(self):
        self.g = run(JOURNEY_SVG, "journey")

    def test_sections_are_containers(self):
        names = sorted(n.label for n in roles(self.g, NodeRole.CONTAINER))
        assert names == ["Morning", "Work"]

    def test_tasks_parented_to_section_above(self):
        morning, work = by_label(self.g, "Morning"), by_label(self.g, "Work")
        assert by_label(self.g, "Wake up").parent_id == morning.id
        assert by_label(self.g, "Coffee").parent_id == morning.id
        assert by_label(self.g, "Commute").parent_id == work.id
        assert by_label(self.g, "Commute").shape_kind == "rounded"

    def test_faces_and_task_lines_dropped(self):
        assert [n.label for n in roles(self.g, NodeRole.ANNOTATION)] == ["My day"]
        assert self.g.title == "My day"
        assert self.g.edges == {}


class TestSwot:
    def setup_method(self):
        self.g = run(SWOT_SVG, "quadrantChart")

    def test_quadrants_are_containers(self):
        names = sorted(n.label for n in roles(self.g, NodeRole.CONTAINER))
        assert names == ["Opportunities", "Strengths", "Threats", "Weaknesses"]

    def test_points_parented_to_their_quadrant(self):
        assert by_label(self.g, "Brand").parent_id == by_label(self.g, "Strengths").id
        assert by_label(self.g, "Market").parent_id == by_label(self.g, "Opportunities").id

    def test_title(self):
        assert self.g.title == "Our position"
        assert [n.label for n in roles(self.g, NodeRole.ANNOTATION)] == ["Our position"]


# ═══════════════════════════════════════════════════════════
# Trees
# ═══════════════════════════════════════════════════════════


class TestMindmap:
    def setup_method(self):
        self.g = run(MINDMAP_SVG, "mindmap")

    def test_branches_by_endpoint_contact(self):
        assert edge_pairs(self.g) == [("Core", "Left"), ("Core", "Right")]
        assert all(not e.arrow_end for e in self.g.edges.values())

    def test_root_shape(self):
        assert by_label(self.g, "Core").shape_kind == "ellipse"

    def test_self_loop_dropped(self):
        assert all(e.source_id != e.target_id for e in self.g.edges.values())
        assert any("self-loop" in w and "Core" in w for w in self.g.warnings)


class TestOrgchart:
    def test_reporting_lines(self):
        g = run(ORGCHART_SVG, "orgchart")
        assert edge_pairs(g) == [("CEO", "CFO"), ("CEO", "CTO")]

    def test_always_laid_out(self):
        g = convert_tree(tree(ORGCHART_SVG), "orgchart", ConversionConfig()).graph
        ceo, cto, cfo = by_label(g, "CEO"), by_label(g, "CTO"), by_label(g, "CFO")
        assert ceo.geometry.bottom < cto.geometry.y
        assert cto.geometry.y == cfo.geometry.y
        assert all(e.routed_by_layout for e in g.edges.values())


# ═══════════════════════════════════════════════════════════
# Dispatch
# ═══════════════════════════════════════════════════════════


class TestDispatch:
    def test_unknown_type(self):
        with pytest.raises(UnsupportedDiagramTypeError) as exc_info:
            run(FLOWCHART_SVG, "gitGraph")
        assert exc_info.value.stage == "dispatch"
