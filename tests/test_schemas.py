"""
tests/test_schemas.py

Graph document schema validation and reference checks.
"""

from __future__ import annotations

import copy
import json

import pytest

from drawio import build
from models import NodeRole, Rect, SemanticEdge, SemanticGraph, SemanticNode
from schemas import check_references, get_graph_document_schema, validate_document, validate_json_string


@pytest.fixture
def document(config):
    g = SemanticGraph(diagram_type="flowchart")
    g.add_node(SemanticNode(id="box", role=NodeRole.CONTAINER, label="Box", geometry=Rect(0, 0, 200, 100)))
    g.add_node(SemanticNode(id="a", label="A", parent_id="box", geometry=Rect(20, 40, 60, 30)))
    g.add_node(SemanticNode(id="b", label="B", geometry=Rect(300, 40, 60, 30)))
    g.add_edge(SemanticEdge(id="e1", source_id="a", target_id="b", label="go"))
    return build(g, config).to_dict()


class TestSchema:
    def test_schema_loads(self):
        schema = get_graph_document_schema()
        assert schema["$schema"].endswith("2020-12/schema")

    def test_built_document_is_valid(self, document):
        ok, errors = validate_document(document)
        assert ok, errors

    def test_missing_name(self, document):
        del document["name"]
        ok, errors = validate_document(document)
        assert not ok
        assert any("name" in e for e in errors)

    def test_style_must_end_with_semicolon(self, document):
        document["cells"][2]["style"] = "rounded=0"
        ok, errors = validate_document(document)
        assert not ok
        assert errors[0].startswith("cells -> 2")

    def test_vertex_needs_geometry(self, document):
        document["cells"][2]["geometry"] = None
        assert not validate_document(document)[0]

    def test_edge_needs_endpoints(self, document):
        document["cells"][-1]["target"] = None
        assert not validate_document(document)[0]

    def test_root_cell_fixed(self, document):
        document["cells"][0]["id"] = "root"
        assert not validate_document(document)[0]

    def test_unknown_cell_key(self, document):
        document["cells"][2]["colour"] = "red"
        assert not validate_document(document)[0]


class TestReferences:
    def test_consistent(self, document):
        assert check_references(document) == []

    def test_duplicate_id(self, document):
        document["cells"][3]["id"] = document["cells"][2]["id"]
        ok, errors = validate_document(document)
        assert not ok
        assert any("duplicate id" in e for e in errors)

    def test_parent_declared_later(self, document):
        cells = document["cells"]
        cells[2], cells[3] = cells[3], cells[2]
        errors = check_references(document)
        assert any("is not declared before" in e for e in errors)

    def test_edge_to_edge(self, document):
        broken = copy.deepcopy(document)
        edge = broken["cells"][-1]
        extra = dict(edge, id="99", source=edge["id"])
        broken["cells"].append(extra)
        errors = check_references(broken)
        assert errors == [f"cells -> {len(broken['cells']) - 1}: source {edge['id']!r} is not a vertex"]


class TestJsonString:
    def test_parse_error(self):
        ok, errors, data = validate_json_string("{not json")
        assert not ok
        assert data is None
        assert errors[0].startswith("JSON parse error")

    def test_round_trip(self, document):
        ok, errors, data = validate_json_string(json.dumps(document))
        assert ok, errors
        assert data == document
