"""
tests/test_pipeline.py

End-to-end conversion of rendered SVG, and single-source conversion
through a sandbox pool.
"""

from __future__ import annotations

import asyncio
import xml.etree.ElementTree as ET
from dataclasses import replace

import pytest

import pipeline
from drawio import load_document
from errors import ConversionError, RenderFailure
from mermaid.sandbox import SandboxPool, handle_factory
from models import DiagramSource
from pipeline import convert_source, convert_svg, convert_tree, render_with_retries

from samples import (
    CLUSTER_SVG,
    EMPTY_SVG,
    FLOWCHART_SVG,
    GANTT_SVG,
    JOURNEY_SVG,
    KANBAN_SVG,
    MINDMAP_SVG,
    ORGCHART_SVG,
    OVERLAP_SVG,
    PIE_SVG,
    SEQUENCE_SVG,
    SWOT_SVG,
    TIMELINE_SVG,
    FakeRenderer,
    svg,
    transient,
    tree,
)


# ═══════════════════════════════════════════════════════════
# Synchronous conversion of rendered SVG
# ═══════════════════════════════════════════════════════════


class TestConvertSvg:
    def test_flowchart(self):
        result = convert_svg(FLOWCHART_SVG, name="flow")
        assert result.success, result.message
        assert result.diagram_type == "flowchart"
        assert result.stage is None
        root = ET.fromstring(result.document_xml)
        values = [c.get("value") for c in root.iter("mxCell")]
        assert "yes" in values
        assert "Start" in values

    @pytest.mark.parametrize("svg_text,expected_type", [
        (CLUSTER_SVG, "flowchart"),
        (SEQUENCE_SVG, "sequence"),
        (GANTT_SVG, "gantt"),
        (PIE_SVG, "pie"),
        (KANBAN_SVG, "kanban"),
        (TIMELINE_SVG, "timeline"),
        (JOURNEY_SVG, "userjourney"),
        (SWOT_SVG, "swot"),
        (MINDMAP_SVG, "mindmap"),
        (ORGCHART_SVG, "orgchart"),
    ])
    def test_grammars_convert(self, svg_text, expected_type):
        result = convert_svg(svg_text)
        assert result.success, result.message
        assert result.diagram_type == expected_type
        assert len(load_document(result.document_xml).vertices()) > 0

    def test_declared_type_wins(self):
        result = convert_svg(FLOWCHART_SVG, diagram_type="graph")
        assert result.success
        assert result.diagram_type == "flowchart"

    def test_unsupported_type(self):
        result = convert_svg(FLOWCHART_SVG, diagram_type="gitGraph")
        assert not result.success
        assert result.stage == "dispatch"
        assert "gitgraph" in result.message

    def test_empty_svg(self):
        result = convert_svg(EMPTY_SVG, diagram_type="flowchart")
        assert (result.success, result.stage) == (False, "extract")

    def test_malformed_markup(self):
        result = convert_svg("<svg><g>", diagram_type="flowchart")
        assert (result.success, result.stage) == (False, "extract")
        assert "well-formed" in result.message

    def test_missing_role_is_unsupported(self):
        result = convert_svg('<svg xmlns="http://www.w3.org/2000/svg"><rect width="5" height="5"/></svg>')
        assert result.stage == "dispatch"

    def test_overlapping_render_is_laid_out(self):
        result = convert_svg(OVERLAP_SVG)
        assert result.success, result.message
        doc = load_document(result.document_xml)
        boxes = [c.geometry for c in doc.vertices()]
        assert len(boxes) == 3
        assert all(a.intersection_area(b) == 0 for i, a in enumerate(boxes) for b in boxes[i + 1:])

    def test_schema_failure_is_build_stage(self, monkeypatch):
        monkeypatch.setattr(pipeline, "validate_document", lambda data: (False, ["cells -> 2: bad"]))
        result = convert_svg(FLOWCHART_SVG)
        assert result.stage == "build"
        assert "cells -> 2: bad" in result.message

    def test_validation_can_be_disabled(self, monkeypatch, config):
        def _explode(data):
            raise AssertionError("validation should be skipped")
        monkeypatch.setattr(pipeline, "validate_document", _explode)
        assert convert_svg(FLOWCHART_SVG, config=config.with_overrides(validate_output=False)).success

    def test_unexpected_error_is_internal(self, monkeypatch):
        def _boom(tree, diagram_type, config):
            raise KeyError("lost")
        monkeypatch.setattr(pipeline, "convert_tree", _boom)
        result = convert_svg(FLOWCHART_SVG, name="flow")
        assert (result.success, result.stage) == (False, "internal")
        assert "KeyError" in result.message
        assert result.name == "flow"

    def test_theme_reaches_styles(self, config):
        result = convert_svg(CLUSTER_SVG, config=config.with_overrides(theme="dark"))
        doc = load_document(result.document_xml)
        a = next(c for c in doc.vertices() if c.value == "A")
        assert "fillColor=#1F2020" in a.style

    def test_stray_line_kept_in_document(self):
        body = ('<g class="node" id="a"><rect x="0" y="0" width="60" height="40"/>'
                '<text x="10" y="25">A</text></g>'
                '<path d="M200,200 L300,250" style="fill:none;stroke:#f00;stroke-width:3"/>')
        result = convert_svg(svg(body), diagram_type="flowchart")
        assert result.success, result.message
        styles = [c.style for c in load_document(result.document_xml).vertices()]
        line = next(s for s in styles if s.startswith("line;"))
        assert "strokeColor=#FF0000" in line
        assert "strokeWidth=3" in line


class TestResultShape:
    def test_success_dict(self):
        data = convert_svg(FLOWCHART_SVG, name="flow").to_dict()
        assert data["success"] is True
        assert data["name"] == "flow"
        assert data["document"]["cells"][0]["id"] == "0"
        assert "stage" not in data

    def test_failure_dict(self):
        data = convert_svg(EMPTY_SVG, diagram_type="flowchart").to_dict()
        assert data["success"] is False
        assert data["stage"] == "extract"
        assert data["message"]
        assert "document" not in data


class TestConvertTree:
    def test_output_parts(self, config):
        output = convert_tree(tree(FLOWCHART_SVG), "flowchart", config)
        assert output.graph.diagram_type == "flowchart"
        assert output.data == output.document.to_dict()
        assert output.xml.startswith("<mxfile")
        assert output.warnings == []

    def test_unknown_units_fail_in_layout_stage(self, config):
        with pytest.raises(ConversionError) as exc_info:
            convert_tree(tree(FLOWCHART_SVG), "flowchart", config, source_units="furlong")
        assert exc_info.value.stage == "layout"


# ═══════════════════════════════════════════════════════════
# Rendering with retries
# ═══════════════════════════════════════════════════════════


def _pool(config, size=1):
    return SandboxPool(size, handle_factory(config.renderer))


class TestRenderRetries:
    def test_transient_failures_retried(self, fast_config):
        renderer = FakeRenderer({"src": FLOWCHART_SVG}, failures={"src": [transient(), transient()]})
        warnings = []
        pool = _pool(fast_config)

        async def _go():
            async with pool.handle() as handle:
                return await render_with_retries(renderer, DiagramSource("src", "flowchart"),
                                                 handle, fast_config, warnings)

        result = asyncio.run(_go())
        pool.close()
        assert result.role == "flowchart-v2"
        assert len(renderer.calls) == 3
        assert len(warnings) == 2
        assert "attempt 1" in warnings[0]

    def test_non_transient_not_retried(self, fast_config):
        renderer = FakeRenderer({"src": FLOWCHART_SVG},
                                failures={"src": [RenderFailure("Parse error on line 2", transient=False)]})
        pool = _pool(fast_config)

        async def _go():
            async with pool.handle() as handle:
                return await render_with_retries(renderer, DiagramSource("src", "flowchart"),
                                                 handle, fast_config, [])

        with pytest.raises(RenderFailure):
            asyncio.run(_go())
        pool.close()
        assert len(renderer.calls) == 1


# ═══════════════════════════════════════════════════════════
# One source through the pool
# ═══════════════════════════════════════════════════════════


class TestConvertSource:
    def _run(self, source, renderer, config):
        pool = _pool(config)
        try:
            return asyncio.run(convert_source(source, renderer, pool, config, index=7)), pool
        finally:
            pool.close()

    def test_success(self, fast_config):
        renderer = FakeRenderer({"src": FLOWCHART_SVG})
        result, pool = self._run(DiagramSource("src", "flowchart", "one"), renderer, fast_config)
        assert result.success
        assert (result.index, result.name) == (7, "one")
        assert pool.in_use == 0

    def test_unsupported_never_renders(self, fast_config):
        renderer = FakeRenderer({})
        result, pool = self._run(DiagramSource("src", "gitgraph"), renderer, fast_config)
        assert result.stage == "dispatch"
        assert renderer.calls == []
        assert pool.created == 0

    def test_retries_exhausted(self, fast_config):
        renderer = FakeRenderer({"src": FLOWCHART_SVG}, failures={"src": [transient()] * 3})
        result, _ = self._run(DiagramSource("src", "flowchart"), renderer, fast_config)
        assert result.stage == "render"
        assert len(result.warnings) == 2
        assert len(renderer.calls) == 3

    def test_timeout_recycles_handle(self, fast_config):
        config = fast_config.with_overrides(renderer=replace(fast_config.renderer, timeout=0.1))
        renderer = FakeRenderer({"src": FLOWCHART_SVG}, hang=["src"])
        result, pool = self._run(DiagramSource("src", "flowchart"), renderer, config)
        assert result.stage == "timeout"
        assert pool.recycled == 1
        assert pool.in_use == 0

    def test_unexpected_error_is_internal(self, fast_config):
        renderer = FakeRenderer({"src": FLOWCHART_SVG}, failures={"src": [RuntimeError("boom")]})
        result, _ = self._run(DiagramSource("src", "flowchart"), renderer, fast_config)
        assert result.stage == "internal"
        assert "RuntimeError: boom" in result.message

    def test_extraction_failure_after_render(self, fast_config):
        renderer = FakeRenderer({"src": EMPTY_SVG})
        result, _ = self._run(DiagramSource("src", "flowchart"), renderer, fast_config)
        assert result.stage == "extract"
