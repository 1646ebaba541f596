"""
drawio/builder.py

Build draw.io (mxGraphModel) documents from styled semantic graphs.

Cell ids: ``0`` is the root cell, ``1`` the default layer, and every node
and edge after that takes the next value of a per-run counter.  Cells are
emitted top-down through the containment tree so that a container always
precedes the cells that reference it as ``parent``; a child's geometry is
stored relative to its container, as draw.io expects.

Edge waypoints are written as ``<Array as="points">`` only when the
layered layout produced them.  Edges traced from the rendered SVG are
left to the editor's router.
"""

from __future__ import annotations

import html
import itertools
import math
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from debug_trace import trace
from models import Point, Rect, SemanticEdge, SemanticGraph, SemanticNode
from settings import ConversionConfig
from styles import map_style, to_style_string

ROOT_ID = "0"
LAYER_ID = "1"

# Letter page, used when the graph has no geometry at all
DEFAULT_PAGE_WIDTH = 850
DEFAULT_PAGE_HEIGHT = 1100


@dataclass
class Cell:
    """One ``mxCell``."""
    id: str
    parent: Optional[str] = None
    value: str = ""
    style: str = ""
    vertex: bool = False
    edge: bool = False
    geometry: Optional[Rect] = None
    source: Optional[str] = None
    target: Optional[str] = None
    points: List[Point] = field(default_factory=list)
    relative: bool = False

    def to_dict(self) -> Dict[str, Any]:
        geom = None
        if self.geometry is not None:
            geom = {
                "x": _num(self.geometry.x),
                "y": _num(self.geometry.y),
                "width": _num(self.geometry.w),
                "height": _num(self.geometry.h),
            }
        return {
            "id": self.id,
            "parent": self.parent,
            "value": self.value,
            "style": self.style,
            "vertex": self.vertex,
            "edge": self.edge,
            "geometry": geom,
            "source": self.source,
            "target": self.target,
            "points": [{"x": _num(p.x), "y": _num(p.y)} for p in self.points],
        }


@dataclass
class GraphDocument:
    """A single-page draw.io document."""
    cells: List[Cell]
    page_width: int = DEFAULT_PAGE_WIDTH
    page_height: int = DEFAULT_PAGE_HEIGHT
    grid_size: int = 10
    name: str = "Page-1"
    diagram_type: str = ""

    def cell(self, cell_id: str) -> Optional[Cell]:
        for c in self.cells:
            if c.id == cell_id:
                return c
        return None

    def vertices(self) -> List[Cell]:
        return [c for c in self.cells if c.vertex]

    def edges(self) -> List[Cell]:
        return [c for c in self.cells if c.edge]

    def to_dict(self) -> Dict[str, Any]:
        """Flat JSON rendition (validated by ``schemas.validate_document``)."""
        return {
            "name": self.name,
            "diagram_type": self.diagram_type,
            "page": {
                "width": self.page_width,
                "height": self.page_height,
                "grid_size": self.grid_size,
            },
            "cells": [c.to_dict() for c in self.cells],
        }


def _num(value: float) -> float:
    """Round coordinates to 2 decimals; integral values become ints."""
    v = round(float(value), 2)
    return int(v) if v.is_integer() else v


def _fmt(value: float) -> str:
    return str(_num(value))


def label_html(label: str) -> str:
    """Escape a plain label for an ``html=1`` cell; newlines become ``<br>``."""
    return "<br>".join(html.escape(line, quote=False) for line in label.split("\n"))


# ─────────────────────────────────────────────────────────
# Build
# ─────────────────────────────────────────────────────────


def _attachment(point: Optional[Point], geom: Optional[Rect], prefix: str) -> Dict[str, str]:
    """Fixed connection point inside a shape, as draw.io exit/entry keys."""
    if point is None or geom is None or geom.w <= 0 or geom.h <= 0:
        return {}
    fx = min(1.0, max(0.0, (point.x - geom.x) / geom.w))
    fy = min(1.0, max(0.0, (point.y - geom.y) / geom.h))
    return {
        f"{prefix}X": f"{fx:.4f}".rstrip("0").rstrip(".") or "0",
        f"{prefix}Y": f"{fy:.4f}".rstrip("0").rstrip(".") or "0",
        f"{prefix}Perimeter": "0",
    }


def build(graph: SemanticGraph, config: ConversionConfig) -> GraphDocument:
    """Build the cell list for *graph*.

    Nodes or edges without a style are mapped with the config's theme.

    Args:
        graph: Normalized (and optionally laid out) graph.
        config: Conversion config (theme, page margin, default sizes).

    Returns:
        The document; ``serialize`` turns it into mxfile XML.
    """
    cells: List[Cell] = [Cell(id=ROOT_ID), Cell(id=LAYER_ID, parent=ROOT_ID)]
    counter = itertools.count(2)
    cell_of: Dict[str, str] = {}
    absolute: Dict[str, Rect] = {}

    for node in graph.containment_order():
        geom = node.geometry or Rect(config.coordinates.margin, config.coordinates.margin,
                                     config.layout.default_node_width, config.layout.default_node_height)
        absolute[node.id] = geom
        parent_cell = LAYER_ID
        rel = geom
        if node.parent_id is not None:
            parent_cell = cell_of[node.parent_id]
            pg = absolute[node.parent_id]
            rel = Rect(geom.x - pg.x, geom.y - pg.y, geom.w, geom.h)
        cid = str(next(counter))
        cell_of[node.id] = cid
        cells.append(Cell(
            id=cid,
            parent=parent_cell,
            value=label_html(node.label),
            style=_node_style(node, graph.diagram_type, config),
            vertex=True,
            geometry=rel,
        ))

    for edge in graph.edge_list():
        extra: Dict[str, str] = {}
        extra.update(_attachment(edge.source_point, absolute.get(edge.source_id), "exit"))
        extra.update(_attachment(edge.target_point, absolute.get(edge.target_id), "entry"))
        cells.append(Cell(
            id=str(next(counter)),
            parent=LAYER_ID,
            value=label_html(edge.label),
            style=_edge_style(edge, graph.diagram_type, config, extra),
            edge=True,
            source=cell_of[edge.source_id],
            target=cell_of[edge.target_id],
            points=list(edge.waypoints) if edge.routed_by_layout else [],
            relative=True,
        ))

    bounds = graph.bounds()
    margin = config.coordinates.margin
    if bounds is not None:
        page_w = int(math.ceil(bounds.right + margin))
        page_h = int(math.ceil(bounds.bottom + margin))
    else:
        page_w, page_h = DEFAULT_PAGE_WIDTH, DEFAULT_PAGE_HEIGHT

    doc = GraphDocument(cells=cells, page_width=page_w, page_height=page_h,
                        name=graph.title or "Page-1", diagram_type=graph.diagram_type)
    trace(f"built {len(doc.vertices())} vertices, {len(doc.edges())} edges, "
          f"page {page_w}x{page_h}", "BUILD")
    return doc


def _node_style(node: SemanticNode, diagram_type: str, config: ConversionConfig) -> str:
    spec = node.style or map_style(node.raw_style, diagram_type, node.role.value,
                                   node.shape_kind, config.theme)
    return to_style_string(spec, node.shape_kind, node.role.value, extra=node.extra_style)


def _edge_style(edge: SemanticEdge, diagram_type: str, config: ConversionConfig,
                extra: Dict[str, str]) -> str:
    spec = edge.style or map_style(edge.raw_style, diagram_type, "edge", None, config.theme)
    return to_style_string(spec, role="edge", extra=extra, arrow_start=edge.arrow_start,
                           arrow_end=edge.arrow_end, curved=edge.curved)


# ─────────────────────────────────────────────────────────
# Serialization
# ─────────────────────────────────────────────────────────


def to_element(document: GraphDocument) -> ET.Element:
    """Build the ``<mxfile>`` element tree for *document*."""
    mxfile = ET.Element("mxfile", {"host": "mmd2drawio", "type": "device"})
    diagram = ET.SubElement(mxfile, "diagram", {
        "id": f"{document.diagram_type or 'diagram'}-1",
        "name": document.name,
    })
    model = ET.SubElement(diagram, "mxGraphModel", {
        "dx": "0", "dy": "0",
        "grid": "1", "gridSize": str(document.grid_size),
        "guides": "1", "tooltips": "1", "connect": "1", "arrows": "1",
        "fold": "1", "page": "1", "pageScale": "1",
        "pageWidth": str(document.page_width),
        "pageHeight": str(document.page_height),
        "math": "0", "shadow": "0",
    })
    root = ET.SubElement(model, "root")

    for cell in document.cells:
        attrs: Dict[str, str] = {"id": cell.id}
        if cell.vertex or cell.edge:
            attrs["value"] = cell.value
            attrs["style"] = cell.style
        if cell.vertex:
            attrs["vertex"] = "1"
        if cell.edge:
            attrs["edge"] = "1"
        if cell.parent is not None:
            attrs["parent"] = cell.parent
        if cell.source is not None:
            attrs["source"] = cell.source
        if cell.target is not None:
            attrs["target"] = cell.target
        el = ET.SubElement(root, "mxCell", attrs)

        if cell.vertex and cell.geometry is not None:
            g = cell.geometry
            ET.SubElement(el, "mxGeometry", {
                "x": _fmt(g.x), "y": _fmt(g.y),
                "width": _fmt(g.w), "height": _fmt(g.h),
                "as": "geometry",
            })
        elif cell.edge:
            geo = ET.SubElement(el, "mxGeometry", {"relative": "1", "as": "geometry"})
            if cell.points:
                arr = ET.SubElement(geo, "Array", {"as": "points"})
                for p in cell.points:
                    ET.SubElement(arr, "mxPoint", {"x": _fmt(p.x), "y": _fmt(p.y)})
    return mxfile


def serialize(document: GraphDocument, pretty: bool = True) -> str:
    """Serialize *document* as an uncompressed ``.drawio`` XML string."""
    el = to_element(document)
    if pretty:
        ET.indent(el)
    return ET.tostring(el, encoding="unicode")


def load_document(xml_text: str) -> GraphDocument:
    """Parse an uncompressed ``.drawio`` file back into a ``GraphDocument``.

    Only the first page is read.

    Raises:
        ValueError: If the XML holds no ``mxGraphModel``.
    """
    root = ET.fromstring(xml_text)
    model = root if root.tag == "mxGraphModel" else root.find(".//mxGraphModel")
    if model is None:
        raise ValueError("No mxGraphModel found (compressed diagrams are not supported)")
    diagram = root.find("diagram")

    cells: List[Cell] = []
    for el in model.iter("mxCell"):
        geo = el.find("mxGeometry")
        geometry = None
        points: List[Point] = []
        if geo is not None:
            if el.get("vertex") == "1":
                geometry = Rect(float(geo.get("x", "0")), float(geo.get("y", "0")),
                                float(geo.get("width", "0")), float(geo.get("height", "0")))
            arr = geo.find('Array[@as="points"]')
            if arr is not None:
                points = [Point(float(p.get("x", "0")), float(p.get("y", "0"))) for p in arr.findall("mxPoint")]
        cells.append(Cell(
            id=el.get("id", ""),
            parent=el.get("parent"),
            value=el.get("value", ""),
            style=el.get("style", ""),
            vertex=el.get("vertex") == "1",
            edge=el.get("edge") == "1",
            geometry=geometry,
            source=el.get("source"),
            target=el.get("target"),
            points=points,
            relative=geo is not None and geo.get("relative") == "1",
        ))
    return GraphDocument(
        cells=cells,
        page_width=int(float(model.get("pageWidth", DEFAULT_PAGE_WIDTH))),
        page_height=int(float(model.get("pageHeight", DEFAULT_PAGE_HEIGHT))),
        grid_size=int(float(model.get("gridSize", "10"))),
        name=diagram.get("name", "Page-1") if diagram is not None else "Page-1",
    )
