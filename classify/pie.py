"""
classify/pie.py

Pie chart classification.

Wedges become ``wedge`` nodes whose geometry is the full circle they are
cut from; the wedge itself is described by ``startAngle``/``endAngle``
(fractions of a turn, clockwise from twelve o'clock), which is how the
draw.io pie shape is parameterized.  Legend entries and the title are
annotations.  Pie charts have no edges.
"""

from __future__ import annotations

import math
from typing import Dict, List, Optional, Sequence, Tuple

from classify.base import GraphBuilder, join_labels
from models import NodeRole, Point, PrimitiveKind, Rect, SemanticGraph, SemanticNode, VisualPrimitive
from settings import ConversionConfig


def _turn(centre: Point, p: Point) -> float:
    """Clockwise fraction of a turn from twelve o'clock (SVG y-down)."""
    a = math.atan2(p.x - centre.x, centre.y - p.y)
    return (a / (2 * math.pi)) % 1.0


def wedge_geometry(prim: VisualPrimitive) -> Tuple[Point, float, float, float]:
    """Return ``(centre, radius, start, end)`` of a wedge path.

    The arc runs from the point before the ``A`` command to its end point;
    the remaining vertex is the centre.  A path made only of arcs is a
    full circle.
    """
    arc_start: Optional[Point] = None
    arc_end: Optional[Point] = None
    others: List[Point] = []
    prev: Optional[Point] = None
    for seg in prim.segments:
        if seg.command == "A" and seg.end is not None:
            if arc_start is None:
                arc_start = prev
            arc_end = seg.end
        elif seg.command in ("M", "L") and seg.end is not None:
            others.append(seg.end)
        if seg.end is not None:
            prev = seg.end

    if arc_start is None or arc_end is None:
        c = prim.bbox.center
        return c, max(prim.bbox.w, prim.bbox.h) / 2, 0.0, 1.0

    candidates = [p for p in others if p.distance(arc_start) > 0.5 and p.distance(arc_end) > 0.5]
    if not candidates or arc_start.distance(arc_end) < 0.5:
        c = prim.bbox.center
        return c, max(prim.bbox.w, prim.bbox.h) / 2, 0.0, 1.0
    centre = candidates[0]
    radius = centre.distance(arc_start)
    start, end = _turn(centre, arc_start), _turn(centre, arc_end)
    # a sweep through twelve o'clock ends past 1.0
    if end <= start:
        end += 1.0
    return centre, radius, start, end


def _in_sweep(angle: float, start: float, end: float) -> bool:
    return start <= angle <= end or start <= angle + 1.0 <= end


def _color_key(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def classify_pie(primitives: Sequence[VisualPrimitive], diagram_type: str,
                 config: ConversionConfig) -> SemanticGraph:
    b = GraphBuilder(primitives, diagram_type, config)

    for outer in b.available(predicate=lambda p: p.own_class("pieOuterCircle")):
        b.consume(outer)

    # ── Legend ──
    legend_names: Dict[str, str] = {}
    for legend in b.available(PrimitiveKind.GROUP, lambda p: p.own_class("legend")):
        members = b.members(legend)
        texts = [m for m in members if m.kind == PrimitiveKind.TEXT]
        swatches = [m for m in members if m.kind == PrimitiveKind.SHAPE]
        name = join_labels(texts)
        for swatch in swatches:
            legend_names.setdefault(_color_key(swatch.style.fill), name)
        b.consume(legend, *members)
        raw = swatches[0].style if swatches else legend.style
        b.add_node(legend.bbox, role=NodeRole.ANNOTATION, label=name, shape_kind="text",
                   raw_style=raw, source_index=legend.index)

    # ── Wedges ──
    wedges: List[Tuple[SemanticNode, Point, float, float]] = []
    for wedge in b.available(predicate=lambda p: p.own_class("pieCircle")):
        centre, radius, start, end = wedge_geometry(wedge)
        b.consume(wedge)
        node = b.add_node(
            Rect(centre.x - radius, centre.y - radius, 2 * radius, 2 * radius),
            label=legend_names.get(_color_key(wedge.style.fill), ""),
            shape_kind="wedge",
            raw_style=wedge.style,
            source_index=wedge.index,
        )
        node.extra_style = {"startAngle": f"{start:.4f}", "endAngle": f"{end:.4f}"}
        wedges.append((node, centre, start, end))

    # Percentage labels sit inside their wedge's sweep
    for text in b.available(PrimitiveKind.TEXT, lambda t: t.own_class("slice")):
        point = text.anchor or text.bbox.center
        for node, centre, start, end in wedges:
            if _in_sweep(_turn(centre, point), start, end):
                node.label = f"{node.label} ({text.raw_text})" if node.label else (text.raw_text or "")
                b.consume(text)
                break

    for title in b.available(PrimitiveKind.TEXT, lambda t: t.own_class("pieTitleText")):
        b.graph.title = title.raw_text or ""
        b.node_from_shape(title, role=NodeRole.ANNOTATION, label=b.graph.title, shape_kind="text")

    b.annotate_leftovers()
    return b.finish()
