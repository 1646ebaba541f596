"""
classify/sequence.py

Sequence diagram classification.

Each participant becomes a container whose box spans its actor boxes and
lifeline, so messages can attach to the lifeline at the height they were
drawn.  Messages connect the participants whose lifelines are nearest the
two ends of the message line; a message that returns to its own lifeline
is a self-loop.  Notes and loop frames are annotations.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import List, Optional, Sequence

from classify.base import GraphBuilder, join_labels
from models import NodeRole, PrimitiveKind, Rect, SemanticGraph, SemanticNode, VisualPrimitive
from settings import ConversionConfig


@dataclass
class _Column:
    """One participant column while it is being assembled."""
    top: VisualPrimitive
    box: Rect
    lifeline_x: float
    extra: List[VisualPrimitive]
    label: str = ""
    node: Optional[SemanticNode] = None


def _is_actor_box(p: VisualPrimitive) -> bool:
    return p.kind == PrimitiveKind.SHAPE and p.own_class("actor", "actor-top", "actor-bottom")


def _is_actor_man(p: VisualPrimitive) -> bool:
    return p.kind == PrimitiveKind.GROUP and p.own_class("actor-man")


def _is_lifeline(p: VisualPrimitive) -> bool:
    return p.kind == PrimitiveKind.PATH and p.class_contains("actor-line")


def _is_message(p: VisualPrimitive) -> bool:
    return p.kind == PrimitiveKind.PATH and p.class_contains("messageLine")


def _is_message_text(p: VisualPrimitive) -> bool:
    return p.class_contains("messageText")


def _nearest_column(columns: Sequence[_Column], x: float) -> Optional[_Column]:
    if not columns:
        return None
    return min(columns, key=lambda c: (abs(c.lifeline_x - x), c.lifeline_x))


def classify_sequence(primitives: Sequence[VisualPrimitive], diagram_type: str,
                      config: ConversionConfig) -> SemanticGraph:
    b = GraphBuilder(primitives, diagram_type, config)

    # ── Participants ──
    boxes: List[VisualPrimitive] = b.available(predicate=_is_actor_box) + b.available(predicate=_is_actor_man)
    boxes.sort(key=lambda p: (round(p.bbox.y, 1), p.bbox.x, p.index))
    columns: List[_Column] = []
    for box in boxes:
        centre = box.bbox.center.x
        same = [c for c in columns if abs(c.lifeline_x - centre) <= max(box.bbox.w / 2, 1.0)]
        if same:
            # bottom duplicate of an existing participant
            same[0].box = same[0].box.union(box.bbox)
            same[0].extra.append(box)
            continue
        columns.append(_Column(top=box, box=box.bbox, lifeline_x=centre, extra=[]))

    for line in b.available(predicate=_is_lifeline):
        col = _nearest_column(columns, line.bbox.center.x)
        if col is not None:
            col.box = col.box.union(line.bbox)
            col.lifeline_x = line.bbox.center.x
        b.consume(line)

    for col in columns:
        parts = [col.top] + col.extra
        for part in parts:
            members = b.members(part) if part.kind == PrimitiveKind.GROUP else []
            texts = [m for m in members if m.kind == PrimitiveKind.TEXT] or b.texts_inside(part.bbox)
            if not col.label:
                col.label = join_labels(texts)
            b.consume(part, *members, *texts)
        col.node = b.add_node(col.box, role=NodeRole.CONTAINER, label=col.label,
                              shape_kind="rectangle", raw_style=col.top.style,
                              source_index=col.top.index)

    # ── Messages ──
    for msg in b.available(predicate=_is_message):
        start, end = msg.start_point, msg.end_point
        if start is None or end is None:
            b.consume(msg)
            continue
        src = _nearest_column(columns, start.x)
        dst = _nearest_column(columns, end.x)
        if src is None or dst is None:
            b.consume(msg)
            continue
        mid = msg.bbox.center
        edge = b.add_edge(src.node, dst.node, path=msg,  # type: ignore[arg-type]
                          arrow_start=bool(msg.markers[0]), arrow_end=bool(msg.markers[1]),
                          curved=src is dst, midpoint=mid)
        edge.source_point = start
        edge.target_point = end
        if msg.class_contains("messageLine1"):
            edge.raw_style = replace(edge.raw_style, dashed_class=True)
        text = b.nearest_text(mid, config.classification.edge_label_distance, _is_message_text)
        if text is not None:
            edge.label = text.raw_text or ""
            b.consume(text)

    # ── Notes and frames ──
    for note in b.available(PrimitiveKind.SHAPE, lambda p: p.own_class("note")):
        label = b.take_label_inside(note.bbox)
        b.node_from_shape(note, role=NodeRole.ANNOTATION, label=label, shape_kind="note")
    for frame in b.available(PrimitiveKind.SHAPE, lambda p: p.own_class("labelBox")):
        label = b.take_label_inside(frame.bbox)
        b.node_from_shape(frame, role=NodeRole.ANNOTATION, label=label or "loop")
    for activation in b.available(predicate=lambda p: p.class_contains("activation")):
        b.consume(activation)

    # Participants span notes drawn over their lifeline, so no containment pass
    b.annotate_leftovers()
    return b.finish()
