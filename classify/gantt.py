"""
classify/gantt.py

Gantt chart classification: task bars become nodes at their place on the
time axis, section and chart titles become annotations.  Gantt charts
have no edges.
"""

from __future__ import annotations

from typing import Dict, Sequence

from classify.base import GraphBuilder
from models import NodeRole, PrimitiveKind, SemanticGraph, VisualPrimitive
from settings import ConversionConfig

_TASK_TEXT_CLASSES = ("taskText", "taskTextOutsideRight", "taskTextOutsideLeft")


def _is_task_bar(p: VisualPrimitive) -> bool:
    return (p.kind == PrimitiveKind.SHAPE
            and any(c == "task" or c.startswith("task") and c[4:].isdigit() for c in p.classes)
            and not p.element_id.endswith("-text"))


def _is_section_band(p: VisualPrimitive) -> bool:
    return p.kind == PrimitiveKind.SHAPE and any(c == "section" or c.startswith("section") and c[7:].isdigit()
                                                 for c in p.classes)


def classify_gantt(primitives: Sequence[VisualPrimitive], diagram_type: str,
                   config: ConversionConfig) -> SemanticGraph:
    b = GraphBuilder(primitives, diagram_type, config)

    # Task texts carry the bar id: <text id="a1-text">
    texts_by_task: Dict[str, VisualPrimitive] = {
        t.element_id[:-len("-text")]: t
        for t in b.available(PrimitiveKind.TEXT)
        if t.element_id.endswith("-text")
    }

    for bar in b.available(predicate=_is_task_bar):
        if not b.is_sized(bar):
            b.consume(bar)
            continue
        text = texts_by_task.get(bar.element_id)
        if text is None:
            inside = b.texts_inside(bar.bbox, lambda t: t.own_class(*_TASK_TEXT_CLASSES))
            text = inside[0] if inside else None
        if text is None:
            text = b.nearest_text(bar.bbox.center, config.classification.label_distance + bar.bbox.w,
                                  lambda t: t.own_class(*_TASK_TEXT_CLASSES))
        label = ""
        if text is not None:
            label = text.raw_text or ""
            b.consume(text)
        b.node_from_shape(bar, label=label, shape_kind="rounded")

    # Background section bands and grid lines carry no meaning of their own
    for band in b.available(predicate=_is_section_band):
        b.consume(band)
    for path in b.available(PrimitiveKind.PATH):
        b.consume(path)

    for title in b.available(PrimitiveKind.TEXT, lambda t: t.own_class("titleText")):
        b.graph.title = title.raw_text or ""
        b.node_from_shape(title, role=NodeRole.ANNOTATION, label=b.graph.title, shape_kind="text")

    # Section titles and axis ticks
    b.annotate_leftovers()
    return b.finish()
