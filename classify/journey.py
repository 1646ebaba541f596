"""
classify/journey.py

User journey classification: sections are containers and tasks are nodes
parented to the section drawn above them.  Satisfaction faces are
decoration; the actor legend becomes annotations.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from classify.base import GraphBuilder
from models import NodeRole, PrimitiveKind, SemanticGraph, SemanticNode, VisualPrimitive
from settings import ConversionConfig


def _section_above(task: SemanticNode, sections: Sequence[SemanticNode], tolerance: float) -> Optional[SemanticNode]:
    tg = task.geometry
    if tg is None:
        return None
    cx = tg.center.x
    hits = [s for s in sections
            if s.geometry is not None
            and s.geometry.x - tolerance <= cx <= s.geometry.right + tolerance
            and s.geometry.y <= tg.y + tolerance]
    if not hits:
        return None
    return min(hits, key=lambda s: (tg.y - s.geometry.y, s.geometry.w))  # type: ignore[union-attr]


def classify_journey(primitives: Sequence[VisualPrimitive], diagram_type: str,
                     config: ConversionConfig) -> SemanticGraph:
    b = GraphBuilder(primitives, diagram_type, config)

    # Faces: the face circle plus the eyes and mouth drawn inside it
    faces = b.available(predicate=lambda p: p.own_class("face"))
    for prim in b.available():
        if prim.own_class("face", "mouth") or any(f.bbox.contains_rect(prim.bbox) for f in faces
                                                   if prim.kind != PrimitiveKind.TEXT):
            b.consume(prim)

    sections: List[SemanticNode] = []
    for rect in b.available(PrimitiveKind.SHAPE, lambda p: p.own_class("journey-section")):
        label = b.take_label_inside(rect.bbox)
        sections.append(b.node_from_shape(rect, role=NodeRole.CONTAINER, label=label,
                                          shape_kind="rectangle"))

    tasks: List[SemanticNode] = []
    for rect in b.available(PrimitiveKind.SHAPE, lambda p: p.own_class("task")):
        label = b.take_label_inside(rect.bbox)
        tasks.append(b.node_from_shape(rect, label=label, shape_kind="rounded"))

    tol = config.classification.containment_tolerance
    for task in tasks:
        section = _section_above(task, sections, tol)
        if section is not None:
            task.parent_id = section.id

    for path in b.available(PrimitiveKind.PATH):
        b.consume(path)

    for title in b.available(PrimitiveKind.TEXT, lambda t: t.own_class("title")):
        b.graph.title = title.raw_text or ""

    b.annotate_leftovers()
    return b.finish()
