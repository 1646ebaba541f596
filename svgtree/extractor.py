"""
svgtree/extractor.py

Flatten a rendered SVG tree into typed visual primitives.

The walk follows document order and accumulates transforms down the tree,
so every primitive carries absolute geometry in SVG user units.  Groups
are flattened; each primitive records the identifiers and class tokens of
its enclosing groups (``group_path`` / ``group_classes``) for container
inference and per-grammar classification.

Text is read from both plain ``<text>`` elements and the XHTML inside
``<foreignObject>`` (Mermaid's default HTML-label mode).
"""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from dataclasses import replace
from typing import Dict, List, Optional, Tuple

from debug_trace import trace
from errors import ExtractionError
from models import (
    PrimitiveKind,
    Rect,
    RenderedVisualTree,
    StyleAttrs,
    VisualPrimitive,
    union_rects,
)
from svgtree.paths import (
    IDENTITY,
    Matrix,
    apply,
    is_closed,
    multiply,
    parse_length,
    parse_path,
    parse_points,
    parse_transform,
    segments_bbox,
    transform_rect,
)

SVG_NS = "http://www.w3.org/2000/svg"
XHTML_NS = "http://www.w3.org/1999/xhtml"

# Elements whose subtree never contributes visible primitives
_SKIP_TAGS = {
    "defs", "style", "marker", "title", "desc", "metadata", "clipPath",
    "mask", "symbol", "pattern", "linearGradient", "radialGradient", "filter",
    "script",
}

# Presentation properties that inherit from enclosing groups
_INHERITED = ("fill", "stroke", "stroke-width", "stroke-dasharray",
              "font-family", "font-size", "color")

_DEFAULT_FONT_SIZE = 16.0
_MARKER_RE = re.compile(r"url\(\s*['\"]?#([^'\")]+)['\"]?\s*\)")


# ─────────────────────────────────────────────────────────
# Public API
# ─────────────────────────────────────────────────────────


def extract(tree: RenderedVisualTree) -> List[VisualPrimitive]:
    """Walk *tree* and return its primitives in document order.

    Args:
        tree: The rendered SVG tree.

    Returns:
        Primitives indexed ``0..n-1`` in document order.  Group primitives
        precede their members.

    Raises:
        ExtractionError: If the root is not ``<svg>``, the tree yields no
            primitives, or a text element has unusable geometry.
    """
    root = tree.root
    if root is None or _local(root.tag) != "svg":
        raise ExtractionError("Rendered visual tree has no <svg> root element")

    out: List[VisualPrimitive] = []
    _walk_children(root, IDENTITY, (), (), {}, out)

    if not any(p.kind != PrimitiveKind.GROUP for p in out):
        raise ExtractionError("Rendered visual tree is empty")

    primitives = [replace(p, index=k) for k, p in enumerate(out)]
    for p in primitives:
        trace(f"#{p.index} {p.kind.value} {p.shape_tag or '-'} {p.element_id or ''} "
              f"{p.bbox.rounded()} {p.raw_text or ''}", "PRIM")
    trace(f"extracted {len(primitives)} primitives", "EXTRACT")
    return primitives


# ─────────────────────────────────────────────────────────
# Tree walk
# ─────────────────────────────────────────────────────────


def _local(tag: str) -> str:
    """Remove namespace prefix from a tag."""
    return tag.rsplit("}", 1)[-1] if isinstance(tag, str) else ""


def _walk_children(
    parent: ET.Element,
    matrix: Matrix,
    group_path: Tuple[str, ...],
    group_classes: Tuple[str, ...],
    inherited: Dict[str, str],
    out: List[VisualPrimitive],
) -> None:
    for child in parent:
        _walk(child, matrix, group_path, group_classes, inherited, out)


def _walk(
    el: ET.Element,
    parent_matrix: Matrix,
    group_path: Tuple[str, ...],
    group_classes: Tuple[str, ...],
    inherited: Dict[str, str],
    out: List[VisualPrimitive],
) -> None:
    tag = _local(el.tag)
    if tag in _SKIP_TAGS:
        return
    props = _style_props(el, inherited)
    if props.get("display") == "none" or props.get("visibility") == "hidden":
        return

    matrix = multiply(parent_matrix, parse_transform(el.get("transform")))

    if tag in ("g", "a", "svg"):
        _walk_group(el, matrix, group_path, group_classes, props, out)
    elif tag == "switch":
        # render only the first alternative, as a viewer would
        for child in el:
            before = len(out)
            _walk(child, matrix, group_path, group_classes, props, out)
            if len(out) > before:
                break
    elif tag == "foreignObject":
        prim = _foreign_object(el, matrix, group_path, group_classes, props)
        if prim is not None:
            out.append(prim)
    elif tag == "text":
        prim = _text(el, matrix, group_path, group_classes, props)
        if prim is not None:
            out.append(prim)
    elif tag in ("rect", "circle", "ellipse", "polygon", "polyline", "line", "path"):
        prim = _geometry(el, tag, matrix, group_path, group_classes, props)
        if prim is not None:
            out.append(prim)


def _walk_group(
    el: ET.Element,
    matrix: Matrix,
    group_path: Tuple[str, ...],
    group_classes: Tuple[str, ...],
    props: Dict[str, str],
    out: List[VisualPrimitive],
) -> None:
    classes = tuple(el.get("class", "").split())
    name = el.get("id", "") or (classes[0] if classes else "")
    child_path = group_path + (name,) if name else group_path
    child_classes = group_classes + classes

    members: List[VisualPrimitive] = []
    _walk_children(el, matrix, child_path, child_classes, props, members)
    if not members:
        return

    if name:
        bbox = union_rects(p.bbox for p in members if p.kind != PrimitiveKind.GROUP)
        if bbox is not None:
            out.append(VisualPrimitive(
                index=-1,
                kind=PrimitiveKind.GROUP,
                bbox=bbox,
                style=_style_attrs(props, classes),
                shape_tag="g",
                classes=classes,
                element_id=el.get("id", ""),
                group_path=group_path,
                group_classes=group_classes,
            ))
    out.extend(members)


# ─────────────────────────────────────────────────────────
# Styles
# ─────────────────────────────────────────────────────────


def _style_props(el: ET.Element, inherited: Dict[str, str]) -> Dict[str, str]:
    """Merge inherited properties, presentation attributes and inline style."""
    props = {k: v for k, v in inherited.items() if k in _INHERITED}
    for key in ("fill", "stroke", "stroke-width", "stroke-dasharray", "font-family",
                "font-size", "color", "display", "visibility", "rx",
                "marker-start", "marker-end", "text-anchor", "dominant-baseline"):
        value = el.get(key)
        if value is not None and value.strip():
            props[key] = value.strip()
    for decl in (el.get("style") or "").split(";"):
        if ":" not in decl:
            continue
        key, value = decl.split(":", 1)
        value = value.replace("!important", "").strip()
        if value:
            props[key.strip().lower()] = value
    return props


def _style_attrs(props: Dict[str, str], classes: Tuple[str, ...], font_color: Optional[str] = None) -> StyleAttrs:
    dashed = any(c in ("dashed", "dotted") or "dashed" in c or "dotted" in c for c in classes)
    return StyleAttrs(
        fill=props.get("fill"),
        stroke=props.get("stroke"),
        stroke_width=props.get("stroke-width"),
        dasharray=props.get("stroke-dasharray"),
        font_family=props.get("font-family"),
        font_size=props.get("font-size"),
        font_color=font_color if font_color is not None else props.get("color"),
        rx=props.get("rx"),
        dashed_class=dashed,
    )


def _markers(props: Dict[str, str]) -> Tuple[str, str]:
    def _id(value: Optional[str]) -> str:
        if not value:
            return ""
        m = _MARKER_RE.search(value)
        return m.group(1) if m else ""
    return _id(props.get("marker-start")), _id(props.get("marker-end"))


# ─────────────────────────────────────────────────────────
# Geometry elements
# ─────────────────────────────────────────────────────────


def _geometry(
    el: ET.Element,
    tag: str,
    matrix: Matrix,
    group_path: Tuple[str, ...],
    group_classes: Tuple[str, ...],
    props: Dict[str, str],
) -> Optional[VisualPrimitive]:
    classes = tuple(el.get("class", "").split())
    style = _style_attrs(props, classes)
    common = dict(
        style=style,
        shape_tag=tag,
        classes=classes,
        element_id=el.get("id", ""),
        group_path=group_path,
        group_classes=group_classes,
        markers=_markers(props),
    )

    if tag == "rect":
        x = parse_length(el.get("x"))
        y = parse_length(el.get("y"))
        w = parse_length(el.get("width"))
        h = parse_length(el.get("height"))
        if w <= 0 and h <= 0:
            return None
        corners = (apply(matrix, x, y), apply(matrix, x + w, y),
                   apply(matrix, x + w, y + h), apply(matrix, x, y + h))
        return VisualPrimitive(index=-1, kind=PrimitiveKind.SHAPE,
                               bbox=transform_rect(matrix, x, y, w, h),
                               closed=True, points=corners, **common)

    if tag in ("circle", "ellipse"):
        cx = parse_length(el.get("cx"))
        cy = parse_length(el.get("cy"))
        if tag == "circle":
            rx = ry = parse_length(el.get("r"))
        else:
            rx = parse_length(el.get("rx"))
            ry = parse_length(el.get("ry"))
        if rx <= 0 or ry <= 0:
            return None
        return VisualPrimitive(index=-1, kind=PrimitiveKind.SHAPE,
                               bbox=transform_rect(matrix, cx - rx, cy - ry, 2 * rx, 2 * ry),
                               closed=True, **common)

    if tag == "polygon":
        pts = tuple(parse_points(el.get("points", ""), matrix))
        if len(pts) < 3:
            return None
        return VisualPrimitive(index=-1, kind=PrimitiveKind.SHAPE,
                               bbox=Rect.from_points(pts), closed=True, points=pts, **common)

    if tag == "line":
        p1 = apply(matrix, parse_length(el.get("x1")), parse_length(el.get("y1")))
        p2 = apply(matrix, parse_length(el.get("x2")), parse_length(el.get("y2")))
        return VisualPrimitive(index=-1, kind=PrimitiveKind.PATH,
                               bbox=Rect.from_points((p1, p2)), points=(p1, p2), **common)

    if tag == "polyline":
        pts = tuple(parse_points(el.get("points", ""), matrix))
        if len(pts) < 2:
            return None
        return VisualPrimitive(index=-1, kind=PrimitiveKind.PATH,
                               bbox=Rect.from_points(pts), points=pts, **common)

    # path
    segments = tuple(parse_path(el.get("d", ""), matrix))
    if not segments:
        return None
    closed = is_closed(segments)
    fill = (props.get("fill") or "").lower()
    filled = fill not in ("", "none", "transparent")
    kind = PrimitiveKind.SHAPE if closed and filled else PrimitiveKind.PATH
    return VisualPrimitive(index=-1, kind=kind, bbox=segments_bbox(segments),
                           segments=segments, closed=closed, **common)


# ─────────────────────────────────────────────────────────
# Text elements
# ─────────────────────────────────────────────────────────


def _font_size(props: Dict[str, str]) -> float:
    raw = props.get("font-size", "")
    size = parse_length(raw, _DEFAULT_FONT_SIZE)
    if raw.endswith("em") or raw.endswith("ex"):
        size *= _DEFAULT_FONT_SIZE if raw.endswith("em") else _DEFAULT_FONT_SIZE / 2
    return size if size > 0 else _DEFAULT_FONT_SIZE


def _coord(el: ET.Element, name: str) -> Optional[float]:
    """Read a text coordinate; ``None`` when absent.

    Raises:
        ExtractionError: If the attribute is present but not a number.
    """
    raw = el.get(name)
    if raw is None:
        return None
    first = raw.strip().split()[0] if raw.strip() else ""
    try:
        return float(re.sub(r"[a-z%]+$", "", first))
    except ValueError:
        raise ExtractionError(f"Text element has unusable {name}={raw!r}") from None


def _text(
    el: ET.Element,
    matrix: Matrix,
    group_path: Tuple[str, ...],
    group_classes: Tuple[str, ...],
    props: Dict[str, str],
) -> Optional[VisualPrimitive]:
    text = " ".join(p.strip() for p in el.itertext() if p.strip())
    if not text:
        return None

    x = _coord(el, "x")
    y = _coord(el, "y")
    # position on the first tspan when the text element itself has none
    for tspan in el.iter(f"{{{SVG_NS}}}tspan"):
        if x is None:
            x = _coord(tspan, "x")
        if y is None:
            y = _coord(tspan, "y")
        break
    x = x or 0.0
    y = y or 0.0

    size = _font_size(props)
    lines = max(1, sum(1 for t in el.iter(f"{{{SVG_NS}}}tspan") if (t.text or "").strip()))
    longest = max((len((t.text or "").strip()) for t in el.iter(f"{{{SVG_NS}}}tspan")), default=0)
    width = max(longest, len(text) if lines == 1 else longest) * size * 0.55
    height = size * 1.2 * lines

    anchor_mode = props.get("text-anchor", "start")
    left = x - width / 2 if anchor_mode == "middle" else (x - width if anchor_mode == "end" else x)
    baseline = props.get("dominant-baseline", "")
    top = y - height / 2 if baseline in ("middle", "central") else y - size * 0.85

    classes = tuple(el.get("class", "").split())
    return VisualPrimitive(
        index=-1,
        kind=PrimitiveKind.TEXT,
        bbox=transform_rect(matrix, left, top, width, height),
        style=_style_attrs(props, classes, font_color=props.get("fill")),
        raw_text=text,
        anchor=apply(matrix, x, y),
        shape_tag="text",
        classes=classes,
        element_id=el.get("id", ""),
        group_path=group_path,
        group_classes=group_classes,
    )


def _xhtml_text(fo: ET.Element) -> Tuple[str, Optional[str]]:
    """Collect visible text and the first CSS colour inside a foreignObject."""
    texts: List[str] = []
    color: Optional[str] = None
    for el in fo.iter():
        if el is fo:
            continue
        if color is None:
            m = re.search(r"(?:^|;)\s*color:\s*([^;]+)", el.get("style", ""))
            if m:
                color = m.group(1).strip()
        if el.text and el.text.strip():
            texts.append(el.text.strip())
        if el.tail and el.tail.strip():
            texts.append(el.tail.strip())
    return " ".join(texts), color


def _foreign_object(
    el: ET.Element,
    matrix: Matrix,
    group_path: Tuple[str, ...],
    group_classes: Tuple[str, ...],
    props: Dict[str, str],
) -> Optional[VisualPrimitive]:
    text, color = _xhtml_text(el)
    if not text:
        return None
    if el.get("width") is None and el.get("height") is None:
        raise ExtractionError(f"foreignObject label {text!r} has no geometry")

    x = parse_length(el.get("x"))
    y = parse_length(el.get("y"))
    w = parse_length(el.get("width"))
    h = parse_length(el.get("height"))
    bbox = transform_rect(matrix, x, y, w, h)
    classes = tuple(el.get("class", "").split())
    return VisualPrimitive(
        index=-1,
        kind=PrimitiveKind.TEXT,
        bbox=bbox,
        style=_style_attrs(props, classes, font_color=color or props.get("color")),
        raw_text=text,
        anchor=bbox.center,
        shape_tag="foreignObject",
        classes=classes,
        element_id=el.get("id", ""),
        group_path=group_path,
        group_classes=group_classes,
    )
