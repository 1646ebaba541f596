"""
layout/coords.py

Coordinate mapping from renderer units to the draw.io canvas.

One uniform affine map is applied to every node box, edge waypoint and
attachment point: unit conversion, zoom clamping, translation to the page
margin and an optional Y flip.  Containers are then refitted bottom-up
so each one encloses all of its descendants.
"""

from __future__ import annotations

import copy
from typing import Callable, Dict, Optional

from debug_trace import trace
from models import Point, Rect, SemanticGraph, SemanticNode, union_rects
from settings import ConversionConfig, CoordinateSettings

# Canvas units (CSS px) per source unit
UNIT_SCALE: Dict[str, float] = {
    "px": 1.0,
    "pt": 96.0 / 72.0,
    "mm": 96.0 / 25.4,
    "in": 96.0,
}


def unit_scale(source_units: str, settings: CoordinateSettings) -> float:
    """Scale factor for *source_units*, clamped to the zoom range.

    Raises:
        ValueError: For an unknown unit.
    """
    try:
        scale = UNIT_SCALE[source_units.strip().lower()]
    except KeyError:
        raise ValueError(f"Unknown source units {source_units!r}; expected one of {sorted(UNIT_SCALE)}") from None
    return max(settings.min_zoom, min(settings.max_zoom, scale))


def graph_bounds(graph: SemanticGraph) -> Optional[Rect]:
    """Bounds of all node boxes, waypoints and attachment points."""
    rects = [n.geometry for n in graph.nodes.values() if n.geometry is not None]
    for e in graph.edges.values():
        pts = list(e.waypoints) + [p for p in (e.source_point, e.target_point) if p is not None]
        rects.extend(Rect(p.x, p.y, 0.0, 0.0) for p in pts)
    return union_rects(rects)


def transform_graph(graph: SemanticGraph, point_fn: Callable[[Point], Point]) -> None:
    """Apply *point_fn* to every coordinate of *graph* in place.

    Rectangles are mapped through two opposite corners so that flips keep
    a positive width and height.
    """
    for node in graph.nodes.values():
        r = node.geometry
        if r is None:
            continue
        a = point_fn(Point(r.x, r.y))
        b = point_fn(Point(r.right, r.bottom))
        node.geometry = Rect.from_points((a, b))
    for edge in graph.edges.values():
        edge.waypoints = [point_fn(p) for p in edge.waypoints]
        if edge.source_point is not None:
            edge.source_point = point_fn(edge.source_point)
        if edge.target_point is not None:
            edge.target_point = point_fn(edge.target_point)


def shift_graph(graph: SemanticGraph, dx: float, dy: float) -> None:
    if dx == 0 and dy == 0:
        return
    transform_graph(graph, lambda p: Point(p.x + dx, p.y + dy))


def align_to_margin(graph: SemanticGraph, margin: float) -> None:
    """Translate *graph* so its top-left-most element sits at *margin*."""
    bounds = graph_bounds(graph)
    if bounds is not None:
        shift_graph(graph, margin - bounds.x, margin - bounds.y)


def fit_containers(graph: SemanticGraph, settings: CoordinateSettings, keep_own: bool = True) -> None:
    """Refit container boxes around their children, deepest first.

    A container's box becomes the union of its children's boxes plus
    ``container_padding`` (and ``container_header`` above when it has a
    label).  With *keep_own* the rendered box is kept as a lower bound.
    A container is only refitted after all of its children are final.
    """
    ordered = graph.containment_order()
    for node in reversed(ordered):
        if not node.is_container:
            continue
        children = [c.geometry for c in graph.children_of(node.id) if c.geometry is not None]
        u = union_rects(children)
        if u is None:
            continue
        pad = settings.container_padding
        header = settings.container_header if node.label else 0.0
        fitted = Rect(u.x - pad, u.y - pad - header, u.w + 2 * pad, u.h + 2 * pad + header)
        if keep_own and node.geometry is not None:
            fitted = fitted.union(node.geometry)
        node.geometry = fitted


def place_missing(graph: SemanticGraph, config: ConversionConfig) -> None:
    """Give leaf nodes without geometry a default-sized box at the margin."""
    m = config.coordinates.margin
    for node in graph.nodes.values():
        if node.geometry is None and not graph.children_of(node.id):
            node.geometry = Rect(m, m, config.layout.default_node_width, config.layout.default_node_height)


def normalize(graph: SemanticGraph, source_units: str, config: ConversionConfig) -> SemanticGraph:
    """Map *graph* into canvas coordinates.

    Args:
        graph: Classified graph in source units (not modified).
        source_units: ``px``, ``pt``, ``mm`` or ``in``.
        config: Conversion config (coordinate settings).

    Returns:
        A new graph in canvas units whose containers enclose their
        descendants.
    """
    settings = config.coordinates
    scale = unit_scale(source_units, settings)
    out = copy.deepcopy(graph)

    bounds = graph_bounds(out)
    if bounds is not None:
        margin = settings.margin
        if settings.flip_y:
            def _map(p: Point) -> Point:
                return Point((p.x - bounds.x) * scale + margin, (bounds.bottom - p.y) * scale + margin)
        else:
            def _map(p: Point) -> Point:
                return Point((p.x - bounds.x) * scale + margin, (p.y - bounds.y) * scale + margin)
        transform_graph(out, _map)

    place_missing(out, config)
    fit_containers(out, settings)
    align_to_margin(out, settings.margin)
    trace(f"normalized {len(out.nodes)} nodes (scale {scale:g}, flip_y={settings.flip_y})", "LAYOUT")
    return out


def encloses_descendants(graph: SemanticGraph, node: SemanticNode, tolerance: float = 1e-6) -> bool:
    """True when *node*'s box contains the boxes of all its descendants."""
    if node.geometry is None:
        return False
    return all(d.geometry is None or node.geometry.contains_rect(d.geometry, tolerance)
               for d in graph.descendants_of(node.id))
