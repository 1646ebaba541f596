"""
classify/base.py

Generic classification rules shared by every diagram grammar.

``GraphBuilder`` holds one classification run: the extracted primitives,
which of them have been claimed, and the ``SemanticGraph`` being built.
Per-grammar classifiers drive it with their own class hints; diagrams
that draw nodes, edges and clusters (flowchart, state, class, er, ...)
use ``classify_graph`` directly.

Rules implemented here:

* shape signature of a closed outline -> ``shape_kind``
* text inside (or close to) a shape -> that node's label
* a path with an arrowhead, or whose ends touch two node boxes -> edge
* a ``cluster`` shape -> container; nodes are parented to the smallest
  container that encloses them
* anything left over that is visible -> annotation (open lines keep
  their extent as a ``line`` shape)
"""

from __future__ import annotations

import math
import re
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from debug_trace import trace
from errors import ClassificationError
from models import (
    NodeRole,
    Point,
    PrimitiveKind,
    Rect,
    SemanticEdge,
    SemanticGraph,
    SemanticNode,
    StyleAttrs,
    VisualPrimitive,
    make_id_gen,
    union_rects,
)
from settings import ClassificationSettings, ConversionConfig
from svgtree.paths import is_curved, path_midpoint, segment_vertices

PrimitivePredicate = Callable[[VisualPrimitive], bool]

# Class tokens Mermaid puts on edge label groups
EDGE_LABEL_CLASSES = ("edgeLabel", "edgeLabels")

# Decoration that never becomes a node
_DECORATION_CLASSES = ("background", "labelBkg", "label-background")

_NUM_RE = re.compile(r"[-+]?(?:\d+\.?\d*|\.\d+)")


# ─────────────────────────────────────────────────────────
# Group structure
# ─────────────────────────────────────────────────────────


def group_name(prim: VisualPrimitive) -> str:
    return prim.element_id or (prim.classes[0] if prim.classes else "")


def group_members(primitives: Sequence[VisualPrimitive]) -> Dict[int, List[VisualPrimitive]]:
    """Map each group primitive's index to the primitives drawn inside it.

    The extractor emits a group before its members, and members follow it
    contiguously, so membership is the run of primitives whose group path
    extends the group's own path.
    """
    members: Dict[int, List[VisualPrimitive]] = {}
    for pos, group in enumerate(primitives):
        if group.kind != PrimitiveKind.GROUP:
            continue
        prefix = group.group_path + (group_name(group),)
        depth = len(prefix)
        run: List[VisualPrimitive] = []
        for prim in primitives[pos + 1:]:
            if prim.group_path[:depth] != prefix:
                break
            run.append(prim)
        members[group.index] = run
    return members


def is_node_group(prim: VisualPrimitive) -> bool:
    """Mermaid node groups: ``class="node ..."`` or ``*-node``."""
    return prim.kind == PrimitiveKind.GROUP and any(
        c == "node" or (c.endswith("-node") and c != "label-node") for c in prim.classes)


def is_cluster(prim: VisualPrimitive) -> bool:
    return "cluster" in prim.classes


def is_edge_label(prim: VisualPrimitive) -> bool:
    return prim.has_class(*EDGE_LABEL_CLASSES)


def is_visible(prim: VisualPrimitive) -> bool:
    """False for outlines with neither fill nor stroke."""
    fill = (prim.style.fill or "").strip().lower()
    stroke = (prim.style.stroke or "none").strip().lower()
    return not (fill in ("none", "transparent") and stroke in ("none", "transparent"))


# ─────────────────────────────────────────────────────────
# Shape signatures
# ─────────────────────────────────────────────────────────


def _positive(value: Optional[str]) -> bool:
    if not value:
        return False
    m = _NUM_RE.match(value.strip())
    return bool(m) and float(m.group(0)) > 0


def _interior_angles(vertices: Sequence[Point]) -> List[float]:
    angles: List[float] = []
    n = len(vertices)
    for i in range(n):
        prev_pt, cur, nxt = vertices[i - 1], vertices[i], vertices[(i + 1) % n]
        ax, ay = prev_pt.x - cur.x, prev_pt.y - cur.y
        bx, by = nxt.x - cur.x, nxt.y - cur.y
        la, lb = math.hypot(ax, ay), math.hypot(bx, by)
        if la == 0 or lb == 0:
            angles.append(0.0)
            continue
        cos = max(-1.0, min(1.0, (ax * bx + ay * by) / (la * lb)))
        angles.append(math.degrees(math.acos(cos)))
    return angles


def _direction(a: Point, b: Point) -> float:
    return math.degrees(math.atan2(b.y - a.y, b.x - a.x))


def _parallel(d1: float, d2: float, tolerance: float) -> bool:
    diff = abs(d1 - d2) % 180.0
    return min(diff, 180.0 - diff) <= tolerance


def _is_diamond(vertices: Sequence[Point], bbox: Rect) -> bool:
    """Every vertex sits on the midpoint of one side of the bounding box."""
    tol = max(2.0, 0.05 * max(bbox.w, bbox.h))
    c = bbox.center
    mids = (Point(c.x, bbox.y), Point(bbox.right, c.y), Point(c.x, bbox.bottom), Point(bbox.x, c.y))
    return all(any(v.distance(m) <= tol for v in vertices) for m in mids)


def _dedupe(vertices: Iterable[Point]) -> List[Point]:
    out: List[Point] = []
    for v in vertices:
        if not out or v.distance(out[-1]) > 0.5:
            out.append(v)
    if len(out) > 1 and out[0].distance(out[-1]) <= 0.5:
        out.pop()
    return out


def _straight_runs(prim: VisualPrimitive) -> List[Tuple[Point, Point]]:
    runs: List[Tuple[Point, Point]] = []
    prev: Optional[Point] = None
    for seg in prim.segments:
        if seg.command == "L" and prev is not None and seg.end is not None:
            runs.append((prev, seg.end))
        if seg.end is not None:
            prev = seg.end
    return runs


def _curved_signature(prim: VisualPrimitive) -> str:
    bbox = prim.bbox
    short = 0.2 * min(bbox.w, bbox.h)
    runs = [(a, b) for a, b in _straight_runs(prim) if a.distance(b) > short]
    if not runs:
        return "ellipse"
    vertical = [r for r in runs if abs(r[0].x - r[1].x) <= 1.0 and abs(r[0].y - r[1].y) >= 0.3 * bbox.h]
    horizontal = [r for r in runs if abs(r[0].y - r[1].y) <= 1.0]
    band = 0.3 * bbox.h
    curve_ends = [s.end for s in prim.segments if s.is_curve and s.end is not None]
    top = any(p.y <= bbox.y + band for p in curve_ends)
    bottom = any(p.y >= bbox.bottom - band for p in curve_ends)
    if len(vertical) >= 2 and not horizontal and top and bottom:
        return "cylinder"
    return "rounded"


def shape_signature(prim: VisualPrimitive, settings: ClassificationSettings) -> str:
    """Infer the semantic shape kind of a closed outline.

    Returns:
        One of ``rectangle``, ``rounded``, ``diamond``, ``ellipse``,
        ``parallelogram``, ``hexagon``, ``cylinder``.
    """
    if prim.shape_tag in ("circle", "ellipse"):
        return "ellipse"
    rounded = _positive(prim.style.rx)
    if prim.segments and is_curved(prim.segments):
        return _curved_signature(prim)

    vertices = _dedupe(prim.points if prim.points else segment_vertices(prim.segments))
    tol = settings.angle_tolerance
    if len(vertices) == 4:
        if prim.shape_tag != "rect" and _is_diamond(vertices, prim.bbox):
            return "diamond"
        if all(abs(a - 90.0) <= tol for a in _interior_angles(vertices)):
            return "rounded" if rounded else "rectangle"
        dirs = [_direction(vertices[i], vertices[(i + 1) % 4]) for i in range(4)]
        if _parallel(dirs[0], dirs[2], tol) and _parallel(dirs[1], dirs[3], tol):
            return "parallelogram"
        return "rectangle"
    if len(vertices) == 6:
        return "hexagon"
    return "rounded" if rounded else "rectangle"


# ─────────────────────────────────────────────────────────
# Graph builder
# ─────────────────────────────────────────────────────────


class GraphBuilder:
    """Claims primitives and turns them into semantic nodes and edges."""

    def __init__(self, primitives: Sequence[VisualPrimitive], diagram_type: str, config: ConversionConfig):
        self.primitives: List[VisualPrimitive] = list(primitives)
        self.diagram_type = diagram_type
        self.config = config
        self.settings: ClassificationSettings = config.classification
        self.graph = SemanticGraph(diagram_type=diagram_type)
        self.consumed: Set[int] = set()
        self._members = group_members(self.primitives)
        self._next_node = make_id_gen("n")
        self._next_edge = make_id_gen("e")
        self._edge_mid: Dict[str, Point] = {}

    # ── selection ──

    def available(self, kind: Optional[PrimitiveKind] = None,
                  predicate: Optional[PrimitivePredicate] = None) -> List[VisualPrimitive]:
        """Unclaimed primitives, optionally filtered, in document order."""
        return [p for p in self.primitives
                if p.index not in self.consumed
                and (kind is None or p.kind == kind)
                and (predicate is None or predicate(p))]

    def consume(self, *prims: VisualPrimitive) -> None:
        for p in prims:
            self.consumed.add(p.index)

    def members(self, group: VisualPrimitive) -> List[VisualPrimitive]:
        return self._members.get(group.index, [])

    def is_sized(self, prim: VisualPrimitive) -> bool:
        size = self.settings.min_shape_size
        return prim.bbox.w >= size and prim.bbox.h >= size

    # ── nodes ──

    def add_node(self, bbox: Optional[Rect], role: NodeRole = NodeRole.NODE, label: str = "",
                 shape_kind: str = "rectangle", raw_style: Optional[StyleAttrs] = None,
                 source_index: Optional[int] = None, parent_id: Optional[str] = None) -> SemanticNode:
        node = SemanticNode(
            id=self._next_node(),
            role=role,
            label=label,
            shape_kind=shape_kind,
            geometry=bbox,
            parent_id=parent_id,
            source_index=source_index,
            raw_style=raw_style or StyleAttrs(),
        )
        return self.graph.add_node(node)

    def node_from_shape(self, prim: VisualPrimitive, role: NodeRole = NodeRole.NODE,
                        label: str = "", shape_kind: Optional[str] = None) -> SemanticNode:
        """Create a node from one closed outline and claim it."""
        self.consume(prim)
        kind = shape_kind or shape_signature(prim, self.settings)
        return self.add_node(prim.bbox, role=role, label=label, shape_kind=kind,
                             raw_style=prim.style, source_index=prim.index)

    def node_from_group(self, group: VisualPrimitive, role: NodeRole = NodeRole.NODE) -> SemanticNode:
        """Create one node from a Mermaid node/cluster group.

        The largest closed outline of the group gives the shape; its texts
        give the label.  All members are claimed.

        Raises:
            ClassificationError: If the group holds no usable outline.
        """
        members = self.members(group)
        shapes = [p for p in members if p.kind == PrimitiveKind.SHAPE and self.is_sized(p)]
        if not shapes:
            raise ClassificationError(f"No shape rule matches group {group_name(group)!r}")
        primary = max(shapes, key=lambda p: (p.bbox.area, -p.index))
        label = join_labels(p for p in members if p.kind == PrimitiveKind.TEXT and not is_edge_label(p))
        self.consume(group, *members)
        kind = shape_signature(primary, self.settings)
        return self.add_node(primary.bbox, role=role, label=label, shape_kind=kind,
                             raw_style=primary.style, source_index=primary.index)

    def recover_group(self, group: VisualPrimitive, exc: ClassificationError,
                      role: NodeRole = NodeRole.NODE) -> SemanticNode:
        """Fallback for a group no rule matched: a labeled rectangle."""
        self.graph.warn(f"{exc.message}; kept as rectangle")
        trace(f"{exc.message}; kept as rectangle", "WARN")
        members = self.members(group)
        label = join_labels(p for p in members if p.kind == PrimitiveKind.TEXT)
        self.consume(group, *members)
        return self.add_node(group.bbox, role=role, label=label, shape_kind="rectangle",
                             raw_style=group.style, source_index=group.index)

    def group_nodes(self, predicate: PrimitivePredicate,
                    role: NodeRole = NodeRole.NODE) -> List[Tuple[VisualPrimitive, SemanticNode]]:
        """Turn every outermost group matching *predicate* into a node.

        Returns:
            ``(group, node)`` pairs in document order.
        """
        created: List[Tuple[VisualPrimitive, SemanticNode]] = []
        for group in self.available(PrimitiveKind.GROUP, predicate):
            if group.index in self.consumed:
                continue  # claimed as a member of an earlier group
            try:
                node = self.node_from_group(group, role)
            except ClassificationError as exc:
                node = self.recover_group(group, exc, role)
            created.append((group, node))
        return created

    def nodes_from_groups(self, predicate: PrimitivePredicate,
                          role: NodeRole = NodeRole.NODE) -> List[SemanticNode]:
        return [node for _, node in self.group_nodes(predicate, role)]

    # ── edges ──

    def add_edge(self, source: SemanticNode, target: SemanticNode, label: str = "",
                 path: Optional[VisualPrimitive] = None, arrow_start: bool = False,
                 arrow_end: bool = True, waypoints: Optional[List[Point]] = None,
                 curved: bool = False, midpoint: Optional[Point] = None) -> SemanticEdge:
        edge = SemanticEdge(
            id=self._next_edge(),
            source_id=source.id,
            target_id=target.id,
            label=label,
            waypoints=list(waypoints or []),
            arrow_start=arrow_start,
            arrow_end=arrow_end,
            curved=curved,
            raw_style=path.style if path is not None else StyleAttrs(),
            source_index=path.index if path is not None else None,
        )
        if path is not None:
            self.consume(path)
        if midpoint is None:
            midpoint = _midpoint(source, target)
        if midpoint is not None:
            self._edge_mid[edge.id] = midpoint
        return self.graph.add_edge(edge)

    def edge_from_path(self, prim: VisualPrimitive, allow_self_loops: bool = True) -> Optional[SemanticEdge]:
        """Connect the nodes nearest both ends of *prim*.

        A path qualifies when it carries an arrowhead marker or when both
        ends lie within ``endpoint_tolerance`` of a node box.
        """
        start, end = prim.start_point, prim.end_point
        if start is None or end is None:
            return None
        tol = self.settings.endpoint_tolerance
        src = self.nearest_node(start, tol)
        dst = self.nearest_node(end, tol)
        if src is None or dst is None:
            if not prim.has_arrow:
                return None
            src = src or self.nearest_node(start)
            dst = dst or self.nearest_node(end)
            if src is None or dst is None:
                return None
        if src.id == dst.id and not allow_self_loops:
            self.graph.warn(f"Dropped self-loop on {src.label or src.id!r}")
            trace(f"dropped self-loop path #{prim.index} on {src.id}", "WARN")
            self.consume(prim)
            return None

        if prim.points:
            inner = list(prim.points[1:-1])
        else:
            inner = segment_vertices(prim.segments)[1:-1]
        mid = path_midpoint(prim.segments) if prim.segments else _polyline_mid(prim.points)
        return self.add_edge(
            src, dst,
            path=prim,
            arrow_start=bool(prim.markers[0]),
            arrow_end=bool(prim.markers[1]),
            waypoints=inner,
            curved=bool(prim.segments) and is_curved(prim.segments),
            midpoint=mid,
        )

    def edge_midpoint(self, edge: SemanticEdge) -> Optional[Point]:
        return self._edge_mid.get(edge.id)

    # ── geometric queries ──

    def nearest_node(self, point: Point, tolerance: Optional[float] = None,
                     include_containers: bool = True) -> Optional[SemanticNode]:
        """Node whose box is closest to *point*; the smaller box wins ties."""
        best: Optional[Tuple[float, float, int]] = None
        best_node: Optional[SemanticNode] = None
        for order, node in enumerate(self.graph.nodes.values()):
            if node.role == NodeRole.ANNOTATION or node.geometry is None:
                continue
            if node.is_container and not include_containers:
                continue
            dist = node.geometry.distance_to_point(point)
            if tolerance is not None and dist > tolerance:
                continue
            key = (dist, node.geometry.area, order)
            if best is None or key < best:
                best, best_node = key, node
        return best_node

    def smallest_enclosing(self, point: Point, nodes: Iterable[SemanticNode]) -> Optional[SemanticNode]:
        tol = self.settings.containment_tolerance
        hits = [n for n in nodes if n.geometry is not None and n.geometry.contains_point(point, tol)]
        if not hits:
            return None
        return min(hits, key=lambda n: n.geometry.area)  # type: ignore[union-attr]

    def texts_inside(self, rect: Rect, predicate: Optional[PrimitivePredicate] = None) -> List[VisualPrimitive]:
        tol = self.settings.containment_tolerance
        return [t for t in self.available(PrimitiveKind.TEXT, predicate)
                if rect.contains_point(_text_point(t), tol)]

    def take_label_inside(self, rect: Rect, predicate: Optional[PrimitivePredicate] = None) -> str:
        texts = self.texts_inside(rect, predicate)
        self.consume(*texts)
        return join_labels(texts)

    def nearest_text(self, point: Point, max_distance: float,
                     predicate: Optional[PrimitivePredicate] = None) -> Optional[VisualPrimitive]:
        best: Optional[VisualPrimitive] = None
        best_dist = max_distance
        for t in self.available(PrimitiveKind.TEXT, predicate):
            dist = t.bbox.distance_to_point(point)
            if dist <= best_dist and (best is None or dist < best_dist):
                best, best_dist = t, dist
        return best

    # ── labels ──

    def attach_labels(self) -> None:
        """Distribute unclaimed text over edges, nodes and containers."""
        s = self.settings
        edges = self.graph.edge_list()
        plain = [n for n in self.graph.nodes.values() if n.role == NodeRole.NODE]
        containers = self.graph.containers()

        # Edge-label groups go to the nearest edge
        for text in self.available(PrimitiveKind.TEXT, is_edge_label):
            edge = self._nearest_edge(_text_point(text), s.edge_label_distance, edges)
            if edge is not None:
                edge.label = _append(edge.label, text.raw_text)
                self.consume(text)

        for text in self.available(PrimitiveKind.TEXT):
            point = _text_point(text)
            node = self.smallest_enclosing(point, plain)
            if node is not None:
                node.label = _append(node.label, text.raw_text)
                self.consume(text)
                continue
            edge = self._nearest_edge(point, s.edge_label_distance,
                                      [e for e in edges if not e.label])
            if edge is not None:
                edge.label = text.raw_text or ""
                self.consume(text)
                continue
            container = self.smallest_enclosing(point, [c for c in containers if not c.label])
            if container is not None:
                container.label = text.raw_text or ""
                self.consume(text)
                continue
            near = [n for n in plain if not n.label and n.geometry is not None
                    and n.geometry.distance_to_point(point) <= s.label_distance]
            if near:
                target = min(near, key=lambda n: n.geometry.distance_to_point(point))  # type: ignore[union-attr]
                target.label = text.raw_text or ""
                self.consume(text)

    def _nearest_edge(self, point: Point, max_distance: float,
                      edges: Sequence[SemanticEdge]) -> Optional[SemanticEdge]:
        best: Optional[SemanticEdge] = None
        best_dist = max_distance
        for edge in edges:
            mid = self._edge_mid.get(edge.id)
            if mid is None:
                continue
            dist = mid.distance(point)
            if dist <= best_dist and (best is None or dist < best_dist):
                best, best_dist = edge, dist
        return best

    # ── containment ──

    def assign_parents(self, nodes: Optional[Iterable[SemanticNode]] = None) -> None:
        """Parent each node to the smallest container enclosing its box.

        Containers are ordered by (area, discovery order) so containment
        can never form a cycle.
        """
        order = {nid: k for k, nid in enumerate(self.graph.nodes)}
        containers = self.graph.containers()
        tol = self.settings.containment_tolerance

        def _outranks(c: SemanticNode, n: SemanticNode) -> bool:
            ca, na = c.geometry.area, n.geometry.area  # type: ignore[union-attr]
            return ca > na or (ca == na and order[c.id] < order[n.id])

        for node in list(nodes if nodes is not None else self.graph.nodes.values()):
            if node.parent_id is not None or node.geometry is None:
                continue
            best: Optional[SemanticNode] = None
            for c in containers:
                if c.id == node.id or c.geometry is None or not _outranks(c, node):
                    continue
                if not c.geometry.contains_rect(node.geometry, tol):
                    continue
                if best is None or (c.geometry.area, -order[c.id]) < (best.geometry.area, -order[best.id]):  # type: ignore[union-attr]
                    best = c
            if best is not None:
                node.parent_id = best.id

    # ── leftovers ──

    def annotate_leftovers(self) -> None:
        """Unclaimed text, visible outlines and visible lines become annotations.

        Only invisible or sliver primitives are dropped.
        """
        for prim in self.available():
            if prim.kind == PrimitiveKind.TEXT:
                self.node_from_shape(prim, role=NodeRole.ANNOTATION, label=prim.raw_text or "",
                                     shape_kind="text")
            elif prim.kind == PrimitiveKind.SHAPE and self.is_sized(prim) and is_visible(prim):
                self.node_from_shape(prim, role=NodeRole.ANNOTATION)
            elif prim.kind == PrimitiveKind.PATH and self.is_stray_line(prim):
                node = self.node_from_shape(prim, role=NodeRole.ANNOTATION, shape_kind="line")
                if prim.bbox.h > prim.bbox.w:
                    node.extra_style = {"direction": "south"}
            else:
                self.consume(prim)

    def is_stray_line(self, prim: VisualPrimitive) -> bool:
        """A visible open path long enough to matter."""
        return (prim.kind == PrimitiveKind.PATH and is_visible(prim)
                and max(prim.bbox.w, prim.bbox.h) >= self.settings.min_shape_size)

    def finish(self) -> SemanticGraph:
        g = self.graph
        trace(f"{self.diagram_type}: {len(g.nodes)} nodes, {len(g.edges)} edges, "
              f"{len(g.warnings)} warnings", "CLASSIFY")
        return g


# ─────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────


def join_labels(texts: Iterable[VisualPrimitive]) -> str:
    """Join text primitives in document order, one per line."""
    ordered = sorted(texts, key=lambda t: t.index)
    return "\n".join(t.raw_text for t in ordered if t.raw_text)


def _append(label: str, text: Optional[str]) -> str:
    if not text:
        return label
    return f"{label}\n{text}" if label else text


def _text_point(text: VisualPrimitive) -> Point:
    return text.anchor if text.anchor is not None else text.bbox.center


def _midpoint(a: SemanticNode, b: SemanticNode) -> Optional[Point]:
    if a.geometry is None or b.geometry is None:
        return None
    ca, cb = a.geometry.center, b.geometry.center
    return Point((ca.x + cb.x) / 2, (ca.y + cb.y) / 2)


def _polyline_mid(points: Sequence[Point]) -> Optional[Point]:
    if not points:
        return None
    rect = Rect.from_points(points)
    return rect.center


def bbox_of(prims: Iterable[VisualPrimitive]) -> Optional[Rect]:
    return union_rects(p.bbox for p in prims)


# ─────────────────────────────────────────────────────────
# Generic graph classifier
# ─────────────────────────────────────────────────────────


def classify_graph(
    primitives: Sequence[VisualPrimitive],
    diagram_type: str,
    config: ConversionConfig,
    node_predicate: PrimitivePredicate = is_node_group,
    cluster_predicate: PrimitivePredicate = is_cluster,
    allow_self_loops: bool = True,
) -> SemanticGraph:
    """Classify a node/edge/cluster diagram with the generic rules.

    Args:
        primitives: Extractor output.
        diagram_type: Diagram type value recorded on the graph.
        config: Conversion config (classification tolerances).
        node_predicate: Selects groups that draw one node each.
        cluster_predicate: Selects groups/outlines that draw a container.
        allow_self_loops: Keep paths that start and end on the same node.

    Returns:
        The classified graph (geometry still in source units).
    """
    b = GraphBuilder(primitives, diagram_type, config)

    # Grouped nodes and clusters
    b.nodes_from_groups(node_predicate)
    b.nodes_from_groups(cluster_predicate, NodeRole.CONTAINER)
    for shape in b.available(PrimitiveKind.SHAPE, cluster_predicate):
        if b.is_sized(shape):
            b.node_from_shape(shape, role=NodeRole.CONTAINER)

    # Standalone outlines are candidate nodes until labels/edges confirm them
    candidates: List[SemanticNode] = []
    for shape in b.available(PrimitiveKind.SHAPE):
        if shape.has_class(*EDGE_LABEL_CLASSES) or shape.own_class(*_DECORATION_CLASSES):
            b.consume(shape)
            continue
        if not b.is_sized(shape) or not is_visible(shape):
            continue
        candidates.append(b.node_from_shape(shape))

    for path in b.available(PrimitiveKind.PATH):
        b.edge_from_path(path, allow_self_loops=allow_self_loops)

    b.attach_labels()

    connected = {e.source_id for e in b.graph.edges.values()} | {e.target_id for e in b.graph.edges.values()}
    for node in candidates:
        if not node.label and node.id not in connected:
            node.role = NodeRole.ANNOTATION

    b.annotate_leftovers()
    b.assign_parents()
    return b.finish()
