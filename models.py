"""
models.py

Data models and constants for the Mermaid → draw.io converter.

The pipeline moves through three families of types:

    DiagramSource / RenderedVisualTree   external input
    VisualPrimitive (+ Rect, Point, ...) extractor output, immutable
    SemanticNode / SemanticEdge / Graph  classifier output, positioned and
                                         styled by later stages
"""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from errors import GraphIntegrityError


# ----------------------------
# Diagram types
# ----------------------------

class DiagramType(str, Enum):
    """Diagram grammars known to the converter."""
    FLOWCHART = "flowchart"
    SEQUENCE = "sequence"
    GANTT = "gantt"
    PIE = "pie"
    MINDMAP = "mindmap"
    ORGCHART = "orgchart"
    KANBAN = "kanban"
    TIMELINE = "timeline"
    USERJOURNEY = "userjourney"
    SWOT = "swot"
    STATE = "state"
    CLASS = "class"
    ER = "er"
    REQUIREMENT = "requirement"
    BLOCK = "block"


# Maps Mermaid header keywords and ``aria-roledescription`` values to
# diagram types.  Each alias key maps to exactly one type.
#
# To support another spelling of an existing grammar, add an entry here.
DIAGRAM_TYPE_ALIASES: Dict[str, DiagramType] = {
    # ── Flowchart ──
    "flowchart":        DiagramType.FLOWCHART,
    "flowchart-v2":     DiagramType.FLOWCHART,
    "flowchart-elk":    DiagramType.FLOWCHART,
    "graph":            DiagramType.FLOWCHART,
    # ── Sequence ──
    "sequence":         DiagramType.SEQUENCE,
    "sequencediagram":  DiagramType.SEQUENCE,
    # ── Charts ──
    "gantt":            DiagramType.GANTT,
    "pie":              DiagramType.PIE,
    "timeline":         DiagramType.TIMELINE,
    "journey":          DiagramType.USERJOURNEY,
    "userjourney":      DiagramType.USERJOURNEY,
    "quadrantchart":    DiagramType.SWOT,
    "swot":             DiagramType.SWOT,
    # ── Hierarchies / boards ──
    "mindmap":          DiagramType.MINDMAP,
    "orgchart":         DiagramType.ORGCHART,
    "kanban":           DiagramType.KANBAN,
    # ── Graph-based grammars sharing the flowchart rules ──
    "state":            DiagramType.STATE,
    "statediagram":     DiagramType.STATE,
    "statediagram-v2":  DiagramType.STATE,
    "class":            DiagramType.CLASS,
    "classdiagram":     DiagramType.CLASS,
    "classdiagram-v2":  DiagramType.CLASS,
    "er":               DiagramType.ER,
    "erdiagram":        DiagramType.ER,
    "requirement":      DiagramType.REQUIREMENT,
    "requirementdiagram": DiagramType.REQUIREMENT,
    "block":            DiagramType.BLOCK,
    "block-beta":       DiagramType.BLOCK,
}


def resolve_diagram_type(name: str, fallback: Optional[str] = None) -> Optional[str]:
    """Resolve a header keyword or role description to a diagram type value.

    Unknown names are returned unchanged as *fallback* (``None`` by default)
    so that dispatch can report them as unsupported.

    Args:
        name: Keyword such as ``"graph"``, ``"flowchart-v2"``, ``"journey"``.
        fallback: Value to return when no alias matches.

    Returns:
        The ``DiagramType`` value string, or *fallback*.
    """
    dt = DIAGRAM_TYPE_ALIASES.get((name or "").strip().lower())
    return dt.value if dt is not None else fallback


_FRONT_MATTER_RE = re.compile(r"\A\s*---\s*\n.*?\n---\s*\n", re.DOTALL)


def detect_diagram_type(text: str) -> Optional[str]:
    """Sniff the diagram type from the first token of Mermaid source.

    Skips YAML front matter, blank lines, ``%%`` comments and ``%%{init}``
    directives.  The first remaining token (up to whitespace, ``:`` or
    ``;``) is looked up in ``DIAGRAM_TYPE_ALIASES``.

    Returns:
        The resolved type value, or the raw lowercase token when it is not
        a known alias, or ``None`` for empty input.
    """
    body = _FRONT_MATTER_RE.sub("", text or "", count=1)
    for line in body.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("%%"):
            continue
        token = re.split(r"[\s:;{]", stripped, maxsplit=1)[0].lower()
        return resolve_diagram_type(token, token)
    return None


# ----------------------------
# External input
# ----------------------------

@dataclass(frozen=True)
class DiagramSource:
    """Mermaid source text plus its declared or inferred type.

    Attributes:
        text: Mermaid source.
        diagram_type: Declared type, or the sniffed first token.
        name: Display name (usually the file stem) used in results.
    """
    text: str
    diagram_type: str
    name: str = ""

    @classmethod
    def from_text(cls, text: str, diagram_type: Optional[str] = None, name: str = "") -> "DiagramSource":
        """Build a source, sniffing the type when not declared."""
        if diagram_type:
            dt = resolve_diagram_type(diagram_type, diagram_type.strip().lower())
        else:
            dt = detect_diagram_type(text) or ""
        return cls(text=text, diagram_type=dt, name=name)


@dataclass(frozen=True)
class RenderedVisualTree:
    """A rendered SVG document, owned by one conversion run.

    Attributes:
        root: The ``<svg>`` root element.
        role: ``aria-roledescription`` reported by the renderer, if any.
    """
    root: ET.Element
    role: str = ""

    @classmethod
    def from_svg_text(cls, svg_text: str) -> "RenderedVisualTree":
        """Parse SVG markup into a tree.

        Raises:
            xml.etree.ElementTree.ParseError: If the markup is not XML.
        """
        root = ET.fromstring(svg_text)
        return cls(root=root, role=root.get("aria-roledescription", ""))


# ----------------------------
# Geometry value types
# ----------------------------

@dataclass(frozen=True)
class Point:
    x: float
    y: float

    def translated(self, dx: float, dy: float) -> "Point":
        return Point(self.x + dx, self.y + dy)

    def distance(self, other: "Point") -> float:
        return ((self.x - other.x) ** 2 + (self.y - other.y) ** 2) ** 0.5


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle ``(x, y, w, h)`` with top-left origin."""
    x: float
    y: float
    w: float
    h: float

    @property
    def right(self) -> float:
        return self.x + self.w

    @property
    def bottom(self) -> float:
        return self.y + self.h

    @property
    def center(self) -> Point:
        return Point(self.x + self.w / 2, self.y + self.h / 2)

    @property
    def area(self) -> float:
        return max(self.w, 0.0) * max(self.h, 0.0)

    @classmethod
    def from_points(cls, points: Iterable[Point]) -> "Rect":
        pts = list(points)
        if not pts:
            return cls(0.0, 0.0, 0.0, 0.0)
        xs = [p.x for p in pts]
        ys = [p.y for p in pts]
        return cls(min(xs), min(ys), max(xs) - min(xs), max(ys) - min(ys))

    def union(self, other: "Rect") -> "Rect":
        x = min(self.x, other.x)
        y = min(self.y, other.y)
        return Rect(x, y, max(self.right, other.right) - x, max(self.bottom, other.bottom) - y)

    def inflate(self, dx: float, dy: Optional[float] = None) -> "Rect":
        dy = dx if dy is None else dy
        return Rect(self.x - dx, self.y - dy, self.w + 2 * dx, self.h + 2 * dy)

    def contains_point(self, p: Point, tolerance: float = 0.0) -> bool:
        return (self.x - tolerance <= p.x <= self.right + tolerance
                and self.y - tolerance <= p.y <= self.bottom + tolerance)

    def contains_rect(self, other: "Rect", tolerance: float = 0.0) -> bool:
        return (other.x >= self.x - tolerance and other.y >= self.y - tolerance
                and other.right <= self.right + tolerance
                and other.bottom <= self.bottom + tolerance)

    def intersects(self, other: "Rect") -> bool:
        return not (other.x >= self.right or other.right <= self.x
                    or other.y >= self.bottom or other.bottom <= self.y)

    def intersection_area(self, other: "Rect") -> float:
        w = min(self.right, other.right) - max(self.x, other.x)
        h = min(self.bottom, other.bottom) - max(self.y, other.y)
        return w * h if w > 0 and h > 0 else 0.0

    def distance_to_point(self, p: Point) -> float:
        """Euclidean distance from *p* to the rectangle (0 when inside)."""
        dx = max(self.x - p.x, 0.0, p.x - self.right)
        dy = max(self.y - p.y, 0.0, p.y - self.bottom)
        return (dx * dx + dy * dy) ** 0.5

    def rounded(self, ndigits: int = 2) -> "Rect":
        return Rect(round(self.x, ndigits), round(self.y, ndigits),
                    round(self.w, ndigits), round(self.h, ndigits))


def union_rects(rects: Iterable[Rect]) -> Optional[Rect]:
    """Return the union of *rects*, or ``None`` when empty."""
    result: Optional[Rect] = None
    for r in rects:
        result = r if result is None else result.union(r)
    return result


@dataclass(frozen=True)
class Segment:
    """One drawing command of a path, in absolute coordinates.

    ``command`` is one of ``M``, ``L``, ``C``, ``Q``, ``A``, ``Z``; ``points``
    holds the control points followed by the end point.
    """
    command: str
    points: Tuple[Point, ...] = ()

    @property
    def end(self) -> Optional[Point]:
        return self.points[-1] if self.points else None

    @property
    def is_curve(self) -> bool:
        return self.command in ("C", "Q", "A")


# ----------------------------
# Visual primitives
# ----------------------------

class PrimitiveKind(str, Enum):
    SHAPE = "shape"
    PATH = "path"
    TEXT = "text"
    GROUP = "group"


@dataclass(frozen=True)
class StyleAttrs:
    """Raw style attributes as found on an SVG element.

    Values are kept as strings; the style mapper validates them.
    """
    fill: Optional[str] = None
    stroke: Optional[str] = None
    stroke_width: Optional[str] = None
    dasharray: Optional[str] = None
    font_family: Optional[str] = None
    font_size: Optional[str] = None
    font_color: Optional[str] = None
    rx: Optional[str] = None
    dashed_class: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in self.__dict__.items() if v not in (None, False)}


@dataclass(frozen=True)
class VisualPrimitive:
    """One shape/path/text/group unit extracted from the visual tree.

    Attributes:
        index: Document-order position (stable identity for this run).
        kind: shape | path | text | group.
        bbox: Bounding box in source (SVG user) units.
        style: Raw style attributes.
        raw_text: Text content for text primitives.
        anchor: Text anchor point (text primitives only).
        segments: Absolute path segments (path primitives, path shapes).
        shape_tag: Originating SVG tag (``rect``, ``polygon``, ``path`` ...).
        classes: CSS class tokens of the element itself.
        element_id: ``id`` attribute of the element.
        group_path: Identifiers of the enclosing groups, outermost first.
        group_classes: Class tokens of all enclosing groups.
        markers: ``(marker_start, marker_end)`` ids, empty when absent.
        closed: True for closed outlines.
        points: Polygon vertices / polyline points in absolute coordinates.
    """
    index: int
    kind: PrimitiveKind
    bbox: Rect
    style: StyleAttrs = field(default_factory=StyleAttrs)
    raw_text: Optional[str] = None
    anchor: Optional[Point] = None
    segments: Tuple[Segment, ...] = ()
    shape_tag: str = ""
    classes: Tuple[str, ...] = ()
    element_id: str = ""
    group_path: Tuple[str, ...] = ()
    group_classes: Tuple[str, ...] = ()
    markers: Tuple[str, str] = ("", "")
    closed: bool = False
    points: Tuple[Point, ...] = ()

    def has_class(self, *names: str) -> bool:
        """True if the element or any enclosing group carries one of *names*."""
        return any(n in self.classes or n in self.group_classes for n in names)

    def own_class(self, *names: str) -> bool:
        return any(n in self.classes for n in names)

    def class_contains(self, fragment: str) -> bool:
        return any(fragment in c for c in self.classes)

    @property
    def start_point(self) -> Optional[Point]:
        if self.points:
            return self.points[0]
        for seg in self.segments:
            if seg.points:
                return seg.points[-1] if seg.command == "M" else seg.points[0]
        return None

    @property
    def end_point(self) -> Optional[Point]:
        if self.points:
            return self.points[-1]
        for seg in reversed(self.segments):
            if seg.end is not None:
                return seg.end
        return None

    @property
    def has_arrow(self) -> bool:
        return bool(self.markers[0] or self.markers[1])


# ----------------------------
# Semantic model
# ----------------------------

class NodeRole(str, Enum):
    NODE = "node"
    CONTAINER = "container"
    ANNOTATION = "annotation"


@dataclass(frozen=True)
class StyleSpec:
    """Normalized styling independent of source and target syntax."""
    fill: str = "#FFFFFF"
    stroke: str = "#000000"
    stroke_width: float = 1.0
    dash: Optional[str] = None
    font_family: str = "Helvetica"
    font_size: float = 12.0
    font_color: str = "#000000"
    rounding: bool = False

    def with_overrides(self, **kwargs: Any) -> "StyleSpec":
        return replace(self, **kwargs)


@dataclass
class SemanticNode:
    id: str
    role: NodeRole = NodeRole.NODE
    label: str = ""
    shape_kind: str = "rectangle"
    geometry: Optional[Rect] = None
    style: Optional[StyleSpec] = None
    parent_id: Optional[str] = None
    source_index: Optional[int] = None
    raw_style: StyleAttrs = field(default_factory=StyleAttrs)
    # Grammar-specific draw.io style keys (e.g. pie wedge angles)
    extra_style: Dict[str, str] = field(default_factory=dict)

    @property
    def is_container(self) -> bool:
        return self.role == NodeRole.CONTAINER


@dataclass
class SemanticEdge:
    id: str
    source_id: str
    target_id: str
    label: str = ""
    waypoints: List[Point] = field(default_factory=list)
    style: Optional[StyleSpec] = None
    arrow_start: bool = False
    arrow_end: bool = True
    routed_by_layout: bool = False
    curved: bool = False
    raw_style: StyleAttrs = field(default_factory=StyleAttrs)
    source_index: Optional[int] = None
    # Attachment points inside the end shapes (sequence lifelines)
    source_point: Optional[Point] = None
    target_point: Optional[Point] = None


@dataclass
class SemanticGraph:
    """Nodes and edges for one conversion, kept in discovery order."""
    diagram_type: str = ""
    nodes: Dict[str, SemanticNode] = field(default_factory=dict)
    edges: Dict[str, SemanticEdge] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    title: str = ""

    # ── construction ──

    def add_node(self, node: SemanticNode) -> SemanticNode:
        if node.id in self.nodes:
            raise GraphIntegrityError(f"Duplicate node id {node.id!r}")
        self.nodes[node.id] = node
        return node

    def add_edge(self, edge: SemanticEdge) -> SemanticEdge:
        if edge.id in self.edges:
            raise GraphIntegrityError(f"Duplicate edge id {edge.id!r}")
        self.edges[edge.id] = edge
        return edge

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    # ── queries ──

    def node_list(self) -> List[SemanticNode]:
        return list(self.nodes.values())

    def edge_list(self) -> List[SemanticEdge]:
        return list(self.edges.values())

    def containers(self) -> List[SemanticNode]:
        return [n for n in self.nodes.values() if n.is_container]

    def children_of(self, parent_id: Optional[str]) -> List[SemanticNode]:
        return [n for n in self.nodes.values() if n.parent_id == parent_id]

    def descendants_of(self, parent_id: str) -> Iterator[SemanticNode]:
        for child in self.children_of(parent_id):
            yield child
            if child.is_container:
                yield from self.descendants_of(child.id)

    def depth_of(self, node_id: str) -> int:
        depth = 0
        node = self.nodes[node_id]
        while node.parent_id is not None:
            depth += 1
            node = self.nodes[node.parent_id]
        return depth

    def containment_order(self) -> List[SemanticNode]:
        """Nodes ordered top-down: every parent precedes its children.

        Siblings keep their discovery order.
        """
        ordered: List[SemanticNode] = []

        def _visit(parent_id: Optional[str]) -> None:
            for child in self.children_of(parent_id):
                ordered.append(child)
                _visit(child.id)

        _visit(None)
        return ordered

    def bounds(self) -> Optional[Rect]:
        rects = [n.geometry for n in self.nodes.values() if n.geometry is not None]
        for e in self.edges.values():
            rects.extend(Rect(p.x, p.y, 0.0, 0.0) for p in e.waypoints)
        return union_rects(rects)

    # ── invariants ──

    def validate(self, allow_self_loops: bool = False) -> None:
        """Check referential integrity and acyclic containment.

        Raises:
            GraphIntegrityError: On the first violated invariant.
        """
        for node in self.nodes.values():
            if node.parent_id is None:
                continue
            parent = self.nodes.get(node.parent_id)
            if parent is None:
                raise GraphIntegrityError(
                    f"Node {node.id!r} references missing parent {node.parent_id!r}")
            if not parent.is_container:
                raise GraphIntegrityError(
                    f"Node {node.id!r} has non-container parent {node.parent_id!r}")
            seen = {node.id}
            cursor: Optional[SemanticNode] = parent
            while cursor is not None:
                if cursor.id in seen:
                    raise GraphIntegrityError(f"Containment cycle through {node.id!r}")
                seen.add(cursor.id)
                cursor = self.nodes.get(cursor.parent_id) if cursor.parent_id else None

        for edge in self.edges.values():
            if edge.source_id not in self.nodes:
                raise GraphIntegrityError(
                    f"Edge {edge.id!r} references missing source {edge.source_id!r}")
            if edge.target_id not in self.nodes:
                raise GraphIntegrityError(
                    f"Edge {edge.id!r} references missing target {edge.target_id!r}")
            if edge.source_id == edge.target_id and not allow_self_loops:
                raise GraphIntegrityError(f"Self-loop on {edge.source_id!r} not allowed")


def make_id_gen(prefix: str) -> Any:
    """Return a callable that produces sequential IDs ``n1, n2, ...``."""
    counter = 0

    def _next_id() -> str:
        nonlocal counter
        counter += 1
        return f"{prefix}{counter}"

    return _next_id
