"""
styles.py

Style themes, per-diagram-type default stylesheets, and the mapping from
raw SVG style attributes to draw.io style strings.

``map_style`` is a pure function: the same inputs always produce the same
``StyleSpec``.  The theme is passed in explicitly (it comes from the
conversion's ``ConversionConfig``), never read from module state.
"""

from __future__ import annotations

import colorsys
import re
from typing import Any, Dict, Mapping, Optional, Tuple

from debug_trace import trace
from models import SemanticGraph, StyleAttrs, StyleSpec
from settings import ConversionConfig

# =============================================================================
# Themes
# =============================================================================

# Base styles per role.  Keys mirror Mermaid's built-in themes.
THEMES: Dict[str, Dict[str, StyleSpec]] = {
    "default": {
        "node":       StyleSpec(fill="#ECECFF", stroke="#9370DB", font_color="#333333"),
        "container":  StyleSpec(fill="#FFFFDE", stroke="#AAAA33", font_color="#333333"),
        "annotation": StyleSpec(fill="none", stroke="none", font_color="#333333"),
        "edge":       StyleSpec(fill="none", stroke="#333333", stroke_width=2.0, font_color="#333333"),
    },
    "neutral": {
        "node":       StyleSpec(fill="#EEEEEE", stroke="#999999", font_color="#333333"),
        "container":  StyleSpec(fill="#FFFFFF", stroke="#AAAAAA", font_color="#333333"),
        "annotation": StyleSpec(fill="none", stroke="none", font_color="#333333"),
        "edge":       StyleSpec(fill="none", stroke="#666666", stroke_width=2.0, font_color="#333333"),
    },
    "dark": {
        "node":       StyleSpec(fill="#1F2020", stroke="#CCCCCC", font_color="#CCCCCC"),
        "container":  StyleSpec(fill="#333333", stroke="#888888", font_color="#F9FFFE"),
        "annotation": StyleSpec(fill="none", stroke="none", font_color="#CCCCCC"),
        "edge":       StyleSpec(fill="none", stroke="#D3D3D3", stroke_width=2.0, font_color="#CCCCCC"),
    },
    "forest": {
        "node":       StyleSpec(fill="#CDE498", stroke="#13540C", font_color="#000000"),
        "container":  StyleSpec(fill="#CDE498", stroke="#6EAA49", font_color="#000000"),
        "annotation": StyleSpec(fill="none", stroke="none", font_color="#000000"),
        "edge":       StyleSpec(fill="none", stroke="#000000", stroke_width=2.0, font_color="#000000"),
    },
}

DEFAULT_THEME = "default"


# =============================================================================
# Per-diagram-type default stylesheets
# =============================================================================

# (role, shape_kind) -> field overrides on top of the theme's role style.
# shape_kind None matches every shape of that role.
Stylesheet = Dict[Tuple[str, Optional[str]], Dict[str, Any]]

DEFAULT_STYLESHEETS: Dict[str, Stylesheet] = {
    "flowchart": {
        ("node", "diamond"):       {"rounding": False},
        ("node", "rounded"):       {"rounding": True},
        ("edge", None):            {"stroke_width": 2.0},
    },
    "sequence": {
        ("container", None):       {"fill": "#EAEAEA", "stroke": "#666666", "dash": "3 3"},
        ("annotation", "note"):    {"fill": "#FFF5AD", "stroke": "#AAAA33"},
        ("edge", None):            {"stroke_width": 1.5},
    },
    "gantt": {
        ("node", None):            {"fill": "#8A90DD", "stroke": "#534FBC", "rounding": True},
        ("container", None):       {"fill": "#F4F4F4", "stroke": "none"},
    },
    "pie": {
        ("node", None):            {"stroke": "#000000", "stroke_width": 2.0},
        ("annotation", "text"):    {"font_size": 14.0},
    },
    "mindmap": {
        ("node", None):            {"rounding": True},
        ("edge", None):            {"stroke_width": 3.0},
    },
    "orgchart": {
        ("node", None):            {"fill": "#DAE8FC", "stroke": "#6C8EBF", "rounding": True},
        ("edge", None):            {"stroke_width": 1.5},
    },
    "kanban": {
        ("container", None):       {"fill": "#F4F4F4", "stroke": "#CCCCCC"},
        ("node", None):            {"fill": "#FFFFFF", "stroke": "#CCCCCC", "rounding": True},
    },
    "timeline": {
        ("node", None):            {"rounding": True},
        ("edge", None):            {"stroke_width": 1.0, "dash": "3 3"},
    },
    "userjourney": {
        ("container", None):       {"fill": "#191970", "stroke": "#666666", "font_color": "#FFFFFF"},
        ("node", None):            {"fill": "#FFFFDE", "stroke": "#666666", "rounding": True},
    },
    "swot": {
        ("container", None):       {"fill": "#F5F5F5", "stroke": "#666666"},
        ("node", None):            {"fill": "#FFFFFF", "stroke": "#999999", "rounding": True},
    },
    "state": {
        ("node", None):            {"rounding": True},
    },
    "class": {
        ("node", None):            {"fill": "#ECECFF", "stroke": "#9370DB"},
    },
    "er": {
        ("node", None):            {"fill": "#ECECFF", "stroke": "#9370DB"},
    },
    "requirement": {},
    "block": {},
}


def stylesheet_for(diagram_type: str) -> Stylesheet:
    """Return the default stylesheet for *diagram_type* (empty when none)."""
    return DEFAULT_STYLESHEETS.get(diagram_type, {})


# =============================================================================
# Value validation
# =============================================================================

# CSS named colours that appear in Mermaid themes and classDefs
NAMED_COLORS: Dict[str, str] = {
    "black": "#000000", "white": "#FFFFFF", "red": "#FF0000", "green": "#008000",
    "blue": "#0000FF", "yellow": "#FFFF00", "orange": "#FFA500", "purple": "#800080",
    "gray": "#808080", "grey": "#808080", "silver": "#C0C0C0", "maroon": "#800000",
    "olive": "#808000", "lime": "#00FF00", "aqua": "#00FFFF", "cyan": "#00FFFF",
    "teal": "#008080", "navy": "#000080", "fuchsia": "#FF00FF", "magenta": "#FF00FF",
    "pink": "#FFC0CB", "brown": "#A52A2A", "gold": "#FFD700", "beige": "#F5F5DC",
    "ivory": "#FFFFF0", "lavender": "#E6E6FA", "lightgray": "#D3D3D3",
    "lightgrey": "#D3D3D3", "darkgray": "#A9A9A9", "darkgrey": "#A9A9A9",
    "lightblue": "#ADD8E6", "lightgreen": "#90EE90", "lightyellow": "#FFFFE0",
    "midnightblue": "#191970", "mediumpurple": "#9370DB", "whitesmoke": "#F5F5F5",
    "darkblue": "#00008B", "darkgreen": "#006400", "darkred": "#8B0000",
    "coral": "#FF7F50", "salmon": "#FA8072", "khaki": "#F0E68C", "tomato": "#FF6347",
}

_HEX_RE = re.compile(r"^#([0-9a-fA-F]{3}|[0-9a-fA-F]{4}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")
_FUNC_RE = re.compile(r"^(rgba?|hsla?)\(\s*([^)]*)\)$", re.IGNORECASE)
_NUM_RE = re.compile(r"^[-+]?(?:\d+\.?\d*|\.\d+)")


def normalize_color(value: Optional[str]) -> Optional[str]:
    """Normalize a CSS colour to ``#RRGGBB`` (or ``"none"``).

    Accepts ``#rgb``, ``#rgba``, ``#rrggbb``, ``#rrggbbaa``, ``rgb()``,
    ``rgba()``, ``hsl()``, ``hsla()``, named colours, ``none`` and
    ``transparent``.  Fully transparent colours become ``"none"``.

    Returns:
        The normalized colour, or ``None`` when *value* is not a valid colour.
    """
    if value is None:
        return None
    v = value.strip().lower()
    if not v:
        return None
    if v in ("none", "transparent"):
        return "none"
    if v in NAMED_COLORS:
        return NAMED_COLORS[v]

    m = _HEX_RE.match(v)
    if m:
        digits = m.group(1)
        if len(digits) in (3, 4):
            digits = "".join(ch * 2 for ch in digits)
        if len(digits) == 8:
            if digits[6:8] == "00":
                return "none"
            digits = digits[:6]
        return "#" + digits.upper()

    m = _FUNC_RE.match(v)
    if not m:
        return None
    func = m.group(1).lower()
    parts = [p for p in re.split(r"[\s,/]+", m.group(2).strip()) if p]
    if len(parts) < 3:
        return None
    try:
        if len(parts) >= 4 and _parse_channel(parts[3], 1.0) == 0.0:
            return "none"
        if func.startswith("rgb"):
            r, g, b = (_parse_channel(p, 255.0) for p in parts[:3])
            rgb = (r, g, b)
        else:
            h = float(_NUM_RE.match(parts[0]).group(0)) % 360 / 360.0  # type: ignore[union-attr]
            s = _parse_channel(parts[1], 1.0)
            lum = _parse_channel(parts[2], 1.0)
            fr, fg, fb = colorsys.hls_to_rgb(h, lum, s)
            rgb = (fr * 255, fg * 255, fb * 255)
    except (AttributeError, ValueError):
        return None
    return "#" + "".join(f"{max(0, min(255, round(c))):02X}" for c in rgb)


def _parse_channel(raw: str, scale: float) -> float:
    """Parse ``50%`` or ``127`` into a value on ``0..scale``."""
    if raw.endswith("%"):
        return float(raw[:-1]) / 100.0 * scale
    return float(raw)


def parse_positive(value: Optional[str]) -> Optional[float]:
    """Parse a CSS length/number; ``None`` unless it is a positive number."""
    if value is None:
        return None
    v = value.strip().lower()
    m = _NUM_RE.match(v)
    if not m:
        return None
    num = float(m.group(0))
    unit = v[m.end():].strip()
    if unit == "em":
        num *= 16.0
    elif unit == "pt":
        num *= 4.0 / 3.0
    elif unit not in ("", "px"):
        return None
    return num if num > 0 else None


def parse_dash(dasharray: Optional[str], dashed_class: bool = False) -> Optional[str]:
    """Return a draw.io ``dashPattern`` (``"5 5"``) or ``None`` for solid."""
    if dasharray:
        v = dasharray.strip().lower()
        if v not in ("none", "0", ""):
            nums = []
            for tok in re.split(r"[\s,]+", v):
                m = _NUM_RE.match(tok)
                if m:
                    nums.append(float(m.group(0)))
            if any(n > 0 for n in nums):
                return " ".join(_fmt_num(n) for n in nums)
    if dashed_class:
        return "3 3"
    return None


def parse_font_family(value: Optional[str]) -> Optional[str]:
    """First family of a CSS font-family list, unquoted."""
    if not value:
        return None
    first = value.split(",")[0].strip().strip("\"'")
    if not first or not re.match(r"^[\w\s.-]+$", first):
        return None
    return first


def _fmt_num(n: float) -> str:
    return str(int(n)) if float(n).is_integer() else f"{n:.2f}".rstrip("0").rstrip(".")


# =============================================================================
# Style mapping
# =============================================================================

def default_style(diagram_type: str, role: str, shape_kind: Optional[str] = None,
                  theme: str = DEFAULT_THEME) -> StyleSpec:
    """Theme base for *role* with the diagram type's stylesheet applied."""
    base_theme = THEMES.get(theme, THEMES[DEFAULT_THEME])
    spec = base_theme.get(role, base_theme["node"])
    if shape_kind == "line":
        # Loose lines are stroked like edges whatever their role
        spec = spec.with_overrides(stroke=base_theme["edge"].stroke)
    sheet = stylesheet_for(diagram_type)
    # (role, None) applies to every shape; (role, shape_kind) refines it
    keys = [(role, None)] if shape_kind is None else [(role, None), (role, shape_kind)]
    for key in keys:
        overrides = sheet.get(key)
        if overrides:
            spec = spec.with_overrides(**overrides)
    if shape_kind == "rounded":
        spec = spec.with_overrides(rounding=True)
    return spec


def map_style(primitive_style: Optional[StyleAttrs], diagram_type: str, role: str,
              shape_kind: Optional[str] = None, theme: str = DEFAULT_THEME) -> StyleSpec:
    """Translate raw SVG style attributes into a ``StyleSpec``.

    Starts from ``default_style`` and overlays each explicit attribute only
    when it is present and valid; anything else keeps the default.

    Args:
        primitive_style: Raw attributes from the extractor (may be ``None``).
        diagram_type: Diagram type value (selects the stylesheet).
        role: ``node``, ``container``, ``annotation`` or ``edge``.
        shape_kind: Semantic shape kind, for shape-specific defaults.
        theme: Theme name from the conversion config.

    Returns:
        A new ``StyleSpec``.
    """
    spec = default_style(diagram_type, role, shape_kind, theme)
    if primitive_style is None:
        return spec

    overrides: Dict[str, Any] = {}
    # A text element's fill is its glyph colour, not a box fill
    boxed = shape_kind != "text"
    fill = normalize_color(primitive_style.fill)
    if fill is not None and role != "edge" and boxed:
        overrides["fill"] = fill
    stroke = normalize_color(primitive_style.stroke)
    if stroke is not None and boxed:
        overrides["stroke"] = stroke
    width = parse_positive(primitive_style.stroke_width)
    if width is not None:
        overrides["stroke_width"] = width
    dash = parse_dash(primitive_style.dasharray, primitive_style.dashed_class)
    if dash is not None:
        overrides["dash"] = dash
    family = parse_font_family(primitive_style.font_family)
    if family is not None:
        overrides["font_family"] = family
    size = parse_positive(primitive_style.font_size)
    if size is not None:
        overrides["font_size"] = size
    font_color = normalize_color(primitive_style.font_color)
    if font_color is not None and font_color != "none":
        overrides["font_color"] = font_color
    rx = parse_positive(primitive_style.rx)
    if rx is not None and role != "edge":
        overrides["rounding"] = True

    return spec.with_overrides(**overrides) if overrides else spec


# =============================================================================
# draw.io style strings
# =============================================================================

# Shape kind -> leading style tokens
SHAPE_STYLES: Dict[str, str] = {
    "rectangle":     "rounded=0",
    "rounded":       "rounded=1",
    "diamond":       "rhombus",
    "ellipse":       "ellipse",
    "circle":        "ellipse;aspect=fixed",
    "parallelogram": "shape=parallelogram;perimeter=parallelogramPerimeter;fixedSize=1",
    "hexagon":       "shape=hexagon;perimeter=hexagonPerimeter2;fixedSize=1",
    "cylinder":      "shape=cylinder3;boundedLbl=1;backgroundOutline=1;size=10",
    "wedge":         "shape=mxgraph.basic.pie",
    "note":          "shape=note;size=12",
    "actor":         "shape=umlActor;verticalLabelPosition=bottom;verticalAlign=top",
    "line":          "line",
}

# Canonical key order of the emitted style string
STYLE_KEYS = (
    "rounded", "whiteSpace", "html", "fillColor", "strokeColor", "strokeWidth",
    "dashed", "dashPattern", "fontFamily", "fontSize", "fontColor",
    "align", "verticalAlign", "spacingLeft", "container", "collapsible",
    "startSize", "startAngle", "endAngle", "edgeStyle", "curved",
    "startArrow", "endArrow", "exitX", "exitY", "exitPerimeter",
    "entryX", "entryY", "entryPerimeter", "labelBackgroundColor",
    "direction",
)
_ALLOWED_EXTRA = frozenset(STYLE_KEYS)


def to_style_string(spec: StyleSpec, shape_kind: Optional[str] = None, role: str = "node",
                    extra: Optional[Mapping[str, Any]] = None, arrow_start: bool = False,
                    arrow_end: bool = True, curved: bool = False) -> str:
    """Render a ``StyleSpec`` as a canonical draw.io style string.

    Keys are emitted in ``STYLE_KEYS`` order, so equal specs give equal
    strings.  Keys in *extra* that draw.io does not know are dropped.

    Args:
        spec: The mapped style.
        shape_kind: Semantic shape kind (vertices only).
        role: ``node``, ``container``, ``annotation`` or ``edge``.
        extra: Additional draw.io keys (e.g. pie ``startAngle``).
        arrow_start: Edge has a start arrowhead.
        arrow_end: Edge has an end arrowhead.
        curved: Edge was drawn with curves.

    Returns:
        Semicolon-separated ``key=value`` pairs ending with ``;``.
    """
    parts: Dict[str, str] = {}
    prefix = ""

    if role == "edge":
        parts["edgeStyle"] = "none"
        parts["curved"] = "1" if curved else "0"
        parts["rounded"] = "0"
        parts["html"] = "1"
        parts["startArrow"] = "classic" if arrow_start else "none"
        parts["endArrow"] = "classic" if arrow_end else "none"
        parts["labelBackgroundColor"] = "#FFFFFF"
    elif role == "annotation" and (shape_kind or "text") == "text":
        prefix = "text"
        parts["html"] = "1"
        parts["whiteSpace"] = "wrap"
        parts["align"] = "center"
        parts["verticalAlign"] = "middle"
    else:
        prefix = SHAPE_STYLES.get(shape_kind or "rectangle", SHAPE_STYLES["rectangle"])
        if prefix.startswith("rounded="):
            prefix = ""
            parts["rounded"] = "1" if spec.rounding or shape_kind == "rounded" else "0"
        parts["whiteSpace"] = "wrap"
        parts["html"] = "1"
        if role == "container":
            parts["container"] = "1"
            parts["collapsible"] = "0"
            parts["verticalAlign"] = "top"
            parts["align"] = "left"
            parts["spacingLeft"] = "8"

    if role != "edge":
        parts["fillColor"] = spec.fill
    parts["strokeColor"] = spec.stroke
    parts["strokeWidth"] = _fmt_num(spec.stroke_width)
    if spec.dash:
        parts["dashed"] = "1"
        parts["dashPattern"] = spec.dash
    parts["fontFamily"] = spec.font_family
    parts["fontSize"] = _fmt_num(spec.font_size)
    parts["fontColor"] = spec.font_color

    for key, value in (extra or {}).items():
        if key in _ALLOWED_EXTRA and value is not None:
            parts[key] = value if isinstance(value, str) else _fmt_num(float(value))

    body = ";".join(f"{k}={parts[k]}" for k in STYLE_KEYS if k in parts)
    return f"{prefix};{body};" if prefix else f"{body};"


def parse_style_string(style: str) -> Tuple[str, Dict[str, str]]:
    """Split a draw.io style string into ``(prefix, {key: value})``.

    The prefix holds any bare shape tokens (``ellipse``, ``rhombus`` ...).
    """
    prefix_parts = []
    values: Dict[str, str] = {}
    for tok in (t.strip() for t in style.split(";")):
        if not tok:
            continue
        if "=" in tok:
            k, v = tok.split("=", 1)
            values[k] = v
        else:
            prefix_parts.append(tok)
    return ";".join(prefix_parts), values


def apply_styles(graph: SemanticGraph, config: ConversionConfig) -> SemanticGraph:
    """Assign a mapped ``StyleSpec`` to every node and edge, in place."""
    for node in graph.nodes.values():
        node.style = map_style(node.raw_style, graph.diagram_type, node.role.value,
                               node.shape_kind, config.theme)
    for edge in graph.edges.values():
        edge.style = map_style(edge.raw_style, graph.diagram_type, "edge", None, config.theme)
    trace(f"styled {len(graph.nodes)} nodes, {len(graph.edges)} edges ({config.theme})", "STYLE")
    return graph
