"""
svgtree/paths.py

SVG path and transform parsing.

``parse_path`` walks both absolute and relative path commands (M/L/H/V/
C/S/Q/T/A/Z and lowercase variants) and returns absolute ``Segment``s.
Bezier control points are kept so callers can compute bounding boxes and
tell straight connectors from curved ones.
"""

from __future__ import annotations

import math
import re
from typing import List, Optional, Sequence, Tuple

from models import Point, Rect, Segment

_CMD_CHARS = "MmLlHhVvCcSsQqTtAaZz"
_TOKEN_RE = re.compile(r"[MmLlHhVvCcSsQqTtAaZz]|[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")
_NUM_RE = re.compile(r"[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")

# 2x3 affine matrix (a, b, c, d, e, f) as in SVG's matrix() transform
Matrix = Tuple[float, float, float, float, float, float]
IDENTITY: Matrix = (1.0, 0.0, 0.0, 1.0, 0.0, 0.0)


# ─────────────────────────────────────────────────────────
# Transforms
# ─────────────────────────────────────────────────────────

def multiply(m1: Matrix, m2: Matrix) -> Matrix:
    """Compose two affine matrices (apply *m2* first, then *m1*)."""
    a1, b1, c1, d1, e1, f1 = m1
    a2, b2, c2, d2, e2, f2 = m2
    return (
        a1 * a2 + c1 * b2,
        b1 * a2 + d1 * b2,
        a1 * c2 + c1 * d2,
        b1 * c2 + d1 * d2,
        a1 * e2 + c1 * f2 + e1,
        b1 * e2 + d1 * f2 + f1,
    )


def apply(m: Matrix, x: float, y: float) -> Point:
    a, b, c, d, e, f = m
    return Point(a * x + c * y + e, b * x + d * y + f)


def parse_transform(transform: Optional[str]) -> Matrix:
    """Parse an SVG ``transform`` attribute into one affine matrix.

    Supports ``translate``, ``scale``, ``rotate``, ``skewX``, ``skewY`` and
    ``matrix``; list order is preserved (leftmost applied last).
    """
    result = IDENTITY
    if not transform:
        return result
    for name, args in re.findall(r"(\w+)\s*\(([^)]*)\)", transform):
        nums = [float(n) for n in _NUM_RE.findall(args)]
        m = IDENTITY
        if name == "translate" and nums:
            m = (1.0, 0.0, 0.0, 1.0, nums[0], nums[1] if len(nums) > 1 else 0.0)
        elif name == "scale" and nums:
            sx = nums[0]
            sy = nums[1] if len(nums) > 1 else sx
            m = (sx, 0.0, 0.0, sy, 0.0, 0.0)
        elif name == "rotate" and nums:
            rad = math.radians(nums[0])
            cos, sin = math.cos(rad), math.sin(rad)
            m = (cos, sin, -sin, cos, 0.0, 0.0)
            if len(nums) >= 3:
                cx, cy = nums[1], nums[2]
                m = multiply((1.0, 0.0, 0.0, 1.0, cx, cy), multiply(m, (1.0, 0.0, 0.0, 1.0, -cx, -cy)))
        elif name == "skewX" and nums:
            m = (1.0, 0.0, math.tan(math.radians(nums[0])), 1.0, 0.0, 0.0)
        elif name == "skewY" and nums:
            m = (1.0, math.tan(math.radians(nums[0])), 0.0, 1.0, 0.0, 0.0)
        elif name == "matrix" and len(nums) == 6:
            m = tuple(nums)  # type: ignore[assignment]
        result = multiply(result, m)
    return result


# ─────────────────────────────────────────────────────────
# Path data
# ─────────────────────────────────────────────────────────

def parse_path(d: str, matrix: Matrix = IDENTITY) -> List[Segment]:
    """Parse SVG path data into absolute segments.

    Args:
        d: The ``d`` attribute.
        matrix: Transform applied to every resulting point.

    Returns:
        Segments in drawing order.  ``H``/``V``/``T``/``S`` are normalised
        to ``L``/``Q``/``C``; arcs keep their end point only.
    """
    tokens = _TOKEN_RE.findall(d or "")
    segments: List[Segment] = []
    if not tokens:
        return segments

    cx, cy = 0.0, 0.0  # current point
    sx, sy = 0.0, 0.0  # subpath start (for Z)
    last_ctrl: Optional[Tuple[float, float]] = None
    cmd = ""
    i = 0

    def _has_number() -> bool:
        return i < len(tokens) and tokens[i][0] not in _CMD_CHARS

    def _num() -> float:
        nonlocal i
        value = float(tokens[i]) if i < len(tokens) else 0.0
        i += 1
        return value

    def _flag() -> float:
        # Arc flags are single digits and may run into the next number ("01", "110")
        if i >= len(tokens):
            return 0.0
        tok = tokens[i]
        if len(tok) > 1 and tok[0] in "01":
            tokens[i] = tok[1:]
            return float(tok[0])
        return _num()

    def _emit(command: str, pts: Sequence[Tuple[float, float]]) -> None:
        segments.append(Segment(command, tuple(apply(matrix, px, py) for px, py in pts)))

    while i < len(tokens):
        tok = tokens[i]
        fresh = tok[0] in _CMD_CHARS
        if fresh:
            cmd = tok
            i += 1
        elif not cmd:
            i += 1
            continue
        rel = cmd.islower()
        up = cmd.upper()

        if up == "Z":
            if not fresh:
                # stray numbers after a close command
                i += 1
                continue
            cx, cy = sx, sy
            segments.append(Segment("Z", (apply(matrix, cx, cy),)))
            last_ctrl = None
            continue

        if not _has_number():
            continue

        if up == "M":
            x, y = _num(), _num()
            cx, cy = (cx + x, cy + y) if rel else (x, y)
            sx, sy = cx, cy
            _emit("M", [(cx, cy)])
            # Subsequent coordinate pairs are implicit L
            cmd = "l" if rel else "L"
            last_ctrl = None
        elif up == "L":
            x, y = _num(), _num()
            cx, cy = (cx + x, cy + y) if rel else (x, y)
            _emit("L", [(cx, cy)])
            last_ctrl = None
        elif up == "H":
            x = _num()
            cx = cx + x if rel else x
            _emit("L", [(cx, cy)])
            last_ctrl = None
        elif up == "V":
            y = _num()
            cy = cy + y if rel else y
            _emit("L", [(cx, cy)])
            last_ctrl = None
        elif up == "C":
            pts = []
            for _ in range(3):
                x, y = _num(), _num()
                pts.append((cx + x, cy + y) if rel else (x, y))
            _emit("C", pts)
            last_ctrl = pts[1]
            cx, cy = pts[2]
        elif up == "S":
            if last_ctrl is not None:
                c1 = (2 * cx - last_ctrl[0], 2 * cy - last_ctrl[1])
            else:
                c1 = (cx, cy)
            pts = []
            for _ in range(2):
                x, y = _num(), _num()
                pts.append((cx + x, cy + y) if rel else (x, y))
            _emit("C", [c1] + pts)
            last_ctrl = pts[0]
            cx, cy = pts[1]
        elif up == "Q":
            pts = []
            for _ in range(2):
                x, y = _num(), _num()
                pts.append((cx + x, cy + y) if rel else (x, y))
            _emit("Q", pts)
            last_ctrl = pts[0]
            cx, cy = pts[1]
        elif up == "T":
            if last_ctrl is not None:
                c1 = (2 * cx - last_ctrl[0], 2 * cy - last_ctrl[1])
            else:
                c1 = (cx, cy)
            x, y = _num(), _num()
            end = (cx + x, cy + y) if rel else (x, y)
            _emit("Q", [c1, end])
            last_ctrl = c1
            cx, cy = end
        elif up == "A":
            # arc: rx ry x-rotation large-arc sweep x y
            _num()  # rx
            _num()  # ry
            _num()  # x-rotation
            _flag()  # large-arc-flag
            _flag()  # sweep-flag
            x, y = _num(), _num()
            cx, cy = (cx + x, cy + y) if rel else (x, y)
            _emit("A", [(cx, cy)])
            last_ctrl = None
        else:
            i += 1

    return segments


def segments_bbox(segments: Sequence[Segment]) -> Rect:
    """Bounding box of all segment points (control points included)."""
    return Rect.from_points(p for seg in segments for p in seg.points)


def segment_vertices(segments: Sequence[Segment]) -> List[Point]:
    """On-curve vertices of a path, without control points or the closing repeat."""
    verts: List[Point] = []
    for seg in segments:
        if seg.command == "Z" or seg.end is None:
            continue
        verts.append(seg.end)
    if len(verts) > 1 and verts[0].distance(verts[-1]) < 0.5:
        verts.pop()
    return verts


def is_closed(segments: Sequence[Segment]) -> bool:
    if not segments:
        return False
    if segments[-1].command == "Z":
        return True
    verts = [s.end for s in segments if s.end is not None]
    return len(verts) > 2 and verts[0].distance(verts[-1]) < 0.5


def is_curved(segments: Sequence[Segment]) -> bool:
    return any(s.is_curve for s in segments)


def path_midpoint(segments: Sequence[Segment]) -> Optional[Point]:
    """Point halfway along the polyline through the segment end points."""
    verts = [s.end for s in segments if s.end is not None and s.command != "Z"]
    if not verts:
        return None
    if len(verts) == 1:
        return verts[0]
    lengths = [verts[k].distance(verts[k + 1]) for k in range(len(verts) - 1)]
    half = sum(lengths) / 2
    walked = 0.0
    for k, seg_len in enumerate(lengths):
        if walked + seg_len >= half and seg_len > 0:
            t = (half - walked) / seg_len
            a, b = verts[k], verts[k + 1]
            return Point(a.x + (b.x - a.x) * t, a.y + (b.y - a.y) * t)
        walked += seg_len
    return verts[-1]


def parse_points(points_str: str, matrix: Matrix = IDENTITY) -> List[Point]:
    """Parse a ``points`` attribute into transformed points."""
    nums = [float(n) for n in _NUM_RE.findall(points_str or "")]
    return [apply(matrix, nums[k], nums[k + 1]) for k in range(0, len(nums) - 1, 2)]


def transform_rect(matrix: Matrix, x: float, y: float, w: float, h: float) -> Rect:
    """Axis-aligned bounds of a transformed rectangle."""
    corners = [apply(matrix, x, y), apply(matrix, x + w, y),
               apply(matrix, x, y + h), apply(matrix, x + w, y + h)]
    return Rect.from_points(corners)


def parse_length(value: Optional[str], default: float = 0.0) -> float:
    """Parse an SVG length, ignoring units.  Percentages give *default*."""
    if value is None:
        return default
    value = value.strip()
    if not value or value.endswith("%"):
        return default
    m = _NUM_RE.match(value)
    if not m:
        return default
    return float(m.group(0))
