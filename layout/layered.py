"""
layout/layered.py

Layered (Sugiyama-style) fallback layout.

Used when the rendered geometry is unusable (all nodes on one point,
heavy overlap) or when a grammar asks for it outright.  Steps:

    1. back-edge detection by iterative DFS (insertion order)
    2. longest-path ranking over the remaining acyclic edges
    3. virtual nodes on long edges, barycenter sweeps to reduce crossings
    4. coordinates from rank and order with the separation constants
    5. long edges get one bend point per intermediate rank

Every step iterates in insertion order and sorts stably, so the same
graph always yields the same coordinates.
"""

from __future__ import annotations

import copy
import math
from typing import Dict, List, Optional, Set, Tuple

from debug_trace import trace
from errors import LayoutError
from layout.coords import align_to_margin, fit_containers
from models import NodeRole, Point, Rect, SemanticEdge, SemanticGraph, SemanticNode
from settings import ConversionConfig

LayerMap = List[List[str]]


# ─────────────────────────────────────────────────────────
# Trigger
# ─────────────────────────────────────────────────────────


def _layout_nodes(graph: SemanticGraph) -> List[SemanticNode]:
    """Nodes the layout positions itself: everything but parents of other nodes."""
    parents = {n.parent_id for n in graph.nodes.values() if n.parent_id is not None}
    return [n for n in graph.nodes.values()
            if n.id not in parents and n.role != NodeRole.ANNOTATION]


def needs_layout(graph: SemanticGraph, policy: str, config: ConversionConfig) -> bool:
    """Decide whether the layered layout should replace rendered geometry.

    ``auto`` triggers when nodes have no geometry, all share one point,
    all have zero size, or more than ``overlap_tolerance`` of the node
    pairs overlap.
    """
    if policy == "never":
        return False
    if policy == "always":
        return True

    nodes = _layout_nodes(graph)
    if not nodes:
        return False
    if any(n.geometry is None for n in nodes):
        return True
    rects: List[Rect] = [n.geometry for n in nodes if n.geometry is not None]
    if all(r.w <= 0 and r.h <= 0 for r in rects):
        return True
    if len(rects) < 2:
        return False
    first = rects[0].center
    if all(r.center.distance(first) < 0.5 for r in rects[1:]):
        return True

    pairs = overlapping = 0
    for i in range(len(rects)):
        for j in range(i + 1, len(rects)):
            pairs += 1
            if rects[i].intersection_area(rects[j]) > 0:
                overlapping += 1
    return overlapping / pairs > config.layout.overlap_tolerance


# ─────────────────────────────────────────────────────────
# Ranking
# ─────────────────────────────────────────────────────────


def find_back_edges(node_ids: List[str], edges: List[SemanticEdge], max_iterations: int) -> Set[str]:
    """Edge ids that close a cycle, found by iterative DFS.

    Raises:
        LayoutError: If the walk exceeds *max_iterations* steps.
    """
    out: Dict[str, List[SemanticEdge]] = {nid: [] for nid in node_ids}
    for e in edges:
        out[e.source_id].append(e)

    state: Dict[str, int] = {nid: 0 for nid in node_ids}  # 0 new, 1 on stack, 2 done
    back: Set[str] = set()
    steps = 0
    for root in node_ids:
        if state[root]:
            continue
        state[root] = 1
        stack: List[Tuple[str, int]] = [(root, 0)]
        while stack:
            steps += 1
            if steps > max_iterations:
                raise LayoutError(f"Cycle breaking did not converge within {max_iterations} steps")
            nid, k = stack[-1]
            if k < len(out[nid]):
                stack[-1] = (nid, k + 1)
                e = out[nid][k]
                t = e.target_id
                if state[t] == 1:
                    back.add(e.id)
                elif state[t] == 0:
                    state[t] = 1
                    stack.append((t, 0))
            else:
                state[nid] = 2
                stack.pop()
    return back


def assign_ranks(node_ids: List[str], edges: List[SemanticEdge], max_iterations: int) -> Dict[str, int]:
    """Longest path from the sources over an acyclic edge list."""
    indeg = {nid: 0 for nid in node_ids}
    out: Dict[str, List[str]] = {nid: [] for nid in node_ids}
    for e in edges:
        out[e.source_id].append(e.target_id)
        indeg[e.target_id] += 1

    rank = {nid: 0 for nid in node_ids}
    queue = [nid for nid in node_ids if indeg[nid] == 0]
    steps = 0
    head = 0
    while head < len(queue):
        nid = queue[head]
        head += 1
        for t in out[nid]:
            steps += 1
            if steps > max_iterations:
                raise LayoutError(f"Ranking did not converge within {max_iterations} steps")
            rank[t] = max(rank[t], rank[nid] + 1)
            indeg[t] -= 1
            if indeg[t] == 0:
                queue.append(t)
    if len(queue) < len(node_ids):
        raise LayoutError("Edge relation still cyclic after removing back-edges")
    return rank


# ─────────────────────────────────────────────────────────
# Ordering
# ─────────────────────────────────────────────────────────


def _barycenter_pass(layers: LayerMap, neighbours: Dict[str, List[str]], downward: bool) -> None:
    rng = range(1, len(layers)) if downward else range(len(layers) - 2, -1, -1)
    for r in rng:
        ref = layers[r - 1] if downward else layers[r + 1]
        pos = {nid: k for k, nid in enumerate(ref)}
        current = {nid: k for k, nid in enumerate(layers[r])}

        def _key(nid: str) -> Tuple[float, int]:
            linked = [pos[m] for m in neighbours.get(nid, []) if m in pos]
            bary = sum(linked) / len(linked) if linked else float(current[nid])
            return (bary, current[nid])

        layers[r] = sorted(layers[r], key=_key)


def count_crossings(layers: LayerMap, down: Dict[str, List[str]]) -> int:
    """Edge crossings between adjacent layers (for diagnostics and tests)."""
    total = 0
    for r in range(len(layers) - 1):
        pos = {nid: k for k, nid in enumerate(layers[r + 1])}
        segs = [(i, pos[t]) for i, nid in enumerate(layers[r]) for t in down.get(nid, []) if t in pos]
        for a in range(len(segs)):
            for b in range(a + 1, len(segs)):
                if (segs[a][0] - segs[b][0]) * (segs[a][1] - segs[b][1]) < 0:
                    total += 1
    return total


# ─────────────────────────────────────────────────────────
# Layout
# ─────────────────────────────────────────────────────────


def _size(node: Optional[SemanticNode], config: ConversionConfig) -> Tuple[float, float]:
    if node is None:
        return 0.0, 0.0
    r = node.geometry
    if r is None or r.w <= 0 or r.h <= 0:
        return config.layout.default_node_width, config.layout.default_node_height
    return r.w, r.h


def layered_layout(graph: SemanticGraph, config: ConversionConfig) -> SemanticGraph:
    """Lay out *graph* in ranks; returns a new graph.

    Raises:
        LayoutError: If cycle breaking or ranking exceeds ``max_iterations``.
    """
    ls = config.layout
    out = copy.deepcopy(graph)
    nodes = _layout_nodes(out)
    ids = [n.id for n in nodes]
    id_set = set(ids)
    by_id = {n.id: n for n in nodes}

    rankable = [e for e in out.edges.values()
                if e.source_id in id_set and e.target_id in id_set and e.source_id != e.target_id]
    back = find_back_edges(ids, rankable, ls.max_iterations)
    forward = [e for e in rankable if e.id not in back]
    rank = assign_ranks(ids, forward, ls.max_iterations)

    # Layers with virtual nodes along long edges
    max_rank = max(rank.values(), default=0)
    layers: LayerMap = [[] for _ in range(max_rank + 1)]
    for nid in ids:
        layers[rank[nid]].append(nid)
    down: Dict[str, List[str]] = {}
    up: Dict[str, List[str]] = {}
    chains: Dict[str, List[str]] = {}

    def _link(a: str, b: str) -> None:
        down.setdefault(a, []).append(b)
        up.setdefault(b, []).append(a)

    for e in forward:
        r0, r1 = rank[e.source_id], rank[e.target_id]
        prev = e.source_id
        chain: List[str] = []
        for r in range(r0 + 1, r1):
            vid = f"{e.id}#{r}"
            layers[r].append(vid)
            chain.append(vid)
            _link(prev, vid)
            prev = vid
        _link(prev, e.target_id)
        chains[e.id] = chain

    for _ in range(ls.barycenter_passes):
        _barycenter_pass(layers, up, downward=True)
        _barycenter_pass(layers, down, downward=False)

    # Coordinates: rank axis is y for TB, x for LR
    horizontal = ls.direction.upper() == "LR"
    sizes = {nid: _size(by_id.get(nid), config) for layer in layers for nid in layer}

    def _along(nid: str) -> float:   # extent along the order axis
        w, h = sizes[nid]
        return h if horizontal else w

    def _across(nid: str) -> float:  # extent along the rank axis
        w, h = sizes[nid]
        return w if horizontal else h

    layer_len = [sum(_along(n) for n in layer) + ls.node_separation * max(len(layer) - 1, 0)
                 for layer in layers]
    widest = max(layer_len, default=0.0)
    centres: Dict[str, Point] = {}
    rank_pos = 0.0
    for r, layer in enumerate(layers):
        band = max((_across(n) for n in layer), default=0.0)
        cursor = (widest - layer_len[r]) / 2
        for nid in layer:
            a = _along(nid)
            c_order = cursor + a / 2
            c_rank = rank_pos + band / 2
            centres[nid] = Point(c_rank, c_order) if horizontal else Point(c_order, c_rank)
            cursor += a + ls.node_separation
        rank_pos += band + ls.rank_separation

    for nid in ids:
        w, h = sizes[nid]
        c = centres[nid]
        by_id[nid].geometry = Rect(c.x - w / 2, c.y - h / 2, w, h)

    for e in out.edges.values():
        e.routed_by_layout = True
        e.source_point = None
        e.target_point = None
        e.waypoints = [centres[v] for v in chains.get(e.id, [])]

    _place_annotations(out, config, rank_pos)
    fit_containers(out, config.coordinates, keep_own=False)
    align_to_margin(out, config.coordinates.margin)
    trace(f"layered layout: {len(ids)} nodes in {len(layers)} ranks, "
          f"{len(back)} back-edges, {count_crossings(layers, down)} crossings", "LAYOUT")
    return out


def _place_annotations(graph: SemanticGraph, config: ConversionConfig, offset: float) -> None:
    """Line up top-level annotations after the last rank."""
    ls = config.layout
    horizontal = ls.direction.upper() == "LR"
    cursor = 0.0
    for node in graph.nodes.values():
        if node.role != NodeRole.ANNOTATION or node.parent_id is not None:
            continue
        w, h = _size(node, config)
        if horizontal:
            node.geometry = Rect(offset, cursor, w, h)
            cursor += h + ls.node_separation
        else:
            node.geometry = Rect(cursor, offset, w, h)
            cursor += w + ls.node_separation


def grid_layout(graph: SemanticGraph, config: ConversionConfig) -> SemanticGraph:
    """Naive grid placement in insertion order; returns a new graph."""
    ls = config.layout
    out = copy.deepcopy(graph)
    nodes = _layout_nodes(out) + [n for n in out.nodes.values()
                                  if n.role == NodeRole.ANNOTATION and n.parent_id is None]
    if nodes:
        cols = max(1, math.ceil(math.sqrt(len(nodes))))
        sizes = [_size(n, config) for n in nodes]
        cell_w = max(w for w, _ in sizes) + ls.node_separation
        cell_h = max(h for _, h in sizes) + ls.rank_separation
        for k, (node, (w, h)) in enumerate(zip(nodes, sizes)):
            row, col = divmod(k, cols)
            node.geometry = Rect(col * cell_w, row * cell_h, w, h)
    for e in out.edges.values():
        e.routed_by_layout = True
        e.waypoints = []
        e.source_point = None
        e.target_point = None
    fit_containers(out, config.coordinates, keep_own=False)
    align_to_margin(out, config.coordinates.margin)
    return out


def apply_layout(graph: SemanticGraph, policy: str, config: ConversionConfig) -> SemanticGraph:
    """Run the fallback layout when *policy* and the geometry call for it.

    A ``LayoutError`` is recovered with ``grid_layout`` and recorded as a
    warning on the returned graph.
    """
    if not needs_layout(graph, policy, config):
        return graph
    try:
        return layered_layout(graph, config)
    except LayoutError as exc:
        trace(f"{exc.message}; using grid layout", "WARN")
        result = grid_layout(graph, config)
        result.warn(f"{exc.message}; using grid layout")
        return result
