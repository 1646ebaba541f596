"""
classify/registry.py

Converter dispatch: one ``DiagramStrategy`` record per diagram type.

A strategy is plain data plus a classifier function:

    diagram_type       canonical type value
    classifier         (primitives, diagram_type, config) -> SemanticGraph
    layout_policy      "never" | "auto" | "always"
    style_defaults     (role, shape_kind) -> StyleSpec field overrides
    allows_self_loops  whether edges may start and end on one node
    description        human-readable summary (CLI listing)

To support a new grammar, write its classifier in ``classify/`` and call
``register_strategy`` below.  Extraction, coordinate mapping and document
building are shared and do not change.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from classify.flowchart import classify_flowchart
from classify.gantt import classify_gantt
from classify.hierarchy import classify_mindmap, classify_orgchart
from classify.journey import classify_journey
from classify.kanban import classify_kanban
from classify.pie import classify_pie
from classify.sequence import classify_sequence
from classify.swot import classify_swot
from classify.timeline import classify_timeline
from debug_trace import trace
from errors import UnsupportedDiagramTypeError
from models import DiagramType, SemanticGraph, VisualPrimitive, resolve_diagram_type
from settings import ConversionConfig
from styles import DEFAULT_STYLESHEETS

Classifier = Callable[[Sequence[VisualPrimitive], str, ConversionConfig], SemanticGraph]

LAYOUT_POLICIES = ("never", "auto", "always")


@dataclass(frozen=True)
class DiagramStrategy:
    diagram_type: str
    classifier: Classifier
    layout_policy: str = "never"
    style_defaults: Mapping[Tuple[str, Optional[str]], Dict[str, Any]] = field(default_factory=dict)
    allows_self_loops: bool = False
    description: str = ""


STRATEGIES: Dict[str, DiagramStrategy] = {}


def register_strategy(strategy: DiagramStrategy, replace: bool = False) -> DiagramStrategy:
    """Add *strategy* to the registry.

    Its ``style_defaults`` become the diagram type's default stylesheet.

    Raises:
        ValueError: For an unknown layout policy, or a duplicate type when
            *replace* is False.
    """
    if strategy.layout_policy not in LAYOUT_POLICIES:
        raise ValueError(f"Unknown layout policy {strategy.layout_policy!r}")
    if strategy.diagram_type in STRATEGIES and not replace:
        raise ValueError(f"Strategy for {strategy.diagram_type!r} already registered")
    STRATEGIES[strategy.diagram_type] = strategy
    if strategy.style_defaults:
        DEFAULT_STYLESHEETS[strategy.diagram_type] = dict(strategy.style_defaults)
    return strategy


def get_strategy(diagram_type: Optional[str]) -> DiagramStrategy:
    """Look up the strategy for a type value or alias.

    Raises:
        UnsupportedDiagramTypeError: If nothing is registered for it.
    """
    name = (diagram_type or "").strip()
    resolved = resolve_diagram_type(name, name)
    strategy = STRATEGIES.get(resolved or "")
    if strategy is None:
        raise UnsupportedDiagramTypeError(name)
    return strategy


def supported_types() -> List[str]:
    return list(STRATEGIES)


def classify(primitives: Sequence[VisualPrimitive], diagram_type: str,
             config: ConversionConfig) -> SemanticGraph:
    """Dispatch to the registered classifier and check the result.

    Raises:
        UnsupportedDiagramTypeError: Unknown diagram type.
        GraphIntegrityError: The classifier produced an inconsistent graph.
    """
    strategy = get_strategy(diagram_type)
    trace(f"classifying {len(primitives)} primitives as {strategy.diagram_type}", "CLASSIFY")
    graph = strategy.classifier(primitives, strategy.diagram_type, config)
    graph.validate(allow_self_loops=strategy.allows_self_loops)
    return graph


# ═══════════════════════════════════════════════════════════
# Built-in grammars
# ═══════════════════════════════════════════════════════════

_GRAPH_GRAMMARS = (
    (DiagramType.FLOWCHART, "Flowchart: nodes, subgraphs and links"),
    (DiagramType.STATE, "State diagram"),
    (DiagramType.CLASS, "Class diagram"),
    (DiagramType.ER, "Entity relationship diagram"),
    (DiagramType.REQUIREMENT, "Requirement diagram"),
    (DiagramType.BLOCK, "Block diagram"),
)

for _dt, _desc in _GRAPH_GRAMMARS:
    register_strategy(DiagramStrategy(
        diagram_type=_dt.value,
        classifier=classify_flowchart,
        layout_policy="auto",
        style_defaults=DEFAULT_STYLESHEETS.get(_dt.value, {}),
        allows_self_loops=True,
        description=_desc,
    ))

register_strategy(DiagramStrategy(
    diagram_type=DiagramType.SEQUENCE.value,
    classifier=classify_sequence,
    layout_policy="never",
    style_defaults=DEFAULT_STYLESHEETS["sequence"],
    allows_self_loops=True,
    description="Sequence diagram: participants as lifeline containers, messages as edges",
))
register_strategy(DiagramStrategy(
    diagram_type=DiagramType.GANTT.value,
    classifier=classify_gantt,
    style_defaults=DEFAULT_STYLESHEETS["gantt"],
    description="Gantt chart: task bars on the time axis",
))
register_strategy(DiagramStrategy(
    diagram_type=DiagramType.PIE.value,
    classifier=classify_pie,
    style_defaults=DEFAULT_STYLESHEETS["pie"],
    description="Pie chart: wedges and legend",
))
register_strategy(DiagramStrategy(
    diagram_type=DiagramType.MINDMAP.value,
    classifier=classify_mindmap,
    layout_policy="auto",
    style_defaults=DEFAULT_STYLESHEETS["mindmap"],
    description="Mind map",
))
register_strategy(DiagramStrategy(
    diagram_type=DiagramType.ORGCHART.value,
    classifier=classify_orgchart,
    layout_policy="always",
    style_defaults=DEFAULT_STYLESHEETS["orgchart"],
    description="Org chart: hierarchy laid out top-down",
))
register_strategy(DiagramStrategy(
    diagram_type=DiagramType.KANBAN.value,
    classifier=classify_kanban,
    style_defaults=DEFAULT_STYLESHEETS["kanban"],
    description="Kanban board: columns and cards",
))
register_strategy(DiagramStrategy(
    diagram_type=DiagramType.TIMELINE.value,
    classifier=classify_timeline,
    style_defaults=DEFAULT_STYLESHEETS["timeline"],
    description="Timeline: periods chained left to right with their events",
))
register_strategy(DiagramStrategy(
    diagram_type=DiagramType.USERJOURNEY.value,
    classifier=classify_journey,
    style_defaults=DEFAULT_STYLESHEETS["userjourney"],
    description="User journey: sections and tasks",
))
register_strategy(DiagramStrategy(
    diagram_type=DiagramType.SWOT.value,
    classifier=classify_swot,
    style_defaults=DEFAULT_STYLESHEETS["swot"],
    description="SWOT / quadrant chart",
))
