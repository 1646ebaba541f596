"""
pipeline.py

One conversion, end to end:

    source -> render -> extract -> classify -> normalize -> layout
           -> style -> build -> validate -> serialize

Every stage raises a ``ConversionError`` subclass naming its stage.  This
module is the only place those exceptions become data: a failed
conversion yields a ``ConversionResult`` with ``success=False`` plus the
stage and message, never an exception that escapes into a batch.

Recovered problems (generic rectangle fallbacks, grid layout fallback,
dropped self-loops) travel on ``SemanticGraph.warnings`` and end up in
``ConversionResult.warnings``.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from classify import classify, get_strategy
from debug_trace import trace, trace_call, trace_exception
from drawio import GraphDocument, build, serialize
from errors import ConversionError, ConversionTimeoutError, RenderFailure, SchemaValidationError
from layout import apply_layout, normalize
from mermaid.renderer import Renderer, detect_svg_diagram_type, parse_svg
from mermaid.sandbox import SandboxHandle, SandboxPool
from models import DiagramSource, RenderedVisualTree, SemanticGraph
from schemas import validate_document
from settings import ConversionConfig
from styles import apply_styles
from svgtree import extract


@dataclass
class ConversionResult:
    """Outcome of one conversion.

    Attributes:
        index: Position of the source in its batch.
        name: Source display name.
        success: True when a document was produced.
        document_xml: Serialized mxfile XML (success only).
        document: Flat JSON form of the document (success only).
        stage: Failing stage (``dispatch``, ``render``, ``extract``,
            ``classify``, ``layout``, ``build``, ``timeout``,
            ``cancelled``, ``internal``); None on success.
        message: Failure message; empty on success.
        warnings: Recovered problems, in pipeline order.
        diagram_type: Resolved (or declared) diagram type.
        elapsed: Wall-clock seconds spent on this item.
    """
    index: int = 0
    name: str = ""
    success: bool = False
    document_xml: Optional[str] = None
    document: Optional[Dict[str, Any]] = None
    stage: Optional[str] = None
    message: str = ""
    warnings: List[str] = field(default_factory=list)
    diagram_type: str = ""
    elapsed: float = 0.0

    @classmethod
    def failure(cls, source: DiagramSource, index: int, exc: ConversionError,
                warnings: Optional[List[str]] = None, elapsed: float = 0.0) -> "ConversionResult":
        return cls(index=index, name=source.name, success=False, stage=exc.stage,
                   message=exc.message, warnings=list(warnings or []),
                   diagram_type=source.diagram_type, elapsed=elapsed)

    @classmethod
    def cancelled(cls, source: DiagramSource, index: int) -> "ConversionResult":
        return cls(index=index, name=source.name, success=False, stage="cancelled",
                   message="Batch cancelled before this conversion started",
                   diagram_type=source.diagram_type)

    def to_dict(self) -> Dict[str, Any]:
        """Structured form; failures carry ``{success: False, stage, message}``."""
        data: Dict[str, Any] = {
            "index": self.index,
            "name": self.name,
            "success": self.success,
            "diagram_type": self.diagram_type,
            "warnings": list(self.warnings),
            "elapsed": round(self.elapsed, 4),
        }
        if self.success:
            data["document"] = self.document
        else:
            data["stage"] = self.stage
            data["message"] = self.message
        return data


@dataclass
class ConversionOutput:
    """What ``convert_tree`` produces for a rendered tree."""
    document: GraphDocument
    data: Dict[str, Any]
    xml: str
    graph: SemanticGraph
    warnings: List[str]


# ─────────────────────────────────────────────────────────
# Synchronous core
# ─────────────────────────────────────────────────────────


@trace_call("PIPELINE")
def convert_tree(tree: RenderedVisualTree, diagram_type: str, config: ConversionConfig,
                 source_units: Optional[str] = None) -> ConversionOutput:
    """Convert a rendered visual tree into a draw.io document.

    Args:
        tree: Rendered SVG tree, owned by this call.
        diagram_type: Type value or alias.
        config: Conversion config.
        source_units: Overrides ``config.source_units``.

    Raises:
        ConversionError: Any fatal stage failure (see ``errors.py``).
    """
    strategy = get_strategy(diagram_type)
    primitives = extract(tree)
    graph = classify(primitives, strategy.diagram_type, config)

    units = source_units or config.source_units
    try:
        graph = normalize(graph, units, config)
    except ValueError as exc:
        raise ConversionError(str(exc), stage="layout") from exc

    graph = apply_layout(graph, strategy.layout_policy, config)
    graph = apply_styles(graph, config)
    document = build(graph, config)
    data = document.to_dict()

    if config.validate_output:
        ok, errors = validate_document(data)
        if not ok:
            raise SchemaValidationError(errors)

    xml = serialize(document)
    for w in graph.warnings:
        trace(w, "WARN")
    return ConversionOutput(document=document, data=data, xml=xml, graph=graph,
                            warnings=list(graph.warnings))


def convert_svg(svg_text: str, diagram_type: Optional[str] = None,
                config: Optional[ConversionConfig] = None, name: str = "") -> ConversionResult:
    """Convert pre-rendered SVG markup synchronously.

    The diagram type defaults to the SVG's ``aria-roledescription``.
    """
    config = config or ConversionConfig()
    if diagram_type:
        source = DiagramSource.from_text(svg_text, diagram_type, name)
    else:
        source = DiagramSource(svg_text, detect_svg_diagram_type(svg_text) or "", name)
    start = time.perf_counter()
    try:
        get_strategy(source.diagram_type)
        output = convert_tree(parse_svg(svg_text, name or "SVG input"), source.diagram_type, config)
    except ConversionError as exc:
        trace(f"{name or 'svg'}: {exc.stage}: {exc.message}", "ERROR")
        return ConversionResult.failure(source, 0, exc, elapsed=time.perf_counter() - start)
    except Exception as exc:
        trace_exception(f"{name or 'svg'}: unexpected error")
        err = ConversionError(f"{type(exc).__name__}: {exc}", stage="internal")
        return ConversionResult.failure(source, 0, err, elapsed=time.perf_counter() - start)
    return _success(source, 0, output, [], time.perf_counter() - start)


def _success(source: DiagramSource, index: int, output: ConversionOutput,
             warnings: List[str], elapsed: float) -> ConversionResult:
    return ConversionResult(
        index=index,
        name=source.name,
        success=True,
        document_xml=output.xml,
        document=output.data,
        warnings=warnings + output.warnings,
        diagram_type=output.graph.diagram_type,
        elapsed=elapsed,
    )


# ─────────────────────────────────────────────────────────
# Async conversion with rendering
# ─────────────────────────────────────────────────────────


async def render_with_retries(renderer: Renderer, source: DiagramSource, handle: SandboxHandle,
                              config: ConversionConfig, warnings: List[str]) -> RenderedVisualTree:
    """Render *source*, retrying transient failures with exponential backoff.

    Attempt ``k`` (from 0) that fails transiently is followed by a sleep of
    ``retry_backoff * 2**k`` seconds, up to ``retries`` retries.

    Raises:
        RenderFailure: A non-transient failure, or the last transient one.
    """
    settings = config.renderer
    attempt = 0
    while True:
        try:
            return await renderer.render(source, handle, settings.timeout)
        except RenderFailure as exc:
            if not exc.transient or attempt >= settings.retries:
                raise
            delay = settings.retry_backoff * (2 ** attempt)
            msg = f"Render attempt {attempt + 1} failed ({exc.message}); retrying in {delay:g}s"
            warnings.append(msg)
            trace(msg, "WARN")
            attempt += 1
            await asyncio.sleep(delay)


async def convert_source(source: DiagramSource, renderer: Renderer, pool: SandboxPool,
                         config: ConversionConfig, index: int = 0) -> ConversionResult:
    """Render and convert one source inside a pooled sandbox.

    The diagram type is resolved before a sandbox is acquired, so an
    unsupported type never reaches the renderer.  The wall-clock timeout
    (``config.renderer.timeout``) covers rendering, retries and the
    pipeline; on expiry the sandbox handle is recycled.

    Never raises for conversion problems; see ``ConversionResult``.
    """
    start = time.perf_counter()
    warnings: List[str] = []

    try:
        get_strategy(source.diagram_type)
    except ConversionError as exc:
        trace(f"[{index}] {source.name}: {exc.message}", "ERROR")
        return ConversionResult.failure(source, index, exc)

    try:
        async with pool.handle() as handle:
            return await _convert_in_sandbox(source, renderer, handle, config, index, warnings, start)
    except RenderFailure as exc:
        # Raised only by acquire when no sandbox could be created
        trace(f"[{index}] {source.name}: {exc.message}", "ERROR")
        return ConversionResult.failure(source, index, exc, warnings, time.perf_counter() - start)


async def _convert_in_sandbox(source: DiagramSource, renderer: Renderer, handle: SandboxHandle,
                              config: ConversionConfig, index: int, warnings: List[str],
                              start: float) -> ConversionResult:
    async def _run() -> ConversionOutput:
        tree = await render_with_retries(renderer, source, handle, config, warnings)
        return convert_tree(tree, source.diagram_type, config)

    try:
        output = await asyncio.wait_for(_run(), config.renderer.timeout)
    except (asyncio.TimeoutError, ConversionTimeoutError) as exc:
        handle.discard = True
        message = getattr(exc, "message", "") or f"Conversion exceeded {config.renderer.timeout:g}s"
        err = ConversionTimeoutError(message)
        trace(f"[{index}] {source.name}: timeout, recycling sandbox {handle.id}", "ERROR")
        return ConversionResult.failure(source, index, err, warnings, time.perf_counter() - start)
    except ConversionError as exc:
        trace(f"[{index}] {source.name}: {exc.stage}: {exc.message}", "ERROR")
        return ConversionResult.failure(source, index, exc, warnings, time.perf_counter() - start)
    except Exception as exc:
        trace_exception(f"[{index}] {source.name}: unexpected error")
        err = ConversionError(f"{type(exc).__name__}: {exc}", stage="internal")
        return ConversionResult.failure(source, index, err, warnings, time.perf_counter() - start)

    return _success(source, index, output, warnings, time.perf_counter() - start)

