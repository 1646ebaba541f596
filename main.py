"""
main.py

mmd2drawio - Mermaid to draw.io converter

Converts Mermaid sources (rendered through the Mermaid CLI) or SVG files
that Mermaid rendered earlier into editable draw.io documents.

Usage:
    python main.py diagram.mmd
    python main.py docs/*.mmd -o out/ --max-concurrency 4
    python main.py rendered.svg --type flowchart --json
    python main.py --list-types

Dependencies:
    npm install -g @mermaid-js/mermaid-cli   (for .mmd inputs)

Environment:
    MMDC_PATH=... (optional path to the mmdc executable)
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from batch import BatchManager, BatchResult
from classify import STRATEGIES
from debug_trace import close_log, set_trace_enabled, trace
from mermaid.renderer import MmdcRenderer, SvgFileRenderer, detect_svg_diagram_type
from mermaid.sandbox import SandboxPool, handle_factory
from models import DiagramSource, resolve_diagram_type
from pipeline import ConversionResult
from settings import ConversionConfig, SettingsManager
from styles import THEMES

SVG_SUFFIXES = {".svg"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mmd2drawio",
        description="Convert Mermaid diagrams to editable draw.io documents",
    )
    parser.add_argument("inputs", nargs="*", help="Mermaid (.mmd/.mermaid) or rendered .svg files")
    parser.add_argument("-o", "--output", help="Output file (single input) or directory")
    parser.add_argument("--type", dest="diagram_type",
                        help="Diagram type (default: sniffed from the source or SVG)")
    parser.add_argument("--svg", action="store_true", help="Treat every input as pre-rendered SVG")
    parser.add_argument("--json", action="store_true", help="Write the flat JSON cell list instead of XML")
    parser.add_argument("--max-concurrency", type=int, help="Conversions in flight")
    parser.add_argument("--timeout", type=float, help="Per-conversion timeout in seconds")
    parser.add_argument("--theme", choices=sorted(THEMES), help="Style theme")
    parser.add_argument("--layout", choices=["TB", "LR"], help="Direction for computed layouts")
    parser.add_argument("--settings", help="Settings TOML file (default: platform config dir)")
    parser.add_argument("--trace", action="store_true", help="Print trace output to stderr")
    parser.add_argument("--list-types", action="store_true", help="List supported diagram types and exit")
    return parser


def load_config(args: argparse.Namespace) -> Tuple[ConversionConfig, SettingsManager]:
    """Settings file values, overridden by command-line flags."""
    manager = SettingsManager(settings_file=Path(args.settings) if args.settings else None)
    config = manager.to_config()
    if args.theme:
        config = config.with_overrides(theme=args.theme)
    if args.timeout:
        config = config.with_overrides(renderer=replace(config.renderer, timeout=args.timeout))
    if args.max_concurrency:
        config = config.with_overrides(batch=replace(config.batch, max_concurrency=args.max_concurrency))
    if args.layout:
        config = config.with_layout(direction=args.layout)
    return config, manager


def read_source(path: Path, diagram_type: Optional[str], as_svg: bool) -> DiagramSource:
    text = path.read_text(encoding="utf-8")
    if as_svg:
        dt = resolve_diagram_type(diagram_type, diagram_type.lower()) if diagram_type else None
        return DiagramSource(text=text, diagram_type=dt or detect_svg_diagram_type(text) or "",
                             name=path.stem)
    return DiagramSource.from_text(text, diagram_type, name=path.stem)


def output_path(src: Path, output: Optional[str], single: bool, as_json: bool) -> Path:
    suffix = ".json" if as_json else ".drawio"
    if output:
        out = Path(output)
        if single and not out.is_dir() and out.suffix:
            return out
        return out / f"{src.stem}{suffix}"
    return src.with_suffix(suffix)


def write_result(result: ConversionResult, dest: Path, as_json: bool) -> None:
    dest.parent.mkdir(parents=True, exist_ok=True)
    if as_json:
        dest.write_text(json.dumps(result.document, indent=2), encoding="utf-8")
    else:
        dest.write_text(result.document_xml or "", encoding="utf-8")


def print_summary(batch: BatchResult, paths: Sequence[Path], dests: Sequence[Path]) -> None:
    for result in batch.results:
        src = paths[result.index]
        if result.success:
            print(f"OK    {src} -> {dests[result.index]} ({result.diagram_type}, {result.elapsed:.2f}s)")
        else:
            print(f"FAIL  {src}: [{result.stage}] {result.message}")
        for w in result.warnings:
            print(f"      warning: {w}")
    print(f"{batch.succeeded} succeeded, {batch.failed} failed, {batch.cancelled} cancelled")


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.list_types:
        for name, strategy in STRATEGIES.items():
            print(f"{name:<12} layout={strategy.layout_policy:<6} {strategy.description}")
        return 0
    if not args.inputs:
        parser.error("no input files")

    config, manager = load_config(args)
    set_trace_enabled(args.trace or manager.settings.trace, manager.settings.log_file or None)

    paths = [Path(p) for p in args.inputs]
    missing = [p for p in paths if not p.is_file()]
    if missing:
        for p in missing:
            print(f"error: {p}: no such file", file=sys.stderr)
        return 2

    as_svg = args.svg or all(p.suffix.lower() in SVG_SUFFIXES for p in paths)
    sources = [read_source(p, args.diagram_type, as_svg) for p in paths]
    dests = [output_path(p, args.output, len(paths) == 1, args.json) for p in paths]

    renderer = SvgFileRenderer() if as_svg else MmdcRenderer(config.renderer)
    pool = SandboxPool(config.batch.pool_size, handle_factory(config.renderer))
    batch_manager = BatchManager(renderer, pool, config)
    try:
        batch = batch_manager.convert_many_sync(sources)
    except KeyboardInterrupt:
        batch_manager.cancel()
        print("interrupted", file=sys.stderr)
        return 130
    finally:
        batch_manager.close()

    for result in batch.results:
        if result.success:
            write_result(result, dests[result.index], args.json)
            trace(f"wrote {dests[result.index]}", "BUILD")

    print_summary(batch, paths, dests)
    close_log()
    return 0 if batch.success else 1


if __name__ == "__main__":
    sys.exit(main())
