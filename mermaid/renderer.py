"""
mermaid/renderer.py

Render Mermaid source to an SVG visual tree with the Mermaid CLI (mmdc).

``MmdcRenderer`` runs mmdc as an asyncio subprocess inside a sandbox
handle's private directory.  Its failures are reported as
``RenderFailure``: a source with a Mermaid syntax error is not transient
and is never retried; a crash, a missing output file or a browser launch
problem is transient.

``SvgFileRenderer`` skips mmdc and reads SVG markup that was rendered
earlier (CLI ``--svg`` inputs and tests).

Both implement the renderer protocol used by ``pipeline.py``::

    async render(source, handle, timeout) -> RenderedVisualTree
"""

from __future__ import annotations

import asyncio
import os
import re
import shutil
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Optional, Protocol

from debug_trace import trace
from errors import ConversionTimeoutError, ExtractionError, RenderFailure
from mermaid.sandbox import SandboxHandle
from models import DiagramSource, RenderedVisualTree, resolve_diagram_type
from settings import RendererSettings

# mmdc stderr fragments meaning the diagram source itself is wrong
_SYNTAX_ERROR_RE = re.compile(r"Parse error|Lexical error|Syntax error|No diagram type detected|UnknownDiagramError",
                              re.IGNORECASE)


class Renderer(Protocol):
    async def render(self, source: DiagramSource, handle: SandboxHandle,
                     timeout: Optional[float]) -> RenderedVisualTree:
        ...


def find_mmdc(configured: str = "") -> str | None:
    """Find the Mermaid CLI (mmdc) executable.

    Search order:
        1. *configured* (``[renderer] mmdc_path`` in settings.toml)
        2. MMDC_PATH environment variable
        3. mmdc on system PATH

    Returns:
        Path to mmdc executable if found, None otherwise.
    """
    # 1. Settings
    if configured and os.path.isfile(configured):
        return configured

    # 2. Environment variable
    env_path = os.environ.get("MMDC_PATH")
    if env_path and os.path.isfile(env_path):
        return env_path

    # 3. System PATH
    path_exe = shutil.which("mmdc")
    if path_exe:
        return path_exe

    return None


def parse_svg(svg_text: str, origin: str = "SVG") -> RenderedVisualTree:
    """Parse SVG markup, turning XML errors into ``ExtractionError``."""
    try:
        return RenderedVisualTree.from_svg_text(svg_text)
    except ET.ParseError as exc:
        raise ExtractionError(f"{origin} is not well-formed XML: {exc}") from exc


def detect_svg_diagram_type(svg_text: str) -> Optional[str]:
    """Diagram type from a rendered SVG's ``aria-roledescription``.

    Returns:
        The resolved type value, the raw role when it is not a known alias,
        or None when the markup has no role (or is not XML).
    """
    try:
        root = ET.fromstring(svg_text)
    except ET.ParseError:
        return None
    role = (root.get("aria-roledescription") or "").strip()
    if not role:
        return None
    return resolve_diagram_type(role, role.lower())


class MmdcRenderer:
    """Render through ``mmdc`` in a sandbox directory.

    Args:
        settings: Renderer settings (mmdc path, background colour).
    """

    def __init__(self, settings: Optional[RendererSettings] = None):
        self.settings = settings or RendererSettings()

    async def render(self, source: DiagramSource, handle: SandboxHandle,
                     timeout: Optional[float]) -> RenderedVisualTree:
        mmdc = find_mmdc(self.settings.mmdc_path)
        if mmdc is None:
            raise RenderFailure(
                "Mermaid CLI (mmdc) not found. "
                "Install with: npm install -g @mermaid-js/mermaid-cli, "
                "or set the MMDC_PATH environment variable to the mmdc executable.",
                transient=False,
            )

        input_path = handle.path / "input.mmd"
        output_path = handle.path / "output.svg"
        input_path.write_text(source.text, encoding="utf-8")
        if output_path.exists():
            output_path.unlink()

        cmd = [
            mmdc,
            "-i", str(input_path),
            "-o", str(output_path),
            "-b", self.settings.background,
            "-p", str(handle.puppeteer_config),
            "-q",
        ]
        trace(f"mmdc command: {' '.join(cmd)}", "MMDC")

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise RenderFailure(f"Could not start mmdc: {exc}", transient=True) from exc

        try:
            _stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout)
        except asyncio.TimeoutError:
            await _kill(proc)
            raise ConversionTimeoutError(f"mmdc did not finish within {timeout:g}s") from None
        except asyncio.CancelledError:
            await _kill(proc)
            raise

        err_text = stderr.decode("utf-8", errors="replace").strip()
        if proc.returncode != 0:
            transient = not _SYNTAX_ERROR_RE.search(err_text)
            raise RenderFailure(
                f"mmdc rendering failed (exit {proc.returncode}): {err_text}",
                transient=transient,
            )

        # Verify output was created
        if not output_path.is_file():
            raise RenderFailure(
                f"mmdc ran successfully but produced no SVG output. stderr: {err_text}",
                transient=True,
            )

        return parse_svg(output_path.read_text(encoding="utf-8"), "mmdc output")


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        await proc.wait()


class SvgFileRenderer:
    """Treat ``source.text`` as SVG that was already rendered.

    A source whose text names an existing ``.svg`` file is read from disk.
    """

    async def render(self, source: DiagramSource, handle: SandboxHandle,
                     timeout: Optional[float]) -> RenderedVisualTree:
        text = source.text
        stripped = text.strip()
        if stripped.lower().endswith(".svg") and "<" not in stripped and Path(stripped).is_file():
            text = Path(stripped).read_text(encoding="utf-8")
        return parse_svg(text, source.name or "SVG input")
