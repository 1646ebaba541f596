"""
mermaid package

Mermaid CLI rendering and the sandbox pool that isolates it.
"""

from mermaid.renderer import MmdcRenderer, SvgFileRenderer, detect_svg_diagram_type, find_mmdc
from mermaid.sandbox import SandboxHandle, SandboxPool, handle_factory

__all__ = [
    "MmdcRenderer",
    "SvgFileRenderer",
    "SandboxHandle",
    "SandboxPool",
    "detect_svg_diagram_type",
    "find_mmdc",
    "handle_factory",
]
