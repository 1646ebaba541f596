"""
errors.py

Exception taxonomy for the conversion pipeline.

Every error carries the pipeline ``stage`` it belongs to so that
``pipeline.py`` can turn it into a structured failure
``{success: False, stage, message}`` without inspecting types.

Fatal for a single conversion:
    ExtractionError, UnsupportedDiagramTypeError, RenderFailure (after
    retries), ConversionTimeoutError, GraphIntegrityError,
    SchemaValidationError

Recovered inside their stage and reported as warnings:
    ClassificationError (generic rectangle fallback),
    LayoutError (grid placement fallback)
"""

from __future__ import annotations


class ConversionError(Exception):
    """Base exception for all conversion errors."""
    stage = "convert"

    def __init__(self, message: str, stage: str | None = None):
        super().__init__(message)
        self.message = message
        if stage is not None:
            self.stage = stage


class ExtractionError(ConversionError):
    """Raised when the rendered visual tree is empty or malformed."""
    stage = "extract"


class ClassificationError(ConversionError):
    """Raised when no rule matches a primitive cluster."""
    stage = "classify"


class GraphIntegrityError(ConversionError):
    """Raised when a semantic graph breaks referential or containment rules."""
    stage = "classify"


class UnsupportedDiagramTypeError(ConversionError):
    """Raised for a diagram type with no registered strategy."""
    stage = "dispatch"

    def __init__(self, diagram_type: str):
        super().__init__(f"Unsupported diagram type: {diagram_type!r}")
        self.diagram_type = diagram_type


class LayoutError(ConversionError):
    """Raised when layered layout cannot finish within its iteration limit."""
    stage = "layout"


class RenderFailure(ConversionError):
    """Raised by the rendering collaborator.

    Args:
        message: Human readable reason (mmdc stderr, crash, etc.).
        transient: True when a retry may succeed (crash, browser launch
            failure).  Syntax errors are not transient.
    """
    stage = "render"

    def __init__(self, message: str, transient: bool = True):
        super().__init__(message)
        self.transient = transient


class ConversionTimeoutError(ConversionError, TimeoutError):
    """Raised when a conversion exceeds its wall-clock timeout."""
    stage = "timeout"


class SchemaValidationError(ConversionError):
    """Raised when the built document fails schema validation."""
    stage = "build"

    def __init__(self, errors: list[str]):
        super().__init__("Graph document failed schema validation: " + "; ".join(errors[:5]))
        self.errors = errors
