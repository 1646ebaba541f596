"""
schemas/__init__.py

JSON Schema definitions and validation utilities for built graph documents.

The schema covers the flat JSON form produced by
``GraphDocument.to_dict()``.  Structural rules that JSON Schema cannot
express (ids unique, parents declared before use, edge endpoints that
are vertices) are checked by ``check_references``; ``validate_document``
reports both kinds together.
"""

from __future__ import annotations

import json
import os
from typing import Any, Dict, List, Optional, Tuple

from jsonschema import Draft202012Validator

# Schema file paths
SCHEMA_DIR = os.path.dirname(os.path.abspath(__file__))
GRAPH_DOCUMENT_SCHEMA_PATH = os.path.join(SCHEMA_DIR, "graph_document_schema.json")

# Cached schema and validator
_graph_document_schema: Optional[Dict] = None
_validator: Optional[Draft202012Validator] = None


def get_graph_document_schema() -> Dict:
    """Load and return the graph document schema."""
    global _graph_document_schema
    if _graph_document_schema is None:
        with open(GRAPH_DOCUMENT_SCHEMA_PATH, "r", encoding="utf-8") as f:
            _graph_document_schema = json.load(f)
    return _graph_document_schema


def _get_validator() -> Draft202012Validator:
    global _validator
    if _validator is None:
        schema = get_graph_document_schema()
        Draft202012Validator.check_schema(schema)
        _validator = Draft202012Validator(schema)
    return _validator


def check_references(data: Dict[str, Any]) -> List[str]:
    """Check cell ids and references in document order.

    Args:
        data: A document dictionary (``GraphDocument.to_dict()``).

    Returns:
        List of error messages (empty when consistent).
    """
    errors: List[str] = []
    seen: Dict[str, Dict[str, Any]] = {}
    cells = data.get("cells")
    if not isinstance(cells, list):
        return errors

    for i, cell in enumerate(cells):
        if not isinstance(cell, dict):
            continue
        cid = cell.get("id")
        if cid in seen:
            errors.append(f"cells -> {i}: duplicate id {cid!r}")
        parent = cell.get("parent")
        if parent is not None and parent not in seen:
            errors.append(f"cells -> {i}: parent {parent!r} is not declared before {cid!r}")
        if cell.get("edge"):
            for end in ("source", "target"):
                ref = cell.get(end)
                if ref is not None and not seen.get(ref, {}).get("vertex"):
                    errors.append(f"cells -> {i}: {end} {ref!r} is not a vertex")
        seen[cid] = cell

    return errors


def validate_document(data: Dict) -> Tuple[bool, List[str]]:
    """
    Validate a graph document against the schema.

    Args:
        data: The JSON data to validate

    Returns:
        Tuple of (is_valid, list_of_error_messages)
    """
    validator = _get_validator()
    error_messages = []
    for error in sorted(validator.iter_errors(data), key=lambda e: [str(p) for p in e.absolute_path]):
        path = " -> ".join(str(p) for p in error.absolute_path) if error.absolute_path else "root"
        error_messages.append(f"{path}: {error.message}")

    if not error_messages:
        error_messages = check_references(data)

    return not error_messages, error_messages


def validate_json_string(json_str: str) -> Tuple[bool, List[str], Optional[Dict]]:
    """
    Parse and validate a JSON string.

    Args:
        json_str: JSON string to parse and validate

    Returns:
        Tuple of (is_valid, list_of_error_messages, parsed_data_or_none)
    """
    try:
        data = json.loads(json_str)
    except json.JSONDecodeError as e:
        return False, [f"JSON parse error: {e.msg} at line {e.lineno}, column {e.colno}"], None

    is_valid, errors = validate_document(data)
    return is_valid, errors, data
