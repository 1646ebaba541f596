"""
classify package

Per-grammar shape classifiers and the diagram-type registry.
"""

from classify.registry import (
    STRATEGIES,
    DiagramStrategy,
    classify,
    get_strategy,
    register_strategy,
    supported_types,
)

__all__ = [
    "STRATEGIES",
    "DiagramStrategy",
    "classify",
    "get_strategy",
    "register_strategy",
    "supported_types",
]
