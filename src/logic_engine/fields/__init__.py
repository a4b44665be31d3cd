"""Field dependency tracking and computed-field recomputation."""

from .graph import DependencyGraph, FieldNode
from .scheduler import UNAVAILABLE, ComputedFieldScheduler

__all__ = [
    "UNAVAILABLE",
    "ComputedFieldScheduler",
    "DependencyGraph",
    "FieldNode",
]
