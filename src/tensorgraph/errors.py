"""Error taxonomy shared by the IR, the rewrite passes and the allocator.

Every error is raised at the call boundary that detects it; nothing here is
recovered internally.
"""

from __future__ import annotations


class TensorGraphError(Exception):
    """Base class for all tensorgraph errors."""


class InvalidGraphState(TensorGraphError):
    """An adjacency or ownership invariant of the graph does not hold."""


class CyclicGraph(TensorGraphError):
    """Topological sorting cannot make progress."""


class ShapeMismatch(TensorGraphError, ValueError):
    """Operand shapes are incompatible (inner dims or broadcast dims)."""


class AllocatorMisuse(TensorGraphError):
    """The allocator was used outside of its planning phase or with bad arguments."""


class UnsupportedOperator(TensorGraphError):
    """A rewrite was requested on an operator it does not apply to."""
