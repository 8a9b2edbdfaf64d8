"""tensorgraph: tensor dataflow graph IR, rewrite passes and memory planning.

Build a graph, then `optimize()`, `shape_infer()` and `data_malloc()` it.
Kernels and device runtimes are external collaborators.
"""

import logging

from .errors import (
    AllocatorMisuse,
    CyclicGraph,
    InvalidGraphState,
    ShapeMismatch,
    TensorGraphError,
    UnsupportedOperator,
)
from .ir.dtypes import DType, float32
from .ir.graph import Graph
from .ir.tensor import Tensor
from .memory import Allocator, AllocatorConfig, CpuRuntime

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "DType",
    "float32",
    "Graph",
    "Tensor",
    "Allocator",
    "AllocatorConfig",
    "CpuRuntime",
    "TensorGraphError",
    "InvalidGraphState",
    "CyclicGraph",
    "ShapeMismatch",
    "AllocatorMisuse",
    "UnsupportedOperator",
]
