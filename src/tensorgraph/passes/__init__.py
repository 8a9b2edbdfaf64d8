from .optimizer import GraphOptimizer, RewritePass, default_passes
from .rewrite import RewriteState
from .transpose import (
    TransposeEliminationPass,
    TransposeMatMulFusionPass,
    is_inverse_permutation,
    swaps_last_two_axes,
)

__all__ = [
    "GraphOptimizer",
    "RewritePass",
    "RewriteState",
    "default_passes",
    "TransposeEliminationPass",
    "TransposeMatMulFusionPass",
    "is_inverse_permutation",
    "swaps_last_two_axes",
]
