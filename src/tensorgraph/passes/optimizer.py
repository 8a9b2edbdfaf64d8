from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

from .rewrite import RewriteState
from .transpose import TransposeEliminationPass, TransposeMatMulFusionPass

if TYPE_CHECKING:
    from tensorgraph.ir import Graph

logger = logging.getLogger(__name__)


class RewritePass(Protocol):
    def run(self, graph: Graph, state: RewriteState) -> int: ...


def default_passes() -> list[RewritePass]:
    # Fixed order: elimination, then fusion.
    return [TransposeEliminationPass(), TransposeMatMulFusionPass()]


@dataclass
class GraphOptimizer:
    """Runs the rewrite passes once each, in order, then sweeps dead producers.

    The graph must already be topologically sorted (`Graph.optimize` takes
    care of that). Removals are applied only after every pass has run.
    """

    passes: list[RewritePass] = field(default_factory=default_passes)

    def run(self, graph: Graph) -> RewriteState:
        if not graph.sorted:
            raise ValueError("GraphOptimizer requires a topologically sorted graph; call topo_sort() first")

        state = RewriteState()
        for p in self.passes:
            n = p.run(graph, state)
            logger.debug("%s: %d rewrite(s)", type(p).__name__, n)

        state.sweep()
        state.apply(graph)
        logger.info(
            "optimize: removed %d op(s) and %d tensor(s); %d op(s) remain",
            len(state.removed_ops),
            len(state.removed_tensors),
            len(graph.ops),
        )
        return state
