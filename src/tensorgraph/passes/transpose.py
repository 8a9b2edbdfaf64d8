"""Transpose rewrites: redundant-pair elimination and folding into MatMul.

Both passes are local pattern matches over a topologically sorted graph.
Each one first collects its matches, then applies them; a single run never
iterates to a fixed point.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from tensorgraph.errors import UnsupportedOperator
from tensorgraph.ir import Graph, MatMul, Op, Transpose

from .rewrite import RewriteState, rewire_input, unlink

logger = logging.getLogger(__name__)


def is_inverse_permutation(outer: Sequence[int], inner: Sequence[int]) -> bool:
    """True if applying `inner` then `outer` is the identity."""
    if len(outer) != len(inner):
        return False
    return all(outer[inner[i]] == i for i in range(len(inner)))


def swaps_last_two_axes(permute: Sequence[int]) -> bool:
    rank = len(permute)
    if rank < 2:
        return False
    if any(permute[i] != i for i in range(rank - 2)):
        return False
    return permute[rank - 1] == rank - 2 and permute[rank - 2] == rank - 1


@dataclass(slots=True)
class TransposeEliminationPass:
    """Removes Transpose(p) -> Transpose(q) pairs whose composition is the identity.

    Consumers of the downstream Transpose are reconnected to the upstream
    Transpose's input. The downstream op and its output are removed; the
    upstream op is left to the dead-producer sweep (it may have other users).
    """

    def run(self, graph: Graph, state: RewriteState) -> int:
        # 1. Collect non-overlapping (down, up) pairs in topological order.
        candidates: list[Transpose] = []
        claimed: set[int] = set()
        for op in graph.ops:
            if id(op) in claimed or state.is_removed(op):
                continue
            up = self._match(op)
            if up is None or id(up) in claimed:
                continue
            candidates.append(op)
            claimed.update((id(op), id(up)))

        # 2. Apply.
        for down in candidates:
            self.eliminate(down, state)
        return len(candidates)

    def eliminate(self, down: Op, state: RewriteState) -> None:
        up = self._match(down)
        if up is None:
            raise UnsupportedOperator(
                f"{down.kind.value} op {down.guid} is not the second half of a redundant Transpose pair"
            )
        mid = down.inputs[0]
        src = up.inputs[0]
        out = down.outputs[0]

        mid.remove_target(down)
        unlink(up, down)
        for consumer in list(out.targets):
            rewire_input(consumer, out, src)

        logger.debug("eliminated Transpose pair %d -> %d", up.guid, down.guid)
        out.set_source(None)
        down.inputs = []
        state.remove_op(down)
        state.remove_tensor(out)
        state.maybe_dead.append(mid)

    @staticmethod
    def _match(op: Op) -> Transpose | None:
        if not isinstance(op, Transpose) or len(op.predecessors) != 1:
            return None
        up = op.predecessors[0]
        if not isinstance(up, Transpose) or op.inputs[0].source is not up:
            return None
        if not is_inverse_permutation(op.permute, up.permute):
            return None
        # Removing a pair whose output nobody reads would drop a graph output.
        if not op.outputs[0].targets:
            return None
        return up


@dataclass(slots=True)
class TransposeMatMulFusionPass:
    """Folds a last-two-axes Transpose feeding a MatMul into transA/transB."""

    def run(self, graph: Graph, state: RewriteState) -> int:
        candidates: list[tuple[MatMul, int]] = []
        for op in graph.ops:
            if not isinstance(op, MatMul) or state.is_removed(op):
                continue
            for index in range(2):
                if self._match(op, index) is not None:
                    candidates.append((op, index))

        for matmul, index in candidates:
            self.fold(matmul, index, state)
        return len(candidates)

    def fold(self, matmul: Op, index: int, state: RewriteState) -> None:
        if not isinstance(matmul, MatMul):
            raise UnsupportedOperator(f"Cannot fold a Transpose into {matmul.kind.value} op {matmul.guid}")
        transpose = self._match(matmul, index)
        if transpose is None:
            raise UnsupportedOperator(
                f"Input {index} of MatMul op {matmul.guid} is not produced by a last-two-axes Transpose"
            )

        if index == 0:
            matmul.trans_a = not matmul.trans_a
        else:
            matmul.trans_b = not matmul.trans_b

        inp = matmul.inputs[index]
        rewire_input(matmul, inp, transpose.inputs[0], index=index)
        logger.debug("folded Transpose %d into MatMul %d input %d", transpose.guid, matmul.guid, index)
        state.maybe_dead.append(inp)

    @staticmethod
    def _match(matmul: MatMul, index: int) -> Transpose | None:
        producer = matmul.inputs[index].source
        if isinstance(producer, Transpose) and swaps_last_two_axes(producer.permute):
            return producer
        return None
