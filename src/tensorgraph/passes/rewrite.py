from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tensorgraph.ir import Graph, Op, Tensor

logger = logging.getLogger(__name__)


def link(producer: Op | None, consumer: Op) -> None:
    if producer is not None:
        producer.add_successor(consumer)
        consumer.add_predecessor(producer)


def unlink(producer: Op | None, consumer: Op) -> None:
    if producer is not None:
        producer.remove_successor(consumer)
        consumer.remove_predecessor(producer)


def rewire_input(consumer: Op, old: Tensor, new: Tensor, index: int | None = None) -> None:
    """Make `consumer` read `new` instead of `old` (everywhere, or only at
    input position `index`), fixing both the tensor links and the cached op
    adjacency."""
    if index is None:
        consumer.replace_input(old, new)
    else:
        consumer.inputs[index] = new
    if not any(t is old for t in consumer.inputs):
        old.remove_target(consumer)
    new.add_target(consumer)
    if old.source is not None and not any(t.source is old.source for t in consumer.inputs):
        unlink(old.source, consumer)
    link(new.source, consumer)


@dataclass
class RewriteState:
    """Removal plan shared by the passes of one optimizer run.

    Passes mark dead ops/tensors and queue tensors that may have lost their
    last consumer. Nothing is taken out of the graph until `apply()`, so
    lookups on `graph.ops`/`graph.tensors` stay valid during the passes.
    """

    removed_ops: list[Op] = field(default_factory=list)
    removed_tensors: list[Tensor] = field(default_factory=list)
    maybe_dead: list[Tensor] = field(default_factory=list)
    _removed_ids: set[int] = field(default_factory=set, repr=False)

    def is_removed(self, item: Op | Tensor) -> bool:
        return id(item) in self._removed_ids

    def remove_op(self, op: Op) -> None:
        if not self.is_removed(op):
            self._removed_ids.add(id(op))
            self.removed_ops.append(op)

    def remove_tensor(self, tensor: Tensor) -> None:
        if not self.is_removed(tensor):
            self._removed_ids.add(id(tensor))
            self.removed_tensors.append(tensor)

    def sweep(self) -> None:
        """Walk backward from queued tensors removing producers nobody reads."""
        while self.maybe_dead:
            tensor = self.maybe_dead.pop()
            if self.is_removed(tensor) or tensor.targets:
                continue

            op = tensor.source
            if op is None:
                # Neither produced nor consumed: disconnected.
                self.remove_tensor(tensor)
                continue
            if self.is_removed(op) or any(out.targets for out in op.outputs):
                continue

            logger.debug("sweep: removing dead %s op %d", op.kind.value, op.guid)
            self.remove_op(op)
            for out in op.outputs:
                out.set_source(None)
                self.remove_tensor(out)
            for inp in op.inputs:
                inp.remove_target(op)
                unlink(inp.source, op)
                self.maybe_dead.append(inp)
            op.inputs = []

    def apply(self, graph: Graph) -> None:
        graph.remove_operators(self.removed_ops)
        graph.remove_tensors(self.removed_tensors)
