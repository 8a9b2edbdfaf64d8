from __future__ import annotations

import logging
from typing import Iterable, Sequence, overload

from tensorgraph.errors import CyclicGraph, InvalidGraphState
from tensorgraph.memory.allocator import Allocator, AllocatorConfig
from tensorgraph.memory.blob import Blob
from tensorgraph.memory.runtime import CpuRuntime, Runtime

from .dtypes import DType, float32
from .op import ElementWise, MatMul, Op, OpType, Transpose, Unary
from .shapes import Shape, as_shape
from .tensor import Tensor

logger = logging.getLogger(__name__)


class Graph:
	"""Owns every tensor and operator of a dataflow graph.

	Design choices:
	- Tensors know their producer (`source`) and consumers (`targets`); ops
	  cache the derived `predecessors`/`successors`.
	- `ops` is only guaranteed to be in topological order while `sorted` is
	  true. Any structural mutation clears the flag.
	- Memory is planned once for all tensors through a single arena request.
	"""

	def __init__(
		self,
		runtime: Runtime | None = None,
		*,
		allocator_config: AllocatorConfig | None = None,
		name: str = "graph",
	) -> None:
		self.name = name
		self.runtime: Runtime = runtime if runtime is not None else CpuRuntime()
		self.allocator = Allocator(self.runtime, allocator_config or AllocatorConfig())
		self.tensors: list[Tensor] = []
		self.ops: list[Op] = []
		self.sorted = False

	# ------------------------------------------------------------------
	# Construction
	# ------------------------------------------------------------------

	@overload
	def add_tensor(self, shape: Iterable[int], dtype: DType = ...) -> Tensor: ...

	@overload
	def add_tensor(self, shape: Tensor) -> Tensor: ...

	def add_tensor(self, shape, dtype: DType = float32) -> Tensor:
		"""Create a tensor on the graph runtime, or adopt an existing one."""
		if isinstance(shape, Tensor):
			tensor = shape
			if tensor.runtime != self.runtime:
				raise InvalidGraphState(
					f"Tensor runtime mismatch: cannot add a tensor on {tensor.runtime.name} "
					f"to a graph on {self.runtime.name}"
				)
			if self._owns_tensor(tensor):
				raise InvalidGraphState(f"Tensor {tensor.guid} is already part of the graph")
		else:
			tensor = Tensor(shape=as_shape(shape), dtype=dtype, runtime=self.runtime)
		self.tensors.append(tensor)
		self.sorted = False
		return tensor

	def add_tensors(self, tensors: Sequence[Tensor]) -> list[Tensor]:
		return [self.add_tensor(t) for t in tensors]

	def add_operator(self, op: Op) -> Op:
		"""Insert `op` and wire tensor links plus the derived op adjacency."""
		self._check_insertable(op, [*op.inputs, *op.outputs], op.outputs)

		self.sorted = False
		self.ops.append(op)
		for t in op.inputs:
			t.add_target(op)
			pred = t.source
			if pred is not None:
				pred.add_successor(op)
				op.add_predecessor(pred)
		for t in op.outputs:
			t.set_source(op)
			for succ in t.targets:
				succ.add_predecessor(op)
				op.add_successor(succ)
		return op

	def _add_with_outputs(self, op: Op, output: Tensor | None) -> Tensor:
		# Checked before the output tensor is created.
		if output is None:
			self._check_insertable(op, op.inputs, [])
		else:
			self._check_insertable(op, [*op.inputs, output], [output])
		shapes = op.infer_shape()
		if output is None:
			output = self.add_tensor(shapes[0], op.inputs[0].dtype)
		op.outputs = [output]
		self.add_operator(op)
		return output

	def matmul(
		self,
		a: Tensor,
		b: Tensor,
		*,
		trans_a: bool = False,
		trans_b: bool = False,
		output: Tensor | None = None,
	) -> Tensor:
		return self._add_with_outputs(MatMul(inputs=[a, b], trans_a=trans_a, trans_b=trans_b), output)

	def transpose(self, x: Tensor, permute: Sequence[int] | None = None, *, output: Tensor | None = None) -> Tensor:
		if permute is None:
			permute = tuple(reversed(range(x.rank)))
		return self._add_with_outputs(Transpose(inputs=[x], permute=tuple(permute)), output)

	def elementwise(self, kind: OpType, a: Tensor, b: Tensor, *, output: Tensor | None = None) -> Tensor:
		return self._add_with_outputs(ElementWise(inputs=[a, b], op_type=kind), output)

	def add(self, a: Tensor, b: Tensor, *, output: Tensor | None = None) -> Tensor:
		return self.elementwise(OpType.ADD, a, b, output=output)

	def sub(self, a: Tensor, b: Tensor, *, output: Tensor | None = None) -> Tensor:
		return self.elementwise(OpType.SUB, a, b, output=output)

	def mul(self, a: Tensor, b: Tensor, *, output: Tensor | None = None) -> Tensor:
		return self.elementwise(OpType.MUL, a, b, output=output)

	def div(self, a: Tensor, b: Tensor, *, output: Tensor | None = None) -> Tensor:
		return self.elementwise(OpType.DIV, a, b, output=output)

	def unary(self, kind: OpType, x: Tensor, *, output: Tensor | None = None) -> Tensor:
		return self._add_with_outputs(Unary(inputs=[x], op_type=kind), output)

	def relu(self, x: Tensor, *, output: Tensor | None = None) -> Tensor:
		return self.unary(OpType.RELU, x, output=output)

	# ------------------------------------------------------------------
	# Lookup / removal
	# ------------------------------------------------------------------

	def get_tensor(self, fuid: int) -> Tensor | None:
		for t in self.tensors:
			if t.fuid == fuid:
				return t
		return None

	def get_operator(self, guid: int) -> Op | None:
		for op in self.ops:
			if op.guid == guid:
				return op
		return None

	def remove_operators(self, ops: Iterable[Op]) -> None:
		dead = {id(op) for op in ops}
		if dead:
			self.ops = [op for op in self.ops if id(op) not in dead]
			self.sorted = False

	def remove_tensors(self, tensors: Iterable[Tensor]) -> None:
		dead = {id(t) for t in tensors}
		if dead:
			self.tensors = [t for t in self.tensors if id(t) not in dead]
			self.sorted = False

	def _owns_tensor(self, tensor: Tensor) -> bool:
		return any(t is tensor for t in self.tensors)

	def _check_owned(self, op: Op, tensors: Iterable[Tensor]) -> None:
		for t in tensors:
			if not self._owns_tensor(t):
				raise InvalidGraphState(f"{op.kind.value} op {op.guid} references tensor {t.guid} outside the graph")

	def _check_insertable(self, op: Op, tensors: Iterable[Tensor], outputs: Iterable[Tensor]) -> None:
		if any(o is op for o in self.ops):
			raise InvalidGraphState(f"{op.kind.value} op {op.guid} is already part of the graph")
		self._check_owned(op, tensors)
		for t in outputs:
			if t.source is not None:
				raise InvalidGraphState(
					f"Tensor {t.guid} already has producer op {t.source.guid}; cannot assign {op.kind.value} op {op.guid}"
				)

	# ------------------------------------------------------------------
	# Passes
	# ------------------------------------------------------------------

	def topo_sort(self) -> bool:
		"""Reorder `ops` topologically; False (and no change) if there is a cycle."""
		if self.sorted:
			return True

		order: list[Op] = []
		placed: set[int] = set()
		while len(order) < len(self.ops):
			modified = False
			for op in self.ops:
				if id(op) in placed:
					continue
				if all(t.source is None or id(t.source) in placed for t in op.inputs):
					order.append(op)
					placed.add(id(op))
					modified = True
			if not modified:
				logger.debug("topo_sort: %d of %d ops unplaceable (cycle)", len(self.ops) - len(order), len(self.ops))
				return False

		self.ops = order
		self.sorted = True
		return True

	def _require_sorted(self, what: str) -> None:
		if not self.topo_sort():
			raise CyclicGraph(f"Graph {self.name!r} contains a cycle; cannot {what}")

	def optimize(self) -> None:
		"""Run the rewrite pipeline (transpose elimination, then fusion)."""
		from tensorgraph.passes.optimizer import GraphOptimizer

		self._require_sorted("optimize")
		# Rewrites assume a consistent graph; reject a broken one untouched.
		self.check_valid()
		GraphOptimizer().run(self)
		self.check_valid()

	def shape_infer(self) -> None:
		"""Propagate shapes along topological order, updating outputs in place.

		New shapes are staged per FUID and only written once every op has
		been inferred, so a failure leaves all tensor shapes as they were.
		"""
		self._require_sorted("infer shapes")

		pending: dict[int, Shape] = {}
		for op in self.ops:
			shapes = op.infer_shapes([pending.get(t.fuid, t.shape) for t in op.inputs])
			if len(shapes) != len(op.outputs):
				raise InvalidGraphState(
					f"{op.kind.value} op {op.guid} inferred {len(shapes)} shapes for {len(op.outputs)} outputs"
				)
			for new_shape, out in zip(shapes, op.outputs):
				if self.get_tensor(out.fuid) is None:
					raise InvalidGraphState(f"Output tensor fuid={out.fuid} of op {op.guid} is not in the graph")
				pending[out.fuid] = new_shape

		for fuid, new_shape in pending.items():
			tensor = self.get_tensor(fuid)
			if new_shape != tensor.shape:
				logger.debug("shape_infer: tensor %d %s -> %s", tensor.guid, tensor.shape, new_shape)
				tensor.set_shape(new_shape)

	def data_malloc(self) -> None:
		"""Bind every tensor to a disjoint slice of one arena allocation."""
		self._require_sorted("plan memory")

		total = sum(t.nbytes for t in self.tensors)
		offset = self.allocator.alloc(total)
		buffer = self.allocator.get_buffer()
		for t in self.tensors:
			t.data = Blob(self.runtime, buffer, offset)
			offset += t.nbytes

		used, peak = self.allocator.info()
		logger.info("data_malloc: %d tensors, %d bytes (used=%d, peak=%d)", len(self.tensors), total, used, peak)

	def release(self) -> None:
		"""Return the arena buffer to the runtime; tensor views become unbound."""
		self.allocator.release()
		for t in self.tensors:
			t.data = None

	def __enter__(self) -> Graph:
		return self

	def __exit__(self, *exc_info) -> None:
		self.release()

	def check_valid(self) -> bool:
		"""Verify the ownership/adjacency invariants; raise on the first violation."""
		op_ids = {id(op) for op in self.ops}
		tensor_ids = {id(t) for t in self.tensors}

		for t in self.tensors:
			if t.source is None and not t.targets:
				raise InvalidGraphState(f"Tensor {t.guid} has neither a source nor targets")
			for op in t.targets:
				if id(op) not in op_ids:
					raise InvalidGraphState(f"Tensor {t.guid} targets op {op.guid} outside the graph")
			if t.source is not None and id(t.source) not in op_ids:
				raise InvalidGraphState(f"Tensor {t.guid} source op {t.source.guid} is outside the graph")

		for op in self.ops:
			for t in [*op.inputs, *op.outputs]:
				if id(t) not in tensor_ids:
					raise InvalidGraphState(f"Op {op.guid} references tensor {t.guid} outside the graph")
			for t in op.inputs:
				if not any(o is op for o in t.targets):
					raise InvalidGraphState(f"Op {op.guid} reads tensor {t.guid} but is not among its targets")
			for t in op.outputs:
				if t.source is not op:
					raise InvalidGraphState(f"Op {op.guid} writes tensor {t.guid} but is not its source")

			expected_preds = {id(t.source) for t in op.inputs if t.source is not None}
			expected_succs = {id(succ) for t in op.outputs for succ in t.targets}
			for other in [*op.predecessors, *op.successors]:
				if id(other) not in op_ids:
					raise InvalidGraphState(f"Op {op.guid} is linked to op {other.guid} outside the graph")
			if {id(p) for p in op.predecessors} != expected_preds:
				raise InvalidGraphState(f"Op {op.guid} predecessors disagree with its input tensors")
			if {id(s) for s in op.successors} != expected_succs:
				raise InvalidGraphState(f"Op {op.guid} successors disagree with its output tensors")

		seen: set[int] = set()
		for t in self.tensors:
			if t.fuid in seen:
				raise InvalidGraphState(f"Duplicate tensor fuid {t.fuid}")
			seen.add(t.fuid)
		return True

	# ------------------------------------------------------------------
	# Debug output
	# ------------------------------------------------------------------

	def summary(self) -> str:
		lines: list[str] = [f"Graph(name={self.name!r}, ops={len(self.ops)}, tensors={len(self.tensors)})"]
		for op in self.ops:
			ins = ", ".join(f"{t.guid}:{list(t.shape)}" for t in op.inputs)
			outs = ", ".join(f"{t.guid}:{list(t.shape)}" for t in op.outputs)
			lines.append(f"- {op.guid}: {op.kind.value}({ins}) -> {outs}")
		return "\n".join(lines)

	def __str__(self) -> str:
		lines = ["Graph Tensors:"]
		lines.extend(repr(t) for t in self.tensors)
		lines.append("Graph operators:")
		for op in self.ops:
			preds = [p.guid for p in op.predecessors]
			succs = [s.guid for s in op.successors]
			lines.append(f"OP {op.guid}, pred {preds}, succ {succs}, {op}")
		return "\n".join(lines)
