from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Sequence

from tensorgraph.errors import ShapeMismatch

from .shapes import Shape, infer_broadcast, infer_matmul, is_permutation
from .tensor import next_guid

if TYPE_CHECKING:
	from .tensor import Tensor


class OpType(str, Enum):
	MATMUL = "MatMul"
	TRANSPOSE = "Transpose"
	ADD = "Add"
	SUB = "Sub"
	MUL = "Mul"
	DIV = "Div"
	RELU = "Relu"
	SIGMOID = "Sigmoid"
	TANH = "Tanh"
	ABS = "Abs"


BINARY_KINDS = frozenset({OpType.ADD, OpType.SUB, OpType.MUL, OpType.DIV})
UNARY_KINDS = frozenset({OpType.RELU, OpType.SIGMOID, OpType.TANH, OpType.ABS})


@dataclass(slots=True, eq=False)
class Op:
	"""Base class for IR operations.

	`predecessors`/`successors` are a cache of the tensor-level links
	(`Tensor.source`/`Tensor.targets`). `Graph.add_operator` derives them, and
	rewrite passes keep them in step whenever they move a tensor link.
	"""

	inputs: list[Tensor]
	outputs: list[Tensor] = field(default_factory=list)
	guid: int = field(default_factory=next_guid)
	predecessors: list[Op] = field(default_factory=list, repr=False)
	successors: list[Op] = field(default_factory=list, repr=False)

	@property
	def kind(self) -> OpType:
		raise NotImplementedError

	def infer_shape(self, inputs: Sequence[Tensor] | None = None) -> list[Shape]:
		inputs = self.inputs if inputs is None else inputs
		return self.infer_shapes([t.shape for t in inputs])

	def infer_shapes(self, shapes: Sequence[Shape]) -> list[Shape]:
		"""Output shapes computed from `shapes` instead of the current input tensors."""
		raise NotImplementedError

	def add_predecessor(self, op: Op) -> None:
		if op not in self.predecessors:
			self.predecessors.append(op)

	def remove_predecessor(self, op: Op) -> None:
		if op in self.predecessors:
			self.predecessors.remove(op)

	def add_successor(self, op: Op) -> None:
		if op not in self.successors:
			self.successors.append(op)

	def remove_successor(self, op: Op) -> None:
		if op in self.successors:
			self.successors.remove(op)

	def replace_input(self, old: Tensor, new: Tensor) -> None:
		self.inputs = [new if t is old else t for t in self.inputs]

	def _args(self) -> str:
		return ""

	def __str__(self) -> str:
		ins = ",".join(str(t.guid) for t in self.inputs)
		outs = ",".join(str(t.guid) for t in self.outputs)
		return f"{self.kind.value}[{self.guid}]({self._args()}input=[{ins}],output=[{outs}])"


@dataclass(slots=True, eq=False)
class MatMul(Op):
	"""Batched matrix multiplication: (..., M, K) @ (..., K, N) -> (..., M, N).

	`trans_a`/`trans_b` mean the operand is read with its last two axes
	swapped.
	"""

	trans_a: bool = False
	trans_b: bool = False

	@property
	def kind(self) -> OpType:
		return OpType.MATMUL

	def infer_shapes(self, shapes: Sequence[Shape]) -> list[Shape]:
		a, b = _expect_inputs(self, shapes, 2)
		return [infer_matmul(a, b, self.trans_a, self.trans_b)]

	def _args(self) -> str:
		return f"[{'A^T' if self.trans_a else 'A'},{'B^T' if self.trans_b else 'B'}],"


@dataclass(slots=True, eq=False)
class Transpose(Op):
	"""Axis permutation: output axis i is input axis permute[i]."""

	permute: tuple[int, ...] = ()

	def __post_init__(self) -> None:
		self.permute = tuple(int(p) for p in self.permute)

	@property
	def kind(self) -> OpType:
		return OpType.TRANSPOSE

	def infer_shapes(self, shapes: Sequence[Shape]) -> list[Shape]:
		(x,) = _expect_inputs(self, shapes, 1)
		if not is_permutation(self.permute, len(x)):
			raise ShapeMismatch(f"Transpose permutation {list(self.permute)} does not match input rank {len(x)}")
		return [tuple(x[p] for p in self.permute)]

	def _args(self) -> str:
		return f"permute={list(self.permute)},"


@dataclass(slots=True, eq=False)
class ElementWise(Op):
	"""Binary elementwise op with bidirectional broadcasting."""

	op_type: OpType = OpType.ADD

	def __post_init__(self) -> None:
		if self.op_type not in BINARY_KINDS:
			raise ValueError(f"{self.op_type} is not a binary elementwise kind")

	@property
	def kind(self) -> OpType:
		return self.op_type

	def infer_shapes(self, shapes: Sequence[Shape]) -> list[Shape]:
		a, b = _expect_inputs(self, shapes, 2)
		return [infer_broadcast(a, b)]


@dataclass(slots=True, eq=False)
class Unary(Op):
	"""Unary elementwise op: output shape and dtype match the input."""

	op_type: OpType = OpType.RELU

	def __post_init__(self) -> None:
		if self.op_type not in UNARY_KINDS:
			raise ValueError(f"{self.op_type} is not a unary kind")

	@property
	def kind(self) -> OpType:
		return self.op_type

	def infer_shapes(self, shapes: Sequence[Shape]) -> list[Shape]:
		(x,) = _expect_inputs(self, shapes, 1)
		return [tuple(x)]


def _expect_inputs(op: Op, shapes: Sequence[Shape], n: int) -> Sequence[Shape]:
	if len(shapes) != n:
		raise ShapeMismatch(f"{op.kind.value} expects exactly {n} input(s), got {len(shapes)}")
	return shapes
