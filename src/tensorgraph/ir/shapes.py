"""Pure shape helpers shared by graph construction and the optimizer."""

from __future__ import annotations

from typing import Iterable, Sequence

from tensorgraph.errors import ShapeMismatch

Shape = tuple[int, ...]


def as_shape(dims: Iterable[int]) -> Shape:
	shape = tuple(int(d) for d in dims)
	if any(d < 0 for d in shape):
		raise ShapeMismatch(f"Negative dimension in shape {shape}")
	return shape


def infer_broadcast(a: Sequence[int], b: Sequence[int]) -> Shape:
	"""Bidirectional (NumPy/ONNX) broadcast of two shapes.

	The shorter shape is left-padded with 1s; per axis the non-1 side wins and
	two unequal non-1 sides are an error.

	>>> infer_broadcast((8, 1, 6, 1), (7, 1, 5))
	(8, 7, 6, 5)
	"""
	rank = max(len(a), len(b))
	padded_a = (1,) * (rank - len(a)) + tuple(a)
	padded_b = (1,) * (rank - len(b)) + tuple(b)

	out: list[int] = []
	for i, (da, db) in enumerate(zip(padded_a, padded_b)):
		if da == 1:
			out.append(db)
		elif db == 1 or da == db:
			out.append(da)
		else:
			raise ShapeMismatch(
				f"Shapes {tuple(a)} and {tuple(b)} are not broadcastable (axis {i}: {da} vs {db})"
			)
	return tuple(out)


def infer_matmul(a: Sequence[int], b: Sequence[int], trans_a: bool = False, trans_b: bool = False) -> Shape:
	"""Output shape of a (batched) matmul.

	`trans_a`/`trans_b` swap the last two axes of the operand before anything
	else. Batch axes (all but the last two) are broadcast right-aligned.
	"""
	if len(a) < 2 or len(b) < 2:
		raise ShapeMismatch(f"MatMul requires rank >= 2 operands, got {tuple(a)} and {tuple(b)}")

	sa = list(a)
	sb = list(b)
	if trans_a:
		sa[-1], sa[-2] = sa[-2], sa[-1]
	if trans_b:
		sb[-1], sb[-2] = sb[-2], sb[-1]

	if sa[-1] != sb[-2]:
		raise ShapeMismatch(f"MatMul inner dimension mismatch: {sa[-1]} != {sb[-2]} (A={tuple(sa)}, B={tuple(sb)})")

	batch = infer_broadcast(sa[:-2], sb[:-2])
	return batch + (sa[-2], sb[-1])


def is_permutation(permute: Sequence[int], rank: int) -> bool:
	return len(permute) == rank and sorted(permute) == list(range(rank))


def get_real_axis(axis: int, rank: int) -> int:
	"""Normalize a possibly negative axis into [0, rank)."""
	if rank < 1:
		raise ValueError(f"rank must be >= 1, got {rank}")
	if not -rank <= axis < rank:
		raise ValueError(f"axis {axis} out of range for rank {rank}")
	return axis + rank if axis < 0 else axis


def locate_index(flat: int, shape: Sequence[int]) -> Shape:
	"""Flat (row-major) element index -> multi-index within `shape`."""
	index = [0] * len(shape)
	for i in range(len(shape) - 1, -1, -1):
		flat, index[i] = divmod(flat, shape[i])
	return tuple(index)


def delocate_index(index: Sequence[int], shape: Sequence[int], stride: Sequence[int]) -> int:
	"""Multi-index -> flat offset; each coordinate is wrapped by `shape` so a
	broadcast (size-1) axis always maps to offset 0."""
	if not len(index) == len(shape) == len(stride):
		raise ValueError("index, shape and stride must have the same rank")
	return sum((i % d) * s for i, d, s in zip(index, shape, stride))
