import pytest

from tensorgraph.errors import ShapeMismatch
from tensorgraph.ir.shapes import (
	as_shape,
	delocate_index,
	get_real_axis,
	infer_broadcast,
	infer_matmul,
	is_permutation,
	locate_index,
)


def test_broadcast_numpy_examples() -> None:
	assert infer_broadcast((8, 1, 6, 1), (7, 1, 5)) == (8, 7, 6, 5)
	assert infer_broadcast((5, 4), (1,)) == (5, 4)
	assert infer_broadcast((1,), (5, 4)) == (5, 4)
	assert infer_broadcast((), (3,)) == (3,)
	assert infer_broadcast((2, 3), (2, 3)) == (2, 3)


def test_broadcast_mismatch_raises() -> None:
	with pytest.raises(ShapeMismatch):
		infer_broadcast((3, 4), (4, 5))


def test_matmul_shape() -> None:
	assert infer_matmul((2, 3, 4), (2, 4, 5)) == (2, 3, 5)
	assert infer_matmul((2, 4, 3), (2, 4, 5), trans_a=True) == (2, 3, 5)
	assert infer_matmul((2, 3, 4), (2, 5, 4), trans_b=True) == (2, 3, 5)
	assert infer_matmul((2, 4, 3), (2, 5, 4), trans_a=True, trans_b=True) == (2, 3, 5)


def test_matmul_batch_axes_broadcast() -> None:
	assert infer_matmul((1, 3, 4), (6, 4, 5)) == (6, 3, 5)
	assert infer_matmul((3, 4), (2, 4, 5)) == (2, 3, 5)
	with pytest.raises(ShapeMismatch):
		infer_matmul((2, 3, 4), (3, 4, 5))


def test_matmul_inner_dimension_mismatch() -> None:
	with pytest.raises(ShapeMismatch):
		infer_matmul((3, 4), (5, 6))
	# transA turns a valid product into an invalid one.
	with pytest.raises(ShapeMismatch):
		infer_matmul((3, 4), (4, 6), trans_a=True)


def test_matmul_requires_rank_two() -> None:
	with pytest.raises(ShapeMismatch):
		infer_matmul((4,), (4, 5))


def test_axis_and_index_helpers() -> None:
	assert get_real_axis(-1, 3) == 2
	assert get_real_axis(1, 3) == 1
	with pytest.raises(ValueError):
		get_real_axis(3, 3)

	assert locate_index(5, (2, 3)) == (1, 2)
	assert locate_index(0, (2, 3)) == (0, 0)
	# Axis 0 has size 1, so its coordinate wraps to 0.
	assert delocate_index((1, 2), (1, 3), (3, 1)) == 2


def test_shape_validation() -> None:
	assert as_shape([2, 3]) == (2, 3)
	with pytest.raises(ShapeMismatch):
		as_shape([2, -1])
	assert is_permutation((1, 0, 2), 3)
	assert not is_permutation((1, 1, 0), 3)
	assert not is_permutation((1, 0), 3)
