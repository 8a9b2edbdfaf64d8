from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable

import numpy as np

from .dtypes import DType
from .shapes import Shape, as_shape

if TYPE_CHECKING:
	from tensorgraph.memory.blob import Blob
	from tensorgraph.memory.runtime import Runtime

	from .op import Op


_guids = itertools.count(1)
_fuids = itertools.count(1)


def next_guid() -> int:
	"""Process-unique id shared by tensors and operators; never reused."""
	return next(_guids)


@dataclass(slots=True, eq=False)
class Tensor:
	"""A value in the graph.

	A tensor has at most one producing op (`source`) and any number of
	consuming ops (`targets`). `guid` names this object; `fuid` names the
	logical value and survives rewrites that swap the storage (see `clone`).
	"""

	shape: Shape
	dtype: DType
	runtime: Runtime
	guid: int = field(default_factory=next_guid)
	fuid: int = field(default_factory=lambda: next(_fuids))
	source: Op | None = None
	targets: list[Op] = field(default_factory=list)
	data: Blob | None = None

	def __post_init__(self) -> None:
		self.shape = as_shape(self.shape)

	@property
	def rank(self) -> int:
		return len(self.shape)

	@property
	def size(self) -> int:
		n = 1
		for dim in self.shape:
			n *= dim
		return n

	@property
	def nbytes(self) -> int:
		return self.size * self.dtype.itemsize

	def set_shape(self, shape: Iterable[int]) -> None:
		self.shape = as_shape(shape)

	def add_target(self, op: Op) -> None:
		if op not in self.targets:
			self.targets.append(op)

	def remove_target(self, op: Op) -> None:
		if op in self.targets:
			self.targets.remove(op)

	def set_source(self, op: Op | None) -> None:
		self.source = op

	def clone(self) -> Tensor:
		"""Same logical tensor (FUID), fresh identity and no links or storage."""
		return Tensor(shape=self.shape, dtype=self.dtype, runtime=self.runtime, fuid=self.fuid)

	def numpy(self) -> np.ndarray:
		if self.data is None:
			raise RuntimeError(f"Tensor {self.guid} has no memory bound; run Graph.data_malloc() first")
		return self.data.view(self.dtype, self.shape)

	def copyin(self, values: np.ndarray) -> None:
		arr = np.asarray(values, dtype=self.dtype.numpy_name)
		if arr.shape != self.shape:
			raise ValueError(f"Shape mismatch for tensor {self.guid}: expected {self.shape}, got {arr.shape}")
		self.numpy()[...] = arr

	def __repr__(self) -> str:  # pragma: no cover
		src = self.source.guid if self.source is not None else None
		dsts = [op.guid for op in self.targets]
		return (
			f"Tensor(guid={self.guid}, fuid={self.fuid}, shape={list(self.shape)}, dtype={self.dtype.name}, "
			f"source={src}, targets={dsts})"
		)
