from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class DType:
	"""Scalar dtype for IR tensors.

	`itemsize` drives memory planning; `numpy_name` is only used to build
	host views over bound buffers.
	"""

	name: str
	itemsize: int
	numpy_name: str

	def __str__(self) -> str:  # pragma: no cover
		return self.name

	@staticmethod
	def from_name(name: str) -> DType:
		try:
			return _BY_NAME[name]
		except KeyError:
			raise ValueError(f"Unknown dtype {name!r}") from None


bool_ = DType("bool", 1, "bool")
int8 = DType("int8", 1, "int8")
uint8 = DType("uint8", 1, "uint8")
int16 = DType("int16", 2, "int16")
int32 = DType("int32", 4, "int32")
int64 = DType("int64", 8, "int64")
float16 = DType("float16", 2, "float16")
float32 = DType("float32", 4, "float32")
float64 = DType("float64", 8, "float64")

_BY_NAME: dict[str, DType] = {
	dt.name: dt for dt in (bool_, int8, uint8, int16, int32, int64, float16, float32, float64)
}

# Widest supported element; the allocator aligns every request to it.
MAX_ITEMSIZE = max(dt.itemsize for dt in _BY_NAME.values())
