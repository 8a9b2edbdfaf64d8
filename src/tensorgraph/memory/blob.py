from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from tensorgraph.ir.dtypes import DType
    from tensorgraph.ir.shapes import Shape
    from tensorgraph.memory.runtime import Runtime


@dataclass(frozen=True, slots=True)
class Blob:
    """A tensor's memory handle: a byte offset into a runtime-owned buffer."""

    runtime: Runtime
    buffer: np.ndarray
    offset: int

    def view(self, dtype: DType, shape: Shape) -> np.ndarray:
        """Typed, writable numpy view of `shape` elements starting at `offset`."""
        return np.ndarray(shape, dtype=dtype.numpy_name, buffer=self.buffer, offset=self.offset)

    def __repr__(self) -> str:  # pragma: no cover
        return f"Blob(runtime={self.runtime.name}, offset={self.offset})"
