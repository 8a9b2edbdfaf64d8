"""Physical memory collaborator used by the allocator.

The runtime only hands out and takes back raw byte buffers; it never runs
kernels. `CpuRuntime` backs buffers with numpy so planned tensors can be
inspected from Python.
"""

from __future__ import annotations

import logging
from typing import Protocol

import numpy as np

logger = logging.getLogger(__name__)


class Runtime(Protocol):
    """Anything that can allocate and release a flat byte buffer."""

    name: str

    def allocate(self, nbytes: int) -> np.ndarray: ...

    def deallocate(self, buffer: np.ndarray) -> None: ...


class CpuRuntime:
    """Host runtime: buffers are zero-initialised `uint8` numpy arrays."""

    name = "CPU"

    def __init__(self) -> None:
        self.live_buffers = 0

    def allocate(self, nbytes: int) -> np.ndarray:
        if nbytes < 0:
            raise ValueError(f"Cannot allocate a negative number of bytes: {nbytes}")
        self.live_buffers += 1
        logger.debug("CpuRuntime: allocate %d bytes", nbytes)
        return np.zeros(nbytes, dtype=np.uint8)

    def deallocate(self, buffer: np.ndarray) -> None:
        self.live_buffers -= 1
        logger.debug("CpuRuntime: deallocate %d bytes", buffer.nbytes)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CpuRuntime):
            return NotImplemented
        return self.name == other.name

    def __hash__(self) -> int:
        return hash(self.name)

    def __repr__(self) -> str:  # pragma: no cover
        return f"CpuRuntime(live_buffers={self.live_buffers})"
