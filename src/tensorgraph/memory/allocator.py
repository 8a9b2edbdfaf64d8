"""Arena allocator used by graph memory planning.

The allocator never touches physical memory while planning: `alloc` and
`free` hand out byte offsets into a virtual arena. The first `get_buffer()`
call asks the runtime for `peak` bytes in one shot and freezes the plan.

Key design principles:
- Determinism: first-fit over free blocks in address order.
- Coalescing: a freed block is merged with both neighbours when adjacent.
- Two phases: PLANNING (alloc/free allowed) -> BOUND (buffer handed out).
"""

from __future__ import annotations

import bisect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, NamedTuple

from tensorgraph.errors import AllocatorMisuse
from tensorgraph.ir.dtypes import MAX_ITEMSIZE

if TYPE_CHECKING:
    import numpy as np

    from tensorgraph.memory.runtime import Runtime

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration
# =============================================================================


@dataclass(frozen=True, slots=True)
class AllocatorConfig:
    """Configuration for the arena allocator.

    Attributes:
        alignment: Every request is rounded up to a multiple of this many
                   bytes. Defaults to the widest supported dtype. Any positive
                   value works; it does not need to be a power of 2.
    """

    alignment: int = MAX_ITEMSIZE

    def __post_init__(self) -> None:
        if not isinstance(self.alignment, int) or self.alignment <= 0:
            raise ValueError(f"alignment must be a positive integer, got {self.alignment!r}")


# =============================================================================
# Bookkeeping records
# =============================================================================


class FreeBlock(NamedTuple):
    """A contiguous free region of the arena."""

    offset: int
    size: int

    @property
    def end(self) -> int:
        return self.offset + self.size


class AllocatorInfo(NamedTuple):
    used: int
    peak: int


class AllocatorState(str, Enum):
    PLANNING = "planning"
    BOUND = "bound"


# =============================================================================
# Allocator
# =============================================================================


@dataclass
class Allocator:
    """First-fit arena allocator with free-block coalescing.

    `used` is the current extent of the arena (the bump pointer) and `peak`
    its high-water mark. Free blocks always lie strictly below `used`: a block
    freed at the tail gives its bytes back to the bump region instead.

    Example:
        >>> arena = Allocator(CpuRuntime())
        >>> a = arena.alloc(12)   # aligned to 16
        >>> b = arena.alloc(8)
        >>> arena.free(a, 12)
        >>> arena.alloc(4) == a
        True
    """

    runtime: Runtime
    config: AllocatorConfig = field(default_factory=AllocatorConfig)

    # Internal state
    _used: int = field(default=0, repr=False)
    _peak: int = field(default=0, repr=False)
    _free_blocks: list[FreeBlock] = field(default_factory=list, repr=False)
    _buffer: np.ndarray | None = field(default=None, repr=False)
    _state: AllocatorState = field(default=AllocatorState.PLANNING, repr=False)
    _released: bool = field(default=False, repr=False)

    # -------------------------------------------------------------------------
    # Public Properties
    # -------------------------------------------------------------------------

    @property
    def used(self) -> int:
        return self._used

    @property
    def peak(self) -> int:
        return self._peak

    @property
    def state(self) -> AllocatorState:
        return self._state

    @property
    def free_blocks(self) -> list[FreeBlock]:
        """Snapshot of the free blocks, sorted by offset."""
        return list(self._free_blocks)

    def info(self) -> AllocatorInfo:
        return AllocatorInfo(used=self._used, peak=self._peak)

    # -------------------------------------------------------------------------
    # Core Operations
    # -------------------------------------------------------------------------

    def alloc(self, size: int) -> int:
        """Reserve `size` bytes (aligned up) and return their offset.

        Raises:
            AllocatorMisuse: If the buffer is already bound or size < 0.
        """
        self._check_planning("alloc")
        if size < 0:
            raise AllocatorMisuse(f"Allocation size must be non-negative, got {size}")

        size = self.aligned_size(size)
        if size == 0:
            return self._used

        for i, block in enumerate(self._free_blocks):
            if block.size >= size:
                self._free_blocks.pop(i)
                if block.size > size:
                    self._free_blocks.insert(i, FreeBlock(block.offset + size, block.size - size))
                logger.debug("alloc %d bytes @%d (reused free block of %d)", size, block.offset, block.size)
                return block.offset

        offset = self._used
        self._used += size
        self._peak = max(self._peak, self._used)
        logger.debug("alloc %d bytes @%d (grew arena to %d)", size, offset, self._used)
        return offset

    def free(self, offset: int, size: int) -> None:
        """Return `[offset, offset + aligned(size))` to the arena.

        Freeing 0 bytes is a no-op, mirroring `alloc(0)`.

        Raises:
            AllocatorMisuse: If the buffer is already bound, the offset is not
                aligned, the region lies outside the arena, or it overlaps a
                block that is already free.
        """
        self._check_planning("free")
        if offset < 0 or size < 0:
            raise AllocatorMisuse(f"Invalid free of {size} bytes @{offset}")
        size = self.aligned_size(size)
        if size == 0:
            return
        if offset % self.config.alignment != 0:
            raise AllocatorMisuse(
                f"Cannot free @{offset}: offset is not a multiple of the alignment ({self.config.alignment})"
            )
        if offset + size > self._used:
            raise AllocatorMisuse(f"Cannot free {size} bytes @{offset}: arena extent is {self._used}")

        idx = bisect.bisect_left(self._free_blocks, offset, key=lambda b: b.offset)
        prev = self._free_blocks[idx - 1] if idx > 0 else None
        nxt = self._free_blocks[idx] if idx < len(self._free_blocks) else None
        if (prev is not None and prev.end > offset) or (nxt is not None and offset + size > nxt.offset):
            raise AllocatorMisuse(f"Cannot free {size} bytes @{offset}: region overlaps a free block (double free?)")

        merged = FreeBlock(offset, size)
        self._free_blocks.insert(idx, merged)

        # Merge with the following block.
        if nxt is not None and merged.end == nxt.offset:
            merged = FreeBlock(merged.offset, merged.size + nxt.size)
            self._free_blocks[idx] = merged
            self._free_blocks.pop(idx + 1)

        # Merge with the preceding block.
        if prev is not None and prev.end == merged.offset:
            merged = FreeBlock(prev.offset, prev.size + merged.size)
            self._free_blocks[idx - 1] = merged
            self._free_blocks.pop(idx)
            idx -= 1

        # A block touching the tail goes back to the bump region.
        if merged.end == self._used:
            self._free_blocks.pop(idx)
            self._used = merged.offset

        logger.debug("free %d bytes @%d (arena extent %d)", size, offset, self._used)

    def get_buffer(self) -> np.ndarray:
        """Bind (once) and return the physical buffer of `peak` bytes."""
        if self._released:
            raise AllocatorMisuse("Allocator buffer has already been released")
        if self._buffer is None:
            self._buffer = self.runtime.allocate(self._peak)
            self._state = AllocatorState.BOUND
            logger.info("Allocator bound %d bytes on %s", self._peak, self.runtime.name)
        return self._buffer

    def release(self) -> None:
        """Hand the physical buffer back to the runtime (at most once)."""
        if self._buffer is not None and not self._released:
            self.runtime.deallocate(self._buffer)
            self._buffer = None
            self._released = True

    # -------------------------------------------------------------------------
    # Diagnostics
    # -------------------------------------------------------------------------

    def format_state(self) -> str:
        lines = [
            "Allocator:",
            f"  State:     {self._state.value}",
            f"  Used:      {self._used:,} bytes",
            f"  Peak:      {self._peak:,} bytes",
            f"  Alignment: {self.config.alignment} bytes",
        ]
        if self._free_blocks:
            lines.append(f"  Free blocks ({len(self._free_blocks)}):")
            for fb in self._free_blocks:
                lines.append(f"    @{fb.offset}: {fb.size:,} bytes")
        return "\n".join(lines)

    # -------------------------------------------------------------------------
    # Internal Helpers
    # -------------------------------------------------------------------------

    def aligned_size(self, size: int) -> int:
        """Round `size` up to a multiple of the alignment (ceiling division)."""
        alignment = self.config.alignment
        return -(-size // alignment) * alignment

    def _check_planning(self, what: str) -> None:
        if self._state is not AllocatorState.PLANNING:
            raise AllocatorMisuse(f"Cannot {what}() after the physical buffer has been bound")
