"""Memory planning: arena allocator, runtime collaborator and tensor blobs."""

from tensorgraph.memory.allocator import (
    Allocator,
    AllocatorConfig,
    AllocatorInfo,
    AllocatorState,
    FreeBlock,
)
from tensorgraph.memory.blob import Blob
from tensorgraph.memory.runtime import CpuRuntime, Runtime

__all__ = [
    # allocator.py
    "Allocator",
    "AllocatorConfig",
    "AllocatorInfo",
    "AllocatorState",
    "FreeBlock",
    # blob.py
    "Blob",
    # runtime.py
    "CpuRuntime",
    "Runtime",
]
