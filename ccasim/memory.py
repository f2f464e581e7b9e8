"""Tracking of the memory handed to each world."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

WORLD_COUNT = 4

log = logging.getLogger(__name__)


class AllocationError(Exception):
    """Raised when world memory cannot be allocated, found or released."""


@dataclass
class _Allocation:
    memory: bytearray
    size: int


class MemoryTracker:
    """A fixed number of allocation slots, one per world.

    New allocations take the first free slot; lookups by world use the
    world's type as the slot number.
    """

    def __init__(self, world_count: int = WORLD_COUNT) -> None:
        if world_count <= 0:
            raise ValueError(f"world count must be positive: {world_count}")
        self.world_count = world_count
        self._slots: List[Optional[_Allocation]] = [None] * world_count

    def reset(self) -> None:
        """Forget every tracked allocation."""
        self._slots = [None] * self.world_count

    def allocate(self, world: Any, size: int) -> bytearray:
        """Allocate ``size`` zeroed bytes for ``world`` and track them."""
        if world is None:
            raise AllocationError("Invalid world pointer.")
        if size < 0:
            raise AllocationError("Memory allocation failed.")
        try:
            memory = bytearray(size)
        except MemoryError as exc:
            raise AllocationError("Memory allocation failed.") from exc

        free_slot = next(
            (i for i, slot in enumerate(self._slots) if slot is None), None
        )
        if free_slot is None:
            log.warning("No free allocation slot for world type %d", int(world.type))
        else:
            self._slots[free_slot] = _Allocation(memory, size)
        log.info("[CCA] Allocated %d bytes for world type %d", size, int(world.type))
        return memory

    def _slot(self, index: int) -> Optional[_Allocation]:
        if not 0 <= index < self.world_count:
            raise AllocationError(f"Allocation slot out of range: {index}")
        return self._slots[index]

    def memory_for(self, world: Any) -> Optional[bytearray]:
        """Memory in the slot named by the world's type, or None."""
        if world is None:
            raise AllocationError("Invalid world pointer.")
        slot = self._slot(int(world.type))
        return slot.memory if slot is not None else None

    def memory_for_slot(self, index: int) -> Optional[bytearray]:
        """Memory held in slot ``index``, or None."""
        slot = self._slot(index)
        return slot.memory if slot is not None else None

    def size_for(self, world: Any) -> int:
        """Size of the memory in the slot named by the world's type, or 0."""
        if world is None:
            raise AllocationError("Invalid world pointer.")
        slot = self._slot(int(world.type))
        return slot.size if slot is not None else 0

    def free(self, world: Any, memory: Optional[bytearray]) -> None:
        """Release ``memory``, which must be a tracked allocation."""
        if world is None or memory is None:
            raise AllocationError("Invalid world or memory pointer.")
        for i, slot in enumerate(self._slots):
            if slot is not None and slot.memory is memory:
                self._slots[i] = None
                log.info("Freed memory for world type %d", int(world.type))
                return
        raise AllocationError(f"Memory not found for world type {int(world.type)}")