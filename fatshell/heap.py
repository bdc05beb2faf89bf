"""A slab allocator that hands out addresses inside a simulated heap."""

from __future__ import annotations

from dataclasses import dataclass, field

PGSIZE = 0x1000
SLAB_HEADER_SIZE = 48
BLOCK_HEADER_SIZE = 8
SLAB_CLASSES = 24
LARGE_CLASSES = 12
MAX_ALLOC = (1 << 23) - SLAB_HEADER_SIZE - BLOCK_HEADER_SIZE

_MASK64 = (1 << 64) - 1


class HeapError(MemoryError):
    """Raised for requests the heap cannot serve or addresses it did not hand out."""


def _pgroundup(address: int) -> int:
    return (address + PGSIZE - 1) & ~(PGSIZE - 1)


def fixsize(size: int) -> int:
    """Round ``size`` up to a power of two, with 64-bit wrap-around (0 stays 0)."""
    return (1 << ((size - 1) & _MASK64).bit_length()) & _MASK64


def used_slab_index(size: int) -> int:
    """Slab class serving an allocation of ``size`` bytes."""
    if size <= PGSIZE // 2:
        return 11 + fixsize(size).bit_length()
    pages = fixsize(size + SLAB_HEADER_SIZE + BLOCK_HEADER_SIZE) // PGSIZE
    return pages.bit_length() - 1


def block_index(size: int) -> int:
    """Slab class whose units are ``size`` bytes long."""
    size = fixsize(size)
    if size < PGSIZE:
        return 11 + size.bit_length()
    return (size // PGSIZE).bit_length() - 1


def _unit_size(index: int) -> int:
    if index < LARGE_CLASSES:
        return (1 << index) * PGSIZE
    return 1 << (index - LARGE_CLASSES)


def _capacity(index: int) -> int:
    if index < LARGE_CLASSES:
        return 1
    return (PGSIZE - SLAB_HEADER_SIZE) // (_unit_size(index) + BLOCK_HEADER_SIZE)


def _pages(index: int) -> int:
    return 1 << index if index < LARGE_CLASSES else 1


@dataclass(eq=False)
class Slab:
    """A run of pages cut into equal units; ``free_blocks`` ends with the next one to hand out."""

    va: int
    index: int
    unit_size: int
    capacity: int
    free_blocks: list[int] = field(default_factory=list)

    @property
    def unit_count(self) -> int:
        return len(self.free_blocks)


class SlabHeap:
    """Power-of-two size classes of small units and whole-page runs for large ones."""

    def __init__(self, base: int = 0) -> None:
        self.heap_start = _pgroundup(base)
        self.heap_size = PGSIZE
        self.ufree_start = self.heap_start
        self.slabs: list[Slab] = []
        self._avail: dict[int, list[Slab]] = {i: [] for i in range(SLAB_CLASSES)}
        self._used: dict[int, list[Slab]] = {i: [] for i in range(SLAB_CLASSES)}
        self._owner: dict[int, Slab] = {}

    def _alloc_slab(self, index: int) -> Slab:
        span = _pages(index) * PGSIZE
        while self.ufree_start + span > self.heap_start + self.heap_size:
            self.heap_size *= 2
        unit = _unit_size(index)
        capacity = _capacity(index)
        va = self.ufree_start
        self.ufree_start += span
        first = va + SLAB_HEADER_SIZE
        blocks = [first + i * (unit + BLOCK_HEADER_SIZE) for i in range(capacity)]
        slab = Slab(va, index, unit, capacity, blocks[::-1])
        self._avail[index].insert(0, slab)
        self.slabs.append(slab)
        return slab

    def malloc(self, size: int) -> int:
        """Return the address of a fresh area of at least ``size`` bytes."""
        if size < 0:
            raise HeapError(f"negative allocation size {size}")
        if size > MAX_ALLOC:
            raise HeapError(f"allocation of {size} bytes exceeds {MAX_ALLOC}")
        index = used_slab_index(size)
        avail = self._avail[index]
        slab = avail[0] if avail else self._alloc_slab(index)
        block = slab.free_blocks.pop()
        self._owner[block] = slab
        if not slab.free_blocks:
            avail.remove(slab)
            self._used[index].insert(0, slab)
        return block + BLOCK_HEADER_SIZE

    def free(self, address: int) -> None:
        """Give back an area obtained from :meth:`malloc`."""
        block = address - BLOCK_HEADER_SIZE
        slab = self._owner.pop(block, None)
        if slab is None:
            raise HeapError(f"{address:#x} is not an allocated address")
        was_full = not slab.free_blocks
        slab.free_blocks.append(block)
        if was_full:
            index = block_index(slab.unit_size)
            self._used[index].remove(slab)
            self._avail[index].insert(0, slab)