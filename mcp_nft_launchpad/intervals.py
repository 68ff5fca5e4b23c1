"""
Circular Interval Set

Sorted, disjoint, half-open integer ranges ``[start, end)`` over the circular index space
``[0, size)``. The batch reveal engine uses one of these to remember which metadata
indices earlier batches have claimed, and to find the n-th index that is still free.

Insertion follows the "claimed slots" convention of the reveal engine: a new range
``[start, start + length)`` stands for ``length`` *free* positions counted from ``start``.
Any reserved range it runs into is absorbed and the new range is stretched by that
range's length, so the merged range covers the old reservations plus exactly ``length``
newly claimed positions. Whatever runs past ``size`` wraps around and is inserted again
at ``[0, overflow)``.
"""
from bisect import insort
from typing import Iterator, List, Tuple

from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)

Range = Tuple[int, int]


class IntervalSet:
    """Ordered disjoint ranges over a circular index space of ``size`` positions."""

    def __init__(self, size: int):
        if size <= 0:
            raise ValueError("Interval space size must be positive")
        self.size = size
        self._ranges: List[Range] = []

    def __len__(self) -> int:
        return len(self._ranges)

    def __iter__(self) -> Iterator[Range]:
        return iter(self._ranges)

    def __contains__(self, position: int) -> bool:
        return any(start <= position < end for start, end in self._ranges)

    @property
    def ranges(self) -> List[Range]:
        return list(self._ranges)

    def covered(self) -> int:
        """Number of positions held by the set."""
        return sum(end - start for start, end in self._ranges)

    def insert_merge(self, start: int, end: int) -> int:
        """
        Inserts ``[start, end)`` and returns the number of live ranges afterwards.

        Ranges the new one overlaps or touches are folded into it. An overflow past
        ``size`` goes back on the work list as ``[0, overflow)``; every pass either
        finishes or wraps once, and a range can only wrap while it is shorter than the
        whole space, so the loop is bounded.
        """
        if not 0 <= start < self.size or end <= start:
            raise ValueError(f"Invalid range [{start}, {end}) for space of size {self.size}")

        work: List[Range] = [(start, end)]
        while work:
            start, end = work.pop()
            kept: List[Range] = []
            for range_start, range_end in self._ranges:
                if start <= range_end and range_start <= end:
                    length = end - start
                    start = min(start, range_start)
                    end = start + length + (range_end - range_start)
                else:
                    kept.append((range_start, range_end))

            if end - start > self.size:
                raise ValueError("Claimed positions exceed the interval space")

            insort(kept, (start, min(end, self.size)))
            self._ranges = kept
            if end > self.size:
                logger.debug(f"Range [{start}, {end}) wraps; re-inserting [0, {end - self.size})")
                work.append((0, end - self.size))

        return len(self._ranges)

    def locate_free(self, offset: int) -> int:
        """
        Returns the ``offset``-th position (0-based) not covered by any range.

        The walk starts at position 0 and passes over the ranges at most twice, so an
        offset that runs past the last free position wraps around to the start.
        """
        remaining = offset
        position = 0
        for _ in range(2):
            for range_start, range_end in self._ranges:
                if position < range_start:
                    if position + remaining < range_start:
                        return position + remaining
                    remaining -= range_start - position
                    position = range_end
                elif position < range_end:
                    position = range_end
            if position + remaining >= self.size:
                remaining -= self.size - position
                position = 0
        return position + remaining
