"""Ordering stage: releases out-of-order completions in index order."""

from typing import Dict, Generic, List, TypeVar

T = TypeVar("T")


class ReorderBuffer(Generic[T]):
    """Holds completed items until every earlier index has arrived.

    Example:
        >>> buf = ReorderBuffer()
        >>> buf.push(1, "b")
        []
        >>> buf.push(0, "a")
        ['a', 'b']
    """

    def __init__(self, start: int = 0):
        self._next = start
        self._held: Dict[int, T] = {}

    @property
    def next_index(self) -> int:
        return self._next

    @property
    def pending(self) -> int:
        """Items held waiting for a predecessor."""
        return len(self._held)

    def push(self, index: int, item: T) -> List[T]:
        """Add a completed item and return every item now releasable.

        Raises:
            ValueError: The index was already pushed or released.
        """
        if index < self._next or index in self._held:
            raise ValueError(f"Index {index} already seen (next expected {self._next})")
        self._held[index] = item
        released: List[T] = []
        while self._next in self._held:
            released.append(self._held.pop(self._next))
            self._next += 1
        return released


__all__ = ["ReorderBuffer"]
