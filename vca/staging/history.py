"""Bounded FIFO of generated image references.

Insertion order is preserved. Pushing beyond capacity evicts the oldest item
(index 0). The workflow's displayed image is tracked separately, so deleting an
entry never reselects another.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import Any

HISTORY_CAPACITY = 4


class HistoryRingBuffer:
    """List-backed ring buffer with FIFO eviction and arbitrary deletion."""

    def __init__(self, items: Iterable[Any] = (), capacity: int = HISTORY_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._items: list[Any] = []
        for item in items:
            self.push(item)

    def push(self, item: Any) -> Any | None:
        """Append `item`; return the evicted oldest item, if any."""
        self._items.append(item)
        if len(self._items) > self.capacity:
            return self._items.pop(0)
        return None

    def delete_at(self, index: int) -> Any:
        """Remove and return the item at `index`, shifting later items left.

        Raises:
            IndexError: When `index` is out of range.
        """
        if not 0 <= index < len(self._items):
            raise IndexError(f"history index out of range: {index}")
        return self._items.pop(index)

    def to_list(self) -> list[Any]:
        return list(self._items)

    def __contains__(self, item: object) -> bool:
        return item in self._items

    def __getitem__(self, index: int) -> Any:
        return self._items[index]

    def __iter__(self) -> Iterator[Any]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"HistoryRingBuffer({self._items!r}, capacity={self.capacity})"
