"""Bounded work list for depth-first traversal."""

from cephfs_exporter.models.samples import WorkItem

# Pending directories allowed per root
DEFAULT_CAPACITY = 10_000


class FrontierOverflowError(Exception):
    """Raised when pushing onto a frontier that is already full."""


class Frontier:
    """Last-in-first-out stack of directories pending a visit.

    The size never exceeds ``capacity``. Overflow is not retryable: it
    signals a subtree with a fan-out too large to walk.

    Args:
        capacity: Maximum number of pending items.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            msg = f"Frontier capacity must be positive, got {capacity}"
            raise ValueError(msg)
        self._capacity = capacity
        self._items: list[WorkItem] = []

    @property
    def capacity(self) -> int:
        return self._capacity

    def push(self, item: WorkItem) -> None:
        """Add an item on top of the stack.

        Raises:
            FrontierOverflowError: If the frontier is full.
        """
        if len(self._items) >= self._capacity:
            msg = f"Frontier overflow: more than {self._capacity} pending directories"
            raise FrontierOverflowError(msg)
        self._items.append(item)

    def pop(self) -> WorkItem:
        """Remove and return the most recently pushed item.

        Raises:
            IndexError: If the frontier is empty.
        """
        if not self._items:
            msg = "pop from empty frontier"
            raise IndexError(msg)
        return self._items.pop()

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)
