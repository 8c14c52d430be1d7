"""An insertion-sorted array with a fixed capacity."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import Any

from kernelsim.common import kassert

LessThan = Callable[[Any, Any], bool]


def standard_less_than(a: Any, b: Any) -> bool:
    """The natural ordering."""
    return a < b


class OrderedArray:
    """Keeps items sorted by a less-than predicate; holds at most max_size items."""

    def __init__(self, max_size: int, less_than: LessThan | None = standard_less_than) -> None:
        if max_size < 0:
            raise ValueError("max_size must not be negative")
        self.max_size = max_size
        self.less_than = less_than
        self._items: list[Any] = []

    def insert(self, item: Any) -> None:
        """Place item before the first element that is not less than it."""
        kassert(self.less_than is not None, "array->less_than")
        if len(self._items) >= self.max_size:
            raise OverflowError("ordered array is full")
        position = next(
            (i for i, existing in enumerate(self._items) if not self.less_than(existing, item)),
            len(self._items),
        )
        self._items.insert(position, item)

    def lookup(self, index: int) -> Any:
        """Return the item at index."""
        kassert(0 <= index < len(self._items), "i < array->size")
        return self._items[index]

    def remove(self, index: int) -> None:
        """Delete the item at index, shifting the rest down."""
        kassert(0 <= index < len(self._items), "i < array->size")
        del self._items[index]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Any]:
        return iter(list(self._items))