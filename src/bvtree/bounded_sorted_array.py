"""Fixed-capacity container keeping the K smallest keys seen so far."""

from __future__ import annotations

from bisect import bisect_right
from typing import Any, Iterator, List, Tuple


class BoundedSortedArray:
    """Ascending array of ``(key, value)`` pairs holding at most
    ``capacity`` entries.

    Equal keys keep their insertion order.  Once the array is full, a new
    pair is accepted only if its key is strictly smaller than the current
    maximum, which is then evicted.  Storage is allocated once; ``clear()``
    only resets the count.
    """

    __slots__ = ('_keys', '_values', '_size')

    def __init__(self, capacity: int):
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 1:
            raise ValueError(f'bad capacity: {capacity}')
        self._keys: List[float] = [0.0] * capacity
        self._values: List[Any] = [None] * capacity
        self._size = 0

    def __repr__(self):
        return 'BoundedSortedArray(capacity={}, items={})'.format(
            self.capacity, list(self.items()))

    @property
    def capacity(self) -> int:
        return len(self._keys)

    def __len__(self) -> int:
        return self._size

    def is_empty(self) -> bool:
        return self._size == 0

    def is_full(self) -> bool:
        return self._size == len(self._keys)

    def clear(self) -> None:
        for i in range(self._size):
            self._values[i] = None
        self._size = 0

    def min_key(self) -> float:
        if self._size == 0:
            raise IndexError('min_key() on empty array')
        return self._keys[0]

    def max_key(self) -> float:
        if self._size == 0:
            raise IndexError('max_key() on empty array')
        return self._keys[self._size - 1]

    def would_accept(self, key: float) -> bool:
        """Would ``insert(key, ...)`` change the array?"""
        return self._size < len(self._keys) or key < self._keys[self._size - 1]

    def insert(self, key: float, value: Any = None) -> bool:
        """Insert a pair, returning ``True`` if it was kept."""
        n = self._size
        cap = len(self._keys)
        if n == cap and not key < self._keys[n - 1]:
            return False

        pos = bisect_right(self._keys, key, 0, n)
        end = n if n < cap else n - 1
        keys = self._keys
        values = self._values
        # shift [pos, end) one slot right, dropping the maximum when full
        keys[pos + 1:end + 1] = keys[pos:end]
        values[pos + 1:end + 1] = values[pos:end]
        keys[pos] = key
        values[pos] = value
        if n < cap:
            self._size = n + 1
        return True

    def __getitem__(self, i: int) -> Any:
        if i < 0:
            i += self._size
        if i < 0 or i >= self._size:
            raise IndexError(f'index out of range: {i}')
        return self._values[i]

    def key(self, i: int) -> float:
        if i < 0 or i >= self._size:
            raise IndexError(f'index out of range: {i}')
        return self._keys[i]

    def __iter__(self) -> Iterator[Any]:
        for i in range(self._size):
            yield self._values[i]

    def keys(self) -> List[float]:
        return self._keys[:self._size]

    def values(self) -> List[Any]:
        return self._values[:self._size]

    def items(self) -> Iterator[Tuple[float, Any]]:
        for i in range(self._size):
            yield self._keys[i], self._values[i]


__all__ = ['BoundedSortedArray']
