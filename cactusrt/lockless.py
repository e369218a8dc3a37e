"""Thread-safe bitset and single-value message containers."""

from __future__ import annotations

import threading
from typing import Callable, Generic, Iterable, TypeVar

T = TypeVar("T")


class AtomicBitset:
    """A fixed-width bitset whose operations are atomic with respect to each other."""

    def __init__(self, capacity: int = 64) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._data = 0
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def _bit(self, i: int) -> int:
        if not 0 <= i < self._capacity:
            raise IndexError(f"bit index {i} out of range for capacity {self._capacity}")
        return 1 << i

    def _mask(self, indices: Iterable[int]) -> int:
        mask = 0
        for i in indices:
            mask |= self._bit(i)
        return mask

    def set(self, i: int) -> None:
        bit = self._bit(i)
        with self._lock:
            self._data |= bit

    def set_range(self, indices: Iterable[int]) -> None:
        mask = self._mask(indices)
        with self._lock:
            self._data |= mask

    def reset(self, i: int) -> None:
        bit = self._bit(i)
        with self._lock:
            self._data &= ~bit

    def reset_range(self, indices: Iterable[int]) -> None:
        mask = self._mask(indices)
        with self._lock:
            self._data &= ~mask

    def flip(self, i: int) -> None:
        bit = self._bit(i)
        with self._lock:
            self._data ^= bit

    def flip_range(self, indices: Iterable[int]) -> None:
        mask = self._mask(indices)
        with self._lock:
            self._data ^= mask

    def set_value(self, i: int, value: bool) -> None:
        if value:
            self.set(i)
        else:
            self.reset(i)

    def test(self, i: int) -> bool:
        bit = self._bit(i)
        with self._lock:
            return bool(self._data & bit)

    def value(self) -> int:
        with self._lock:
            return self._data

    def __getitem__(self, i: int) -> bool:
        return self.test(i)


class AtomicMessage(Generic[T]):
    """A single value that can be read, written and modified atomically."""

    def __init__(self, data: T) -> None:
        self._data = data
        self._lock = threading.Lock()

    def read(self) -> T:
        with self._lock:
            return self._data

    def write(self, data: T) -> None:
        with self._lock:
            self._data = data

    def modify(self, f: Callable[[T], T]) -> None:
        """Replace the value with ``f(old_value)`` atomically."""
        with self._lock:
            self._data = f(self._data)