"""Single-producer, single-consumer shared values.

``RealtimeReadableValue`` lets one thread read a value written by another;
``RealtimeWritableValue`` lets one thread write a value read by another using
a double buffer. Both read and write make copies.
"""

from __future__ import annotations

import copy
import threading
import time
from typing import Generic, TypeVar

T = TypeVar("T")


class RealtimeReadableValue(Generic[T]):
    """A value written by one thread and read by another without blocking the reader on the writer."""

    def __init__(self, initial: T) -> None:
        self._storage = copy.copy(initial)
        # None while the reader holds the storage; otherwise the current storage.
        self._shared: T | None = self._storage
        self._reading = False
        self._lock = threading.Lock()

    def read(self) -> T:
        with self._lock:
            self._reading = True
            data = self._storage
        try:
            return copy.copy(data)
        finally:
            with self._lock:
                self._reading = False

    def write(self, new_value: T) -> None:
        new_storage = copy.copy(new_value)
        while True:
            with self._lock:
                if not self._reading:
                    self._storage = new_storage
                    self._shared = new_storage
                    return
            time.sleep(0)


class RealtimeWritableValue(Generic[T]):
    """A double-buffered value written by one thread and read by another."""

    _IDX = 1 << 0
    _NEW_DATA = 1 << 1
    _BUSY = 1 << 2

    def __init__(self, initial: T) -> None:
        self._buf = [copy.copy(initial), copy.copy(initial)]
        self._idx = 0
        self._lock = threading.Lock()

    def read(self) -> T:
        with self._lock:
            current = self._idx
        if current & self._NEW_DATA:
            while True:
                with self._lock:
                    # The buffer index only changes when the writer is not busy.
                    if not self._idx & self._BUSY:
                        current = (self._idx ^ self._IDX) & self._IDX
                        self._idx = current
                        break
                time.sleep(0)
        return copy.copy(self._buf[(current & self._IDX) ^ 1])

    def write(self, new_value: T) -> None:
        with self._lock:
            i = self._idx & self._IDX
            self._idx |= self._BUSY
        self._buf[i] = copy.copy(new_value)
        with self._lock:
            self._idx = i | self._NEW_DATA