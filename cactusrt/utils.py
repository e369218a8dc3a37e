"""Clock helpers and timespec arithmetic."""

from __future__ import annotations

import time
from dataclasses import dataclass

NS_PER_SEC = 1_000_000_000


@dataclass(frozen=True)
class Timespec:
    """A point in time split into whole seconds and nanoseconds."""

    sec: int = 0
    nsec: int = 0

    @classmethod
    def from_ns(cls, ns: int) -> "Timespec":
        sec, nsec = divmod(ns, NS_PER_SEC)
        return cls(sec, nsec)

    def to_ns(self) -> int:
        return self.sec * NS_PER_SEC + self.nsec


def now_ns() -> int:
    """Return the current monotonic clock reading in nanoseconds."""
    return time.monotonic_ns()


def wall_now_ns() -> int:
    """Return the current wall-clock time in nanoseconds."""
    return time.time_ns()


def add_timespec_by_ns(ts: Timespec, ns: int) -> Timespec:
    """Return ``ts`` shifted by ``ns`` nanoseconds, with nsec normalised to [0, 1e9)."""
    carry, nsec = divmod(ts.nsec + ns, NS_PER_SEC)
    return Timespec(ts.sec + carry, nsec)