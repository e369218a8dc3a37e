"""Scheduling policies a thread applies to itself and the way it sleeps between cycles."""

from __future__ import annotations

import abc
import os
import threading
import time
from dataclasses import dataclass

from cactusrt.utils import now_ns


def _sleep_until(next_wakeup_time_ns: int) -> None:
    """Sleep until the monotonic clock reaches ``next_wakeup_time_ns``."""
    while (remaining := next_wakeup_time_ns - now_ns()) > 0:
        time.sleep(remaining / 1e9)


def _set_scheduler(policy_name: str, policy: int | None, priority: int) -> None:
    if policy is None or not hasattr(os, "sched_setscheduler"):
        raise RuntimeError(f"failed to sched_setattr: {policy_name} is not supported on this platform")
    try:
        # On Linux, id 0 designates the calling thread.
        os.sched_setscheduler(0, policy, os.sched_param(priority))
    except OSError as e:
        raise RuntimeError(f"failed to sched_setattr: {e.strerror}") from e
    except (OverflowError, ValueError) as e:
        raise RuntimeError(f"failed to sched_setattr: {e}") from e


class Scheduler(abc.ABC):
    """A scheduling policy for the calling thread."""

    @abc.abstractmethod
    def set_sched_attr(self) -> None:
        """Apply this policy to the calling thread; raise RuntimeError on failure."""

    @abc.abstractmethod
    def sleep(self, next_wakeup_time_ns: int) -> None:
        """Wait until the next cycle should start."""


@dataclass
class OtherScheduler(Scheduler):
    """The default time-sharing policy with a niceness value."""

    nice: int = 0

    def set_sched_attr(self) -> None:
        policy = os.SCHED_OTHER if hasattr(os, "SCHED_OTHER") else None
        _set_scheduler("SCHED_OTHER", policy, 0)
        tid = threading.get_native_id()
        try:
            if os.getpriority(os.PRIO_PROCESS, tid) != self.nice:
                os.setpriority(os.PRIO_PROCESS, tid, self.nice)
        except OSError as e:
            raise RuntimeError(f"failed to sched_setattr: {e.strerror}") from e

    def sleep(self, next_wakeup_time_ns: int) -> None:
        _sleep_until(next_wakeup_time_ns)


@dataclass
class FifoScheduler(Scheduler):
    """The real-time first-in, first-out policy with a fixed priority."""

    priority: int = 0

    def set_sched_attr(self) -> None:
        policy = os.SCHED_FIFO if hasattr(os, "SCHED_FIFO") else None
        _set_scheduler("SCHED_FIFO", policy, self.priority)

    def sleep(self, next_wakeup_time_ns: int) -> None:
        _sleep_until(next_wakeup_time_ns)


@dataclass
class DeadlineScheduler(Scheduler):
    """The earliest-deadline-first policy; the kernel decides when the thread wakes."""

    sched_runtime_ns: int = 0
    sched_deadline_ns: int = 0
    sched_period_ns: int = 0

    def set_sched_attr(self) -> None:
        raise RuntimeError("failed to sched_setattr: SCHED_DEADLINE is not supported by this runtime")

    def sleep(self, next_wakeup_time_ns: int) -> None:
        # The kernel wakes the thread at its next period; the wakeup time is ignored.
        if hasattr(os, "sched_yield"):
            os.sched_yield()
        else:
            time.sleep(0)