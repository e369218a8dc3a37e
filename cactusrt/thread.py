"""Threads with a scheduling policy, CPU affinity and a per-thread tracer."""

from __future__ import annotations

import abc
import logging
import os
import threading
import weakref
from dataclasses import dataclass, field

from cactusrt.scheduler import DeadlineScheduler, FifoScheduler, OtherScheduler, Scheduler
from cactusrt.thread_tracer import DEFAULT_QUEUE_CAPACITY, ThreadTracer

DEFAULT_STACK_SIZE = 8 * 1024 * 1024
_STACK_MIN = 16384
_PAGE_SIZE = 4096

# The stack size is process-global in the threading module.
_stack_size_lock = threading.Lock()


@dataclass
class ThreadTracerConfig:
    """What a thread traces automatically."""

    trace_loop: bool = True
    trace_overrun: bool = True
    trace_sleep: bool = False
    trace_wakeup_latency: bool = False
    queue_size: int = DEFAULT_QUEUE_CAPACITY


@dataclass
class ThreadConfig:
    """Configuration for a thread."""

    cpu_affinity: list[int] = field(default_factory=list)
    stack_size: int = DEFAULT_STACK_SIZE
    scheduler: Scheduler | None = field(default_factory=OtherScheduler)
    tracer_config: ThreadTracerConfig = field(default_factory=ThreadTracerConfig)

    def set_other_scheduler(self, nice: int = 0) -> None:
        self.scheduler = OtherScheduler(nice=nice)

    def set_fifo_scheduler(self, priority: int) -> None:
        self.scheduler = FifoScheduler(priority=priority)

    def set_deadline_scheduler(self, runtime_ns: int, deadline_ns: int, period_ns: int) -> None:
        self.scheduler = DeadlineScheduler(runtime_ns, deadline_ns, period_ns)


@dataclass
class CyclicThreadConfig(ThreadConfig):
    """Configuration for a thread that runs its loop once per period."""

    period_ns: int = 1_000_000


def _stack_size_bytes(requested: int) -> int:
    size = _STACK_MIN + max(requested, 0)
    return -(-size // _PAGE_SIZE) * _PAGE_SIZE


class Thread(abc.ABC):
    """A thread that must be created through an App and started once.

    Setup (CPU affinity, scheduling policy, tracer registration) happens in
    the new thread; any error raised there is re-raised by ``start``.
    """

    def __init__(self, name: str, config: ThreadConfig) -> None:
        if config.scheduler is None:
            raise ValueError("ThreadConfig.scheduler cannot be None")
        self._name = name
        self._config = config
        self._created_by_app = False
        self._trace_aggregator: weakref.ReferenceType | None = None
        self._tracer: ThreadTracer | None = None
        self._stop_requested = threading.Event()
        self._running = threading.Event()
        self._thread: threading.Thread | None = None
        self._start_monotonic_time_ns = 0
        self._logger = logging.getLogger(name)

    def _attach(self, trace_aggregator) -> None:
        """Mark the thread as owned by an App, keeping a weak reference to its aggregator."""
        self._trace_aggregator = weakref.ref(trace_aggregator) if trace_aggregator is not None else None
        self._created_by_app = True

    @property
    def name(self) -> str:
        return self._name

    @property
    def config(self) -> ThreadConfig:
        return self._config

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    @property
    def start_monotonic_time_ns(self) -> int:
        return self._start_monotonic_time_ns

    @property
    def running(self) -> bool:
        """True between ``before_run`` and ``after_run``."""
        return self._running.is_set()

    @property
    def tracer(self) -> ThreadTracer:
        """The tracer of this thread; only available while the thread runs."""
        if self._tracer is None:
            raise RuntimeError(f"thread {self._name} has no tracer because it is not running")
        return self._tracer

    def start(self, start_monotonic_time_ns: int) -> None:
        """Start the thread in the background; a thread may only be started once."""
        if not self._created_by_app:
            raise RuntimeError(
                f"do not create Thread manually, use App.create_thread to create thread {self._name}"
            )
        if self._thread is not None:
            raise RuntimeError(f"thread {self._name} has already been started")

        self._start_monotonic_time_ns = start_monotonic_time_ns
        ready = threading.Event()
        setup_errors: list[BaseException] = []
        thread = threading.Thread(
            target=self._run_thread, args=(ready, setup_errors), name=self._name, daemon=True
        )

        with _stack_size_lock:
            try:
                previous = threading.stack_size(_stack_size_bytes(self._config.stack_size))
            except (ValueError, RuntimeError) as e:
                raise RuntimeError(f"error in setting the thread stack size: {e}") from e
            try:
                thread.start()
            except RuntimeError as e:
                raise RuntimeError(f"error in creating thread: {e}") from e
            finally:
                threading.stack_size(previous)

        self._thread = thread
        ready.wait()
        if setup_errors:
            thread.join()
            raise setup_errors[0]

    def join(self) -> None:
        """Wait for the thread to finish."""
        if self._thread is None:
            raise RuntimeError(f"thread {self._name} has not been started")
        self._thread.join()

    def request_stop(self) -> None:
        """Ask the thread to stop; ``run`` should poll ``stop_requested``."""
        self._stop_requested.set()

    def stop_requested(self) -> bool:
        return self._stop_requested.is_set()

    @abc.abstractmethod
    def run(self) -> None:
        """Do the work of the thread."""

    def before_run(self) -> None:
        """Called in the thread before ``run``; marks the thread as running.

        Overrides should call ``super().before_run()``.
        """
        self._running.set()

    def after_run(self) -> None:
        """Called in the thread after ``run`` returns; clears the running mark.

        Overrides should call ``super().after_run()``.
        """
        self._running.clear()

    def _apply_cpu_affinity(self) -> None:
        if not self._config.cpu_affinity:
            return
        if not hasattr(os, "sched_setaffinity"):
            raise RuntimeError("error in setting cpu affinity: not supported on this platform")
        try:
            # On Linux, id 0 designates the calling thread.
            os.sched_setaffinity(0, set(self._config.cpu_affinity))
        except OSError as e:
            raise RuntimeError(f"error in setting cpu affinity: {e.strerror}") from e

    def _run_thread(self, ready: threading.Event, setup_errors: list[BaseException]) -> None:
        try:
            self._apply_cpu_affinity()
            self._config.scheduler.set_sched_attr()

            tracer = ThreadTracer(self._name, self._config.tracer_config.queue_size)
            tracer.set_tid()
            self._tracer = tracer

            aggregator = self._trace_aggregator() if self._trace_aggregator is not None else None
            if aggregator is not None:
                aggregator.register_thread_tracer(tracer)
            else:
                self._logger.warning(
                    "thread %s does not have an app and tracing is disabled for this thread. "
                    "Did the App/Thread go out of scope before the thread is launched?",
                    self._name,
                )
        except Exception as e:
            self._tracer = None
            setup_errors.append(e)
            ready.set()
            return

        ready.set()
        try:
            self.before_run()
            self.run()
            self.after_run()
        finally:
            self._running.clear()
            tracer.mark_done()
            self._tracer = None