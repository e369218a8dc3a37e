"""Per-thread tracer that queues trace events for the aggregator."""

from __future__ import annotations

import itertools
import queue
import threading
from dataclasses import dataclass

from cactusrt.lockless import AtomicMessage
from cactusrt.string_interner import StringInterner
from cactusrt.trace_proto import TrackEventType
from cactusrt.tracing_enabled import is_tracing_enabled
from cactusrt.utils import now_ns

DEFAULT_QUEUE_CAPACITY = 16384

_uuid_counter = itertools.count(1)
_uuid_lock = threading.Lock()


def _generate_track_uuid() -> int:
    with _uuid_lock:
        return next(_uuid_counter)


@dataclass(frozen=True)
class TrackEventInternal:
    """An event as queued by a thread, before it is turned into a packet."""

    timestamp: int
    type: TrackEventType
    name: str | None = None
    category: str | None = None


@dataclass(frozen=True)
class EventCountData:
    total_events: int = 0
    dropped_events: int = 0


class ThreadTracer:
    """Records spans and instant events for one thread into a bounded queue.

    Emission never blocks: when the queue is full the event is dropped and
    counted as such.
    """

    def __init__(self, name: str, queue_capacity: int = DEFAULT_QUEUE_CAPACITY) -> None:
        if queue_capacity < 1:
            raise ValueError("queue_capacity must be at least 1")
        self.name = name
        self.tid = 0
        self.track_uuid = _generate_track_uuid()
        self.trusted_packet_sequence_id = self.track_uuid & 0xFFFFFFFF
        self.event_name_interner = StringInterner()
        self.event_category_interner = StringInterner()
        self._queue_capacity = queue_capacity
        self._queue: queue.Queue[TrackEventInternal] = queue.Queue(maxsize=queue_capacity)
        self._event_count = AtomicMessage(EventCountData())
        self._done = threading.Event()

    def start_span(self, name: str, category: str | None = None, now: int = 0) -> bool:
        """Begin a span; return False if tracing is off or the event was dropped."""
        if not is_tracing_enabled():
            return False
        return self._emit(TrackEventInternal(now or now_ns(), TrackEventType.SLICE_BEGIN, name, category))

    def end_span(self, now: int = 0) -> bool:
        """End the innermost open span."""
        if not is_tracing_enabled():
            return False
        return self._emit(TrackEventInternal(now or now_ns(), TrackEventType.SLICE_END))

    def instant_event(self, name: str, category: str | None = None, now: int = 0) -> bool:
        """Record a zero-duration event."""
        if not is_tracing_enabled():
            return False
        return self._emit(TrackEventInternal(now or now_ns(), TrackEventType.INSTANT, name, category))

    def with_span(self, name: str, category: str | None = None, enabled: bool = True) -> "TraceSpan":
        """Return a context manager that spans the body of a ``with`` block."""
        return TraceSpan(self, name, category, enabled)

    def set_tid(self) -> None:
        """Record the native id of the calling thread."""
        self.tid = threading.get_native_id()

    def mark_done(self) -> None:
        """Mark the owning thread finished so the aggregator can drop this tracer."""
        self._done.set()

    def is_done(self) -> bool:
        return self._done.is_set()

    def event_count(self) -> EventCountData:
        return self._event_count.read()

    def queue_capacity(self) -> int:
        return self._queue_capacity

    def try_dequeue(self) -> TrackEventInternal | None:
        """Pop the oldest queued event, or return None if the queue is empty."""
        try:
            return self._queue.get_nowait()
        except queue.Empty:
            return None

    def _emit(self, event: TrackEventInternal) -> bool:
        try:
            self._queue.put_nowait(event)
            success = True
        except queue.Full:
            success = False
        dropped = 0 if success else 1
        self._event_count.modify(
            lambda old: EventCountData(old.total_events + 1, old.dropped_events + dropped)
        )
        return success


class TraceSpan:
    """Emits a span begin on entry and a span end on exit."""

    def __init__(self, tracer: ThreadTracer, name: str, category: str | None = None, enabled: bool = True) -> None:
        self._tracer = tracer if enabled else None
        self._name = name
        self._category = category

    def __enter__(self) -> "TraceSpan":
        if self._tracer is not None:
            self._tracer.start_span(self._name, self._category)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._tracer is not None:
            self._tracer.end_span()