"""Collects events from thread tracers and writes them to a sink."""

from __future__ import annotations

import logging
import os
import threading
import time
from dataclasses import dataclass, field

from cactusrt.sink import Sink
from cactusrt.thread_tracer import ThreadTracer, TrackEventInternal
from cactusrt.trace_proto import (
    InternedData,
    InternedString,
    ProcessDescriptor,
    SequenceFlags,
    ThreadDescriptor,
    Trace,
    TracePacket,
    TrackDescriptor,
    TrackEvent,
)

MAX_INTERNED_STRINGS = 10_000

_IDLE_SLEEP_S = 0.010
_WARNING_INTERVAL_S = 5.0


def _set_cpu_affinity(cpu_affinity: list[int]) -> None:
    if not cpu_affinity:
        return
    if not hasattr(os, "sched_setaffinity"):
        raise RuntimeError("cannot set affinity for trace aggregator: not supported on this platform")
    try:
        os.sched_setaffinity(0, set(cpu_affinity))
    except OSError as e:
        raise RuntimeError(f"cannot set affinity for trace aggregator: {e.strerror}") from e


@dataclass
class _Session:
    sink: Sink
    cpu_affinity: list[int]
    stop_requested: threading.Event = field(default_factory=threading.Event)
    sequences_with_first_packet_emitted: set[int] = field(default_factory=set)
    thread: threading.Thread | None = None


class TraceAggregator:
    """Drains registered thread tracers in a background thread during a session."""

    def __init__(self, process_name: str) -> None:
        self.process_name = process_name
        self.process_track_uuid = os.getpid()
        self._tracers: list[ThreadTracer] = []
        self._lock = threading.Lock()
        self._session: _Session | None = None
        self._logger = logging.getLogger("cactusrt.trace_aggregator")
        self._last_warning: dict[str, float] = {}

    def register_thread_tracer(self, tracer: ThreadTracer) -> None:
        """Add a tracer; its track descriptor is written at once if a session is running."""
        if tracer.tid == 0:
            self._logger.warning("thread %s does not have a valid tid", tracer.name)

        # Held while writing so the descriptor precedes the thread's events.
        with self._lock:
            self._tracers.append(tracer)
            if self._session is not None:
                self._session.sink.write(self._thread_descriptor_packet(tracer))

    def deregister_thread_tracer(self, tracer: ThreadTracer) -> None:
        with self._lock:
            self._tracers = [t for t in self._tracers if t is not tracer]

    def start(self, sink: Sink, cpu_affinity: list[int] | None = None) -> None:
        """Start a session writing to ``sink``; does nothing if one is running."""
        with self._lock:
            if self._session is not None:
                return
            session = _Session(sink, list(cpu_affinity or []))
            self._session = session
            sink.write(self._process_descriptor_packet())
            for tracer in self._tracers:
                sink.write(self._thread_descriptor_packet(tracer))
            session.thread = threading.Thread(
                target=self._run, args=(session,), name="trace_aggregator", daemon=True
            )
            session.thread.start()

    def stop(self) -> None:
        """Stop the session, drain queued events and reset interned strings."""
        with self._lock:
            session = self._session
            if session is None:
                return
            session.stop_requested.set()

        # The lock cannot be held while joining: the worker needs it.
        session.thread.join()

        with self._lock:
            self._session = None
            for tracer in self._tracers:
                tracer.event_name_interner.reset()
                tracer.event_category_interner.reset()

    def _run(self, session: _Session) -> None:
        _set_cpu_affinity(session.cpu_affinity)

        while not session.stop_requested.is_set():
            trace = Trace()
            if self._try_dequeue_once_from_all_tracers(session, trace) > 0:
                self._write_trace(session, trace)
            else:
                session.stop_requested.wait(_IDLE_SLEEP_S)

        # Write out whatever is still queued once a stop is requested.
        trace = Trace()
        total_events = 0
        while num_events := self._try_dequeue_once_from_all_tracers(session, trace):
            total_events += num_events
        if total_events > 0:
            self._write_trace(session, trace)

    def _try_dequeue_once_from_all_tracers(self, session: _Session, trace: Trace) -> int:
        with self._lock:
            num_events = 0
            done_tracers = []
            for tracer in self._tracers:
                event = tracer.try_dequeue()
                if event is None:
                    if tracer.is_done():
                        done_tracers.append(tracer)
                    continue
                num_events += 1
                self._add_track_event_packet(session, trace, tracer, event)

            if done_tracers:
                self._tracers = [
                    t for t in self._tracers if not any(t is done for done in done_tracers)
                ]
            return num_events

    def _write_trace(self, session: _Session, trace: Trace) -> None:
        with self._lock:
            if not session.sink.write(trace):
                self._warn_limited("write", "failed to write trace data to sink, data may be corrupted")

    def _warn_limited(self, key: str, message: str, *args) -> None:
        now = time.monotonic()
        last = self._last_warning.get(key)
        if last is None or now - last >= _WARNING_INTERVAL_S:
            self._last_warning[key] = now
            self._logger.warning(message, *args)

    def _process_descriptor_packet(self) -> Trace:
        descriptor = TrackDescriptor(
            uuid=self.process_track_uuid,
            process=ProcessDescriptor(pid=os.getpid(), process_name=self.process_name),
        )
        return Trace(packets=[TracePacket(track_descriptor=descriptor)])

    def _thread_descriptor_packet(self, tracer: ThreadTracer) -> Trace:
        descriptor = TrackDescriptor(
            uuid=tracer.track_uuid,
            parent_uuid=self.process_track_uuid,
            thread=ThreadDescriptor(pid=os.getpid(), tid=tracer.tid, thread_name=tracer.name),
        )
        return Trace(packets=[TracePacket(track_descriptor=descriptor)])

    def _add_track_event_packet(
        self,
        session: _Session,
        trace: Trace,
        tracer: ThreadTracer,
        event: TrackEventInternal,
    ) -> None:
        sequence_flags = 0
        interned_data: InternedData | None = None
        track_event = TrackEvent(track_uuid=tracer.track_uuid, type=event.type)

        if event.name is not None:
            if len(tracer.event_name_interner) < MAX_INTERNED_STRINGS:
                is_new, iid = tracer.event_name_interner.get_id(event.name)
                if is_new:
                    if interned_data is None:
                        interned_data = InternedData()
                    interned_data.event_names.append(InternedString(iid=iid, name=event.name))
                track_event.name_iid = iid
                sequence_flags |= SequenceFlags.SEQ_NEEDS_INCREMENTAL_STATE
            else:
                self._warn_limited(
                    "names",
                    "number of unique event names emitted in tracing is exceeding %d for thread %s, "
                    "string interning is disabled. trace files may be excessively large",
                    MAX_INTERNED_STRINGS,
                    tracer.name,
                )
                track_event.name = event.name

        if event.category is not None:
            if len(tracer.event_category_interner) < MAX_INTERNED_STRINGS:
                is_new, iid = tracer.event_category_interner.get_id(event.category)
                if is_new:
                    if interned_data is None:
                        interned_data = InternedData()
                    interned_data.event_categories.append(InternedString(iid=iid, name=event.category))
                track_event.category_iids.append(iid)
                sequence_flags |= SequenceFlags.SEQ_NEEDS_INCREMENTAL_STATE
            else:
                self._warn_limited(
                    "categories",
                    "number of unique event category emitted in tracing is exceeding %d for thread %s, "
                    "string interning is disabled. trace files may be excessively large",
                    MAX_INTERNED_STRINGS,
                    tracer.name,
                )
                track_event.categories.append(event.category)

        packet = TracePacket(
            timestamp=event.timestamp,
            track_event=track_event,
            trusted_packet_sequence_id=tracer.trusted_packet_sequence_id,
        )

        sequence_id = tracer.trusted_packet_sequence_id
        if sequence_id not in session.sequences_with_first_packet_emitted:
            session.sequences_with_first_packet_emitted.add(sequence_id)
            packet.first_packet_on_sequence = True
            packet.previous_packet_dropped = True
            sequence_flags |= SequenceFlags.SEQ_INCREMENTAL_STATE_CLEARED

        if interned_data is not None:
            packet.interned_data = interned_data
        if sequence_flags:
            packet.sequence_flags = int(sequence_flags)

        trace.packets.append(packet)