import logging
import os
import threading

import pytest

from cactusrt.sink import Sink
from cactusrt.thread_tracer import ThreadTracer
from cactusrt.trace_aggregator import TraceAggregator
from cactusrt.trace_proto import SequenceFlags, TrackEventType
from cactusrt.tracing_enabled import disable_tracing, enable_tracing


class MockSink(Sink):
    def __init__(self):
        self._lock = threading.Lock()
        self._traces = []

    def write(self, trace):
        with self._lock:
            self._traces.append(trace)
        return True

    def packets(self):
        with self._lock:
            return [p for t in self._traces for p in t.packets]


@pytest.fixture
def tracing():
    enable_tracing()
    yield
    disable_tracing()


def _tracer(name="worker"):
    tracer = ThreadTracer(name)
    tracer.set_tid()
    return tracer


def _names(packet):
    if packet.interned_data is None:
        return {}
    return {s.name: s.iid for s in packet.interned_data.event_names}


def _categories(packet):
    if packet.interned_data is None:
        return {}
    return {s.name: s.iid for s in packet.interned_data.event_categories}


def test_instant_event_session(tracing):
    aggregator = TraceAggregator("TestApp")
    tracer = _tracer()
    aggregator.register_thread_tracer(tracer)
    sink = MockSink()
    aggregator.start(sink)
    tracer.instant_event("MyCoolEvent", "instant")
    aggregator.stop()

    packets = sink.packets()
    assert len(packets) == 3

    process = packets[0].track_descriptor
    assert process.parent_uuid is None
    assert process.uuid == os.getpid()
    assert process.process.process_name == "TestApp"
    assert process.process.pid == os.getpid()

    thread = packets[1].track_descriptor
    assert thread.parent_uuid == process.uuid
    assert thread.uuid == tracer.track_uuid
    assert thread.thread.thread_name == "worker"
    assert thread.thread.tid == tracer.tid

    event = packets[2]
    assert event.track_event.type is TrackEventType.INSTANT
    assert event.track_event.track_uuid == tracer.track_uuid
    assert event.trusted_packet_sequence_id == tracer.trusted_packet_sequence_id
    names = _names(event)
    categories = _categories(event)
    assert list(names) == ["MyCoolEvent"]
    assert list(categories) == ["instant"]
    assert event.track_event.name is None
    assert event.track_event.name_iid == names["MyCoolEvent"]
    assert event.track_event.category_iids == [categories["instant"]]
    assert event.first_packet_on_sequence is True
    assert event.previous_packet_dropped is True
    assert event.sequence_flags == (
        SequenceFlags.SEQ_INCREMENTAL_STATE_CLEARED | SequenceFlags.SEQ_NEEDS_INCREMENTAL_STATE
    )


def test_span_packets_and_interning(tracing):
    aggregator = TraceAggregator("TestApp")
    tracer = _tracer()
    aggregator.register_thread_tracer(tracer)
    sink = MockSink()
    aggregator.start(sink)
    with tracer.with_span("Loop", "cactusrt"):
        pass
    with tracer.with_span("Loop", "cactusrt"):
        pass
    aggregator.stop()

    packets = sink.packets()[2:]
    assert [p.track_event.type for p in packets] == [
        TrackEventType.SLICE_BEGIN,
        TrackEventType.SLICE_END,
        TrackEventType.SLICE_BEGIN,
        TrackEventType.SLICE_END,
    ]
    first_iid = _names(packets[0])["Loop"]
    assert packets[2].interned_data is None
    assert packets[2].track_event.name_iid == first_iid
    assert packets[2].first_packet_on_sequence is None
    assert packets[2].sequence_flags == SequenceFlags.SEQ_NEEDS_INCREMENTAL_STATE
    end = packets[1]
    assert end.track_event.name is None
    assert end.track_event.categories == []
    assert end.sequence_flags is None
    assert end.timestamp >= packets[0].timestamp


def test_restart_resets_interned_state(tracing):
    aggregator = TraceAggregator("TestApp")
    tracer = _tracer()
    aggregator.register_thread_tracer(tracer)

    sink1 = MockSink()
    aggregator.start(sink1)
    tracer.instant_event("Event1")
    aggregator.stop()

    sink2 = MockSink()
    aggregator.start(sink2)
    tracer.instant_event("Event3")
    tracer.instant_event("Event1")
    aggregator.stop()

    packets = sink2.packets()
    assert len(packets) == 4
    assert packets[1].track_descriptor.uuid == tracer.track_uuid
    assert list(_names(packets[2])) == ["Event3"]
    assert packets[2].first_packet_on_sequence is True
    assert list(_names(packets[3])) == ["Event1"]
    assert packets[2].trusted_packet_sequence_id == sink1.packets()[2].trusted_packet_sequence_id


def test_register_during_session_writes_descriptor(tracing):
    aggregator = TraceAggregator("TestApp")
    sink = MockSink()
    aggregator.start(sink)
    tracer = _tracer("late")
    aggregator.register_thread_tracer(tracer)
    tracer.instant_event("E")
    aggregator.stop()

    packets = sink.packets()
    assert packets[1].track_descriptor.thread.thread_name == "late"
    assert packets[2].track_event.track_uuid == tracer.track_uuid


def test_second_start_is_ignored(tracing):
    aggregator = TraceAggregator("TestApp")
    sink1 = MockSink()
    sink2 = MockSink()
    aggregator.start(sink1)
    aggregator.start(sink2)
    aggregator.stop()
    assert len(sink1.packets()) == 1
    assert sink2.packets() == []


def test_deregistered_tracer_is_not_described():
    aggregator = TraceAggregator("TestApp")
    tracer = _tracer()
    aggregator.register_thread_tracer(tracer)
    aggregator.deregister_thread_tracer(tracer)
    sink = MockSink()
    aggregator.start(sink)
    aggregator.stop()
    packets = sink.packets()
    assert len(packets) == 1
    assert packets[0].track_descriptor.process.process_name == "TestApp"


def test_done_tracer_is_dropped_after_drain():
    aggregator = TraceAggregator("TestApp")
    tracer = _tracer()
    aggregator.register_thread_tracer(tracer)
    tracer.mark_done()

    sink1 = MockSink()
    aggregator.start(sink1)
    aggregator.stop()
    assert len(sink1.packets()) == 2

    sink2 = MockSink()
    aggregator.start(sink2)
    aggregator.stop()
    assert len(sink2.packets()) == 1


def test_stop_without_session_is_noop():
    aggregator = TraceAggregator("TestApp")
    aggregator.stop()
    sink = MockSink()
    aggregator.start(sink)
    aggregator.stop()
    assert len(sink.packets()) == 1


def test_missing_tid_logs_warning(caplog):
    aggregator = TraceAggregator("TestApp")
    with caplog.at_level(logging.WARNING, logger="cactusrt.trace_aggregator"):
        aggregator.register_thread_tracer(ThreadTracer("no_tid"))
    assert "does not have a valid tid" in caplog.text
    assert "no_tid" in caplog.text