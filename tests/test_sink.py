import pytest

from cactusrt.sink import FileSink, Sink
from cactusrt.trace_proto import Trace, TracePacket, TrackEvent, TrackEventType


def test_sink_is_abstract():
    with pytest.raises(TypeError):
        Sink()


def test_file_sink_writes_parseable_trace(tmp_path):
    path = tmp_path / "out.perfetto"
    trace = Trace(packets=[TracePacket(timestamp=5, track_event=TrackEvent(type=TrackEventType.INSTANT))])
    with FileSink(path) as sink:
        assert sink.write(trace) is True
    assert Trace.parse(path.read_bytes()) == trace


def test_file_sink_appends_traces(tmp_path):
    path = tmp_path / "out.perfetto"
    first = Trace(packets=[TracePacket(timestamp=1)])
    second = Trace(packets=[TracePacket(timestamp=2)])
    sink = FileSink(path)
    sink.write(first)
    sink.write(second)
    sink.close()
    parsed = Trace.parse(path.read_bytes())
    assert parsed.packets == first.packets + second.packets


def test_file_sink_truncates_existing_file(tmp_path):
    path = tmp_path / "out.perfetto"
    path.write_bytes(b"\xff\xff\xff")
    with FileSink(path):
        pass
    assert path.read_bytes() == b""


def test_write_after_close_fails(tmp_path):
    sink = FileSink(tmp_path / "out.perfetto")
    sink.close()
    assert sink.write(Trace(packets=[TracePacket(timestamp=1)])) is False