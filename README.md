# cactusrt

Building blocks for real-time style threads in Python: scheduling policies,
a thread base class with a per-thread tracer, tracing that writes
Perfetto-compatible trace files, and a few lock-free style helpers.
It has no dependencies outside the standard library.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Tracing

A `ThreadTracer` records spans and instant events into a bounded queue. It
never blocks: when the queue is full, the event is dropped and counted in
`event_count()`. Events are only recorded while tracing is switched on with
`enable_tracing()`.

A `TraceAggregator` drains the registered tracers in a background thread and
writes the events to a `Sink`. Event names and categories are interned per
tracer, and the interned strings are reset when the session stops.

```python
from cactusrt.sink import FileSink
from cactusrt.thread_tracer import ThreadTracer
from cactusrt.trace_aggregator import TraceAggregator
from cactusrt.tracing_enabled import disable_tracing, enable_tracing

tracer = ThreadTracer("main_thread")
tracer.set_tid()
aggregator = TraceAggregator("my_process")

enable_tracing()
sink = FileSink("trace.perfetto")
aggregator.start(sink)
aggregator.register_thread_tracer(tracer)

with tracer.with_span("work", "app"):
    ...
tracer.instant_event("marker", "app")

disable_tracing()
aggregator.stop()
sink.close()
```

`start` writes a process track descriptor, then a thread track descriptor for
each registered tracer; tracers registered during a session get theirs at
once. Calling `start` while a session runs does nothing. `start` also takes a
list of CPUs to pin the aggregator thread to.

To write traces somewhere other than a file, subclass `Sink` and implement
`write(trace)`, returning whether the write succeeded.

### The trace format

`cactusrt.trace_proto` holds the trace messages (`Trace`, `TracePacket`,
`TrackDescriptor`, `TrackEvent`, `InternedData` and so on) and encodes them in
protobuf wire format by itself. `Trace.serialize()` returns the bytes, and
`Trace.parse(data)` reads them back; since concatenated traces form one trace,
a whole file written by `FileSink` can be parsed at once:

```python
from pathlib import Path
from cactusrt.trace_proto import Trace

packets = Trace.parse(Path("trace.perfetto").read_bytes()).packets
```

## Scheduling policies

`cactusrt.scheduler` has `OtherScheduler` (with a `nice` value),
`FifoScheduler` (with a `priority`) and `DeadlineScheduler`. `set_sched_attr()`
applies the policy to the calling thread and raises `RuntimeError` when it
cannot, for example without the needed privileges. `DeadlineScheduler` always
raises, since the runtime cannot set that policy. `sleep(next_wakeup_time_ns)`
waits until the monotonic clock reaches the given time; the deadline scheduler
only yields.

## Threads

`cactusrt.thread` has `ThreadConfig`, `CyclicThreadConfig` (which adds
`period_ns`) and `ThreadTracerConfig`. `set_other_scheduler`,
`set_fifo_scheduler` and `set_deadline_scheduler` choose the policy.

`Thread` is an abstract base class: subclasses implement `run()` and poll
`stop_requested()`. When started, the thread sets its CPU affinity and policy,
creates its tracer (available as `tracer` while it runs) and registers the
tracer with its owner's aggregator. Errors in this setup are raised again by
`start`.

## Helpers

- `cactusrt.utils`: `now_ns()` and `wall_now_ns()`, and `Timespec` with
  `add_timespec_by_ns`.
- `cactusrt.rand`: the `Xorshift64Rand` generator and `real_number`, which
  returns a value in [0, 1).
- `cactusrt.lockless`: `AtomicBitset` and `AtomicMessage`.
- `cactusrt.spsc`: `RealtimeReadableValue` and `RealtimeWritableValue`.
- `cactusrt.string_interner`: `StringInterner`.

## What this package does not do

There is no application class that owns threads and trace sessions, no cyclic
loop thread that calls a `loop` method once per period, and no termination
signal handling. `Thread.start` refuses to start a thread that no application
has taken ownership of, so the `Thread` class cannot be run on its own
through the public interface. Memory locking and heap reservation are not
done either.