import threading
from dataclasses import dataclass

import pytest

from cactusrt.spsc import RealtimeReadableValue, RealtimeWritableValue


@dataclass
class Data:
    a: int = 1
    b: float = 2.0
    c: float = 3.0


@pytest.mark.parametrize("cls", [RealtimeReadableValue, RealtimeWritableValue])
def test_read_and_write(cls):
    data = cls(Data())

    data1 = data.read()
    assert (data1.a, data1.b, data1.c) == (1, 2.0, 3.0)

    data.write(Data(2, 3.0, 4.0))

    data2 = data.read()
    assert (data2.a, data2.b, data2.c) == (2, 3.0, 4.0)

    data3 = data.read()
    assert (data3.a, data3.b, data3.c) == (2, 3.0, 4.0)

    data.write(Data(3, 4.0, 5.0))
    data.write(Data(4, 5.0, 6.0))

    data4 = data.read()
    assert (data4.a, data4.b, data4.c) == (4, 5.0, 6.0)


@pytest.mark.parametrize("cls", [RealtimeReadableValue, RealtimeWritableValue])
def test_read_returns_copy(cls):
    data = cls(Data())
    value = data.read()
    value.a = 99
    assert data.read().a == 1


@pytest.mark.parametrize("cls", [RealtimeReadableValue, RealtimeWritableValue])
def test_write_copies_input(cls):
    data = cls(Data())
    source = Data(5, 6.0, 7.0)
    data.write(source)
    source.a = 42
    assert data.read().a == 5


@pytest.mark.parametrize("cls", [RealtimeReadableValue, RealtimeWritableValue])
def test_concurrent_reader_sees_consistent_values(cls):
    data = cls(Data(0, 0.0, 0.0))
    errors = []
    done = threading.Event()

    def writer():
        for i in range(1, 2000):
            data.write(Data(i, float(i), float(i)))
        done.set()

    def reader():
        last = 0
        while not done.is_set():
            v = data.read()
            if not (v.a == v.b == v.c):
                errors.append(v)
            if v.a < last:
                errors.append(("went backwards", last, v.a))
            last = v.a

    tw = threading.Thread(target=writer)
    tr = threading.Thread(target=reader)
    tr.start()
    tw.start()
    tw.join()
    tr.join()
    assert errors == []
    assert data.read().a == 1999