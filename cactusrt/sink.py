"""Destinations that trace data is written to."""

from __future__ import annotations

import abc
import os

from cactusrt.trace_proto import Trace


class Sink(abc.ABC):
    """Receives trace messages from the trace aggregator."""

    @abc.abstractmethod
    def write(self, trace: Trace) -> bool:
        """Write ``trace``; return whether it succeeded."""


class FileSink(Sink):
    """Writes serialized traces one after another into a file, truncating it first."""

    def __init__(self, filename: str | os.PathLike) -> None:
        self._file = open(filename, "wb")

    def write(self, trace: Trace) -> bool:
        try:
            self._file.write(trace.serialize())
            self._file.flush()
        except (OSError, ValueError):
            return False
        return True

    def close(self) -> None:
        self._file.close()

    def __enter__(self) -> "FileSink":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()