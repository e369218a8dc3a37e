"""Process-wide switch that turns trace event emission on and off."""

from __future__ import annotations

import threading

_enabled = threading.Event()


def enable_tracing() -> None:
    """Turn tracing on for every thread in the process."""
    _enabled.set()


def disable_tracing() -> None:
    """Turn tracing off for every thread in the process."""
    _enabled.clear()


def is_tracing_enabled() -> bool:
    """Return whether tracing is currently on."""
    return _enabled.is_set()