"""Maps strings to stable integer ids."""

from __future__ import annotations


class StringInterner:
    """Assigns each distinct string an id, starting from 1."""

    def __init__(self) -> None:
        self._ids: dict[str, int] = {}
        self._current_id = 0

    def get_id(self, s: str) -> tuple[bool, int]:
        """Return ``(is_new, id)`` for ``s``, assigning a new id on first sight."""
        existing = self._ids.get(s)
        if existing is not None:
            return False, existing
        self._current_id += 1
        self._ids[s] = self._current_id
        return True, self._current_id

    def reset(self) -> None:
        """Forget all strings and restart ids from 1."""
        self._current_id = 0
        self._ids = {}

    def __len__(self) -> int:
        return len(self._ids)