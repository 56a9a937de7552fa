"""Small lock-guarded scalars shared between crawl worker threads."""

from __future__ import annotations

from threading import Lock


class AtomicCounter:
    """Integer counter safe under concurrent writers; each counter owns its lock."""

    __slots__ = ("_value", "_lock")

    def __init__(self, value: int = 0):
        self._value = value
        self._lock = Lock()

    def add(self, delta: int = 1) -> int:
        with self._lock:
            self._value += delta
            return self._value

    def store(self, value: int) -> None:
        with self._lock:
            self._value = value

    def load(self) -> int:
        return self._value

    def __repr__(self) -> str:
        return f"AtomicCounter({self._value})"


class AtomicFloat:
    """Float guarded for read-modify-write updates from several threads."""

    __slots__ = ("_value", "_lock")

    def __init__(self, value: float = 0.0):
        self._value = value
        self._lock = Lock()

    def load(self) -> float:
        with self._lock:
            return self._value

    def update(self, fn) -> float:
        """Apply ``fn(current) -> new`` atomically and return the new value."""
        with self._lock:
            self._value = fn(self._value)
            return self._value

    def __repr__(self) -> str:
        return f"AtomicFloat({self._value})"
