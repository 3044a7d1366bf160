"""Status/progress reporting protocol used by point-loop evaluation."""

from __future__ import annotations

import threading
from typing import Protocol, runtime_checkable


@runtime_checkable
class StatusHandler(Protocol):
    """Host-side status bar access, progress percentage and cooperative termination."""

    def push_status(self, message: str) -> None: ...

    def pop_status(self) -> None: ...

    def set_thread_percentage(self, percent: float) -> None: ...

    def get_status(self) -> tuple[str, float]: ...

    def set_terminate(self) -> None: ...

    def unset_terminate(self) -> None: ...

    def should_terminate(self) -> bool: ...


class StatusStack:
    """In-memory `StatusHandler`; safe to poll from another thread."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._messages: list[str] = []
        self._percent = 0.0
        self._terminate = threading.Event()

    def push_status(self, message: str) -> None:
        with self._lock:
            self._messages.append(message)
            self._percent = 0.0

    def pop_status(self) -> None:
        with self._lock:
            if self._messages:
                self._messages.pop()

    def set_thread_percentage(self, percent: float) -> None:
        with self._lock:
            self._percent = float(percent)

    def get_status(self) -> tuple[str, float]:
        with self._lock:
            message = self._messages[-1] if self._messages else ""
            return message, self._percent

    def set_terminate(self) -> None:
        self._terminate.set()

    def unset_terminate(self) -> None:
        self._terminate.clear()

    def should_terminate(self) -> bool:
        return self._terminate.is_set()
