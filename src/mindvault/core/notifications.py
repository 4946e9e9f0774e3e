"""Single user-visible error channel with auto-dismissing entries."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_ERROR_TTL = 5.0


@dataclass
class ErrorNotice:
    message: str
    error: Optional[BaseException]
    raised_at: float


class ErrorChannel:
    """
    Collects failures from vault operations for display.

    Only the latest notice is shown; it disappears ``ttl`` seconds after it
    was reported. Subscribers (the TUI) are called on every report.
    """

    def __init__(self, ttl: float = DEFAULT_ERROR_TTL, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._current: Optional[ErrorNotice] = None
        self._history: List[ErrorNotice] = []
        self._subscribers: List[Callable[[ErrorNotice], None]] = []

    def subscribe(self, callback: Callable[[ErrorNotice], None]) -> None:
        self._subscribers.append(callback)

    def report(self, error: BaseException | str, context: str = "") -> ErrorNotice:
        if isinstance(error, BaseException):
            text = str(error) or error.__class__.__name__
            exc: Optional[BaseException] = error
        else:
            text, exc = error, None
        message = f"{context}: {text}" if context else text
        notice = ErrorNotice(message=message, error=exc, raised_at=self._clock())
        with self._lock:
            self._current = notice
            self._history.append(notice)
        logger.error("%s", message)
        for callback in list(self._subscribers):
            callback(notice)
        return notice

    @property
    def current(self) -> Optional[ErrorNotice]:
        """The visible notice, or None once it has been dismissed or expired."""
        with self._lock:
            notice = self._current
            if notice is not None and self._clock() - notice.raised_at >= self.ttl:
                self._current = notice = None
            return notice

    @property
    def history(self) -> List[ErrorNotice]:
        with self._lock:
            return list(self._history)

    def dismiss(self) -> None:
        with self._lock:
            self._current = None
