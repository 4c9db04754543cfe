from __future__ import annotations

import threading
import time
from datetime import datetime
from typing import Callable, Generic, TypeVar

T = TypeVar("T")


class PaymentPoller(Generic[T]):
    """
    Bounded poll loop with exponential backoff.

    Stops on the first value accepted by is_done, or when the cancel event is
    set, the deadline passes, or max_attempts checks have been made. Returns
    (last_value, reason) where reason is "done", "cancelled", "deadline" or
    "max_attempts".
    """

    def __init__(
        self,
        interval_seconds: float = 3.0,
        backoff: float = 1.5,
        max_interval_seconds: float = 15.0,
        max_attempts: int = 40,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._interval = interval_seconds
        self._backoff = backoff
        self._max_interval = max_interval_seconds
        self._max_attempts = max_attempts
        self._sleep = sleep or time.sleep

    def run(
        self,
        check: Callable[[], T],
        is_done: Callable[[T], bool],
        deadline: datetime | None = None,
        clock: Callable[[], datetime] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> tuple[T, str]:
        delay = self._interval
        value = check()
        attempts = 1
        while True:
            if is_done(value):
                return value, "done"
            if cancel_event is not None and cancel_event.is_set():
                return value, "cancelled"
            if deadline is not None and clock is not None and clock() >= deadline:
                return value, "deadline"
            if attempts >= self._max_attempts:
                return value, "max_attempts"

            if cancel_event is not None:
                if cancel_event.wait(delay):
                    return value, "cancelled"
            else:
                self._sleep(delay)
            delay = min(delay * self._backoff, self._max_interval)

            value = check()
            attempts += 1
