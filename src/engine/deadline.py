"""Cooperative deadlines and cancellation for long-running calls."""

import threading
import time
from concurrent.futures import CancelledError
from typing import Optional

from src.exceptions import EngineTimeoutError


class Deadline:
    """Caller-supplied time budget plus an optional cancellation flag.

    Long loops call ``check()`` between steps; nothing is published until
    the work has finished, so an interrupted call leaves no partial state.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.timeout = timeout
        self.cancel_event = cancel_event
        self._expires_at = None if timeout is None else time.monotonic() + timeout

    @classmethod
    def coerce(cls, deadline: Optional["Deadline"]) -> "Deadline":
        return deadline if deadline is not None else cls()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    @property
    def expired(self) -> bool:
        return self._expires_at is not None and time.monotonic() >= self._expires_at

    def remaining(self) -> Optional[float]:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    def check(self, operation: str) -> None:
        """Raise if the call was cancelled or ran past its deadline.

        Raises:
            CancelledError: If the cancel event is set.
            EngineTimeoutError: If the timeout elapsed.
        """
        if self.cancelled:
            raise CancelledError(f"Operation '{operation}' was cancelled")
        if self.expired:
            raise EngineTimeoutError(operation, self.timeout)
