"""
Cancellation Tokens

A token is handed to RatingEngine.rate / PeriodSegmenter.segment so a caller
can abort outstanding collaborator lookups instead of blocking on them.
"""

import time
from threading import Event
from typing import Optional

from .errors import CancellationRequestedError


class CancellationToken:
    """
    Caller-owned cancellation signal with an optional deadline.

    The deadline is measured on the monotonic clock from construction.
    """

    def __init__(self, timeout_seconds: Optional[float] = None):
        self._event = Event()
        self._deadline = (
            time.monotonic() + timeout_seconds if timeout_seconds is not None else None
        )

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None when there is none."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CancellationRequestedError("Operation cancelled by caller")
        if self._deadline is not None and time.monotonic() >= self._deadline:
            raise CancellationRequestedError("Operation timed out")

