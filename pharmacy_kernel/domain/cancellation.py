"""
Cooperative cancellation for order submission.

The coordinator checks the token between steps.  Before the header is
written a cancellation has no side effects; afterwards it is reported as a
partial failure so the durable header is never silently undone.
"""

import threading


class CancellationToken:
    """Thread-safe flag a caller sets to abandon an in-flight submission."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason: str | None = None

    def cancel(self, reason: str = "cancelled by caller") -> None:
        self._reason = reason
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason
