"""Cooperative cancellation for long-running read-only computations."""

import threading
import time

from notegraph.errors import OperationCancelled


class CancellationToken:
    """Signals a computation to stop, either explicitly or after a deadline.

    Computations call ``raise_if_cancelled`` between units of work. A
    cancelled computation raises ``OperationCancelled`` and never returns a
    partial result.
    """

    def __init__(self, timeout: float | None = None):
        """Initialize the token.

        Args:
            timeout: Seconds from now after which the token counts as cancelled
        """
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def raise_if_cancelled(self, operation: str = "operation") -> None:
        if self._event.is_set():
            raise OperationCancelled(f"{operation} was cancelled", {"operation": operation})
        if self._deadline is not None and time.monotonic() >= self._deadline:
            raise OperationCancelled(
                f"{operation} exceeded its deadline", {"operation": operation}
            )


def check(token: CancellationToken | None, operation: str) -> None:
    """Raise if a token was passed and it has been cancelled."""
    if token is not None:
        token.raise_if_cancelled(operation)
