"""Cancellation tokens for process execution.

A CancelToken is handed to a Cmd before it starts. Cancelling the token kills
the child process and makes ``Cmd.wait()`` raise the token's own error
instead of an ExitError.

Example:
    ```python
    token = CancelToken.with_timeout(5.0)
    try:
        run_with_cancellation(token, "make", "test")
    except DeadlineExceeded:
        ...
    ```
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Optional

from .errors import Cancelled, DeadlineExceeded

__all__ = ["CancelToken"]

logger = logging.getLogger(__name__)


class CancelToken:
    """Thread-safe, one-shot cancellation signal.

    The first ``cancel()`` wins: its error is stored and every later read of
    ``error`` returns that same instance. Callbacks registered with
    ``add_callback`` run once, on the thread that cancelled.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._event = threading.Event()
        self._error: Optional[Cancelled] = None
        self._callbacks: dict[int, Callable[[], None]] = {}
        self._next_id = 0
        self._timer: Optional[threading.Timer] = None

    @classmethod
    def with_timeout(cls, seconds: float) -> "CancelToken":
        """Create a token that cancels itself after ``seconds``.

        Args:
            seconds: Delay before the token fires with DeadlineExceeded

        Returns:
            A new armed CancelToken
        """
        token = cls()
        timer = threading.Timer(seconds, token._expire)
        timer.daemon = True
        token._timer = timer
        timer.start()
        return token

    @property
    def cancelled(self) -> bool:
        """Whether the token has fired."""
        return self._event.is_set()

    @property
    def error(self) -> Optional[Cancelled]:
        """The cancellation error, or None while the token is live."""
        return self._error

    def cancel(self, error: Optional[Cancelled] = None) -> bool:
        """Fire the token.

        Args:
            error: Error to report (default: Cancelled("operation was cancelled"))

        Returns:
            True if this call cancelled the token, False if it was already cancelled
        """
        with self._lock:
            if self._event.is_set():
                return False
            self._error = error if error is not None else Cancelled("operation was cancelled")
            self._event.set()
            callbacks = list(self._callbacks.values())
            self._callbacks.clear()
            timer, self._timer = self._timer, None

        if timer is not None:
            timer.cancel()

        logger.debug(f"CancelToken fired: {self._error!r}, {len(callbacks)} callback(s)")
        for callback in callbacks:
            self._invoke(callback)
        return True

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the token fires or ``timeout`` elapses."""
        return self._event.wait(timeout)

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback to run when the token fires.

        If the token has already fired the callback runs immediately.

        Args:
            callback: Zero-argument callable

        Returns:
            A function that unregisters the callback
        """
        with self._lock:
            if not self._event.is_set():
                callback_id = self._next_id
                self._next_id += 1
                self._callbacks[callback_id] = callback

                def remove() -> None:
                    with self._lock:
                        self._callbacks.pop(callback_id, None)

                return remove

        self._invoke(callback)
        return lambda: None

    def _expire(self) -> None:
        self.cancel(DeadlineExceeded("deadline exceeded"))

    @staticmethod
    def _invoke(callback: Callable[[], None]) -> None:
        try:
            callback()
        except Exception as e:
            logger.warning(f"Error in cancel callback: {e}")

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "live"
        return f"CancelToken({state})"
