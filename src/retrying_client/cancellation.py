"""Cancellation and deadline signals honored by the retry executor.

A :class:`CancellationToken` is checked before every attempt and interrupts
the backoff wait between attempts. It can be cancelled explicitly from any
thread, and it cancels itself once its deadline passes.
"""

from __future__ import annotations

import asyncio
import contextlib
import threading
import time
from typing import TYPE_CHECKING

from retrying_client.errors import OperationCancelledError

if TYPE_CHECKING:
    from collections.abc import Callable

__all__ = ["CancellationToken"]


class CancellationToken:
    """Thread-safe cancellation flag with an optional deadline.

    Parameters
    ----------
    deadline_s : float | None, optional
        Seconds from construction after which the token counts as cancelled.
        Defaults to None (no deadline).
    clock : Callable[[], float], optional
        Monotonic clock, injectable for tests. Defaults to ``time.monotonic``.

    Examples
    --------
    >>> token = CancellationToken()
    >>> token.cancelled
    False
    >>> token.cancel()
    >>> token.wait(10.0)
    True
    """

    def __init__(
        self,
        deadline_s: float | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if deadline_s is not None and deadline_s < 0:
            msg = f"deadline_s must be >= 0, got {deadline_s}"
            raise ValueError(msg)
        self._clock = clock
        self._deadline = None if deadline_s is None else clock() + deadline_s
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._waiters: list[tuple[asyncio.AbstractEventLoop, asyncio.Event]] = []

    @classmethod
    def with_deadline(cls, seconds: float) -> CancellationToken:
        """Return a token that cancels itself ``seconds`` from now."""
        return cls(deadline_s=seconds)

    def cancel(self) -> None:
        """Cancel the token and wake every waiter, sync or async."""
        with self._lock:
            self._event.set()
            waiters = list(self._waiters)
        for loop, event in waiters:
            if not loop.is_closed():
                loop.call_soon_threadsafe(event.set)

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or None without a deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._clock())

    @property
    def cancelled(self) -> bool:
        """Whether the token was cancelled or its deadline has passed."""
        if self._event.is_set():
            return True
        remaining = self.remaining()
        return remaining is not None and remaining <= 0.0

    def raise_if_cancelled(self, *, attempts_made: int = 0) -> None:
        """Raise :class:`OperationCancelledError` when the token is cancelled.

        Raises
        ------
        OperationCancelledError
            If :attr:`cancelled` is True.
        """
        if self.cancelled:
            reason = "Deadline exceeded" if not self._event.is_set() else "Operation cancelled"
            raise OperationCancelledError(reason, attempts_made=attempts_made)

    def _bounded(self, seconds: float) -> float:
        remaining = self.remaining()
        return seconds if remaining is None else min(seconds, remaining)

    def wait(self, seconds: float) -> bool:
        """Block for up to ``seconds``; return True if cancelled meanwhile.

        The wait ends early when :meth:`cancel` is called or the deadline passes.
        """
        self._event.wait(self._bounded(seconds))
        return self.cancelled

    async def wait_async(self, seconds: float) -> bool:
        """Cooperative counterpart of :meth:`wait` that yields to the event loop."""
        loop = asyncio.get_running_loop()
        event = asyncio.Event()
        waiter = (loop, event)
        with self._lock:
            if self._event.is_set():
                return True
            self._waiters.append(waiter)
        try:
            with contextlib.suppress(TimeoutError):
                async with asyncio.timeout(self._bounded(seconds)):
                    await event.wait()
        finally:
            with self._lock:
                self._waiters.remove(waiter)
        return self.cancelled
