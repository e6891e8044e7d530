"""Cancellation token and OS signal subscription.

Signal handlers only call ``CancellationToken.cancel``; everything that
reacts to the interrupt does so from its own thread of control.
"""

from __future__ import annotations

import signal
import threading
from collections.abc import Callable, Iterable
from types import FrameType, TracebackType
from typing import Any

import structlog

logger = structlog.get_logger()

DEFAULT_SIGNALS: tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM)


class CancellationToken:
    """One-shot cancellation signal shared between a relay and its owner.

    ``cancel`` is safe to call from a signal handler: the first call records
    the reason and notifies subscribers, later calls are ignored.
    Subscribers must not block or take locks the interrupted code may hold.
    """

    def __init__(self) -> None:
        self._reason: str | None = None
        self._event = threading.Event()
        self._callbacks: list[Callable[[str], None]] = []

    @property
    def is_cancelled(self) -> bool:
        return self._reason is not None

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        if self._reason is not None:
            return
        self._reason = reason
        for callback in list(self._callbacks):
            callback(reason)
        self._event.set()

    def subscribe(self, callback: Callable[[str], None]) -> None:
        """Register ``callback``; it runs immediately if already cancelled."""
        self._callbacks.append(callback)
        if self._reason is not None:
            callback(self._reason)

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)


class InterruptWatcher:
    """Route SIGINT/SIGTERM to a cancellation token while active.

    Example:
        ```python
        token = CancellationToken()
        with InterruptWatcher(token):
            controller.run(request)
        ```
    """

    def __init__(
        self,
        token: CancellationToken,
        signals: Iterable[signal.Signals] = DEFAULT_SIGNALS,
    ) -> None:
        self._token = token
        self._signals = tuple(signals)
        self._previous: dict[signal.Signals, Any] = {}

    def _handle(self, signum: int, frame: FrameType | None) -> None:
        self._token.cancel(signal.Signals(signum).name)

    def __enter__(self) -> InterruptWatcher:
        if threading.current_thread() is not threading.main_thread():
            logger.warning("interrupt_watcher_inactive", reason="not on main thread")
            return self
        for sig in self._signals:
            self._previous[sig] = signal.signal(sig, self._handle)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        for sig, previous in self._previous.items():
            signal.signal(sig, previous)
        self._previous.clear()
