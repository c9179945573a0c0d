"""
Debouncer for coalescing frequent writes.

Each key holds at most one pending timer. Scheduling again for the same key
cancels the previous timer and starts a new one, so only the last callback
runs once the key has been quiet for the configured delay. Pending callbacks
are flushed unconditionally on shutdown.
"""

import asyncio
from dataclasses import dataclass
from typing import Callable, Optional

from .audit_logger import AuditLogger
from .enums import LogLevel


@dataclass
class _Pending:
    handle: Optional[asyncio.TimerHandle]
    callback: Callable[[], None]


class Debouncer:
    """Per-key trailing-edge debouncer driven by the running event loop."""

    COMPONENT = "debounce"

    def __init__(self, delay: float, logger: Optional[AuditLogger] = None) -> None:
        """
        Args:
            delay: Quiet period in seconds before a callback fires
            logger: Optional audit logger
        """
        if delay < 0:
            raise ValueError(f"delay must be >= 0, got {delay}")
        self._delay = delay
        self._logger = logger
        self._pending: dict[str, _Pending] = {}

    @property
    def delay(self) -> float:
        return self._delay

    def schedule(self, key: str, callback: Callable[[], None]) -> None:
        """
        Schedule callback for key, replacing any pending one.

        Outside a running event loop the callback is kept pending until the
        next flush.
        """
        self.cancel(key)

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._pending[key] = _Pending(handle=None, callback=callback)
            return

        handle = loop.call_later(self._delay, self._fire, key)
        self._pending[key] = _Pending(handle=handle, callback=callback)

    def cancel(self, key: str) -> bool:
        """Drop the pending callback of key without running it."""
        pending = self._pending.pop(key, None)
        if pending is None:
            return False
        if pending.handle is not None:
            pending.handle.cancel()
        return True

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    def flush(self, key: Optional[str] = None) -> int:
        """
        Run pending callbacks now.

        Args:
            key: Flush only this key; None flushes every key

        Returns:
            Number of callbacks run
        """
        keys = [key] if key is not None else list(self._pending)
        ran = 0
        for k in keys:
            pending = self._pending.pop(k, None)
            if pending is None:
                continue
            if pending.handle is not None:
                pending.handle.cancel()
            self._run(k, pending.callback)
            ran += 1
        return ran

    def cancel_all(self) -> None:
        for key in list(self._pending):
            self.cancel(key)

    def _fire(self, key: str) -> None:
        pending = self._pending.pop(key, None)
        if pending is not None:
            self._run(key, pending.callback)

    def _run(self, key: str, callback: Callable[[], None]) -> None:
        # Runs from the event loop's timer; an exception here has no caller
        try:
            callback()
        except Exception as e:
            if self._logger is None:
                raise
            self._logger.log_error(self.COMPONENT, f"Debounced callback failed for {key}", error=e)
