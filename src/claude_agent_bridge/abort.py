"""Cancellation signal shared by every blocking operation of a session.

Mirrors the AbortController/AbortSignal pair familiar from web APIs:

    controller = AbortController()
    options = Options(abort_controller=controller)
    ...
    controller.abort("User cancelled")

The signal is thread-safe: abort() may be called from a UI thread while the
session runs on an event loop elsewhere. Async waiters are woken through
loop.call_soon_threadsafe so they observe the abort immediately.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from typing import Any

from .errors import AbortError

logger = logging.getLogger(__name__)

AbortCallback = Callable[[str], Any]


class AbortSignal:
    """Monotonic aborted flag with a reason and a one-shot callback registry."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._aborted = False
        self._reason: str | None = None
        self._callbacks: list[AbortCallback] = []

    @property
    def aborted(self) -> bool:
        """Whether abort() has been called."""
        with self._lock:
            return self._aborted

    @property
    def reason(self) -> str | None:
        """The reason given to the first abort() call, or None."""
        with self._lock:
            return self._reason

    def on_abort(self, callback: AbortCallback) -> Callable[[], None]:
        """Register a callback fired once with the abort reason.

        If the signal is already aborted the callback runs immediately, on
        the calling thread. Returns a function that unregisters the callback.
        """
        with self._lock:
            if not self._aborted:
                self._callbacks.append(callback)
                return lambda: self._discard(callback)
            reason = self._reason

        self._invoke(callback, reason or AbortError.DEFAULT_REASON)
        return lambda: None

    def abort(self, reason: str | None = None) -> bool:
        """Abort the signal. Only the first call has any effect.

        Returns:
            True if this call performed the transition, False if the signal
            was already aborted.
        """
        with self._lock:
            if self._aborted:
                return False
            self._aborted = True
            self._reason = reason or AbortError.DEFAULT_REASON
            callbacks = self._callbacks
            self._callbacks = []
            final_reason = self._reason

        logger.debug(f"Abort signal fired: {final_reason}")
        for callback in callbacks:
            self._invoke(callback, final_reason)
        return True

    def check(self) -> None:
        """Raise AbortError if the signal has been aborted."""
        with self._lock:
            if self._aborted:
                raise AbortError(self._reason)

    async def wait(self, timeout: float | None = None) -> bool:
        """Wait until aborted or until timeout elapses.

        Returns:
            True if the signal was aborted, False on timeout.
        """
        if self.aborted:
            return True

        loop = asyncio.get_running_loop()
        woken = asyncio.Event()
        unregister = self.on_abort(lambda _reason: loop.call_soon_threadsafe(woken.set))
        try:
            await asyncio.wait_for(woken.wait(), timeout=timeout)
        except TimeoutError:
            pass
        finally:
            unregister()
        return self.aborted

    def _discard(self, callback: AbortCallback) -> None:
        with self._lock:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

    @staticmethod
    def _invoke(callback: AbortCallback, reason: str) -> None:
        try:
            callback(reason)
        except Exception:
            logger.exception("Abort callback raised")


class AbortController:
    """Owner of an AbortSignal; the side that decides to cancel."""

    def __init__(self) -> None:
        self._signal = AbortSignal()

    @property
    def signal(self) -> AbortSignal:
        return self._signal

    def abort(self, reason: str | None = None) -> bool:
        """Abort the controlled signal. See AbortSignal.abort."""
        return self._signal.abort(reason)
