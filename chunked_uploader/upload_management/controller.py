"""Cooperative pause and cancel signals for the chunk scheduler."""

import asyncio
import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)


class PauseCancelController:
    """Two independent flags polled by the scheduler between batches.

    Nothing here interrupts a transfer that is already running: the
    scheduler reads the flags only at batch boundaries. Cancel takes
    precedence over pause and also wakes a scheduler waiting for resume.
    """

    def __init__(self) -> None:
        self._paused = False
        self._cancelled = False
        self._runnable = asyncio.Event()
        self._runnable.set()
        self._cancel_hooks: list[Callable[[], None]] = []

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def add_cancel_hook(self, hook: Callable[[], None]) -> None:
        """Register a callable run once when ``cancel`` is first called."""
        self._cancel_hooks.append(hook)

    def pause(self) -> None:
        if self._cancelled:
            return
        self._paused = True
        self._runnable.clear()

    def resume(self) -> None:
        self._paused = False
        self._runnable.set()

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._runnable.set()
        for hook in self._cancel_hooks:
            try:
                hook()
            except Exception:
                logger.exception(f"Cancel hook {hook!r} failed")

    async def wait_until_runnable(self) -> bool:
        """Block while paused and not cancelled.

        Returns:
            True if the upload may continue, False if it was cancelled.
        """
        while self._paused and not self._cancelled:
            await self._runnable.wait()
        return not self._cancelled
