"""Broadcast of upload progress snapshots to any number of observers."""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from typing import Any

from pyee.asyncio import AsyncIOEventEmitter

from chunked_uploader.models import ProgressSnapshot

logger = logging.getLogger(__name__)

PROGRESS_EVENT = "progress"

_END_OF_STREAM = object()


class ProgressStream:
    """Async iterator over the snapshots published after it was opened.

    Iteration ends after a terminal snapshot or when the publisher is closed.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._ended = False

    @property
    def ended(self) -> bool:
        """Whether no further snapshots will be delivered."""
        return self._ended

    def _push(self, snapshot: ProgressSnapshot) -> None:
        if not self._ended:
            self._queue.put_nowait(snapshot)

    def _end(self) -> None:
        if not self._ended:
            self._ended = True
            self._queue.put_nowait(_END_OF_STREAM)

    def __aiter__(self) -> AsyncIterator[ProgressSnapshot]:
        return self

    async def __anext__(self) -> ProgressSnapshot:
        item = await self._queue.get()
        if item is _END_OF_STREAM:
            # Leave the marker for any other consumer of this stream
            self._queue.put_nowait(_END_OF_STREAM)
            raise StopAsyncIteration
        return item


class ProgressPublisher:
    """Single-writer, multi-reader channel of ``ProgressSnapshot`` values.

    Publishing never blocks and never raises: with no observers attached the
    snapshot is dropped, observer errors are logged, and anything published
    after ``close`` is discarded.
    """

    def __init__(self) -> None:
        self._emitter = AsyncIOEventEmitter()
        self._emitter.on("error", self._on_observer_error)
        self._streams: set[ProgressStream] = set()
        self._latest: ProgressSnapshot | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        """Whether the channel has been disposed."""
        return self._closed

    @property
    def latest(self) -> ProgressSnapshot | None:
        """Most recently published snapshot, if any."""
        return self._latest

    def on(
        self, callback: Callable[[ProgressSnapshot], Any]
    ) -> Callable[[ProgressSnapshot], Any]:
        """Register an observer called with every published snapshot.

        The callback may be a plain function or a coroutine function.
        """
        if not self._closed:
            self._emitter.on(PROGRESS_EVENT, callback)
        return callback

    def remove_listener(self, callback: Callable[[ProgressSnapshot], Any]) -> None:
        """Detach an observer previously registered with ``on``."""
        try:
            self._emitter.remove_listener(PROGRESS_EVENT, callback)
        except KeyError:
            logger.debug(f"Observer {callback!r} was not registered")

    def subscribe(self) -> ProgressStream:
        """Open a stream of the snapshots published from now on."""
        stream = ProgressStream()
        if self._closed:
            stream._end()
            return stream
        self._streams.add(stream)
        self._emitter.on(PROGRESS_EVENT, stream._push)
        return stream

    def publish(self, snapshot: ProgressSnapshot) -> None:
        """Deliver a snapshot to every attached observer."""
        if self._closed:
            logger.debug(
                f"Discarding {snapshot.status.value} snapshot on closed channel"
            )
            return

        self._latest = snapshot
        self._emitter.emit(PROGRESS_EVENT, snapshot)

        if snapshot.status.is_terminal:
            self._end_streams()

    def close(self) -> None:
        """Close the channel; later publishes are silently discarded."""
        if self._closed:
            return
        self._closed = True
        self._end_streams()
        self._emitter.remove_all_listeners(PROGRESS_EVENT)

    def _end_streams(self) -> None:
        for stream in self._streams:
            self._emitter.remove_listener(PROGRESS_EVENT, stream._push)
            stream._end()
        self._streams.clear()

    def _on_observer_error(self, error: Exception) -> None:
        logger.warning(f"Progress observer raised: {error}", exc_info=error)
