"""Chunk scheduling for a single upload.

The scheduler owns one upload attempt end to end: it creates (or adopts) the
server session, reconciles which chunks still have to be sent, dispatches
them in barrier-style batches of bounded size, verifies the server received
everything, and completes the upload. Pause and cancel are honoured only
between batches.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

import aiohttp

from chunked_uploader.byte_source import ByteSource
from chunked_uploader.chunking import bytes_for_chunks, chunk_range, total_chunks
from chunked_uploader.config_manager.upload_config import UploadConfig
from chunked_uploader.exceptions import (
    ChunkUploadFailed,
    SourceReadFailed,
    TransportFailure,
    VerifyMismatch,
)
from chunked_uploader.models import (
    ALLOWED_TRANSITIONS,
    ChunkResult,
    ProgressSnapshot,
    UploadSession,
    UploadStatus,
)
from chunked_uploader.progress_publisher import ProgressPublisher

from .chunk_transfer import ChunkTransfer
from .controller import PauseCancelController
from .session_manager import UploadSessionManager

logger = logging.getLogger(__name__)


class ChunkScheduler:
    """Drive one upload through its state machine.

    A scheduler is single use: each upload attempt gets a fresh instance and
    therefore a fresh state machine starting at ``IDLE``.
    """

    def __init__(
        self,
        config: UploadConfig,
        client_session: aiohttp.ClientSession,
        session_manager: UploadSessionManager,
        controller: PauseCancelController,
        publisher: ProgressPublisher,
        timeout: aiohttp.ClientTimeout | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the scheduler.

        Args:
            config: Uploader configuration
            client_session: aiohttp ClientSession used by chunk transfers
            session_manager: Owner of the remote session
            controller: Pause and cancel signals for this upload
            publisher: Channel progress snapshots are published on
            timeout: Per-request timeout for chunk transfers
            clock: Monotonic time source used for speed computation
        """
        self._config = config
        self._client_session = client_session
        self._session_manager = session_manager
        self._controller = controller
        self._publisher = publisher
        self._timeout = timeout
        self._clock = clock

        self._status = UploadStatus.IDLE
        self._total_bytes = 0
        self._total_chunks = 0
        self._uploaded_bytes = 0
        self._uploaded_chunks = 0
        self._baseline_bytes = 0
        self._started_at: float | None = None

    @property
    def status(self) -> UploadStatus:
        return self._status

    @property
    def uploaded_bytes(self) -> int:
        return self._uploaded_bytes

    def _set_status(self, status: UploadStatus) -> None:
        if status not in ALLOWED_TRANSITIONS[self._status]:
            raise RuntimeError(
                f"Illegal upload status transition {self._status.value} -> "
                f"{status.value}"
            )
        self._status = status

    def _speed(self) -> float | None:
        if self._started_at is None:
            return None
        elapsed = self._clock() - self._started_at
        if elapsed <= 0:
            return None
        return (self._uploaded_bytes - self._baseline_bytes) / elapsed

    def _publish(self, status: UploadStatus, error: str | None = None) -> None:
        self._set_status(status)
        self._publisher.publish(
            ProgressSnapshot.build(
                status=status,
                uploaded_chunks=self._uploaded_chunks,
                total_chunks=self._total_chunks,
                uploaded_bytes=self._uploaded_bytes,
                total_bytes=self._total_bytes,
                error=error,
                speed_bytes_per_second=self._speed(),
            )
        )

    async def run(
        self,
        source: ByteSource,
        filename: str,
        resumable: bool,
        metadata: dict[str, Any] | None = None,
        upload_id: str | None = None,
    ) -> str | None:
        """Upload the whole byte source.

        Args:
            source: Bytes to upload
            filename: Name reported to the server
            resumable: Whether to ask the server which chunks it already holds
            metadata: Optional JSON metadata forwarded on session init
            upload_id: Existing session to resume instead of creating one

        Returns:
            The final filename reported by the server, or None if the upload
            was cancelled.

        Raises:
            UploaderError: For any unrecovered failure. The session has been
                deleted and a FAILED snapshot published before it propagates.
        """
        chunk_size = self._config.chunk_size
        self._total_bytes = source.size
        self._total_chunks = total_chunks(self._total_bytes, chunk_size)

        logger.info(
            f"Starting upload of {filename}: {self._total_bytes} bytes in "
            f"{self._total_chunks} chunks of {chunk_size} bytes"
        )
        self._publish(UploadStatus.INITIALIZING)

        try:
            if upload_id is not None:
                session = self._session_manager.adopt(
                    upload_id,
                    filename,
                    self._total_chunks,
                    self._total_bytes,
                    chunk_size,
                )
            else:
                session = await self._session_manager.open(
                    filename,
                    self._total_chunks,
                    self._total_bytes,
                    chunk_size,
                    metadata,
                )

            if self._controller.cancelled:
                return await self._finish_cancelled()

            missing = await self._resolve_missing_chunks(session, resumable)
            received = self._total_chunks - len(missing)
            self._uploaded_chunks = received
            self._uploaded_bytes = self._total_bytes - bytes_for_chunks(
                missing, self._total_bytes, chunk_size
            )
            self._baseline_bytes = self._uploaded_bytes
            self._started_at = self._clock()
            self._publish(UploadStatus.UPLOADING)

            finished = await self._dispatch_missing(session, source, missing)
            if not finished:
                return await self._finish_cancelled()

            if not await self._checkpoint():
                return await self._finish_cancelled()

            await self._verify(session)
            if self._controller.cancelled:
                return await self._finish_cancelled()

            final_filename = await self._session_manager.complete(session.id)
            self._session_manager.release()
            self._uploaded_chunks = self._total_chunks
            self._uploaded_bytes = self._total_bytes
            self._publish(UploadStatus.COMPLETED)
            logger.info(f"Upload of {filename} complete as {final_filename}")
            return final_filename

        except asyncio.CancelledError:
            self._controller.cancel()
            await self._finish_cancelled()
            raise

        except Exception as e:
            # The cancel hook deletes the session while requests are in flight
            if self._controller.cancelled:
                logger.debug(f"Ignoring error after cancel: {e}")
                return await self._finish_cancelled()
            await self._fail(e)
            raise

    async def _resolve_missing_chunks(
        self, session: UploadSession, resumable: bool
    ) -> list[int]:
        """Decide which chunk indices still need to be sent.

        A failed or empty status query means nothing is assumed received.
        """
        all_chunks = list(range(self._total_chunks))
        if not resumable:
            return all_chunks

        status = await self._session_manager.query_status(session.id)
        if status is None or status.missing_chunks is None:
            logger.info(
                f"No resume information for {session.id}; uploading all chunks"
            )
            return all_chunks

        missing = sorted(
            {i for i in status.missing_chunks if 0 <= i < self._total_chunks}
        )
        if len(missing) != len(set(status.missing_chunks)):
            logger.warning(
                f"Ignoring out-of-range missing chunk indices reported for {session.id}"
            )
        if missing != all_chunks:
            logger.info(
                f"Resuming {session.id}: {len(missing)}/{self._total_chunks} "
                "chunks left to upload"
            )
        return missing

    async def _checkpoint(self) -> bool:
        """Honour pause and cancel at a batch boundary.

        Returns:
            True if dispatch may continue, False if the upload was cancelled.
        """
        if self._controller.cancelled:
            return False
        if not self._controller.paused:
            return True

        if self._status != UploadStatus.PAUSED:
            self._publish(UploadStatus.PAUSED)
        logger.info("Upload paused")

        if not await self._controller.wait_until_runnable():
            return False

        logger.info("Upload resumed")
        self._publish(UploadStatus.UPLOADING)
        return True

    async def _dispatch_missing(
        self, session: UploadSession, source: ByteSource, missing: list[int]
    ) -> bool:
        """Send the missing chunks in batches of at most ``parallel_uploads``.

        Returns:
            True once every batch succeeded, False if cancelled.

        Raises:
            ChunkUploadFailed: As soon as a batch contains a chunk that
                exhausted its retries.
        """
        batch_size = self._config.parallel_uploads

        for cursor in range(0, len(missing), batch_size):
            if not await self._checkpoint():
                return False

            batch = missing[cursor : cursor + batch_size]
            results = await self._run_batch(session, source, batch)

            # The batch ran to completion but a cancel arrived meanwhile
            if self._controller.cancelled:
                return False

            failed = [result.index for result in results if not result.success]
            for result in results:
                if result.success:
                    self._uploaded_chunks += 1
                    self._uploaded_bytes += result.size

            if self._controller.paused:
                self._publish(UploadStatus.PAUSED)
            else:
                self._publish(UploadStatus.UPLOADING)
            logger.debug(
                f"Batch done: {self._uploaded_bytes}/{self._total_bytes} bytes"
            )

            if failed:
                raise ChunkUploadFailed(failed)

        return True

    async def _run_batch(
        self, session: UploadSession, source: ByteSource, batch: list[int]
    ) -> list[ChunkResult]:
        transfers = []
        for index in batch:
            start, end = chunk_range(index, self._total_bytes, self._config.chunk_size)
            try:
                data = source.read(start, end)
            except (OSError, ValueError) as e:
                raise SourceReadFailed(f"Could not read chunk {index}: {e}") from e
            transfers.append(
                ChunkTransfer(
                    self._client_session,
                    self._config,
                    session.id,
                    index,
                    data,
                    timeout=self._timeout,
                )
            )
        return list(await asyncio.gather(*(transfer.run() for transfer in transfers)))

    async def _verify(self, session: UploadSession) -> None:
        """Make sure the server holds every chunk before completing.

        Raises:
            TransportFailure: If the server status cannot be read.
            VerifyMismatch: If the server still reports missing chunks.
        """
        status = await self._session_manager.query_status(session.id)
        if status is None:
            raise TransportFailure(
                f"Could not read upload status for {session.id} during verification"
            )
        if status.missing_chunks:
            raise VerifyMismatch(status.missing_chunks)
        received = status.received_chunks
        if status.missing_chunks is None and received < self._total_chunks:
            raise VerifyMismatch(
                [],
                f"Server reports {received}/{self._total_chunks} "
                "chunks received after all chunks were sent",
            )

    async def _finish_cancelled(self) -> None:
        await self._session_manager.discard()
        if not self._status.is_terminal:
            self._publish(UploadStatus.CANCELLED)
        logger.info(
            f"Upload cancelled at {self._uploaded_bytes}/{self._total_bytes} bytes"
        )
        return None

    async def _fail(self, error: Exception) -> None:
        await self._session_manager.discard()
        if not self._status.is_terminal:
            self._publish(UploadStatus.FAILED, error=str(error))
        logger.error(
            f"Upload failed at {self._uploaded_bytes}/{self._total_bytes} bytes: "
            f"{error}"
        )
