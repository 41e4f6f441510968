"""Public upload engine.

``ChunkedFileUploader`` is what a UI or CLI talks to: it starts uploads from
bytes, file handles or paths, exposes pause / resume / cancel, and publishes
progress snapshots to any number of observers.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, BinaryIO

import aiohttp

from chunked_uploader.byte_source import (
    ByteSource,
    FileHandleByteSource,
    MemoryByteSource,
)
from chunked_uploader.config_manager.upload_config import UploadConfig
from chunked_uploader.exceptions import UploadInProgressError
from chunked_uploader.models import ServerUploadStatus, UploadStatus
from chunked_uploader.progress_publisher import ProgressPublisher
from chunked_uploader.upload_management.controller import PauseCancelController
from chunked_uploader.upload_management.scheduler import ChunkScheduler
from chunked_uploader.upload_management.session_manager import UploadSessionManager

logger = logging.getLogger(__name__)


class ChunkedFileUploader:
    """Upload large files in chunks with pause, resume and cancel support.

    One instance drives at most one upload at a time. Starting a second
    upload before the first one has completed, failed or been cancelled
    raises ``UploadInProgressError``.
    """

    def __init__(
        self,
        config: UploadConfig | None = None,
        client_session: aiohttp.ClientSession | None = None,
    ) -> None:
        """Initialize the uploader.

        Args:
            config: Uploader configuration, ``UploadConfig()`` if omitted.
            client_session: Optional aiohttp ClientSession to reuse. When not
                given one is created on first use and closed by ``dispose``.
        """
        self._config = config or UploadConfig()
        self._timeout = aiohttp.ClientTimeout(
            sock_connect=self._config.connect_timeout,
            sock_read=self._config.receive_timeout,
        )
        self._client_session = client_session
        self._owns_client_session = client_session is None
        self._publisher = ProgressPublisher()

        self._active = False
        self._idle = asyncio.Event()
        self._idle.set()
        self._disposed = False
        self._controller: PauseCancelController | None = None
        self._session_manager: UploadSessionManager | None = None
        self._scheduler: ChunkScheduler | None = None
        self._pending_deletes: set[asyncio.Task] = set()

    @property
    def config(self) -> UploadConfig:
        return self._config

    @property
    def progress(self) -> ProgressPublisher:
        """Channel of progress snapshots; see ``ProgressPublisher``."""
        return self._publisher

    @property
    def status(self) -> UploadStatus:
        """Status of the current or most recent upload."""
        if self._scheduler is None:
            return UploadStatus.IDLE
        return self._scheduler.status

    @property
    def upload_id(self) -> str | None:
        """Server session id while an upload owns one."""
        if self._session_manager is None:
            return None
        return self._session_manager.upload_id

    @property
    def is_uploading(self) -> bool:
        return self._active

    def _get_client_session(self) -> aiohttp.ClientSession:
        if self._client_session is None:
            self._client_session = aiohttp.ClientSession(timeout=self._timeout)
        return self._client_session

    def _new_session_manager(self) -> UploadSessionManager:
        return UploadSessionManager(
            self._config.server_url, self._get_client_session(), timeout=self._timeout
        )

    async def upload_from_bytes(
        self,
        data: bytes | bytearray | memoryview,
        filename: str,
        *,
        metadata: dict[str, Any] | None = None,
        resumable: bool | None = None,
        upload_id: str | None = None,
    ) -> str | None:
        """Upload an in-memory buffer.

        Args:
            data: Bytes to upload
            filename: Name reported to the server
            metadata: Optional JSON metadata forwarded on session init
            resumable: Override of ``config.resumable`` for this upload
            upload_id: Existing server session to resume

        Returns:
            Final filename reported by the server, or None if cancelled.
        """
        return await self._upload(
            MemoryByteSource(data), filename, metadata, resumable, upload_id
        )

    async def upload_from_handle(
        self,
        handle: BinaryIO,
        filename: str | None = None,
        *,
        metadata: dict[str, Any] | None = None,
        resumable: bool | None = None,
        upload_id: str | None = None,
    ) -> str | None:
        """Upload from a seekable binary file object.

        The filename defaults to the base name of ``handle.name``.
        """
        if filename is None:
            filename = os.path.basename(str(getattr(handle, "name", "")))
        if not filename:
            raise ValueError("A filename is required for handles without a name")
        return await self._upload(
            FileHandleByteSource(handle), filename, metadata, resumable, upload_id
        )

    async def upload_file(
        self,
        path: str | Path,
        filename: str | None = None,
        *,
        metadata: dict[str, Any] | None = None,
        resumable: bool | None = None,
        upload_id: str | None = None,
    ) -> str | None:
        """Open a local file and upload it.

        Raises:
            FileNotFoundError: If the path does not exist.
        """
        file_path = Path(path)
        if not file_path.is_file():
            raise FileNotFoundError(f"File not found: {file_path}")
        with open(file_path, "rb") as handle:
            return await self.upload_from_handle(
                handle,
                filename or file_path.name,
                metadata=metadata,
                resumable=resumable,
                upload_id=upload_id,
            )

    async def _upload(
        self,
        source: ByteSource,
        filename: str,
        metadata: dict[str, Any] | None,
        resumable: bool | None,
        upload_id: str | None,
    ) -> str | None:
        if self._disposed:
            raise RuntimeError("Uploader has been disposed")
        if self._active:
            raise UploadInProgressError(
                "An upload is already running on this uploader; wait for it to "
                "finish or cancel it first"
            )

        self._active = True
        self._idle.clear()
        try:
            self._controller = PauseCancelController()
            self._session_manager = self._new_session_manager()
            self._controller.add_cancel_hook(self._schedule_session_delete)
            self._scheduler = ChunkScheduler(
                self._config,
                self._get_client_session(),
                self._session_manager,
                self._controller,
                self._publisher,
                timeout=self._timeout,
            )
            try:
                return await self._scheduler.run(
                    source,
                    filename,
                    resumable=(
                        self._config.resumable if resumable is None else resumable
                    ),
                    metadata=metadata,
                    upload_id=upload_id,
                )
            finally:
                await self._wait_for_pending_deletes()
        finally:
            self._active = False
            self._idle.set()

    def _schedule_session_delete(self) -> None:
        """Delete the current session in the background after a cancel."""
        if self._session_manager is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # The scheduler deletes the session at its next batch boundary
            return
        task = loop.create_task(self._session_manager.discard())
        self._pending_deletes.add(task)
        task.add_done_callback(self._pending_deletes.discard)

    async def _wait_for_pending_deletes(self) -> None:
        if self._pending_deletes:
            await asyncio.gather(*self._pending_deletes, return_exceptions=True)

    def pause_upload(self) -> None:
        """Stop dispatching new batches once the in-flight batch finishes."""
        if not self._active or self._controller is None:
            logger.debug("pause_upload called with no active upload")
            return
        self._controller.pause()

    def resume_upload(self) -> None:
        """Continue dispatching after ``pause_upload``."""
        if not self._active or self._controller is None:
            logger.debug("resume_upload called with no active upload")
            return
        self._controller.resume()

    def cancel_upload(self) -> None:
        """Abort the active upload at the next batch boundary.

        The server session is deleted in the background right away; the
        pending upload call resolves to None.
        """
        if not self._active or self._controller is None:
            logger.debug("cancel_upload called with no active upload")
            return
        self._controller.cancel()

    async def get_upload_status(self, upload_id: str) -> ServerUploadStatus | None:
        """Query the server for the chunks it holds for ``upload_id``."""
        return await self._new_session_manager().query_status(upload_id)

    async def delete_upload(self, upload_id: str) -> None:
        """Best-effort deletion of a server session by id."""
        await self._new_session_manager().delete(upload_id)

    async def dispose(self) -> None:
        """Cancel any active upload and release all resources."""
        if self._disposed:
            return
        self._disposed = True
        if self._active and self._controller is not None:
            self._controller.cancel()
            await self._idle.wait()
        await self._wait_for_pending_deletes()
        self._publisher.close()
        if self._owns_client_session and self._client_session is not None:
            await self._client_session.close()
        self._client_session = None

    async def __aenter__(self) -> "ChunkedFileUploader":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.dispose()
