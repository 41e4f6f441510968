"""Remote upload session lifecycle.

Wraps the init, status, complete and delete endpoints of the upload server
and owns the id of the session currently being driven.
"""

import asyncio
import logging
from typing import Any

import aiohttp
from pydantic import ValidationError

from chunked_uploader.const import (
    COMPLETE_ENDPOINT,
    DELETE_ENDPOINT,
    INIT_ENDPOINT,
    STATUS_ENDPOINT,
)
from chunked_uploader.exceptions import CompleteFailed, InitFailed
from chunked_uploader.models import ServerUploadStatus, UploadSession

logger = logging.getLogger(__name__)


class UploadSessionManager:
    """Create, inspect, finalize and delete server-side upload sessions."""

    def __init__(
        self,
        server_url: str,
        client_session: aiohttp.ClientSession,
        timeout: aiohttp.ClientTimeout | None = None,
    ) -> None:
        """Initialize the session manager.

        Args:
            server_url: Base URL of the upload server.
            client_session: aiohttp ClientSession for HTTP requests.
            timeout: Per-request timeout applied to every call.
        """
        self._server_url = server_url.rstrip("/")
        self._client_session = client_session
        self._timeout = timeout
        self._session: UploadSession | None = None

    @property
    def session(self) -> UploadSession | None:
        """The session currently owned, if any."""
        return self._session

    @property
    def upload_id(self) -> str | None:
        return self._session.id if self._session else None

    def _url(self, path: str) -> str:
        return f"{self._server_url}{path}"

    async def init(
        self,
        filename: str,
        total_chunks: int,
        total_size: int,
        chunk_size: int,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Ask the server for a new upload session.

        Returns:
            The opaque upload id handed out by the server.

        Raises:
            InitFailed: If the request fails or the response carries no id.
        """
        body: dict[str, Any] = {
            "filename": filename,
            "totalChunks": total_chunks,
            "fileSize": total_size,
            "chunkSize": chunk_size,
        }
        if metadata:
            body["metadata"] = metadata

        try:
            async with self._client_session.post(
                self._url(INIT_ENDPOINT), json=body, timeout=self._timeout
            ) as response:
                if response.status >= 400:
                    error_text = await response.text()
                    raise InitFailed(
                        f"Upload init rejected with HTTP {response.status}: "
                        f"{error_text}"
                    )
                data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise InitFailed(f"Upload init request failed: {e}") from e

        upload_id = data.get("uploadId") if isinstance(data, dict) else None
        if not upload_id:
            raise InitFailed("Upload init response did not include an uploadId")
        return str(upload_id)

    async def open(
        self,
        filename: str,
        total_chunks: int,
        total_size: int,
        chunk_size: int,
        metadata: dict[str, Any] | None = None,
    ) -> UploadSession:
        """Create a session on the server and take ownership of it."""
        upload_id = await self.init(
            filename, total_chunks, total_size, chunk_size, metadata
        )
        self._session = UploadSession(
            id=upload_id,
            filename=filename,
            total_size=total_size,
            chunk_size=chunk_size,
            total_chunks=total_chunks,
        )
        logger.info(
            f"Created upload session {upload_id} for {filename}: "
            f"{total_size} bytes in {total_chunks} chunks"
        )
        return self._session

    def adopt(
        self,
        upload_id: str,
        filename: str,
        total_chunks: int,
        total_size: int,
        chunk_size: int,
    ) -> UploadSession:
        """Take ownership of a session created by an earlier upload attempt."""
        self._session = UploadSession(
            id=upload_id,
            filename=filename,
            total_size=total_size,
            chunk_size=chunk_size,
            total_chunks=total_chunks,
        )
        logger.info(f"Resuming upload session {upload_id} for {filename}")
        return self._session

    async def query_status(self, upload_id: str) -> ServerUploadStatus | None:
        """Fetch the server's view of which chunks it holds.

        Returns:
            The parsed status, or None if the request failed for any reason.
        """
        try:
            async with self._client_session.get(
                self._url(STATUS_ENDPOINT.format(upload_id=upload_id)),
                timeout=self._timeout,
            ) as response:
                if response.status != 200:
                    logger.warning(
                        f"Status query for {upload_id} returned HTTP {response.status}"
                    )
                    return None
                data = await response.json()
            return ServerUploadStatus.model_validate(data)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Status query for {upload_id} failed: {e}")
            return None
        except (ValidationError, ValueError) as e:
            logger.warning(f"Unreadable status response for {upload_id}: {e}")
            return None

    async def complete(self, upload_id: str) -> str:
        """Ask the server to assemble the uploaded chunks.

        Returns:
            The final filename reported by the server.

        Raises:
            CompleteFailed: Unless the server answers 200 with a filename.
        """
        try:
            async with self._client_session.post(
                self._url(COMPLETE_ENDPOINT),
                json={"uploadId": upload_id},
                timeout=self._timeout,
            ) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise CompleteFailed(
                        f"Upload complete rejected with HTTP {response.status}: "
                        f"{error_text}"
                    )
                data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise CompleteFailed(f"Upload complete request failed: {e}") from e

        filename = data.get("filename") if isinstance(data, dict) else None
        if not filename:
            raise CompleteFailed("Upload complete response did not include a filename")
        return str(filename)

    async def delete(self, upload_id: str) -> None:
        """Best-effort removal of a session on the server; never raises."""
        try:
            async with self._client_session.delete(
                self._url(DELETE_ENDPOINT.format(upload_id=upload_id)),
                timeout=self._timeout,
            ) as response:
                logger.info(
                    f"Deleted upload session {upload_id} (HTTP {response.status})"
                )
        except Exception as e:
            logger.warning(f"Failed to delete upload session {upload_id}: {e}")

    def release(self) -> UploadSession | None:
        """Drop ownership of the current session without contacting the server."""
        session, self._session = self._session, None
        return session

    async def discard(self) -> None:
        """Release the current session and delete it on the server.

        Safe to call more than once; only the first call issues a request.
        """
        session = self.release()
        if session is not None:
            await self.delete(session.id)
