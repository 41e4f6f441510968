"""Transfer of a single chunk with bounded retry and exponential backoff."""

import asyncio
import logging

import aiohttp

from chunked_uploader.config_manager.upload_config import UploadConfig
from chunked_uploader.const import (
    CHUNK_CONTENT_TYPE,
    CHUNK_ENDPOINT,
    CHUNK_FIELD_NAME,
    CHUNK_FILENAME,
    CHUNK_SUCCESS_CODE,
    RETRYABLE_STATUS_CODES,
    SERVER_ERROR_FLOOR,
)
from chunked_uploader.models import ChunkResult

logger = logging.getLogger(__name__)


class ChunkTransfer:
    """Upload one chunk of an upload session as a multipart request.

    Failures never raise: once every attempt is spent the transfer reports a
    failed ``ChunkResult`` and leaves the decision to the scheduler. The
    server must accept a repeated chunk index idempotently.
    """

    def __init__(
        self,
        client_session: aiohttp.ClientSession,
        config: UploadConfig,
        upload_id: str,
        index: int,
        data: bytes,
        timeout: aiohttp.ClientTimeout | None = None,
    ) -> None:
        """Initialize the chunk transfer.

        Args:
            client_session: aiohttp ClientSession for HTTP requests
            config: Uploader configuration (server URL, retry ceiling, backoff)
            upload_id: Server-side upload session id
            index: Zero-based chunk index
            data: Chunk payload
            timeout: Per-request timeout
        """
        self._client_session = client_session
        self._config = config
        self._upload_id = upload_id
        self._index = index
        self._data = data
        self._timeout = timeout
        self._url = f"{config.server_url.rstrip('/')}{CHUNK_ENDPOINT}"
        self.attempts = 0

    @property
    def index(self) -> int:
        return self._index

    def _build_form(self) -> aiohttp.FormData:
        # FormData can only be serialized once, so every attempt builds its own
        form = aiohttp.FormData()
        form.add_field("uploadId", self._upload_id)
        form.add_field("chunkNumber", str(self._index))
        form.add_field(
            CHUNK_FIELD_NAME,
            self._data,
            filename=CHUNK_FILENAME,
            content_type=CHUNK_CONTENT_TYPE,
        )
        return form

    @staticmethod
    def _is_retryable(status_code: int) -> bool:
        return (
            status_code in RETRYABLE_STATUS_CODES or status_code >= SERVER_ERROR_FLOOR
        )

    def _result(self, success: bool, error: str | None = None) -> ChunkResult:
        return ChunkResult(
            index=self._index,
            success=success,
            attempts=self.attempts,
            size=len(self._data),
            error=error,
        )

    async def run(self) -> ChunkResult:
        """Send the chunk, retrying transient failures up to the ceiling.

        Returns:
            The outcome of the transfer.
        """
        max_retries = self._config.max_retries
        error_msg: str | None = None

        while self.attempts < max_retries:
            self.attempts += 1
            try:
                async with self._client_session.post(
                    self._url, data=self._build_form(), timeout=self._timeout
                ) as response:
                    status_code = response.status

                    if status_code == CHUNK_SUCCESS_CODE:
                        logger.debug(
                            f"Chunk {self._index} accepted "
                            f"(attempt {self.attempts}/{max_retries})"
                        )
                        return self._result(True)

                    error_msg = f"HTTP {status_code}"
                    if not self._is_retryable(status_code):
                        logger.error(
                            f"Chunk {self._index} rejected with HTTP {status_code}"
                        )
                        return self._result(False, error_msg)

                    logger.warning(
                        f"Upload chunk {self._index} failed "
                        f"(attempt {self.attempts}/{max_retries}): {error_msg}"
                    )

            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                error_msg = f"Network error: {str(e) or type(e).__name__}"
                logger.warning(
                    f"Upload chunk {self._index} failed "
                    f"(attempt {self.attempts}/{max_retries}): {error_msg}"
                )

            except Exception as e:
                logger.error(f"Unexpected error uploading chunk {self._index}: {e}")
                return self._result(False, f"Unexpected error: {e}")

            if self.attempts < max_retries:
                await asyncio.sleep(self._config.backoff_delay(self.attempts))

        logger.error(
            f"Upload chunk {self._index} failed after {max_retries} attempts: "
            f"{error_msg}"
        )
        return self._result(False, error_msg)
