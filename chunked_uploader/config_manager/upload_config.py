"""Pydantic model for uploader configuration."""

from pydantic import BaseModel, ConfigDict, Field

from chunked_uploader.const import (
    DEFAULT_BACKOFF_BASE_SECONDS,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_CONNECT_TIMEOUT_SECONDS,
    DEFAULT_MAX_BACKOFF_SECONDS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_PARALLEL_UPLOADS,
    DEFAULT_RECEIVE_TIMEOUT_SECONDS,
    SERVER_URL,
)


class UploadConfig(BaseModel):
    """Configuration options for an uploader instance.

    Attributes:
        server_url: base URL of the upload server.
        chunk_size: bytes per chunk.
        parallel_uploads: number of chunk transfers dispatched per batch.
        resumable: whether to reconcile against server-reported missing chunks
            before dispatching.
        max_retries: total attempts per chunk, including the first one.
        backoff_base_seconds: delay before the retry following attempt 1;
            attempt ``n`` waits ``backoff_base_seconds * 2 ** (n - 1)``.
        max_backoff_seconds: upper bound on a single backoff delay.
        connect_timeout: seconds allowed to establish a connection.
        receive_timeout: seconds allowed between reads of a response.
    """

    model_config = ConfigDict(frozen=True)

    server_url: str = SERVER_URL
    chunk_size: int = Field(default=DEFAULT_CHUNK_SIZE, gt=0)
    parallel_uploads: int = Field(default=DEFAULT_PARALLEL_UPLOADS, gt=0)
    resumable: bool = True
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=1)
    backoff_base_seconds: float = Field(default=DEFAULT_BACKOFF_BASE_SECONDS, ge=0)
    max_backoff_seconds: float = Field(default=DEFAULT_MAX_BACKOFF_SECONDS, ge=0)
    connect_timeout: float = Field(default=DEFAULT_CONNECT_TIMEOUT_SECONDS, gt=0)
    receive_timeout: float = Field(default=DEFAULT_RECEIVE_TIMEOUT_SECONDS, gt=0)

    def backoff_delay(self, attempt: int) -> float:
        """Return the delay to wait after failed attempt number ``attempt``.

        Args:
            attempt: 1-based number of the attempt that just failed.
        """
        delay = self.backoff_base_seconds * 2 ** (attempt - 1)
        return min(delay, self.max_backoff_seconds)
