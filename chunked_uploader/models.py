"""Models used by the uploader."""

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from chunked_uploader.const import MAX_IN_PROGRESS_PERCENTAGE


class UploadStatus(str, Enum):
    """Lifecycle states for an upload.

    State transitions:
    - IDLE -> INITIALIZING (upload started)
    - INITIALIZING -> UPLOADING (session created)
    - UPLOADING -> PAUSED -> UPLOADING (pause / resume)
    - UPLOADING | PAUSED -> COMPLETED (verify + complete ok)
    - INITIALIZING | UPLOADING | PAUSED -> FAILED
    - INITIALIZING | UPLOADING | PAUSED -> CANCELLED
    COMPLETED, FAILED and CANCELLED are terminal.
    """

    IDLE = "idle"
    INITIALIZING = "initializing"
    UPLOADING = "uploading"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """Whether no further transition may leave this status."""
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {UploadStatus.COMPLETED, UploadStatus.FAILED, UploadStatus.CANCELLED}
)

ALLOWED_TRANSITIONS: dict[UploadStatus, frozenset[UploadStatus]] = {
    UploadStatus.IDLE: frozenset({UploadStatus.INITIALIZING}),
    UploadStatus.INITIALIZING: frozenset({
        UploadStatus.UPLOADING,
        UploadStatus.FAILED,
        UploadStatus.CANCELLED,
    }),
    UploadStatus.UPLOADING: frozenset({
        UploadStatus.UPLOADING,
        UploadStatus.PAUSED,
        UploadStatus.COMPLETED,
        UploadStatus.FAILED,
        UploadStatus.CANCELLED,
    }),
    UploadStatus.PAUSED: frozenset({
        UploadStatus.PAUSED,
        UploadStatus.UPLOADING,
        UploadStatus.COMPLETED,
        UploadStatus.FAILED,
        UploadStatus.CANCELLED,
    }),
    UploadStatus.COMPLETED: frozenset(),
    UploadStatus.FAILED: frozenset(),
    UploadStatus.CANCELLED: frozenset(),
}


@dataclass(frozen=True)
class UploadSession:
    """A server-tracked upload covering one file transfer."""

    id: str
    filename: str
    total_size: int
    chunk_size: int
    total_chunks: int


@dataclass(frozen=True)
class ProgressSnapshot:
    """Immutable view of upload progress at one point in time."""

    uploaded_chunks: int
    total_chunks: int
    uploaded_bytes: int
    total_bytes: int
    percentage: float
    status: UploadStatus
    error: str | None = None
    speed_bytes_per_second: float | None = None

    @classmethod
    def build(
        cls,
        status: UploadStatus,
        uploaded_chunks: int = 0,
        total_chunks: int = 0,
        uploaded_bytes: int = 0,
        total_bytes: int = 0,
        error: str | None = None,
        speed_bytes_per_second: float | None = None,
    ) -> "ProgressSnapshot":
        """Build a snapshot, deriving the percentage from the byte counts.

        The percentage is 0 while the total is unknown and only reaches
        exactly 100.0 for a completed upload.
        """
        uploaded_bytes = min(uploaded_bytes, total_bytes) if total_bytes else 0
        if status == UploadStatus.COMPLETED:
            percentage = 100.0
        elif total_bytes <= 0:
            percentage = 0.0
        else:
            percentage = min(
                uploaded_bytes / total_bytes * 100, MAX_IN_PROGRESS_PERCENTAGE
            )
        return cls(
            uploaded_chunks=uploaded_chunks,
            total_chunks=total_chunks,
            uploaded_bytes=uploaded_bytes,
            total_bytes=total_bytes,
            percentage=percentage,
            status=status,
            error=error,
            speed_bytes_per_second=speed_bytes_per_second,
        )


class ServerUploadStatus(BaseModel):
    """Body of ``GET /upload/status/{uploadId}``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    received_chunks: int = Field(default=0, alias="receivedChunks")
    total_chunks: int = Field(default=0, alias="totalChunks")
    missing_chunks: list[int] | None = Field(default=None, alias="missingChunks")


@dataclass(frozen=True)
class ChunkResult:
    """Outcome of transferring one chunk."""

    index: int
    success: bool
    attempts: int
    size: int
    error: str | None = None
