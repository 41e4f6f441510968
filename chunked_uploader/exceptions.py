"""Exception classes for the upload workflow."""


class UploaderError(Exception):
    """Base error for the upload workflow."""


class UploadInProgressError(UploaderError):
    """Raised when an upload is started while another one is still active."""


class TransportFailure(UploaderError):
    """Raised when a low-level network call fails."""


class InitFailed(UploaderError):
    """Raised when the server does not hand out an upload session id."""


class ChunkUploadFailed(UploaderError):
    """Raised when one or more chunks exhausted their retries."""

    def __init__(self, indices: list[int]):
        """Initialize ChunkUploadFailed with the indices of the failed chunks.

        Args:
            indices: Chunk indices that could not be uploaded.
        """
        self.indices = sorted(indices)
        super().__init__(f"Failed to upload chunks {self.indices}")


class VerifyMismatch(UploaderError):
    """Raised when the server still reports missing chunks after dispatch."""

    def __init__(self, missing_chunks: list[int], message: str | None = None):
        """Initialize VerifyMismatch.

        Args:
            missing_chunks: Chunk indices the server reports as missing.
            message: Optional override for the error message.
        """
        self.missing_chunks = sorted(missing_chunks)
        super().__init__(
            message
            or f"Server still reports missing chunks {self.missing_chunks} "
            "after all chunks were sent"
        )


class CompleteFailed(UploaderError):
    """Raised when the server refuses to finalize the upload."""


class SourceReadFailed(UploaderError):
    """Raised when the bytes of a chunk cannot be read from the source."""
