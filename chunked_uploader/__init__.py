"""Chunked, resumable file uploads over HTTP."""

from chunked_uploader.config_manager.upload_config import UploadConfig
from chunked_uploader.exceptions import (
    ChunkUploadFailed,
    CompleteFailed,
    InitFailed,
    SourceReadFailed,
    TransportFailure,
    UploaderError,
    UploadInProgressError,
    VerifyMismatch,
)
from chunked_uploader.models import ProgressSnapshot, UploadStatus
from chunked_uploader.uploader import ChunkedFileUploader

__version__ = "0.3.0"

__all__ = [
    "ChunkedFileUploader",
    "UploadConfig",
    "ProgressSnapshot",
    "UploadStatus",
    "UploaderError",
    "UploadInProgressError",
    "InitFailed",
    "ChunkUploadFailed",
    "VerifyMismatch",
    "CompleteFailed",
    "TransportFailure",
    "SourceReadFailed",
]
