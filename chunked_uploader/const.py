"""Constants for the chunked uploader."""

import os

BYTES_PER_KIB = 1024
BYTES_PER_MIB = 1024**2

SERVER_URL = os.getenv("CHUNKUP_SERVER_URL", "http://localhost:3000")

DEFAULT_CHUNK_SIZE = BYTES_PER_MIB  # (1mb)
DEFAULT_PARALLEL_UPLOADS = 3
DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_BASE_SECONDS = 1.0
DEFAULT_MAX_BACKOFF_SECONDS = 300.0
DEFAULT_CONNECT_TIMEOUT_SECONDS = 30.0
DEFAULT_RECEIVE_TIMEOUT_SECONDS = 30.0

# Chunk responses worth another attempt; any other non-200 fails the chunk.
RETRYABLE_STATUS_CODES = {408, 429}
SERVER_ERROR_FLOOR = 500
CHUNK_SUCCESS_CODE = 200

# Percentage reported by non-terminal snapshots never reaches 100.0
MAX_IN_PROGRESS_PERCENTAGE = 99.99

INIT_ENDPOINT = "/upload/init"
CHUNK_ENDPOINT = "/upload/chunk"
STATUS_ENDPOINT = "/upload/status/{upload_id}"
COMPLETE_ENDPOINT = "/upload/complete"
DELETE_ENDPOINT = "/upload/{upload_id}"

CHUNK_FIELD_NAME = "chunk"
CHUNK_FILENAME = "chunk"
CHUNK_CONTENT_TYPE = "application/octet-stream"
