"""Shared fixtures: an in-memory upload server behind an aiohttp-like session."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse

import aiohttp
import pytest

from chunked_uploader.config_manager.upload_config import UploadConfig
from chunked_uploader.models import ProgressSnapshot
from chunked_uploader.uploader import ChunkedFileUploader

BASE_URL = "http://fake-upload-server"


class FakeResponse:
    """Minimal stand-in for ``aiohttp.ClientResponse`` used as a context manager."""

    def __init__(
        self,
        status: int,
        json_body: Any = None,
        text: str = "",
    ) -> None:
        self.status = status
        self._json_body = json_body
        self._text = text

    async def __aenter__(self) -> FakeResponse:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        return None

    async def json(self) -> Any:
        if self._json_body is None:
            raise ValueError("No JSON body")
        return self._json_body

    async def text(self) -> str:
        return self._text


class DeferredResponse:
    """Response resolved only after a few event loop turns, like a round trip.

    The server handler runs when the response is entered, so anything the
    client does while the request is in flight is visible to it.
    """

    def __init__(self, handler: Callable[[], FakeResponse], ticks: int = 3) -> None:
        self._handler = handler
        self._ticks = ticks

    async def __aenter__(self) -> FakeResponse:
        for _ in range(self._ticks):
            await asyncio.sleep(0)
        return await self._handler().__aenter__()

    async def __aexit__(self, *exc_info: object) -> None:
        return None


@dataclass
class ServerSession:
    filename: str
    total_chunks: int
    file_size: int
    chunk_size: int
    chunks: dict[int, bytes] = field(default_factory=dict)
    metadata: dict[str, Any] | None = None
    completed: bool = False

    @property
    def missing(self) -> list[int]:
        return [i for i in range(self.total_chunks) if i not in self.chunks]


def form_fields(form: aiohttp.FormData) -> dict[str, Any]:
    """Read back the fields of an ``aiohttp.FormData``."""
    fields: dict[str, Any] = {}
    for type_options, _headers, value in form._fields:
        fields[type_options["name"]] = value
    return fields


class FakeUploadServer:
    """In-memory implementation of the upload server's endpoints.

    Exposes ``post``, ``get`` and ``delete`` with the same call shape as
    ``aiohttp.ClientSession`` so it can be injected into the uploader.
    """

    def __init__(self) -> None:
        self.sessions: dict[str, ServerSession] = {}
        self.session_count = 0
        self.request_log: list[tuple[str, str]] = []
        self.chunk_posts: list[int] = []
        self.chunk_attempts: dict[int, int] = {}
        self.deleted: list[str] = []

        # Scripted behaviour
        self.chunk_outcomes: dict[int, list[int | Exception]] = {}
        self.on_chunk: Callable[[int, int], None] | None = None
        self.drop_chunks: set[int] = set()
        self.init_prereceived: set[int] = set()
        self.init_response: FakeResponse | None = None
        self.status_failures = 0
        self.status_override: FakeResponse | None = None
        self.complete_response: FakeResponse | None = None

    def create_session(
        self,
        total_chunks: int,
        file_size: int,
        chunk_size: int,
        filename: str = "file.bin",
        received: dict[int, bytes] | None = None,
    ) -> str:
        self.session_count += 1
        upload_id = f"upload-{self.session_count}"
        self.sessions[upload_id] = ServerSession(
            filename=filename,
            total_chunks=total_chunks,
            file_size=file_size,
            chunk_size=chunk_size,
            chunks=dict(received or {}),
        )
        return upload_id

    def assembled(self, upload_id: str) -> bytes:
        session = self.sessions[upload_id]
        return b"".join(session.chunks[i] for i in range(session.total_chunks))

    def requests(self, method: str, prefix: str = "") -> list[str]:
        return [
            path
            for logged_method, path in self.request_log
            if logged_method == method and path.startswith(prefix)
        ]

    def post(
        self,
        url: str,
        json: dict[str, Any] | None = None,
        data: aiohttp.FormData | None = None,
        **_: Any,
    ) -> FakeResponse:
        path = urlparse(url).path
        self.request_log.append(("POST", path))
        if path == "/upload/init":
            return self._init(json or {})
        if path == "/upload/chunk":
            return self._chunk(form_fields(data))
        if path == "/upload/complete":
            return self._complete((json or {}).get("uploadId"))
        return FakeResponse(404)

    def get(self, url: str, **_: Any) -> FakeResponse:
        path = urlparse(url).path
        self.request_log.append(("GET", path))
        if not path.startswith("/upload/status/"):
            return FakeResponse(404)
        if self.status_failures > 0:
            self.status_failures -= 1
            return FakeResponse(500, text="status unavailable")
        if self.status_override is not None:
            return self.status_override
        session = self.sessions.get(path.rsplit("/", 1)[-1])
        if session is None:
            return FakeResponse(404)
        return FakeResponse(
            200,
            json_body={
                "receivedChunks": len(session.chunks),
                "totalChunks": session.total_chunks,
                "missingChunks": session.missing,
            },
        )

    def delete(self, url: str, **_: Any) -> FakeResponse:
        path = urlparse(url).path
        self.request_log.append(("DELETE", path))
        upload_id = path.rsplit("/", 1)[-1]
        self.deleted.append(upload_id)
        if self.sessions.pop(upload_id, None) is None:
            return FakeResponse(404)
        return FakeResponse(200, json_body={"deleted": True})

    def _init(self, body: dict[str, Any]) -> FakeResponse:
        if self.init_response is not None:
            return self.init_response
        chunk_size = body["chunkSize"]
        file_size = body["fileSize"]
        upload_id = self.create_session(
            total_chunks=body["totalChunks"],
            file_size=file_size,
            chunk_size=chunk_size,
            filename=body["filename"],
        )
        session = self.sessions[upload_id]
        session.metadata = body.get("metadata")
        for index in self.init_prereceived:
            start = index * chunk_size
            session.chunks[index] = b"\0" * (min(start + chunk_size, file_size) - start)
        return FakeResponse(200, json_body={"uploadId": upload_id})

    def _chunk(self, fields: dict[str, Any]) -> FakeResponse:
        index = int(fields["chunkNumber"])
        attempt = self.chunk_attempts.get(index, 0) + 1
        self.chunk_attempts[index] = attempt
        self.chunk_posts.append(index)

        if self.on_chunk is not None:
            self.on_chunk(index, attempt)

        outcomes = self.chunk_outcomes.get(index)
        if outcomes:
            outcome = outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return FakeResponse(outcome, text="scripted failure")

        session = self.sessions.get(fields["uploadId"])
        if session is None:
            return FakeResponse(404, text="unknown upload")
        if index not in self.drop_chunks:
            session.chunks[index] = bytes(fields["chunk"])
        return FakeResponse(200, json_body={"received": index})

    def _complete(self, upload_id: str | None) -> FakeResponse:
        if self.complete_response is not None:
            return self.complete_response
        session = self.sessions.get(upload_id or "")
        if session is None or session.missing:
            return FakeResponse(400, text="upload incomplete")
        session.completed = True
        return FakeResponse(200, json_body={"filename": f"stored-{session.filename}"})


@pytest.fixture
def fake_server() -> FakeUploadServer:
    return FakeUploadServer()


@pytest.fixture
def make_config() -> Callable[..., UploadConfig]:
    def _make(**overrides: Any) -> UploadConfig:
        values: dict[str, Any] = {
            "server_url": BASE_URL,
            "chunk_size": 10,
            "parallel_uploads": 2,
            "max_retries": 3,
        }
        values.update(overrides)
        return UploadConfig(**values)

    return _make


@pytest.fixture
def make_uploader(
    fake_server: FakeUploadServer, make_config: Callable[..., UploadConfig]
) -> Callable[..., ChunkedFileUploader]:
    def _make(**overrides: Any) -> ChunkedFileUploader:
        return ChunkedFileUploader(make_config(**overrides), client_session=fake_server)

    return _make


@pytest.fixture
def snapshots() -> list[ProgressSnapshot]:
    return []
