"""Byte sources the scheduler reads chunk payloads from."""

import os
from abc import ABC, abstractmethod
from typing import BinaryIO


class ByteSource(ABC):
    """Random-access, read-only view over the bytes being uploaded."""

    @property
    @abstractmethod
    def size(self) -> int:
        """Total number of bytes available."""

    @abstractmethod
    def read(self, start: int, end: int) -> bytes:
        """Return the bytes of the half-open range ``[start, end)``."""


class MemoryByteSource(ByteSource):
    """Byte source backed by an in-memory buffer."""

    def __init__(self, data: bytes | bytearray | memoryview) -> None:
        self._data = memoryview(data)

    @property
    def size(self) -> int:
        return self._data.nbytes

    def read(self, start: int, end: int) -> bytes:
        return self._data[start:end].tobytes()


class FileHandleByteSource(ByteSource):
    """Byte source backed by a seekable binary file object.

    The handle stays owned by the caller. Every ``read`` seeks before reading,
    so concurrent chunk transfers on one event loop never interleave a seek
    with another transfer's read.
    """

    def __init__(self, handle: BinaryIO) -> None:
        if not handle.seekable():
            raise ValueError("File handle must be seekable")
        self._handle = handle
        current = handle.tell()
        self._size = handle.seek(0, os.SEEK_END)
        handle.seek(current)

    @property
    def size(self) -> int:
        return self._size

    def read(self, start: int, end: int) -> bytes:
        self._handle.seek(start)
        data = self._handle.read(end - start)
        if len(data) != end - start:
            raise OSError(
                f"Short read: expected {end - start} bytes at offset {start}, "
                f"got {len(data)}"
            )
        return data
