"""Chunk arithmetic.

A chunk is derived, never stored: chunk ``i`` covers the half-open byte range
``[i * chunk_size, min((i + 1) * chunk_size, total_size))``. Only the last
chunk may be shorter than ``chunk_size``.
"""

from collections.abc import Iterable


def _check_sizes(total_size: int, chunk_size: int) -> None:
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if total_size < 0:
        raise ValueError(f"total_size must not be negative, got {total_size}")


def total_chunks(total_size: int, chunk_size: int) -> int:
    """Return ``ceil(total_size / chunk_size)``."""
    _check_sizes(total_size, chunk_size)
    return -(-total_size // chunk_size)


def chunk_range(index: int, total_size: int, chunk_size: int) -> tuple[int, int]:
    """Return the ``(start, end)`` byte range of a chunk, end exclusive.

    Raises:
        IndexError: If the index is outside ``[0, total_chunks)``.
    """
    count = total_chunks(total_size, chunk_size)
    if not 0 <= index < count:
        raise IndexError(f"Chunk index {index} out of range for {count} chunks")
    start = index * chunk_size
    return start, min(start + chunk_size, total_size)


def chunk_length(index: int, total_size: int, chunk_size: int) -> int:
    """Return the exact number of bytes in a chunk."""
    start, end = chunk_range(index, total_size, chunk_size)
    return end - start


def bytes_for_chunks(indices: Iterable[int], total_size: int, chunk_size: int) -> int:
    """Sum the exact sizes of the given chunks."""
    return sum(chunk_length(i, total_size, chunk_size) for i in indices)
