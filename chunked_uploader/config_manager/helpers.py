"""Helpers for parsing byte-sized configuration values."""

import re

from chunked_uploader.const import BYTES_PER_KIB

_UNIT_MULTIPLIERS = {
    "": 1,
    "b": 1,
    "k": BYTES_PER_KIB,
    "kb": BYTES_PER_KIB,
    "kib": BYTES_PER_KIB,
    "m": BYTES_PER_KIB**2,
    "mb": BYTES_PER_KIB**2,
    "mib": BYTES_PER_KIB**2,
    "g": BYTES_PER_KIB**3,
    "gb": BYTES_PER_KIB**3,
    "gib": BYTES_PER_KIB**3,
}

_BYTES_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)\s*([a-z]*)$")


def parse_bytes(value: int | str) -> int:
    """Parse a positive byte quantity from an integer or unit-suffixed string.

    Supported string units (case-insensitive, binary multiples):
        b, k, kb, kib, m, mb, mib, g, gb, gib

    Args:
        value: Raw byte value as an ``int`` or a string such as ``"512k"``
            or ``"1.5MiB"``.

    Returns:
        The parsed value in bytes.

    Raises:
        ValueError: If the input cannot be parsed, uses an unknown unit, or is
            not positive.
    """
    if isinstance(value, int):
        parsed = value
    else:
        match = _BYTES_PATTERN.match(str(value).strip().lower())
        if match is None:
            raise ValueError(f"Invalid byte value: {value!r}")
        number, unit = match.groups()
        if unit not in _UNIT_MULTIPLIERS:
            raise ValueError(f"Unknown byte unit in value: {value!r}")
        parsed = int(float(number) * _UNIT_MULTIPLIERS[unit])

    if parsed <= 0:
        raise ValueError(f"Byte value must be positive: {value!r}")
    return parsed
