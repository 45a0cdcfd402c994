"""Hex parsing and formatting helpers for patch offsets and byte strings."""

from __future__ import annotations

import re
import string

MAX_OFFSET = 2 ** 64 - 1

_SEPARATORS = re.compile(r"[\s,:]+")
_HEX_DIGITS = set(string.hexdigits)


def _strip_prefix(text: str) -> str:
    if text[:2] in ("0x", "0X"):
        return text[2:]
    return text


def parse_offset(text: str) -> int:
    """Parse a hexadecimal file offset such as ``0x1000`` or ``1000``.

    Raises:
        ValueError: if the text is empty, not hexadecimal or exceeds 64 bits.
    """
    clean = _strip_prefix(str(text).strip())
    if not clean or not set(clean) <= _HEX_DIGITS:
        raise ValueError(f"Invalid hex offset: {text!r}")
    value = int(clean, 16)
    if value > MAX_OFFSET:
        raise ValueError(f"Offset out of range: {text!r}")
    return value


def parse_hex_bytes(text: str) -> bytes:
    """Parse ``"00 01"``, ``"0x00,0x01"`` or ``"0001"`` into bytes."""
    tokens = [_strip_prefix(token) for token in _SEPARATORS.split(str(text).strip()) if token]
    digits = "".join(tokens)
    if not set(digits) <= _HEX_DIGITS:
        raise ValueError(f"Invalid hex bytes: {text!r}")
    if len(digits) % 2:
        raise ValueError(f"Odd number of hex digits: {text!r}")
    return bytes.fromhex(digits)


def format_hex_bytes(data: bytes, sep: str = " ") -> str:
    return sep.join(f"{byte:02X}" for byte in data)


def hex_dump(data: bytes, base_offset: int = 0, bytes_per_row: int = 16) -> str:
    """Render ``data`` as a classic hex dump.

    Each row is a 16-digit address, the hex bytes (padded for short rows) and
    the printable ASCII column between pipes.
    """
    if bytes_per_row <= 0:
        raise ValueError("bytes_per_row must be positive")

    rows = []
    for offset in range(0, len(data), bytes_per_row):
        chunk = data[offset:offset + bytes_per_row]
        hex_part = "".join(f"{byte:02X} " for byte in chunk)
        padding = "   " * (bytes_per_row - len(chunk))
        ascii_part = "".join(chr(byte) if 32 <= byte < 127 else "." for byte in chunk)
        rows.append(f"{base_offset + offset:016X}  {hex_part}{padding} |{ascii_part}|\n")
    return "".join(rows)
