"""Diagnostic logging and hex dumps of protocol traffic."""

from __future__ import annotations

import logging

_LOGGER = logging.getLogger("tdslite")

_BYTES_PER_LINE = 16
_BYTES_PER_GROUP = 4


def _printable(byte: int) -> str:
    return chr(byte) if 0x20 <= byte < 0x7F else "."


def _dump_line(offset: int, chunk: bytes) -> str:
    groups = (
        chunk[start:start + _BYTES_PER_GROUP]
        for start in range(0, _BYTES_PER_LINE, _BYTES_PER_GROUP)
    )
    hex_part = "".join(group.hex().ljust(2 * _BYTES_PER_GROUP) + " " for group in groups)
    text = "".join(_printable(byte) for byte in chunk).ljust(_BYTES_PER_LINE)
    return f"\t{offset:04x}: {hex_part} {text}"


def hexdump(data) -> str:
    """Render bytes as offset, hex and printable columns, 16 bytes per line."""
    data = bytes(data)
    return "\n".join(
        _dump_line(offset, data[offset:offset + _BYTES_PER_LINE])
        for offset in range(0, len(data), _BYTES_PER_LINE)
    )


def debug(message: str, *args) -> None:
    """Log a printf-style debug message on the ``tdslite`` logger."""
    _LOGGER.debug(message, *args, stacklevel=2)


def debug_dump(data, message: str, *args) -> None:
    """Log a debug message followed by a hex dump of ``data``."""
    if not _LOGGER.isEnabledFor(logging.DEBUG):
        return
    text = message % args if args else message
    _LOGGER.debug("%s\n%s", text, hexdump(data), stacklevel=2)