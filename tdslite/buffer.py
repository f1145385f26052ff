"""Byte buffer with the little-endian and UCS-2 primitives of the TDS wire format."""

from __future__ import annotations

import struct
from typing import Callable, Optional

ByteFilter = Callable[[bytes], bytes]

_UTF16 = "utf-16-le"

_INT_FORMATS = {1: "<b", 2: "<h", 4: "<i", 8: "<q"}


class ProtocolError(Exception):
    """Raised when wire data is truncated or malformed."""


def _swap_nibbles(byte: int) -> int:
    return ((byte & 0xF0) >> 4) | ((byte & 0x0F) << 4)


def tds_encrypt(data: bytes) -> bytes:
    """Obfuscate a login password: swap the nibbles of each byte, then XOR with 0xA5."""
    return bytes(_swap_nibbles(byte) ^ 0xA5 for byte in data)


def tds_decrypt(data: bytes) -> bytes:
    """Reverse :func:`tds_encrypt`."""
    return bytes(_swap_nibbles(byte ^ 0xA5) for byte in data)


class Buffer:
    """A growable byte queue: values are appended at the end and fetched from the front."""

    def __init__(self, data=b"") -> None:
        self._data = bytearray(data)

    def __len__(self) -> int:
        return len(self._data)

    def __bool__(self) -> bool:
        return bool(self._data)

    def __bytes__(self) -> bytes:
        return bytes(self._data)

    def __repr__(self) -> str:
        return f"Buffer({bytes(self._data)!r})"

    # reading

    def peek(self, offset: int, size: int) -> bytes:
        """Return ``size`` bytes starting at ``offset`` without consuming them."""
        if offset < 0 or size < 0 or offset + size > len(self._data):
            raise ProtocolError(
                f"cannot read {size} bytes at offset {offset} of {len(self._data)}"
            )
        return bytes(self._data[offset:offset + size])

    def fetch(self, size: int) -> bytes:
        """Consume and return ``size`` bytes from the front."""
        chunk = self.peek(0, size)
        del self._data[:size]
        return chunk

    def fetch_u8(self) -> int:
        return self.fetch(1)[0]

    def fetch_u16(self) -> int:
        return struct.unpack("<H", self.fetch(2))[0]

    def fetch_u32(self) -> int:
        return struct.unpack("<I", self.fetch(4))[0]

    def fetch_u64(self) -> int:
        return struct.unpack("<Q", self.fetch(8))[0]

    def fetch_int(self, size: int) -> int:
        """Consume a signed little-endian integer of 1, 2, 4 or 8 bytes."""
        try:
            fmt = _INT_FORMATS[size]
        except KeyError:
            raise ValueError(f"unsupported integer size: {size}") from None
        return struct.unpack(fmt, self.fetch(size))[0]

    def drain(self, size: int) -> None:
        """Discard ``size`` bytes from the front."""
        if size < 0 or size > len(self._data):
            raise ProtocolError(f"cannot drain {size} bytes of {len(self._data)}")
        del self._data[:size]

    def clear(self) -> None:
        self._data.clear()

    # writing

    def put(self, data) -> None:
        """Append raw bytes or the contents of another buffer."""
        self._data += bytes(data)

    def put_u8(self, value: int) -> None:
        self._data += struct.pack("<B", value)

    def put_u16(self, value: int) -> None:
        self._data += struct.pack("<H", value)

    def put_u32(self, value: int) -> None:
        self._data += struct.pack("<I", value)

    def put_utf16(self, value: str, byte_filter: Optional[ByteFilter] = None) -> None:
        """Append ``value`` as UCS-2LE, optionally transformed by ``byte_filter``."""
        encoded = value.encode(_UTF16)
        if byte_filter is not None:
            encoded = byte_filter(encoded)
        self.put(encoded)

    # UCS-2 strings

    def copy_utf16(
        self, offset: int, length: int, byte_filter: Optional[ByteFilter] = None
    ) -> str:
        """Decode ``length`` UCS-2LE characters at ``offset`` without consuming them."""
        if not length:
            return ""
        raw = self.peek(offset, length * 2)
        if byte_filter is not None:
            raw = byte_filter(raw)
        try:
            return raw.decode(_UTF16)
        except UnicodeDecodeError as exc:
            raise ProtocolError(f"invalid UCS-2 text: {exc}") from exc

    def _fetch_varchar(self, length: int) -> str:
        text = self.copy_utf16(0, length)
        self.drain(length * 2)
        return text

    def fetch_b_varchar(self) -> str:
        """Consume a string prefixed by a one-byte character count."""
        return self._fetch_varchar(self.fetch_u8())

    def fetch_us_varchar(self) -> str:
        """Consume a string prefixed by a two-byte character count."""
        return self._fetch_varchar(self.fetch_u16())

    def put_b_varchar(self, value: str) -> None:
        """Append a one-byte-counted string; longer than 255 characters becomes empty."""
        encoded = value.encode(_UTF16)
        length = len(encoded) // 2
        if length > 0xFF:
            self.put_u8(0)
            return
        self.put_u8(length)
        self.put(encoded)

    def put_us_varchar(self, value: str) -> None:
        """Append a two-byte-counted string; longer than 65535 characters becomes empty."""
        encoded = value.encode(_UTF16)
        length = len(encoded) // 2
        if length > 0xFFFF:
            self.put_u16(0)
            return
        self.put_u16(length)
        self.put(encoded)