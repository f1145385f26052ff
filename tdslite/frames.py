"""Client request frames: packet header, PRELOGIN, LOGIN7 and SQL batch."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass, field
from typing import ClassVar, Dict, Tuple

from .buffer import Buffer, ProtocolError, tds_decrypt, tds_encrypt
from .debug import debug, debug_dump

TDS_VERSION_2005 = 0x02000972
TDS_VERSION_2008_A = 0x03000A73
TDS_VERSION_2008_B = 0x03000B73
TDS_VERSION_GEN_7_3 = 0x00000073
TDS_VERSION_GEN_7_2 = 0x00000072
TDS_VERSION_GEN_7_0 = 0x00000070


class PacketType(enum.IntEnum):
    """Type byte of a TDS packet header."""

    UNKNOWN = 0x00
    SQL_BATCH = 0x01
    RPC = 0x03
    TABULAR_RESULT = 0x04
    TRANS_REQUEST = 0x0E
    TDS7_LOGIN = 0x10
    PRE_LOGIN = 0x12


class PacketStatus(enum.IntFlag):
    """Status bits of a TDS packet header."""

    NORMAL = 0x00
    EOM = 0x01
    IGNORE = 0x02
    RESET_CONNECTION = 0x08
    RESET_CONNECTION_SKIPTRAN = 0x10


_HEADER = struct.Struct(">BBHHBB")


def _packet_type(value: int) -> int:
    try:
        return PacketType(value)
    except ValueError:
        return value


@dataclass
class FrameHeader:
    """The eight-byte header in front of every TDS packet."""

    type: int = PacketType.UNKNOWN
    status: int = PacketStatus.EOM
    length: int = 0
    spid: int = 0
    packet_id: int = 0
    window: int = 0

    SIZE: ClassVar[int] = _HEADER.size

    def encode(self) -> bytes:
        return _HEADER.pack(
            self.type, self.status, self.length, self.spid, self.packet_id, self.window
        )

    @classmethod
    def decode(cls, data) -> FrameHeader:
        raw = bytes(data)
        if len(raw) < cls.SIZE:
            raise ProtocolError(
                f"packet header needs {cls.SIZE} bytes, got {len(raw)}"
            )
        type_, status, length, spid, packet_id, window = _HEADER.unpack_from(raw)
        return cls(
            type=_packet_type(type_),
            status=PacketStatus(status),
            length=length,
            spid=spid,
            packet_id=packet_id,
            window=window,
        )


class PreloginToken(enum.IntEnum):
    """Option tokens of a PRELOGIN message."""

    VERSION = 0x00
    ENCRYPTION = 0x01
    INSTOPT = 0x02
    THREAD_ID = 0x03
    MARS = 0x04
    TERMINATOR = 0xFF


_OPTION = struct.Struct(">BHH")
_VERSION = struct.Struct("<IH")
_THREAD_ID = struct.Struct("<I")

_BYTE_OPTIONS = {
    PreloginToken.ENCRYPTION: "encryption",
    PreloginToken.INSTOPT: "instopt",
    PreloginToken.MARS: "mars",
}


@dataclass
class Prelogin:
    """A PRELOGIN message; ``raw_options`` holds option payloads as received."""

    version: int = TDS_VERSION_2008_B
    sub_build: int = 0
    encryption: int = 0
    instopt: int = 0
    thread_id: int = 0x424242
    mars: int = 0
    raw_options: Dict[int, bytes] = field(default_factory=dict)

    def _option_values(self):
        return [
            (PreloginToken.VERSION, _VERSION.pack(self.version, self.sub_build)),
            (PreloginToken.ENCRYPTION, bytes([self.encryption])),
            (PreloginToken.INSTOPT, bytes([self.instopt])),
            (PreloginToken.THREAD_ID, _THREAD_ID.pack(self.thread_id)),
            (PreloginToken.MARS, bytes([self.mars])),
        ]

    def encode(self) -> bytes:
        values = self._option_values()
        base_offset = _OPTION.size * len(values) + 1
        headers = bytearray()
        body = bytearray()
        for token, value in values:
            headers += _OPTION.pack(token, base_offset + len(body), len(value))
            body += value
        headers.append(PreloginToken.TERMINATOR)
        return bytes(headers + body)

    @staticmethod
    def _apply(values: dict, token: int, value: bytes) -> None:
        if token == PreloginToken.VERSION and len(value) >= _VERSION.size:
            values["version"], values["sub_build"] = _VERSION.unpack_from(value)
            debug("version=%08x, sub_build=%d", values["version"], values["sub_build"])
        elif token == PreloginToken.THREAD_ID and len(value) >= _THREAD_ID.size:
            values["thread_id"] = _THREAD_ID.unpack_from(value)[0]
        elif token in _BYTE_OPTIONS and value:
            values[_BYTE_OPTIONS[token]] = value[0]

    @classmethod
    def decode(cls, data) -> Prelogin:
        payload = bytes(data)
        values: dict = {}
        raw: Dict[int, bytes] = {}
        offset = 0
        while offset < len(payload):
            if payload[offset] == PreloginToken.TERMINATOR:
                break
            if offset + _OPTION.size > len(payload):
                raise ProtocolError("truncated PRELOGIN option header")
            token, start, length = _OPTION.unpack_from(payload, offset)
            offset += _OPTION.size
            value = payload[start:start + length]
            if len(value) != length:
                raise ProtocolError(
                    f"PRELOGIN option 0x{token:02x} lies outside the message"
                )
            debug_dump(value, "prelogin option: token=%d, len=%d", token, length)
            raw[token] = value
            cls._apply(values, token, value)
        return cls(**values, raw_options=raw)


_LOGIN7_FIXED = struct.Struct("<I4sIIIIBBBBII18H6s6HI")

_REFS_BEFORE_CLIENT_ID = (
    "client_host",
    "user_name",
    "user_pass",
    "app_name",
    "server_name",
    "unused",
    "interface_name",
    "language",
    "database",
)
_REFS_AFTER_CLIENT_ID = ("sspi", "db_file", "change_password")

_TEXT_FIELDS = (
    "client_host",
    "user_name",
    "user_pass",
    "app_name",
    "server_name",
    "interface_name",
    "language",
    "database",
    "sspi",
    "db_file",
    "change_password",
)

_ENCODE_FILTERS = {"user_pass": tds_encrypt}
_DECODE_FILTERS = {"user_pass": tds_decrypt}

_FLAG2_LANGUAGE = 0x01
_FLAG2_ODBC = 0x02


def _pairs(words):
    return list(zip(words[0::2], words[1::2]))


@dataclass
class Login7:
    """A LOGIN7 record: a fixed part followed by the UCS-2 strings it points at."""

    client_host: str = ""
    user_name: str = ""
    user_pass: str = ""
    app_name: str = ""
    server_name: str = ""
    interface_name: str = ""
    language: str = ""
    database: str = ""
    sspi: str = ""
    db_file: str = ""
    change_password: str = ""
    tds_version: int = TDS_VERSION_2008_B
    packet_size: int = 65536
    client_prog_ver: int = 0
    client_pid: int = 1
    connection_id: int = 0
    flags1: int = 0
    flags2: int = _FLAG2_LANGUAGE | _FLAG2_ODBC
    type_flags: int = 0
    flags3: int = 0
    client_time_zone: int = 0
    client_lcid: int = 0
    client_id: bytes = bytes(6)
    unused: Tuple[int, int] = (0, 0)
    sspi_long: int = 0

    FIXED_SIZE: ClassVar[int] = _LOGIN7_FIXED.size

    def encode(self) -> bytes:
        ref_data = Buffer()
        refs = {"unused": tuple(self.unused)}
        for name in _TEXT_FIELDS:
            value = getattr(self, name)
            start = len(ref_data)
            ref_data.put_utf16(value, _ENCODE_FILTERS.get(name))
            refs[name] = (self.FIXED_SIZE + start, (len(ref_data) - start) // 2)
            debug("encode %s (%d): %s", name, len(value), value)

        length = self.FIXED_SIZE + len(ref_data)
        if length > 0xFFFF:
            raise ValueError(f"LOGIN7 record too large: {length} bytes")

        head_words = [word for name in _REFS_BEFORE_CLIENT_ID for word in refs[name]]
        tail_words = [word for name in _REFS_AFTER_CLIENT_ID for word in refs[name]]
        fixed = _LOGIN7_FIXED.pack(
            length,
            struct.pack(">I", self.tds_version),
            self.packet_size,
            self.client_prog_ver,
            self.client_pid,
            self.connection_id,
            self.flags1,
            self.flags2,
            self.type_flags,
            self.flags3,
            self.client_time_zone,
            self.client_lcid,
            *head_words,
            bytes(self.client_id),
            *tail_words,
            self.sspi_long,
        )
        return fixed + bytes(ref_data)

    @classmethod
    def decode(cls, data) -> Login7:
        payload = Buffer(bytes(data))
        if len(payload) < cls.FIXED_SIZE:
            raise ProtocolError(
                f"LOGIN7 record needs {cls.FIXED_SIZE} bytes, got {len(payload)}"
            )
        (
            length,
            version_raw,
            packet_size,
            client_prog_ver,
            client_pid,
            connection_id,
            flags1,
            flags2,
            type_flags,
            flags3,
            client_time_zone,
            client_lcid,
            *rest,
        ) = _LOGIN7_FIXED.unpack(payload.peek(0, cls.FIXED_SIZE))
        debug("byte order: %d", flags1 & 0x01)
        debug("length: %d", length)

        head_words, client_id = rest[:18], rest[18]
        tail_words, sspi_long = rest[19:25], rest[25]
        refs = dict(
            zip(
                _REFS_BEFORE_CLIENT_ID + _REFS_AFTER_CLIENT_ID,
                _pairs(head_words) + _pairs(tail_words),
            )
        )

        texts = {}
        for name in _TEXT_FIELDS:
            offset, count = refs[name]
            texts[name] = payload.copy_utf16(offset, count, _DECODE_FILTERS.get(name))
            debug("%s (off=%04x, len=%04x): %s", name, offset, count, texts[name])

        return cls(
            **texts,
            tds_version=struct.unpack(">I", version_raw)[0],
            packet_size=packet_size,
            client_prog_ver=client_prog_ver,
            client_pid=client_pid,
            connection_id=connection_id,
            flags1=flags1,
            flags2=flags2,
            type_flags=type_flags,
            flags3=flags3,
            client_time_zone=client_time_zone,
            client_lcid=client_lcid,
            client_id=client_id,
            unused=refs["unused"],
            sspi_long=sspi_long,
        )


_QUERY_HEADER = struct.Struct("<IH")
_TRANSACTION_DATA = struct.Struct("<QI")


@dataclass
class TransactionDescriptorHeader:
    """ALL_HEADERS entry carrying the transaction descriptor.

    In auto-commit mode the descriptor is 0 and the outstanding request count 1.
    """

    outstanding_request_count: int = 1
    transaction_descriptor: int = 0

    HEADER_TYPE: ClassVar[int] = 0x0002

    def encode(self) -> bytes:
        data = _TRANSACTION_DATA.pack(
            self.transaction_descriptor, self.outstanding_request_count
        )
        return _QUERY_HEADER.pack(len(data) + _QUERY_HEADER.size, self.HEADER_TYPE) + data


def encode_query_headers(headers) -> bytes:
    """Encode an ALL_HEADERS block: total length, then each header in turn."""
    body = b"".join(header.encode() for header in headers)
    return struct.pack("<I", len(body) + 4) + body


@dataclass
class SqlBatch:
    """An SQL batch request: ALL_HEADERS followed by the query text in UCS-2."""

    query: str = ""
    auto_commit: bool = True

    def encode(self) -> bytes:
        if not self.auto_commit:
            raise ValueError("only auto-commit mode is supported")
        headers = encode_query_headers([TransactionDescriptorHeader(1, 0)])
        return headers + self.query.encode("utf-16-le")