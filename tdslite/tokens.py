"""Decoding of the token stream in a tabular-result message."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass, field
from typing import ClassVar, List

from .buffer import Buffer, ProtocolError
from .debug import debug, debug_dump


class TokenType(enum.IntEnum):
    """Token types understood by the response decoder."""

    COLMETADATA = 0x81
    ERROR = 0xAA
    LOGINACK = 0xAD
    ROW = 0xD1
    NBCROW = 0xD2
    ENVCHANGE = 0xE3
    DONE = 0xFD


class TokenClass(enum.IntEnum):
    """How the length of a token is given on the wire."""

    VAR_COUNT = 0x00
    ZERO_LEN = 0x01
    VAR_LEN = 0x02
    FIXED_LEN = 0x03


def token_class(token_type: int) -> TokenClass:
    """Return the length class encoded in bits 4 and 5 of a token type."""
    return TokenClass((token_type & 0x30) >> 4)


class DataType(enum.IntEnum):
    """Column data types."""

    NULL = 0x1F
    INT1 = 0x30
    BIT = 0x32
    INT2 = 0x34
    INT4 = 0x38
    DATETIM4 = 0x3A
    FLT4 = 0x3B
    MONEY = 0x3C
    DATETIME = 0x3D
    FLT8 = 0x3E
    MONEY4 = 0x7A
    INT8 = 0x7F
    INTN = 0x26
    BIGVARCHAR = 0xA7
    NVARCHAR = 0xE7
    BIGBINARY = 0xAD


_ERROR_FIXED = struct.Struct("<IBB")
_LOGINACK_FIXED1 = struct.Struct("<BI")
_LOGINACK_FIXED2 = struct.Struct("<BBBB")
_DONE_FIXED = struct.Struct("<HHQ")
_COLUMN_FIXED = struct.Struct("<IH")
_COLLATION_SIZE = 5

_FIXED_LENGTHS = {
    DataType.BIT: 1,
    DataType.INT1: 1,
    DataType.INT2: 2,
    DataType.INT4: 4,
    DataType.INT8: 8,
}


def _as_enum(enum_type, value: int):
    try:
        return enum_type(value)
    except ValueError:
        return value


@dataclass
class ErrorToken:
    """An ERROR token sent by the server."""

    error_number: int = 0
    error_state: int = 0
    error_class: int = 0
    error_text: str = ""
    server_name: str = ""
    proc_name: str = ""
    line: int = 0

    def encode(self) -> bytes:
        buf = Buffer()
        buf.put(_ERROR_FIXED.pack(self.error_number, self.error_state, self.error_class))
        buf.put_us_varchar(self.error_text)
        buf.put_b_varchar(self.server_name)
        buf.put_b_varchar(self.proc_name)
        buf.put_u32(self.line)
        return bytes(buf)

    @classmethod
    def decode(cls, buf: Buffer) -> ErrorToken:
        number, state, klass = _ERROR_FIXED.unpack(buf.fetch(_ERROR_FIXED.size))
        token = cls(
            error_number=number,
            error_state=state,
            error_class=klass,
            error_text=buf.fetch_us_varchar(),
            server_name=buf.fetch_b_varchar(),
            proc_name=buf.fetch_b_varchar(),
            line=buf.fetch_u32(),
        )
        debug("bytes left: %d", len(buf))
        return token


@dataclass
class LoginAckToken:
    """A LOGINACK token: the server accepted the login."""

    interface: int = 0
    tds_version: int = 0
    prog_name: str = ""
    ver_major: int = 0
    ver_minor: int = 0
    build_num_hi: int = 0
    build_num_lo: int = 0

    @classmethod
    def decode(cls, buf: Buffer) -> LoginAckToken:
        interface, tds_version = _LOGINACK_FIXED1.unpack(buf.fetch(_LOGINACK_FIXED1.size))
        prog_name = buf.fetch_b_varchar()
        major, minor, hi, lo = _LOGINACK_FIXED2.unpack(buf.fetch(_LOGINACK_FIXED2.size))
        debug("prog_name: %s (%d.%d %d.%d)", prog_name, major, minor, hi, lo)
        debug("interface: %d, version %08x", interface, tds_version)
        return cls(interface, tds_version, prog_name, major, minor, hi, lo)


@dataclass
class EnvChangeToken:
    """An ENVCHANGE token; only the packet-size change carries values here."""

    type: int = 0
    old: str = ""
    new: str = ""

    PACKET_SIZE: ClassVar[int] = 4

    @classmethod
    def decode(cls, buf: Buffer, length: int) -> EnvChangeToken:
        change_type = buf.fetch_u8()
        if change_type == cls.PACKET_SIZE:
            old = buf.fetch_b_varchar()
            new = buf.fetch_b_varchar()
            debug("envchange (pkt size): %s (old: %s)", new, old)
            return cls(change_type, old, new)
        debug("envchange type: %d (ignore)", change_type)
        buf.drain(length - 1)
        return cls(change_type)


@dataclass
class DoneToken:
    """A DONE token closing a statement's results."""

    status: int = 0
    curcmd: int = 0
    rowcount: int = 0

    DONE_FINAL: ClassVar[int] = 0x0000
    DONE_MORE: ClassVar[int] = 0x0001
    DONE_ERROR: ClassVar[int] = 0x0002
    DONE_INXACT: ClassVar[int] = 0x0004
    DONE_COUNT: ClassVar[int] = 0x0010
    DONE_ATTN: ClassVar[int] = 0x0020
    DONE_SRVERROR: ClassVar[int] = 0x0100

    @classmethod
    def decode(cls, buf: Buffer) -> DoneToken:
        status, curcmd, rowcount = _DONE_FIXED.unpack(buf.fetch(_DONE_FIXED.size))
        debug("done.status=%04x, curcmd=%04x, rowcount=%d", status, curcmd, rowcount)
        return cls(status, curcmd, rowcount)


@dataclass
class ColumnInfo:
    """Description of one result column from COLMETADATA."""

    user_type: int = 0
    flags: int = 0
    type: int = DataType.NULL
    length: int = 0
    collation: bytes = b""
    col_name: str = ""

    @classmethod
    def decode(cls, buf: Buffer) -> ColumnInfo:
        user_type, flags = _COLUMN_FIXED.unpack(buf.fetch(_COLUMN_FIXED.size))
        type_ = _as_enum(DataType, buf.fetch_u8())
        debug("user_type=%08x, flags=%04x, type=%02x", user_type, flags, type_)
        collation = b""
        if type_ == DataType.INTN:
            length = buf.fetch_u8()
        elif type_ in _FIXED_LENGTHS:
            length = _FIXED_LENGTHS[type_]
        elif type_ in (DataType.BIGVARCHAR, DataType.NVARCHAR):
            length = buf.fetch_u16()
            collation = buf.fetch(_COLLATION_SIZE)
        elif type_ == DataType.BIGBINARY:
            length = buf.fetch_u16()
        else:
            unknown = buf.fetch(len(buf))
            debug_dump(unknown, "error: unknown column: 0x%02x", type_)
            raise ProtocolError(f"unknown column type 0x{type_:02x}")
        col_name = buf.fetch_b_varchar()
        debug("col_name: [%s]", col_name)
        return cls(user_type, flags, type_, length, collation, col_name)


def decode_colmetadata(buf: Buffer) -> List[ColumnInfo]:
    """Decode the column descriptions of a COLMETADATA token."""
    count = buf.fetch_u16()
    debug("columns: %u", count)
    if count < 1 or count == 0xFFFF:
        return []
    return [ColumnInfo.decode(buf) for _ in range(count)]


@dataclass
class ColumnValue:
    """One column of a row: an integer ``value`` or the ``raw`` bytes of text."""

    is_null: bool = False
    value: int = 0
    raw: bytes = b""

    @classmethod
    def decode(cls, info: ColumnInfo, buf: Buffer) -> ColumnValue:
        if info.type == DataType.INTN:
            size = buf.fetch_u8()
            if size == 0:
                return cls(is_null=True)
            if info.length in (1, 2, 4, 8):
                return cls(value=buf.fetch_int(info.length))
            return cls()
        if info.type == DataType.BIGVARCHAR:
            size = buf.fetch_u16()
            if size == 0:
                return cls(is_null=True)
            return cls(raw=buf.fetch(size))
        raise ProtocolError(f"unsupported column data type 0x{info.type:02x}")


@dataclass
class Row:
    """A ROW or NBCROW token; both may appear in the same result set."""

    type: int = TokenType.ROW
    data: List[ColumnValue] = field(default_factory=list)

    @property
    def is_nbc(self) -> bool:
        return self.type == TokenType.NBCROW

    @classmethod
    def decode(cls, token_type: int, columns, buf: Buffer) -> Row:
        row = cls(type=token_type)
        bitmap = buf.fetch((len(columns) + 7) >> 3) if row.is_nbc else b""
        for index, info in enumerate(columns):
            if row.is_nbc and bitmap[index >> 3] & (1 << (index & 0x07)):
                row.data.append(ColumnValue(is_null=True))
            else:
                row.data.append(ColumnValue.decode(info, buf))
        return row


@dataclass
class Response:
    """Accumulated contents of a tabular-result message."""

    errors: List[ErrorToken] = field(default_factory=list)
    auth_success: bool = False
    columns: List[ColumnInfo] = field(default_factory=list)
    rows: List[Row] = field(default_factory=list)

    def decode(self, buf) -> Response:
        """Consume every token in ``buf``; raise ProtocolError on malformed data."""
        if not isinstance(buf, Buffer):
            buf = Buffer(buf)
        while buf:
            type_ = buf.fetch_u8()
            debug("processing token: 0x%02x", type_)
            length = 0
            if token_class(type_) == TokenClass.VAR_LEN:
                length = buf.fetch_u16()

            if type_ == TokenType.ERROR:
                self.errors.append(ErrorToken.decode(buf))
            elif type_ == TokenType.LOGINACK:
                LoginAckToken.decode(buf)
                self.auth_success = True
            elif type_ == TokenType.ENVCHANGE:
                EnvChangeToken.decode(buf, length)
            elif type_ == TokenType.DONE:
                DoneToken.decode(buf)
            elif type_ == TokenType.COLMETADATA:
                self.columns = []
                self.rows = []
                self.columns = decode_colmetadata(buf)
            elif type_ in (TokenType.ROW, TokenType.NBCROW):
                self.rows.append(Row.decode(TokenType(type_), self.columns, buf))
            else:
                unknown = buf.fetch(len(buf))
                debug_dump(
                    unknown, "error: unknown token: 0x%02x (len %d)", type_, len(unknown)
                )
        return self