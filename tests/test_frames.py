import struct

import pytest

from tdslite.buffer import ProtocolError, tds_encrypt
from tdslite.frames import (
    TDS_VERSION_2005,
    FrameHeader,
    Login7,
    PacketStatus,
    PacketType,
    Prelogin,
    PreloginToken,
    SqlBatch,
    TransactionDescriptorHeader,
    encode_query_headers,
)

LOGIN7_SAMPLE = (
    bytes.fromhex(
        "10010090 00000100"
        "88000000 02000972 00100000 00000007 00010000 00000000"
        "E0030000 E0010000 09040000"
        "5E000800 6E000200 72000000 72000700 80000000 80000000"
        "80000400 88000000 88000000"
        "010203040506"
        "88000000 88000000 88000000 00000000"
    )
    + "testhost".encode("utf-16-le")
    + "sa".encode("utf-16-le")
    + "OSQL-32".encode("utf-16-le")
    + "ODBC".encode("utf-16-le")
)


def test_login7_sample_round_trip():
    header = FrameHeader.decode(LOGIN7_SAMPLE[:8])
    request = Login7.decode(LOGIN7_SAMPLE[8:])
    encoded = header.encode() + request.encode()
    assert len(encoded) == len(LOGIN7_SAMPLE)
    assert encoded == LOGIN7_SAMPLE


def test_login7_sample_header_fields():
    header = FrameHeader.decode(LOGIN7_SAMPLE)
    assert header.type == PacketType.TDS7_LOGIN
    assert header.status == PacketStatus.EOM
    assert header.length == 0x90
    assert header.spid == 0
    assert header.packet_id == 1
    assert header.window == 0


def test_login7_sample_fields():
    request = Login7.decode(LOGIN7_SAMPLE[8:])
    assert request.client_host == "testhost"
    assert request.user_name == "sa"
    assert request.user_pass == ""
    assert request.app_name == "OSQL-32"
    assert request.server_name == ""
    assert request.interface_name == "ODBC"
    assert request.database == ""
    assert request.tds_version == TDS_VERSION_2005
    assert request.packet_size == 4096
    assert request.client_id == bytes([1, 2, 3, 4, 5, 6])
    assert request.unused == (0x80, 0)


def test_login7_default_fixed_part():
    encoded = Login7().encode()
    assert len(encoded) == Login7.FIXED_SIZE == 94
    assert struct.unpack_from("<I", encoded, 0)[0] == 94
    assert encoded[4:8] == bytes.fromhex("03000b73")
    assert encoded[8:12] == bytes.fromhex("00000100")
    assert encoded[16:20] == bytes.fromhex("01000000")
    assert encoded[25] == 0x03
    assert encoded[36:40] == struct.pack("<HH", 94, 0)
    assert encoded[56:60] == bytes(4)


def test_login7_password_is_obfuscated():
    encoded = Login7(user_name="sa", user_pass="password").encode()
    assert struct.unpack_from("<HH", encoded, 40) == (94, 2)
    assert struct.unpack_from("<HH", encoded, 44) == (98, 8)
    assert encoded[98:114] == tds_encrypt("password".encode("utf-16-le"))
    assert Login7.decode(encoded).user_pass == "password"


def test_login7_round_trip_preserves_strings():
    request = Login7(
        client_host="localhost",
        user_name="sa",
        app_name="tdslite",
        server_name="db.example.com",
        database="master",
    )
    decoded = Login7.decode(request.encode())
    assert decoded == request


def test_login7_decode_truncated():
    with pytest.raises(ProtocolError):
        Login7.decode(bytes(50))


def test_login7_decode_reference_out_of_range():
    encoded = bytearray(Login7(user_name="sa").encode())
    struct.pack_into("<HH", encoded, 40, 94, 40)
    with pytest.raises(ProtocolError):
        Login7.decode(bytes(encoded))


def test_frame_header_default_encoding():
    assert FrameHeader().encode() == bytes.fromhex("0001000000000000")


def test_frame_header_round_trip():
    header = FrameHeader(
        type=PacketType.SQL_BATCH, status=PacketStatus.EOM, length=300, spid=55, packet_id=7
    )
    encoded = header.encode()
    assert encoded == bytes.fromhex("0101012c00370700")
    assert FrameHeader.decode(encoded) == header


def test_frame_header_decode_short():
    with pytest.raises(ProtocolError):
        FrameHeader.decode(b"\x04\x01\x00")


def test_prelogin_default_encoding():
    expected = bytes.fromhex(
        "0000 1a00 06"
        "0100 2000 01"
        "0200 2100 01"
        "0300 2200 04"
        "0400 2600 01"
        "ff"
        "730b0003 0000"
        "00"
        "00"
        "42424200"
        "00"
    )
    assert Prelogin().encode() == expected


def test_prelogin_round_trip():
    request = Prelogin(version=0x01020304, sub_build=9, encryption=2, thread_id=7, mars=1)
    decoded = Prelogin.decode(request.encode())
    assert decoded.version == 0x01020304
    assert decoded.sub_build == 9
    assert decoded.encryption == 2
    assert decoded.instopt == 0
    assert decoded.thread_id == 7
    assert decoded.mars == 1
    assert decoded.raw_options[PreloginToken.THREAD_ID] == bytes.fromhex("07000000")
    assert set(decoded.raw_options) == {0, 1, 2, 3, 4}


def test_prelogin_decode_stops_at_terminator():
    decoded = Prelogin.decode(b"\xff\x01\x02\x03")
    assert decoded.raw_options == {}
    assert decoded.thread_id == 0x424242


def test_prelogin_decode_truncated_option_header():
    with pytest.raises(ProtocolError):
        Prelogin.decode(b"\x00\x00")


def test_prelogin_decode_option_out_of_range():
    with pytest.raises(ProtocolError):
        Prelogin.decode(bytes.fromhex("00 0006 0010 ff"))


def test_transaction_descriptor_header_encoding():
    encoded = TransactionDescriptorHeader(1, 0).encode()
    assert encoded == bytes.fromhex("12000000 0200 0000000000000000 01000000")


def test_encode_query_headers_empty():
    assert encode_query_headers([]) == bytes.fromhex("04000000")


def test_encode_query_headers_total_length():
    encoded = encode_query_headers([TransactionDescriptorHeader(1, 0)])
    assert len(encoded) == 22
    assert struct.unpack_from("<I", encoded, 0)[0] == 22


def test_sql_batch_encoding():
    encoded = SqlBatch("select 1").encode()
    assert encoded[:22] == bytes.fromhex(
        "16000000 12000000 0200 0000000000000000 01000000"
    )
    assert encoded[22:] == "select 1".encode("utf-16-le")


def test_sql_batch_requires_auto_commit():
    with pytest.raises(ValueError):
        SqlBatch("select 1", auto_commit=False).encode()