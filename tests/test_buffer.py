import pytest

from tdslite.buffer import Buffer, ProtocolError, tds_decrypt, tds_encrypt


SQLTEST_B_VARCHAR = bytes(
    [0x07, 0x53, 0x00, 0x51, 0x00, 0x4C, 0x00, 0x54, 0x00, 0x45, 0x00, 0x53, 0x00, 0x54, 0x00]
)


def test_encrypt_known_value():
    assert tds_encrypt("a".encode("utf-16-le")) == b"\xb3\xa5"


@pytest.mark.parametrize("data", [b"", b"\x00", bytes(range(256)), "password".encode("utf-16-le")])
def test_encrypt_decrypt_round_trip(data):
    assert tds_decrypt(tds_encrypt(data)) == data
    assert len(tds_encrypt(data)) == len(data)


def test_empty_buffer_is_falsy():
    buf = Buffer()
    assert not buf
    assert len(buf) == 0
    buf.put(b"x")
    assert buf
    assert bytes(buf) == b"x"


def test_fetch_consumes_from_front():
    buf = Buffer(b"abcdef")
    assert buf.fetch(2) == b"ab"
    assert bytes(buf) == b"cdef"
    assert len(buf) == 4


def test_peek_does_not_consume():
    buf = Buffer(b"abcdef")
    assert buf.peek(2, 3) == b"cde"
    assert len(buf) == 6


@pytest.mark.parametrize("offset,size", [(0, 7), (5, 2), (-1, 1), (0, -1)])
def test_peek_out_of_range(offset, size):
    with pytest.raises(ProtocolError):
        Buffer(b"abcdef").peek(offset, size)


def test_fetch_truncated_raises():
    buf = Buffer(b"\x01")
    with pytest.raises(ProtocolError):
        buf.fetch_u16()


def test_drain_and_clear():
    buf = Buffer(b"abcdef")
    buf.drain(4)
    assert bytes(buf) == b"ef"
    with pytest.raises(ProtocolError):
        buf.drain(3)
    buf.clear()
    assert len(buf) == 0


@pytest.mark.parametrize(
    "put_name,fetch_name,value",
    [
        ("put_u8", "fetch_u8", 0xFF),
        ("put_u16", "fetch_u16", 0x1234),
        ("put_u32", "fetch_u32", 0x03000B73),
    ],
)
def test_unsigned_round_trip(put_name, fetch_name, value):
    buf = Buffer()
    getattr(buf, put_name)(value)
    assert getattr(buf, fetch_name)() == value
    assert len(buf) == 0


def test_integers_are_little_endian():
    buf = Buffer()
    buf.put_u32(0x03000B73)
    assert bytes(buf) == bytes([0x73, 0x0B, 0x00, 0x03])


def test_fetch_u64():
    buf = Buffer(bytes([0x01, 0, 0, 0, 0, 0, 0, 0]))
    assert buf.fetch_u64() == 1


@pytest.mark.parametrize("size", [1, 2, 4, 8])
def test_fetch_int_is_signed(size):
    buf = Buffer(b"\xff" * size)
    assert buf.fetch_int(size) == -1
    assert len(buf) == 0


def test_fetch_int_positive():
    assert Buffer(bytes([0x02, 0x00, 0x00, 0x00])).fetch_int(4) == 2


def test_fetch_int_bad_size():
    with pytest.raises(ValueError):
        Buffer(b"\x00\x00\x00").fetch_int(3)


def test_put_accepts_buffer():
    first = Buffer(b"ab")
    second = Buffer(b"cd")
    first.put(second)
    assert bytes(first) == b"abcd"
    assert bytes(second) == b"cd"


def test_put_utf16_with_filter_round_trip():
    buf = Buffer()
    buf.put_utf16("password", tds_encrypt)
    assert bytes(buf) == tds_encrypt("password".encode("utf-16-le"))
    assert buf.copy_utf16(0, 8, tds_decrypt) == "password"


def test_copy_utf16_zero_length():
    assert Buffer().copy_utf16(0, 0) == ""


def test_fetch_b_varchar_sample():
    buf = Buffer(SQLTEST_B_VARCHAR + b"\x00")
    assert buf.fetch_b_varchar() == "SQLTEST"
    assert buf.fetch_b_varchar() == ""
    assert len(buf) == 0


def test_fetch_us_varchar_round_trip():
    text = "Login failed for user 'sa'."
    buf = Buffer()
    buf.put_us_varchar(text)
    assert buf.peek(0, 2) == bytes([len(text), 0])
    assert buf.fetch_us_varchar() == text
    assert len(buf) == 0


def test_put_b_varchar_matches_sample():
    buf = Buffer()
    buf.put_b_varchar("SQLTEST")
    assert bytes(buf) == SQLTEST_B_VARCHAR


def test_put_b_varchar_too_long_becomes_empty():
    buf = Buffer()
    buf.put_b_varchar("x" * 256)
    assert len(buf) == 1
    assert buf.fetch_b_varchar() == ""


def test_put_b_varchar_at_limit():
    buf = Buffer()
    buf.put_b_varchar("y" * 255)
    assert buf.fetch_b_varchar() == "y" * 255


def test_put_us_varchar_too_long_becomes_empty():
    buf = Buffer()
    buf.put_us_varchar("z" * 65536)
    assert len(buf) == 2
    assert buf.fetch_us_varchar() == ""


def test_fetch_b_varchar_truncated():
    buf = Buffer(SQLTEST_B_VARCHAR[:-2])
    with pytest.raises(ProtocolError):
        buf.fetch_b_varchar()


def test_copy_utf16_invalid_text():
    buf = Buffer(b"\x00\xd8")
    with pytest.raises(ProtocolError):
        buf.copy_utf16(0, 1)