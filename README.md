# tdslite

A small, dependency-free Python client for the Tabular Data Stream (TDS)
protocol spoken by Microsoft SQL Server. It opens a TCP connection,
authenticates with a LOGIN7 packet and sends SQL batches, decoding the
token stream that comes back: column metadata, rows (including
null-bitmap compressed rows), errors, login acknowledgements,
environment changes and DONE tokens.

## Installation

```
pip install .
```

To run the test suite:

```
pip install .[test]
pytest
```

## Command line

The `tdslite` command connects to a server, logs in and runs one query:

```
tdslite HOST PORT USER PASSWORD DATABASE QUERY
```

For example:

```
tdslite localhost 1433 user password master "SELECT 1"
```

It prints `CONNECT - OK`, `AUTH - OK` and `SQL - OK` as each step
succeeds, or the matching `... - FAILED` line and exit status 1 when a
step does not. With fewer than six arguments, or a port that is not a
decimal number, it prints a usage line and exits with status 1. The
command does not print the rows the query returns.

## Library use

```python
from tdslite.connection import Connection

password = "password"

with Connection() as conn:
    conn.connect("localhost", 1433)
    if conn.login7("localhost", "user", password, "master"):
        response = conn.sql_batch("SELECT 1")
        for row in response.rows:
            print([value.value if not value.is_null else None for value in row.data])
        for error in response.errors:
            print(error.error_number, error.error_text)
```

- `Connection.connect(host, port)` opens the socket (an `OSError` if it
  fails); calling it again while open does nothing.
- `Connection.prelogin()` exchanges PRELOGIN messages and returns the
  server's `Prelogin` reply.
- `Connection.login7(host, user, password, database)` returns `True` when
  the server answers with a LOGINACK token.
- `Connection.sql_batch(query)` returns a `tdslite.tokens.Response`.
- Malformed or unexpected replies raise `tdslite.buffer.ProtocolError`;
  a peer that closes mid-packet raises `ConnectionError`.

The building blocks are usable on their own:

- `tdslite.buffer.Buffer` — a byte queue with little-endian integer and
  UTF-16 `B_VARCHAR` / `US_VARCHAR` readers and writers, plus the
  `tds_encrypt` / `tds_decrypt` password obfuscation functions.
- `tdslite.frames` — `FrameHeader`, `Prelogin`, `Login7` (encode and
  decode), `SqlBatch`, `TransactionDescriptorHeader` and
  `encode_query_headers`.
- `tdslite.tokens` — token decoders (`ErrorToken`, `LoginAckToken`,
  `EnvChangeToken`, `DoneToken`, `ColumnInfo`, `ColumnValue`, `Row`) and
  `Response`, which walks a tabular-result body and collects `errors`,
  `columns`, `rows` and `auth_success`.
- `tdslite.net.NetConnection` — a thin blocking TCP transport.

Decoding a captured tabular-result body (the bytes after the 8-byte
packet header):

```python
from tdslite.tokens import Response

response = Response().decode(body_bytes)
for row in response.rows:
    print(row.data)
```

`Response.decode` accepts `bytes` or a `Buffer`, adds to what it already
holds, and starts `columns` and `rows` afresh at each COLMETADATA token.

## Debug output

`tdslite.debug` logs through the standard `logging` module on the
`tdslite` logger, at DEBUG level, including hex dumps of the bytes sent
and received. Turn it on with, for example:

```python
import logging

logging.basicConfig(level=logging.DEBUG)
```

`tdslite.debug.hexdump(data)` returns the same offset / hex / text dump
as a string.

## Limitations

- Only unencrypted connections: PRELOGIN advertises no encryption and
  there is no TLS.
- Row values are decoded only for `INTN` columns (as integers in
  `ColumnValue.value`) and `BIGVARCHAR` columns (as undecoded bytes in
  `ColumnValue.raw`); other column types raise `ProtocolError`.
- SQL batches run in auto-commit mode only; there are no RPC calls or
  transaction requests.
- Each request is sent as a single packet of at most 65535 bytes.