"""Client session: PRELOGIN, LOGIN7 and SQL batch exchanges over one socket."""

from __future__ import annotations

from typing import Iterator, Optional

from .buffer import ProtocolError
from .debug import debug
from .frames import FrameHeader, Login7, PacketStatus, PacketType, Prelogin, SqlBatch
from .net import NetConnection
from .tokens import Response

_MAX_PACKET_LENGTH = 0xFFFF
_CLIENT_HOST = "localhost"
_APP_NAME = "tdslite"


class Connection:
    """A TDS client connection to one server."""

    def __init__(self) -> None:
        self._net: Optional[NetConnection] = None
        self._last_packet_id = 0

    def connect(self, host: str, port: int) -> None:
        """Open the connection; does nothing if it is already open."""
        if self._net is None:
            self._net = NetConnection.open(host, port)

    def close(self) -> None:
        if self._net is not None:
            self._net.close()
            self._net = None

    def __enter__(self) -> Connection:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _require_net(self) -> NetConnection:
        if self._net is None:
            raise ConnectionError("not connected")
        return self._net

    def _next_packet_id(self) -> int:
        self._last_packet_id = (self._last_packet_id + 1) & 0xFF
        return self._last_packet_id

    def _send_packet(self, packet_type: PacketType, payload: bytes) -> None:
        net = self._require_net()
        length = FrameHeader.SIZE + len(payload)
        if length > _MAX_PACKET_LENGTH:
            raise ValueError(f"packet too large: {length} bytes")
        header = FrameHeader(
            type=packet_type, packet_id=self._next_packet_id(), length=length
        )
        debug("sending packet type 0x%02x, length %d", packet_type, length)
        net.send(header.encode() + payload)

    def _receive_packets(self) -> Iterator[bytes]:
        """Yield packet bodies of a tabular-result message up to end of message."""
        net = self._require_net()
        while True:
            header = FrameHeader.decode(net.recv_exact(FrameHeader.SIZE))
            if header.type != PacketType.TABULAR_RESULT:
                raise ProtocolError(f"unexpected packet type 0x{int(header.type):02x}")
            if header.length < FrameHeader.SIZE:
                raise ProtocolError(f"invalid packet length {header.length}")
            yield net.recv_exact(header.length - FrameHeader.SIZE)
            if header.status & PacketStatus.EOM:
                return

    def _receive_response(self) -> Response:
        response = Response()
        for body in self._receive_packets():
            response.decode(body)
        return response

    def prelogin(self) -> Prelogin:
        """Exchange PRELOGIN messages and return the server's reply."""
        self._send_packet(PacketType.PRE_LOGIN, Prelogin().encode())
        reply = Prelogin()
        for body in self._receive_packets():
            reply = Prelogin.decode(body)
        return reply

    def login7(self, host: str, user: str, password: str, database: str) -> bool:
        """Send a LOGIN7 request; return whether the server acknowledged the login."""
        request = Login7(
            client_host=_CLIENT_HOST,
            user_name=user,
            user_pass=password,
            app_name=_APP_NAME,
            server_name=host,
            database=database,
        )
        self._send_packet(PacketType.TDS7_LOGIN, request.encode())
        return self._receive_response().auth_success

    def sql_batch(self, query: str) -> Response:
        """Run ``query`` as an SQL batch and return the decoded result."""
        self._send_packet(PacketType.SQL_BATCH, SqlBatch(query=query).encode())
        response = self._receive_response()
        debug("errors: %d", len(response.errors))
        for error in response.errors:
            debug("error: %s", error.error_text)
        return response