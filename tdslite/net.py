"""Blocking TCP transport for TDS packets."""

from __future__ import annotations

import socket

from .debug import debug_dump


class NetConnection:
    """A connected stream socket that sends whole buffers and reads exact sizes."""

    def __init__(self, sock: socket.socket) -> None:
        self._sock = sock

    @classmethod
    def open(cls, host: str, port: int) -> NetConnection:
        """Connect to ``host``:``port``; raise OSError when that fails."""
        return cls(socket.create_connection((host, port)))

    def send(self, data) -> None:
        """Send every byte of ``data``; raise OSError when the write fails."""
        payload = bytes(data)
        debug_dump(payload, "sending data")
        self._sock.sendall(payload)

    def recv_exact(self, size: int) -> bytes:
        """Read exactly ``size`` bytes; raise ConnectionError if the peer closes first."""
        received = bytearray()
        while len(received) < size:
            chunk = self._sock.recv(size - len(received))
            if not chunk:
                raise ConnectionError(
                    f"connection closed after {len(received)} of {size} bytes"
                )
            received += chunk
        debug_dump(received, "received data (len %d)", len(received))
        return bytes(received)

    def close(self) -> None:
        self._sock.close()

    def __enter__(self) -> NetConnection:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()