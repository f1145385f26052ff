"""Command line client: connect, log in and run one SQL batch."""

from __future__ import annotations

import sys
from typing import List, Optional

from .buffer import ProtocolError
from .connection import Connection

_PROG = "tdslite"


def _usage() -> None:
    print(f"usage: {_PROG} host port user pass database query")


def main(argv: Optional[List[str]] = None) -> int:
    """Run the client; return the process exit status."""
    args = sys.argv[1:] if argv is None else list(argv)
    if len(args) < 6:
        _usage()
        return 1
    host, port_text, user, password, database, query = args[:6]
    try:
        port = int(port_text, 10)
    except ValueError:
        _usage()
        return 1

    with Connection() as conn:
        try:
            conn.connect(host, port)
        except OSError:
            print("CONNECT - FAILED")
            return 1
        print("CONNECT - OK")

        try:
            authenticated = conn.login7(host, user, password, database)
        except (OSError, ProtocolError):
            authenticated = False
        if not authenticated:
            print("AUTH - FAILED")
            return 1
        print("AUTH - OK")

        try:
            conn.sql_batch(query)
        except (OSError, ProtocolError, ValueError):
            print("SQL - FAILED")
            return 1
        print("SQL - OK")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())