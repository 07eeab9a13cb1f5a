"""
POP3 Transport
==============

Blocking byte stream over plain TCP or TLS.

A Transport is owned by exactly one session. It knows nothing about
lines or status tokens; framing lives in src.pop3_mcp.framing.

INV-TRANSPORT-01: close() is idempotent
INV-TRANSPORT-02: A configured timeout bounds every read and write
"""

from __future__ import annotations

import socket
import ssl

from contracts import ConnectError, TransportIOError

POP3_PORT = 110
POP3_SSL_PORT = 995

# Historical chunk size; the line reader reassembles across chunks.
CHUNK_SIZE = 512


def parse_address(address: str) -> tuple[str, int]:
    """
    Split "host:port" into its parts.

    PRE-TRANSPORT-01: address is "host:port"; IPv6 hosts may be bracketed.
    """
    host, sep, port = address.rpartition(":")
    if not sep or not host or not port:
        raise ConnectError(f"Invalid address {address!r}, expected host:port")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    try:
        port_number = int(port)
    except ValueError as e:
        raise ConnectError(f"Invalid port in address {address!r}") from e
    if not 0 < port_number < 65536:
        raise ConnectError(f"Port out of range in address {address!r}")
    return host, port_number


class Transport:
    """
    Duplex byte stream to a POP3 server.

    Not safe for concurrent use; one command is in flight at a time.
    """

    def __init__(self, sock: socket.socket, *, encrypted: bool = False) -> None:
        self._sock: socket.socket | None = sock
        self._encrypted = encrypted

    @classmethod
    def open(
        cls,
        address: str,
        tls_context: ssl.SSLContext | None = None,
        use_tls: bool = False,
        *,
        timeout: float | None = None,
    ) -> Transport:
        """
        Dial address, optionally completing a TLS handshake.

        POST-TRANSPORT-01: Returns a connected transport. With use_tls and no
        tls_context, the system default context (certificate and hostname
        verification enabled) is used.

        ERRORS:
        - CONNECT_FAILED: dial or handshake failed; nothing is retried
        """
        host, port = parse_address(address)

        try:
            raw = socket.create_connection((host, port), timeout=timeout)
        except OSError as e:
            raise ConnectError(f"Failed to connect to {address}: {e}") from e

        if not use_tls:
            return cls(raw, encrypted=False)

        context = tls_context if tls_context is not None else ssl.create_default_context()
        try:
            sock = context.wrap_socket(raw, server_hostname=host)
        except (ssl.SSLError, OSError) as e:
            raw.close()
            raise ConnectError(f"TLS handshake with {address} failed: {e}") from e
        return cls(sock, encrypted=True)

    @property
    def closed(self) -> bool:
        return self._sock is None

    @property
    def encrypted(self) -> bool:
        return self._encrypted

    def _require_socket(self) -> socket.socket:
        if self._sock is None:
            raise TransportIOError("Transport is closed")
        return self._sock

    def write(self, data: bytes) -> int:
        """
        Write exactly data to the stream.

        POST-TRANSPORT-02: All bytes are sent, or TransportIOError is raised.
        """
        sock = self._require_socket()
        try:
            sock.sendall(data)
        except OSError as e:
            raise TransportIOError(f"Write failed: {e}") from e
        return len(data)

    def read_chunk(self, max_bytes: int = CHUNK_SIZE) -> bytes:
        """
        Block until data arrives or the peer closes the stream.

        POST-TRANSPORT-03: Returns at most max_bytes; b"" means end of stream.
        """
        sock = self._require_socket()
        try:
            return sock.recv(max_bytes)
        except OSError as e:
            raise TransportIOError(f"Read failed: {e}") from e

    def close(self) -> None:
        """Release the socket. Safe to call more than once."""
        if self._sock is None:
            return
        try:
            self._sock.close()
        finally:
            self._sock = None
