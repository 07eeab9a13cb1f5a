"""
Shared fixtures: a scripted transport that replays server bytes.
"""

from collections import deque
from unittest.mock import patch

import pytest

from contracts import TransportIOError


class FakeTransport:
    """
    Replays scripted server chunks and records everything written.

    Reading past the script fails the test instead of blocking, so a
    read the engine should not have made is caught immediately.
    Chunks may be bytes or an exception instance to raise.
    """

    def __init__(self, chunks=(), *, encrypted=False):
        self.chunks = deque(chunks)
        self.written = []
        self.reads = 0
        self.closed = False
        self.encrypted = encrypted

    def write(self, data):
        if self.closed:
            raise TransportIOError("Transport is closed")
        self.written.append(data)
        return len(data)

    def read_chunk(self, max_bytes=512):
        if self.closed:
            raise TransportIOError("Transport is closed")
        self.reads += 1
        if not self.chunks:
            raise AssertionError("engine read past the scripted server replies")
        chunk = self.chunks.popleft()
        if isinstance(chunk, BaseException):
            raise chunk
        if len(chunk) > max_bytes:
            self.chunks.appendleft(chunk[max_bytes:])
            chunk = chunk[:max_bytes]
        return chunk

    def close(self):
        self.closed = True

    @property
    def commands(self):
        """Command lines sent so far, without CRLF."""
        return b"".join(self.written).decode().split("\r\n")[:-1]


@pytest.fixture
def fake_transport_cls():
    return FakeTransport


@pytest.fixture
def scripted_server():
    """
    Patch Transport.open so sessions talk to a FakeTransport.

    Usage: fake = scripted_server(b"+OK ready\\r\\n", b"+OK\\r\\n")
    The mock for Transport.open is available as scripted_server.open_mock.
    """
    with patch("src.pop3_mcp.pop3_client.Transport.open") as open_mock:

        def install(*chunks, encrypted=False):
            fake = FakeTransport(chunks, encrypted=encrypted)
            open_mock.return_value = fake
            return fake

        install.open_mock = open_mock
        yield install
