"""
POP3 Framing
============

Command encoding, status classification and the rolling line reader.

Responses are read line by line from a buffer that reassembles partial
chunks, so a terminator split across two reads is still recognized and
bytes belonging to the next response are never thrown away.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from contracts import (
    ConnectionClosedError,
    InvalidArgumentError,
    MalformedResponseError,
    ResponseStatus,
)
from src.pop3_mcp.transport import CHUNK_SIZE

if TYPE_CHECKING:
    from src.pop3_mcp.transport import Transport

OK = ResponseStatus.OK.value
ERR = ResponseStatus.ERR.value

CR = b"\r"
LF = b"\n"
CRLF = CR + LF

TERMINATOR = "."

# RFC 1939 caps status lines at 512 octets; body lines are unbounded.
MAX_LINE = 2048

ENCODING = "utf-8"


def encode_command(verb: str, *args: str | int) -> bytes:
    """
    Encode VERB[ ARG ...] + CRLF.

    POST-FRAMING-01: Single line, arguments space-separated.
    ERRORS: INVALID_ARGUMENT if any argument contains CR or LF.
    """
    parts = [verb]
    for arg in args:
        text = str(arg)
        if "\r" in text or "\n" in text:
            raise InvalidArgumentError(f"{verb} argument must not contain CR or LF")
        parts.append(text)
    return (" ".join(parts)).encode(ENCODING) + CRLF


def classify(line: str) -> ResponseStatus:
    """Classify a status line by its leading token."""
    if line.startswith(OK):
        return ResponseStatus.OK
    if line.startswith(ERR):
        return ResponseStatus.ERR
    raise MalformedResponseError(f"Unrecognized status line: {line[:64]!r}")


def is_ok(line: str) -> bool:
    return line.startswith(OK)


def parse_stat(line: str) -> tuple[int, int]:
    """Parse '+OK <count> <size>' into (count, size)."""
    parts = line.split()
    if len(parts) < 3 or parts[0] != OK:
        raise MalformedResponseError(f"Not a STAT reply: {line[:64]!r}")
    try:
        count, size = int(parts[1]), int(parts[2])
    except ValueError as e:
        raise MalformedResponseError(f"Not a STAT reply: {line[:64]!r}") from e
    if count < 0 or size < 0:
        raise MalformedResponseError(f"Negative STAT values: {line[:64]!r}")
    return count, size


def parse_scan_listing(line: str) -> tuple[int, int]:
    """
    Parse a scan listing into (message_number, size).

    Accepts both a LIST body line ('2 200') and a LIST n reply ('+OK 2 200').
    """
    parts = line.split()
    if parts and parts[0] == OK:
        parts = parts[1:]
    try:
        return int(parts[0]), int(parts[1])
    except (IndexError, ValueError) as e:
        raise MalformedResponseError(f"Not a scan listing: {line[:64]!r}") from e


class LineReader:
    """
    Line-buffered reader over a transport.

    POST-FRAMING-02: lines are reassembled across chunk boundaries.
    INV-FRAMING-01: bytes past the current line stay buffered.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        chunk_size: int = CHUNK_SIZE,
        max_line: int = MAX_LINE,
    ) -> None:
        self._transport = transport
        self._chunk_size = chunk_size
        self._max_line = max_line
        self._buffer = bytearray()

    @property
    def pending(self) -> bytes:
        """Bytes received but not yet consumed."""
        return bytes(self._buffer)

    def read_line(self) -> str:
        """Return the next status line without its line ending, capped at max_line."""
        return self._read_line(self._max_line)

    def _read_line(self, limit: int | None) -> str:
        while True:
            index = self._buffer.find(LF)
            if index >= 0:
                raw = bytes(self._buffer[: index + 1])
                del self._buffer[: index + 1]
                if limit is not None and len(raw) > limit:
                    raise MalformedResponseError("Response line too long")
                return self._decode(raw)

            if limit is not None and len(self._buffer) > limit:
                raise MalformedResponseError("Response line too long")

            chunk = self._transport.read_chunk(self._chunk_size)
            if not chunk:
                raise ConnectionClosedError("Connection closed by server")
            self._buffer.extend(chunk)

    def read_status_line(self) -> tuple[str, ResponseStatus]:
        line = self.read_line()
        return line, classify(line)

    def read_body(self) -> list[str]:
        """
        Read content lines up to and including the terminator.

        POST-FRAMING-03: stops at the line "." however the bytes were chunked.
        POST-FRAMING-04: a leading ".." is unstuffed to ".".

        Content lines are opaque and not subject to max_line.
        """
        lines: list[str] = []
        while True:
            line = self._read_line(None)
            if line == TERMINATOR:
                lines.append(line)
                return lines
            if line.startswith(".."):
                line = line[1:]
            lines.append(line)

    @staticmethod
    def _decode(raw: bytes) -> str:
        if raw.endswith(CRLF):
            raw = raw[:-2]
        elif raw.endswith(LF):
            raw = raw[:-1]
        return raw.decode(ENCODING, errors="replace")
