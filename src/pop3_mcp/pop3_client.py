"""
POP3 Session Engine
===================

Synchronous POP3 client session implementing the session contract.

A session owns one transport, reads the greeting on connect, and exposes
one method per protocol command. Server replies are returned verbatim
(minus the line ending); a -ERR reply is a value, not an exception.

CONTRACT INVARIANTS:
- INV-SESSION-01: -ERR replies are returned, never raised
- INV-SESSION-02: is_encrypted is fixed at creation
- INV-SESSION-03: Commands are not state-guarded unless strict=True
- INV-SESSION-04: Commands after termination raise NotConnectedError
- INV-SESSION-05: I/O steps go to the observer; passwords and bodies never do

Sessions are NOT safe for concurrent use. Open one session per thread.
"""

from __future__ import annotations

import logging
import ssl
from typing import Callable

from contracts import (
    ConnectError,
    InvalidArgumentError,
    InvalidStateError,
    NotConnectedError,
    Pop3Error,
    ResponseStatus,
    SessionEvent,
    SessionEventKind,
    SessionState,
)
from src.pop3_mcp.framing import LineReader, encode_command, is_ok
from src.pop3_mcp.transport import CHUNK_SIZE, Transport

logger = logging.getLogger("pop3-mcp.session")

Observer = Callable[[SessionEvent], None]

MASK = "****"


def log_event(event: SessionEvent) -> None:
    """Default observer: forward events to the session logger."""
    logger.debug("%s %s %s", event.kind.value, event.address, event.detail)


class Pop3Session:
    """
    POP3 session over a plain or TLS transport.

    State machine: CONNECTING -> AUTHORIZATION -> TRANSACTION -> TERMINATED.
    Only connect and quit enforce transitions; the server is the authority
    on whether a command is acceptable in the current state.
    """

    def __init__(
        self,
        *,
        encrypted: bool = False,
        observer: Observer | None = None,
        strict: bool = False,
    ) -> None:
        self._transport: Transport | None = None
        self._reader: LineReader | None = None
        self._address: str = ""
        self._greeting: str = ""
        self._authorized: bool = False
        self._encrypted: bool = encrypted
        self._state: SessionState = SessionState.CONNECTING
        self._observer: Observer = observer or log_event
        self._strict: bool = strict

    @classmethod
    def connect(
        cls,
        address: str,
        tls_context: ssl.SSLContext | None = None,
        use_tls: bool = False,
        *,
        timeout: float | None = None,
        observer: Observer | None = None,
        strict: bool = False,
        chunk_size: int = CHUNK_SIZE,
    ) -> Pop3Session:
        """
        Open a transport and validate the server greeting.

        PRE-SESSION-01: Transport opens successfully
        POST-CONNECT-01: is_authorized is True, greeting starts with +OK
        POST-CONNECT-02: state is AUTHORIZATION

        ERRORS:
        - CONNECT_FAILED: dial/handshake failure, or greeting missing,
          malformed or negative. No partial session is returned.
        """
        session = cls(encrypted=use_tls, observer=observer, strict=strict)
        session._open(address, tls_context, timeout, chunk_size)
        return session

    def _open(
        self,
        address: str,
        tls_context: ssl.SSLContext | None,
        timeout: float | None,
        chunk_size: int,
    ) -> None:
        transport = Transport.open(address, tls_context, self._encrypted, timeout=timeout)
        self._transport = transport
        self._reader = LineReader(transport, chunk_size=chunk_size)
        self._address = address
        self._state = SessionState.AUTHORIZATION

        try:
            self._emit(SessionEventKind.CONNECTED, "tls" if self._encrypted else "plain")
            self._read_greeting()
        except ConnectError:
            self._release()
            raise
        except Pop3Error as e:
            self._release()
            raise ConnectError(f"Failed to read greeting from {address}: {e}") from e
        except Exception:
            self._release()
            raise

    def _read_greeting(self) -> None:
        line = self._require_reader().read_line()
        if not is_ok(line):
            raise ConnectError(f"Not authorized to POP3 server: {line[:64]!r}")
        self._greeting = line
        self._authorized = True
        self._emit(SessionEventKind.GREETING, line)

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def greeting(self) -> str:
        return self._greeting

    @property
    def is_authorized(self) -> bool:
        return self._authorized

    @property
    def is_encrypted(self) -> bool:
        return self._encrypted

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def address(self) -> str:
        return self._address

    @property
    def connected(self) -> bool:
        return self._transport is not None and not self._transport.closed

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def user(self, name: str) -> str:
        """
        USER name. Servers may accept unknown mailboxes here and reject
        at PASS instead.
        """
        self._require_state(SessionState.AUTHORIZATION, "USER")
        return self._single("USER", name)

    def pass_(self, password: str) -> str:
        """
        PASS password.

        POST-PASS-01: A +OK reply moves the session to TRANSACTION.
        The password is masked in every emitted event.
        """
        self._require_state(SessionState.AUTHORIZATION, "PASS")
        response = self._single("PASS", password, sensitive=True)
        if is_ok(response):
            self._state = SessionState.TRANSACTION
        return response

    def stat(self) -> str:
        """STAT. A +OK reply reads '+OK <count> <size>'."""
        self._require_state(SessionState.TRANSACTION, "STAT")
        return self._single("STAT")

    def list(self, message_number: int | None = None) -> list[str]:
        """
        LIST [n].

        POST-LIST-01: Without an argument, returns the status line, one
        'number size' line per message, and the terminator '.'.
        POST-LIST-02: With an argument, returns exactly one status line.
        """
        self._require_state(SessionState.TRANSACTION, "LIST")
        if message_number is None:
            return self._multi("LIST")
        return [self._single("LIST", message_number)]

    def retrieve(self, message_id: str | int) -> list[str]:
        """
        RETR message_id.

        POST-RETR-01: +OK returns the status line, body lines and '.'.
        POST-RETR-02: -ERR returns the single status line; no terminator
        is awaited.
        """
        self._require_state(SessionState.TRANSACTION, "RETR")
        return self._multi("RETR", message_id)

    def top(self, message_number: int, lines: int) -> list[str]:
        """
        TOP message_number lines: headers, blank line and the first
        `lines` body lines.

        POST-TOP-01: Same response shape as retrieve().
        ERRORS: INVALID_ARGUMENT if message_number < 1 or lines < 0.
        """
        if message_number < 1:
            raise InvalidArgumentError("TOP message number should be greater than 0")
        if lines < 0:
            raise InvalidArgumentError("TOP line count cannot be negative")
        self._require_state(SessionState.TRANSACTION, "TOP")
        return self._multi("TOP", message_number, lines)

    def delete(self, message_id: str | int) -> str:
        """DELE message_id. Deletion takes effect only after a clean QUIT."""
        self._require_state(SessionState.TRANSACTION, "DELE")
        return self._single("DELE", message_id)

    def reset(self) -> str:
        """RSET. Unmarks every message deleted in this session."""
        self._require_state(SessionState.TRANSACTION, "RSET")
        return self._single("RSET")

    def noop(self) -> str:
        self._require_state(SessionState.TRANSACTION, "NOOP")
        return self._single("NOOP")

    def quit(self) -> str:
        """
        QUIT.

        POST-QUIT-01: On +OK the transport is closed and attributes reset.
        POST-QUIT-02: On -ERR or I/O failure the transport is closed too.
        """
        self._require_transport()
        try:
            return self._single("QUIT")
        finally:
            self._release()

    def close(self) -> None:
        """Release the transport without sending QUIT. Idempotent."""
        if self._transport is not None:
            self._release()

    def __enter__(self) -> Pop3Session:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.connected:
            self.quit()
        else:
            self.close()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _emit(self, kind: SessionEventKind, detail: str = "") -> None:
        self._observer(SessionEvent(kind=kind, address=self._address, detail=detail))

    def _require_transport(self) -> Transport:
        if self._transport is None:
            raise NotConnectedError("Session is not connected")
        return self._transport

    def _require_reader(self) -> LineReader:
        if self._reader is None:
            raise NotConnectedError("Session is not connected")
        return self._reader

    def _require_state(self, expected: SessionState, verb: str) -> None:
        """INV-SESSION-03: only enforced in strict mode."""
        self._require_transport()
        if self._strict and self._state is not expected:
            raise InvalidStateError(
                f"{verb} requires {expected.value} state, session is {self._state.value}"
            )

    def _send(self, verb: str, *args: str | int, sensitive: bool = False) -> None:
        transport = self._require_transport()
        data = encode_command(verb, *args)
        shown = f"{verb} {MASK}" if sensitive else data.decode("utf-8", errors="replace").rstrip()
        self._emit(SessionEventKind.COMMAND, shown)
        transport.write(data)

    def _single(self, verb: str, *args: str | int, sensitive: bool = False) -> str:
        self._send(verb, *args, sensitive=sensitive)
        line, _status = self._require_reader().read_status_line()
        self._emit(SessionEventKind.RESPONSE, line)
        return line

    def _multi(self, verb: str, *args: str | int) -> list[str]:
        # Look ahead at the status line: -ERR replies carry no body.
        self._send(verb, *args)
        reader = self._require_reader()
        line, status = reader.read_status_line()
        if status is ResponseStatus.ERR:
            self._emit(SessionEventKind.RESPONSE, line)
            return [line]

        body = reader.read_body()
        self._emit(SessionEventKind.RESPONSE, f"{line} ({len(body) - 1} lines)")
        return [line, *body]

    def _release(self) -> None:
        """
        Close the transport and reset every attribute except encryption.

        The CLOSED event is emitted after every attribute is reset.
        """
        transport = self._transport
        address = self._address
        self._transport = None
        self._reader = None
        self._address = ""
        self._greeting = ""
        self._authorized = False
        self._state = SessionState.TERMINATED
        try:
            if transport is not None:
                transport.close()
        finally:
            self._observer(SessionEvent(kind=SessionEventKind.CLOSED, address=address))


def connect(
    address: str,
    tls_context: ssl.SSLContext | None = None,
    use_tls: bool = False,
    **kwargs,
) -> Pop3Session:
    """Open a POP3 session. See Pop3Session.connect."""
    return Pop3Session.connect(address, tls_context, use_tls, **kwargs)
