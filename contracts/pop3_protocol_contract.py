"""
POP3 Protocol Engine Contract
=============================

Client-side engine for the line-oriented POP3 mail-retrieval protocol,
plus the MCP tool server that exposes it to agents.

This contract defines the behavioral specification for all public interfaces.
Implementation SHALL perform ONLY declared behaviors.

CONVENTIONS:
- PRE/POST/INV/ERRORS clauses are mandatory on every contract
- Every test cites the clause IDs it enforces (see TEST_CASES)

AUTHORITY: This file is the SINGLE authoritative source for engine behavior.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol, runtime_checkable


# =============================================================================
# DOMAIN TYPES
# =============================================================================

class SessionState(Enum):
    """Protocol states a session moves through."""
    CONNECTING = "connecting"
    AUTHORIZATION = "authorization"
    TRANSACTION = "transaction"
    TERMINATED = "terminated"


class ResponseStatus(Enum):
    """Classification of a status line by its leading token."""
    OK = "+OK"
    ERR = "-ERR"


class SessionEventKind(Enum):
    """Observable I/O steps emitted to a session observer."""
    CONNECTED = "connected"
    GREETING = "greeting"
    COMMAND = "command"
    RESPONSE = "response"
    CLOSED = "closed"


@dataclass(frozen=True)
class SessionEvent:
    """One observable step of a session. Never carries passwords or bodies."""
    kind: SessionEventKind
    address: str
    detail: str = ""


@dataclass(frozen=True)
class ConnectionStatus:
    """Current connection state as reported by the tool server."""
    connected: bool
    server: str
    encrypted: bool
    state: SessionState
    greeting: str
    uptime_seconds: int


# =============================================================================
# ERROR TYPES
# =============================================================================

class Pop3Error(Exception):
    """Base error for all engine and tool server operations."""
    code: str = "POP3_ERROR"


class ConnectError(Pop3Error):
    """
    ERRORS-CONNECT-01: Dial, TLS handshake, or greeting failed.

    RECOVERY: No session exists. Caller may connect again.
    """
    code = "CONNECT_FAILED"


class TransportIOError(Pop3Error):
    """
    ERRORS-IO-01: Read or write failed on an established connection.

    RECOVERY: Session state is indeterminate. Caller should terminate
    and reconnect.
    """
    code = "TRANSPORT_IO"


class ConnectionClosedError(TransportIOError):
    """
    ERRORS-IO-02: Peer closed the stream before a response completed.

    RECOVERY: Same as TRANSPORT_IO.
    """
    code = "CONNECTION_CLOSED"


class MalformedResponseError(Pop3Error):
    """
    ERRORS-PARSE-01: Status line carries neither +OK nor -ERR, or a
    status line exceeds the maximum line length.

    RECOVERY: Session state is indeterminate. Caller should terminate.
    """
    code = "MALFORMED_RESPONSE"


class NotConnectedError(Pop3Error):
    """
    ERRORS-SESSION-01: Command issued after the transport was released.

    RECOVERY: Open a new session.
    """
    code = "NOT_CONNECTED"


class InvalidArgumentError(Pop3Error):
    """
    ERRORS-SESSION-02: Argument cannot be sent (CR/LF in argument,
    TOP message number < 1 or negative line count).

    RECOVERY: Caller must correct the argument. Nothing was sent.
    """
    code = "INVALID_ARGUMENT"


class InvalidStateError(Pop3Error):
    """
    ERRORS-SESSION-03: Strict mode only. Transaction command issued
    outside the TRANSACTION state.

    RECOVERY: Authenticate first. Nothing was sent.
    """
    code = "INVALID_STATE"


class AuthFailedError(Pop3Error):
    """
    ERRORS-TOOLS-01: USER or PASS answered with -ERR at tool server startup.

    RECOVERY: Fatal for the tool server. User must fix credentials.
    """
    code = "AUTH_FAILED"


class CredentialsNotFoundError(Pop3Error):
    """
    ERRORS-TOOLS-02: Required environment variables missing or invalid.

    RECOVERY: Fatal for the tool server. Set POP3_USER and POP3_PASSWORD.
    """
    code = "CREDENTIALS_NOT_FOUND"


# =============================================================================
# TRANSPORT CONTRACT
# =============================================================================

@runtime_checkable
class TransportContract(Protocol):
    """
    Duplex byte stream over plain TCP or TLS.

    PRE-TRANSPORT-01: address is "host:port" (IPv6 hosts may be bracketed)

    POST-TRANSPORT-01: open() returns a connected transport; with use_tls the
                       stream is TLS-wrapped (system defaults when no context)
    POST-TRANSPORT-02: write() sends exactly the given bytes or raises
    POST-TRANSPORT-03: read_chunk() returns 1..max_bytes bytes, or b"" once
                       the peer has closed the stream

    INV-TRANSPORT-01 (Idempotent Close): close() may be called any number of times
    INV-TRANSPORT-02 (Deadline): a configured timeout bounds every read and write

    ERRORS:
    - CONNECT_FAILED: dial or handshake failed, or address unparseable
    - TRANSPORT_IO: read/write failed or timed out
    """

    def write(self, data: bytes) -> int:
        """Write all bytes."""
        ...

    def read_chunk(self, max_bytes: int = ...) -> bytes:
        """Read at most max_bytes."""
        ...

    def close(self) -> None:
        """Release the socket."""
        ...


# =============================================================================
# FRAMING CONTRACT
# =============================================================================

"""
Framing Rules
-------------

POST-FRAMING-01: Commands are encoded as VERB[ ARGUMENT] + CRLF
POST-FRAMING-02: Lines are reassembled across arbitrary chunk boundaries
POST-FRAMING-03: A multi-line response ends at the line "." even when the
                 terminator is split across chunks
POST-FRAMING-04: Content lines starting with ".." are returned with one
                 leading dot removed

INV-FRAMING-01 (No Over-read): Bytes after a completed response are kept
               for the next response, never discarded

ERRORS:
- MALFORMED_RESPONSE: unrecognized status token or over-long line
- INVALID_ARGUMENT: argument contains CR or LF
- CONNECTION_CLOSED: stream ended mid-response
"""


# =============================================================================
# SESSION CONTRACT
# =============================================================================

@runtime_checkable
class SessionContract(Protocol):
    """
    POP3 session engine. One command in flight; NOT safe for concurrent use.

    PRE-SESSION-01: Transport opened successfully

    POST-CONNECT-01: is_authorized is True and greeting starts with +OK
    POST-CONNECT-02: state is AUTHORIZATION after connect
    POST-PASS-01: +OK reply to PASS moves state to TRANSACTION
    POST-STAT-01: stat() returns the single status line
    POST-LIST-01: list() returns header, one line per message, and "."
    POST-LIST-02: list(n) returns exactly one status line
    POST-RETR-01: retrieve() on success returns status, body, and "."
    POST-RETR-02: retrieve() on -ERR returns one line; no terminator is read
    POST-TOP-01: top() behaves as retrieve() with a truncated body
    POST-QUIT-01: +OK reply to QUIT closes transport and resets attributes
    POST-QUIT-02: -ERR reply or I/O failure on QUIT still closes transport

    INV-SESSION-01 (Replies Are Values): -ERR replies are returned, never raised
    INV-SESSION-02 (Fixed Encryption): is_encrypted never changes
    INV-SESSION-03 (Loose State): commands are not guarded by state unless
                   strict mode is enabled
    INV-SESSION-04 (Deterministic After Close): any command after termination
                   raises NotConnectedError
    INV-SESSION-05 (Observable): every I/O step is reported to the observer;
                   passwords and bodies never appear in events

    ERRORS:
    - CONNECT_FAILED, TRANSPORT_IO, CONNECTION_CLOSED, MALFORMED_RESPONSE,
      NOT_CONNECTED, INVALID_ARGUMENT, INVALID_STATE
    """

    def user(self, name: str) -> str: ...

    def pass_(self, password: str) -> str: ...

    def stat(self) -> str: ...

    def list(self, message_number: int | None = None) -> list[str]: ...

    def retrieve(self, message_id: str | int) -> list[str]: ...

    def top(self, message_number: int, lines: int) -> list[str]: ...

    def delete(self, message_id: str | int) -> str: ...

    def reset(self) -> str: ...

    def noop(self) -> str: ...

    def quit(self) -> str: ...


# =============================================================================
# TOOL SERVER CONTRACT
# =============================================================================

@runtime_checkable
class MailboxToolsContract(Protocol):
    """
    MCP tools over a single POP3 session.

    PRE-TOOLS-01: connect(credentials) completed (USER and PASS accepted)

    POST-TOOLS-01: Every tool result is JSON-serializable
    POST-TOOLS-02: pop3_connection_status.connected reflects actual state

    INV-TOOLS-01 (No Content Logging): credentials and message bodies never
                 appear in logs
    INV-TOOLS-02 (Single Session): one POP3 session per process

    ERRORS:
    - NOT_CONNECTED: tool called before connect or after disconnect
    - AUTH_FAILED: USER/PASS rejected at connect
    - CREDENTIALS_NOT_FOUND: environment incomplete at startup
    """

    def pop3_stat(self) -> dict: ...

    def pop3_list(self, *, message_number: int | None = None) -> dict: ...

    def pop3_retrieve(self, *, message_id: str) -> dict: ...

    def pop3_delete(self, *, message_id: str) -> dict: ...

    def pop3_connection_status(self) -> ConnectionStatus: ...


# =============================================================================
# TEST CASE INDEX (Traceability)
# =============================================================================

TEST_CASES = {
    # Transport tests
    "test_open_plain_tcp": {
        "contract": "TransportContract",
        "enforces": ["PRE-TRANSPORT-01", "POST-TRANSPORT-01"],
    },
    "test_open_tls_uses_default_context": {
        "contract": "TransportContract",
        "enforces": ["POST-TRANSPORT-01"],
    },
    "test_open_dial_failure": {
        "contract": "TransportContract",
        "enforces": ["ERRORS: CONNECT_FAILED"],
    },
    "test_write_sends_all_bytes": {
        "contract": "TransportContract",
        "enforces": ["POST-TRANSPORT-02"],
    },
    "test_read_chunk_and_eof": {
        "contract": "TransportContract",
        "enforces": ["POST-TRANSPORT-03"],
    },
    "test_close_idempotent": {
        "contract": "TransportContract",
        "enforces": ["INV-TRANSPORT-01"],
    },
    "test_timeout_surfaces_as_io_error": {
        "contract": "TransportContract",
        "enforces": ["INV-TRANSPORT-02", "ERRORS: TRANSPORT_IO"],
    },

    # Framing tests
    "test_encode_command": {
        "contract": "Framing",
        "enforces": ["POST-FRAMING-01"],
    },
    "test_encode_command_rejects_crlf": {
        "contract": "Framing",
        "enforces": ["ERRORS: INVALID_ARGUMENT"],
        "adversarial": True,
    },
    "test_line_reassembled_across_chunks": {
        "contract": "Framing",
        "enforces": ["POST-FRAMING-02"],
    },
    "test_terminator_split_across_chunks": {
        "contract": "Framing",
        "enforces": ["POST-FRAMING-03"],
        "adversarial": True,
        "description": "'.\\r\\n' delivered as '.' then '\\r\\n'",
    },
    "test_dot_stuffed_lines_unstuffed": {
        "contract": "Framing",
        "enforces": ["POST-FRAMING-04"],
    },
    "test_leftover_bytes_kept": {
        "contract": "Framing",
        "enforces": ["INV-FRAMING-01"],
    },
    "test_classify_rejects_unknown_token": {
        "contract": "Framing",
        "enforces": ["ERRORS: MALFORMED_RESPONSE"],
    },
    "test_stream_closed_mid_response": {
        "contract": "Framing",
        "enforces": ["ERRORS: CONNECTION_CLOSED"],
    },
    "test_body_lines_not_length_capped": {
        "contract": "Framing",
        "enforces": ["POST-FRAMING-03", "INV-FRAMING-01"],
    },

    # Session tests
    "test_connect_captures_greeting": {
        "contract": "SessionContract",
        "enforces": ["PRE-SESSION-01", "POST-CONNECT-01", "POST-CONNECT-02"],
    },
    "test_connect_rejects_err_greeting": {
        "contract": "SessionContract",
        "enforces": ["ERRORS: CONNECT_FAILED"],
    },
    "test_pass_enters_transaction": {
        "contract": "SessionContract",
        "enforces": ["POST-PASS-01"],
    },
    "test_round_trip": {
        "contract": "SessionContract",
        "enforces": ["POST-STAT-01", "POST-QUIT-01"],
    },
    "test_list_empty_mailbox": {
        "contract": "SessionContract",
        "enforces": ["POST-LIST-01"],
    },
    "test_list_single_message": {
        "contract": "SessionContract",
        "enforces": ["POST-LIST-02"],
    },
    "test_retrieve_success": {
        "contract": "SessionContract",
        "enforces": ["POST-RETR-01"],
    },
    "test_retrieve_missing_does_not_block": {
        "contract": "SessionContract",
        "enforces": ["POST-RETR-02", "INV-SESSION-01"],
        "adversarial": True,
        "description": "Fake transport fails if a second read is attempted",
    },
    "test_retrieve_long_line_keeps_session_usable": {
        "contract": "SessionContract",
        "enforces": ["POST-RETR-01", "INV-FRAMING-01"],
        "adversarial": True,
        "description": "A 3000-byte body line is returned and the next reply parses",
    },
    "test_top_truncated_body": {
        "contract": "SessionContract",
        "enforces": ["POST-TOP-01"],
    },
    "test_quit_err_still_closes": {
        "contract": "SessionContract",
        "enforces": ["POST-QUIT-02", "INV-SESSION-02"],
    },
    "test_transaction_command_before_auth_is_sent": {
        "contract": "SessionContract",
        "enforces": ["INV-SESSION-03"],
    },
    "test_strict_mode_guards_state": {
        "contract": "SessionContract",
        "enforces": ["ERRORS: INVALID_STATE"],
    },
    "test_command_after_quit_raises": {
        "contract": "SessionContract",
        "enforces": ["INV-SESSION-04", "ERRORS: NOT_CONNECTED"],
        "adversarial": True,
    },
    "test_observer_masks_password": {
        "contract": "SessionContract",
        "enforces": ["INV-SESSION-05"],
        "adversarial": True,
        "description": "Password and message body never appear in events",
    },
    "test_failing_observer_still_releases": {
        "contract": "SessionContract",
        "enforces": ["POST-QUIT-01", "INV-SESSION-04"],
        "adversarial": True,
    },
    "test_failing_observer_on_connect_closes_transport": {
        "contract": "SessionContract",
        "enforces": ["ERRORS: CONNECT_FAILED"],
        "adversarial": True,
    },

    # Tool server tests
    "test_server_connect_authenticates": {
        "contract": "MailboxToolsContract",
        "enforces": ["PRE-TOOLS-01", "POST-TOOLS-02"],
    },
    "test_server_auth_failed": {
        "contract": "MailboxToolsContract",
        "enforces": ["ERRORS: AUTH_FAILED"],
    },
    "test_server_results_serializable": {
        "contract": "MailboxToolsContract",
        "enforces": ["POST-TOOLS-01"],
    },
    "test_server_no_body_or_password_logging": {
        "contract": "MailboxToolsContract",
        "enforces": ["INV-TOOLS-01"],
        "adversarial": True,
    },
    "test_server_single_session": {
        "contract": "MailboxToolsContract",
        "enforces": ["INV-TOOLS-02"],
    },
    "test_server_not_connected": {
        "contract": "MailboxToolsContract",
        "enforces": ["ERRORS: NOT_CONNECTED"],
    },
    "test_credentials_missing": {
        "contract": "MailboxToolsContract",
        "enforces": ["ERRORS: CREDENTIALS_NOT_FOUND"],
    },
}
