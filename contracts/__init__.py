"""
POP3 MCP Contract Index
=======================

AUTHORITY: This file is the SINGLE authoritative entrypoint for all
POP3 MCP contracts. Import from here, not from individual contract files.
"""

from contracts.pop3_protocol_contract import (
    # Test Case Index
    TEST_CASES,
    AuthFailedError,
    ConnectError,
    ConnectionClosedError,
    ConnectionStatus,
    CredentialsNotFoundError,
    InvalidArgumentError,
    InvalidStateError,
    MailboxToolsContract,
    MalformedResponseError,
    NotConnectedError,
    # Error Types
    Pop3Error,
    ResponseStatus,
    SessionContract,
    SessionEvent,
    SessionEventKind,
    # Domain Types
    SessionState,
    # Contracts (Protocols)
    TransportContract,
    TransportIOError,
)

__all__ = [
    # Domain Types
    "SessionState",
    "ResponseStatus",
    "SessionEventKind",
    "SessionEvent",
    "ConnectionStatus",
    # Error Types
    "Pop3Error",
    "ConnectError",
    "TransportIOError",
    "ConnectionClosedError",
    "MalformedResponseError",
    "NotConnectedError",
    "InvalidArgumentError",
    "InvalidStateError",
    "AuthFailedError",
    "CredentialsNotFoundError",
    # Contracts
    "TransportContract",
    "SessionContract",
    "MailboxToolsContract",
    # Test Traceability
    "TEST_CASES",
    # Functions
    "audit_contract_coverage",
]


def audit_contract_coverage() -> dict:
    """
    Audit which contract clauses have test coverage.

    Returns dict with:
    - covered: clauses with at least one test
    - uncovered: clauses with no tests
    - test_count: total tests defined
    """
    covered_clauses = set()
    for test_name, test_info in TEST_CASES.items():
        for clause in test_info.get("enforces", []):
            covered_clauses.add(clause)

    # All PRE/POST/INV/ERRORS clauses from contracts
    all_clauses = set()

    # Transport clauses
    all_clauses.update(
        [
            "PRE-TRANSPORT-01",
            "POST-TRANSPORT-01",
            "POST-TRANSPORT-02",
            "POST-TRANSPORT-03",
            "INV-TRANSPORT-01",
            "INV-TRANSPORT-02",
            "ERRORS: CONNECT_FAILED",
            "ERRORS: TRANSPORT_IO",
        ]
    )

    # Framing clauses
    all_clauses.update(
        [
            "POST-FRAMING-01",
            "POST-FRAMING-02",
            "POST-FRAMING-03",
            "POST-FRAMING-04",
            "INV-FRAMING-01",
            "ERRORS: MALFORMED_RESPONSE",
            "ERRORS: INVALID_ARGUMENT",
            "ERRORS: CONNECTION_CLOSED",
        ]
    )

    # Session clauses
    all_clauses.update(
        [
            "PRE-SESSION-01",
            "POST-CONNECT-01",
            "POST-CONNECT-02",
            "POST-PASS-01",
            "POST-STAT-01",
            "POST-LIST-01",
            "POST-LIST-02",
            "POST-RETR-01",
            "POST-RETR-02",
            "POST-TOP-01",
            "POST-QUIT-01",
            "POST-QUIT-02",
            "INV-SESSION-01",
            "INV-SESSION-02",
            "INV-SESSION-03",
            "INV-SESSION-04",
            "INV-SESSION-05",
            "ERRORS: NOT_CONNECTED",
            "ERRORS: INVALID_STATE",
        ]
    )

    # Tool server clauses
    all_clauses.update(
        [
            "PRE-TOOLS-01",
            "POST-TOOLS-01",
            "POST-TOOLS-02",
            "INV-TOOLS-01",
            "INV-TOOLS-02",
            "ERRORS: AUTH_FAILED",
            "ERRORS: CREDENTIALS_NOT_FOUND",
        ]
    )

    uncovered = all_clauses - covered_clauses

    return {
        "covered": sorted(covered_clauses),
        "uncovered": sorted(uncovered),
        "test_count": len(TEST_CASES),
        "coverage_pct": round(len(covered_clauses) / len(all_clauses) * 100, 1),
    }
