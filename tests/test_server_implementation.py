"""
POP3 MCP Server Implementation Tests
====================================

These tests verify the tool server against the contracts.
TRACEABILITY: Every test cites specific contract clause IDs.
"""

import json
from unittest.mock import MagicMock, patch

import pytest

from contracts import (
    AuthFailedError,
    ConnectionStatus,
    CredentialsNotFoundError,
    NotConnectedError,
    SessionState,
    TransportIOError,
)
from src.pop3_mcp.credentials import Credentials, load_credentials
from src.pop3_mcp.server import Pop3MCPServer, create_server


# =============================================================================
# TEST FIXTURES
# =============================================================================

@pytest.fixture
def mock_credentials():
    """Valid test credentials."""
    return Credentials(
        username="alice@example.com",
        password="secret123",
        server="pop.example.com:995",
        use_tls=True,
        timeout=30.0,
    )


@pytest.fixture
def mock_pop3_session():
    """Mock Pop3Session for testing without a real POP3 server."""
    with patch("src.pop3_mcp.server.Pop3Session") as mock:
        session = MagicMock()
        mock.connect.return_value = session

        session.connected = True
        session.address = "pop.example.com:995"
        session.is_encrypted = True
        session.greeting = "+OK POP3 server ready"
        session.state = SessionState.TRANSACTION

        session.user.return_value = "+OK send PASS"
        session.pass_.return_value = "+OK Welcome"
        session.stat.return_value = "+OK 2 320"
        session.list.return_value = ["+OK 2 messages", "1 120", "2 200", "."]
        session.retrieve.return_value = ["+OK 120 octets", "Subject: hi", "", "body", "."]
        session.top.return_value = ["+OK", "Subject: hi", "", "."]
        session.delete.return_value = "+OK message 1 deleted"
        session.reset.return_value = "+OK"
        session.noop.return_value = "+OK"
        session.quit.return_value = "+OK bye"

        yield mock


@pytest.fixture
def connected_server(mock_pop3_session, mock_credentials):
    """Server with mocked POP3 session."""
    server = create_server()
    server.connect(mock_credentials)
    return server


# =============================================================================
# STARTUP TESTS
# =============================================================================

class TestStartup:
    """Tests for connect/disconnect and credential loading."""

    def test_server_connect_authenticates(self, mock_pop3_session, mock_credentials):
        """
        Contract: MailboxToolsContract
        Enforces: PRE-TOOLS-01, POST-TOOLS-02
        """
        server = create_server()
        server.connect(mock_credentials)

        mock_pop3_session.connect.assert_called_once_with(
            "pop.example.com:995", use_tls=True, timeout=30.0
        )
        session = mock_pop3_session.connect.return_value
        session.user.assert_called_once_with("alice@example.com")
        session.pass_.assert_called_once_with("secret123")

        status = server.pop3_connection_status()
        assert status.connected is True
        assert status.encrypted is True
        assert status.server == "pop.example.com:995"
        assert status.state is SessionState.TRANSACTION

    def test_server_auth_failed(self, mock_pop3_session, mock_credentials):
        """
        Contract: MailboxToolsContract
        Enforces: ERRORS: AUTH_FAILED
        """
        session = mock_pop3_session.connect.return_value
        session.pass_.return_value = "-ERR invalid password"

        server = create_server()
        with pytest.raises(AuthFailedError):
            server.connect(mock_credentials)

        session.close.assert_called_once_with()
        assert server.pop3_connection_status().connected is False

    def test_server_user_rejected(self, mock_pop3_session, mock_credentials):
        """
        Contract: MailboxToolsContract
        Enforces: ERRORS: AUTH_FAILED
        """
        session = mock_pop3_session.connect.return_value
        session.user.return_value = "-ERR no such mailbox"

        server = create_server()
        with pytest.raises(AuthFailedError):
            server.connect(mock_credentials)

        session.pass_.assert_not_called()

    def test_server_single_session(self, connected_server, mock_credentials):
        """
        Contract: MailboxToolsContract
        Enforces: INV-TOOLS-02
        """
        with pytest.raises(RuntimeError):
            connected_server.connect(mock_credentials)

    def test_server_disconnect(self, connected_server, mock_pop3_session):
        """
        Contract: MailboxToolsContract
        Enforces: POST-TOOLS-02
        """
        session = mock_pop3_session.connect.return_value

        connected_server.disconnect()

        session.quit.assert_called_once_with()
        assert connected_server.pop3_connection_status().connected is False

    def test_server_disconnect_quit_failure(self, connected_server, mock_pop3_session):
        """
        Contract: MailboxToolsContract
        Enforces: POST-TOOLS-02
        """
        session = mock_pop3_session.connect.return_value
        session.quit.side_effect = TransportIOError("Write failed")

        connected_server.disconnect()

        assert connected_server.pop3_connection_status().connected is False

    def test_credentials_missing(self):
        """
        Contract: MailboxToolsContract
        Enforces: ERRORS: CREDENTIALS_NOT_FOUND
        """
        with pytest.raises(CredentialsNotFoundError):
            load_credentials({})
        with pytest.raises(CredentialsNotFoundError):
            load_credentials({"POP3_USER": "alice"})
        with pytest.raises(CredentialsNotFoundError):
            load_credentials(
                {"POP3_USER": "alice", "POP3_PASSWORD": "x", "POP3_USE_TLS": "maybe"}
            )
        with pytest.raises(CredentialsNotFoundError):
            load_credentials(
                {"POP3_USER": "alice", "POP3_PASSWORD": "x", "POP3_TIMEOUT": "soon"}
            )

    def test_credentials_from_environment(self):
        """
        Contract: MailboxToolsContract
        Enforces: PRE-TOOLS-01
        """
        creds = load_credentials({"POP3_USER": "alice", "POP3_PASSWORD": "secret"})
        assert creds == Credentials(username="alice", password="secret")
        assert creds.server == "pop.gmail.com:995"
        assert creds.use_tls is True
        assert creds.timeout == 30.0

        creds = load_credentials(
            {
                "POP3_USER": "alice",
                "POP3_PASSWORD": "secret",
                "POP3_SERVER": "mail.example.com:110",
                "POP3_USE_TLS": "false",
                "POP3_TIMEOUT": "0",
            }
        )
        assert creds.server == "mail.example.com:110"
        assert creds.use_tls is False
        assert creds.timeout is None

    def test_credentials_repr_hides_password(self, mock_credentials):
        """
        Contract: MailboxToolsContract
        Enforces: INV-TOOLS-01
        Adversarial: True
        """
        assert "secret123" not in repr(mock_credentials)


# =============================================================================
# TOOL TESTS
# =============================================================================

class TestTools:
    """Tests for the mailbox tools."""

    def test_server_results_serializable(self, connected_server):
        """
        Contract: MailboxToolsContract
        Enforces: POST-TOOLS-01
        """
        results = [
            connected_server.pop3_stat(),
            connected_server.pop3_list(),
            connected_server.pop3_list(message_number=1),
            connected_server.pop3_retrieve(message_id="1"),
            connected_server.pop3_top(message_number=1, lines=0),
            connected_server.pop3_delete(message_id="1"),
            connected_server.pop3_reset(),
            connected_server.pop3_noop(),
            connected_server.pop3_connection_status(),
        ]

        for result in results:
            json.loads(connected_server._serialize_result(result))

        status = json.loads(
            connected_server._serialize_result(connected_server.pop3_connection_status())
        )
        assert status["connected"] is True
        assert status["state"] == "transaction"

    def test_stat_parsed(self, connected_server, mock_pop3_session):
        """
        Contract: MailboxToolsContract
        Enforces: POST-TOOLS-01
        """
        assert connected_server.pop3_stat() == {"response": "+OK 2 320", "count": 2, "size": 320}

        session = mock_pop3_session.connect.return_value
        session.stat.return_value = "-ERR maildrop locked"
        assert connected_server.pop3_stat() == {
            "response": "-ERR maildrop locked",
            "count": None,
            "size": None,
        }

    def test_tools_forward_arguments(self, connected_server, mock_pop3_session):
        """
        Contract: MailboxToolsContract
        Enforces: PRE-TOOLS-01
        """
        session = mock_pop3_session.connect.return_value

        connected_server.pop3_list(message_number=2)
        connected_server.pop3_retrieve(message_id="3")
        connected_server.pop3_top(message_number=4, lines=5)
        connected_server.pop3_delete(message_id="6")

        session.list.assert_called_with(2)
        session.retrieve.assert_called_with("3")
        session.top.assert_called_with(4, 5)
        session.delete.assert_called_with("6")

    def test_tool_handlers_cover_registered_tools(self):
        """
        Contract: MailboxToolsContract
        Enforces: POST-TOOLS-01
        """
        handlers = create_server().tool_handlers()

        assert set(handlers) == {
            "pop3_stat",
            "pop3_list",
            "pop3_retrieve",
            "pop3_top",
            "pop3_delete",
            "pop3_reset",
            "pop3_noop",
            "pop3_connection_status",
        }

    def test_server_not_connected(self):
        """
        Contract: MailboxToolsContract
        Enforces: ERRORS: NOT_CONNECTED
        """
        server = create_server()

        with pytest.raises(NotConnectedError):
            server.pop3_stat()
        with pytest.raises(NotConnectedError):
            server.pop3_retrieve(message_id="1")

        status = server.pop3_connection_status()
        assert isinstance(status, ConnectionStatus)
        assert status.connected is False

    def test_server_no_body_or_password_logging(
        self, scripted_server, mock_credentials, caplog
    ):
        """
        Contract: MailboxToolsContract
        Enforces: INV-TOOLS-01
        Adversarial: True

        Runs the real engine against a scripted transport.
        """
        scripted_server(
            b"+OK POP3 server ready\r\n",
            b"+OK send PASS\r\n",
            b"+OK Welcome\r\n",
            b"+OK 60 octets\r\nSubject: payroll\r\n\r\nThis is a test email body.\r\n.\r\n",
            b"+OK bye\r\n",
        )
        server = Pop3MCPServer()

        with caplog.at_level("DEBUG"):
            server.connect(mock_credentials)
            result = server.pop3_retrieve(message_id="1")
            server.disconnect()

        assert result["lines"][-2] == "This is a test email body."
        assert "This is a test email body" not in caplog.text
        assert "secret123" not in caplog.text
