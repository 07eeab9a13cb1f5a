"""
POP3 MCP Server
===============

MCP server exposing a single POP3 session as agent tools.

CONTRACT INVARIANTS ENFORCED:
- INV-TOOLS-01: No logging of credentials or message bodies
- INV-TOOLS-02: Single POP3 session per process
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict
from datetime import datetime
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from contracts import (
    AuthFailedError,
    ConnectionStatus,
    NotConnectedError,
    Pop3Error,
    SessionState,
)
from src.pop3_mcp.credentials import Credentials, load_credentials
from src.pop3_mcp.framing import is_ok, parse_stat
from src.pop3_mcp.pop3_client import Pop3Session

# Configure logging to NEVER include message content or passwords (INV-TOOLS-01)
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("pop3-mcp")

_MESSAGE_ID_SCHEMA = {
    "type": "string",
    "description": "Message number as shown by pop3_list (1-based)",
}


class Pop3MCPServer:
    """
    POP3 MCP Server - mailbox access for AI agents.

    Tool results carry raw server replies. A -ERR reply is returned to the
    agent as data; only engine errors become "Error: ..." text.
    """

    def __init__(self) -> None:
        self._session: Pop3Session | None = None
        self._start_time: datetime | None = None
        self._server = Server("pop3-mcp")
        self._setup_tools()

    def _setup_tools(self) -> None:
        """Register MCP tools."""

        @self._server.list_tools()
        async def list_tools() -> list[Tool]:
            return [
                Tool(
                    name="pop3_stat",
                    description="Get message count and maildrop size in octets",
                    inputSchema={"type": "object", "properties": {}},
                ),
                Tool(
                    name="pop3_list",
                    description="List message sizes, or the size of one message",
                    inputSchema={
                        "type": "object",
                        "properties": {
                            "message_number": {
                                "type": "integer",
                                "description": "Only list this message",
                                "minimum": 1,
                            },
                        },
                    },
                ),
                Tool(
                    name="pop3_retrieve",
                    description="Retrieve a full message as lines",
                    inputSchema={
                        "type": "object",
                        "properties": {"message_id": _MESSAGE_ID_SCHEMA},
                        "required": ["message_id"],
                    },
                ),
                Tool(
                    name="pop3_top",
                    description="Retrieve headers and the first N body lines of a message",
                    inputSchema={
                        "type": "object",
                        "properties": {
                            "message_number": {"type": "integer", "minimum": 1},
                            "lines": {"type": "integer", "minimum": 0},
                        },
                        "required": ["message_number", "lines"],
                    },
                ),
                Tool(
                    name="pop3_delete",
                    description="Mark a message deleted; applied when the session ends",
                    inputSchema={
                        "type": "object",
                        "properties": {"message_id": _MESSAGE_ID_SCHEMA},
                        "required": ["message_id"],
                    },
                ),
                Tool(
                    name="pop3_reset",
                    description="Unmark all messages deleted in this session",
                    inputSchema={"type": "object", "properties": {}},
                ),
                Tool(
                    name="pop3_noop",
                    description="Check that the session is alive",
                    inputSchema={"type": "object", "properties": {}},
                ),
                Tool(
                    name="pop3_connection_status",
                    description="Get current connection status",
                    inputSchema={"type": "object", "properties": {}},
                ),
            ]

        @self._server.call_tool()
        async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
            handler = self.tool_handlers().get(name)
            if handler is None:
                return [TextContent(type="text", text=f"Unknown tool: {name}")]

            try:
                result = handler(**(arguments or {}))
            except Pop3Error as e:
                return [TextContent(type="text", text=f"Error: {e.__class__.__name__}: {e}")]

            return [TextContent(type="text", text=self._serialize_result(result))]

    def tool_handlers(self) -> dict[str, Any]:
        """Map tool names to their implementations."""
        return {
            "pop3_stat": self.pop3_stat,
            "pop3_list": self.pop3_list,
            "pop3_retrieve": self.pop3_retrieve,
            "pop3_top": self.pop3_top,
            "pop3_delete": self.pop3_delete,
            "pop3_reset": self.pop3_reset,
            "pop3_noop": self.pop3_noop,
            "pop3_connection_status": self.pop3_connection_status,
        }

    def connect(self, credentials: Credentials) -> None:
        """
        Open the session and authenticate with USER/PASS.

        PRE-TOOLS-01: Both USER and PASS answered +OK
        INV-TOOLS-02: Single session per process

        ERRORS:
        - AUTH_FAILED: USER or PASS answered -ERR
        - CONNECT_FAILED / TRANSPORT_IO: propagated from the engine
        """
        if self._session is not None:
            raise RuntimeError("Session already established")

        session = Pop3Session.connect(
            credentials.server,
            use_tls=credentials.use_tls,
            timeout=credentials.timeout,
        )
        try:
            if not is_ok(session.user(credentials.username)):
                raise AuthFailedError("USER rejected by server")
            if not is_ok(session.pass_(credentials.password)):
                raise AuthFailedError("PASS rejected by server")
        except Pop3Error:
            session.close()
            raise

        self._session = session
        self._start_time = datetime.now()
        logger.info("Connected to POP3 server")  # No credentials logged (INV-TOOLS-01)

    def disconnect(self) -> None:
        """Send QUIT, applying pending deletions, and drop the session."""
        session = self._session
        if session is None:
            return
        try:
            if session.connected:
                session.quit()
        except Pop3Error as e:
            logger.warning(f"QUIT failed, connection closed anyway: {e}")
        finally:
            self._session = None
            self._start_time = None
            logger.info("Disconnected from POP3 server")

    def _require_session(self) -> Pop3Session:
        """Ensure session is connected."""
        if self._session is None or not self._session.connected:
            raise NotConnectedError("Not connected to POP3 server")
        return self._session

    def pop3_stat(self) -> dict:
        session = self._require_session()
        logger.info("STAT")
        response = session.stat()
        count, size = parse_stat(response) if is_ok(response) else (None, None)
        return {"response": response, "count": count, "size": size}

    def pop3_list(self, *, message_number: int | None = None) -> dict:
        session = self._require_session()
        logger.info(f"LIST {message_number if message_number is not None else ''}".rstrip())
        return {"lines": session.list(message_number)}

    def pop3_retrieve(self, *, message_id: str) -> dict:
        session = self._require_session()
        # Log operation but NEVER log message content (INV-TOOLS-01)
        logger.info(f"RETR {message_id}")
        return {"lines": session.retrieve(message_id)}

    def pop3_top(self, *, message_number: int, lines: int) -> dict:
        session = self._require_session()
        logger.info(f"TOP {message_number} {lines}")
        return {"lines": session.top(message_number, lines)}

    def pop3_delete(self, *, message_id: str) -> dict:
        session = self._require_session()
        logger.info(f"DELE {message_id}")
        return {"response": session.delete(message_id)}

    def pop3_reset(self) -> dict:
        session = self._require_session()
        logger.info("RSET")
        return {"response": session.reset()}

    def pop3_noop(self) -> dict:
        session = self._require_session()
        return {"response": session.noop()}

    def pop3_connection_status(self) -> ConnectionStatus:
        """
        Get connection status.

        POST-TOOLS-02: connected reflects actual state.
        Always succeeds.
        """
        session = self._session
        if session is None or not session.connected:
            return ConnectionStatus(
                connected=False,
                server="",
                encrypted=session.is_encrypted if session else False,
                state=session.state if session else SessionState.TERMINATED,
                greeting="",
                uptime_seconds=0,
            )

        uptime = 0
        if self._start_time:
            uptime = int((datetime.now() - self._start_time).total_seconds())

        return ConnectionStatus(
            connected=True,
            server=session.address,
            encrypted=session.is_encrypted,
            state=session.state,
            greeting=session.greeting,
            uptime_seconds=uptime,
        )

    def _serialize_result(self, result: Any) -> str:
        """Serialize result to JSON string."""
        import json

        def default_serializer(obj: Any) -> Any:
            if hasattr(obj, "__dataclass_fields__"):
                return asdict(obj)
            if hasattr(obj, "value"):  # Enum
                return obj.value
            raise TypeError(f"Cannot serialize {type(obj)}")

        return json.dumps(result, default=default_serializer, indent=2)

    async def run(self) -> None:
        """Run the MCP server."""
        async with stdio_server() as (read_stream, write_stream):
            await self._server.run(
                read_stream, write_stream, self._server.create_initialization_options()
            )


# Singleton for process lifetime
_server_instance: Pop3MCPServer | None = None


def get_server() -> Pop3MCPServer:
    """Get or create the server singleton."""
    global _server_instance
    if _server_instance is None:
        _server_instance = Pop3MCPServer()
    return _server_instance


def create_server() -> Pop3MCPServer:
    """Create a new server instance (for testing)."""
    return Pop3MCPServer()


def main() -> None:
    """Load credentials from the environment, connect, and serve over stdio."""
    credentials = load_credentials()
    server = get_server()
    server.connect(credentials)
    try:
        asyncio.run(server.run())
    finally:
        server.disconnect()


if __name__ == "__main__":
    main()
