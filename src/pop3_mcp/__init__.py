"""
POP3 MCP Server
===============

Synchronous POP3 client engine and an MCP server exposing it to AI agents.
"""

__version__ = "0.1.0"

from src.pop3_mcp.credentials import Credentials, load_credentials
from src.pop3_mcp.pop3_client import Pop3Session, connect, log_event
from src.pop3_mcp.server import Pop3MCPServer, create_server, get_server
from src.pop3_mcp.transport import Transport

__all__ = [
    "Pop3MCPServer",
    "get_server",
    "create_server",
    "Pop3Session",
    "connect",
    "log_event",
    "Transport",
    "Credentials",
    "load_credentials",
]
