"""
Credentials Management
======================

Connection settings and credentials for the tool server, read from
environment variables. The session engine never reads the environment;
only this module does.

Credentials are held in memory only and never logged.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from contracts import CredentialsNotFoundError

USER_KEY = "POP3_USER"
PASSWORD_KEY = "POP3_PASSWORD"
SERVER_KEY = "POP3_SERVER"
USE_TLS_KEY = "POP3_USE_TLS"
TIMEOUT_KEY = "POP3_TIMEOUT"

DEFAULT_SERVER = "pop.gmail.com:995"
DEFAULT_TIMEOUT = 30.0

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Credentials:
    """POP3 account credentials and connection settings."""

    username: str
    password: str = field(repr=False)
    server: str = DEFAULT_SERVER
    use_tls: bool = True
    timeout: float | None = DEFAULT_TIMEOUT


def _parse_bool(key: str, value: str) -> bool:
    normalized = value.strip().lower()
    if normalized in _TRUE:
        return True
    if normalized in _FALSE:
        return False
    raise CredentialsNotFoundError(f"{key} must be a boolean, got {value!r}")


def load_credentials(environ: Mapping[str, str] | None = None) -> Credentials:
    """
    Build Credentials from environment variables.

    PRE: POP3_USER and POP3_PASSWORD are set and non-empty
    POST: Returns Credentials; optional keys fall back to defaults

    ERRORS:
    - CredentialsNotFoundError: required key missing, or optional key invalid
    """
    env = os.environ if environ is None else environ

    username = env.get(USER_KEY, "")
    password = env.get(PASSWORD_KEY, "")
    if not username:
        raise CredentialsNotFoundError(f"{USER_KEY} is not set")
    if not password:
        raise CredentialsNotFoundError(f"{PASSWORD_KEY} is not set")

    use_tls = True
    if env.get(USE_TLS_KEY):
        use_tls = _parse_bool(USE_TLS_KEY, env[USE_TLS_KEY])

    timeout: float | None = DEFAULT_TIMEOUT
    if env.get(TIMEOUT_KEY):
        try:
            timeout = float(env[TIMEOUT_KEY])
        except ValueError as e:
            raise CredentialsNotFoundError(f"{TIMEOUT_KEY} must be a number") from e
        if timeout <= 0:
            timeout = None

    return Credentials(
        username=username,
        password=password,
        server=env.get(SERVER_KEY) or DEFAULT_SERVER,
        use_tls=use_tls,
        timeout=timeout,
    )
