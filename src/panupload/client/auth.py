"""Access token providers.

Token acquisition and refresh happen elsewhere; the HTTP client only asks a
provider for the current token before each request.
"""

from __future__ import annotations

import os
from typing import Protocol

from panupload.core.errors import AuthenticationError

TOKEN_ENV_VAR = "PANUPLOAD_ACCESS_TOKEN"


class TokenProvider(Protocol):
    """Source of the current bearer access token."""

    def current_access_token(self) -> str:
        """Return the access token to send with the next request."""
        ...


class StaticTokenProvider:
    """Provider returning a fixed token."""

    def __init__(self, token: str) -> None:
        self._token = token

    def current_access_token(self) -> str:
        if not self._token:
            raise AuthenticationError("No access token configured")
        return self._token


class EnvTokenProvider:
    """Provider reading the token from an environment variable on each call.

    Lets an external refresher rotate the token without restarting uploads.
    When the variable is unset or empty, `fallback` is used instead (the CLI
    passes the token stored in its config file).
    """

    def __init__(self, var: str = TOKEN_ENV_VAR, fallback: str = "") -> None:
        self._var = var
        self._fallback = fallback

    def current_access_token(self) -> str:
        token = os.environ.get(self._var) or self._fallback
        if not token:
            raise AuthenticationError(f"No access token: {self._var} is not set")
        return token
