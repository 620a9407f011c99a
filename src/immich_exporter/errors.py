"""
Errors raised while talking to the Immich API.

The collector treats every ImmichError the same way: log it and leave the
resource out of the snapshot. ConfigError is only raised at startup.
"""

from __future__ import annotations

from typing import Optional


class ImmichError(Exception):
    """Base class for upstream request/decode failures."""


class TransportError(ImmichError):
    """The request could not complete (connect failure, timeout, reset)."""


class HTTPStatusError(ImmichError):
    """The server answered with something other than 200 OK."""

    def __init__(self, status_code: int, url: str, body: Optional[str] = None):
        self.status_code = status_code
        self.url = url
        self.body = body
        super().__init__(f"unexpected status code {status_code} from {url}")


class DecodeError(ImmichError):
    """The response body was not JSON of the expected shape."""


class ConfigError(ValueError):
    """Missing or invalid startup configuration."""
