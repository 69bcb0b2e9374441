"""Exceptions raised by upstream clients and turned into inline tool errors."""

from __future__ import annotations

from typing import Optional


class UpstreamError(Exception):
    """Base exception for failed upstream calls."""

    def __init__(
        self,
        message: str,
        *,
        code: Optional[int | str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code


class UpstreamUnreachableError(UpstreamError):
    """Raised when the upstream host cannot be reached."""


class UpstreamHTTPError(UpstreamError):
    """Raised when the upstream answers with a non-JSON HTTP error."""


class UpstreamResponseError(UpstreamError):
    """Raised when the upstream body is not the expected shape."""


class RpcError(UpstreamError):
    """Raised when a JSON-RPC response carries an ``error`` object."""
