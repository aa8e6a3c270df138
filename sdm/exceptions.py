"""
Error taxonomy for the SDM SDK.

Callers are expected to catch the specific kinds:
- SDMConnectionError: server unreachable or timed out (safe to retry)
- ValidationError: bad model/record, nothing was sent (fix or drop the record)
- WriteError / ReadError: the server rejected the request
"""

from __future__ import annotations

from typing import Optional


class SDMError(Exception):
    """Base class for all SDK errors."""


class SDMConnectionError(SDMError):
    """Connection to the time-series store failed or the client is closed."""


class ValidationError(SDMError, ValueError):
    """Input data or configuration failed validation."""


class SchemaMetadataError(ValidationError):
    """Payload carries no column classification metadata."""


class WriteError(SDMError):
    """Server rejected a write batch."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
        lines_written: int = 0,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.lines_written = lines_written


class ReadError(SDMError):
    """Server rejected a query or returned an unreadable result."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class NotImplementedFeatureError(SDMError, NotImplementedError):
    """Requested mode or language is not supported by this client."""


class RuntimeEnvironmentError(SDMError, RuntimeError):
    """Engine-only helper called outside the SDM engine host."""
