"""Exceptions raised by the query pipeline.

Validation problems (unknown variable, unknown value, missing dimension) are
never raised; they are reported in ``ValidationResult.errors``.
"""
from __future__ import annotations

import math
from typing import Any


class ScbQueryError(Exception):
    """Base exception for the project."""


class QuotaExceeded(ScbQueryError):
    """Raised when the usage window (local or server-side) has no call left."""

    def __init__(self, retry_after: float, used: int | None = None, capacity: int | None = None,
                 server_side: bool = False):
        self.retry_after = max(0.0, retry_after)
        self.used = used
        self.capacity = capacity
        self.server_side = server_side
        if server_side:
            msg = "Rate limit exceeded (429). Wait and try again."
        else:
            msg = f"Rate limit exceeded. Try again in {self.retry_after_seconds} seconds."
            if used is not None and capacity is not None:
                msg += f" Current usage: {used}/{capacity}"
        super().__init__(msg)

    @property
    def retry_after_seconds(self) -> int:
        """Whole seconds to wait, rounded up."""
        return math.ceil(self.retry_after)


class TransportError(ScbQueryError):
    """Raised when no HTTP response was received.

    ``sent`` is False only when the request never left the process
    (connection refused, connect timeout); a read timeout or a dropped
    connection may still have been counted by the server.
    """

    def __init__(self, message: str, sent: bool = True):
        self.sent = sent
        super().__init__(message)


class ApiRequestError(ScbQueryError):
    """Raised for non-2xx responses other than 429."""

    def __init__(self, status: int, message: str, tips: list[str] | None = None):
        self.status = status
        self.tips = tips or []
        full = message
        if self.tips:
            full += "\n\nTroubleshooting suggestions:\n" + "\n".join(f"• {t}" for t in self.tips)
        super().__init__(full)


class ResponseFormatError(ScbQueryError):
    """Raised when a response is not JSON or does not match the expected schema."""


class MetadataUnavailable(ScbQueryError):
    """Raised when table metadata cannot be fetched or parsed."""

    def __init__(self, table_id: str, reason: str):
        self.table_id = table_id
        self.reason = reason
        super().__init__(f"Metadata for table '{table_id}' is unavailable: {reason}")


class MalformedPayload(ScbQueryError):
    """Raised when a dataset's value array does not match its dimension sizes."""


class SelectionInvalid(ScbQueryError):
    """Raised by data fetches whose selection failed validation."""

    def __init__(self, result: Any):
        self.result = result
        msg = "Selection validation failed:\n" + "\n".join(result.errors)
        if result.suggestions:
            msg += "\n\nSuggestions:\n" + "\n".join(result.suggestions)
        super().__init__(msg)
