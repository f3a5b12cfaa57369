"""Exception hierarchy for apex-claw.

Tool failures are never raised through the agent loop; they come back as
``"error: ..."`` observations. Everything here is control flow.
"""

from __future__ import annotations

from typing import Optional


class ApexClawError(Exception):
    """Base exception for all apex-claw errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigMissingError(ApexClawError):
    """Raised at startup when a mandatory setting is absent."""

    def __init__(self, message: str, missing: Optional[list[str]] = None) -> None:
        super().__init__(message)
        self.missing = missing or []


class DuplicateToolError(ApexClawError):
    """Raised when a tool name is registered twice."""


class UpstreamError(ApexClawError):
    """Raised when the LLM upstream request fails."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UpstreamAuthError(UpstreamError):
    """Token fetch failed or the upstream rejected our credentials."""


class UpstreamTransientError(UpstreamError):
    """Network failure, timeout or 5xx. The user may retry."""


class EmptyUpstreamError(UpstreamError):
    """The SSE stream finished without any answer text."""


def upstream_error_for_status(status_code: int, detail: str = "") -> UpstreamError:
    """Map a non-success HTTP status from the upstream to an exception."""
    message = f"upstream {status_code}: {detail}" if detail else f"upstream {status_code}"
    if status_code in (401, 403):
        return UpstreamAuthError(message, status_code=status_code)
    if status_code >= 500:
        return UpstreamTransientError(message, status_code=status_code)
    return UpstreamError(message, status_code=status_code)
