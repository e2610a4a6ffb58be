"""SDK exception types."""

from __future__ import annotations

from typing import Any


class AdAgentError(Exception):
    """Base SDK error."""


class AdAgentAPIError(AdAgentError):
    """API request failed.

    Parameters
    ----------
    message : str
        Error message.
    status_code : int | None, default=None
        HTTP status code if available.
    code : str | None, default=None
        Error code from the response envelope.
    details : dict[str, Any] | None, default=None
        Machine-readable error details.
    request_id : str | None, default=None
        Server request id, for support.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        *,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        request_id: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.code = code
        self.details = details or {}
        self.request_id = request_id
        super().__init__(message)


class AdAgentAuthError(AdAgentAPIError):
    """API key missing, malformed, unknown, revoked or expired."""


class AdAgentPermissionError(AdAgentAPIError):
    """API key lacks the scope or the organization for the request."""


class AdAgentValidationError(AdAgentAPIError):
    """Request payload was rejected."""


class AdAgentNotFoundError(AdAgentAPIError):
    """Requested resource was not found."""


class AdAgentConflictError(AdAgentAPIError):
    """Resource already exists, e.g. a duplicate assignment."""


class AdAgentBudgetExceededError(AdAgentAPIError):
    """Campaign would push a month over the organization's budget ceiling."""

    @property
    def affected_month(self) -> str | None:
        """Month that overflowed, as ``YYYY-MM``."""
        return self.details.get("affected_month")

    @property
    def available(self) -> int | None:
        """Budget still free in the affected month."""
        return self.details.get("available")


class AdAgentRateLimitError(AdAgentAPIError):
    """Caller hit a rate limit."""

    @property
    def retry_after(self) -> int | None:
        """Seconds to wait before retrying."""
        return self.details.get("retry_after")
