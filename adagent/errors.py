"""Agent API error taxonomy and response rendering."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from fastapi import FastAPI, Request, status
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

AGENT_PATH_PREFIX = "/api/v1/agent"


class ErrorCode(str, Enum):
    """Stable error codes returned to agent clients."""

    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    DUPLICATE_RESOURCE = "DUPLICATE_RESOURCE"
    BUDGET_EXCEEDED = "BUDGET_EXCEEDED"
    DATABASE_ERROR = "DATABASE_ERROR"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AgentAPIError(Exception):
    """Base error rendered as an agent API error envelope.

    Parameters
    ----------
    message : str
        Human-readable message.
    details : dict[str, Any] | None, default=None
        Machine-readable details.
    headers : dict[str, str] | None, default=None
        Extra response headers.
    """

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.details = details
        self.headers = headers or {}
        super().__init__(self.message)


class UnauthorizedError(AgentAPIError):
    """Missing, malformed, unknown, revoked or expired API key."""

    code = ErrorCode.UNAUTHORIZED
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid or missing API key"


class ForbiddenError(AgentAPIError):
    """Valid key without the required scope or organization."""

    code = ErrorCode.FORBIDDEN
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Insufficient permissions"


class ValidationError(AgentAPIError):
    """Malformed input."""

    code = ErrorCode.VALIDATION_ERROR
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid input data"


class NotFoundError(AgentAPIError):
    """Requested resource does not exist.

    Parameters
    ----------
    resource : str
        Human-readable resource name.
    resource_id : str | int | None, default=None
        Identifier that was looked up.
    """

    code = ErrorCode.RESOURCE_NOT_FOUND
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, resource_id: str | int | None = None) -> None:
        message = (
            f"{resource} with ID {resource_id} not found"
            if resource_id is not None
            else f"{resource} not found"
        )
        super().__init__(
            message,
            {"resource": resource, "id": resource_id},
        )


class ConflictError(AgentAPIError):
    """Resource already exists."""

    code = ErrorCode.DUPLICATE_RESOURCE
    status_code = status.HTTP_409_CONFLICT
    default_message = "Resource already exists"


class BudgetExceededError(AgentAPIError):
    """Campaign budget would push a month over the organization ceiling."""

    code = ErrorCode.BUDGET_EXCEEDED
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, details: dict[str, Any]) -> None:
        super().__init__(message, details)


class RateLimitError(AgentAPIError):
    """Caller exhausted its request quota."""

    code = ErrorCode.RATE_LIMIT_EXCEEDED
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Rate limit exceeded. Please try again later."


class DatabaseError(AgentAPIError):
    """Datastore operation failed."""

    code = ErrorCode.DATABASE_ERROR
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Database operation failed"


class InternalError(AgentAPIError):
    """Unexpected failure."""


def request_id_for(request: Request) -> str:
    """Return the request id assigned by the middleware.

    Parameters
    ----------
    request : Request
        Incoming request.

    Returns
    -------
    str
        Existing request id, or a fresh one for requests that bypassed the
        middleware.
    """
    request_id = getattr(request.state, "request_id", None)
    if request_id is None:
        request_id = f"req_{uuid4().hex}"
        request.state.request_id = request_id
    return request_id


def error_body(
    code: ErrorCode,
    message: str,
    request_id: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build the agent API error envelope.

    Parameters
    ----------
    code : ErrorCode
        Stable error code.
    message : str
        Human-readable message.
    request_id : str
        Request correlation id.
    details : dict[str, Any] | None, default=None
        Optional machine-readable details.

    Returns
    -------
    dict[str, Any]
        JSON-serializable envelope.
    """
    error: dict[str, Any] = {
        "code": code.value,
        "message": message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "request_id": request_id,
    }
    if details is not None:
        error["details"] = details
    return {"success": False, "error": error}


async def agent_api_error_handler(request: Request, exc: AgentAPIError) -> JSONResponse:
    """Render an :class:`AgentAPIError`."""
    return JSONResponse(
        error_body(exc.code, exc.message, request_id_for(request), exc.details),
        status_code=exc.status_code,
        headers=exc.headers or None,
    )


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render request validation failures.

    Agent paths get the envelope with a field/message list; every other path
    keeps FastAPI's default body.
    """
    if not request.url.path.startswith(AGENT_PATH_PREFIX):
        return await request_validation_exception_handler(request, exc)
    errors = [
        {
            "field": ".".join(str(part) for part in error["loc"] if part != "body"),
            "message": error["msg"],
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        error_body(
            ErrorCode.VALIDATION_ERROR,
            "Validation failed",
            request_id_for(request),
            {"errors": errors},
        ),
        status_code=status.HTTP_400_BAD_REQUEST,
    )


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Hide raw datastore errors behind ``DATABASE_ERROR``."""
    logger.error("Database error on %s", request.url.path, exc_info=exc)
    return JSONResponse(
        error_body(
            ErrorCode.DATABASE_ERROR,
            DatabaseError.default_message,
            request_id_for(request),
        ),
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render anything unexpected as ``INTERNAL_ERROR``."""
    logger.error("Unhandled error on %s", request.url.path, exc_info=exc)
    return JSONResponse(
        error_body(
            ErrorCode.INTERNAL_ERROR,
            InternalError.default_message,
            request_id_for(request),
        ),
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the agent API exception handlers.

    Parameters
    ----------
    app : FastAPI
        Application instance.

    Returns
    -------
    None
        Mutates the application.
    """
    app.add_exception_handler(AgentAPIError, agent_api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
