"""ASGI middleware for the agent API surface."""

from __future__ import annotations

import json
import logging
import time
from typing import Any
from uuid import uuid4

from starlette.datastructures import MutableHeaders
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from adagent.config import get_settings
from adagent.errors import AGENT_PATH_PREFIX, ErrorCode, InternalError, error_body
from adagent.logging_config import request_id_var
from adagent.services.audit import build_entry, get_audit_writer
from adagent.services.auth import AgentContext

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def _parse_body(chunks: list[bytes]) -> Any:
    raw = b"".join(chunks)
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None


class AgentAPIMiddleware:
    """Tag responses and record agent requests in the audit trail.

    Every HTTP response gets an ``X-Request-ID`` header. Responses to
    authenticated agent requests also carry the ``X-RateLimit-*`` headers, and
    once such a response has been sent an audit entry is handed to the audit
    writer. Unhandled exceptions are rendered here as ``INTERNAL_ERROR`` so the
    500 carries the same headers; one raised after the response has started is
    recorded and re-raised.

    Parameters
    ----------
    app : ASGIApp
        Wrapped application.
    path_prefix : str, default=AGENT_PATH_PREFIX
        Paths treated as agent API requests.
    """

    def __init__(self, app: ASGIApp, path_prefix: str = AGENT_PATH_PREFIX) -> None:
        self.app = app
        self.path_prefix = path_prefix

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        state = scope.setdefault("state", {})
        request_id = state.get("request_id") or f"req_{uuid4().hex}"
        state["request_id"] = request_id
        token = request_id_var.set(request_id)

        is_agent = scope["path"].startswith(self.path_prefix)
        started = time.perf_counter()
        request_chunks: list[bytes] = []
        response_chunks: list[bytes] = []
        response_status = 500
        response_started = False

        async def receive_wrapper() -> Message:
            message = await receive()
            if is_agent and message["type"] == "http.request":
                request_chunks.append(message.get("body", b""))
            return message

        async def send_wrapper(message: Message) -> None:
            nonlocal response_status, response_started
            if message["type"] == "http.response.start":
                response_started = True
                response_status = message["status"]
                headers = MutableHeaders(scope=message)
                headers[REQUEST_ID_HEADER] = request_id
                context: AgentContext | None = state.get("agent")
                if context is not None:
                    for name, value in context.rate_limit.headers().items():
                        if name not in headers:
                            headers[name] = value
            elif is_agent and message["type"] == "http.response.body":
                response_chunks.append(message.get("body", b""))
            await send(message)

        try:
            await self.app(scope, receive_wrapper, send_wrapper)
        except Exception as exc:
            if response_started:
                if is_agent:
                    self._record(
                        scope,
                        state,
                        started,
                        request_chunks,
                        500,
                        {"error": str(exc)},
                        error_message=str(exc),
                    )
                raise
            logger.error("Unhandled error on %s", scope["path"], exc_info=exc)
            response = JSONResponse(
                error_body(
                    ErrorCode.INTERNAL_ERROR, InternalError.default_message, request_id
                ),
                status_code=500,
            )
            await response(scope, receive, send_wrapper)
            if is_agent:
                self._record(
                    scope,
                    state,
                    started,
                    request_chunks,
                    500,
                    _parse_body(response_chunks),
                    error_message=str(exc),
                )
        else:
            if is_agent:
                self._record(
                    scope,
                    state,
                    started,
                    request_chunks,
                    response_status,
                    _parse_body(response_chunks),
                )
        finally:
            request_id_var.reset(token)

    @staticmethod
    def _record(
        scope: Scope,
        state: dict[str, Any],
        started: float,
        request_chunks: list[bytes],
        response_status: int,
        response_body: Any,
        error_message: str | None = None,
    ) -> None:
        context: AgentContext | None = state.get("agent")
        if context is None:
            # unauthenticated; already logged by the auth dependency
            return
        headers = {
            key.decode("latin-1").lower(): value.decode("latin-1")
            for key, value in scope.get("headers", [])
        }
        try:
            entry = build_entry(
                api_key_id=context.api_key_id,
                org_id=context.org_id,
                method=scope["method"],
                path=scope["path"],
                headers=headers,
                request_body=_parse_body(request_chunks),
                response_status=response_status,
                response_body=response_body,
                duration_ms=int((time.perf_counter() - started) * 1000),
                max_body_size=get_settings().audit_max_body_size,
                error_message=error_message,
            )
            get_audit_writer().submit(entry)
        except Exception:
            logger.exception("Failed to queue audit entry for %s", scope["path"])
