"""Audit logging service.

Dashboard events are written in the caller's transaction by :func:`log_event`.
Agent API requests are recorded off the request path: the middleware builds an
:class:`AgentAuditEntry` and hands it to the :class:`AuditWriter`, whose
failures are logged and dead-lettered but never raised.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from adagent.models.audit import AgentAuditLog, AuditLog

logger = logging.getLogger(__name__)

SENSITIVE_KEYS = ("password", "api_key", "apikey", "token", "secret", "authorization")
REDACTED = "[REDACTED]"
TRUNCATED_SUFFIX = "...[TRUNCATED]"
EXPLICIT_ACTIONS = frozenset({"create", "list", "update", "delete", "get", "status"})
_PATH_PREFIXES = ("/api/v1/agent", "/api")


async def log_event(
    session: AsyncSession,
    *,
    org_id: UUID,
    action: str,
    resource_type: str,
    resource_id: str,
    metadata: dict[str, Any],
) -> AuditLog:
    """Persist a dashboard audit event.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    org_id : UUID
        Organization identifier.
    action : str
        Event action, e.g. ``api_key_revoked``.
    resource_type : str
        Kind of resource touched.
    resource_id : str
        String resource identifier.
    metadata : dict[str, Any]
        Additional event metadata.

    Returns
    -------
    AuditLog
        Persisted audit record.
    """
    event = AuditLog(
        org_id=org_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        event_metadata=metadata,
    )
    session.add(event)
    await session.flush()
    return event


def sanitize(value: Any) -> Any:
    """Redact sensitive keys at any depth.

    A key is sensitive when its lowercased name contains one of
    :data:`SENSITIVE_KEYS`. Lists are traversed; scalars are returned as is.

    Parameters
    ----------
    value : Any
        JSON-like value.

    Returns
    -------
    Any
        Copy with sensitive values replaced by ``[REDACTED]``.
    """
    if isinstance(value, Mapping):
        return {
            key: REDACTED
            if any(marker in str(key).lower() for marker in SENSITIVE_KEYS)
            else sanitize(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [sanitize(item) for item in value]
    return value


def truncate(value: Any, max_size: int) -> Any:
    """Bound the serialized size of an audit body.

    Parameters
    ----------
    value : Any
        JSON-like value.
    max_size : int
        Maximum serialized length in characters.

    Returns
    -------
    Any
        ``value`` itself when small enough, otherwise a marker object holding
        the serialized prefix.
    """
    if value is None:
        return None
    serialized = json.dumps(value, default=str)
    if len(serialized) <= max_size:
        return value
    return {
        "__truncated": True,
        "__original_size": len(serialized),
        "data": serialized[:max_size] + TRUNCATED_SUFFIX,
    }


def extract_action(method: str, path: str) -> str:
    """Derive a dotted action name from a request.

    Examples: ``POST /api/v1/agent/campaigns/create`` gives
    ``campaigns.create`` and ``POST /api/v1/agent/campaigns/7/assets`` gives
    ``campaigns.assets.assign``.

    Parameters
    ----------
    method : str
        HTTP method.
    path : str
        Request path.

    Returns
    -------
    str
        Action name, or ``unknown`` when the path has no segments.
    """
    for prefix in _PATH_PREFIXES:
        if path == prefix or path.startswith(prefix + "/"):
            path = path[len(prefix):]
    segments = [segment for segment in path.split("/") if segment]
    if not segments:
        return "unknown"

    method = method.upper()
    resource, last = segments[0], segments[-1]
    if last in EXPLICIT_ACTIONS:
        return f"{resource}.{last}"
    if method == "POST" and len(segments) > 2:
        return f"{resource}.{segments[2]}.assign"
    if method == "DELETE" and len(segments) > 2:
        return f"{resource}.{segments[2]}.unassign"
    if method == "GET" and len(segments) == 2:
        return f"{resource}.get"
    if method == "DELETE":
        return f"{resource}.delete"
    if method in {"PATCH", "PUT"}:
        return f"{resource}.update"
    return f"{resource}.{method.lower()}"


def extract_resource_info(action: str, body: Any) -> tuple[str | None, str | None]:
    """Find the resource type and id an agent response refers to.

    Parameters
    ----------
    action : str
        Action from :func:`extract_action`.
    body : Any
        Parsed response body.

    Returns
    -------
    tuple[str | None, str | None]
        ``(resource_type, resource_id)``; both ``None`` without a ``data``
        object.
    """
    if not isinstance(body, Mapping) or not isinstance(body.get("data"), Mapping):
        return None, None
    data = body["data"]
    resource_type = action.split(".")[0]
    for key in ("id", "campaign_id", "asset_id", "audience_id"):
        if data.get(key) is not None:
            return resource_type, str(data[key])
    for key in ("campaign", "asset", "audience"):
        nested = data.get(key)
        if isinstance(nested, Mapping) and nested.get("id") is not None:
            return resource_type, str(nested["id"])
    return resource_type, None


def client_ip(headers: Mapping[str, str]) -> str:
    """Return the caller address reported by the proxy headers."""
    return headers.get("x-forwarded-for") or headers.get("x-real-ip") or "unknown"


@dataclass(slots=True)
class AgentAuditEntry:
    """One agent request/response pair, ready to persist."""

    api_key_id: UUID
    org_id: UUID
    action: str
    request_method: str
    request_path: str
    response_status: int
    duration_ms: int
    resource_type: str | None = None
    resource_id: str | None = None
    request_body: Any = None
    response_body: Any = None
    error_message: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_model(self) -> AgentAuditLog:
        return AgentAuditLog(**asdict(self))

    def to_json(self) -> str:
        return json.dumps(asdict(self), default=str)


def build_entry(
    *,
    api_key_id: UUID,
    org_id: UUID,
    method: str,
    path: str,
    headers: Mapping[str, str],
    request_body: Any,
    response_status: int,
    response_body: Any,
    duration_ms: int,
    max_body_size: int,
    error_message: str | None = None,
) -> AgentAuditEntry:
    """Assemble a sanitized, size-bounded audit entry.

    Parameters
    ----------
    api_key_id : UUID
        Authenticated key.
    org_id : UUID
        Owning organization.
    method : str
        HTTP method.
    path : str
        Request path.
    headers : Mapping[str, str]
        Lowercased request headers.
    request_body : Any
        Parsed request body, if any.
    response_status : int
        HTTP status sent.
    response_body : Any
        Parsed response body, if any.
    duration_ms : int
        Handling time in milliseconds.
    max_body_size : int
        Truncation threshold for both bodies.
    error_message : str | None, default=None
        Explicit error; taken from the error envelope when omitted.

    Returns
    -------
    AgentAuditEntry
        Entry for the writer.
    """
    action = extract_action(method, path)
    resource_type, resource_id = extract_resource_info(action, response_body)
    if error_message is None and isinstance(response_body, Mapping):
        error = response_body.get("error")
        if isinstance(error, Mapping) and error.get("message"):
            error_message = str(error["message"])
    return AgentAuditEntry(
        api_key_id=api_key_id,
        org_id=org_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        request_method=method,
        request_path=path,
        request_body=truncate(sanitize(request_body), max_body_size),
        response_status=response_status,
        response_body=truncate(sanitize(response_body), max_body_size),
        error_message=error_message,
        ip_address=client_ip(headers),
        user_agent=headers.get("user-agent") or "unknown",
        duration_ms=duration_ms,
    )


class AuditWriter:
    """Background persistence for agent audit entries.

    Entries are queued by :meth:`submit` and written by a worker task that is
    started on first use. A write is retried with exponential backoff; entries
    that still fail, or that arrive while the queue is full, are appended to
    the dead-letter file.

    Parameters
    ----------
    session_factory : Callable[[], AsyncSession]
        Factory for the sessions used by the worker.
    dead_letter_path : Path
        JSON-lines file for entries that could not be persisted.
    queue_size : int, default=1000
        Queue capacity.
    max_retries : int, default=3
        Retries after the first failed write.
    retry_backoff_seconds : float, default=0.05
        Delay before the first retry; doubled on each further retry.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        dead_letter_path: Path,
        *,
        queue_size: int = 1000,
        max_retries: int = 3,
        retry_backoff_seconds: float = 0.05,
    ) -> None:
        self.session_factory = session_factory
        self.dead_letter_path = dead_letter_path
        self.queue_size = queue_size
        self.max_retries = max_retries
        self.retry_backoff_seconds = retry_backoff_seconds
        self._queue: asyncio.Queue[AgentAuditEntry] | None = None
        self._worker: asyncio.Task[None] | None = None

    def submit(self, entry: AgentAuditEntry) -> None:
        """Queue an entry without waiting for it to be written.

        Parameters
        ----------
        entry : AgentAuditEntry
            Entry to persist.

        Returns
        -------
        None
            Never raises.
        """
        if self._queue is None:
            self._queue = asyncio.Queue(maxsize=self.queue_size)
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(
                self._run(self._queue), name="agent-audit-writer"
            )
        try:
            self._queue.put_nowait(entry)
        except asyncio.QueueFull:
            # Synchronous append; only reached when the writer is saturated.
            self.dead_letter(entry, "audit queue full", attempts=0)

    async def write(self, entry: AgentAuditEntry) -> bool:
        """Persist one entry, retrying transient failures.

        Parameters
        ----------
        entry : AgentAuditEntry
            Entry to persist.

        Returns
        -------
        bool
            ``True`` when stored, ``False`` when dead-lettered.
        """
        attempts = self.max_retries + 1
        last_error = ""
        for attempt in range(attempts):
            try:
                async with self.session_factory() as session:
                    session.add(entry.to_model())
                    await session.commit()
                return True
            except Exception as exc:
                last_error = f"{type(exc).__name__}: {exc}"
                logger.warning(
                    "Audit write failed (attempt %s/%s) for %s: %s",
                    attempt + 1,
                    attempts,
                    entry.action,
                    last_error,
                )
                if attempt + 1 < attempts:
                    await asyncio.sleep(self.retry_backoff_seconds * 2**attempt)
        await asyncio.to_thread(self.dead_letter, entry, last_error, attempts=attempts)
        return False

    def dead_letter(self, entry: AgentAuditEntry, error: str, *, attempts: int) -> None:
        """Append an unpersisted entry to the dead-letter file."""
        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "error": error,
            "attempts": attempts,
            "entry": json.loads(entry.to_json()),
        }
        try:
            self.dead_letter_path.parent.mkdir(parents=True, exist_ok=True)
            with self.dead_letter_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(record) + "\n")
        except OSError:
            logger.exception("Could not dead-letter audit entry %s", entry.to_json())
            return
        logger.error(
            "Dead-lettered audit entry for %s %s: %s",
            entry.request_method,
            entry.request_path,
            error,
        )

    async def drain(self) -> None:
        """Wait until every queued entry has been written or dead-lettered."""
        if self._queue is not None:
            await self._queue.join()

    async def close(self) -> None:
        """Drain the queue and stop the worker."""
        await self.drain()
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

    async def _run(self, queue: asyncio.Queue[AgentAuditEntry]) -> None:
        while True:
            entry = await queue.get()
            try:
                await self.write(entry)
            finally:
                queue.task_done()


@lru_cache(maxsize=1)
def get_audit_writer() -> AuditWriter:
    """Return the process-wide audit writer.

    Returns
    -------
    AuditWriter
        Writer bound to the configured database and dead-letter file.
    """
    from adagent.config import get_settings
    from adagent.database import SessionLocal

    settings = get_settings()
    return AuditWriter(
        SessionLocal,
        settings.audit_dead_letter_path,
        queue_size=settings.audit_queue_size,
        max_retries=settings.audit_max_retries,
        retry_backoff_seconds=settings.audit_retry_backoff_seconds,
    )
