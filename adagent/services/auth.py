"""Authentication and authorization dependencies."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from adagent.config import get_settings
from adagent.database import get_session
from adagent.errors import ForbiddenError, RateLimitError, UnauthorizedError
from adagent.models.api_key import ApiKey
from adagent.models.token import AdminToken
from adagent.services.api_keys import resolve_api_key
from adagent.services.ratelimit import RateLimitResult, action_for_path, get_rate_limiter
from adagent.services.security import is_well_formed_api_key, lookup_hash, verify_token

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

RESOURCES = frozenset({"campaigns", "assets", "audiences", "budget"})
ACTIONS = frozenset({"read", "write", "delete"})
WILDCARD = "*"
EXPECTED_FORMAT = "Authorization: Bearer <api-key>"


@dataclass(slots=True)
class AgentContext:
    """Identity of an authenticated agent request.

    Values are copied off the key row so they stay readable after the
    request session is closed or rolled back.

    Attributes
    ----------
    api_key_id : UUID
        Resolved key identifier.
    org_id : UUID
        Organization the key belongs to.
    key_name : str
        Display name of the key.
    permissions : Mapping[str, list[str]]
        Granted scopes.
    action : str
        Rate-limit action of the request.
    rate_limit : RateLimitResult
        Quota state after counting this request.
    """

    api_key_id: UUID
    org_id: UUID
    key_name: str
    permissions: Mapping[str, list[str]]
    action: str
    rate_limit: RateLimitResult

    @classmethod
    def for_key(
        cls, api_key: ApiKey, action: str, rate_limit: RateLimitResult
    ) -> AgentContext:
        return cls(
            api_key_id=api_key.id,
            org_id=api_key.org_id,
            key_name=api_key.name,
            permissions=dict(api_key.permissions or {}),
            action=action,
            rate_limit=rate_limit,
        )


async def require_admin_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_session),
) -> AdminToken:
    """Authenticate a dashboard admin token.

    Parameters
    ----------
    credentials : HTTPAuthorizationCredentials | None
        Parsed bearer token.
    session : AsyncSession
        Active database session.

    Returns
    -------
    AdminToken
        Authenticated admin token row.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing token",
        )
    result = await session.execute(
        select(AdminToken).where(
            AdminToken.token_lookup == lookup_hash(credentials.credentials),
            AdminToken.revoked_at.is_(None),
        )
    )
    for admin_token in result.scalars().all():
        if verify_token(credentials.credentials, admin_token.token_hash):
            return admin_token
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid admin token",
    )


def parse_api_key(authorization: str | None, prefix: str) -> str:
    """Extract the API key from a raw ``Authorization`` header.

    Parameters
    ----------
    authorization : str | None
        Header value.
    prefix : str
        Prefix every issued key starts with.

    Returns
    -------
    str
        Presented key.

    Raises
    ------
    UnauthorizedError
        When the header is missing, not ``Bearer <key>``, empty, or the key
        does not have the issued shape.
    """
    if not authorization:
        raise UnauthorizedError(
            "Missing Authorization header", {"expected_format": EXPECTED_FORMAT}
        )
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer":
        raise UnauthorizedError(
            "Invalid Authorization header format", {"expected_format": EXPECTED_FORMAT}
        )
    api_key = parts[1]
    if not api_key:
        raise UnauthorizedError("API key is empty")
    if not is_well_formed_api_key(api_key, prefix):
        raise UnauthorizedError("Invalid API key format", {"reason": "invalid"})
    return api_key


async def authenticate_agent(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> AgentContext:
    """Authenticate an agent request and count it against the key's quota.

    The resolved identity is stored on ``request.state`` before the quota is
    checked, so refused requests are still attributed in the audit trail.

    Parameters
    ----------
    request : Request
        Incoming request.
    session : AsyncSession
        Active database session.

    Returns
    -------
    AgentContext
        Authenticated identity and quota state.

    Raises
    ------
    UnauthorizedError
        For missing, malformed, unknown, revoked or expired keys.
    RateLimitError
        When the key exhausted the quota of the request's action.
    """
    try:
        raw_key = parse_api_key(
            request.headers.get("authorization"), get_settings().api_key_prefix
        )
        api_key = await resolve_api_key(session, raw_key)
    except UnauthorizedError as exc:
        logger.warning(
            "Rejected agent request %s %s: %s",
            request.method,
            request.url.path,
            exc.message,
        )
        raise

    action = action_for_path(request.method, request.url.path)
    result = get_rate_limiter().check(str(api_key.id), action, api_key.key_metadata)
    context = AgentContext.for_key(api_key, action, result)
    request.state.agent = context
    if not result.allowed:
        logger.info("Rate limit hit for key %s on %s", api_key.id, action)
        raise RateLimitError(
            details={
                "limit": result.limit,
                "reset": result.reset,
                "retry_after": result.retry_after,
                "action": action,
            },
            headers=result.headers(),
        )
    return context


def has_permission(
    permissions: Mapping[str, list[str]], resource: str, action: str
) -> bool:
    """Return whether a permission map grants ``resource:action``.

    Parameters
    ----------
    permissions : Mapping[str, list[str]]
        Resource to allowed actions; ``*`` may stand for any resource or
        action.
    resource : str
        One of :data:`RESOURCES`.
    action : str
        One of :data:`ACTIONS`.

    Returns
    -------
    bool
        ``False`` for unknown resources or actions.
    """
    if resource not in RESOURCES or action not in ACTIONS:
        return False
    granted = [*permissions.get(resource, []), *permissions.get(WILDCARD, [])]
    return action in granted or WILDCARD in granted


def require_permission(
    resource: str, action: str
) -> Callable[..., Awaitable[AgentContext]]:
    """Build a dependency that authenticates and checks one scope.

    Parameters
    ----------
    resource : str
        Resource the route touches.
    action : str
        Action the route performs.

    Returns
    -------
    Callable[..., Awaitable[AgentContext]]
        FastAPI dependency resolving to the agent context.
    """

    async def dependency(
        context: AgentContext = Depends(authenticate_agent),
    ) -> AgentContext:
        if not has_permission(context.permissions, resource, action):
            raise ForbiddenError(
                f"API key lacks {resource}:{action} permission",
                {"required_permission": f"{resource}:{action}"},
            )
        return context

    return dependency
