"""Admin routes."""

from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from adagent.config import get_settings
from adagent.database import get_session
from adagent.models.audit import AgentAuditLog, AuditLog
from adagent.models.token import AdminToken
from adagent.schemas.admin import (
    AdminTokenCreateRequest,
    AgentLogListResponse,
    AgentLogResponse,
    ApiKeyCreatedResponse,
    ApiKeyCreateRequest,
    ApiKeyResponse,
    ApiKeyUpdateRequest,
    AuditResponse,
)
from adagent.schemas.common import MessageResponse, Pagination, TokenResponse
from adagent.services.api_keys import (
    create_api_key,
    get_api_key_for_org_or_404,
    list_api_keys,
    revoke_api_key,
)
from adagent.services.audit import log_event
from adagent.services.auth import require_admin_token
from adagent.services.organizations import issue_admin_token
from adagent.services.ratelimit import get_rate_limiter

router = APIRouter(prefix="/v1/admin", tags=["admin"])


@router.post("/tokens", response_model=TokenResponse)
async def create_admin_token(
    payload: AdminTokenCreateRequest,
    admin_token: AdminToken = Depends(require_admin_token),
    session: AsyncSession = Depends(get_session),
) -> TokenResponse:
    """Create an additional admin token for the caller's organization."""
    token, plaintext = await issue_admin_token(
        session, org_id=admin_token.org_id, name=payload.name
    )
    await session.commit()
    return TokenResponse(id=token.id, token=plaintext, name=token.name)


@router.post(
    "/api-keys",
    response_model=ApiKeyCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_api_key_route(
    payload: ApiKeyCreateRequest,
    admin_token: AdminToken = Depends(require_admin_token),
    session: AsyncSession = Depends(get_session),
) -> ApiKeyCreatedResponse:
    """Issue an agent API key; the plaintext is returned only here."""
    api_key, plaintext = await create_api_key(
        session,
        org_id=admin_token.org_id,
        name=payload.name,
        prefix=get_settings().api_key_prefix,
        description=payload.description,
        permissions=payload.permissions,
        expires_at=payload.expires_at,
        metadata=payload.metadata,
    )
    await log_event(
        session,
        org_id=admin_token.org_id,
        action="api_key_created",
        resource_type="api_key",
        resource_id=str(api_key.id),
        metadata={"name": api_key.name, "key_prefix": api_key.key_prefix},
    )
    await session.commit()
    return ApiKeyCreatedResponse.model_validate(
        {**ApiKeyResponse.model_validate(api_key).model_dump(), "api_key": plaintext}
    )


@router.get("/api-keys", response_model=list[ApiKeyResponse])
async def list_api_keys_route(
    admin_token: AdminToken = Depends(require_admin_token),
    session: AsyncSession = Depends(get_session),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[ApiKeyResponse]:
    """List API key metadata."""
    rows = await list_api_keys(
        session, admin_token.org_id, limit=limit, offset=offset
    )
    return [ApiKeyResponse.model_validate(row) for row in rows]


@router.patch("/api-keys/{api_key_id}", response_model=ApiKeyResponse)
async def update_api_key(
    api_key_id: UUID,
    payload: ApiKeyUpdateRequest,
    admin_token: AdminToken = Depends(require_admin_token),
    session: AsyncSession = Depends(get_session),
) -> ApiKeyResponse:
    """Edit an API key's name, description, scopes, expiry or metadata."""
    api_key = await get_api_key_for_org_or_404(
        session, org_id=admin_token.org_id, api_key_id=api_key_id
    )
    changes = payload.model_dump(exclude_unset=True)
    if "metadata" in changes:
        api_key.key_metadata = changes.pop("metadata") or {}
    for field, value in changes.items():
        if field == "permissions" and value is None:
            continue
        setattr(api_key, field, value)
    await log_event(
        session,
        org_id=admin_token.org_id,
        action="api_key_updated",
        resource_type="api_key",
        resource_id=str(api_key.id),
        metadata={"fields": sorted(payload.model_fields_set)},
    )
    await session.commit()
    return ApiKeyResponse.model_validate(api_key)


@router.post("/api-keys/{api_key_id}/revoke", response_model=MessageResponse)
async def revoke_api_key_route(
    api_key_id: UUID,
    admin_token: AdminToken = Depends(require_admin_token),
    session: AsyncSession = Depends(get_session),
) -> MessageResponse:
    """Revoke an API key; later agent requests with it get 401."""
    api_key = await get_api_key_for_org_or_404(
        session, org_id=admin_token.org_id, api_key_id=api_key_id
    )
    revoke_api_key(api_key)
    await log_event(
        session,
        org_id=admin_token.org_id,
        action="api_key_revoked",
        resource_type="api_key",
        resource_id=str(api_key.id),
        metadata={},
    )
    await session.commit()
    return MessageResponse(message="API key revoked", timestamp=api_key.revoked_at)


@router.delete("/api-keys/{api_key_id}", response_model=MessageResponse)
async def delete_api_key(
    api_key_id: UUID,
    admin_token: AdminToken = Depends(require_admin_token),
    session: AsyncSession = Depends(get_session),
) -> MessageResponse:
    """Delete a revoked API key.

    Keys still in use must be revoked first; their audit history references
    them.
    """
    api_key = await get_api_key_for_org_or_404(
        session, org_id=admin_token.org_id, api_key_id=api_key_id
    )
    if not api_key.is_revoked:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Revoke the API key before deleting it",
        )
    has_history = await session.scalar(
        select(AgentAuditLog.id).where(AgentAuditLog.api_key_id == api_key.id).limit(1)
    )
    if has_history is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="API key has audit history and is kept revoked",
        )
    await session.delete(api_key)
    await log_event(
        session,
        org_id=admin_token.org_id,
        action="api_key_deleted",
        resource_type="api_key",
        resource_id=str(api_key_id),
        metadata={"name": api_key.name},
    )
    await session.commit()
    get_rate_limiter().reset(str(api_key_id))
    return MessageResponse(message="API key deleted")


@router.get("/agent-logs", response_model=AgentLogListResponse)
async def list_agent_logs(
    admin_token: AdminToken = Depends(require_admin_token),
    session: AsyncSession = Depends(get_session),
    action: str | None = Query(default=None, max_length=100),
    outcome: Literal["success", "error"] | None = Query(default=None, alias="status"),
    api_key_id: UUID | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> AgentLogListResponse:
    """List recorded agent API requests for the organization."""
    conditions = [AgentAuditLog.org_id == admin_token.org_id]
    if action is not None:
        conditions.append(AgentAuditLog.action == action)
    if outcome == "success":
        conditions.append(AgentAuditLog.response_status < 400)
    elif outcome == "error":
        conditions.append(AgentAuditLog.response_status >= 400)
    if api_key_id is not None:
        conditions.append(AgentAuditLog.api_key_id == api_key_id)

    total = await session.scalar(
        select(func.count()).select_from(AgentAuditLog).where(*conditions)
    )
    result = await session.execute(
        select(AgentAuditLog)
        .where(*conditions)
        .order_by(AgentAuditLog.created_at.desc(), AgentAuditLog.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return AgentLogListResponse(
        logs=[AgentLogResponse.model_validate(row) for row in result.scalars().all()],
        pagination=Pagination(limit=limit, offset=offset, total=total or 0),
    )


@router.get("/audit", response_model=list[AuditResponse])
async def list_audit_events(
    admin_token: AdminToken = Depends(require_admin_token),
    session: AsyncSession = Depends(get_session),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[AuditResponse]:
    """List dashboard audit events for the organization."""
    result = await session.execute(
        select(AuditLog)
        .where(AuditLog.org_id == admin_token.org_id)
        .order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return [AuditResponse.model_validate(row) for row in result.scalars().all()]
