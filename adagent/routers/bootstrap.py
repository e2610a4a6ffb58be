"""Bootstrap routes."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from adagent.config import get_settings
from adagent.database import get_session
from adagent.schemas.bootstrap import BootstrapRequest, BootstrapResponse
from adagent.schemas.common import TokenResponse
from adagent.services.organizations import bootstrap_organization

router = APIRouter(prefix="/v1", tags=["bootstrap"])


@router.post("/bootstrap", response_model=BootstrapResponse)
async def bootstrap(
    payload: BootstrapRequest,
    session: AsyncSession = Depends(get_session),
) -> BootstrapResponse:
    """Set up the single organization the Agent API serves.

    Returns the admin token plaintext once; it is needed to issue agent API
    keys.
    """
    settings = get_settings()
    if not settings.bootstrap_enabled:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Bootstrap disabled",
        )
    organization, admin_token, plaintext = await bootstrap_organization(
        session,
        name=payload.organization_name,
        admin_token_name=payload.admin_token_name,
    )
    await session.commit()
    return BootstrapResponse(
        organization_id=str(organization.id),
        organization_name=organization.name,
        monthly_budget_limit=settings.max_monthly_budget,
        admin_token=TokenResponse(id=admin_token.id, token=plaintext, name=admin_token.name),
    )
