"""Organization setup and dashboard admin tokens."""

import logging
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from adagent.models.organization import Organization
from adagent.models.token import AdminToken
from adagent.services.audit import log_event
from adagent.services.security import generate_admin_token, hash_token, lookup_hash

logger = logging.getLogger(__name__)


async def bootstrap_organization(
    session: AsyncSession, *, name: str, admin_token_name: str
) -> tuple[Organization, AdminToken, str]:
    """Create the first organization together with its first admin token.

    Bootstrap is a one-shot operation: once any organization exists, further
    calls are refused. The caller commits.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    name : str
        Organization name.
    admin_token_name : str
        Label of the initial admin token.

    Returns
    -------
    tuple[Organization, AdminToken, str]
        Organization, token row and the plaintext token.

    Raises
    ------
    HTTPException
        409 when an organization already exists.
    """
    existing = await session.scalar(select(Organization.id).limit(1))
    if existing is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Bootstrap already completed",
        )

    organization = Organization(name=name)
    session.add(organization)
    await session.flush()
    await log_event(
        session,
        org_id=organization.id,
        action="organization_bootstrapped",
        resource_type="organization",
        resource_id=str(organization.id),
        metadata={"name": organization.name},
    )
    admin_token, plaintext = await issue_admin_token(
        session, org_id=organization.id, name=admin_token_name
    )
    logger.info("Bootstrapped organization %s", organization.id)
    return organization, admin_token, plaintext


async def issue_admin_token(
    session: AsyncSession, *, org_id: UUID, name: str
) -> tuple[AdminToken, str]:
    """Issue a dashboard admin token; the plaintext is only returned here.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    org_id : UUID
        Owning organization.
    name : str
        Token label, unique within the organization.

    Returns
    -------
    tuple[AdminToken, str]
        Flushed token row and its plaintext.

    Raises
    ------
    HTTPException
        409 when the organization already has a token with that name.
    """
    taken = await session.scalar(
        select(AdminToken.id).where(AdminToken.org_id == org_id, AdminToken.name == name)
    )
    if taken is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Admin token name already exists",
        )

    plaintext = generate_admin_token()
    admin_token = AdminToken(
        org_id=org_id,
        name=name,
        token_hash=hash_token(plaintext),
        token_lookup=lookup_hash(plaintext),
    )
    session.add(admin_token)
    await session.flush()
    await log_event(
        session,
        org_id=org_id,
        action="admin_token_created",
        resource_type="admin_token",
        resource_id=str(admin_token.id),
        metadata={"name": name},
    )
    return admin_token, plaintext
