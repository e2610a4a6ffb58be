"""Organization-scoped campaign, asset and audience operations."""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from adagent.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from adagent.models.campaign import Campaign, CampaignAsset, CampaignAudience
from adagent.models.creative import Asset, Audience
from adagent.services.budget import get_budget_locks, validate_campaign_budget

logger = logging.getLogger(__name__)

BUDGET_FIELDS = frozenset({"budget", "start_date", "end_date"})


async def get_campaign_for_org(
    session: AsyncSession, *, org_id: UUID, campaign_id: int
) -> Campaign:
    """Return a campaign the organization may act on.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    org_id : UUID
        Caller organization.
    campaign_id : int
        Campaign identifier.

    Returns
    -------
    Campaign
        Matching campaign.

    Raises
    ------
    NotFoundError
        When no campaign has that id.
    ForbiddenError
        When the campaign belongs to another organization.
    """
    campaign = await session.get(Campaign, campaign_id)
    if campaign is None:
        raise NotFoundError("Campaign", campaign_id)
    if campaign.org_id != org_id:
        raise ForbiddenError(
            "You do not have access to this campaign", {"campaign_id": campaign_id}
        )
    return campaign


async def list_campaigns(
    session: AsyncSession,
    org_id: UUID,
    *,
    limit: int,
    offset: int,
    active: bool | None = None,
) -> tuple[list[Campaign], int]:
    """Page through an organization's campaigns, newest first."""
    conditions = [Campaign.org_id == org_id]
    if active is not None:
        conditions.append(Campaign.status.is_(active))
    total = await session.scalar(select(func.count()).select_from(Campaign).where(*conditions))
    result = await session.execute(
        select(Campaign)
        .where(*conditions)
        .order_by(Campaign.created_at.desc(), Campaign.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), total or 0


async def create_campaign(
    session: AsyncSession, org_id: UUID, fields: dict[str, Any]
) -> Campaign:
    """Create a campaign after checking the monthly budget.

    The budget check and the insert run under the organization's budget lock
    so concurrent writers cannot both pass the check.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    org_id : UUID
        Owning organization.
    fields : dict[str, Any]
        Validated campaign fields.

    Returns
    -------
    Campaign
        Committed campaign.
    """
    async with get_budget_locks().for_organization(org_id):
        await validate_campaign_budget(
            session,
            org_id=org_id,
            budget=fields["budget"],
            start_date=fields["start_date"],
            end_date=fields["end_date"],
        )
        campaign = Campaign(org_id=org_id, status=True, **fields)
        session.add(campaign)
        await session.commit()
    logger.info("Campaign %s created for org %s", campaign.id, org_id)
    return campaign


def needs_budget_check(campaign: Campaign, changes: dict[str, Any]) -> bool:
    """Return whether an update can raise the organization's monthly totals.

    Parameters
    ----------
    campaign : Campaign
        Current campaign state.
    changes : dict[str, Any]
        Fields being written.

    Returns
    -------
    bool
        ``True`` when the campaign will be active and its budget or dates
        change, or when a paused campaign is reactivated.
    """
    active_after = changes.get("status", campaign.status)
    if not active_after:
        return False
    if not campaign.status:
        return True
    return any(
        field in changes and changes[field] != getattr(campaign, field)
        for field in BUDGET_FIELDS
    )


async def update_campaign(
    session: AsyncSession, campaign: Campaign, changes: dict[str, Any]
) -> Campaign:
    """Apply a partial update, re-checking the budget when it matters.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    campaign : Campaign
        Campaign owned by the caller.
    changes : dict[str, Any]
        Validated fields to write.

    Returns
    -------
    Campaign
        Committed campaign.

    Raises
    ------
    ValidationError
        When the merged dates are out of order.
    BudgetExceededError
        When the new values overflow a month.
    """
    start_date = changes.get("start_date", campaign.start_date)
    end_date = changes.get("end_date", campaign.end_date)
    if end_date <= start_date:
        raise ValidationError(
            "end_date must be after start_date",
            {"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
        )

    async with get_budget_locks().for_organization(campaign.org_id):
        if needs_budget_check(campaign, changes):
            await validate_campaign_budget(
                session,
                org_id=campaign.org_id,
                budget=changes.get("budget", campaign.budget),
                start_date=start_date,
                end_date=end_date,
                exclude_campaign_id=campaign.id,
            )
        for field, value in changes.items():
            setattr(campaign, field, value)
        await session.commit()
    return campaign


async def delete_campaign(session: AsyncSession, campaign: Campaign) -> None:
    """Delete a campaign and its assignments."""
    # Cascades need the link collections loaded before the delete is flushed.
    await session.refresh(campaign, ["asset_links", "audience_links"])
    await session.delete(campaign)
    await session.commit()
    logger.info("Campaign %s deleted for org %s", campaign.id, campaign.org_id)


async def get_asset_for_org(
    session: AsyncSession, *, org_id: UUID, asset_id: UUID
) -> Asset:
    """Return an organization's asset or raise :class:`NotFoundError`."""
    asset = await session.get(Asset, asset_id)
    if asset is None or asset.org_id != org_id:
        raise NotFoundError("Asset", str(asset_id))
    return asset


async def get_audience_for_org(
    session: AsyncSession, *, org_id: UUID, audience_id: UUID
) -> Audience:
    """Return an organization's audience or raise :class:`NotFoundError`."""
    audience = await session.get(Audience, audience_id)
    if audience is None or audience.org_id != org_id:
        raise NotFoundError("Audience", str(audience_id))
    return audience


async def list_assets(
    session: AsyncSession,
    org_id: UUID,
    *,
    limit: int,
    offset: int,
    asset_type: str | None = None,
) -> tuple[list[Asset], int]:
    """Page through an organization's assets, newest first."""
    conditions = [Asset.org_id == org_id]
    if asset_type is not None:
        conditions.append(Asset.type == asset_type)
    total = await session.scalar(select(func.count()).select_from(Asset).where(*conditions))
    result = await session.execute(
        select(Asset)
        .where(*conditions)
        .order_by(Asset.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), total or 0


async def create_asset(session: AsyncSession, org_id: UUID, fields: dict[str, Any]) -> Asset:
    asset = Asset(org_id=org_id, **fields)
    session.add(asset)
    await session.commit()
    return asset


async def list_audiences(
    session: AsyncSession,
    org_id: UUID,
    *,
    limit: int,
    offset: int,
    status: str = "active",
) -> tuple[list[Audience], int]:
    """Page through an organization's audiences with one status."""
    conditions = [Audience.org_id == org_id, Audience.status == status]
    total = await session.scalar(
        select(func.count()).select_from(Audience).where(*conditions)
    )
    result = await session.execute(
        select(Audience)
        .where(*conditions)
        .order_by(Audience.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), total or 0


async def create_audience(
    session: AsyncSession, org_id: UUID, fields: dict[str, Any]
) -> Audience:
    audience = Audience(org_id=org_id, **fields)
    session.add(audience)
    await session.commit()
    return audience


async def list_campaign_assets(
    session: AsyncSession, campaign: Campaign
) -> list[CampaignAsset]:
    """Return a campaign's asset assignments, most recent first."""
    result = await session.execute(
        select(CampaignAsset)
        .where(CampaignAsset.campaign_id == campaign.id)
        .options(selectinload(CampaignAsset.asset))
        .order_by(CampaignAsset.assigned_at.desc())
    )
    return list(result.scalars().all())


async def assign_asset(
    session: AsyncSession, campaign: Campaign, asset: Asset
) -> CampaignAsset:
    """Link an asset to a campaign.

    Raises
    ------
    ConflictError
        When the asset is already assigned.
    """
    existing = await session.scalar(
        select(CampaignAsset.id).where(
            CampaignAsset.campaign_id == campaign.id,
            CampaignAsset.asset_id == asset.id,
        )
    )
    if existing is not None:
        raise ConflictError(
            "Asset is already assigned to this campaign",
            {"campaign_id": campaign.id, "asset_id": str(asset.id)},
        )
    assignment = CampaignAsset(campaign_id=campaign.id, asset_id=asset.id)
    session.add(assignment)
    await session.commit()
    return assignment


async def unassign_asset(session: AsyncSession, campaign: Campaign, asset_id: UUID) -> None:
    """Remove an asset link; raises :class:`NotFoundError` when absent."""
    assignment = await session.scalar(
        select(CampaignAsset).where(
            CampaignAsset.campaign_id == campaign.id,
            CampaignAsset.asset_id == asset_id,
        )
    )
    if assignment is None:
        raise NotFoundError("Asset assignment", str(asset_id))
    await session.delete(assignment)
    await session.commit()


async def list_campaign_audiences(
    session: AsyncSession, campaign: Campaign
) -> list[CampaignAudience]:
    """Return a campaign's audience assignments, most recent first."""
    result = await session.execute(
        select(CampaignAudience)
        .where(CampaignAudience.campaign_id == campaign.id)
        .options(selectinload(CampaignAudience.audience))
        .order_by(CampaignAudience.assigned_at.desc())
    )
    return list(result.scalars().all())


async def assign_audience(
    session: AsyncSession, campaign: Campaign, audience: Audience
) -> CampaignAudience:
    """Link an audience to a campaign.

    Raises
    ------
    ConflictError
        When the audience is already assigned.
    """
    existing = await session.scalar(
        select(CampaignAudience.id).where(
            CampaignAudience.campaign_id == campaign.id,
            CampaignAudience.audience_id == audience.id,
        )
    )
    if existing is not None:
        raise ConflictError(
            "Audience is already assigned to this campaign",
            {"campaign_id": campaign.id, "audience_id": str(audience.id)},
        )
    assignment = CampaignAudience(campaign_id=campaign.id, audience_id=audience.id)
    session.add(assignment)
    await session.commit()
    return assignment


async def unassign_audience(
    session: AsyncSession, campaign: Campaign, audience_id: UUID
) -> None:
    """Remove an audience link; raises :class:`NotFoundError` when absent."""
    assignment = await session.scalar(
        select(CampaignAudience).where(
            CampaignAudience.campaign_id == campaign.id,
            CampaignAudience.audience_id == audience_id,
        )
    )
    if assignment is None:
        raise NotFoundError("Audience assignment", str(audience_id))
    await session.delete(assignment)
    await session.commit()
