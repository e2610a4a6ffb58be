"""Agent API routes.

Every route authenticates the bearer API key, counts the request against the
key's quota and checks one permission scope through
:func:`~adagent.services.auth.require_permission`.
"""

from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from adagent.database import get_session
from adagent.errors import AGENT_PATH_PREFIX, ValidationError
from adagent.schemas.agent import (
    AssetAssignment,
    AssetAssignmentData,
    AssetAssignRequest,
    AssetCreateRequest,
    AssetData,
    AssetListData,
    AssetResponse,
    AssetUnassignedData,
    AssetType,
    AssignedAsset,
    AssignedAudience,
    AudienceAssignment,
    AudienceAssignmentData,
    AudienceAssignRequest,
    AudienceCreateRequest,
    AudienceData,
    AudienceListData,
    AudienceResponse,
    AudienceStatus,
    AudienceUnassignedData,
    BudgetStatusData,
    CampaignAssetsData,
    CampaignAudiencesData,
    CampaignCreateRequest,
    CampaignData,
    CampaignDeletedData,
    CampaignListData,
    CampaignResponse,
    CampaignUpdateRequest,
)
from adagent.schemas.common import Pagination, SuccessResponse
from adagent.services import campaigns as campaign_service
from adagent.services.auth import AgentContext, require_permission
from adagent.services.budget import get_budget_status

router = APIRouter(prefix=AGENT_PATH_PREFIX, tags=["agent"])

NULLABLE_CAMPAIGN_FIELDS = frozenset({"goal"})


@router.get("/campaigns/list", response_model=SuccessResponse[CampaignListData])
async def list_campaigns(
    context: AgentContext = Depends(require_permission("campaigns", "read")),
    session: AsyncSession = Depends(get_session),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    campaign_status: Literal["active", "inactive"] | None = Query(
        default=None, alias="status"
    ),
) -> SuccessResponse[CampaignListData]:
    """List the organization's campaigns."""
    active = None if campaign_status is None else campaign_status == "active"
    rows, total = await campaign_service.list_campaigns(
        session, context.org_id, limit=limit, offset=offset, active=active
    )
    return SuccessResponse(
        data=CampaignListData(
            campaigns=[CampaignResponse.model_validate(row) for row in rows],
            pagination=Pagination(limit=limit, offset=offset, total=total),
        )
    )


@router.post(
    "/campaigns/create",
    response_model=SuccessResponse[CampaignData],
    status_code=status.HTTP_201_CREATED,
)
async def create_campaign(
    payload: CampaignCreateRequest,
    context: AgentContext = Depends(require_permission("campaigns", "write")),
    session: AsyncSession = Depends(get_session),
) -> SuccessResponse[CampaignData]:
    """Create a campaign within the monthly budget ceiling."""
    campaign = await campaign_service.create_campaign(
        session, context.org_id, payload.model_dump()
    )
    return SuccessResponse(
        data=CampaignData(campaign=CampaignResponse.model_validate(campaign))
    )


@router.get("/campaigns/{campaign_id}/get", response_model=SuccessResponse[CampaignData])
async def get_campaign(
    campaign_id: int,
    context: AgentContext = Depends(require_permission("campaigns", "read")),
    session: AsyncSession = Depends(get_session),
) -> SuccessResponse[CampaignData]:
    """Return one campaign."""
    campaign = await campaign_service.get_campaign_for_org(
        session, org_id=context.org_id, campaign_id=campaign_id
    )
    return SuccessResponse(
        data=CampaignData(campaign=CampaignResponse.model_validate(campaign))
    )


@router.patch(
    "/campaigns/{campaign_id}/update", response_model=SuccessResponse[CampaignData]
)
async def update_campaign(
    campaign_id: int,
    payload: CampaignUpdateRequest,
    context: AgentContext = Depends(require_permission("campaigns", "write")),
    session: AsyncSession = Depends(get_session),
) -> SuccessResponse[CampaignData]:
    """Partially update a campaign, re-checking the budget when needed."""
    changes = {
        field: value
        for field, value in payload.model_dump(exclude_unset=True).items()
        if value is not None or field in NULLABLE_CAMPAIGN_FIELDS
    }
    if not changes:
        raise ValidationError("No fields provided for update")
    campaign = await campaign_service.get_campaign_for_org(
        session, org_id=context.org_id, campaign_id=campaign_id
    )
    campaign = await campaign_service.update_campaign(session, campaign, changes)
    return SuccessResponse(
        data=CampaignData(campaign=CampaignResponse.model_validate(campaign))
    )


@router.delete(
    "/campaigns/{campaign_id}/delete",
    response_model=SuccessResponse[CampaignDeletedData],
)
async def delete_campaign(
    campaign_id: int,
    context: AgentContext = Depends(require_permission("campaigns", "delete")),
    session: AsyncSession = Depends(get_session),
) -> SuccessResponse[CampaignDeletedData]:
    """Delete a campaign and its assignments."""
    campaign = await campaign_service.get_campaign_for_org(
        session, org_id=context.org_id, campaign_id=campaign_id
    )
    name = campaign.name
    await campaign_service.delete_campaign(session, campaign)
    return SuccessResponse(
        data=CampaignDeletedData(
            campaign_id=campaign_id,
            campaign_name=name,
            message="Campaign deleted successfully",
        )
    )


@router.get(
    "/campaigns/{campaign_id}/assets",
    response_model=SuccessResponse[CampaignAssetsData],
)
async def list_campaign_assets(
    campaign_id: int,
    context: AgentContext = Depends(require_permission("campaigns", "read")),
    session: AsyncSession = Depends(get_session),
) -> SuccessResponse[CampaignAssetsData]:
    """List the assets assigned to a campaign."""
    campaign = await campaign_service.get_campaign_for_org(
        session, org_id=context.org_id, campaign_id=campaign_id
    )
    assignments = await campaign_service.list_campaign_assets(session, campaign)
    return SuccessResponse(
        data=CampaignAssetsData(
            campaign_id=campaign.id,
            assets=[AssignedAsset.model_validate(row) for row in assignments],
            count=len(assignments),
        )
    )


@router.post(
    "/campaigns/{campaign_id}/assets",
    response_model=SuccessResponse[AssetAssignmentData],
    status_code=status.HTTP_201_CREATED,
)
async def assign_asset(
    campaign_id: int,
    payload: AssetAssignRequest,
    context: AgentContext = Depends(require_permission("campaigns", "write")),
    session: AsyncSession = Depends(get_session),
) -> SuccessResponse[AssetAssignmentData]:
    """Assign one of the organization's assets to a campaign."""
    campaign = await campaign_service.get_campaign_for_org(
        session, org_id=context.org_id, campaign_id=campaign_id
    )
    asset = await campaign_service.get_asset_for_org(
        session, org_id=context.org_id, asset_id=payload.asset_id
    )
    assignment = await campaign_service.assign_asset(session, campaign, asset)
    return SuccessResponse(
        data=AssetAssignmentData(
            assignment=AssetAssignment.model_validate(assignment),
            message="Asset assigned to campaign successfully",
        )
    )


@router.delete(
    "/campaigns/{campaign_id}/assets",
    response_model=SuccessResponse[AssetUnassignedData],
)
async def unassign_asset(
    campaign_id: int,
    asset_id: UUID = Query(),
    context: AgentContext = Depends(require_permission("campaigns", "write")),
    session: AsyncSession = Depends(get_session),
) -> SuccessResponse[AssetUnassignedData]:
    """Remove an asset from a campaign."""
    campaign = await campaign_service.get_campaign_for_org(
        session, org_id=context.org_id, campaign_id=campaign_id
    )
    await campaign_service.unassign_asset(session, campaign, asset_id)
    return SuccessResponse(
        data=AssetUnassignedData(
            campaign_id=campaign_id,
            asset_id=asset_id,
            message="Asset unassigned from campaign successfully",
        )
    )


@router.get(
    "/campaigns/{campaign_id}/audiences",
    response_model=SuccessResponse[CampaignAudiencesData],
)
async def list_campaign_audiences(
    campaign_id: int,
    context: AgentContext = Depends(require_permission("campaigns", "read")),
    session: AsyncSession = Depends(get_session),
) -> SuccessResponse[CampaignAudiencesData]:
    """List the audiences assigned to a campaign."""
    campaign = await campaign_service.get_campaign_for_org(
        session, org_id=context.org_id, campaign_id=campaign_id
    )
    assignments = await campaign_service.list_campaign_audiences(session, campaign)
    return SuccessResponse(
        data=CampaignAudiencesData(
            campaign_id=campaign.id,
            audiences=[AssignedAudience.model_validate(row) for row in assignments],
            count=len(assignments),
        )
    )


@router.post(
    "/campaigns/{campaign_id}/audiences",
    response_model=SuccessResponse[AudienceAssignmentData],
    status_code=status.HTTP_201_CREATED,
)
async def assign_audience(
    campaign_id: int,
    payload: AudienceAssignRequest,
    context: AgentContext = Depends(require_permission("campaigns", "write")),
    session: AsyncSession = Depends(get_session),
) -> SuccessResponse[AudienceAssignmentData]:
    """Assign one of the organization's audiences to a campaign."""
    campaign = await campaign_service.get_campaign_for_org(
        session, org_id=context.org_id, campaign_id=campaign_id
    )
    audience = await campaign_service.get_audience_for_org(
        session, org_id=context.org_id, audience_id=payload.audience_id
    )
    assignment = await campaign_service.assign_audience(session, campaign, audience)
    return SuccessResponse(
        data=AudienceAssignmentData(
            assignment=AudienceAssignment.model_validate(assignment),
            message="Audience assigned to campaign successfully",
        )
    )


@router.delete(
    "/campaigns/{campaign_id}/audiences",
    response_model=SuccessResponse[AudienceUnassignedData],
)
async def unassign_audience(
    campaign_id: int,
    audience_id: UUID = Query(),
    context: AgentContext = Depends(require_permission("campaigns", "write")),
    session: AsyncSession = Depends(get_session),
) -> SuccessResponse[AudienceUnassignedData]:
    """Remove an audience from a campaign."""
    campaign = await campaign_service.get_campaign_for_org(
        session, org_id=context.org_id, campaign_id=campaign_id
    )
    await campaign_service.unassign_audience(session, campaign, audience_id)
    return SuccessResponse(
        data=AudienceUnassignedData(
            campaign_id=campaign_id,
            audience_id=audience_id,
            message="Audience unassigned from campaign successfully",
        )
    )


@router.get("/assets/list", response_model=SuccessResponse[AssetListData])
async def list_assets(
    context: AgentContext = Depends(require_permission("assets", "read")),
    session: AsyncSession = Depends(get_session),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    asset_type: AssetType | None = Query(default=None, alias="type"),
) -> SuccessResponse[AssetListData]:
    """List the organization's assets."""
    rows, total = await campaign_service.list_assets(
        session, context.org_id, limit=limit, offset=offset, asset_type=asset_type
    )
    return SuccessResponse(
        data=AssetListData(
            assets=[AssetResponse.model_validate(row) for row in rows],
            pagination=Pagination(limit=limit, offset=offset, total=total),
        )
    )


@router.post(
    "/assets/create",
    response_model=SuccessResponse[AssetData],
    status_code=status.HTTP_201_CREATED,
)
async def create_asset(
    payload: AssetCreateRequest,
    context: AgentContext = Depends(require_permission("assets", "write")),
    session: AsyncSession = Depends(get_session),
) -> SuccessResponse[AssetData]:
    """Create a creative asset."""
    asset = await campaign_service.create_asset(
        session, context.org_id, payload.model_dump()
    )
    return SuccessResponse(data=AssetData(asset=AssetResponse.model_validate(asset)))


@router.get("/assets/{asset_id}/get", response_model=SuccessResponse[AssetData])
async def get_asset(
    asset_id: UUID,
    context: AgentContext = Depends(require_permission("assets", "read")),
    session: AsyncSession = Depends(get_session),
) -> SuccessResponse[AssetData]:
    """Return one asset."""
    asset = await campaign_service.get_asset_for_org(
        session, org_id=context.org_id, asset_id=asset_id
    )
    return SuccessResponse(data=AssetData(asset=AssetResponse.model_validate(asset)))


@router.get("/audiences/list", response_model=SuccessResponse[AudienceListData])
async def list_audiences(
    context: AgentContext = Depends(require_permission("audiences", "read")),
    session: AsyncSession = Depends(get_session),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    audience_status: AudienceStatus = Query(default="active", alias="status"),
) -> SuccessResponse[AudienceListData]:
    """List the organization's audiences with one status."""
    rows, total = await campaign_service.list_audiences(
        session, context.org_id, limit=limit, offset=offset, status=audience_status
    )
    return SuccessResponse(
        data=AudienceListData(
            audiences=[AudienceResponse.model_validate(row) for row in rows],
            pagination=Pagination(limit=limit, offset=offset, total=total),
        )
    )


@router.post(
    "/audiences/create",
    response_model=SuccessResponse[AudienceData],
    status_code=status.HTTP_201_CREATED,
)
async def create_audience(
    payload: AudienceCreateRequest,
    context: AgentContext = Depends(require_permission("audiences", "write")),
    session: AsyncSession = Depends(get_session),
) -> SuccessResponse[AudienceData]:
    """Create an audience."""
    audience = await campaign_service.create_audience(
        session, context.org_id, payload.model_dump()
    )
    return SuccessResponse(
        data=AudienceData(audience=AudienceResponse.model_validate(audience))
    )


@router.get("/audiences/{audience_id}/get", response_model=SuccessResponse[AudienceData])
async def get_audience(
    audience_id: UUID,
    context: AgentContext = Depends(require_permission("audiences", "read")),
    session: AsyncSession = Depends(get_session),
) -> SuccessResponse[AudienceData]:
    """Return one audience."""
    audience = await campaign_service.get_audience_for_org(
        session, org_id=context.org_id, audience_id=audience_id
    )
    return SuccessResponse(
        data=AudienceData(audience=AudienceResponse.model_validate(audience))
    )


@router.get("/budget/status", response_model=SuccessResponse[BudgetStatusData])
async def budget_status(
    context: AgentContext = Depends(require_permission("budget", "read")),
    session: AsyncSession = Depends(get_session),
    year: int | None = Query(default=None, ge=2000, le=2100),
    month: int | None = Query(default=None, ge=1, le=12),
) -> SuccessResponse[BudgetStatusData]:
    """Summarize committed spend for three months from ``year``/``month``."""
    summary = await get_budget_status(session, context.org_id, year=year, month=month)
    return SuccessResponse(data=BudgetStatusData.model_validate(summary))
