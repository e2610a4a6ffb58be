"""Agent API request and response schemas."""

from datetime import date, datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from adagent.schemas.common import APIModel, Pagination

Platform = Literal["google", "youtube", "reddit", "meta"]
AssetType = Literal["image", "video", "text", "reddit_ad"]
AdFormat = Literal["rsa", "eta", "generic", "reddit_promoted_post"]
Gender = Literal["male", "female", "other", "all"]
AudienceStatus = Literal["active", "archived"]

MAX_CAMPAIGN_BUDGET = 10000


def _check_date_order(start_date: date | None, end_date: date | None) -> None:
    if start_date is not None and end_date is not None and end_date <= start_date:
        raise ValueError("end_date must be after start_date")


class CampaignCreateRequest(BaseModel):
    """Create a campaign."""

    name: str = Field(min_length=1, max_length=100)
    platforms: list[Platform] = Field(min_length=1, max_length=4)
    budget: int = Field(ge=1, le=MAX_CAMPAIGN_BUDGET)
    start_date: date
    end_date: date
    goal: str | None = Field(default=None, max_length=500)

    @model_validator(mode="after")
    def check_dates(self) -> "CampaignCreateRequest":
        _check_date_order(self.start_date, self.end_date)
        return self


class CampaignUpdateRequest(BaseModel):
    """Partially update a campaign."""

    name: str | None = Field(default=None, min_length=1, max_length=100)
    platforms: list[Platform] | None = Field(default=None, min_length=1, max_length=4)
    budget: int | None = Field(default=None, ge=1, le=MAX_CAMPAIGN_BUDGET)
    start_date: date | None = None
    end_date: date | None = None
    goal: str | None = Field(default=None, max_length=500)
    status: bool | None = None

    @model_validator(mode="after")
    def check_dates(self) -> "CampaignUpdateRequest":
        _check_date_order(self.start_date, self.end_date)
        return self


class CampaignResponse(APIModel):
    """Campaign as returned to agents."""

    id: int
    name: str
    platforms: list[str]
    budget: int
    start_date: date
    end_date: date
    goal: str | None
    status: bool
    created_at: datetime
    updated_at: datetime


class CampaignData(APIModel):
    campaign: CampaignResponse


class CampaignListData(APIModel):
    campaigns: list[CampaignResponse]
    pagination: Pagination


class CampaignDeletedData(APIModel):
    campaign_id: int
    campaign_name: str
    message: str


class AssetCreateRequest(BaseModel):
    """Create a creative asset.

    Google text ads are checked against the headline and description counts
    of their format: RSA takes 3-15 headlines and 2-4 descriptions, ETA takes
    exactly 3 and 2.
    """

    name: str = Field(min_length=1, max_length=100)
    type: AssetType
    ad_format: AdFormat | None = None
    ad_data: dict[str, Any] = Field(default_factory=dict)
    file_url: str | None = Field(default=None, max_length=1024)

    @model_validator(mode="after")
    def check_text_ad(self) -> "AssetCreateRequest":
        if self.ad_format not in {"rsa", "eta"}:
            return self
        headlines = self.ad_data.get("headlines") or []
        descriptions = self.ad_data.get("descriptions") or []
        if self.ad_format == "rsa":
            valid = 3 <= len(headlines) <= 15 and 2 <= len(descriptions) <= 4
        else:
            valid = len(headlines) == 3 and len(descriptions) == 2
        if not valid:
            raise ValueError("Invalid headline/description count for ad format")
        return self


class AssetResponse(APIModel):
    """Asset as returned to agents."""

    id: UUID
    name: str
    type: str
    ad_format: str | None
    ad_data: dict[str, Any]
    file_url: str | None
    status: str
    created_at: datetime


class AssetData(APIModel):
    asset: AssetResponse


class AssetListData(APIModel):
    assets: list[AssetResponse]
    pagination: Pagination


class AudienceCreateRequest(BaseModel):
    """Create an audience."""

    name: str = Field(min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    age_min: int | None = Field(default=None, ge=13, le=100)
    age_max: int | None = Field(default=None, ge=13, le=100)
    genders: list[Gender] = Field(default_factory=list)
    locations: list[str] = Field(default_factory=list)
    interests: list[str] = Field(default_factory=list)
    estimated_size: int | None = Field(default=None, gt=0)
    targeting_criteria: dict[str, Any] = Field(default_factory=dict)

    @field_validator("locations", "interests")
    @classmethod
    def check_non_empty(cls, values: list[str]) -> list[str]:
        if any(not value for value in values):
            raise ValueError("Entries cannot be empty")
        return values

    @model_validator(mode="after")
    def check_ages(self) -> "AudienceCreateRequest":
        if (
            self.age_min is not None
            and self.age_max is not None
            and self.age_min > self.age_max
        ):
            raise ValueError("age_min must be less than or equal to age_max")
        return self


class AudienceResponse(APIModel):
    """Audience as returned to agents."""

    id: UUID
    name: str
    description: str | None
    age_min: int | None
    age_max: int | None
    genders: list[str]
    locations: list[str]
    interests: list[str]
    targeting_criteria: dict[str, Any]
    estimated_size: int | None
    status: str
    created_at: datetime


class AudienceData(APIModel):
    audience: AudienceResponse


class AudienceListData(APIModel):
    audiences: list[AudienceResponse]
    pagination: Pagination


class AssetAssignRequest(BaseModel):
    """Assign an asset to a campaign."""

    asset_id: UUID


class AudienceAssignRequest(BaseModel):
    """Assign an audience to a campaign."""

    audience_id: UUID


class AssetAssignment(APIModel):
    id: UUID
    campaign_id: int
    asset_id: UUID
    assigned_at: datetime


class AudienceAssignment(APIModel):
    id: UUID
    campaign_id: int
    audience_id: UUID
    assigned_at: datetime


class AssignedAsset(AssetAssignment):
    asset: AssetResponse


class AssignedAudience(AudienceAssignment):
    audience: AudienceResponse


class AssetAssignmentData(APIModel):
    assignment: AssetAssignment
    message: str


class AudienceAssignmentData(APIModel):
    assignment: AudienceAssignment
    message: str


class CampaignAssetsData(APIModel):
    campaign_id: int
    assets: list[AssignedAsset]
    count: int


class CampaignAudiencesData(APIModel):
    campaign_id: int
    audiences: list[AssignedAudience]
    count: int


class AssetUnassignedData(APIModel):
    campaign_id: int
    asset_id: UUID
    message: str


class AudienceUnassignedData(APIModel):
    campaign_id: int
    audience_id: UUID
    message: str


class BudgetCampaign(APIModel):
    id: int
    name: str
    budget: int
    start_date: date
    end_date: date


class BudgetMonth(APIModel):
    """Committed spend in one month."""

    year: int
    month: int
    month_name: str
    monthly_total: int
    remaining: int
    utilization_percentage: int
    campaigns: list[BudgetCampaign]


class BudgetStatusData(APIModel):
    monthly_limit: int
    months: list[BudgetMonth]
