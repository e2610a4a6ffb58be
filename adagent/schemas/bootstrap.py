"""Bootstrap request and response schemas."""

from pydantic import BaseModel, Field

from adagent.schemas.common import TokenResponse


class BootstrapRequest(BaseModel):
    """Name the first organization and its dashboard admin token."""

    organization_name: str = Field(min_length=1, max_length=255)
    admin_token_name: str = Field(default="default-admin", min_length=1, max_length=255)


class BootstrapResponse(BaseModel):
    """First organization, its admin token and the budget ceiling it runs under."""

    organization_id: str
    organization_name: str
    monthly_budget_limit: int
    admin_token: TokenResponse
