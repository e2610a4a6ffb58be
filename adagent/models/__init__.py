"""ORM models."""

from adagent.models.api_key import ApiKey
from adagent.models.audit import AgentAuditLog, AuditLog
from adagent.models.campaign import Campaign, CampaignAsset, CampaignAudience
from adagent.models.creative import Asset, Audience
from adagent.models.organization import Organization
from adagent.models.token import AdminToken

__all__ = [
    "AdminToken",
    "AgentAuditLog",
    "ApiKey",
    "Asset",
    "AuditLog",
    "Audience",
    "Campaign",
    "CampaignAsset",
    "CampaignAudience",
    "Organization",
]
