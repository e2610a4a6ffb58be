"""Admin-facing schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field, field_validator

from adagent.schemas.common import APIModel, Pagination
from adagent.services.auth import ACTIONS, RESOURCES, WILDCARD


class _ApiKeyFields(BaseModel):
    description: str | None = Field(default=None, max_length=1000)
    permissions: dict[str, list[str]] | None = None
    expires_at: datetime | None = None
    metadata: dict[str, Any] | None = None

    @field_validator("permissions")
    @classmethod
    def check_permissions(
        cls, permissions: dict[str, list[str]] | None
    ) -> dict[str, list[str]] | None:
        if permissions is None:
            return None
        for resource, actions in permissions.items():
            if resource != WILDCARD and resource not in RESOURCES:
                raise ValueError(f"Unknown resource: {resource}")
            for action in actions:
                if action != WILDCARD and action not in ACTIONS:
                    raise ValueError(f"Unknown action for {resource}: {action}")
        return permissions


class ApiKeyCreateRequest(_ApiKeyFields):
    """Issue an agent API key."""

    name: str = Field(min_length=1, max_length=255)


class ApiKeyUpdateRequest(_ApiKeyFields):
    """Edit the mutable fields of an API key."""

    name: str | None = Field(default=None, min_length=1, max_length=255)


class ApiKeyResponse(APIModel):
    """API key metadata, never including the secret."""

    id: UUID
    name: str
    description: str | None
    key_prefix: str
    permissions: dict[str, list[str]]
    metadata: dict[str, Any] = Field(
        validation_alias=AliasChoices("key_metadata", "metadata")
    )
    expires_at: datetime | None
    revoked_at: datetime | None
    last_used_at: datetime | None
    created_at: datetime


class ApiKeyCreatedResponse(ApiKeyResponse):
    """Freshly issued key; ``api_key`` is shown only in this response."""

    api_key: str


class AgentLogResponse(APIModel):
    """One recorded agent API request."""

    id: UUID
    api_key_id: UUID
    action: str
    resource_type: str | None
    resource_id: str | None
    request_method: str
    request_path: str
    request_body: Any | None
    response_status: int
    response_body: Any | None
    error_message: str | None
    ip_address: str | None
    user_agent: str | None
    duration_ms: int
    created_at: datetime


class AgentLogListResponse(APIModel):
    logs: list[AgentLogResponse]
    pagination: Pagination


class AuditResponse(APIModel):
    """Dashboard audit event."""

    id: UUID
    action: str
    resource_type: str
    resource_id: str
    event_metadata: dict[str, Any]
    timestamp: datetime


class AdminTokenCreateRequest(BaseModel):
    """Create another admin token."""

    name: str = Field(min_length=1, max_length=255)
