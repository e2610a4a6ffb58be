"""Common schema primitives."""

from datetime import datetime
from typing import Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict

DataT = TypeVar("DataT")


class APIModel(BaseModel):
    """Base API model with attribute validation enabled."""

    model_config = ConfigDict(from_attributes=True)


class TokenResponse(APIModel):
    """Return a generated token exactly once."""

    id: UUID
    token: str
    name: str


class MessageResponse(APIModel):
    """Simple message response."""

    message: str
    timestamp: datetime | None = None


class Pagination(APIModel):
    """Page window of a list response."""

    limit: int
    offset: int
    total: int


class SuccessResponse(APIModel, Generic[DataT]):
    """Agent API success envelope."""

    success: bool = True
    data: DataT
