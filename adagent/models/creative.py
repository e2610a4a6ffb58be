"""Creative asset and audience models."""

import uuid
from typing import Any

from sqlalchemy import JSON, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from adagent.database import Base
from adagent.models.mixins import TimestampMixin, uuid_column


class Asset(TimestampMixin, Base):
    """Ad creative."""

    __tablename__ = "assets"

    id: Mapped[uuid.UUID] = uuid_column()
    org_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("organizations.id"), index=True)
    name: Mapped[str] = mapped_column(String(100))
    type: Mapped[str] = mapped_column(String(20))
    ad_format: Mapped[str | None] = mapped_column(String(40))
    ad_data: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    file_url: Mapped[str | None] = mapped_column(String(1024))
    status: Mapped[str] = mapped_column(String(20), default="ready")


class Audience(TimestampMixin, Base):
    """Targeting definition."""

    __tablename__ = "audiences"

    id: Mapped[uuid.UUID] = uuid_column()
    org_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("organizations.id"), index=True)
    name: Mapped[str] = mapped_column(String(100))
    description: Mapped[str | None] = mapped_column(Text)
    age_min: Mapped[int | None] = mapped_column(Integer)
    age_max: Mapped[int | None] = mapped_column(Integer)
    genders: Mapped[list[str]] = mapped_column(JSON, default=list)
    locations: Mapped[list[str]] = mapped_column(JSON, default=list)
    interests: Mapped[list[str]] = mapped_column(JSON, default=list)
    targeting_criteria: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    estimated_size: Mapped[int | None] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(20), default="active")
