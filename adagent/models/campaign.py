"""Campaign and assignment models."""

import uuid
from datetime import date, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from adagent.database import Base
from adagent.models.mixins import TimestampMixin, utcnow, uuid_column


class Campaign(TimestampMixin, Base):
    """Advertising campaign owned by an organization."""

    __tablename__ = "campaigns"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    org_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("organizations.id"), index=True)
    name: Mapped[str] = mapped_column(String(100))
    platforms: Mapped[list[str]] = mapped_column(JSON, default=list)
    budget: Mapped[int] = mapped_column(Integer)
    start_date: Mapped[date] = mapped_column(Date)
    end_date: Mapped[date] = mapped_column(Date)
    goal: Mapped[str | None] = mapped_column(Text)
    status: Mapped[bool] = mapped_column(Boolean, default=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    organization = relationship("Organization", back_populates="campaigns")
    asset_links = relationship(
        "CampaignAsset", back_populates="campaign", cascade="all, delete-orphan"
    )
    audience_links = relationship(
        "CampaignAudience", back_populates="campaign", cascade="all, delete-orphan"
    )


class CampaignAsset(Base):
    """Asset assigned to a campaign."""

    __tablename__ = "campaign_assets"
    __table_args__ = (
        UniqueConstraint("campaign_id", "asset_id", name="uq_campaign_assets_pair"),
    )

    id: Mapped[uuid.UUID] = uuid_column()
    campaign_id: Mapped[int] = mapped_column(ForeignKey("campaigns.id"))
    asset_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("assets.id"))
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    campaign = relationship("Campaign", back_populates="asset_links")
    asset = relationship("Asset")


class CampaignAudience(Base):
    """Audience assigned to a campaign."""

    __tablename__ = "campaign_audiences"
    __table_args__ = (
        UniqueConstraint(
            "campaign_id", "audience_id", name="uq_campaign_audiences_pair"
        ),
    )

    id: Mapped[uuid.UUID] = uuid_column()
    campaign_id: Mapped[int] = mapped_column(ForeignKey("campaigns.id"))
    audience_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("audiences.id"))
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    campaign = relationship("Campaign", back_populates="audience_links")
    audience = relationship("Audience")
