"""Organization model."""

import uuid

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from adagent.database import Base
from adagent.models.mixins import TimestampMixin, uuid_column


class Organization(TimestampMixin, Base):
    """Owning organization."""

    __tablename__ = "organizations"

    id: Mapped[uuid.UUID] = uuid_column()
    name: Mapped[str] = mapped_column(String(255), unique=True)

    admin_tokens = relationship("AdminToken", back_populates="organization")
    api_keys = relationship("ApiKey", back_populates="organization")
    campaigns = relationship("Campaign", back_populates="organization")
