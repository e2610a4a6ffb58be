"""Agent API key model."""

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, LargeBinary, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from adagent.database import Base
from adagent.models.mixins import TimestampMixin, uuid_column


class ApiKey(TimestampMixin, Base):
    """Encrypted-at-rest credential used by the hosted agent."""

    __tablename__ = "api_keys"

    id: Mapped[uuid.UUID] = uuid_column()
    org_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("organizations.id"))
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text)
    key_prefix: Mapped[str] = mapped_column(String(32))
    key_lookup: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    encrypted_secret: Mapped[bytes] = mapped_column(LargeBinary)
    wrapped_data_key: Mapped[bytes] = mapped_column(LargeBinary)
    permissions: Mapped[dict[str, list[str]]] = mapped_column(JSON, default=dict)
    key_metadata: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    organization = relationship("Organization", back_populates="api_keys")

    @property
    def is_revoked(self) -> bool:
        """Whether the key has been revoked."""
        return self.revoked_at is not None

    def is_expired(self, now: datetime | None = None) -> bool:
        """Return whether the key is past its expiry.

        Parameters
        ----------
        now : datetime | None, default=None
            Reference time, defaults to the current UTC time.

        Returns
        -------
        bool
            ``True`` once ``expires_at`` has passed.
        """
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        expires = self.expires_at
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
        return expires <= now
