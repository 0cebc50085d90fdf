"""Shared base fields for all models."""

import uuid
from datetime import datetime, timezone

from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_uuid() -> uuid.UUID:
    return uuid.uuid4()


class TimestampMixin(SQLModel):
    """Created / updated timestamps injected into every table."""

    created_at: datetime = Field(default_factory=utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False)

    def touch(self) -> None:
        """Bump updated_at without ever moving it backwards."""
        now = utcnow()
        if self.updated_at is None or now > self.updated_at:
            self.updated_at = now
