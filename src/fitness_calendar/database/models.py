"""Database models for calendar synchronization.

## Security Notes

- OAuth tokens are encrypted at rest using Fernet symmetric encryption
- The encryption key is derived from the application secret
- PostgreSQL should be configured with SSL and disk encryption

## Schema Overview

```
user_profiles          platform user id -> internal owner id
user_google_tokens     one credential per platform user (encrypted)
calendar_events        one row per calendar entry, keyed by owner
```

`calendar_events.color` was added by a later migration. Code reading or
writing the table must not assume it exists; see
`fitness_calendar.database.events`.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all database models."""


class UserProfile(Base):
    """Internal profile for a platform user.

    Calendar events belong to profiles, not to platform accounts. Only the
    columns needed to resolve an owner are mapped here; the rest of the
    profile belongs to other services.
    """

    __tablename__ = "user_profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    platform_user_id: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False
    )

    def __repr__(self) -> str:
        return f"<UserProfile {self.id} platform_user_id={self.platform_user_id}>"


class UserCredential(Base):
    """Google OAuth credential for a platform user.

    Tokens are encrypted at rest. The encryption happens in the credential
    store, not at the database level, to allow for key rotation.
    """

    __tablename__ = "user_google_tokens"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    # Tokens (encrypted)
    access_token_encrypted: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token_encrypted: Mapped[str | None] = mapped_column(Text)
    token_type: Mapped[str] = mapped_column(String(32), default="Bearer")

    # Token metadata
    scope: Mapped[str | None] = mapped_column(Text)  # Space-separated scopes
    expires_at: Mapped[int | None] = mapped_column(BigInteger)  # Epoch seconds

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )

    def __repr__(self) -> str:
        return f"<UserCredential user_id={self.user_id}>"


class CalendarEvent(Base):
    """A calendar entry owned by a profile.

    `remote_event_id` is set once the event is mirrored to Google Calendar
    and is the join key for reconciliation. Date and times are stored as the
    wall-clock strings the client sent.
    """

    __tablename__ = "calendar_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[int] = mapped_column(Integer, nullable=False)
    user_id: Mapped[str | None] = mapped_column(String(255))
    remote_event_id: Mapped[str | None] = mapped_column(String(1024))

    # Event data
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    color: Mapped[str | None] = mapped_column(String(32))

    # Time
    date: Mapped[str] = mapped_column(String(10), nullable=False)  # YYYY-MM-DD
    start_time: Mapped[str | None] = mapped_column(String(16))
    end_time: Mapped[str | None] = mapped_column(String(16))

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )

    __table_args__ = (
        UniqueConstraint("owner_id", "remote_event_id", name="uq_owner_remote_event"),
        Index("ix_calendar_events_owner", "owner_id"),
        Index("ix_calendar_events_duplicate", "owner_id", "title", "date", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<CalendarEvent {self.title[:30]}>"
