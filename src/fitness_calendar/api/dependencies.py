"""FastAPI dependencies that assemble the sync services per request."""

from __future__ import annotations

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from fitness_calendar.auth.google import GoogleOAuth, get_google_oauth
from fitness_calendar.auth.owners import ProfileOwnerResolver
from fitness_calendar.auth.tokens import TokenManager
from fitness_calendar.calendar.sync import CalendarSyncService, ClientFactory
from fitness_calendar.database.connection import get_db_session


def get_token_manager(
    db: AsyncSession = Depends(get_db_session),
    oauth: GoogleOAuth = Depends(get_google_oauth),
) -> TokenManager:
    return TokenManager(db, oauth)


def get_calendar_client_factory() -> ClientFactory | None:
    """Calendar client factory; None selects the real Google client."""
    return None


def get_sync_service(
    db: AsyncSession = Depends(get_db_session),
    tokens: TokenManager = Depends(get_token_manager),
    client_factory: ClientFactory | None = Depends(get_calendar_client_factory),
) -> CalendarSyncService:
    return CalendarSyncService(
        db,
        tokens,
        ProfileOwnerResolver(db),
        client_factory=client_factory,
    )
