"""Calendar routes.

Connection status, pull sync and event CRUD. Event ids in PATCH and DELETE
may be internal ids or Google event ids.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from fitness_calendar.api.dependencies import get_sync_service, get_token_manager
from fitness_calendar.auth.tokens import TokenManager
from fitness_calendar.calendar.sync import CalendarSyncService
from fitness_calendar.config import get_settings
from fitness_calendar.database.events import StoredEvent
from fitness_calendar.exceptions import (
    AmbiguousEventReference,
    GoogleAuthRequired,
    NotConnected,
    NotFound,
    RemoteError,
)

logger = logging.getLogger(__name__)

router = APIRouter()


class ConnectionStatusResponse(BaseModel):
    """Whether the user has a usable Google connection."""

    connected: bool


class EventResponse(BaseModel):
    """A calendar event as shown to the client."""

    id: str
    title: str
    start: str  # YYYY-MM-DD, or YYYY-MM-DDTHH:MM[:SS]
    end: str
    color: str | None
    description: str | None
    remote_event_id: str | None


class EventCreate(BaseModel):
    """Create event request."""

    title: str = Field(..., min_length=1, max_length=255)
    date: str | None = Field(default=None, pattern=r"^\d{4}-\d{2}-\d{2}$")
    start: str | None = None
    end: str | None = None
    description: str | None = None
    color: str | None = Field(default=None, max_length=32)


class EventUpdate(BaseModel):
    """Update event request. Only the fields sent are changed."""

    title: str | None = Field(default=None, min_length=1, max_length=255)
    date: str | None = Field(default=None, pattern=r"^\d{4}-\d{2}-\d{2}$")
    start: str | None = None
    end: str | None = None
    description: str | None = None
    color: str | None = Field(default=None, max_length=32)


class DeleteResponse(BaseModel):
    success: bool


def _event_response(event: StoredEvent) -> EventResponse:
    return EventResponse(**event.to_view())


def _google_auth_required() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": "google_auth_required", "code": GoogleAuthRequired.code},
    )


@router.get("/status/{user_id}", response_model=ConnectionStatusResponse)
async def get_connection_status(
    user_id: str,
    tokens: TokenManager = Depends(get_token_manager),
) -> ConnectionStatusResponse:
    """Whether the user's Google Calendar is connected."""
    return ConnectionStatusResponse(**await tokens.connection_status(user_id))


@router.get("/events/{user_id}", response_model=list[EventResponse])
async def list_events(
    user_id: str,
    service: CalendarSyncService = Depends(get_sync_service),
) -> list[EventResponse]:
    """Stored events of a user, without contacting Google."""
    try:
        events = await service.list_events(user_id)
    except NotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return [_event_response(event) for event in events]


@router.post("/sync/{user_id}", response_model=list[EventResponse])
async def sync_calendar(
    user_id: str,
    service: CalendarSyncService = Depends(get_sync_service),
) -> list[EventResponse]:
    """Pull upcoming Google events and return the user's events."""
    try:
        events = await service.sync_from_remote(user_id)
    except NotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except NotConnected:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="user not connected",
        )
    except GoogleAuthRequired:
        raise _google_auth_required()
    except RemoteError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to fetch events from Google Calendar: {e.status_code}",
        )
    except Exception as e:
        logger.exception(f"Calendar sync failed for user {user_id}")
        detail = "Calendar sync failed"
        if not get_settings().is_production:
            detail = f"{detail}: {e}"
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)

    return [_event_response(event) for event in events]


@router.post(
    "/create/{user_id}",
    response_model=EventResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_event(
    user_id: str,
    data: EventCreate,
    service: CalendarSyncService = Depends(get_sync_service),
) -> EventResponse:
    """Create an event and mirror it to Google when connected."""
    try:
        event = await service.create_event(user_id, data.model_dump())
    except NotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return _event_response(event)


@router.patch("/{calendar_id}", response_model=EventResponse)
async def update_event(
    calendar_id: str,
    data: EventUpdate,
    service: CalendarSyncService = Depends(get_sync_service),
) -> EventResponse:
    """Update an event by internal or Google id."""
    try:
        event = await service.update_event(calendar_id, data.model_dump(exclude_unset=True))
    except NotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except AmbiguousEventReference as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except GoogleAuthRequired:
        raise _google_auth_required()
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return _event_response(event)


@router.delete("/{calendar_id}", response_model=DeleteResponse)
async def delete_event(
    calendar_id: str,
    service: CalendarSyncService = Depends(get_sync_service),
) -> DeleteResponse:
    """Delete an event locally and from Google. Unknown ids succeed."""
    try:
        deleted = await service.delete_event(calendar_id)
    except AmbiguousEventReference as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    return DeleteResponse(success=deleted)
