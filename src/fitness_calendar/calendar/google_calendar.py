"""Google Calendar API client.

Thin wrapper over the Calendar v3 `events` resource of the user's primary
calendar:
- List upcoming events
- Create, patch and delete events

## API Documentation

https://developers.google.com/calendar/api/v3/reference

## Errors

- 401 on any call raises `AccessTokenExpired`; the caller refreshes the
  token and retries once
- Other list failures raise `RemoteListFailed`
- Other write failures raise `RemoteWriteFailed`
- Deleting an event that is already gone (404/410) succeeds

The discovery client is synchronous; each request runs in a worker thread
so that the event loop is not blocked while Google answers.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from fitness_calendar.exceptions import (
    AccessTokenExpired,
    RemoteListFailed,
    RemoteWriteFailed,
)

logger = logging.getLogger(__name__)

PRIMARY_CALENDAR = "primary"


@dataclass
class RemoteEvent:
    """An event as Google Calendar returns it."""

    id: str
    title: str
    description: str | None = None
    start: str | None = None  # RFC 3339 date-time for timed events
    end: str | None = None
    start_date: str | None = None  # YYYY-MM-DD for all-day events
    end_date: str | None = None
    time_zone: str | None = None
    status: str = "confirmed"  # confirmed, tentative, cancelled
    raw_data: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def is_all_day(self) -> bool:
        return self.start_date is not None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> RemoteEvent:
        """Create from Google Calendar API response."""
        start_data = data.get("start", {})
        end_data = data.get("end", {})

        return cls(
            id=data["id"],
            title=data.get("summary", "(No title)"),
            description=data.get("description"),
            start=start_data.get("dateTime"),
            end=end_data.get("dateTime"),
            start_date=start_data.get("date"),
            end_date=end_data.get("date"),
            time_zone=start_data.get("timeZone"),
            status=data.get("status", "confirmed"),
            raw_data=data,
        )


class GoogleCalendarClient:
    """Client for one user's primary Google Calendar.

    Example:
        ```python
        client = GoogleCalendarClient(access_token)

        events = await client.list_upcoming_events()
        remote_id = await client.create_event(body)
        await client.patch_event(remote_id, {"summary": "Leg day"})
        await client.delete_event(remote_id)
        ```
    """

    def __init__(
        self,
        access_token: str,
        calendar_id: str = PRIMARY_CALENDAR,
        page_size: int = 250,
        service: Any | None = None,
    ):
        """Initialize the client.

        Args:
            access_token: OAuth access token (refreshing is the caller's job)
            calendar_id: Calendar to operate on
            page_size: maxResults per list page
            service: Prebuilt discovery service (used by tests)
        """
        self.calendar_id = calendar_id
        self.page_size = page_size

        if service is None:
            credentials = Credentials(token=access_token)
            service = build(
                "calendar", "v3", credentials=credentials, cache_discovery=False
            )
        self._service = service

    async def _execute(self, request: Any) -> Any:
        return await asyncio.to_thread(request.execute)

    @staticmethod
    def _write_error(e: HttpError, action: str) -> Exception:
        status = e.resp.status
        if status == 401:
            return AccessTokenExpired()
        return RemoteWriteFailed(f"Failed to {action} remote event: {status}", status_code=status)

    async def list_upcoming_events(
        self,
        time_min: datetime | None = None,
    ) -> list[RemoteEvent]:
        """List events starting from `time_min` (default: now).

        Recurring events come back expanded (singleEvents) and ordered by
        start time. Cancelled events are skipped.

        Raises:
            AccessTokenExpired: On 401
            RemoteListFailed: On any other HTTP failure
        """
        params: dict[str, Any] = {
            "calendarId": self.calendar_id,
            "timeMin": (time_min or datetime.now(timezone.utc)).isoformat(),
            "maxResults": self.page_size,
            "singleEvents": True,
            "orderBy": "startTime",
        }

        events = []
        page_token = None

        while True:
            if page_token:
                params["pageToken"] = page_token

            try:
                result = await self._execute(self._service.events().list(**params))
            except HttpError as e:
                if e.resp.status == 401:
                    raise AccessTokenExpired() from e
                raise RemoteListFailed(
                    f"Failed to fetch events from Google Calendar: {e.resp.status}",
                    status_code=e.resp.status,
                ) from e

            for item in result.get("items", []):
                if item.get("status") == "cancelled":
                    continue
                events.append(RemoteEvent.from_api(item))

            page_token = result.get("nextPageToken")
            if not page_token:
                break

        return events

    async def create_event(self, body: dict[str, Any]) -> str:
        """Insert an event and return the id Google assigned to it."""
        try:
            result = await self._execute(
                self._service.events().insert(calendarId=self.calendar_id, body=body)
            )
        except HttpError as e:
            raise self._write_error(e, "create") from e

        return result["id"]

    async def patch_event(self, remote_id: str, body: dict[str, Any]) -> None:
        """Patch the given fields of an event."""
        try:
            await self._execute(
                self._service.events().patch(
                    calendarId=self.calendar_id, eventId=remote_id, body=body
                )
            )
        except HttpError as e:
            raise self._write_error(e, "patch") from e

    async def delete_event(self, remote_id: str) -> None:
        """Delete an event. An event that no longer exists counts as deleted."""
        try:
            await self._execute(
                self._service.events().delete(
                    calendarId=self.calendar_id, eventId=remote_id
                )
            )
        except HttpError as e:
            if e.resp.status in (404, 410):
                logger.debug(f"Remote event {remote_id} already deleted")
                return
            raise self._write_error(e, "delete") from e
