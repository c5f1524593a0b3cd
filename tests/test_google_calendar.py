"""Tests for the Google Calendar API client."""

from unittest.mock import MagicMock

import pytest
from googleapiclient.errors import HttpError

from fitness_calendar.calendar.google_calendar import GoogleCalendarClient, RemoteEvent
from fitness_calendar.exceptions import (
    AccessTokenExpired,
    RemoteListFailed,
    RemoteWriteFailed,
)


def http_error(status: int) -> HttpError:
    return HttpError(MagicMock(status=status, reason="error"), b"")


@pytest.fixture
def service() -> MagicMock:
    """Mock discovery service for the Calendar v3 API."""
    return MagicMock()


@pytest.fixture
def client(service: MagicMock) -> GoogleCalendarClient:
    return GoogleCalendarClient("access-token", service=service)


class TestRemoteEvent:
    """Tests for parsing API event resources."""

    def test_timed_event(self):
        event = RemoteEvent.from_api(
            {
                "id": "g1",
                "summary": "Run",
                "start": {"dateTime": "2025-09-03T06:00:00+05:30", "timeZone": "Asia/Colombo"},
                "end": {"dateTime": "2025-09-03T07:00:00+05:30"},
            }
        )

        assert event.is_all_day is False
        assert event.time_zone == "Asia/Colombo"
        assert event.status == "confirmed"

    def test_all_day_event_without_title(self):
        event = RemoteEvent.from_api(
            {"id": "g2", "start": {"date": "2025-09-03"}, "end": {"date": "2025-09-04"}}
        )

        assert event.is_all_day is True
        assert event.title == "(No title)"


class TestListUpcomingEvents:
    """Tests for listing events."""

    @pytest.mark.asyncio
    async def test_follows_pages_and_skips_cancelled(
        self, client: GoogleCalendarClient, service: MagicMock
    ):
        service.events.return_value.list.return_value.execute.side_effect = [
            {
                "items": [
                    {"id": "g1", "summary": "A", "start": {"date": "2025-09-03"}},
                    {"id": "g2", "status": "cancelled"},
                ],
                "nextPageToken": "page-2",
            },
            {"items": [{"id": "g3", "summary": "C", "start": {"date": "2025-09-04"}}]},
        ]

        events = await client.list_upcoming_events()

        assert [e.id for e in events] == ["g1", "g3"]
        calls = service.events.return_value.list.call_args_list
        assert calls[0].kwargs["calendarId"] == "primary"
        assert calls[0].kwargs["singleEvents"] is True
        assert calls[0].kwargs["orderBy"] == "startTime"
        assert calls[0].kwargs["maxResults"] == 250
        assert "pageToken" not in calls[0].kwargs
        assert calls[1].kwargs["pageToken"] == "page-2"

    @pytest.mark.asyncio
    async def test_empty_calendar(self, client: GoogleCalendarClient, service: MagicMock):
        service.events.return_value.list.return_value.execute.return_value = {}

        assert await client.list_upcoming_events() == []

    @pytest.mark.asyncio
    async def test_unauthorized(self, client: GoogleCalendarClient, service: MagicMock):
        service.events.return_value.list.return_value.execute.side_effect = http_error(401)

        with pytest.raises(AccessTokenExpired):
            await client.list_upcoming_events()

    @pytest.mark.asyncio
    async def test_other_failure(self, client: GoogleCalendarClient, service: MagicMock):
        service.events.return_value.list.return_value.execute.side_effect = http_error(503)

        with pytest.raises(RemoteListFailed) as exc_info:
            await client.list_upcoming_events()

        assert exc_info.value.status_code == 503


class TestWrites:
    """Tests for creating, patching and deleting events."""

    @pytest.mark.asyncio
    async def test_create_returns_remote_id(
        self, client: GoogleCalendarClient, service: MagicMock
    ):
        service.events.return_value.insert.return_value.execute.return_value = {"id": "g-new"}
        body = {"summary": "Leg day", "start": {"date": "2025-09-03"}, "end": {"date": "2025-09-04"}}

        assert await client.create_event(body) == "g-new"
        service.events.return_value.insert.assert_called_once_with(
            calendarId="primary", body=body
        )

    @pytest.mark.asyncio
    async def test_create_unauthorized(self, client: GoogleCalendarClient, service: MagicMock):
        service.events.return_value.insert.return_value.execute.side_effect = http_error(401)

        with pytest.raises(AccessTokenExpired):
            await client.create_event({"summary": "x"})

    @pytest.mark.asyncio
    async def test_patch(self, client: GoogleCalendarClient, service: MagicMock):
        await client.patch_event("g1", {"summary": "New"})

        service.events.return_value.patch.assert_called_once_with(
            calendarId="primary", eventId="g1", body={"summary": "New"}
        )

    @pytest.mark.asyncio
    async def test_patch_failure(self, client: GoogleCalendarClient, service: MagicMock):
        service.events.return_value.patch.return_value.execute.side_effect = http_error(500)

        with pytest.raises(RemoteWriteFailed) as exc_info:
            await client.patch_event("g1", {"summary": "New"})

        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [404, 410])
    async def test_delete_of_missing_event_succeeds(
        self, client: GoogleCalendarClient, service: MagicMock, status: int
    ):
        service.events.return_value.delete.return_value.execute.side_effect = http_error(status)

        await client.delete_event("g1")

    @pytest.mark.asyncio
    async def test_delete_failure(self, client: GoogleCalendarClient, service: MagicMock):
        service.events.return_value.delete.return_value.execute.side_effect = http_error(500)

        with pytest.raises(RemoteWriteFailed):
            await client.delete_event("g1")
