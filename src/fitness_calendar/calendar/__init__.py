"""Calendar integration module.

Keeps local calendar events and the user's Google Calendar in step.

## Features

- List upcoming Google events and mirror them locally
- Push local creates, updates and deletes to Google
- Clean up local copies of events deleted on Google

## Google Calendar API

Uses the Google Calendar API v3:
- https://developers.google.com/calendar/api/v3/reference
"""

from fitness_calendar.calendar.google_calendar import (
    GoogleCalendarClient,
    RemoteEvent,
)
from fitness_calendar.calendar.sync import CalendarSyncService

__all__ = [
    "GoogleCalendarClient",
    "RemoteEvent",
    "CalendarSyncService",
]
