"""FastAPI application and routes.

This module provides the REST API of the calendar sync service.

## API Structure

- /google - Google account connection (OAuth URL and callback)
- /calendar - Connection status, event CRUD and pull sync
- /health - Liveness probe

## Authentication

Routes are addressed by platform user id. Authenticating the caller is the
job of the gateway in front of this service.
"""

from fitness_calendar.api.app import create_app

__all__ = ["create_app"]
