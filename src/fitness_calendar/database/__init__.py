"""Database module for calendar synchronization.

This module provides:
- SQLAlchemy async database connection
- Credential, event and profile models
- Encrypted storage for OAuth tokens
- Stores wrapping the credential and event tables
"""

from fitness_calendar.database.connection import (
    close_db,
    create_tables,
    get_db,
    get_db_session,
    init_db,
)
from fitness_calendar.database.credentials import CredentialStore, StoredCredential
from fitness_calendar.database.events import EventStore, StoredEvent
from fitness_calendar.database.models import (
    Base,
    CalendarEvent,
    UserCredential,
    UserProfile,
)

__all__ = [
    # Connection
    "get_db",
    "get_db_session",
    "init_db",
    "close_db",
    "create_tables",
    # Stores
    "CredentialStore",
    "StoredCredential",
    "EventStore",
    "StoredEvent",
    # Models
    "Base",
    "CalendarEvent",
    "UserCredential",
    "UserProfile",
]
