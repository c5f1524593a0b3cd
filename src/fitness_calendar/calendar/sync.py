"""Calendar synchronization service.

Reconciles the local `calendar_events` table with the user's Google
Calendar. The local table is the durable source of truth; Google is an
eventually consistent projection repaired by `sync_from_remote`.

## Pull (`sync_from_remote`)

1. Resolve the owner and obtain a valid access token
2. List upcoming Google events (one refresh-and-retry on 401)
3. Upsert them by (owner, remote id) in one set-based statement
4. Delete the owner's mirrored rows Google no longer returns
5. Return the owner's events

The upsert commits before the cleanup runs.

## Push (`create_event`, `update_event`, `delete_event`)

Local writes happen first and always succeed on their own. Mirroring to
Google is best effort: failures are logged and the row stays unmirrored,
except that an update still rejected with 401 after a refresh raises
`GoogleAuthRequired`.

## Limitations

Two syncs for the same owner may run concurrently; the keyed upsert makes
them converge. A create racing a delete of the same event is not resolved.
"""

from __future__ import annotations

import dataclasses
import logging
import re
import uuid
from datetime import timedelta
from typing import Any, Awaitable, Callable, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from fitness_calendar.auth.owners import OwnerResolver, resolve_owner
from fitness_calendar.auth.tokens import TokenManager
from fitness_calendar.calendar.google_calendar import GoogleCalendarClient
from fitness_calendar.calendar.mapping import (
    apply_time_changes,
    build_remote_body,
    normalize_times,
    remote_to_local,
)
from fitness_calendar.config import Settings, get_settings
from fitness_calendar.database.events import EventStore, StoredEvent
from fitness_calendar.database.models import utcnow
from fitness_calendar.exceptions import (
    AccessTokenExpired,
    GoogleAuthRequired,
    NotConnected,
    NotFound,
    RemoteError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

ClientFactory = Callable[[str], GoogleCalendarClient]

_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)

UPDATABLE_FIELDS = ("title", "description", "color")


class CalendarSyncService:
    """Two-way synchronization between local events and Google Calendar.

    Example:
        ```python
        service = CalendarSyncService(
            db_session,
            TokenManager(db_session, get_google_oauth()),
            ProfileOwnerResolver(db_session),
        )

        events = await service.sync_from_remote("user-123")
        event = await service.create_event("user-123", {"title": "Leg day", "date": "2025-09-03"})
        ```
    """

    def __init__(
        self,
        db: AsyncSession,
        tokens: TokenManager,
        owners: OwnerResolver,
        client_factory: ClientFactory | None = None,
        settings: Settings | None = None,
    ):
        """Initialize the sync service.

        Args:
            db: Database session
            tokens: Token lifecycle manager
            owners: Platform user id to owner id lookup
            client_factory: Builds a calendar client from an access token
            settings: Application settings (default: cached settings)
        """
        settings = settings or get_settings()

        self.events = EventStore(db)
        self.tokens = tokens
        self.owners = owners
        self.time_zone = settings.calendar_time_zone
        self.duplicate_window = timedelta(seconds=settings.duplicate_window_seconds)

        if client_factory is None:
            page_size = settings.calendar_list_page_size

            def client_factory(access_token: str) -> GoogleCalendarClient:
                return GoogleCalendarClient(access_token, page_size=page_size)

        self.client_factory = client_factory

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _call_remote(
        self,
        user_id: str,
        access_token: str,
        call: Callable[[GoogleCalendarClient], Awaitable[T]],
    ) -> T:
        """Run `call` against Google, refreshing the token once on 401.

        Raises:
            GoogleAuthRequired: If the refresh fails or Google answers 401 again
        """
        token = access_token
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(2),
                retry=retry_if_exception_type(AccessTokenExpired),
                reraise=True,
            ):
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        logger.info(f"Access token rejected for user {user_id}, refreshing")
                        token = await self.tokens.refresh_for_user(user_id)
                        if token is None:
                            raise GoogleAuthRequired(user_id)
                    result = await call(self.client_factory(token))
        except AccessTokenExpired as e:
            raise GoogleAuthRequired(user_id) from e

        return result

    async def _resolve_event_id(self, event_ref: str | uuid.UUID) -> uuid.UUID:
        """Internal ids are canonical UUIDs; anything else is a Google event id."""
        if isinstance(event_ref, uuid.UUID):
            return event_ref
        if _UUID_RE.match(event_ref):
            return uuid.UUID(event_ref)

        event_id = await self.events.find_id_by_remote_id(event_ref)
        if event_id is None:
            raise NotFound(f"Calendar event not found: {event_ref}")
        return event_id

    @staticmethod
    def _credential_user(event: StoredEvent) -> str:
        return event.user_id or str(event.owner_id)

    def _remote_body(self, event: StoredEvent) -> dict[str, Any]:
        return build_remote_body(
            event.title,
            event.description,
            event.date,
            event.start_time,
            event.end_time,
            self.time_zone,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_events(self, user_id: str) -> list[StoredEvent]:
        """Stored events of a user, without contacting Google."""
        owner_id = await resolve_owner(self.owners, user_id)
        return await self.events.list_for_owner(owner_id)

    # ------------------------------------------------------------------
    # Pull
    # ------------------------------------------------------------------

    async def sync_from_remote(self, user_id: str) -> list[StoredEvent]:
        """Pull upcoming Google events into the local table.

        Raises:
            NotFound: If the user has no profile
            NotConnected: If the user has no refresh token or no usable token
            GoogleAuthRequired: If Google rejects the user after a refresh
            RemoteListFailed: If Google fails the listing for another reason
        """
        owner_id = await resolve_owner(self.owners, user_id)

        credential = await self.tokens.get_credential(user_id)
        if credential is None or not credential.is_connected:
            raise NotConnected(user_id)

        access_token = await self.tokens.ensure_valid_access_token(user_id)
        if access_token is None:
            raise NotConnected(user_id)

        remote_events = await self._call_remote(
            user_id, access_token, lambda client: client.list_upcoming_events()
        )

        rows = [remote_to_local(event) for event in remote_events]
        written = await self.events.upsert_remote_events(owner_id, user_id, rows)

        # Runs only after the upsert is committed
        fetched_ids = {row["remote_event_id"] for row in rows}
        removed = await self.events.delete_stale_mirrored(owner_id, fetched_ids)

        logger.info(
            f"Synced calendar for user {user_id}: "
            f"{len(remote_events)} fetched, {written} upserted, {removed} removed"
        )

        return await self.events.list_for_owner(owner_id)

    # ------------------------------------------------------------------
    # Push
    # ------------------------------------------------------------------

    async def create_event(self, user_id: str, data: dict[str, Any]) -> StoredEvent:
        """Create an event locally and mirror it to Google when connected.

        A create repeating the owner, title and date of an event created
        within the duplicate window returns that event instead.

        Raises:
            NotFound: If the user has no profile
            ValueError: If the title or date is missing, or a date or time is malformed
        """
        owner_id = await resolve_owner(self.owners, user_id)

        title = data.get("title")
        if not title or not title.strip():
            raise ValueError("An event needs a title")
        event_date, start_time, end_time = normalize_times(
            data.get("date"), data.get("start"), data.get("end")
        )

        if self.duplicate_window:
            duplicate = await self.events.find_recent_duplicate(
                owner_id, title, event_date, since=utcnow() - self.duplicate_window
            )
            if duplicate:
                logger.info(f"Suppressed duplicate create of event {duplicate.id}")
                return duplicate

        event = await self.events.insert(
            {
                "owner_id": owner_id,
                "user_id": str(user_id),
                "title": title,
                "description": data.get("description"),
                "color": data.get("color"),
                "date": event_date,
                "start_time": start_time,
                "end_time": end_time,
            }
        )

        return await self._mirror_new_event(event)

    async def _mirror_new_event(self, event: StoredEvent) -> StoredEvent:
        user_id = self._credential_user(event)

        credential = await self.tokens.get_credential(user_id)
        if credential is None or not credential.is_connected:
            return event

        access_token = await self.tokens.ensure_valid_access_token(user_id)
        if access_token is None:
            logger.warning(f"No usable token for user {user_id}; event {event.id} not mirrored")
            return event

        try:
            body = self._remote_body(event)
            remote_id = await self._call_remote(
                user_id, access_token, lambda client: client.create_event(body)
            )
        except (GoogleAuthRequired, RemoteError) as e:
            logger.warning(f"Event {event.id} not mirrored to Google: {e}")
            return event
        except Exception:
            logger.exception(f"Event {event.id} not mirrored to Google")
            return event

        await self.events.set_remote_id(event.id, remote_id)
        return dataclasses.replace(event, remote_event_id=remote_id)

    async def update_event(
        self,
        event_ref: str | uuid.UUID,
        fields: dict[str, Any],
    ) -> StoredEvent:
        """Apply the fields present in `fields` and patch the Google copy.

        Args:
            event_ref: Internal id or Google event id
            fields: Any of title, description, color, date, start, end

        Raises:
            NotFound: If no event matches `event_ref`
            AmbiguousEventReference: If a Google id is mirrored for several owners
            ValueError: If the title would become empty, or a date or time is malformed
            GoogleAuthRequired: If Google still answers 401 after a refresh
        """
        event_id = await self._resolve_event_id(event_ref)

        existing = await self.events.get(event_id)
        if existing is None:
            raise NotFound(f"Calendar event not found: {event_ref}")

        changes = {key: fields[key] for key in UPDATABLE_FIELDS if key in fields}
        if "title" in changes and not (changes["title"] or "").strip():
            raise ValueError("An event needs a title")
        if any(key in fields for key in ("date", "start", "end")):
            event_date, start_time, end_time = apply_time_changes(
                (existing.date, existing.start_time, existing.end_time), fields
            )
            changes.update(date=event_date, start_time=start_time, end_time=end_time)

        updated = await self.events.update(event_id, changes) if changes else existing
        if updated is None:
            raise NotFound(f"Calendar event not found: {event_ref}")

        if updated.is_mirrored:
            await self._patch_remote(updated)

        return updated

    async def _patch_remote(self, event: StoredEvent) -> None:
        user_id = self._credential_user(event)

        access_token = await self.tokens.ensure_valid_access_token(user_id)
        if access_token is None:
            if await self.tokens.get_credential(user_id) is None:
                logger.info(f"No credential for user {user_id}; event {event.id} not patched")
                return
            raise GoogleAuthRequired(user_id)

        try:
            body = self._remote_body(event)
            await self._call_remote(
                user_id,
                access_token,
                lambda client: client.patch_event(event.remote_event_id, body),
            )
        except GoogleAuthRequired:
            raise
        except RemoteError as e:
            logger.warning(f"Failed to patch remote event {event.remote_event_id}: {e}")
        except Exception:
            logger.exception(f"Failed to patch remote event {event.remote_event_id}")

    async def delete_event(self, event_ref: str | uuid.UUID) -> bool:
        """Delete an event locally and from Google.

        Deleting an unknown event succeeds. Remote failures are logged and
        never keep the local row alive.

        Returns:
            Always True

        Raises:
            AmbiguousEventReference: If a Google id is mirrored for several owners
        """
        try:
            event_id = await self._resolve_event_id(event_ref)
        except NotFound:
            return True

        existing = await self.events.get(event_id)
        if existing is None:
            return True

        if existing.is_mirrored:
            await self._delete_remote(existing)

        await self.events.delete(event_id)
        return True

    async def _delete_remote(self, event: StoredEvent) -> None:
        user_id = self._credential_user(event)

        access_token = await self.tokens.ensure_valid_access_token(user_id)
        if access_token is None:
            logger.warning(
                f"No usable token for user {user_id}; "
                f"remote event {event.remote_event_id} left in place"
            )
            return

        try:
            await self._call_remote(
                user_id,
                access_token,
                lambda client: client.delete_event(event.remote_event_id),
            )
        except (GoogleAuthRequired, RemoteError) as e:
            logger.warning(f"Failed to delete remote event {event.remote_event_id}: {e}")
        except Exception:
            logger.exception(f"Failed to delete remote event {event.remote_event_id}")
