"""Local event store.

Keyed CRUD over the `calendar_events` table, written with SQLAlchemy Core
statements so every query names its columns explicitly.

## Optional columns

`color` was added by a later migration and may be missing in some
environments. Whether it exists is probed once per process by inspecting
the table and cached; statements include or omit the column accordingly.
If a statement still fails because the column does not exist (for example a
migration was rolled back while the process was running), the cache is
flipped and the same operation is retried once without the column.

## Units of work

Each write method commits. The pull sync relies on this: the upsert is
durable before staleness cleanup runs, so a crash between the two leaves at
worst a stale row, never a lost one.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, TypeVar

from sqlalchemy import delete, insert, inspect, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from fitness_calendar.database.models import CalendarEvent, utcnow
from fitness_calendar.exceptions import AmbiguousEventReference

logger = logging.getLogger(__name__)

T = TypeVar("T")

TABLE = CalendarEvent.__table__

BASE_COLUMNS = (
    "id",
    "owner_id",
    "user_id",
    "remote_event_id",
    "title",
    "description",
    "date",
    "start_time",
    "end_time",
    "created_at",
)

# Columns refreshed from the provider on every pull
REMOTE_FIELDS = ("title", "description", "date", "start_time", "end_time")

UPSERT_BATCH_SIZE = 500

_MISSING_COLUMN_MARKERS = ("does not exist", "no such column", "has no column")

# Probe result for the optional color column (None = not probed yet)
_color_supported: bool | None = None


def reset_schema_cache() -> None:
    """Forget the cached column probe.

    Call this after running migrations in-process, or between tests that
    use different schemas.
    """
    global _color_supported
    _color_supported = None


def _is_missing_column(exc: DBAPIError, column: str) -> bool:
    message = str(exc.orig if exc.orig is not None else exc).lower()
    return column in message and any(m in message for m in _MISSING_COLUMN_MARKERS)


def _table_columns(sync_conn) -> set[str]:
    return {col["name"] for col in inspect(sync_conn).get_columns(TABLE.name)}


@dataclass
class StoredEvent:
    """A row of `calendar_events`."""

    id: uuid.UUID
    owner_id: int
    title: str
    date: str
    start_time: str | None = None
    end_time: str | None = None
    description: str | None = None
    color: str | None = None
    remote_event_id: str | None = None
    user_id: str | None = None
    created_at: datetime | None = field(default=None, compare=False)

    @classmethod
    def from_row(cls, row: Any) -> StoredEvent:
        data = dict(row)
        return cls(
            id=data["id"],
            owner_id=data["owner_id"],
            title=data["title"],
            date=data["date"],
            start_time=data.get("start_time"),
            end_time=data.get("end_time"),
            description=data.get("description"),
            color=data.get("color"),
            remote_event_id=data.get("remote_event_id"),
            user_id=data.get("user_id"),
            created_at=data.get("created_at"),
        )

    @property
    def is_mirrored(self) -> bool:
        return self.remote_event_id is not None

    @property
    def is_all_day(self) -> bool:
        return self.start_time is None and self.end_time is None

    def to_view(self) -> dict[str, Any]:
        """Shape returned to the request layer."""
        start = f"{self.date}T{self.start_time}" if self.start_time else self.date
        end = f"{self.date}T{self.end_time}" if self.end_time else self.date
        return {
            "id": str(self.id),
            "title": self.title,
            "start": start,
            "end": end,
            "color": self.color,
            "description": self.description,
            "remote_event_id": self.remote_event_id,
        }


class EventStore:
    """Read/write access to `calendar_events`.

    Example:
        ```python
        store = EventStore(db_session)
        event = await store.insert({"owner_id": 7, "title": "Leg day", "date": "2025-09-03"})
        await store.set_remote_id(event.id, "abc123")
        ```
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Schema capability
    # ------------------------------------------------------------------

    async def supports_color(self) -> bool:
        """Whether `calendar_events.color` exists (probed once per process)."""
        global _color_supported

        if _color_supported is None:
            conn = await self.db.connection()
            columns = await conn.run_sync(_table_columns)
            _color_supported = "color" in columns
            if not _color_supported:
                logger.warning(
                    "calendar_events.color column not found; colors will not be stored"
                )

        return _color_supported

    async def _run(self, operation: Callable[[bool], Awaitable[T]]) -> T:
        """Run `operation(with_color)`, dropping color once if the column is gone."""
        global _color_supported

        with_color = await self.supports_color()
        try:
            return await operation(with_color)
        except DBAPIError as e:
            if not with_color or not _is_missing_column(e, "color"):
                raise
            logger.warning("calendar_events.color disappeared; retrying without it")
            await self.db.rollback()
            _color_supported = False
            return await operation(False)

    def _columns(self, with_color: bool) -> list:
        columns = [TABLE.c[name] for name in BASE_COLUMNS]
        if with_color:
            columns.append(TABLE.c.color)
        return columns

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_for_owner(self, owner_id: int) -> list[StoredEvent]:
        """All events for an owner, ordered by date and start time."""

        async def operation(with_color: bool) -> list[StoredEvent]:
            result = await self.db.execute(
                select(*self._columns(with_color))
                .where(TABLE.c.owner_id == owner_id)
                .order_by(TABLE.c.date, TABLE.c.start_time)
            )
            return [StoredEvent.from_row(row) for row in result.mappings().all()]

        return await self._run(operation)

    async def get(self, event_id: uuid.UUID) -> StoredEvent | None:
        async def operation(with_color: bool) -> StoredEvent | None:
            result = await self.db.execute(
                select(*self._columns(with_color)).where(TABLE.c.id == event_id)
            )
            row = result.mappings().first()
            return StoredEvent.from_row(row) if row else None

        return await self._run(operation)

    async def find_id_by_remote_id(self, remote_event_id: str) -> uuid.UUID | None:
        """Resolve a provider event id to the internal id.

        Provider ids are unique per owner only, so an id mirrored for two
        owners cannot be resolved without one.

        Raises:
            AmbiguousEventReference: If more than one row carries the id
        """
        result = await self.db.execute(
            select(TABLE.c.id)
            .where(TABLE.c.remote_event_id == remote_event_id)
            .limit(2)
        )
        ids = result.scalars().all()
        if len(ids) > 1:
            raise AmbiguousEventReference(
                f"Remote event id {remote_event_id} belongs to more than one owner"
            )
        return ids[0] if ids else None

    async def find_recent_duplicate(
        self,
        owner_id: int,
        title: str,
        date: str,
        since: datetime,
    ) -> StoredEvent | None:
        """Newest event with the same owner/title/date created at or after `since`."""

        async def operation(with_color: bool) -> StoredEvent | None:
            result = await self.db.execute(
                select(*self._columns(with_color))
                .where(
                    TABLE.c.owner_id == owner_id,
                    TABLE.c.title == title,
                    TABLE.c.date == date,
                    TABLE.c.created_at >= since,
                )
                .order_by(TABLE.c.created_at.desc())
                .limit(1)
            )
            row = result.mappings().first()
            return StoredEvent.from_row(row) if row else None

        return await self._run(operation)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert(self, values: dict[str, Any]) -> StoredEvent:
        """Insert a new event and return it."""
        now = utcnow()
        row = {
            "id": uuid.uuid4(),
            "created_at": now,
            "updated_at": now,
            "remote_event_id": None,
            "user_id": None,
            "description": None,
            "start_time": None,
            "end_time": None,
            **values,
        }

        async def operation(with_color: bool) -> StoredEvent:
            data = dict(row)
            if not with_color:
                data.pop("color", None)
            await self.db.execute(insert(TABLE).values(**data))
            await self.db.commit()
            return StoredEvent.from_row(data)

        return await self._run(operation)

    async def update(
        self,
        event_id: uuid.UUID,
        changes: dict[str, Any],
    ) -> StoredEvent | None:
        """Apply `changes` to one event and return the updated row."""

        async def operation(with_color: bool) -> None:
            data = dict(changes)
            if not with_color:
                data.pop("color", None)
            data["updated_at"] = utcnow()
            await self.db.execute(
                update(TABLE).where(TABLE.c.id == event_id).values(**data)
            )
            await self.db.commit()

        await self._run(operation)
        return await self.get(event_id)

    async def set_remote_id(self, event_id: uuid.UUID, remote_event_id: str) -> None:
        """Mark an event as mirrored."""
        await self.db.execute(
            update(TABLE)
            .where(TABLE.c.id == event_id)
            .values(remote_event_id=remote_event_id, updated_at=utcnow())
        )
        await self.db.commit()

    async def delete(self, event_id: uuid.UUID) -> bool:
        """Delete one event. Returns False if no row matched."""
        result = await self.db.execute(delete(TABLE).where(TABLE.c.id == event_id))
        await self.db.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def _dialect_insert(self):
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert(TABLE)
        if dialect == "sqlite":
            return sqlite.insert(TABLE)
        raise NotImplementedError(f"Upsert not supported for dialect {dialect}")

    async def upsert_remote_events(
        self,
        owner_id: int,
        user_id: str | None,
        rows: list[dict[str, Any]],
    ) -> int:
        """Insert-or-update pulled events keyed by (owner_id, remote_event_id).

        Rows are written with `INSERT .. ON CONFLICT DO UPDATE`, never a
        select-then-write loop, so two concurrent pulls converge. Rows
        repeating a remote id are collapsed to the last occurrence because
        PostgreSQL refuses to update the same row twice in one statement.

        Returns:
            Number of distinct remote events written
        """
        by_remote_id: dict[str, dict[str, Any]] = {}
        for row in rows:
            by_remote_id[row["remote_event_id"]] = row

        if not by_remote_id:
            return 0

        now = utcnow()
        values = [
            {
                "id": uuid.uuid4(),
                "owner_id": owner_id,
                "user_id": user_id,
                "remote_event_id": remote_id,
                "created_at": now,
                "updated_at": now,
                **{name: row.get(name) for name in REMOTE_FIELDS},
            }
            for remote_id, row in by_remote_id.items()
        ]

        for start in range(0, len(values), UPSERT_BATCH_SIZE):
            stmt = self._dialect_insert().values(values[start : start + UPSERT_BATCH_SIZE])
            set_ = {name: stmt.excluded[name] for name in REMOTE_FIELDS}
            set_["user_id"] = stmt.excluded.user_id
            set_["updated_at"] = stmt.excluded.updated_at
            stmt = stmt.on_conflict_do_update(
                index_elements=[TABLE.c.owner_id, TABLE.c.remote_event_id],
                set_=set_,
            )
            await self.db.execute(stmt)

        await self.db.commit()
        return len(values)

    async def delete_stale_mirrored(
        self,
        owner_id: int,
        keep_remote_ids: set[str],
    ) -> int:
        """Delete mirrored events of an owner whose remote id is not in `keep_remote_ids`.

        An empty `keep_remote_ids` removes every mirrored event of the owner.
        Events that were never mirrored are not touched.

        Returns:
            Number of rows deleted
        """
        stmt = delete(TABLE).where(
            TABLE.c.owner_id == owner_id,
            TABLE.c.remote_event_id.is_not(None),
        )
        if keep_remote_ids:
            stmt = stmt.where(TABLE.c.remote_event_id.not_in(sorted(keep_remote_ids)))

        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount
