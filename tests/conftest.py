"""Pytest fixtures for calendar sync tests.

This module provides test fixtures that ensure:
1. No external API calls are made (Google OAuth, Google Calendar)
2. Each test gets its own in-memory SQLite database
3. Isolated test environment with controlled configuration
"""

import os
import time
from urllib.parse import parse_qsl

import pytest

# Set test environment BEFORE importing application modules
# This ensures no real services are contacted during test collection
os.environ.setdefault("SECRET_KEY", "test-secret-key-at-least-32-characters-long")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client-id")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "test-client-secret")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("DEBUG", "true")

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from fitness_calendar.auth.google import GoogleOAuth, get_google_oauth
from fitness_calendar.auth.owners import ProfileOwnerResolver
from fitness_calendar.auth.tokens import TokenManager
from fitness_calendar.calendar.google_calendar import RemoteEvent
from fitness_calendar.calendar.sync import CalendarSyncService
from fitness_calendar.config import get_settings
from fitness_calendar.database.credentials import CredentialStore
from fitness_calendar.database.events import reset_schema_cache
from fitness_calendar.database.models import Base, UserProfile
from fitness_calendar.exceptions import (
    AccessTokenExpired,
    RemoteListFailed,
    RemoteWriteFailed,
)

TEST_USER = "user-123"


# =============================================================================
# Test Isolation Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_caches():
    """Reset cached settings and schema probes before each test."""
    get_settings.cache_clear()
    get_google_oauth.cache_clear()
    reset_schema_cache()
    yield
    get_settings.cache_clear()
    get_google_oauth.cache_clear()
    reset_schema_cache()


@pytest.fixture
async def engine():
    """In-memory SQLite engine with all tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def db_session(engine) -> AsyncSession:
    """Database session bound to the test engine."""
    factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )
    async with factory() as session:
        yield session


# =============================================================================
# Google Fakes
# =============================================================================


class FakeTokenEndpoint:
    """Stand-in for https://oauth2.googleapis.com/token."""

    def __init__(self):
        self.requests: list[dict[str, str]] = []
        self.exchange_status = 200
        self.refresh_status = 200
        self.return_refresh_token = True
        self.refresh_count = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        form = dict(parse_qsl(request.content.decode("utf-8")))
        self.requests.append(form)

        if form["grant_type"] == "authorization_code":
            if self.exchange_status != 200:
                return httpx.Response(self.exchange_status, json={"error": "invalid_grant"})
            data = {
                "access_token": "access-1",
                "expires_in": 3600,
                "token_type": "Bearer",
                "scope": "https://www.googleapis.com/auth/calendar.events",
            }
            if self.return_refresh_token:
                data["refresh_token"] = "refresh-1"
            return httpx.Response(200, json=data)

        if self.refresh_status != 200:
            return httpx.Response(self.refresh_status, json={"error": "invalid_grant"})

        self.refresh_count += 1
        return httpx.Response(
            200,
            json={
                "access_token": f"refreshed-{self.refresh_count}",
                "expires_in": 3600,
                "token_type": "Bearer",
            },
        )

    def grants(self) -> list[str]:
        return [form["grant_type"] for form in self.requests]


class FakeCalendar:
    """In-memory stand-in for a user's primary Google Calendar.

    `client(access_token)` matches the signature of the calendar client
    factory used by `CalendarSyncService`.
    """

    def __init__(self):
        self.events: dict[str, dict] = {}
        self.expired_tokens: set[str] = set()
        self.reject_all = False
        self.fail_list = False
        self.fail_writes = False
        self.tokens_seen: list[str] = []
        self.calls: list[tuple[str, str | None]] = []
        self._next_id = 0

    def client(self, access_token: str) -> "FakeCalendarClient":
        return FakeCalendarClient(self, access_token)

    def add(self, remote_id: str, summary: str, start: dict, end: dict | None = None):
        self.events[remote_id] = {
            "id": remote_id,
            "summary": summary,
            "start": start,
            "end": end or start,
        }

    def new_id(self) -> str:
        self._next_id += 1
        return f"g{self._next_id}"


class FakeCalendarClient:
    def __init__(self, calendar: FakeCalendar, access_token: str):
        self.calendar = calendar
        self.access_token = access_token

    def _check(self, call: str, remote_id: str | None = None) -> None:
        self.calendar.tokens_seen.append(self.access_token)
        self.calendar.calls.append((call, remote_id))
        if self.calendar.reject_all or self.access_token in self.calendar.expired_tokens:
            raise AccessTokenExpired()

    async def list_upcoming_events(self, time_min=None) -> list[RemoteEvent]:
        self._check("list")
        if self.calendar.fail_list:
            raise RemoteListFailed("Failed to fetch events", status_code=500)
        return [RemoteEvent.from_api(data) for data in self.calendar.events.values()]

    async def create_event(self, body: dict) -> str:
        self._check("insert")
        if self.calendar.fail_writes:
            raise RemoteWriteFailed("Failed to create remote event: 500", status_code=500)
        remote_id = self.calendar.new_id()
        self.calendar.events[remote_id] = {"id": remote_id, **body}
        return remote_id

    async def patch_event(self, remote_id: str, body: dict) -> None:
        self._check("patch", remote_id)
        if self.calendar.fail_writes:
            raise RemoteWriteFailed("Failed to patch remote event: 500", status_code=500)
        self.calendar.events[remote_id].update(body)

    async def delete_event(self, remote_id: str) -> None:
        self._check("delete", remote_id)
        if self.calendar.fail_writes:
            raise RemoteWriteFailed("Failed to delete remote event: 500", status_code=500)
        self.calendar.events.pop(remote_id, None)


@pytest.fixture
def token_endpoint() -> FakeTokenEndpoint:
    return FakeTokenEndpoint()


@pytest.fixture
def oauth(token_endpoint: FakeTokenEndpoint) -> GoogleOAuth:
    """Google OAuth client talking to the fake token endpoint."""
    return GoogleOAuth(
        client_id="test-client-id",
        client_secret="test-client-secret",
        redirect_uri="http://localhost:3004/google/callback",
        transport=httpx.MockTransport(token_endpoint.handler),
    )


@pytest.fixture
def calendar() -> FakeCalendar:
    return FakeCalendar()


# =============================================================================
# Service Fixtures
# =============================================================================


@pytest.fixture
def tokens(db_session: AsyncSession, oauth: GoogleOAuth) -> TokenManager:
    return TokenManager(db_session, oauth)


@pytest.fixture
def service(
    db_session: AsyncSession,
    tokens: TokenManager,
    calendar: FakeCalendar,
) -> CalendarSyncService:
    return CalendarSyncService(
        db_session,
        tokens,
        ProfileOwnerResolver(db_session),
        client_factory=calendar.client,
    )


@pytest.fixture
async def profile(db_session: AsyncSession) -> UserProfile:
    """Profile of the test user."""
    profile = UserProfile(platform_user_id=TEST_USER)
    db_session.add(profile)
    await db_session.commit()
    return profile


@pytest.fixture
def save_credential(db_session: AsyncSession):
    """Store a Google credential directly, bypassing the OAuth flow."""

    async def save(
        user_id: str = TEST_USER,
        access_token: str = "access-1",
        refresh_token: str | None = "refresh-1",
        expires_in: int = 3600,
    ) -> None:
        await CredentialStore(db_session).save(
            user_id,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=int(time.time()) + expires_in,
        )

    return save


@pytest.fixture
async def connected_user(profile: UserProfile, save_credential) -> str:
    """Test user with a profile and a fresh Google credential."""
    await save_credential()
    return TEST_USER
