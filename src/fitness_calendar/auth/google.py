"""Google OAuth 2.0 client.

Implements the authorization code flow used to connect a platform user's
Google Calendar.

## OAuth Endpoints

- Authorization: https://accounts.google.com/o/oauth2/v2/auth
- Token: https://oauth2.googleapis.com/token

## Flow

1. `get_authorization_url(user_id)` - the user id travels as `state`
2. Google redirects to GOOGLE_REDIRECT_URI with `code` and `state`
3. `exchange_code(code)` - returns access and refresh tokens
4. `refresh_access_token(refresh_token)` - whenever the access token expires

`access_type=offline` and `prompt=consent` are always requested so that
Google issues a refresh token on every authorization.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from functools import lru_cache
from urllib.parse import urlencode

import httpx

from fitness_calendar.config import get_settings
from fitness_calendar.exceptions import RefreshFailed, TokenExchangeFailed

logger = logging.getLogger(__name__)

# Google OAuth endpoints
GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"


@dataclass
class GoogleTokens:
    """OAuth tokens from Google."""

    access_token: str
    refresh_token: str | None
    token_type: str
    expires_in: int | None
    scope: str
    expires_at: int | None = None  # Epoch seconds

    @classmethod
    def from_response(
        cls,
        data: dict,
        fallback_refresh_token: str | None = None,
    ) -> GoogleTokens:
        expires_in = data.get("expires_in")
        if expires_in is not None:
            expires_in = int(expires_in)

        return cls(
            access_token=data["access_token"],
            # Google may not return a new refresh token
            refresh_token=data.get("refresh_token", fallback_refresh_token),
            token_type=data.get("token_type", "Bearer"),
            expires_in=expires_in,
            scope=data.get("scope", ""),
            expires_at=int(time.time()) + expires_in if expires_in is not None else None,
        )


class GoogleOAuth:
    """Google OAuth 2.0 client.

    Example:
        ```python
        oauth = GoogleOAuth()

        # Generate authorization URL
        auth_url = oauth.get_authorization_url(user_id)

        # Handle callback
        tokens = await oauth.exchange_code(code)
        ```
    """

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        redirect_uri: str | None = None,
        scopes: list[str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 30.0,
    ):
        """Initialize Google OAuth client.

        Args:
            client_id: Google OAuth client ID (or from settings)
            client_secret: Google OAuth client secret (or from settings)
            redirect_uri: OAuth callback URL (or from settings)
            scopes: OAuth scopes to request (or from settings)
            transport: Custom httpx transport (used by tests)
            timeout: Request timeout in seconds
        """
        settings = get_settings()

        self.client_id = client_id or settings.google_client_id
        self.client_secret = client_secret or settings.google_client_secret
        self.redirect_uri = redirect_uri or settings.google_redirect_uri
        self.scopes = scopes or settings.google_calendar_scopes
        self.transport = transport
        self.timeout = timeout

        if not self.is_configured:
            logger.warning(
                "Google OAuth not configured. Set GOOGLE_CLIENT_ID and "
                "GOOGLE_CLIENT_SECRET environment variables."
            )

    @property
    def is_configured(self) -> bool:
        """Check if Google OAuth is properly configured."""
        return bool(self.client_id and self.client_secret)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport, timeout=self.timeout)

    def get_authorization_url(self, user_id: str) -> str:
        """Generate the Google OAuth authorization URL for a user.

        The URL is a pure function of configuration and `user_id`.
        """
        params = {
            "client_id": self.client_id or "",
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "access_type": "offline",
            "prompt": "consent",
            "state": user_id,
        }
        return f"{GOOGLE_AUTHORIZE_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> GoogleTokens:
        """Exchange authorization code for tokens.

        Raises:
            TokenExchangeFailed: If Google rejects the code
        """
        async with self._client() as client:
            response = await client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "code": code,
                    "grant_type": "authorization_code",
                    "redirect_uri": self.redirect_uri,
                },
            )

        if response.status_code != 200:
            logger.error(f"Token exchange failed: {response.text}")
            raise TokenExchangeFailed(
                f"Token exchange failed: {response.status_code}",
                status_code=response.status_code,
                response_body=response.text,
            )

        return GoogleTokens.from_response(response.json())

    async def refresh_access_token(self, refresh_token: str) -> GoogleTokens:
        """Obtain a new access token.

        Raises:
            RefreshFailed: If Google rejects the refresh token
        """
        async with self._client() as client:
            response = await client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                },
            )

        if response.status_code != 200:
            logger.error(f"Token refresh failed: {response.text}")
            raise RefreshFailed(
                f"Token refresh failed: {response.status_code}",
                status_code=response.status_code,
                response_body=response.text,
            )

        return GoogleTokens.from_response(
            response.json(), fallback_refresh_token=refresh_token
        )


@lru_cache
def get_google_oauth() -> GoogleOAuth:
    """Get cached Google OAuth client instance."""
    return GoogleOAuth()
