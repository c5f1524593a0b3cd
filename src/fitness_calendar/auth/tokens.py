"""Token lifecycle management.

Keeps a usable Google access token available for each connected user:

- `complete_authorization` exchanges the callback code and stores tokens
- `ensure_valid_access_token` returns the stored token while it has more
  than TOKEN_REFRESH_MARGIN_SECONDS left, otherwise refreshes and persists
- `refresh_for_user` forces a refresh after the Calendar API answered 401

Refresh failures never raise out of this module: they return None so the
caller can ask the user to re-authorize instead of failing the request.
Two near-simultaneous refreshes for one user both succeed and the last
write wins; Google accepts either token.
"""

from __future__ import annotations

import logging
import time

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from fitness_calendar.auth.google import GoogleOAuth
from fitness_calendar.config import get_settings
from fitness_calendar.database.credentials import CredentialStore, StoredCredential
from fitness_calendar.exceptions import RefreshFailed

logger = logging.getLogger(__name__)


class TokenManager:
    """Access-token lifecycle for platform users.

    Example:
        ```python
        tokens = TokenManager(db_session, get_google_oauth())

        url = tokens.build_authorization_url("user-123")
        await tokens.complete_authorization(code, "user-123")
        access_token = await tokens.ensure_valid_access_token("user-123")
        ```
    """

    def __init__(
        self,
        db: AsyncSession,
        oauth: GoogleOAuth,
        refresh_margin_seconds: int | None = None,
    ):
        self.credentials = CredentialStore(db)
        self.oauth = oauth
        if refresh_margin_seconds is None:
            refresh_margin_seconds = get_settings().token_refresh_margin_seconds
        self.refresh_margin_seconds = refresh_margin_seconds

    def build_authorization_url(self, user_id: str) -> str:
        return self.oauth.get_authorization_url(user_id)

    async def complete_authorization(self, code: str, user_id: str) -> None:
        """Exchange an authorization code and store the resulting tokens.

        Raises:
            TokenExchangeFailed: If Google rejects the code
        """
        tokens = await self.oauth.exchange_code(code)
        await self.credentials.save(
            user_id,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_at=tokens.expires_at,
            scope=tokens.scope,
            token_type=tokens.token_type,
        )
        logger.info(f"User {user_id} connected Google Calendar")

    async def get_credential(self, user_id: str) -> StoredCredential | None:
        return await self.credentials.get(user_id)

    async def ensure_valid_access_token(self, user_id: str) -> str | None:
        """Return an access token with enough lifetime left, refreshing if needed.

        Returns:
            The access token, or None when the user has no credential, no
            refresh token, or the refresh was rejected
        """
        credential = await self.credentials.get(user_id)
        if credential is None:
            return None

        remaining = credential.seconds_remaining(time.time())
        if remaining is not None and remaining > self.refresh_margin_seconds:
            return credential.access_token

        if not credential.refresh_token:
            logger.info(f"Access token for user {user_id} expired and no refresh token")
            return None

        return await self._refresh(credential)

    async def refresh_for_user(self, user_id: str) -> str | None:
        """Force a refresh regardless of the stored expiry."""
        credential = await self.credentials.get(user_id)
        if credential is None or not credential.refresh_token:
            return None

        return await self._refresh(credential)

    async def _refresh(self, credential: StoredCredential) -> str | None:
        try:
            tokens = await self.oauth.refresh_access_token(credential.refresh_token)
        except RefreshFailed as e:
            logger.warning(
                f"Refresh rejected for user {credential.user_id}: "
                f"{e.status_code} {e.response_body}"
            )
            return None
        except httpx.HTTPError as e:
            logger.warning(f"Refresh request failed for user {credential.user_id}: {e}")
            return None

        await self.credentials.update_access_token(
            credential.user_id, tokens.access_token, tokens.expires_at
        )
        logger.debug(f"Refreshed access token for user {credential.user_id}")
        return tokens.access_token

    async def connection_status(self, user_id: str) -> dict[str, bool]:
        """Whether the user has a valid or refreshable token.

        Never raises: any lookup failure reports the user as disconnected.
        """
        try:
            token = await self.ensure_valid_access_token(user_id)
        except Exception:
            logger.exception(f"Could not determine calendar connection for user {user_id}")
            return {"connected": False}

        return {"connected": token is not None}
