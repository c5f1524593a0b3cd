"""Credential store for Google OAuth tokens.

One `UserCredential` row per platform user. Tokens are encrypted on the way
in and decrypted on the way out, so callers only ever see `StoredCredential`
values with plaintext tokens.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fitness_calendar.database.encryption import decrypt_token, encrypt_token
from fitness_calendar.database.models import UserCredential

logger = logging.getLogger(__name__)


@dataclass
class StoredCredential:
    """Decrypted view of a credential row."""

    user_id: str
    access_token: str
    refresh_token: str | None
    expires_at: int | None  # Epoch seconds
    scope: str | None = None
    token_type: str = "Bearer"

    @property
    def is_connected(self) -> bool:
        """A credential without a refresh token cannot be kept alive."""
        return bool(self.refresh_token)

    def seconds_remaining(self, now: float | None = None) -> float | None:
        if self.expires_at is None:
            return None
        return self.expires_at - (time.time() if now is None else now)


class CredentialStore:
    """Read/write access to `user_google_tokens`."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_row(self, user_id: str) -> UserCredential | None:
        result = await self.db.execute(
            select(UserCredential).where(UserCredential.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def get(self, user_id: str) -> StoredCredential | None:
        """Load and decrypt the credential for a user, if any."""
        row = await self._get_row(user_id)
        if row is None:
            return None

        return StoredCredential(
            user_id=row.user_id,
            access_token=decrypt_token(row.access_token_encrypted),
            refresh_token=decrypt_token(row.refresh_token_encrypted) or None,
            expires_at=row.expires_at,
            scope=row.scope,
            token_type=row.token_type,
        )

    async def save(
        self,
        user_id: str,
        access_token: str,
        refresh_token: str | None,
        expires_at: int | None,
        scope: str | None = None,
        token_type: str = "Bearer",
    ) -> None:
        """Create or replace the credential after an authorization.

        Google omits the refresh token when the user re-consents without
        `prompt=consent`; in that case the stored refresh token is kept.
        """
        row = await self._get_row(user_id)

        if row:
            row.access_token_encrypted = encrypt_token(access_token)
            if refresh_token:
                row.refresh_token_encrypted = encrypt_token(refresh_token)
            row.expires_at = expires_at
            row.scope = scope
            row.token_type = token_type
        else:
            row = UserCredential(
                user_id=user_id,
                access_token_encrypted=encrypt_token(access_token),
                refresh_token_encrypted=(
                    encrypt_token(refresh_token) if refresh_token else None
                ),
                expires_at=expires_at,
                scope=scope,
                token_type=token_type,
            )
            self.db.add(row)

        await self.db.commit()
        logger.info(f"Stored Google credential for user {user_id}")

    async def update_access_token(
        self,
        user_id: str,
        access_token: str,
        expires_at: int | None,
    ) -> None:
        """Persist a refreshed access token in place.

        Raises:
            LookupError: If the user has no credential row
        """
        row = await self._get_row(user_id)
        if row is None:
            raise LookupError(f"No credential stored for user {user_id}")

        row.access_token_encrypted = encrypt_token(access_token)
        row.expires_at = expires_at
        await self.db.commit()
