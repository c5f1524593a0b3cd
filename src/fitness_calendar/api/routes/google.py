"""Google account connection routes.

## OAuth Flow

1. GET /google/oauth-url/{user_id} - Consent URL carrying the user id as state
2. GET /google/callback - Exchange the code, store tokens, redirect to the frontend
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel

from fitness_calendar.api.dependencies import get_token_manager
from fitness_calendar.auth.tokens import TokenManager
from fitness_calendar.config import get_settings

logger = logging.getLogger(__name__)

router = APIRouter()


class OAuthUrlResponse(BaseModel):
    """Google consent screen URL."""

    url: str


@router.get("/oauth-url/{user_id}", response_model=OAuthUrlResponse)
async def get_oauth_url(
    user_id: str,
    tokens: TokenManager = Depends(get_token_manager),
) -> OAuthUrlResponse:
    """Authorization URL for connecting the user's Google Calendar."""
    if not tokens.oauth.is_configured:
        raise HTTPException(
            status_code=status.HTTP_501_NOT_IMPLEMENTED,
            detail="Google OAuth not configured",
        )

    return OAuthUrlResponse(url=tokens.build_authorization_url(user_id))


@router.get("/callback")
async def google_callback(
    code: str | None = None,
    state: str | None = None,
    tokens: TokenManager = Depends(get_token_manager),
) -> RedirectResponse:
    """Handle the OAuth redirect from Google.

    The `state` parameter carries the platform user id.
    """
    if not code:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing code")
    if not state:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing state")

    try:
        await tokens.complete_authorization(code, state)
    except Exception:
        logger.exception(f"OAuth callback failed for user {state}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="OAuth callback failed",
        )

    return RedirectResponse(url=get_settings().frontend_url, status_code=status.HTTP_302_FOUND)
