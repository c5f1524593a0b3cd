"""Google account connection for calendar sync.

## OAuth Flow

1. Frontend asks for the authorization URL of a platform user
2. User consents on Google's screen
3. Google redirects back with an authorization code (state = user id)
4. Code is exchanged for access and refresh tokens
5. Tokens are stored encrypted, one credential per user

## Scopes

- calendar.readonly: To read calendar events
- calendar.events: To create, patch and delete events
"""

from fitness_calendar.auth.google import GoogleOAuth, GoogleTokens, get_google_oauth
from fitness_calendar.auth.owners import (
    OwnerResolver,
    ProfileOwnerResolver,
    resolve_owner,
)
from fitness_calendar.auth.tokens import TokenManager

__all__ = [
    "GoogleOAuth",
    "GoogleTokens",
    "get_google_oauth",
    "OwnerResolver",
    "ProfileOwnerResolver",
    "resolve_owner",
    "TokenManager",
]
