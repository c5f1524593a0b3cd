"""Exceptions raised by the calendar synchronization core.

Errors that only affect the remote mirror (``RemoteWriteFailed``) are logged
and absorbed by the sync service. Errors on the pull path and during token
acquisition propagate to the request layer.

``AccessTokenExpired`` is an internal signal: it triggers one refresh and
retry and never escapes the sync service. A second 401 surfaces as
``GoogleAuthRequired``, which the request layer must turn into a
re-authorization prompt rather than a generic server error.
"""

from __future__ import annotations


class CalendarSyncError(Exception):
    """Base exception for calendar synchronization errors."""


class NotConnected(CalendarSyncError):
    """Raised when the user has no usable refresh path to the provider."""

    def __init__(self, user_id: str):
        super().__init__(f"User {user_id} is not connected to Google Calendar")
        self.user_id = user_id


class NotFound(CalendarSyncError):
    """Raised for an unknown owner or an unknown event id."""


class AmbiguousEventReference(CalendarSyncError):
    """Raised when a provider event id matches rows of more than one owner."""


class OAuthError(CalendarSyncError):
    """Base class for token endpoint failures."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class TokenExchangeFailed(OAuthError):
    """Raised when an authorization code cannot be exchanged."""


class RefreshFailed(OAuthError):
    """Raised when the provider rejects a refresh token."""


class RemoteError(CalendarSyncError):
    """Base class for Calendar API failures."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class AccessTokenExpired(RemoteError):
    """The provider answered 401 for the current access token."""

    def __init__(self):
        super().__init__("access token expired", status_code=401)


class RemoteListFailed(RemoteError):
    """Listing events failed for a reason other than an expired token."""


class RemoteWriteFailed(RemoteError):
    """Creating, patching or deleting a remote event failed."""


class GoogleAuthRequired(CalendarSyncError):
    """The provider still rejects the user after a token refresh."""

    code = "GOOGLE_AUTH_REQUIRED"

    def __init__(self, user_id: str | None = None):
        super().__init__("Google authorization required")
        self.user_id = user_id
