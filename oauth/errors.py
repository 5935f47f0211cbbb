"""Error taxonomy for the now-playing service.

Every failure that crosses a module boundary is one of these. Routes map
them to HTTP responses via ``status_code``; only ConfigError is fatal.
"""

from typing import Any, Optional


class ServiceError(Exception):
    """Base class for all typed service failures."""

    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class ConfigError(ServiceError):
    """Required configuration is missing or invalid (fatal at startup)."""


class PersistenceError(ServiceError):
    """Token store read or write failed."""


class CsrfStateError(ServiceError):
    """Missing, unknown, expired or replayed OAuth state."""

    status_code = 400


class AuthExchangeError(ServiceError):
    """The provider rejected a code or refresh grant, or could not be reached."""

    def __init__(self, message: str = "", status: Optional[int] = None, body: Any = None):
        super().__init__(message)
        self.status = status
        self.body = body


class NoRefreshToken(AuthExchangeError):
    """Refresh requested without a stored refresh token."""

    def __init__(self, message: str = "No refresh token available"):
        super().__init__(message)


class UpstreamError(ServiceError):
    """Base class for failures while calling the music API."""


class Unauthenticated(UpstreamError):
    """No access token has been stored yet."""

    status_code = 401

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class UpstreamUnauthorized(UpstreamError):
    """The access token was rejected and a single refresh did not fix it."""

    status_code = 401

    def __init__(self, message: str = "Unauthorized, refresh failed"):
        super().__init__(message)


class UpstreamRateLimited(UpstreamError):
    """Rate limit persisted after the maximum number of retries."""

    status_code = 429

    def __init__(self, retry_after: float, message: str = "Rate limited by upstream"):
        super().__init__(message)
        self.retry_after = retry_after


class UpstreamFailure(UpstreamError):
    """Any other upstream error status or transport failure."""

    def __init__(self, message: str = "Failed to fetch current song", status: Optional[int] = None):
        super().__init__(message)
        self.status = status
