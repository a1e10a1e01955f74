"""
Authentication errors raised by the SPA auth core.
Every error carries a `kind` tag so callers branch on the failure category, not on message text.
"""
from enum import Enum


class AuthErrorKind(str, Enum):
    PROVIDER_DENIED = "ProviderDenied"
    MALFORMED_CALLBACK = "MalformedCallback"
    CSRF_MISMATCH = "CsrfMismatch"
    MISSING_VERIFIER = "MissingVerifier"
    TOKEN_EXCHANGE_FAILED = "TokenExchangeFailed"
    USER_INFO_FAILED = "UserInfoFailed"
    REFRESH_INVALID = "RefreshInvalid"
    NO_REFRESH_TOKEN = "NoRefreshToken"
    RANDOM_SOURCE_UNAVAILABLE = "RandomSourceUnavailable"


class AuthError(Exception):
    """Base class for all authentication failures."""

    kind: AuthErrorKind


class ProviderDenied(AuthError):
    """The provider (or the user at the provider) returned an OAuth error on the callback."""

    kind = AuthErrorKind.PROVIDER_DENIED

    def __init__(self, error: str, description: str | None = None):
        self.error = error
        self.description = description
        message = f"Authentication failed: {error}"
        if description:
            message = f"{message} - {description}"
        super().__init__(message)


class MalformedCallback(AuthError):
    kind = AuthErrorKind.MALFORMED_CALLBACK


class CsrfMismatch(AuthError):
    """Callback state does not match the state persisted at login start. Security event; never retried."""

    kind = AuthErrorKind.CSRF_MISMATCH


class MissingVerifier(AuthError):
    kind = AuthErrorKind.MISSING_VERIFIER


class RandomSourceUnavailable(AuthError):
    kind = AuthErrorKind.RANDOM_SOURCE_UNAVAILABLE


class NoRefreshToken(AuthError):
    kind = AuthErrorKind.NO_REFRESH_TOKEN


class ProviderCallError(AuthError):
    """
    A request to a provider endpoint failed.
    status_code is the HTTP status the provider answered with, or None when the request never got an answer.
    """

    def __init__(self, message: str, *, status_code: int | None = None, description: str | None = None):
        self.status_code = status_code
        self.description = description
        super().__init__(message)

    @property
    def rejected_by_provider(self) -> bool:
        return self.status_code is not None


class TokenExchangeFailed(ProviderCallError):
    kind = AuthErrorKind.TOKEN_EXCHANGE_FAILED


class UserInfoFailed(ProviderCallError):
    kind = AuthErrorKind.USER_INFO_FAILED


class RefreshInvalid(ProviderCallError):
    kind = AuthErrorKind.REFRESH_INVALID
