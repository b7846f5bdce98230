"""
Error taxonomy for the session bridge.

Internal errors (vault, store, provider refresh) never reach an HTTP caller
verbatim. Routes and the request gate translate them into ``AuthError``
subclasses, which carry a stable machine-readable ``code`` and a message that
is safe to show to the end user.
"""

from __future__ import annotations

from http import HTTPStatus


class ConfigurationError(Exception):
    """Raised when a required secret is missing or malformed."""


class VaultError(Exception):
    """Base class for credential vault failures."""


class MalformedCiphertextError(VaultError):
    """Raised when a ciphertext does not have the ``iv:cipher`` structure."""


class DecryptionError(VaultError):
    """Raised when a ciphertext fails to decrypt or authenticate."""


class StoreUnavailableError(Exception):
    """Raised by a session backend when its storage cannot be reached."""


class RefreshFailedError(Exception):
    """Raised when the provider rejects or times out a refresh-token grant."""


class TokenExchangeError(Exception):
    """Raised when the provider token endpoint returns an error."""


class ProfileFetchError(Exception):
    """Raised when the provider profile endpoint cannot be read."""


class AuthError(Exception):
    """Base class for errors whose message is displayed to the user."""

    code = "AUTH_ERROR"
    status_code = HTTPStatus.UNAUTHORIZED
    default_message = "Authentication failed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class NoSessionTokenError(AuthError):
    code = "NO_SESSION_TOKEN"
    default_message = "Authentication required. Please log in."


class InvalidSessionError(AuthError):
    code = "INVALID_SESSION"
    default_message = "Your session is invalid or has expired. Please log in again."


class StateMismatchError(AuthError):
    """The callback ``state`` differs from the one issued at login."""

    code = "STATE_MISMATCH"
    status_code = HTTPStatus.BAD_REQUEST
    default_message = (
        "The login response did not match this browser's login request. "
        "Please start the login again."
    )


class InvalidAuthStateError(AuthError):
    """The pending authorization cookie is missing, tampered or expired."""

    code = "INVALID_AUTH_STATE"
    status_code = HTTPStatus.BAD_REQUEST
    default_message = "The login request expired or is invalid. Please start again."


class AuthorizationDeniedError(AuthError):
    code = "ACCESS_DENIED"
    status_code = HTTPStatus.BAD_REQUEST
    default_message = "Spotify authorization was not granted."


class ProviderUnavailableError(AuthError):
    code = "PROVIDER_UNAVAILABLE"
    status_code = HTTPStatus.BAD_GATEWAY
    default_message = "Could not reach Spotify. Please try again."


__all__ = [
    "AuthError",
    "AuthorizationDeniedError",
    "ConfigurationError",
    "DecryptionError",
    "InvalidAuthStateError",
    "InvalidSessionError",
    "MalformedCiphertextError",
    "NoSessionTokenError",
    "ProfileFetchError",
    "ProviderUnavailableError",
    "RefreshFailedError",
    "StateMismatchError",
    "StoreUnavailableError",
    "TokenExchangeError",
    "VaultError",
]
