"""
Exception classes for the OAuth2 SSO engine.

This module defines the exception hierarchy for every failure domain of the
SSO flow (configuration, network, provider, validation, state and session).
Each exception carries an HTTP status so outer surfaces can map it to a
response without inspecting its type.
"""

from typing import Optional


class OAuth2SSOError(Exception):
    """Base exception for all OAuth2 SSO errors."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ConfigurationError(OAuth2SSOError):
    """Provider configuration error (missing secret, client ID or URL)."""

    status_code = 500


class TransportError(OAuth2SSOError):
    """Network-level failure talking to the provider (includes timeouts)."""

    status_code = 502


class ProviderError(OAuth2SSOError):
    """The provider returned a structured OAuth error."""

    status_code = 400

    def __init__(
        self,
        message: str,
        error: Optional[str] = None,
        error_description: Optional[str] = None,
        http_status: Optional[int] = None,
    ):
        super().__init__(message)
        self.error = error
        self.error_description = error_description
        self.http_status = http_status


class ServerError(OAuth2SSOError):
    """Non-2xx response without a parseable error body, or an unusable body."""

    status_code = 500

    def __init__(self, message: str, http_status: Optional[int] = None):
        super().__init__(message)
        self.http_status = http_status


class ValidationError(OAuth2SSOError):
    """Malformed input (e.g. a callback without a code)."""

    status_code = 422


class AuthStateError(OAuth2SSOError):
    """State token verification failed (invalid or replayed state)."""

    status_code = 403


class MissingSessionError(OAuth2SSOError):
    """Stashed session is absent or expired."""

    status_code = 401


class ClientMismatchError(OAuth2SSOError):
    """Client ID does not belong to the resolved provider."""

    status_code = 422


class InactiveProviderError(OAuth2SSOError):
    """Provider is registered but not active."""

    status_code = 500


class TokenIssuanceDisallowedError(OAuth2SSOError):
    """Provider is not allowed to issue API access tokens."""

    status_code = 500


class NotFoundError(OAuth2SSOError):
    """No provider owns the given client ID."""

    status_code = 404


class ForbiddenError(OAuth2SSOError):
    """The OAuth access token was rejected by the provider."""

    status_code = 403
