"""
Token exchange against the provider's token endpoint.

Handles both grant types used by the SSO flow:
- authorization_code: code from the callback -> access/refresh tokens
- refresh_token: stored refresh token -> new access token
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .config import ProviderConfig, SSOSettings
from .exceptions import ProviderError
from .http_client import ProviderApiClient
from .utils import redact

logger = logging.getLogger(__name__)


@dataclass
class AccessTokenResponse:
    """
    Result of a token exchange.

    Attributes:
        access_token: Access token (required on success)
        refresh_token: Optional refresh token
        token_type: Token type, usually "Bearer"
        expires_in: Access token lifetime in seconds, if reported
        scope: Granted scope, if reported
        error: Provider error code
        error_description: Human-readable provider error
        raw: The full parsed response
    """

    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_type: Optional[str] = None
    expires_in: Optional[int] = None
    scope: Optional[str] = None
    error: Optional[str] = None
    error_description: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def failed(self) -> bool:
        """True when an error is present or the access token is missing."""
        return bool(self.error) or not self.access_token

    def raise_for_error(self) -> None:
        """
        Raise ProviderError if this response is a failure.

        Raises:
            ProviderError: Error reported, or no access token returned
        """
        if self.error:
            raise ProviderError(
                self.error_description or self.error,
                error=self.error,
                error_description=self.error_description,
            )
        if not self.access_token:
            raise ProviderError("The OAuth server did not return an access token.")

    @classmethod
    def from_payload(cls, payload: Any) -> "AccessTokenResponse":
        """
        Build a response from a parsed token endpoint body.

        A body that is not a mapping yields a failed response.
        """
        if not isinstance(payload, Mapping):
            return cls(
                error="invalid_response",
                error_description="The OAuth server did not return a valid response.",
            )

        expires_in = payload.get("expires_in")
        try:
            expires_in = int(expires_in) if expires_in not in (None, "") else None
        except (TypeError, ValueError):
            expires_in = None

        return cls(
            access_token=payload.get("access_token") or None,
            refresh_token=payload.get("refresh_token") or None,
            token_type=payload.get("token_type"),
            expires_in=expires_in,
            scope=payload.get("scope"),
            error=payload.get("error") or None,
            error_description=payload.get("error_description"),
            raw=dict(payload),
        )


def _drop_empty(params: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in params.items() if value not in (None, "")}


class TokenExchangeClient:
    """
    Exchanges authorization codes and refresh tokens for access tokens.

    Provider extension token_params are merged over the computed defaults,
    then empty values are dropped before sending.
    """

    def __init__(
        self,
        provider: ProviderConfig,
        api: ProviderApiClient,
        settings: SSOSettings,
        redirect_uri: str,
    ):
        """
        Initialize token exchange client.

        Args:
            provider: Provider configuration
            api: Provider API client
            settings: Engine settings
            redirect_uri: Callback URL registered with the provider
        """
        self.provider = provider
        self.api = api
        self.settings = settings
        self.redirect_uri = redirect_uri

    def build_params(self, code: str, is_refresh: bool = False) -> dict[str, Any]:
        """Build the token request body."""
        if is_refresh:
            defaults = {
                "refresh_token": code,
                "grant_type": "refresh_token",
            }
        else:
            defaults = {
                "code": code,
                "client_id": self.provider.client_id,
                "redirect_uri": self.redirect_uri,
                "client_secret": self.provider.client_secret,
                "grant_type": "authorization_code",
                "scope": self.provider.scope,
            }

        merged = {**defaults, **self.provider.extensions.token_params}
        return _drop_empty(merged)

    def exchange(self, code: str, is_refresh: bool = False) -> AccessTokenResponse:
        """
        Request an access token from the provider.

        Args:
            code: Authorization code, or the refresh token when is_refresh
            is_refresh: Use the refresh_token grant

        Returns:
            AccessTokenResponse (check .failed for provider-level errors)

        Raises:
            TransportError: Network error or timeout
            ProviderError: Non-2xx with a provider error body
            ServerError: Non-2xx without a parseable error body
        """
        params = self.build_params(code, is_refresh)
        options = self.provider.extensions.token_request_options
        headers = self.api.build_headers(
            options,
            basic_credentials=(self.provider.client_id, self.provider.client_secret),
        )

        grant = params.get("grant_type", "")
        logger.info(f"Requesting access token from {self.provider.key} (grant_type={grant})")
        logger.debug(f"Token request params: {redact(params)}")

        payload = self.api.call(
            self.provider.token_url, "POST", params, options=options, headers=headers
        )
        response = AccessTokenResponse.from_payload(payload)

        if response.failed:
            logger.warning(
                f"Token exchange with {self.provider.key} failed: "
                f"{response.error or 'no access token'}"
            )
        return response
