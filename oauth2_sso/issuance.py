"""
Exchange of a provider OAuth access token for a local API access token.

This is a synchronous server-to-server trust exchange: the caller presents
an OAuth client ID and a provider access token; the token is re-validated by
fetching the profile from the provider, the identity is linked to a local
account, and a local token is issued.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from .config import UNIQUE_ID, ProviderConfig
from .exceptions import (
    ClientMismatchError,
    ConfigurationError,
    ForbiddenError,
    InactiveProviderError,
    NotFoundError,
    OAuth2SSOError,
    TokenIssuanceDisallowedError,
    ValidationError,
)
from .http_client import ProviderApiClient
from .profile import ProfileFetcher
from .services import SSOServices

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "authenticationProviderType.clientID."
TOKEN_CONTEXT = "tokens/oauth"


@dataclass
class IssuedToken:
    """
    A local API access token.

    Attributes:
        access_token: Opaque token
        date_expires: Absolute expiry
        user_id: Local user the token was issued to
    """

    access_token: str
    date_expires: datetime
    user_id: int


class ClientIDResolver:
    """
    Resolves an OAuth client ID to the provider that owns it.

    Results are cached; a cache hit is checked against the registry before
    it is trusted, so a stale entry costs a rescan, never a wrong match.
    """

    def __init__(self, services: SSOServices):
        self.providers = services.providers
        self.cache = services.cache
        self.ttl = services.settings.client_id_cache_ttl_seconds

    def resolve_provider_type(self, client_id: str) -> str:
        """
        Get the provider type (key) owning a client ID.

        Args:
            client_id: OAuth client ID

        Returns:
            Provider key

        Raises:
            NotFoundError: No registered provider has this client ID
        """
        return self.resolve_provider(client_id).key

    def resolve_provider(self, client_id: str) -> ProviderConfig:
        """Get the provider configuration owning a client ID."""
        cache_key = CACHE_KEY_PREFIX + client_id

        cached_type = self.cache.get(cache_key)
        if cached_type is not None:
            provider = self.providers.get_provider_by_key(cached_type)
            if provider is not None and provider.client_id == client_id:
                return provider
            logger.info(f"Stale client ID cache entry for {client_id!r}, rescanning providers")

        for provider in self.providers.get_all_providers():
            if client_id and provider.client_id == client_id:
                self.cache.store(cache_key, provider.key, self.ttl)
                return provider

        raise NotFoundError(f'An OAuth client with ID "{client_id}" could not be found.')


class AccessTokenIssuer:
    """Issues local API tokens in exchange for provider access tokens."""

    def __init__(self, services: SSOServices):
        self.services = services
        self.resolver = ClientIDResolver(services)
        self.api = ProviderApiClient(services.http, services.settings)

    def issue_access_token(
        self,
        client_id: str,
        oauth_access_token: str,
        provider_key: Optional[str] = None,
    ) -> IssuedToken:
        """
        Exchange an OAuth access token for a local API token.

        Args:
            client_id: OAuth client ID of the provider that issued the token
            oauth_access_token: Access token valid on the provider
            provider_key: Provider to validate against; resolved from the
                          client ID when omitted

        Returns:
            IssuedToken expiring after access_token_ttl_hours

        Raises:
            NotFoundError: Unknown client ID
            ClientMismatchError: Client ID does not match the provider
            ConfigurationError: Provider lacks a client ID or secret
            InactiveProviderError: Provider is not active
            TokenIssuanceDisallowedError: Provider may not issue tokens
            ForbiddenError: The provider rejected the access token
            ValidationError: The account could not be linked
        """
        if provider_key is None:
            provider = self.resolver.resolve_provider(client_id)
        else:
            provider = self.services.providers.get_provider_by_key(provider_key)
            if provider is None:
                raise NotFoundError(f"OAuth2 provider {provider_key!r} could not be found.")

        if client_id != provider.client_id:
            raise ClientMismatchError("Invalid client ID.")
        if not provider.is_configured():
            raise ConfigurationError("The OAuth client has not been configured.")
        if not provider.active:
            raise InactiveProviderError("The OAuth client is not active.")
        if not provider.allow_access_tokens:
            raise TokenIssuanceDisallowedError(
                "The OAuth client is not allowed to issue access tokens."
            )

        try:
            profile = ProfileFetcher(provider, self.api).fetch_profile(oauth_access_token)
        except OAuth2SSOError as e:
            logger.warning(f"Profile lookup with {provider.key} failed during token exchange: {e}")
            raise ForbiddenError(e.message) from e
        except Exception as e:
            logger.error(
                f"Unexpected error looking up profile with {provider.key}: {e}", exc_info=True
            )
            raise ForbiddenError("The OAuth access token could not be validated.") from e

        user_id = self._connect(provider, profile)

        expires = self.services.clock() + timedelta(
            hours=self.services.settings.access_token_ttl_hours
        )
        token = self.services.api_tokens.issue(user_id, expires, TOKEN_CONTEXT)
        logger.info(f"Issued API access token for user {user_id} via {provider.key}")
        return IssuedToken(access_token=token, date_expires=expires, user_id=user_id)

    def _connect(self, provider: ProviderConfig, profile: dict[str, Any]) -> int:
        """Link the profile to a local user, returning its ID."""
        payload = dict(profile)
        payload.pop("UserID", None)

        user_id = self.services.accounts.connect(
            str(payload.get(UNIQUE_ID) or ""),
            provider.key,
            payload,
            {"sync_existing": False},
        )
        if not user_id:
            raise ValidationError(
                f"Could not connect the {provider.key} user to a local account."
            )
        return int(user_id)
