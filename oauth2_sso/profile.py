"""
Retrieval of the user's profile from the provider.

The access token is sent either as an Authorization: Bearer header or as an
access_token query parameter, depending on the provider's bearer_token flag.
"""

import logging
from dataclasses import replace
from typing import Any, Mapping

from .config import ProviderConfig
from .exceptions import ConfigurationError, ServerError
from .http_client import ProviderApiClient
from .translator import ProfileTranslator
from .utils import redact

logger = logging.getLogger(__name__)


class ProfileFetcher:
    """Performs the authenticated profile call."""

    def __init__(self, provider: ProviderConfig, api: ProviderApiClient):
        """
        Initialize profile fetcher.

        Args:
            provider: Provider configuration
            api: Provider API client
        """
        self.provider = provider
        self.api = api
        self.translator = ProfileTranslator(provider.effective_profile_keys())

    def fetch(self, access_token: str) -> dict[str, Any]:
        """
        Fetch the raw profile.

        Args:
            access_token: Provider access token

        Returns:
            Raw profile mapping

        Raises:
            ConfigurationError: Provider has no profile URL
            TransportError: Network error or timeout
            ProviderError: Provider rejected the call with an error body
            ServerError: Other non-2xx response, or a non-object body
        """
        uri = self.provider.profile_url
        if not uri:
            raise ConfigurationError(
                f"Key profile_url missing from provider {self.provider.key!r}."
            )

        options = self.provider.extensions.profile_request_options
        params: dict[str, Any] = {}

        if self.provider.bearer_token:
            if not options.authorization_header:
                options = replace(options, authorization_header=f"Bearer {access_token}")
        else:
            params["access_token"] = access_token

        params.update(self.provider.extensions.profile_params)
        if self.provider.bearer_token:
            params.pop("access_token", None)
        params = {key: value for key, value in params.items() if value not in (None, "")}

        raw_profile = self.api.call(uri, "GET", params, options=options)

        if not isinstance(raw_profile, Mapping):
            raise ServerError(
                f"Profile endpoint of {self.provider.key!r} did not return an object."
            )

        logger.debug(f"Fetched profile from {self.provider.key}: params={redact(params)}")
        return dict(raw_profile)

    def fetch_profile(self, access_token: str) -> dict[str, Any]:
        """Fetch the profile and translate it to the canonical shape."""
        return self.translator.translate(self.fetch(access_token), self.provider.key)
