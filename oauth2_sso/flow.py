"""
OAuth2 authorization-code SSO flow.

This module provides OAuthFlowController, which drives one SSO flow for one
provider:

    START -> REDIRECT_ISSUED -> CALLBACK_RECEIVED -> TOKEN_EXCHANGED
          -> PROFILE_FETCHED -> STASHED -> CONNECT_READY

Any failure moves the flow to FAILED and re-raises. A controller is built per
request; it holds no state shared across requests beyond its collaborators.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional
from urllib.parse import urlencode

from .config import UNIQUE_ID, ProviderConfig
from .exceptions import (
    AuthStateError,
    ConfigurationError,
    MissingSessionError,
    OAuth2SSOError,
    ProviderError,
    ValidationError,
)
from .http_client import ProviderApiClient
from .profile import ProfileFetcher
from .services import SSOServices
from .state import StateValue, decode_state, encode_state
from .token_exchange import AccessTokenResponse, TokenExchangeClient
from .utils import redact

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("oauth2_sso.security")


class FlowState(str, Enum):
    """States of a browser SSO flow."""

    START = "start"
    REDIRECT_ISSUED = "redirect_issued"
    CALLBACK_RECEIVED = "callback_received"
    TOKEN_EXCHANGED = "token_exchanged"
    PROFILE_FETCHED = "profile_fetched"
    STASHED = "stashed"
    CONNECT_READY = "connect_ready"
    FAILED = "failed"


@dataclass
class CallbackResult:
    """
    Outcome of a successful provider callback.

    Attributes:
        stash_id: Identifier of the stashed session
        target: Where the user wanted to go after signing in
        connect_url: Relative URL of the account-connect step
        profile: Canonical profile that was stashed
    """

    stash_id: str
    target: str
    connect_url: str
    profile: dict[str, Any] = field(default_factory=dict)


@dataclass
class ConnectData:
    """
    Data handed to the host's account-connect step.

    Attributes:
        stash_id: Identifier of the stashed session
        form_values: Pending account form merged with the profile
        attributes: {provider key: {AccessToken, RefreshToken, Profile}}
        profile: Canonical profile
        trusted: The identity came from a configured provider
        verified: The provider vouches for the email address
    """

    stash_id: str
    form_values: dict[str, Any]
    attributes: dict[str, Any]
    profile: dict[str, Any]
    trusted: bool = True
    verified: bool = True


def merge_profile_into_form(
    form_values: Mapping[str, Any], profile: Mapping[str, Any]
) -> dict[str, Any]:
    """
    Merge a canonical profile into pending form values.

    Profile values overwrite form values; blank profile values do not.
    """
    merged = dict(form_values)
    for key, value in profile.items():
        if value not in (None, "") or key not in merged:
            merged[key] = value
    return merged


class OAuthFlowController:
    """
    Generic OAuth2 SSO flow for one provider.

    Example:
        controller = OAuthFlowController("acme", services)
        url = controller.real_authorize_uri({"target": "/discussions"})
        # ... provider redirects back ...
        result = controller.handle_callback(code=code, state=state)
        data = OAuthFlowController("acme", services).prepare_connect_data(result.stash_id)
    """

    def __init__(
        self,
        provider_key: str,
        services: SSOServices,
        access_token: Optional[str] = None,
    ):
        """
        Initialize the flow.

        Args:
            provider_key: Key of the provider to use
            services: Collaborators
            access_token: Existing provider access token, if any
        """
        self.provider_key = provider_key
        self.services = services
        self.settings = services.settings
        self.api = ProviderApiClient(services.http, services.settings)
        self.state = FlowState.START
        self.access_token_response: Optional[AccessTokenResponse] = None
        self._access_token = access_token
        self._provider: Optional[ProviderConfig] = None

    # ==================== Provider ====================

    @property
    def provider(self) -> ProviderConfig:
        """Provider configuration, loaded on first use."""
        if self._provider is None:
            provider = self.services.providers.get_provider_by_key(self.provider_key)
            if provider is None:
                raise ConfigurationError(
                    f"OAuth2 provider {self.provider_key!r} is not registered."
                )
            self._provider = provider
        return self._provider

    def is_configured(self) -> bool:
        """True if there is a client secret and a client ID."""
        return self.provider.is_configured()

    def is_active(self) -> bool:
        return self.provider.active

    def is_default(self) -> bool:
        return self.provider.is_default

    def is_connected(self) -> bool:
        """True once an access token has been obtained or set."""
        return bool(self._access_token)

    @property
    def redirect_uri(self) -> str:
        """Callback URL registered with the provider."""
        return self.settings.url(f"/entry/{self.provider_key}")

    @property
    def token_client(self) -> TokenExchangeClient:
        return TokenExchangeClient(self.provider, self.api, self.settings, self.redirect_uri)

    @property
    def profile_fetcher(self) -> ProfileFetcher:
        return ProfileFetcher(self.provider, self.api)

    # ==================== Authorize ====================

    def authorize_uri(self, state: Optional[Mapping[str, StateValue]] = None) -> str:
        """
        URL that sign-in buttons should use.

        The local redirect endpoint mints a fresh state token and forwards to
        the provider, so the sign-in link itself can be cached.

        Args:
            state: Optional variables to send through the provider

        Returns:
            Absolute URL of the local redirect endpoint
        """
        url = self.settings.url(f"/entry/{self.provider_key}-redirect")
        if state:
            url += "?" + urlencode({"state": encode_state(state)})
        return url

    def real_authorize_uri(self, state: Optional[Mapping[str, StateValue]] = None) -> str:
        """
        Build the provider's authorize URL.

        Args:
            state: Caller data round-tripped through the provider

        Returns:
            Provider authorize URL with query parameters
        """
        provider = self.provider
        params: dict[str, Any] = {
            "response_type": self.settings.response_type,
            "client_id": provider.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": provider.scope,
        }
        params.update(provider.extensions.authorize_params)

        state_data = dict(state or {})
        state_data["token"] = self.services.state_tokens.issue(self.provider_key)
        params["state"] = encode_state(state_data)

        if provider.prompt:
            params["prompt"] = provider.prompt

        separator = "&" if "?" in provider.authorize_url else "?"
        self._transition(FlowState.REDIRECT_ISSUED)
        return provider.authorize_url + separator + urlencode(params)

    # ==================== Callback ====================

    def handle_callback(
        self,
        code: Optional[str] = None,
        state: Optional[str] = None,
        error: Optional[str] = None,
        error_description: Optional[str] = None,
    ) -> CallbackResult:
        """
        Handle the provider redirect back to the site.

        Exchanges the code, fetches the profile, verifies the state token and
        stashes the result for the connect step.

        Args:
            code: Authorization code from the provider
            state: Encoded state returned by the provider
            error: OAuth error returned instead of a code
            error_description: Description of that error

        Returns:
            CallbackResult with the stash ID and connect URL

        Raises:
            ProviderError: Provider returned an error or no access token
            ValidationError: No code in the callback
            AuthStateError: State token invalid or replayed
            TransportError: Network failure talking to the provider
        """
        try:
            return self._handle_callback(code, state, error, error_description)
        except OAuth2SSOError as e:
            self.state = FlowState.FAILED
            if not isinstance(e, AuthStateError):
                logger.error(f"SSO callback for {self.provider_key} failed: {e}")
            raise

    def _handle_callback(
        self,
        code: Optional[str],
        state: Optional[str],
        error: Optional[str],
        error_description: Optional[str],
    ) -> CallbackResult:
        if error:
            raise ProviderError(
                error_description or error, error=error, error_description=error_description
            )
        if not code:
            raise ValidationError("The code parameter is either not set or empty.")
        self._transition(FlowState.CALLBACK_RECEIVED)

        response = self.request_access_token(code)
        response.raise_for_error()
        self.set_access_token(response.access_token)
        self._transition(FlowState.TOKEN_EXCHANGED)

        self._log("Getting Profile", {})
        profile = self.get_profile()
        self._log("Profile", profile)
        self._transition(FlowState.PROFILE_FETCHED)

        state_data = decode_state(state)
        supplied_token = state_data.get("token") or ""
        if not isinstance(supplied_token, str) or not self.services.state_tokens.verify(
            self.provider_key, supplied_token
        ):
            security_logger.warning(
                f"Rejected SSO callback for {self.provider_key}: invalid or replayed state token"
            )
            raise AuthStateError("Invalid or replayed state.")

        stash_id = self.services.stash.put(
            {
                "AccessToken": response.access_token,
                "RefreshToken": response.refresh_token,
                "Profile": profile,
            },
            self.settings.stash_ttl_seconds,
        )
        self._transition(FlowState.STASHED)

        target = state_data.get("target") or "/"
        query = {key: value for key, value in (("Target", target), ("stashID", stash_id)) if value}
        connect_url = f"/entry/connect/{self.provider_key}?" + urlencode(query)

        return CallbackResult(
            stash_id=stash_id, target=str(target), connect_url=connect_url, profile=profile
        )

    # ==================== Connect ====================

    def prepare_connect_data(
        self,
        stash_id: Optional[str],
        form_values: Optional[Mapping[str, Any]] = None,
    ) -> ConnectData:
        """
        Prepare the account-connect step from a stashed session.

        Args:
            stash_id: Identifier returned by handle_callback
            form_values: Values already in the host's pending-account form

        Returns:
            ConnectData for the host's account linker

        Raises:
            MissingSessionError: Stash ID missing, unknown or expired
        """
        if not stash_id:
            self.state = FlowState.FAILED
            self._log("Missing stashID", {})
            raise MissingSessionError("Missing session, please go back and log in again.")

        saved = self.services.stash.get_and_keep(stash_id)
        if not saved:
            self.state = FlowState.FAILED
            self._log("Connect data profile not found in session", {"stashID": stash_id})
            raise MissingSessionError("Missing session, please go back and log in again.")

        profile = dict(saved.get("Profile") or {})
        access_token = saved.get("AccessToken")
        refresh_token = saved.get("RefreshToken")
        self._log("Connect data profile saved in session", {"profile": profile})

        merged = merge_profile_into_form(form_values or {}, profile)
        # The identity key always comes from the provider.
        if UNIQUE_ID in profile:
            merged[UNIQUE_ID] = profile[UNIQUE_ID]

        attributes = {
            self.provider_key: {
                "AccessToken": access_token,
                "RefreshToken": refresh_token,
                "Profile": profile,
            }
        }
        if access_token:
            self.set_access_token(access_token)

        self._transition(FlowState.CONNECT_READY)
        return ConnectData(
            stash_id=stash_id,
            form_values=merged,
            attributes=attributes,
            profile=profile,
        )

    # ==================== Tokens & profile ====================

    def set_access_token(self, access_token: Optional[str]) -> "OAuthFlowController":
        """Set the provider access token. Returns self for chaining."""
        self._access_token = access_token
        return self

    def access_token(
        self,
        new_value: Optional[str] = None,
        user_id: Optional[int] = None,
    ) -> Optional[str]:
        """
        Return the access token, renewing it from stored credentials if needed.

        With no token in hand and a user_id, the user's stored refresh token
        is exchanged for a new access token (saving a rotated refresh token),
        or the stored access token is used when there is no refresh token.

        Args:
            new_value: Replace the current access token
            user_id: Local user whose stored credentials may be used

        Returns:
            The access token, or None if none is available
        """
        if new_value is None and not self.is_configured():
            return None

        if new_value is not None:
            self._access_token = new_value

        credentials_store = self.services.credentials
        if self._access_token is None and user_id is not None and credentials_store is not None:
            credentials = credentials_store.get_credentials(user_id, self.provider_key) or {}
            refresh_token = credentials.get("RefreshToken")
            if refresh_token:
                self._access_token = self._refresh(user_id, refresh_token, credentials)
            else:
                self._access_token = credentials.get("AccessToken")

        return self._access_token

    def _refresh(
        self, user_id: int, refresh_token: str, credentials: Mapping[str, Any]
    ) -> Optional[str]:
        """Exchange a stored refresh token, falling back to stored credentials."""
        try:
            response = self.request_access_token(refresh_token, refresh=True)
        except OAuth2SSOError as e:
            logger.warning(
                f"Refreshing access token for {self.provider_key} failed, using stored token: {e}"
            )
            return credentials.get("AccessToken")

        if response.failed:
            logger.warning(
                f"Provider {self.provider_key} refused token refresh "
                f"({response.error or 'no access token'}), using stored token"
            )
            return credentials.get("AccessToken")

        self._transition(FlowState.TOKEN_EXCHANGED)
        new_refresh_token = response.refresh_token
        if new_refresh_token and new_refresh_token != refresh_token:
            try:
                self.services.credentials.save_refresh_token(
                    user_id, self.provider_key, new_refresh_token
                )
                logger.info(f"Saved rotated refresh token for {self.provider_key}")
            except Exception as e:
                logger.warning(f"Could not save rotated refresh token, keeping previous one: {e}")

        return response.access_token

    def request_access_token(self, code: str, refresh: bool = False) -> AccessTokenResponse:
        """
        Request an access token from the provider.

        Args:
            code: Authorization code, or refresh token when refresh is True
            refresh: Use the refresh_token grant

        Returns:
            AccessTokenResponse
        """
        self._log(
            "Before calling API to request access token",
            {"targetURI": self.provider.token_url, "refresh": refresh},
        )
        self.access_token_response = self.token_client.exchange(code, is_refresh=refresh)
        return self.access_token_response

    def get_profile(self) -> dict[str, Any]:
        """
        Fetch and translate the user's profile with the current access token.

        Returns:
            Canonical profile
        """
        fetcher = self.profile_fetcher
        raw_profile = fetcher.fetch(self._access_token or "")
        profile = fetcher.translator.translate(raw_profile, self.provider_key)
        self._log(
            "getProfile API call",
            {"ProfileUrl": self.provider.profile_url, "RawProfile": raw_profile, "Profile": profile},
        )
        return profile

    # ==================== Internals ====================

    def _transition(self, new_state: FlowState) -> None:
        logger.debug(f"SSO flow {self.provider_key}: {self.state.value} -> {new_state.value}")
        self.state = new_state

    def _log(self, message: str, data: Mapping[str, Any]) -> None:
        """Emit an SSO trace event when sso_debug is enabled."""
        if self.settings.sso_debug:
            logger.info(f"sso_logging: {message} {redact(dict(data))}")

