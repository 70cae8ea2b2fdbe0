"""
Generic OAuth2 Single-Sign-On flow engine.

This package drives the OAuth 2.0 authorization-code handshake with a
third-party identity provider, normalizes the provider's profile, stashes it
while the host links it to a local account, and exchanges provider access
tokens for local API tokens.

Public API:
    ProviderConfig: Provider registration
    SSOSettings: Engine-wide settings
    ProviderRegistry: Provider key -> configuration lookup
    SSOServices: Collaborator bundle
    OAuthFlowController: Browser SSO flow
    AccessTokenIssuer: API token exchange
    ClientIDResolver: Client ID -> provider lookup
    ProfileTranslator: Raw profile -> canonical profile
    encode_state / decode_state: State parameter codec

Exceptions:
    OAuth2SSOError: Base exception
    ConfigurationError, TransportError, ProviderError, ServerError,
    ValidationError, AuthStateError, MissingSessionError,
    ClientMismatchError, InactiveProviderError,
    TokenIssuanceDisallowedError, NotFoundError, ForbiddenError
"""

__version__ = "1.0.0"

from .config import ProfileKeys, ProviderConfig, ProviderExtensions, RequestOptions, SSOSettings
from .exceptions import (
    AuthStateError,
    ClientMismatchError,
    ConfigurationError,
    ForbiddenError,
    InactiveProviderError,
    MissingSessionError,
    NotFoundError,
    OAuth2SSOError,
    ProviderError,
    ServerError,
    TokenIssuanceDisallowedError,
    TransportError,
    ValidationError,
)
from .flow import CallbackResult, ConnectData, FlowState, OAuthFlowController
from .http_client import HttpResponse, ProviderApiClient, RequestsHttpClient
from .issuance import AccessTokenIssuer, ClientIDResolver, IssuedToken
from .profile import ProfileFetcher
from .services import SSOServices
from .state import decode_state, encode_state
from .stores import ProviderRegistry
from .token_exchange import AccessTokenResponse, TokenExchangeClient
from .translator import ProfileTranslator

__all__ = [
    # Configuration
    "ProviderConfig",
    "ProfileKeys",
    "ProviderExtensions",
    "RequestOptions",
    "SSOSettings",
    "ProviderRegistry",
    "SSOServices",
    # State
    "encode_state",
    "decode_state",
    # Provider calls
    "HttpResponse",
    "RequestsHttpClient",
    "ProviderApiClient",
    "AccessTokenResponse",
    "TokenExchangeClient",
    "ProfileFetcher",
    "ProfileTranslator",
    # Flow
    "OAuthFlowController",
    "FlowState",
    "CallbackResult",
    "ConnectData",
    # API tokens
    "ClientIDResolver",
    "AccessTokenIssuer",
    "IssuedToken",
    # Exceptions
    "OAuth2SSOError",
    "ConfigurationError",
    "TransportError",
    "ProviderError",
    "ServerError",
    "ValidationError",
    "AuthStateError",
    "MissingSessionError",
    "ClientMismatchError",
    "InactiveProviderError",
    "TokenIssuanceDisallowedError",
    "NotFoundError",
    "ForbiddenError",
]
