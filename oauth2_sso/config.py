"""
Configuration for the OAuth2 SSO engine.

This module provides:
- ProviderConfig: one identity-provider registration (URLs, credentials,
  profile field mapping, flags and per-provider extension points)
- SSOSettings: engine-wide settings loaded from environment variables

Provider records can be built programmatically or from dictionaries using
either snake_case keys or the admin form names (AssociationKey, TokenUrl, ...).
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Mapping, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Canonical profile field names
EMAIL = "Email"
PHOTO = "Photo"
NAME = "Name"
FULL_NAME = "FullName"
UNIQUE_ID = "UniqueID"
PROVIDER = "Provider"

CANONICAL_FIELDS = (EMAIL, PHOTO, NAME, FULL_NAME, UNIQUE_ID)

DEFAULT_SCOPE = "openid email profile"
DEFAULT_CONTENT_TYPE = "application/x-www-form-urlencoded"

# Admin form names -> ProviderConfig attribute names
_FORM_FIELD_NAMES = {
    "AuthenticationKey": "key",
    "AuthenticationSchemeAlias": "key",
    "Name": "name",
    "AssociationKey": "client_id",
    "AssociationSecret": "client_secret",
    "AuthorizeUrl": "authorize_url",
    "TokenUrl": "token_url",
    "ProfileUrl": "profile_url",
    "AcceptedScope": "scope",
    "RegisterUrl": "register_url",
    "SignOutUrl": "sign_out_url",
    "Active": "active",
    "IsDefault": "is_default",
    "BearerToken": "bearer_token",
    "AllowAccessTokens": "allow_access_tokens",
    "Prompt": "prompt",
}

_FORM_PROFILE_KEYS = {
    "ProfileKeyEmail": "email",
    "ProfileKeyPhoto": "photo",
    "ProfileKeyName": "name",
    "ProfileKeyFullName": "full_name",
    "ProfileKeyUniqueID": "unique_id",
}


@dataclass(frozen=True)
class ProfileKeys:
    """
    Source field names used to build the canonical profile.

    Each attribute names the key (dotted paths allowed) in the provider's raw
    profile that holds the corresponding canonical field.

    Attributes:
        email: Source key for Email
        photo: Source key for Photo
        name: Source key for Name (display name)
        full_name: Source key for FullName
        unique_id: Source key for UniqueID
    """

    email: str = "email"
    photo: str = "picture"
    name: str = "displayname"
    full_name: str = "name"
    unique_id: str = "user_id"

    def pairs(self) -> list[tuple[str, str]]:
        """Return (source key, canonical field) pairs in canonical order."""
        return [
            (self.email, EMAIL),
            (self.photo, PHOTO),
            (self.name, NAME),
            (self.full_name, FULL_NAME),
            (self.unique_id, UNIQUE_ID),
        ]

    def with_overrides(self, field_map: Mapping[str, str]) -> "ProfileKeys":
        """Apply a source->canonical override mapping on top of these keys."""
        if not field_map:
            return self
        attributes = {canonical: attr for attr, canonical in _CANONICAL_ATTRIBUTES.items()}
        changes = {}
        for source, canonical in field_map.items():
            if canonical not in attributes:
                raise ConfigurationError(
                    f"Unknown canonical profile field {canonical!r} for source {source!r}"
                )
            changes[attributes[canonical]] = source
        return replace(self, **changes)

    @classmethod
    def from_mapping(cls, field_map: Mapping[str, str]) -> "ProfileKeys":
        """
        Build ProfileKeys from a {source key: canonical field} mapping.

        Canonical fields missing from the mapping keep their protocol default.
        """
        return cls().with_overrides(field_map)


_CANONICAL_ATTRIBUTES = {
    "email": EMAIL,
    "photo": PHOTO,
    "name": NAME,
    "full_name": FULL_NAME,
    "unique_id": UNIQUE_ID,
}


@dataclass(frozen=True)
class RequestOptions:
    """
    Per-request options for calls to the provider.

    Unset values fall back to SSOSettings.

    Attributes:
        connect_timeout: Connect timeout in seconds
        timeout: Read timeout in seconds
        content_type: Content-Type sent with the request
        authorization_header: Literal Authorization header value
        basic_auth: Send client_id:client_secret as HTTP Basic auth
    """

    connect_timeout: Optional[float] = None
    timeout: Optional[float] = None
    content_type: Optional[str] = None
    authorization_header: Optional[str] = None
    basic_auth: bool = False

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "RequestOptions":
        if not data:
            return cls()
        return cls(
            connect_timeout=data.get("connect_timeout", data.get("ConnectTimeout")),
            timeout=data.get("timeout", data.get("Timeout")),
            content_type=data.get("content_type", data.get("Content-Type")),
            authorization_header=data.get(
                "authorization_header", data.get("Authorization-Header-Message")
            ),
            basic_auth=bool(data.get("basic_auth", False)),
        )


@dataclass(frozen=True)
class ProviderExtensions:
    """
    Named extension points for provider-specific behaviour.

    Attributes:
        authorize_params: Extra query parameters for the authorize URI
        token_params: Extra body parameters for the token request
        profile_params: Extra query parameters for the profile request
        field_map: Source->canonical overrides applied to the profile keys
        token_request_options: Options for the token request
        profile_request_options: Options for the profile request
    """

    authorize_params: dict[str, Any] = field(default_factory=dict)
    token_params: dict[str, Any] = field(default_factory=dict)
    profile_params: dict[str, Any] = field(default_factory=dict)
    field_map: dict[str, str] = field(default_factory=dict)
    token_request_options: RequestOptions = field(default_factory=RequestOptions)
    profile_request_options: RequestOptions = field(default_factory=RequestOptions)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "ProviderExtensions":
        if not data:
            return cls()
        return cls(
            authorize_params=dict(data.get("authorize_params") or {}),
            token_params=dict(data.get("token_params") or {}),
            profile_params=dict(data.get("profile_params") or {}),
            field_map=dict(data.get("field_map") or {}),
            token_request_options=RequestOptions.from_dict(data.get("token_request_options")),
            profile_request_options=RequestOptions.from_dict(
                data.get("profile_request_options")
            ),
        )


_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off", ""}


def _parse_flag(name: str, value: Any) -> bool:
    """Interpret a boolean flag that may arrive as a string."""
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in _TRUE_STRINGS:
            return True
        if normalized in _FALSE_STRINGS:
            return False
        raise ConfigurationError(f"Invalid value for {name}: {value!r}")
    return bool(value)


@dataclass(frozen=True)
class ProviderConfig:
    """
    Registration of one OAuth2 identity provider.

    Attributes:
        key: Unique provider key (also the provider type)
        name: Display name
        authorize_url: Provider authorize endpoint
        token_url: Provider token endpoint
        profile_url: Provider profile (userinfo) endpoint
        client_id: OAuth client ID (association key)
        client_secret: OAuth client secret (association secret)
        scope: Scope requested from the provider
        profile_keys: Source keys for the canonical profile fields
        active: Whether the provider may be used
        is_default: Whether this is the default sign-in method
        bearer_token: Send the access token as a Bearer header on profile calls
        allow_access_tokens: Whether this provider may issue API access tokens
        prompt: Optional prompt value appended to the authorize URI
        register_url: Optional registration page on the provider
        sign_out_url: Optional sign-out endpoint on the provider
        extensions: Provider-specific extension points
    """

    key: str
    name: str = ""
    authorize_url: str = ""
    token_url: str = ""
    profile_url: str = ""
    client_id: str = ""
    client_secret: str = ""
    scope: str = DEFAULT_SCOPE
    profile_keys: ProfileKeys = field(default_factory=ProfileKeys)
    active: bool = True
    is_default: bool = False
    bearer_token: bool = False
    allow_access_tokens: bool = False
    prompt: Optional[str] = None
    register_url: Optional[str] = None
    sign_out_url: Optional[str] = None
    extensions: ProviderExtensions = field(default_factory=ProviderExtensions)

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if not self.key:
            raise ConfigurationError("Provider key cannot be empty")

        for attr in ("authorize_url", "token_url", "profile_url"):
            value = getattr(self, attr)
            if value and not value.startswith(("http://", "https://")):
                raise ConfigurationError(
                    f"{attr} for provider {self.key!r} must be a complete URL, got {value!r}"
                )

    def is_configured(self) -> bool:
        """True when there is both a client secret and a client ID."""
        return bool(self.client_secret and self.client_id)

    def effective_profile_keys(self) -> ProfileKeys:
        """Profile keys with the extension field_map applied."""
        return self.profile_keys.with_overrides(self.extensions.field_map)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProviderConfig":
        """
        Create a ProviderConfig from a dictionary.

        Accepts snake_case attribute names or admin form names.

        Args:
            data: Provider record

        Returns:
            ProviderConfig instance

        Raises:
            ConfigurationError: If the record is invalid
        """
        values: dict[str, Any] = {}
        profile_values: dict[str, str] = {
            attr: source for attr, source in (data.get("profile_keys") or {}).items() if source
        }

        for raw_key, value in data.items():
            if raw_key in _FORM_PROFILE_KEYS:
                if value:
                    profile_values[_FORM_PROFILE_KEYS[raw_key]] = value
            elif raw_key in _FORM_FIELD_NAMES:
                values.setdefault(_FORM_FIELD_NAMES[raw_key], value)
            elif raw_key in cls.__dataclass_fields__ and raw_key not in (
                "profile_keys",
                "extensions",
            ):
                values[raw_key] = value

        unknown = set(profile_values) - set(ProfileKeys.__dataclass_fields__)
        if unknown:
            raise ConfigurationError(f"Unknown profile keys: {sorted(unknown)}")
        bad = sorted(
            attr for attr, source in profile_values.items() if not isinstance(source, str)
        )
        if bad:
            raise ConfigurationError(f"Profile keys must be strings: {bad}")

        for flag in ("active", "is_default", "bearer_token", "allow_access_tokens"):
            if flag in values:
                values[flag] = _parse_flag(flag, values[flag])

        return cls(
            profile_keys=ProfileKeys(**profile_values),
            extensions=ProviderExtensions.from_dict(data.get("extensions")),
            **values,
        )


class SSOSettings(BaseSettings):
    """Engine-wide settings.

    Attributes:
        base_url: Public base URL of the host application (for redirect URIs)
        response_type: OAuth response_type sent to the authorize endpoint
        default_content_type: Content type for provider requests
        connect_timeout: Connect timeout for provider calls (seconds)
        timeout: Read timeout for provider calls (seconds)
        stash_ttl_seconds: Lifetime of a stashed session
        client_id_cache_ttl_seconds: Lifetime of a client ID -> provider cache entry
        access_token_ttl_hours: Lifetime of issued API access tokens
        sso_debug: Emit verbose SSO trace logging
        providers_file: YAML file with provider registrations
        database_path: SQLite database for the stash store
        host: Server host address
        port: Server port number
        debug: Debug mode flag
    """

    app_name: str = "OAuth2 SSO"
    base_url: str = "http://localhost:8000"
    response_type: str = "code"
    default_content_type: str = DEFAULT_CONTENT_TYPE
    connect_timeout: float = 10.0
    timeout: float = 10.0
    stash_ttl_seconds: int = 300
    client_id_cache_ttl_seconds: int = 300
    access_token_ttl_hours: int = 24
    sso_debug: bool = False
    providers_file: Optional[str] = None
    database_path: str = "~/.oauth2_sso/sso.db"
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False

    model_config = SettingsConfigDict(env_prefix="SSO_", case_sensitive=False)

    def url(self, path: str) -> str:
        """Absolute URL for a path on the host application."""
        return self.base_url.rstrip("/") + "/" + path.lstrip("/")
