"""Tests for provider configuration and settings."""

import os
from dataclasses import FrozenInstanceError
from unittest import mock

import pytest

from oauth2_sso.config import (
    DEFAULT_SCOPE,
    ProfileKeys,
    ProviderConfig,
    ProviderExtensions,
    RequestOptions,
    SSOSettings,
)
from oauth2_sso.exceptions import ConfigurationError
from oauth2_sso.translator import ProfileTranslator


class TestProviderConfig:
    """Tests for ProviderConfig class."""

    def test_defaults(self):
        """A provider needs only a key."""
        config = ProviderConfig(key="acme")

        assert config.scope == DEFAULT_SCOPE
        assert config.active is True
        assert config.is_default is False
        assert config.bearer_token is False
        assert config.allow_access_tokens is False
        assert config.prompt is None
        assert config.profile_keys == ProfileKeys()

    def test_empty_key_rejected(self):
        """Empty key raises ConfigurationError."""
        with pytest.raises(ConfigurationError, match="key cannot be empty"):
            ProviderConfig(key="")

    def test_relative_url_rejected(self):
        """Endpoint URLs must be complete."""
        with pytest.raises(ConfigurationError, match="token_url"):
            ProviderConfig(key="acme", token_url="/oauth/token")

    def test_is_configured_requires_id_and_secret(self):
        """is_configured needs both the client ID and the secret."""
        assert not ProviderConfig(key="a", client_id="id").is_configured()
        assert not ProviderConfig(key="a", client_secret="s").is_configured()
        assert ProviderConfig(key="a", client_id="id", client_secret="s").is_configured()

    def test_config_is_immutable(self):
        """Provider records cannot be changed after construction."""
        config = ProviderConfig(key="acme")
        with pytest.raises(FrozenInstanceError):
            config.client_id = "other"

    def test_effective_profile_keys_apply_field_map(self):
        """Extension field_map overrides the configured source keys."""
        config = ProviderConfig(
            key="acme",
            profile_keys=ProfileKeys(email="mail"),
            extensions=ProviderExtensions(field_map={"sub": "UniqueID"}),
        )
        keys = config.effective_profile_keys()

        assert keys.email == "mail"
        assert keys.unique_id == "sub"
        assert keys.photo == "picture"


class TestProviderConfigFromDict:
    """Tests for ProviderConfig.from_dict."""

    def test_from_snake_case(self):
        """snake_case records map directly to attributes."""
        config = ProviderConfig.from_dict(
            {
                "key": "acme",
                "client_id": "cid",
                "client_secret": "secret",
                "token_url": "https://id.example.com/token",
                "bearer_token": True,
                "profile_keys": {"unique_id": "sub"},
            }
        )

        assert config.key == "acme"
        assert config.client_id == "cid"
        assert config.bearer_token is True
        assert config.profile_keys.unique_id == "sub"

    def test_from_admin_form_names(self):
        """Admin form names are accepted."""
        config = ProviderConfig.from_dict(
            {
                "AuthenticationKey": "acme",
                "AssociationKey": "cid",
                "AssociationSecret": "secret",
                "AuthorizeUrl": "https://id.example.com/authorize",
                "ProfileKeyEmail": "mail",
                "ProfileKeyUniqueID": "",
                "AllowAccessTokens": 1,
                "Prompt": "consent",
            }
        )

        assert config.key == "acme"
        assert config.client_id == "cid"
        assert config.client_secret == "secret"
        assert config.allow_access_tokens is True
        assert config.prompt == "consent"
        assert config.profile_keys.email == "mail"
        # Blank form values keep the default
        assert config.profile_keys.unique_id == "user_id"

    def test_blank_profile_keys_keep_defaults(self):
        """Blank snake_case profile keys fall back to the defaults."""
        config = ProviderConfig.from_dict(
            {"key": "acme", "profile_keys": {"email": None, "unique_id": "", "photo": "avatar"}}
        )

        assert config.profile_keys.email == "email"
        assert config.profile_keys.unique_id == "user_id"
        assert config.profile_keys.photo == "avatar"
        profile = ProfileTranslator(config.profile_keys).translate(
            {"email": "a@b.com", "user_id": "u-1"}, "acme"
        )
        assert profile["Email"] == "a@b.com"
        assert profile["UniqueID"] == "u-1"

    def test_non_string_profile_key_rejected(self):
        """Profile keys must name a source field."""
        with pytest.raises(ConfigurationError, match="must be strings"):
            ProviderConfig.from_dict({"key": "acme", "profile_keys": {"email": 5}})

    @pytest.mark.parametrize(
        "raw,expected",
        [("0", False), ("false", False), ("No", False), ("", False), ("1", True), (" TRUE ", True), ("on", True)],
    )
    def test_string_flags(self, raw, expected):
        """String flags are parsed, not just truth-tested."""
        config = ProviderConfig.from_dict({"key": "acme", "Active": raw, "bearer_token": raw})

        assert config.active is expected
        assert config.bearer_token is expected

    def test_invalid_string_flag(self):
        """Unrecognized flag strings are rejected."""
        with pytest.raises(ConfigurationError, match="Invalid value for active"):
            ProviderConfig.from_dict({"key": "acme", "active": "maybe"})

    def test_unknown_profile_key_rejected(self):
        """Unknown profile key attributes raise ConfigurationError."""
        with pytest.raises(ConfigurationError, match="Unknown profile keys"):
            ProviderConfig.from_dict({"key": "acme", "profile_keys": {"avatar": "pic"}})

    def test_extensions_from_dict(self):
        """Extension points are read from the nested extensions record."""
        config = ProviderConfig.from_dict(
            {
                "key": "acme",
                "extensions": {
                    "authorize_params": {"access_type": "offline"},
                    "token_params": {"audience": "api"},
                    "field_map": {"sub": "UniqueID"},
                    "token_request_options": {"basic_auth": True, "Timeout": 5},
                },
            }
        )

        assert config.extensions.authorize_params == {"access_type": "offline"}
        assert config.extensions.token_params == {"audience": "api"}
        assert config.extensions.token_request_options.basic_auth is True
        assert config.extensions.token_request_options.timeout == 5
        assert config.effective_profile_keys().unique_id == "sub"


class TestProfileKeys:
    """Tests for ProfileKeys class."""

    def test_defaults(self):
        """Protocol default source keys."""
        keys = ProfileKeys()
        assert keys.pairs() == [
            ("email", "Email"),
            ("picture", "Photo"),
            ("displayname", "Name"),
            ("name", "FullName"),
            ("user_id", "UniqueID"),
        ]

    def test_from_mapping(self):
        """Source->canonical mapping fills only the named fields."""
        keys = ProfileKeys.from_mapping({"sub": "UniqueID", "mail": "Email"})
        assert keys.unique_id == "sub"
        assert keys.email == "mail"
        assert keys.name == "displayname"

    def test_unknown_canonical_field_rejected(self):
        """Mapping to an unknown canonical field raises ConfigurationError."""
        with pytest.raises(ConfigurationError, match="Unknown canonical profile field"):
            ProfileKeys.from_mapping({"sub": "Identifier"})


class TestRequestOptions:
    """Tests for RequestOptions class."""

    def test_empty(self):
        """No options means settings defaults."""
        options = RequestOptions.from_dict(None)
        assert options == RequestOptions()

    def test_accepts_header_style_names(self):
        """Header-style option names are accepted."""
        options = RequestOptions.from_dict(
            {
                "ConnectTimeout": 3,
                "Content-Type": "application/json",
                "Authorization-Header-Message": "Token abc",
            }
        )
        assert options.connect_timeout == 3
        assert options.content_type == "application/json"
        assert options.authorization_header == "Token abc"


class TestSSOSettings:
    """Tests for SSOSettings class."""

    def test_defaults(self):
        """Settings defaults."""
        with mock.patch.dict(os.environ, {}, clear=True):
            settings = SSOSettings()

        assert settings.response_type == "code"
        assert settings.connect_timeout == 10
        assert settings.timeout == 10
        assert settings.stash_ttl_seconds == 300
        assert settings.client_id_cache_ttl_seconds == 300
        assert settings.access_token_ttl_hours == 24
        assert settings.sso_debug is False

    def test_environment_prefix(self):
        """Settings are read from SSO_* environment variables."""
        env = {"SSO_BASE_URL": "https://forum.example.com", "SSO_SSO_DEBUG": "true"}
        with mock.patch.dict(os.environ, env, clear=True):
            settings = SSOSettings()

        assert settings.base_url == "https://forum.example.com"
        assert settings.sso_debug is True

    def test_settings_config(self):
        """Settings use the SSO_ prefix, case-insensitively."""
        assert SSOSettings.model_config["env_prefix"] == "SSO_"
        with mock.patch.dict(os.environ, {"sso_port": "9001"}, clear=True):
            assert SSOSettings().port == 9001

    def test_url_joins_paths(self):
        """url() joins paths onto the base URL."""
        settings = SSOSettings(base_url="https://forum.example.com/")
        assert settings.url("/entry/acme") == "https://forum.example.com/entry/acme"
        assert settings.url("entry/acme") == "https://forum.example.com/entry/acme"
