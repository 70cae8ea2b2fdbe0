"""
Collaborators of the SSO engine.

The flow engine depends only on the protocols defined here. In-memory
implementations are provided for single-process deployments and tests;
each guards its state with a lock so concurrent requests are safe.
"""

import logging
import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Optional, Protocol, Union

import yaml

from .config import ProviderConfig
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


# ==================== Protocols ====================


class ProviderStore(Protocol):
    """Read access to provider registrations."""

    def get_provider_by_key(self, key: str) -> Optional[ProviderConfig]:
        ...

    def get_all_providers(self) -> list[ProviderConfig]:
        ...


class StashStore(Protocol):
    """Short-lived storage bridging the callback and connect steps."""

    def put(self, record: Mapping[str, Any], ttl: int) -> str:
        ...

    def get_and_keep(self, stash_id: str) -> Optional[dict[str, Any]]:
        ...


class StateTokenService(Protocol):
    """Issues and single-use-verifies anti-replay state tokens."""

    def issue(self, provider_key: str) -> str:
        ...

    def verify(self, provider_key: str, token: str) -> bool:
        ...


class Cache(Protocol):
    """Best-effort key/value cache with per-entry TTL."""

    def get(self, key: str) -> Optional[Any]:
        ...

    def store(self, key: str, value: Any, ttl: int) -> None:
        ...


class AccountLinker(Protocol):
    """Links an external identity to a local user account."""

    def connect(
        self,
        unique_id: str,
        provider_key: str,
        profile: Mapping[str, Any],
        options: Mapping[str, Any],
    ) -> Optional[int]:
        ...


class ApiTokenIssuer(Protocol):
    """Issues local API access tokens."""

    def issue(self, user_id: int, expires: datetime, context: str) -> str:
        ...


class CredentialStore(Protocol):
    """Per-user provider credentials saved at connect time."""

    def get_credentials(self, user_id: int, provider_key: str) -> Optional[dict[str, Any]]:
        ...

    def save_refresh_token(self, user_id: int, provider_key: str, refresh_token: str) -> None:
        ...


# ==================== Provider registry ====================


class ProviderRegistry:
    """
    Mapping from provider key to provider configuration.

    Built once at startup (programmatically or from a YAML file) and
    queried by key.
    """

    def __init__(self, providers: Optional[Iterable[ProviderConfig]] = None):
        self._providers: dict[str, ProviderConfig] = {}
        for provider in providers or []:
            self.register(provider)

    def register(self, provider: ProviderConfig) -> None:
        """Add or replace a provider registration."""
        self._providers[provider.key] = provider
        logger.debug(f"Registered OAuth2 provider {provider.key!r}")

    def get_provider_by_key(self, key: str) -> Optional[ProviderConfig]:
        return self._providers.get(key)

    def get_all_providers(self) -> list[ProviderConfig]:
        return list(self._providers.values())

    def __contains__(self, key: object) -> bool:
        return key in self._providers

    def __len__(self) -> int:
        return len(self._providers)

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> "ProviderRegistry":
        """Build a registry from provider dictionaries."""
        return cls(ProviderConfig.from_dict(record) for record in records)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "ProviderRegistry":
        """
        Load a registry from a YAML file.

        The file holds a ``providers`` list of records, or a mapping of
        provider key to record.

        Args:
            path: YAML file path

        Returns:
            ProviderRegistry instance

        Raises:
            ConfigurationError: If the file is missing or malformed
        """
        file_path = Path(path).expanduser()
        if not file_path.exists():
            raise ConfigurationError(f"Providers file not found: {file_path}")

        try:
            with open(file_path, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {file_path}: {e}") from e

        providers = data.get("providers", data) if isinstance(data, dict) else data
        if isinstance(providers, dict):
            records = [{"key": key, **(record or {})} for key, record in providers.items()]
        elif isinstance(providers, list):
            records = providers
        else:
            raise ConfigurationError(f"Unexpected providers layout in {file_path}")

        registry = cls.from_records(records)
        logger.info(f"Loaded {len(registry)} OAuth2 provider(s) from {file_path}")
        return registry


# ==================== Stash store ====================


@dataclass(frozen=True)
class StashedSession:
    """
    A stashed callback result.

    Attributes:
        stash_id: Opaque identifier handed to the connect step
        record: {AccessToken, RefreshToken, Profile}
        expires_at: Absolute expiry (timezone-aware UTC)
    """

    stash_id: str
    record: dict[str, Any]
    expires_at: datetime

    def is_expired(self, reference: Optional[datetime] = None) -> bool:
        moment = reference or utcnow()
        return moment >= self.expires_at


class MemoryStashStore:
    """In-process stash store with time-based expiry."""

    def __init__(self, clock: Clock = utcnow):
        self.clock = clock
        self._entries: dict[str, StashedSession] = {}
        self._lock = threading.Lock()

    def put(self, record: Mapping[str, Any], ttl: int) -> str:
        stash_id = secrets.token_urlsafe(24)
        entry = StashedSession(
            stash_id=stash_id,
            record=dict(record),
            expires_at=self.clock() + timedelta(seconds=ttl),
        )
        with self._lock:
            self._purge()
            self._entries[stash_id] = entry
        return stash_id

    def get_and_keep(self, stash_id: str) -> Optional[dict[str, Any]]:
        with self._lock:
            entry = self._entries.get(stash_id)
            if entry is None:
                return None
            if entry.is_expired(self.clock()):
                del self._entries[stash_id]
                return None
            return dict(entry.record)

    def _purge(self) -> None:
        now = self.clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]


# ==================== State tokens ====================


class MemoryStateTokenService:
    """
    Anti-replay state tokens, one-time use and scoped to a provider.

    verify() is an atomic check-and-invalidate: of several concurrent
    verifications of the same token exactly one succeeds.
    """

    def __init__(self, ttl_seconds: int = 600, clock: Clock = utcnow):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._tokens: dict[tuple[str, str], datetime] = {}
        self._lock = threading.Lock()

    def issue(self, provider_key: str) -> str:
        token = secrets.token_urlsafe(32)
        with self._lock:
            self._purge()
            self._tokens[(provider_key, token)] = self.clock() + timedelta(
                seconds=self.ttl_seconds
            )
        return token

    def verify(self, provider_key: str, token: str) -> bool:
        if not token:
            return False
        with self._lock:
            expires_at = self._tokens.pop((provider_key, token), None)
        if expires_at is None:
            return False
        return self.clock() < expires_at

    def _purge(self) -> None:
        now = self.clock()
        expired = [key for key, expires_at in self._tokens.items() if now >= expires_at]
        for key in expired:
            del self._tokens[key]


# ==================== Cache ====================


class MemoryCache:
    """In-process TTL cache. A miss returns None."""

    def __init__(self, clock: Clock = utcnow):
        self.clock = clock
        self._entries: dict[str, tuple[Any, datetime]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self.clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def store(self, key: str, value: Any, ttl: int) -> None:
        with self._lock:
            self._entries[key] = (value, self.clock() + timedelta(seconds=ttl))

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None


# ==================== Accounts, API tokens, credentials ====================


class MemoryAccountLinker:
    """Assigns a stable local user ID per (provider, unique ID)."""

    def __init__(self):
        self._users: dict[tuple[str, str], int] = {}
        self.profiles: dict[int, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def connect(
        self,
        unique_id: str,
        provider_key: str,
        profile: Mapping[str, Any],
        options: Mapping[str, Any],
    ) -> Optional[int]:
        if not unique_id:
            return None
        with self._lock:
            user_id = self._users.get((provider_key, unique_id))
            if user_id is None:
                user_id = len(self._users) + 1
                self._users[(provider_key, unique_id)] = user_id
                self.profiles[user_id] = dict(profile)
            elif options.get("sync_existing"):
                self.profiles[user_id] = dict(profile)
        return user_id


class MemoryApiTokenIssuer:
    """Issues opaque random API tokens and remembers their owner."""

    def __init__(self):
        self.tokens: dict[str, tuple[int, datetime, str]] = {}
        self._lock = threading.Lock()

    def issue(self, user_id: int, expires: datetime, context: str) -> str:
        token = "va." + secrets.token_urlsafe(32)
        with self._lock:
            self.tokens[token] = (user_id, expires, context)
        return token


class MemoryCredentialStore:
    """Per-user provider credentials ({AccessToken, RefreshToken})."""

    def __init__(self):
        self._credentials: dict[tuple[int, str], dict[str, Any]] = {}
        self._lock = threading.Lock()

    def save_credentials(self, user_id: int, provider_key: str, credentials: Mapping[str, Any]) -> None:
        with self._lock:
            self._credentials[(user_id, provider_key)] = dict(credentials)

    def get_credentials(self, user_id: int, provider_key: str) -> Optional[dict[str, Any]]:
        with self._lock:
            credentials = self._credentials.get((user_id, provider_key))
            return dict(credentials) if credentials is not None else None

    def save_refresh_token(self, user_id: int, provider_key: str, refresh_token: str) -> None:
        with self._lock:
            self._credentials.setdefault((user_id, provider_key), {})["RefreshToken"] = refresh_token
