"""
Collaborator bundle passed to the flow engine at construction.
"""

from dataclasses import dataclass, field
from typing import Optional

from .config import SSOSettings
from .http_client import HttpClient, RequestsHttpClient
from .stores import (
    AccountLinker,
    ApiTokenIssuer,
    Cache,
    Clock,
    CredentialStore,
    MemoryAccountLinker,
    MemoryApiTokenIssuer,
    MemoryCache,
    MemoryCredentialStore,
    MemoryStashStore,
    MemoryStateTokenService,
    ProviderStore,
    StashStore,
    StateTokenService,
    utcnow,
)


@dataclass(frozen=True)
class SSOServices:
    """
    Every collaborator the SSO engine needs.

    Attributes:
        providers: Provider configuration store
        http: Transport used for provider calls
        state_tokens: Anti-replay state token service
        stash: Stash store bridging callback and connect
        cache: Cache for client ID -> provider lookups
        accounts: Account linker (API token flow)
        api_tokens: Local API token issuer
        credentials: Per-user provider credentials (token refresh)
        settings: Engine settings
        clock: Source of the current time
    """

    providers: ProviderStore
    http: HttpClient
    state_tokens: StateTokenService
    stash: StashStore
    cache: Cache
    accounts: AccountLinker
    api_tokens: ApiTokenIssuer
    credentials: Optional[CredentialStore] = None
    settings: SSOSettings = field(default_factory=SSOSettings)
    clock: Clock = utcnow

    @classmethod
    def in_memory(
        cls,
        providers: ProviderStore,
        settings: Optional[SSOSettings] = None,
        http: Optional[HttpClient] = None,
        clock: Clock = utcnow,
    ) -> "SSOServices":
        """Build services backed by the in-process collaborators."""
        return cls(
            providers=providers,
            http=http or RequestsHttpClient(),
            state_tokens=MemoryStateTokenService(clock=clock),
            stash=MemoryStashStore(clock=clock),
            cache=MemoryCache(clock=clock),
            accounts=MemoryAccountLinker(),
            api_tokens=MemoryApiTokenIssuer(),
            credentials=MemoryCredentialStore(),
            settings=settings or SSOSettings(),
            clock=clock,
        )
