"""Dependency providers for the FastAPI server.

The collaborator bundle is built once from settings and shared by all
requests. Tests replace it with app.dependency_overrides[get_services].
"""

import logging
import threading
from typing import Optional

from oauth2_sso.config import SSOSettings
from oauth2_sso.http_client import RequestsHttpClient
from oauth2_sso.services import SSOServices
from oauth2_sso.stash_db import SqlStashStore, create_stash_engine
from oauth2_sso.stores import (
    MemoryAccountLinker,
    MemoryApiTokenIssuer,
    MemoryCache,
    MemoryCredentialStore,
    MemoryStateTokenService,
    ProviderRegistry,
)

logger = logging.getLogger(__name__)

settings = SSOSettings()

_services: Optional[SSOServices] = None
_services_lock = threading.Lock()


def build_services(sso_settings: SSOSettings) -> SSOServices:
    """Build the collaborator bundle from settings.

    Providers are loaded from settings.providers_file when set; the stash
    store is persisted in the SQLite database at settings.database_path.

    Args:
        sso_settings: Engine settings

    Returns:
        SSOServices instance
    """
    if sso_settings.providers_file:
        providers = ProviderRegistry.from_yaml(sso_settings.providers_file)
    else:
        logger.warning("SSO_PROVIDERS_FILE not set, no OAuth2 providers registered")
        providers = ProviderRegistry()

    return SSOServices(
        providers=providers,
        http=RequestsHttpClient(),
        state_tokens=MemoryStateTokenService(),
        stash=SqlStashStore(create_stash_engine(sso_settings.database_path)),
        cache=MemoryCache(),
        accounts=MemoryAccountLinker(),
        api_tokens=MemoryApiTokenIssuer(),
        credentials=MemoryCredentialStore(),
        settings=sso_settings,
    )


def get_services() -> SSOServices:
    """FastAPI dependency returning the shared collaborator bundle."""
    global _services

    if _services is None:
        with _services_lock:
            if _services is None:
                _services = build_services(settings)
    return _services
