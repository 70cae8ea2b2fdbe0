"""Shared fixtures for SSO tests.

Provides a scripted HTTP transport, a controllable clock, a sample provider
and an in-memory collaborator bundle.
"""

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Union

import pytest

from oauth2_sso.config import ProviderConfig, ProviderExtensions, SSOSettings
from oauth2_sso.http_client import HttpResponse
from oauth2_sso.services import SSOServices
from oauth2_sso.stores import ProviderRegistry

TOKEN_URL = "https://id.example.com/oauth/token"
PROFILE_URL = "https://id.example.com/oauth/userinfo"
AUTHORIZE_URL = "https://id.example.com/oauth/authorize"


class FakeHttpClient:
    """HttpClient returning scripted responses keyed by (METHOD, url).

    A scripted value may be an HttpResponse, a dict (sent as JSON with
    status 200) or an exception instance to raise.
    """

    def __init__(self):
        self.responses: dict[tuple[str, str], Any] = {}
        self.calls: list[dict[str, Any]] = []

    def add(
        self,
        method: str,
        url: str,
        response: Union[HttpResponse, Mapping[str, Any], Exception],
        status: int = 200,
    ) -> None:
        if isinstance(response, Mapping):
            response = HttpResponse(
                status=status, content_type="application/json", body=json.dumps(response)
            )
        self.responses[(method.upper(), url)] = response

    def request(self, url, method, params, headers, timeouts) -> HttpResponse:
        self.calls.append(
            {
                "url": url,
                "method": method.upper(),
                "params": dict(params),
                "headers": dict(headers),
                "timeouts": timeouts,
            }
        )
        response = self.responses.get((method.upper(), url))
        if response is None:
            return HttpResponse(status=404, content_type="text/html", body="Not Found")
        if isinstance(response, Exception):
            raise response
        return response


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def http() -> FakeHttpClient:
    """Scripted HTTP transport."""
    return FakeHttpClient()


@pytest.fixture
def clock() -> FakeClock:
    """Controllable clock."""
    return FakeClock()


@pytest.fixture
def settings() -> SSOSettings:
    """Engine settings with a fixed base URL."""
    return SSOSettings(base_url="https://forum.example.com", providers_file=None)


@pytest.fixture
def provider() -> ProviderConfig:
    """A fully configured provider that may issue API tokens."""
    return ProviderConfig(
        key="acme",
        name="Acme ID",
        authorize_url=AUTHORIZE_URL,
        token_url=TOKEN_URL,
        profile_url=PROFILE_URL,
        client_id="client-123",
        client_secret="secret-xyz",
        allow_access_tokens=True,
        extensions=ProviderExtensions(field_map={"sub": "UniqueID"}),
    )


@pytest.fixture
def registry(provider: ProviderConfig) -> ProviderRegistry:
    """Registry holding the sample provider."""
    return ProviderRegistry([provider])


@pytest.fixture
def services(
    registry: ProviderRegistry,
    settings: SSOSettings,
    http: FakeHttpClient,
    clock: FakeClock,
) -> SSOServices:
    """In-memory collaborators wired to the fake transport and clock."""
    return SSOServices.in_memory(registry, settings=settings, http=http, clock=clock)


@pytest.fixture
def raw_profile() -> dict[str, Any]:
    """Profile as returned by the provider's userinfo endpoint."""
    return {
        "sub": "u-42",
        "email": "jane@example.com",
        "name": "Jane Doe",
        "picture": "https://cdn.example.com/jane.png",
        "locale": "en",
    }


@pytest.fixture
def scripted_provider(http: FakeHttpClient, raw_profile: dict[str, Any]) -> FakeHttpClient:
    """Transport answering token and profile calls successfully."""
    http.add(
        "POST",
        TOKEN_URL,
        {"access_token": "at-1", "refresh_token": "rt-1", "token_type": "Bearer", "expires_in": 3600},
    )
    http.add("GET", PROFILE_URL, raw_profile)
    return http
