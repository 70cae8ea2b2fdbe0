"""
HTTP access to OAuth providers.

This module provides:
- HttpClient: the transport collaborator protocol
- RequestsHttpClient: the default transport, built on requests
- ProviderApiClient: calls a provider endpoint and classifies the outcome
  (TransportError / ProviderError / ServerError)

The engine performs no retries; a timeout fails the call immediately.
"""

import json
import logging
from base64 import b64encode
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol
from urllib.parse import parse_qsl

import requests

from .config import RequestOptions, SSOSettings
from .exceptions import ProviderError, ServerError, TransportError
from .utils import redact

logger = logging.getLogger(__name__)


@dataclass
class HttpResponse:
    """
    Raw response returned by an HttpClient.

    Attributes:
        status: HTTP status code
        content_type: Value of the Content-Type header ("" if absent)
        body: Response body as text
    """

    status: int
    content_type: str
    body: str

    @property
    def is_success(self) -> bool:
        """True for a 2xx status."""
        return 200 <= self.status < 300


class HttpClient(Protocol):
    """Transport collaborator used for every provider call."""

    def request(
        self,
        url: str,
        method: str,
        params: Mapping[str, Any],
        headers: Mapping[str, str],
        timeouts: tuple[float, float],
    ) -> HttpResponse:
        """Send a request; raise TransportError on network failure."""
        ...


class RequestsHttpClient:
    """
    HttpClient backed by requests.

    GET parameters are sent in the query string. For other methods they are
    sent as a JSON body when the Content-Type is JSON, else form-encoded.
    """

    def __init__(self, session: Optional[requests.Session] = None):
        self.session = session or requests.Session()

    def request(
        self,
        url: str,
        method: str,
        params: Mapping[str, Any],
        headers: Mapping[str, str],
        timeouts: tuple[float, float],
    ) -> HttpResponse:
        method = method.upper()
        kwargs: dict[str, Any] = {"headers": dict(headers), "timeout": timeouts}

        if method == "GET":
            kwargs["params"] = dict(params)
        elif "json" in headers.get("Content-Type", "").lower():
            kwargs["json"] = dict(params)
        else:
            kwargs["data"] = dict(params)

        try:
            response = self.session.request(method, url, **kwargs)
        except requests.Timeout as e:
            logger.error(f"Timeout calling {url}: {e}")
            raise TransportError(f"Timed out communicating with {url}") from e
        except requests.RequestException as e:
            logger.error(f"Network error calling {url}: {e}")
            raise TransportError(f"Network error communicating with {url}: {e}") from e

        return HttpResponse(
            status=response.status_code,
            content_type=response.headers.get("Content-Type", ""),
            body=response.text,
        )


def _parse_body(response: HttpResponse) -> Any:
    """Parse the body according to its declared content type."""
    content_type = response.content_type.lower()

    if "application/json" in content_type or content_type.endswith("+json"):
        try:
            return json.loads(response.body) if response.body else {}
        except ValueError as e:
            if response.is_success:
                raise ServerError(
                    f"Invalid JSON in response: {e}", http_status=response.status
                ) from e
            return None

    if "application/x-www-form-urlencoded" in content_type:
        return dict(parse_qsl(response.body, keep_blank_values=True))

    return response.body


class ProviderApiClient:
    """
    Calls provider endpoints and classifies failures.

    Responsibilities:
    - Apply timeouts, Content-Type and Authorization headers
    - Parse JSON (or form-encoded) bodies
    - Turn non-2xx responses into ProviderError or ServerError
    """

    def __init__(self, http: HttpClient, settings: SSOSettings):
        """
        Initialize API client.

        Args:
            http: Transport collaborator
            settings: Engine settings (timeouts, default content type)
        """
        self.http = http
        self.settings = settings

    def build_headers(
        self,
        options: RequestOptions,
        basic_credentials: Optional[tuple[str, str]] = None,
    ) -> dict[str, str]:
        """Build request headers from options."""
        headers: dict[str, str] = {}

        content_type = options.content_type or self.settings.default_content_type
        if content_type:
            headers["Content-Type"] = content_type

        if options.authorization_header:
            headers["Authorization"] = options.authorization_header
        elif options.basic_auth and basic_credentials:
            credentials = f"{basic_credentials[0]}:{basic_credentials[1]}"
            headers["Authorization"] = f"Basic {b64encode(credentials.encode()).decode()}"

        return headers

    def call(
        self,
        uri: str,
        method: str = "GET",
        params: Optional[Mapping[str, Any]] = None,
        options: Optional[RequestOptions] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Any:
        """
        Call a provider endpoint.

        Args:
            uri: Endpoint on the provider's server
            method: HTTP method
            params: Query string (GET) or body parameters
            options: Request options (timeouts, content type, auth header)
            headers: Pre-built headers; built from options when omitted

        Returns:
            Parsed body (dict for JSON/form bodies, str otherwise)

        Raises:
            TransportError: Network-level failure or timeout
            ProviderError: Non-2xx with a provider error body
            ServerError: Non-2xx without a parseable error body
        """
        options = options or RequestOptions()
        params = dict(params or {})
        if headers is None:
            headers = self.build_headers(options)
        timeouts = (
            options.connect_timeout or self.settings.connect_timeout,
            options.timeout or self.settings.timeout,
        )

        logger.debug(
            f"Provider request: {method} {uri} params={redact(params)} headers={redact(headers)}"
        )
        response = self.http.request(uri, method, params, headers, timeouts)

        body = _parse_body(response)

        if not response.is_success:
            if isinstance(body, Mapping) and body.get("error"):
                error = str(body["error"])
                description = body.get("error_description") or error
                logger.error(f"Provider error from {uri}: {response.status} {error}")
                raise ProviderError(
                    f"Request server says: {description} (code: {error})",
                    error=error,
                    error_description=body.get("error_description"),
                    http_status=response.status,
                )
            logger.error(f"HTTP error from {uri}: {response.status}")
            raise ServerError(
                f"HTTP Error communicating Code: {response.status}",
                http_status=response.status,
            )

        return body
