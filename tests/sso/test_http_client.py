"""Tests for provider HTTP access."""

import base64
import json
from unittest import mock

import pytest
import requests

from oauth2_sso.config import RequestOptions, SSOSettings
from oauth2_sso.exceptions import ProviderError, ServerError, TransportError
from oauth2_sso.http_client import HttpResponse, ProviderApiClient, RequestsHttpClient

URL = "https://id.example.com/oauth/token"


def json_response(body, status=200):
    return HttpResponse(status=status, content_type="application/json", body=json.dumps(body))


class TestRequestsHttpClient:
    """Tests for RequestsHttpClient class."""

    @pytest.fixture
    def session(self):
        session = mock.Mock(spec=requests.Session)
        response = mock.Mock()
        response.status_code = 200
        response.headers = {"Content-Type": "application/json"}
        response.text = '{"ok": true}'
        session.request.return_value = response
        return session

    def test_get_sends_query_params(self, session):
        """GET parameters go in the query string."""
        client = RequestsHttpClient(session)

        result = client.request(URL, "get", {"a": "1"}, {"Accept": "x"}, (3, 7))

        session.request.assert_called_once_with(
            "GET", URL, headers={"Accept": "x"}, timeout=(3, 7), params={"a": "1"}
        )
        assert result == HttpResponse(200, "application/json", '{"ok": true}')

    def test_post_form_encoded(self, session):
        """POST parameters are form-encoded by default."""
        RequestsHttpClient(session).request(
            URL, "POST", {"a": "1"}, {"Content-Type": "application/x-www-form-urlencoded"}, (1, 1)
        )
        assert session.request.call_args.kwargs["data"] == {"a": "1"}

    def test_post_json(self, session):
        """POST parameters are sent as JSON for a JSON content type."""
        RequestsHttpClient(session).request(
            URL, "POST", {"a": "1"}, {"Content-Type": "application/json"}, (1, 1)
        )
        assert session.request.call_args.kwargs["json"] == {"a": "1"}

    def test_timeout_raises_transport_error(self, session):
        """Timeouts become TransportError."""
        session.request.side_effect = requests.Timeout("slow")

        with pytest.raises(TransportError, match="Timed out"):
            RequestsHttpClient(session).request(URL, "POST", {}, {}, (1, 1))

    def test_connection_error_raises_transport_error(self, session):
        """Network failures become TransportError."""
        session.request.side_effect = requests.ConnectionError("refused")

        with pytest.raises(TransportError, match="Network error"):
            RequestsHttpClient(session).request(URL, "GET", {}, {}, (1, 1))


class TestProviderApiClient:
    """Tests for ProviderApiClient class."""

    @pytest.fixture
    def transport(self):
        return mock.Mock()

    @pytest.fixture
    def api(self, transport):
        return ProviderApiClient(transport, SSOSettings(connect_timeout=4, timeout=9))

    def test_returns_parsed_json(self, api, transport):
        """2xx JSON bodies are parsed."""
        transport.request.return_value = json_response({"access_token": "at"})

        assert api.call(URL, "POST", {"code": "c"}) == {"access_token": "at"}

    def test_applies_default_timeouts_and_content_type(self, api, transport):
        """Timeouts and content type fall back to settings."""
        transport.request.return_value = json_response({})

        api.call(URL, "POST", {"code": "c"})

        url, method, params, headers, timeouts = transport.request.call_args.args
        assert (url, method, params) == (URL, "POST", {"code": "c"})
        assert headers == {"Content-Type": "application/x-www-form-urlencoded"}
        assert timeouts == (4, 9)

    def test_options_override_timeouts(self, api, transport):
        """Per-request options win over settings."""
        transport.request.return_value = json_response({})

        api.call(URL, options=RequestOptions(connect_timeout=1, timeout=2))

        assert transport.request.call_args.args[4] == (1, 2)

    def test_error_body_raises_provider_error(self, api, transport):
        """Non-2xx with an error body is a ProviderError."""
        transport.request.return_value = json_response(
            {"error": "invalid_grant", "error_description": "Code expired"}, status=400
        )

        with pytest.raises(ProviderError) as exc_info:
            api.call(URL, "POST")

        assert exc_info.value.message == "Request server says: Code expired (code: invalid_grant)"
        assert exc_info.value.error == "invalid_grant"
        assert exc_info.value.http_status == 400

    def test_error_without_description(self, api, transport):
        """The error code doubles as description when none is given."""
        transport.request.return_value = json_response({"error": "access_denied"}, status=401)

        with pytest.raises(ProviderError, match=r"access_denied \(code: access_denied\)"):
            api.call(URL)

    def test_non_json_error_raises_server_error(self, api, transport):
        """Non-2xx without an error body is a ServerError."""
        transport.request.return_value = HttpResponse(503, "text/html", "<h1>down</h1>")

        with pytest.raises(ServerError) as exc_info:
            api.call(URL)

        assert exc_info.value.message == "HTTP Error communicating Code: 503"
        assert exc_info.value.http_status == 503

    def test_invalid_json_error_raises_server_error(self, api, transport):
        """Unparseable JSON on an error status is a ServerError."""
        transport.request.return_value = HttpResponse(500, "application/json", "{oops")

        with pytest.raises(ServerError, match="Code: 500"):
            api.call(URL)

    def test_invalid_json_success_raises_server_error(self, api, transport):
        """Unparseable JSON on a 2xx status is a ServerError."""
        transport.request.return_value = HttpResponse(200, "application/json", "{oops")

        with pytest.raises(ServerError, match="Invalid JSON"):
            api.call(URL)

    def test_form_encoded_body(self, api, transport):
        """Form-encoded bodies are parsed into a dict."""
        transport.request.return_value = HttpResponse(
            200, "application/x-www-form-urlencoded", "access_token=at&scope=user"
        )

        assert api.call(URL) == {"access_token": "at", "scope": "user"}

    def test_transport_error_propagates(self, api, transport):
        """Transport failures are not reclassified."""
        transport.request.side_effect = TransportError("Timed out")

        with pytest.raises(TransportError):
            api.call(URL)


class TestBuildHeaders:
    """Tests for ProviderApiClient.build_headers."""

    @pytest.fixture
    def api(self):
        return ProviderApiClient(mock.Mock(), SSOSettings())

    def test_explicit_authorization_header(self, api):
        """A configured Authorization header is sent verbatim."""
        headers = api.build_headers(
            RequestOptions(authorization_header="Bearer x", basic_auth=True), ("id", "secret")
        )
        assert headers["Authorization"] == "Bearer x"

    def test_basic_auth(self, api):
        """Basic auth encodes client_id:client_secret."""
        headers = api.build_headers(RequestOptions(basic_auth=True), ("id", "secret"))
        expected = base64.b64encode(b"id:secret").decode()
        assert headers["Authorization"] == f"Basic {expected}"

    def test_no_authorization_by_default(self, api):
        """Without options no Authorization header is sent."""
        headers = api.build_headers(RequestOptions(), ("id", "secret"))
        assert "Authorization" not in headers

    def test_content_type_override(self, api):
        """Options may change the content type."""
        headers = api.build_headers(RequestOptions(content_type="application/json"))
        assert headers["Content-Type"] == "application/json"
