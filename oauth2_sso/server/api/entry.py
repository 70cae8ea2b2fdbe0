"""Browser-facing SSO endpoints.

Provides the sign-in redirect, the provider callback and the
account-connect handoff:

    GET /entry/{provider_key}-redirect   -> 302 to the provider
    GET /entry/{provider_key}            -> 302 to /entry/connect/{provider_key}
    GET /entry/connect/{provider_key}    -> connect data (JSON)
"""

import html
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import HTMLResponse, RedirectResponse

from oauth2_sso.exceptions import (
    InactiveProviderError,
    NotFoundError,
    OAuth2SSOError,
    ProviderError,
)
from oauth2_sso.flow import OAuthFlowController
from oauth2_sso.server.dependencies import get_services
from oauth2_sso.server.models import ConnectDataResponse
from oauth2_sso.services import SSOServices
from oauth2_sso.state import decode_state

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/entry", tags=["entry"])

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
}


def get_flow(provider_key: str, services: SSOServices) -> OAuthFlowController:
    """Build a flow controller for a registered, active provider."""
    if services.providers.get_provider_by_key(provider_key) is None:
        raise NotFoundError(f"OAuth2 provider {provider_key!r} could not be found.")

    flow = OAuthFlowController(provider_key, services)
    if not flow.is_active():
        raise InactiveProviderError(f"OAuth2 provider {provider_key!r} is not active.")
    return flow


def render_error(error: OAuth2SSOError) -> HTMLResponse:
    """Render a sign-in failure page. Only the error message is shown."""
    details = ""
    if isinstance(error, ProviderError) and error.error:
        details = f"<p><strong>Error:</strong> {html.escape(error.error)}</p>"

    return HTMLResponse(
        f"""<html>
        <head><title>Sign In Failed</title></head>
        <body style="font-family: Arial, sans-serif; max-width: 600px; margin: 50px auto; padding: 20px;">
            <h1 style="color: #d32f2f;">Sign In Failed</h1>
            {details}
            <p>{html.escape(error.message)}</p>
            <p style="margin-top: 30px; color: #666;">Please go back and try signing in again.</p>
        </body>
        </html>""",
        status_code=error.status_code,
        headers=NO_CACHE_HEADERS,
    )


@router.get(
    "/connect/{provider_key}",
    response_model=ConnectDataResponse,
    status_code=status.HTTP_200_OK,
    summary="Account-connect data for a stashed sign-in",
)
def connect_data(
    provider_key: str,
    stash_id: Optional[str] = Query(default=None, alias="stashID"),
    services: SSOServices = Depends(get_services),
) -> ConnectDataResponse:
    """Read the stashed profile for the account-connect step.

    Provider tokens stay server-side; only the profile is returned.
    """
    flow = get_flow(provider_key, services)
    data = flow.prepare_connect_data(stash_id)
    attributes = {
        key: {"Profile": value.get("Profile", {})} for key, value in data.attributes.items()
    }
    return ConnectDataResponse(
        stash_id=data.stash_id,
        form_values=data.form_values,
        attributes=attributes,
        profile=data.profile,
        trusted=data.trusted,
        verified=data.verified,
    )


@router.get("/{provider_key}-redirect", summary="Redirect to the provider's sign-in page")
def entry_redirect(
    provider_key: str,
    state: str = "",
    services: SSOServices = Depends(get_services),
):
    """Mint a state token and redirect to the provider's authorize URL."""
    try:
        flow = get_flow(provider_key, services)
        url = flow.real_authorize_uri(decode_state(state))
    except OAuth2SSOError as e:
        logger.error(f"Cannot start SSO with {provider_key}: {e}")
        return render_error(e)

    return RedirectResponse(url, status_code=status.HTTP_302_FOUND, headers=NO_CACHE_HEADERS)


@router.get("/{provider_key}", summary="OAuth2 callback")
def entry_callback(
    provider_key: str,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    error_description: Optional[str] = None,
    services: SSOServices = Depends(get_services),
):
    """Handle the provider redirect and forward to the connect step."""
    try:
        flow = get_flow(provider_key, services)
        result = flow.handle_callback(
            code=code, state=state, error=error, error_description=error_description
        )
    except OAuth2SSOError as e:
        return render_error(e)

    return RedirectResponse(
        result.connect_url, status_code=status.HTTP_302_FOUND, headers=NO_CACHE_HEADERS
    )
