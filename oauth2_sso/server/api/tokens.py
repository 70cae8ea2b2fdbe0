"""API endpoint exchanging a provider access token for a local API token."""

import logging

from fastapi import APIRouter, Depends, status

from oauth2_sso.issuance import AccessTokenIssuer
from oauth2_sso.server.dependencies import get_services
from oauth2_sso.server.models import (
    ErrorResponse,
    TokenExchangeRequest,
    TokenExchangeResponse,
)
from oauth2_sso.services import SSOServices

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v2/tokens", tags=["tokens"])


@router.post(
    "/oauth",
    response_model=TokenExchangeResponse,
    status_code=status.HTTP_200_OK,
    summary="Exchange an OAuth access token for an API access token",
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
def post_oauth(
    body: TokenExchangeRequest,
    services: SSOServices = Depends(get_services),
) -> TokenExchangeResponse:
    """Validate the OAuth token with its provider and issue a local token.

    Example:
        >>> POST /api/v2/tokens/oauth
        >>> {"clientID": "abc123", "oauthAccessToken": "ya29..."}
        >>> {"accessToken": "va.xyz...", "dateExpires": "2026-10-20T10:00:00+00:00"}
    """
    issued = AccessTokenIssuer(services).issue_access_token(
        body.client_id, body.oauth_access_token
    )
    return TokenExchangeResponse(access_token=issued.access_token, date_expires=issued.date_expires)
