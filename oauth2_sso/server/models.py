"""Pydantic models for API requests and responses."""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HealthResponse(BaseModel):
    """Health check response model.

    Attributes:
        status: Service health status
        timestamp: Current server timestamp
        providers: Number of registered OAuth2 providers
    """

    status: str = Field(default="healthy", description="Service health status")
    timestamp: datetime = Field(default_factory=_utcnow, description="Current server timestamp")
    providers: int = Field(default=0, description="Registered OAuth2 providers")


class TokenExchangeRequest(BaseModel):
    """Body of POST /api/v2/tokens/oauth."""

    model_config = ConfigDict(populate_by_name=True)

    client_id: str = Field(..., alias="clientID", min_length=1, description="OAuth client ID")
    oauth_access_token: str = Field(
        ..., alias="oauthAccessToken", min_length=1, description="Provider access token"
    )


class TokenExchangeResponse(BaseModel):
    """Issued local API access token."""

    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(..., alias="accessToken")
    date_expires: datetime = Field(..., alias="dateExpires")


class ConnectDataResponse(BaseModel):
    """Data for the host's account-connect step (without provider tokens)."""

    model_config = ConfigDict(populate_by_name=True)

    stash_id: str = Field(..., alias="stashID")
    form_values: dict[str, Any] = Field(default_factory=dict, alias="formValues")
    attributes: dict[str, Any] = Field(default_factory=dict)
    profile: dict[str, Any] = Field(default_factory=dict)
    trusted: bool = True
    verified: bool = True


class ErrorResponse(BaseModel):
    """Standard error response model.

    Attributes:
        error: Error type
        message: Human-readable error message
        status: HTTP status code
    """

    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Human-readable error message")
    status: int = Field(..., description="HTTP status code")
    detail: Optional[Any] = Field(default=None, description="Additional error details")
