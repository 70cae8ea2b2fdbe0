"""FastAPI application entry point.

This module initializes the FastAPI application with the SSO routers,
error handlers and a health check.
"""

import logging

from fastapi import Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse

from oauth2_sso.exceptions import OAuth2SSOError
from oauth2_sso.server import __version__
from oauth2_sso.server.api import entry, tokens
from oauth2_sso.server.dependencies import get_services, settings
from oauth2_sso.server.models import ErrorResponse, HealthResponse
from oauth2_sso.services import SSOServices

# Configure logging
logging.basicConfig(
    level=logging.INFO if not settings.debug else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="OAuth2 single sign-on and API token exchange",
    version=__version__,
    debug=settings.debug,
)

app.include_router(entry.router)
app.include_router(tokens.router)


@app.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    tags=["health"],
    summary="Health check endpoint",
)
def health_check(services: SSOServices = Depends(get_services)) -> HealthResponse:
    """Health check endpoint.

    Returns:
        Health status with the number of registered providers
    """
    return HealthResponse(status="healthy", providers=len(services.providers.get_all_providers()))


@app.exception_handler(OAuth2SSOError)
async def sso_exception_handler(request: Request, exc: OAuth2SSOError):
    """Map SSO errors to structured JSON responses.

    Caller faults get 4xx, provider or server misconfiguration 5xx.
    """
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc}")
    else:
        logger.info(f"{type(exc).__name__} on {request.url.path}: {exc}")

    body = ErrorResponse(error=type(exc).__name__, message=exc.message, status=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(exclude_none=True))


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "InternalServerError",
            "message": "An unexpected error occurred",
            "status": status.HTTP_500_INTERNAL_SERVER_ERROR,
        },
    )


def run() -> None:
    """Run the server with uvicorn."""
    import uvicorn

    uvicorn.run(
        "oauth2_sso.server.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level="debug" if settings.debug else "info",
    )


if __name__ == "__main__":
    run()
