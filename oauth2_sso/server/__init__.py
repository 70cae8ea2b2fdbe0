"""FastAPI wire surface for the OAuth2 SSO engine."""

from oauth2_sso import __version__

__all__ = ["__version__"]
