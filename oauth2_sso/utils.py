"""Helpers for logging SSO data without leaking credentials."""

from typing import Any

SENSITIVE_KEYS = frozenset(
    {
        "access_token",
        "refresh_token",
        "client_secret",
        "code",
        "authorization",
        "accesstoken",
        "refreshtoken",
        "associationsecret",
        "oauthaccesstoken",
        "token",
    }
)

MASK = "***"


def redact(data: Any) -> Any:
    """
    Return a copy of data with credential values masked.

    Dictionaries are walked recursively; keys are matched case-insensitively.
    """
    if isinstance(data, dict):
        return {
            key: MASK if str(key).lower() in SENSITIVE_KEYS and value else redact(value)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [redact(item) for item in data]
    return data
