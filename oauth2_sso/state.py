"""
Encoding of the OAuth "state" parameter.

The state carries caller data (target URL, anti-replay token) through the
provider redirect. Some OAuth servers mangle double URL encoding, so the blob
is serialized as JSON and wrapped in URL-safe base64 without padding.

State comes back from an attacker-controlled redirect, so decoding never
raises: anything that is not an encoded JSON object decodes to ``{}``.
"""

import base64
import binascii
import json
import logging
from typing import Any, Mapping, Optional, Union

logger = logging.getLogger(__name__)

StateValue = Union[str, bool, int, float]


def encode_state(state: Mapping[str, StateValue]) -> str:
    """
    Encode a state blob into an opaque, query-string safe token.

    Args:
        state: Mapping of string keys to primitive values

    Returns:
        URL-safe base64 token without padding
    """
    payload = json.dumps(dict(state), separators=(",", ":"), sort_keys=True)
    return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii").rstrip("=")


def decode_state(value: Optional[str]) -> dict[str, Any]:
    """
    Decode a state token into its original mapping.

    Args:
        value: Token produced by encode_state (or standard base64 JSON)

    Returns:
        The decoded mapping, or an empty dict for empty or malformed input
    """
    if not value or not isinstance(value, str):
        return {}

    token = value.strip().rstrip("=")
    padded = token + "=" * (-len(token) % 4)
    # Accept standard base64 too ('+', '/') for states minted by older encoders.
    padded = padded.replace("+", "-").replace("/", "_")

    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
        decoded = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError) as e:
        logger.debug(f"Discarding undecodable state: {e}")
        return {}

    if not isinstance(decoded, dict):
        return {}
    return decoded
