"""
Translation of provider profiles into the canonical profile shape.

Providers name their profile fields differently ("email" vs "mail",
"sub" vs "user_id", nested "data.attributes.email", ...). Admins configure
which source key feeds each canonical field; everything else in the raw
profile is kept under its original key.
"""

import logging
from typing import Any, Mapping, Optional, Union

from .config import PROVIDER, ProfileKeys

logger = logging.getLogger(__name__)

_MISSING = object()


def lookup_path(data: Mapping[str, Any], path: str, default: Any = None) -> Any:
    """
    Look up a value by key or dotted path.

    A literal key containing dots wins over nested traversal.

    Args:
        data: Mapping to search
        path: Key or dotted path (e.g. "user.emails.primary")
        default: Returned when the path does not resolve

    Returns:
        The value found, or default
    """
    if path in data:
        return data[path]

    current: Any = data
    for part in path.split("."):
        if isinstance(current, Mapping) and part in current:
            current = current[part]
        elif isinstance(current, (list, tuple)) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return default
    return current


def _is_blank(value: Any) -> bool:
    return value is None or value == ""


def translate_mapping(
    data: Mapping[str, Any],
    mappings: list[tuple[str, str]],
    add_remaining: bool = False,
) -> dict[str, Any]:
    """
    Copy values from data into new keys.

    Each mapped source value is placed under its target key; missing values
    become "". Mapped top-level source keys are consumed. With add_remaining,
    unconsumed source keys are appended without overwriting placed targets.

    Args:
        data: Source mapping
        mappings: (source key or dotted path, target key) pairs
        add_remaining: Tack on all unmapped values of data

    Returns:
        Translated dictionary
    """
    remaining = dict(data)
    result: dict[str, Any] = {}

    for source, target in mappings:
        value = lookup_path(data, source, _MISSING)
        if value is _MISSING or _is_blank(value):
            result[target] = ""
            continue

        result[target] = value
        remaining.pop(source, None)

    if add_remaining:
        for key, value in remaining.items():
            if key not in result:
                result[key] = value

    return result


class ProfileTranslator:
    """
    Maps a raw provider profile onto the canonical profile.

    The canonical profile has Email, Photo, Name, FullName, UniqueID and
    Provider, plus every untranslated source field.
    """

    def __init__(self, field_map: Optional[Union[ProfileKeys, Mapping[str, str]]] = None):
        """
        Initialize translator.

        Args:
            field_map: ProfileKeys, or a {source key: canonical field} mapping.
                       Unmapped canonical fields use protocol defaults.
        """
        if field_map is None:
            self.keys = ProfileKeys()
        elif isinstance(field_map, ProfileKeys):
            self.keys = field_map
        else:
            self.keys = ProfileKeys.from_mapping(field_map)

    def translate(self, raw_profile: Optional[Mapping[str, Any]], provider_key: str) -> dict[str, Any]:
        """
        Translate a raw profile.

        Args:
            raw_profile: Profile as returned by the provider
            provider_key: Key stamped into the Provider field

        Returns:
            Canonical profile dictionary
        """
        profile = translate_mapping(raw_profile or {}, self.keys.pairs(), add_remaining=True)
        profile[PROVIDER] = provider_key
        return profile
