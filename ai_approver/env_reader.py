"""
Typed environment variable access for the AI Approver.

Every reader takes a primary key, a default and optional fallback keys; the
first non-empty value wins. Values that fail conversion yield the default.
"""

import os
from enum import Enum
from typing import Optional


def _first_value(keys) -> Optional[str]:
    for key in keys:
        value = os.environ.get(key, "")
        if value:
            return value
    return None


def get_env_str(key: str, default: str = "", *fallback_keys: str) -> str:
    value = _first_value((key,) + fallback_keys)
    return value if value is not None else default


def get_env_optional(key: str, *fallback_keys: str) -> Optional[str]:
    """Like :func:`get_env_str` but returns None when nothing is set."""
    return _first_value((key,) + fallback_keys)


def get_env_int(key: str, default: int, *fallback_keys: str) -> int:
    value = _first_value((key,) + fallback_keys)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def get_env_float(key: str, default: float, *fallback_keys: str) -> float:
    value = _first_value((key,) + fallback_keys)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def get_env_bool(key: str, default: bool, *fallback_keys: str) -> bool:
    """Read a flag; 'true', 'yes' and '1' (any case) are truthy."""
    value = _first_value((key,) + fallback_keys)
    if value is None:
        return default
    return value.strip().lower() in ('true', 'yes', '1')


def get_env_enum(key: str, enum_class: type, default: Enum, *fallback_keys: str) -> Enum:
    """Read an enum member by its (case-insensitive) value."""
    value = _first_value((key,) + fallback_keys)
    if value is None:
        return default
    try:
        return enum_class(value.strip().lower())
    except ValueError:
        return default
