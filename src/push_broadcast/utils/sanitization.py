"""Secret sanitization utilities for logging and error messages.

Device tokens and gateway credentials are secrets: a leaked token lets
anyone push to that device. This module redacts them from strings, URLs and
structured data before they are logged or shown in error messages.

Examples:
    >>> sanitize_url("https://push.example.com/send?key=secret")
    'https://push.example.com/send?key=<REDACTED>'

    >>> sanitize_value({"fcm_token": "abc", "batch_size": 2})
    {'fcm_token': '<REDACTED>', 'batch_size': 2}

    >>> mask_token("dGhpc2lzYXRva2Vu")
    'dGhpc2…'
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Final, TypeIs

# Redaction marker for sanitized values
REDACTED: Final[str] = "<REDACTED>"

# Number of leading characters kept by mask_token
TOKEN_PREFIX_LENGTH: Final[int] = 6

# Authorization header values: "Bearer <secret>", "key=<secret>"
_BEARER_PATTERN = re.compile(
    r"\b((?:bearer|key=)\s*)([A-Za-z0-9\-._~+/=:]+)",
    re.IGNORECASE,
)

# Pattern for URLs with tokens in path segments
_GENERIC_TOKEN_IN_PATH = re.compile(
    r"(/(?:token|api[-_]?key|auth|secret|bearer)[=/])([^/?#]+)",
    re.IGNORECASE,
)

# Pattern for URLs with tokens in query parameters
_GENERIC_TOKEN_IN_QUERY = re.compile(
    r"([?&](?:token|key|api[-_]?key|auth|secret|bearer)=)([^&]+)",
    re.IGNORECASE,
)

# Sensitive field name patterns (case-insensitive)
_SENSITIVE_FIELD_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in [
        r".*token.*",
        r".*api[-_]?key.*",
        r".*secret.*",
        r".*password.*",
        r".*credential.*",
        r".*authorization.*",
        r".*bearer.*",
    ]
]


def is_sensitive_field(field_name: str) -> bool:
    """Check if a field name indicates sensitive data.

    Args:
        field_name: The field name to check (e.g., "fcm_token", "api_key")

    Returns:
        True if the field name matches sensitive patterns

    Examples:
        >>> is_sensitive_field("fcm_token")
        True
        >>> is_sensitive_field("batch_size")
        False
    """
    return any(pattern.match(field_name) for pattern in _SENSITIVE_FIELD_PATTERNS)


def mask_token(token: str) -> str:
    """Shorten a device token to a prefix that is safe to log.

    Args:
        token: Device token

    Returns:
        The first few characters followed by an ellipsis, or the redaction
        marker for tokens too short to mask meaningfully
    """
    if len(token) <= TOKEN_PREFIX_LENGTH:
        return REDACTED
    return f"{token[:TOKEN_PREFIX_LENGTH]}…"


def sanitize_url(url: str) -> str:
    """Sanitize secrets from URLs and free text while preserving structure.

    Args:
        url: The URL or message to sanitize

    Returns:
        Sanitized text with secrets replaced by the REDACTED marker

    Examples:
        >>> sanitize_url("https://push.example.com/v1/multicast?token=abc")
        'https://push.example.com/v1/multicast?token=<REDACTED>'

        >>> sanitize_url("Authorization: Bearer abc.def")
        'Authorization: Bearer <REDACTED>'
    """
    if not url:
        return url

    sanitized = _GENERIC_TOKEN_IN_QUERY.sub(rf"\1{REDACTED}", url)
    sanitized = _GENERIC_TOKEN_IN_PATH.sub(rf"\1{REDACTED}", sanitized)
    sanitized = _BEARER_PATTERN.sub(rf"\1{REDACTED}", sanitized)
    return sanitized


def _is_primitive(value: object) -> TypeIs[str | int | float | bool | None]:
    return isinstance(value, (str, int, float, bool, type(None)))


def _is_mapping(value: object) -> TypeIs[Mapping[str, object]]:
    return isinstance(value, Mapping)


def _is_sequence(value: object) -> TypeIs[Sequence[object]]:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes))


def sanitize_value(
    value: object,
    *,
    field_name: str | None = None,
) -> object:
    """Recursively sanitize sensitive values from structured data.

    Values are redacted when their field name looks sensitive; strings are
    additionally scrubbed of bearer credentials and token-bearing URLs.
    Nested mappings and sequences are processed recursively.

    Args:
        value: The value to sanitize (can be any type)
        field_name: Optional field name for context-aware sanitization

    Returns:
        Sanitized value with secrets replaced by REDACTED marker

    Examples:
        >>> sanitize_value({"api_key": "secret", "count": 42})
        {'api_key': '<REDACTED>', 'count': 42}
    """
    if field_name and is_sensitive_field(field_name):
        return REDACTED

    if _is_primitive(value):
        if type(value) is str:
            return sanitize_url(value)
        return value

    if _is_mapping(value):
        return {key: sanitize_value(val, field_name=str(key)) for key, val in value.items()}

    if _is_sequence(value):
        sanitized_items: list[object] = [sanitize_value(item) for item in value]
        if isinstance(value, tuple):
            return tuple(sanitized_items)
        return sanitized_items

    # Unknown objects are stringified, then scrubbed
    return sanitize_url(str(value))


def sanitize_exception(exc: BaseException) -> str:
    """Sanitize exception messages to remove sensitive information.

    Args:
        exc: The exception to sanitize

    Returns:
        Sanitized exception message safe for logging

    Examples:
        >>> sanitize_exception(ValueError("bad header: Bearer abc123"))
        'ValueError: bad header: Bearer <REDACTED>'
    """
    return f"{type(exc).__name__}: {sanitize_url(str(exc))}"


def sanitize_args(args: tuple[object, ...]) -> tuple[object, ...]:
    """Sanitize a tuple of logging arguments."""
    return tuple(sanitize_value(arg) for arg in args)
