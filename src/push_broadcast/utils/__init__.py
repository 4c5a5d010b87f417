"""Shared utility modules.

This package provides:
- Structured logging with correlation IDs and secret redaction
- Sanitization helpers that keep device tokens out of logs
"""

from push_broadcast.utils.sanitization import (
    REDACTED,
    mask_token,
    sanitize_exception,
    sanitize_value,
)

__all__ = [
    "REDACTED",
    "mask_token",
    "sanitize_exception",
    "sanitize_value",
]
