# Copyright (c) 2026 Heureum AI. All rights reserved.

"""SSRF protection utilities."""

from reverse_lens.common.security.ssrf import (
    UrlPolicy,
    UrlValidator,
    default_validator,
    is_blocked_hostname,
    validate_url,
    validate_url_async,
)

__all__ = [
    "UrlPolicy",
    "UrlValidator",
    "default_validator",
    "is_blocked_hostname",
    "validate_url",
    "validate_url_async",
]
