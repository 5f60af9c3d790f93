# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Application error hierarchy.

Each error carries a stable ``code``, an HTTP-style ``status_code`` and a
``context`` dict. Only the keys in ``PUBLIC_CONTEXT_KEYS`` ever reach a
client; everything else is for logs.
"""
from __future__ import annotations

import traceback
from datetime import datetime
from typing import Any, Literal, Optional

PUBLIC_CONTEXT_KEYS = (
    "field",
    "limit",
    "remaining",
    "reset_at",
    "timeout",
    "operation",
)


def _public_context(context: dict[str, Any]) -> Optional[dict[str, Any]]:
    """Return only the client-safe context keys, or None if there are none."""
    public = {k: context[k] for k in PUBLIC_CONTEXT_KEYS if context.get(k) is not None}
    return public or None


class AppError(Exception):
    """Base class for all reverse-lens errors."""

    code = "APP_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.context: dict[str, Any] = dict(context or {})

    def to_dict(self) -> dict[str, Any]:
        """Full error details for internal logging."""
        return {
            "name": type(self).__name__,
            "message": self.message,
            "code": self.code,
            "status_code": self.status_code,
            "context": self.context,
        }

    def to_public_dict(self) -> dict[str, Any]:
        """Error details safe to return to a client."""
        return {
            "name": type(self).__name__,
            "message": self.message,
            "code": self.code,
            "status_code": self.status_code,
            "context": _public_context(self.context),
        }


class ValidationError(AppError):
    """Invalid client input. The offending value is never stored."""

    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        *,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, context={**(context or {}), "field": field})
        self.field = field


class SSRFError(ValidationError):
    """Raised when a URL is rejected by the URL safety validator."""

    code = "BLOCKED_URL"

    def __init__(self, message: str, *, context: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message, field="image_url", context=context)


class InvalidUrlError(SSRFError):
    """The URL cannot be parsed as an absolute URL with a host."""

    code = "INVALID_URL"


class UnsupportedSchemeError(SSRFError):
    """The URL scheme is not https."""

    code = "UNSUPPORTED_SCHEME"


class CredentialsNotAllowedError(SSRFError):
    """The URL embeds a username or password."""

    code = "CREDENTIALS_NOT_ALLOWED"


class BlockedHostError(SSRFError):
    """The URL host is local, private, reserved, or a metadata endpoint."""

    code = "BLOCKED_HOST"


class RateLimitError(AppError):
    """The client exhausted its quota for the current window."""

    code = "RATE_LIMIT_EXCEEDED"
    status_code = 429

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        *,
        limit: Optional[int] = None,
        remaining: Optional[int] = None,
        reset_at: Optional[datetime] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message,
            context={
                **(context or {}),
                "limit": limit,
                "remaining": remaining,
                "reset_at": reset_at.isoformat() if reset_at else None,
            },
        )
        self.limit = limit
        self.remaining = remaining
        self.reset_at = reset_at


class NetworkError(AppError):
    """A network call failed or timed out."""

    code = "NETWORK_ERROR"
    status_code = 503

    def __init__(
        self,
        message: str,
        *,
        timeout: bool = False,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, context={**(context or {}), "timeout": timeout})
        self.timeout = timeout


class CacheError(AppError):
    """A key-value store operation failed."""

    code = "CACHE_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str,
        operation: Literal["read", "write", "delete"],
        *,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, context={**(context or {}), "operation": operation})
        self.operation = operation


class ProviderError(AppError):
    """The reverse-image-search provider rejected or failed a request."""

    code = "PROVIDER_ERROR"

    def __init__(
        self,
        message: str,
        provider_code: Optional[str] = None,
        provider_status: Optional[int] = None,
        *,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        status_code = (provider_status // 100) * 100 if provider_status else 500
        super().__init__(
            message,
            status_code=status_code,
            context={
                **(context or {}),
                "provider_code": provider_code,
                "provider_status": provider_status,
            },
        )
        self.provider_code = provider_code
        self.provider_status = provider_status

    @property
    def is_rate_limit(self) -> bool:
        return self.provider_status == 429 or self.provider_code == "rate_limit_exceeded"

    @property
    def is_timeout(self) -> bool:
        return self.provider_status == 408 or self.provider_code == "timeout"

    @property
    def is_auth_error(self) -> bool:
        return self.provider_status in (401, 403)

    @property
    def is_client_error(self) -> bool:
        """4xx other than 429; these are never retried."""
        return (
            self.provider_status is not None
            and 400 <= self.provider_status < 500
            and self.provider_status != 429
        )


def format_error(exc: BaseException) -> dict[str, Any]:
    """Render any exception for internal logging, including the traceback.

    Args:
        exc (BaseException): The exception to render.

    Returns:
        dict[str, Any]: Error details. Never send this to a client.
    """
    if isinstance(exc, AppError):
        return exc.to_dict()
    return {
        "message": str(exc),
        "code": "UNKNOWN_ERROR",
        "context": {
            "name": type(exc).__name__,
            "stack": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        },
    }


def error_to_response(exc: BaseException) -> dict[str, Any]:
    """Render an exception as a client-safe payload.

    Unknown exceptions get a generic message so internal details do not leak.

    Args:
        exc (BaseException): The exception to render.

    Returns:
        dict[str, Any]: ``{"error", "code"}`` plus public ``context`` when present.
    """
    if isinstance(exc, AppError):
        public = exc.to_public_dict()
        payload = {"error": public["message"], "code": public["code"]}
        if public["context"]:
            payload["context"] = public["context"]
        return payload
    return {"error": "An unexpected error occurred", "code": "UNKNOWN_ERROR"}
