"""Helpers that normalize httpx failures into backend errors."""

from __future__ import annotations

from typing import Any, Awaitable, Callable

import httpx

from dashboardtv.core.backends.errors import (
    BackendConnectionError,
    BackendError,
    BackendHTTPError,
    BackendTimeoutError,
)

_TIMEOUT_HINTS = ("timed out", "timeout")


def is_timeout_message(message: str) -> bool:
    """Return True when an error message describes timeout-like behavior."""
    lowered = message.lower()
    return any(hint in lowered for hint in _TIMEOUT_HINTS)


def map_transport_error(exc: Exception) -> Exception:
    """Map an httpx (or OS-level) exception to a BackendError.

    Exceptions that are already BackendErrors, or that are not transport
    related, are returned unchanged.
    """
    if isinstance(exc, BackendError):
        return exc
    if isinstance(exc, httpx.TimeoutException):
        return BackendTimeoutError(f"Request timed out: {exc}")
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return BackendHTTPError(f"HTTP {status} from {exc.request.url}", status_code=status)
    if isinstance(exc, (httpx.TransportError, ConnectionError, OSError)):
        message = str(exc) or type(exc).__name__
        if is_timeout_message(message):
            return BackendTimeoutError(f"Request timed out: {message}")
        return BackendConnectionError(f"Connection error: {message}")
    return exc


async def run_with_error_mapping(request_fn: Callable[[], Awaitable[Any]]) -> Any:
    """Await ``request_fn`` and re-raise transport failures as BackendErrors."""
    try:
        return await request_fn()
    except Exception as exc:
        mapped = map_transport_error(exc)
        if mapped is exc:
            raise
        raise mapped from exc
