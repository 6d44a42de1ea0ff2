"""Error types raised by AI backend clients and the backend selector."""

from __future__ import annotations

from typing import Optional


class BackendError(Exception):
    """Backend failure with a stable error code."""

    def __init__(self, error_code: str, message: str) -> None:
        super().__init__(message)
        self.error_code = error_code


class NoBackendAvailable(BackendError):
    """AI assistance is disabled or no backend is active."""

    def __init__(
        self, message: str = "No AI backend available. Install Ollama, TinyChat, or TinyLLM."
    ) -> None:
        super().__init__("no_backend_available", message)


class InvalidConfiguration(BackendError):
    """A backend base URL cannot be turned into a request target."""

    def __init__(self, message: str = "AI backend configuration is invalid.") -> None:
        super().__init__("invalid_configuration", message)


class InvalidState(BackendError):
    """Generation was requested while the active backend is unresolved."""

    def __init__(self, message: str = "AI backend is in an invalid state.") -> None:
        super().__init__("invalid_state", message)


class BackendTimeoutError(BackendError):
    def __init__(self, message: str) -> None:
        super().__init__("timeout", message)


class BackendConnectionError(BackendError):
    def __init__(self, message: str) -> None:
        super().__init__("connection_error", message)


class BackendHTTPError(BackendError):
    """The backend answered with a non-success status."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__("http_error", message)
        self.status_code = status_code


class BackendDecodeError(BackendError):
    """The backend response body did not match the expected schema."""

    def __init__(self, message: str) -> None:
        super().__init__("decode_error", message)
