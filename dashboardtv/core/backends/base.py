"""Shared abstractions for AI backend clients."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

import httpx

from dashboardtv.core.backends.error_mapping import run_with_error_mapping
from dashboardtv.core.backends.errors import (
    BackendDecodeError,
    BackendHTTPError,
    InvalidConfiguration,
)
from dashboardtv.core.config import BackendId
from dashboardtv.utils.log import get_logger

logger = get_logger()


@dataclass(frozen=True)
class GenerationRequest:
    """Backend-neutral description of one text generation call."""

    prompt: str
    system_prompt: Optional[str] = None
    temperature: float = 0.7
    max_tokens: int = 1024
    model: Optional[str] = None


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of a reachability probe.

    ``error`` is set when the probe failed rather than the backend simply
    answering "not ready"; callers that only need availability read
    ``available``.
    """

    available: bool
    models: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def failed(cls, error: str) -> "ProbeResult":
        return cls(available=False, error=error)


def build_endpoint(base_url: str, path: str) -> str:
    """Join a backend base URL and an API path.

    Raises InvalidConfiguration when ``base_url`` is not an absolute http(s)
    URL with a host.
    """
    candidate = (base_url or "").strip()
    try:
        parts = urlsplit(candidate)
    except ValueError as exc:
        raise InvalidConfiguration(f"Invalid backend URL {base_url!r}: {exc}") from exc
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise InvalidConfiguration(f"Invalid backend URL {base_url!r}")
    return candidate.rstrip("/") + "/" + path.lstrip("/")


def decode_json_object(response: httpx.Response) -> Dict[str, Any]:
    """Return the response body as a JSON object or raise BackendDecodeError."""
    try:
        payload = response.json()
    except ValueError as exc:
        raise BackendDecodeError(f"Malformed JSON from {response.request.url}: {exc}") from exc
    if not isinstance(payload, dict):
        raise BackendDecodeError(
            f"Expected a JSON object from {response.request.url}, got {type(payload).__name__}"
        )
    return payload


async def post_json(
    client: httpx.AsyncClient,
    url: str,
    body: Dict[str, Any],
    timeout: Optional[float] = None,
) -> Dict[str, Any]:
    """POST a JSON body and return the decoded JSON object response."""

    async def _request() -> httpx.Response:
        if timeout is None:
            return await client.post(url, json=body)
        return await client.post(url, json=body, timeout=timeout)

    response: httpx.Response = await run_with_error_mapping(_request)
    if response.status_code >= 400:
        raise BackendHTTPError(
            f"HTTP {response.status_code} from {url}: {response.text[:200]}",
            status_code=response.status_code,
        )
    return decode_json_object(response)


async def get_response(
    client: httpx.AsyncClient, url: str, timeout: Optional[float] = None
) -> httpx.Response:
    """GET ``url`` and return the response whatever its status."""

    async def _request() -> httpx.Response:
        if timeout is None:
            return await client.get(url)
        return await client.get(url, timeout=timeout)

    return await run_with_error_mapping(_request)


class BackendClient(ABC):
    """One backend wire schema: how to probe it and how to generate text."""

    backend_id: BackendId

    @abstractmethod
    async def probe(
        self, client: httpx.AsyncClient, base_url: str, timeout: Optional[float] = None
    ) -> ProbeResult:
        """Check whether the backend at ``base_url`` is reachable."""

    @abstractmethod
    async def generate(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        request: GenerationRequest,
        timeout: Optional[float] = None,
    ) -> str:
        """Issue one generation request and return the produced text."""
