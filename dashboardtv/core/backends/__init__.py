"""Backend client registry."""

from __future__ import annotations

from typing import Dict, Type

from dashboardtv.core.backends.base import BackendClient, GenerationRequest, ProbeResult
from dashboardtv.core.backends.chat_completions import TinyChatClient, TinyLLMClient
from dashboardtv.core.backends.ollama import OllamaClient
from dashboardtv.core.config import BackendId

_CLIENTS: Dict[BackendId, Type[BackendClient]] = {
    BackendId.OLLAMA: OllamaClient,
    BackendId.TINYLLM: TinyLLMClient,
    BackendId.TINYCHAT: TinyChatClient,
}


def get_backend_client(backend_id: BackendId) -> BackendClient:
    """Return the client implementing ``backend_id``'s wire schema."""
    return _CLIENTS[backend_id]()


__all__ = [
    "BackendClient",
    "GenerationRequest",
    "ProbeResult",
    "get_backend_client",
]
