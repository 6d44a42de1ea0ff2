"""Clients for OpenAI-compatible chat completion servers.

TinyLLM (https://github.com/jasonacox/TinyLLM) and TinyChat
(https://github.com/jasonacox/tinychat) both serve ``/v1/chat/completions``
with the same schema; they are separate deployments with separate base URLs.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from dashboardtv.core.backends.base import (
    BackendClient,
    GenerationRequest,
    ProbeResult,
    build_endpoint,
    get_response,
    post_json,
)
from dashboardtv.core.backends.errors import BackendDecodeError, BackendError
from dashboardtv.core.config import BackendId


def build_chat_body(request: GenerationRequest) -> Dict[str, Any]:
    messages: List[Dict[str, str]] = []
    if request.system_prompt is not None:
        messages.append({"role": "system", "content": request.system_prompt})
    messages.append({"role": "user", "content": request.prompt})
    return {
        "messages": messages,
        "max_tokens": request.max_tokens,
        "temperature": request.temperature,
        "stream": False,
    }


def parse_chat_content(payload: Dict[str, Any]) -> str:
    """Return ``choices[0].message.content``; an empty ``choices`` list yields ""."""
    choices = payload.get("choices")
    if not isinstance(choices, list):
        raise BackendDecodeError("Chat completion response is missing 'choices'")
    if not choices:
        return ""
    first = choices[0]
    message = first.get("message") if isinstance(first, dict) else None
    content = message.get("content") if isinstance(message, dict) else None
    if not isinstance(content, str):
        raise BackendDecodeError("Chat completion choice has no message content")
    return content


class ChatCompletionsClient(BackendClient):
    """Shared wire schema for the chat completion servers."""

    async def probe(
        self, client: httpx.AsyncClient, base_url: str, timeout: Optional[float] = None
    ) -> ProbeResult:
        try:
            url = build_endpoint(base_url, "/")
            response = await get_response(client, url, timeout=timeout)
        except BackendError as exc:
            return ProbeResult.failed(str(exc))
        if response.status_code != 200:
            return ProbeResult(available=False)
        return ProbeResult(available=True)

    async def generate(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        request: GenerationRequest,
        timeout: Optional[float] = None,
    ) -> str:
        url = build_endpoint(base_url, "/v1/chat/completions")
        payload = await post_json(client, url, build_chat_body(request), timeout=timeout)
        return parse_chat_content(payload)


class TinyLLMClient(ChatCompletionsClient):
    backend_id = BackendId.TINYLLM


class TinyChatClient(ChatCompletionsClient):
    backend_id = BackendId.TINYCHAT
