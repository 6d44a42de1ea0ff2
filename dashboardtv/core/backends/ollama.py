"""Ollama backend client (``/api/generate`` and ``/api/tags``)."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from dashboardtv.core.backends.base import (
    BackendClient,
    GenerationRequest,
    ProbeResult,
    build_endpoint,
    decode_json_object,
    get_response,
    post_json,
)
from dashboardtv.core.backends.errors import BackendDecodeError, BackendError
from dashboardtv.core.config import BackendId
from dashboardtv.utils.log import get_logger

logger = get_logger()

DEFAULT_OLLAMA_MODEL = "llama3.2"


def build_ollama_body(request: GenerationRequest) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "model": request.model or DEFAULT_OLLAMA_MODEL,
        "prompt": request.prompt,
        "stream": False,
        "options": {
            "temperature": request.temperature,
            "num_predict": request.max_tokens,
        },
    }
    if request.system_prompt is not None:
        body["system"] = request.system_prompt
    return body


def parse_model_names(payload: Dict[str, Any]) -> List[str]:
    """Extract ``models[].name`` from an ``/api/tags`` response."""
    models = payload.get("models")
    if not isinstance(models, list):
        return []
    return [m["name"] for m in models if isinstance(m, dict) and isinstance(m.get("name"), str)]


class OllamaClient(BackendClient):
    backend_id = BackendId.OLLAMA

    async def probe(
        self, client: httpx.AsyncClient, base_url: str, timeout: Optional[float] = None
    ) -> ProbeResult:
        try:
            url = build_endpoint(base_url, "/api/tags")
            response = await get_response(client, url, timeout=timeout)
        except BackendError as exc:
            return ProbeResult.failed(str(exc))

        # Any answer means the server is up; the model list is best effort.
        models: List[str] = []
        try:
            models = parse_model_names(decode_json_object(response))
        except BackendDecodeError as exc:
            logger.debug(
                "[ollama] Could not read model list",
                extra={"base_url": base_url, "error": str(exc)},
            )
        return ProbeResult(available=True, models=models)

    async def generate(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        request: GenerationRequest,
        timeout: Optional[float] = None,
    ) -> str:
        url = build_endpoint(base_url, "/api/generate")
        payload = await post_json(client, url, build_ollama_body(request), timeout=timeout)
        text = payload.get("response")
        if not isinstance(text, str):
            raise BackendDecodeError("Ollama response is missing the 'response' field")
        return text
