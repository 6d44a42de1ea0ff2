"""AI backend selection and text generation.

The selector keeps the last probed availability of each backend, picks one
active backend according to a SelectionPolicy, and routes generation
requests to it. Availability only changes through ``probe_all``.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Dict, List, Optional, Sequence

import httpx

from dashboardtv.core.backends import GenerationRequest, ProbeResult, get_backend_client
from dashboardtv.core.backends.errors import (
    BackendError,
    InvalidState,
    NoBackendAvailable,
)
from dashboardtv.core.config import (
    BackendDescriptor,
    BackendId,
    BackendPreferences,
    SelectionPolicy,
)
from dashboardtv.core.store import BACKEND_PREFERENCES_KEY, KeyValueStore
from dashboardtv.utils.log import get_logger

logger = get_logger()

PRIORITY_SYSTEM_PROMPT = (
    "You are a dashboard optimization expert. Return only dashboard names in priority order."
)


def build_priority_prompt(names: Sequence[str], hour_of_day: int) -> str:
    return (
        f"Prioritize these dashboards for display at {hour_of_day}:00:\n"
        f"{', '.join(names)}\n"
        "\n"
        "Consider: business hours, relevance, typical viewing patterns.\n"
        "Return ordered list, most important first."
    )


def parse_priority_response(text: str) -> List[str]:
    """Split a backend answer into one entry per non-empty line."""
    return [line for line in text.splitlines() if line]


def select_active(
    policy: SelectionPolicy,
    availability: Dict[BackendId, bool],
    priority_order: Sequence[BackendId],
) -> Optional[BackendId]:
    """Choose the active backend for ``policy`` given probed availability.

    explicit(backend) yields that backend only when it is available.
    prefer_local_auto yields the first available backend in
    ``priority_order``. Both yield None when nothing qualifies.
    """
    if policy.mode == "explicit":
        backend = policy.backend
        if backend is not None and availability.get(backend, False):
            return backend
        return None
    for backend in priority_order:
        if availability.get(backend, False):
            return backend
    return None


def load_preferences(store: KeyValueStore) -> BackendPreferences:
    data = store.get_json(BACKEND_PREFERENCES_KEY)
    if data is None:
        return BackendPreferences()
    try:
        return BackendPreferences.model_validate(data)
    except ValueError as exc:
        logger.warning(
            "[selector] Ignoring invalid backend preferences: %s",
            exc,
            extra={"key": BACKEND_PREFERENCES_KEY},
        )
        return BackendPreferences()


class BackendSelector:
    """Tracks backend reachability and serves generation requests."""

    def __init__(
        self,
        store: KeyValueStore,
        http_client: httpx.AsyncClient,
        *,
        preferences: Optional[BackendPreferences] = None,
    ) -> None:
        self._store = store
        self._http = http_client
        self.preferences = preferences if preferences is not None else load_preferences(store)
        self.availability: Dict[BackendId, bool] = {backend: False for backend in BackendId}
        self.probe_errors: Dict[BackendId, Optional[str]] = {backend: None for backend in BackendId}
        self.ollama_models: List[str] = []
        self.active_backend: Optional[BackendId] = None
        self._in_flight = 0
        self._listeners: List[Callable[["BackendSelector"], None]] = []

    # ---- preferences ----

    @property
    def policy(self) -> SelectionPolicy:
        return self.preferences.policy

    @property
    def ai_enabled(self) -> bool:
        return self.preferences.ai_enabled

    @property
    def busy(self) -> bool:
        """True while at least one generation request is outstanding."""
        return self._in_flight > 0

    def save_preferences(self) -> None:
        self._store.set_json(BACKEND_PREFERENCES_KEY, self.preferences.model_dump(mode="json"))

    def _update_preferences(self, **changes: object) -> None:
        self.preferences = BackendPreferences.model_validate(
            {**self.preferences.model_dump(), **changes}
        )
        self.save_preferences()
        self.recompute_active()

    def reload_preferences(self) -> bool:
        """Adopt preferences another process saved; True when they changed."""
        self._store.reload()
        preferences = load_preferences(self._store)
        if preferences == self.preferences:
            return False
        self.preferences = preferences
        logger.info("[selector] Picked up external preference changes")
        self.recompute_active()
        return True

    def set_policy(self, policy: SelectionPolicy) -> None:
        self._update_preferences(selected_backend=policy.as_selection())

    def set_base_url(self, backend: BackendId, url: str) -> None:
        base_urls = dict(self.preferences.base_urls)
        base_urls[backend] = url
        self._update_preferences(base_urls=base_urls)

    def set_ai_enabled(self, enabled: bool) -> None:
        self._update_preferences(ai_enabled=enabled)

    def set_model(self, model: str) -> None:
        self._update_preferences(selected_model=model)

    def add_listener(self, callback: Callable[["BackendSelector"], None]) -> None:
        self._listeners.append(callback)

    def _notify(self) -> None:
        for callback in list(self._listeners):
            callback(self)

    # ---- availability ----

    def descriptors(self) -> List[BackendDescriptor]:
        return [
            BackendDescriptor(
                backend_id=backend,
                base_url=self.preferences.base_urls[backend],
                available=self.availability[backend],
            )
            for backend in BackendId
        ]

    def recompute_active(self) -> Optional[BackendId]:
        previous = self.active_backend
        self.active_backend = select_active(
            self.policy, self.availability, self.preferences.priority_order
        )
        if previous != self.active_backend:
            logger.info(
                "[selector] Active backend changed",
                extra={
                    "previous": previous.value if previous else None,
                    "active": self.active_backend.value if self.active_backend else None,
                    "policy": self.policy.as_selection(),
                },
            )
        self._notify()
        return self.active_backend

    async def _probe_one(self, backend: BackendId) -> ProbeResult:
        client = get_backend_client(backend)
        base_url = self.preferences.base_urls[backend]
        timeout = self.preferences.probe_timeout_seconds
        try:
            return await asyncio.wait_for(
                client.probe(self._http, base_url, timeout=timeout),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            return ProbeResult.failed(f"probe timed out after {timeout}s")
        except (BackendError, httpx.HTTPError, httpx.InvalidURL, OSError, ValueError) as exc:
            return ProbeResult.failed(f"{type(exc).__name__}: {exc}")

    async def _probe_and_record(self, backend: BackendId) -> None:
        result = await self._probe_one(backend)
        self.availability[backend] = result.available
        self.probe_errors[backend] = result.error
        if backend == BackendId.OLLAMA and result.available:
            self.ollama_models = list(result.models)
        logger.debug(
            "[selector] Probe finished",
            extra={
                "backend": backend.value,
                "available": result.available,
                "error": result.error,
            },
        )

    async def probe_all(self) -> Optional[BackendId]:
        """Probe every backend concurrently, then recompute the active one."""
        await asyncio.gather(*(self._probe_and_record(backend) for backend in BackendId))
        return self.recompute_active()

    # ---- generation ----

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> str:
        """Ask the active backend for text.

        Raises NoBackendAvailable when AI is disabled or nothing is active,
        InvalidConfiguration for an unusable base URL, and other BackendError
        subclasses for transport and decode failures.
        """
        backend = self.active_backend
        if not self.ai_enabled or backend is None:
            raise NoBackendAvailable()
        if backend not in self.preferences.base_urls:
            raise InvalidState(f"No base URL recorded for {backend.value}")

        request = GenerationRequest(
            prompt=prompt,
            system_prompt=system_prompt,
            temperature=temperature,
            max_tokens=max_tokens,
            model=self.preferences.selected_model if backend == BackendId.OLLAMA else None,
        )
        client = get_backend_client(backend)
        self._in_flight += 1
        self._notify()
        try:
            text = await client.generate(
                self._http,
                self.preferences.base_urls[backend],
                request,
                timeout=self.preferences.request_timeout_seconds,
            )
        except BackendError as exc:
            logger.warning(
                "[selector] Generation failed: %s",
                exc,
                extra={"backend": backend.value, "error_code": exc.error_code},
            )
            raise
        finally:
            self._in_flight -= 1
            self._notify()
        logger.debug(
            "[selector] Generation finished",
            extra={"backend": backend.value, "response_length": len(text)},
        )
        return text

    async def suggest_priority(self, names: Sequence[str], hour_of_day: int) -> Optional[List[str]]:
        """Best-effort ordering of ``names`` for ``hour_of_day``; None when unavailable."""
        if not self.ai_enabled or self.active_backend is None:
            return None
        try:
            response = await self.generate(
                build_priority_prompt(names, hour_of_day),
                system_prompt=PRIORITY_SYSTEM_PROMPT,
            )
        except (BackendError, httpx.HTTPError, OSError, ValueError) as exc:
            logger.debug(
                "[selector] No priority suggestion: %s: %s",
                type(exc).__name__,
                exc,
            )
            return None
        return parse_priority_response(response)

    def status_text(self) -> str:
        if not self.ai_enabled:
            return "AI Disabled"
        if self.busy:
            return "Processing..."
        if self.active_backend is not None:
            return f"{self.active_backend.display_name} Active"
        return "No Backend"
