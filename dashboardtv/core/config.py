"""Configuration records for DashboardTV.

This module holds the pydantic models for dashboard targets, rotation
settings, AI backend preferences and the configuration pushed from the
companion application, plus the backend selection policy.
"""

from enum import Enum
from typing import Dict, List, Literal, Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from dashboardtv.utils.log import get_logger


logger = get_logger()


class BackendId(str, Enum):
    """Text-generation backends that can serve AI requests."""

    OLLAMA = "ollama"
    TINYLLM = "tinyllm"
    TINYCHAT = "tinychat"

    @classmethod
    def _missing_(cls, value: object) -> Optional["BackendId"]:
        """Accept the display names persisted by older builds ("Ollama", "TinyChat")."""
        if isinstance(value, str):
            normalized = value.strip().lower()
            for member in cls:
                if member.value == normalized:
                    return member
        return None

    @property
    def display_name(self) -> str:
        return _BACKEND_DISPLAY_NAMES[self]


_BACKEND_DISPLAY_NAMES = {
    BackendId.OLLAMA: "Ollama",
    BackendId.TINYLLM: "TinyLLM",
    BackendId.TINYCHAT: "TinyChat",
}

# Order used by prefer_local_auto: the locally hosted model server first, then
# TinyChat, then TinyLLM. Overridable through BackendPreferences.priority_order.
DEFAULT_PRIORITY_ORDER: List[BackendId] = [
    BackendId.OLLAMA,
    BackendId.TINYCHAT,
    BackendId.TINYLLM,
]

DEFAULT_BASE_URLS: Dict[BackendId, str] = {
    BackendId.OLLAMA: "http://localhost:11434",
    BackendId.TINYLLM: "http://localhost:8000",
    BackendId.TINYCHAT: "http://localhost:8000",
}

AUTO_SELECTION = "auto"


def is_well_formed_url(value: str) -> bool:
    """Return True for absolute URLs with a scheme and a host."""
    try:
        parts = urlsplit(value)
    except ValueError:
        return False
    return bool(parts.scheme) and bool(parts.netloc)


class DashboardTarget(BaseModel):
    """A displayable dashboard endpoint."""

    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    url: str

    @field_validator("url")
    @classmethod
    def _validate_url(cls, value: str) -> str:
        value = value.strip()
        if not is_well_formed_url(value):
            raise ValueError(f"not a well-formed URL: {value!r}")
        return value

    @property
    def display_name(self) -> str:
        return self.name or self.url


class RotationSettings(BaseModel):
    """Rotation behaviour pushed by the companion application."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    rotation_interval_seconds: float = Field(default=30.0, gt=0, alias="rotationIntervalSeconds")
    dark_mode_enabled: bool = Field(default=True, alias="darkModeEnabled")
    ai_assist_enabled: bool = Field(default=False, alias="aiAssistEnabled")
    alert_threshold: float = Field(default=5.0, alias="alertThreshold")


class RotationState(BaseModel):
    """Snapshot of the rotation controller."""

    model_config = ConfigDict(frozen=True)

    targets: List[DashboardTarget] = Field(default_factory=list)
    current_index: int = 0
    is_rotating: bool = False

    @property
    def current_target(self) -> Optional[DashboardTarget]:
        if 0 <= self.current_index < len(self.targets):
            return self.targets[self.current_index]
        return None


class SelectionPolicy(BaseModel):
    """How the active backend is chosen from the probed ones."""

    model_config = ConfigDict(frozen=True)

    mode: Literal["explicit", "prefer_local_auto"] = "prefer_local_auto"
    backend: Optional[BackendId] = None

    @model_validator(mode="after")
    def _check_backend(self) -> "SelectionPolicy":
        if self.mode == "explicit" and self.backend is None:
            raise ValueError("explicit selection requires a backend")
        return self

    @classmethod
    def explicit(cls, backend: BackendId) -> "SelectionPolicy":
        return cls(mode="explicit", backend=backend)

    @classmethod
    def prefer_local_auto(cls) -> "SelectionPolicy":
        return cls(mode="prefer_local_auto")

    @classmethod
    def from_selection(cls, selection: str) -> "SelectionPolicy":
        """Build a policy from a persisted selection ("auto" or a backend id)."""
        if selection.strip().lower() in (AUTO_SELECTION, "auto (prefer local)"):
            return cls.prefer_local_auto()
        return cls.explicit(BackendId(selection))

    def as_selection(self) -> str:
        if self.mode == "explicit" and self.backend is not None:
            return self.backend.value
        return AUTO_SELECTION


class BackendDescriptor(BaseModel):
    """A backend's configured location and its last probed availability."""

    model_config = ConfigDict(frozen=True)

    backend_id: BackendId
    base_url: str
    available: bool = False


class BackendPreferences(BaseModel):
    """Persisted AI backend preferences."""

    model_config = ConfigDict(populate_by_name=True)

    selected_backend: str = AUTO_SELECTION
    selected_model: str = "llama3.2"
    base_urls: Dict[BackendId, str] = Field(default_factory=lambda: dict(DEFAULT_BASE_URLS))
    ai_enabled: bool = False
    priority_order: List[BackendId] = Field(default_factory=lambda: list(DEFAULT_PRIORITY_ORDER))
    request_timeout_seconds: float = Field(default=30.0, gt=0)
    probe_timeout_seconds: float = Field(default=5.0, gt=0)

    @field_validator("selected_backend")
    @classmethod
    def _validate_selection(cls, value: str) -> str:
        # Raises for unknown backends; keeps the stored form canonical.
        return SelectionPolicy.from_selection(value).as_selection()

    @field_validator("base_urls")
    @classmethod
    def _fill_base_urls(cls, value: Dict[BackendId, str]) -> Dict[BackendId, str]:
        merged = dict(DEFAULT_BASE_URLS)
        merged.update(value)
        return merged

    @field_validator("priority_order")
    @classmethod
    def _complete_priority_order(cls, value: List[BackendId]) -> List[BackendId]:
        ordered: List[BackendId] = []
        for backend in value:
            if backend not in ordered:
                ordered.append(backend)
        for backend in DEFAULT_PRIORITY_ORDER:
            if backend not in ordered:
                logger.debug(
                    "[config] Appending backend missing from priority order",
                    extra={"backend": backend.value},
                )
                ordered.append(backend)
        return ordered

    @property
    def policy(self) -> SelectionPolicy:
        return SelectionPolicy.from_selection(self.selected_backend)


class ConfigurationPush(BaseModel):
    """Configuration payload delivered by the companion application."""

    model_config = ConfigDict(populate_by_name=True)

    urls: List[str]
    rotation_interval: float = Field(default=30.0, gt=0, alias="rotationInterval")
    enable_dark_mode: bool = Field(default=True, alias="enableDarkMode")
    enable_ai_detection: bool = Field(default=False, alias="enableAIDetection")
    alert_threshold: float = Field(default=5.0, alias="alertThreshold")

    @field_validator("urls")
    @classmethod
    def _validate_urls(cls, value: List[str]) -> List[str]:
        cleaned = [url.strip() for url in value]
        bad = [url for url in cleaned if not is_well_formed_url(url)]
        if bad:
            raise ValueError(f"not well-formed URLs: {bad}")
        return cleaned

    def to_targets(self) -> List[DashboardTarget]:
        return [DashboardTarget(url=url) for url in self.urls]

    def to_settings(self) -> RotationSettings:
        return RotationSettings(
            rotation_interval_seconds=self.rotation_interval,
            dark_mode_enabled=self.enable_dark_mode,
            ai_assist_enabled=self.enable_ai_detection,
            alert_threshold=self.alert_threshold,
        )
