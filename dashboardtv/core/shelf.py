"""Top Shelf data shared with the presentation extension.

The extension only reads plain key-value pairs from a shared store; the
publisher rewrites them whenever the rotation state changes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

from dashboardtv.core.config import DashboardTarget, RotationState
from dashboardtv.core.store import KeyValueStore
from dashboardtv.utils.log import get_logger

logger = get_logger()

CURRENT_DASHBOARD_URL_KEY = "currentDashboardURL"
ROTATION_ENABLED_KEY = "rotationEnabled"
SAVED_DASHBOARDS_KEY = "savedDashboards"
LAST_UPDATE_TIME_KEY = "topShelfLastUpdateTime"

MAX_SHELF_DASHBOARDS = 5


def shelf_entry(target: DashboardTarget) -> Dict[str, str]:
    name = target.name or urlsplit(target.url).hostname or target.url
    return {"name": name, "url": target.url}


@dataclass(frozen=True)
class ShelfSnapshot:
    current_dashboard_url: Optional[str] = None
    rotation_enabled: bool = False
    dashboards: List[Dict[str, str]] = field(default_factory=list)
    last_update_time: Optional[str] = None


class TopShelfPublisher:
    """Writes the companion surface after every rotation state change."""

    def __init__(self, store: KeyValueStore, max_dashboards: int = MAX_SHELF_DASHBOARDS) -> None:
        self._store = store
        self.max_dashboards = max_dashboards

    def _touch(self) -> None:
        self._store.set_json(LAST_UPDATE_TIME_KEY, datetime.now(timezone.utc).isoformat())

    def publish(self, state: RotationState) -> None:
        current = state.current_target
        if current is None:
            self._store.remove(CURRENT_DASHBOARD_URL_KEY)
        else:
            self._store.set_json(CURRENT_DASHBOARD_URL_KEY, current.url)
        self._store.set_json(ROTATION_ENABLED_KEY, state.is_rotating)
        self._store.set_json(
            SAVED_DASHBOARDS_KEY,
            [shelf_entry(target) for target in state.targets[: self.max_dashboards]],
        )
        self._touch()
        logger.debug(
            "[shelf] Published Top Shelf data",
            extra={"current": current.url if current else None, "rotating": state.is_rotating},
        )

    def clear(self) -> None:
        self._store.remove(CURRENT_DASHBOARD_URL_KEY)
        self._store.set_json(ROTATION_ENABLED_KEY, False)
        self._store.remove(SAVED_DASHBOARDS_KEY)
        self._touch()


def read_shelf(store: KeyValueStore) -> ShelfSnapshot:
    """Read the shared surface the way the extension does."""
    dashboards_raw: Any = store.get_json(SAVED_DASHBOARDS_KEY)
    dashboards: List[Dict[str, str]] = []
    if isinstance(dashboards_raw, list):
        for item in dashboards_raw:
            if isinstance(item, dict) and isinstance(item.get("url"), str):
                dashboards.append({"name": str(item.get("name", "")), "url": item["url"]})
    current = store.get_json(CURRENT_DASHBOARD_URL_KEY)
    last_update = store.get_json(LAST_UPDATE_TIME_KEY)
    return ShelfSnapshot(
        current_dashboard_url=current if isinstance(current, str) else None,
        rotation_enabled=store.get_json(ROTATION_ENABLED_KEY) is True,
        dashboards=dashboards,
        last_update_time=last_update if isinstance(last_update, str) else None,
    )
