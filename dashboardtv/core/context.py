"""Composition root wiring the DashboardTV services together."""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import httpx

from dashboardtv.core.configuration import ConfigurationReceiver
from dashboardtv.core.rotation import RotationController, Scheduler
from dashboardtv.core.selector import BackendSelector
from dashboardtv.core.shelf import TopShelfPublisher
from dashboardtv.core.store import KeyValueStore
from dashboardtv.utils.log import get_logger

logger = get_logger()

DATA_DIR_ENV = "DASHBOARDTV_HOME"
PREFERENCES_FILE = "preferences.json"
SHARED_FILE = "shared.json"


def default_data_dir() -> Path:
    override = os.getenv(DATA_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".dashboardtv"


@dataclass
class AppContext:
    """Explicitly owned service objects for one process."""

    data_dir: Path
    store: KeyValueStore
    shared_store: KeyValueStore
    controller: RotationController
    selector: BackendSelector
    shelf: TopShelfPublisher
    receiver: ConfigurationReceiver
    http_client: httpx.AsyncClient
    owns_http_client: bool = False

    @classmethod
    def create(
        cls,
        data_dir: Optional[Path] = None,
        *,
        scheduler: Optional[Scheduler] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> "AppContext":
        """Build every service; the scheduler defaults to the running event loop."""
        data_dir = data_dir or default_data_dir()
        store = KeyValueStore(data_dir / PREFERENCES_FILE)
        shared_store = KeyValueStore(data_dir / SHARED_FILE)
        owns_client = http_client is None
        client = http_client or httpx.AsyncClient()
        if scheduler is None:
            scheduler = asyncio.get_running_loop()

        controller = RotationController(store, scheduler)
        selector = BackendSelector(store, client)
        shelf = TopShelfPublisher(shared_store)
        controller.add_listener(shelf.publish)
        receiver = ConfigurationReceiver(controller)
        logger.debug(
            "[context] Services created",
            extra={"data_dir": str(data_dir), "targets": len(controller.targets)},
        )
        return cls(
            data_dir=data_dir,
            store=store,
            shared_store=shared_store,
            controller=controller,
            selector=selector,
            shelf=shelf,
            receiver=receiver,
            http_client=client,
            owns_http_client=owns_client,
        )

    def sync_from_disk(self) -> bool:
        """Adopt state another process saved; True when the store had changed."""
        if not self.store.changed_on_disk():
            return False
        self.controller.reload()
        self.selector.reload_preferences()
        return True

    async def aclose(self) -> None:
        self.controller.stop()
        if self.owns_http_client:
            await self.http_client.aclose()
