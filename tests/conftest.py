"""Pytest configuration and fixtures for all tests."""

from __future__ import annotations

from typing import Any, Callable, List, Tuple

import pytest

from dashboardtv.core.config import DashboardTarget, RotationSettings
from dashboardtv.core.rotation import RotationController
from dashboardtv.core.store import KeyValueStore


class FakeHandle:
    def __init__(self, delay: float, callback: Callable[..., Any], args: Tuple[Any, ...]):
        self.delay = delay
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        self.callback(*self.args)


class FakeScheduler:
    """Records call_later requests so tests decide when timers fire."""

    def __init__(self) -> None:
        self.handles: List[FakeHandle] = []

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> FakeHandle:
        handle = FakeHandle(delay, callback, args)
        self.handles.append(handle)
        return handle

    @property
    def pending(self) -> List[FakeHandle]:
        return [handle for handle in self.handles if not handle.cancelled]

    def fire_pending(self) -> None:
        """Fire the single live timer, like the event loop would."""
        live = self.pending
        assert len(live) == 1, f"expected one armed timer, found {len(live)}"
        handle = live[0]
        self.handles.remove(handle)
        handle.fire()


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep every test away from the real ~/.dashboardtv."""
    monkeypatch.setenv("DASHBOARDTV_HOME", str(tmp_path / "home"))
    yield


@pytest.fixture
def store(tmp_path) -> KeyValueStore:
    return KeyValueStore(tmp_path / "preferences.json")


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def new_scheduler() -> Callable[[], FakeScheduler]:
    """Separate schedulers for controllers standing in for other processes."""
    return FakeScheduler


@pytest.fixture
def make_controller(store, scheduler):
    def _make(urls=(), interval: float = 30.0) -> RotationController:
        controller = RotationController(store, scheduler)
        if urls:
            targets = [DashboardTarget(url=url) for url in urls]
            controller.targets = targets
            controller.settings = RotationSettings(rotation_interval_seconds=interval)
        return controller

    return _make
