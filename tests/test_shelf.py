"""Tests for the Top Shelf companion surface."""

from dashboardtv.core.config import DashboardTarget, RotationSettings, RotationState
from dashboardtv.core.rotation import RotationController
from dashboardtv.core.shelf import (
    CURRENT_DASHBOARD_URL_KEY,
    MAX_SHELF_DASHBOARDS,
    TopShelfPublisher,
    read_shelf,
)
from dashboardtv.core.store import KeyValueStore


def test_publish_writes_current_rotation_and_dashboards(tmp_path):
    shared = KeyValueStore(tmp_path / "shared.json")
    publisher = TopShelfPublisher(shared)
    targets = [DashboardTarget(url=f"https://host{i}.lan/board") for i in range(7)]
    targets[1] = DashboardTarget(name="Ops", url="https://ops.lan")

    publisher.publish(RotationState(targets=targets, current_index=1, is_rotating=True))

    snapshot = read_shelf(shared)
    assert snapshot.current_dashboard_url == "https://ops.lan"
    assert snapshot.rotation_enabled is True
    assert len(snapshot.dashboards) == MAX_SHELF_DASHBOARDS
    assert snapshot.dashboards[0] == {"name": "host0.lan", "url": "https://host0.lan/board"}
    assert snapshot.dashboards[1] == {"name": "Ops", "url": "https://ops.lan"}
    assert snapshot.last_update_time is not None


def test_publish_empty_state_drops_current(tmp_path):
    shared = KeyValueStore(tmp_path / "shared.json")
    publisher = TopShelfPublisher(shared)
    publisher.publish(
        RotationState(targets=[DashboardTarget(url="https://a.lan")], is_rotating=True)
    )

    publisher.publish(RotationState())

    assert shared.get_json(CURRENT_DASHBOARD_URL_KEY) is None
    snapshot = read_shelf(shared)
    assert snapshot.rotation_enabled is False
    assert snapshot.dashboards == []


def test_clear(tmp_path):
    shared = KeyValueStore(tmp_path / "shared.json")
    publisher = TopShelfPublisher(shared)
    publisher.publish(
        RotationState(targets=[DashboardTarget(url="https://a.lan")], is_rotating=True)
    )

    publisher.clear()

    snapshot = read_shelf(shared)
    assert snapshot.current_dashboard_url is None
    assert snapshot.rotation_enabled is False
    assert snapshot.dashboards == []


def test_controller_changes_refresh_shelf(tmp_path, store, scheduler):
    shared = KeyValueStore(tmp_path / "shared.json")
    publisher = TopShelfPublisher(shared)
    controller = RotationController(store, scheduler)
    controller.add_listener(publisher.publish)

    controller.reconfigure(
        [DashboardTarget(url="https://a.lan"), DashboardTarget(url="https://b.lan")],
        RotationSettings(),
    )
    assert read_shelf(shared).current_dashboard_url == "https://a.lan"
    assert read_shelf(shared).rotation_enabled is True

    controller.next()
    assert read_shelf(shared).current_dashboard_url == "https://b.lan"

    controller.stop()
    assert read_shelf(shared).rotation_enabled is False
