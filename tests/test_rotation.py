"""Tests for the dashboard rotation state machine."""

from __future__ import annotations

import asyncio

import pytest

from dashboardtv.core.config import DashboardTarget, RotationSettings
from dashboardtv.core.rotation import RotationController
from dashboardtv.core.store import CURRENT_INDEX_KEY, SETTINGS_KEY, TARGETS_KEY, KeyValueStore

A = "https://grafana.example.com/d/a"
B = "https://grafana.example.com/d/b"
C = "https://status.example.com/"


def _targets(*urls: str) -> list[DashboardTarget]:
    return [DashboardTarget(url=url) for url in urls]


def test_next_wraps_around(make_controller):
    controller = make_controller([A, B, C])
    assert controller.current_index == 0

    controller.next()
    assert controller.current_index == 1
    assert controller.current_target().url == B
    controller.next()
    assert controller.current_index == 2
    assert controller.current_target().url == C
    controller.next()
    assert controller.current_index == 0
    assert controller.current_target().url == A


def test_previous_from_first_goes_to_last(make_controller):
    controller = make_controller([A, B, C])
    controller.previous()
    assert controller.current_index == 2


@pytest.mark.parametrize("count", [1, 2, 3, 7])
def test_next_and_previous_are_inverse(make_controller, count):
    controller = make_controller([f"https://example.com/{i}" for i in range(count)])
    for start in range(count):
        controller.current_index = start
        controller.next()
        controller.previous()
        assert controller.current_index == start
        controller.previous()
        controller.next()
        assert controller.current_index == start


def test_navigation_on_empty_list_is_noop(make_controller, scheduler):
    controller = make_controller()
    controller.next()
    controller.previous()
    assert controller.current_index == 0
    assert controller.current_target() is None
    assert scheduler.handles == []


def test_start_on_empty_list_does_not_rotate(make_controller, scheduler):
    controller = make_controller()
    controller.start()
    assert controller.is_rotating is False
    assert scheduler.handles == []


def test_start_arms_one_shot_with_interval(make_controller, scheduler):
    controller = make_controller([A, B], interval=12.5)
    controller.start()

    assert controller.is_rotating is True
    assert len(scheduler.pending) == 1
    assert scheduler.pending[0].delay == 12.5


def test_timer_fire_advances_and_rearms(make_controller, scheduler):
    controller = make_controller([A, B, C])
    controller.start()

    scheduler.fire_pending()
    assert controller.current_index == 1
    assert len(scheduler.pending) == 1

    scheduler.fire_pending()
    assert controller.current_index == 2


def test_interval_change_applies_on_next_tick(make_controller, scheduler):
    controller = make_controller([A, B, C], interval=30)
    controller.start()
    controller.settings = RotationSettings(rotation_interval_seconds=5)

    scheduler.fire_pending()
    assert scheduler.pending[0].delay == 5


def test_manual_next_rearms_timer(make_controller, scheduler):
    controller = make_controller([A, B, C])
    controller.start()
    first = scheduler.pending[0]

    controller.next()

    assert first.cancelled is True
    assert len(scheduler.pending) == 1
    assert scheduler.pending[0] is not first
    assert controller.current_index == 1


def test_manual_navigation_while_idle_does_not_arm(make_controller, scheduler):
    controller = make_controller([A, B])
    controller.next()
    assert scheduler.handles == []


def test_stop_is_idempotent(make_controller, scheduler):
    controller = make_controller([A, B])
    controller.start()
    handle = scheduler.pending[0]

    controller.stop()
    controller.stop()

    assert controller.is_rotating is False
    assert handle.cancelled is True
    assert scheduler.pending == []


def test_stale_timer_callback_after_stop_is_ignored(make_controller, scheduler):
    controller = make_controller([A, B, C])
    controller.start()
    handle = scheduler.pending[0]
    controller.stop()

    # The loop had already dequeued the callback before cancel() landed.
    handle.fire()

    assert controller.current_index == 0
    assert controller.is_rotating is False


def test_stale_timer_callback_after_rearm_is_ignored(make_controller, scheduler):
    controller = make_controller([A, B, C])
    controller.start()
    old = scheduler.pending[0]
    controller.next()

    old.fire()

    assert controller.current_index == 1


def test_reconfigure_resets_index_and_starts(make_controller, scheduler):
    controller = make_controller([A, B, C])
    controller.current_index = 2

    controller.reconfigure(_targets(B, C), RotationSettings(rotation_interval_seconds=10))

    assert controller.current_index == 0
    assert controller.is_rotating is True
    assert scheduler.pending[0].delay == 10


def test_reconfigure_while_rotating_keeps_rotating(make_controller, scheduler):
    controller = make_controller([A, B, C])
    controller.start()
    controller.next()

    controller.reconfigure(_targets(C, A), RotationSettings())

    assert controller.is_rotating is True
    assert controller.current_index == 0
    assert len(scheduler.pending) == 1


def test_reconfigure_with_empty_list_stops_rotation(make_controller, scheduler):
    controller = make_controller([A, B])
    controller.start()

    controller.reconfigure([], RotationSettings())

    state = controller.state
    assert state.targets == []
    assert state.current_index == 0
    assert state.is_rotating is False
    assert scheduler.pending == []


def test_reconfigure_with_empty_list_notifies_once(make_controller):
    controller = make_controller([A, B])
    controller.start()
    seen = []
    controller.add_listener(seen.append)

    controller.reconfigure([], RotationSettings())

    assert len(seen) == 1
    assert seen[0].is_rotating is False


def test_reconfigure_persists_state(store, scheduler):
    controller = RotationController(store, scheduler)
    settings = RotationSettings(rotation_interval_seconds=45, ai_assist_enabled=True)
    controller.reconfigure([DashboardTarget(name="Sales", url=A)], settings)

    restored = RotationController(store, scheduler)
    assert restored.targets == [DashboardTarget(name="Sales", url=A)]
    assert restored.settings == settings
    assert restored.is_rotating is False
    assert store.get_json(SETTINGS_KEY)["rotationIntervalSeconds"] == 45


def test_navigation_persists_index(store, scheduler):
    controller = RotationController(store, scheduler)
    controller.reconfigure(_targets(A, B, C), RotationSettings())
    controller.next()
    controller.next()

    restored = RotationController(store, scheduler)
    assert restored.current_index == 2


def test_corrupt_saved_state_falls_back_to_defaults(store, scheduler):
    store.set_raw(TARGETS_KEY, "{not json")
    store.set_raw(SETTINGS_KEY, '{"rotationIntervalSeconds": -4}')
    store.set_json(CURRENT_INDEX_KEY, 9)

    controller = RotationController(store, scheduler)

    assert controller.targets == []
    assert controller.settings == RotationSettings()
    assert controller.current_index == 0


def test_saved_plain_url_list_is_accepted(store, scheduler):
    store.set_json(TARGETS_KEY, [A, B])
    controller = RotationController(store, scheduler)
    assert [t.url for t in controller.targets] == [A, B]


def test_out_of_range_saved_index_is_reset(store, scheduler):
    store.set_json(TARGETS_KEY, [A])
    store.set_json(CURRENT_INDEX_KEY, 3)
    controller = RotationController(store, scheduler)
    assert controller.current_index == 0


def test_toggle_switches_between_states(make_controller):
    controller = make_controller([A, B])
    controller.toggle()
    assert controller.is_rotating is True
    controller.toggle()
    assert controller.is_rotating is False


def test_listeners_receive_snapshots(make_controller):
    controller = make_controller([A, B])
    seen = []
    controller.add_listener(seen.append)

    controller.start()
    controller.next()

    assert [s.is_rotating for s in seen] == [True, True]
    assert seen[-1].current_index == 1


def test_apply_priority_reorders_and_keeps_current(make_controller):
    controller = make_controller()
    controller.targets = [
        DashboardTarget(name="Sales", url=A),
        DashboardTarget(name="Ops", url=B),
        DashboardTarget(name="Status", url=C),
    ]
    controller.current_index = 1  # Ops

    changed = controller.apply_priority(["Status", "  Sales ", "Unknown"])

    assert changed is True
    assert [t.name for t in controller.targets] == ["Status", "Sales", "Ops"]
    assert controller.current_target().name == "Ops"


def test_apply_priority_without_change(make_controller):
    controller = make_controller([A, B])
    assert controller.apply_priority([A]) is False


class _StubSelector:
    def __init__(self, suggestion):
        self.suggestion = suggestion
        self.calls = []

    async def suggest_priority(self, names, hour_of_day):
        self.calls.append((list(names), hour_of_day))
        return self.suggestion


@pytest.mark.asyncio
async def test_refresh_priority_applies_suggestion(make_controller):
    controller = make_controller([A, B, C])
    controller.settings = RotationSettings(ai_assist_enabled=True)
    selector = _StubSelector([C, A])

    applied = await controller.refresh_priority(selector, hour=9)

    assert applied is True
    assert selector.calls == [([A, B, C], 9)]
    assert [t.url for t in controller.targets] == [C, A, B]


@pytest.mark.asyncio
async def test_refresh_priority_skipped_when_ai_assist_off(make_controller):
    controller = make_controller([A, B])
    selector = _StubSelector([B, A])

    assert await controller.refresh_priority(selector, hour=9) is False
    assert selector.calls == []


@pytest.mark.asyncio
async def test_refresh_priority_without_suggestion(make_controller):
    controller = make_controller([A, B])
    controller.settings = RotationSettings(ai_assist_enabled=True)

    assert await controller.refresh_priority(_StubSelector(None), hour=9) is False
    assert [t.url for t in controller.targets] == [A, B]


@pytest.mark.asyncio
async def test_rotation_on_event_loop(store):
    controller = RotationController(store, asyncio.get_running_loop())
    controller.reconfigure(_targets(A, B, C), RotationSettings(rotation_interval_seconds=0.01))

    for _ in range(100):
        if controller.current_index != 0:
            break
        await asyncio.sleep(0.01)
    controller.stop()

    assert controller.current_index != 0
    index = controller.current_index
    await asyncio.sleep(0.05)
    assert controller.current_index == index


def test_configuration_from_another_process_survives_a_tick(tmp_path, new_scheduler):
    path = tmp_path / "preferences.json"
    running = RotationController(KeyValueStore(path), new_scheduler())
    running.reconfigure(_targets(A), RotationSettings())

    other = RotationController(KeyValueStore(path), new_scheduler())
    other.reconfigure(_targets(B, C), RotationSettings(rotation_interval_seconds=5))

    running.next()

    restored = RotationController(KeyValueStore(path), new_scheduler())
    assert [t.url for t in restored.targets] == [B, C]
    assert restored.settings.rotation_interval_seconds == 5


def test_reload_picks_up_external_configuration(tmp_path, new_scheduler):
    path = tmp_path / "preferences.json"
    scheduler = new_scheduler()
    running = RotationController(KeyValueStore(path), scheduler)
    running.reconfigure(_targets(A), RotationSettings())
    seen = []
    running.add_listener(seen.append)

    RotationController(KeyValueStore(path), new_scheduler()).reconfigure(
        _targets(B, C), RotationSettings(rotation_interval_seconds=5)
    )

    assert running.reload() is True
    assert [t.url for t in running.targets] == [B, C]
    assert running.is_rotating is True
    assert [h.delay for h in scheduler.pending] == [5]
    assert len(seen) == 1
    assert running.reload() is False


def test_reload_follows_external_navigation(tmp_path, new_scheduler):
    path = tmp_path / "preferences.json"
    scheduler = new_scheduler()
    running = RotationController(KeyValueStore(path), scheduler)
    running.reconfigure(_targets(A, B, C), RotationSettings())

    RotationController(KeyValueStore(path), new_scheduler()).next()

    assert running.reload() is True
    assert running.current_index == 1
    assert len(scheduler.pending) == 1


def test_reload_of_empty_list_stops_rotation(tmp_path, new_scheduler):
    path = tmp_path / "preferences.json"
    scheduler = new_scheduler()
    running = RotationController(KeyValueStore(path), scheduler)
    running.reconfigure(_targets(A, B), RotationSettings())

    RotationController(KeyValueStore(path), new_scheduler()).reconfigure([], RotationSettings())

    assert running.reload() is True
    assert running.is_rotating is False
    assert scheduler.pending == []
