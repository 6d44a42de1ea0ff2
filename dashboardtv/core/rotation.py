"""Dashboard rotation state machine.

The controller is Idle until ``start`` (or a non-empty ``reconfigure``)
arms a one-shot timer. Each firing advances to the next target and arms a
new one-shot, so interval changes apply from the next tick. Manual
navigation while rotating cancels the pending advance and re-arms a full
interval. All methods must be called from the scheduler's thread (the
asyncio event loop).
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, List, Optional, Protocol, Sequence

from pydantic import ValidationError

from dashboardtv.core.config import DashboardTarget, RotationSettings, RotationState
from dashboardtv.core.store import (
    CURRENT_INDEX_KEY,
    SETTINGS_KEY,
    TARGETS_KEY,
    KeyValueStore,
)
from dashboardtv.utils.log import get_logger

if TYPE_CHECKING:  # pragma: no cover - type checking only
    from dashboardtv.core.selector import BackendSelector

logger = get_logger()

StateListener = Callable[[RotationState], None]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Anything with the ``call_later`` shape of an asyncio event loop."""

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle: ...


def load_targets(store: KeyValueStore) -> List[DashboardTarget]:
    data = store.get_json(TARGETS_KEY)
    if data is None:
        return []
    if not isinstance(data, list):
        logger.warning("[rotation] Saved targets are not a list; starting empty")
        return []
    try:
        return [
            DashboardTarget(url=item)
            if isinstance(item, str)
            else DashboardTarget.model_validate(item)
            for item in data
        ]
    except ValidationError as exc:
        logger.warning(
            "[rotation] Saved targets are invalid; starting empty",
            extra={"errors": exc.error_count()},
        )
        return []


def load_settings(store: KeyValueStore) -> RotationSettings:
    data = store.get_json(SETTINGS_KEY)
    if data is None:
        return RotationSettings()
    try:
        return RotationSettings.model_validate(data)
    except ValidationError as exc:
        logger.warning(
            "[rotation] Saved settings are invalid; using defaults",
            extra={"errors": exc.error_count()},
        )
        return RotationSettings()


def load_current_index(store: KeyValueStore, target_count: int) -> int:
    data = store.get_json(CURRENT_INDEX_KEY)
    if isinstance(data, int) and not isinstance(data, bool) and 0 <= data < target_count:
        return data
    return 0


class RotationController:
    """Owns the target list, the current position and the rotation timer."""

    def __init__(self, store: KeyValueStore, scheduler: Scheduler) -> None:
        self._store = store
        self._scheduler = scheduler
        self.targets: List[DashboardTarget] = load_targets(store)
        self.settings: RotationSettings = load_settings(store)
        self.current_index = load_current_index(store, len(self.targets))
        self.is_rotating = False
        self._pending: Optional[TimerHandle] = None
        self._generation = 0
        self._listeners: List[StateListener] = []
        logger.debug(
            "[rotation] Loaded saved configuration",
            extra={
                "targets": len(self.targets),
                "interval": self.settings.rotation_interval_seconds,
            },
        )

    # ---- observation ----

    @property
    def state(self) -> RotationState:
        return RotationState(
            targets=list(self.targets),
            current_index=self.current_index,
            is_rotating=self.is_rotating,
        )

    def current_target(self) -> Optional[DashboardTarget]:
        if 0 <= self.current_index < len(self.targets):
            return self.targets[self.current_index]
        return None

    def add_listener(self, callback: StateListener) -> None:
        self._listeners.append(callback)

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.state
        for callback in list(self._listeners):
            callback(snapshot)

    # ---- persistence ----

    def save(self) -> None:
        self._store.set_json(
            TARGETS_KEY, [target.model_dump(mode="json") for target in self.targets]
        )
        self._store.set_json(SETTINGS_KEY, self.settings.model_dump(mode="json", by_alias=True))
        self._store.set_json(CURRENT_INDEX_KEY, self.current_index)

    # ---- timer ----

    def _cancel_pending(self) -> None:
        self._generation += 1
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _arm(self) -> None:
        self._cancel_pending()
        token = self._generation
        self._pending = self._scheduler.call_later(
            self.settings.rotation_interval_seconds, self._on_timer, token
        )

    def _on_timer(self, token: int) -> None:
        # A callback already queued when the timer was cancelled or re-armed.
        if token != self._generation or not self.is_rotating:
            logger.debug("[rotation] Ignoring stale timer", extra={"token": token})
            return
        self._pending = None
        self.next()

    # ---- transitions ----

    def start(self) -> None:
        if not self.targets:
            logger.debug("[rotation] Not starting: no targets")
            return
        self.is_rotating = True
        self._arm()
        logger.info(
            "[rotation] Rotation started",
            extra={"interval": self.settings.rotation_interval_seconds},
        )
        self._notify()

    def stop(self) -> None:
        was_rotating = self.is_rotating
        self.is_rotating = False
        self._cancel_pending()
        if was_rotating:
            logger.info("[rotation] Rotation stopped")
            self._notify()

    def toggle(self) -> None:
        if self.is_rotating:
            self.stop()
        else:
            self.start()

    def next(self) -> None:
        if not self.targets:
            return
        self.current_index = (self.current_index + 1) % len(self.targets)
        self._after_move()

    def previous(self) -> None:
        if not self.targets:
            return
        self.current_index = (
            self.current_index - 1 if self.current_index > 0 else len(self.targets) - 1
        )
        self._after_move()

    def _after_move(self) -> None:
        if self.is_rotating:
            self._arm()
        self._store.set_json(CURRENT_INDEX_KEY, self.current_index)
        target = self.current_target()
        logger.debug(
            "[rotation] Showing target",
            extra={"index": self.current_index, "url": target.url if target else None},
        )
        self._notify()

    def reconfigure(self, targets: Sequence[DashboardTarget], settings: RotationSettings) -> None:
        """Replace targets and settings, reset to the first target and persist.

        Rotation starts when the new list is non-empty and it was not already
        running; an empty list stops it.
        """
        self.targets = list(targets)
        self.settings = settings
        self.current_index = 0
        self.save()
        logger.info(
            "[rotation] Applied configuration",
            extra={
                "targets": len(self.targets),
                "interval": settings.rotation_interval_seconds,
                "ai_assist": settings.ai_assist_enabled,
            },
        )
        if not self.targets:
            if self.is_rotating:
                self.stop()
                return
        elif self.is_rotating:
            # The first target gets a full interval.
            self._arm()
        else:
            self.start()
            return
        self._notify()

    def reload(self) -> bool:
        """Pick up targets, settings and position written by another process.

        A new target list or new settings behave like ``reconfigure`` without
        resetting the position; a moved position alone restarts the interval.
        Returns True when anything changed.
        """
        self._store.reload()
        targets = load_targets(self._store)
        settings = load_settings(self._store)
        index = load_current_index(self._store, len(targets))
        reconfigured = targets != self.targets or settings != self.settings
        if not reconfigured and index == self.current_index:
            return False
        self.targets = targets
        self.settings = settings
        self.current_index = index
        logger.info(
            "[rotation] Picked up external changes",
            extra={"targets": len(targets), "index": index, "reconfigured": reconfigured},
        )
        if not self.targets:
            if self.is_rotating:
                self.stop()
                return True
        elif self.is_rotating:
            self._arm()
        elif reconfigured:
            self.start()
            return True
        self._notify()
        return True

    def apply_priority(self, names: Sequence[str]) -> bool:
        """Move targets named in ``names`` to the front, in that order.

        Targets not mentioned keep their relative order after the named ones
        and the current target stays current. Returns True when the order
        changed.
        """
        if not self.targets:
            return False
        current = self.current_target()
        remaining = list(self.targets)
        ordered: List[DashboardTarget] = []
        for raw in names:
            wanted = raw.strip()
            for target in remaining:
                if target.display_name == wanted:
                    ordered.append(target)
                    remaining.remove(target)
                    break
        ordered.extend(remaining)
        if ordered == self.targets:
            return False
        self.targets = ordered
        if current is not None:
            self.current_index = next(i for i, t in enumerate(ordered) if t is current)
        self.save()
        logger.info(
            "[rotation] Applied suggested order",
            extra={"order": [target.display_name for target in ordered]},
        )
        self._notify()
        return True

    async def refresh_priority(
        self, selector: "BackendSelector", hour: Optional[int] = None
    ) -> bool:
        """Ask the selector for an ordering and apply it when AI assist is on."""
        if not self.settings.ai_assist_enabled or not self.targets:
            return False
        hour_of_day = datetime.now().hour if hour is None else hour
        names = [target.display_name for target in self.targets]
        suggestion = await selector.suggest_priority(names, hour_of_day)
        if not suggestion:
            return False
        return self.apply_priority(suggestion)
