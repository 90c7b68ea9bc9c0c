"""Kiosk display controller: view and alert rotation, sleep schedule, wake lock.

One controller owns one ``KioskState`` and three asyncio timer tasks:

* view rotator: advances the dashboard view every ``cycle_interval_seconds``
  while kiosk mode is active and the display is awake,
* alert rotator: advances the highlighted problematic device every 5 seconds
  while kiosk mode is active,
* schedule check: re-evaluates the operating window every minute while kiosk
  mode and the schedule are both enabled.

Each task is cancelled as soon as its gate closes. The wake lock is acquired
when kiosk mode turns on and released on every path out of it.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Iterable

from pydantic import ValidationError

from netsentinel.schemas.kiosk import (
    Device,
    DeviceStatus,
    KioskStateSnapshot,
    Screen,
    ViewMode,
)
from netsentinel.services.schedule import parse_hhmm, should_sleep
from netsentinel.services.wake_lock import NullWakeLock, WakeLockHandle, WakeLockProvider

logger = logging.getLogger(__name__)

VIEW_ORDER = (ViewMode.OVERVIEW, ViewMode.TOPOLOGY, ViewMode.LOCATION)
KIOSK_SCREENS = frozenset({Screen.DASHBOARD, Screen.AI})
PROBLEM_STATUSES = frozenset({DeviceStatus.OFFLINE, DeviceStatus.CRITICAL})
KIOSK_ROLE = "kiosk"

DEFAULT_CYCLE_INTERVAL_SECONDS = 10
ALERT_INTERVAL_SECONDS = 5.0
SCHEDULE_CHECK_SECONDS = 60.0

StateListener = Callable[[KioskStateSnapshot], Awaitable[None]]


class KioskConfigurationError(RuntimeError):
    """Raised for kiosk changes that are not allowed in the current mode."""


@dataclass
class KioskState:
    active: bool = False
    screen: Screen = Screen.DASHBOARD
    view_mode: ViewMode = ViewMode.OVERVIEW
    cycle_interval_seconds: float = DEFAULT_CYCLE_INTERVAL_SECONDS
    alert_index: int = 0
    sleeping: bool = False
    schedule_enabled: bool = False
    start_time: str = "08:00"
    end_time: str = "18:00"
    wake_lock_held: bool = False


def next_view(view_mode: ViewMode) -> ViewMode:
    return VIEW_ORDER[(VIEW_ORDER.index(view_mode) + 1) % len(VIEW_ORDER)]


def _is_runnable_interval(seconds: Any) -> bool:
    try:
        return math.isfinite(seconds) and seconds > 0
    except TypeError:
        return False


class KioskController:
    """Owns the kiosk state and every timer that mutates it."""

    def __init__(
        self,
        wake_lock: WakeLockProvider | None = None,
        *,
        state: KioskState | None = None,
        clock: Callable[[], datetime] | None = None,
        alert_interval_seconds: float = ALERT_INTERVAL_SECONDS,
        schedule_check_seconds: float = SCHEDULE_CHECK_SECONDS,
    ):
        self.state = state or KioskState()
        self._wake_lock = wake_lock or NullWakeLock()
        self._clock = clock or datetime.now
        self._alert_interval = alert_interval_seconds
        self._schedule_interval = schedule_check_seconds

        self._devices: list[Device] = []
        self._problematic: list[Device] = []
        self._wake_handle: WakeLockHandle | None = None
        self._view_task: asyncio.Task[None] | None = None
        self._alert_task: asyncio.Task[None] | None = None
        self._schedule_task: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._listeners: list[StateListener] = []
        self._closed = False

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def devices(self) -> list[Device]:
        return list(self._devices)

    @property
    def problematic_devices(self) -> list[Device]:
        return list(self._problematic)

    @property
    def timers_running(self) -> dict[str, bool]:
        return {
            "view": _is_live(self._view_task),
            "alert": _is_live(self._alert_task),
            "schedule": _is_live(self._schedule_task),
        }

    def current_alert(self) -> Device | None:
        """The highlighted problematic device, or None when nothing is wrong."""
        if not self._problematic:
            return None
        return self._problematic[self.state.alert_index % len(self._problematic)]

    def snapshot(self) -> KioskStateSnapshot:
        state = self.state
        position = (
            state.alert_index % len(self._problematic) if self._problematic else None
        )
        return KioskStateSnapshot(
            active=state.active,
            screen=state.screen,
            view_mode=state.view_mode,
            cycle_interval_seconds=state.cycle_interval_seconds,
            alert_index=state.alert_index,
            sleeping=state.sleeping,
            schedule_enabled=state.schedule_enabled,
            start_time=state.start_time,
            end_time=state.end_time,
            wake_lock_held=state.wake_lock_held,
            problematic_count=len(self._problematic),
            alert_position=position,
            current_alert=self.current_alert(),
        )

    def add_listener(self, listener: StateListener) -> None:
        """Register a coroutine called with a snapshot after each state change."""
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Mode gate
    # ------------------------------------------------------------------

    async def set_active(self, active: bool) -> KioskState:
        """Turn kiosk mode on or off. Repeating the current value does nothing."""
        self._ensure_open()
        if active == self.state.active:
            return self.state

        if active:
            self.state.active = True
            if self.state.screen is not Screen.AI:
                self.state.screen = Screen.DASHBOARD
                self.state.view_mode = ViewMode.OVERVIEW
            logger.info("Kiosk mode enabled")
            self._restart_schedule()
            self._sync_view_rotator()
            self._sync_alert_rotator()
            await self._acquire_wake_lock()
        else:
            self._deactivate()
            logger.info("Kiosk mode disabled")
        await self._notify()
        return self.state

    def _deactivate(self) -> None:
        self.state.active = False
        self._view_task = _cancel(self._view_task)
        self._alert_task = _cancel(self._alert_task)
        self._schedule_task = _cancel(self._schedule_task)
        self.state.sleeping = False
        self._release_wake_lock()

    async def restore_session(self, role: str | None) -> KioskState:
        """Apply a restored or new login: kiosk users go straight into kiosk mode."""
        if role == KIOSK_ROLE:
            return await self.set_active(True)
        return self.state

    async def end_session(self) -> KioskState:
        """Logout always leaves kiosk mode."""
        return await self.set_active(False)

    async def navigate(self, screen: Screen) -> KioskState:
        self._ensure_open()
        if self.state.active and screen not in KIOSK_SCREENS:
            raise KioskConfigurationError(
                f"Screen '{screen.value}' is not available in kiosk mode"
            )
        if screen is not self.state.screen:
            self.state.screen = screen
            await self._notify()
        return self.state

    async def select_view(self, view_mode: ViewMode) -> KioskState:
        self._ensure_open()
        if view_mode is not self.state.view_mode:
            self.state.view_mode = view_mode
            await self._notify()
        return self.state

    # ------------------------------------------------------------------
    # View rotator
    # ------------------------------------------------------------------

    async def set_cycle_interval(self, seconds: float) -> KioskState:
        """Change the view period; the running timer restarts with a full period."""
        self._ensure_open()
        if not self.state.active:
            raise KioskConfigurationError(
                "Cycle interval can only be changed while kiosk mode is active"
            )
        self.state.cycle_interval_seconds = seconds
        self._view_task = _cancel(self._view_task)
        self._sync_view_rotator()
        await self._notify()
        return self.state

    def tick_view(self) -> bool:
        if not self.state.active or self.state.sleeping:
            return False
        self.state.view_mode = next_view(self.state.view_mode)
        return True

    def _sync_view_rotator(self) -> None:
        should_run = self.state.active and not self.state.sleeping
        if should_run and not _is_runnable_interval(self.state.cycle_interval_seconds):
            logger.warning(
                f"Cycle interval {self.state.cycle_interval_seconds!r} is not a positive "
                "number; views will not rotate"
            )
            should_run = False

        if should_run and not _is_live(self._view_task):
            self._view_task = self._start_timer(
                "view", self.state.cycle_interval_seconds, self.tick_view
            )
        elif not should_run:
            self._view_task = _cancel(self._view_task)

    # ------------------------------------------------------------------
    # Alert rotator
    # ------------------------------------------------------------------

    async def update_devices(self, devices: Iterable[Any] | None) -> list[Device]:
        """Replace the device list. Malformed entries are skipped, never raised."""
        self._ensure_open()
        parsed: list[Device] = []
        for raw in devices or ():
            if isinstance(raw, Device):
                parsed.append(raw)
                continue
            try:
                parsed.append(Device.model_validate(raw))
            except ValidationError as exc:
                logger.debug(f"Skipping malformed device entry: {exc.error_count()} error(s)")

        self._devices = parsed
        self._problematic = [d for d in parsed if d.status in PROBLEM_STATUSES]
        await self._notify()
        return self.problematic_devices

    def tick_alert(self) -> bool:
        if not self.state.active or self.state.sleeping or not self._problematic:
            return False
        self.state.alert_index = (self.state.alert_index + 1) % len(self._problematic)
        return True

    def _sync_alert_rotator(self) -> None:
        if self.state.active and not _is_live(self._alert_task):
            self._alert_task = self._start_timer(
                "alert", self._alert_interval, self.tick_alert
            )
        elif not self.state.active:
            self._alert_task = _cancel(self._alert_task)

    # ------------------------------------------------------------------
    # Sleep scheduler
    # ------------------------------------------------------------------

    async def set_schedule_enabled(self, enabled: bool) -> KioskState:
        self._ensure_open()
        self.state.schedule_enabled = enabled
        self._restart_schedule()
        await self._notify()
        return self.state

    async def set_start_time(self, value: str) -> KioskState:
        self._ensure_open()
        parse_hhmm(value)
        self.state.start_time = value
        self._restart_schedule()
        await self._notify()
        return self.state

    async def set_end_time(self, value: str) -> KioskState:
        self._ensure_open()
        parse_hhmm(value)
        self.state.end_time = value
        self._restart_schedule()
        await self._notify()
        return self.state

    async def wake_screen(self) -> KioskState:
        """Tap-to-wake. The next schedule check may put the display back to sleep."""
        self._ensure_open()
        if self._set_sleeping(False):
            logger.info("Display woken manually")
            await self._notify()
        return self.state

    def evaluate_schedule(self) -> bool:
        """Recompute ``sleeping`` from the clock. Returns True when it changed."""
        if not (self.state.active and self.state.schedule_enabled):
            return self._set_sleeping(False)

        try:
            sleeping = should_sleep(
                self._clock(), self.state.start_time, self.state.end_time
            )
        except ValueError as exc:
            logger.warning(f"Ignoring invalid operating schedule: {exc}")
            return self._set_sleeping(False)

        changed = self._set_sleeping(sleeping)
        if changed:
            if not sleeping:
                logger.info("Operating hours started; display awake")
            else:
                logger.info(
                    f"Outside operating hours {self.state.start_time}-{self.state.end_time}; "
                    "display sleeping"
                )
        return changed

    def _restart_schedule(self) -> None:
        self._schedule_task = _cancel(self._schedule_task)
        if self.state.active and self.state.schedule_enabled:
            self.evaluate_schedule()
            self._schedule_task = self._start_timer(
                "schedule", self._schedule_interval, self.evaluate_schedule
            )
        else:
            self._set_sleeping(False)

    def _set_sleeping(self, sleeping: bool) -> bool:
        sleeping = sleeping and self.state.active and self.state.schedule_enabled
        if sleeping == self.state.sleeping:
            return False
        self.state.sleeping = sleeping
        self._sync_view_rotator()
        return True

    # ------------------------------------------------------------------
    # Wake lock
    # ------------------------------------------------------------------

    async def _acquire_wake_lock(self) -> None:
        if self._wake_handle is not None:
            return
        try:
            handle = await self._wake_lock.acquire()
        except Exception as exc:
            logger.warning(f"Wake lock request failed: {exc}")
            return

        if handle is None:
            logger.info("Wake lock not supported on this host; continuing without it")
            return

        # Kiosk mode may have been switched off (or on again) while we waited.
        if self._closed or not self.state.active or self._wake_handle is not None:
            self._release_handle(handle)
            return

        self._wake_handle = handle
        self.state.wake_lock_held = True
        handle.add_release_listener(self._on_wake_lock_released)

    def _release_wake_lock(self) -> None:
        handle, self._wake_handle = self._wake_handle, None
        self.state.wake_lock_held = False
        if handle is not None:
            self._release_handle(handle)

    def _release_handle(self, handle: WakeLockHandle) -> None:
        try:
            self._wake_lock.release(handle)
        except Exception as exc:
            logger.warning(f"Wake lock release failed: {exc}")
            return
        # Shutdown waits for the host to confirm the release.
        self._track(asyncio.create_task(handle.wait_closed(), name="kiosk-wake-release"))

    def _on_wake_lock_released(self, handle: WakeLockHandle) -> None:
        if handle is self._wake_handle:
            self._wake_handle = None
            self.state.wake_lock_held = False
            logger.info("Wake lock released by the host")

    # ------------------------------------------------------------------
    # Timers and teardown
    # ------------------------------------------------------------------

    def _start_timer(
        self, name: str, interval: float, tick: Callable[[], bool]
    ) -> asyncio.Task[None]:
        logger.debug(f"Starting kiosk {name} timer ({interval}s)")
        return self._track(
            asyncio.create_task(
                self._run_timer(name, interval, tick), name=f"kiosk-{name}"
            )
        )

    def _track(self, task: asyncio.Task[None]) -> asyncio.Task[None]:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_timer(
        self, name: str, interval: float, tick: Callable[[], bool]
    ) -> None:
        try:
            while True:
                await asyncio.sleep(interval)
                if tick():
                    await self._notify()
        except asyncio.CancelledError:
            logger.debug(f"Kiosk {name} timer cancelled")
            raise

    async def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                await listener(snapshot)
            except Exception as exc:
                logger.warning(f"Kiosk state listener failed: {exc}")

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("Kiosk controller has been shut down")

    async def shutdown(self) -> None:
        """Cancel every timer and release the wake lock, whatever the mode."""
        self._closed = True
        self._deactivate()
        self._listeners.clear()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        logger.debug("Kiosk controller shut down")


def _is_live(task: asyncio.Task[None] | None) -> bool:
    return task is not None and not task.done()


def _cancel(task: asyncio.Task[None] | None) -> None:
    if task is not None and not task.done():
        task.cancel()
    return None


__all__ = [
    "ALERT_INTERVAL_SECONDS",
    "KIOSK_ROLE",
    "KioskConfigurationError",
    "KioskController",
    "KioskState",
    "SCHEDULE_CHECK_SECONDS",
    "VIEW_ORDER",
    "next_view",
]
