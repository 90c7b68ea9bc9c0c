"""Kiosk display API: mode gate, rotation, schedule, devices and the PIN gate."""

from __future__ import annotations

import hmac
import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Request, status

from ..schemas.kiosk import (
    ActivePayload,
    CycleIntervalPayload,
    Device,
    KioskSettingsPublic,
    KioskSettingsUpdate,
    KioskStateSnapshot,
    PinChange,
    PinSubmission,
    SchedulePayload,
    ScreenPayload,
    SessionPayload,
    SettingsAccessStatus,
    ViewPayload,
)
from ..services.kiosk_controller import KioskConfigurationError, KioskController
from ..services.kiosk_settings import KioskSettingsService
from ..services.settings_guard import INCORRECT_PIN_MESSAGE, SettingsAccessGuard

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/kiosk", tags=["Kiosk"])


def get_kiosk_controller(request: Request) -> KioskController:
    controller = getattr(request.app.state, "kiosk_controller", None)
    if controller is None:  # pragma: no cover
        raise RuntimeError("Kiosk controller is not configured")
    return controller


def get_settings_guard(request: Request) -> SettingsAccessGuard:
    guard = getattr(request.app.state, "settings_guard", None)
    if guard is None:  # pragma: no cover
        raise RuntimeError("Settings guard is not configured")
    return guard


def get_kiosk_settings_service(request: Request) -> KioskSettingsService:
    service = getattr(request.app.state, "kiosk_settings_service", None)
    if service is None:  # pragma: no cover
        raise RuntimeError("Kiosk settings service is not configured")
    return service


def require_settings_access(
    guard: SettingsAccessGuard = Depends(get_settings_guard),
) -> SettingsAccessGuard:
    """Reject configuration changes unless the settings panel was unlocked."""
    if not guard.authenticated:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Kiosk settings are locked; submit the PIN first",
        )
    return guard


SESSION_TOKEN_HEADER = "X-Kiosk-Session-Token"


def require_session_token(
    request: Request,
    token: Optional[str] = Header(default=None, alias=SESSION_TOKEN_HEADER),
) -> None:
    """Only the login frontend, holding the shared session token, may change sessions."""
    settings = getattr(request.app.state, "settings", None)
    expected = getattr(settings, "kiosk_session_token", None)
    if expected is None or token is None or not hmac.compare_digest(
        token.encode("utf-8"), expected.get_secret_value().encode("utf-8")
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="A valid session token is required",
        )


def _conflict(exc: KioskConfigurationError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


# ============== State ==============

@router.get("/state", response_model=KioskStateSnapshot)
async def read_state(
    controller: KioskController = Depends(get_kiosk_controller),
) -> KioskStateSnapshot:
    return controller.snapshot()


@router.put(
    "/active",
    response_model=KioskStateSnapshot,
    dependencies=[Depends(require_settings_access)],
)
async def update_active(
    payload: ActivePayload,
    controller: KioskController = Depends(get_kiosk_controller),
) -> KioskStateSnapshot:
    await controller.set_active(payload.active)
    return controller.snapshot()


@router.put(
    "/cycle-interval",
    response_model=KioskStateSnapshot,
    dependencies=[Depends(require_settings_access)],
)
async def update_cycle_interval(
    payload: CycleIntervalPayload,
    controller: KioskController = Depends(get_kiosk_controller),
) -> KioskStateSnapshot:
    try:
        await controller.set_cycle_interval(payload.seconds)
    except KioskConfigurationError as exc:
        raise _conflict(exc) from exc
    logger.info(f"Kiosk cycle interval set to {payload.seconds}s")
    return controller.snapshot()


@router.put(
    "/schedule",
    response_model=KioskStateSnapshot,
    dependencies=[Depends(require_settings_access)],
)
async def update_schedule(
    payload: SchedulePayload,
    controller: KioskController = Depends(get_kiosk_controller),
    service: KioskSettingsService = Depends(get_kiosk_settings_service),
) -> KioskStateSnapshot:
    if payload.start_time is not None:
        await controller.set_start_time(payload.start_time)
    if payload.end_time is not None:
        await controller.set_end_time(payload.end_time)
    if payload.enabled is not None:
        await controller.set_schedule_enabled(payload.enabled)

    service.update_settings(
        KioskSettingsUpdate(
            schedule_enabled=controller.state.schedule_enabled,
            start_time=controller.state.start_time,
            end_time=controller.state.end_time,
        )
    )
    return controller.snapshot()


@router.post("/wake", response_model=KioskStateSnapshot)
async def wake_display(
    controller: KioskController = Depends(get_kiosk_controller),
) -> KioskStateSnapshot:
    """Tap-to-wake from the power-saving overlay."""
    await controller.wake_screen()
    return controller.snapshot()


@router.put("/view", response_model=KioskStateSnapshot)
async def update_view(
    payload: ViewPayload,
    controller: KioskController = Depends(get_kiosk_controller),
) -> KioskStateSnapshot:
    await controller.select_view(payload.view_mode)
    return controller.snapshot()


@router.put("/screen", response_model=KioskStateSnapshot)
async def update_screen(
    payload: ScreenPayload,
    controller: KioskController = Depends(get_kiosk_controller),
) -> KioskStateSnapshot:
    try:
        await controller.navigate(payload.screen)
    except KioskConfigurationError as exc:
        raise _conflict(exc) from exc
    return controller.snapshot()


# ============== Devices & alerts ==============

@router.put("/devices", response_model=KioskStateSnapshot)
async def update_devices(
    devices: list[Any] = Body(...),
    controller: KioskController = Depends(get_kiosk_controller),
) -> KioskStateSnapshot:
    """Receive the latest device list from the monitoring data layer."""
    problematic = await controller.update_devices(devices)
    logger.debug(f"Device feed: {len(devices)} device(s), {len(problematic)} problematic")
    return controller.snapshot()


@router.get("/alert", response_model=Optional[Device])
async def read_current_alert(
    controller: KioskController = Depends(get_kiosk_controller),
) -> Optional[Device]:
    return controller.current_alert()


# ============== Session ==============

@router.post(
    "/session",
    response_model=KioskStateSnapshot,
    dependencies=[Depends(require_session_token)],
)
async def start_session(
    payload: SessionPayload,
    controller: KioskController = Depends(get_kiosk_controller),
) -> KioskStateSnapshot:
    await controller.restore_session(payload.role)
    return controller.snapshot()


@router.delete(
    "/session",
    response_model=KioskStateSnapshot,
    dependencies=[Depends(require_session_token)],
)
async def end_session(
    controller: KioskController = Depends(get_kiosk_controller),
    guard: SettingsAccessGuard = Depends(get_settings_guard),
) -> KioskStateSnapshot:
    guard.close()
    await controller.end_session()
    return controller.snapshot()


# ============== Settings access ==============

@router.get("/settings/access", response_model=SettingsAccessStatus)
async def read_settings_access(
    guard: SettingsAccessGuard = Depends(get_settings_guard),
) -> SettingsAccessStatus:
    return guard.status()


@router.post("/settings/access", response_model=SettingsAccessStatus)
async def toggle_settings_access(
    guard: SettingsAccessGuard = Depends(get_settings_guard),
) -> SettingsAccessStatus:
    guard.request_access()
    return guard.status()


@router.delete("/settings/access", response_model=SettingsAccessStatus)
async def close_settings(
    guard: SettingsAccessGuard = Depends(get_settings_guard),
) -> SettingsAccessStatus:
    guard.close()
    return guard.status()


@router.post("/settings/pin", response_model=SettingsAccessStatus)
async def submit_pin(
    payload: PinSubmission,
    guard: SettingsAccessGuard = Depends(get_settings_guard),
) -> SettingsAccessStatus:
    if not guard.submit_pin(payload.pin):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=INCORRECT_PIN_MESSAGE,
        )
    return guard.status()


@router.put(
    "/settings/pin",
    response_model=KioskSettingsPublic,
    dependencies=[Depends(require_settings_access)],
)
async def change_pin(
    payload: PinChange,
    service: KioskSettingsService = Depends(get_kiosk_settings_service),
) -> KioskSettingsPublic:
    service.update_settings(KioskSettingsUpdate(pin=payload.pin))
    logger.info("Kiosk settings PIN changed")
    return service.get_public_settings()


@router.get("/settings", response_model=KioskSettingsPublic)
async def read_settings(
    service: KioskSettingsService = Depends(get_kiosk_settings_service),
) -> KioskSettingsPublic:
    return service.get_public_settings()


@router.delete(
    "/settings",
    response_model=KioskSettingsPublic,
    dependencies=[Depends(require_settings_access)],
)
async def reset_settings(
    controller: KioskController = Depends(get_kiosk_controller),
    service: KioskSettingsService = Depends(get_kiosk_settings_service),
) -> KioskSettingsPublic:
    """Restore the default PIN and schedule and apply the schedule right away."""
    defaults = service.reset_to_defaults()
    await controller.set_start_time(defaults.start_time)
    await controller.set_end_time(defaults.end_time)
    await controller.set_schedule_enabled(defaults.schedule_enabled)
    logger.info("Kiosk settings reset to defaults")
    return service.get_public_settings()


__all__ = [
    "get_kiosk_controller",
    "get_kiosk_settings_service",
    "get_settings_guard",
    "require_session_token",
    "require_settings_access",
    "router",
]
