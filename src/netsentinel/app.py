"""Application factory for the kiosk display service."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import PROJECT_ROOT, Settings, get_settings
from .logging_handlers import DateStampedFileHandler, cleanup_old_logs
from .routers.display import router as display_router
from .routers.kiosk import router as kiosk_router
from .services.display_session import DisplayConnectionManager
from .services.kiosk_controller import KioskController, KioskState
from .services.kiosk_settings import KioskSettingsService
from .services.settings_guard import SettingsAccessGuard
from .services.wake_lock import build_wake_lock_provider

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _configure_logging(settings: Settings) -> None:
    """Console logging always; date-stamped files when LOG_DIR is set."""
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
    formatter = logging.Formatter(_LOG_FORMAT, datefmt=_LOG_DATEFMT)

    handlers: list[logging.Handler] = []
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    if settings.log_dir is not None:
        file_handler = DateStampedFileHandler(settings.log_dir)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)
    logging.getLogger("netsentinel").setLevel(log_level)
    logging.getLogger("uvicorn").setLevel(log_level)
    logging.getLogger("uvicorn.access").setLevel(log_level)
    logging.getLogger("uvicorn.error").setLevel(log_level)

    if settings.log_dir is not None:
        cleanup_old_logs(
            settings.log_dir,
            settings.log_retention_hours,
            logger=logging.getLogger("netsentinel.logging"),
        )


def _resolve_under(base: Path, p: Path) -> Path:
    # Absolute paths are used as-is.
    if p.is_absolute():
        return p.resolve()
    resolved = (base / p).resolve()
    if not resolved.is_relative_to(base):
        raise ValueError(f"Configured path {resolved} escapes project root {base}")
    return resolved


def create_app(settings: Settings | None = None) -> FastAPI:
    load_dotenv()
    settings = settings or get_settings()
    _configure_logging(settings)

    kiosk_settings_service = KioskSettingsService(
        _resolve_under(PROJECT_ROOT, settings.kiosk_settings_path)
    )
    stored = kiosk_settings_service.get_settings()

    controller = KioskController(
        build_wake_lock_provider(settings.wake_lock_backend),
        state=KioskState(
            cycle_interval_seconds=settings.kiosk_cycle_interval_seconds,
            schedule_enabled=stored.schedule_enabled,
            start_time=stored.start_time,
            end_time=stored.end_time,
        ),
        alert_interval_seconds=settings.kiosk_alert_interval_seconds,
        schedule_check_seconds=settings.kiosk_schedule_check_seconds,
    )
    settings_guard = SettingsAccessGuard(kiosk_settings_service.get_pin)
    display_manager = DisplayConnectionManager()
    controller.add_listener(display_manager.publish_state)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            yield
        finally:
            try:
                await asyncio.wait_for(controller.shutdown(), timeout=10.0)
            except asyncio.TimeoutError:
                logging.warning("Kiosk controller shutdown timed out after 10s")

    app = FastAPI(
        title="NetSentinel Kiosk Display",
        version="0.1.0",
        description="Kiosk display controller for the NetSentinel monitoring dashboard.",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.kiosk_controller = controller
    app.state.kiosk_settings_service = kiosk_settings_service
    app.state.settings_guard = settings_guard
    app.state.display_manager = display_manager

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(kiosk_router)
    app.include_router(display_router)

    @app.get("/health", tags=["health"])
    async def healthcheck() -> dict[str, str | bool | int]:
        state = controller.state
        return {
            "status": "ok",
            "kiosk_active": state.active,
            "sleeping": state.sleeping,
            "displays": len(display_manager.active_connections),
        }

    return app


__all__ = ["create_app"]
