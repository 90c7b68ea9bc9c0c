"""Persistence for the kiosk operator PIN and operating schedule."""

import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from netsentinel.schemas.kiosk import KioskSettings, KioskSettingsPublic, KioskSettingsUpdate

logger = logging.getLogger(__name__)

_DEFAULT_PATH = Path("data/kiosk_settings.json")


class KioskSettingsService:
    """Service for managing kiosk settings persistence."""

    def __init__(self, settings_path: Optional[Path] = None):
        self._path = settings_path or _DEFAULT_PATH
        self._cached: Optional[KioskSettings] = None

    @property
    def path(self) -> Path:
        return self._path

    def get_settings(self) -> KioskSettings:
        """Load settings from file or return defaults."""
        if self._cached is not None:
            return self._cached

        if self._path.exists():
            try:
                data = json.loads(self._path.read_text(encoding="utf-8"))
                self._cached = self._validate(data)
                logger.info(f"Loaded kiosk settings from {self._path}")
            except (OSError, ValueError, ValidationError) as e:
                logger.error(
                    f"Failed to load kiosk settings from {self._path}: {e}; "
                    "using defaults (including the default PIN)"
                )
                self._cached = KioskSettings()
        else:
            self._cached = KioskSettings()
            logger.info("Using default kiosk settings")

        return self._cached

    def _validate(self, data: object) -> KioskSettings:
        """Validate stored settings, dropping only the fields that are invalid."""
        try:
            return KioskSettings.model_validate(data)
        except ValidationError as e:
            if not isinstance(data, dict):
                raise
            invalid = {str(err["loc"][0]) for err in e.errors() if err["loc"]}
            if "pin" in invalid:
                logger.error(
                    f"Stored kiosk PIN in {self._path} is invalid; the default PIN applies"
                )
            logger.warning(f"Ignoring invalid kiosk settings fields: {sorted(invalid)}")
            return KioskSettings.model_validate(
                {k: v for k, v in data.items() if k not in invalid}
            )

    def get_public_settings(self) -> KioskSettingsPublic:
        """Settings safe to return to clients (the PIN is reduced to a flag)."""
        current = self.get_settings()
        return KioskSettingsPublic(
            pin_set=current.pin is not None,
            schedule_enabled=current.schedule_enabled,
            start_time=current.start_time,
            end_time=current.end_time,
        )

    def get_pin(self) -> Optional[str]:
        return self.get_settings().pin

    def update_settings(self, update: KioskSettingsUpdate) -> KioskSettings:
        """Update settings with partial data and persist to file."""
        current = self.get_settings()

        update_data = update.model_dump(exclude_none=True)
        merged = current.model_copy(update=update_data)

        self._save(merged)
        return merged

    def reset_to_defaults(self) -> KioskSettings:
        """Reset settings to defaults (clears the stored PIN)."""
        defaults = KioskSettings()
        self._save(defaults)
        return defaults

    def _save(self, settings: KioskSettings) -> None:
        """Persist settings to file. The in-memory copy is kept even if the write fails."""
        self._cached = settings
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(settings.model_dump_json(indent=2), encoding="utf-8")
        except OSError as e:
            logger.error(f"Failed to save kiosk settings to {self._path}: {e}")
            return
        logger.info(f"Saved kiosk settings to {self._path}")


__all__ = ["KioskSettingsService"]
