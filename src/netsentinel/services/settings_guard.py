"""PIN gate in front of the kiosk settings panel."""

from __future__ import annotations

import hmac
import logging
from typing import Callable, Optional

from netsentinel.schemas.kiosk import SettingsAccessStatus

logger = logging.getLogger(__name__)

DEFAULT_PIN = "0000"
INCORRECT_PIN_MESSAGE = "Incorrect PIN"


class SettingsAccessGuard:
    """Tracks the PIN prompt and settings panel for one display session.

    The guard reads the stored PIN through ``pin_loader`` at submit time only
    and never keeps or reports it. Authentication lasts until the panel closes.
    """

    def __init__(self, pin_loader: Callable[[], Optional[str]]):
        self._pin_loader = pin_loader
        self.prompt_open = False
        self.settings_open = False
        self.pin_input = ""
        self.error: Optional[str] = None

    @property
    def authenticated(self) -> bool:
        return self.settings_open

    def request_access(self) -> None:
        """Settings button: close an open panel, otherwise show a fresh PIN prompt."""
        if self.settings_open:
            self.close()
            return
        self.pin_input = ""
        self.error = None
        self.prompt_open = True

    def enter_pin(self, value: str) -> None:
        self.pin_input = value

    def submit_pin(self, candidate: Optional[str] = None) -> bool:
        """Check the entered PIN and open the settings panel on a match."""
        if candidate is not None:
            self.pin_input = candidate

        stored = self._pin_loader() or DEFAULT_PIN
        entered = self.pin_input
        self.pin_input = ""

        if hmac.compare_digest(entered.encode("utf-8"), stored.encode("utf-8")):
            self.prompt_open = False
            self.settings_open = True
            self.error = None
            logger.info("Kiosk settings unlocked")
            return True

        self.error = INCORRECT_PIN_MESSAGE
        logger.info("Rejected kiosk settings PIN")
        return False

    def close(self) -> None:
        """Dismiss the prompt and panel; the next access needs the PIN again."""
        self.prompt_open = False
        self.settings_open = False
        self.pin_input = ""
        self.error = None

    def status(self) -> SettingsAccessStatus:
        return SettingsAccessStatus(
            prompt_open=self.prompt_open,
            settings_open=self.settings_open,
            error=self.error,
        )


__all__ = ["DEFAULT_PIN", "INCORRECT_PIN_MESSAGE", "SettingsAccessGuard"]
