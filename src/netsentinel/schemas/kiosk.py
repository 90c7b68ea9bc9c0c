"""Pydantic schemas for the kiosk display controller and its API."""

from enum import Enum
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

HHMM_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"
PIN_PATTERN = r"^\d{4,8}$"


class ViewMode(str, Enum):
    """Dashboard views cycled by the view rotator."""

    OVERVIEW = "overview"
    TOPOLOGY = "topology"
    LOCATION = "location"


class Screen(str, Enum):
    """Top-level navigation tabs of the dashboard."""

    DASHBOARD = "dashboard"
    DEVICES = "devices"
    ADMIN = "admin"
    AI = "ai"


class DeviceStatus(str, Enum):
    ONLINE = "ONLINE"
    OFFLINE = "OFFLINE"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class Device(BaseModel):
    """Monitored device as delivered by the data layer."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: Optional[str] = None
    name: str
    ip: str
    status: DeviceStatus
    location: Optional[str] = None
    cpu_usage: float = Field(
        default=0.0,
        validation_alias=AliasChoices("cpu_usage", "cpuUsage"),
    )


class KioskStateSnapshot(BaseModel):
    """Point-in-time view of the kiosk state pushed to display clients."""

    active: bool
    screen: Screen
    view_mode: ViewMode
    cycle_interval_seconds: float
    alert_index: int
    sleeping: bool
    schedule_enabled: bool
    start_time: str
    end_time: str
    wake_lock_held: bool
    problematic_count: int = Field(
        description="Number of OFFLINE or CRITICAL devices currently known.",
    )
    alert_position: Optional[int] = Field(
        default=None,
        description="Index of the highlighted device in the problematic list.",
    )
    current_alert: Optional[Device] = None


class SettingsAccessStatus(BaseModel):
    """Public state of the PIN gate. Never carries the stored PIN."""

    prompt_open: bool
    settings_open: bool
    error: Optional[str] = None


class KioskSettings(BaseModel):
    """Persisted kiosk configuration (operator PIN and operating schedule)."""

    pin: Optional[str] = Field(
        default=None,
        pattern=PIN_PATTERN,
        description="Operator PIN; unset means the default PIN applies.",
    )
    schedule_enabled: bool = False
    start_time: str = Field(default="08:00", pattern=HHMM_PATTERN)
    end_time: str = Field(default="18:00", pattern=HHMM_PATTERN)


class KioskSettingsUpdate(BaseModel):
    """Partial update for persisted kiosk settings."""

    pin: Optional[str] = Field(default=None, pattern=PIN_PATTERN)
    schedule_enabled: Optional[bool] = None
    start_time: Optional[str] = Field(default=None, pattern=HHMM_PATTERN)
    end_time: Optional[str] = Field(default=None, pattern=HHMM_PATTERN)


class KioskSettingsPublic(BaseModel):
    """Persisted settings as exposed over the API."""

    pin_set: bool
    schedule_enabled: bool
    start_time: str
    end_time: str


class ActivePayload(BaseModel):
    active: bool


class CycleIntervalPayload(BaseModel):
    seconds: int = Field(ge=5, le=300)


class SchedulePayload(BaseModel):
    enabled: Optional[bool] = None
    start_time: Optional[str] = Field(default=None, pattern=HHMM_PATTERN)
    end_time: Optional[str] = Field(default=None, pattern=HHMM_PATTERN)


class ViewPayload(BaseModel):
    view_mode: ViewMode


class ScreenPayload(BaseModel):
    screen: Screen


class SessionPayload(BaseModel):
    role: str = Field(description="Role of the signed-in user (admin, viewer, kiosk).")


class PinSubmission(BaseModel):
    pin: str = ""


class PinChange(BaseModel):
    pin: str = Field(pattern=PIN_PATTERN)


__all__ = [
    "ActivePayload",
    "CycleIntervalPayload",
    "Device",
    "DeviceStatus",
    "HHMM_PATTERN",
    "KioskSettings",
    "KioskSettingsPublic",
    "KioskSettingsUpdate",
    "KioskStateSnapshot",
    "PinChange",
    "PinSubmission",
    "SchedulePayload",
    "Screen",
    "ScreenPayload",
    "SessionPayload",
    "SettingsAccessStatus",
    "ViewMode",
    "ViewPayload",
]
