import json
import logging

import pytest

from netsentinel.schemas.kiosk import KioskSettingsUpdate
from netsentinel.services.kiosk_settings import KioskSettingsService


@pytest.fixture
def temp_settings_file(tmp_path):
    return tmp_path / "test_kiosk_settings.json"


def test_defaults(temp_settings_file):
    service = KioskSettingsService(temp_settings_file)
    settings = service.get_settings()
    assert settings.pin is None
    assert settings.schedule_enabled is False
    assert settings.start_time == "08:00"
    assert settings.end_time == "18:00"
    assert not temp_settings_file.exists()


def test_update_settings(temp_settings_file):
    service = KioskSettingsService(temp_settings_file)

    update = KioskSettingsUpdate(schedule_enabled=True, end_time="20:30")
    new_settings = service.update_settings(update)

    assert new_settings.schedule_enabled is True
    assert new_settings.end_time == "20:30"
    assert new_settings.start_time == "08:00"  # Unchanged

    # Verify persistence
    service2 = KioskSettingsService(temp_settings_file)
    loaded = service2.get_settings()
    assert loaded.schedule_enabled is True
    assert loaded.end_time == "20:30"


def test_pin_is_persisted_but_not_public(temp_settings_file):
    service = KioskSettingsService(temp_settings_file)
    service.update_settings(KioskSettingsUpdate(pin="4321"))

    assert service.get_pin() == "4321"
    public = service.get_public_settings()
    assert public.pin_set is True
    assert "4321" not in public.model_dump_json()


def test_reset(temp_settings_file):
    service = KioskSettingsService(temp_settings_file)
    service.update_settings(KioskSettingsUpdate(pin="9999", start_time="06:00"))

    service.reset_to_defaults()
    assert service.get_pin() is None
    assert service.get_settings().start_time == "08:00"
    assert json.loads(temp_settings_file.read_text())["pin"] is None


@pytest.mark.parametrize(
    "content",
    ["{not json", json.dumps({"start_time": "25:99"}), json.dumps({"pin": "12"})],
)
def test_corrupt_file_falls_back_to_defaults(temp_settings_file, content):
    temp_settings_file.write_text(content)

    settings = KioskSettingsService(temp_settings_file).get_settings()

    assert settings.pin is None
    assert settings.start_time == "08:00"


def test_failed_write_keeps_settings_in_memory(tmp_path):
    blocker = tmp_path / "not-a-directory"
    blocker.write_text("")
    service = KioskSettingsService(blocker / "kiosk_settings.json")

    service.update_settings(KioskSettingsUpdate(schedule_enabled=True))

    assert service.get_settings().schedule_enabled is True


def test_invalid_field_does_not_discard_stored_pin(temp_settings_file):
    temp_settings_file.write_text(
        json.dumps({"pin": "4321", "schedule_enabled": True, "start_time": "25:99"})
    )

    settings = KioskSettingsService(temp_settings_file).get_settings()

    assert settings.pin == "4321"
    assert settings.schedule_enabled is True
    assert settings.start_time == "08:00"


def test_invalid_stored_pin_is_reported_as_error(temp_settings_file, caplog):
    temp_settings_file.write_text(json.dumps({"pin": "12", "end_time": "20:00"}))

    with caplog.at_level(logging.ERROR, logger="netsentinel.services.kiosk_settings"):
        settings = KioskSettingsService(temp_settings_file).get_settings()

    assert settings.pin is None
    assert settings.end_time == "20:00"
    assert any(
        record.levelno == logging.ERROR and "PIN" in record.getMessage()
        for record in caplog.records
    )
