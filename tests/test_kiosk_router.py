import json
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.testclient import TestClient

from netsentinel.config import Settings
from netsentinel.routers import display as display_router
from netsentinel.routers import kiosk as kiosk_router
from netsentinel.services.display_session import DisplayConnectionManager
from netsentinel.services.kiosk_controller import KioskController
from netsentinel.services.kiosk_settings import KioskSettingsService
from netsentinel.services.settings_guard import SettingsAccessGuard

SESSION_TOKEN = "lobby-secret"
SESSION_HEADERS = {"X-Kiosk-Session-Token": SESSION_TOKEN}

FEED = [
    {"name": "core-router", "ip": "10.0.0.1", "status": "OFFLINE"},
    {"name": "web-01", "ip": "10.0.0.2", "status": "ONLINE"},
    {"name": "db-01", "ip": "10.0.0.3", "status": "CRITICAL", "cpuUsage": 99},
    {"name": "broken"},
]


def make_app(tmp_path) -> FastAPI:
    """Build an app wired like the real one, with an isolated settings file."""
    service = KioskSettingsService(tmp_path / "kiosk_settings.json")
    controller = KioskController()
    manager = DisplayConnectionManager()
    controller.add_listener(manager.publish_state)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await controller.shutdown()

    app = FastAPI(lifespan=lifespan)
    app.state.settings = Settings(kiosk_session_token=SESSION_TOKEN)
    app.state.kiosk_controller = controller
    app.state.kiosk_settings_service = service
    app.state.settings_guard = SettingsAccessGuard(service.get_pin)
    app.state.display_manager = manager
    app.include_router(kiosk_router.router)
    app.include_router(display_router.router)
    return app


def unlock(client: TestClient, pin: str = "0000") -> None:
    client.post("/api/kiosk/settings/access")
    response = client.post("/api/kiosk/settings/pin", json={"pin": pin})
    assert response.status_code == 200


def test_initial_state(tmp_path) -> None:
    with TestClient(make_app(tmp_path)) as client:
        response = client.get("/api/kiosk/state")

    assert response.status_code == 200
    body = response.json()
    assert body["active"] is False
    assert body["view_mode"] == "overview"
    assert body["cycle_interval_seconds"] == 10
    assert body["current_alert"] is None


def test_configuration_is_locked_without_pin(tmp_path) -> None:
    with TestClient(make_app(tmp_path)) as client:
        for method, path, payload in [
            ("PUT", "/api/kiosk/active", {"active": True}),
            ("PUT", "/api/kiosk/cycle-interval", {"seconds": 30}),
            ("PUT", "/api/kiosk/schedule", {"enabled": True}),
            ("PUT", "/api/kiosk/settings/pin", {"pin": "1234"}),
        ]:
            response = client.request(method, path, json=payload)
            assert response.status_code == 403, path

        assert client.get("/api/kiosk/state").json()["active"] is False


def test_pin_flow(tmp_path) -> None:
    with TestClient(make_app(tmp_path)) as client:
        opened = client.post("/api/kiosk/settings/access").json()
        assert opened == {"prompt_open": True, "settings_open": False, "error": None}

        wrong = client.post("/api/kiosk/settings/pin", json={"pin": "9999"})
        assert wrong.status_code == 401
        assert wrong.json()["detail"] == "Incorrect PIN"
        assert client.get("/api/kiosk/settings/access").json()["error"] == "Incorrect PIN"

        right = client.post("/api/kiosk/settings/pin", json={"pin": "0000"})
        assert right.json() == {"prompt_open": False, "settings_open": True, "error": None}

        closed = client.delete("/api/kiosk/settings/access").json()
        assert closed["settings_open"] is False
        assert client.put("/api/kiosk/active", json={"active": True}).status_code == 403


def test_changed_pin_replaces_default(tmp_path) -> None:
    with TestClient(make_app(tmp_path)) as client:
        unlock(client)
        response = client.put("/api/kiosk/settings/pin", json={"pin": "4321"})
        assert response.status_code == 200
        assert response.json()["pin_set"] is True
        assert "4321" not in response.text

        client.delete("/api/kiosk/settings/access")
        client.post("/api/kiosk/settings/access")
        assert client.post("/api/kiosk/settings/pin", json={"pin": "0000"}).status_code == 401
        unlock(client, "4321")

    stored = json.loads((tmp_path / "kiosk_settings.json").read_text())
    assert stored["pin"] == "4321"


def test_invalid_new_pin_is_rejected(tmp_path) -> None:
    with TestClient(make_app(tmp_path)) as client:
        unlock(client)
        assert client.put("/api/kiosk/settings/pin", json={"pin": "12"}).status_code == 422


def test_activate_and_configure_interval(tmp_path) -> None:
    with TestClient(make_app(tmp_path)) as client:
        unlock(client)

        inactive = client.put("/api/kiosk/cycle-interval", json={"seconds": 30})
        assert inactive.status_code == 409

        state = client.put("/api/kiosk/active", json={"active": True}).json()
        assert state["active"] is True
        assert state["screen"] == "dashboard"
        assert state["wake_lock_held"] is False

        state = client.put("/api/kiosk/cycle-interval", json={"seconds": 30}).json()
        assert state["cycle_interval_seconds"] == 30

        assert client.put("/api/kiosk/cycle-interval", json={"seconds": 4}).status_code == 422
        assert client.put("/api/kiosk/cycle-interval", json={"seconds": 301}).status_code == 422


def test_navigation_restricted_in_kiosk_mode(tmp_path) -> None:
    with TestClient(make_app(tmp_path)) as client:
        assert client.put("/api/kiosk/screen", json={"screen": "admin"}).status_code == 200

        client.post("/api/kiosk/session", json={"role": "kiosk"}, headers=SESSION_HEADERS)

        blocked = client.put("/api/kiosk/screen", json={"screen": "devices"})
        assert blocked.status_code == 409
        assert client.put("/api/kiosk/screen", json={"screen": "ai"}).json()["screen"] == "ai"
        assert client.put("/api/kiosk/view", json={"view_mode": "topology"}).json()[
            "view_mode"
        ] == "topology"


def test_device_feed_and_current_alert(tmp_path) -> None:
    with TestClient(make_app(tmp_path)) as client:
        state = client.put("/api/kiosk/devices", json=FEED).json()
        assert state["problematic_count"] == 2
        assert state["alert_position"] == 0

        alert = client.get("/api/kiosk/alert").json()
        assert alert["name"] == "core-router"

        client.put("/api/kiosk/devices", json=[])
        assert client.get("/api/kiosk/alert").json() is None


def test_schedule_is_applied_and_persisted(tmp_path) -> None:
    with TestClient(make_app(tmp_path)) as client:
        unlock(client)
        response = client.put(
            "/api/kiosk/schedule",
            json={"enabled": True, "start_time": "07:00", "end_time": "19:30"},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["schedule_enabled"] is True
        assert body["start_time"] == "07:00"
        assert body["end_time"] == "19:30"

        bad = client.put("/api/kiosk/schedule", json={"start_time": "25:00"})
        assert bad.status_code == 422

        settings = client.get("/api/kiosk/settings").json()
        assert settings == {
            "pin_set": False,
            "schedule_enabled": True,
            "start_time": "07:00",
            "end_time": "19:30",
        }

    stored = json.loads((tmp_path / "kiosk_settings.json").read_text())
    assert stored["end_time"] == "19:30"


def test_session_login_and_logout(tmp_path) -> None:
    with TestClient(make_app(tmp_path)) as client:
        viewer = client.post(
            "/api/kiosk/session", json={"role": "viewer"}, headers=SESSION_HEADERS
        ).json()
        assert viewer["active"] is False

        kiosk = client.post(
            "/api/kiosk/session", json={"role": "kiosk"}, headers=SESSION_HEADERS
        ).json()
        assert kiosk["active"] is True

        unlock(client)
        logout = client.delete("/api/kiosk/session", headers=SESSION_HEADERS).json()
        assert logout["active"] is False
        assert client.get("/api/kiosk/settings/access").json()["settings_open"] is False


def test_session_changes_need_session_token(tmp_path) -> None:
    with TestClient(make_app(tmp_path)) as client:
        client.post("/api/kiosk/session", json={"role": "kiosk"}, headers=SESSION_HEADERS)

        anonymous = client.delete("/api/kiosk/session")
        assert anonymous.status_code == 401
        wrong = client.delete(
            "/api/kiosk/session", headers={"X-Kiosk-Session-Token": "guess"}
        )
        assert wrong.status_code == 401
        assert client.get("/api/kiosk/state").json()["active"] is True

        client.delete("/api/kiosk/session", headers=SESSION_HEADERS)
        login = client.post("/api/kiosk/session", json={"role": "kiosk"})
        assert login.status_code == 401
        assert client.get("/api/kiosk/state").json()["active"] is False


def test_session_routes_closed_without_configured_token(tmp_path) -> None:
    app = make_app(tmp_path)
    app.state.settings = Settings(kiosk_session_token=None)
    with TestClient(app) as client:
        response = client.post(
            "/api/kiosk/session", json={"role": "kiosk"}, headers=SESSION_HEADERS
        )
        assert response.status_code == 401
        assert client.get("/api/kiosk/state").json()["active"] is False


def test_reset_settings_restores_defaults(tmp_path) -> None:
    with TestClient(make_app(tmp_path)) as client:
        assert client.delete("/api/kiosk/settings").status_code == 403

        unlock(client)
        client.put("/api/kiosk/settings/pin", json={"pin": "4321"})
        client.put(
            "/api/kiosk/schedule",
            json={"enabled": True, "start_time": "06:00", "end_time": "23:00"},
        )

        response = client.delete("/api/kiosk/settings")
        assert response.status_code == 200
        assert response.json() == {
            "pin_set": False,
            "schedule_enabled": False,
            "start_time": "08:00",
            "end_time": "18:00",
        }
        state = client.get("/api/kiosk/state").json()
        assert state["schedule_enabled"] is False
        assert state["start_time"] == "08:00"

        client.delete("/api/kiosk/settings/access")
        unlock(client, "0000")


def test_wake_is_harmless_when_awake(tmp_path) -> None:
    with TestClient(make_app(tmp_path)) as client:
        response = client.post("/api/kiosk/wake")
        assert response.status_code == 200
        assert response.json()["sleeping"] is False


def test_display_websocket_receives_state(tmp_path) -> None:
    with TestClient(make_app(tmp_path)) as client:
        with client.websocket_connect("/api/kiosk/ws?client_id=lobby") as websocket:
            initial = websocket.receive_json()
            assert initial["type"] == "kiosk_state"
            assert initial["state"]["active"] is False

            websocket.send_json({"type": "ping"})
            assert websocket.receive_json() == {"type": "pong"}

            client.post("/api/kiosk/session", json={"role": "kiosk"}, headers=SESSION_HEADERS)
            pushed = websocket.receive_json()
            assert pushed["type"] == "kiosk_state"
            assert pushed["state"]["active"] is True

            websocket.send_json({"type": "get_state"})
            assert websocket.receive_json()["state"]["view_mode"] == "overview"
