import threading
import time

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from flood_kiosk.api.v1.endpoints import control as control_endpoint
from flood_kiosk.config import Settings
from flood_kiosk.main import create_app
from flood_kiosk.persistence.snapshot_store import MemorySnapshotStore
from flood_kiosk.scheduling.scheduler import AsyncioScheduler, ManualScheduler
from flood_kiosk.services.control_surface import ControlSurface
from flood_kiosk.services.runtime import KioskRuntime


def _runtime():
    # Virtual clock: the test decides when ticks happen
    return KioskRuntime(ManualScheduler(), config=Settings(CHANNEL_NAME="api-test"),
                        store=MemorySnapshotStore(), rng=lambda: 0.5)


@pytest.fixture
def client(monkeypatch):
    monkeypatch.delenv("DISABLE_SIMULATION", raising=False)
    app = create_app(runtime_factory=_runtime)
    with TestClient(app) as c:
        yield c


def runtime_of(client) -> KioskRuntime:
    return client.app.state.kiosk


def test_state_at_startup(client: TestClient):
    resp = client.get("/api/v1/state")
    assert resp.status_code == 200
    body = resp.json()
    assert body["rain"] == 0
    assert body["status"] == "NORMAL"
    assert body["phase"] == "idle"
    assert body["eta"]["label"] == "No flood expected"
    assert body["toasts"] == []


def test_set_rain(client: TestClient):
    resp = client.post("/api/v1/rain", json={"value": 80.4})
    assert resp.status_code == 200
    assert resp.json() == {"rain": 80}
    assert client.get("/api/v1/state").json()["display_state"] == "RAIN"
    snap = client.get("/api/v1/snapshots/control").json()
    assert snap["kind"] == "control"
    assert snap["data"] == {"type": "TRIGGER_STATE", "state": "RAIN"}


@pytest.mark.parametrize("payload", [{"value": 150}, {"value": -1}, {"value": "x"}, {}])
def test_set_rain_validation(client: TestClient, payload):
    assert client.post("/api/v1/rain", json=payload).status_code == 422


def test_demo_start_and_stop(client: TestClient):
    assert client.post("/api/v1/demo/start").json() == {"phase": "rampUp"}
    assert client.post("/api/v1/demo/start").json() == {"phase": "rampUp"}
    runtime_of(client).scheduler.advance(1000)
    state = client.get("/api/v1/state").json()
    assert state["phase"] == "rampUp"
    assert state["rain"] == 16
    assert client.post("/api/v1/demo/stop").json() == {"phase": "idle"}


def test_trigger(client: TestClient):
    resp = client.post("/api/v1/trigger", json={"state": "RAIN"})
    assert resp.json() == {"display_state": "RAIN"}
    assert client.post("/api/v1/trigger", json={"state": "FOG"}).status_code == 422


def test_snapshots(client: TestClient):
    sky = client.get("/api/v1/snapshots/sky")
    assert sky.status_code == 200
    assert sky.json()["data"]["status"] == "NORMAL"
    assert client.get("/api/v1/snapshots/weather").status_code == 404


def test_toasts_list_and_dismiss(client: TestClient):
    runtime = runtime_of(client)
    runtime.control.set_rain(100)
    runtime.scheduler.advance(8_000)
    toasts = client.get("/api/v1/toasts").json()
    assert any(t["kind"] == "danger_entered" for t in toasts)
    toast_id = toasts[0]["id"]
    assert client.delete(f"/api/v1/toasts/{toast_id}").json() == {"dismissed": toast_id}
    assert client.delete(f"/api/v1/toasts/{toast_id}").status_code == 404


def test_shutdown_releases_timers():
    app = create_app(runtime_factory=_runtime)
    with TestClient(app) as c:
        scheduler = runtime_of(c).scheduler
        assert scheduler.pending() >= 1
    assert scheduler.pending() == 0
    assert app.state.kiosk is None


def test_unavailable_without_runtime():
    app = FastAPI()
    app.include_router(control_endpoint.router, prefix="/api/v1")
    with TestClient(app) as c:
        assert c.get("/api/v1/state").status_code == 503


def test_routes_run_on_the_tick_thread(monkeypatch):
    monkeypatch.delenv("DISABLE_SIMULATION", raising=False)
    threads = {"tick": set(), "set_rain": set()}
    tick, set_rain = ControlSurface.tick, ControlSurface.set_rain

    def recording_tick(self):
        threads["tick"].add(threading.get_ident())
        return tick(self)

    def recording_set_rain(self, value):
        threads["set_rain"].add(threading.get_ident())
        return set_rain(self, value)

    monkeypatch.setattr(ControlSurface, "tick", recording_tick)
    monkeypatch.setattr(ControlSurface, "set_rain", recording_set_rain)

    def asyncio_runtime():
        # Built inside the lifespan, so the scheduler binds to the app's event loop
        return KioskRuntime(AsyncioScheduler(), config=Settings(CHANNEL_NAME="api-loop"),
                            store=MemorySnapshotStore(), rng=lambda: 0.5)

    with TestClient(create_app(runtime_factory=asyncio_runtime)) as c:
        assert c.post("/api/v1/rain", json={"value": 40}).json() == {"rain": 40}
        deadline = time.monotonic() + 5
        while not threads["tick"] and time.monotonic() < deadline:
            time.sleep(0.05)
        assert c.get("/api/v1/state").json()["rain"] == 40

    assert threads["tick"]
    assert threads["set_rain"] == threads["tick"]
