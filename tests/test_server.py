import pytest
from fastapi.testclient import TestClient

from src.screen.bus import InProcessEventBus
from src.screen.hub import ScreenSyncHub
from src.screen.server import create_app


@pytest.fixture
def stack(session_store, make_controller):
    bus = InProcessEventBus()
    controller = make_controller(auto_advance=False)
    hub = ScreenSyncHub(session_store, controller, bus)
    client = TestClient(create_app(hub, bus))
    return client, hub, controller


def test_screen_page_embeds_surface_id(stack):
    client, _, _ = stack
    res = client.get("/screen/main")
    assert res.status_code == 200
    assert "text/html" in res.headers["content-type"]
    assert '"main"' in res.text


def test_state_before_ready_is_unsynced(stack):
    client, _, _ = stack
    body = client.get("/api/screen/unknown/state").json()
    assert body == {"synced": False, "seq": 0, "state": {}}


def test_ready_returns_snapshot(stack):
    client, hub, _ = stack
    body = client.post("/api/screen/main/ready").json()
    assert body["synced"] is True
    assert body["state"]["script"]["content"] == "멘트 1"
    assert hub.surface("main").ready is True

    polled = client.get("/api/screen/main/state").json()
    assert polled["seq"] == body["seq"]


def test_next_and_prev_move_controller_pointer(stack):
    client, _, controller = stack
    client.post("/api/screen/main/ready")

    body = client.post("/api/screen/main/next").json()
    assert controller.current_index == 1
    assert body["state"]["imageUrl"] == "https://img.example/p2.jpg"

    client.post("/api/screen/main/prev")
    assert controller.current_index == 0


def test_closed_deactivates_surface(stack):
    client, hub, _ = stack
    client.post("/api/screen/main/ready")
    assert client.post("/api/screen/main/closed").json() == {"ok": True}
    assert hub.surface("main").active is False
    assert client.get("/api/screen/main/state").json()["synced"] is False


def test_surface_count_is_capped(session_store, make_controller):
    bus = InProcessEventBus()
    hub = ScreenSyncHub(session_store, make_controller(), bus)
    app = create_app(hub, bus, max_surfaces=2)
    client = TestClient(app)

    assert client.post("/api/screen/a/ready").status_code == 200
    assert client.post("/api/screen/b/ready").status_code == 200
    assert client.post("/api/screen/c/ready").status_code == 429
    assert client.post("/api/screen/a/next").status_code == 200
    assert sorted(app.state.mirrors) == ["a", "b"]
    assert hub.surface("c") is None

    client.post("/api/screen/a/closed")
    assert client.post("/api/screen/c/ready").status_code == 200


def test_invalid_surface_id_is_rejected(stack):
    client, hub, _ = stack
    assert client.post("/api/screen/bad.id/ready").status_code == 404
    assert hub.active_surfaces() == []
