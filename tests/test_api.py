import asyncio

import httpx
import pytest
from fastapi.testclient import TestClient

from factories import read_json
from liveedit.grid import GridSurface
from liveedit.settings import AppSettings
from liveedit.sync_client import SyncClient
from main import create_app


@pytest.fixture
def app(tmp_path, config_file):
    return create_app(AppSettings(root=str(tmp_path)))


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


def test_patch_single_prop(client, config_file):
    response = client.patch("/_liveedit/config", json={"surfaceId": "title", "propName": "text", "newValue": "Hi"})

    assert response.status_code == 200
    assert response.json() == {"success": True}
    assert read_json(config_file)["components"]["title"]["props"]["text"] == "Hi"


def test_patch_batch_clamps_values(client, config_file):
    response = client.patch("/_liveedit/config-batch", json={
        "surfaceId": "main-grid",
        "updates": {"rows": 0, "gap": 70},
    })

    assert response.status_code == 200
    props = read_json(config_file)["components"]["main-grid"]["props"]
    assert (props["rows"], props["gap"]) == (1, 50)


def test_unknown_surface_returns_error(client):
    response = client.patch("/_liveedit/config", json={"surfaceId": "ghost", "propName": "text", "newValue": 1})

    assert response.status_code == 500
    assert response.json() == {"error": "Component not found: ghost"}


def test_invalid_layout_returns_error(client, config_file):
    before = read_json(config_file)
    response = client.patch("/_liveedit/config", json={
        "surfaceId": "main-grid",
        "propName": "layout",
        "newValue": [{"id": "both", "childRef": 0, "group": {"items": []}}],
    })

    assert response.status_code == 500
    assert "error" in response.json()
    assert read_json(config_file) == before


def test_wrong_method(client):
    assert client.get("/_liveedit/config").status_code == 405
    assert client.post("/_liveedit/config-batch", json={}).status_code == 405


@pytest.mark.parametrize("body", [
    {"propName": "text", "newValue": "x"},
    {"surfaceId": "title"},
    {"surfaceId": "title", "propName": "text"},
])
def test_malformed_body(client, body):
    response = client.patch("/_liveedit/config", json=body)
    assert response.status_code == 400
    assert "error" in response.json()


def test_non_json_body(client):
    response = client.patch(
        "/_liveedit/config-batch", content=b"{nope", headers={"Content-Type": "application/json"},
    )
    assert response.status_code == 400


def test_get_document(client, document):
    response = client.get("/.liveedit.config.json")
    assert response.status_code == 200
    assert response.json() == document


def test_missing_default_document(client):
    response = client.get("/.liveedit.config.default.json")
    assert response.status_code == 404
    assert "error" in response.json()


def test_reset_config(client, config_file, default_config_file):
    default = client.get("/.liveedit.config.default.json").json()

    response = client.post("/_liveedit/patch", json={"action": "reset-config", "config": default})

    assert response.status_code == 200
    assert read_json(config_file)["components"]["title"]["props"]["text"] == "Default"


def test_unknown_action(client, config_file):
    before = read_json(config_file)
    response = client.post("/_liveedit/patch", json={"action": "explode"})

    assert response.status_code == 400
    assert response.json() == {"error": "Unknown action"}
    assert read_json(config_file) == before


def test_reset_without_config(client):
    response = client.post("/_liveedit/patch", json={"action": "reset-config"})
    assert response.status_code == 500
    assert "error" in response.json()


def test_websocket_receives_broadcast_including_sender(client):
    with client.websocket_connect("/_liveedit/ws") as ws:
        client.patch("/_liveedit/config", json={"surfaceId": "title", "propName": "text", "newValue": "Live"})
        message = ws.receive_json()

    assert message["type"] == "custom"
    assert message["event"] == "config-update"
    assert message["data"]["config"]["components"]["title"]["props"]["text"] == "Live"


def test_sync_client_round_trip(app, config_file):
    async def scenario():
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http:
            client = SyncClient(http)
            assert await client.start() is True

            client.update_props("main-grid", {"gap": 12, "rows": 30})
            await client.drain()
            assert client.last_error is None

            # 服务端截断后的值在下一次拉取时生效
            assert await client.refresh() is True
            assert client.get_props("main-grid")["rows"] == 20

    asyncio.run(scenario())
    props = read_json(config_file)["components"]["main-grid"]["props"]
    assert (props["gap"], props["rows"]) == (12, 20)


def test_missing_new_value_writes_nothing(client, config_file):
    before = read_json(config_file)
    response = client.patch("/_liveedit/config", json={"surfaceId": "title", "propName": "text"})
    assert response.status_code == 400
    assert read_json(config_file) == before


def test_echo_of_own_patch_is_not_sent_back(app, client):
    requests = []

    async def record(request):
        requests.append((request.method, request.url.path))

    http = httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://testserver",
        event_hooks={"request": [record]},
    )
    sync = SyncClient(http)
    surface = GridSurface("main-grid", sync)

    def render(config):
        # 渲染器把收到的布局原样回报
        sync.update_props("main-grid", {"layout": config["components"]["main-grid"]["props"]["layout"]})

    async def drag_combine():
        await sync.start()
        sync.subscribe(render)
        grid = surface.grid()
        grid.drag_start("a")
        grid.drag([
            {"i": "a", "x": 1, "y": 0, "w": 1, "h": 1},
            {"i": "b", "x": 1, "y": 0, "w": 1, "h": 1},
            {"i": "c", "x": 2, "y": 0, "w": 1, "h": 1},
        ])
        assert grid.drag_stop() is True
        await sync.drain()

    async def receive(message):
        assert sync.handle_message(message) is True
        await sync.drain()
        await http.aclose()

    # 应用与 WebSocket 运行在 TestClient 的事件循环中，SyncClient 也在同一循环内驱动
    with client.websocket_connect("/_liveedit/ws") as ws:
        client.portal.call(drag_combine)
        echo = ws.receive_json()
    client.portal.call(receive, echo)

    patches = [r for r in requests if r[0] == "PATCH"]
    assert patches == [("PATCH", "/_liveedit/config-batch")]
    layout = sync.get_props("main-grid")["layout"]
    assert [item["id"] for item in layout][0] == "c"
    assert layout[1]["group"]["items"][0]["id"] == "b-n"
