from starlette.applications import Starlette
from starlette.testclient import TestClient

from ogckit.services.errors import ApiError
from ogckit.services.routes import styles
from ogckit.services.state import AppState

STYLE = {"version": 8, "layers": []}


class FakeStyles:
    async def list_styles(self):
        return {"styles": [{"id": "night", "title": "Night", "links": []}]}

    async def read_style(self, id):
        return STYLE if id == "night" else None


def make():
    state = AppState(FakeStyles())
    app = Starlette(
        routes=styles.router(state),
        exception_handlers={ApiError: lambda request, exc: exc.to_response()},
    )
    app.state.ogc = state
    return TestClient(app), state


def test_list_styles():
    client, _ = make()
    response = client.get("/styles")
    assert response.status_code == 200
    assert [style["id"] for style in response.json()["styles"]] == ["night"]


def test_read_style():
    client, _ = make()
    assert client.get("/styles/night").json() == STYLE


def test_read_missing_style():
    client, _ = make()
    response = client.get("/styles/day")
    assert response.status_code == 404
    assert response.json()["detail"] == "not found"


def test_router_leaves_state_alone():
    _, state = make()
    assert state.root["links"] == []