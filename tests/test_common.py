from starlette.applications import Starlette
from starlette.testclient import TestClient

from ogckit.services.errors import ApiError
from ogckit.services.openapi import OpenAPI
from ogckit.services.routes import common
from ogckit.services.routes.common import (
    JSON,
    insert_or_update,
    new_link,
    resolve_relative_links,
)
from ogckit.services.state import STAC_CONFORMANCE, AppState

BASE = "http://testserver"


def make_client(state):
    app = Starlette(
        routes=common.router(state),
        exception_handlers={ApiError: lambda request, exc: exc.to_response()},
    )
    app.state.ogc = state
    return TestClient(app)


def by_rel(links):
    return {link["rel"]: link for link in links}


def test_new_link_with_all_fields():
    assert new_link("a", "self", JSON, "t") == {
        "href": "a",
        "rel": "self",
        "type": JSON,
        "title": "t",
    }


def test_new_link_leaves_out_missing_fields():
    assert new_link("a", "root") == {"href": "a", "rel": "root"}


def test_insert_or_update_replaces_same_rel_and_appends_new():
    links = [new_link("old", "self"), new_link("x", "root")]
    insert_or_update(links, [new_link("new", "self"), new_link("n", "next")])
    assert [link["href"] for link in links] == ["new", "x", "n"]


def test_resolve_relative_links_keeps_absolute():
    links = [new_link("api", "a"), new_link("http://other.example.com/x", "b")]
    resolve_relative_links(links, f"{BASE}/")
    assert links[0]["href"] == f"{BASE}/api"
    assert links[1]["href"] == "http://other.example.com/x"


def test_root_links_are_absolute():
    state = AppState(None)
    state.root["links"].append(new_link("collections", "data", JSON))
    response = make_client(state).get("/")
    assert response.status_code == 200
    links = by_rel(response.json()["links"])
    assert links["self"]["href"] == f"{BASE}/"
    assert links["root"]["href"] == f"{BASE}/"
    assert links["conformance"]["href"] == f"{BASE}/conformance"
    assert links["data"]["href"] == f"{BASE}/collections"
    assert response.json()["conformsTo"] == list(STAC_CONFORMANCE)


def test_root_does_not_change_state():
    state = AppState(None)
    make_client(state).get("/")
    assert state.root["links"] == []


def test_root_honours_forwarded_proto():
    response = make_client(AppState(None)).get("/", headers={"X-Forwarded-Proto": "https"})
    assert by_rel(response.json()["links"])["self"]["href"] == "https://testserver/"


def test_conformance_returns_state():
    state = AppState(None)
    response = make_client(state).get("/conformance")
    assert response.json() == state.conformance


def test_api_returns_definition():
    document = {"openapi": "3.0.3", "info": {"title": "T", "version": "1"}, "paths": {}}
    state = AppState(None, OpenAPI(document))
    response = make_client(state).get("/api")
    assert response.json() == document
    assert response.headers["content-type"].startswith("application/vnd.oai.openapi+json")


def test_redoc_and_swagger_pages():
    client = make_client(AppState(None))
    redoc = client.get("/redoc")
    swagger = client.get("/swagger")
    assert redoc.headers["content-type"].startswith("text/html")
    assert '<redoc spec-url="api">' in redoc.text
    assert "swagger-ui" in swagger.text