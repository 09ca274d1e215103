from starlette.applications import Starlette
from starlette.testclient import TestClient

from ogckit.drivers.base import DEFAULT_CRS
from ogckit.drivers.pgquery import QueryType
from ogckit.services.errors import ApiError
from ogckit.services.routes import edr
from ogckit.services.state import AppState

BASE = "http://testserver"


class FakeEdr:
    def __init__(self):
        self.calls = []

    async def query(self, collection_id, query_type, query):
        self.calls.append((collection_id, query_type, dict(query)))
        return {
            "type": "FeatureCollection",
            "features": [
                {"id": "a", "type": "Feature", "properties": {}, "geometry": None, "links": []}
            ],
            "links": [],
            "numberMatched": 1,
            "numberReturned": 1,
        }


def make():
    db = FakeEdr()
    state = AppState(db)
    app = Starlette(
        routes=edr.router(state),
        exception_handlers={ApiError: lambda request, exc: exc.to_response()},
    )
    app.state.ogc = state
    return TestClient(app), db, state


def test_position_query_passes_arguments():
    client, db, _ = make()
    response = client.get(
        "/collections/countries/position", params={"coords": "POINT(2600000 1200000)"}
    )
    assert response.status_code == 200
    collection_id, query_type, query = db.calls[-1]
    assert collection_id == "countries"
    assert query_type is QueryType.POSITION
    assert query["coords"] == "POINT(2600000 1200000)"
    assert query["crs"] == DEFAULT_CRS


def test_feature_links_and_headers():
    client, _, _ = make()
    response = client.get("/collections/places/area", params={"coords": "POLYGON((6 45, 6 49, 9 49, 9 45, 6 45))"})
    assert response.headers["content-crs"] == DEFAULT_CRS
    assert response.headers["content-type"].startswith("application/geo+json")
    links = response.json()["features"][0]["links"]
    assert links == [
        {"href": f"{BASE}/collections/places/items/a", "rel": "self", "type": "application/geo+json"}
    ]


def test_crs_is_echoed():
    client, _, _ = make()
    crs = "http://www.opengis.net/def/crs/EPSG/0/2056"
    response = client.get("/collections/c/radius", params={"coords": "POINT(7.5 47)", "crs": crs})
    assert response.headers["content-crs"] == crs


def test_missing_coords_is_bad_request():
    client, db, _ = make()
    assert client.get("/collections/c/position").status_code == 400
    assert db.calls == []


def test_items_path_is_not_an_edr_query():
    client, db, _ = make()
    assert client.get("/collections/c/items", params={"coords": "POINT(1 2)"}).status_code == 404
    assert db.calls == []


def test_router_extends_conformance():
    _, _, state = make()
    assert set(edr.CONFORMANCE) <= set(state.conformance["conformsTo"])