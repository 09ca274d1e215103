from ogckit.services.openapi import OpenAPI
from ogckit.services.processor import Greeter
from ogckit.services.state import AppState, Drivers


class FakeDb:
    pass


def test_defaults():
    db = FakeDb()
    state = AppState(db)
    assert state.root["id"] == "root"
    assert state.root["description"] == "root"
    assert "https://api.stacspec.org/v1.0.0-rc.1/core" in state.conformance["conformsTo"]
    assert state.openapi == OpenAPI()
    assert state.db is db
    assert state.s3 is None
    assert state.processors == {}


def test_every_driver_is_the_database():
    db = FakeDb()
    drivers = AppState(db).drivers
    assert drivers == Drivers(db, db, db, db, db, db)


def test_with_root_replaces_landing_page():
    state = AppState(FakeDb())
    root = {"id": "catalog", "links": []}
    assert state.with_root(root) is state
    assert state.root == root


def test_with_openapi_and_s3():
    api = OpenAPI.from_str("openapi: 3.0.0\ninfo: {title: t, version: v}")
    s3 = object()
    state = AppState(FakeDb()).with_openapi(api).with_s3(s3)
    assert state.openapi is api
    assert state.s3 is s3


def test_with_processors_registers_by_id():
    greeter = Greeter()
    state = AppState(FakeDb()).with_processors([greeter])
    assert state.processors == {"greet": greeter}


def test_states_do_not_share_conformance():
    first, second = AppState(FakeDb()), AppState(FakeDb())
    first.conformance["conformsTo"].append("urn:extra")
    assert "urn:extra" not in second.conformance["conformsTo"]