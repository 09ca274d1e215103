"""Routes for collection metadata."""

from __future__ import annotations

from typing import Any
from urllib.parse import urljoin

from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from ...drivers.base import DEFAULT_CRS
from ..errors import ApiError, NotFound, parse_query, remote_url
from .common import (
    GEO_JSON,
    JSON,
    REL_DATA,
    REL_ITEMS,
    REL_ROOT,
    REL_SELF,
    _add_root_link,
    _extend_conformance,
    _json_body,
    _state,
    insert_or_update,
    new_link,
    resolve_relative_links,
)

__all__ = ["CONFORMANCE", "create", "read", "update", "remove", "collections", "router"]

CONFORMANCE = (
    "http://www.opengis.net/spec/ogcapi-common-1/1.0/conf/core",
    "http://www.opengis.net/spec/ogcapi-common-2/1.0/conf/collections",
    "http://www.opengis.net/spec/ogcapi_common-2/1.0/conf/json",
)

WEB_MERCATOR = "http://www.opengis.net/def/crs/EPSG/0/3857"


def _collection_id(body: dict[str, Any]) -> str:
    cid = body.get("id")
    if not isinstance(cid, str):
        raise ApiError(422, "Collection needs a string `id`")
    return cid


async def create(request: Request) -> Response:
    """Create new collection metadata."""
    state = _state(request)
    url = remote_url(request)
    collection = await _json_body(request)
    cid = _collection_id(collection)
    drivers = state.drivers
    if await drivers.collections.read_collection(cid) is not None:
        raise ApiError(409, f"Collection with id `{cid}` already exists.")
    new_id = await drivers.collections.create_collection(collection)
    location = urljoin(url, f"collections/{new_id}")
    return Response(status_code=201, headers={"Location": location})


async def read(request: Request) -> JSONResponse:
    """Return collection metadata."""
    state = _state(request)
    collection_id = request.path_params["collection_id"]
    url = remote_url(request)
    collection = await state.drivers.collections.read_collection(collection_id)
    if collection is None:
        raise NotFound()
    links = collection.setdefault("links", [])
    insert_or_update(
        links,
        [new_link(url, REL_SELF), new_link(urljoin(url, ".."), REL_ROOT, JSON)],
    )
    if collection.get("type") == "Collection":
        insert_or_update(
            links,
            [new_link(urljoin(url, f"{collection['id']}/items"), REL_ITEMS, GEO_JSON)],
        )
    resolve_relative_links(links, url)
    return JSONResponse(collection)


async def update(request: Request) -> Response:
    """Replace collection metadata; the id is taken from the path."""
    state = _state(request)
    collection = await _json_body(request)
    collection["id"] = request.path_params["collection_id"]
    await state.drivers.collections.update_collection(collection)
    return Response(status_code=204)


async def remove(request: Request) -> Response:
    """Delete a collection."""
    state = _state(request)
    await state.drivers.collections.delete_collection(request.path_params["collection_id"])
    return Response(status_code=204)


async def collections(request: Request) -> JSONResponse:
    """Return the collections document."""
    state = _state(request)
    query = parse_query(request)
    url = remote_url(request)
    document = await state.drivers.collections.list_collections(query)
    root_href = urljoin(url, ".")
    for collection in document.get("collections", []):
        cid = collection["id"]
        links = collection.setdefault("links", [])
        insert_or_update(
            links,
            [
                new_link(urljoin(url, f"collections/{cid}"), REL_SELF, JSON),
                new_link(root_href, REL_ROOT, JSON),
                new_link(urljoin(url, f"collections/{cid}/items"), REL_ITEMS, GEO_JSON),
            ],
        )
        resolve_relative_links(links, url)
    document["links"] = [
        new_link(url, REL_SELF, JSON, "this document"),
        new_link(root_href, REL_ROOT, JSON),
    ]
    document["crs"] = [DEFAULT_CRS, WEB_MERCATOR]
    return JSONResponse(document)


def router(state: Any) -> list[Route]:
    """Register the data link and conformance classes, and return the routes."""
    _add_root_link(
        state,
        new_link("collections", REL_DATA, JSON, "Metadata about the resource collections"),
    )
    _extend_conformance(state, CONFORMANCE)
    return [
        Route("/collections", collections, methods=["GET"]),
        Route("/collections", create, methods=["POST"]),
        Route("/collections/{collection_id}", read, methods=["GET"]),
        Route("/collections/{collection_id}", update, methods=["PUT"]),
        Route("/collections/{collection_id}", remove, methods=["DELETE"]),
    ]