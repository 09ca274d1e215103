"""Routes for features of a collection."""

from __future__ import annotations

from collections.abc import Mapping
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
    REL_COLLECTION,
    REL_NEXT,
    REL_PREV,
    REL_ROOT,
    REL_SELF,
    _extend_conformance,
    _json_body,
    _state,
    _with_query,
    insert_or_update,
    new_link,
    resolve_relative_links,
)

__all__ = [
    "CONFORMANCE",
    "DEFAULT_LIMIT",
    "MAX_LIMIT",
    "create",
    "read",
    "update",
    "remove",
    "items",
    "check_supported_crs",
    "router",
]

CONFORMANCE = (
    "http://www.opengis.net/spec/ogcapi-features-1/1.0/conf/core",
    "http://www.opengis.net/spec/ogcapi-features-1/1.0/conf/oas30",
    "http://www.opengis.net/spec/ogcapi-features-1/1.0/conf/geojson",
    "http://www.opengis.net/spec/ogcapi-features-2/1.0/conf/crs",
)

DEFAULT_LIMIT = 100
MAX_LIMIT = 10000


def _feature_query(request: Request) -> dict[str, Any]:
    query = parse_query(request)
    for key in ("limit", "offset"):
        if key in query:
            try:
                query[key] = int(query[key])
            except (TypeError, ValueError) as err:
                raise ApiError(400, f"invalid value for query parameter `{key}`") from err
            if query[key] < 0:
                raise ApiError(400, f"query parameter `{key}` must not be negative")
    query.setdefault("crs", DEFAULT_CRS)
    return query


def check_supported_crs(collection: Mapping[str, Any], crs: str) -> None:
    """Raise a bad-request error unless the collection offers ``crs``."""
    if crs not in collection.get("crs", [DEFAULT_CRS]):
        raise ApiError(400, f"Unsuported CRS `{crs}`")


async def _existing_collection(state: Any, collection_id: str) -> dict[str, Any]:
    collection = await state.drivers.collections.read_collection(collection_id)
    if collection is None:
        raise NotFound()
    return collection


def _headers(crs: str) -> dict[str, str]:
    return {"Content-Crs": str(crs)}


async def create(request: Request) -> Response:
    """Store a new feature in the collection."""
    state = _state(request)
    url = remote_url(request)
    feature = await _json_body(request)
    feature["collection"] = request.path_params["collection_id"]
    fid = await state.drivers.features.create_feature(feature)
    location = urljoin(url, f"items/{fid}")
    return Response(status_code=201, headers={"Location": location})


async def read(request: Request) -> JSONResponse:
    """Return one feature."""
    state = _state(request)
    url = remote_url(request)
    collection_id = request.path_params["collection_id"]
    fid = request.path_params["id"]
    query = _feature_query(request)

    collection = await _existing_collection(state, collection_id)
    check_supported_crs(collection, query["crs"])

    feature = await state.drivers.features.read_feature(collection_id, fid, query["crs"])
    if feature is None:
        raise NotFound()

    links = feature.setdefault("links", [])
    insert_or_update(
        links,
        [
            new_link(url, REL_SELF, GEO_JSON),
            new_link(urljoin(url, "../../.."), REL_ROOT, JSON),
            new_link(urljoin(url, f"../../{collection_id}"), REL_COLLECTION, JSON),
        ],
    )
    resolve_relative_links(links, url)
    return JSONResponse(feature, headers=_headers(query["crs"]), media_type=GEO_JSON)


async def update(request: Request) -> Response:
    """Replace a feature; id and collection are taken from the path."""
    state = _state(request)
    feature = await _json_body(request)
    feature["id"] = request.path_params["id"]
    feature["collection"] = request.path_params["collection_id"]
    await state.drivers.features.update_feature(feature)
    return Response(status_code=204)


async def remove(request: Request) -> Response:
    """Delete a feature."""
    state = _state(request)
    await state.drivers.features.delete_feature(
        request.path_params["collection_id"], request.path_params["id"]
    )
    return Response(status_code=204)


async def items(request: Request) -> JSONResponse:
    """Return a page of the features of a collection, with paging links."""
    state = _state(request)
    url = remote_url(request)
    collection_id = request.path_params["collection_id"]
    query = _feature_query(request)

    limit = query.get("limit")
    query["limit"] = DEFAULT_LIMIT if limit is None else min(limit, MAX_LIMIT)

    collection = await _existing_collection(state, collection_id)
    check_supported_crs(collection, query["crs"])

    fc = await state.drivers.features.list_items(collection_id, query)
    links = fc.setdefault("links", [])
    insert_or_update(
        links,
        [
            new_link(url, REL_SELF, GEO_JSON),
            new_link(urljoin(url, "../.."), REL_ROOT, JSON),
            new_link(urljoin(url, "."), REL_COLLECTION, JSON),
        ],
    )

    limit = query["limit"]
    offset = query.setdefault("offset", 0)
    if offset != 0 and offset >= limit:
        previous = _with_query(url, {**query, "offset": offset - limit})
        insert_or_update(links, [new_link(previous, REL_PREV, GEO_JSON)])
    number_matched = fc.get("numberMatched")
    if number_matched is not None and number_matched > offset + limit:
        following = _with_query(url, {**query, "offset": offset + limit})
        insert_or_update(links, [new_link(following, REL_NEXT, GEO_JSON)])

    for feature in fc.get("features", []):
        fid = feature.get("id")
        if fid is None:
            raise ApiError()
        insert_or_update(
            feature.setdefault("links", []),
            [
                new_link(urljoin(url, f"items/{fid}"), REL_SELF, GEO_JSON),
                new_link(urljoin(url, "../.."), REL_ROOT, JSON),
                new_link(urljoin(url, f"../{collection['id']}"), REL_COLLECTION, JSON),
            ],
        )

    return JSONResponse(fc, headers=_headers(query["crs"]), media_type=GEO_JSON)


def router(state: Any) -> list[Route]:
    """Register the conformance classes and return the feature routes."""
    _extend_conformance(state, CONFORMANCE)
    return [
        Route("/collections/{collection_id}/items", items, methods=["GET"]),
        Route("/collections/{collection_id}/items", create, methods=["POST"]),
        Route("/collections/{collection_id}/items/{id}", read, methods=["GET"]),
        Route("/collections/{collection_id}/items/{id}", update, methods=["PUT"]),
        Route("/collections/{collection_id}/items/{id}", remove, methods=["DELETE"]),
    ]