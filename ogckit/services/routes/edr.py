"""Routes for Environmental Data Retrieval queries."""

from __future__ import annotations

from typing import Any
from urllib.parse import urljoin

from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from ...drivers.base import DEFAULT_CRS
from ...drivers.pgquery import QueryType
from ..errors import ApiError, parse_query, remote_url
from .common import GEO_JSON, REL_SELF, _extend_conformance, _state, new_link

__all__ = ["CONFORMANCE", "query", "router"]

CONFORMANCE = (
    "http://www.opengis.net/spec/ogcapi-edr-1/1.0/conf/core",
    "http://www.opengis.net/spec/ogcapi-edr-1/1.0/conf/collections",
    "http://www.opengis.net/spec/ogcapi-edr-1/1.0/conf/json",
    "http://www.opengis.net/spec/ogcapi-edr-1/1.0/conf/geojson",
    "http://www.opengis.net/spec/ogcapi-edr-1/1.0/conf/edr-geojson",
    "http://www.opengis.net/spec/ogcapi-edr-1/1.0/conf/covjson",
    "http://www.opengis.net/spec/ogcapi-edr-1/1.0/conf/oas30",
    "http://www.opengis.net/spec/ogcapi-edr-1/1.0/conf/queries",
)


def _query_type(request: Request) -> QueryType:
    name = request.path_params.get("query_type")
    if name is None:
        name = request.url.path.rstrip("/").rsplit("/", 1)[-1]
    try:
        return QueryType(name)
    except ValueError as err:
        raise ApiError(400, f"unknown query type `{name}`") from err


async def query(request: Request) -> JSONResponse:
    """Answer an EDR query on a collection."""
    state = _state(request)
    url = remote_url(request)
    collection_id = request.path_params["collection_id"]
    kind = _query_type(request)
    params = parse_query(request)
    if not isinstance(params.get("coords"), str) or not params["coords"]:
        raise ApiError(400, "missing query parameter `coords`")
    params.setdefault("crs", DEFAULT_CRS)

    fc = await state.drivers.edr.query(collection_id, kind, params)
    for feature in fc.get("features", []):
        fid = feature.get("id")
        if fid is None:
            raise ApiError()
        feature["links"] = [new_link(urljoin(url, f"items/{fid}"), REL_SELF, GEO_JSON)]

    return JSONResponse(
        fc, headers={"Content-Crs": str(params["crs"])}, media_type=GEO_JSON
    )


def router(state: Any) -> list[Route]:
    """Register the conformance classes and return one route per query type."""
    _extend_conformance(state, CONFORMANCE)
    return [
        Route(f"/collections/{{collection_id}}/{kind.value}", query, methods=["GET"])
        for kind in QueryType
    ]