"""Route for the STAC item search."""

from __future__ import annotations

import json
from collections.abc import Mapping
from http import HTTPStatus
from typing import Any
from urllib.parse import urljoin

from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from ..errors import ApiError, parse_query, remote_url
from .common import (
    GEO_JSON,
    JSON,
    REL_COLLECTION,
    REL_NEXT,
    REL_PREV,
    REL_ROOT,
    REL_SELF,
    _json_body,
    _state,
    _with_query,
    insert_or_update,
    new_link,
)

__all__ = ["DEFAULT_LIMIT", "MAX_LIMIT", "search_get", "search_post", "search", "router"]

DEFAULT_LIMIT = 100
MAX_LIMIT = 10000

_LIMIT_ERROR = "query parameter `limit` not in range 1 to 10000"
_BBOX_ERROR = "query parameter `bbox` not valid"


def _bad_request(detail: str) -> ApiError:
    return ApiError(HTTPStatus.BAD_REQUEST, detail)


def _integer(value: Any, key: str) -> int:
    if isinstance(value, bool):
        raise _bad_request(f"invalid value for query parameter `{key}`")
    try:
        return int(value)
    except (TypeError, ValueError) as err:
        raise _bad_request(f"invalid value for query parameter `{key}`") from err


def _bbox(value: Any) -> list[float]:
    parts = value.split(",") if isinstance(value, str) else value
    if not isinstance(parts, (list, tuple)):
        raise _bad_request(_BBOX_ERROR)
    try:
        bbox = [float(part) for part in parts]
    except (TypeError, ValueError) as err:
        raise _bad_request(_BBOX_ERROR) from err
    if len(bbox) not in (4, 6):
        raise _bad_request(_BBOX_ERROR)
    return bbox


def _names(value: Any) -> list[str]:
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple)):
        return [str(part) for part in value]
    raise _bad_request("expected a list of names")


def _normalize(params: Mapping[str, Any]) -> dict[str, Any]:
    normalized = {key: value for key, value in params.items() if value is not None}
    for key in ("limit", "offset"):
        if key in normalized:
            normalized[key] = _integer(normalized[key], key)
    if normalized.get("offset", 0) < 0:
        raise _bad_request("query parameter `offset` must not be negative")
    if "bbox" in normalized:
        normalized["bbox"] = _bbox(normalized["bbox"])
    for key in ("collections", "ids"):
        if key in normalized:
            normalized[key] = _names(normalized[key])
    intersects = normalized.get("intersects")
    if isinstance(intersects, str):
        try:
            normalized["intersects"] = json.loads(intersects)
        except ValueError as err:
            raise _bad_request("query parameter `intersects` is not valid GeoJSON") from err
    return normalized


def _check_bbox(bbox: list[float]) -> None:
    if len(bbox) == 4:
        invalid = bbox[0] > bbox[2] or bbox[1] > bbox[3]
    else:
        invalid = bbox[0] > bbox[3] or bbox[1] > bbox[4] or bbox[2] > bbox[5]
    if invalid:
        raise _bad_request(_BBOX_ERROR)


async def search_get(request: Request) -> JSONResponse:
    """Search items with parameters from the query string."""
    return await search(parse_query(request), remote_url(request), _state(request))


async def search_post(request: Request) -> JSONResponse:
    """Search items with parameters from a JSON body."""
    url = remote_url(request)
    return await search(await _json_body(request), url, _state(request))


async def search(params: Mapping[str, Any], url: str, state: Any) -> JSONResponse:
    """Validate the search parameters, search and add links to the result."""
    params = _normalize(params)

    limit = params.get("limit")
    if limit is None:
        params["limit"] = DEFAULT_LIMIT
    elif not 1 <= limit <= MAX_LIMIT:
        raise _bad_request(_LIMIT_ERROR)

    if "bbox" in params:
        _check_bbox(params["bbox"])

    fc = await state.db.search(params)

    links = fc.setdefault("links", [])
    insert_or_update(
        links,
        [new_link(url, REL_SELF, GEO_JSON), new_link(urljoin(url, "../.."), REL_ROOT, JSON)],
    )

    limit = params["limit"]
    offset = params.setdefault("offset", 0)
    if offset != 0 and offset >= limit:
        previous = _with_query(url, {**params, "offset": offset - limit})
        insert_or_update(links, [new_link(previous, REL_PREV, GEO_JSON)])
    number_matched = fc.get("numberMatched")
    if number_matched is not None and number_matched > offset + limit:
        following = _with_query(url, {**params, "offset": offset + limit})
        insert_or_update(links, [new_link(following, REL_NEXT, GEO_JSON)])

    for feature in fc.get("features", []):
        collection = feature.get("collection")
        fid = feature.get("id")
        if collection is None or fid is None:
            raise ApiError()
        insert_or_update(
            feature.setdefault("links", []),
            [
                new_link(
                    urljoin(url, f"collections/{collection}/items/{fid}"), REL_SELF, GEO_JSON
                ),
                new_link(urljoin(url, "."), REL_ROOT, JSON),
                new_link(urljoin(url, f"collections/{collection}"), REL_COLLECTION, JSON),
            ],
        )

    return JSONResponse(fc, media_type=GEO_JSON)


def router(state: Any) -> list[Route]:
    """Return the search routes."""
    return [
        Route("/search", search_get, methods=["GET"]),
        Route("/search", search_post, methods=["POST"]),
    ]