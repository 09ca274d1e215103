"""Landing page, conformance and API definition routes, and link helpers."""

from __future__ import annotations

import copy
import json
from collections.abc import Iterable, Mapping, MutableSequence
from typing import Any
from urllib.parse import urlencode, urljoin, urlsplit, urlunsplit

from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse
from starlette.routing import Route

from ..errors import ApiError, remote_url

__all__ = [
    "JSON",
    "GEO_JSON",
    "HTML",
    "OPEN_API_JSON",
    "new_link",
    "insert_or_update",
    "resolve_relative_links",
    "root",
    "conformance",
    "api",
    "redoc",
    "swagger",
    "router",
]

JSON = "application/json"
GEO_JSON = "application/geo+json"
HTML = "text/html"
OPEN_API_JSON = "application/vnd.oai.openapi+json;version=3.0"

REL_SELF = "self"
REL_ROOT = "root"
REL_DATA = "data"
REL_ITEMS = "items"
REL_COLLECTION = "collection"
REL_NEXT = "next"
REL_PREV = "prev"
REL_CONFORMANCE = "conformance"
REL_SERVICE_DESC = "service-desc"
REL_SERVICE_DOC = "service-doc"
REL_SEARCH = "search"

Json = dict[str, Any]

REDOC_PAGE = """
<!DOCTYPE html>
<html>
<head>
    <title>ReDoc</title>
    <meta charset="utf-8"/>
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <style>
        body {
            margin: 0;
            padding: 0;
        }
    </style>
</head>
<body>
    <redoc spec-url="api"></redoc>
    <script src="https://cdn.jsdelivr.net/npm/redoc@next/bundles/redoc.standalone.js"></script>
</body>
</html>
"""

SWAGGER_PAGE = """
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <meta name="description" content="SwaggerUI" />
    <title>SwaggerUI</title>
    <link rel="stylesheet" href="https://unpkg.com/swagger-ui-dist@4.11.1/swagger-ui.css" />
</head>
<body>
    <div id="swagger-ui"></div>
    <script src="https://unpkg.com/swagger-ui-dist@4.11.1/swagger-ui-bundle.js" crossorigin></script>
    <script>
    window.onload = () => {
        window.ui = SwaggerUIBundle({
        url: 'api',
        dom_id: '#swagger-ui',
        });
    };
    </script>
</body>
</html>
"""


def new_link(
    href: str, rel: str, media_type: str | None = None, title: str | None = None
) -> Json:
    """Return a link object; ``type`` and ``title`` are left out when not given."""
    link: Json = {"href": str(href), "rel": rel}
    if media_type is not None:
        link["type"] = media_type
    if title is not None:
        link["title"] = title
    return link


def insert_or_update(links: MutableSequence[Json], new_links: Iterable[Mapping[str, Any]]) -> MutableSequence[Json]:
    """Replace the links with the same relation as each new link, or append it."""
    for new in new_links:
        new = dict(new)
        for position, existing in enumerate(links):
            if existing.get("rel") == new.get("rel"):
                links[position] = new
                break
        else:
            links.append(new)
    return links


def resolve_relative_links(links: MutableSequence[Json], base: str) -> MutableSequence[Json]:
    """Join every relative ``href`` in ``links`` onto ``base``, in place."""
    for link in links:
        href = link.get("href")
        if isinstance(href, str) and not urlsplit(href).scheme:
            link["href"] = urljoin(base, href)
    return links


def _state(request: Request) -> Any:
    """Return the application state, stored as ``app.state.ogc``."""
    return request.app.state.ogc


def _extend_conformance(state: Any, uris: Iterable[str]) -> None:
    conforms_to = state.conformance.setdefault("conformsTo", [])
    conforms_to.extend(uri for uri in uris if uri not in conforms_to)


def _add_root_link(state: Any, link: Json) -> None:
    state.root.setdefault("links", []).append(link)


async def _json_body(request: Request) -> Json:
    try:
        body = await request.json()
    except ValueError as err:
        raise ApiError(400, f"Invalid JSON body: {err}") from err
    if not isinstance(body, dict):
        raise ApiError(422, "Expected a JSON object")
    return body


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(_query_value(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def _query_string(query: Mapping[str, Any]) -> str:
    return urlencode(
        [(key, _query_value(value)) for key, value in query.items() if value is not None]
    )


def _with_query(url: str, query: Mapping[str, Any]) -> str:
    return urlunsplit(urlsplit(url)._replace(query=_query_string(query)))


async def root(request: Request) -> JSONResponse:
    """Return the landing page."""
    state = _state(request)
    url = remote_url(request)
    landing = copy.deepcopy(state.root)
    links = landing.setdefault("links", [])
    self_href = f"{url.rstrip('/')}/"
    insert_or_update(
        links,
        [
            new_link(self_href, REL_SELF, JSON),
            new_link(".", REL_ROOT, JSON),
            new_link("api", REL_SERVICE_DESC, OPEN_API_JSON, "The Open API definition"),
            new_link(
                "swagger", REL_SERVICE_DOC, HTML, "The Open API definition (Swagger UI)"
            ),
            new_link(
                "conformance",
                REL_CONFORMANCE,
                JSON,
                "Conformance classes implemented by this API",
            ),
            new_link(
                "search", REL_SEARCH, JSON, "URI for the STAC API - Item Search endpoint"
            ),
        ],
    )
    resolve_relative_links(links, self_href)
    landing["conformsTo"] = list(state.conformance.get("conformsTo", []))
    return JSONResponse(landing)


async def conformance(request: Request) -> JSONResponse:
    """Return the conformance declaration."""
    return JSONResponse(copy.deepcopy(_state(request).conformance))


async def api(request: Request) -> JSONResponse:
    """Return the OpenAPI definition as JSON."""
    return JSONResponse(_state(request).openapi.document, media_type=OPEN_API_JSON)


async def redoc(request: Request) -> HTMLResponse:
    """Return a ReDoc page for the API definition."""
    return HTMLResponse(REDOC_PAGE)


async def swagger(request: Request) -> HTMLResponse:
    """Return a Swagger UI page for the API definition."""
    return HTMLResponse(SWAGGER_PAGE)


def router(state: Any) -> list[Route]:
    """Return the routes of the landing page, conformance and API definition."""
    return [
        Route("/", root, methods=["GET"]),
        Route("/api", api, methods=["GET"]),
        Route("/redoc", redoc, methods=["GET"]),
        Route("/swagger", swagger, methods=["GET"]),
        Route("/conformance", conformance, methods=["GET"]),
    ]