"""Routes for processes and their jobs."""

from __future__ import annotations

from http import HTTPStatus
from typing import Any
from urllib.parse import urlsplit, urlunsplit

from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from ..errors import ApiError, parse_query, remote_url
from .common import (
    JSON,
    REL_NEXT,
    REL_PREV,
    REL_SELF,
    _add_root_link,
    _extend_conformance,
    _json_body,
    _state,
    _with_query,
    new_link,
)

__all__ = [
    "CONFORMANCE",
    "REL_PROCESSES",
    "processes",
    "process",
    "execution",
    "jobs",
    "status",
    "delete",
    "results",
    "router",
]

CONFORMANCE = (
    "http://www.opengis.net/spec/ogcapi-processes-1/1.0/conf/core",
    "http://www.opengis.net/spec/ogcapi-processes-1/1.0/conf/ogc-process-description",
    "http://www.opengis.net/spec/ogcapi-processes-1/1.0/conf/json",
    "http://www.opengis.net/spec/ogcapi-processes-1/1.0/conf/dismiss",
)

REL_PROCESSES = "http://www.opengis.net/def/rel/ogc/1.0/processes"

_DESCRIPTION_ONLY = ("inputs", "outputs")


def _count(query: dict[str, Any], key: str) -> int | None:
    if key not in query:
        return None
    try:
        value = int(query[key])
    except (TypeError, ValueError) as err:
        raise ApiError(HTTPStatus.BAD_REQUEST, f"invalid value for query parameter `{key}`") from err
    if value < 0:
        raise ApiError(HTTPStatus.BAD_REQUEST, f"query parameter `{key}` must not be negative")
    return value


def _summary(description: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in description.items() if key not in _DESCRIPTION_ONLY}


def _without_query(url: str) -> str:
    return urlunsplit(urlsplit(url)._replace(query="", fragment=""))


def _processor(state: Any, id: str) -> Any:
    processor = state.processors.get(id)
    if processor is None:
        raise ApiError(HTTPStatus.NOT_FOUND, f"No process with id `{id}`")
    return processor


def _no_job(id: str) -> ApiError:
    return ApiError(HTTPStatus.NOT_FOUND, f"No job with id `{id}`")


async def processes(request: Request) -> JSONResponse:
    """Return a page of process summaries, with paging links when a limit is given."""
    state = _state(request)
    url = remote_url(request)
    query = parse_query(request)
    requested = _count(query, "limit")
    offset = _count(query, "offset") or 0

    registered = list(state.processors.values())
    limit = len(registered) if requested is None else requested
    summaries = [_summary(p.process()) for p in registered[offset : offset + limit]]

    links = [new_link(url, REL_SELF, JSON)]
    if requested is not None:
        if offset != 0 and offset >= limit:
            previous = _with_query(url, {**query, "limit": limit, "offset": offset - limit})
            links.append(new_link(previous, REL_PREV, JSON))
        if len(summaries) == limit:
            following = _with_query(url, {**query, "limit": limit, "offset": offset + limit})
            links.append(new_link(following, REL_NEXT, JSON))

    base = _without_query(url)
    for summary in summaries:
        summary["links"] = [
            new_link(f"{base}/{summary['id']}", REL_SELF, JSON, "process description")
        ]

    return JSONResponse({"processes": summaries, "links": links})


async def process(request: Request) -> JSONResponse:
    """Return the description of one process."""
    state = _state(request)
    url = remote_url(request)
    description = _processor(state, request.path_params["id"]).process()
    description["links"] = [new_link(url, REL_SELF, JSON)]
    return JSONResponse(description)


async def execution(request: Request) -> Response:
    """Execute a process with the posted inputs."""
    state = _state(request)
    url = remote_url(request)
    processor = _processor(state, request.path_params["id"])
    execute = await _json_body(request)
    return await processor.execute(execute, state, url)


async def jobs(request: Request) -> JSONResponse:
    """Answer the job list endpoint, which no driver supports."""
    raise ApiError(HTTPStatus.NOT_IMPLEMENTED, "Listing jobs is not supported")


async def status(request: Request) -> JSONResponse:
    """Return the status info of a job."""
    state = _state(request)
    url = remote_url(request)
    id = request.path_params["id"]
    info = await state.drivers.jobs.status(id)
    if info is None:
        raise _no_job(id)
    info["links"] = [new_link(url, REL_SELF, JSON)]
    return JSONResponse(info)


async def delete(request: Request) -> JSONResponse:
    """Dismiss a pending job."""
    state = _state(request)
    id = request.path_params["id"]
    info = await state.drivers.jobs.dismiss(id)
    if info is None:
        raise _no_job(id)
    return JSONResponse(info)


async def results(request: Request) -> JSONResponse:
    """Return the results of a job."""
    state = _state(request)
    id = request.path_params["id"]
    found = await state.drivers.jobs.results(id)
    if found is None:
        raise _no_job(id)
    return JSONResponse(found)


def router(state: Any) -> list[Route]:
    """Register the processes link and conformance classes, and return the routes."""
    _add_root_link(
        state, new_link("processes", REL_PROCESSES, JSON, "Metadata about the processes")
    )
    _extend_conformance(state, CONFORMANCE)
    return [
        Route("/processes", processes, methods=["GET"]),
        Route("/processes/{id}", process, methods=["GET"]),
        Route("/processes/{id}/execution", execution, methods=["POST"]),
        Route("/jobs", jobs, methods=["GET"]),
        Route("/jobs/{id}", status, methods=["GET"]),
        Route("/jobs/{id}", delete, methods=["DELETE"]),
        Route("/jobs/{id}/results", results, methods=["GET"]),
    ]