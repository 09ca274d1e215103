"""API errors rendered as problem documents, and request helpers."""

from __future__ import annotations

import logging
import re
from http import HTTPStatus
from typing import Any
from urllib.parse import parse_qsl, urlsplit

from starlette.requests import Request
from starlette.responses import JSONResponse

__all__ = ["PROBLEM_JSON", "ApiError", "NotFound", "remote_url", "parse_query"]

log = logging.getLogger(__name__)

PROBLEM_JSON = "application/problem+json"
INTERNAL_ERROR = "an internal server error occurred"

_KEY = re.compile(r"^([^\[\]]+)((?:\[[^\[\]]*\])*)$")
_SEGMENT = re.compile(r"\[([^\[\]]*)\]")


class ApiError(Exception):
    """An error that is answered with a status code and a problem document."""

    def __init__(self, status: int = HTTPStatus.INTERNAL_SERVER_ERROR, detail: Any = None) -> None:
        self.status = int(status)
        self.detail = INTERNAL_ERROR if detail is None else str(detail)
        super().__init__(self.detail)

    def to_response(self) -> JSONResponse:
        """Return the problem document response for this error."""
        if self.status >= 500:
            log.error("Internal error: %s", self.detail)
        else:
            log.debug("OGCAPI exception: %s", self.detail)
        body = {"type": "about:blank", "status": self.status, "detail": self.detail}
        return JSONResponse(body, status_code=self.status, media_type=PROBLEM_JSON)


class NotFound(ApiError):
    """The requested resource does not exist."""

    def __init__(self) -> None:
        super().__init__(HTTPStatus.NOT_FOUND, "not found")


def remote_url(request: Request) -> str:
    """Return the URL the client used, honouring ``X-Forwarded-Proto``."""
    host = request.headers.get("host")
    if not host:
        log.error("Unable to extract host")
        raise ApiError()
    proto = request.headers.get("x-forwarded-proto", "http")
    raw_path = request.scope.get("raw_path")
    path = raw_path.decode("latin-1") if raw_path else request.url.path
    query = request.scope.get("query_string", b"").decode("latin-1")
    url = f"{proto}://{host}{path or '/'}"
    if query:
        url = f"{url}?{query}"
    try:
        parts = urlsplit(url)
        parts.port  # noqa: B018 - validates the port
    except ValueError as err:
        log.error("Url error: %s", err)
        raise ApiError() from err
    if not parts.hostname:
        log.error("Url error: empty host in `%s`", url)
        raise ApiError()
    return url


def _segments(key: str) -> list[str]:
    match = _KEY.match(key)
    if match is None:
        return [key]
    return [match.group(1), *_SEGMENT.findall(match.group(2))]


def _slot(node: dict[str, Any], segment: str) -> str:
    return str(len(node)) if segment == "" else segment


def _insert(node: dict[str, Any], key: str, value: str) -> None:
    *parents, last = _segments(key)
    for segment in parents:
        child = node.setdefault(_slot(node, segment), {})
        if not isinstance(child, dict):
            raise ValueError(f"conflicting values for `{key}`")
        node = child
    slot = _slot(node, last)
    if isinstance(node.get(slot), dict):
        raise ValueError(f"conflicting values for `{key}`")
    node[slot] = value


def _finalize(value: Any) -> Any:
    if not isinstance(value, dict):
        return value
    items = {key: _finalize(child) for key, child in value.items()}
    if items and all(key.isdigit() for key in items):
        return [items[key] for key in sorted(items, key=int)]
    return items


def parse_query(request: Request) -> dict[str, Any]:
    """Decode the query string, with ``a[b]=c`` and ``a[0]=c`` nesting."""
    qs = request.scope.get("query_string", b"").decode("latin-1")
    if not qs:
        return {}
    tree: dict[str, Any] = {}
    try:
        for key, value in parse_qsl(qs, keep_blank_values=True, strict_parsing=True):
            _insert(tree, key, value)
    except ValueError as err:
        raise ApiError(HTTPStatus.BAD_REQUEST, str(err)) from err
    return {key: _finalize(value) for key, value in tree.items()}