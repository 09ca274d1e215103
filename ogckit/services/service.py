"""The web application, the server around it and the command that starts it."""

from __future__ import annotations

import asyncio
import logging
import socket
import uuid
from collections.abc import Sequence
from typing import Any

import uvicorn
from dotenv import load_dotenv
from starlette.applications import Starlette
from starlette.exceptions import HTTPException
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from ..drivers.pgquery import QueryDb
from .config import Config, init_logging, parse_config
from .errors import ApiError, NotFound
from .openapi import OpenAPI
from .routes import collections, common, edr, features, processes, stac, styles
from .state import AppState

__all__ = ["REQUEST_ID", "Service", "create_app", "main"]

log = logging.getLogger(__name__)

REQUEST_ID = "x-request-id"
_REQUEST_ID = REQUEST_ID.encode()


class _RequestIdMiddleware:
    """Give every request an id and echo it on the response."""

    def __init__(self, app: Any) -> None:
        self.app = app

    async def __call__(self, scope: dict, receive: Any, send: Any) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return
        headers = list(scope.get("headers", []))
        request_id = next((v for k, v in headers if k.lower() == _REQUEST_ID), None)
        if request_id is None:
            request_id = str(uuid.uuid4()).encode()
            headers.append((_REQUEST_ID, request_id))
            scope = {**scope, "headers": headers}

        async def send_with_id(message: dict) -> None:
            if message["type"] == "http.response.start":
                response_headers = [
                    (k, v) for k, v in message.get("headers", []) if k.lower() != _REQUEST_ID
                ]
                response_headers.append((_REQUEST_ID, request_id))
                message = {**message, "headers": response_headers}
            await send(message)

        await self.app(scope, receive, send_with_id)


async def _api_error(request: Request, exc: ApiError) -> Response:
    return exc.to_response()


async def _not_found(request: Request, exc: HTTPException) -> Response:
    return NotFound().to_response()


async def _unexpected(request: Request, exc: Exception) -> Response:
    log.error("Unhandled error: %r", exc)
    detail = str(exc) or "Unknown error"
    return JSONResponse({"type": "about:blank", "status": 500, "detail": detail}, status_code=500)


def create_app(state: AppState) -> Starlette:
    """Build the application serving every part of the API from ``state``."""
    routes = [
        *common.router(state),
        *collections.router(state),
        *stac.router(state),
        *features.router(state),
        *edr.router(state),
        *styles.router(state),
        *processes.router(state),
    ]
    app = Starlette(
        routes=routes,
        middleware=[
            Middleware(_RequestIdMiddleware),
            Middleware(
                CORSMiddleware,
                allow_origins=["*"],
                allow_methods=["*"],
                allow_headers=["*"],
                expose_headers=["*"],
            ),
            Middleware(GZipMiddleware, minimum_size=500),
        ],
        exception_handlers={
            ApiError: _api_error,
            404: _not_found,
            Exception: _unexpected,
        },
    )
    app.state.ogc = state
    return app


class Service:
    """The application bound to its listening socket."""

    def __init__(self, config: Config, state: AppState) -> None:
        self.state = state
        self.app = create_app(state)
        self._socket = socket.create_server((config.host, config.port))

    def local_addr(self) -> tuple[str, int]:
        """Return the host and port the service listens on."""
        host, port = self._socket.getsockname()[:2]
        return host, port

    def close(self) -> None:
        """Release the listening socket."""
        self._socket.close()

    def __enter__(self) -> Service:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    async def serve(self) -> None:
        """Serve until interrupted, then shut down gracefully."""
        host, port = self.local_addr()
        log.info("listening on http://%s:%s", host, port)
        server = uvicorn.Server(uvicorn.Config(self.app, log_config=None, lifespan="off"))
        try:
            await server.serve(sockets=[self._socket])
        finally:
            self.close()


def _open_pool(database_url: str) -> Any:
    raise RuntimeError(
        f"cannot connect to `{database_url}`: no PostgreSQL client is available; "
        "build a Service from an AppState holding a connected driver instead"
    )


def main(argv: Sequence[str] | None = None) -> None:
    """Read the configuration and serve the API."""
    load_dotenv()
    init_logging()
    config = parse_config(argv)
    openapi = OpenAPI.from_path(config.openapi) if config.openapi else OpenAPI()
    state = AppState(QueryDb(_open_pool(config.database_url)), openapi)
    with Service(config, state) as service:
        asyncio.run(service.serve())