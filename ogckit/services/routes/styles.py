"""Routes for styles."""

from __future__ import annotations

from typing import Any

from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from ..errors import NotFound
from .common import _state

__all__ = ["styles", "read_style", "router"]


async def styles(request: Request) -> JSONResponse:
    """Return the list of styles."""
    return JSONResponse(await _state(request).drivers.styles.list_styles())


async def read_style(request: Request) -> JSONResponse:
    """Return one stylesheet."""
    style = await _state(request).drivers.styles.read_style(request.path_params["id"])
    if style is None:
        raise NotFound()
    return JSONResponse(style)


def router(state: Any) -> list[Route]:
    """Return the style routes."""
    return [
        Route("/styles", styles, methods=["GET"]),
        Route("/styles/{id}", read_style, methods=["GET"]),
    ]