"""Shared application state."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from .openapi import OpenAPI
from .processor import Processor

__all__ = ["STAC_CONFORMANCE", "Drivers", "AppState"]

Json = dict[str, Any]

STAC_CONFORMANCE = (
    "https://api.stacspec.org/v1.0.0-rc.1/core",
    "https://api.stacspec.org/v1.0.0-rc.1/item-search",
    "https://api.stacspec.org/v1.0.0-rc.1/collections",
    "https://api.stacspec.org/v1.0.0-rc.1/ogcapi-features",
    "https://api.stacspec.org/v1.0.0-rc.1/browseable",
)


@dataclass
class Drivers:
    """The drivers answering each part of the API."""

    collections: Any
    features: Any
    edr: Any
    jobs: Any
    styles: Any
    tiles: Any


class AppState:
    """Landing page, conformance, OpenAPI definition, drivers and processes."""

    def __init__(self, db: Any, openapi: OpenAPI | None = None, s3: Any = None) -> None:
        self.root: Json = {"id": "root", "description": "root", "links": []}
        self.conformance: Json = {"conformsTo": list(STAC_CONFORMANCE)}
        self.openapi = openapi if openapi is not None else OpenAPI()
        self.drivers = Drivers(
            collections=db, features=db, edr=db, jobs=db, styles=db, tiles=db
        )
        self.db = db
        self.s3 = s3
        self.processors: dict[str, Processor] = {}

    def with_root(self, root: Json) -> AppState:
        """Replace the landing page."""
        self.root = root
        return self

    def with_openapi(self, openapi: OpenAPI) -> AppState:
        """Replace the OpenAPI definition."""
        self.openapi = openapi
        return self

    def with_s3(self, s3: Any) -> AppState:
        """Replace the S3 driver."""
        self.s3 = s3
        return self

    def with_processors(self, processors: Iterable[Processor]) -> AppState:
        """Register processes under their ids."""
        for processor in processors:
            self.processors[processor.id] = processor
        return self