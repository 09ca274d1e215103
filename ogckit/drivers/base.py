"""Interfaces that storage drivers implement, and CRS helpers shared by them."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Any

__all__ = [
    "DEFAULT_CRS",
    "CollectionTransactions",
    "FeatureTransactions",
    "StacSearch",
    "EdrQuerier",
    "JobHandler",
    "StyleTransactions",
    "TileTransactions",
    "as_srid",
]

DEFAULT_CRS = "http://www.opengis.net/def/crs/OGC/1.3/CRS84"

_OGC_SRIDS = {"CRS84": 4326, "CRS84h": 4979}
_EPSG_CODE = re.compile(r"EPSG(?::|::|/0/|/)(\d+)$", re.IGNORECASE)

Json = dict[str, Any]


def as_srid(crs: str | int | None) -> int:
    """Return the spatial reference id for a CRS given as URI, URN, ``EPSG:n`` or int.

    ``None`` stands for the default CRS (CRS84), which maps to 4326.
    """
    if crs is None:
        return _OGC_SRIDS["CRS84"]
    if isinstance(crs, bool):
        raise ValueError(f"Unsupported CRS `{crs}`")
    if isinstance(crs, int):
        return crs
    text = str(crs).strip()
    for name, srid in _OGC_SRIDS.items():
        if text.endswith(f"/{name}") or text.endswith(f":{name}") or text == name:
            return srid
    match = _EPSG_CODE.search(text)
    if match is None:
        raise ValueError(f"Unsupported CRS `{crs}`")
    return int(match.group(1))


class CollectionTransactions(ABC):
    """Storage of collection metadata."""

    @abstractmethod
    async def create_collection(self, collection: Json) -> str:
        """Store a new collection and return its id."""

    @abstractmethod
    async def read_collection(self, id: str) -> Json | None:
        """Return the collection with the given id, or ``None``."""

    @abstractmethod
    async def update_collection(self, collection: Json) -> None:
        """Replace the stored metadata of a collection."""

    @abstractmethod
    async def delete_collection(self, id: str) -> None:
        """Remove a collection."""

    @abstractmethod
    async def list_collections(self, query: Any) -> Json:
        """Return a collections document."""


class FeatureTransactions(ABC):
    """Storage of features."""

    @abstractmethod
    async def create_feature(self, feature: Json) -> str:
        """Store a new feature and return its id."""

    @abstractmethod
    async def read_feature(self, collection: str, id: str, crs: Any) -> Json | None:
        """Return a feature in the requested CRS, or ``None``."""

    @abstractmethod
    async def update_feature(self, feature: Json) -> None:
        """Replace a stored feature."""

    @abstractmethod
    async def delete_feature(self, collection: str, id: str) -> None:
        """Remove a feature."""

    @abstractmethod
    async def list_items(self, collection: str, query: Any) -> Json:
        """Return a feature collection matching the query."""


class StacSearch(ABC):
    """STAC item search."""

    @abstractmethod
    async def search(self, params: Any) -> Json:
        """Return a feature collection matching the search parameters."""


class EdrQuerier(ABC):
    """Environmental Data Retrieval queries."""

    @abstractmethod
    async def query(self, collection_id: str, query_type: Any, query: Any) -> Json:
        """Return a feature collection answering an EDR query."""


class JobHandler(ABC):
    """Storage of process jobs."""

    @abstractmethod
    async def register(self, job: Json) -> str:
        """Store a job and return its id."""

    @abstractmethod
    async def status(self, id: str) -> Json | None:
        """Return the status info of a job, or ``None``."""

    @abstractmethod
    async def dismiss(self, id: str) -> Json | None:
        """Dismiss a pending job and return its status info, or ``None``."""

    @abstractmethod
    async def results(self, id: str) -> Any | None:
        """Return the results of a job, or ``None``."""


class StyleTransactions(ABC):
    """Storage of styles."""

    @abstractmethod
    async def list_styles(self) -> Json:
        """Return the styles document."""

    @abstractmethod
    async def read_style(self, id: str) -> Any | None:
        """Return the stylesheet with the given id, or ``None``."""


class TileTransactions(ABC):
    """Vector tile generation."""

    @abstractmethod
    async def tile(
        self, collections: str, tms: Any, matrix: str, row: int, col: int
    ) -> bytes:
        """Return the encoded tile for the given collections and position."""