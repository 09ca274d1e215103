"""Blocking client for OGC API endpoints and SpatioTemporal Asset Catalogs."""

from __future__ import annotations

import copy
import json
import logging
from collections.abc import Iterator, Mapping
from typing import Any
from urllib.parse import urlencode, urljoin, urlparse

import requests

__all__ = [
    "OgcClientError",
    "RequestError",
    "UnknownConformanceError",
    "DeserializationError",
    "ClientError",
    "Client",
    "resolve_relative_links",
]

log = logging.getLogger(__name__)

UA_STRING = "OGCAPI-CLIENT"

REL_SELF = "self"
REL_CHILD = "child"
REL_ITEM = "item"
REL_DATA = "data"
REL_NEXT = "next"
REL_CONFORMANCE = "conformance"

Json = dict[str, Any]


class OgcClientError(Exception):
    """Base class for errors raised while fetching and decoding entities."""

    template = "{0}"

    def __init__(self, detail: object = "") -> None:
        super().__init__(detail)
        self.detail = detail

    def __str__(self) -> str:
        return self.template.format(self.detail)


class RequestError(OgcClientError):
    """A request failed, returned an error status or a body that is not JSON."""

    template = "Encountered a request error: {0}"


class UnknownConformanceError(OgcClientError):
    """The conformance declaration could not be found."""

    template = "Encountered a conformance error: `{0}`"


class DeserializationError(OgcClientError):
    """A fetched document does not have the expected shape."""

    template = "Encountered a serialization error: {0}"


class ClientError(OgcClientError):
    """The endpoint does not offer what the client asked for."""

    template = "Encountered a client error: {0}"


def _is_absolute(href: str) -> bool:
    return bool(urlparse(href).scheme)


def resolve_relative_links(links: list[Mapping[str, Any]], base: str) -> list[Json]:
    """Return copies of ``links`` with relative ``href`` values joined onto ``base``."""
    if not _is_absolute(base):
        raise ClientError(f"Unable to parse base url `{base}`")
    resolved = []
    for link in links:
        link = dict(link)
        href = link.get("href")
        if isinstance(href, str) and not _is_absolute(href):
            link["href"] = urljoin(base, href)
        resolved.append(link)
    return resolved


def _find_link(links: list[Mapping[str, Any]], rel: str) -> Mapping[str, Any] | None:
    return next((link for link in links if link.get("rel") == rel), None)


def _checked_links(entity: Mapping[str, Any]) -> list[Json]:
    links = entity.get("links", [])
    if not isinstance(links, list):
        raise DeserializationError("`links` is not a list")
    for link in links:
        if not isinstance(link, dict) or not isinstance(link.get("href"), str):
            raise DeserializationError("link without a string `href`")
    return links


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(_query_value(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def _to_query_string(params: Mapping[str, Any]) -> str:
    return urlencode(
        [(key, _query_value(value)) for key, value in params.items() if value is not None]
    )


class Client:
    """Client to access OGC APIs and/or SpatioTemporal Asset Catalogs (STAC)."""

    def __init__(self, endpoint: str) -> None:
        if not endpoint.endswith("/"):
            endpoint = f"{endpoint}/"
        parsed = urlparse(endpoint)
        if not parsed.scheme or not parsed.netloc:
            raise ClientError(f"Unable to parse endpoint url `{endpoint}`")
        self.endpoint = endpoint
        self._session = requests.Session()
        self._session.headers["User-Agent"] = UA_STRING
        self._root: Json | None = None

    def _fetch(self, url: str) -> Any:
        log.debug("Fetching %s", url)
        try:
            response = self._session.get(url)
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as err:
            raise RequestError(err) from err

    def root(self) -> Json:
        """Return the landing page or the root catalog; it is fetched once."""
        if self._root is None:
            self._root = self._fetch(self.endpoint)
        return copy.deepcopy(self._root)

    def conformance(self) -> Json:
        """Return the conformance declaration of the endpoint."""
        catalog = self.root()
        conforms_to = catalog.get("conformsTo")
        if conforms_to:
            return {"conformsTo": conforms_to}
        link = _find_link(catalog.get("links", []), REL_CONFORMANCE)
        if link is not None:
            return self._fetch(link["href"])
        raise UnknownConformanceError("Unable to retrieve conformance.")

    def catalogs(self) -> Iterator[Json]:
        """Iterate over the catalogs reachable from the root through child links."""
        return self._catalogs([{"href": self.endpoint, "rel": REL_SELF}])

    def _catalogs(self, links: list[Json]) -> Iterator[Json]:
        while links:
            href = links.pop()["href"]
            catalog = self._fetch(href)
            if not isinstance(catalog, dict) or catalog.get("type") != "Catalog":
                continue
            catalog["links"] = resolve_relative_links(_checked_links(catalog), href)
            links.extend(link for link in catalog["links"] if link.get("rel") == REL_CHILD)
            yield catalog

    def collections(self) -> Iterator[Json]:
        """Iterate over the collections, following `next` links."""
        link = _find_link(self.root().get("links", []), REL_DATA)
        if link is None:
            raise ClientError("No link found with relation `data`!")
        page = self._fetch(link["href"])
        return self._paginate(page, "collections")

    def collection(self, id: str) -> Json:
        """Return the collection with the given id."""
        return self._fetch(urljoin(self.endpoint, f"collections/{id}"))

    def items(self, id: str) -> Iterator[Json]:
        """Iterate over the items of a collection, following `next` links."""
        page = self._fetch(urljoin(self.endpoint, f"collections/{id}/items"))
        return self._paginate(page, "features")

    def walk(self) -> Iterator[Json]:
        """Iterate over every catalog, collection and item below the root."""
        return self._walk([{"href": self.endpoint, "rel": REL_SELF}])

    def _walk(self, links: list[Json]) -> Iterator[Json]:
        while links:
            href = links.pop()["href"]
            entity = self._fetch(href)
            kind = entity.get("type") if isinstance(entity, dict) else None
            if kind not in ("Catalog", "Collection", "Feature"):
                raise ClientError("Unknown STAC entity!")
            if kind in ("Catalog", "Collection") and "id" not in entity:
                raise DeserializationError(f"{kind} without `id`")
            entity["links"] = resolve_relative_links(_checked_links(entity), href)
            links.extend(
                link for link in entity["links"] if link.get("rel") in (REL_CHILD, REL_ITEM)
            )
            yield entity

    def search(self, params: Mapping[str, Any]) -> Iterator[Json]:
        """Run an item search and iterate over the matching items."""
        url = f"{self.endpoint}search?{_to_query_string(params)}"
        page = self._fetch(url)
        return self._paginate(page, "features")

    def _paginate(self, page: Json, key: str) -> Iterator[Json]:
        while True:
            yield from page.get(key, [])
            link = _find_link(page.get("links", []), REL_NEXT)
            if link is None:
                return
            page = self._fetch(link["href"])
            if not page.get(key):
                return