"""Driver storing collections and features as JSON objects in an S3 bucket.

The driver works on a boto3-style client: an object with the methods
``put_object``, ``get_object``, ``delete_object`` and ``list_objects`` taking
keyword arguments (``Bucket``, ``Key``, ``Body``, ``ContentType``).
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Mapping
from typing import Any

from .base import CollectionTransactions, FeatureTransactions
from .postgres import _feature_collection

__all__ = ["S3", "JSON", "GEO_JSON"]

JSON = "application/json"
GEO_JSON = "application/geo+json"

Json = dict[str, Any]


def _is_no_such_key(err: BaseException) -> bool:
    if type(err).__name__ == "NoSuchKey":
        return True
    response = getattr(err, "response", None)
    if isinstance(response, Mapping):
        error = response.get("Error")
        return isinstance(error, Mapping) and error.get("Code") == "NoSuchKey"
    return False


def _read_body(response: Any) -> bytes:
    body = response["Body"] if isinstance(response, Mapping) else response
    if hasattr(body, "read"):
        return body.read()
    return bytes(body)


def _collection_key(id: str) -> str:
    return f"collections/{id}/collection.json"


def _feature_key(collection: str, id: str) -> str:
    return f"collections/{collection}/items/{id}.json"


def _feature_key_of(feature: Mapping[str, Any]) -> str:
    collection = feature.get("collection")
    id = feature.get("id")
    if collection is None or id is None:
        raise ValueError("feature needs both `collection` and `id`")
    return _feature_key(collection, id)


class S3(CollectionTransactions, FeatureTransactions):
    """S3 driver."""

    def __init__(self, client: Any, bucket: str | None = None) -> None:
        self.client = client
        self.bucket = bucket

    def set_default_bucket(self, bucket: object) -> None:
        """Set the bucket used by the collection and feature operations."""
        self.bucket = str(bucket)

    @property
    def _bucket(self) -> str:
        return self.bucket or ""

    async def put_object(
        self, bucket: str, key: str, data: bytes, content_type: str | None = None
    ) -> Any:
        """Store ``data`` under ``key``."""
        kwargs: dict[str, Any] = {"Bucket": bucket, "Key": key, "Body": data}
        if content_type is not None:
            kwargs["ContentType"] = content_type
        return await asyncio.to_thread(self.client.put_object, **kwargs)

    async def get_object(self, bucket: str, key: str) -> Any:
        """Return the client's response for the object under ``key``."""
        return await asyncio.to_thread(self.client.get_object, Bucket=bucket, Key=key)

    async def delete_object(self, bucket: str, key: str) -> Any:
        """Delete the object under ``key``."""
        return await asyncio.to_thread(self.client.delete_object, Bucket=bucket, Key=key)

    async def _list_keys(self) -> list[str]:
        response = await asyncio.to_thread(self.client.list_objects, Bucket=self._bucket)
        return [obj["Key"] for obj in response.get("Contents") or [] if obj.get("Key")]

    async def _load(self, key: str) -> Any:
        return json.loads(_read_body(await self.get_object(self._bucket, key)))

    async def _load_optional(self, key: str) -> Any | None:
        try:
            response = await self.get_object(self._bucket, key)
        except Exception as err:
            if _is_no_such_key(err):
                return None
            raise
        return json.loads(_read_body(response))

    async def _store(self, key: str, document: Mapping[str, Any], content_type: str) -> None:
        await self.put_object(self._bucket, key, json.dumps(document).encode(), content_type)

    # collections

    async def create_collection(self, collection: Json) -> str:
        await self._store(_collection_key(collection["id"]), collection, JSON)
        return collection["id"]

    async def read_collection(self, id: str) -> Json | None:
        return await self._load_optional(_collection_key(id))

    async def update_collection(self, collection: Json) -> None:
        await self._store(_collection_key(collection["id"]), collection, JSON)

    async def delete_collection(self, id: str) -> None:
        await self.delete_object(self._bucket, f"collections/{id}")

    async def list_collections(self, query: Any) -> Json:
        collections = [
            await self._load(key)
            for key in await self._list_keys()
            if key.endswith("collection.json")
        ]
        return {
            "links": [],
            "collections": collections,
            "numberReturned": len(collections),
        }

    # features

    async def create_feature(self, feature: Json) -> str:
        key = _feature_key_of(feature)
        await self._store(key, feature, GEO_JSON)
        return key

    async def read_feature(self, collection: str, id: str, crs: Any) -> Json | None:
        return await self._load_optional(_feature_key(collection, id))

    async def update_feature(self, feature: Json) -> None:
        await self._store(_feature_key_of(feature), feature, GEO_JSON)

    async def delete_feature(self, collection: str, id: str) -> None:
        await self.delete_object(self._bucket, _feature_key(collection, id))

    async def list_items(self, collection: str, query: Mapping[str, Any] | None) -> Json:
        query = query or {}
        prefix = f"collections/{collection}/items/"
        keys = [
            key
            for key in await self._list_keys()
            if key.startswith(prefix) and key.endswith(".json")
        ]
        offset = int(query.get("offset") or 0)
        limit = query.get("limit")
        page = keys[offset:] if limit is None else keys[offset : offset + int(limit)]
        features = [await self._load(key) for key in page]
        return _feature_collection(features, len(keys))