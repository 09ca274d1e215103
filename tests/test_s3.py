import io
import json

import pytest

from ogckit.drivers.s3 import GEO_JSON, JSON, S3


class NoSuchKey(Exception):
    def __init__(self, key):
        super().__init__(key)
        self.response = {"Error": {"Code": "NoSuchKey"}}


class FakeS3Client:
    def __init__(self):
        self.objects = {}
        self.deleted = []

    def put_object(self, Bucket, Key, Body, ContentType=None):
        self.objects[(Bucket, Key)] = (bytes(Body), ContentType)
        return {"ETag": "etag"}

    def get_object(self, Bucket, Key):
        if (Bucket, Key) not in self.objects:
            raise NoSuchKey(Key)
        data, content_type = self.objects[(Bucket, Key)]
        return {"Body": io.BytesIO(data), "ContentType": content_type}

    def delete_object(self, Bucket, Key):
        self.deleted.append((Bucket, Key))
        self.objects.pop((Bucket, Key), None)
        return {}

    def list_objects(self, Bucket):
        return {"Contents": [{"Key": key} for bucket, key in sorted(self.objects) if bucket == Bucket]}


class DeniedClient(FakeS3Client):
    def get_object(self, Bucket, Key):
        raise PermissionError(Key)


@pytest.fixture
def client():
    return FakeS3Client()


@pytest.fixture
def driver(client):
    s3 = S3(client)
    s3.set_default_bucket("data")
    return s3


def test_set_default_bucket(client):
    s3 = S3(client)
    assert s3.bucket is None
    s3.set_default_bucket("bucket")
    assert s3.bucket == "bucket"


@pytest.mark.asyncio
async def test_collection_round_trip(driver, client):
    collection = {"id": "lakes", "type": "Collection", "links": []}
    assert await driver.create_collection(collection) == "lakes"
    assert await driver.read_collection("lakes") == collection
    stored = client.objects[("data", "collections/lakes/collection.json")]
    assert stored[1] == JSON
    assert json.loads(stored[0]) == collection


@pytest.mark.asyncio
async def test_read_missing_collection_is_none(driver):
    assert await driver.read_collection("missing") is None


@pytest.mark.asyncio
async def test_other_errors_propagate():
    s3 = S3(DeniedClient(), "data")
    with pytest.raises(PermissionError):
        await s3.read_collection("lakes")


@pytest.mark.asyncio
async def test_update_collection_replaces(driver):
    await driver.create_collection({"id": "lakes", "title": "old"})
    await driver.update_collection({"id": "lakes", "title": "new"})
    assert (await driver.read_collection("lakes"))["title"] == "new"


@pytest.mark.asyncio
async def test_delete_collection_removes_prefix_key_only(driver, client):
    collection = {"id": "lakes", "title": "kept"}
    await driver.create_collection(collection)
    await driver.delete_collection("lakes")
    assert client.deleted == [("data", "collections/lakes")]
    # Only the prefix key is deleted; the collection document itself remains.
    assert await driver.read_collection("lakes") == collection


@pytest.mark.asyncio
async def test_list_collections_only_reads_collection_documents(driver):
    await driver.create_collection({"id": "a"})
    await driver.create_collection({"id": "b"})
    await driver.create_feature({"id": "f", "collection": "a", "type": "Feature"})

    listing = await driver.list_collections({})

    assert [c["id"] for c in listing["collections"]] == ["a", "b"]
    assert listing["numberReturned"] == len(listing["collections"])


@pytest.mark.asyncio
async def test_feature_round_trip(driver, client):
    feature = {"id": "f1", "collection": "lakes", "type": "Feature", "geometry": None}
    key = await driver.create_feature(feature)
    assert key == "collections/lakes/items/f1.json"
    assert client.objects[("data", key)][1] == GEO_JSON
    assert await driver.read_feature("lakes", "f1", None) == feature


@pytest.mark.asyncio
async def test_feature_update_and_delete(driver):
    await driver.create_feature({"id": "f1", "collection": "lakes", "properties": {"a": 1}})
    await driver.update_feature({"id": "f1", "collection": "lakes", "properties": {"a": 2}})
    assert (await driver.read_feature("lakes", "f1", None))["properties"] == {"a": 2}
    await driver.delete_feature("lakes", "f1")
    assert await driver.read_feature("lakes", "f1", None) is None


@pytest.mark.asyncio
async def test_create_feature_without_id_raises(driver):
    with pytest.raises(ValueError):
        await driver.create_feature({"collection": "lakes"})


@pytest.mark.asyncio
async def test_list_items_pages(driver):
    for name in ("a", "b", "c"):
        await driver.create_feature({"id": name, "collection": "lakes"})
    await driver.create_feature({"id": "z", "collection": "rivers"})

    fc = await driver.list_items("lakes", {"limit": 2, "offset": 1})

    assert [f["id"] for f in fc["features"]] == ["b", "c"]
    assert fc["numberMatched"] == 3
    assert fc["numberReturned"] == len(fc["features"])

    everything = await driver.list_items("lakes", None)
    assert [f["id"] for f in everything["features"]] == ["a", "b", "c"]