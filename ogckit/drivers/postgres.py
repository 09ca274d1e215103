"""PostgreSQL/PostGIS driver.

The driver works on an asyncpg-style pool: an object with the coroutine methods
``execute``, ``fetch``, ``fetchrow`` and ``fetchval`` taking ``(sql, *args)``,
and a ``transaction()`` method returning an async context manager that yields
a connection with the same methods.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from typing import Any

from .base import (
    CollectionTransactions,
    FeatureTransactions,
    JobHandler,
    StyleTransactions,
    TileTransactions,
    as_srid,
)

__all__ = ["Db", "datetime_condition", "ROWS"]

Json = dict[str, Any]

ROWS = """
items.id,
items.collection,
properties,
ST_AsGeoJSON(ST_Transform(geom, $1))::jsonb AS geometry,
links,
meta.collection ->> 'stac_version' AS stac_version,
COALESCE(
    (meta.collection -> 'stac_extensions'),
    '[]'::jsonb
) AS stac_extensions,
assets,
COALESCE(
    bbox,
    array_to_json(
        ARRAY[
            st_xmin(st_transform(geom, 4326)::box2d),
            st_ymin(st_transform(geom, 4326)::box2d),
            st_xmax(st_transform(geom, 4326)::box2d),
            st_ymax(st_transform(geom, 4326)::box2d)
        ]
    )::jsonb
) as bbox
"""

_QUERY_KEYS = {"bbox", "bbox-crs", "datetime", "crs", "limit", "offset"}
_OPEN = ("", "..")


def _ident(name: str) -> str:
    return str(name).replace('"', '""')


def _decode(value: Any) -> Any:
    if isinstance(value, (str, bytes, bytearray)):
        return json.loads(value)
    return value


def _timestamp(value: str) -> str:
    return f"CAST('{value}' AS timestamptz)"


def datetime_condition(datetime: str) -> str:
    """Return the SQL condition matching items against a datetime or an interval."""
    text = str(datetime).strip()
    if "/" in text:
        start, end = (part.strip() for part in text.split("/", 1))
        lower = "to_timestamp('-infinity')" if start in _OPEN else _timestamp(start)
        upper = "NOW()" if end in _OPEN else _timestamp(end)
    else:
        lower = upper = _timestamp(text)
    return f"""
                (
                    CASE
                        WHEN (properties->'datetime') IS NOT NULL THEN (
                            CAST(properties->>'datetime' AS timestamptz)
                            BETWEEN {lower} AND {upper}
                        )
                        WHEN (
                            (properties->'datetime') IS NULL
                            AND (properties->'start_datetime') IS NOT NULL
                            AND (properties->'end_datetime') IS NOT NULL
                        ) THEN (
                            ({lower}, {upper}) OVERLAPS (
                                CAST(properties->>'start_datetime' AS timestamptz),
                                CAST(properties->>'end_datetime' AS timestamptz)
                            )
                        )
                        ELSE TRUE
                    END
                )
                """


def _bbox_values(bbox: str | Sequence[float]) -> list[str]:
    values = bbox.split(",") if isinstance(bbox, str) else list(bbox)
    values = [str(v).strip() for v in values]
    if len(values) not in (4, 6):
        raise ValueError(f"bbox must have 4 or 6 values, got {len(values)}")
    for value in values:
        float(value)
    return values


def _envelope(bbox: str | Sequence[float], srid: int) -> str:
    v = _bbox_values(bbox)
    corners = (v[0], v[1], v[2], v[3]) if len(v) == 4 else (v[0], v[1], v[3], v[4])
    return f"ST_MakeEnvelope({', '.join(corners)}, {srid})"


def _property_condition(key: str, value: Any) -> str:
    return f"""
                CASE
                    WHEN properties ? '{key}' THEN (
                        CASE
                            WHEN jsonb_typeof(properties -> '{key}') = 'number'
                            THEN RTRIM(properties ->> '{key}', '.0') = RTRIM('{value}', '.0')
                            ELSE properties ->> '{key}' = '{value}'
                        END
                    ) 
                    ELSE TRUE
                END
                """


def _storage_srid(collection: Mapping[str, Any]) -> int:
    return as_srid(collection.get("storageCrs"))


def _feature_collection(features: list[Json], number_matched: int) -> Json:
    return {
        "type": "FeatureCollection",
        "features": features,
        "links": [],
        "numberMatched": number_matched,
        "numberReturned": len(features),
    }


class Db(
    CollectionTransactions,
    FeatureTransactions,
    JobHandler,
    StyleTransactions,
    TileTransactions,
):
    """Driver storing collections, features, jobs and styles in PostGIS."""

    def __init__(self, pool: Any) -> None:
        self.pool = pool

    # collections

    async def create_collection(self, collection: Json) -> str:
        cid = collection["id"]
        table = _ident(cid)
        default = str(cid).replace("'", "''")
        async with self.pool.transaction() as conn:
            await conn.execute(
                f"""
            CREATE TABLE items."{table}" (
                id text PRIMARY KEY DEFAULT gen_random_uuid()::text,
                collection text REFERENCES meta.collections(id) DEFAULT '{default}',
                properties jsonb,
                geom geometry NOT NULL,
                links jsonb NOT NULL DEFAULT '[]'::jsonb,
                assets jsonb NOT NULL DEFAULT '{{}}'::jsonb,
                bbox jsonb
            )
            """
            )
            for method in ("btree (collection)", "gin (properties)", "gist (geom)"):
                await conn.execute(f'CREATE INDEX ON items."{table}" USING {method}')
            await conn.execute(
                "SELECT UpdateGeometrySRID('items', $1, 'geom', $2)",
                cid,
                _storage_srid(collection),
            )
            await conn.execute(
                "INSERT INTO meta.collections ( id, collection ) VALUES ( $1, $2 )",
                cid,
                json.dumps(collection),
            )
        return cid

    async def read_collection(self, id: str) -> Json | None:
        value = await self.pool.fetchval(
            "SELECT collection FROM meta.collections WHERE id = $1", id
        )
        return None if value is None else _decode(value)

    async def update_collection(self, collection: Json) -> None:
        await self.pool.execute(
            "UPDATE meta.collections SET collection = $2 WHERE id = $1",
            collection["id"],
            json.dumps(collection),
        )

    async def delete_collection(self, id: str) -> None:
        async with self.pool.transaction() as conn:
            await conn.execute(f'DROP TABLE IF EXISTS items."{_ident(id)}"')
            await conn.execute("DELETE FROM meta.collections WHERE id = $1", id)

    async def list_collections(self, query: Any) -> Json:
        value = await self.pool.fetchval(
            """
            SELECT array_to_json(array_agg(collection))
            FROM meta.collections
            WHERE collection ->> 'type' = 'Collection'
            """
        )
        collections = [] if value is None else _decode(value)
        return {
            "links": [],
            "collections": collections,
            "numberMatched": len(collections),
            "numberReturned": len(collections),
        }

    # features

    async def create_feature(self, feature: Json) -> str:
        collection = feature.get("collection")
        if collection is None:
            raise ValueError("feature has no collection")
        return await self.pool.fetchval(
            f"""
            INSERT INTO items."{_ident(collection)}" (
                id,
                properties,
                geom,
                links,
                assets,
                bbox
            ) VALUES (
                COALESCE($1 ->> 'id', gen_random_uuid()::text),
                $1 -> 'properties',
                ST_GeomFromGeoJSON($1 -> 'geometry'),
                $1 -> 'links',
                COALESCE($1 -> 'assets', '{{}}'::jsonb),
                $1 -> 'bbox'
            )
            RETURNING id
            """,
            json.dumps(feature),
        )

    async def read_feature(self, collection: str, id: str, crs: Any) -> Json | None:
        value = await self.pool.fetchval(
            f"""
            SELECT row_to_json(t)
            FROM (
                SELECT {ROWS}
                FROM items."{_ident(collection)}" items JOIN meta.collections meta
                    ON items.collection = meta.id
                WHERE items.id = $2
            ) t
            """,
            as_srid(crs),
            id,
        )
        return None if value is None else _decode(value)

    async def update_feature(self, feature: Json) -> None:
        collection = feature.get("collection")
        if collection is None:
            raise ValueError("feature has no collection")
        await self.pool.execute(
            f"""
            UPDATE items."{_ident(collection)}"
            SET
                properties = $1 -> 'properties',
                geom = ST_GeomFromGeoJSON($1 -> 'geometry'),
                links = $1 -> 'links',
                assets = COALESCE($1 -> 'assets', '{{}}'::jsonb)
            WHERE id = $1 ->> 'id'
            """,
            json.dumps(feature),
        )

    async def delete_feature(self, collection: str, id: str) -> None:
        await self.pool.execute(
            f'DELETE FROM items."{_ident(collection)}" WHERE id = $1', id
        )

    async def list_items(self, collection: str, query: Mapping[str, Any]) -> Json:
        table = _ident(collection)
        conditions = ["TRUE"]

        bbox = query.get("bbox")
        if bbox is not None:
            stored = await self.read_collection(collection)
            if stored is None:
                raise LookupError(f"collection `{collection}` does not exist")
            envelope = _envelope(bbox, as_srid(query.get("bbox-crs")))
            conditions.append(f"geom && ST_Transform({envelope}, {_storage_srid(stored)})")

        datetime = query.get("datetime")
        if datetime is not None:
            conditions.append(datetime_condition(datetime))

        for key, value in query.items():
            if key not in _QUERY_KEYS and value is not None:
                conditions.append(_property_condition(key, value))

        where = " AND ".join(conditions)

        number_matched = await self.pool.fetchval(
            f"""
            SELECT count(*) FROM items."{table}"
            WHERE {where}
            """
        )

        limit = query.get("limit")
        limit_sql = "NULL" if limit is None else str(int(limit))
        offset = int(query.get("offset") or 0)
        value = await self.pool.fetchval(
            f"""
            SELECT array_to_json(array_agg(row_to_json(t)))
            FROM (
                SELECT {ROWS}
                FROM items."{table}" items JOIN meta.collections meta
                    ON items.collection = meta.id
                WHERE {where}
                LIMIT {limit_sql}
                OFFSET {offset}
            ) t
            """,
            as_srid(query.get("crs")),
        )
        features = [] if value is None else _decode(value)
        return _feature_collection(features, int(number_matched))

    # jobs

    async def register(self, job: Json) -> str:
        return await self.pool.fetchval(
            """
            INSERT INTO meta.jobs(
                job_id, process_id, status, created, updated, links
            )
            VALUES (
                $1 ->> 'jobID', $1 ->> 'processID', $1 -> 'status', NOW(), NOW(), $1 -> 'links'
            )
            RETURNING job_id
            """,
            json.dumps(job),
        )

    async def status(self, id: str) -> Json | None:
        value = await self.pool.fetchval(
            "SELECT row_to_json(jobs) FROM meta.jobs WHERE job_id = $1", id
        )
        return None if value is None else _decode(value)

    async def dismiss(self, id: str) -> Json | None:
        value = await self.pool.fetchval(
            """
            UPDATE meta.jobs
            SET status = $2,
                message = 'Job dismissed'
            WHERE job_id = $1 AND status <@ '["accepted", "running"]'::jsonb
            RETURNING row_to_json(jobs)
            """,
            id,
            json.dumps("dismissed"),
        )
        return None if value is None else _decode(value)

    async def results(self, id: str) -> Any | None:
        value = await self.pool.fetchval(
            "SELECT results FROM meta.jobs WHERE job_id = $1", id
        )
        return None if value is None else _decode(value)

    # styles

    async def list_styles(self) -> Json:
        value = await self.pool.fetchval(
            """
            SELECT array_to_json(array_agg(row_to_json(t)))
            FROM (
                SELECT id, title, links FROM meta.styles
            ) t
            """
        )
        return {"styles": [] if value is None else _decode(value)}

    async def read_style(self, id: str) -> Any | None:
        value = await self.pool.fetchval(
            """
            SELECT row_to_json(t)
            FROM (
                SELECT id, value FROM meta.styles WHERE id = $1
            ) t
            """,
            id,
        )
        return None if value is None else _decode(value).get("value")

    # tiles

    async def tile(
        self, collections: str, tms: Any, matrix: str, row: int, col: int
    ) -> bytes:
        zoom = int(matrix)
        queries = []
        for name in collections.split(","):
            stored = await self.read_collection(name)
            if stored is None:
                continue
            queries.append(
                f"""
                    SELECT ST_AsMVT(mvtgeom, '{name}', 4096, 'geom')
                    FROM (
                        SELECT
                            ST_AsMVTGeom(ST_Transform(ST_Force2D(geom), 3857), ST_TileEnvelope($1, $3, $2), 4096, 64, TRUE) AS geom,
                            '{name}' as collection,
                            properties
                        FROM items."{_ident(name)}"
                        WHERE geom && ST_Transform(ST_TileEnvelope($1, $3, $2, margin => (64.0 / 4096)), {_storage_srid(stored)})
                    ) AS mvtgeom
                    """
            )
        if not queries:
            raise LookupError(f"no collection found for `{collections}`")
        rows = await self.pool.fetch(" UNION ALL ".join(queries), zoom, int(row), int(col))
        return b"".join(bytes(r[0]) if isinstance(r, (tuple, list)) else bytes(r) for r in rows)