"""EDR queries and STAC item search on the PostGIS driver."""

from __future__ import annotations

import enum
import functools
import json
from collections.abc import Mapping, Sequence
from typing import Any

import pint

from .base import EdrQuerier, StacSearch, as_srid
from .postgres import Db, _decode, _envelope, _feature_collection, _ident, datetime_condition

__all__ = ["QueryType", "QueryDb", "distance_in_meters", "spatial_predicate"]

Json = dict[str, Any]


class QueryType(str, enum.Enum):
    """The kinds of EDR queries."""

    POSITION = "position"
    RADIUS = "radius"
    AREA = "area"
    CUBE = "cube"
    TRAJECTORY = "trajectory"
    CORRIDOR = "corridor"
    LOCATIONS = "locations"


@functools.lru_cache(maxsize=None)
def _registry() -> pint.UnitRegistry:
    return pint.UnitRegistry()


def distance_in_meters(value: str | float | None = None, units: str | None = None) -> float:
    """Convert a distance given in ``units`` to meters; defaults are ``0`` and ``m``."""
    value = "0" if value is None else value
    units = "m" if units is None else units
    try:
        quantity = _registry().Quantity(float(value), str(units))
        return float(quantity.to("meter").magnitude)
    except (
        pint.UndefinedUnitError,
        pint.DimensionalityError,
        ValueError,
        TypeError,
        AttributeError,
        KeyError,
        SyntaxError,
    ) as err:
        raise ValueError(f"Failed to parse & convert distance `{value} {units}`") from err


def _is_three_dimensional(coords: str) -> bool:
    geometry_type = "".join(coords.split("(", 1)[0].upper().split())
    return geometry_type.endswith(("Z", "M"))


def spatial_predicate(
    query_type: QueryType | str,
    coords: str,
    srid: int,
    storage_srid: int,
    within: str | float | None = None,
    within_units: str | None = None,
) -> str:
    """Return the SQL condition selecting the geometries an EDR query asks for."""
    kind = QueryType(query_type)
    three_d = _is_three_dimensional(coords)
    geometry = f"ST_GeomFromEWKT('SRID={srid};{coords}')"

    if kind in (QueryType.POSITION, QueryType.AREA, QueryType.TRAJECTORY):
        function = "ST_3DIntersects" if three_d else "ST_Intersects"
        return f"{function}(geom, ST_Transform({geometry}, {storage_srid}))"

    if kind is QueryType.RADIUS:
        distance = distance_in_meters(within, within_units)
        if three_d:
            return f"ST_3DDWithin(geom, ST_Transform({geometry}, {storage_srid}), {distance})"
        return (
            "ST_DWithin(ST_Transform(geom, 4326)::geography, "
            f"ST_Transform({geometry}, 4326)::geography, {distance}, false)"
        )

    if kind is QueryType.CUBE:
        bbox = [value.strip() for value in coords.split(",")]
        if len(bbox) == 4:
            return (
                f"ST_Intersects(geom, ST_Transform(ST_MakeEnvelope({coords}, {srid}), "
                f"{storage_srid}))"
            )
        if len(bbox) == 6:
            return f"""ST_3DIntersects(
                            geom,
                            ST_Transform(
                                ST_SetSRID(
                                    ST_3DMakeBox(ST_MakePoint({bbox[0]}, {bbox[1]}, {bbox[2]}), ST_MakePoint({bbox[3]} , {bbox[4]}, {bbox[5]})),
                                    {srid}
                                ),
                                {storage_srid}
                            )
                        )"""
        raise ValueError(f"cube coordinates must have 4 or 6 values, got {len(bbox)}")

    raise ValueError(f"query type `{kind.value}` is not supported")


def _properties_clause(parameter_name: str | None) -> str:
    if parameter_name is None:
        return "properties"
    parts = [
        f"""('{{"{name}":' || (properties -> '{name}')::text || '}}')::jsonb"""
        for name in parameter_name.split(",")
    ]
    return f"{'||'.join(parts)} as properties"


def _as_list(value: str | Sequence[str] | None) -> list[str] | None:
    if value is None:
        return None
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return [str(part) for part in value]


def _first(row: Any) -> str:
    if isinstance(row, str):
        return row
    if isinstance(row, Mapping):
        return row["id"]
    return row[0]


class QueryDb(Db, EdrQuerier, StacSearch):
    """PostGIS driver that also answers EDR queries and STAC item searches."""

    async def query(
        self, collection_id: str, query_type: QueryType | str, query: Mapping[str, Any]
    ) -> Json:
        coords = query.get("coords")
        if not coords:
            raise ValueError("query parameter `coords` is required")
        srid = as_srid(query.get("crs"))

        stored = await self.read_collection(collection_id)
        if stored is None:
            raise LookupError(f"collection `{collection_id}` does not exist")
        storage_srid = as_srid(stored.get("storageCrs"))

        predicate = spatial_predicate(
            query_type,
            coords,
            srid,
            storage_srid,
            query.get("within"),
            query.get("within-units"),
        )
        properties = _properties_clause(query.get("parameter-name"))
        literal = str(collection_id).replace("'", "''")

        sql = f"""
            SELECT
                id,
                {properties},
                ST_AsGeoJSON(ST_Transform(geom, $1))::jsonb as geometry,
                links,
                '{literal}' as collection,
                assets
            FROM items."{_ident(collection_id)}"
            WHERE {predicate}
            """

        number_matched = await self.pool.fetchval(f"SELECT count(*) FROM ({sql}) t", srid)
        value = await self.pool.fetchval(
            f"""
            SELECT array_to_json(array_agg(row_to_json(t)))
            FROM ( {sql} ) t
            """,
            srid,
        )
        features = [] if value is None else _decode(value)
        return _feature_collection(features, int(number_matched or 0))

    async def search(self, params: Mapping[str, Any]) -> Json:
        async with self.pool.transaction() as conn:
            rows = await conn.fetch(
                """
            SELECT id FROM meta.collections 
            WHERE collection ->> 'type' = 'Collection'
            """
            )
            available = [_first(row) for row in rows]
            requested = _as_list(params.get("collections"))
            collection_ids = (
                available if requested is None else [c for c in requested if c in available]
            )
            if not collection_ids:
                return _feature_collection([], 0)

            union_all_items = " UNION ALL ".join(
                f"""
                    SELECT * FROM items."{_ident(collection_id)}"
                    """
                for collection_id in collection_ids
            )

            conditions = ["TRUE"]
            bbox = params.get("bbox")
            if bbox is not None:
                conditions.append(f"geom && {_envelope(bbox, 4326)}")

            datetime = params.get("datetime")
            if datetime is not None:
                conditions.append(datetime_condition(datetime))

            ids = _as_list(params.get("ids"))
            if ids is not None:
                conditions.append(f"id IN ('{chr(39).join([''] * 0) or "','".join(ids)}')")

            intersects = params.get("intersects")
            if intersects is not None:
                geojson = intersects if isinstance(intersects, str) else json.dumps(intersects)
                conditions.append(f"geom && ST_GeomFromGeoJSON('{geojson}')")

            where = " AND ".join(conditions)

            number_matched = await conn.fetchval(
                f"""
            WITH items AS ({union_all_items})
            SELECT count(*) FROM items
            WHERE {where}
            """
            )

            limit = params.get("limit")
            limit_sql = "NULL" if limit is None else str(int(limit))
            offset = int(params.get("offset") or 0)
            value = await conn.fetchval(
                f"""
            WITH items AS ({union_all_items})
            SELECT array_to_json(array_agg(row_to_json(t)))
            FROM (
                SELECT
                    id,
                    collection,
                    properties,
                    ST_AsGeoJSON(ST_Transform(geom, 4326))::jsonb as geometry,
                    links,
                    assets,
                    bbox
                FROM items
                WHERE {where}
                LIMIT {limit_sql}
                OFFSET {offset}
            ) t
            """
            )

        features = [] if value is None else _decode(value)
        return _feature_collection(features, int(number_matched or 0))