"""Database pool management and read-only query helpers for the graph engine."""

from __future__ import annotations

import os
from collections.abc import Sequence

import asyncpg

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

_DB_HOST = os.environ.get("KG_DB_HOST", "localhost")
_DB_PORT = os.environ.get("KG_DB_PORT", "5432")
_DB_USER = os.environ.get("KG_DB_USER", "postgres")
_DB_PASSWORD = os.environ.get("KG_DB_PASSWORD", "postgres")
_DB_NAME = os.environ.get("KG_DB_NAME", "kinship")

DATABASE_URL = os.environ.get(
    "KG_DATABASE_URL",
    f"postgresql://{_DB_USER}:{_DB_PASSWORD}@{_DB_HOST}:{_DB_PORT}/{_DB_NAME}",
)

_POOL_MIN = int(os.environ.get("KG_DB_POOL_MIN", "2"))
_POOL_MAX = int(os.environ.get("KG_DB_POOL_MAX", "10"))

# ---------------------------------------------------------------------------
# Pool
# ---------------------------------------------------------------------------

_pool: asyncpg.Pool | None = None


async def init_pool() -> asyncpg.Pool:
    """Create the global asyncpg connection pool."""
    global _pool
    _pool = await asyncpg.create_pool(
        DATABASE_URL,
        min_size=_POOL_MIN,
        max_size=_POOL_MAX,
    )
    return _pool


async def close_pool() -> None:
    """Gracefully close the connection pool."""
    global _pool
    if _pool:
        await _pool.close()
        _pool = None


def get_pool() -> asyncpg.Pool:
    """Return the pool, raising if not initialized."""
    if _pool is None:
        raise RuntimeError("Database pool not initialized")
    return _pool


# ---------------------------------------------------------------------------
# Query helpers
# ---------------------------------------------------------------------------

_PERSON_COLUMNS = (
    "p.id::text AS id, "
    "p.first_name || ' ' || COALESCE(p.last_name_raw, '') AS name, "
    "p.family_id::text AS family_id, f.name AS family_name, "
    "p.current_city AS city, p.birth_date, p.occupation_title AS occupation"
)


async def fetch_all_edges() -> list[asyncpg.Record]:
    """Every edge across all families; traversal is deliberately global."""
    p = get_pool()
    return await p.fetch(
        "SELECT from_person_id::text AS from_id, to_person_id::text AS to_id, type::text AS type "
        "FROM family_tree_edges"
    )


async def fetch_people(ids: Sequence[str]) -> list[asyncpg.Record]:
    p = get_pool()
    return await p.fetch(
        f"SELECT {_PERSON_COLUMNS} "
        "FROM people p LEFT JOIN families f ON p.family_id = f.id "
        "WHERE p.id::text = ANY($1::text[])",
        list(ids),
    )


async def fetch_person_family(person_id: str) -> str | None:
    p = get_pool()
    return await p.fetchval(
        "SELECT family_id::text FROM people WHERE id::text = $1",
        person_id,
    )


async def search_people(query: str, family_id: str | None, limit: int) -> list[asyncpg.Record]:
    """Substring match on first/last/full name; the viewer's family ranks first."""
    p = get_pool()
    return await p.fetch(
        f"SELECT {_PERSON_COLUMNS} "
        "FROM people p LEFT JOIN families f ON p.family_id = f.id "
        "WHERE LOWER(p.first_name || ' ' || COALESCE(p.last_name_raw, '')) LIKE LOWER($1) "
        "   OR LOWER(p.first_name) LIKE LOWER($1) "
        "   OR LOWER(p.last_name_raw) LIKE LOWER($1) "
        "ORDER BY CASE WHEN p.family_id::text = $2 THEN 0 ELSE 1 END, p.first_name "
        "LIMIT $3",
        f"%{query}%", family_id, limit,
    )


async def fetch_snapshot_people(family_id: str | None, city: str | None) -> list[asyncpg.Record]:
    """People for the canvas, optionally filtered by family and city."""
    p = get_pool()
    conditions: list[str] = []
    params: list = []
    idx = 1

    if family_id:
        conditions.append(f"p.family_id::text = ${idx}")
        params.append(family_id)
        idx += 1
    if city:
        conditions.append(f"LOWER(p.current_city) = LOWER(${idx})")
        params.append(city)
        idx += 1

    where = f" WHERE {' AND '.join(conditions)}" if conditions else ""
    return await p.fetch(
        f"SELECT {_PERSON_COLUMNS} "
        f"FROM people p LEFT JOIN families f ON p.family_id = f.id{where} "
        "ORDER BY f.name, p.first_name",
        *params,
    )


async def fetch_edges_within(ids: Sequence[str]) -> list[asyncpg.Record]:
    """Edges whose both endpoints are in ``ids``."""
    if not ids:
        return []
    p = get_pool()
    return await p.fetch(
        "SELECT from_person_id::text AS from_id, to_person_id::text AS to_id, type::text AS type "
        "FROM family_tree_edges "
        "WHERE from_person_id::text = ANY($1::text[]) AND to_person_id::text = ANY($1::text[])",
        list(ids),
    )


async def get_graph_stats() -> dict:
    """Aggregate counts for the metrics endpoint."""
    p = get_pool()
    row = await p.fetchrow(
        "SELECT "
        "  (SELECT COUNT(*) FROM people) AS total_people, "
        "  (SELECT COUNT(*) FROM family_tree_edges) AS total_edges, "
        "  (SELECT COUNT(DISTINCT family_id) FROM people) AS families_count, "
        "  (SELECT COUNT(*) FROM family_tree_edges WHERE type = 'SPOUSE_OF') AS marriages"
    )
    return dict(row) if row else {}
