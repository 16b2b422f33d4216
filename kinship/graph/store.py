"""Edge store adapter: the read-only view of people and edges the engine consumes."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from typing import Protocol

import asyncpg

from kinship import db
from kinship.graph.engine import Edge, EdgeType

logger = logging.getLogger("kinship.graph.store")


class StoreUnavailable(RuntimeError):
    """The relational store could not answer a read."""


@dataclass
class PersonRecord:
    id: str
    name: str
    family_id: str | None = None
    family_name: str | None = None
    city: str | None = None
    birth_date: date | None = None
    occupation: str | None = None


class EdgeStore(Protocol):
    async def edges(self) -> list[Edge]: ...

    async def people(self, ids: Sequence[str]) -> list[PersonRecord]: ...

    async def person_family(self, person_id: str) -> str | None: ...

    async def search_people(
        self, query: str, principal_family_id: str | None, limit: int
    ) -> list[PersonRecord]: ...

    async def snapshot(
        self, family_id: str | None, city: str | None
    ) -> tuple[list[PersonRecord], list[Edge]]: ...

    async def stats(self) -> dict: ...


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------

def edges_from_rows(rows) -> list[Edge]:
    """Map {from_id, to_id, type} rows to edges, skipping unknown types."""
    out: list[Edge] = []
    for r in rows:
        try:
            etype = EdgeType(r["type"])
        except ValueError:
            logger.warning("Skipping edge %s -> %s with unknown type %r", r["from_id"], r["to_id"], r["type"])
            continue
        out.append(Edge(from_id=str(r["from_id"]), to_id=str(r["to_id"]), type=etype))
    return out


def _person(row) -> PersonRecord:
    return PersonRecord(
        id=str(row["id"]),
        name=(row["name"] or "").strip() or "Unknown",
        family_id=row["family_id"],
        family_name=row["family_name"],
        city=row["city"],
        birth_date=row["birth_date"],
        occupation=row["occupation"],
    )


# ---------------------------------------------------------------------------
# PostgreSQL implementation
# ---------------------------------------------------------------------------

class PgEdgeStore:
    """EdgeStore over the shared asyncpg pool."""

    async def _run(self, what: str, coro):
        try:
            return await coro
        except (asyncpg.PostgresError, OSError, RuntimeError) as exc:
            raise StoreUnavailable(f"{what} failed: {exc}") from exc

    async def edges(self) -> list[Edge]:
        rows = await self._run("edge fetch", db.fetch_all_edges())
        return edges_from_rows(rows)

    async def people(self, ids: Sequence[str]) -> list[PersonRecord]:
        if not ids:
            return []
        rows = await self._run("people fetch", db.fetch_people(ids))
        return [_person(r) for r in rows]

    async def person_family(self, person_id: str) -> str | None:
        return await self._run("person family lookup", db.fetch_person_family(person_id))

    async def search_people(
        self, query: str, principal_family_id: str | None, limit: int
    ) -> list[PersonRecord]:
        rows = await self._run("people search", db.search_people(query, principal_family_id, limit))
        return [_person(r) for r in rows]

    async def snapshot(
        self, family_id: str | None, city: str | None
    ) -> tuple[list[PersonRecord], list[Edge]]:
        rows = await self._run("snapshot people", db.fetch_snapshot_people(family_id, city))
        people = [_person(r) for r in rows]
        edge_rows = await self._run("snapshot edges", db.fetch_edges_within([p.id for p in people]))
        return people, edges_from_rows(edge_rows)

    async def stats(self) -> dict:
        return await self._run("graph stats", db.get_graph_stats())


_store: EdgeStore = PgEdgeStore()


def get_store() -> EdgeStore:
    """FastAPI dependency; tests override it with an in-memory store."""
    return _store
