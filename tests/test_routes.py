from __future__ import annotations

from collections.abc import Sequence
from datetime import date

import pytest
from fastapi.testclient import TestClient

from kinship.app import app
from kinship.graph.engine import Edge, EdgeType
from kinship.graph.store import PersonRecord, StoreUnavailable, edges_from_rows, get_store

P = EdgeType.PARENT_OF
S = EdgeType.SPOUSE_OF


class _MemoryStore:
    """In-memory EdgeStore over a fixed set of people and edges."""

    def __init__(self, people: list[PersonRecord], edges: list[Edge]) -> None:
        self._people = {p.id: p for p in people}
        self._edges = edges
        self.last_search: tuple | None = None

    async def edges(self) -> list[Edge]:
        return list(self._edges)

    async def people(self, ids: Sequence[str]) -> list[PersonRecord]:
        return [self._people[i] for i in ids if i in self._people]

    async def person_family(self, person_id: str) -> str | None:
        person = self._people.get(person_id)
        return person.family_id if person else None

    async def search_people(self, query: str, principal_family_id: str | None, limit: int) -> list[PersonRecord]:
        self.last_search = (query, principal_family_id, limit)
        q = query.lower()
        return [p for p in self._people.values() if q in p.name.lower()][:limit]

    async def snapshot(self, family_id: str | None, city: str | None):
        people = [
            p for p in self._people.values()
            if (not family_id or p.family_id == family_id) and (not city or p.city == city)
        ]
        ids = {p.id for p in people}
        return people, [e for e in self._edges if e.from_id in ids and e.to_id in ids]

    async def stats(self) -> dict:
        return {
            "total_people": len(self._people),
            "total_edges": len(self._edges),
            "families_count": len({p.family_id for p in self._people.values()}),
            "marriages": sum(1 for e in self._edges if e.type is S),
        }


class _BrokenStore(_MemoryStore):
    async def edges(self) -> list[Edge]:
        raise StoreUnavailable("edge fetch failed: connection refused")

    async def stats(self) -> dict:
        raise StoreUnavailable("graph stats failed: connection refused")


def _people() -> list[PersonRecord]:
    return [
        PersonRecord("gp", "Emeka Obi", "f1", "Obi", "Enugu", date(1940, 1, 1), "Farmer"),
        PersonRecord("dad", "Ike Obi", "f1", "Obi", "Lagos", date(1970, 5, 2), "Engineer"),
        PersonRecord("kid", "Ada Obi", "f1", "Obi", "Lagos", date(2000, 3, 3), "Student"),
        PersonRecord("mum", "Ngozi Eze", "f2", "Eze", "Abuja", date(1972, 7, 9), "Doctor"),
        PersonRecord("loner", "Obi Nwosu", "f3", "Nwosu", "Kano", None, None),
    ]


def _edges() -> list[Edge]:
    return [
        Edge("gp", "dad", P),
        Edge("dad", "kid", P),
        Edge("dad", "mum", S),
        Edge("mum", "kid", P),
    ]


@pytest.fixture()
def store():
    memory = _MemoryStore(_people(), _edges())
    app.dependency_overrides[get_store] = lambda: memory
    yield memory
    app.dependency_overrides.clear()


@pytest.fixture()
def client(store) -> TestClient:
    return TestClient(app)


OWN = {"X-Family-Id": "f1"}


# ---------------------------------------------------------------------------
# Path
# ---------------------------------------------------------------------------

def test_path_requires_both_ids(client) -> None:
    assert client.get("/api/v1/graph/path", params={"fromId": "kid"}).status_code == 400
    assert client.get("/api/v1/graph/path").status_code == 400


def test_path_found_with_labels(client) -> None:
    resp = client.get("/api/v1/graph/path", params={"fromId": "gp", "toId": "mum"}, headers=OWN)
    assert resp.status_code == 200
    body = resp.json()
    assert body["found"] is True
    assert body["degrees"] == 2
    assert [s["person"]["id"] for s in body["path"]] == ["gp", "dad", "mum"]
    assert [s["relationship"] for s in body["path"]] == [None, "child of", "spouse of"]
    assert [s["can_edit"] for s in body["path"]] == [True, True, False]
    assert body["edges"] == [
        {"from": "gp", "to": "dad", "type": "PARENT_OF", "direction": "forward"},
        {"from": "dad", "to": "mum", "type": "SPOUSE_OF", "direction": "forward"},
    ]


def test_path_to_self(client) -> None:
    body = client.get("/api/v1/graph/path", params={"fromId": "kid", "toId": "kid"}).json()
    assert body["found"] is True
    assert body["degrees"] == 0
    assert len(body["path"]) == 1


def test_path_not_found(client) -> None:
    body = client.get("/api/v1/graph/path", params={"fromId": "kid", "toId": "loner"}).json()
    assert body["found"] is False
    assert body["message"] == "No path found between these people"
    assert body["path"] is None
    assert body["edges"] is None


def test_path_logs_unknown_people(client, caplog) -> None:
    with caplog.at_level("INFO", logger="kinship.graph.routes"):
        body = client.get("/api/v1/graph/path", params={"fromId": "kid", "toId": "ghost"}).json()
    assert body["found"] is False
    assert "['ghost']" in caplog.text
    assert "4 people indexed" in caplog.text


def test_path_payload_hides_private_fields(client) -> None:
    body = client.get("/api/v1/graph/path", params={"fromId": "gp", "toId": "mum"}, headers=OWN).json()
    for step in body["path"]:
        assert "birth_date" not in step["person"]
        assert "occupation" not in step["person"]


# ---------------------------------------------------------------------------
# Focus
# ---------------------------------------------------------------------------

def test_focus_default_depth(client) -> None:
    body = client.get("/api/v1/graph/focus/kid").json()
    assert body["focus_person"] == "kid"
    assert body["depth"] == 2
    levels = {n["person"]["id"]: n["level"] for n in body["nodes"]}
    assert levels == {"kid": 0, "dad": 1, "mum": 1, "gp": 2}
    assert body["nodes"][0]["is_focus"] is True
    assert all("from" in e and "to" in e for e in body["edges"])
    assert len(body["edges"]) == 4


def test_focus_toggles(client) -> None:
    body = client.get(
        "/api/v1/graph/focus/dad",
        params={"depth": 1, "ancestors": "true", "descendants": "false"},
    ).json()
    assert {n["person"]["id"] for n in body["nodes"]} == {"dad", "gp", "mum"}


def test_focus_can_edit_follows_family(client) -> None:
    body = client.get("/api/v1/graph/focus/dad", params={"depth": 1}, headers=OWN).json()
    can_edit = {n["person"]["id"]: n["can_edit"] for n in body["nodes"]}
    assert can_edit["dad"] is True
    assert can_edit["mum"] is False


def test_focus_depth_bounds(client) -> None:
    assert client.get("/api/v1/graph/focus/dad", params={"depth": 0}).status_code == 422
    assert client.get("/api/v1/graph/focus/dad", params={"depth": 99}).status_code == 400


def test_focus_principal_from_person_header(client) -> None:
    body = client.get(
        "/api/v1/graph/focus/dad", params={"depth": 1}, headers={"X-Person-Id": "mum"}
    ).json()
    can_edit = {n["person"]["id"]: n["can_edit"] for n in body["nodes"]}
    assert can_edit == {"dad": False, "gp": False, "kid": False, "mum": True}


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------

def test_search_short_query_returns_empty(client, store) -> None:
    assert client.get("/api/v1/graph/search", params={"q": "O"}).json() == []
    assert store.last_search is None


def test_search_gates_private_fields_and_ranks_own_family(client, store) -> None:
    resp = client.get("/api/v1/graph/search", params={"q": "obi"}, headers={"X-Family-Id": "f3"})
    rows = resp.json()
    assert rows[0]["id"] == "loner"
    others = [r for r in rows if r["family_id"] != "f3"]
    assert others and all(r["birth_date"] is None and r["occupation"] is None for r in others)

    rows = client.get("/api/v1/graph/search", params={"q": "obi"}, headers=OWN).json()
    own = {r["id"]: r for r in rows if r["family_id"] == "f1"}
    assert own["dad"]["occupation"] == "Engineer"
    assert own["dad"]["birth_date"] == "1970-05-02"


def test_search_limit_is_capped(client, store) -> None:
    client.get("/api/v1/graph/search", params={"q": "obi", "limit": 1000})
    assert store.last_search[2] == 50


# ---------------------------------------------------------------------------
# Snapshot and export
# ---------------------------------------------------------------------------

def test_snapshot_filters(client) -> None:
    body = client.get("/api/v1/graph/snapshot", params={"familyId": "f1"}, headers=OWN).json()
    assert {n["id"] for n in body["nodes"]} == {"gp", "dad", "kid"}
    assert all(n["can_edit"] for n in body["nodes"])
    assert len(body["edges"]) == 2

    body = client.get("/api/v1/graph/snapshot", params={"city": "Lagos"}).json()
    assert {n["id"] for n in body["nodes"]} == {"dad", "kid"}


def test_render_svg(client) -> None:
    resp = client.get("/api/v1/graph/render.svg", params={"ticks": 10, "width": 300, "height": 200})
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("image/svg+xml")
    assert resp.text.startswith("<svg")
    assert "Ike" in resp.text


def test_render_svg_focus(client) -> None:
    resp = client.get("/api/v1/graph/render.svg", params={"focus": "dad", "depth": 1, "ticks": 0})
    assert resp.status_code == 200
    assert "Emeka" in resp.text
    assert "Nwosu" not in resp.text


# ---------------------------------------------------------------------------
# Store failures, health, metrics
# ---------------------------------------------------------------------------

def test_store_failure_returns_503() -> None:
    app.dependency_overrides[get_store] = lambda: _BrokenStore([], [])
    try:
        resp = TestClient(app).get("/api/v1/graph/path", params={"fromId": "a", "toId": "b"})
    finally:
        app.dependency_overrides.clear()
    assert resp.status_code == 503
    assert resp.json() == {"error": "Graph store unavailable"}


def test_health_without_pool(client) -> None:
    body = client.get("/health").json()
    assert body == {"status": "ok", "database": "pool_not_initialized"}


def test_metrics(client) -> None:
    metrics = {m["key"]: m["value"] for m in client.get("/metrics").json()["metrics"]}
    assert metrics["total_people"] == 5
    assert metrics["total_edges"] == 4
    assert metrics["families"] == 3
    assert metrics["marriages"] == 1
    assert "memory_rss" in metrics


def test_metrics_store_failure() -> None:
    app.dependency_overrides[get_store] = lambda: _BrokenStore([], [])
    try:
        resp = TestClient(app).get("/metrics")
    finally:
        app.dependency_overrides.clear()
    assert resp.status_code == 500
    assert resp.json()["metrics"] == []


def test_edges_from_rows_skips_unknown_types() -> None:
    rows = [
        {"from_id": "a", "to_id": "b", "type": "PARENT_OF"},
        {"from_id": "a", "to_id": "c", "type": "SIBLING_OF"},
    ]
    assert edges_from_rows(rows) == [Edge("a", "b", P)]
