"""Relationship graph API endpoints: path finder, focus mode, search, snapshot."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from fastapi.responses import Response

from kinship.canvas.interaction import ViewState
from kinship.canvas.layout import FamilyPalette, build_simulation, run
from kinship.canvas.render import Renderer, RenderState, SvgCanvas
from kinship.config import get_config
from kinship.graph.engine import GraphIndex, extract_neighborhood, find_path
from kinship.graph.store import EdgeStore, PersonRecord, get_store
from kinship.models import (
    EdgeOut,
    FocusGraphOut,
    FocusNodeOut,
    GraphNodeOut,
    GraphSnapshotOut,
    PathEdgeOut,
    PathOut,
    PathStepOut,
    PersonOut,
    SearchResultOut,
)

logger = logging.getLogger("kinship.graph.routes")

router = APIRouter(prefix="/api/v1/graph", tags=["graph"])


# ---------------------------------------------------------------------------
# Principal
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Principal:
    """The viewer, as identified by the upstream auth layer."""
    family_id: str | None = None

    def owns(self, person: PersonRecord) -> bool:
        return self.family_id is not None and person.family_id == self.family_id


async def get_principal(
    x_family_id: str | None = Header(None),
    x_person_id: str | None = Header(None),
    store: EdgeStore = Depends(get_store),
) -> Principal:
    if x_family_id:
        return Principal(family_id=x_family_id)
    if x_person_id:
        return Principal(family_id=await store.person_family(x_person_id))
    return Principal()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _person_out(p: PersonRecord) -> PersonOut:
    return PersonOut(
        id=p.id,
        name=p.name,
        family_id=p.family_id,
        family_name=p.family_name,
        city=p.city,
    )


def _search_out(p: PersonRecord, principal: Principal) -> SearchResultOut:
    out = SearchResultOut(**_person_out(p).model_dump())
    if principal.owns(p):
        out.birth_date = p.birth_date
        out.occupation = p.occupation
    return out


def _node_out(p: PersonRecord, principal: Principal) -> GraphNodeOut:
    return GraphNodeOut(
        id=p.id,
        label=p.name,
        family_id=p.family_id,
        family_name=p.family_name,
        city=p.city,
        can_edit=principal.owns(p),
    )


def _edge_out(e) -> EdgeOut:
    return EdgeOut(from_id=e.from_id, to_id=e.to_id, type=e.type)


def _resolve_depth(depth: int | None) -> int:
    cfg = get_config()
    depth = depth or cfg.default_focus_depth
    if depth > cfg.max_focus_depth:
        raise HTTPException(400, f"depth must be at most {cfg.max_focus_depth}")
    return depth


async def _build_focus(
    store: EdgeStore,
    principal: Principal,
    person_id: str,
    depth: int,
    ancestors: bool,
    descendants: bool,
) -> FocusGraphOut:
    edges = await store.edges()
    hood = extract_neighborhood(edges, person_id, depth, ancestors, descendants)
    people = await store.people(hood.person_ids)

    nodes = [
        FocusNodeOut(
            person=_person_out(p),
            level=hood.levels[p.id],
            is_focus=hood.is_focus(p.id),
            can_edit=principal.owns(p),
        )
        for p in people
        if p.id in hood.levels
    ]
    nodes.sort(key=lambda n: (n.level, n.person.name))
    logger.debug(
        "Focus %s depth=%d ancestors=%s descendants=%s -> %d nodes, %d edges",
        person_id, depth, ancestors, descendants, len(nodes), len(hood.edges),
    )
    return FocusGraphOut(
        focus_person=person_id,
        depth=depth,
        nodes=nodes,
        edges=[_edge_out(e) for e in hood.edges],
    )


# ---------------------------------------------------------------------------
# Path finder
# ---------------------------------------------------------------------------

@router.get("/path")
async def get_path(
    from_id: str | None = Query(None, alias="fromId"),
    to_id: str | None = Query(None, alias="toId"),
    principal: Principal = Depends(get_principal),
    store: EdgeStore = Depends(get_store),
) -> PathOut:
    """Shortest relationship chain between two people, across all families."""
    if not from_id or not to_id:
        raise HTTPException(400, "fromId and toId are required")

    index = GraphIndex(await store.edges())
    result = find_path(index, from_id, to_id)
    if not result.found:
        # Unknown ids land here too; callers check existence upstream
        unknown = [pid for pid in (from_id, to_id) if pid not in index]
        if unknown:
            logger.info("Path query names people with no edges: %s (%d people indexed)", unknown, len(index))
        else:
            logger.info("No path between %s and %s", from_id, to_id)
        return PathOut(found=False, message="No path found between these people")

    people = {p.id: p for p in await store.people(result.person_ids)}
    steps: list[PathStepOut] = []
    for pid, label in zip(result.person_ids, result.labels()):
        person = people.get(pid) or PersonRecord(id=pid, name="Unknown")
        steps.append(PathStepOut(
            person=_person_out(person),
            relationship=label,
            can_edit=principal.owns(person),
        ))
    return PathOut(
        found=True,
        degrees=result.degrees,
        path=steps,
        edges=[
            PathEdgeOut(from_id=h.from_id, to_id=h.to_id, type=h.type, direction=h.direction)
            for h in result.hops
        ],
    )


# ---------------------------------------------------------------------------
# Focus mode
# ---------------------------------------------------------------------------

@router.get("/focus/{person_id}")
async def get_focus_graph(
    person_id: str,
    depth: int | None = Query(None, ge=1),
    ancestors: bool = Query(True),
    descendants: bool = Query(True),
    principal: Principal = Depends(get_principal),
    store: EdgeStore = Depends(get_store),
) -> FocusGraphOut:
    """Subgraph within ``depth`` hops of a person."""
    return await _build_focus(
        store, principal, person_id, _resolve_depth(depth), ancestors, descendants
    )


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------

@router.get("/search")
async def search_people(
    q: str = Query(""),
    limit: int | None = Query(None, ge=1),
    principal: Principal = Depends(get_principal),
    store: EdgeStore = Depends(get_store),
) -> list[SearchResultOut]:
    """People search for the command palette; the viewer's family ranks first."""
    query = q.strip()
    if len(query) < 2:
        return []
    cfg = get_config()
    limit = min(limit or cfg.search_limit, cfg.max_search_limit)

    rows = await store.search_people(query, principal.family_id, limit)
    rows.sort(key=lambda p: not principal.owns(p))
    return [_search_out(p, principal) for p in rows[:limit]]


# ---------------------------------------------------------------------------
# Canvas snapshot + export
# ---------------------------------------------------------------------------

@router.get("/snapshot")
async def get_snapshot(
    family_id: str | None = Query(None, alias="familyId"),
    city: str | None = Query(None),
    principal: Principal = Depends(get_principal),
    store: EdgeStore = Depends(get_store),
) -> GraphSnapshotOut:
    """Nodes and edges for the interactive canvas."""
    people, edges = await store.snapshot(family_id, city)
    return GraphSnapshotOut(
        nodes=[_node_out(p, principal) for p in people],
        edges=[_edge_out(e) for e in edges],
    )


@router.get("/render.svg")
async def render_svg(
    family_id: str | None = Query(None, alias="familyId"),
    city: str | None = Query(None),
    focus: str | None = Query(None),
    depth: int | None = Query(None, ge=1),
    ticks: int | None = Query(None, ge=0, le=5000),
    width: int = Query(1200, ge=100, le=4000),
    height: int = Query(800, ge=100, le=4000),
    principal: Principal = Depends(get_principal),
    store: EdgeStore = Depends(get_store),
) -> Response:
    """Lay out the graph server-side and return a static SVG picture of it."""
    if focus:
        fg = await _build_focus(store, principal, focus, _resolve_depth(depth), True, True)
        nodes = [
            GraphNodeOut(
                id=n.person.id,
                label=n.person.name,
                family_id=n.person.family_id,
                family_name=n.person.family_name,
                city=n.person.city,
                can_edit=n.can_edit,
                level=n.level,
                is_focus=n.is_focus,
            )
            for n in fg.nodes
        ]
        edges = fg.edges
    else:
        people, raw_edges = await store.snapshot(family_id, city)
        nodes = [_node_out(p, principal) for p in people]
        edges = [_edge_out(e) for e in raw_edges]

    sim = build_simulation(nodes, edges, FamilyPalette(), focus_id=focus)
    run(sim, get_config().render_ticks if ticks is None else ticks)

    canvas = SvgCanvas(width, height)
    Renderer().draw(canvas, sim, ViewState(), RenderState(focus_id=focus))
    return Response(content=canvas.to_svg(), media_type="image/svg+xml")
