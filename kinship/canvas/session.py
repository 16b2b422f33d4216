"""Interactive graph session: API client plus the state behind one canvas.

A ``GraphSession`` ties the layout simulation, view transform, interaction
controller, renderer and frame loop together, and exposes the hooks a UI
binds to (filters, focus mode, path highlighting, search, saved views).
Every graph fetch is stamped with a generation number; a response whose
generation is no longer current is dropped.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Coroutine
from typing import Any

import httpx
from pydantic import ValidationError

from kinship.canvas.interaction import InteractionController, ViewState
from kinship.canvas.layout import (
    EdgeKey,
    FamilyPalette,
    SimNode,
    Simulation,
    build_simulation,
    edge_key,
    step,
)
from kinship.canvas.loop import AsyncioFrameScheduler, FrameLoop, FrameScheduler
from kinship.canvas.render import Canvas, Renderer, RenderState
from kinship.config import get_config
from kinship.models import PathOut, SavedViewIn, SavedViewOut, SearchResultOut, ViewFilters

logger = logging.getLogger("kinship.canvas.session")

SEARCH_DEBOUNCE = 0.2
SEARCH_MIN_CHARS = 2


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------

def _params(**kwargs: Any) -> dict[str, Any]:
    return {k: v for k, v in kwargs.items() if v is not None}


class GraphApiClient:
    """Thin async client for the graph endpoints."""

    def __init__(
        self,
        base_url: str | None = None,
        family_id: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ) -> None:
        headers = {"X-Family-Id": family_id} if family_id else {}
        self._client = httpx.AsyncClient(
            base_url=base_url or get_config().api_base_url,
            headers=headers,
            transport=transport,
            timeout=timeout,
        )

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        resp = await self._client.get(path, params=params)
        resp.raise_for_status()
        return resp.json()

    async def snapshot(self, family_id: str | None = None, city: str | None = None) -> dict:
        return await self._get("/api/v1/graph/snapshot", _params(familyId=family_id, city=city))

    async def focus(
        self, person_id: str, depth: int, ancestors: bool = True, descendants: bool = True
    ) -> dict:
        return await self._get(
            f"/api/v1/graph/focus/{person_id}",
            {"depth": depth, "ancestors": ancestors, "descendants": descendants},
        )

    async def path(self, from_id: str, to_id: str) -> PathOut:
        data = await self._get("/api/v1/graph/path", {"fromId": from_id, "toId": to_id})
        return PathOut.model_validate(data)

    async def search(self, query: str) -> list[SearchResultOut]:
        data = await self._get("/api/v1/graph/search", {"q": query})
        return [SearchResultOut.model_validate(item) for item in data or []]

    async def list_views(self) -> list[SavedViewOut]:
        data = await self._get("/api/v1/graph/views")
        return [SavedViewOut.model_validate(item) for item in data or []]

    async def save_view(self, view: SavedViewIn) -> SavedViewOut:
        resp = await self._client.post(
            "/api/v1/graph/views",
            json=view.model_dump(mode="json", by_alias=True, exclude_none=True),
        )
        resp.raise_for_status()
        return SavedViewOut.model_validate(resp.json())

    async def aclose(self) -> None:
        await self._client.aclose()


def _focus_payload_nodes(payload: Any) -> list[dict]:
    """Flatten focus-graph nodes ({person, level, ...}) into canvas node dicts."""
    if not isinstance(payload, dict):
        return []
    out: list[dict] = []
    for item in payload.get("nodes") or []:
        person = item.get("person") if isinstance(item, dict) else None
        if not isinstance(person, dict):
            logger.warning("Skipping malformed focus node %r", item)
            continue
        out.append({
            "id": person.get("id"),
            "label": person.get("name"),
            "family_id": person.get("family_id"),
            "family_name": person.get("family_name"),
            "city": person.get("city"),
            "can_edit": bool(item.get("can_edit")),
            "level": item.get("level"),
            "is_focus": bool(item.get("is_focus")),
        })
    return out


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

class GraphSession:
    """State and hooks for one interactive relationship canvas."""

    def __init__(
        self,
        api: GraphApiClient,
        scheduler: FrameScheduler | None = None,
        width: float = 1200.0,
        height: float = 800.0,
        rng: random.Random | None = None,
    ) -> None:
        cfg = get_config()
        self.api = api
        self.rng = rng
        self.view = ViewState()
        self.palette = FamilyPalette()
        self.renderer = Renderer()
        self.sim = Simulation()
        self.controller = InteractionController(
            self.sim,
            self.view,
            width,
            height,
            on_select=self._on_select,
            on_focus=self.focus_on,
            on_command_palette=self.open_command_palette,
            on_escape=self.clear_highlights,
        )
        self.loop = FrameLoop(scheduler or AsyncioFrameScheduler(), self._frame)
        self.canvas: Canvas | None = None

        self.filters = ViewFilters()
        self.focus_mode = False
        self.focus_person_id: str | None = None
        self.focus_depth = cfg.default_focus_depth
        self.show_ancestors = True
        self.show_descendants = True

        self.highlighted: set[str] = set()
        self.highlighted_edges: set[EdgeKey] = set()
        self.path_result: PathOut | None = None
        self.selected: SimNode | None = None
        self.command_open = False
        self.search_results: list[SearchResultOut] = []
        self.saved_views: list[SavedViewOut] = []

        self._raw_nodes: list = []
        self._raw_edges: list = []
        self._generation = 0
        self._path_generation = 0
        self._search_task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Session task failed: %s", task.exception())

    async def _fetch_graph(self, request: Awaitable[Any], what: str) -> Any:
        """Await a graph request; None if it failed or a newer one started."""
        self._generation += 1
        generation = self._generation
        try:
            data = await request
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("%s request failed: %s", what, exc)
            return None
        if generation != self._generation:
            logger.debug("Dropping stale %s response (generation %d, current %d)", what, generation, self._generation)
            return None
        return data

    def _set_raw(self, nodes: Any, edges: Any) -> None:
        self._raw_nodes = nodes if isinstance(nodes, list) else []
        self._raw_edges = edges if isinstance(edges, list) else []
        self._rebuild()

    def _rebuild(self) -> None:
        family_id = None if self.focus_mode else self.filters.family_id
        city = None if self.focus_mode else self.filters.city
        self.sim = build_simulation(
            self._raw_nodes,
            self._raw_edges,
            self.palette,
            family_id=family_id,
            city=city,
            highlighted=self.highlighted,
            highlighted_edges=self.highlighted_edges,
            focus_id=self.focus_person_id if self.focus_mode else None,
            rng=self.rng,
        )
        self.controller.attach(self.sim)
        self.selected = self.controller.selected
        logger.debug("Rebuilt simulation: %d nodes, %d edges", len(self.sim.nodes), len(self.sim.edges))

    def _apply_highlight(self) -> None:
        for node in self.sim.nodes:
            node.is_path = node.id in self.highlighted
        for edge in self.sim.edges:
            edge.is_path = edge.key in self.highlighted_edges

    def _on_select(self, node: SimNode | None) -> None:
        self.selected = node

    def _frame(self, now: float) -> None:
        step(self.sim)
        if self.canvas is not None:
            self.paint(self.canvas)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def attach_canvas(self, canvas: Canvas) -> None:
        self.canvas = canvas
        self.controller.resize(canvas.width, canvas.height)

    async def load(self) -> None:
        """Initial load: full snapshot plus saved views; starts the frame loop."""
        graph = await self._fetch_graph(self.api.snapshot(), "snapshot")
        if isinstance(graph, dict):
            self._set_raw(graph.get("nodes"), graph.get("edges"))
        try:
            self.saved_views = await self.api.list_views()
        except (httpx.HTTPError, ValueError, ValidationError) as exc:
            logger.info("Saved views unavailable: %s", exc)
            self.saved_views = []
        self.loop.start()

    async def close(self) -> None:
        self.loop.stop()
        self._generation += 1
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self.api.aclose()

    # ------------------------------------------------------------------
    # Filters and focus mode
    # ------------------------------------------------------------------

    def set_filters(self, family_id: str | None = None, city: str | None = None) -> None:
        self.filters = self.filters.model_copy(update={"family_id": family_id or None, "city": city or None})
        self._rebuild()

    async def enter_focus(
        self,
        person_id: str,
        depth: int | None = None,
        ancestors: bool | None = None,
        descendants: bool | None = None,
    ) -> bool:
        """Load the focus subgraph; on failure the session keeps its current state."""
        depth = self.focus_depth if depth is None else depth
        ancestors = self.show_ancestors if ancestors is None else ancestors
        descendants = self.show_descendants if descendants is None else descendants

        payload = await self._fetch_graph(
            self.api.focus(person_id, depth, ancestors, descendants), "focus"
        )
        if not isinstance(payload, dict):
            return False
        self.focus_mode = True
        self.focus_person_id = person_id
        self.focus_depth = depth
        self.show_ancestors = ancestors
        self.show_descendants = descendants
        self._set_raw(_focus_payload_nodes(payload), payload.get("edges"))
        return True

    def focus_on(self, person_id: str) -> asyncio.Task:
        self.command_open = False
        return self._spawn(self.enter_focus(person_id))

    async def exit_focus(self) -> bool:
        graph = await self._fetch_graph(self.api.snapshot(), "snapshot")
        if not isinstance(graph, dict):
            return False
        self.focus_mode = False
        self.focus_person_id = None
        self._set_raw(graph.get("nodes"), graph.get("edges"))
        return True

    # ------------------------------------------------------------------
    # Path highlighting
    # ------------------------------------------------------------------

    async def find_path(self, from_id: str, to_id: str) -> PathOut | None:
        if not from_id or not to_id:
            return None
        self._path_generation += 1
        generation = self._path_generation
        try:
            result = await self.api.path(from_id, to_id)
        except (httpx.HTTPError, ValueError, ValidationError) as exc:
            logger.warning("Path request failed: %s", exc)
            return None
        if generation != self._path_generation:
            return None
        self.path_result = result
        if result.found and result.path:
            self.highlighted = {step_.person.id for step_ in result.path}
            self.highlighted_edges = {edge_key(e.from_id, e.to_id, e.type) for e in result.edges or []}
            self._apply_highlight()
        return result

    def clear_highlights(self) -> asyncio.Task | None:
        """Escape: drop path highlighting and leave focus mode."""
        self.highlighted = set()
        self.highlighted_edges = set()
        self.path_result = None
        self.command_open = False
        self._apply_highlight()
        if self.focus_mode:
            return self._spawn(self.exit_focus())
        return None

    # ------------------------------------------------------------------
    # Search and command palette
    # ------------------------------------------------------------------

    def open_command_palette(self) -> None:
        self.command_open = True

    def search(self, query: str) -> asyncio.Task | None:
        """Debounced search-as-you-type; each call supersedes the previous one."""
        if self._search_task is not None and not self._search_task.done():
            self._search_task.cancel()
        self._search_task = None
        if len(query) < SEARCH_MIN_CHARS:
            self.search_results = []
            return None
        self._search_task = self._spawn(self._debounced_search(query))
        return self._search_task

    async def _debounced_search(self, query: str) -> None:
        await asyncio.sleep(SEARCH_DEBOUNCE)
        try:
            self.search_results = await self.api.search(query)
        except (httpx.HTTPError, ValueError, ValidationError) as exc:
            logger.warning("Search failed: %s", exc)

    def jump_to(self, person_id: str) -> SimNode | None:
        node = self.sim.node(person_id)
        if node is not None:
            self.view.center_on(node.x, node.y)
            self.selected = node
            self.controller.selected = node
        self.command_open = False
        return node

    # ------------------------------------------------------------------
    # View controls
    # ------------------------------------------------------------------

    def reheat(self) -> None:
        self.sim.reheat()

    def zoom_in(self) -> None:
        self.view.zoom_in()

    def zoom_out(self) -> None:
        self.view.zoom_out()

    def reset_view(self) -> None:
        self.view.reset()

    # ------------------------------------------------------------------
    # Saved views
    # ------------------------------------------------------------------

    def current_filters(self) -> ViewFilters:
        filters = ViewFilters(family_id=self.filters.family_id, city=self.filters.city)
        if self.focus_mode and self.focus_person_id:
            filters.focus_person_id = self.focus_person_id
            filters.focus_depth = self.focus_depth
            filters.show_ancestors = self.show_ancestors
            filters.show_descendants = self.show_descendants
        return filters

    async def apply_view(self, view: SavedViewOut | ViewFilters) -> None:
        """Reproduce a saved view: its filters replace the current ones."""
        filters = view.filters if isinstance(view, SavedViewOut) else view
        self.command_open = False
        self.filters = self.filters.model_copy(update={
            "family_id": filters.family_id,
            "city": filters.city,
        })
        if filters.focus_person_id and filters.focus_depth:
            await self.enter_focus(
                filters.focus_person_id,
                filters.focus_depth,
                filters.show_ancestors,
                filters.show_descendants,
            )
        elif self.focus_mode:
            await self.exit_focus()
        else:
            self._rebuild()

    async def save_view(
        self, name: str, description: str | None = None, shared: bool = False
    ) -> SavedViewOut | None:
        if not name:
            return None
        view = SavedViewIn(name=name, description=description, filters=self.current_filters(), is_shared=shared)
        try:
            saved = await self.api.save_view(view)
        except (httpx.HTTPError, ValueError, ValidationError) as exc:
            logger.warning("Failed to save view %r: %s", name, exc)
            return None
        self.saved_views.insert(0, saved)
        return saved

    # ------------------------------------------------------------------
    # Painting
    # ------------------------------------------------------------------

    def render_state(self) -> RenderState:
        hovered = self.controller.hovered
        return RenderState(
            hovered_id=hovered.id if hovered else None,
            selected_id=self.selected.id if self.selected else None,
            path_ids=set(self.highlighted),
            path_edges=set(self.highlighted_edges),
            focus_id=self.focus_person_id if self.focus_mode else None,
        )

    def paint(self, canvas: Canvas) -> None:
        self.renderer.draw(canvas, self.sim, self.view, self.render_state())
