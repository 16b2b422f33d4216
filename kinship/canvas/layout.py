"""Force-directed layout for the relationship canvas.

Nodes start clustered by family on a circle and are relaxed by a cooling
("alpha") simulation: pairwise repulsion, edge springs, family cohesion and a
weak pull toward the origin. All state lives on an explicit ``Simulation``
object so the physics can be stepped without any rendering attached.
"""

from __future__ import annotations

import logging
import math
import random
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from pydantic import BaseModel, ValidationError

from kinship.graph.engine import EdgeType
from kinship.models import EdgeOut, GraphNodeOut

logger = logging.getLogger("kinship.canvas.layout")

FAMILY_COLORS = [
    "#8b5cf6", "#6366f1", "#3b82f6", "#0ea5e9", "#14b8a6",
    "#22c55e", "#84cc16", "#eab308", "#f97316", "#ef4444",
    "#ec4899", "#d946ef", "#a855f7", "#7c3aed", "#2dd4bf",
]
FALLBACK_COLOR = "#6366f1"
NODE_RADIUS = 7.0

ALPHA_DECAY = 0.995
ALPHA_MIN = 0.001
DRAG_ALPHA = 0.3
DAMPING = 0.6
REPULSION = 600.0
REPULSION_MIN_D2 = 1.0
REPULSION_MAX_D2 = 50_000.0
SPRING_K = 0.025
SPRING_LENGTH = {
    EdgeType.SPOUSE_OF: 45.0,
    EdgeType.PARENT_OF: 65.0,
}
COHESION = 0.002
CENTERING = 0.0003


class FamilyPalette:
    """Assigns family colours in first-seen order, stable for its lifetime."""

    def __init__(self, colors: list[str] | None = None) -> None:
        self._colors = colors or FAMILY_COLORS
        self._assigned: dict[str, str] = {}

    def color_for(self, family_id: str | None) -> str:
        if family_id is None:
            return FALLBACK_COLOR
        if family_id not in self._assigned:
            self._assigned[family_id] = self._colors[len(self._assigned) % len(self._colors)]
        return self._assigned[family_id]

    def items(self) -> list[tuple[str, str]]:
        return list(self._assigned.items())


@dataclass
class SimNode:
    id: str
    label: str
    family_id: str | None
    family_name: str
    color: str
    city: str | None = None
    can_edit: bool = False
    x: float = 0.0
    y: float = 0.0
    vx: float = 0.0
    vy: float = 0.0
    r: float = NODE_RADIUS
    level: int | None = None
    is_focus: bool = False
    is_path: bool = False


# Direction-free identity of an edge, used to match traversed path hops
EdgeKey = tuple[frozenset[str], EdgeType]


def edge_key(a: str, b: str, edge_type: EdgeType) -> EdgeKey:
    return frozenset((a, b)), edge_type


@dataclass
class SimEdge:
    source: str
    target: str
    type: EdgeType
    is_path: bool = False

    @property
    def key(self) -> EdgeKey:
        return edge_key(self.source, self.target, self.type)


@dataclass
class Simulation:
    """Mutable simulation context: the visible nodes, edges and cooling state."""

    nodes: list[SimNode] = field(default_factory=list)
    edges: list[SimEdge] = field(default_factory=list)
    alpha: float = 1.0
    pinned_id: str | None = None
    _by_id: dict[str, SimNode] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._by_id = {n.id: n for n in self.nodes}

    def node(self, node_id: str | None) -> SimNode | None:
        if node_id is None:
            return None
        return self._by_id.get(node_id)

    @property
    def settled(self) -> bool:
        return not self.nodes or self.alpha < ALPHA_MIN

    def reheat(self, alpha: float = 1.0) -> None:
        self.alpha = alpha

    def nudge(self, floor: float = DRAG_ALPHA) -> None:
        self.alpha = max(self.alpha, floor)

    def pin(self, node_id: str) -> None:
        self.pinned_id = node_id

    def release(self) -> None:
        node = self.node(self.pinned_id)
        if node is not None:
            # No fling after a drag
            node.vx = 0.0
            node.vy = 0.0
        self.pinned_id = None

    def neighbors(self, node_id: str) -> set[str]:
        out: set[str] = set()
        for e in self.edges:
            if e.source == node_id:
                out.add(e.target)
            elif e.target == node_id:
                out.add(e.source)
        return out


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------

def _parse_items(raw, model: type[BaseModel], kind: str) -> list:
    if raw is None:
        return []
    if isinstance(raw, (str, bytes, Mapping)) or not isinstance(raw, Iterable):
        logger.warning("Ignoring malformed %s list of type %s", kind, type(raw).__name__)
        return []
    out = []
    for item in raw:
        try:
            out.append(model.model_validate(item))
        except ValidationError as exc:
            logger.warning("Skipping malformed %s %r: %s", kind, item, exc.errors()[:1])
    return out


def place_initial(nodes: list[SimNode], rng: random.Random | None = None) -> None:
    """Cluster nodes by family on a circle; members on a jittered ring."""
    rng = rng or random.Random()
    groups: dict[str | None, list[SimNode]] = {}
    for n in nodes:
        groups.setdefault(n.family_id, []).append(n)

    fam_count = len(groups)
    cluster_r = min(350.0, 80.0 * math.sqrt(fam_count + 1))

    for fam_idx, members in enumerate(groups.values()):
        fam_angle = 2 * math.pi * fam_idx / (fam_count or 1)
        cx = math.cos(fam_angle) * cluster_r
        cy = math.sin(fam_angle) * cluster_r
        for mem_idx, node in enumerate(members):
            mem_angle = 2 * math.pi * mem_idx / len(members)
            mem_r = 40.0 + rng.random() * 40.0
            node.x = cx + math.cos(mem_angle) * mem_r
            node.y = cy + math.sin(mem_angle) * mem_r
            node.vx = 0.0
            node.vy = 0.0


def build_simulation(
    raw_nodes,
    raw_edges,
    palette: FamilyPalette,
    family_id: str | None = None,
    city: str | None = None,
    highlighted: Iterable[str] = (),
    highlighted_edges: Iterable[EdgeKey] = (),
    focus_id: str | None = None,
    rng: random.Random | None = None,
) -> Simulation:
    """Filter a graph snapshot, project it to sim nodes/edges and place them.

    Malformed snapshot items are skipped; a wholly malformed snapshot yields
    an empty simulation.
    """
    nodes_in: list[GraphNodeOut] = _parse_items(raw_nodes, GraphNodeOut, "node")
    edges_in: list[EdgeOut] = _parse_items(raw_edges, EdgeOut, "edge")

    if family_id:
        nodes_in = [n for n in nodes_in if n.family_id == family_id]
    if city:
        nodes_in = [n for n in nodes_in if n.city == city]

    path_ids = set(highlighted)
    path_pairs = set(highlighted_edges)
    sim_nodes: list[SimNode] = []
    seen: set[str] = set()
    for n in nodes_in:
        if n.id in seen:
            continue
        seen.add(n.id)
        sim_nodes.append(SimNode(
            id=n.id,
            label=(n.label or "").strip() or "Unknown",
            family_id=n.family_id,
            family_name=n.family_name or "Unknown",
            color=palette.color_for(n.family_id),
            city=n.city,
            can_edit=n.can_edit,
            level=n.level,
            is_focus=n.is_focus or n.id == focus_id,
            is_path=n.id in path_ids,
        ))

    sim_edges = [
        SimEdge(
            source=e.from_id,
            target=e.to_id,
            type=e.type,
            is_path=edge_key(e.from_id, e.to_id, e.type) in path_pairs,
        )
        for e in edges_in
        if e.from_id in seen and e.to_id in seen
    ]

    place_initial(sim_nodes, rng)
    return Simulation(nodes=sim_nodes, edges=sim_edges, alpha=1.0)


# ---------------------------------------------------------------------------
# Physics
# ---------------------------------------------------------------------------

def step(sim: Simulation) -> bool:
    """Advance one tick. Returns False when settled (nothing moved)."""
    nodes = sim.nodes
    if not nodes or sim.alpha < ALPHA_MIN:
        return False

    incident: dict[str, list[tuple[str, EdgeType]]] = {}
    for e in sim.edges:
        incident.setdefault(e.source, []).append((e.target, e.type))
        if e.target != e.source:
            incident.setdefault(e.target, []).append((e.source, e.type))

    # Running per-family sums [sx, sy, count], kept current as nodes move
    families: dict[str | None, list[float]] = {}
    for n in nodes:
        acc = families.setdefault(n.family_id, [0.0, 0.0, 0.0])
        acc[0] += n.x
        acc[1] += n.y
        acc[2] += 1

    alpha = sim.alpha
    for node in nodes:
        if node.id == sim.pinned_id:
            continue
        fx = fy = 0.0

        for other in nodes:
            if other is node:
                continue
            dx = node.x - other.x
            dy = node.y - other.y
            d2 = dx * dx + dy * dy
            if d2 < REPULSION_MIN_D2 or d2 > REPULSION_MAX_D2:
                continue
            d = math.sqrt(d2)
            f = REPULSION / d2
            fx += dx / d * f
            fy += dy / d * f

        for other_id, etype in incident.get(node.id, ()):
            other = sim.node(other_id)
            if other is None:
                continue
            dx = other.x - node.x
            dy = other.y - node.y
            d = math.sqrt(dx * dx + dy * dy) or 1.0
            f = (d - SPRING_LENGTH[etype]) * SPRING_K
            fx += dx / d * f
            fy += dy / d * f

        acc = families[node.family_id]
        if acc[2] > 1:
            cx = (acc[0] - node.x) / (acc[2] - 1)
            cy = (acc[1] - node.y) / (acc[2] - 1)
            fx += (cx - node.x) * COHESION
            fy += (cy - node.y) * COHESION

        fx -= node.x * CENTERING
        fy -= node.y * CENTERING

        node.vx = (node.vx + fx * alpha) * DAMPING
        node.vy = (node.vy + fy * alpha) * DAMPING
        acc[0] += node.vx
        acc[1] += node.vy
        node.x += node.vx
        node.y += node.vy

    sim.alpha *= ALPHA_DECAY
    return True


def run(sim: Simulation, max_ticks: int) -> int:
    """Step until settled or ``max_ticks``; returns the ticks actually taken."""
    ticks = 0
    while ticks < max_ticks and step(sim):
        ticks += 1
    return ticks
