"""Relationship graph engine: pure Python traversal over PARENT_OF / SPOUSE_OF edges.

Builds a transient adjacency index from a flat edge list and answers two
questions over it: the shortest relationship chain between two people, and
the bounded neighbourhood around one person (focus mode).

No DB, no I/O. Callers rebuild the index from a fresh edge snapshot per query.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum


class InvalidArgument(ValueError):
    """A required query argument is missing or out of range."""


class EdgeType(str, Enum):
    PARENT_OF = "PARENT_OF"  # from = parent, to = child
    SPOUSE_OF = "SPOUSE_OF"  # symmetric, stored in arbitrary order


class Direction(str, Enum):
    FORWARD = "forward"
    REVERSE = "reverse"


@dataclass(frozen=True)
class Edge:
    from_id: str
    to_id: str
    type: EdgeType


@dataclass(frozen=True)
class Neighbor:
    person_id: str
    edge_type: EdgeType
    direction: Direction


@dataclass(frozen=True)
class Hop:
    """One traversed edge on a path, oriented in travel order."""
    from_id: str
    to_id: str
    type: EdgeType
    direction: Direction

    @property
    def label(self) -> str:
        return relationship_label(self.type, self.direction)


def relationship_label(edge_type: EdgeType, direction: Direction) -> str:
    """Human label for the later node of a hop relative to the earlier one."""
    if edge_type is EdgeType.SPOUSE_OF:
        return "spouse of"
    if edge_type is EdgeType.PARENT_OF:
        # forward: the earlier node is the parent, so the later one is its child
        return "child of" if direction is Direction.FORWARD else "parent of"
    raise ValueError(f"Unknown edge type: {edge_type!r}")


# ---------------------------------------------------------------------------
# Index
# ---------------------------------------------------------------------------

class GraphIndex:
    """Undirected adjacency over a directed edge list."""

    def __init__(self, edges: Iterable[Edge]):
        self._adj: dict[str, list[Neighbor]] = {}
        self._edges: list[Edge] = list(edges)

        for e in self._edges:
            self._adj.setdefault(e.from_id, []).append(
                Neighbor(e.to_id, e.type, Direction.FORWARD)
            )
            self._adj.setdefault(e.to_id, []).append(
                Neighbor(e.from_id, e.type, Direction.REVERSE)
            )

    @property
    def edges(self) -> list[Edge]:
        return self._edges

    def neighbors(self, person_id: str) -> list[Neighbor]:
        # People without edges are simply absent from the index
        return self._adj.get(person_id, [])

    def __contains__(self, person_id: object) -> bool:
        return person_id in self._adj

    def __len__(self) -> int:
        return len(self._adj)


# ---------------------------------------------------------------------------
# Shortest path
# ---------------------------------------------------------------------------

@dataclass
class PathResult:
    found: bool
    person_ids: list[str] = field(default_factory=list)
    hops: list[Hop] = field(default_factory=list)

    @property
    def degrees(self) -> int | None:
        return len(self.hops) if self.found else None

    def labels(self) -> list[str | None]:
        """Relationship label per path position; the start person has none."""
        if not self.found:
            return []
        return [None] + [h.label for h in self.hops]


def _as_index(graph: GraphIndex | Iterable[Edge]) -> GraphIndex:
    return graph if isinstance(graph, GraphIndex) else GraphIndex(graph)


def find_path(graph: GraphIndex | Iterable[Edge], from_id: str | None, to_id: str | None) -> PathResult:
    """Breadth-first shortest relationship chain between two people.

    Ties between equally short chains fall to neighbour order. An unknown id
    yields ``found=False``, same as two people with no connecting chain.
    """
    if not from_id or not to_id:
        raise InvalidArgument("fromId and toId are required")

    index = _as_index(graph)
    queue: deque[tuple[str, list[str], list[Hop]]] = deque([(from_id, [from_id], [])])
    visited: set[str] = {from_id}

    while queue:
        pid, path, hops = queue.popleft()
        if pid == to_id:
            return PathResult(found=True, person_ids=path, hops=hops)

        for nb in index.neighbors(pid):
            if nb.person_id in visited:
                continue
            # Mark on enqueue so the first discovery is the shortest
            visited.add(nb.person_id)
            hop = Hop(pid, nb.person_id, nb.edge_type, nb.direction)
            queue.append((nb.person_id, path + [nb.person_id], hops + [hop]))

    return PathResult(found=False)


# ---------------------------------------------------------------------------
# Focus neighbourhood
# ---------------------------------------------------------------------------

@dataclass
class Neighborhood:
    center_id: str
    depth: int
    levels: dict[str, int]
    edges: list[Edge]

    @property
    def person_ids(self) -> list[str]:
        return list(self.levels)

    def is_focus(self, person_id: str) -> bool:
        return person_id == self.center_id


def _focus_adjacency(
    edges: Sequence[Edge],
    include_ancestors: bool,
    include_descendants: bool,
) -> dict[str, list[str]]:
    adj: dict[str, list[str]] = {}
    for e in edges:
        if e.type is EdgeType.PARENT_OF:
            if include_descendants:
                adj.setdefault(e.from_id, []).append(e.to_id)
            if include_ancestors:
                adj.setdefault(e.to_id, []).append(e.from_id)
        elif e.type is EdgeType.SPOUSE_OF:
            # Spouses are traversable regardless of the direction toggles
            adj.setdefault(e.from_id, []).append(e.to_id)
            adj.setdefault(e.to_id, []).append(e.from_id)
    return adj


def extract_neighborhood(
    graph: GraphIndex | Iterable[Edge],
    center_id: str,
    depth: int,
    include_ancestors: bool = True,
    include_descendants: bool = True,
) -> Neighborhood:
    """All people within ``depth`` hops of ``center_id`` plus the edges among them."""
    if not center_id:
        raise InvalidArgument("personId is required")
    if depth < 0:
        raise InvalidArgument(f"depth must be >= 0, got {depth}")

    edges = graph.edges if isinstance(graph, GraphIndex) else list(graph)
    adj = _focus_adjacency(edges, include_ancestors, include_descendants)

    levels: dict[str, int] = {center_id: 0}
    queue: deque[str] = deque([center_id])
    while queue:
        pid = queue.popleft()
        level = levels[pid]
        if level >= depth:
            continue
        for other in adj.get(pid, []):
            if other not in levels:
                levels[other] = level + 1
                queue.append(other)

    inside = [e for e in edges if e.from_id in levels and e.to_id in levels]
    return Neighborhood(center_id=center_id, depth=depth, levels=levels, edges=inside)
