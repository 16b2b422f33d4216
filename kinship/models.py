"""Pydantic models for the graph API request/response shapes."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from kinship.graph.engine import Direction, EdgeType


# ---------------------------------------------------------------------------
# People
# ---------------------------------------------------------------------------

class PersonOut(BaseModel):
    """Public person fields, visible to any viewer."""
    id: str
    name: str
    family_id: str | None = None
    family_name: str | None = None
    city: str | None = None


class SearchResultOut(PersonOut):
    # Only filled in for people in the viewer's own family
    birth_date: date | None = None
    occupation: str | None = None


# ---------------------------------------------------------------------------
# Edges
# ---------------------------------------------------------------------------

class EdgeOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_id: str = Field(alias="from")
    to_id: str = Field(alias="to")
    type: EdgeType


# ---------------------------------------------------------------------------
# Path finder
# ---------------------------------------------------------------------------

class PathEdgeOut(EdgeOut):
    """A traversed edge, oriented in travel order."""
    direction: Direction


class PathStepOut(BaseModel):
    person: PersonOut
    relationship: str | None = None  # None for the starting person
    can_edit: bool = False


class PathOut(BaseModel):
    found: bool
    degrees: int | None = None
    path: list[PathStepOut] | None = None
    edges: list[PathEdgeOut] | None = None
    message: str | None = None


# ---------------------------------------------------------------------------
# Focus mode
# ---------------------------------------------------------------------------

class FocusNodeOut(BaseModel):
    person: PersonOut
    level: int
    is_focus: bool
    can_edit: bool


class FocusGraphOut(BaseModel):
    focus_person: str
    depth: int
    nodes: list[FocusNodeOut]
    edges: list[EdgeOut]


# ---------------------------------------------------------------------------
# Canvas snapshot
# ---------------------------------------------------------------------------

class GraphNodeOut(BaseModel):
    """Flat node shape consumed by the client canvas."""
    id: str
    label: str | None = None
    family_id: str | None = None
    family_name: str | None = None
    city: str | None = None
    can_edit: bool = False
    level: int | None = None
    is_focus: bool = False


class GraphSnapshotOut(BaseModel):
    nodes: list[GraphNodeOut]
    edges: list[EdgeOut]


# ---------------------------------------------------------------------------
# Saved views (persisted by the external views service)
# ---------------------------------------------------------------------------

class ViewFilters(BaseModel):
    """Serialised filter/focus configuration of a named view."""
    model_config = ConfigDict(populate_by_name=True)

    family_id: str | None = Field(default=None, alias="familyId")
    city: str | None = None
    focus_person_id: str | None = Field(default=None, alias="focusPersonId")
    focus_depth: int | None = Field(default=None, alias="focusDepth")
    show_ancestors: bool | None = Field(default=None, alias="showAncestors")
    show_descendants: bool | None = Field(default=None, alias="showDescendants")


class SavedViewIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str | None = None
    filters: ViewFilters = ViewFilters()
    is_shared: bool = Field(default=False, alias="isShared")


class SavedViewOut(BaseModel):
    id: UUID | str
    name: str
    description: str | None = None
    filters: ViewFilters = ViewFilters()
    is_shared: bool = False
