"""Frame painter for the relationship canvas.

``Renderer.draw`` is a pure function of the simulation, the view and the
highlight state; it paints onto anything implementing ``Canvas``.
``SvgCanvas`` is the bundled implementation, used for server-side export.
"""

from __future__ import annotations

import html
from dataclasses import dataclass, field
from typing import Protocol

from kinship.canvas.interaction import ViewState
from kinship.canvas.layout import EdgeKey, SimNode, Simulation
from kinship.graph.engine import EdgeType

BG_INNER = "#1e1b4b"
BG_OUTER = "#020617"
GRID_COLOR = "#6366f1"
GRID_SPACING = 40.0
PATH_COLOR = "#22c55e"
FOCUS_COLOR = "#eab308"
SPOUSE_COLOR = "#ec4899"
PARENT_COLOR = "#94a3b8"
WHITE = "#ffffff"

LABEL_MIN_SCALE = 0.4
LEGEND_MAX_FAMILIES = 12


class Canvas(Protocol):
    width: float
    height: float

    def fill_background(self, inner: str, outer: str) -> None: ...

    def grid(self, spacing: float, offset_x: float, offset_y: float, color: str, opacity: float) -> None: ...

    def push_transform(self, tx: float, ty: float, scale: float) -> None: ...

    def pop_transform(self) -> None: ...

    def line(
        self, x1: float, y1: float, x2: float, y2: float,
        color: str, width: float, opacity: float = 1.0,
        dash: tuple[float, float] | None = None,
    ) -> None: ...

    def circle(
        self, cx: float, cy: float, r: float, fill: str, opacity: float = 1.0,
        stroke: str | None = None, stroke_width: float = 0.0, stroke_opacity: float = 1.0,
    ) -> None: ...

    def rect(self, x: float, y: float, w: float, h: float, fill: str, opacity: float = 1.0) -> None: ...

    def text(
        self, x: float, y: float, value: str, size: float, color: str,
        opacity: float = 1.0, bold: bool = False, anchor: str = "middle",
    ) -> None: ...


@dataclass
class RenderState:
    hovered_id: str | None = None
    selected_id: str | None = None
    path_ids: set[str] = field(default_factory=set)
    path_edges: set[EdgeKey] = field(default_factory=set)
    focus_id: str | None = None


@dataclass
class _NodeStyle:
    radius: float
    emphasised: bool
    dim: bool


class Renderer:
    """Paints background grid, edges, nodes, labels and legend for one frame."""

    def __init__(self, show_legend: bool = True) -> None:
        self.show_legend = show_legend

    def draw(self, canvas: Canvas, sim: Simulation, view: ViewState, state: RenderState | None = None) -> None:
        state = state or RenderState()
        w, h = canvas.width, canvas.height

        canvas.fill_background(BG_INNER, BG_OUTER)
        spacing = GRID_SPACING * view.scale
        if spacing > 0:
            canvas.grid(spacing, (w / 2 + view.x) % spacing, (h / 2 + view.y) % spacing, GRID_COLOR, 0.08)

        hovered = sim.node(state.hovered_id)
        connected = sim.neighbors(hovered.id) if hovered else set()

        canvas.push_transform(w / 2 + view.x, h / 2 + view.y, view.scale)
        self._draw_edges(canvas, sim, state, hovered)
        for node in sim.nodes:
            self._draw_node(canvas, node, view, state, hovered, connected)
        canvas.pop_transform()

        if self.show_legend and sim.nodes:
            self._draw_legend(canvas, sim, state)

    # ------------------------------------------------------------------

    def _draw_edges(self, canvas: Canvas, sim: Simulation, state: RenderState, hovered: SimNode | None) -> None:
        for edge in sim.edges:
            src, tgt = sim.node(edge.source), sim.node(edge.target)
            if src is None or tgt is None:
                continue
            hl = hovered is not None and hovered.id in (edge.source, edge.target)
            dim = hovered is not None and not hl
            on_path = edge.is_path or edge.key in state.path_edges

            if on_path:
                canvas.line(src.x, src.y, tgt.x, tgt.y, PATH_COLOR, 4.0)
            elif edge.type is EdgeType.SPOUSE_OF:
                opacity = 0.05 if dim else 0.9 if hl else 0.35
                canvas.line(src.x, src.y, tgt.x, tgt.y, SPOUSE_COLOR, 2.5 if hl else 1.5, opacity, dash=(5.0, 5.0))
            else:
                opacity = 0.04 if dim else 0.8 if hl else 0.2
                canvas.line(src.x, src.y, tgt.x, tgt.y, PARENT_COLOR, 2.0 if hl else 1.0, opacity)

    def _style(self, node: SimNode, state: RenderState, hovered: SimNode | None, connected: set[str]) -> _NodeStyle:
        is_hov = hovered is not None and hovered.id == node.id
        is_sel = state.selected_id == node.id
        is_con = node.id in connected
        is_path = node.is_path or node.id in state.path_ids
        is_focus = node.is_focus or node.id == state.focus_id

        if is_focus:
            radius = node.r * 2.0
        elif is_path:
            radius = node.r * 1.8
        elif is_hov or is_sel:
            radius = node.r * 1.6
        elif is_con:
            radius = node.r * 1.2
        else:
            radius = node.r
        return _NodeStyle(
            radius=radius,
            emphasised=is_hov or is_sel or is_path or is_focus,
            dim=hovered is not None and not is_hov and not is_con,
        )

    def _draw_node(
        self,
        canvas: Canvas,
        node: SimNode,
        view: ViewState,
        state: RenderState,
        hovered: SimNode | None,
        connected: set[str],
    ) -> None:
        style = self._style(node, state, hovered, connected)
        r = style.radius
        is_path = node.is_path or node.id in state.path_ids
        is_focus = node.is_focus or node.id == state.focus_id
        is_hov = hovered is not None and hovered.id == node.id
        is_sel = state.selected_id == node.id

        # Halo
        if is_focus:
            canvas.circle(node.x, node.y, r + 25, FOCUS_COLOR, opacity=0.25)
        elif is_path:
            canvas.circle(node.x, node.y, r + 25, PATH_COLOR, opacity=0.25)
        elif is_hov:
            canvas.circle(node.x, node.y, r + 18, node.color, opacity=0.3)

        fill = PATH_COLOR if is_path else FOCUS_COLOR if is_focus else node.color
        fill_opacity = 0.15 if style.dim and not (is_path or is_focus) else 1.0
        if is_focus:
            canvas.circle(node.x, node.y, r, fill, stroke=FOCUS_COLOR, stroke_width=3.0)
        elif is_path:
            canvas.circle(node.x, node.y, r, fill, stroke=PATH_COLOR, stroke_width=2.0)
        elif is_hov or is_sel:
            canvas.circle(node.x, node.y, r, fill, stroke=WHITE, stroke_width=2.0)
        elif node.can_edit and not style.dim:
            canvas.circle(node.x, node.y, r, fill, stroke=WHITE, stroke_width=1.0, stroke_opacity=0.4)
        else:
            canvas.circle(node.x, node.y, r, fill, opacity=fill_opacity)

        if not style.dim:
            canvas.circle(node.x - r * 0.3, node.y - r * 0.3, r * 0.22, WHITE, opacity=0.45)

        if view.scale > LABEL_MIN_SCALE or style.emphasised or node.id in connected:
            size = round(11 / max(view.scale, 0.5))
            first_name = node.label.split(" ")[0]
            if style.dim:
                opacity = 0.1
            elif style.emphasised:
                opacity = 1.0
            else:
                opacity = 0.7
            canvas.text(node.x, node.y + r + 5, first_name, size, WHITE, opacity=opacity, bold=style.emphasised)

    def _draw_legend(self, canvas: Canvas, sim: Simulation, state: RenderState) -> None:
        families: dict[str | None, tuple[str, str]] = {}
        for n in sim.nodes:
            families.setdefault(n.family_id, (n.family_name, n.color))

        shown = list(families.values())[:LEGEND_MAX_FAMILIES]
        extra = len(families) - len(shown)
        has_path = bool(state.path_ids) or any(e.is_path for e in sim.edges)
        rows = len(shown) + (1 if extra > 0 else 0) + 2 + (1 if has_path else 0)

        x, row_h = 16.0, 18.0
        y = canvas.height - 16.0 - rows * row_h
        canvas.rect(x - 8, y - 8, 180.0, rows * row_h + 12, "#0f172a", opacity=0.85)

        for name, color in shown:
            canvas.circle(x + 5, y + 6, 5.0, color)
            canvas.text(x + 16, y, name, 11, WHITE, opacity=0.8, anchor="start")
            y += row_h
        if extra > 0:
            canvas.text(x + 16, y, f"+{extra} more families", 11, WHITE, opacity=0.5, anchor="start")
            y += row_h

        canvas.line(x, y + 6, x + 12, y + 6, PARENT_COLOR, 1.5, 0.8)
        canvas.text(x + 16, y, "Parent / child", 11, WHITE, opacity=0.8, anchor="start")
        y += row_h
        canvas.line(x, y + 6, x + 12, y + 6, SPOUSE_COLOR, 1.5, 0.8, dash=(3.0, 3.0))
        canvas.text(x + 16, y, "Spouse", 11, WHITE, opacity=0.8, anchor="start")
        y += row_h
        if has_path:
            canvas.line(x, y + 6, x + 12, y + 6, PATH_COLOR, 3.0)
            canvas.text(x + 16, y, "Relationship path", 11, WHITE, opacity=0.8, anchor="start")


# ---------------------------------------------------------------------------
# SVG canvas
# ---------------------------------------------------------------------------

def _n(v: float) -> str:
    return f"{v:.2f}".rstrip("0").rstrip(".")


class SvgCanvas:
    """Canvas that records primitives as SVG elements."""

    def __init__(self, width: float, height: float) -> None:
        self.width = width
        self.height = height
        self._parts: list[str] = []
        self._depth = 0

    def fill_background(self, inner: str, outer: str) -> None:
        self._parts.append(
            '<defs><radialGradient id="bg" cx="50%" cy="50%" r="75%">'
            f'<stop offset="0" stop-color="{inner}"/>'
            f'<stop offset="1" stop-color="{outer}"/>'
            "</radialGradient></defs>"
        )
        self._parts.append(f'<rect width="{_n(self.width)}" height="{_n(self.height)}" fill="url(#bg)"/>')

    def grid(self, spacing: float, offset_x: float, offset_y: float, color: str, opacity: float) -> None:
        if spacing < 2:
            return
        segs: list[str] = []
        x = offset_x
        while x < self.width:
            segs.append(f"M{_n(x)} 0V{_n(self.height)}")
            x += spacing
        y = offset_y
        while y < self.height:
            segs.append(f"M0 {_n(y)}H{_n(self.width)}")
            y += spacing
        if segs:
            self._parts.append(
                f'<path d="{"".join(segs)}" stroke="{color}" stroke-opacity="{_n(opacity)}" stroke-width="1"/>'
            )

    def push_transform(self, tx: float, ty: float, scale: float) -> None:
        self._parts.append(f'<g transform="translate({_n(tx)} {_n(ty)}) scale({scale:.4f})">')
        self._depth += 1

    def pop_transform(self) -> None:
        if self._depth:
            self._parts.append("</g>")
            self._depth -= 1

    def line(
        self, x1: float, y1: float, x2: float, y2: float,
        color: str, width: float, opacity: float = 1.0,
        dash: tuple[float, float] | None = None,
    ) -> None:
        dash_attr = f' stroke-dasharray="{_n(dash[0])} {_n(dash[1])}"' if dash else ""
        self._parts.append(
            f'<line x1="{_n(x1)}" y1="{_n(y1)}" x2="{_n(x2)}" y2="{_n(y2)}" '
            f'stroke="{color}" stroke-width="{_n(width)}" stroke-opacity="{_n(opacity)}"{dash_attr}/>'
        )

    def circle(
        self, cx: float, cy: float, r: float, fill: str, opacity: float = 1.0,
        stroke: str | None = None, stroke_width: float = 0.0, stroke_opacity: float = 1.0,
    ) -> None:
        stroke_attr = (
            f' stroke="{stroke}" stroke-width="{_n(stroke_width)}" stroke-opacity="{_n(stroke_opacity)}"'
            if stroke else ""
        )
        self._parts.append(
            f'<circle cx="{_n(cx)}" cy="{_n(cy)}" r="{_n(r)}" fill="{fill}" '
            f'fill-opacity="{_n(opacity)}"{stroke_attr}/>'
        )

    def rect(self, x: float, y: float, w: float, h: float, fill: str, opacity: float = 1.0) -> None:
        self._parts.append(
            f'<rect x="{_n(x)}" y="{_n(y)}" width="{_n(w)}" height="{_n(h)}" rx="6" '
            f'fill="{fill}" fill-opacity="{_n(opacity)}"/>'
        )

    def text(
        self, x: float, y: float, value: str, size: float, color: str,
        opacity: float = 1.0, bold: bool = False, anchor: str = "middle",
    ) -> None:
        weight = ' font-weight="bold"' if bold else ""
        self._parts.append(
            f'<text x="{_n(x)}" y="{_n(y)}" font-size="{_n(size)}" fill="{color}" '
            f'fill-opacity="{_n(opacity)}" text-anchor="{anchor}" dominant-baseline="hanging" '
            f'font-family="Inter, system-ui, sans-serif"{weight}>{html.escape(value)}</text>'
        )

    def to_svg(self) -> str:
        closing = "</g>" * self._depth
        return (
            f'<svg xmlns="http://www.w3.org/2000/svg" width="{_n(self.width)}" '
            f'height="{_n(self.height)}" viewBox="0 0 {_n(self.width)} {_n(self.height)}">'
            + "".join(self._parts) + closing + "</svg>"
        )
