"""Pointer, wheel and keyboard handling for the relationship canvas.

Screen coordinates are relative to the viewport's top-left corner; the world
origin sits at the viewport centre shifted by the pan offset.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from kinship.canvas.layout import SimNode, Simulation


MIN_SCALE = 0.1
MAX_SCALE = 4.0
ZOOM_STEP = 1.3
WHEEL_ZOOM_IN = 1.1
WHEEL_ZOOM_OUT = 0.9
HIT_SLOP = 8.0
CLICK_SLOP = 3.0  # px of pan movement that turns a click into a pan


def _clamp_scale(scale: float) -> float:
    return max(MIN_SCALE, min(MAX_SCALE, scale))


@dataclass
class ViewState:
    """Pan offset and zoom, independent of node positions."""

    x: float = 0.0
    y: float = 0.0
    scale: float = 1.0

    def screen_to_world(self, sx: float, sy: float, width: float, height: float) -> tuple[float, float]:
        return (
            (sx - width / 2 - self.x) / self.scale,
            (sy - height / 2 - self.y) / self.scale,
        )

    def world_to_screen(self, wx: float, wy: float, width: float, height: float) -> tuple[float, float]:
        return (
            wx * self.scale + width / 2 + self.x,
            wy * self.scale + height / 2 + self.y,
        )

    def zoom_at(self, mx: float, my: float, factor: float) -> None:
        """Zoom by ``factor`` keeping the point at (mx, my) from the centre fixed."""
        new_scale = _clamp_scale(self.scale * factor)
        ratio = new_scale / self.scale
        self.x = mx - (mx - self.x) * ratio
        self.y = my - (my - self.y) * ratio
        self.scale = new_scale

    def zoom_in(self) -> None:
        self.scale = _clamp_scale(self.scale * ZOOM_STEP)

    def zoom_out(self) -> None:
        self.scale = _clamp_scale(self.scale / ZOOM_STEP)

    def reset(self) -> None:
        self.x, self.y, self.scale = 0.0, 0.0, 1.0

    def center_on(self, wx: float, wy: float) -> None:
        self.x = -wx * self.scale
        self.y = -wy * self.scale


class PointerMode(str, Enum):
    IDLE = "idle"
    DRAGGING_NODE = "dragging-node"
    PANNING = "panning"


class InteractionController:
    """Turns raw input events into pan, zoom, drag, hover, select and focus."""

    def __init__(
        self,
        sim: Simulation,
        view: ViewState,
        width: float = 1200.0,
        height: float = 800.0,
        on_select: Callable[[SimNode | None], None] | None = None,
        on_focus: Callable[[str], None] | None = None,
        on_command_palette: Callable[[], None] | None = None,
        on_escape: Callable[[], None] | None = None,
    ) -> None:
        self.sim = sim
        self.view = view
        self.width = width
        self.height = height
        self.on_select = on_select
        self.on_focus = on_focus
        self.on_command_palette = on_command_palette
        self.on_escape = on_escape

        self.mode = PointerMode.IDLE
        self.hovered: SimNode | None = None
        self.selected: SimNode | None = None
        self._drag_offset = (0.0, 0.0)
        self._pan_origin = (0.0, 0.0, 0.0, 0.0)
        self._panned = False

    def attach(self, sim: Simulation) -> None:
        """Swap in a rebuilt simulation, dropping any gesture in progress."""
        self.sim = sim
        self.mode = PointerMode.IDLE
        self.hovered = None
        self.selected = sim.node(self.selected.id) if self.selected else None
        self._panned = False

    def resize(self, width: float, height: float) -> None:
        self.width = width
        self.height = height

    def to_world(self, sx: float, sy: float) -> tuple[float, float]:
        return self.view.screen_to_world(sx, sy, self.width, self.height)

    def hit_test(self, wx: float, wy: float) -> SimNode | None:
        """Nearest node within ``r + 8``; equal distances go to the topmost node."""
        best: SimNode | None = None
        best_d2 = float("inf")
        # Last drawn is on top, so scan in reverse and keep strict improvements
        for node in reversed(self.sim.nodes):
            dx = node.x - wx
            dy = node.y - wy
            d2 = dx * dx + dy * dy
            reach = node.r + HIT_SLOP
            if d2 < reach * reach and d2 < best_d2:
                best, best_d2 = node, d2
        return best

    # ------------------------------------------------------------------
    # Pointer
    # ------------------------------------------------------------------

    def pointer_down(self, sx: float, sy: float) -> PointerMode:
        wx, wy = self.to_world(sx, sy)
        node = self.hit_test(wx, wy)
        self._panned = False
        if node is not None:
            self.mode = PointerMode.DRAGGING_NODE
            self._drag_offset = (node.x - wx, node.y - wy)
            self.sim.pin(node.id)
            self.hovered = node
        else:
            self.mode = PointerMode.PANNING
            self._pan_origin = (sx, sy, self.view.x, self.view.y)
        return self.mode

    def pointer_move(self, sx: float, sy: float) -> None:
        if self.mode is PointerMode.DRAGGING_NODE:
            node = self.sim.node(self.sim.pinned_id)
            if node is None:
                self.mode = PointerMode.IDLE
                return
            wx, wy = self.to_world(sx, sy)
            node.x = wx + self._drag_offset[0]
            node.y = wy + self._drag_offset[1]
            node.vx = 0.0
            node.vy = 0.0
            self.sim.nudge()
        elif self.mode is PointerMode.PANNING:
            ox, oy, vx, vy = self._pan_origin
            if abs(sx - ox) > CLICK_SLOP or abs(sy - oy) > CLICK_SLOP:
                self._panned = True
            self.view.x = vx + (sx - ox)
            self.view.y = vy + (sy - oy)
        else:
            self.hovered = self.hit_test(*self.to_world(sx, sy))

    def pointer_up(self) -> None:
        if self.mode is PointerMode.DRAGGING_NODE:
            self.sim.release()
            self.sim.nudge()
        self.mode = PointerMode.IDLE

    def wheel(self, sx: float, sy: float, delta_y: float) -> None:
        factor = WHEEL_ZOOM_OUT if delta_y > 0 else WHEEL_ZOOM_IN
        self.view.zoom_at(sx - self.width / 2, sy - self.height / 2, factor)

    def click(self, sx: float, sy: float) -> SimNode | None:
        if self._panned:
            self._panned = False
            return None
        node = self.hit_test(*self.to_world(sx, sy))
        self.selected = node
        if self.on_select:
            self.on_select(node)
        return node

    def double_click(self, sx: float, sy: float) -> SimNode | None:
        node = self.hit_test(*self.to_world(sx, sy))
        if node is not None and self.on_focus:
            self.on_focus(node.id)
        return node

    # ------------------------------------------------------------------
    # Keyboard
    # ------------------------------------------------------------------

    def key(self, key: str, ctrl: bool = False, meta: bool = False) -> bool:
        """Handle a key press; returns True when it was consumed."""
        if key.lower() == "k" and (ctrl or meta):
            if self.on_command_palette:
                self.on_command_palette()
            return True
        if key == "Escape":
            if self.on_escape:
                self.on_escape()
            return True
        return False
