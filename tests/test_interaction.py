from __future__ import annotations

import pytest

from kinship.canvas.interaction import (
    MAX_SCALE,
    MIN_SCALE,
    InteractionController,
    PointerMode,
    ViewState,
)
from kinship.canvas.layout import DRAG_ALPHA, SimNode, Simulation


def _node(node_id: str, x: float, y: float) -> SimNode:
    return SimNode(id=node_id, label=node_id, family_id="f", family_name="F", color="#fff", x=x, y=y)


def _controller(*nodes: SimNode, **kwargs) -> InteractionController:
    sim = Simulation(nodes=list(nodes), alpha=0.0)
    return InteractionController(sim, ViewState(), width=800, height=600, **kwargs)


# ---------------------------------------------------------------------------
# View transform
# ---------------------------------------------------------------------------

def test_screen_world_round_trip() -> None:
    view = ViewState(x=30, y=-20, scale=2.0)
    wx, wy = view.screen_to_world(500, 250, 800, 600)
    assert view.world_to_screen(wx, wy, 800, 600) == pytest.approx((500, 250))


def test_zoom_keeps_point_under_cursor() -> None:
    view = ViewState(x=15, y=40, scale=1.2)
    sx, sy = 610.0, 130.0
    before = view.screen_to_world(sx, sy, 800, 600)
    view.zoom_at(sx - 400, sy - 300, 1.7)
    assert view.screen_to_world(sx, sy, 800, 600) == pytest.approx(before)


def test_zoom_is_clamped() -> None:
    view = ViewState()
    for _ in range(100):
        view.zoom_at(0, 0, 1.5)
    assert view.scale == MAX_SCALE
    for _ in range(100):
        view.zoom_out()
    assert view.scale == MIN_SCALE


def test_zoom_buttons_and_reset() -> None:
    view = ViewState()
    view.zoom_in()
    assert view.scale == pytest.approx(1.3)
    view.zoom_out()
    assert view.scale == pytest.approx(1.0)
    view.x, view.y = 50, 60
    view.reset()
    assert (view.x, view.y, view.scale) == (0.0, 0.0, 1.0)


def test_center_on_puts_world_point_in_middle() -> None:
    view = ViewState(scale=2.0)
    view.center_on(100, -40)
    assert view.world_to_screen(100, -40, 800, 600) == pytest.approx((400, 300))


# ---------------------------------------------------------------------------
# Hit testing
# ---------------------------------------------------------------------------

def test_hit_at_center_resolves_to_node() -> None:
    a = _node("a", 0, 0)
    b = _node("b", 100, 100)
    ctl = _controller(a, b)
    assert ctl.hit_test(0, 0) is a
    assert ctl.hit_test(100, 100) is b


def test_hit_outside_radius_plus_slop_is_none() -> None:
    a = _node("a", 0, 0)
    ctl = _controller(a)
    assert ctl.hit_test(a.r + 8 - 0.5, 0) is a
    assert ctl.hit_test(a.r + 8 + 0.5, 0) is None
    assert _controller().hit_test(0, 0) is None


def test_hit_nearest_of_overlapping_nodes() -> None:
    a = _node("a", 0, 0)
    b = _node("b", 6, 0)
    ctl = _controller(a, b)
    assert ctl.hit_test(0, 0) is a
    assert ctl.hit_test(5, 0) is b


def test_hit_tie_goes_to_topmost() -> None:
    a = _node("a", 0, 0)
    b = _node("b", 0, 0)
    assert _controller(a, b).hit_test(0, 0) is b


# ---------------------------------------------------------------------------
# Pointer gestures
# ---------------------------------------------------------------------------

def test_drag_pins_node_and_release_zeroes_velocity() -> None:
    a = _node("a", 0, 0)
    ctl = _controller(a)
    assert ctl.pointer_down(400, 300) is PointerMode.DRAGGING_NODE
    assert ctl.sim.pinned_id == "a"

    ctl.pointer_move(450, 320)
    assert (a.x, a.y) == pytest.approx((50, 20))
    assert ctl.sim.alpha >= DRAG_ALPHA

    a.vx = 9.0
    ctl.sim.alpha = 0.0
    ctl.pointer_up()
    assert ctl.sim.pinned_id is None
    assert a.vx == 0.0
    assert ctl.sim.alpha == DRAG_ALPHA
    assert ctl.mode is PointerMode.IDLE


def test_pan_moves_view() -> None:
    ctl = _controller(_node("a", 0, 0))
    assert ctl.pointer_down(10, 10) is PointerMode.PANNING
    ctl.pointer_move(60, 35)
    assert (ctl.view.x, ctl.view.y) == (50, 25)
    ctl.pointer_up()
    assert ctl.mode is PointerMode.IDLE


def test_hover_tracked_only_when_idle() -> None:
    a = _node("a", 0, 0)
    ctl = _controller(a)
    ctl.pointer_move(400, 300)
    assert ctl.hovered is a
    ctl.pointer_move(700, 500)
    assert ctl.hovered is None


def test_click_selects_and_clears() -> None:
    a = _node("a", 0, 0)
    selected = []
    ctl = _controller(a, on_select=selected.append)
    assert ctl.click(400, 300) is a
    assert ctl.click(10, 10) is None
    assert selected == [a, None]


def test_click_after_pan_is_suppressed() -> None:
    a = _node("a", 0, 0)
    selected = []
    ctl = _controller(a, on_select=selected.append)
    ctl.pointer_down(100, 100)
    ctl.pointer_move(140, 100)
    ctl.pointer_up()
    assert ctl.click(400 + 40, 300) is None
    assert selected == []
    # The next plain click goes through again
    assert ctl.click(440, 300) is a


def test_tiny_pan_still_clicks() -> None:
    ctl = _controller(_node("a", 0, 0))
    ctl.pointer_down(100, 100)
    ctl.pointer_move(101, 102)
    ctl.pointer_up()
    assert ctl.click(101, 102) is None
    assert ctl.selected is None
    ctl.view.reset()
    assert ctl.click(400, 300) is not None


def test_double_click_enters_focus() -> None:
    focused = []
    ctl = _controller(_node("a", 0, 0), on_focus=focused.append)
    ctl.double_click(400, 300)
    ctl.double_click(0, 0)
    assert focused == ["a"]


def test_wheel_zooms_toward_cursor() -> None:
    ctl = _controller()
    before = ctl.to_world(600, 200)
    ctl.wheel(600, 200, delta_y=-100)
    assert ctl.view.scale == pytest.approx(1.1)
    assert ctl.to_world(600, 200) == pytest.approx(before)
    ctl.wheel(600, 200, delta_y=100)
    assert ctl.view.scale == pytest.approx(0.99)


def test_attach_resets_gesture_and_keeps_selection() -> None:
    a = _node("a", 0, 0)
    ctl = _controller(a)
    ctl.click(400, 300)
    ctl.pointer_down(10, 10)
    fresh = _node("a", 5, 5)
    ctl.attach(Simulation(nodes=[fresh]))
    assert ctl.mode is PointerMode.IDLE
    assert ctl.selected is fresh
    ctl.attach(Simulation())
    assert ctl.selected is None


# ---------------------------------------------------------------------------
# Keyboard
# ---------------------------------------------------------------------------

def test_keyboard_shortcuts() -> None:
    calls: list[str] = []
    ctl = _controller(
        on_command_palette=lambda: calls.append("palette"),
        on_escape=lambda: calls.append("escape"),
    )
    assert ctl.key("k", ctrl=True)
    assert ctl.key("K", meta=True)
    assert ctl.key("Escape")
    assert not ctl.key("k")
    assert not ctl.key("a", ctrl=True)
    assert calls == ["palette", "palette", "escape"]
