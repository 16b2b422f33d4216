from __future__ import annotations

import asyncio

from kinship.canvas.loop import AsyncioFrameScheduler, FrameLoop, ManualFrameScheduler


def test_manual_loop_runs_one_callback_per_frame() -> None:
    scheduler = ManualFrameScheduler()
    seen: list[float] = []
    loop = FrameLoop(scheduler, seen.append)
    loop.start()
    loop.start()
    assert scheduler.pending == 1

    assert scheduler.advance(3) == 3
    assert loop.frames == 3
    assert len(seen) == 3
    assert seen == sorted(seen)
    assert scheduler.pending == 1


def test_stop_cancels_pending_frame() -> None:
    scheduler = ManualFrameScheduler()
    loop = FrameLoop(scheduler, lambda now: None)
    loop.start()
    loop.stop()
    assert not loop.running
    assert scheduler.pending == 0
    assert scheduler.advance(5) == 0
    assert loop.frames == 0


def test_stop_from_inside_a_frame() -> None:
    scheduler = ManualFrameScheduler()
    loop: FrameLoop

    def on_frame(now: float) -> None:
        if loop.frames == 1:
            loop.stop()

    loop = FrameLoop(scheduler, on_frame)
    loop.start()
    scheduler.advance(10)
    assert loop.frames == 2
    assert scheduler.pending == 0


def test_frame_errors_are_logged_and_loop_continues(caplog) -> None:
    scheduler = ManualFrameScheduler()
    calls = {"n": 0}

    def on_frame(now: float) -> None:
        calls["n"] += 1
        if calls["n"] == 2:
            raise RuntimeError("bad frame")

    loop = FrameLoop(scheduler, on_frame)
    loop.start()
    with caplog.at_level("ERROR", logger="kinship.canvas.loop"):
        scheduler.advance(4)
    assert calls["n"] == 4
    assert loop.errors == 1
    assert "bad frame" in caplog.text


def test_asyncio_scheduler_drives_frames() -> None:
    async def scenario() -> int:
        frames: list[float] = []
        loop = FrameLoop(AsyncioFrameScheduler(fps=200), frames.append)
        loop.start()
        await asyncio.sleep(0.1)
        loop.stop()
        count = len(frames)
        await asyncio.sleep(0.05)
        assert len(frames) == count
        return count

    assert asyncio.run(scenario()) > 0
