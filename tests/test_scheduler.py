import pytest

from lapse.capture import SurfaceCaptureTrack
from lapse.clock import CancellationToken, VirtualClock
from lapse.pipeline_scheduler import CANCELLED, DONE, FrameScheduler, derive_frame_rate
from lapse.surface import DrawingSurface

from conftest import COLORS, make_image


@pytest.mark.parametrize(
    "n, d, fps",
    [
        (10, 5, 2),
        (6, 2, 3),
        (5, 2, 3),  # 2.5 rounds up
        (2, 10, 1),  # clamps to 1
        (30, 1, 30),
        (7, 3, 2),
    ],
)
def test_derive_frame_rate(n, d, fps):
    assert derive_frame_rate(n, d) == fps


@pytest.mark.parametrize("d", [0, -1.0, float("nan"), float("inf")])
def test_derive_frame_rate_rejects_bad_duration(d):
    with pytest.raises(ValueError):
        derive_frame_rate(3, d)


def test_virtual_clock_fires_same_instant_in_schedule_order():
    clock = VirtualClock()
    seen = []
    clock.set_timeout(10, lambda: seen.append("a"))
    clock.set_timeout(5, lambda: seen.append("b"))
    clock.set_timeout(10, lambda: seen.append("c"))
    cancelled = clock.set_timeout(1, lambda: seen.append("x"))
    clock.clear_timeout(cancelled)

    clock.run()

    assert seen == ["b", "a", "c"]
    assert clock.now_ms() == 10


def test_clock_run_stops_on_cancel():
    clock = VirtualClock()
    token = CancellationToken()
    seen = []

    def tick():
        seen.append(clock.now_ms())
        if len(seen) == 3:
            token.cancel()
        clock.set_timeout(100, tick)

    clock.call_soon(tick)
    assert clock.run(cancel=token) is False
    assert seen == [0, 100, 200]
    assert token.reason == "cancelled by caller"


def test_scheduler_draws_each_frame_once_per_interval():
    clock = VirtualClock()
    surface = DrawingSurface(32, 32)
    images = [make_image(16, 16, c) for c in COLORS[:4]]
    draws = []
    done = []

    original = surface.draw_fitted

    def spy(image, bg=(0, 0, 0)):
        draws.append((clock.now_ms(), tuple(image[0, 0])))
        return original(image, bg)

    surface.draw_fitted = spy
    scheduler = FrameScheduler(clock)
    interval = scheduler.schedule(surface, images, 2.0, on_complete=lambda: done.append(clock.now_ms()))
    clock.run()

    assert interval == pytest.approx(500.0)
    assert [t for t, _ in draws] == pytest.approx([0, 500, 1000, 1500])
    assert [c for _, c in draws] == [tuple(c) for c in COLORS[:4]]
    # one extra interval after the last draw
    assert done == [pytest.approx(2000)]
    assert scheduler.state == DONE


def test_capture_track_sees_every_draw():
    clock = VirtualClock()
    surface = DrawingSurface(16, 16)
    images = [make_image(16, 16, c) for c in COLORS[:3]]
    track = SurfaceCaptureTrack(surface, derive_frame_rate(3, 3.0), clock)
    captured = []
    scheduler = FrameScheduler(clock)

    track.start(lambda frame, ts: captured.append((ts, tuple(frame[8, 8]))))
    scheduler.schedule(surface, images, 3.0, on_complete=track.stop)
    clock.run()

    assert [ts for ts, _ in captured] == pytest.approx([0, 1000, 2000])
    assert [c for _, c in captured] == [tuple(c) for c in COLORS[:3]]
    assert track.frames_captured == 3
    assert not track.live


def test_scheduler_cancel_stops_drawing():
    clock = VirtualClock()
    surface = DrawingSurface(8, 8)
    scheduler = FrameScheduler(clock)
    done = []
    scheduler.schedule(surface, [make_image(8, 8)] * 5, 5.0, on_complete=lambda: done.append(True))
    clock.set_timeout(1500, scheduler.cancel)
    clock.run()

    assert scheduler.state == CANCELLED
    assert scheduler.frames_drawn == 2
    assert done == []


def test_scheduler_is_single_use():
    scheduler = FrameScheduler(VirtualClock())
    scheduler.schedule(DrawingSurface(4, 4), [make_image(4, 4)] * 2, 1.0)
    with pytest.raises(RuntimeError):
        scheduler.schedule(DrawingSurface(4, 4), [make_image(4, 4)] * 2, 1.0)
