import math
from typing import Callable, Optional, Sequence

import numpy as np

from .surface import DrawingSurface
from .types import LoadedAsset


IDLE = "idle"
DRAWING = "drawing"
DONE = "done"
CANCELLED = "cancelled"


def derive_frame_rate(frame_count: int, total_duration_seconds: float) -> int:
    """``max(1, round(n / d))`` with half-up rounding."""
    if not math.isfinite(total_duration_seconds) or total_duration_seconds <= 0:
        raise ValueError(f"durée invalide: {total_duration_seconds}")
    return max(1, int(math.floor(frame_count / total_duration_seconds + 0.5)))


def frame_interval_ms(fps: int) -> float:
    return 1000.0 / fps


class FrameScheduler:
    """Timer-driven draw loop over a drawing surface.

    One image per interval, then one extra interval so the capture track
    samples the last frame, then ``on_complete``.
    """

    def __init__(self, clock, background_bgr=(0, 0, 0), verbose: bool = False):
        self.clock = clock
        self.background_bgr = background_bgr
        self.verbose = verbose
        self.state = IDLE
        self.frames_drawn = 0
        self.interval_ms = 0.0
        self._timer: Optional[int] = None
        self._images: list[np.ndarray] = []
        self._surface: Optional[DrawingSurface] = None
        self._on_complete: Optional[Callable[[], None]] = None

    def schedule(
        self,
        surface: DrawingSurface,
        images: Sequence,
        total_duration_seconds: float,
        on_complete: Optional[Callable[[], None]] = None,
    ) -> float:
        if self.state != IDLE:
            raise RuntimeError(f"scheduler déjà utilisé (state={self.state})")
        if not images:
            raise ValueError("aucune image à dessiner")

        self._images = [a.image if isinstance(a, LoadedAsset) else a for a in images]
        self._surface = surface
        self._on_complete = on_complete
        self.interval_ms = frame_interval_ms(derive_frame_rate(len(self._images), total_duration_seconds))
        self.state = DRAWING
        self._draw_next()
        return self.interval_ms

    def _draw_next(self):
        self._timer = None
        if self.state != DRAWING:
            return

        if self.frames_drawn < len(self._images):
            image = self._images[self.frames_drawn]
            self._surface.draw_fitted(image, self.background_bgr)
            self.frames_drawn += 1
            if self.verbose:
                print(f"🎞️ frame {self.frames_drawn}/{len(self._images)} @ {self.clock.now_ms():.0f} ms")
            self._timer = self.clock.set_timeout(self.interval_ms, self._draw_next)
            return

        self.state = DONE
        if self._on_complete is not None:
            self._on_complete()

    def cancel(self):
        if self._timer is not None:
            self.clock.clear_timeout(self._timer)
            self._timer = None
        if self.state in (IDLE, DRAWING):
            self.state = CANCELLED
