from dataclasses import dataclass
import cv2
import numpy as np
from .capture import SurfaceCaptureTrack


@dataclass(frozen=True)
class Placement:
    x: float
    y: float
    w: float
    h: float
    scale: float


def fit_rect(iw: int, ih: int, sw: int, sh: int) -> Placement:
    """Uniform scale ``min(sw/iw, sh/ih)``, centered on both axes (letterbox)."""
    if iw <= 0 or ih <= 0:
        raise ValueError(f"image sans dimensions: {iw}x{ih}")
    scale = min(sw / iw, sh / ih)
    w = iw * scale
    h = ih * scale
    return Placement(x=(sw - w) / 2, y=(sh - h) / 2, w=w, h=h, scale=scale)


class DrawingSurface:
    """In-memory BGR canvas, the only thing the scheduler writes to."""

    def __init__(self, w: int, h: int):
        if w <= 0 or h <= 0:
            raise ValueError(f"surface invalide: {w}x{h}")
        self.w = int(w)
        self.h = int(h)
        self.pixels = np.zeros((self.h, self.w, 3), dtype=np.uint8)
        self.draw_count = 0

    def fill(self, bgr=(0, 0, 0)):
        self.pixels[:] = np.asarray(bgr, dtype=np.uint8)

    def draw_image(self, image: np.ndarray, placement: Placement):
        # bornes entières, jamais hors de la surface
        x0 = max(int(round(placement.x)), 0)
        y0 = max(int(round(placement.y)), 0)
        x1 = min(int(round(placement.x + placement.w)), self.w)
        y1 = min(int(round(placement.y + placement.h)), self.h)
        if x1 <= x0 or y1 <= y0:
            return
        interp = cv2.INTER_AREA if placement.scale < 1.0 else cv2.INTER_LINEAR
        resized = cv2.resize(image, (x1 - x0, y1 - y0), interpolation=interp)
        if resized.ndim == 2:
            resized = cv2.cvtColor(resized, cv2.COLOR_GRAY2BGR)
        elif resized.shape[2] == 4:
            resized = cv2.cvtColor(resized, cv2.COLOR_BGRA2BGR)
        self.pixels[y0:y1, x0:x1] = resized
        self.draw_count += 1

    def draw_fitted(self, image: np.ndarray, background_bgr=(0, 0, 0)) -> Placement:
        """Clear to ``background_bgr`` and draw ``image`` fit-and-centered."""
        placement = fit_rect(image.shape[1], image.shape[0], self.w, self.h)
        self.fill(background_bgr)
        self.draw_image(image, placement)
        return placement

    def snapshot(self) -> np.ndarray:
        return self.pixels.copy()

    def capture_stream(self, fps: int, clock) -> SurfaceCaptureTrack:
        return SurfaceCaptureTrack(self, fps, clock)
