import functools
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from typing import List

import cv2
import numpy as np

from .capture import MediaStream, SurfaceCaptureTrack
from .clock import VirtualClock
from .config import AppConfig
from .encode import ffmpeg_encoders
from .handles import HandleRegistry
from .recorder import OpenCVRecorder, Recorder, build_fourcc
from .surface import DrawingSurface
from .types import CodecCandidate


@dataclass
class Capabilities:
    recorder: bool
    stream_capture: bool
    surface: bool
    audio_mux: bool = False
    notes: List[str] = field(default_factory=list)

    @property
    def supported(self) -> bool:
        return self.recorder and self.stream_capture and self.surface

    @property
    def missing(self) -> List[str]:
        out = []
        if not self.recorder:
            out.append("recorder")
        if not self.stream_capture:
            out.append("surface stream capture")
        if not self.surface:
            out.append("drawing surface")
        return out


class MediaRuntime:
    """Media capabilities the capture encoder is wired against."""

    def probe(self) -> Capabilities:
        raise NotImplementedError

    def is_type_supported(self, candidate: CodecCandidate) -> bool:
        raise NotImplementedError

    def create_surface(self, w: int, h: int) -> DrawingSurface:
        return DrawingSurface(w, h)

    def capture_stream(self, surface: DrawingSurface, fps: int, clock) -> SurfaceCaptureTrack:
        return surface.capture_stream(fps, clock)

    def create_recorder(
        self,
        stream: MediaStream,
        candidate: CodecCandidate,
        cfg: AppConfig,
        registry: HandleRegistry,
        clock,
    ) -> Recorder:
        raise NotImplementedError


@functools.lru_cache(maxsize=None)
def video_codec_supported(fourcc: str, extension: str, size: int = 64) -> bool:
    """Open a throwaway ``VideoWriter`` and check it actually produced bytes."""
    with tempfile.TemporaryDirectory(prefix="lapse_probe_") as d:
        path = os.path.join(d, "probe" + extension)
        writer = cv2.VideoWriter(path, build_fourcc(fourcc), 10, (size, size))
        try:
            if not writer.isOpened():
                return False
            writer.write(np.zeros((size, size, 3), dtype=np.uint8))
        finally:
            writer.release()
        return os.path.exists(path) and os.path.getsize(path) > 0


def writer_backends() -> list:
    """Names of the video writer backends compiled into this OpenCV build."""
    registry = getattr(cv2, "videoio_registry", None)
    if registry is None:
        return []
    return [registry.getBackendName(b) for b in registry.getWriterBackends()]


def _surface_ok() -> bool:
    try:
        surface = DrawingSurface(1, 1)
        surface.draw_fitted(np.zeros((2, 2, 3), dtype=np.uint8), (0, 0, 0))
    except (cv2.error, ValueError):
        return False
    return surface.draw_count == 1 and surface.pixels.shape == (1, 1, 3)


def _stream_capture_ok() -> bool:
    clock = VirtualClock()
    track = DrawingSurface(1, 1).capture_stream(1, clock)
    seen = []
    track.start(lambda frame, ts: seen.append(frame.shape))
    clock.run(until=lambda: bool(seen))
    track.stop()
    return seen == [(1, 1, 3)] and clock.pending == 0


class OpenCVRuntime(MediaRuntime):
    def __init__(self, cfg: AppConfig | None = None):
        self.cfg = cfg or AppConfig.default()

    def probe(self) -> Capabilities:
        caps = Capabilities(
            recorder=hasattr(cv2, "VideoWriter_fourcc") and bool(writer_backends()),
            stream_capture=_stream_capture_ok(),
            surface=_surface_ok(),
            audio_mux=shutil.which("ffmpeg") is not None,
        )
        if not caps.audio_mux:
            caps.notes.append("ffmpeg absent: background music disabled")
        return caps

    def is_type_supported(self, candidate: CodecCandidate) -> bool:
        if not video_codec_supported(candidate.fourcc, candidate.extension, self.cfg.encode.probe_size):
            return False
        if candidate.audio_codec:
            return candidate.audio_codec in ffmpeg_encoders()
        return True

    def create_recorder(self, stream, candidate, cfg, registry, clock) -> Recorder:
        return OpenCVRecorder(stream, candidate, cfg, registry, clock)
