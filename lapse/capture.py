import itertools
from typing import Callable, List, Optional
import numpy as np


FrameSink = Callable[[np.ndarray, float], None]

_track_ids = itertools.count(1)


class MediaTrack:
    def __init__(self, kind: str):
        self.kind = kind
        self.id = f"{kind}-{next(_track_ids)}"
        self.ready_state = "live"

    @property
    def live(self) -> bool:
        return self.ready_state == "live"

    def stop(self):
        self.ready_state = "ended"


class SurfaceCaptureTrack(MediaTrack):
    """Video track sampling a drawing surface every ``1000/fps`` ms.

    Samples are taken on the same clock as the scheduler, so a sample due at
    the same instant as a draw always sees that draw.
    """

    def __init__(self, surface, fps: int, clock):
        super().__init__("video")
        self.surface = surface
        self.fps = int(fps)
        self.interval_ms = 1000.0 / self.fps
        self.clock = clock
        self.frames_captured = 0
        self._sink: Optional[FrameSink] = None
        self._timer: Optional[int] = None
        self._t0: Optional[float] = None

    @property
    def width(self) -> int:
        return self.surface.w

    @property
    def height(self) -> int:
        return self.surface.h

    def start(self, sink: FrameSink):
        if not self.live:
            raise RuntimeError(f"track {self.id} déjà arrêtée")
        self._sink = sink
        self._t0 = self.clock.now_ms()
        self._timer = self.clock.call_soon(self._tick)

    def _tick(self):
        self._timer = None
        if not self.live or self._sink is None:
            return
        ts = self.clock.now_ms() - self._t0
        self._sink(self.surface.snapshot(), ts)
        self.frames_captured += 1
        self._timer = self.clock.set_timeout(self.interval_ms, self._tick)

    def stop(self):
        if self._timer is not None:
            self.clock.clear_timeout(self._timer)
            self._timer = None
        super().stop()


class AudioTrack(MediaTrack):
    """Output of an audio graph's stream destination."""

    def __init__(self, graph):
        super().__init__("audio")
        self.graph = graph

    @property
    def sample_rate(self) -> int:
        return self.graph.sample_rate


class MediaStream:
    def __init__(self, tracks: List[MediaTrack]):
        self._tracks = list(tracks)

    def get_tracks(self) -> List[MediaTrack]:
        return list(self._tracks)

    def get_video_tracks(self) -> List[MediaTrack]:
        return [t for t in self._tracks if t.kind == "video"]

    def get_audio_tracks(self) -> List[MediaTrack]:
        return [t for t in self._tracks if t.kind == "audio"]

    @property
    def has_audio(self) -> bool:
        return bool(self.get_audio_tracks())

    def stop_all(self):
        for track in self._tracks:
            track.stop()


def combine_streams(video: MediaTrack, audio: Optional[MediaTrack]) -> MediaStream:
    tracks = [video]
    if audio is not None:
        tracks.append(audio)
    return MediaStream(tracks)
