from typing import Optional
from urllib.parse import urlparse
from urllib.request import url2pathname

import numpy as np
import requests

from .capture import AudioTrack
from .config import AppConfig
from .handles import HandleRegistry
from .io_audio import AudioDecoder, FfmpegAudioDecoder
from .io_frames import fetch_blob, new_session
from .types import AudioMixOptions


_EXT_BY_TYPE = {
    "audio/mpeg": ".mp3",
    "audio/mp3": ".mp3",
    "audio/wav": ".wav",
    "audio/x-wav": ".wav",
    "audio/ogg": ".ogg",
    "audio/webm": ".webm",
    "audio/aac": ".aac",
    "audio/mp4": ".m4a",
}


class AudioGraph:
    """Looping source -> gain -> stream destination.

    The destination track only exists once ``connect()`` succeeded, so a
    graph handed to the encoder is always fully wired.
    """

    def __init__(self, samples: np.ndarray, sample_rate: int, gain: float = 0.5, loop: bool = True):
        if samples.ndim != 2 or samples.shape[1] != 2 or samples.shape[0] == 0:
            raise ValueError(f"buffer audio invalide: shape={samples.shape}")
        self.samples = samples.astype(np.float32, copy=False)
        self.sample_rate = int(sample_rate)
        self.gain = float(np.clip(gain, 0.0, 1.0))
        self.loop = loop
        self.track: Optional[AudioTrack] = None
        self.started_at_ms: Optional[float] = None
        self.stopped_at_ms: Optional[float] = None
        self.closed = False

    @property
    def buffer_seconds(self) -> float:
        return self.samples.shape[0] / self.sample_rate

    @property
    def started(self) -> bool:
        return self.started_at_ms is not None

    def connect(self) -> AudioTrack:
        if self.closed:
            raise RuntimeError("graphe audio déjà fermé")
        self.track = AudioTrack(self)
        return self.track

    def start(self, at_ms: float):
        if self.track is None:
            raise RuntimeError("graphe audio non connecté")
        if self.started:
            raise RuntimeError("source audio déjà démarrée")
        self.started_at_ms = float(at_ms)

    def stop(self, at_ms: Optional[float] = None):
        if not self.started or self.stopped_at_ms is not None:
            return
        self.stopped_at_ms = float(at_ms) if at_ms is not None else self.started_at_ms

    def close(self):
        if self.closed:
            return
        self.closed = True
        if self.track is not None:
            self.track.stop()

    def render(self, seconds: float) -> np.ndarray:
        """Samples heard over ``seconds`` of playback from the start."""
        n = max(int(round(seconds * self.sample_rate)), 0)
        src = self.samples
        if n <= src.shape[0]:
            out = src[:n]
        elif self.loop:
            reps = int(np.ceil(n / src.shape[0]))
            out = np.tile(src, (reps, 1))[:n]
        else:
            out = np.zeros((n, 2), dtype=np.float32)
            out[: src.shape[0]] = src
        return np.clip(out * self.gain, -1.0, 1.0).astype(np.float32)


class AudioMixer:
    """Best-effort background track: any failure means silent output."""

    def __init__(
        self,
        cfg: AppConfig,
        registry: HandleRegistry,
        session: Optional[requests.Session] = None,
        decoder: Optional[AudioDecoder] = None,
    ):
        self.cfg = cfg
        self.registry = registry
        self.session = session if session is not None else new_session(cfg)
        self.decoder = decoder or FfmpegAudioDecoder(cfg.audio.target_sr, verbose=cfg.verbose_lib)

    def _source_path(self, url: str) -> str:
        scheme = urlparse(url).scheme.lower()
        if scheme in ("http", "https"):
            blob, content_type = fetch_blob(self.session, url, self.cfg, accept="audio/*")
            _, path = self.registry.spool(blob, suffix=_EXT_BY_TYPE.get(content_type, ".audio"))
            return path
        if scheme == "file":
            return url2pathname(urlparse(url).path)
        return url

    def mix(self, options: Optional[AudioMixOptions]) -> Optional[AudioGraph]:
        if options is None or not options.url:
            return None

        graph = None
        try:
            path = self._source_path(options.url)
            samples, sr = self.decoder.decode(path)
            graph = AudioGraph(samples, sr, gain=options.volume, loop=True)
            graph.connect()
        except Exception as exc:
            print(f"⚠️ Failed to load background music, continuing without audio: {exc}")
            if graph is not None:
                graph.close()
            return None

        if self.cfg.verbose:
            print(
                f"🎵 sr={graph.sample_rate} | samples={graph.samples.shape[0]}"
                f" | duration={graph.buffer_seconds:.2f}s | gain={graph.gain:.2f}"
            )
        return graph
