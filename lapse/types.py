from dataclasses import dataclass
from typing import Optional
import numpy as np


AUDIO_MIME_CODECS = ("opus", "vorbis")


@dataclass(frozen=True)
class FrameDescriptor:
    """One input frame; ``order`` is caller-supplied and never rewritten."""

    url: str
    order: int


@dataclass
class AudioMixOptions:
    url: Optional[str] = None
    volume: float = 0.5


@dataclass
class GenerationOptions:
    """Caller-visible tuning. Frame rate and bitrates are derived internally."""

    music_url: Optional[str] = None
    music_volume: Optional[float] = None

    def audio_mix(self, default_volume: float = 0.5) -> AudioMixOptions:
        volume = default_volume if self.music_volume is None else float(self.music_volume)
        return AudioMixOptions(url=self.music_url, volume=volume)


@dataclass
class LoadedAsset:
    """Decoded BGR image plus the temp handle it was decoded from (if any)."""

    index: int
    url: str
    image: np.ndarray
    handle: Optional[int] = None
    strategy: str = "fetch"

    @property
    def width(self) -> int:
        return int(self.image.shape[1])

    @property
    def height(self) -> int:
        return int(self.image.shape[0])


@dataclass
class CodecCandidate:
    """One entry of the codec negotiation chain."""

    mime_type: str
    fourcc: str
    extension: str
    audio_codec: Optional[str] = None
    # ffmpeg encoder that re-encodes the track at the configured video bitrate
    video_encoder: Optional[str] = None

    @property
    def video_only_mime_type(self) -> str:
        """``mime_type`` without its audio codec, for recordings that carry no audio."""
        base, _, params = self.mime_type.partition(";")
        params = params.strip()
        if not self.audio_codec or not params.startswith("codecs="):
            return self.mime_type
        codecs = [c.strip() for c in params[len("codecs="):].split(",")]
        kept = [c for c in codecs if c not in AUDIO_MIME_CODECS]
        return f"{base};codecs={','.join(kept)}" if kept else base


@dataclass
class OutputArtifact:
    data: bytes
    mime_type: str
    approximate_size_bytes: int
    frame_rate: int = 0
    frame_count: int = 0
    duration_seconds: float = 0.0
