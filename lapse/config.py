from dataclasses import dataclass, field
import os


@dataclass
class PathConfig:
    out_path: str = "timelapse"  # container extension added on save
    download_dir: str = "."
    # None -> tempfile.gettempdir()
    temp_dir: str | None = None


@dataclass
class VideoConfig:
    # fallback size when the first frame reports no dimensions
    fallback_w: int = 720
    fallback_h: int = 720
    background_bgr: tuple = (0, 0, 0)
    # pace draws on the wall clock instead of the virtual timeline
    realtime: bool = False


@dataclass
class AudioConfig:
    target_sr: int = 48000
    default_volume: float = 0.5
    audio_bitrate: int = 128_000


@dataclass
class FetchConfig:
    timeout_s: float = 15.0
    user_agent: str = "lapse/0.1"


@dataclass
class EncodeConfig:
    # size of each chunk emitted by the recorder once the container is closed
    chunk_bytes: int = 1024 * 1024
    max_buffer_frames: int = 32
    probe_size: int = 64
    # applied by an ffmpeg re-encode for the VP8/VP9 tiers; 0 keeps OpenCV's stream
    video_bitrate: int = 2_500_000


@dataclass
class AppConfig:
    verbose: bool = True  # controls application logs
    verbose_lib: bool = False  # controls noisy third-party tools (ffmpeg, opencv)

    paths: PathConfig = field(default_factory=PathConfig)
    video: VideoConfig = field(default_factory=VideoConfig)
    audio: AudioConfig = field(default_factory=AudioConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    encode: EncodeConfig = field(default_factory=EncodeConfig)

    @staticmethod
    def default() -> "AppConfig":
        return AppConfig()

    def apply_env(self):
        if self.verbose_lib:
            os.environ["OPENCV_LOG_LEVEL"] = "INFO"
            os.environ["OPENCV_FFMPEG_DEBUG"] = "1"
        else:
            os.environ["OPENCV_LOG_LEVEL"] = "ERROR"
            os.environ.pop("OPENCV_FFMPEG_DEBUG", None)

        if "LAPSE_VERBOSE" in os.environ:
            self.verbose = os.environ["LAPSE_VERBOSE"].strip().lower() in ("1", "true", "yes", "on")
        if "LAPSE_TEMP_DIR" in os.environ:
            self.paths.temp_dir = os.environ["LAPSE_TEMP_DIR"]
        if "LAPSE_FETCH_TIMEOUT" in os.environ:
            self.fetch.timeout_s = float(os.environ["LAPSE_FETCH_TIMEOUT"])

    def validate(self):
        assert self.video.fallback_w > 0 and self.video.fallback_h > 0
        assert len(self.video.background_bgr) == 3
        assert all(0 <= int(c) <= 255 for c in self.video.background_bgr)
        assert self.audio.target_sr >= 8000
        assert 0.0 <= self.audio.default_volume <= 1.0
        assert self.audio.audio_bitrate > 0
        assert self.fetch.timeout_s > 0
        assert self.encode.chunk_bytes >= 1
        assert self.encode.max_buffer_frames >= 1
        assert self.encode.video_bitrate >= 0
        assert self.encode.probe_size >= 16, "probe_size trop petit pour un encodeur vidéo"
