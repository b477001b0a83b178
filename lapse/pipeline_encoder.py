"""Capture encoder: the state machine behind ``generate_video``.

IDLE -> ASSETS_LOADING -> READY -> RECORDING -> FINALIZING -> COMPLETED,
any step -> FAILED. The session is reclaimed exactly once whichever way the
run ends.
"""

import math
from typing import Optional, Sequence

import requests

from .assemble import RecordingSession, finalize, reclaim
from .capture import combine_streams
from .clock import CancellationToken, RealtimeClock, VirtualClock
from .config import AppConfig
from .errors import (
    EncodingError,
    GenerationCancelledError,
    InsufficientFramesError,
    InvalidDurationError,
    UnsupportedPlatformError,
)
from .handles import HandleRegistry
from .io_audio import AudioDecoder
from .io_frames import AssetLoader, DirectReader, new_session
from .pipeline_audio import AudioMixer
from .pipeline_scheduler import FrameScheduler, derive_frame_rate
from .recorder import CODEC_CHAIN, negotiate_codec
from .runtime import MediaRuntime
from .stats import Timer
from .types import GenerationOptions, OutputArtifact


IDLE = "idle"
ASSETS_LOADING = "assets_loading"
READY = "ready"
RECORDING = "recording"
FINALIZING = "finalizing"
COMPLETED = "completed"
FAILED = "failed"

MIN_FRAMES = 2


def check_duration(duration_seconds) -> float:
    try:
        d = float(duration_seconds)
    except (TypeError, ValueError):
        raise InvalidDurationError(duration_seconds) from None
    if not math.isfinite(d) or d <= 0:
        raise InvalidDurationError(duration_seconds)
    return d


class CaptureEncoder:
    def __init__(
        self,
        cfg: AppConfig,
        runtime: MediaRuntime,
        clock=None,
        registry: Optional[HandleRegistry] = None,
        http: Optional[requests.Session] = None,
        decoder: Optional[AudioDecoder] = None,
        direct_reader: Optional[DirectReader] = None,
        cancel: Optional[CancellationToken] = None,
        codec_chain=CODEC_CHAIN,
    ):
        self.cfg = cfg
        self.runtime = runtime
        if clock is None:
            clock = RealtimeClock() if cfg.video.realtime else VirtualClock()
        self.clock = clock
        self.registry = registry if registry is not None else HandleRegistry(cfg.paths.temp_dir)
        self.http = http if http is not None else new_session(cfg)
        self.decoder = decoder
        self.direct_reader = direct_reader
        self.cancel = cancel
        self.codec_chain = list(codec_chain)

        self.state = IDLE
        self.session: Optional[RecordingSession] = None
        self.fps = 0
        self._artifact: Optional[OutputArtifact] = None
        self._error: Optional[Exception] = None

    def _set_state(self, state: str):
        if self.cfg.verbose and state != self.state:
            print(f"🔁 {self.state} → {state}")
        self.state = state

    def _check_cancel(self):
        if self.cancel is not None and self.cancel.cancelled:
            raise GenerationCancelledError(self.state)

    def run(
        self,
        frame_urls: Sequence[str],
        duration_seconds: float,
        options: Optional[GenerationOptions] = None,
    ) -> OutputArtifact:
        if self.state != IDLE:
            raise RuntimeError("CaptureEncoder is single-use")
        frame_urls = list(frame_urls)
        if len(frame_urls) < MIN_FRAMES:
            raise InsufficientFramesError(len(frame_urls), MIN_FRAMES)
        duration_seconds = check_duration(duration_seconds)

        caps = self.runtime.probe()
        if not caps.supported:
            self._set_state(FAILED)
            raise UnsupportedPlatformError(caps.missing)

        self.session = RecordingSession(registry=self.registry)
        try:
            return self._run(self.session, frame_urls, duration_seconds, options or GenerationOptions())
        except BaseException:
            self._set_state(FAILED)
            raise
        finally:
            reclaim(self.session, self.clock.now_ms())

    def _run(self, session, frame_urls, duration_seconds, options) -> OutputArtifact:
        cfg = self.cfg
        self._set_state(ASSETS_LOADING)

        loader = AssetLoader(cfg, session.registry, session=self.http, direct_reader=self.direct_reader)
        with Timer("frames load", verbose=cfg.verbose):
            assets = loader.load_all(frame_urls, cancel=self.cancel)

        mixer = AudioMixer(cfg, session.registry, session=self.http, decoder=self.decoder)
        session.audio = mixer.mix(options.audio_mix(cfg.audio.default_volume))
        self._check_cancel()
        self._set_state(READY)

        first = assets[0]
        w = first.width or cfg.video.fallback_w
        h = first.height or cfg.video.fallback_h
        session.surface = self.runtime.create_surface(w, h)

        self.fps = derive_frame_rate(len(assets), duration_seconds)
        video_track = self.runtime.capture_stream(session.surface, self.fps, self.clock)
        audio_track = session.audio.track if session.audio is not None else None
        session.stream = combine_streams(video_track, audio_track)
        if cfg.verbose:
            print(
                f"🎥 Generating video: {w}x{h} @ {self.fps}fps, {duration_seconds}s duration"
                f" | audio={'on' if audio_track is not None else 'off'}"
            )

        candidate = negotiate_codec(self.runtime, self.codec_chain, verbose=cfg.verbose)
        try:
            recorder = self.runtime.create_recorder(session.stream, candidate, cfg, session.registry, self.clock)
        except EncodingError:
            raise
        except Exception as exc:
            raise EncodingError(f"recorder construction failed: {exc}", stage="construct", codec=candidate.mime_type) from exc
        session.recorder = recorder
        recorder.expected_frames = len(assets)
        recorder.on_data = session.chunks.append
        recorder.on_stop = self._on_recorder_stop
        recorder.on_error = self._on_recorder_error

        self._set_state(RECORDING)
        recorder.start()
        if session.audio is not None:
            session.audio.start(self.clock.now_ms())

        session.scheduler = FrameScheduler(self.clock, cfg.video.background_bgr)
        session.scheduler.schedule(session.surface, assets, duration_seconds, on_complete=self._on_frames_done)

        self.clock.run(until=lambda: self.state in (COMPLETED, FAILED), cancel=self.cancel)

        if self.state == FAILED and self._error is not None:
            raise self._error
        if self.state != COMPLETED:
            self._check_cancel()
            raise EncodingError("recorder never reported stop", stage=self.state, codec=candidate.mime_type)
        return self._artifact

    def _on_frames_done(self):
        session = self.session
        self._set_state(FINALIZING)
        if session.audio is not None:
            session.audio.stop(self.clock.now_ms())
        session.stream.stop_all()
        session.recorder.stop()

    def _on_recorder_stop(self):
        session = self.session
        frames = session.stream.get_video_tracks()[0].frames_captured
        self._artifact = finalize(
            session.chunks,
            session.recorder.mime_type,
            frame_rate=self.fps,
            frame_count=frames,
            verbose=self.cfg.verbose,
        )
        self._set_state(COMPLETED)

    def _on_recorder_error(self, exc: Exception):
        print(f"❌ Recorder error: {exc}")
        self._error = exc
        self._set_state(FAILED)
