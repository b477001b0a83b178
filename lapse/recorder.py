"""Streaming recorders and the codec negotiation chain.

A recorder consumes the combined stream (one captured video track, at most
one audio track) and reports back through three callbacks, always posted on
the session clock: ``on_data(chunk)`` for every encoded chunk in temporal
order, then exactly one of ``on_stop()`` or ``on_error(exc)``.
"""

import threading
import time
from queue import Queue
from typing import Callable, Iterable, List, Optional, Sequence

import cv2
import numpy as np

from .capture import MediaStream, MediaTrack
from .config import AppConfig
from .encode import ffmpeg_encoders, remux
from .errors import EncodingError
from .handles import HandleRegistry
from .stats import PerfCounter, Timer, format_progress
from .types import CodecCandidate


CODEC_CHAIN: List[CodecCandidate] = [
    CodecCandidate("video/webm;codecs=vp9,opus", "VP90", ".webm", "libopus", "libvpx-vp9"),
    CodecCandidate("video/webm;codecs=vp8,opus", "VP80", ".webm", "libopus", "libvpx"),
    CodecCandidate("video/webm;codecs=vp9", "VP90", ".webm", None, "libvpx-vp9"),
    CodecCandidate("video/x-msvideo", "MJPG", ".avi", None, None),
]


def build_fourcc(codec: str = "MJPG"):
    """Return a FOURCC code for ``cv2.VideoWriter``."""

    if hasattr(cv2, "VideoWriter_fourcc"):
        return cv2.VideoWriter_fourcc(*codec)

    raise AttributeError("No FOURCC constructor found in the installed OpenCV package")


def negotiate_codec(runtime, chain: Sequence[CodecCandidate] = CODEC_CHAIN, verbose: bool = False) -> CodecCandidate:
    """First candidate the runtime reports as supported."""
    for candidate in chain:
        if runtime.is_type_supported(candidate):
            if verbose:
                print(f"🎬 Using codec: {candidate.mime_type}")
            return candidate
        if verbose:
            print(f"↪️ {candidate.mime_type} unsupported, falling back")
    raise EncodingError(
        "No codec in the negotiation chain is supported by this runtime",
        stage="negotiate",
        codec=chain[-1].mime_type if chain else None,
    )


def video_reencoder(
    candidate: CodecCandidate,
    cfg: AppConfig,
    encoders: Optional[Iterable[str]] = None,
) -> Optional[str]:
    """ffmpeg encoder applying ``cfg.encode.video_bitrate``, or None to keep OpenCV's stream."""
    if not candidate.video_encoder or not cfg.encode.video_bitrate:
        return None
    available = ffmpeg_encoders() if encoders is None else encoders
    return candidate.video_encoder if candidate.video_encoder in available else None


class Recorder:
    def __init__(self, stream: MediaStream, candidate: CodecCandidate, clock):
        if not stream.get_video_tracks():
            raise EncodingError("stream has no video track", stage="construct", codec=candidate.mime_type)
        self.stream = stream
        self.candidate = candidate
        self.mime_type = candidate.mime_type if stream.has_audio else candidate.video_only_mime_type
        self.clock = clock
        self.state = "inactive"
        self.expected_frames: Optional[int] = None
        self.frames_received = 0
        self.on_data: Optional[Callable[[bytes], None]] = None
        self.on_stop: Optional[Callable[[], None]] = None
        self.on_error: Optional[Callable[[Exception], None]] = None
        self._failed = False

    @property
    def video_track(self) -> MediaTrack:
        return self.stream.get_video_tracks()[0]

    @property
    def audio_track(self) -> Optional[MediaTrack]:
        tracks = self.stream.get_audio_tracks()
        return tracks[0] if tracks else None

    def start(self):
        if self.state != "inactive" or self._failed:
            raise RuntimeError(f"recorder non démarrable (state={self.state})")
        self.state = "recording"
        self._begin()
        self.video_track.start(self._on_frame)

    def _on_frame(self, frame: np.ndarray, ts_ms: float):
        if self.state != "recording":
            return
        self.frames_received += 1
        try:
            self._write(frame, ts_ms)
        except Exception as exc:
            self._fail(exc, stage="recording")

    def stop(self):
        if self.state != "recording":
            return
        self.state = "inactive"
        try:
            chunks = list(self._finish())
        except Exception as exc:
            self._fail(exc, stage="finalize")
            return
        for chunk in chunks:
            if chunk:
                self._post(self.on_data, chunk)
        self._post(self.on_stop)

    def abort(self):
        """Stop without emitting anything. Safe to call repeatedly."""
        self.state = "inactive"
        self._abort()

    def _fail(self, exc: Exception, stage: str):
        if self._failed:
            return
        self._failed = True
        self.state = "inactive"
        self._abort()
        if isinstance(exc, EncodingError):
            err = exc
        else:
            err = EncodingError(f"Video recording failed: {exc}", stage=stage, codec=self.mime_type)
            err.__cause__ = exc
        self._post(self.on_error, err)

    def _post(self, fn, *args):
        if fn is not None:
            self.clock.call_soon(lambda: fn(*args))

    def _begin(self):
        pass

    def _write(self, frame: np.ndarray, ts_ms: float):
        raise NotImplementedError

    def _finish(self) -> Iterable[bytes]:
        raise NotImplementedError

    def _abort(self):
        pass


def read_chunks(path: str, chunk_bytes: int) -> List[bytes]:
    chunks = []
    with open(path, "rb") as f:
        while True:
            chunk = f.read(chunk_bytes)
            if not chunk:
                break
            chunks.append(chunk)
    return chunks


class OpenCVRecorder(Recorder):
    """``cv2.VideoWriter`` fed by an encoder-sink thread, audio muxed by ffmpeg."""

    def __init__(
        self,
        stream: MediaStream,
        candidate: CodecCandidate,
        cfg: AppConfig,
        registry: HandleRegistry,
        clock,
    ):
        super().__init__(stream, candidate, clock)
        self.cfg = cfg
        self.registry = registry
        track = self.video_track
        self.fps = int(track.fps)
        self.size = (int(track.width), int(track.height))

        _, self.video_path = registry.temp_path(candidate.extension)
        self._writer = cv2.VideoWriter(self.video_path, build_fourcc(candidate.fourcc), self.fps, self.size)
        if not self._writer.isOpened():
            self._writer.release()
            self._writer = None
            raise EncodingError("VideoWriter non ouvert", stage="construct", codec=candidate.mime_type)

        self._queue: Queue = Queue(cfg.encode.max_buffer_frames)
        self._stop_token = object()
        self._thread: Optional[threading.Thread] = None
        self._sink_error: Optional[BaseException] = None
        self.frames_written = 0
        self.perf = PerfCounter()

    def _begin(self):
        self._thread = threading.Thread(target=self._run_sink, name="encoder_sink", daemon=True)
        self._thread.start()

    def _run_sink(self):
        self.perf.start()
        last_progress = 0.0
        while True:
            item = self._queue.get()
            if item is self._stop_token:
                self._queue.task_done()
                break

            if self._sink_error is None:
                try:
                    self._writer.write(item)
                    self.frames_written += 1
                    self.perf.tick(1)
                except cv2.error as exc:
                    self._sink_error = exc

                if self.cfg.verbose:
                    now = time.perf_counter()
                    if now - last_progress >= 0.25 or self.frames_written == self.expected_frames:
                        print(f"\r{format_progress(self.frames_written, self.expected_frames, self.perf)}", end="", flush=True)
                        last_progress = now
            self._queue.task_done()
        self.perf.stop()
        if self.cfg.verbose and self.frames_written:
            print()

    def _write(self, frame: np.ndarray, ts_ms: float):
        if self._sink_error is not None:
            raise self._sink_error
        self._queue.put(frame)

    def _drain(self):
        if self._thread is not None:
            self._queue.put(self._stop_token)
            self._thread.join()
            self._thread = None
        if self._writer is not None:
            self._writer.release()
            self._writer = None

    def _finish(self) -> List[bytes]:
        self._drain()
        if self._sink_error is not None:
            raise EncodingError(
                f"encoder sink failed: {self._sink_error}", stage="recording", codec=self.mime_type
            ) from self._sink_error
        if self.frames_written == 0:
            raise EncodingError("no frame reached the encoder", stage="finalize", codec=self.mime_type)

        out_path = self.video_path
        audio = self.audio_track
        reencoder = video_reencoder(self.candidate, self.cfg)
        if audio is not None or reencoder:
            raw_path = None
            sample_rate = None
            if audio is not None:
                samples = audio.graph.render(self.frames_written / self.fps)
                _, raw_path = self.registry.spool(samples.tobytes(), suffix=".f32le")
                sample_rate = audio.sample_rate
            _, out_path = self.registry.temp_path(self.candidate.extension)
            with Timer("ffmpeg remux", verbose=self.cfg.verbose):
                remux(
                    in_video=self.video_path,
                    out_path=out_path,
                    verbose=self.cfg.verbose_lib,
                    audio_raw=raw_path,
                    sample_rate=sample_rate,
                    audio_codec=self.candidate.audio_codec,
                    audio_bitrate=self.cfg.audio.audio_bitrate,
                    video_codec=reencoder,
                    video_bitrate=self.cfg.encode.video_bitrate,
                )

        if self.cfg.verbose:
            print(f"✅ {self.frames_written} frames @ {self.fps} fps | avg {self.perf.avg_fps():.1f} fps encode")
        return read_chunks(out_path, self.cfg.encode.chunk_bytes)

    def _abort(self):
        self._drain()
