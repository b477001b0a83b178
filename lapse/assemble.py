from dataclasses import dataclass, field
from typing import List, Optional

from .capture import MediaStream
from .errors import EncodingError
from .handles import HandleRegistry
from .pipeline_audio import AudioGraph
from .pipeline_scheduler import FrameScheduler
from .recorder import Recorder
from .stats import bytes_mb
from .surface import DrawingSurface
from .types import OutputArtifact


@dataclass
class RecordingSession:
    """Everything one ``generate_video`` call acquires. Never reused."""

    registry: HandleRegistry
    surface: Optional[DrawingSurface] = None
    stream: Optional[MediaStream] = None
    recorder: Optional[Recorder] = None
    audio: Optional[AudioGraph] = None
    scheduler: Optional[FrameScheduler] = None
    chunks: List[bytes] = field(default_factory=list)
    reclaimed: bool = False


def finalize(
    chunks: List[bytes],
    mime_type: str,
    frame_rate: int = 0,
    frame_count: int = 0,
    verbose: bool = False,
) -> OutputArtifact:
    """Concatenate recorder chunks in arrival order."""
    if not chunks:
        raise EncodingError("recorder produced no data", stage="finalize", codec=mime_type)
    data = b"".join(chunks)
    duration = frame_count / frame_rate if frame_rate else 0.0
    if verbose:
        print(f"📦 Video generated: {bytes_mb(len(data)):.2f} MB | {mime_type} | {duration:.2f}s")
    return OutputArtifact(
        data=data,
        mime_type=mime_type,
        approximate_size_bytes=len(data),
        frame_rate=frame_rate,
        frame_count=frame_count,
        duration_seconds=duration,
    )


def reclaim(session: RecordingSession, now_ms: Optional[float] = None) -> bool:
    """Release everything the session holds. Only the first call does work."""
    if session.reclaimed:
        return False
    session.reclaimed = True

    if session.scheduler is not None:
        session.scheduler.cancel()
    if session.recorder is not None:
        session.recorder.abort()
    if session.audio is not None:
        if session.audio.started:
            session.audio.stop(now_ms)
        session.audio.close()
    if session.stream is not None:
        session.stream.stop_all()
    try:
        session.registry.release_all()
    except OSError as exc:
        print(f"⚠️ Failed to release temporary files: {exc}")
    return True
