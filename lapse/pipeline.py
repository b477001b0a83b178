import base64
from pathlib import Path
from typing import Optional, Sequence, Union

import requests

from .clock import CancellationToken
from .config import AppConfig
from .errors import InsufficientFramesError, UnsupportedPlatformError
from .handles import HandleRegistry
from .io_audio import AudioDecoder
from .io_frames import DirectReader
from .pipeline_encoder import MIN_FRAMES, CaptureEncoder, check_duration
from .runtime import MediaRuntime, OpenCVRuntime
from .types import FrameDescriptor, GenerationOptions, OutputArtifact


FrameInput = Union[str, FrameDescriptor]


def frame_urls_in_order(frames: Sequence[FrameInput]) -> list[str]:
    """Flatten the caller's frames into URLs without reordering them.

    Descriptors must already be in strictly ascending ``order``.
    """
    urls = []
    last_order = None
    for frame in frames:
        if isinstance(frame, FrameDescriptor):
            if last_order is not None and frame.order <= last_order:
                raise ValueError(
                    f"frames must be passed in ascending order (got {frame.order} after {last_order})"
                )
            last_order = frame.order
            urls.append(frame.url)
        else:
            urls.append(str(frame))
    return urls


def is_generation_supported(runtime: Optional[MediaRuntime] = None) -> bool:
    """Capability probe with no side effects."""
    runtime = runtime or OpenCVRuntime()
    return runtime.probe().supported


def generate_video(
    frames: Sequence[FrameInput],
    duration_seconds: float,
    options: Optional[GenerationOptions] = None,
    *,
    cfg: Optional[AppConfig] = None,
    runtime: Optional[MediaRuntime] = None,
    clock=None,
    http: Optional[requests.Session] = None,
    registry: Optional[HandleRegistry] = None,
    decoder: Optional[AudioDecoder] = None,
    direct_reader: Optional[DirectReader] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> OutputArtifact:
    """Render ``frames`` into one video lasting about ``duration_seconds``.

    Raises InsufficientFramesError, InvalidDurationError,
    UnsupportedPlatformError, AssetLoadError, EncodingError or
    GenerationCancelledError. Nothing partial is ever returned.
    """
    if len(frames) < MIN_FRAMES:
        raise InsufficientFramesError(len(frames), MIN_FRAMES)
    check_duration(duration_seconds)

    cfg = cfg or AppConfig.default()
    runtime = runtime or OpenCVRuntime(cfg)

    caps = runtime.probe()
    if not caps.supported:
        raise UnsupportedPlatformError(caps.missing)

    encoder = CaptureEncoder(
        cfg,
        runtime,
        clock=clock,
        registry=registry,
        http=http,
        decoder=decoder,
        direct_reader=direct_reader,
        cancel=cancel_token,
    )
    return encoder.run(frame_urls_in_order(frames), duration_seconds, options)


def fallback_request(frames: Sequence[FrameInput], duration_seconds: float) -> dict:
    """Payload for the server-side transcoder when the probe fails."""
    return {"frame_urls": frame_urls_in_order(frames), "duration": duration_seconds}


_EXT_BY_MIME = {
    "video/webm": ".webm",
    "video/x-msvideo": ".avi",
    "video/mp4": ".mp4",
}


def artifact_extension(artifact: OutputArtifact) -> str:
    return _EXT_BY_MIME.get(artifact.mime_type.split(";")[0].strip(), ".bin")


def download_artifact(artifact: OutputArtifact, filename: str, directory: Optional[str] = None) -> Path:
    """Persist the artifact locally; adds the container extension if missing."""
    target = Path(directory or ".") / filename
    if not target.suffix:
        target = target.with_suffix(artifact_extension(artifact))
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(artifact.data)
    return target


def artifact_to_data_url(artifact: OutputArtifact) -> str:
    encoded = base64.b64encode(artifact.data).decode("ascii")
    return f"data:{artifact.mime_type};base64,{encoded}"
