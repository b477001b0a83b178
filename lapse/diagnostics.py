import cv2
from .config import AppConfig
from .recorder import CODEC_CHAIN
from .runtime import MediaRuntime, writer_backends


def print_env_diagnostics(cfg: AppConfig, runtime: MediaRuntime):
    caps = runtime.probe()
    print("opencv:", cv2.__version__)
    print("writers:", ", ".join(writer_backends()) or "none")
    print("capabilities:", "ok" if caps.supported else f"missing {', '.join(caps.missing)}")
    for note in caps.notes:
        print(f"  ⚠️ {note}")
    if cfg.verbose:
        print("🧩 Config summary")
        print(f"  FALLBACK : {cfg.video.fallback_w}x{cfg.video.fallback_h} | realtime={cfg.video.realtime}")
        print(f"  AUDIO    : sr={cfg.audio.target_sr} | volume={cfg.audio.default_volume} | {cfg.audio.audio_bitrate // 1000}k")
        print(f"  ENCODE   : chunk={cfg.encode.chunk_bytes} B | q={cfg.encode.max_buffer_frames} | video {cfg.encode.video_bitrate // 1000}k")
        for candidate in CODEC_CHAIN:
            flag = "✅" if runtime.is_type_supported(candidate) else "—"
            print(f"  {flag} {candidate.mime_type}")
