import subprocess
import numpy as np


def load_audio_stereo_ffmpeg(path: str, target_sr: int, verbose: bool, max_seconds: float | None = None):
    cmd = ["ffmpeg", "-v", "info" if verbose else "error"]
    if max_seconds is not None:
        cmd.extend(["-t", str(max_seconds)])
    cmd.extend([
        "-i", path,
        "-vn",
        "-ac", "2",
        "-ar", str(target_sr),
        "-f", "f32le",
        "pipe:1"
    ])
    try:
        p = subprocess.run(cmd, stdout=subprocess.PIPE, check=True)
    except FileNotFoundError as exc:
        raise RuntimeError("ffmpeg introuvable dans le PATH") from exc
    audio = np.frombuffer(p.stdout, dtype=np.float32).reshape((-1, 2))
    if audio.shape[0] == 0:
        raise ValueError(f"Audio vide après décodage: {path}")
    return audio, target_sr


class AudioDecoder:
    """Decode an audio file into float32 stereo samples ``(n, 2)``."""

    def decode(self, path: str) -> tuple[np.ndarray, int]:
        raise NotImplementedError


class FfmpegAudioDecoder(AudioDecoder):
    def __init__(self, target_sr: int = 48000, verbose: bool = False):
        self.target_sr = target_sr
        self.verbose = verbose

    def decode(self, path: str) -> tuple[np.ndarray, int]:
        return load_audio_stereo_ffmpeg(path, self.target_sr, verbose=self.verbose)
