import functools
import subprocess


@functools.lru_cache(maxsize=None)
def ffmpeg_encoders() -> frozenset:
    """Names of the encoders the local ffmpeg build ships (empty if no ffmpeg)."""
    try:
        p = subprocess.run(
            ["ffmpeg", "-hide_banner", "-encoders"],
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            check=True,
            text=True,
        )
    except (FileNotFoundError, subprocess.CalledProcessError):
        return frozenset()

    names = set()
    for line in p.stdout.splitlines():
        parts = line.split()
        # " V....D libvpx-vp9   libvpx VP9"
        if len(parts) >= 2 and len(parts[0]) == 6 and parts[0][0] in "VAS":
            names.add(parts[1])
    return frozenset(names)


def remux(
    in_video: str,
    out_path: str,
    verbose: bool,
    audio_raw: str | None = None,
    sample_rate: int | None = None,
    audio_codec: str | None = None,
    audio_bitrate: int | None = None,
    video_codec: str | None = None,
    video_bitrate: int | None = None,
):
    """Rewrite the recorded container with ffmpeg.

    Adds the raw f32le stereo track when ``audio_raw`` is given and re-encodes
    the video at ``video_bitrate`` when ``video_codec`` is given; otherwise the
    video stream is copied untouched.
    """
    cmd = ["ffmpeg", "-y"]
    if not verbose:
        cmd.extend(["-v", "error"])
    cmd.extend(["-i", in_video])
    if audio_raw:
        cmd.extend([
            "-f", "f32le",
            "-ar", str(sample_rate),
            "-ac", "2",
            "-i", audio_raw,
        ])
    cmd.extend(["-map", "0:v:0"])
    if audio_raw:
        cmd.extend(["-map", "1:a:0"])

    if video_codec:
        cmd.extend(["-c:v", video_codec])
        if video_bitrate:
            cmd.extend(["-b:v", f"{video_bitrate // 1000}k"])
    else:
        cmd.extend(["-c:v", "copy"])

    if audio_raw:
        if audio_codec:
            cmd.extend(["-c:a", audio_codec])
        if audio_bitrate:
            cmd.extend(["-b:a", f"{audio_bitrate // 1000}k"])
        cmd.append("-shortest")
    cmd.append(out_path)
    try:
        subprocess.run(cmd, check=True)
    except FileNotFoundError as exc:
        raise RuntimeError("ffmpeg introuvable dans le PATH") from exc
