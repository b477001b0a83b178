import numpy as np
import pytest

from lapse.capture import MediaStream, SurfaceCaptureTrack, combine_streams
from lapse.clock import VirtualClock
from lapse.config import AppConfig
from lapse.errors import EncodingError
from lapse.recorder import CODEC_CHAIN, negotiate_codec, read_chunks, video_reencoder
from lapse.surface import DrawingSurface
from lapse.types import CodecCandidate

from conftest import FakeRecorder, FakeRuntime


def test_codec_chain_order():
    assert [c.mime_type for c in CODEC_CHAIN] == [
        "video/webm;codecs=vp9,opus",
        "video/webm;codecs=vp8,opus",
        "video/webm;codecs=vp9",
        "video/x-msvideo",
    ]


def test_negotiation_picks_first_supported():
    runtime = FakeRuntime(supported=["video/webm;codecs=vp8,opus", "video/x-msvideo"])

    chosen = negotiate_codec(runtime)

    assert chosen.mime_type == "video/webm;codecs=vp8,opus"
    assert runtime.probed == ["video/webm;codecs=vp9,opus", "video/webm;codecs=vp8,opus"]


def test_negotiation_falls_through_to_lowest_tier():
    runtime = FakeRuntime(supported=["video/x-msvideo"])

    assert negotiate_codec(runtime).fourcc == "MJPG"
    assert len(runtime.probed) == len(CODEC_CHAIN)


def test_negotiation_with_nothing_supported():
    with pytest.raises(EncodingError) as excinfo:
        negotiate_codec(FakeRuntime(supported=[]))
    assert excinfo.value.stage == "negotiate"


def _recording(clock, **kwargs):
    surface = DrawingSurface(8, 8)
    track = SurfaceCaptureTrack(surface, 10, clock)
    recorder = FakeRecorder(combine_streams(track, None), CODEC_CHAIN[0], clock, **kwargs)
    events = []
    recorder.on_data = lambda chunk: events.append(("data", chunk))
    recorder.on_stop = lambda: events.append(("stop",))
    recorder.on_error = lambda exc: events.append(("error", exc))
    return recorder, track, events


def test_recorder_emits_data_then_stop_on_clock():
    clock = VirtualClock()
    recorder, track, events = _recording(clock)

    recorder.start()
    clock.set_timeout(250, lambda: (track.stop(), recorder.stop()))
    clock.run()

    assert len(recorder.frames) == 3  # 0, 100, 200 ms
    assert recorder.timestamps == pytest.approx([0, 100, 200])
    assert [e[0] for e in events] == ["data"] * 4 + ["stop"]
    assert events[0][1] == b"HDR"


def test_recorder_error_is_reported_once():
    clock = VirtualClock()
    recorder, track, events = _recording(clock, fail_on_frame=1)

    recorder.start()
    clock.set_timeout(500, track.stop)
    clock.run()

    errors = [e for e in events if e[0] == "error"]
    assert len(errors) == 1
    assert isinstance(errors[0][1], EncodingError)
    assert errors[0][1].stage == "recording"
    assert errors[0][1].codec == "video/webm;codecs=vp9"
    assert recorder.aborted == 1
    # a failed recorder never stops cleanly
    recorder.stop()
    clock.run()
    assert not [e for e in events if e[0] == "stop"]


def test_recorder_requires_video_track():
    with pytest.raises(EncodingError):
        FakeRecorder(MediaStream([]), CODEC_CHAIN[0], VirtualClock())


def test_read_chunks_splits_in_order(tmp_path):
    path = tmp_path / "blob.bin"
    path.write_bytes(bytes(range(10)))

    chunks = read_chunks(str(path), 4)

    assert chunks == [bytes([0, 1, 2, 3]), bytes([4, 5, 6, 7]), bytes([8, 9])]


def test_stream_stop_all_stops_every_track():
    clock = VirtualClock()
    track = SurfaceCaptureTrack(DrawingSurface(4, 4), 5, clock)
    track.start(lambda frame, ts: None)
    stream = MediaStream([track])

    stream.stop_all()

    assert not track.live
    assert clock.pending == 0
    assert isinstance(track.surface.pixels, np.ndarray)


def test_silent_recording_does_not_advertise_audio_codec():
    clock = VirtualClock()
    recorder, _, _ = _recording(clock)

    assert not recorder.stream.has_audio
    assert recorder.mime_type == "video/webm;codecs=vp9"


@pytest.mark.parametrize(
    "candidate, expected",
    [
        (CODEC_CHAIN[0], "video/webm;codecs=vp9"),
        (CODEC_CHAIN[1], "video/webm;codecs=vp8"),
        (CODEC_CHAIN[2], "video/webm;codecs=vp9"),
        (CODEC_CHAIN[3], "video/x-msvideo"),
        (CodecCandidate("audio/webm;codecs=opus", "VP90", ".webm", "libopus"), "audio/webm"),
    ],
)
def test_video_only_mime_type(candidate, expected):
    assert candidate.video_only_mime_type == expected


def test_video_reencoder_needs_ffmpeg_encoder_and_bitrate():
    cfg = AppConfig.default()
    vpx = {"libvpx-vp9", "libopus"}

    assert video_reencoder(CODEC_CHAIN[0], cfg, vpx) == "libvpx-vp9"
    assert video_reencoder(CODEC_CHAIN[1], cfg, vpx) is None  # no libvpx
    assert video_reencoder(CODEC_CHAIN[3], cfg, vpx) is None

    cfg.encode.video_bitrate = 0
    assert video_reencoder(CODEC_CHAIN[0], cfg, vpx) is None
