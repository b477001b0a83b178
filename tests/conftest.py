import cv2
import numpy as np
import pytest
import requests

from lapse.config import AppConfig
from lapse.handles import HandleRegistry
from lapse.io_audio import AudioDecoder
from lapse.recorder import CODEC_CHAIN, Recorder
from lapse.runtime import Capabilities, MediaRuntime


COLORS = [(0, 0, 255), (0, 255, 0), (255, 0, 0), (0, 255, 255), (255, 0, 255), (255, 255, 0)]


def make_image(w, h, bgr=(0, 0, 255)):
    img = np.zeros((h, w, 3), dtype=np.uint8)
    img[:] = bgr
    return img


def png_bytes(w, h, bgr=(0, 0, 255)):
    ok, buf = cv2.imencode(".png", make_image(w, h, bgr))
    assert ok
    return buf.tobytes()


class FakeResponse:
    def __init__(self, status_code=200, content=b"", content_type="image/png"):
        self.status_code = status_code
        self.content = content
        self.headers = {"Content-Type": content_type}
        self.reason = "OK" if self.ok else "Not Found"

    @property
    def ok(self):
        return 200 <= self.status_code < 300


class FakeHttp:
    """Stands in for ``requests.Session``; unknown URLs are unreachable."""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []

    def get(self, url, **kwargs):
        self.calls.append(url)
        response = self.routes.get(url)
        if response is None:
            raise requests.ConnectionError(f"unreachable: {url}")
        return response


class FakeRecorder(Recorder):
    def __init__(self, stream, candidate, clock, fail_on_frame=None, on_frame=None):
        super().__init__(stream, candidate, clock)
        self.fail_on_frame = fail_on_frame
        self.on_frame = on_frame
        self.frames = []
        self.timestamps = []
        self.aborted = 0

    def _write(self, frame, ts_ms):
        if self.fail_on_frame is not None and len(self.frames) == self.fail_on_frame:
            raise RuntimeError("encoder crashed")
        self.frames.append(frame)
        self.timestamps.append(ts_ms)
        if self.on_frame is not None:
            self.on_frame(len(self.frames))

    def _finish(self):
        return [b"HDR"] + [b"F%03d" % i for i in range(len(self.frames))]

    def _abort(self):
        self.aborted += 1


class FakeRuntime(MediaRuntime):
    def __init__(self, supported=None, caps=None, fail_construct=False, **recorder_kwargs):
        if supported is None:
            supported = [c.mime_type for c in CODEC_CHAIN]
        self.supported = set(supported)
        self.caps = caps or Capabilities(recorder=True, stream_capture=True, surface=True)
        self.fail_construct = fail_construct
        self.recorder_kwargs = recorder_kwargs
        self.recorders = []
        self.probed = []

    def probe(self):
        return self.caps

    def is_type_supported(self, candidate):
        self.probed.append(candidate.mime_type)
        return candidate.mime_type in self.supported

    def create_recorder(self, stream, candidate, cfg, registry, clock):
        if self.fail_construct:
            raise RuntimeError("no encoder available")
        rec = FakeRecorder(stream, candidate, clock, **self.recorder_kwargs)
        self.recorders.append(rec)
        return rec


class FakeDecoder(AudioDecoder):
    def __init__(self, seconds=0.5, sample_rate=8000, fail=False):
        self.seconds = seconds
        self.sample_rate = sample_rate
        self.fail = fail
        self.paths = []

    def decode(self, path):
        self.paths.append(path)
        if self.fail:
            raise ValueError("corrupt audio")
        n = int(self.seconds * self.sample_rate)
        return np.full((n, 2), 0.8, dtype=np.float32), self.sample_rate


@pytest.fixture
def cfg(tmp_path):
    c = AppConfig.default()
    c.verbose = False
    c.paths.temp_dir = str(tmp_path)
    c.paths.download_dir = str(tmp_path / "out")
    return c


@pytest.fixture
def registry(tmp_path):
    return HandleRegistry(str(tmp_path))


def frame_routes(n, w=40, h=30):
    urls = [f"http://frames.test/{i}.png" for i in range(n)]
    routes = {url: FakeResponse(content=png_bytes(w, h, COLORS[i % len(COLORS)])) for i, url in enumerate(urls)}
    return urls, routes


def leftover_temp_files(tmp_path):
    return sorted(p.name for p in tmp_path.iterdir() if p.name.startswith("lapse_"))
