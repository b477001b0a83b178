from __future__ import annotations

import os
import time

import psutil

_proc = psutil.Process(os.getpid())


def ram_mb():
    return _proc.memory_info().rss / (1024 ** 2)


class Timer:
    def __init__(self, name, verbose=True):
        self.name = name
        self.verbose = verbose
        self.dt = 0.0

    def __enter__(self):
        self.t0 = time.perf_counter()
        return self

    def __exit__(self, *_):
        self.dt = time.perf_counter() - self.t0
        if self.verbose:
            print(f"⏱️ {self.name}: {self.dt:.3f}s")


class PerfCounter:
    def __init__(self):
        self.frames = 0
        self.t0 = None
        self.t1 = None

    def start(self):
        self.t0 = time.perf_counter()

    def tick(self, n=1):
        self.frames += n

    def stop(self):
        self.t1 = time.perf_counter()

    def avg_fps(self):
        if self.t0 is None or self.t1 is None:
            return 0.0
        return self.frames / max(self.t1 - self.t0, 1e-9)


MB = 1024 ** 2


def bytes_mb(num_bytes: int) -> float:
    return num_bytes / MB


def progress_bar(progress: float, width: int = 28) -> str:
    filled = int(max(min(progress, 1.0), 0.0) * width)
    return "#" * filled + "-" * (width - filled)


def format_progress(written: int, total: int | None, perf: PerfCounter) -> str:
    """Single-line status for the encoder sink."""

    elapsed = time.perf_counter() - (perf.t0 or time.perf_counter())
    avg_fps = perf.frames / max(elapsed, 1e-6)
    if not total:
        return f"📼 frames {written} | avg {avg_fps:5.1f} fps | RAM ≈ {ram_mb():.0f} MB"
    pct = min(written / max(total, 1), 1.0)
    return (
        f"📼 Encoding |{progress_bar(pct)}| {pct*100:5.1f}% | frames {written}/{total}"
        f" | avg {avg_fps:5.1f} fps | RAM ≈ {ram_mb():.0f} MB"
    )
