"""Single-threaded timer loops driving the frame scheduler.

Both clocks share one callback heap ordered by (due time, insertion order), so
two callbacks due at the same instant always fire in the order they were
scheduled. ``VirtualClock`` jumps straight to the next due time and never
sleeps; ``RealtimeClock`` waits on the wall clock between callbacks.
"""

import heapq
import itertools
import threading
import time
from typing import Callable, Optional


Callback = Callable[[], None]


class CancellationToken:
    """Caller-owned cancel flag checked between loads and timer callbacks."""

    def __init__(self):
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled by caller"):
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class _TimerLoop:
    def __init__(self):
        self._heap: list[tuple[float, int, int]] = []
        self._callbacks: dict[int, Callback] = {}
        self._seq = itertools.count()
        self._ids = itertools.count(1)

    def now_ms(self) -> float:
        raise NotImplementedError

    def _wait_until(self, due_ms: float):
        raise NotImplementedError

    def set_timeout(self, delay_ms: float, callback: Callback) -> int:
        timer_id = next(self._ids)
        due = self.now_ms() + max(float(delay_ms), 0.0)
        self._callbacks[timer_id] = callback
        heapq.heappush(self._heap, (due, next(self._seq), timer_id))
        return timer_id

    def call_soon(self, callback: Callback) -> int:
        return self.set_timeout(0, callback)

    def clear_timeout(self, timer_id: int):
        self._callbacks.pop(timer_id, None)

    @property
    def pending(self) -> int:
        return len(self._callbacks)

    def run(
        self,
        until: Optional[Callable[[], bool]] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> bool:
        """Fire callbacks in due order.

        Returns True when ``until()`` became true, False when the loop went
        idle or the token was cancelled.
        """
        while self._heap:
            if until is not None and until():
                return True
            if cancel is not None and cancel.cancelled:
                return False
            due, _, timer_id = heapq.heappop(self._heap)
            callback = self._callbacks.pop(timer_id, None)
            if callback is None:
                continue
            self._wait_until(due)
            callback()
        return until is not None and until()


class VirtualClock(_TimerLoop):
    def __init__(self, start_ms: float = 0.0):
        super().__init__()
        self._now = float(start_ms)

    def now_ms(self) -> float:
        return self._now

    def _wait_until(self, due_ms: float):
        if due_ms > self._now:
            self._now = due_ms


class RealtimeClock(_TimerLoop):
    def __init__(self):
        super().__init__()
        self._t0 = time.monotonic()

    def now_ms(self) -> float:
        return (time.monotonic() - self._t0) * 1000.0

    def _wait_until(self, due_ms: float):
        delay = due_ms - self.now_ms()
        if delay > 0:
            time.sleep(delay / 1000.0)
