import itertools
import os
import tempfile
from typing import Callable, Dict, Optional


ReleaseFn = Callable[[], None]


class HandleRegistry:
    """Temporary resources acquired during one session.

    Every handle is released exactly once: either explicitly through
    ``release()`` or by the single ``release_all()`` at session end.
    """

    def __init__(self, temp_dir: Optional[str] = None):
        self.temp_dir = temp_dir
        self._ids = itertools.count(1)
        self._pending: Dict[int, tuple[str, ReleaseFn]] = {}
        self.created = 0
        self.released = 0

    @property
    def outstanding(self) -> int:
        return len(self._pending)

    def register(self, label: str, release: ReleaseFn) -> int:
        handle = next(self._ids)
        self._pending[handle] = (label, release)
        self.created += 1
        return handle

    def register_path(self, path: str) -> int:
        return self.register(path, lambda: _unlink(path))

    def spool(self, data: bytes, suffix: str = "") -> tuple[int, str]:
        """Write ``data`` to a fresh temp file and register it."""
        fd, path = tempfile.mkstemp(prefix="lapse_", suffix=suffix, dir=self.temp_dir)
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        return self.register_path(path), path

    def temp_path(self, suffix: str = "") -> tuple[int, str]:
        """Reserve an empty temp file path (the caller writes it later)."""
        return self.spool(b"", suffix=suffix)

    def label(self, handle: int) -> Optional[str]:
        entry = self._pending.get(handle)
        return entry[0] if entry else None

    def release(self, handle: int) -> bool:
        entry = self._pending.pop(handle, None)
        if entry is None:
            return False
        self.released += 1
        entry[1]()
        return True

    def release_all(self) -> int:
        errors = []
        count = 0
        for handle in list(self._pending):
            try:
                if self.release(handle):
                    count += 1
            except OSError as exc:
                errors.append(exc)
        if errors:
            raise errors[0]
        return count


def _unlink(path: str):
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass
