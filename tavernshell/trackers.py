from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, field

from .errors import TrackerNotFound

logger = logging.getLogger(__name__)

_ids = itertools.count(1)


@dataclass
class NumberTracker:
    """A named counter such as HP or spell slots."""

    name: str
    current: int
    maximum: int
    pinned: bool = False
    id: str = field(default_factory=lambda: str(next(_ids)))

    def set(self, value: int) -> None:
        self.current = value

    def adjust(self, delta: int) -> None:
        self.current += delta

    def pin(self) -> None:
        self.pinned = True

    def unpin(self) -> None:
        self.pinned = False

    def __str__(self) -> str:
        return f"[{self.name}] {self.current}/{self.maximum}"


class TrackerRegistry:
    def __init__(self) -> None:
        self._trackers: dict[str, NumberTracker] = {}
        self._lock = threading.Lock()

    def _find(self, name: str) -> NumberTracker | None:
        key = name.lower()
        for t in self._trackers.values():
            if t.name.lower() == key:
                return t
        return None

    def _require(self, name: str) -> NumberTracker:
        t = self._find(name)
        if t is None:
            raise TrackerNotFound(f"tracker '{name}' not found")
        return t

    def add(self, name: str, current: int, maximum: int) -> NumberTracker:
        t = NumberTracker(name=name, current=current, maximum=maximum)
        with self._lock:
            self._trackers[t.id] = t
        logger.debug("tracker added: %s", t)
        return t

    def get(self, name: str) -> NumberTracker | None:
        with self._lock:
            return self._find(name)

    def set(self, name: str, value: int) -> NumberTracker:
        with self._lock:
            t = self._require(name)
            t.set(value)
            return t

    def adjust(self, name: str, delta: int) -> NumberTracker:
        with self._lock:
            t = self._require(name)
            t.adjust(delta)
            return t

    def pin(self, name: str) -> NumberTracker:
        with self._lock:
            t = self._require(name)
            t.pin()
            return t

    def unpin(self, name: str) -> NumberTracker:
        with self._lock:
            t = self._require(name)
            t.unpin()
            return t

    def delete(self, name: str) -> NumberTracker:
        with self._lock:
            t = self._require(name)
            del self._trackers[t.id]
        logger.debug("tracker deleted: %s", t.name)
        return t

    def delete_all(self) -> int:
        with self._lock:
            n = len(self._trackers)
            self._trackers = {}
        return n

    def list(self) -> list[NumberTracker]:
        with self._lock:
            return sorted(self._trackers.values(), key=lambda t: t.name)

    def pinned(self) -> list[NumberTracker]:
        with self._lock:
            return sorted((t for t in self._trackers.values() if t.pinned), key=lambda t: t.name)

    def search(self, pattern: str) -> list[NumberTracker]:
        key = pattern.lower()
        with self._lock:
            found = [t for t in self._trackers.values() if key in t.name.lower()]
        return sorted(found, key=lambda t: t.name)

    def pin_all(self) -> int:
        n = 0
        with self._lock:
            for t in self._trackers.values():
                if not t.pinned:
                    t.pinned = True
                    n += 1
        return n

    def count(self) -> int:
        with self._lock:
            return len(self._trackers)

    def pinned_count(self) -> int:
        with self._lock:
            return sum(1 for t in self._trackers.values() if t.pinned)
