from __future__ import annotations

import itertools
import logging
import math
import re
import threading
import time
from dataclasses import dataclass, field
from typing import Callable

from .errors import DurationSyntaxError

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

_ids = itertools.count(1)

_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}
_COMPONENT_RE = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ms|h|m|s)")


def parse_duration(text: str) -> float:
    """Parse ``1h30m``, ``5m``, ``90s``, ``1.5h`` into seconds."""
    s = text.strip().lower()
    if not s:
        raise DurationSyntaxError("empty duration")

    sign = 1.0
    if s[0] in {"+", "-"}:
        sign = -1.0 if s[0] == "-" else 1.0
        s = s[1:]

    total = 0.0
    i = 0
    while i < len(s):
        m = _COMPONENT_RE.match(s, i)
        if not m:
            raise DurationSyntaxError(
                f"invalid duration '{text}' (use format like: 1h, 5m, 30s, 1h30m)"
            )
        total += float(m.group(1)) * _UNITS[m.group(2)]
        i = m.end()

    if not math.isfinite(total):
        raise DurationSyntaxError(f"duration too long: '{text}'")
    return sign * total


def _split(seconds: float) -> tuple[int, int, int]:
    whole = int(round(max(0.0, seconds)))
    h, rest = divmod(whole, 3600)
    m, s = divmod(rest, 60)
    return h, m, s


def format_duration(seconds: float) -> str:
    h, m, s = _split(seconds)
    if h > 0:
        return f"{h}h{m}m{s}s"
    if m > 0:
        return f"{m}m{s}s"
    return f"{s}s"


def format_duration_short(seconds: float) -> str:
    h, m, s = _split(seconds)
    if h > 0:
        return f"{h}h{m}m"
    if m > 0:
        return f"{m}m{s}s"
    return f"{s}s"


@dataclass
class Timer:
    duration_s: float
    label: str = ""
    clock: Clock = field(default=time.monotonic, repr=False, compare=False)
    id: str = field(default_factory=lambda: str(next(_ids)))
    started_at: float = field(default=-1.0)

    def __post_init__(self) -> None:
        if self.started_at < 0:
            self.started_at = self.clock()

    def elapsed(self) -> float:
        return min(self.clock() - self.started_at, self.duration_s)

    def remaining(self) -> float:
        return max(0.0, self.duration_s - (self.clock() - self.started_at))

    def percent_complete(self) -> float:
        if self.duration_s <= 0:
            return 100.0
        pct = (self.clock() - self.started_at) / self.duration_s * 100.0
        return min(pct, 100.0)

    def is_expired(self) -> bool:
        return self.clock() - self.started_at >= self.duration_s

    def describe(self) -> str:
        return f"Alarm '{self.label}'" if self.label else "Alarm"


class TimerRegistry:
    def __init__(self) -> None:
        self._timers: dict[str, Timer] = {}
        self._lock = threading.Lock()

    def add(self, timer: Timer) -> Timer:
        with self._lock:
            self._timers[timer.id] = timer
        logger.debug("alarm %s started for %.1fs", timer.id, timer.duration_s)
        return timer

    def remove(self, timer_id: str) -> None:
        with self._lock:
            self._timers.pop(timer_id, None)

    def active(self) -> list[Timer]:
        with self._lock:
            out = [t for t in self._timers.values() if not t.is_expired()]
        out.sort(key=lambda t: t.remaining())
        return out

    def pop_expired(self) -> list[Timer]:
        with self._lock:
            expired = [t for t in self._timers.values() if t.is_expired()]
            for t in expired:
                del self._timers[t.id]
        return expired

    def count(self) -> int:
        with self._lock:
            return len(self._timers)

    def active_count(self) -> int:
        with self._lock:
            return sum(1 for t in self._timers.values() if not t.is_expired())

    def clear(self) -> None:
        with self._lock:
            self._timers = {}
