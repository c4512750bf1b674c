from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field

from .errors import ParticipantNotFound

logger = logging.getLogger(__name__)


@dataclass
class Participant:
    name: str
    initiative: int
    active: bool = True


@dataclass
class RotationTracker:
    """Initiative order: highest first, ties alphabetical."""

    participants: list[Participant] = field(default_factory=list)
    current_turn: int = 0
    round: int = 1

    def add(self, name: str, initiative: int) -> Participant:
        p = Participant(name=name, initiative=initiative)
        self.participants.append(p)
        self.participants.sort(key=lambda x: (-x.initiative, x.name))
        return p

    def next(self) -> Participant | None:
        if not self.participants:
            return None

        start = self.current_turn
        while True:
            self.current_turn += 1
            if self.current_turn >= len(self.participants):
                self.current_turn = 0
                self.round += 1
            # Back where we started: nobody else is active.
            if self.current_turn == start:
                break
            if self.participants[self.current_turn].active:
                break

        return self.current()

    def _find(self, name: str) -> Participant:
        for p in self.participants:
            if p.name == name:
                return p
        raise ParticipantNotFound(f"participant '{name}' not found")

    def mark_out(self, name: str) -> Participant:
        p = self._find(name)
        p.active = False
        return p

    def mark_in(self, name: str) -> Participant:
        p = self._find(name)
        p.active = True
        return p

    def current(self) -> Participant | None:
        if 0 <= self.current_turn < len(self.participants):
            return self.participants[self.current_turn]
        return None

    def active_count(self) -> int:
        return sum(1 for p in self.participants if p.active)


class RotationManager:
    def __init__(self) -> None:
        self._tracker: RotationTracker | None = None
        self._lock = threading.Lock()

    def start(self) -> RotationTracker:
        with self._lock:
            self._tracker = RotationTracker()
            logger.debug("initiative started")
            return self._tracker

    def end(self) -> None:
        with self._lock:
            self._tracker = None
        logger.debug("initiative ended")

    def is_active(self) -> bool:
        with self._lock:
            return self._tracker is not None

    @property
    def tracker(self) -> RotationTracker | None:
        with self._lock:
            return self._tracker

    def add(self, name: str, initiative: int) -> Participant | None:
        with self._lock:
            if self._tracker is None:
                return None
            return self._tracker.add(name, initiative)

    def next(self) -> Participant | None:
        with self._lock:
            if self._tracker is None:
                return None
            return self._tracker.next()

    def mark_out(self, name: str) -> Participant | None:
        with self._lock:
            if self._tracker is None:
                return None
            return self._tracker.mark_out(name)

    def mark_in(self, name: str) -> Participant | None:
        with self._lock:
            if self._tracker is None:
                return None
            return self._tracker.mark_in(name)
