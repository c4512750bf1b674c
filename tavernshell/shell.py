from __future__ import annotations

import logging
import time

from .config import AppConfig
from .dice import Draw, evaluate, format_result, parse
from .errors import (
    DiceRollError,
    DiceSyntaxError,
    DurationSyntaxError,
    ParticipantNotFound,
    TrackerNotFound,
)
from .rotation import RotationManager
from .timers import (
    Clock,
    Timer,
    TimerRegistry,
    format_duration,
    format_duration_short,
    parse_duration,
)
from .trackers import NumberTracker, TrackerRegistry

logger = logging.getLogger(__name__)

WELCOME = "Welcome to TavernShell! Type 'h' for help."

HELP_LINES = [
    "Available Commands:",
    "  r/roll <dice>           - Roll dice with modifiers, advantage, keep/drop",
    "  a/alarm <time> [name]   - Start a countdown alarm (e.g., 'a 5m', 'a 1h concentration')",
    "  i/init <cmd>            - Initiative (start/s, next/n, add/a, kill/k, revive/r, list/l, end/e)",
    "  t/tracker <cmd>         - Number trackers (add/a, set/s, adjust/adj, list/l, pin/p, etc.)",
    "  h/help                  - Show this help message",
    "  c/clear                 - Clear history",
    "  q/quit                  - Exit",
    "",
    "Dice Notation:",
    "  XdY       - Roll X dice with Y sides each (X defaults to 1)",
    "  XdY+Z     - Add modifier Z to the total",
    "  XdY!      - Advantage (roll each die twice, keep highest)",
    "  XdYkhN    - Keep highest N dice      XdYklN - Keep lowest N dice",
    "  XdYdhN    - Drop highest N dice      XdYdlN - Drop lowest N dice",
    "  Dropped dice are shown in angle brackets ‹like this›",
    "",
    "Tracker Examples:",
    "  t add HP 35 45          - Create HP tracker at 35/45",
    "  t adjust HP -10         - Subtract 10 from HP",
    "  t pin HP                - Show HP in the side panel",
    "  t search h              - Find trackers by name",
]

_TRACKER_SUBCOMMANDS = [
    "add",
    "set",
    "adjust",
    "list",
    "pin",
    "pinall",
    "unpin",
    "delete",
    "deleteall",
    "search",
]
_TRACKER_ALIASES = {"adj": "adjust", "pa": "pinall", "da": "deleteall", "f": "search"}

_INITIATIVE_SUBCOMMANDS = ["start", "next", "add", "kill", "revive", "list", "end"]
_INITIATIVE_ALIASES = {"s": "start", "n": "next", "a": "add", "k": "kill", "r": "revive"}


def _is_prefix(word: str, *names: str) -> bool:
    return any(name.startswith(word) for name in names)


def _resolve(word: str, names: list[str], aliases: dict[str, str]) -> str | None:
    if word in aliases:
        return aliases[word]
    for name in names:
        if name.startswith(word):
            return name
    return None


def bar(fraction: float, width: int = 10) -> str:
    filled = int(max(0.0, min(1.0, fraction)) * width)
    return "█" * filled + "░" * (width - filled)


def _tracker_line(t: NumberTracker) -> str:
    return f"  {t}" + (" (pinned)" if t.pinned else "")


class Shell:
    """Line-oriented command interpreter behind both the TUI and the plain REPL."""

    def __init__(
        self,
        cfg: AppConfig | None = None,
        draw: Draw | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self.cfg = cfg or AppConfig()
        self.timers = TimerRegistry()
        self.trackers = TrackerRegistry()
        self.initiative = RotationManager()
        self.entry_mode = False
        self.finished = False
        self.transcript: list[str] = [WELCOME]
        self._draw = draw
        self._clock = clock

    def _emit(self, *lines: str) -> list[str]:
        self.transcript.extend(lines)
        limit = self.cfg.shell.max_transcript
        if len(self.transcript) > limit:
            del self.transcript[: len(self.transcript) - limit]
        return list(lines)

    def roll_text(self, notation: str) -> str:
        result = evaluate(parse(notation), draw=self._draw)
        text = format_result(result, marks=self.cfg.display.dropped_marks)
        icon = self.cfg.display.dice_icon
        return f"{icon} {text}" if icon else text

    def handle(self, line: str) -> list[str]:
        line = line.strip()
        if self.entry_mode:
            return self._handle_entry(line)

        parts = line.split()
        if not parts:
            return []

        cmd = parts[0].lower()
        args = parts[1:]

        if _is_prefix(cmd, "roll"):
            return self._handle_roll(args)
        if _is_prefix(cmd, "alarm"):
            return self._handle_alarm(args)
        if _is_prefix(cmd, "initiative"):
            return self._handle_initiative(args)
        if _is_prefix(cmd, "tracker"):
            return self._handle_tracker(args)
        if _is_prefix(cmd, "help"):
            return self._emit(*HELP_LINES)
        if _is_prefix(cmd, "quit") or cmd == "exit":
            self.finished = True
            return []
        if _is_prefix(cmd, "clear"):
            self.transcript = [WELCOME]
            return []

        # Anything else may be bare notation such as "2d6+3".
        try:
            text = self.roll_text(line)
        except DiceSyntaxError:
            return self._emit(f"Unknown command: {cmd} (type 'h' for help)")
        except DiceRollError as e:
            return self._emit(f"Error: {e}")
        return self._emit(text)

    def _handle_roll(self, args: list[str]) -> list[str]:
        if not args:
            return self._emit("Usage: r/roll <dice> (e.g., 'r 2d6+3', 'r d20!', 'r 4d6kh3')")
        try:
            text = self.roll_text("".join(args))
        except (DiceSyntaxError, DiceRollError) as e:
            return self._emit(f"Error: {e}")
        return self._emit(text)

    def _handle_alarm(self, args: list[str]) -> list[str]:
        if not args:
            return self._emit("Usage: a/alarm <duration> [name] (e.g., 'a 5m', 'a 1h concentration')")
        try:
            seconds = parse_duration(args[0])
        except DurationSyntaxError as e:
            return self._emit(f"Error: {e}")
        if seconds <= 0:
            return self._emit("Error: duration must be positive")

        label = " ".join(args[1:])
        self.timers.add(Timer(duration_s=seconds, label=label, clock=self._clock))
        icon = self.cfg.display.alarm_icon
        prefix = f"{icon} " if icon else ""
        if label:
            return self._emit(f"{prefix}Started alarm '{label}' for {format_duration(seconds)}")
        return self._emit(f"{prefix}Started alarm for {format_duration(seconds)}")

    def tick(self) -> list[str]:
        """Report and forget alarms that have run out."""
        icon = self.cfg.display.alarm_icon
        prefix = f"{icon} " if icon else ""
        lines = []
        for t in self.timers.pop_expired():
            logger.debug("alarm %s expired", t.id)
            lines.append(f"{prefix}{t.describe()} finished ({format_duration(t.duration_s)})")
        return self._emit(*lines) if lines else []

    def _handle_entry(self, line: str) -> list[str]:
        if not line or line.lower() in {"done", "end"}:
            self.entry_mode = False
            return self._emit("Initiative setup complete. Use 'i n' to advance turns.")

        parts = line.split()
        if len(parts) < 2:
            return self._emit("Format: <name> <initiative> (or 'done' to finish)")
        try:
            initiative = int(parts[-1])
        except ValueError:
            return self._emit("Invalid initiative value. Format: <name> <initiative>")

        name = " ".join(parts[:-1])
        self.initiative.add(name, initiative)
        return self._emit(f"Added {name} (initiative {initiative})")

    def _handle_initiative(self, args: list[str]) -> list[str]:
        if not args:
            return self._emit(
                "Usage: i/init <command> - Commands: start/s, next/n, add/a, kill/k, revive/r, list/l, end/e"
            )

        sub = _resolve(args[0].lower(), _INITIATIVE_SUBCOMMANDS, _INITIATIVE_ALIASES)

        if sub == "start":
            self.initiative.start()
            self.entry_mode = True
            return self._emit(
                "Starting initiative. Enter '<name> <initiative>' for each participant.",
                "Type 'done' when finished.",
            )

        if sub == "end":
            self.initiative.end()
            return self._emit("Initiative ended.")

        if sub is None:
            return self._emit(f"Unknown initiative command: {args[0]}")

        tracker = self.initiative.tracker
        if tracker is None:
            return self._emit("No active initiative. Use 'i start' to begin.")

        if sub == "next":
            current = self.initiative.next()
            if current is None:
                return self._emit("No participants yet. Use 'i add' to add some.")
            return self._emit(
                f"Turn: {current.name} (Initiative {current.initiative}) - Round {tracker.round}"
            )

        if sub == "add":
            self.entry_mode = True
            return self._emit("Enter '<name> <initiative>' or 'done' to finish.")

        if sub == "list":
            if not tracker.participants:
                return self._emit("No participants yet.")
            return self._emit(f"Round {tracker.round}:", *self._initiative_lines())

        name = " ".join(args[1:])
        if not name:
            return self._emit(f"Usage: i {sub} <name>")
        try:
            if sub == "kill":
                self.initiative.mark_out(name)
                return self._emit(f"{name} is out of combat")
            self.initiative.mark_in(name)
            return self._emit(f"{name} is back in combat")
        except ParticipantNotFound as e:
            return self._emit(f"Error: {e}")

    def _handle_tracker(self, args: list[str]) -> list[str]:
        if not args:
            return self._emit(
                "Usage: t/tracker <command> - Commands: add/a, set/s, adjust/adj, list/l, pin/p, "
                "unpin/u, pinall/pa, delete/d, deleteall/da, search/f"
            )

        sub = _resolve(args[0].lower(), _TRACKER_SUBCOMMANDS, _TRACKER_ALIASES)
        rest = args[1:]

        if sub == "add":
            if len(rest) < 3:
                return self._emit("Usage: track add <name> <current> <max>")
            try:
                current, maximum = int(rest[1]), int(rest[2])
            except ValueError:
                return self._emit("Error: current and max must be numbers")
            t = self.trackers.add(rest[0], current, maximum)
            return self._emit(f"Added tracker: {t}")

        if sub in {"set", "adjust"}:
            if len(rest) < 2:
                hint = "<value>" if sub == "set" else "<delta> (e.g., '+5' or '-10')"
                return self._emit(f"Usage: track {sub} <name> {hint}")
            try:
                n = int(rest[1])
            except ValueError:
                return self._emit(f"Error: {'value' if sub == 'set' else 'delta'} must be a number")
            try:
                if sub == "set":
                    t = self.trackers.set(rest[0], n)
                else:
                    t = self.trackers.adjust(rest[0], n)
            except TrackerNotFound as e:
                return self._emit(f"Error: {e}")
            return self._emit(str(t))

        if sub == "list":
            trackers = self.trackers.list()
            if not trackers:
                return self._emit("No trackers")
            return self._emit("Trackers:", *(_tracker_line(t) for t in trackers))

        if sub in {"pin", "unpin", "delete"}:
            if not rest:
                return self._emit(f"Usage: track {sub} <name>")
            try:
                if sub == "pin":
                    t = self.trackers.pin(rest[0])
                    return self._emit(f"Pinned [{t.name}]")
                if sub == "unpin":
                    t = self.trackers.unpin(rest[0])
                    return self._emit(f"Unpinned [{t.name}]")
                t = self.trackers.delete(rest[0])
                return self._emit(f"Deleted tracker '{t.name}'")
            except TrackerNotFound as e:
                return self._emit(f"Error: {e}")

        if sub == "pinall":
            return self._emit(f"Pinned {self.trackers.pin_all()} tracker(s)")

        if sub == "deleteall":
            self.trackers.delete_all()
            return self._emit("Deleted all trackers")

        if sub == "search":
            if not rest:
                return self._emit("Usage: track search <pattern>")
            found = self.trackers.search(rest[0])
            if not found:
                return self._emit(f"No trackers matching '{rest[0]}'")
            return self._emit(
                f"Trackers matching '{rest[0]}':", *(_tracker_line(t) for t in found)
            )

        return self._emit(f"Unknown track command: {args[0]}")

    def _initiative_lines(self) -> list[str]:
        tracker = self.initiative.tracker
        if tracker is None:
            return []
        current = tracker.current()
        lines = []
        for p in tracker.participants:
            mark = ">" if p is current else " "
            out = "" if p.active else " (out)"
            lines.append(f"{mark} {p.name} {p.initiative}{out}")
        return lines

    def panel(self) -> list[str]:
        """Side panel: initiative order, pinned trackers, running alarms."""
        lines: list[str] = []

        tracker = self.initiative.tracker
        if tracker is not None:
            lines.append(f"Initiative (round {tracker.round})")
            lines.extend(self._initiative_lines() or ["  (no participants)"])
            lines.append("")

        pinned = self.trackers.pinned()
        if pinned:
            lines.append("Trackers")
            for t in pinned:
                frac = t.current / t.maximum if t.maximum > 0 else 0.0
                lines.append(f"{t} [{bar(frac)}]")
            lines.append("")

        active = self.timers.active()
        if active:
            lines.append("Alarms")
            for t in active:
                left = format_duration_short(t.remaining())
                total = format_duration_short(t.duration_s)
                label = f"{t.label} " if t.label else ""
                frac = 1.0 - t.percent_complete() / 100.0
                lines.append(f"[T] {label}{left}/{total} [{bar(frac)}]")

        while lines and not lines[-1]:
            lines.pop()
        return lines
