from __future__ import annotations

import importlib
import locale
import logging
import textwrap
import unicodedata
from typing import Any

from .config import AppConfig
from .shell import Shell

logger = logging.getLogger(__name__)

PANEL_WIDTH = 36
PANEL_MIN_SCREEN = 80


def run_tui(cfg: AppConfig, shell: Shell | None = None) -> int:
    try:
        locale.setlocale(locale.LC_ALL, "")
    except locale.Error:
        logger.debug("locale not supported, using defaults")

    try:
        c = importlib.import_module("curses")
    except ImportError as e:
        raise RuntimeError("curses is not available in this python build") from e

    shell = shell or Shell(cfg)

    def inner(stdscr: Any) -> int:
        return _shell_loop(c, stdscr, cfg, shell)

    return int(c.wrapper(inner))


def _wcwidth_char(ch: str) -> int:
    if not ch:
        return 0
    if unicodedata.combining(ch):
        return 0
    eaw = unicodedata.east_asian_width(ch)
    if eaw in {"W", "F"}:
        return 2
    return 1


def _wcswidth(s: str) -> int:
    return sum(_wcwidth_char(ch) for ch in s)


def _slice_to_cols(s: str, start: int, max_cols: int) -> tuple[str, int]:
    cols = 0
    i = start
    out: list[str] = []
    while i < len(s):
        w = _wcwidth_char(s[i])
        if cols + w > max_cols:
            break
        cols += w
        out.append(s[i])
        i += 1
    return "".join(out), i


def _wrap_lines(lines: list[str], width: int) -> list[str]:
    out: list[str] = []
    w = max(10, width)
    for line in lines:
        # Keep leading indentation on continuation rows.
        indent = " " * (len(line) - len(line.lstrip(" ")))
        wrapped = textwrap.wrap(
            line,
            width=w,
            subsequent_indent=indent,
            drop_whitespace=False,
            replace_whitespace=False,
        )
        out.extend(wrapped or [""])
    return out


def _line_kind(line: str, cfg: AppConfig) -> str:
    if line.startswith("Error") or line.startswith("Unknown"):
        return "err"
    icon = cfg.display.dice_icon
    if icon and line.startswith(icon):
        return "dice"
    alarm = cfg.display.alarm_icon
    if (alarm and line.startswith(alarm)) or line.startswith("Turn:"):
        return "event"
    return "text"


class _Recall:
    """Up/Down navigation over previously entered commands."""

    def __init__(self, limit: int) -> None:
        self.items: list[str] = []
        self.index = -1
        self.limit = max(1, limit)

    def push(self, line: str) -> None:
        self.items.append(line)
        if len(self.items) > self.limit:
            del self.items[: len(self.items) - self.limit]
        self.index = -1

    def older(self) -> str | None:
        if not self.items:
            return None
        if self.index == -1:
            self.index = len(self.items) - 1
        elif self.index > 0:
            self.index -= 1
        return self.items[self.index]

    def newer(self) -> str | None:
        if self.index == -1:
            return None
        if self.index < len(self.items) - 1:
            self.index += 1
            return self.items[self.index]
        self.index = -1
        return ""


def _shell_loop(c: Any, stdscr: Any, cfg: AppConfig, shell: Shell) -> int:
    c.curs_set(1)
    stdscr.keypad(True)
    stdscr.timeout(max(50, int(cfg.shell.tick_s * 1000)))

    colors: dict[str, int] = {}
    if cfg.display.color:
        try:
            c.use_default_colors()
            c.init_pair(1, c.COLOR_GREEN, -1)
            c.init_pair(2, c.COLOR_YELLOW, -1)
            c.init_pair(3, c.COLOR_RED, -1)
            c.init_pair(4, c.COLOR_CYAN, -1)
            colors = {
                "dice": c.color_pair(1),
                "event": c.color_pair(2),
                "err": c.color_pair(3),
                "panel": c.color_pair(4),
            }
        except c.error:
            colors = {}

    recall = _Recall(cfg.shell.max_history)
    input_buf = ""
    cursor = 0
    scroll = 0

    def layout(w: int) -> tuple[int, int]:
        if cfg.shell.show_panel and w >= PANEL_MIN_SCREEN and shell.panel():
            return w - PANEL_WIDTH - 1, PANEL_WIDTH
        return w, 0

    def max_scroll(wrapped: list[str], h: int) -> int:
        view_h = max(1, h - 2)
        return max(0, len(wrapped) - view_h)

    def draw() -> None:
        nonlocal scroll
        stdscr.erase()
        h, w = stdscr.getmaxyx()
        main_w, panel_w = layout(w)

        wrapped = _wrap_lines(shell.transcript, width=main_w - 1)
        scroll = min(max(0, scroll), max_scroll(wrapped, h))

        view_h = max(1, h - 2)
        end = len(wrapped) - scroll
        start = max(0, end - view_h)

        for row, line in enumerate(wrapped[start:end]):
            attr = colors.get(_line_kind(line, cfg), 0)
            stdscr.addnstr(row, 0, line, max(0, main_w - 1), attr)

        if panel_w:
            x = main_w + 1
            for row in range(view_h):
                stdscr.addnstr(row, main_w - 1, "│", 1)
            for row, line in enumerate(shell.panel()[:view_h]):
                stdscr.addnstr(row, x, line, max(0, panel_w - 1), colors.get("panel", 0))

        hint = "PgUp/PgDn scroll  Up/Down recall  Enter run  h help  q quit"
        if shell.entry_mode:
            hint = "initiative entry: <name> <initiative>, 'done' to finish"
        stdscr.addnstr(h - 2, 0, hint, max(0, w - 1))

        prompt = "init> " if shell.entry_mode else "> "
        avail_cols = max(1, w - len(prompt) - 1)

        hoff = 0
        while hoff < cursor and _wcswidth(input_buf[hoff:cursor]) > avail_cols:
            hoff += 1

        visible, _end = _slice_to_cols(input_buf, hoff, avail_cols)
        stdscr.addnstr(h - 1, 0, prompt + visible, max(0, w - 1))

        cur_x = len(prompt) + _wcswidth(input_buf[hoff:cursor])
        stdscr.move(h - 1, min(int(cur_x), max(0, w - 1)))

        stdscr.refresh()

    while not shell.finished:
        if shell.tick():
            scroll = 0
        draw()

        try:
            ch = stdscr.get_wch()
        except c.error:
            # Input timeout; loop around to check alarms.
            continue

        if isinstance(ch, int) and ch == c.KEY_RESIZE:
            continue

        if ch in (3, "\x03", 4, "\x04"):
            break

        if isinstance(ch, int) and ch == c.KEY_PPAGE:
            h, w = stdscr.getmaxyx()
            wrapped = _wrap_lines(shell.transcript, width=layout(w)[0] - 1)
            scroll = min(max_scroll(wrapped, h), scroll + max(1, (h - 2) // 2))
            continue

        if isinstance(ch, int) and ch == c.KEY_NPAGE:
            scroll = max(0, scroll - max(1, (stdscr.getmaxyx()[0] - 2) // 2))
            continue

        if isinstance(ch, int) and ch in (c.KEY_UP, c.KEY_DOWN):
            line = recall.older() if ch == c.KEY_UP else recall.newer()
            if line is not None:
                input_buf = line
                cursor = len(input_buf)
            continue

        if isinstance(ch, int) and ch == c.KEY_LEFT:
            cursor = max(0, cursor - 1)
            continue

        if isinstance(ch, int) and ch == c.KEY_RIGHT:
            cursor = min(len(input_buf), cursor + 1)
            continue

        if isinstance(ch, int) and ch == c.KEY_HOME:
            cursor = 0
            continue

        if isinstance(ch, int) and ch == c.KEY_END:
            cursor = len(input_buf)
            continue

        if isinstance(ch, int) and ch == c.KEY_DC:
            if cursor < len(input_buf):
                input_buf = input_buf[:cursor] + input_buf[cursor + 1 :]
            continue

        if ch in (c.KEY_BACKSPACE, 127, 8, "\b", "\x7f"):
            if cursor > 0:
                input_buf = input_buf[: cursor - 1] + input_buf[cursor:]
                cursor -= 1
            continue

        if ch in (27, "\x1b"):
            if not input_buf:
                break
            input_buf = ""
            cursor = 0
            continue

        if ch in (c.KEY_ENTER, 10, 13, "\n", "\r"):
            line = input_buf.strip()
            input_buf = ""
            cursor = 0
            if line:
                recall.push(line)
            elif not shell.entry_mode:
                continue
            shell.handle(line)
            scroll = 0
            continue

        if isinstance(ch, str):
            if ch.isprintable():
                input_buf = input_buf[:cursor] + ch + input_buf[cursor:]
                cursor += len(ch)
            continue

    return 0
