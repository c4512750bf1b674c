from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from .config import AppConfig, default_config_path, load_config, save_config
from .dice import format_result, parse, roll
from .errors import DiceSyntaxError, TavernError
from .shell import HELP_LINES, Shell
from .tui import run_tui

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_SUBCOMMANDS = {"roll", "shell", "config", "help"}


def setup_logging(cfg: AppConfig, interactive: bool = False) -> logging.Logger:
    pkg_logger = logging.getLogger("tavernshell")
    for h in list(pkg_logger.handlers):
        pkg_logger.removeHandler(h)
        h.close()

    handler: logging.Handler
    if cfg.log_file:
        handler = logging.FileHandler(cfg.log_file, encoding="utf-8")
    elif interactive:
        # curses owns the terminal; only a log file can take records.
        handler = logging.NullHandler()
    else:
        handler = logging.StreamHandler(sys.stderr)

    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    pkg_logger.addHandler(handler)
    pkg_logger.setLevel(getattr(logging, cfg.log_level, logging.WARNING))
    pkg_logger.propagate = False
    return pkg_logger


def _load(args: argparse.Namespace) -> AppConfig:
    cfg = load_config(Path(args.config) if args.config else None)
    if args.log_level:
        cfg = AppConfig(
            display=cfg.display,
            shell=cfg.shell,
            log_level=str(args.log_level).upper(),
            log_file=cfg.log_file,
        )
    return cfg


def _cmd_roll(args: argparse.Namespace) -> int:
    cfg = _load(args)
    setup_logging(cfg)

    result = roll("".join(args.expression))
    if args.json:
        print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
        return 0

    text = format_result(result, marks=cfg.display.dropped_marks)
    icon = cfg.display.dice_icon
    print(f"{icon} {text}" if icon else text)
    return 0


def _run_plain(shell: Shell) -> int:
    print("\n".join(shell.transcript))
    while not shell.finished:
        for line in shell.tick():
            print(line)
        try:
            user_in = input("init> " if shell.entry_mode else "> ")
        except EOFError:
            print("")
            break
        for line in shell.handle(user_in):
            print(line)
    return 0


def _cmd_shell(args: argparse.Namespace) -> int:
    cfg = _load(args)
    plain = bool(getattr(args, "plain", False))
    setup_logging(cfg, interactive=not plain)

    shell = Shell(cfg)
    if plain:
        return _run_plain(shell)
    return run_tui(cfg, shell=shell)


def _cmd_config(args: argparse.Namespace) -> int:
    path = Path(args.path) if args.path else (Path(args.config) if args.config else default_config_path())
    cfg = load_config(path)

    if args.init:
        save_config(cfg, path)
        print(f"saved: {path}")
        return 0

    if args.print_json:
        print(json.dumps(cfg.to_dict(), ensure_ascii=False, indent=2, sort_keys=True))
        return 0

    state = "exists" if path.exists() else "not created yet (use --init)"
    print(f"{path} ({state})")
    return 0


def _cmd_help(args: argparse.Namespace) -> int:
    build_parser().print_help()
    print("")
    print("\n".join(HELP_LINES))
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="tavernshell",
        description="Dice, alarms, initiative and trackers for tabletop sessions.",
    )
    p.add_argument("--config", help="config path")
    p.add_argument(
        "--log-level",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="override the configured log level",
    )
    p.add_argument(
        "--plain",
        action="store_true",
        help="use stdin/stdout instead of curses TUI",
    )
    p.set_defaults(func=_cmd_shell)
    sub = p.add_subparsers(dest="cmd")

    p_roll = sub.add_parser("roll", help="roll a dice expression, e.g. 4d6kh3 or d20!+5")
    p_roll.add_argument("expression", nargs="+")
    p_roll.add_argument("--json", action="store_true", help="print the full result as JSON")
    p_roll.set_defaults(func=_cmd_roll)

    p_shell = sub.add_parser("shell", help="interactive session (default)")
    p_shell.add_argument(
        "--plain",
        action="store_true",
        default=argparse.SUPPRESS,
        help="use stdin/stdout instead of curses TUI",
    )
    p_shell.set_defaults(func=_cmd_shell)

    p_cfg = sub.add_parser("config", help="show, print or create the config file")
    p_cfg.add_argument("--path", help="config path")
    group = p_cfg.add_mutually_exclusive_group()
    group.add_argument("--print-json", action="store_true")
    group.add_argument("--init", action="store_true", help="write the current settings to disk")
    p_cfg.set_defaults(func=_cmd_config)

    p_help = sub.add_parser("help", help="show commands and dice notation")
    p_help.set_defaults(func=_cmd_help)

    return p


def _rewrite_argv(argv: list[str]) -> list[str] | None:
    """Expand ``r 2d6`` to ``roll 2d6`` and ``2d6`` to ``roll 2d6``.

    Returns None when the first word is neither a command nor notation.
    """
    if not argv or argv[0].startswith("-"):
        return argv

    word = argv[0].lower()
    if word in _SUBCOMMANDS:
        return argv
    if "roll".startswith(word):
        return ["roll", *argv[1:]]
    if "help".startswith(word):
        return ["help", *argv[1:]]

    try:
        parse("".join(a for a in argv if not a.startswith("--")))
    except DiceSyntaxError:
        return None
    return ["roll", *argv]


def main(argv: list[str] | None = None) -> int:
    argv = argv if argv is not None else sys.argv[1:]
    rewritten = _rewrite_argv(argv)
    if rewritten is None:
        print(f"Unknown command: {argv[0]}", file=sys.stderr)
        print("Run 'tavernshell help' for usage information", file=sys.stderr)
        return 1

    p = build_parser()
    args = p.parse_args(rewritten)
    func = getattr(args, "func", None)
    if not func:
        p.print_help()
        return 2

    try:
        return int(func(args))
    except TavernError as e:
        logger.debug("command failed", exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        return 1
