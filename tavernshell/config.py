from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _xdg_config_home() -> Path:
    env = os.environ.get("XDG_CONFIG_HOME")
    if env:
        return Path(env).expanduser()
    return Path.home() / ".config"


def default_config_path() -> Path:
    return _xdg_config_home() / "tavernshell" / "config.json"


@dataclass(frozen=True)
class DisplayConfig:
    dice_icon: str = "🎲"
    alarm_icon: str = "⏰"
    dropped_open: str = "‹"
    dropped_close: str = "›"
    color: bool = True

    @property
    def dropped_marks(self) -> tuple[str, str]:
        return self.dropped_open, self.dropped_close


@dataclass(frozen=True)
class ShellConfig:
    max_history: int = 100
    max_transcript: int = 500
    tick_s: float = 1.0
    show_panel: bool = True


@dataclass(frozen=True)
class AppConfig:
    display: DisplayConfig = field(default_factory=DisplayConfig)
    shell: ShellConfig = field(default_factory=ShellConfig)
    log_level: str = "WARNING"
    log_file: str | None = None

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "AppConfig":
        data = data if isinstance(data, dict) else {}
        display_data = data.get("display") if isinstance(data.get("display"), dict) else {}
        shell_data = data.get("shell") if isinstance(data.get("shell"), dict) else {}

        def opt_str(d: dict[str, Any], key: str, default: str) -> str:
            v = d.get(key, default)
            return v if isinstance(v, str) else default

        def opt_bool(d: dict[str, Any], key: str, default: bool) -> bool:
            v = d.get(key, default)
            return v if isinstance(v, bool) else default

        def opt_int(d: dict[str, Any], key: str, default: int) -> int:
            v = d.get(key, default)
            if isinstance(v, bool):
                return default
            try:
                n = int(v)
            except (TypeError, ValueError):
                return default
            return n if n > 0 else default

        def opt_float(d: dict[str, Any], key: str, default: float) -> float:
            v = d.get(key, default)
            if isinstance(v, bool):
                return default
            try:
                x = float(v)
            except (TypeError, ValueError):
                return default
            return x if x > 0 else default

        display = DisplayConfig(
            dice_icon=opt_str(display_data, "dice_icon", DisplayConfig.dice_icon),
            alarm_icon=opt_str(display_data, "alarm_icon", DisplayConfig.alarm_icon),
            dropped_open=opt_str(display_data, "dropped_open", DisplayConfig.dropped_open),
            dropped_close=opt_str(display_data, "dropped_close", DisplayConfig.dropped_close),
            color=opt_bool(display_data, "color", DisplayConfig.color),
        )

        shell = ShellConfig(
            max_history=opt_int(shell_data, "max_history", ShellConfig.max_history),
            max_transcript=opt_int(shell_data, "max_transcript", ShellConfig.max_transcript),
            tick_s=opt_float(shell_data, "tick_s", ShellConfig.tick_s),
            show_panel=opt_bool(shell_data, "show_panel", ShellConfig.show_panel),
        )

        log_level = str(data.get("log_level") or AppConfig.log_level).upper()
        if log_level not in _LOG_LEVELS:
            log_level = AppConfig.log_level

        log_file = data.get("log_file")
        log_file = str(log_file) if isinstance(log_file, str) and log_file else None

        return AppConfig(display=display, shell=shell, log_level=log_level, log_file=log_file)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def load_config(path: Path | None = None) -> AppConfig:
    path = path or default_config_path()

    if path.exists():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("ignoring unreadable config %s: %s", path, e)
            data = {}
    else:
        data = {}

    cfg = AppConfig.from_dict(data if isinstance(data, dict) else {})

    level_env = os.environ.get("TAVERNSHELL_LOG_LEVEL")
    if level_env and level_env.upper() in _LOG_LEVELS:
        cfg = AppConfig(
            display=cfg.display,
            shell=cfg.shell,
            log_level=level_env.upper(),
            log_file=cfg.log_file,
        )

    return cfg


def save_config(cfg: AppConfig, path: Path | None = None) -> Path:
    path = path or default_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    text = json.dumps(cfg.to_dict(), ensure_ascii=False, indent=2, sort_keys=True)
    path.write_text(text + "\n", encoding="utf-8")
    return path
