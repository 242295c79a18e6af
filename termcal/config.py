"""Configuration file loading"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

CONFIG_DEFAULT_PATH = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")) / "termcal" / "config.yaml"


class ConfigError(Exception):
    pass


@dataclass
class Config:
    calendar_dir: Path
    debug: bool = False


def resolve_calendar_dir(raw: str, base: Optional[Path] = None) -> Path:
    """Expand ~ and resolve a calendar directory, relative paths against base"""
    path = Path(raw).expanduser()
    if base is not None and not path.is_absolute():
        path = base / path
    return path.resolve()


def load_config(path: Path) -> Config:
    if not path.exists():
        raise ConfigError(f"Config not found: {path}")

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a mapping at the top of {path}")

    raw_dir = data.get("calendar_dir")
    if not raw_dir:
        raise ConfigError(f"'calendar_dir' is not set in {path}")

    return Config(
        calendar_dir=resolve_calendar_dir(str(raw_dir), base=path.parent),
        debug=bool(data.get("debug", False)),
    )
