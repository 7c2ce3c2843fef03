"""Configuration loading for sysstats.

Loads run defaults from TOML config files and builds the immutable ``Config``
the scheduler runs with.
Search order: explicit --config path → ~/.config/sysstats/config.toml → defaults only.
"""

from __future__ import annotations

import sys
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

DEFAULT_CONFIG: dict[str, Any] = {
    "samples": 10,
    "tdelay": 1,
    "graphics": False,
    "sequential": False,
}

_DEFAULT_PATH = Path.home() / ".config" / "sysstats" / "config.toml"


class ConfigError(Exception):
    """A config file exists but cannot be used."""


@dataclass(frozen=True, slots=True)
class Config:
    """Validated run settings. Never mutated once built."""

    round_count: int = 10
    interval_seconds: int = 1
    collect_memory_cpu: bool = True
    collect_users: bool = True
    graphics: bool = False
    sequential: bool = False

    def __post_init__(self) -> None:
        if self.round_count <= 0:
            raise ValueError(f"round_count must be positive, got {self.round_count}")
        if self.interval_seconds < 0:
            raise ValueError(
                f"interval_seconds must not be negative, got {self.interval_seconds}"
            )


def _merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Overlay known keys onto base, rejecting values of the wrong type."""
    merged = dict(base)
    for key, value in overlay.items():
        if key not in base:
            continue
        expected = type(base[key])
        # bool is a subclass of int; keep "samples = true" from slipping through
        if type(value) is not expected:
            raise TypeError(
                f"'{key}' must be {expected.__name__}, got {type(value).__name__}"
            )
        merged[key] = value
    return merged


def _read_settings(path: Path) -> dict[str, Any]:
    """Parse one TOML file and overlay it on the defaults.

    Raises:
        ConfigError: On a TOML syntax error or a value of the wrong type.
    """
    try:
        return _merge(DEFAULT_CONFIG, tomllib.loads(path.read_text(encoding="utf-8")))
    except (tomllib.TOMLDecodeError, TypeError, OSError) as e:
        raise ConfigError(f"invalid config in {path}: {e}") from e


def load_config(path: Path | None = None) -> dict[str, Any]:
    """Return run settings: an explicit file, else the default-location file, else defaults.

    A bad explicit ``--config`` file is fatal (exit 1).
    A bad file at the default location is warned about and skipped.
    """
    if path is not None:
        if not path.is_file():
            print(f"sysstats: config file not found: {path}", file=sys.stderr)
            raise SystemExit(1)
        try:
            return _read_settings(path)
        except ConfigError as e:
            print(f"sysstats: {e}", file=sys.stderr)
            raise SystemExit(1) from e

    if not _DEFAULT_PATH.is_file():
        return dict(DEFAULT_CONFIG)
    try:
        return _read_settings(_DEFAULT_PATH)
    except ConfigError as e:
        print(f"sysstats: warning: ignoring {e}", file=sys.stderr)
        return dict(DEFAULT_CONFIG)


def dump_default_config() -> str:
    """Return the default configuration as a TOML string."""
    lines = [
        "# sysstats configuration",
        "# Place this file at ~/.config/sysstats/config.toml",
        "",
        f"samples = {DEFAULT_CONFIG['samples']}",
        f"tdelay = {DEFAULT_CONFIG['tdelay']}",
        f"graphics = {str(DEFAULT_CONFIG['graphics']).lower()}",
        f"sequential = {str(DEFAULT_CONFIG['sequential']).lower()}",
    ]
    return "\n".join(lines) + "\n"
