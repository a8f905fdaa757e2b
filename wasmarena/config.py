"""
wasmarena/config.py - Tournament configuration

Settings can come from a TOML file and are overridden by command line flags.

Example:
    [tournament]
    runtime = "~/arena/snake_runtime.wasm"
    red = "bots/red.wasm"
    blue = "bots/blue.wasm"
    seed = 0
    games = 1000
    threads = 8
    fuel = 10000000000
"""

import dataclasses
import logging
import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .errors import ConfigError
from .tournament import check_seed_range

logger = logging.getLogger(__name__)

RUNTIME_ENV_VAR = "WASMARENA_RUNTIME"

# About ten seconds of runtime work per game on current hardware.
DEFAULT_FUEL = 10_000_000_000


@dataclass
class TournamentConfig:
    """Configuration for one tournament run."""

    # Modules
    runtime_path: Optional[str] = None
    red_path: Optional[str] = None
    blue_path: Optional[str] = None

    # Seed range
    start_seed: int = 0
    games: int = 100

    # Execution
    threads: Optional[int] = None           # None = CPU count
    fuel: Optional[int] = DEFAULT_FUEL      # None/0 = no execution budget
    local_aggregation: bool = False

    # Output
    json_output: bool = False

    def merged(self, **overrides) -> "TournamentConfig":
        """Return a copy with every override that is not None applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return dataclasses.replace(self, **changes)

    def resolve_runtime_path(self) -> Optional[str]:
        return self.runtime_path or _expand(os.environ.get(RUNTIME_ENV_VAR))

    def validate(self):
        """
        Check the configuration before any module is loaded.

        Raises:
            ConfigError: on a wrongly typed value, a missing module path, a bad
                thread count or a seed range outside the u32 domain
        """
        for name in ("runtime_path", "red_path", "blue_path"):
            value = getattr(self, name)
            if value is not None and not isinstance(value, str):
                raise ConfigError(f"{name} must be a path string, got {value!r}")
        for name in ("start_seed", "games", "threads", "fuel"):
            value = getattr(self, name)
            if value is not None and not _is_int(value):
                raise ConfigError(f"{name} must be an integer, got {value!r}")

        if not self.red_path or not self.blue_path:
            raise ConfigError("both a RED and a BLUE module are required")
        if not self.resolve_runtime_path():
            raise ConfigError(
                f"no runtime module given (use --runtime or set {RUNTIME_ENV_VAR})"
            )
        if self.threads is not None and self.threads < 1:
            raise ConfigError(f"thread count must be at least 1, got {self.threads}")
        if self.fuel is not None and self.fuel < 0:
            raise ConfigError(f"fuel must not be negative, got {self.fuel}")
        check_seed_range(self.start_seed, self.games)


def _expand(path: Optional[str]) -> Optional[str]:
    """Expand ~ in a path string."""
    if not path:
        return None
    return str(Path(path).expanduser())


def _is_int(value) -> bool:
    # TOML and JSON booleans are ints to Python; a seed of `true` is a typo
    return isinstance(value, int) and not isinstance(value, bool)


_KIND_NAMES = {str: "a string", int: "an integer", bool: "true or false"}


def _table_value(data: dict, key: str, kind: type, path: Path, default=None):
    """Fetch data[key], raising ConfigError when it has the wrong type."""
    if key not in data:
        return default
    value = data[key]
    valid = _is_int(value) if kind is int else isinstance(value, kind)
    if not valid:
        raise ConfigError(f"'{key}' in {path} must be {_KIND_NAMES[kind]}, got {value!r}")
    return value


def load_config(path: Path) -> TournamentConfig:
    """
    Read a [tournament] table from a TOML file.

    Args:
        path: Config file path

    Returns:
        TournamentConfig. A missing file yields the defaults.

    Raises:
        ConfigError: if the file is not valid TOML or a value has the wrong type
    """
    if not path.exists():
        logger.warning(f"Config file {path} not found, using defaults")
        return TournamentConfig()

    try:
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"failed to parse {path}: {e}") from e

    data = raw.get("tournament", {})
    if not isinstance(data, dict):
        raise ConfigError(f"[tournament] in {path} must be a table")

    defaults = TournamentConfig()
    return TournamentConfig(
        runtime_path=_expand(_table_value(data, "runtime", str, path)),
        red_path=_expand(_table_value(data, "red", str, path)),
        blue_path=_expand(_table_value(data, "blue", str, path)),
        start_seed=_table_value(data, "seed", int, path, defaults.start_seed),
        games=_table_value(data, "games", int, path, defaults.games),
        threads=_table_value(data, "threads", int, path),
        fuel=_table_value(data, "fuel", int, path, defaults.fuel),
        local_aggregation=_table_value(data, "local_aggregation", bool, path, defaults.local_aggregation),
        json_output=_table_value(data, "json", bool, path, defaults.json_output),
    )
