"""Settings for the service, the example programs and the CLI.

Layers, later wins:
  1. Settings defaults
  2. YAML file (top-level mapping of field name -> value)
  3. SYSGENID_<FIELD> environment variables (e.g. SYSGENID_BUS=SYSTEM)
  4. Explicit overrides (CLI flags)
"""

from __future__ import annotations

import dataclasses
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml

from sysgenid.errors import ConfigError
from sysgenid.interface import DEFAULT_BUS_NAME

logger = logging.getLogger("sysgenid.config")

ENV_PREFIX = "SYSGENID_"
BUSES = ("SESSION", "SYSTEM")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    bus: str = "SESSION"
    bus_name: str = DEFAULT_BUS_NAME
    replace_existing: bool = True
    call_timeout: float = 2.0  # seconds, per method call made by clients
    ready_timeout: float = 30.0  # seconds the overseer waits for SystemReady
    work_interval: float = 2.0  # seconds between example watcher work ticks
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.bus not in BUSES:
            raise ConfigError(f"bus must be one of {', '.join(BUSES)}, got {self.bus!r}")
        if self.log_level not in LOG_LEVELS:
            raise ConfigError(f"unknown log_level {self.log_level!r}")
        if not self.bus_name:
            raise ConfigError("bus_name must not be empty")
        for name in ("call_timeout", "ready_timeout", "work_interval"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive")


_FIELDS = {f.name: f for f in dataclasses.fields(Settings)}


def _coerce(name: str, value: Any) -> Any:
    kind = _FIELDS[name].type
    try:
        if kind == "bool":
            if isinstance(value, bool):
                return value
            text = str(value).strip().lower()
            if text in _TRUE:
                return True
            if text in _FALSE:
                return False
            raise ValueError(value)
        if kind == "float":
            return float(value)
        value = str(value)
        return value.upper() if name in ("bus", "log_level") else value
    except (TypeError, ValueError):
        raise ConfigError(f"invalid value for {name}: {value!r}") from None


def _from_file(path: Path) -> dict[str, Any]:
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"cannot read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"malformed config file {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a mapping")
    unknown = sorted(set(data) - set(_FIELDS))
    if unknown:
        raise ConfigError(f"unknown settings in {path}: {', '.join(unknown)}")
    logger.debug("Loaded %d settings from %s", len(data), path)
    return data


def _from_env(environ: Mapping[str, str]) -> dict[str, str]:
    values = {}
    for name in _FIELDS:
        key = ENV_PREFIX + name.upper()
        if key in environ:
            values[name] = environ[key]
    return values


def load_settings(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
    **overrides: Any,
) -> Settings:
    """Build Settings from defaults, an optional YAML file, env vars and overrides.

    Overrides whose value is None are ignored, so argparse namespaces can be
    passed through unfiltered.
    """
    merged: dict[str, Any] = {}
    if path is not None:
        merged.update(_from_file(Path(path)))
    merged.update(_from_env(os.environ if environ is None else environ))
    for name, value in overrides.items():
        if name not in _FIELDS:
            raise ConfigError(f"unknown setting {name!r}")
        if value is not None:
            merged[name] = value
    return Settings(**{name: _coerce(name, value) for name, value in merged.items()})
