"""Load config from FLIGHTDECK_CONFIG_PATH or return default.

``load_config()`` is memoised with ``functools.lru_cache`` so the file is read
and parsed at most once per process.  Call ``load_config.cache_clear()`` to
force a re-read (useful in tests and when ``FLIGHTDECK_CONFIG_PATH`` changes at
runtime).

The file may be JSON (``.json``) or YAML (``.yaml`` / ``.yml``); anything that
fails to read, parse or validate raises ``ConfigError``.  Pushover
credentials are never read from the file; they come from
``FLIGHTDECK_PUSHOVER_TOKEN`` and ``FLIGHTDECK_PUSHOVER_USER``.
"""

from __future__ import annotations

import functools
import json
from pathlib import Path
from typing import Any, Optional, Tuple

import yaml
from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from flightdeck.domain.errors import ConfigError

from .schema import DEFAULT_CONFIG, FlightdeckConfig


class _Env(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="FLIGHTDECK_", extra="ignore")
    config_path: Optional[str] = None
    workspace: Optional[str] = None
    pushover_token: Optional[str] = None
    pushover_user: Optional[str] = None


_env: Optional[_Env] = None


def _get_env() -> _Env:
    global _env
    if _env is None:
        _env = _Env()
    return _env


def _read_data(p: Path) -> Any:
    raw = p.read_text(encoding="utf-8")
    if p.suffix.lower() in (".yaml", ".yml"):
        return yaml.safe_load(raw) or {}
    return json.loads(raw)


@functools.lru_cache(maxsize=1)
def load_config() -> FlightdeckConfig:
    """Load config from FLIGHTDECK_CONFIG_PATH if set and valid; else return DEFAULT_CONFIG.

    Result is cached for the lifetime of the process.  Call
    ``load_config.cache_clear()`` to force a reload.
    """
    path = _get_env().config_path
    if not path or not path.strip():
        return DEFAULT_CONFIG
    p = Path(path).expanduser().resolve()
    if not p.is_file():
        return DEFAULT_CONFIG
    try:
        data = _read_data(p)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigError(str(p), str(e)) from e
    if not isinstance(data, dict):
        raise ConfigError(str(p), "must contain a mapping at the top level")
    try:
        return FlightdeckConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(str(p), str(e)) from e


def workspace_override() -> Optional[str]:
    """FLIGHTDECK_WORKSPACE, if set; takes precedence over ``workspace_dir`` in the file."""
    return _get_env().workspace


def pushover_credentials() -> Tuple[Optional[str], Optional[str]]:
    """Return ``(token, user)`` from the environment; either may be None."""
    env = _get_env()
    return env.pushover_token, env.pushover_user
