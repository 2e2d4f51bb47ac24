"""Configuration helpers for the secrets package."""
from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional

import yaml
from dotenv import find_dotenv, load_dotenv

from .errors import ConfigError

DEFAULT_CACHE_TTL_SECONDS = 24 * 60 * 60

CONFIG_PATH_ENV = "AWSSECRETS_CONFIG"

# ``AWSSECRETS_REGION_NAME`` style names are preferred; the bare upper-case
# key (``REGION_NAME``) is accepted as well.
ENV_PREFIXES = ("AWSSECRETS_", "")

# Standard AWS variables consulted when no explicit region is configured.
AWS_REGION_ENV = ("AWS_REGION", "AWS_DEFAULT_REGION")


@dataclass(frozen=True)
class Settings:
    """Resolved runtime settings."""

    region_name: Optional[str] = None
    endpoint_url: Optional[str] = None
    profile_name: Optional[str] = None
    cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS
    log_level: Optional[str] = None


SETTING_KEYS = tuple(field.name for field in fields(Settings))


def load_yaml_defaults(path: str | Path | None) -> dict:
    """Load settings from the YAML file at ``path``.

    A missing file (or ``None``) yields an empty mapping. Settings may sit at
    the top level or below an ``awssecrets`` key.
    """

    if not path:
        return {}

    yaml_path = Path(path)
    if not yaml_path.exists():
        return {}

    with yaml_path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    if not isinstance(data, dict):
        raise ConfigError(
            f"Expected top-level mapping in configuration file '{yaml_path}',"
            f" but received {type(data).__name__}.",
            context={"path": str(yaml_path)},
        )

    section = data.get("awssecrets", data)
    if not isinstance(section, dict):
        raise ConfigError(
            f"Expected 'awssecrets' section in '{yaml_path}' to be a mapping.",
            context={"path": str(yaml_path)},
        )
    return {key: value for key, value in section.items() if key in SETTING_KEYS}


def load_env_overrides(env: Mapping[str, str], keys: Iterable[str] = SETTING_KEYS) -> dict:
    """Return the settings present in ``env``."""

    overrides: Dict[str, Any] = {}
    for key in keys:
        for prefix in ENV_PREFIXES:
            env_key = f"{prefix}{key.upper()}"
            if env.get(env_key):
                overrides[key] = env[env_key]
                break

    if "region_name" not in overrides:
        for env_key in AWS_REGION_ENV:
            if env.get(env_key):
                overrides["region_name"] = env[env_key]
                break
    return overrides


def merge_configs(*dicts: Mapping[str, Any] | None) -> dict:
    """Merge dictionaries honoring precedence from left to right."""

    merged: Dict[str, Any] = {}
    for cfg in reversed(dicts):
        if not cfg:
            continue
        merged.update({key: value for key, value in cfg.items() if value is not None})
    return merged


def _coerce_ttl(value: Any) -> float:
    try:
        ttl = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(
            f"cache_ttl_seconds must be a number, got {value!r}.",
            context={"cache_ttl_seconds": value},
        ) from exc
    if ttl <= 0:
        raise ConfigError(
            "cache_ttl_seconds must be positive.", context={"cache_ttl_seconds": value}
        )
    return ttl


def load_settings(
    path: str | Path | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Build :class:`Settings` from overrides, environment and YAML.

    Parameters
    ----------
    path:
        YAML file to read. Defaults to ``$AWSSECRETS_CONFIG`` when set.
    env:
        Environment mapping. When omitted the process environment is used,
        after loading a local ``.env`` file that does not override variables
        already set.
    overrides:
        Explicit values taking precedence over everything else.
    """

    if env is None:
        load_dotenv(find_dotenv(usecwd=True), override=False)
        env = os.environ

    config_path = path or env.get(CONFIG_PATH_ENV)
    if path and not Path(path).exists():
        raise ConfigError(
            f"Configuration file '{path}' was not found.", context={"path": str(path)}
        )

    merged = merge_configs(
        {key: value for key, value in (overrides or {}).items() if key in SETTING_KEYS},
        load_env_overrides(env),
        load_yaml_defaults(config_path),
    )
    if "cache_ttl_seconds" in merged:
        merged["cache_ttl_seconds"] = _coerce_ttl(merged["cache_ttl_seconds"])
    if "log_level" in merged:
        merged["log_level"] = str(merged["log_level"]).upper()
    return replace(Settings(), **merged)


__all__ = [
    "DEFAULT_CACHE_TTL_SECONDS",
    "Settings",
    "load_settings",
    "load_yaml_defaults",
    "load_env_overrides",
    "merge_configs",
]
