"""Configuration loading and runtime overrides.

Precedence, highest first:
  1. explicit CLI flags (apply_cli_overrides)
  2. --set KEY=VALUE overrides
  3. config file (--config, CRATEGAP_CONFIG, or ./crategap.yml|yaml|json)
  4. defaults on constants.Constants
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Iterable, Optional

import yaml
from jsonschema import Draft7Validator

from constants import Constants

logger = logging.getLogger(__name__)

CONFIG_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "metadata": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "mode": {"type": "string", "enum": Constants.METADATA_MODES},
                "cargo": {"type": "string", "minLength": 1},
                "timeout": {"type": "integer", "minimum": 1},
                "filter_platform": {"type": ["string", "null"]},
                "include_dev": {"type": "boolean"},
                "offline": {"type": "boolean"},
                "locked": {"type": "boolean"},
            },
        },
        "inventory": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "extension": {"type": "string", "minLength": 1},
            },
        },
        "policy": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "approve": {"type": "array", "items": {"type": "string"}},
                "zero_major_minor_is_breaking": {"type": "boolean"},
            },
        },
    },
}

# (section, key) -> Constants attribute
_CONSTANT_KEYS = {
    ("metadata", "mode"): "METADATA_MODE",
    ("metadata", "cargo"): "CARGO_BIN",
    ("metadata", "timeout"): "METADATA_TIMEOUT_SEC",
    ("metadata", "filter_platform"): "FILTER_PLATFORM",
    ("metadata", "include_dev"): "INCLUDE_DEV_DEPENDENCIES",
    ("metadata", "offline"): "CARGO_OFFLINE",
    ("metadata", "locked"): "CARGO_LOCKED",
    ("inventory", "extension"): "ARTIFACT_EXTENSION",
    ("policy", "approve"): "APPROVED_CRATES",
    ("policy", "zero_major_minor_is_breaking"): "ZERO_MAJOR_MINOR_IS_BREAKING",
}


class ConfigError(ValueError):
    """Raised when a configuration file cannot be read or fails validation."""


def validate_config(config: Dict[str, Any]) -> None:
    """Validate a config mapping strictly and raise on the first error."""
    validator = Draft7Validator(CONFIG_SCHEMA)
    errs = sorted(validator.iter_errors(config), key=lambda e: list(e.path))
    if errs:
        first = errs[0]
        path = ".".join([str(p) for p in first.path]) or "<root>"
        raise ConfigError(f"Invalid configuration at '{path}': {first.message}")


def _default_config_path() -> Optional[str]:
    env_path = os.environ.get(Constants.ENV_CONFIG)
    if env_path and env_path.strip():
        return env_path.strip()
    for candidate in Constants.DEFAULT_CONFIG_FILES:
        if os.path.isfile(candidate):
            return candidate
    return None


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load a YAML or JSON configuration file.

    Args:
        path: Explicit config path; when omitted the environment variable and
            default locations are consulted, and a missing file means no config.

    Raises:
        ConfigError: If the file cannot be read or parsed.
    """
    explicit = bool(path)
    path = path or _default_config_path()
    if not path:
        return {}
    if not explicit and not os.path.isfile(path):
        logger.warning("Config file not found: %s", path)
        return {}
    try:
        with open(path, "r", encoding="utf-8") as fh:
            if path.lower().endswith(".json"):
                data = json.load(fh)
            else:
                data = yaml.safe_load(fh)
    except OSError as e:
        raise ConfigError(f"Could not read config file {path}: {e}") from e
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigError(f"Could not parse config file {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    logger.debug("Loaded config from %s", path)
    return data


def _coerce_value(text: str) -> Any:
    """Best-effort convert string to JSON/number/bool, else raw string."""
    s = str(text).strip()
    try:
        return json.loads(s)
    except ValueError:
        sl = s.lower()
        if sl == "true":
            return True
        if sl == "false":
            return False
        return s


def _apply_dot_path(dct: Dict[str, Any], dot_path: str, value: Any) -> None:
    parts = [p for p in dot_path.split(".") if p]
    if not parts:
        return
    cur = dct
    for key in parts[:-1]:
        if key not in cur or not isinstance(cur.get(key), dict):
            cur[key] = {}
        cur = cur[key]
    cur[parts[-1]] = value


def _deep_merge(dest: Dict[str, Any], src: Dict[str, Any]) -> None:
    """Deep-merge src into dest in-place."""
    for k, v in src.items():
        if isinstance(v, dict) and isinstance(dest.get(k), dict):
            _deep_merge(dest[k], v)
        else:
            dest[k] = v


def collect_overrides(pairs: Iterable[str]) -> Dict[str, Any]:
    """Turn KEY=VALUE strings into a nested override mapping."""
    overrides: Dict[str, Any] = {}
    for item in pairs or []:
        if not isinstance(item, str) or "=" not in item:
            logger.warning("Ignoring malformed --set value: %s", item)
            continue
        key, val = item.split("=", 1)
        _apply_dot_path(overrides, key.strip(), _coerce_value(val))
    return overrides


def build_config(path: Optional[str] = None, overrides: Iterable[str] = ()) -> Dict[str, Any]:
    """Load the config file, merge --set overrides on top, and validate.

    Raises:
        ConfigError: If loading or validation fails.
    """
    config = load_config(path)
    _deep_merge(config, collect_overrides(overrides))
    validate_config(config)
    return config


def apply_config(config: Dict[str, Any]) -> None:
    """Apply a validated config mapping onto Constants."""
    for (section, key), attr in _CONSTANT_KEYS.items():
        block = config.get(section)
        if isinstance(block, dict) and key in block:
            setattr(Constants, attr, block[key])


def apply_cli_overrides(args) -> None:
    """Apply explicit CLI flags onto Constants; these win over config values."""
    if getattr(args, "METADATA_MODE", None):
        Constants.METADATA_MODE = args.METADATA_MODE
    if getattr(args, "CARGO_BIN", None):
        Constants.CARGO_BIN = args.CARGO_BIN
    if getattr(args, "FILTER_PLATFORM", None):
        Constants.FILTER_PLATFORM = args.FILTER_PLATFORM
    if getattr(args, "NO_DEV", False):
        Constants.INCLUDE_DEV_DEPENDENCIES = False
    if getattr(args, "OFFLINE", False):
        Constants.CARGO_OFFLINE = True
    if getattr(args, "LOCKED", False):
        Constants.CARGO_LOCKED = True
    approve = getattr(args, "APPROVE", None)
    if approve:
        Constants.APPROVED_CRATES = list(dict.fromkeys(list(Constants.APPROVED_CRATES) + list(approve)))
