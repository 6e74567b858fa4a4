"""Decoder config files: YAML with ``${VAR}`` / ``${VAR:-default}`` expansion."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from pgwire_decoder.config.defaults import build_decoder_config
from pgwire_decoder.config.models import DecoderConfig

# ${NAME} or ${NAME:-default}; "\}" escapes a brace inside the default
_ENV_REF = re.compile(r"\$\{(?P<name>[^}:]+)(?::-(?P<default>(?:[^}\\]|\\.)*))?}")


def _expand(match: re.Match[str]) -> str:
    name = match["name"]
    if name in os.environ:
        return os.environ[name]
    default = match["default"]
    if default is None:
        msg = f"Environment variable '{name}' is not set and no default provided"
        raise ValueError(msg)
    return default.replace("\\}", "}")


def resolve_env_vars(data: Any) -> Any:
    """Expand environment references in every string of parsed YAML."""
    if isinstance(data, str):
        return _ENV_REF.sub(_expand, data)
    if isinstance(data, dict):
        return {key: resolve_env_vars(value) for key, value in data.items()}
    if isinstance(data, list):
        return [resolve_env_vars(item) for item in data]
    return data


def load_yaml(path: str | Path) -> dict[str, Any]:
    """Parse a config file into a mapping; an empty file is an empty mapping."""
    p = Path(path)
    if not p.is_file():
        msg = f"Config file not found: {p}"
        raise FileNotFoundError(msg)
    try:
        data = yaml.safe_load(p.read_text())
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        where = f" at line {mark.line + 1}, column {mark.column + 1}" if mark else ""
        msg = f"Failed to parse YAML in {p}{where}: {exc}"
        raise ValueError(msg) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        msg = f"Expected a YAML mapping of decoder settings in {p}, got {type(data).__name__}"
        raise TypeError(msg)
    return resolve_env_vars(data)


def load_decoder_config(path: str | Path | None = None) -> DecoderConfig:
    """Build the decoder config from the packaged defaults and *path*, if given.

    Raises ValueError naming the source when a setting is unknown or invalid.
    """
    overrides = load_yaml(path) if path is not None else {}
    source = path or "built-in defaults"
    try:
        return build_decoder_config(overrides)
    except ValidationError as exc:
        msg = f"Invalid decoder config ({source}):\n{exc}"
        raise ValueError(msg) from exc
    except ValueError as exc:
        msg = f"Invalid decoder config ({source}): {exc}"
        raise ValueError(msg) from exc
