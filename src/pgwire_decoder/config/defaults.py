"""Packaged decoder defaults and the layering of file settings over them."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from pgwire_decoder.config.models import DecoderConfig

DEFAULTS_DIR = Path(__file__).parent / "defaults"


def load_defaults(name: str = "decoder") -> dict[str, Any]:
    """Read ``defaults/<name>.yaml`` shipped with the package."""
    path = DEFAULTS_DIR / f"{name}.yaml"
    if not path.is_file():
        msg = f"Defaults file '{name}' not found at {path}"
        raise FileNotFoundError(msg)
    return yaml.safe_load(path.read_text()) or {}


def merge_configs(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Overlay *overrides* on *base* without mutating either.

    DecoderConfig is flat, so an override replaces the default outright.
    Keys the model does not define are rejected rather than ignored.
    """
    unknown = sorted(set(overrides) - DecoderConfig.model_fields.keys())
    if unknown:
        msg = f"Unknown decoder setting(s): {', '.join(unknown)}"
        raise ValueError(msg)
    return {**base, **overrides}


def build_decoder_config(
    overrides: dict[str, Any],
    *,
    defaults: str = "decoder",
) -> DecoderConfig:
    """Validate the packaged defaults with *overrides* applied."""
    return DecoderConfig.model_validate(merge_configs(load_defaults(defaults), overrides))
