"""Provider configuration loading and setting helpers."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

from .errors import ConfigError

ENV_REF_RE = re.compile(r"\$(?:\{([A-Za-z_][A-Za-z0-9_]*)\}|([A-Za-z_][A-Za-z0-9_]*))")


@dataclass(frozen=True)
class ProviderConfig:
    """DNS provider selection, reconciler mode and backend settings."""

    provider: str
    upsert: bool = False
    settings: Dict[str, str] = field(default_factory=dict)


# =============================================================================
# Utility Functions
# =============================================================================


def _parse_bool(value: Any, *, default: bool = True) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "y", "on"}


def _expand_env(value: str) -> str:
    """Replace ${VAR} and $VAR with environment values; unset expands to ""."""
    return ENV_REF_RE.sub(lambda m: os.environ.get(m.group(1) or m.group(2), ""), value)


def require_setting(settings: Mapping[str, str], provider: str, key: str) -> str:
    value = str(settings.get(key) or "").strip()
    if not value:
        raise ConfigError(f"{provider}: missing required setting '{key}'")
    return value


def int_setting(settings: Mapping[str, str], provider: str, key: str, default: int) -> int:
    raw = str(settings.get(key) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{provider}: invalid {key} '{raw}'") from e


def float_setting(settings: Mapping[str, str], provider: str, key: str, default: float) -> float:
    raw = str(settings.get(key) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigError(f"{provider}: invalid {key} '{raw}'") from e


# =============================================================================
# Loading
# =============================================================================


def load_provider_config(path: str) -> ProviderConfig:
    """Read the provider config YAML.

    Example file:
        provider: opnsense
        upsert: true
        settings:
          base_url: https://opnsense.lan/api
          api_key: ${OPNSENSE_API_KEY}
          api_secret: ${OPNSENSE_API_SECRET}

    Raises:
        ConfigError: If the file cannot be read or parsed, or `provider` is missing.
    """
    try:
        text = Path(path).read_text("utf-8")
    except OSError as e:
        raise ConfigError(f"reading provider config file {path}: {e}") from e

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"parsing provider config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"parsing provider config file {path}: expected a mapping")

    provider = str(data.get("provider") or "").strip()
    if not provider:
        raise ConfigError("provider config: missing required field 'provider'")

    raw_settings = data.get("settings") or {}
    if not isinstance(raw_settings, dict):
        raise ConfigError("provider config: 'settings' must be a mapping")

    settings: Dict[str, str] = {}
    for key, value in raw_settings.items():
        if value is None:
            continue
        if isinstance(value, (dict, list)):
            raise ConfigError(f"provider config: setting '{key}' must be a scalar value")
        settings[str(key)] = _expand_env(str(value))

    return ProviderConfig(
        provider=provider,
        upsert=_parse_bool(data.get("upsert"), default=False),
        settings=settings,
    )
