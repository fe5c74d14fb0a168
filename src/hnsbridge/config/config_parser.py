"""Configuration loading for hnsbridge.

Brief:
  Reads the YAML config file, applies environment overrides and validates
  the result with typed pydantic models.

Inputs:
  - YAML config path (optional) and environment mapping.

Outputs:
  - BridgeConfig instance.
"""

from __future__ import annotations

import os
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

DEFAULT_API_BASE = "https://namebase.now.sh/"

# Environment variable -> (section, key, converter)
_ENV_OVERRIDES = {
    "HNSBRIDGE_API_BASE": ("client", "api_base", str),
    "HNSBRIDGE_RELAY_HOST": ("relay", "host", str),
    "HNSBRIDGE_RELAY_PORT": ("relay", "port", int),
}


class ConfigError(ValueError):
    """Raised for unreadable YAML or values failing validation."""


class ClientConfig(BaseModel):
    """Brief: Settings for the resolution client.

    Inputs:
      - api_base: relay base URL.
      - initial_timeout_ms: starting adaptive timeout.
      - max_timeout_ms: adaptive timeout ceiling.
      - timeout_growth: multiplier applied per timeout event.
      - tld_file: optional path overriding the packaged standard TLD table.
    """

    api_base: str = Field(default=DEFAULT_API_BASE, min_length=1)
    initial_timeout_ms: float = Field(default=5000.0, gt=0)
    max_timeout_ms: float = Field(default=30000.0, gt=0)
    timeout_growth: float = Field(default=1.5, ge=1.0)
    tld_file: Optional[str] = None

    @model_validator(mode="after")
    def _ceiling_above_initial(self) -> "ClientConfig":
        if self.max_timeout_ms < self.initial_timeout_ms:
            raise ValueError("max_timeout_ms must be >= initial_timeout_ms")
        return self


class RelayConfig(BaseModel):
    """Brief: Settings for the relay listener and its DNS resolver."""

    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8053, ge=0, le=65535)
    use_asyncio: bool = True
    nameservers: List[str] = Field(default_factory=list)
    dns_port: int = Field(default=53, ge=1, le=65535)
    lifetime: float = Field(default=5.0, gt=0)


class BridgeConfig(BaseModel):
    logging: Dict[str, Any] = Field(default_factory=lambda: {"level": "info"})
    client: ClientConfig = Field(default_factory=ClientConfig)
    relay: RelayConfig = Field(default_factory=RelayConfig)


def apply_env_overrides(
    raw: Dict[str, Any], environ: Optional[Mapping[str, str]] = None
) -> Dict[str, Any]:
    """Brief: Overlay HNSBRIDGE_* environment variables onto raw config.

    Inputs:
      - raw: parsed YAML mapping (mutated in-place).
      - environ: environment mapping (defaults to os.environ).

    Outputs:
      - dict: the same mapping, for chaining.

    Example:
      >>> apply_env_overrides({}, {"HNSBRIDGE_RELAY_PORT": "9000"})
      {'relay': {'port': 9000}}
    """
    env = os.environ if environ is None else environ
    for var, (section, key, conv) in _ENV_OVERRIDES.items():
        value = env.get(var)
        if value is None or value == "":
            continue
        sub = raw.get(section)
        if not isinstance(sub, dict):
            sub = {}
            raw[section] = sub
        try:
            sub[key] = conv(value)
        except ValueError as exc:
            raise ConfigError(f"Invalid value for {var}: {value!r}") from exc
    return raw


def build_config(raw: Optional[Dict[str, Any]]) -> BridgeConfig:
    """Validate a raw mapping into BridgeConfig, raising ConfigError."""
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError("config root must be a mapping")
    try:
        return BridgeConfig(**raw)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


def load_config(
    config_path: Optional[str] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> BridgeConfig:
    """Brief: Read, env-merge and validate a YAML config file.

    Inputs:
      - config_path: YAML path, or None for built-in defaults.
      - environ: optional environment mapping for overrides.

    Outputs:
      - BridgeConfig

    Raises:
      - ConfigError when the file is missing, unparsable or invalid.
    """
    raw: Dict[str, Any] = {}
    if config_path is not None:
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f)
        except OSError as exc:
            raise ConfigError(f"Cannot read config {config_path}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise ConfigError(f"Cannot parse config {config_path}: {exc}") from exc
        if loaded is not None and not isinstance(loaded, dict):
            raise ConfigError(f"{config_path}: config root must be a mapping")
        raw = loaded or {}
    return build_config(apply_env_overrides(raw, environ))
