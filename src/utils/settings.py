"""Client settings loaded from JSON/YAML files and the environment."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

from coinify_client.constants import CRYPTO_ASSET, default_rest_base_url
from utils.config_validator import ConfigValidationError, validate_settings

SUPPORTED_FORMATS = (".json", ".yaml", ".yml")
ENV_OVERRIDES = {
    "COINIFY_BASE_URL": "base_url",
    "COINIFY_PARTNER_ID": "partner_id",
}


@dataclass(frozen=True)
class ClientSettings:
    base_url: str = default_rest_base_url()
    partner_id: str | None = None
    crypto_asset: str = CRYPTO_ASSET
    timeout: float = 10.0
    max_retries: int = 3
    backoff_factor: float = 0.5
    verify_ssl: bool = True
    log_level: str = "INFO"

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> "ClientSettings":
        known = {item.name for item in fields(cls)}
        unknown = sorted(set(config) - known)
        if unknown:
            raise ConfigValidationError(f"Unknown settings: {', '.join(unknown)}")
        data = dict(config)
        validate_settings(data)
        if data.get("partner_id") is not None:
            data["partner_id"] = str(data["partner_id"]).strip()
        if "crypto_asset" in data:
            data["crypto_asset"] = str(data["crypto_asset"]).strip().upper()
        return cls(**data)

    def with_env_overrides(self, environ: Mapping[str, str] | None = None) -> "ClientSettings":
        env = os.environ if environ is None else environ
        overrides = {
            attr: env[name].strip()
            for name, attr in ENV_OVERRIDES.items()
            if env.get(name, "").strip()
        }
        if not overrides:
            return self
        validate_settings(overrides)
        return replace(self, **overrides)


def load_settings(
    config_path: str | Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> ClientSettings:
    """Read settings from a file (if given) and apply environment overrides."""
    if config_path is None:
        return ClientSettings().with_env_overrides(environ)
    path = Path(config_path).expanduser()
    return ClientSettings.from_mapping(load_config(path)).with_env_overrides(environ)


def load_config(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}. Ensure the path is correct and readable."
        )
    suffix = config_path.suffix.lower()
    if suffix not in SUPPORTED_FORMATS:
        supported = ", ".join(SUPPORTED_FORMATS)
        raise ValueError(
            f"Unsupported config format '{suffix}'. Supported formats: {supported}."
        )
    text = config_path.read_text(encoding="utf-8")
    try:
        if suffix == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except json.JSONDecodeError as exc:
        raise ValueError(
            f"Invalid JSON in config file {config_path}: {exc}. Validate the file format."
        ) from exc
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in config file {config_path}: {exc}.") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(
            f"Config file {config_path} must contain a JSON/YAML object mapping."
        )
    return data
