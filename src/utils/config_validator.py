"""Validation helpers for client settings and signup inputs."""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Any
from urllib.parse import urlparse

_COUNTRY_PATTERN = re.compile(r"^[A-Za-z]{2}$")
_CURRENCY_PATTERN = re.compile(r"^[A-Za-z]{3,5}$")


class ConfigValidationError(ValueError):
    """Raised when configuration validation fails."""


def validate_country_code(value: Any) -> str:
    """Return the upper-cased ISO 3166-1 alpha-2 code."""
    if not isinstance(value, str) or not _COUNTRY_PATTERN.match(value):
        raise ConfigValidationError(
            f"country code must be ISO 3166-1 alpha-2 (e.g. US, DK), got: {value!r}"
        )
    return value.upper()


def validate_currency_code(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigValidationError("currency code is required")
    if not _CURRENCY_PATTERN.match(value.strip()):
        raise ConfigValidationError(f"invalid currency code: {value!r}")
    return value.strip().upper()


def validate_base_url(config: dict[str, Any]) -> None:
    if "base_url" not in config:
        return
    parsed = urlparse(str(config["base_url"]))
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ConfigValidationError(
            f"base_url must be an http(s) URL, got: {config['base_url']!r}"
        )


def validate_positive_decimal(
    config: dict[str, Any], field: str, *, required: bool = True
) -> None:
    """Validate that a field is a positive decimal value."""
    if field not in config:
        if required:
            raise ConfigValidationError(f"Missing required field: {field}")
        return

    value = config[field]
    try:
        decimal_value = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise ConfigValidationError(
            f"{field} must be a valid number, got: {value}"
        ) from exc

    if decimal_value <= 0:
        raise ConfigValidationError(f"{field} must be positive, got: {decimal_value}")


def validate_non_negative_int(config: dict[str, Any], field: str) -> None:
    if field not in config:
        return
    value = config[field]
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigValidationError(f"{field} must be a non-negative integer, got: {value!r}")


def validate_settings(config: dict[str, Any]) -> None:
    """Validate a raw settings mapping before it is turned into ClientSettings."""
    validate_base_url(config)
    if "partner_id" in config and config["partner_id"] is not None:
        if not str(config["partner_id"]).strip():
            raise ConfigValidationError("partner_id must be non-empty when set")
    if "crypto_asset" in config:
        validate_currency_code(config["crypto_asset"])
    validate_positive_decimal(config, "timeout", required=False)
    validate_non_negative_int(config, "max_retries")
    if "verify_ssl" in config and not isinstance(config["verify_ssl"], bool):
        raise ConfigValidationError("verify_ssl must be a boolean")
