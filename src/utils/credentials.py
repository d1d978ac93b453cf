"""Offline-token storage helpers for the Coinify account."""

from __future__ import annotations

import os
import re
from typing import Mapping

import keyring
from keyring.errors import KeyringError

DEFAULT_SERVICE_NAME = "coinify-exchange"
DEFAULT_OFFLINE_TOKEN_ENV = "COINIFY_OFFLINE_TOKEN"
DEFAULT_OFFLINE_TOKEN_USERNAME = "offline_token"
_ENV_PATTERN = re.compile(r"^\$\{([A-Z0-9_]+)\}$")


def load_offline_token(
    service_name: str,
    config: Mapping[str, object] | None = None,
    *,
    token_env: str = DEFAULT_OFFLINE_TOKEN_ENV,
    token_username: str = DEFAULT_OFFLINE_TOKEN_USERNAME,
) -> str | None:
    """Load the offline token from config, env vars, or keyring in order.

    Returns None when no source holds a token; an account without one has
    simply not signed up yet.
    """
    token = _resolve_value(config, "offline_token")
    if not token:
        token = _clean_value(os.getenv(token_env))
    if not token:
        token = _get_keyring_value(service_name, token_username)
    return token


def store_offline_token(
    service_name: str,
    offline_token: str,
    *,
    token_username: str = DEFAULT_OFFLINE_TOKEN_USERNAME,
) -> None:
    """Store the offline token in the OS keychain via keyring."""
    token_value = _clean_value(offline_token)
    if not token_value:
        raise ValueError("offline_token must be a non-empty string.")
    try:
        keyring.set_password(service_name, token_username, token_value)
    except KeyringError as exc:
        raise RuntimeError(
            "Failed to store the offline token in the OS keychain. "
            "Ensure a keyring backend is available."
        ) from exc


def _resolve_value(config: Mapping[str, object] | None, key: str) -> str | None:
    if not config or key not in config:
        return None
    raw = config.get(key)
    if not isinstance(raw, str):
        return _clean_value(str(raw)) if raw is not None else None
    raw = raw.strip()
    if not raw:
        return None
    match = _ENV_PATTERN.match(raw)
    if match:
        return _clean_value(os.getenv(match.group(1)))
    return _clean_value(raw)


def _clean_value(value: str | None) -> str | None:
    if value is None:
        return None
    candidate = value.strip()
    return candidate or None


def _get_keyring_value(service_name: str, username: str) -> str | None:
    try:
        return _clean_value(keyring.get_password(service_name, username))
    except KeyringError as exc:
        raise RuntimeError(
            "Failed to access the OS keychain. "
            "Ensure a keyring backend is available."
        ) from exc
