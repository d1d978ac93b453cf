"""Persisted account state."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from utils.credentials import load_offline_token, store_offline_token


@dataclass
class AccountState:
    user: int | None = None
    offline_token: str | None = None
    auto_login: bool = False
    trades: list[dict[str, Any]] = field(default_factory=list)

    @property
    def has_account(self) -> bool:
        return bool(self.offline_token)

    def to_payload(self) -> dict[str, Any]:
        return {
            "user": self.user,
            "offline_token": self.offline_token,
            "auto_login": self.auto_login,
            "trades": [dict(trade) for trade in self.trades],
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any] | None) -> "AccountState":
        payload = payload or {}
        user = payload.get("user")
        return cls(
            user=int(user) if user is not None else None,
            offline_token=payload.get("offline_token") or None,
            auto_login=bool(payload.get("auto_login", False)),
            trades=[dict(item) for item in payload.get("trades") or []],
        )

    def save(self, path: str | Path, *, keyring_service: str | None = None) -> None:
        """Write state as JSON; the offline token goes to the keychain if asked."""
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        payload = self.to_payload()
        if keyring_service and self.offline_token:
            store_offline_token(keyring_service, self.offline_token)
            payload["offline_token"] = None
        target.write_text(
            json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8"
        )

    @classmethod
    def load(
        cls, path: str | Path, *, keyring_service: str | None = None
    ) -> "AccountState":
        target = Path(path)
        if not target.exists():
            return cls()
        state = cls.from_payload(json.loads(target.read_text(encoding="utf-8")))
        if keyring_service and not state.offline_token and state.user is not None:
            state.offline_token = load_offline_token(keyring_service)
        return state
