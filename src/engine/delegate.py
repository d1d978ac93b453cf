"""Host-application capabilities required by the account engine."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Collection, Protocol

if TYPE_CHECKING:
    from engine.trades import Trade

PaymentCallback = Callable[..., Awaitable[None]]


class ExchangeDelegate(Protocol):
    async def save(self) -> None:
        """Persist the account's serializable state."""

    def email(self) -> str | None:
        """Return the user's email address."""

    def is_email_verified(self) -> bool:
        """Return whether the user's email address is verified."""

    async def get_email_token(self) -> str:
        """Return a short-lived token proving email ownership."""

    def monitor_address(self, address: str, callback: PaymentCallback) -> None:
        """Await ``callback(amount, tx_hash=...)`` when funds arrive at address."""

    async def check_address(self, address: str) -> Decimal | None:
        """Return the amount already received at address, if any."""

    def get_receive_address(self, trade: "Trade") -> str | None:
        """Derive the receive address of a restored trade."""

    async def reserve_receive_address(self, excluded: Collection[str]) -> str:
        """Return an unused receive address that is not in ``excluded``."""

    async def commit_receive_address(self, address: str, trade: "Trade") -> None:
        """Permanently bind address to trade (e.g. label it in the wallet)."""

    async def release_receive_address(self, address: str) -> None:
        """Return a reserved address to the wallet's free pool."""

    def serialize_extra_fields(self, payload: dict[str, Any], trade: "Trade") -> None:
        """Add delegate-owned fields to a trade record being persisted."""

    def deserialize_extra_fields(
        self, payload: dict[str, Any], trade: "Trade"
    ) -> None:
        """Restore delegate-owned fields from a persisted trade record."""
