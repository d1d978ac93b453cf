"""Exclusive receive-address reservation for in-flight trades."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from coinify_client.errors import AddressCommitFailure, PreconditionFailure
from engine.delegate import ExchangeDelegate

if TYPE_CHECKING:
    from engine.trades import Trade

LOGGER = logging.getLogger("coinify.address_pool")


class SlotState(str, Enum):
    FREE = "free"
    RESERVED = "reserved"
    COMMITTED = "committed"


@dataclass
class AddressSlot:
    address: str
    state: SlotState = SlotState.FREE
    owner: int | None = None


class ReceiveAddressPool:
    """Arena of receive-address slots shared by all trades of one account.

    Every reserved address ends up either committed to a trade or released;
    a held address is never handed to a second reservation.
    """

    def __init__(self, delegate: ExchangeDelegate, *, max_attempts: int = 5) -> None:
        self.delegate = delegate
        self.max_attempts = max_attempts
        self._slots: dict[str, AddressSlot] = {}
        self._pending_commits: dict[str, "Trade"] = {}

    def slot(self, address: str) -> AddressSlot | None:
        return self._slots.get(address)

    def state_of(self, address: str) -> SlotState:
        slot = self._slots.get(address)
        return slot.state if slot is not None else SlotState.FREE

    @property
    def held_addresses(self) -> frozenset[str]:
        return frozenset(
            address
            for address, slot in self._slots.items()
            if slot.state is not SlotState.FREE
        )

    @property
    def pending_commits(self) -> dict[str, "Trade"]:
        """Committed addresses whose delegate hook has not succeeded yet."""
        return dict(self._pending_commits)

    async def reserve(self) -> str:
        for attempt in range(1, self.max_attempts + 1):
            address = await self.delegate.reserve_receive_address(self.held_addresses)
            # Check and mark without an intervening await so concurrent
            # reservations can never both claim the same slot.
            if self.state_of(address) is SlotState.FREE:
                self._slots[address] = AddressSlot(address, SlotState.RESERVED)
                LOGGER.debug("Reserved receive address %s", address)
                return address
            LOGGER.warning(
                "Delegate offered held address %s (attempt %d/%d)",
                address,
                attempt,
                self.max_attempts,
            )
        raise PreconditionFailure(
            "RECEIVE_ADDRESS_UNAVAILABLE",
            f"No free receive address after {self.max_attempts} attempts",
        )

    async def commit(self, address: str, trade: "Trade") -> None:
        slot = self._slots.get(address)
        if slot is None or slot.state is not SlotState.RESERVED:
            raise PreconditionFailure(
                "RECEIVE_ADDRESS_NOT_RESERVED",
                f"Cannot commit address {address} in state {self.state_of(address).value}",
            )
        slot.state = SlotState.COMMITTED
        slot.owner = trade.id
        LOGGER.info(
            "Committed receive address %s to trade %s",
            address,
            trade.id,
            extra={"trade_id": trade.id, "address": address},
        )
        await self._notify_commit(address, trade)

    async def _notify_commit(self, address: str, trade: "Trade") -> None:
        try:
            await self.delegate.commit_receive_address(address, trade)
        except Exception as exc:
            self._pending_commits[address] = trade
            LOGGER.error(
                "Commit hook failed for address %s of trade %s",
                address,
                trade.id,
                extra={"trade_id": trade.id, "address": address},
            )
            raise AddressCommitFailure(address, trade) from exc
        self._pending_commits.pop(address, None)

    async def retry_commits(self) -> int:
        """Re-run failed commit hooks; returns how many now succeeded."""
        succeeded = 0
        for address, trade in list(self._pending_commits.items()):
            try:
                await self._notify_commit(address, trade)
            except AddressCommitFailure:
                continue
            succeeded += 1
        return succeeded

    async def release(self, address: str) -> None:
        slot = self._slots.get(address)
        if slot is None or slot.state is not SlotState.RESERVED:
            LOGGER.warning(
                "Ignoring release of address %s in state %s",
                address,
                self.state_of(address).value,
            )
            return
        del self._slots[address]
        LOGGER.info("Released receive address %s", address)
        await self.delegate.release_receive_address(address)

    def adopt(self, address: str, trade: "Trade") -> None:
        """Record an address already bound to a restored trade."""
        existing = self._slots.get(address)
        if existing is not None and existing.state is SlotState.RESERVED:
            LOGGER.warning(
                "Address %s is reserved by an order in flight, not adopting for %s",
                address,
                trade.id,
            )
            return
        if existing is not None and existing.owner not in (None, trade.id):
            LOGGER.warning(
                "Address %s already committed to trade %s, not adopting for %s",
                address,
                existing.owner,
                trade.id,
            )
            return
        self._slots[address] = AddressSlot(address, SlotState.COMMITTED, trade.id)
