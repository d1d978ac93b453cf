"""Watch reserved addresses and advance trades when funds arrive."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable

from engine.delegate import ExchangeDelegate, PaymentCallback
from engine.trades import Trade

LOGGER = logging.getLogger("coinify.payment_monitor")


class PaymentMonitor:
    """Registers address watches with the delegate for pending trades.

    Registration is on demand; calling ``watch_all`` again re-registers
    every trade that is still awaiting payment.
    """

    def __init__(self, delegate: ExchangeDelegate) -> None:
        self.delegate = delegate

    @staticmethod
    def is_watchable(trade: Trade) -> bool:
        return trade.is_awaiting_payment and bool(trade.receive_address)

    def watch(self, trade: Trade) -> bool:
        address = trade.receive_address
        if not address or not self.is_watchable(trade):
            return False
        self.delegate.monitor_address(address, self._callback_for(trade))
        LOGGER.debug(
            "Watching %s for trade %s",
            address,
            trade.id,
            extra={"trade_id": trade.id, "address": address},
        )
        return True

    def watch_all(self, trades: Iterable[Trade]) -> int:
        return sum(1 for trade in trades if self.watch(trade))

    async def check_all(self, trades: Iterable[Trade]) -> int:
        """One-shot lookup of payments that arrived while nobody was watching."""
        applied = 0
        for trade in list(trades):
            address = trade.receive_address
            if not address or not self.is_watchable(trade):
                continue
            amount = await self.delegate.check_address(address)
            if amount and await self.handle_payment(trade, amount):
                applied += 1
        return applied

    async def handle_payment(
        self, trade: Trade, amount: Decimal, tx_hash: str | None = None
    ) -> bool:
        if not trade.record_payment(amount, tx_hash):
            LOGGER.debug(
                "Duplicate payment notification for trade %s ignored",
                trade.id,
                extra={"trade_id": trade.id},
            )
            return False
        LOGGER.info(
            "Received %s at %s for trade %s",
            amount,
            trade.receive_address,
            trade.id,
            extra={"trade_id": trade.id, "address": trade.receive_address},
        )
        await self.delegate.save()
        return True

    def _callback_for(self, trade: Trade) -> PaymentCallback:
        async def callback(amount: Decimal, tx_hash: str | None = None) -> None:
            await self.handle_payment(trade, amount, tx_hash)

        return callback
