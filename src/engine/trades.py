"""Trade lifecycle: order placement, state machine and server refresh."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Mapping

from coinify_client.async_rest import AsyncRestClient
from coinify_client.errors import UpstreamRejection
from coinify_client.models import Quote, ensure_aware, utcnow
from coinify_client.schemas import (
    TRADE_STATE_ORDER,
    Medium,
    TradeSchema,
    TradeState,
)
from engine.address_pool import ReceiveAddressPool
from engine.delegate import ExchangeDelegate

if TYPE_CHECKING:
    from engine.account import CoinifyAccount

LOGGER = logging.getLogger("coinify.trades")

SIDE_EXIT_STATES = frozenset(
    {TradeState.CANCELLED, TradeState.REJECTED, TradeState.EXPIRED}
)


def can_transition(current: TradeState, target: TradeState) -> bool:
    """Forward moves only; side exits from any non-terminal state."""
    if current.is_terminal or current is target:
        return False
    if target in SIDE_EXIT_STATES:
        return True
    return TRADE_STATE_ORDER[target] > TRADE_STATE_ORDER[current]


def _parse_timestamp(value: Any) -> datetime | None:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return ensure_aware(value)
    return ensure_aware(datetime.fromisoformat(str(value).replace("Z", "+00:00")))


def _format_timestamp(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class Trade:
    """A placed order and its local mirror of the exchange's state.

    The currency pair and signed amounts are fixed at construction; only
    state, timestamps, payment details and extension fields change.
    """

    def __init__(
        self,
        *,
        id: int,
        state: TradeState,
        base_currency: str,
        quote_currency: str,
        base_amount: Decimal,
        quote_amount: Decimal | None = None,
        medium: Medium | None = None,
        receive_address: str | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
        tx_hash: str | None = None,
        received_amount: Decimal | None = None,
        transfer_details: Mapping[str, Any] | None = None,
        extra: Mapping[str, Any] | None = None,
        account: "CoinifyAccount | None" = None,
    ) -> None:
        self.id = id
        self.state = state
        self._base_currency = base_currency
        self._quote_currency = quote_currency
        self._base_amount = Decimal(base_amount)
        self._quote_amount = Decimal(quote_amount) if quote_amount is not None else None
        self.medium = medium
        self.receive_address = receive_address
        self.created_at = created_at
        self.updated_at = updated_at
        self.tx_hash = tx_hash
        self.received_amount = received_amount
        self.transfer_details: dict[str, Any] = dict(transfer_details or {})
        self.extra: dict[str, Any] = dict(extra or {})
        # Non-owning: the account owns its trades, not the reverse.
        self.account = account

    def __repr__(self) -> str:
        return (
            f"Trade(id={self.id!r}, state={self.state.value!r}, "
            f"base_amount={self._base_amount!r}, base_currency={self._base_currency!r})"
        )

    @property
    def base_currency(self) -> str:
        return self._base_currency

    @property
    def quote_currency(self) -> str:
        return self._quote_currency

    @property
    def base_amount(self) -> Decimal:
        return self._base_amount

    @property
    def quote_amount(self) -> Decimal | None:
        return self._quote_amount

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def is_awaiting_payment(self) -> bool:
        return self.state is TradeState.AWAITING_PAYMENT

    def advance(self, target: TradeState) -> bool:
        """Move to ``target`` if the state machine allows it."""
        if target is self.state:
            return False
        if not can_transition(self.state, target):
            LOGGER.warning(
                "Ignoring transition of trade %s from %s to %s",
                self.id,
                self.state.value,
                target.value,
                extra={"trade_id": self.id},
            )
            return False
        LOGGER.info(
            "Trade %s: %s -> %s",
            self.id,
            self.state.value,
            target.value,
            extra={"trade_id": self.id},
        )
        self.state = target
        return True

    def record_payment(self, amount: Decimal, tx_hash: str | None = None) -> bool:
        """Apply observed funds once; later notifications are no-ops."""
        if not self.is_awaiting_payment or self.received_amount is not None:
            return False
        self.received_amount = Decimal(str(amount))
        if tx_hash:
            self.tx_hash = tx_hash
        self.updated_at = utcnow()
        return self.advance(TradeState.PROCESSING)

    @classmethod
    def from_api(
        cls,
        payload: Mapping[str, Any],
        *,
        quote: Quote | None = None,
        account: "CoinifyAccount | None" = None,
    ) -> "Trade":
        """Build a trade from a server record, using quote terms when given."""
        schema = TradeSchema.model_validate(payload)
        if quote is not None:
            base_currency = quote.base_currency
            quote_currency = quote.quote_currency
            base_amount = quote.base_amount
            quote_amount: Decimal | None = quote.quote_amount
        else:
            base_currency = schema.in_currency
            quote_currency = schema.out_currency
            base_amount = -schema.in_amount
            quote_amount = schema.out_amount
        try:
            medium: Medium | None = Medium(schema.transfer_in.medium)
        except ValueError:
            medium = None
        return cls(
            id=schema.id,
            state=schema.state,
            base_currency=base_currency,
            quote_currency=quote_currency,
            base_amount=base_amount,
            quote_amount=quote_amount,
            medium=medium,
            receive_address=schema.receive_address,
            created_at=schema.create_time,
            updated_at=schema.update_time,
            tx_hash=schema.tx_hash,
            transfer_details=schema.transfer_in.details,
            extra=dict(schema.model_extra or {}),
            account=account,
        )

    def update_from_payload(self, payload: Mapping[str, Any]) -> None:
        """Merge a server record into this trade in place."""
        schema = TradeSchema.model_validate(payload)
        if schema.id != self.id:
            raise UpstreamRejection(
                f"Trade record {schema.id} does not match local trade {self.id}"
            )
        remote_pair = {schema.in_currency.upper(), schema.out_currency.upper()}
        if remote_pair != {self._base_currency.upper(), self._quote_currency.upper()}:
            LOGGER.warning(
                "Trade %s: ignoring remote currency pair %s",
                self.id,
                sorted(remote_pair),
                extra={"trade_id": self.id},
            )
        self.advance(schema.state)
        if schema.create_time is not None and self.created_at is None:
            self.created_at = schema.create_time
        if schema.update_time is not None:
            self.updated_at = schema.update_time
        if schema.tx_hash:
            self.tx_hash = schema.tx_hash
        if self.receive_address is None:
            self.receive_address = schema.receive_address
        self.transfer_details.update(schema.transfer_in.details)
        self.extra.update(schema.model_extra or {})

    def to_payload(self, delegate: ExchangeDelegate | None = None) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "state": self.state.value,
            "base_currency": self._base_currency,
            "quote_currency": self._quote_currency,
            "base_amount": str(self._base_amount),
            "quote_amount": (
                str(self._quote_amount) if self._quote_amount is not None else None
            ),
            "medium": self.medium.value if self.medium is not None else None,
            "receive_address": self.receive_address,
            "created_at": _format_timestamp(self.created_at),
            "updated_at": _format_timestamp(self.updated_at),
            "tx_hash": self.tx_hash,
            "received_amount": (
                str(self.received_amount) if self.received_amount is not None else None
            ),
            "transfer_details": dict(self.transfer_details),
            "extra": dict(self.extra),
        }
        if delegate is not None:
            delegate.serialize_extra_fields(payload, self)
        return payload

    @classmethod
    def from_payload(
        cls,
        payload: Mapping[str, Any],
        delegate: ExchangeDelegate | None = None,
        account: "CoinifyAccount | None" = None,
    ) -> "Trade":
        """Restore a trade from its persisted record."""
        medium = payload.get("medium")
        quote_amount = payload.get("quote_amount")
        received_amount = payload.get("received_amount")
        trade = cls(
            id=int(payload["id"]),
            state=TradeState.from_api(payload["state"]),
            base_currency=str(payload["base_currency"]),
            quote_currency=str(payload["quote_currency"]),
            base_amount=Decimal(str(payload["base_amount"])),
            quote_amount=Decimal(str(quote_amount)) if quote_amount is not None else None,
            medium=Medium(medium) if medium else None,
            receive_address=payload.get("receive_address"),
            created_at=_parse_timestamp(payload.get("created_at")),
            updated_at=_parse_timestamp(payload.get("updated_at")),
            tx_hash=payload.get("tx_hash"),
            received_amount=(
                Decimal(str(received_amount)) if received_amount is not None else None
            ),
            transfer_details=payload.get("transfer_details"),
            extra=payload.get("extra"),
            account=account,
        )
        if delegate is not None:
            delegate.deserialize_extra_fields(dict(payload), trade)
            if trade.receive_address is None:
                trade.receive_address = delegate.get_receive_address(trade)
        return trade


class TradeLifecycle:
    """Places orders and refreshes trades against the exchange."""

    def __init__(
        self,
        client: AsyncRestClient,
        delegate: ExchangeDelegate,
        address_pool: ReceiveAddressPool,
    ) -> None:
        self.client = client
        self.delegate = delegate
        self.address_pool = address_pool

    async def buy(
        self,
        quote: Quote,
        medium: Medium,
        account: "CoinifyAccount | None" = None,
    ) -> Trade:
        """Reserve an address, place the order and commit the address.

        The reservation is released on any failure before the order is
        confirmed; upstream errors are re-raised unchanged. Once confirmed,
        a failing commit hook raises ``AddressCommitFailure`` carrying the
        trade, and the address stays committed.
        """
        address = await self.address_pool.reserve()
        try:
            payload = await self.client.create_trade(quote.id, medium.value, address)
            trade = Trade.from_api(payload, quote=quote, account=account)
        except (Exception, asyncio.CancelledError):
            LOGGER.warning("Order placement failed, releasing address %s", address)
            await self.address_pool.release(address)
            raise
        trade.receive_address = address
        trade.medium = medium
        await self.address_pool.commit(address, trade)
        LOGGER.info(
            "Placed trade %s: %s %s via %s",
            trade.id,
            trade.base_amount,
            trade.base_currency,
            medium.value,
            extra={"trade_id": trade.id, "address": address},
        )
        return trade

    async def refresh(self, trade: Trade) -> Trade:
        payload = await self.client.get_trade(trade.id)
        trade.update_from_payload(payload)
        return trade

    async def fetch_all(self) -> list[dict[str, Any]]:
        return await self.client.list_trades()
