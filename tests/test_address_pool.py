from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest

from coinify_client.errors import AddressCommitFailure, PreconditionFailure
from coinify_client.schemas import TradeState
from engine.address_pool import ReceiveAddressPool, SlotState
from engine.trades import Trade
from tests.helpers import FakeDelegate


def _trade(trade_id: int) -> Trade:
    return Trade(
        id=trade_id,
        state=TradeState.AWAITING_PAYMENT,
        base_currency="EUR",
        quote_currency="BTC",
        base_amount=Decimal("-100"),
    )


@pytest.mark.asyncio
async def test_concurrent_reservations_get_distinct_addresses() -> None:
    delegate = FakeDelegate()
    pool = ReceiveAddressPool(delegate)

    first, second = await asyncio.gather(pool.reserve(), pool.reserve())

    assert first != second
    assert pool.state_of(first) is SlotState.RESERVED
    assert pool.state_of(second) is SlotState.RESERVED
    # The second caller was offered the held address once and asked again.
    assert delegate.reserve_calls == 3


@pytest.mark.asyncio
async def test_commit_binds_address_and_notifies_delegate() -> None:
    delegate = FakeDelegate()
    pool = ReceiveAddressPool(delegate)

    address = await pool.reserve()
    await pool.commit(address, _trade(7))

    slot = pool.slot(address)
    assert slot is not None
    assert slot.state is SlotState.COMMITTED
    assert slot.owner == 7
    assert delegate.committed == [(address, 7)]
    assert await pool.reserve() != address


@pytest.mark.asyncio
async def test_release_returns_address_to_free_pool() -> None:
    delegate = FakeDelegate()
    pool = ReceiveAddressPool(delegate)

    address = await pool.reserve()
    await pool.release(address)

    assert pool.state_of(address) is SlotState.FREE
    assert delegate.released == [address]
    assert await pool.reserve() == address


@pytest.mark.asyncio
async def test_commit_requires_reservation() -> None:
    pool = ReceiveAddressPool(FakeDelegate())

    with pytest.raises(PreconditionFailure) as excinfo:
        await pool.commit("addr-9", _trade(1))

    assert excinfo.value.invariant == "RECEIVE_ADDRESS_NOT_RESERVED"


@pytest.mark.asyncio
async def test_release_of_committed_address_is_ignored() -> None:
    delegate = FakeDelegate()
    pool = ReceiveAddressPool(delegate)
    address = await pool.reserve()
    await pool.commit(address, _trade(1))

    await pool.release(address)

    assert pool.state_of(address) is SlotState.COMMITTED
    assert delegate.released == []


@pytest.mark.asyncio
async def test_exhausted_pool_raises_precondition_failure() -> None:
    class StubbornDelegate(FakeDelegate):
        async def reserve_receive_address(self, excluded):
            self.reserve_calls += 1
            return "only"

    delegate = StubbornDelegate()
    pool = ReceiveAddressPool(delegate, max_attempts=2)
    pool.adopt("only", _trade(1))

    with pytest.raises(PreconditionFailure) as excinfo:
        await pool.reserve()

    assert excinfo.value.invariant == "RECEIVE_ADDRESS_UNAVAILABLE"
    assert delegate.reserve_calls == 2


@pytest.mark.asyncio
async def test_adopted_addresses_are_never_reserved() -> None:
    delegate = FakeDelegate(addresses=["a", "b"])
    pool = ReceiveAddressPool(delegate)
    pool.adopt("a", _trade(1))

    assert await pool.reserve() == "b"


@pytest.mark.asyncio
async def test_adopt_leaves_in_flight_reservation_alone() -> None:
    delegate = FakeDelegate(addresses=["a", "b"])
    pool = ReceiveAddressPool(delegate)
    address = await pool.reserve()

    pool.adopt(address, _trade(9))

    assert pool.state_of(address) is SlotState.RESERVED
    await pool.commit(address, _trade(3))
    assert pool.slot(address).owner == 3
    assert delegate.committed == [(address, 3)]


@pytest.mark.asyncio
async def test_failed_commit_hook_is_retried_until_it_succeeds() -> None:
    delegate = FakeDelegate(addresses=["a", "b"])
    pool = ReceiveAddressPool(delegate)
    trade = _trade(5)
    address = await pool.reserve()
    delegate.commit_error = RuntimeError("wallet offline")

    with pytest.raises(AddressCommitFailure):
        await pool.commit(address, trade)
    assert await pool.retry_commits() == 0
    assert pool.pending_commits == {address: trade}
    assert await pool.reserve() == "b"

    delegate.commit_error = None
    assert await pool.retry_commits() == 1
    assert pool.pending_commits == {}
    assert delegate.committed == [(address, 5)]
